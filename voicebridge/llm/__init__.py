"""
Language model adapters for the voicebridge conversation core.

Key components:
- base: The Llm abstract class every adapter derives from. It decodes inline
  directives, computes voice hints and rejects function schemas for models that
  cannot call functions.
- directives: Pure parser turning raw model text into speech text and directives.
- openai_chat: Adapters for the OpenAI chat completions API.

IMPLEMENTATIONS maps the names accepted by the agent API to adapter classes.

Usage examples:
```python
from voicebridge.llm import get_implementation

llm_class = get_implementation("gpt35")
llm = llm_class(user="call-sid", prompt="You are a helpful receptionist...")
completion = await llm.initial()
```
"""

from typing import Dict, List, Type

from voicebridge.llm.base import Llm, RawCompletion
from voicebridge.llm.directives import parse_directives
from voicebridge.llm.openai_chat import Gpt4, Gpt35

IMPLEMENTATIONS: Dict[str, Type[Llm]] = {
    "gpt35": Gpt35,
    "gpt4": Gpt4,
}


def get_implementation(name: str) -> Type[Llm]:
    """
    Look up an adapter class by its API name.

    Raises:
        ValueError: If no adapter is registered under the name
    """
    try:
        return IMPLEMENTATIONS[name]
    except KeyError:
        raise ValueError(f"Bad agent name: {name}") from None


def list_implementations() -> List[Dict[str, object]]:
    return [
        {
            "name": name,
            "description": implementation.description,
            "supportsFunctions": implementation.supports_functions,
        }
        for name, implementation in IMPLEMENTATIONS.items()
    ]


__all__ = [
    "IMPLEMENTATIONS",
    "Gpt35",
    "Gpt4",
    "Llm",
    "RawCompletion",
    "get_implementation",
    "list_implementations",
    "parse_directives",
]
