"""
Models for language model output after inline directives have been decoded.

A raw completion may carry out-of-band instructions such as ``@HANGUP`` or
``@DATA: {...}``. The directive parser turns these into a DirectiveMap, which the
LLM adapter folds into a Completion handed to the call session.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DirectiveKind(str, Enum):
    """Directive names the conversation core acts on."""
    HANGUP = "hangup"
    DATA = "data"
    UNKNOWN = "unknown"

    @classmethod
    def from_name(cls, name: str) -> "DirectiveKind":
        try:
            return cls(name.lower())
        except ValueError:
            return cls.UNKNOWN


class Directive(BaseModel):
    """A single decoded directive."""
    kind: DirectiveKind
    name: str = Field(..., description="Lower-cased directive name")
    value: Any = Field(True, description="Decoded payload, raw payload text, or True")


class DirectiveMap(BaseModel):
    """Clean text plus every directive found in a raw completion."""
    text: Optional[str] = None
    directives: Dict[str, Directive] = Field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        directive = self.directives.get(name.lower())
        return directive.value if directive else default

    @property
    def data(self) -> Any:
        return self.get(DirectiveKind.DATA.value)

    @property
    def hangup(self) -> bool:
        return bool(self.get(DirectiveKind.HANGUP.value, False))

    @property
    def unknown(self) -> Dict[str, Any]:
        return {
            name: directive.value
            for name, directive in self.directives.items()
            if directive.kind is DirectiveKind.UNKNOWN
        }


class Completion(BaseModel):
    """
    Parsed model turn.

    Attributes:
        text: Speech text with directives removed and newlines turned into SSML breaks
        data: Payload of an @DATA directive, if any
        hangup: True when the model asked to end the call
        calls: Pending function calls, each {"id", "name", "input"}
        error: Error detail reported by the model service alongside the turn
        directives: Any other directives, keyed by lower-cased name
    """
    text: Optional[str] = None
    data: Any = None
    hangup: bool = False
    calls: Optional[List[Dict[str, Any]]] = None
    error: Any = None
    directives: Dict[str, Any] = Field(default_factory=dict)
