"""
Base class for language model adapters.

An adapter owns the conversation state with one model on behalf of one call. The
call session only ever talks to this interface: ``initial()`` for the opening
turn, ``completion(text)`` for each caller utterance and ``call_result(results)``
to hand function call results back. Concrete adapters implement the ``raw_*``
requests; this class turns their output into a Completion by decoding inline
directives.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel

from voicebridge.config.constants import LOGGER_NAME
from voicebridge.exceptions import ModelError, UnsupportedCapability
from voicebridge.llm.directives import parse_directives
from voicebridge.models.completion import Completion

logger = logging.getLogger(LOGGER_NAME)

HINT_SPLIT_PATTERN = re.compile(r"[^a-zA-Z0-9]")


class RawCompletion(BaseModel):
    """Undecoded model turn as returned by a concrete adapter."""
    text: Optional[str] = None
    calls: Optional[List[Dict[str, Any]]] = None
    error: Any = None


class Llm(ABC):
    """
    Superclass for an LLM interface: generic constructor, completion and hint parsing.

    Attributes:
        supports_functions: Whether the model can be given function schemas
        description: Human readable summary used in implementation listings
    """

    supports_functions = False
    description = ""
    model: Optional[str] = None

    def __init__(
        self,
        user: str,
        prompt: str,
        functions: Optional[List[Dict[str, Any]]] = None,
        options: Optional[Dict[str, Any]] = None,
        model: Optional[str] = None,
    ):
        """
        Create an adapter.

        Args:
            user: Unique user id, normally the call id
            prompt: Initial system prompt
            functions: Function schemas the model may call
            options: Combined options; adapters pick the model settings they understand
            model: Model name overriding the adapter default

        Raises:
            UnsupportedCapability: If functions are given to an adapter without function support
        """
        self.check_functions(functions)
        self.user = user
        self.initial_prompt = prompt
        self._prompt = prompt
        self.functions = functions
        self.options = options or {}
        if model:
            self.model = model
        self._hints: Optional[List[str]] = None
        logger.info(f"{type(self).__name__} client created for user {user}")

    @classmethod
    def check_functions(cls, functions: Optional[List[Dict[str, Any]]]) -> None:
        if functions and not cls.supports_functions:
            raise UnsupportedCapability(f"Functions not supported by {cls.__name__}")

    @property
    def prompt(self) -> str:
        return self._prompt

    @prompt.setter
    def prompt(self, value: str) -> None:
        self._prompt = value

    @property
    def voice_hints(self) -> List[str]:
        """
        The unique words of the initial prompt, useful for priming speech recognition.

        Computed once and cached; later prompt changes do not affect it.
        """
        if self._hints is None:
            words = dict.fromkeys(HINT_SPLIT_PATTERN.split(self.initial_prompt or ""))
            self._hints = [word for word in words if len(word) > 2]
        return self._hints

    async def initial(self) -> Completion:
        """Produce the opening turn from the system prompt alone."""
        return self._parse(await self._request(self.raw_initial))

    async def completion(self, text: str) -> Completion:
        """Send a caller utterance and return the parsed reply."""
        return self._parse(await self._request(self.raw_completion, text))

    async def call_result(self, results: List[Dict[str, Any]]) -> Completion:
        """Hand function call results back and return the parsed follow-up turn."""
        return self._parse(await self._request(self.raw_call_result, results))

    @abstractmethod
    async def raw_initial(self) -> RawCompletion:
        pass

    @abstractmethod
    async def raw_completion(self, text: str) -> RawCompletion:
        pass

    @abstractmethod
    async def raw_call_result(self, results: List[Dict[str, Any]]) -> RawCompletion:
        pass

    async def _request(self, request: Callable[..., Awaitable[RawCompletion]], *args) -> RawCompletion:
        try:
            return await request(*args)
        except ModelError:
            raise
        except Exception as e:
            raise ModelError(f"{type(self).__name__} request failed: {e}") from e

    def _parse(self, raw: RawCompletion) -> Completion:
        logger.info(f"Completion received for user {self.user}: {raw.text!r}")
        directives = parse_directives(raw.text)
        return Completion(
            text=directives.text,
            data=directives.data,
            hangup=directives.hangup,
            calls=raw.calls or None,
            error=raw.error,
            directives=directives.unknown,
        )
