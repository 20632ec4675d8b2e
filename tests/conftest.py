import asyncio
import logging
from typing import Any, Dict, List, Optional

import pytest

from voicebridge.llm.base import Llm, RawCompletion
from voicebridge.models.telephony_events import CallClosed
from voicebridge.services.telephony import TelephonySource


class FakeSource(TelephonySource):
    """Telephony source recording what a session sends.

    With close_on_hangup the call closes right after a hangup verb goes out, like
    the platform does.
    """

    def __init__(self, call_sid: str = "call-1", caller: Optional[str] = "+441234567890", close_on_hangup: bool = False):
        super().__init__(call_sid, caller)
        self.sent: List[List[Dict[str, Any]]] = []
        self.replies: List[List[Dict[str, Any]]] = []
        self.close_on_hangup = close_on_hangup

    async def send(self) -> None:
        verbs = self.take_verbs()
        self.sent.append(verbs)
        self._maybe_close(verbs)

    async def reply(self) -> None:
        verbs = self.take_verbs()
        self.replies.append(verbs)
        self._maybe_close(verbs)

    def _maybe_close(self, verbs):
        if self.close_on_hangup and any(verb["verb"] == "hangup" for verb in verbs):
            asyncio.get_running_loop().call_soon(self.emit, CallClosed(code=1000, reason="hangup"))

    @property
    def last_sent(self) -> List[Dict[str, Any]]:
        return self.sent[-1] if self.sent else []


class FakeLlm(Llm):
    """Adapter answering from a script of RawCompletions or exceptions."""

    supports_functions = True
    description = "Scripted model"

    def __init__(self, user="call-1", prompt="Book a flight to Rome", functions=None, options=None, model=None, script=None):
        super().__init__(user, prompt, functions=functions, options=options, model=model)
        self.script = list(script or [])
        self.requests = []

    async def _next(self, kind, argument=None):
        self.requests.append((kind, argument))
        if not self.script:
            return RawCompletion(text="Anything else?")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def raw_initial(self):
        return await self._next("initial")

    async def raw_completion(self, text):
        return await self._next("completion", text)

    async def raw_call_result(self, results):
        return await self._next("call_result", results)

    def requested(self, kind):
        return [argument for request, argument in self.requests if request == kind]


async def _wait_until(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def fake_source():
    return FakeSource


@pytest.fixture
def fake_llm():
    return FakeLlm


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield
