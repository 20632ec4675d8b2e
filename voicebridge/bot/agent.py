"""
Agent lifecycle.

An Agent is a named voice endpoint. Calls arriving on ``/agent/{name}`` become
CallSessions, each with its own adapter instance, tracked in ``sessions`` while
the call is live. Conversation events from every session go to the agent's
ProgressChannel, which listeners reach on ``/progress/{name}`` or through the
callback URL.
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from voicebridge.bot.session import CallSession
from voicebridge.config.constants import (
    AGENT_PATH_PREFIX,
    LOGGER_NAME,
    MAX_PARALLEL_CLOSE,
    PROGRESS_PATH_PREFIX,
)
from voicebridge.llm.base import Llm
from voicebridge.services.progress import ProgressChannel
from voicebridge.services.telephony import TelephonySource

logger = logging.getLogger(LOGGER_NAME)

CloseHandler = Callable[[], Awaitable[None]]


async def _ignore_close() -> None:
    return None


class Agent:
    """
    A named conversation entry point owning its live call sessions.

    Attributes:
        name: Unique id, also the last segment of both agent paths
        implementation: Name of the adapter implementation
        sessions: Live sessions keyed by call id
        progress: Progress channel shared by all sessions
        destroyed: Set once destroy() has finished; calls are refused from the moment it starts
    """

    def __init__(
        self,
        implementation: str,
        llm_class: Type[Llm],
        prompt: str,
        options: Optional[Dict[str, Any]] = None,
        functions: Optional[List[Dict[str, Any]]] = None,
        callback_url: Optional[str] = None,
        model: Optional[str] = None,
        name: Optional[str] = None,
        handle_close: Optional[CloseHandler] = None,
    ):
        """
        Create an agent.

        Raises:
            UnsupportedCapability: If functions are given for an implementation without function support
        """
        llm_class.check_functions(functions)
        self.name = name or uuid.uuid4().hex
        self.implementation = implementation
        self.llm_class = llm_class
        self.model = model
        self.functions = functions
        self.callback_url = callback_url
        self.path = f"{AGENT_PATH_PREFIX}/{self.name}"
        self.socket_path = f"{PROGRESS_PATH_PREFIX}/{self.name}"
        self.handle_close = handle_close or _ignore_close
        self.sessions: Dict[str, CallSession] = {}
        self.progress = ProgressChannel(name=self.name, callback_url=callback_url)
        self.destroyed = False
        self._destroying = False
        self._torn_down = asyncio.Event()
        self._prompt = prompt
        self._options = options or {}
        self._idle = asyncio.Event()
        self._idle.set()
        logger.info(f"Creating {implementation} agent {self.name} on {self.path}")

    @property
    def prompt(self) -> str:
        return self._prompt

    @prompt.setter
    def prompt(self, value: str) -> None:
        self._prompt = value
        for session in list(self.sessions.values()):
            session.prompt = value

    @property
    def options(self) -> Dict[str, Any]:
        return self._options

    @options.setter
    def options(self, value: Optional[Dict[str, Any]]) -> None:
        self._options = value or {}
        for session in list(self.sessions.values()):
            session.options = self._options

    def create_llm(self, user: str) -> Llm:
        return self.llm_class(
            user=user,
            prompt=self._prompt,
            functions=self.functions,
            options=self._options,
            model=self.model,
        )

    async def handle_call(self, source: TelephonySource) -> None:
        """Run a session for an inbound call, keeping it registered while the call is live."""
        if self._destroying:
            logger.warning(f"Agent {self.name} is being destroyed, rejecting call {source.call_sid}")
            return
        call_id = source.call_sid
        session = CallSession(
            path=self.path,
            llm=self.create_llm(call_id),
            source=source,
            progress=self.progress,
            options=self._options,
        )
        self.sessions[call_id] = session
        self._idle.clear()
        try:
            await session.run()
        finally:
            self.sessions.pop(call_id, None)
            if not self.sessions:
                self._idle.set()
            logger.info(f"Call {call_id} finished on agent {self.name}, {len(self.sessions)} still live")

    def deliver_function_results(self, call_id: str, results: List[Dict[str, Any]]) -> bool:
        """
        Hand function results from a progress listener to the session of a live call.

        Returns:
            True when the session was waiting for them
        """
        session = self.sessions.get(call_id)
        if session is None:
            logger.warning(f"Function results for unknown call {call_id} on agent {self.name}")
            return False
        return session.deliver_function_results(results)

    async def on_progress_closed(self) -> None:
        logger.info(f"Progress stream closed for agent {self.name}")
        await self.handle_close()

    async def destroy(self) -> None:
        """Force close every live session, then tear down the progress channel."""
        if self._destroying:
            # A second caller waits for the teardown already running
            await self._torn_down.wait()
            return
        self._destroying = True
        # Closing sockets below must not re-enter our owner's destroy
        self.handle_close = _ignore_close

        sessions = list(self.sessions.values())
        logger.info(f"Destroying agent {self.name} with {len(sessions)} live session(s)")
        semaphore = asyncio.Semaphore(MAX_PARALLEL_CLOSE)

        async def close(session: CallSession) -> None:
            async with semaphore:
                await session.force_close()

        results = await asyncio.gather(*(close(session) for session in sessions), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Error force closing a session of agent {self.name}: {result}")

        await self._idle.wait()
        await self.progress.close()
        self.destroyed = True
        self._torn_down.set()
        logger.info(f"Agent {self.name} destroyed")

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.name,
            "implementation": self.implementation,
            "path": self.path,
            "socket": self.socket_path,
            "prompt": self._prompt,
            "options": self._options,
            "sessions": list(self.sessions),
        }
