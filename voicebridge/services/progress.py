"""
Progress channel for an agent.

Every conversation event a call session emits goes through the agent's
ProgressChannel. Events are written, in order, to the live progress websocket
when one is attached, and POSTed best-effort to the agent's callback URL. Failed
callbacks use up a retry budget shared by all sessions of the agent; once it is
exhausted callbacks stop for good while the live stream carries on.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Protocol, Set

import requests

from voicebridge.config.constants import CALLBACK_RETRIES, LOGGER_NAME
from voicebridge.exceptions import DeliveryError

logger = logging.getLogger(LOGGER_NAME)


class LiveStream(Protocol):
    """Anything progress events can be written to, e.g. a FastAPI WebSocket."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ProgressChannel:
    """
    Fan-out sink for progress events.

    ``send`` never blocks and never raises. Live stream writes happen on a single
    writer task so they keep the order of ``send`` calls. Callback deliveries run
    concurrently and may complete in any order.
    """

    def __init__(
        self,
        name: str = "",
        callback_url: Optional[str] = None,
        callback_retries: int = CALLBACK_RETRIES,
    ):
        self.name = name
        self.callback_url = callback_url
        self.callback_tries = callback_retries
        self.stream: Optional[LiveStream] = None
        self._queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None
        self._callbacks: Set[asyncio.Task] = set()
        self._disabled_logged = False

    @property
    def callback_enabled(self) -> bool:
        return bool(self.callback_url) and self.callback_tries > 0

    @property
    def attached(self) -> bool:
        """True when someone can receive events and answer function calls."""
        return self.stream is not None or self.callback_enabled

    async def attach(self, stream: LiveStream) -> None:
        """Attach a live stream and greet it."""
        self.stream = stream
        logger.info(f"Progress stream attached for agent {self.name}")
        self.send({"hello": True}, callback=False)

    def detach(self, stream: Optional[LiveStream] = None) -> None:
        if stream is None or stream is self.stream:
            self.stream = None
            logger.info(f"Progress stream detached for agent {self.name}")

    def send(self, message: Dict[str, Any], callback: bool = True) -> None:
        """
        Deliver a progress event.

        Args:
            message: JSON-serialisable event
            callback: Whether the event should also go to the callback URL
        """
        if self.stream is not None:
            self._enqueue(message)
        if callback and self.callback_enabled:
            self._spawn_callback(message)

    async def flush(self) -> None:
        """Wait until queued writes and in-flight callbacks have finished."""
        await self._queue.join()
        if self._callbacks:
            await asyncio.gather(*list(self._callbacks), return_exceptions=True)

    async def close(self) -> None:
        """Close the live stream and stop the writer."""
        stream, self.stream = self.stream, None
        if stream is not None:
            try:
                await stream.close()
            except Exception as e:
                logger.warning(f"Error closing progress stream for agent {self.name}: {e}")
        if self._writer is not None:
            self._writer.cancel()
            self._writer = None

    def _enqueue(self, message: Dict[str, Any]) -> None:
        try:
            if self._writer is None or self._writer.done():
                self._writer = asyncio.get_running_loop().create_task(self._write_loop())
        except RuntimeError as e:
            logger.error(f"Cannot write progress for agent {self.name} outside an event loop: {e}")
            return
        self._queue.put_nowait(message)

    async def _write_loop(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                if self.stream is not None:
                    await self.stream.send_text(json.dumps(message, default=str))
            except Exception as e:
                logger.warning(f"Progress stream write failed for agent {self.name}: {e}")
            finally:
                self._queue.task_done()

    def _spawn_callback(self, message: Dict[str, Any]) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._deliver_callback(message))
        except RuntimeError as e:
            logger.error(f"Cannot deliver progress callback for agent {self.name} outside an event loop: {e}")
            return
        self._callbacks.add(task)
        task.add_done_callback(self._callbacks.discard)

    async def _deliver_callback(self, message: Dict[str, Any]) -> None:
        try:
            response = await asyncio.to_thread(requests.post, self.callback_url, json=message)
            if response.status_code >= 400:
                raise DeliveryError(f"callback returned {response.status_code}")
        except Exception as e:
            self.callback_tries -= 1
            logger.info(
                f"Callback to {self.callback_url} failed for agent {self.name} "
                f"({self.callback_tries} tries left): {e}"
            )
            if self.callback_tries <= 0 and not self._disabled_logged:
                self._disabled_logged = True
                logger.error(f"Callback to {self.callback_url} disabled for agent {self.name}")
