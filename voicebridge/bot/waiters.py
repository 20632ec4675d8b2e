"""
Correlation registry for waits keyed by an identifier.

A call session tags spoken prompts with an id and later waits for the telephony
platform to report that verb as finished. The future is registered before the
verb is sent, so a status that arrives early is never missed. Each waiter is
resolved at most once and removed when resolved. When the call ends every
outstanding waiter is cancelled.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from voicebridge.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class CorrelationRegistry:
    """Futures indexed by correlation id."""

    def __init__(self, name: str = ""):
        self.name = name
        self._pending: Dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    def expect(self, key: Optional[str]) -> asyncio.Future:
        """
        Register a waiter.

        Args:
            key: Correlation id; without one the returned future is already resolved

        Returns:
            Future resolved by ``resolve(key, value)``
        """
        future = asyncio.get_running_loop().create_future()
        if key is None:
            future.set_result(None)
            return future
        if key in self._pending:
            logger.warning(f"Replacing waiter {key} in {self.name}")
            self._pending[key].cancel()
        self._pending[key] = future
        return future

    def resolve(self, key: Optional[str], value: Any = None) -> bool:
        """Resolve and remove the waiter for key. Returns False when nothing was waiting."""
        if key is None:
            return False
        future = self._pending.pop(key, None)
        if future is None or future.done():
            return False
        future.set_result(value)
        return True

    def discard(self, key: Optional[str]) -> None:
        future = self._pending.pop(key, None) if key is not None else None
        if future is not None and not future.done():
            future.cancel()

    def cancel_all(self) -> int:
        """Cancel every outstanding waiter and return how many there were."""
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.cancel()
        if pending:
            logger.debug(f"Cancelled {len(pending)} waiter(s) in {self.name}")
        return len(pending)
