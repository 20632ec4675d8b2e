"""
WebSocket client for an agent's progress stream.

External listeners (a UI, a function call executor) connect to
``ws://host/progress/{agent}`` to follow the conversations of an agent and to
answer the function calls its model makes.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets

from voicebridge.config.constants import LOGGER_NAME
from voicebridge.models.progress_schemas import FunctionCall, FunctionResult

logger = logging.getLogger(LOGGER_NAME)

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]
FunctionHandler = Callable[[str, List[FunctionCall]], Awaitable[List[FunctionResult]]]


class ProgressClient:
    """
    Client for an agent's progress websocket.

    Events are passed to the message handler as decoded dictionaries. If a
    function handler is given, ``function_calls`` events are answered with its
    results automatically.
    """

    def __init__(self, url: str, function_handler: Optional[FunctionHandler] = None):
        """
        Initialize the progress client.

        Args:
            url: The progress websocket URL, as returned in the agent's ``socket`` path
            function_handler: Coroutine resolving the calls of one call id into results
        """
        self.url = url
        self.websocket = None
        self.function_handler = function_handler

    async def connect(self) -> bool:
        """
        Establish a connection to the progress websocket.

        Returns:
            True if connection was successful, False otherwise
        """
        try:
            self.websocket = await websockets.connect(self.url)
            logger.info(f"Connected to progress stream at {self.url}")
            return True
        except Exception as e:
            logger.error(f"Failed to connect to progress stream: {e}")
            return False

    async def send_function_results(self, call_id: str, results: List[FunctionResult]) -> None:
        """
        Send function results for a call back to its session.

        Args:
            call_id: Call the results belong to
            results: One result per pending function call
        """
        if not self.websocket:
            logger.error("Cannot send function results: Not connected")
            return

        message = {
            "call_id": call_id,
            "function_results": [result.model_dump() for result in results],
        }
        await self.websocket.send(json.dumps(message))
        logger.info(f"Sent {len(results)} function result(s) for call {call_id}")

    async def close(self) -> None:
        """
        Close the WebSocket connection.
        """
        if self.websocket:
            await self.websocket.close()
            logger.info("Closed progress stream connection")
            self.websocket = None

    async def listen(self, message_handler: Optional[EventHandler] = None) -> None:
        """
        Listen for progress events until the stream closes.

        Args:
            message_handler: Coroutine called with every event
        """
        if not self.websocket:
            logger.error("Cannot listen: Not connected")
            return

        try:
            async for message_data in self.websocket:
                try:
                    message = json.loads(message_data)
                except json.JSONDecodeError as e:
                    logger.error(f"Invalid progress event: {e}")
                    continue

                if message_handler:
                    await message_handler(message)

                if "function_calls" in message and self.function_handler:
                    await self._answer(message)

        except websockets.exceptions.ConnectionClosed:
            logger.info("Progress stream closed by server")
            self.websocket = None
        except Exception as e:
            logger.error(f"Error in progress stream listener: {e}")
            await self.close()

    async def _answer(self, message: Dict[str, Any]) -> None:
        call_id = message.get("call_id")
        calls = [FunctionCall(**call) for call in message["function_calls"]]
        results = await self.function_handler(call_id, calls)
        await self.send_function_results(call_id, results)


# Example usage of the client:
#
# async def lookup(call_id, calls):
#     return [FunctionResult(id=call.id, name=call.name, result="42") for call in calls]
#
# async def main():
#     client = ProgressClient("ws://localhost:8000/progress/<agent id>", function_handler=lookup)
#     if await client.connect():
#         await client.listen(print_event)
#
# if __name__ == "__main__":
#     asyncio.run(main())
