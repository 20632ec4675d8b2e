"""
Handler for messages external listeners send on an agent's progress websocket.

The only message the conversation core consumes is a function result set:

    {"call_id": "<call sid>", "function_results": [{"id": ..., "name": ..., "result": ...}]}

It is routed to the live session of that call. Malformed frames are logged and
dropped without affecting any session.
"""

import logging

from voicebridge.bot.agent import Agent
from voicebridge.config.constants import LOGGER_NAME
from voicebridge.exceptions import MalformedInboundMessage
from voicebridge.models.progress_schemas import ProgressInboundMessage

logger = logging.getLogger(LOGGER_NAME)


async def handle_progress_message(raw: str, agent: Agent) -> bool:
    """
    Route one progress websocket frame.

    Args:
        raw: Text frame as received
        agent: Agent owning the progress websocket

    Returns:
        True when function results were handed to a waiting session
    """
    try:
        message = ProgressInboundMessage.parse_raw_message(raw)
    except MalformedInboundMessage as e:
        logger.error(f"Malformed progress message for agent {agent.name}: {e}")
        return False

    if message.function_results is None:
        logger.debug(f"Progress message for call {message.call_id} carries no function results")
        return False

    logger.info(
        f"Received {len(message.function_results)} function result(s) for call {message.call_id}"
    )
    return agent.deliver_function_results(message.call_id, message.results_as_dicts())
