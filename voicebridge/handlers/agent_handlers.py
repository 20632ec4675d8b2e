"""
Handlers for the administrative agent API.

Each handler takes a validated request model and the AgentRegistry and returns a
response model. Errors are left to the route, which maps them to HTTP statuses.
"""

import logging
from typing import List

from voicebridge.bot.registry import AgentRegistry
from voicebridge.config.constants import LOGGER_NAME
from voicebridge.llm import list_implementations
from voicebridge.models.agent_schemas import (
    AgentCreatedResponse,
    AgentCreateRequest,
    AgentSummary,
    AgentUpdateRequest,
    ImplementationSummary,
)

logger = logging.getLogger(LOGGER_NAME)


async def handle_create_agent(
    request: AgentCreateRequest,
    registry: AgentRegistry,
) -> AgentCreatedResponse:
    """
    Create an agent running the requested implementation.

    Args:
        request: Implementation name, prompt, options, function schemas, callback URL and model override
        registry: Registry the new agent is added to

    Returns:
        The agent id with its telephony path and progress socket path

    Raises:
        ValueError: If the implementation is unknown
        UnsupportedCapability: If functions were given for an implementation that cannot call them
    """
    agent = registry.create(
        implementation=request.agentName,
        prompt=request.prompt,
        options=request.options,
        functions=request.functions,
        callback_url=request.callbackUrl,
        model=request.model,
    )
    logger.info(f"Created agent {agent.name} on {agent.path}")
    return AgentCreatedResponse(id=agent.name, path=agent.path, socket=agent.socket_path)


async def handle_update_agent(
    name: str,
    request: AgentUpdateRequest,
    registry: AgentRegistry,
) -> AgentSummary:
    """
    Update the prompt and/or merge options into a live agent.

    Raises:
        KeyError: If the agent does not exist
    """
    agent = registry.update(name, prompt=request.prompt, options=request.options)
    return AgentSummary(**agent.summary())


async def handle_delete_agent(name: str, registry: AgentRegistry) -> None:
    """
    Raises:
        KeyError: If the agent does not exist
    """
    await registry.destroy(name)
    logger.info(f"Deleted agent {name}")


async def handle_list_agents(registry: AgentRegistry) -> List[AgentSummary]:
    return [AgentSummary(**agent.summary()) for agent in registry.list()]


async def handle_list_implementations() -> List[ImplementationSummary]:
    return [ImplementationSummary(**implementation) for implementation in list_implementations()]
