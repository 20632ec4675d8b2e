"""
Registry of live agents.

The application creates one AgentRegistry and hands it to the websocket manager
and the admin API, which look agents up by name.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from voicebridge.bot.agent import Agent
from voicebridge.config.constants import LOGGER_NAME
from voicebridge.llm import get_implementation

logger = logging.getLogger(LOGGER_NAME)


class AgentRegistry:
    """Owns every live Agent, keyed by agent name."""

    def __init__(self):
        self.agents: Dict[str, Agent] = {}

    def __len__(self) -> int:
        return len(self.agents)

    def __contains__(self, name: str) -> bool:
        return name in self.agents

    def create(
        self,
        implementation: str,
        prompt: str,
        options: Optional[Dict[str, Any]] = None,
        functions: Optional[List[Dict[str, Any]]] = None,
        callback_url: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Agent:
        """
        Create and register an agent.

        Args:
            implementation: Adapter implementation name, e.g. "gpt35"
            prompt: System prompt
            options: Combined model, TTS and STT options
            functions: Function schemas offered to the model
            callback_url: URL progress events are POSTed to

        Raises:
            ValueError: If the implementation is unknown
            UnsupportedCapability: If functions are given to an implementation without function support
        """
        llm_class = get_implementation(implementation)
        agent = Agent(
            implementation=implementation,
            llm_class=llm_class,
            prompt=prompt,
            options=options,
            functions=functions,
            callback_url=callback_url,
            model=model,
        )
        agent.handle_close = lambda: self._on_agent_closed(agent.name)
        self.agents[agent.name] = agent
        logger.info(f"Registered agent {agent.name} ({implementation}), {len(self.agents)} live")
        return agent

    def get(self, name: str) -> Agent:
        """
        Raises:
            KeyError: If no live agent has the name
        """
        return self.agents[name]

    def find(self, name: str) -> Optional[Agent]:
        return self.agents.get(name)

    def list(self) -> List[Agent]:
        return list(self.agents.values())

    def update(
        self,
        name: str,
        prompt: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Agent:
        """
        Change the prompt and merge options into a live agent, propagating to its sessions.

        Raises:
            KeyError: If no live agent has the name
        """
        agent = self.get(name)
        if prompt is not None:
            agent.prompt = prompt
        if options is not None:
            agent.options = {**agent.options, **options}
        logger.info(f"Updated agent {name}")
        return agent

    async def destroy(self, name: str) -> None:
        """
        Destroy a live agent and forget it.

        Raises:
            KeyError: If no live agent has the name
        """
        agent = self.get(name)
        await agent.destroy()
        self.agents.pop(name, None)
        logger.info(f"Removed agent {name}, {len(self.agents)} live")

    async def clean(self) -> None:
        """Destroy every agent, used at shutdown."""
        names = list(self.agents)
        if not names:
            return
        logger.info(f"Destroying {len(names)} agent(s)")
        results = await asyncio.gather(*(self.destroy(name) for name in names), return_exceptions=True)
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error(f"Error destroying agent {name}: {result}")

    async def _on_agent_closed(self, name: str) -> None:
        if name not in self.agents:
            return
        logger.info(f"Progress stream of agent {name} closed, destroying it")
        await self.destroy(name)
