"""
Handlers for the voicebridge HTTP and websocket surfaces.

Key components:
- agent_handlers: Create, update, delete and list agents through the AgentRegistry,
  and list the available LLM implementations.
- progress_handlers: Route function results arriving on an agent's progress
  websocket to the live call session waiting for them.

Usage examples:
```python
from voicebridge.handlers.agent_handlers import handle_create_agent
from voicebridge.models.agent_schemas import AgentCreateRequest

request = AgentCreateRequest(agentName="gpt35", prompt="You are a helpful receptionist")
created = await handle_create_agent(request, registry)
# created.path is the telephony websocket path, created.socket the progress one
```
"""
