"""
Conversation core of voicebridge.

Key components:
- CallSession: Per-call state machine bridging one telephony call and one LLM
  adapter, including the function call round trip through the progress channel.
- Agent: A named voice endpoint that spawns a CallSession for every inbound call
  and tracks the live ones.
- AgentRegistry: The set of live agents, owned by the application and handed to
  the websocket manager and the admin API.
- CorrelationRegistry: Futures keyed by verb id, resolved when the telephony
  platform reports a spoken prompt as finished.

Usage examples:
```python
from voicebridge.bot import AgentRegistry

registry = AgentRegistry()
agent = registry.create("gpt35", prompt="You are a helpful receptionist...")

# For every call arriving on agent.path
await agent.handle_call(telephony_source)

# Shutdown: hangs up every live call
await registry.clean()
```
"""

from voicebridge.bot.agent import Agent
from voicebridge.bot.registry import AgentRegistry
from voicebridge.bot.session import CallSession, SessionState
from voicebridge.bot.waiters import CorrelationRegistry

__all__ = ["Agent", "AgentRegistry", "CallSession", "CorrelationRegistry", "SessionState"]
