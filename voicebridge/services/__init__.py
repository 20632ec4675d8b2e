"""
Services module for the transports voicebridge talks over.

Key components:
- telephony: The TelephonySource interface a call session drives, and
  JambonzSession, its implementation over a jambonz websocket API connection.
- progress: ProgressChannel, delivering conversation events to an agent's live
  progress websocket and callback URL.
- progress_client: ProgressClient, a websocket client for external listeners that
  follow an agent's progress stream and answer its function calls.

Usage examples:
```python
from voicebridge.services.progress_client import ProgressClient

async def lookup(call_id, calls):
    return [FunctionResult(id=call.id, name=call.name, result="sunny") for call in calls]

client = ProgressClient("ws://localhost:8000/progress/<agent id>", function_handler=lookup)
if await client.connect():
    await client.listen()
```
"""

# Services module initialization
