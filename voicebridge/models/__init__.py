"""
Models module for the data structures exchanged by voicebridge components.

Key components:
- completion: Decoded model turns (Completion) and the directives found in raw
  model output (DirectiveMap).
- telephony_events: Frames from the telephony platform and the typed events a call
  session dispatches on.
- progress_schemas: Function calls and results carried over the progress channel.
- agent_schemas: Request and response bodies of the admin API.
- openai_schemas: Chat completions request and response structures.

Usage examples:
```python
from voicebridge.models.telephony_events import TelephonyMessage, prompt_event

message = TelephonyMessage(**frame)
event = prompt_event(message.data)  # SpeechDetected, PromptTimeout or OtherPrompt
```
"""

from voicebridge.models.agent_schemas import (
    AgentCreatedResponse,
    AgentCreateRequest,
    AgentSummary,
    AgentUpdateRequest,
    ImplementationSummary,
)
from voicebridge.models.completion import Completion, Directive, DirectiveKind, DirectiveMap
from voicebridge.models.progress_schemas import FunctionCall, FunctionResult, ProgressInboundMessage
from voicebridge.models.telephony_events import (
    CallClosed,
    OtherPrompt,
    PromptTimeout,
    RecordingEvent,
    SpeechDetected,
    TelephonyEvent,
    TelephonyMessage,
    TransportFailure,
    VerbStatus,
)
