"""
Pydantic models for the telephony side of a call.

TelephonyMessage validates the raw frames the telephony platform sends over the
agent websocket (jambonz websocket API). Each frame the session cares about is
translated into one of the typed event variants below, which the call session
dispatches on by type.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from voicebridge.config.constants import REASON_SPEECH_DETECTED, REASON_TIMEOUT


class TelephonyMessage(BaseModel):
    """Raw frame received from the telephony platform."""

    type: str = Field(..., description="Message type, e.g. session:new or verb:hook")
    msgid: Optional[str] = Field(None, description="Identifier to use when acknowledging")
    call_sid: Optional[str] = Field(None, description="Call identifier")
    hook: Optional[str] = Field(None, description="Hook path for verb:hook messages")
    data: Dict[str, Any] = Field(default_factory=dict)


class SpeechAlternative(BaseModel):
    transcript: str = ""
    confidence: Optional[float] = None


class SpeechResult(BaseModel):
    alternatives: List[SpeechAlternative] = Field(default_factory=list)


class PromptHookData(BaseModel):
    """Payload of a gather action hook."""

    reason: str
    speech: Optional[SpeechResult] = None


# Typed events
class TelephonyEvent(BaseModel):
    """Base class for events delivered to a call session."""


class SpeechDetected(TelephonyEvent):
    transcript: str
    confidence: Optional[float] = None


class PromptTimeout(TelephonyEvent):
    pass


class OtherPrompt(TelephonyEvent):
    reason: str


class RecordingEvent(TelephonyEvent):
    data: Dict[str, Any] = Field(default_factory=dict)


class VerbStatus(TelephonyEvent):
    id: Optional[str] = None
    event: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.event == "finished"


class CallClosed(TelephonyEvent):
    code: Optional[int] = None
    reason: Optional[str] = None


class TransportFailure(TelephonyEvent):
    message: str


AnyTelephonyEvent = Union[
    SpeechDetected,
    PromptTimeout,
    OtherPrompt,
    RecordingEvent,
    VerbStatus,
    CallClosed,
    TransportFailure,
]


def prompt_event(data: Dict[str, Any]) -> TelephonyEvent:
    """
    Translate a gather action hook payload into a typed event.

    Raises:
        pydantic.ValidationError: If the payload has no reason
    """
    hook = PromptHookData(**data)
    if hook.reason == REASON_SPEECH_DETECTED and hook.speech and hook.speech.alternatives:
        top = hook.speech.alternatives[0]
        return SpeechDetected(transcript=top.transcript, confidence=top.confidence)
    if hook.reason == REASON_TIMEOUT:
        return PromptTimeout()
    return OtherPrompt(reason=hook.reason)
