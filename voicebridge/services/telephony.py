"""
Telephony event sources for call sessions.

TelephonySource is the interface a call session drives: it queues call-control
verbs (say, gather, pause, hangup...) and flushes them with ``send`` or, in answer
to the last hook, with ``reply``. Incoming platform activity is delivered to the
single attached listener as typed events.

JambonzSession implements the interface over one websocket connection of the
jambonz websocket API, where each call gets its own connection.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from fastapi import WebSocket

from voicebridge.config.constants import (
    DEFAULT_STT_LANGUAGE,
    DEFAULT_STT_VENDOR,
    GATHER_TIMEOUT,
    LOGGER_NAME,
    MESSAGE_TYPE_ACK,
    MESSAGE_TYPE_CALL_STATUS,
    MESSAGE_TYPE_COMMAND,
    MESSAGE_TYPE_ERROR,
    MESSAGE_TYPE_SESSION_RECONNECT,
    MESSAGE_TYPE_VERB_HOOK,
    MESSAGE_TYPE_VERB_STATUS,
    PROMPT_HOOK,
    RECORD_HOOK,
)
from voicebridge.models.telephony_events import (
    CallClosed,
    OtherPrompt,
    RecordingEvent,
    TelephonyEvent,
    TelephonyMessage,
    TransportFailure,
    VerbStatus,
    prompt_event,
)

logger = logging.getLogger(LOGGER_NAME)

EventListener = Callable[[TelephonyEvent], None]


class TelephonySource(ABC):
    """
    Call-control interface consumed by a call session.

    Verb methods queue a verb and return the source so calls can be chained:

        source.say(text="Goodbye").hangup()
        await source.send()
    """

    def __init__(self, call_sid: str, caller: Optional[str] = None):
        self.call_sid = call_sid
        self.caller = caller
        self.verbs: List[Dict[str, Any]] = []
        self._listener: Optional[EventListener] = None

    def attach(self, listener: EventListener) -> None:
        """Register the listener that receives every event of this call."""
        self._listener = listener

    def emit(self, event: TelephonyEvent) -> None:
        if self._listener is None:
            logger.warning(f"Dropping {type(event).__name__} for call {self.call_sid}: no listener attached")
            return
        self._listener(event)

    def config(self, notify_events: bool = True) -> "TelephonySource":
        self.verbs.append({"verb": "config", "notifyEvents": notify_events})
        return self

    def listen(self, url: str) -> "TelephonySource":
        self.verbs.append({"verb": "listen", "url": url})
        return self

    def say(
        self,
        text: str,
        synthesizer: Optional[Dict[str, Any]] = None,
        id: Optional[str] = None,
    ) -> "TelephonySource":
        verb = {"verb": "say", "text": text}
        if synthesizer:
            verb["synthesizer"] = synthesizer
        if id:
            verb["id"] = id
        self.verbs.append(verb)
        return self

    def gather(
        self,
        say: Optional[Dict[str, Any]] = None,
        timeout: int = GATHER_TIMEOUT,
        recognizer: Optional[Dict[str, Any]] = None,
    ) -> "TelephonySource":
        verb = {
            "verb": "gather",
            "input": ["speech"],
            "actionHook": PROMPT_HOOK,
            "listenDuringPrompt": True,
            "timeout": timeout,
        }
        if say:
            verb["say"] = say
        if recognizer:
            verb["recognizer"] = recognizer
        self.verbs.append(verb)
        return self

    def pause(self, length: float) -> "TelephonySource":
        self.verbs.append({"verb": "pause", "length": length})
        return self

    def hangup(self) -> "TelephonySource":
        self.verbs.append({"verb": "hangup"})
        return self

    def take_verbs(self) -> List[Dict[str, Any]]:
        verbs, self.verbs = self.verbs, []
        return verbs

    @abstractmethod
    async def send(self) -> None:
        """Flush queued verbs, replacing whatever the platform is currently executing."""

    @abstractmethod
    async def reply(self) -> None:
        """Acknowledge the last hook, with any queued verbs as the response."""


class JambonzSession(TelephonySource):
    """Call session over the jambonz websocket API."""

    def __init__(self, websocket: WebSocket, message: TelephonyMessage):
        """
        Create a session from the session:new message that opened the connection.

        Args:
            websocket: Accepted websocket carrying this call
            message: The session:new message
        """
        details = message.data
        super().__init__(
            call_sid=message.call_sid or details.get("call_sid"),
            caller=details.get("from"),
        )
        self.websocket = websocket
        self.details = details
        # The first send acknowledges session:new, later ones are redirects
        self._session_msgid = message.msgid
        self._hook_msgid: Optional[str] = None

    async def send(self) -> None:
        verbs = self.take_verbs()
        if self._session_msgid:
            message = {"type": MESSAGE_TYPE_ACK, "msgid": self._session_msgid, "data": verbs}
            self._session_msgid = None
        else:
            message = {
                "type": MESSAGE_TYPE_COMMAND,
                "command": "redirect",
                "queueCommand": False,
                "data": verbs,
            }
        await self._transmit(message)

    async def reply(self) -> None:
        msgid, self._hook_msgid = self._hook_msgid, None
        if msgid is None:
            if self.verbs:
                await self.send()
            return
        await self._transmit({"type": MESSAGE_TYPE_ACK, "msgid": msgid, "data": self.take_verbs()})

    async def _transmit(self, message: Dict[str, Any]) -> None:
        logger.debug(f"Sending {message['type']} to call {self.call_sid}: {message.get('data')}")
        await self.websocket.send_text(json.dumps(message))

    def handle_message(self, raw: Dict[str, Any]) -> None:
        """
        Translate a platform message into events for the listener.

        Raises:
            pydantic.ValidationError: If the message or its hook payload is malformed
        """
        message = TelephonyMessage(**raw)

        if message.type == MESSAGE_TYPE_VERB_HOOK:
            self._hook_msgid = message.msgid
            if message.hook == PROMPT_HOOK:
                self.emit(prompt_event(message.data))
            elif message.hook == RECORD_HOOK:
                self.emit(RecordingEvent(data=message.data))
            else:
                logger.warning(f"Unexpected hook {message.hook} for call {self.call_sid}")
                self.emit(OtherPrompt(reason=f"hook:{message.hook}"))

        elif message.type == MESSAGE_TYPE_VERB_STATUS:
            self.emit(VerbStatus(id=message.data.get("id"), event=message.data.get("event")))

        elif message.type == MESSAGE_TYPE_CALL_STATUS:
            logger.info(f"Call {self.call_sid} status: {message.data.get('call_status')}")

        elif message.type == MESSAGE_TYPE_ERROR:
            logger.error(f"Telephony platform reported an error for call {self.call_sid}: {message.data}")

        elif message.type == MESSAGE_TYPE_SESSION_RECONNECT:
            logger.info(f"Call {self.call_sid} reconnected")

        else:
            logger.warning(f"Unknown telephony message type {message.type} for call {self.call_sid}")

    def handle_close(self, code: Optional[int] = None, reason: Optional[str] = None) -> None:
        self.emit(CallClosed(code=code, reason=reason))

    def handle_transport_error(self, error: Exception) -> None:
        self.emit(TransportFailure(message=str(error)))


def recognizer_options(stt: Optional[Dict[str, Any]], hints: List[str]) -> Dict[str, Any]:
    """Build gather recognizer options from STT options and vocabulary hints."""
    recognizer = {"vendor": DEFAULT_STT_VENDOR, "language": DEFAULT_STT_LANGUAGE, **(stt or {})}
    if hints:
        recognizer["hints"] = hints
    return recognizer
