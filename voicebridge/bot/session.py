"""
Per-call conversation state machine.

A CallSession bridges one telephony call and one language model adapter. It
turns caller speech into completions, speaks the model's replies, and runs the
function call round trip through the agent's progress channel:

    INIT -> LISTENING -> THINKING -> (AWAITING_FUNCTION_RESULTS <-> THINKING)*
         -> RESPONDING -> LISTENING | CLOSING -> CLOSED

Model turns are serialised by a per-session lock, so a session never has two
completions in flight. Everything else the telephony source reports is handled
by ``dispatch`` as it arrives.
"""

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from voicebridge.bot.waiters import CorrelationRegistry
from voicebridge.config.constants import (
    ACK_TIMEOUT,
    DEFAULT_TTS_VENDOR,
    FORCE_CLOSE_GOODBYE,
    FORCE_CLOSE_TIMEOUT,
    FUNCTION_APOLOGY,
    FUNCTION_RESULTS_TIMEOUT,
    FUNCTION_TIMEOUT_RESULT,
    FUNCTION_UNREACHABLE_RESULT,
    INITIAL_FALLBACK,
    INTERNAL_ERROR_GOODBYE,
    LOGGER_NAME,
    MODEL_APOLOGY,
    OPENING_PAUSE,
    RESPONSE_FALLBACK,
    TIMEOUT_GOODBYE,
)
from voicebridge.exceptions import ModelError, TransportError
from voicebridge.llm.base import Llm
from voicebridge.models.completion import Completion
from voicebridge.models.telephony_events import (
    CallClosed,
    OtherPrompt,
    PromptTimeout,
    RecordingEvent,
    SpeechDetected,
    TelephonyEvent,
    TransportFailure,
    VerbStatus,
)
from voicebridge.services.progress import ProgressChannel
from voicebridge.services.telephony import TelephonySource, recognizer_options

logger = logging.getLogger(LOGGER_NAME)


class SessionState(Enum):
    INIT = "init"
    LISTENING = "listening"
    THINKING = "thinking"
    AWAITING_FUNCTION_RESULTS = "awaiting_function_results"
    RESPONDING = "responding"
    CLOSING = "closing"
    CLOSED = "closed"


def speak(text: str) -> str:
    return f"<speak>{text}</speak>"


def failed_results(calls: List[Dict[str, Any]], reason: str) -> List[Dict[str, Any]]:
    """Uniform failure result for every pending call."""
    return [{**call, "result": reason} for call in calls]


class CallSession:
    """
    Conversation on one call.

    Public surface:
        run(): drive the call until it closes
        dispatch(event): entry point for telephony events
        deliver_function_results(results): answer the pending function calls
        force_close(): say goodbye, hang up and wait for the call to close
        inject(text): speak text and listen again, outside the turn loop
        options / prompt: live settings, propagated to the adapter
    """

    def __init__(
        self,
        path: str,
        llm: Llm,
        source: TelephonySource,
        progress: Optional[ProgressChannel] = None,
        options: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            path: Telephony path of the owning agent, used for the listen verb
            llm: Adapter owned by this session alone
            source: Telephony source of the call
            progress: The agent's progress channel
            options: Combined STT, TTS and model options
        """
        self.path = path
        self.llm = llm
        self.source = source
        self.progress = progress
        self.call_id = source.call_sid
        self.say_options: Dict[str, Any] = {}
        self.options = options

        self._state = SessionState.INIT
        self._acks = CorrelationRegistry(name=f"call {self.call_id}")
        self._function_results: Optional[asyncio.Future] = None
        self._turn_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._closed = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def options(self) -> Dict[str, Any]:
        return self._options

    @options.setter
    def options(self, value: Optional[Dict[str, Any]]) -> None:
        self._options = value or {}
        tts = self._options.get("tts")
        self.say_options = {"synthesizer": {"vendor": DEFAULT_TTS_VENDOR, **tts}} if tts else {}
        self.llm.options = self._options

    @property
    def prompt(self) -> str:
        return self.llm.prompt

    @prompt.setter
    def prompt(self, value: str) -> None:
        self.llm.prompt = value

    async def run(self) -> None:
        """Start the conversation and return once the call has closed."""
        logger.info(f"New incoming call {self.call_id} from {self.source.caller} on {self.path}")
        self._emit({"call": self.source.caller or "unknown"})
        self.source.attach(self.dispatch)
        self._spawn(self._open())
        try:
            await self._closed.wait()
        finally:
            if not self.closed:
                self._on_close(reason="session cancelled")

    def dispatch(self, event: TelephonyEvent) -> None:
        """Route one telephony event. Work that has to wait runs in a task of this session."""
        if self.closed:
            logger.debug(f"Ignoring {type(event).__name__} for closed call {self.call_id}")
            return

        if isinstance(event, SpeechDetected):
            self._spawn(self._on_speech(event))
        elif isinstance(event, PromptTimeout):
            self._spawn(self._goodbye())
        elif isinstance(event, OtherPrompt):
            logger.info(f"Prompt hook reason {event.reason} on call {self.call_id}")
            self._spawn(self.source.reply())
        elif isinstance(event, VerbStatus):
            logger.debug(f"Verb status {event.event} for {event.id} on call {self.call_id}")
            if event.finished:
                self._acks.resolve(event.id, event)
        elif isinstance(event, RecordingEvent):
            logger.info(f"Recording on call {self.call_id}: {event.data}")
        elif isinstance(event, TransportFailure):
            self._spawn(self._on_error(TransportError(event.message)))
        elif isinstance(event, CallClosed):
            self._on_close(event.code, event.reason)
        else:
            logger.warning(f"Unhandled event {type(event).__name__} on call {self.call_id}")

    def deliver_function_results(self, results: List[Dict[str, Any]]) -> bool:
        """
        Resolve the pending function call wait with an externally produced result set.

        Returns:
            False when the session is not waiting for results
        """
        future = self._function_results
        if future is None or future.done():
            logger.warning(f"Unexpected function results for call {self.call_id}, nothing is waiting")
            return False
        future.set_result(results)
        return True

    async def force_close(self) -> None:
        """Say goodbye, hang up and wait for the call to close."""
        if self.closed:
            return
        logger.info(f"Force closing call {self.call_id}")
        self._state = SessionState.CLOSING
        self._emit({"goodbye": FORCE_CLOSE_GOODBYE})
        try:
            self.source.say(text=FORCE_CLOSE_GOODBYE, **self.say_options).hangup()
            await self.source.send()
            await asyncio.wait_for(self._closed.wait(), FORCE_CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Call {self.call_id} did not close within {FORCE_CLOSE_TIMEOUT}s, closing locally")
            self._on_close(reason="force close timed out")
        except Exception as e:
            logger.error(f"Error force closing call {self.call_id}: {e}")
            self._on_close(reason=str(e))
        logger.info(f"Force close of call {self.call_id} done")

    async def inject(self, text: str) -> None:
        """Speak text into the conversation and listen again. The turn state is left alone."""
        logger.debug(f"Injecting phrase into call {self.call_id}: {text}")
        self._emit({"inject": text})
        self._gather(text)
        await self.source.send()

    # Turns

    async def _open(self) -> None:
        async with self._turn_lock:
            self.source.config(notify_events=True).listen(url=self.path)
            await self.source.send()
            self._state = SessionState.THINKING
            completion = await self._complete(self.llm.initial)
            completion = await self._resolve_function_calls(completion)
            await self._respond(completion, opening=True)

    async def _on_speech(self, event: SpeechDetected) -> None:
        async with self._turn_lock:
            if self.closed or self._state is SessionState.CLOSING:
                return
            self._state = SessionState.THINKING
            await self.source.reply()
            self._emit({"user": event.transcript})
            logger.info(f"Call {self.call_id} caller said: {event.transcript!r}")
            completion = await self._complete(self.llm.completion, event.transcript)
            completion = await self._resolve_function_calls(completion, speak_interim=True)
            await self._respond(completion)

    async def _complete(self, request: Callable[..., Awaitable[Completion]], *args) -> Completion:
        try:
            completion = await request(*args)
        except ModelError as e:
            logger.error(f"Model error on call {self.call_id}: {e}")
            return Completion(text=MODEL_APOLOGY)
        self._report(completion)
        return completion

    async def _resolve_function_calls(self, completion: Completion, speak_interim: bool = False) -> Completion:
        """Run function call round trips until the model answers without calls."""
        while completion.calls:
            ack_id = None
            if speak_interim and completion.text:
                ack_id = uuid.uuid4().hex
            # Registered before the say is sent so an early status is not lost
            ack = self._acks.expect(ack_id)
            if ack_id:
                self.source.say(text=speak(completion.text), id=ack_id, **self.say_options)
                await self.source.send()

            results = await self._await_function_results(completion.calls)
            self._state = SessionState.THINKING
            try:
                completion = await self.llm.call_result(results)
                self._report(completion)
            except ModelError as e:
                logger.error(f"Error sending function results on call {self.call_id}: {e}")
                completion = Completion(text=FUNCTION_APOLOGY)

            await self._await_ack(ack, ack_id)
        return completion

    async def _await_function_results(self, calls: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        self._state = SessionState.AWAITING_FUNCTION_RESULTS
        future = asyncio.get_running_loop().create_future()
        self._function_results = future
        if self.progress is not None and self.progress.attached:
            self._emit({"function_calls": calls})
        else:
            logger.warning(f"No progress listener for call {self.call_id}, failing {len(calls)} function call(s)")
            future.set_result(failed_results(calls, FUNCTION_UNREACHABLE_RESULT))
        try:
            return await asyncio.wait_for(future, FUNCTION_RESULTS_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"No function results for call {self.call_id} within {FUNCTION_RESULTS_TIMEOUT}s")
            return failed_results(calls, FUNCTION_TIMEOUT_RESULT)
        finally:
            self._function_results = None

    async def _await_ack(self, ack: asyncio.Future, ack_id: Optional[str]) -> None:
        try:
            await asyncio.wait_for(ack, ACK_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Verb {ack_id} on call {self.call_id} not finished within {ACK_TIMEOUT}s")
            self._acks.discard(ack_id)

    async def _respond(self, completion: Completion, opening: bool = False) -> None:
        if self._state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        self._state = SessionState.RESPONDING
        text = speak(completion.text or (INITIAL_FALLBACK if opening else RESPONSE_FALLBACK))
        if opening:
            self.source.pause(OPENING_PAUSE)
        if completion.hangup:
            self._state = SessionState.CLOSING
            self.source.say(text=text, **self.say_options).hangup()
        else:
            self._state = SessionState.LISTENING
            self._gather(text)
        await self.source.send()

    async def _goodbye(self) -> None:
        self._state = SessionState.CLOSING
        self._emit({"goodbye": TIMEOUT_GOODBYE})
        self.source.say(text=TIMEOUT_GOODBYE, **self.say_options).hangup()
        await self.source.reply()

    def _gather(self, text: str) -> None:
        self.source.gather(
            say={"text": text, **self.say_options},
            recognizer=recognizer_options(self.options.get("stt"), self.llm.voice_hints),
        )

    # Progress

    def _emit(self, message: Dict[str, Any]) -> None:
        if self.progress is not None:
            self.progress.send({**message, "call_id": self.call_id})

    def _report(self, completion: Completion) -> None:
        if completion.text:
            self._emit({"agent": completion.text})
        if completion.data is not None:
            self._emit({"data": completion.data})
        if completion.error:
            self._emit({"error": completion.error})

    # Termination

    async def _on_error(self, error: Exception) -> None:
        logger.error(f"Call {self.call_id} received error: {error}", exc_info=error)
        if self._state in (SessionState.CLOSING, SessionState.CLOSED):
            if isinstance(error, TransportError):
                self._on_close(reason=str(error))
            return
        self._state = SessionState.CLOSING
        text = INTERNAL_ERROR_GOODBYE.format(error=error)
        self._emit({"goodbye": text})
        try:
            self.source.say(text=text, **self.say_options).hangup()
            await self.source.send()
        except Exception as e:
            logger.error(f"Could not hang up call {self.call_id} after error: {e}")
            self._on_close(reason=str(e))

    def _on_close(self, code: Optional[int] = None, reason: Optional[str] = None) -> None:
        if self.closed:
            return
        self._state = SessionState.CLOSED
        self._emit({"hangup": True})
        logger.info(f"Call {self.call_id} closed (code={code}, reason={reason})")

        self._acks.cancel_all()
        if self._function_results is not None and not self._function_results.done():
            self._function_results.cancel()
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._closed.set()

    def _spawn(self, coroutine: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._guard(coroutine))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coroutine: Awaitable[Any]) -> None:
        try:
            await coroutine
        except Exception as e:
            await self._on_error(e)
