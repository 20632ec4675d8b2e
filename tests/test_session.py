import asyncio
from unittest.mock import MagicMock, patch

import pytest

from voicebridge.bot.session import CallSession, SessionState
from voicebridge.config.constants import (
    FORCE_CLOSE_GOODBYE,
    FUNCTION_APOLOGY,
    FUNCTION_TIMEOUT_RESULT,
    FUNCTION_UNREACHABLE_RESULT,
    INTERNAL_ERROR_GOODBYE,
    MODEL_APOLOGY,
    TIMEOUT_GOODBYE,
)
from voicebridge.exceptions import ModelError
from voicebridge.llm.base import RawCompletion
from voicebridge.models.telephony_events import (
    CallClosed,
    OtherPrompt,
    PromptTimeout,
    SpeechDetected,
    TransportFailure,
    VerbStatus,
)
from voicebridge.services.progress import ProgressChannel

WEATHER_CALL = [{"id": "c1", "name": "weather", "input": {"city": "Rome"}}]


@pytest.fixture
def progress():
    channel = MagicMock(spec=ProgressChannel)
    channel.attached = True
    return channel


def events(progress):
    return [call.args[0] for call in progress.send.call_args_list]


def with_key(progress, key):
    return [event for event in events(progress) if key in event]


async def start(session, wait_until):
    task = asyncio.create_task(session.run())
    await wait_until(lambda: session.state is SessionState.LISTENING)
    return task


async def hang_up(session, task):
    session.source.emit(CallClosed(code=1000))
    await asyncio.wait_for(task, 1)


@pytest.mark.asyncio
async def test_opening_turn(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    llm = fake_llm(script=[RawCompletion(text="Hello, how can I help?")])
    session = CallSession("/agent/a1", llm, source, progress)

    task = await start(session, wait_until)

    assert source.sent[0] == [
        {"verb": "config", "notifyEvents": True},
        {"verb": "listen", "url": "/agent/a1"},
    ]
    assert source.sent[1] == [
        {"verb": "pause", "length": 0.5},
        {
            "verb": "gather",
            "input": ["speech"],
            "actionHook": "/prompt",
            "listenDuringPrompt": True,
            "timeout": 20,
            "say": {"text": "<speak>Hello, how can I help?</speak>"},
            "recognizer": {"vendor": "google", "language": "en-GB", "hints": ["Book", "flight", "Rome"]},
        },
    ]
    assert events(progress) == [
        {"call": "+441234567890", "call_id": "call-1"},
        {"agent": "Hello, how can I help?", "call_id": "call-1"},
    ]

    await hang_up(session, task)
    assert session.state is SessionState.CLOSED
    assert events(progress)[-1] == {"hangup": True, "call_id": "call-1"}


@pytest.mark.asyncio
async def test_unknown_caller(fake_source, fake_llm, progress, wait_until):
    session = CallSession("/agent/a1", fake_llm(), fake_source(caller=None), progress)

    task = await start(session, wait_until)

    assert events(progress)[0] == {"call": "unknown", "call_id": "call-1"}
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_speech_turn(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    llm = fake_llm(script=[RawCompletion(text="Hi"), RawCompletion(text="A taxi is on its way")])
    session = CallSession("/agent/a1", llm, source, progress)
    task = await start(session, wait_until)

    source.emit(SpeechDetected(transcript="I need a taxi", confidence=0.9))
    await wait_until(lambda: len(source.sent) == 3)

    assert source.replies == [[]]
    assert llm.requested("completion") == ["I need a taxi"]
    assert {"user": "I need a taxi", "call_id": "call-1"} in events(progress)
    assert {"agent": "A taxi is on its way", "call_id": "call-1"} in events(progress)
    gather = source.sent[2][0]
    assert gather["verb"] == "gather"
    assert gather["say"] == {"text": "<speak>A taxi is on its way</speak>"}
    assert session.state is SessionState.LISTENING

    await hang_up(session, task)


@pytest.mark.asyncio
async def test_data_directive_reported(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    llm = fake_llm(script=[RawCompletion(text="Hi"), RawCompletion(text='Booked.@DATA: {"covers": 4}')])
    session = CallSession("/agent/a1", llm, source, progress)
    task = await start(session, wait_until)

    source.emit(SpeechDetected(transcript="Table for four"))
    await wait_until(lambda: len(source.sent) == 3)

    assert {"data": {"covers": 4}, "call_id": "call-1"} in events(progress)
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_hangup_directive_ends_call(fake_source, fake_llm, progress, wait_until):
    source = fake_source(close_on_hangup=True)
    llm = fake_llm(script=[RawCompletion(text="Hi"), RawCompletion(text="Goodbye!@HANGUP")])
    session = CallSession("/agent/a1", llm, source, progress)
    task = await start(session, wait_until)

    source.emit(SpeechDetected(transcript="That's all, thanks"))
    await asyncio.wait_for(task, 1)

    assert source.sent[2] == [{"verb": "say", "text": "<speak>Goodbye!</speak>"}, {"verb": "hangup"}]
    assert session.state is SessionState.CLOSED
    assert events(progress)[-1] == {"hangup": True, "call_id": "call-1"}


@pytest.mark.asyncio
async def test_model_error_apologises_and_keeps_listening(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    llm = fake_llm(script=[RawCompletion(text="Hi"), ModelError("model unavailable")])
    session = CallSession("/agent/a1", llm, source, progress)
    task = await start(session, wait_until)

    source.emit(SpeechDetected(transcript="Hello?"))
    await wait_until(lambda: len(source.sent) == 3)

    assert source.sent[2][0]["say"]["text"] == f"<speak>{MODEL_APOLOGY}</speak>"
    assert session.state is SessionState.LISTENING
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_function_calls_wait_for_one_result_set_each(fake_source, fake_llm, progress, wait_until):
    forecast_call = [{"id": "c2", "name": "forecast", "input": {}}]
    source = fake_source()
    llm = fake_llm(
        script=[
            RawCompletion(text="Hi"),
            RawCompletion(text="Let me check", calls=WEATHER_CALL),
            RawCompletion(text="Nearly there", calls=forecast_call),
            RawCompletion(text="It is sunny"),
        ]
    )
    session = CallSession("/agent/a1", llm, source, progress)
    task = await start(session, wait_until)

    source.emit(SpeechDetected(transcript="What's the weather in Rome?"))
    await wait_until(lambda: session.state is SessionState.AWAITING_FUNCTION_RESULTS)

    interim = source.sent[2][0]
    assert interim["verb"] == "say"
    assert interim["text"] == "<speak>Let me check</speak>"
    assert interim["id"]
    assert {"function_calls": WEATHER_CALL, "call_id": "call-1"} in events(progress)
    assert llm.requested("call_result") == []

    first_results = [{"id": "c1", "name": "weather", "result": "sunny"}]
    assert session.deliver_function_results(first_results) is True
    assert session.deliver_function_results([{"id": "c1", "result": "again"}]) is False
    source.emit(VerbStatus(id=interim["id"], event="finished"))

    await wait_until(lambda: len(with_key(progress, "function_calls")) == 2)
    assert llm.requested("call_result") == [first_results]
    second_interim = source.sent[3][0]
    assert second_interim["text"] == "<speak>Nearly there</speak>"

    second_results = [{"id": "c2", "name": "forecast", "result": "dry all week"}]
    assert session.deliver_function_results(second_results) is True
    source.emit(VerbStatus(id=second_interim["id"], event="finished"))
    await wait_until(lambda: session.state is SessionState.LISTENING)

    assert llm.requested("call_result") == [first_results, second_results]
    assert source.last_sent[0]["say"]["text"] == "<speak>It is sunny</speak>"
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_function_calls_fail_without_progress_channel(fake_source, fake_llm, wait_until):
    source = fake_source()
    llm = fake_llm(
        script=[
            RawCompletion(text="Hi", calls=[{"id": "c1", "name": "lookup", "input": {}}]),
            RawCompletion(text="The booking system is down, sorry"),
        ]
    )
    session = CallSession("/agent/a1", llm, source, progress=None)

    task = await start(session, wait_until)

    assert llm.requested("call_result") == [
        [{"id": "c1", "name": "lookup", "input": {}, "result": FUNCTION_UNREACHABLE_RESULT}]
    ]
    assert source.last_sent[1]["say"]["text"] == "<speak>The booking system is down, sorry</speak>"
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_function_calls_fail_without_listener(fake_source, fake_llm, progress, wait_until):
    progress.attached = False
    llm = fake_llm(script=[RawCompletion(text="Hi", calls=WEATHER_CALL), RawCompletion(text="No luck")])
    session = CallSession("/agent/a1", llm, fake_source(), progress)

    task = await start(session, wait_until)

    assert llm.requested("call_result")[0][0]["result"] == FUNCTION_UNREACHABLE_RESULT
    assert with_key(progress, "function_calls") == []
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_call_result_failure_ends_cycle(fake_source, fake_llm, wait_until):
    source = fake_source()
    llm = fake_llm(
        script=[
            RawCompletion(text="Hi"),
            RawCompletion(text=None, calls=WEATHER_CALL),
            ModelError("rejected"),
        ]
    )
    session = CallSession("/agent/a1", llm, source, progress=None)
    task = await start(session, wait_until)

    source.emit(SpeechDetected(transcript="Weather please"))
    await wait_until(lambda: len(source.sent) == 3)

    assert len(llm.requested("call_result")) == 1
    assert source.sent[2][0]["say"]["text"] == f"<speak>{FUNCTION_APOLOGY}</speak>"
    assert session.state is SessionState.LISTENING
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_function_results_timeout(fake_source, fake_llm, progress, wait_until):
    llm = fake_llm(script=[RawCompletion(text="Hi", calls=WEATHER_CALL), RawCompletion(text="Sorry")])
    session = CallSession("/agent/a1", llm, fake_source(), progress)

    with patch("voicebridge.bot.session.FUNCTION_RESULTS_TIMEOUT", 0.05):
        task = await start(session, wait_until)

    assert llm.requested("call_result") == [[{**WEATHER_CALL[0], "result": FUNCTION_TIMEOUT_RESULT}]]
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_prompt_timeout_says_goodbye(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    session = CallSession("/agent/a1", fake_llm(), source, progress)
    task = await start(session, wait_until)

    source.emit(PromptTimeout())
    await wait_until(lambda: len(source.replies) == 1)

    assert source.replies[0] == [{"verb": "say", "text": TIMEOUT_GOODBYE}, {"verb": "hangup"}]
    assert {"goodbye": TIMEOUT_GOODBYE, "call_id": "call-1"} in events(progress)
    assert session.state is SessionState.CLOSING
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_other_prompt_reason_only_acknowledges(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    llm = fake_llm()
    session = CallSession("/agent/a1", llm, source, progress)
    task = await start(session, wait_until)

    source.emit(OtherPrompt(reason="dtmfDetected"))
    await wait_until(lambda: len(source.replies) == 1)

    assert source.replies[0] == []
    assert llm.requested("completion") == []
    assert session.state is SessionState.LISTENING
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_inject_leaves_turn_state_alone(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    llm = fake_llm(
        script=[
            RawCompletion(text="Hi"),
            RawCompletion(text=None, calls=WEATHER_CALL),
            RawCompletion(text="Found it"),
        ]
    )
    session = CallSession("/agent/a1", llm, source, progress)
    task = await start(session, wait_until)

    await session.inject("Please hold")
    assert session.state is SessionState.LISTENING

    source.emit(SpeechDetected(transcript="Weather please"))
    await wait_until(lambda: session.state is SessionState.AWAITING_FUNCTION_RESULTS)

    await session.inject("Are you still there?")

    assert session.state is SessionState.AWAITING_FUNCTION_RESULTS
    assert {"inject": "Are you still there?", "call_id": "call-1"} in events(progress)
    injected = source.last_sent[0]
    assert injected["verb"] == "gather"
    assert injected["say"] == {"text": "Are you still there?"}

    session.deliver_function_results([{"id": "c1", "name": "weather", "result": "sunny"}])
    await wait_until(lambda: session.state is SessionState.LISTENING)
    assert source.last_sent[0]["say"]["text"] == "<speak>Found it</speak>"
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_no_concurrent_completions(fake_source, fake_llm, progress, wait_until):
    gate = asyncio.Event()
    in_flight = []
    peaks = []

    class GatedLlm(fake_llm):
        async def raw_completion(self, text):
            in_flight.append(text)
            peaks.append(len(in_flight))
            await gate.wait()
            in_flight.remove(text)
            return RawCompletion(text=f"You said {text}")

    source = fake_source()
    session = CallSession("/agent/a1", GatedLlm(), source, progress)
    task = await start(session, wait_until)

    source.emit(SpeechDetected(transcript="one"))
    source.emit(SpeechDetected(transcript="two"))
    await wait_until(lambda: len(peaks) == 1)
    await asyncio.sleep(0.05)
    assert len(peaks) == 1

    gate.set()
    await wait_until(lambda: len(peaks) == 2)
    await wait_until(lambda: len(source.sent) == 4)
    assert max(peaks) == 1
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_close_cancels_outstanding_waits(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    llm = fake_llm(script=[RawCompletion(text="Hi"), RawCompletion(text="Checking", calls=WEATHER_CALL)])
    session = CallSession("/agent/a1", llm, source, progress)
    task = await start(session, wait_until)

    source.emit(SpeechDetected(transcript="Weather please"))
    await wait_until(lambda: session.state is SessionState.AWAITING_FUNCTION_RESULTS)
    assert len(session._acks) == 1

    await hang_up(session, task)

    assert session.state is SessionState.CLOSED
    assert len(session._acks) == 0
    assert session.deliver_function_results([{"id": "c1", "result": "late"}]) is False
    await wait_until(lambda: not session._tasks)
    assert llm.requested("call_result") == []


@pytest.mark.asyncio
async def test_events_after_close_are_ignored(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    llm = fake_llm()
    session = CallSession("/agent/a1", llm, source, progress)
    task = await start(session, wait_until)
    await hang_up(session, task)

    source.emit(SpeechDetected(transcript="hello?"))
    await asyncio.sleep(0.01)

    assert llm.requested("completion") == []
    assert len(with_key(progress, "hangup")) == 1


@pytest.mark.asyncio
async def test_force_close_waits_for_close(fake_source, fake_llm, progress, wait_until):
    source = fake_source(close_on_hangup=True)
    session = CallSession("/agent/a1", fake_llm(), source, progress)
    task = await start(session, wait_until)

    await session.force_close()

    assert session.state is SessionState.CLOSED
    assert source.last_sent == [{"verb": "say", "text": FORCE_CLOSE_GOODBYE}, {"verb": "hangup"}]
    assert {"goodbye": FORCE_CLOSE_GOODBYE, "call_id": "call-1"} in events(progress)
    assert events(progress)[-1] == {"hangup": True, "call_id": "call-1"}
    await asyncio.wait_for(task, 1)


@pytest.mark.asyncio
async def test_force_close_gives_up_waiting(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    session = CallSession("/agent/a1", fake_llm(), source, progress)
    task = await start(session, wait_until)

    with patch("voicebridge.bot.session.FORCE_CLOSE_TIMEOUT", 0.05):
        await session.force_close()

    assert session.state is SessionState.CLOSED
    await asyncio.wait_for(task, 1)

    # Already closed, nothing more is sent
    sent = len(source.sent)
    await session.force_close()
    assert len(source.sent) == sent


@pytest.mark.asyncio
async def test_transport_failure_hangs_up_with_apology(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    session = CallSession("/agent/a1", fake_llm(), source, progress)
    task = await start(session, wait_until)

    source.emit(TransportFailure(message="socket reset"))
    await wait_until(lambda: session.state is SessionState.CLOSING)
    await wait_until(lambda: len(source.sent) == 3)

    text = INTERNAL_ERROR_GOODBYE.format(error="socket reset")
    assert source.last_sent == [{"verb": "say", "text": text}, {"verb": "hangup"}]
    assert {"goodbye": text, "call_id": "call-1"} in events(progress)
    await hang_up(session, task)


@pytest.mark.asyncio
async def test_options_regenerate_speech_settings(fake_source, fake_llm, progress, wait_until):
    source = fake_source()
    llm = fake_llm()
    session = CallSession("/agent/a1", llm, source, progress, options={"temperature": 0.3})
    assert session.say_options == {}
    assert llm.options == {"temperature": 0.3}

    session.options = {
        "tts": {"voice": "en-GB-Wavenet-A"},
        "stt": {"vendor": "deepgram", "language": "en-US"},
    }

    assert session.say_options == {"synthesizer": {"vendor": "google", "voice": "en-GB-Wavenet-A"}}
    assert llm.options is session.options

    task = await start(session, wait_until)
    gather = source.sent[1][1]
    assert gather["say"]["synthesizer"] == {"vendor": "google", "voice": "en-GB-Wavenet-A"}
    assert gather["recognizer"]["vendor"] == "deepgram"
    assert gather["recognizer"]["language"] == "en-US"
    await hang_up(session, task)


def test_prompt_goes_to_adapter(fake_source, fake_llm):
    llm = fake_llm(prompt="Book a flight to Rome")
    session = CallSession("/agent/a1", llm, fake_source())

    session.prompt = "Sell tickets to Milan"

    assert llm.prompt == "Sell tickets to Milan"
    assert session.prompt == "Sell tickets to Milan"
    assert llm.voice_hints == ["Book", "flight", "Rome"]
