import os
import sys
from datetime import datetime
from unittest.mock import MagicMock

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from hearken.turn_taking import OperatingMode, StepAction, TurnSettings, TurnState, TurnTaker, step

PROMPT = "You are a test assistant."


@pytest.fixture
def settings():
    return TurnSettings(
        wake_word="Computer",
        stop_words=["stop", "cancel"],
        system_prompt=PROMPT,
        continuation_chunks=3,
        idle_chunks=20,
        active_hours=(7, 23),
        off_hours_sleep=60,
    )


def _listening(settings, buffer=""):
    state = TurnState(history=[{"role": "system", "content": PROMPT}])
    step(state, settings, "computer", False)
    state.buffer = buffer
    return state


class FakeDialogue:
    def __init__(self, reply="sure"):
        self.reply = reply
        self.calls = []

    def ask(self, query, history, tools, execute_tool):
        self.calls.append(query)
        history.append({"role": "user", "content": query})
        history.append({"role": "assistant", "content": self.reply})
        return self.reply


class ScriptedRecognizer:
    """Answers each accept() from a list of (text, is_final) results."""

    def __init__(self, script):
        self.script = script
        self._current = ("", False)

    def accept(self, chunk):
        self._current = self.script.pop(0) if self.script else ("", False)
        return self._current[1]

    def final_result(self):
        return self._current[0]

    def partial_result(self):
        return self._current[0]


def _taker(settings, dialogue=None, script=None, hour=12):
    tools = MagicMock()
    tools.schema.return_value = []
    captures = []

    def capture_factory():
        capture = MagicMock()
        capture.read.return_value = b"\x00\x00" * 1600
        captures.append(capture)
        return capture

    recognizers = []
    shared_script = list(script or [])

    def recognizer_factory():
        rec = ScriptedRecognizer(shared_script)
        recognizers.append(rec)
        return rec

    taker = TurnTaker(
        settings,
        dialogue or FakeDialogue(),
        tools,
        MagicMock(),
        recognizer_factory=recognizer_factory,
        capture_factory=capture_factory,
        clock=lambda: datetime(2026, 10, 19, hour, 30),
        sleep=MagicMock(),
    )
    return taker, captures, recognizers


def test_settings_lowercase_wake_and_stop_words(settings):
    assert settings.wake_word == "computer"
    assert settings.stop_words == ["stop", "cancel"]


def test_capitalized_recognizer_text_still_matches(settings):
    state = TurnState(history=[{"role": "system", "content": PROMPT}])
    assert step(state, settings, "Computer What Time", True) is StepAction.ACTIVATED
    assert state.buffer == "what time"

    assert step(state, settings, "please STOP", False) is StepAction.STOPPED
    assert state.mode is OperatingMode.IDLE


def test_idle_ignores_text_without_wake_word(settings):
    state = TurnState()
    assert step(state, settings, "what time is it", True) is StepAction.NONE
    assert state.mode is OperatingMode.IDLE
    assert state.buffer == ""


def test_final_wake_result_seeds_buffer(settings):
    state = TurnState(history=[{"role": "user", "content": "stale"}], recognizer=object())

    assert step(state, settings, "computer what time is it", True) is StepAction.ACTIVATED

    assert state.mode is OperatingMode.LISTENING_QUERY
    assert state.buffer == "what time is it"
    assert state.silence == 0
    assert state.history == [{"role": "system", "content": PROMPT}]
    assert state.recognizer is None


def test_partial_wake_result_starts_empty(settings):
    state = TurnState()
    assert step(state, settings, "hey computer what", False) is StepAction.ACTIVATED
    assert state.mode is OperatingMode.LISTENING_QUERY
    assert state.buffer == ""


def test_final_fragments_are_space_joined_in_order(settings):
    state = _listening(settings)
    for fragment in ["what is", "the weather", "in paris"]:
        assert step(state, settings, fragment, True) is StepAction.NONE
    assert state.buffer == "what is the weather in paris"
    assert state.silence == 0


def test_partial_speech_resets_silence(settings):
    state = _listening(settings, buffer="turn on")
    step(state, settings, "", False)
    step(state, settings, "", False)
    assert state.silence == 2
    assert step(state, settings, "the lig", False) is StepAction.NONE
    assert state.silence == 0
    assert state.buffer == "turn on"


@pytest.mark.parametrize("text,is_final", [("please stop", False), ("cancel that", True)])
def test_stop_word_aborts_with_pending_text(settings, text, is_final):
    state = _listening(settings, buffer="set a timer for")
    state.history.append({"role": "user", "content": "earlier"})
    state.recognizer = object()

    assert step(state, settings, text, is_final) is StepAction.STOPPED

    assert state.mode is OperatingMode.IDLE
    assert state.buffer == ""
    assert state.silence == 0
    assert state.history == [{"role": "system", "content": PROMPT}]
    assert state.recognizer is None


def test_empty_final_after_text_reaches_grace_immediately(settings):
    state = _listening(settings, buffer="hello there")
    assert step(state, settings, "", True) is StepAction.DISPATCH
    assert state.silence == settings.continuation_chunks


def test_empty_final_without_text_counts_as_plain_silence(settings):
    state = _listening(settings)
    assert step(state, settings, "", True) is StepAction.NONE
    assert state.silence == 1


def test_idle_timeout_returns_to_idle(settings):
    state = _listening(settings)
    for _ in range(settings.idle_chunks - 1):
        assert step(state, settings, "", False) is StepAction.NONE
    assert state.mode is OperatingMode.LISTENING_QUERY

    assert step(state, settings, "", False) is StepAction.IDLE_TIMEOUT
    assert state.mode is OperatingMode.IDLE
    assert state.history == [{"role": "system", "content": PROMPT}]


def test_grace_threshold_dispatches_once_with_full_text(settings):
    dialogue = FakeDialogue(reply="It is sunny.")
    taker, _, _ = _taker(settings, dialogue)
    taker.process("computer", False)
    taker.process("what is the weather", True)
    taker.process("in paris", True)

    actions = [taker.process("", False) for _ in range(3)]

    assert actions == [StepAction.NONE, StepAction.NONE, StepAction.DISPATCH]
    assert dialogue.calls == ["what is the weather in paris"]
    taker.speaker.speak.assert_called_once_with("It is sunny.")
    assert taker.state.buffer == ""
    assert taker.state.silence == 0
    # Follow-up questions don't need the wake word again
    assert taker.state.mode is OperatingMode.LISTENING_QUERY
    assert [m["role"] for m in taker.state.history] == ["system", "user", "assistant"]

    for _ in range(5):
        taker.process("", False)
    assert len(dialogue.calls) == 1


def test_idle_timeout_never_calls_dialogue(settings):
    dialogue = FakeDialogue()
    taker, _, _ = _taker(settings, dialogue)
    taker.process("computer", False)

    actions = [taker.process("", False) for _ in range(settings.idle_chunks)]

    assert actions[-1] is StepAction.IDLE_TIMEOUT
    assert dialogue.calls == []
    taker.speaker.speak.assert_not_called()


def test_speaker_failure_does_not_stop_the_loop(settings):
    taker, _, _ = _taker(settings)
    taker.speaker.speak.side_effect = RuntimeError("no output device")
    taker.process("computer turn it up", True)

    assert taker.process("", True) is StepAction.DISPATCH
    assert taker.state.buffer == ""


def test_cycle_recreates_handles_after_dispatch(settings):
    script = [
        ("computer", False),
        ("what time is it", True),
        ("", True),
        ("", False),
    ]
    taker, captures, recognizers = _taker(settings, script=script)

    assert taker.cycle() is StepAction.ACTIVATED
    # Activation discards the recognizer used to spot the wake word
    assert taker.state.recognizer is None
    assert taker.cycle() is StepAction.NONE
    assert taker.cycle() is StepAction.DISPATCH

    # Microphone closed before speaking, recognizer dropped after
    captures[0].close.assert_called_once()
    assert taker.state.capture is None
    assert taker.state.recognizer is None

    taker.cycle()
    assert len(captures) == 2
    assert len(recognizers) == 3
    captures[0].read.assert_called_with(settings.chunk_ms)


def test_outside_active_hours_resets_and_sleeps(settings):
    taker, captures, _ = _taker(settings, hour=12)
    taker.process("computer set a timer", True)
    taker.state.capture = capture = MagicMock()

    taker.clock = lambda: datetime(2026, 10, 19, 3, 0)
    assert taker.cycle() is None

    taker.sleep.assert_called_once_with(60)
    capture.close.assert_called_once()
    assert taker.state.mode is OperatingMode.IDLE
    assert taker.state.buffer == ""
    assert taker.state.history == [{"role": "system", "content": PROMPT}]
    assert captures == []


def test_end_hour_is_exclusive(settings):
    taker, _, _ = _taker(settings, hour=23)
    assert not taker.in_active_hours()
    taker.clock = lambda: datetime(2026, 10, 19, 7, 0)
    assert taker.in_active_hours()


def test_run_stops_when_asked_and_closes_capture(settings):
    taker, captures, _ = _taker(settings, script=[("", False)] * 3)
    remaining = iter([False, False, True])

    taker.run(should_stop=lambda: next(remaining))

    assert len(captures) == 1
    captures[0].close.assert_called_once()
