"""
Wake-word activation and utterance endpointing.

The loop polls ~100 ms of audio at a time, feeds it to the recognizer and
passes the resulting text through `step()`, which owns all mode, buffer and
silence-counter transitions. When `step()` reports a finished utterance the
`TurnTaker` hands it to the dialogue loop and speaks the reply with the
microphone closed.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, Tuple

from . import config as cfg
from .dialogue import Message, initial_history
from .error_handler import ErrorSeverity, handle_error
from .logging_utils import setup_logger

logger = setup_logger("hearken.turn_taking")


class OperatingMode(Enum):
    IDLE = "idle"
    LISTENING_QUERY = "listening_query"


class StepAction(Enum):
    NONE = "none"
    ACTIVATED = "activated"
    STOPPED = "stopped"
    DISPATCH = "dispatch"
    IDLE_TIMEOUT = "idle_timeout"


class Recognizer(Protocol):
    def accept(self, chunk: bytes) -> bool: ...
    def final_result(self) -> str: ...
    def partial_result(self) -> str: ...


class AudioCapture(Protocol):
    def read(self, duration_ms: float) -> bytes: ...
    def close(self) -> None: ...


class Speaker(Protocol):
    def speak(self, text: str) -> None: ...


@dataclass
class TurnSettings:
    wake_word: str
    stop_words: List[str] = field(default_factory=list)
    system_prompt: str = ""
    continuation_chunks: int = 3
    idle_chunks: int = 20
    chunk_ms: int = 100
    active_hours: Tuple[int, int] = (0, 24)
    off_hours_sleep: float = 60.0

    def __post_init__(self):
        # Vosk emits lowercase transcripts
        self.wake_word = self.wake_word.strip().lower()
        self.stop_words = [w.strip().lower() for w in self.stop_words if w.strip()]

    @classmethod
    def from_config(cls) -> "TurnSettings":
        return cls(
            wake_word=cfg.get_wake_word(),
            stop_words=cfg.get_stop_words(),
            system_prompt=cfg.get_system_prompt(),
            continuation_chunks=cfg.get_continuation_chunks(),
            idle_chunks=cfg.get_idle_chunks(),
            chunk_ms=cfg.get_chunk_ms(),
            active_hours=cfg.get_active_hours(),
            off_hours_sleep=cfg.get_off_hours_sleep(),
        )


@dataclass
class TurnState:
    mode: OperatingMode = OperatingMode.IDLE
    buffer: str = ""
    silence: int = 0
    history: List[Message] = field(default_factory=list)
    recognizer: Optional[Recognizer] = None
    capture: Optional[AudioCapture] = None

    def reset(self, system_prompt: str) -> None:
        """Back to idle with a fresh conversation; the recognizer is rebuilt next cycle."""
        self.mode = OperatingMode.IDLE
        self.buffer = ""
        self.silence = 0
        self.history = initial_history(system_prompt)
        self.recognizer = None


def step(state: TurnState, settings: TurnSettings, text: str, is_final: bool) -> StepAction:
    """Advance the state machine by one recognizer result."""
    # Wake and stop words are stored lowercase
    lowered = text.lower()
    if state.mode is OperatingMode.IDLE:
        pos = lowered.find(settings.wake_word)
        if pos < 0:
            return StepAction.NONE
        # Partial text may still be revised, so only a final result seeds the query
        remainder = lowered[pos + len(settings.wake_word):].strip() if is_final else ""
        state.mode = OperatingMode.LISTENING_QUERY
        state.buffer = remainder
        state.silence = 0
        state.history = initial_history(settings.system_prompt)
        state.recognizer = None
        return StepAction.ACTIVATED

    if any(w in lowered for w in settings.stop_words):
        state.reset(settings.system_prompt)
        return StepAction.STOPPED

    if is_final and text:
        state.buffer = f"{state.buffer} {text}" if state.buffer else text
        state.silence = 0
    elif is_final and not text and state.buffer:
        # An empty final is the recognizer closing the segment
        state.silence += settings.continuation_chunks
    elif not text:
        state.silence += 1
    else:
        state.silence = 0

    if state.buffer and state.silence >= settings.continuation_chunks:
        return StepAction.DISPATCH

    if not state.buffer and state.silence >= settings.idle_chunks:
        state.mode = OperatingMode.IDLE
        state.history = initial_history(settings.system_prompt)
        state.recognizer = None
        return StepAction.IDLE_TIMEOUT

    return StepAction.NONE


class TurnTaker:
    """Drives audio capture, recognition, dialogue and speech for one listener."""

    def __init__(self, settings: TurnSettings, dialogue: Any, tools: Any, speaker: Speaker,
                 recognizer_factory: Callable[[], Recognizer],
                 capture_factory: Callable[[], AudioCapture],
                 clock: Callable[[], datetime] = datetime.now,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self.dialogue = dialogue
        self.tools = tools
        self.speaker = speaker
        self.recognizer_factory = recognizer_factory
        self.capture_factory = capture_factory
        self.clock = clock
        self.sleep = sleep
        self.state = TurnState(history=initial_history(settings.system_prompt))

    def in_active_hours(self) -> bool:
        start, end = self.settings.active_hours
        return start <= self.clock().hour < end

    def process(self, text: str, is_final: bool) -> StepAction:
        """Apply one recognizer result, running the dialogue when an utterance ends."""
        if text:
            logger.debug(f"{'final' if is_final else 'partial'}: {text}")
        action = step(self.state, self.settings, text, is_final)

        if action is StepAction.ACTIVATED:
            logger.info("[Assistant]: Listening...")
        elif action is StepAction.STOPPED:
            logger.info("[Assistant]: Okay, talk to you later.")
        elif action is StepAction.IDLE_TIMEOUT:
            logger.info("[Assistant]: (standby)")
        elif action is StepAction.DISPATCH:
            self._dispatch()
        return action

    def _dispatch(self) -> None:
        state = self.state
        utterance = state.buffer
        logger.info(f"[You]: {utterance}")

        reply = self.dialogue.ask(utterance, state.history, self.tools.schema(), self.tools.call)
        logger.info(f"[Assistant]: {reply}")

        # The microphone stays closed while we talk; both handles come back next cycle
        self._close_capture()
        try:
            self.speaker.speak(reply)
        except Exception as e:
            handle_error(e, "turn_taking", "speak", ErrorSeverity.HIGH)
        state.recognizer = None
        state.buffer = ""
        state.silence = 0

    def _close_capture(self) -> None:
        capture, self.state.capture = self.state.capture, None
        if capture is not None:
            try:
                capture.close()
            except Exception as e:
                logger.debug(f"Audio capture close failed: {e}")

    def cycle(self) -> Optional[StepAction]:
        """Run one polling cycle; returns None when outside the active hours."""
        if not self.in_active_hours():
            logger.debug(f"Outside active hours {self.settings.active_hours}, sleeping")
            self._close_capture()
            self.state.reset(self.settings.system_prompt)
            self.sleep(self.settings.off_hours_sleep)
            return None

        state = self.state
        if state.recognizer is None:
            state.recognizer = self.recognizer_factory()
        if state.capture is None:
            state.capture = self.capture_factory()

        chunk = state.capture.read(self.settings.chunk_ms)
        if state.recognizer.accept(chunk):
            text, is_final = state.recognizer.final_result(), True
        else:
            text, is_final = state.recognizer.partial_result(), False
        return self.process(text, is_final)

    def run(self, should_stop: Callable[[], bool] = lambda: False) -> None:
        logger.info("Voice assistant started")
        logger.info(f"Say '{self.settings.wake_word}' to activate")
        try:
            while not should_stop():
                self.cycle()
        finally:
            self._close_capture()
