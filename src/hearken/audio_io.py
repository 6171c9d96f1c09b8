"""
Audio adapters: Vosk speech recognition, microphone capture and Piper playback.

These wrap the engines behind the small call contracts the turn-taking loop
relies on (`accept`/`final_result`/`partial_result`, `read`, `speak`). The
engine packages are imported when an adapter is built so the rest of the
package stays importable on machines without audio hardware.
"""
from __future__ import annotations

import json
import os
from typing import Any, Optional

import numpy as np

from .error_handler import ModelLoadError
from .logging_utils import setup_logger

logger = setup_logger("hearken.audio_io")


def load_vosk_model(model_path: str) -> Any:
    """Load a Vosk model directory; failures are fatal for the caller."""
    if not os.path.isdir(model_path):
        raise ModelLoadError(f"Vosk model directory not found: {model_path}",
                             component="stt", operation="load")
    try:
        import vosk

        vosk.SetLogLevel(-1)
        model = vosk.Model(model_path)
    except Exception as e:
        raise ModelLoadError(f"Failed to load Vosk model {model_path}: {e}",
                             component="stt", operation="load") from e
    logger.info(f"Vosk model loaded: {model_path}")
    return model


class VoskRecognizer:
    """Streaming recognizer over one Vosk model; discard it to forget context."""

    def __init__(self, model: Any, sample_rate: int = 16000):
        from vosk import KaldiRecognizer

        self._rec = KaldiRecognizer(model, float(sample_rate))

    def accept(self, chunk: bytes) -> bool:
        """Feed audio; True means a final result is ready."""
        return bool(self._rec.AcceptWaveform(chunk))

    def final_result(self) -> str:
        return _result_text(self._rec.Result(), "text")

    def partial_result(self) -> str:
        return _result_text(self._rec.PartialResult(), "partial")


def _result_text(result_json: str, key: str) -> str:
    try:
        obj = json.loads(result_json)
    except (TypeError, ValueError):
        logger.debug(f"Unparseable recognizer output: {result_json!r}")
        return ""
    return str(obj.get(key, "")).strip()


class MicCapture:
    """Mono 16-bit microphone stream read in fixed-duration chunks."""

    def __init__(self, sample_rate: int = 16000, device: Optional[Any] = None):
        import sounddevice as sd

        self.sample_rate = sample_rate
        self._stream = sd.RawInputStream(
            samplerate=sample_rate,
            channels=1,
            dtype="int16",
            device=device,
        )
        self._stream.start()
        logger.debug("Audio input stream started")

    def read(self, duration_ms: float) -> bytes:
        """Block until `duration_ms` of audio is available and return it."""
        frames = max(1, int(self.sample_rate * duration_ms / 1000.0))
        data, overflowed = self._stream.read(frames)
        if overflowed:
            logger.debug("Audio input overflow")
        return bytes(data)

    def close(self) -> None:
        try:
            self._stream.stop()
        finally:
            self._stream.close()


class SpeakHandle:
    """Playback started by `PiperSpeaker.speak_async`."""

    def __init__(self, sd: Any):
        self._sd = sd
        self._stream = sd.get_stream()

    def is_finished(self) -> bool:
        return not self._stream.active

    def stop(self) -> None:
        self._sd.stop()


class PiperSpeaker:
    """Piper neural TTS played through the default output device."""

    def __init__(self, model_path: str, config_path: Optional[str] = None):
        if not os.path.exists(model_path):
            raise ModelLoadError(f"Piper voice model not found: {model_path}",
                                 component="tts", operation="load")
        try:
            from piper import PiperVoice

            self.voice = PiperVoice.load(model_path, config_path=config_path)
        except Exception as e:
            raise ModelLoadError(f"Failed to load Piper voice {model_path}: {e}",
                                 component="tts", operation="load") from e
        self.sample_rate = int(getattr(self.voice.config, "sample_rate", 22050))
        logger.info(f"Piper voice loaded: {model_path} ({self.sample_rate} Hz)")

    def synthesize(self, text: str) -> np.ndarray:
        chunks = []
        for chunk in self.voice.synthesize(text):
            chunks.append(np.asarray(chunk.audio_float_array, dtype=np.float32))
        if not chunks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(chunks)

    def speak_async(self, text: str) -> Optional[SpeakHandle]:
        """Start playback and return immediately; None when there is nothing to play."""
        import sounddevice as sd

        audio = self.synthesize(text)
        if audio.size == 0:
            return None
        sd.play(audio, samplerate=self.sample_rate)
        return SpeakHandle(sd)

    def speak(self, text: str) -> None:
        """Synthesize and play `text`, blocking until playback ends."""
        import sounddevice as sd

        audio = self.synthesize(text)
        if audio.size == 0:
            return
        sd.play(audio, samplerate=self.sample_rate)
        sd.wait()
