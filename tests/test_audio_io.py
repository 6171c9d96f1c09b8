import os
import sys
import types
from unittest.mock import MagicMock

import numpy as np
import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from hearken import audio_io
from hearken.error_handler import ModelLoadError


def test_result_text_reads_final_and_partial_json():
    assert audio_io._result_text('{"text" : "what time is it"}', "text") == "what time is it"
    assert audio_io._result_text('{"partial" : "what ti"}', "partial") == "what ti"
    assert audio_io._result_text('{"partial" : ""}', "partial") == ""


def test_result_text_tolerates_garbage():
    assert audio_io._result_text("not json", "text") == ""
    assert audio_io._result_text('{"other": 1}', "text") == ""


def test_missing_vosk_model_is_a_load_error(tmp_path):
    with pytest.raises(ModelLoadError) as exc_info:
        audio_io.load_vosk_model(str(tmp_path / "no-model"))
    assert exc_info.value.component == "stt"


def test_missing_piper_voice_is_a_load_error(tmp_path):
    with pytest.raises(ModelLoadError) as exc_info:
        audio_io.PiperSpeaker(str(tmp_path / "voice.onnx"))
    assert exc_info.value.component == "tts"


class _FakeStream:
    def __init__(self):
        self.active = True


def _fake_sounddevice():
    stream = _FakeStream()
    sd = types.SimpleNamespace(
        play=MagicMock(),
        wait=MagicMock(),
        stop=MagicMock(side_effect=lambda: setattr(stream, "active", False)),
        get_stream=lambda: stream,
    )
    return sd, stream


def _speaker(*chunks):
    speaker = audio_io.PiperSpeaker.__new__(audio_io.PiperSpeaker)
    speaker.sample_rate = 22050
    speaker.voice = MagicMock()
    speaker.voice.synthesize.return_value = [
        types.SimpleNamespace(audio_float_array=np.array(c, dtype=np.float32)) for c in chunks
    ]
    return speaker


def test_speak_async_returns_a_stoppable_handle(monkeypatch):
    sd, stream = _fake_sounddevice()
    monkeypatch.setitem(sys.modules, "sounddevice", sd)
    speaker = _speaker([0.1, 0.2], [0.3])

    handle = speaker.speak_async("hello")

    audio = sd.play.call_args.args[0]
    assert audio.tolist() == pytest.approx([0.1, 0.2, 0.3])
    assert sd.play.call_args.kwargs["samplerate"] == 22050
    sd.wait.assert_not_called()
    assert not handle.is_finished()

    handle.stop()
    sd.stop.assert_called_once()
    assert handle.is_finished()


def test_speak_async_with_no_audio_returns_none(monkeypatch):
    sd, _ = _fake_sounddevice()
    monkeypatch.setitem(sys.modules, "sounddevice", sd)

    assert _speaker().speak_async("") is None
    sd.play.assert_not_called()


def test_speak_blocks_until_playback_ends(monkeypatch):
    sd, _ = _fake_sounddevice()
    monkeypatch.setitem(sys.modules, "sounddevice", sd)

    _speaker([0.5]).speak("hi")

    sd.play.assert_called_once()
    sd.wait.assert_called_once()
