"""Pytest configuration and fixtures for DictaPipe tests."""

import pytest
import tempfile
import logging
from pathlib import Path
from unittest.mock import Mock

import numpy as np
import pyaudio
from pubsub import pub

from dictapipe.audio.buffer import CaptureBuffer
from dictapipe.models.settings import AppSettings
from dictapipe.services.state import RecordingState


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")
    config.addinivalue_line("markers", "integration: tests that wire several components together")
    config.addinivalue_line("markers", "slow: tests that take more than a second")


@pytest.fixture(autouse=True)
def clean_pubsub():
    """Drop pubsub listeners registered by a test."""
    yield
    pub.unsubAll()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def audio_test_data():
    """Generate float32 audio test patterns."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000, amplitude=0.5, freq=440.0):
        """Generate audio samples for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz
            amplitude: Peak amplitude in [0, 1]
            freq: Sine frequency in Hz

        Returns:
            np.ndarray: float32 samples
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.arange(samples) / sample_rate
            wave_data = amplitude * np.sin(2 * np.pi * freq * t)
        elif pattern == "noise":
            rng = np.random.default_rng(1234)
            wave_data = rng.uniform(-amplitude, amplitude, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        return wave_data.astype(np.float32)

    return generate_audio


def _device(index, name, channels=1, rate=48000.0):
    return {
        "index": index,
        "name": name,
        "maxInputChannels": channels,
        "defaultSampleRate": rate,
    }


@pytest.fixture
def mock_pyaudio():
    """PyAudio stand-in with two input devices and one output-only device."""
    instance = Mock()
    stream = Mock()
    stream.is_active.return_value = True

    devices = [
        _device(0, "MacBook Pro Microphone", channels=1, rate=48000.0),
        _device(1, "Built-in Output", channels=0, rate=48000.0),
        _device(2, "USB Headset Mic", channels=2, rate=44100.0),
    ]
    instance.get_device_count.return_value = len(devices)
    instance.get_device_info_by_index.side_effect = lambda i: devices[i]
    instance.get_default_input_device_info.return_value = devices[0]
    instance.is_format_supported.return_value = True
    instance.open.return_value = stream
    instance.terminate.return_value = None

    factory = Mock(return_value=instance)
    return {
        'factory': factory,
        'instance': instance,
        'stream': stream,
        'devices': devices,
        'paContinue': pyaudio.paContinue,
    }


@pytest.fixture
def recording_state():
    state = RecordingState()
    state.mic_available.store(True)
    state.sample_rate = 48000
    return state


@pytest.fixture
def capture_buffer():
    return CaptureBuffer()


@pytest.fixture
def app_settings():
    """Default settings with VAD off so tests rely on RMS trimming only."""
    settings = AppSettings()
    settings.stt.vad_enabled = False
    return settings


@pytest.fixture
def fake_transcription():
    """TranscriptionEngine stand-in returning a fixed transcript."""
    from dictapipe.models.transcription import TranscriptResult

    engine = Mock()
    engine.model_label.return_value = "Whisper Turbo"

    def transcribe(samples_16k, stt_config, app_name="", dictionary_terms=()):
        return TranscriptResult(text="hello world", samples_16k=samples_16k, service="whisper",
                                processing_time=0.01)

    engine.transcribe.side_effect = transcribe
    return engine


@pytest.fixture
def fake_polisher():
    from dictapipe.models.transcription import PolishResult

    polisher = Mock()
    polisher.is_polish_ready.return_value = True
    polisher.model_label.return_value = "Qwen 3 8B (Local)"
    polisher.polish.side_effect = lambda raw, config, context: PolishResult(text=raw.capitalize() + ".")
    return polisher
