"""Unit tests for AudioCapture class."""

import pytest
import threading
import time
from unittest.mock import Mock
import numpy as np
import pyaudio

from dictapipe.audio.buffer import CaptureBuffer
from dictapipe.audio.capture import AudioCapture
from dictapipe.errors import DeviceNotFound, InitTimeout, StreamInitFailed, UnsupportedFormat
from dictapipe.services.state import RecordingState


def make_capture(mock_pyaudio=None, **kwargs):
    buffer = kwargs.pop("buffer", CaptureBuffer())
    state = kwargs.pop("state", RecordingState())
    factory = mock_pyaudio['factory'] if mock_pyaudio else Mock()
    kwargs.setdefault("poll_interval", 0.01)
    return AudioCapture(buffer, state, pyaudio_factory=factory, **kwargs)


@pytest.mark.unit
class TestDeviceSelection:
    """Test cases for device selection and format negotiation."""

    def test_select_by_name_substring(self, mock_pyaudio):
        capture = make_capture(mock_pyaudio)

        info = capture._select_device(mock_pyaudio['instance'], "usb headset")

        assert info["index"] == 2

    def test_unknown_name_falls_back_to_default(self, mock_pyaudio):
        capture = make_capture(mock_pyaudio)

        info = capture._select_device(mock_pyaudio['instance'], "nonexistent")

        assert info["index"] == 0

    def test_no_default_uses_first_input(self, mock_pyaudio):
        mock_pyaudio['instance'].get_default_input_device_info.side_effect = IOError("no default")
        capture = make_capture(mock_pyaudio)

        info = capture._select_device(mock_pyaudio['instance'], None)

        assert info["index"] == 0

    def test_no_devices_raises(self, mock_pyaudio):
        instance = mock_pyaudio['instance']
        instance.get_device_count.return_value = 0
        instance.get_default_input_device_info.side_effect = IOError("no default")
        capture = make_capture(mock_pyaudio)

        with pytest.raises(DeviceNotFound):
            capture._select_device(instance, None)

    def test_prefers_float32(self, mock_pyaudio):
        capture = make_capture(mock_pyaudio)
        info = mock_pyaudio['devices'][0]

        assert capture._negotiate_format(mock_pyaudio['instance'], info, 48000, 1) == pyaudio.paFloat32

    def test_falls_back_to_int16(self, mock_pyaudio):
        def supported(rate, input_device, input_channels, input_format):
            if input_format == pyaudio.paFloat32:
                raise ValueError("Invalid sample format")
            return True

        mock_pyaudio['instance'].is_format_supported.side_effect = supported
        capture = make_capture(mock_pyaudio)

        fmt = capture._negotiate_format(mock_pyaudio['instance'], mock_pyaudio['devices'][0], 48000, 1)

        assert fmt == pyaudio.paInt16

    def test_unsupported_format(self, mock_pyaudio):
        mock_pyaudio['instance'].is_format_supported.side_effect = ValueError("Invalid sample format")
        capture = make_capture(mock_pyaudio)

        with pytest.raises(UnsupportedFormat):
            capture._negotiate_format(mock_pyaudio['instance'], mock_pyaudio['devices'][0], 48000, 1)


@pytest.mark.unit
class TestCallback:
    """Test cases for the stream callback path."""

    def test_decode_int16_stereo_downmix(self):
        capture = make_capture()
        frames = np.array([16384, 0, -16384, -16384], dtype=np.int16).tobytes()

        samples = capture.decode(frames, pyaudio.paInt16, 2)

        np.testing.assert_allclose(samples, [0.25, -0.5], atol=1e-4)
        assert samples.dtype == np.float32

    def test_decode_float32_mono(self):
        capture = make_capture()
        frames = np.array([0.1, -0.2], dtype=np.float32).tobytes()

        np.testing.assert_allclose(capture.decode(frames, pyaudio.paFloat32, 1), [0.1, -0.2])

    def test_ignores_audio_when_not_recording(self):
        capture = make_capture()
        frames = np.ones(64, dtype=np.float32).tobytes()

        capture.handle_audio(frames, 0, pyaudio.paFloat32, 1)

        assert len(capture.buffer) == 0

    def test_appends_while_recording(self):
        capture = make_capture()
        capture.state.is_recording.store(True)

        capture.handle_audio(np.ones(64, dtype=np.float32).tobytes(), 0, pyaudio.paFloat32, 1)

        assert len(capture.buffer) == 64

    def test_cap_exceeded_disarms_recording(self):
        capture = make_capture(buffer=CaptureBuffer(max_samples=100))
        capture.state.is_recording.store(True)
        frames = np.ones(64, dtype=np.float32).tobytes()

        capture.handle_audio(frames, 0, pyaudio.paFloat32, 1)
        capture.handle_audio(frames, 0, pyaudio.paFloat32, 1)

        assert capture.state.is_recording.load() is False
        assert len(capture.buffer) == 64
        assert capture.dropped_callbacks == 1

    def test_overflow_is_counted(self):
        capture = make_capture()
        capture.state.is_recording.store(True)

        capture.handle_audio(np.ones(8, dtype=np.float32).tobytes(), pyaudio.paInputOverflow,
                             pyaudio.paFloat32, 1)

        assert capture.overflow_callbacks == 1
        assert len(capture.buffer) == 8

    def test_callback_never_raises(self):
        capture = make_capture()
        capture.state.is_recording.store(True)
        callback = capture._make_callback(pyaudio.paInt16, 1)

        # Odd byte count cannot be decoded as int16
        result = callback(b"\x00\x01\x02", 1, {}, 0)

        assert result == (None, pyaudio.paContinue)
        assert capture.dropped_callbacks == 1


@pytest.mark.unit
class TestStreamLifecycle:
    """Test cases for opening, losing and closing the stream."""

    def test_start_reports_native_rate(self, mock_pyaudio):
        capture = make_capture(mock_pyaudio, buffer_cap_seconds=10)

        rate, handle = capture.start()
        try:
            assert rate == 48000
            assert handle.device_name == "MacBook Pro Microphone"
            assert handle.sample_format == pyaudio.paFloat32
            assert capture.state.sample_rate == 48000
            assert capture.state.mic_available.load() is True
            assert capture.buffer.max_samples == 480000
            assert handle.thread.daemon is True
            mock_pyaudio['instance'].open.assert_called_once()
            assert mock_pyaudio['instance'].open.call_args.kwargs['input'] is True
        finally:
            capture.stop(handle)

        assert not handle.thread.is_alive()
        mock_pyaudio['stream'].close.assert_called_once()
        mock_pyaudio['instance'].terminate.assert_called()

    def test_start_selects_device(self, mock_pyaudio):
        capture = make_capture(mock_pyaudio)

        rate, handle = capture.start("USB")
        capture.stop(handle)

        assert rate == 44100
        assert handle.channels == 2

    def test_stream_open_failure(self, mock_pyaudio):
        mock_pyaudio['instance'].open.side_effect = OSError("device busy")
        capture = make_capture(mock_pyaudio)

        with pytest.raises(StreamInitFailed):
            capture.start()
        assert capture.state.mic_available.load() is False

    def test_init_timeout(self):
        release = threading.Event()

        def slow_factory():
            release.wait(1.0)
            raise OSError("gave up")

        capture = AudioCapture(CaptureBuffer(), RecordingState(), init_timeout=0.05,
                               pyaudio_factory=slow_factory)
        try:
            with pytest.raises(InitTimeout):
                capture.start()
        finally:
            release.set()

    def test_stream_death_marks_mic_unavailable(self, mock_pyaudio):
        capture = make_capture(mock_pyaudio)
        rate, handle = capture.start()
        capture.state.is_recording.store(True)

        mock_pyaudio['stream'].is_active.return_value = False
        handle.thread.join(timeout=1.0)

        assert capture.state.mic_available.load() is False
        assert capture.state.is_recording.load() is False

    def test_reconnect_is_noop_when_available(self, mock_pyaudio):
        capture = make_capture(mock_pyaudio)
        capture.state.mic_available.store(True)
        capture.state.sample_rate = 44100

        assert capture.reconnect() == 44100
        mock_pyaudio['factory'].assert_not_called()

    def test_reconnect_reopens_stream(self, mock_pyaudio):
        capture = make_capture(mock_pyaudio)

        rate = capture.reconnect()
        try:
            assert rate == 48000
            assert capture.state.mic_available.load() is True
        finally:
            capture.stop()

    def test_mic_status(self, mock_pyaudio):
        capture = make_capture(mock_pyaudio)

        status = capture.get_mic_status()

        assert status.available is False
        assert status.default_device == "MacBook Pro Microphone"
        assert status.devices == ["MacBook Pro Microphone", "USB Headset Mic"]

    def test_stats(self, mock_pyaudio):
        capture = make_capture(mock_pyaudio)
        capture.state.is_recording.store(True)
        capture.handle_audio(np.ones(32, dtype=np.float32).tobytes(), 0, pyaudio.paFloat32, 1)

        stats = capture.get_stats()

        assert stats.is_recording is True
        assert stats.buffered_samples == 32
        assert stats.dropped_callbacks == 0
