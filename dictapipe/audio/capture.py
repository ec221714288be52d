"""Always-on audio capture engine feeding the capture buffer while armed."""

import logging
import queue
from dataclasses import dataclass, field
from threading import Event, Thread
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import pyaudio

from ..errors import DeviceNotFound, DictaPipeError, InitTimeout, StreamInitFailed, UnsupportedFormat
from ..models.audio import AudioStats, MicStatus
from ..services.state import RecordingState
from .buffer import AppendResult, CaptureBuffer

logger = logging.getLogger(__name__)

INT16_SCALE = 32767.0


@dataclass
class CaptureHandle:
    """Keeps a running capture thread alive until ``stop_event`` is set."""
    stop_event: Event
    thread: Optional[Thread] = None
    sample_rate: int = 0
    channels: int = 1
    sample_format: int = pyaudio.paFloat32
    device_name: str = ""


@dataclass
class _StreamSetup:
    device_index: int
    device_name: str
    sample_rate: int
    channels: int
    sample_format: int = field(default=pyaudio.paFloat32)


class AudioCapture:
    """Owns the input stream on a dedicated thread.

    The stream runs for the whole lifetime of the engine. The data callback
    only appends to the capture buffer while ``state.is_recording`` is set.
    """

    def __init__(
        self,
        buffer: CaptureBuffer,
        state: RecordingState,
        init_timeout: float = 5.0,
        frames_per_buffer: int = 1024,
        buffer_cap_seconds: float = 120.0,
        poll_interval: float = 0.5,
        pyaudio_factory: Callable[[], Any] = pyaudio.PyAudio,
    ):
        """Initialize the capture engine.

        Args:
            buffer: Buffer the callback appends into
            state: Shared recording flags
            init_timeout: Seconds to wait for the capture thread to report back
            frames_per_buffer: Frames delivered per callback
            buffer_cap_seconds: Capture is disarmed once this much audio is buffered
            poll_interval: How often the capture thread checks the stream is alive
            pyaudio_factory: Creates the PyAudio instance
        """
        self.buffer = buffer
        self.state = state
        self.init_timeout = init_timeout
        self.frames_per_buffer = frames_per_buffer
        self.buffer_cap_seconds = buffer_cap_seconds
        self.poll_interval = poll_interval
        self.pyaudio_factory = pyaudio_factory

        self.handle: Optional[CaptureHandle] = None
        self.last_selector: Optional[str] = None

        # Callback statistics
        self.dropped_callbacks = 0
        self.overflow_callbacks = 0

    # Device selection

    @staticmethod
    def _input_devices(pa: Any) -> List[Dict[str, Any]]:
        devices = []
        for index in range(pa.get_device_count()):
            info = pa.get_device_info_by_index(index)
            if int(info.get("maxInputChannels", 0)) > 0:
                devices.append(info)
        return devices

    def _select_device(self, pa: Any, selector: Optional[str]) -> Dict[str, Any]:
        """Pick an input device by case-insensitive name substring, else the default."""
        devices = self._input_devices(pa)
        if selector:
            wanted = selector.lower()
            for info in devices:
                if wanted in str(info.get("name", "")).lower():
                    return info
            logger.warning(f"No input device matches '{selector}', using default input device")

        try:
            return pa.get_default_input_device_info()
        except (IOError, OSError):
            if devices:
                return devices[0]
        raise DeviceNotFound("no input device available")

    def _negotiate_format(self, pa: Any, info: Dict[str, Any], rate: int, channels: int) -> int:
        """Prefer float32 samples, fall back to int16."""
        for sample_format in (pyaudio.paFloat32, pyaudio.paInt16):
            try:
                pa.is_format_supported(
                    rate,
                    input_device=int(info["index"]),
                    input_channels=channels,
                    input_format=sample_format,
                )
                return sample_format
            except ValueError:
                continue
        raise UnsupportedFormat(f"device '{info.get('name')}' supports neither float32 nor int16 input")

    # Callback

    def decode(self, in_data: bytes, sample_format: int, channels: int) -> np.ndarray:
        """Convert raw callback bytes to mono float32 samples."""
        if sample_format == pyaudio.paFloat32:
            samples = np.frombuffer(in_data, dtype=np.float32)
        else:
            samples = np.frombuffer(in_data, dtype=np.int16).astype(np.float32) / INT16_SCALE
        if channels > 1:
            usable = len(samples) - len(samples) % channels
            samples = samples[:usable].reshape(-1, channels).mean(axis=1)
        return samples.astype(np.float32, copy=False)

    def handle_audio(self, in_data: bytes, status: int, sample_format: int, channels: int) -> None:
        """Body of the stream callback. Never logs and never raises."""
        if not self.state.is_recording.load():
            return
        try:
            if status & pyaudio.paInputOverflow:
                self.overflow_callbacks += 1
            samples = self.decode(in_data, sample_format, channels)
            result = self.buffer.try_append(samples)
            if result is AppendResult.CAP_EXCEEDED:
                self.state.is_recording.store(False)
                self.dropped_callbacks += 1
            elif result is AppendResult.SKIPPED:
                self.dropped_callbacks += 1
        except Exception:
            self.dropped_callbacks += 1

    def _make_callback(self, sample_format: int, channels: int) -> Callable:
        def callback(in_data, frame_count, time_info, status):
            self.handle_audio(in_data, status, sample_format, channels)
            return (None, pyaudio.paContinue)
        return callback

    # Capture thread

    def _open_stream(self, pa: Any, selector: Optional[str]) -> Tuple[Any, _StreamSetup]:
        info = self._select_device(pa, selector)
        rate = int(info.get("defaultSampleRate", 16000))
        channels = max(1, min(int(info.get("maxInputChannels", 1)), 2))
        sample_format = self._negotiate_format(pa, info, rate, channels)
        setup = _StreamSetup(
            device_index=int(info["index"]),
            device_name=str(info.get("name", "")),
            sample_rate=rate,
            channels=channels,
            sample_format=sample_format,
        )
        try:
            stream = pa.open(
                format=sample_format,
                channels=channels,
                rate=rate,
                input=True,
                input_device_index=setup.device_index,
                frames_per_buffer=self.frames_per_buffer,
                stream_callback=self._make_callback(sample_format, channels),
            )
            stream.start_stream()
        except Exception as e:
            raise StreamInitFailed(f"failed to open input stream: {e}") from e
        return stream, setup

    def _run_capture(self, selector: Optional[str], handshake: "queue.Queue", stop_event: Event) -> None:
        """Capture thread: open the stream, report back, keep it alive until stopped."""
        pa = None
        stream = None
        try:
            pa = self.pyaudio_factory()
            stream, setup = self._open_stream(pa, selector)
        except DictaPipeError as e:
            handshake.put(("error", e))
            if pa is not None:
                pa.terminate()
            return
        except Exception as e:
            handshake.put(("error", StreamInitFailed(str(e))))
            if pa is not None:
                pa.terminate()
            return

        handshake.put(("ok", setup))
        try:
            while not stop_event.wait(self.poll_interval):
                if not stream.is_active():
                    logger.error("Audio input stream died, microphone lost")
                    self.state.mic_available.store(False)
                    self.state.is_recording.store(False)
                    break
        finally:
            try:
                stream.stop_stream()
                stream.close()
            except Exception as e:
                logger.warning(f"Error closing audio stream: {e}")
            pa.terminate()
            logger.info("Audio capture thread exited")

    def start(self, device_selector: Optional[str] = None) -> Tuple[int, CaptureHandle]:
        """Open the input stream on a background thread.

        Args:
            device_selector: Case-insensitive substring of the device name

        Returns:
            ``(native_sample_rate, handle)``
        """
        handshake: "queue.Queue" = queue.Queue(maxsize=1)
        stop_event = Event()
        thread = Thread(
            target=self._run_capture,
            args=(device_selector, handshake, stop_event),
            daemon=True,
        )
        thread.name = "AudioCaptureThread"
        thread.start()

        try:
            message = handshake.get(timeout=self.init_timeout)
        except queue.Empty:
            stop_event.set()
            raise InitTimeout(f"audio thread did not initialise within {self.init_timeout}s")

        if message[0] == "error":
            raise message[1]

        setup: _StreamSetup = message[1]
        handle = CaptureHandle(
            stop_event=stop_event,
            thread=thread,
            sample_rate=setup.sample_rate,
            channels=setup.channels,
            sample_format=setup.sample_format,
            device_name=setup.device_name,
        )
        self.handle = handle
        self.last_selector = device_selector
        self.buffer.set_capacity(setup.sample_rate, self.buffer_cap_seconds)
        self.state.sample_rate = setup.sample_rate
        self.state.mic_available.store(True)
        fmt = "float32" if setup.sample_format == pyaudio.paFloat32 else "int16"
        logger.info(f"Audio stream opened on '{setup.device_name}': {setup.sample_rate}Hz, "
                    f"{setup.channels} channel(s), {fmt}")
        return setup.sample_rate, handle

    def stop(self, handle: Optional[CaptureHandle] = None) -> None:
        """Signal the capture thread to close the stream."""
        handle = handle or self.handle
        if handle is None:
            return
        handle.stop_event.set()
        if handle.thread and handle.thread.is_alive():
            handle.thread.join(timeout=2.0)
            if handle.thread.is_alive():
                logger.warning("Capture thread did not stop cleanly")
        if handle is self.handle:
            self.handle = None

    def reconnect(self) -> int:
        """Reopen the stream after a hardware loss.

        Returns:
            The native sample rate now on record
        """
        if self.state.mic_available.load() and self.state.sample_rate:
            return self.state.sample_rate

        logger.info("Reconnecting audio input...")
        if self.handle is not None:
            self.stop(self.handle)
        rate, _ = self.start(self.last_selector)
        logger.info(f"Audio input reconnected at {rate}Hz")
        return rate

    def get_mic_status(self) -> MicStatus:
        """Availability, default input device and input device names."""
        pa = self.pyaudio_factory()
        try:
            names = [str(info.get("name", "")) for info in self._input_devices(pa)]
            try:
                default = str(pa.get_default_input_device_info().get("name", ""))
            except (IOError, OSError):
                default = ""
        finally:
            pa.terminate()
        return MicStatus(
            available=self.state.mic_available.load(),
            default_device=default,
            devices=names,
        )

    def get_stats(self) -> AudioStats:
        return AudioStats(
            is_recording=self.state.is_recording.load(),
            mic_available=self.state.mic_available.load(),
            sample_rate=self.state.sample_rate,
            buffered_samples=len(self.buffer),
            dropped_callbacks=self.dropped_callbacks,
            overflow_callbacks=self.overflow_callbacks,
        )
