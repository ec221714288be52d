"""Recording session controller gating the always-on capture engine."""

import logging
import time
from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np

from ..audio.buffer import CaptureBuffer
from ..errors import AlreadyRecording, EmptyRecording, NoMicrophone, NotRecording
from .state import RecordingState

if TYPE_CHECKING:
    from ..audio.capture import AudioCapture

logger = logging.getLogger(__name__)


class RecordingService:
    """Arms and disarms capture, and hands the recorded samples to the caller.

    Only one session is armed at a time. ``stop_recording`` claims the session
    with a compare-and-swap, so concurrent stop triggers (manual stop racing
    the auto-stop) resolve to exactly one winner.
    """

    def __init__(self, capture: "AudioCapture", buffer: CaptureBuffer, state: RecordingState):
        """Initialize recording service.

        Args:
            capture: Capture engine that owns the input stream
            buffer: Buffer the capture engine fills while armed
            state: Shared recording flags
        """
        self.capture = capture
        self.buffer = buffer
        self.state = state
        self.start_time: Optional[float] = None

    @property
    def is_recording(self) -> bool:
        return self.state.is_recording.load()

    def start_recording(self) -> None:
        """Arm capture for a new session.

        Raises:
            AlreadyRecording: if a session is armed
            DeviceError: if the microphone was lost and reconnecting failed
        """
        if not self.state.mic_available.load():
            logger.info("Microphone unavailable, attempting reconnect before recording")
            self.capture.reconnect()

        if self.state.is_recording.load():
            raise AlreadyRecording()

        # Clear before arming so no stale samples leak into the new session
        self.buffer.clear()
        if not self.state.is_recording.compare_and_swap(False, True):
            raise AlreadyRecording()
        self.start_time = time.monotonic()
        logger.info("Recording started")

    def stop_recording(self) -> Tuple[np.ndarray, int]:
        """Disarm capture and take the recorded samples.

        Returns:
            ``(samples, native_sample_rate)``

        Raises:
            NoMicrophone: if no sample rate is on record
            NotRecording: if no session was armed, or another caller stopped it first
            EmptyRecording: if nothing was captured
            CaptureBufferPoisoned: if the buffer had to be reset
        """
        sample_rate = self.state.sample_rate
        if not sample_rate:
            raise NoMicrophone()
        if not self.state.is_recording.compare_and_swap(True, False):
            raise NotRecording()

        samples = self.buffer.drain()
        duration = self.recording_duration()
        self.start_time = None
        if len(samples) == 0:
            raise EmptyRecording()
        logger.info(f"Recording stopped: {len(samples)} samples @ {sample_rate}Hz "
                    f"({len(samples) / sample_rate:.2f}s, wall {duration:.2f}s)")
        return samples, sample_rate

    def cancel_recording(self) -> bool:
        """Disarm capture and discard whatever was recorded.

        Returns:
            True if a session was armed
        """
        was_recording = self.state.is_recording.compare_and_swap(True, False)
        self.buffer.clear()
        self.start_time = None
        if was_recording:
            logger.info("Recording cancelled")
        return was_recording

    def try_begin_processing(self) -> bool:
        """Claim the processing slot. Returns False if a run is already in progress."""
        return self.state.is_processing.compare_and_swap(False, True)

    def end_processing(self) -> None:
        self.state.is_processing.store(False)

    def recording_duration(self) -> float:
        """Seconds since the current session was armed, 0 when idle."""
        if self.start_time is None:
            return 0.0
        return time.monotonic() - self.start_time
