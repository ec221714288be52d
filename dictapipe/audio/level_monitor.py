"""Live level bars and the maximum-duration auto-stop."""

import logging
import time
from threading import Event, Thread, current_thread
from typing import Callable, List, Optional

import numpy as np

from ..models.audio import AudioLevels
from ..services.state import RecordingState
from .buffer import CaptureBuffer

logger = logging.getLogger(__name__)

NUM_BARS = 20
LEVEL_GAIN = 6.0


def compute_levels(samples: np.ndarray, sample_rate: int, num_bars: int = NUM_BARS) -> List[float]:
    """Split the last second of audio into ``num_bars`` RMS bars scaled to [0, 1].

    Bars with no audio yet are reported as 0 at the front.
    """
    samples_per_bar = max(sample_rate // num_bars, 1)
    samples = np.asarray(samples, dtype=np.float32)[-num_bars * samples_per_bar:]
    bars = []
    for start in range(0, len(samples), samples_per_bar):
        chunk = samples[start:start + samples_per_bar].astype(np.float64)
        level = float(np.sqrt(np.mean(chunk * chunk)))
        bars.append(min(level * LEVEL_GAIN, 1.0))
    return [0.0] * (num_bars - len(bars)) + bars


class LevelMonitor:
    """Polls the capture buffer while recording and publishes level bars.

    When the recording reaches ``max_duration`` seconds, ``on_max_duration`` is
    invoked once from the monitor thread and the monitor exits.
    """

    def __init__(self,
                 buffer: CaptureBuffer,
                 state: RecordingState,
                 publish: Callable[[AudioLevels], None],
                 on_max_duration: Optional[Callable[[], None]] = None,
                 max_duration: float = 30.0,
                 interval_ms: int = 50):
        self.buffer = buffer
        self.state = state
        self.publish = publish
        self.on_max_duration = on_max_duration
        self.max_duration = max_duration
        self.interval = interval_ms / 1000.0

        self._stop_event = Event()
        self._thread: Optional[Thread] = None
        self.start_time: Optional[float] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            logger.warning("Level monitor already running")
            return
        self._stop_event.clear()
        self.start_time = time.monotonic()
        self._thread = Thread(target=self._run, daemon=True)
        self._thread.name = "LevelMonitorThread"
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is current_thread():
            return
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.0)
        self._thread = None

    def elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return time.monotonic() - self.start_time

    def _run(self) -> None:
        sample_rate = self.state.sample_rate or 44100
        window = NUM_BARS * (sample_rate // NUM_BARS)
        while self.state.is_recording.load() and not self._stop_event.is_set():
            elapsed = self.elapsed()
            if elapsed >= self.max_duration:
                logger.info(f"Max recording duration reached ({self.max_duration:.0f}s)")
                if self.on_max_duration is not None:
                    try:
                        self.on_max_duration()
                    except Exception as e:
                        logger.error(f"Auto-stop failed: {e}")
                return
            try:
                levels = compute_levels(self.buffer.tail(window), sample_rate)
            except Exception as e:
                logger.debug(f"Level read failed: {e}")
                levels = [0.0] * NUM_BARS
            self.publish(AudioLevels(levels=levels, elapsed_seconds=elapsed))
            self._stop_event.wait(self.interval)
