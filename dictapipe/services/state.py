"""Shared recording state flags."""

import threading
from typing import Optional


class AtomicFlag:
    """A boolean with atomic load, store and compare-and-swap."""

    def __init__(self, value: bool = False):
        self._lock = threading.Lock()
        self._value = value

    def load(self) -> bool:
        with self._lock:
            return self._value

    def store(self, value: bool) -> None:
        with self._lock:
            self._value = value

    def compare_and_swap(self, expected: bool, new: bool) -> bool:
        """Set the flag to ``new`` only if it currently equals ``expected``.

        Returns:
            True if the swap happened
        """
        with self._lock:
            if self._value != expected:
                return False
            self._value = new
            return True

    def __repr__(self) -> str:
        return f"AtomicFlag({self.load()})"


class RecordingState:
    """Flags shared between the capture engine, the session controller and the pipeline.

    The three flags are independent; no operation holds more than one of
    their locks at a time.
    """

    def __init__(self):
        self.is_recording = AtomicFlag(False)
        self.is_processing = AtomicFlag(False)
        self.mic_available = AtomicFlag(False)
        self._rate_lock = threading.Lock()
        self._sample_rate: Optional[int] = None

    @property
    def sample_rate(self) -> Optional[int]:
        """Native sample rate of the open input stream, if any."""
        with self._rate_lock:
            return self._sample_rate

    @sample_rate.setter
    def sample_rate(self, value: Optional[int]) -> None:
        with self._rate_lock:
            self._sample_rate = value
