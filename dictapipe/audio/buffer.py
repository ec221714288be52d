"""Capture buffer shared between the audio callback and the session controller."""

import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, List, Optional

import numpy as np

from ..errors import CaptureBufferPoisoned

logger = logging.getLogger(__name__)


class AppendResult(Enum):
    """Outcome of a non-blocking append from the audio callback."""
    APPENDED = "appended"
    SKIPPED = "skipped"
    CAP_EXCEEDED = "cap_exceeded"


class CaptureBuffer:
    """Append-only float32 sample store for one recording session.

    Every access happens inside one lock region. A region that raises while
    holding the lock marks the buffer as poisoned: appends are skipped until
    ``clear()`` resets it, and ``drain()`` reports the condition once with
    ``CaptureBufferPoisoned``.
    """

    def __init__(self, max_samples: Optional[int] = None):
        """Initialize an empty buffer.

        Args:
            max_samples: Hard cap on buffered samples, ``None`` for unbounded
        """
        self.max_samples = max_samples
        self._lock = threading.Lock()
        self._chunks: List[np.ndarray] = []
        self._length = 0
        self.poisoned = False

    def set_capacity(self, sample_rate: int, seconds: float) -> None:
        """Size the cap for ``seconds`` of audio at ``sample_rate``."""
        with self._region():
            self.max_samples = int(sample_rate * seconds)
        logger.debug(f"Capture buffer capped at {self.max_samples} samples ({seconds}s @ {sample_rate}Hz)")

    @contextmanager
    def _region(self) -> Iterator[None]:
        with self._lock:
            try:
                yield
            except Exception:
                self.poisoned = True
                raise

    def _reset(self) -> None:
        self._chunks = []
        self._length = 0
        self.poisoned = False

    def try_append(self, samples: np.ndarray, timeout: float = 0.001) -> AppendResult:
        """Append from the audio callback without blocking for long.

        Never logs. Skips when the lock cannot be taken within ``timeout`` or
        when the buffer is poisoned. Refuses the data when it would exceed the
        cap.
        """
        if not self._lock.acquire(timeout=timeout):
            return AppendResult.SKIPPED
        try:
            if self.poisoned:
                return AppendResult.SKIPPED
            if self.max_samples is not None and self._length + len(samples) > self.max_samples:
                return AppendResult.CAP_EXCEEDED
            self._chunks.append(samples)
            self._length += len(samples)
            return AppendResult.APPENDED
        except Exception:
            self.poisoned = True
            raise
        finally:
            self._lock.release()

    def clear(self) -> None:
        """Discard all samples and recover from poisoning."""
        with self._lock:
            if self.poisoned:
                logger.warning("Capture buffer was poisoned, resetting")
            self._reset()

    def drain(self) -> np.ndarray:
        """Take all buffered samples and leave the buffer empty.

        Raises:
            CaptureBufferPoisoned: if a previous access failed mid-update; the
                buffer is reset before raising
        """
        with self._lock:
            was_poisoned = self.poisoned
            if was_poisoned:
                self._reset()
        if was_poisoned:
            logger.warning("Capture buffer was poisoned, discarded its contents")
            raise CaptureBufferPoisoned()

        with self._region():
            if not self._chunks:
                samples = np.zeros(0, dtype=np.float32)
            else:
                samples = np.concatenate(self._chunks).astype(np.float32, copy=False)
            self._reset()
        return samples

    def tail(self, n: int) -> np.ndarray:
        """Copy of the most recent ``n`` samples (fewer if not yet captured)."""
        with self._region():
            if n <= 0 or not self._chunks:
                return np.zeros(0, dtype=np.float32)
            taken: List[np.ndarray] = []
            remaining = n
            for chunk in reversed(self._chunks):
                if remaining <= 0:
                    break
                taken.append(chunk[-remaining:])
                remaining -= len(taken[-1])
            return np.concatenate(taken[::-1]).astype(np.float32)

    def __len__(self) -> int:
        with self._lock:
            return self._length
