"""Audio-related data models."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class AudioStats:
    """Capture engine statistics."""
    is_recording: bool
    mic_available: bool
    sample_rate: Optional[int]
    buffered_samples: int
    dropped_callbacks: int
    overflow_callbacks: int


@dataclass
class MicStatus:
    """Microphone availability as reported to collaborators."""
    available: bool
    default_device: str = ""
    devices: List[str] = field(default_factory=list)


@dataclass
class AudioLevels:
    """Advisory level bars computed from the tail of the capture buffer."""
    levels: List[float]
    elapsed_seconds: float
