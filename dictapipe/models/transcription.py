"""Transcription and polishing result models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import numpy as np


@dataclass
class TranscriptResult:
    """Text produced by the transcription service.

    ``samples_16k`` is the audio that produced the text; it is kept for
    history export only and never reprocessed.
    """
    text: str
    samples_16k: np.ndarray
    service: str
    processing_time: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def audio_duration_seconds(self) -> float:
        return len(self.samples_16k) / 16000.0


@dataclass
class PolishResult:
    """Result of polishing, with reasoning extracted from <think> blocks."""
    text: str
    reasoning: Optional[str] = None
