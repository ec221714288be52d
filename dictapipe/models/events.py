"""Pipeline outcome model published to delivery and history collaborators."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

import numpy as np

from .context import InvocationContext


class OutcomeStatus(Enum):
    """How a pipeline run ended."""
    DELIVERED = "delivered"
    NO_SPEECH = "no_speech"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class PipelineOutcome:
    """Everything a pipeline run produced, successful or not."""
    status: OutcomeStatus
    text: str = ""
    raw_text: str = ""
    reasoning: Optional[str] = None
    samples_16k: Optional[np.ndarray] = None
    context: InvocationContext = field(default_factory=InvocationContext)
    error: Optional[Exception] = None
    stt_model: str = ""
    polish_model: str = "None"
    stt_elapsed_ms: int = 0
    polish_elapsed_ms: Optional[int] = None
    total_elapsed_ms: int = 0
    delivered: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def audio_duration_seconds(self) -> float:
        if self.samples_16k is None:
            return 0.0
        return len(self.samples_16k) / 16000.0
