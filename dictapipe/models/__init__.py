"""Data models for the DictaPipe application."""

from .audio import AudioStats, MicStatus, AudioLevels
from .context import InvocationContext
from .transcription import TranscriptResult, PolishResult
from .events import OutcomeStatus, PipelineOutcome
from .cache import ModelCache, ModelCacheEntry

__all__ = [
    "AudioStats",
    "MicStatus",
    "AudioLevels",
    "InvocationContext",
    "TranscriptResult",
    "PolishResult",
    "OutcomeStatus",
    "PipelineOutcome",
    "ModelCache",
    "ModelCacheEntry",
]
