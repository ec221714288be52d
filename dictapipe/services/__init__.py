"""Services layer: recording sessions and the dictation pipeline."""

from .state import AtomicFlag, RecordingState
from .publisher import PipelinePublisher
from .recording_service import RecordingService
from .pipeline import DictationPipeline, HistorySink, TextDelivery

__all__ = [
    "AtomicFlag",
    "RecordingState",
    "PipelinePublisher",
    "RecordingService",
    "DictationPipeline",
    "HistorySink",
    "TextDelivery",
]
