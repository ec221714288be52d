"""Audio capture and processing module."""

from .buffer import CaptureBuffer, AppendResult
from .capture import AudioCapture, CaptureHandle
from .level_monitor import LevelMonitor, compute_levels
from .processing import resample, trim_silence, prepare_speech
from .vad import VoiceActivityDetector

__all__ = [
    'CaptureBuffer',
    'AppendResult',
    'AudioCapture',
    'CaptureHandle',
    'LevelMonitor',
    'compute_levels',
    'resample',
    'trim_silence',
    'prepare_speech',
    'VoiceActivityDetector',
]
