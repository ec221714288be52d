"""Transcription module for DictaPipe."""

from .base import AbstractTranscriptionBackend
from .cloud_backend import CloudSttBackend, parse_transcript
from .engine import TranscriptionEngine
from .google_backend import GoogleSpeechBackend
from .whisper_backend import WhisperBackend, build_initial_prompt

__all__ = [
    "AbstractTranscriptionBackend",
    "CloudSttBackend",
    "parse_transcript",
    "TranscriptionEngine",
    "GoogleSpeechBackend",
    "WhisperBackend",
    "build_initial_prompt",
]
