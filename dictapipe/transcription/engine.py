"""Transcription engine dispatching to the local or cloud backend."""

import time
import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from .base import AbstractTranscriptionBackend
from .cloud_backend import CloudSttBackend
from .google_backend import GoogleSpeechBackend
from .whisper_backend import WhisperBackend
from ..errors import NoSpeech
from ..models.settings import SttConfig, SttMode, SttProvider, WhisperModel
from ..models.transcription import TranscriptResult

logger = logging.getLogger(__name__)


class TranscriptionEngine:
    """Turns 16 kHz speech samples into text with the configured backend.

    The local Whisper model is loaded lazily on first use and kept for later
    calls; switching models in the config reloads it.
    """

    def __init__(self,
                 models_dir: Path,
                 whisper: Optional[WhisperBackend] = None,
                 cloud: Optional[AbstractTranscriptionBackend] = None,
                 google: Optional[AbstractTranscriptionBackend] = None):
        """Initialize transcription engine.

        Args:
            models_dir: Directory holding local model files
            whisper: Local backend (defaults to a pywhispercpp-backed one)
            cloud: HTTP cloud backend
            google: Google Speech-to-Text backend
        """
        self.whisper = whisper or WhisperBackend(models_dir)
        self.cloud = cloud or CloudSttBackend()
        self.google = google or GoogleSpeechBackend()

    def backend_for(self, stt_config: SttConfig) -> AbstractTranscriptionBackend:
        if stt_config.mode == SttMode.LOCAL:
            return self.whisper
        if stt_config.cloud.provider == SttProvider.GOOGLE:
            return self.google
        return self.cloud

    def model_label(self, stt_config: SttConfig) -> str:
        return self.backend_for(stt_config).model_label(stt_config)

    def transcribe(self,
                   samples_16k: np.ndarray,
                   stt_config: SttConfig,
                   app_name: str = "",
                   dictionary_terms: Sequence[str] = ()) -> TranscriptResult:
        """Transcribe speech samples.

        Raises:
            NoSpeech: if the backend produced no text
            ModelError: on local model failures
            CloudError: on remote provider failures
        """
        backend = self.backend_for(stt_config)
        start_time = time.time()
        text = backend.transcribe(samples_16k, stt_config, app_name, dictionary_terms).strip()
        processing_time = time.time() - start_time

        if not text:
            logger.info(f"{backend.service_name} returned no text")
            raise NoSpeech("no speech recognised")

        logger.info(f"Transcribed {len(samples_16k) / 16000.0:.2f}s of audio with "
                    f"{backend.model_label(stt_config)} in {processing_time:.2f}s")
        return TranscriptResult(
            text=text,
            samples_16k=samples_16k,
            service=backend.service_name,
            processing_time=processing_time,
        )

    def warm(self, model: WhisperModel) -> None:
        """Pre-load a local Whisper model."""
        self.whisper.warm(model)

    def invalidate_cache(self) -> None:
        """Drop cached models and clients; call after a model file was replaced on disk."""
        self.whisper.invalidate_cache()
        self.cloud.invalidate_cache()
        self.google.invalidate_cache()
