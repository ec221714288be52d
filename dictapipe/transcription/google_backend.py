"""Google Speech-to-Text transcription backend."""

import time
import logging
from typing import Optional, Sequence

import numpy as np
from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

from .base import AbstractTranscriptionBackend
from ..audio.audio_saver import to_pcm16
from ..errors import CloudRequestFailed, MissingApiKey
from ..models.settings import SttConfig

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en-US"


class GoogleSpeechBackend(AbstractTranscriptionBackend):
    """Google Speech-to-Text API backend authenticated with a service account file."""

    service_name = "google"

    def __init__(self,
                 sample_rate: int = 16000,
                 use_enhanced: bool = True,
                 enable_automatic_punctuation: bool = True,
                 request_timeout: float = 30.0):
        """Initialize Google Speech backend.

        Args:
            sample_rate: Sample rate of the audio sent for recognition
            use_enhanced: Whether to use enhanced model (costs more but better quality)
            enable_automatic_punctuation: Enable automatic punctuation
            request_timeout: Per-request deadline in seconds
        """
        self.sample_rate = sample_rate
        self.use_enhanced = use_enhanced
        self.enable_automatic_punctuation = enable_automatic_punctuation
        self.request_timeout = request_timeout
        self.client: Optional[speech.SpeechClient] = None
        self.credentials_path: Optional[str] = None
        self.project_id = None

    def _ensure_client(self, credentials_path: str) -> speech.SpeechClient:
        """Create the client, or recreate it when the credentials file changed."""
        if self.client is not None and self.credentials_path == credentials_path:
            return self.client

        logger.info(f"Loading Google credentials from: {credentials_path}")
        credentials = service_account.Credentials.from_service_account_file(credentials_path)
        self.client = speech.SpeechClient(credentials=credentials)
        self.credentials_path = credentials_path
        self.project_id = credentials.project_id
        logger.info(f"Using Google Cloud project: {self.project_id}")
        return self.client

    def _recognition_config(self, language: str) -> speech.RecognitionConfig:
        return speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate,
            language_code=language if language and language != "auto" else DEFAULT_LANGUAGE,
            use_enhanced=self.use_enhanced,
            enable_automatic_punctuation=self.enable_automatic_punctuation,
            # Use model optimized for short audio
            model="latest_short",
        )

    def model_label(self, stt_config: SttConfig) -> str:
        return f"latest_short (Cloud/{stt_config.cloud.provider.key})"

    def transcribe(self,
                   samples_16k: np.ndarray,
                   stt_config: SttConfig,
                   app_name: str = "",
                   dictionary_terms: Sequence[str] = ()) -> str:
        credentials_path = stt_config.cloud.credentials_path
        if not credentials_path:
            raise MissingApiKey("Google credentials path is not set")
        client = self._ensure_client(credentials_path)

        start_time = time.time()
        config = self._recognition_config(stt_config.language)
        audio = speech.RecognitionAudio(content=to_pcm16(samples_16k).tobytes())
        try:
            response = client.recognize(config=config, audio=audio, timeout=self.request_timeout)
        except gax_exceptions.DeadlineExceeded as e:
            logger.error("Google STT recognize deadline exceeded")
            raise CloudRequestFailed(f"Google Speech recognize timeout: {e}") from e
        except gax_exceptions.ServiceUnavailable as e:
            logger.error("Google STT service unavailable")
            raise CloudRequestFailed(f"Google Speech service unavailable: {e}", status=503) from e
        except gax_exceptions.GoogleAPICallError as e:
            logger.error(f"Google STT API call error: {e}")
            raise CloudRequestFailed(f"Google Speech API error: {e}", status=e.code or 0) from e
        processing_time = time.time() - start_time

        if not response.results:
            logger.debug(f"--- NO SPEECH DETECTED --- ({processing_time:.3f}s)")
            return ""

        transcript = " ".join(
            result.alternatives[0].transcript.strip()
            for result in response.results
            if result.alternatives
        ).strip()
        logger.debug(f"Google transcript={transcript!r} (processing_time: {processing_time:.3f}s)")
        return transcript

    def invalidate_cache(self) -> None:
        self.client = None
        self.credentials_path = None
