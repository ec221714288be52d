"""Abstract base classes for transcription backends."""

from abc import ABC, abstractmethod
from typing import Sequence
import logging

import numpy as np

from ..models.settings import SttConfig

logger = logging.getLogger(__name__)


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends."""

    service_name = "unknown"

    @abstractmethod
    def transcribe(self,
                   samples_16k: np.ndarray,
                   stt_config: SttConfig,
                   app_name: str = "",
                   dictionary_terms: Sequence[str] = ()) -> str:
        """Transcribe 16 kHz mono float samples.

        Args:
            samples_16k: Speech samples in [-1, 1]
            stt_config: Speech-to-text settings for this call
            app_name: Foreground application, used as a recognition hint
            dictionary_terms: User proper nouns, used as a recognition hint

        Returns:
            The recognised text, possibly empty
        """
        pass

    def model_label(self, stt_config: SttConfig) -> str:
        """Human readable name of the model this backend would use."""
        return self.service_name

    def invalidate_cache(self) -> None:
        """Drop any cached model or client."""
        pass
