"""Local Whisper transcription through whisper.cpp bindings."""

import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from ..errors import ModelNotDownloaded
from ..models.cache import ModelCache
from ..models.settings import SttConfig, WhisperModel
from .base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)

INITIAL_PROMPT_BUDGET = 350
PROMPT_PREFIX = "DictaPipe"

# Language-specific sentences biasing Whisper toward the right script
_APP_SENTENCES = {
    "zh-TW": "用戶正在使用{app}。",
    "zh": "用戶正在使用{app}。",
    "zh-CN": "用户正在使用{app}。",
    "ja": "ユーザーは{app}を使用中。",
    "ko": "사용자가 {app}을(를) 사용 중.",
}
_PREAMBLES = {
    "zh-TW": "以下是繁體中文的語音轉錄。",
    "zh": "以下是繁體中文的語音轉錄。",
    "zh-CN": "以下是简体中文的语音转录。",
    "ja": "以下は日本語の音声書き起こしです。",
    "ko": "다음은 한국어 음성 전사입니다.",
}
_CJK_SEPARATOR_LANGUAGES = ("zh-TW", "zh", "zh-CN", "ja")


def whisper_model_path(models_dir: Path, model: WhisperModel) -> Path:
    """Path of ``model`` under ``models_dir``.

    Raises:
        ModelNotDownloaded: if the file does not exist
    """
    path = Path(models_dir) / model.filename
    if not path.exists():
        raise ModelNotDownloaded(f"Whisper model not found: {path}")
    return path


def language_hint(language: str) -> Optional[str]:
    """ISO 639-1 base code of a BCP-47 language, or None to auto-detect."""
    if not language or language == "auto":
        return None
    return language.split("-")[0]


def build_initial_prompt(language: str,
                         app_name: str = "",
                         dictionary_terms: Sequence[str] = (),
                         prefix: str = PROMPT_PREFIX) -> str:
    """Initial prompt biasing recognition toward the app, the language and the user's terms.

    Dictionary terms go last, where they bias decoding most, and are picked
    greedily in order until the character budget is spent.
    """
    parts: List[str] = [prefix] if prefix else []
    if language in _PREAMBLES:
        if app_name:
            parts.append(_APP_SENTENCES[language].format(app=app_name))
        parts.append(_PREAMBLES[language])
    elif app_name:
        parts.append(f"User is using {app_name}.")

    terms = [t for t in dictionary_terms if t]
    if terms:
        sep = "、" if language in _CJK_SEPARATOR_LANGUAGES else ", "
        remaining = max(INITIAL_PROMPT_BUDGET - sum(len(p) for p in parts), 0)
        joined = sep.join(terms)
        if len(joined) <= remaining:
            parts.append(joined)
        else:
            picked: List[str] = []
            for term in terms:
                cost = len(term) + (len(sep) if picked else 0)
                if cost > remaining:
                    break
                picked.append(term)
                remaining -= cost
            if picked:
                parts.append(sep.join(picked))

    return " ".join(parts)


def decode_params(language: str, initial_prompt: str) -> Dict[str, Any]:
    """Decoding parameters for one call, built fresh every time."""
    return {
        "language": language_hint(language) or "auto",
        "initial_prompt": initial_prompt,
        "single_segment": True,
        "no_context": True,
        "print_special": False,
        "print_progress": False,
        "print_realtime": False,
        "print_timestamps": False,
        # One quality-gated retry at a higher temperature filters hallucinations on silence
        "temperature_inc": 0.6,
        "no_speech_thold": 0.5,
        "n_threads": os.cpu_count() or 4,
    }


def load_whisper_model(path: Path) -> Any:
    """Load a ggml Whisper model with whisper.cpp logging silenced."""
    from pywhispercpp.model import Model

    return Model(str(path), redirect_whispercpp_logs_to=None,
                 print_realtime=False, print_progress=False)


class WhisperBackend(AbstractTranscriptionBackend):
    """Transcribes with a cached whisper.cpp model; one inference at a time."""

    service_name = "whisper"

    def __init__(self, models_dir: Path, loader: Optional[Callable[[Path], Any]] = None):
        """Initialize the backend.

        Args:
            models_dir: Directory holding ggml model files
            loader: Loads a model from a path; defaults to pywhispercpp
        """
        self.models_dir = Path(models_dir)
        self.cache = ModelCache("whisper", loader or load_whisper_model)

    def model_label(self, stt_config: SttConfig) -> str:
        return stt_config.whisper_model.display_name

    def warm(self, model: WhisperModel) -> None:
        """Pre-load ``model`` so the first dictation does not pay the load cost."""
        self.cache.warm(whisper_model_path(self.models_dir, model))

    def transcribe(self,
                   samples_16k: np.ndarray,
                   stt_config: SttConfig,
                   app_name: str = "",
                   dictionary_terms: Sequence[str] = ()) -> str:
        path = whisper_model_path(self.models_dir, stt_config.whisper_model)
        prompt = build_initial_prompt(stt_config.language, app_name, dictionary_terms)
        params = decode_params(stt_config.language, prompt)
        logger.debug(f"[whisper] language={params['language']} (config: {stt_config.language}), "
                     f"app={app_name!r}, prompt={prompt!r}")

        samples = np.ascontiguousarray(samples_16k, dtype=np.float32)
        with self.cache.use(path) as model:
            infer_start = time.time()
            segments = model.transcribe(samples, **params)
            logger.debug(f"Whisper inference done ({time.time() - infer_start:.2f}s, "
                         f"{len(segments)} segment(s))")

        return "".join(segment.text for segment in segments).strip()

    def invalidate_cache(self) -> None:
        self.cache.invalidate()
