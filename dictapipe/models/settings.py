"""Typed settings for transcription, polishing and audio capture."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# ── Speech-to-text ──────────────────────────────────────────────────────────

class SttMode(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"


class SttProvider(str, Enum):
    DEEPGRAM = "deepgram"
    GROQ = "groq"
    OPENAI = "open_ai"
    AZURE = "azure"
    GOOGLE = "google"
    CUSTOM = "custom"

    @property
    def key(self) -> str:
        """Credential lookup key for this provider."""
        return f"stt_{self.value}"

    @property
    def default_endpoint(self) -> str:
        return {
            SttProvider.DEEPGRAM: "https://api.deepgram.com/v1/listen",
            SttProvider.GROQ: "https://api.groq.com/openai/v1/audio/transcriptions",
            SttProvider.OPENAI: "https://api.openai.com/v1/audio/transcriptions",
        }.get(self, "")

    @property
    def default_model(self) -> str:
        return {
            SttProvider.DEEPGRAM: "whisper",
            SttProvider.GROQ: "whisper-large-v3-turbo",
            SttProvider.OPENAI: "whisper-1",
        }.get(self, "")


class WhisperModel(str, Enum):
    LARGE_V3_TURBO = "large_v3_turbo"
    LARGE_V3_TURBO_Q5 = "large_v3_turbo_q5"
    BELLE_ZH = "belle_zh"
    MEDIUM = "medium"
    SMALL = "small"
    BASE = "base"
    LARGE_V3_TURBO_ZH_TW = "large_v3_turbo_zh_tw"

    @property
    def filename(self) -> str:
        return {
            WhisperModel.LARGE_V3_TURBO: "ggml-large-v3-turbo.bin",
            WhisperModel.LARGE_V3_TURBO_Q5: "ggml-large-v3-turbo-q5_0.bin",
            WhisperModel.BELLE_ZH: "ggml-belle-whisper-large-v3-turbo-zh.bin",
            WhisperModel.MEDIUM: "ggml-medium.bin",
            WhisperModel.SMALL: "ggml-small.bin",
            WhisperModel.BASE: "ggml-base.bin",
            WhisperModel.LARGE_V3_TURBO_ZH_TW: "ggml-large-v3-turbo-zh-TW.bin",
        }[self]

    @property
    def display_name(self) -> str:
        return {
            WhisperModel.LARGE_V3_TURBO: "Whisper Turbo",
            WhisperModel.LARGE_V3_TURBO_Q5: "Whisper Turbo Lite",
            WhisperModel.BELLE_ZH: "Belle Simplified Chinese",
            WhisperModel.MEDIUM: "Whisper Medium",
            WhisperModel.SMALL: "Whisper Small",
            WhisperModel.BASE: "Whisper Base",
            WhisperModel.LARGE_V3_TURBO_ZH_TW: "Whisper Turbo TW",
        }[self]


class SttCloudConfig(BaseModel):
    provider: SttProvider = SttProvider.DEEPGRAM
    api_key: str = Field(default="", repr=False)
    endpoint: str = ""
    model_id: str = "whisper"
    # Google provider only
    credentials_path: str = ""


class SttConfig(BaseModel):
    mode: SttMode = SttMode.LOCAL
    cloud: SttCloudConfig = Field(default_factory=SttCloudConfig)
    whisper_model: WhisperModel = WhisperModel.LARGE_V3_TURBO
    # BCP-47 code shared by local and cloud STT; "auto" lets the model decide
    language: str = "auto"
    vad_enabled: bool = True

    @field_validator("language", mode="before")
    @classmethod
    def _empty_language_is_auto(cls, value):
        return value or "auto"


# ── Polishing ───────────────────────────────────────────────────────────────

class PolishMode(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"


class CloudProvider(str, Enum):
    GITHUB_MODELS = "github_models"
    GROQ = "groq"
    OPEN_ROUTER = "open_router"
    OPENAI = "open_ai"
    GEMINI = "gemini"
    SAMBA_NOVA = "samba_nova"
    CUSTOM = "custom"

    @property
    def key(self) -> str:
        return self.value

    @property
    def default_endpoint(self) -> str:
        return {
            CloudProvider.GITHUB_MODELS: "https://models.github.ai/inference/chat/completions",
            CloudProvider.GROQ: "https://api.groq.com/openai/v1/chat/completions",
            CloudProvider.OPEN_ROUTER: "https://openrouter.ai/api/v1/chat/completions",
            CloudProvider.OPENAI: "https://api.openai.com/v1/chat/completions",
            CloudProvider.GEMINI: "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions",
            CloudProvider.SAMBA_NOVA: "https://api.sambanova.ai/v1/chat/completions",
        }.get(self, "")


class PolishModel(str, Enum):
    LLAMA_TAIWAN = "llama_taiwan"
    QWEN25 = "qwen25"
    QWEN3 = "qwen3"

    @property
    def filename(self) -> str:
        return {
            PolishModel.LLAMA_TAIWAN: "Llama-3-Taiwan-8B-Instruct.Q4_K_M.gguf",
            PolishModel.QWEN25: "qwen2.5-7b-instruct-q4_k_m.gguf",
            PolishModel.QWEN3: "Qwen3-8B-Q4_K_M.gguf",
        }[self]

    @property
    def display_name(self) -> str:
        return {
            PolishModel.LLAMA_TAIWAN: "Llama 3 Taiwan 8B",
            PolishModel.QWEN25: "Qwen 2.5 7B",
            PolishModel.QWEN3: "Qwen 3 8B",
        }[self]

    @property
    def size_bytes(self) -> int:
        return {
            PolishModel.LLAMA_TAIWAN: 4_920_000_000,
            PolishModel.QWEN25: 4_680_000_000,
            PolishModel.QWEN3: 5_030_000_000,
        }[self]

    @property
    def chat_template(self) -> str:
        """Chat format name understood by llama.cpp."""
        if self is PolishModel.LLAMA_TAIWAN:
            return "llama-3"
        return "chatml"


class PolishCloudConfig(BaseModel):
    provider: CloudProvider = CloudProvider.GITHUB_MODELS
    api_key: str = Field(default="", repr=False)
    endpoint: str = ""
    model_id: str = "openai/gpt-4o-mini"


class MatchType(str, Enum):
    APP_NAME = "app_name"
    BUNDLE_ID = "bundle_id"
    URL = "url"


class PromptRule(BaseModel):
    name: str
    match_type: MatchType
    match_value: str
    prompt: str
    enabled: bool = True
    icon: Optional[str] = None


class DictionaryEntry(BaseModel):
    term: str
    enabled: bool = True


class DictionaryConfig(BaseModel):
    enabled: bool = True
    entries: List[DictionaryEntry] = Field(default_factory=list)

    def active_terms(self) -> List[str]:
        """Enabled, non-empty terms in their configured order."""
        if not self.enabled:
            return []
        return [e.term for e in self.entries if e.enabled and e.term]


def _default_prompt_rules_map() -> Dict[str, List[PromptRule]]:
    from ..polishing.prompts import default_prompt_rules
    return {"auto": default_prompt_rules()}


class PolishConfig(BaseModel):
    enabled: bool = False
    model: PolishModel = PolishModel.LLAMA_TAIWAN
    custom_prompt: Optional[str] = None
    # Substituted for {language} in the prompt; unset keeps the spoken language
    output_language: Optional[str] = None
    mode: PolishMode = PolishMode.CLOUD
    cloud: PolishCloudConfig = Field(default_factory=PolishCloudConfig)
    # Rules keyed by UI language; all keys are searched when matching
    prompt_rules: Dict[str, List[PromptRule]] = Field(default_factory=_default_prompt_rules_map)
    dictionary: DictionaryConfig = Field(default_factory=DictionaryConfig)
    # When false, "/no_think" is prepended to suppress chain-of-thought
    reasoning: bool = False

    @field_validator("prompt_rules", mode="before")
    @classmethod
    def _accept_flat_rule_list(cls, value):
        if isinstance(value, list):
            return {"auto": value}
        return value

    def all_rules(self) -> List[PromptRule]:
        return [rule for rules in self.prompt_rules.values() for rule in rules]


# ── Audio / application ─────────────────────────────────────────────────────

class AudioSettings(BaseModel):
    device: Optional[str] = None
    init_timeout_seconds: float = 5.0
    max_recording_seconds: float = 30.0
    buffer_cap_seconds: float = 120.0
    level_interval_ms: int = 50
    frames_per_buffer: int = 1024


class AppSettings(BaseModel):
    audio: AudioSettings = Field(default_factory=AudioSettings)
    stt: SttConfig = Field(default_factory=SttConfig)
    polish: PolishConfig = Field(default_factory=PolishConfig)
    models_directory: str = "models"
    auto_paste: bool = True
