"""Unit tests for DictaPipeConfig."""

import pytest
from pathlib import Path

from dictapipe.config import DictaPipeConfig, api_key_env_var
from dictapipe.models.settings import CloudProvider, PolishMode, SttMode, SttProvider, WhisperModel

SAMPLE_CONFIG = """
audio:
  device: USB
  max_recording_seconds: 20
models:
  directory: models
logging:
  level: DEBUG
  file_path: logs/dictapipe.log
google_cloud:
  credentials_path: creds/google.json
stt:
  mode: cloud
  language: zh-TW
  whisper_model: small
  cloud:
    provider: groq
polish:
  enabled: true
  mode: cloud
  cloud:
    provider: groq
    api_key: yaml-key
    model_id: llama-3.3-70b-versatile
  dictionary:
    entries:
      - term: Kubernetes
      - term: gRPC
        enabled: false
"""


@pytest.fixture
def config_file(temp_data_dir):
    path = temp_data_dir / "dictapipe.yaml"
    path.write_text(SAMPLE_CONFIG, encoding="utf-8")
    return path


@pytest.mark.unit
class TestDictaPipeConfig:
    """Test cases for DictaPipeConfig class."""

    def test_missing_file(self, temp_data_dir):
        with pytest.raises(FileNotFoundError):
            DictaPipeConfig(str(temp_data_dir / "missing.yaml"))

    def test_invalid_yaml(self, temp_data_dir):
        path = temp_data_dir / "bad.yaml"
        path.write_text("audio: [unclosed", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid YAML"):
            DictaPipeConfig(str(path))

    def test_non_mapping_yaml(self, temp_data_dir):
        path = temp_data_dir / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ValueError):
            DictaPipeConfig(str(path))

    def test_relative_paths_resolved_against_config_dir(self, config_file):
        config = DictaPipeConfig(str(config_file), environ={})
        config_dir = config_file.parent

        assert config.get("models.directory") == str(config_dir / "models")
        assert config.get("logging.file_path") == str(config_dir / "logs/dictapipe.log")
        assert config.get("google_cloud.credentials_path") == str(config_dir / "creds/google.json")

    def test_get_and_set(self, config_file):
        config = DictaPipeConfig(str(config_file), environ={})

        assert config.get("audio.device") == "USB"
        assert config.get("audio.missing", 42) == 42
        assert config.get("audio.device.deeper") is None

        config.set("output.auto_paste", False)
        config.set("audio.device", "Built-in")

        assert config.get("output.auto_paste") is False
        assert config.get("audio.device") == "Built-in"

    def test_typed_settings(self, config_file):
        settings = DictaPipeConfig(str(config_file), environ={}).settings()

        assert settings.audio.device == "USB"
        assert settings.audio.max_recording_seconds == 20
        assert settings.stt.mode == SttMode.CLOUD
        assert settings.stt.language == "zh-TW"
        assert settings.stt.whisper_model == WhisperModel.SMALL
        assert settings.stt.cloud.provider == SttProvider.GROQ
        assert settings.stt.cloud.credentials_path.endswith("google.json")
        assert settings.polish.enabled is True
        assert settings.polish.mode == PolishMode.CLOUD
        assert settings.polish.cloud.provider == CloudProvider.GROQ
        assert settings.polish.cloud.api_key == "yaml-key"
        assert settings.polish.dictionary.active_terms() == ["Kubernetes"]
        assert Path(settings.models_directory).is_absolute()

    def test_api_keys_from_environment(self, config_file):
        environ = {
            "DICTAPIPE_GROQ_API_KEY": "env-groq",
            "DICTAPIPE_OPEN_AI_API_KEY": "env-openai",
        }
        config = DictaPipeConfig(str(config_file), environ=environ)

        settings = config.settings()

        assert settings.stt.cloud.api_key == "env-groq"
        # YAML wins over the environment
        assert settings.polish.cloud.api_key == "yaml-key"

    def test_env_var_name(self):
        assert api_key_env_var("github_models") == "DICTAPIPE_GITHUB_MODELS_API_KEY"

    def test_defaults_without_file(self):
        config = DictaPipeConfig(None, environ={})

        settings = config.settings()

        assert config.config_file is None
        assert settings.stt.mode == SttMode.LOCAL
        assert settings.stt.language == "auto"
        assert settings.polish.enabled is False
        assert config.get_log_file_path() == "data/logs/dictapipe.log"

    def test_invalid_section(self, temp_data_dir):
        path = temp_data_dir / "invalid.yaml"
        path.write_text("stt:\n  mode: telepathy\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid configuration"):
            DictaPipeConfig(str(path), environ={}).settings()

    def test_empty_file_uses_defaults(self, temp_data_dir):
        path = temp_data_dir / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert DictaPipeConfig(str(path), environ={}).settings().audio.init_timeout_seconds == 5.0
