"""YAML configuration loader for DictaPipe."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Mapping
import logging

from pydantic import ValidationError

from ..models.settings import AppSettings, AudioSettings, PolishConfig, SttConfig

logger = logging.getLogger(__name__)

ENV_KEY_TEMPLATE = "DICTAPIPE_{provider}_API_KEY"

# Relative paths in these keys are resolved against the config file directory
PATH_KEYS = (
    "models.directory",
    "logging.file_path",
    "google_cloud.credentials_path",
)


def api_key_env_var(provider_value: str) -> str:
    """Environment variable holding the API key for a provider, e.g. DICTAPIPE_GROQ_API_KEY."""
    return ENV_KEY_TEMPLATE.format(provider=provider_value.upper())


class DictaPipeConfig:
    """DictaPipe configuration loader."""

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, built-in defaults are used.
            environ: Environment to read API keys from (defaults to ``os.environ``)
        """
        self.environ = os.environ if environ is None else environ

        if config_path is None:
            self.config_file: Optional[Path] = None
            self.config: Dict[str, Any] = {}
            logger.info("No configuration file given, using defaults")
            return

        self.config_file = Path(config_path)
        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")

        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent
        for key_path in PATH_KEYS:
            section_name, key = key_path.split('.')
            section = config.get(section_name)
            if not isinstance(section, dict):
                continue
            value = section.get(key)
            if value and not os.path.isabs(value):
                section[key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'stt.language').

        Args:
            key_path: Dot-separated key path (e.g., 'google_cloud.credentials_path')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.config
        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'polish.enabled')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if not isinstance(config_dict.get(key), dict):
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def _env_api_key(self, provider_value: str) -> str:
        return self.environ.get(api_key_env_var(provider_value), "")

    def audio_settings(self) -> AudioSettings:
        return AudioSettings.model_validate(self.get('audio', {}) or {})

    def stt_config(self) -> SttConfig:
        """Speech-to-text settings with API key and Google credentials filled in."""
        stt = SttConfig.model_validate(self.get('stt', {}) or {})
        cloud = stt.cloud
        if not cloud.api_key:
            cloud.api_key = self._env_api_key(cloud.provider.value)
        if not cloud.credentials_path:
            cloud.credentials_path = self.get('google_cloud.credentials_path', '') or ''
        return stt

    def polish_config(self) -> PolishConfig:
        """Polishing settings with the API key filled in from the environment when absent."""
        polish = PolishConfig.model_validate(self.get('polish', {}) or {})
        if not polish.cloud.api_key:
            polish.cloud.api_key = self._env_api_key(polish.cloud.provider.value)
        return polish

    def settings(self) -> AppSettings:
        """Build typed settings from the loaded YAML.

        Raises:
            ValueError: if a section does not validate
        """
        try:
            return AppSettings(
                audio=self.audio_settings(),
                stt=self.stt_config(),
                polish=self.polish_config(),
                models_directory=self.get_models_directory(),
                auto_paste=bool(self.get('output.auto_paste', True)),
            )
        except ValidationError as e:
            raise ValueError(f"Invalid configuration: {e}") from e

    def get_models_directory(self) -> str:
        """Get models directory path."""
        models_dir = self.get('models.directory', 'models')
        return str(Path(models_dir).absolute())

    def get_log_file_path(self) -> str:
        return self.get('logging.file_path', 'data/logs/dictapipe.log')
