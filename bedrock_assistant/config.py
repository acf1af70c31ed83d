"""
Configuration: defaults, an optional YAML file and environment overrides.

Loading priority (later wins):
  1. Built-in defaults
  2. Project dir .assistant.conf.yml, else global ~/.bedrock-assistant/config.yml
  3. Environment variables (after loading .env files)

Values are read once at startup and injected into the engine.
"""

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError
from .logger import get_logger

_log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".bedrock-assistant"
CONFIG_FILE = CONFIG_DIR / "config.yml"
HISTORY_FILE = CONFIG_DIR / "history.txt"
PROJECT_CONFIG_NAME = ".assistant.conf.yml"

DEFAULT_REGION = "us-east-1"
DEFAULT_CHAT_MODEL_ID = "anthropic.claude-3-haiku-20240307-v1:0"
DEFAULT_IMAGE_MODEL_ID = "amazon.titan-image-generator-v1"
DEFAULT_PYTHON = "python3"

REGION_KEY = "BEDROCK_REGION"
CHAT_MODEL_KEY = "BEDROCK_CHAT_MODEL_ID"
IMAGE_MODEL_KEY = "BEDROCK_IMAGE_MODEL_ID"
PYTHON_KEY = "BEDROCK_ASSISTANT_PYTHON"
VERBOSE_KEY = "BEDROCK_ASSISTANT_VERBOSE"


@dataclass
class Config:
    region: str = DEFAULT_REGION
    chat_model_id: str = DEFAULT_CHAT_MODEL_ID
    image_model_id: str = DEFAULT_IMAGE_MODEL_ID
    python_executable: str = DEFAULT_PYTHON
    max_tokens: int = 4096
    temperature: float = 0.0
    code_timeout: int = 30
    tool_parallelism: int = 1
    stream: bool = True
    verbose: bool = False
    open_images: bool = False
    image_prompt_suffix: Optional[str] = None
    _config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        for candidate in [project_path / PROJECT_CONFIG_NAME, CONFIG_FILE]:
            if candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                break

        config._apply_env()
        config.validate()
        return config

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            _log.warning("Ignoring unreadable config %s: %s", filepath, e)
            return
        if not isinstance(data, dict):
            _log.warning("Ignoring config %s: top level is not a mapping", filepath)
            return

        self.region = str(data.get("region", self.region))
        self.chat_model_id = str(data.get("chat-model", self.chat_model_id))
        self.image_model_id = str(data.get("image-model", self.image_model_id))
        self.python_executable = str(data.get("python", self.python_executable))
        self.max_tokens = self._coerce_positive_int(
            data.get("max-tokens", self.max_tokens), default=4096, min_value=1, max_value=200000
        )
        self.temperature = self._coerce_float(data.get("temperature", self.temperature), default=0.0)
        self.code_timeout = self._coerce_positive_int(
            data.get("code-timeout", self.code_timeout), default=30, min_value=1, max_value=600
        )
        self.tool_parallelism = self._coerce_positive_int(
            data.get("tool-parallelism", self.tool_parallelism), default=1, min_value=1, max_value=8
        )
        self.stream = self._coerce_bool(data.get("stream", self.stream), default=True)
        self.verbose = self._coerce_bool(data.get("verbose", self.verbose), default=False)
        self.open_images = self._coerce_bool(data.get("open-images", self.open_images), default=False)
        suffix = str(data.get("image-prompt-suffix") or "").strip()
        self.image_prompt_suffix = suffix or None

    def _apply_env(self):
        env_map = {
            REGION_KEY: ("region", str),
            CHAT_MODEL_KEY: ("chat_model_id", str),
            IMAGE_MODEL_KEY: ("image_model_id", str),
            PYTHON_KEY: ("python_executable", str),
            VERBOSE_KEY: ("verbose", lambda v: self._coerce_bool(v, default=self.verbose)),
        }
        for env_var, (attr, conv) in env_map.items():
            val = os.environ.get(env_var)
            if val:
                try:
                    setattr(self, attr, conv(val.strip()))
                except (ValueError, TypeError):
                    pass

    def validate(self):
        for name in ("region", "chat_model_id", "image_model_id", "python_executable"):
            if not str(getattr(self, name) or "").strip():
                raise ConfigError(f"Configuration value '{name}' must not be empty")

    def summary(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("_config_source", None)
        data["source"] = self._config_source or "(defaults)"
        return data

    @staticmethod
    def _coerce_bool(value, default: bool) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            if text in ("1", "true", "yes", "on"):
                return True
            if text in ("0", "false", "no", "off"):
                return False
        if isinstance(value, (int, float)):
            return bool(value)
        return default

    @staticmethod
    def _coerce_positive_int(value, default: int, min_value: int = 1, max_value: int = 100000) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return default
        if parsed < min_value:
            return min_value
        if parsed > max_value:
            return max_value
        return parsed

    @staticmethod
    def _coerce_float(value, default: float) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return default
