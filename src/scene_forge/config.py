"""Configuration loading and validation for Scene-Forge."""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.schemas import BatchKind

GOOGLE_KEY_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")
OPENROUTER_KEY_VARS = ("OPENROUTER_API_KEY",)


class ProviderConfig(BaseModel):
    """Remote model provider configuration."""

    provider: str = Field(default="google", description="Text provider: google or openrouter")
    api_key: Optional[str] = Field(default=None, description="API key (prefer env var)")
    image_model: str = Field(default="gemini-2.5-flash-image", description="Image generation model")
    text_model: str = Field(default="gemini-2.5-flash", description="Model for video prompts")
    openrouter_model: str = Field(
        default="google/gemini-2.0-flash-exp:free", description="OpenRouter chat model"
    )
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1")
    safety_threshold: str = Field(
        default="BLOCK_ONLY_HIGH", description="Harm block threshold for all categories"
    )
    request_timeout: Optional[float] = Field(
        default=None, gt=0, description="Per-request timeout in seconds; None means no timeout"
    )

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate provider choice."""
        valid = {"google", "openrouter"}
        v = v.lower()
        if v not in valid:
            raise ValueError(f"Provider must be one of: {valid}")
        return v

    def resolve_api_key(self, provider: Optional[str] = None) -> Optional[str]:
        """Return the configured key, falling back to the provider's env vars."""
        provider = provider or self.provider
        if self.api_key and self.api_key.strip() and provider == self.provider:
            return self.api_key.strip()

        env_vars = GOOGLE_KEY_VARS if provider == "google" else OPENROUTER_KEY_VARS
        for var in env_vars:
            value = os.environ.get(var)
            if value:
                return value
        return None


class RetryConfig(BaseModel):
    """Backoff for transient provider errors."""

    max_attempts: int = Field(default=10, ge=1, description="Total attempts including the first")
    base_delay: float = Field(default=5.0, ge=0, description="Delay before the second attempt (s)")
    max_delay: Optional[float] = Field(default=None, gt=0, description="Cap on a single delay (s)")
    jitter: float = Field(default=0.0, ge=0, description="Random extra delay up to this many seconds")


class PacingConfig(BaseModel):
    """Pause between consecutive steps of a batch, per batch kind (seconds)."""

    variants: float = Field(default=6.0, ge=0)
    random_set: float = Field(default=6.0, ge=0)
    extraction: float = Field(default=6.0, ge=0)
    character: float = Field(default=1.5, ge=0)
    continuation: float = Field(default=2.0, ge=0)

    def for_kind(self, kind: BatchKind) -> float:
        return getattr(self, kind.value)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid:
            raise ValueError(f"Log level must be one of: {valid}")
        return v


class Config(BaseSettings):
    """Main configuration for Scene-Forge."""

    model_config = SettingsConfigDict(
        env_prefix="SCENE_FORGE_",
        env_nested_delimiter="__",
    )

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    pacing: PacingConfig = Field(default_factory=PacingConfig)
    output_dir: str = Field(default="./outputs", description="Where the CLI writes results")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "Config":
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file

        Returns:
            Loaded Config instance

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ValueError: If the config is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # Substitute environment variables in string values
        data = _substitute_env_vars(data)

        return cls(**data)

    @classmethod
    def find_config(cls) -> Optional[Path]:
        """Find configuration file in standard locations.

        Searches in order:
        1. ./config.yaml
        2. ./config.yml
        3. ~/.config/scene-forge/config.yaml
        4. ~/.scene-forge.yaml

        Returns:
            Path to config file if found, None otherwise
        """
        search_paths = [
            Path("./config.yaml"),
            Path("./config.yml"),
            Path.home() / ".config" / "scene-forge" / "config.yaml",
            Path.home() / ".scene-forge.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    @classmethod
    def load(cls, config_path: Optional[Path | str] = None) -> "Config":
        """Load configuration from file or defaults.

        Args:
            config_path: Optional explicit path to config file

        Returns:
            Loaded Config instance

        Raises:
            FileNotFoundError: If explicit path provided but not found
        """
        if config_path:
            return cls.from_yaml(config_path)

        found = cls.find_config()
        if found:
            return cls.from_yaml(found)

        logging.getLogger(__name__).info("No configuration file found, using defaults")
        return cls()


def _substitute_env_vars(data):
    """Recursively substitute ${VAR} patterns with environment variables."""
    if isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        var_name = data[2:-1]
        return os.environ.get(var_name, data)
    return data


def setup_logging(config: Config, log_file: Optional[Path] = None) -> None:
    """Configure logging based on config settings.

    Args:
        config: Application configuration
        log_file: Optional path to log file
    """
    log_level = getattr(logging, config.logging.level)
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(log_format, date_format))
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format, date_format))
        root_logger.addHandler(file_handler)

    # Keep only INFO and above for noisy libraries
    third_party_loggers = [
        "httpx",
        "httpcore",
        "google_genai",
        "openai",
    ]
    for logger_name in third_party_loggers:
        logging.getLogger(logger_name).setLevel(logging.INFO)
