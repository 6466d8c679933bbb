"""Configuration loading from TOML."""

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .defaults import config_dir, data_dir

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def expand_env_var(value: Any) -> Any:
    """Resolve "env:NAME" values from the environment.

    Unset variables resolve to None so optional integrations stay disabled.
    """
    if isinstance(value, str) and value.startswith("env:"):
        return os.environ.get(value[4:]) or None
    return value


@dataclass
class Config:
    """Configuration dataclass with validation.

    Loads from ~/.config/inkwell/config.toml. Everything in [backend] is
    optional: without a URL and key the stores never leave the device.
    """

    # Backend settings
    backend_url: Optional[str] = None
    backend_anon_key: Optional[str] = None
    backend_access_token: Optional[str] = None
    user_id: Optional[str] = None
    backend_timeout: float = 15.0

    # Review (LLM) settings
    review_model: str = "anthropic/claude-sonnet-4-20250514"
    review_temperature: float = 0.4
    review_max_tokens: int = 1500
    review_api_base: Optional[str] = None

    # Speech settings
    speech_model_id: str = "eleven_monolingual_v1"
    speech_output_dir: Optional[Path] = None

    # Storage and logging
    db_path: Optional[Path] = None
    log_level: str = "WARNING"

    @property
    def remote_enabled(self) -> bool:
        """True when a backend URL and project key are both configured."""
        return bool(self.backend_url and self.backend_anon_key)

    @property
    def recitation_dir(self) -> Path:
        return self.speech_output_dir or data_dir() / "recitations"

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any configuration values are invalid.
        """
        if self.backend_url and not self.backend_url.startswith(
            ("http://", "https://")
        ):
            raise ValueError(
                f"backend url must start with http:// or https://, got {self.backend_url}"
            )

        if self.backend_timeout <= 0:
            raise ValueError(
                f"backend timeout must be positive, got {self.backend_timeout}"
            )

        if not 0.0 <= self.review_temperature <= 2.0:
            raise ValueError(
                f"review temperature must be between 0 and 2, got {self.review_temperature}"
            )

        if self.review_max_tokens < 1:
            raise ValueError(
                f"review max_tokens must be at least 1, got {self.review_max_tokens}"
            )

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(
                f"log level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level}"
            )

    @classmethod
    def from_file(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from TOML file.

        Args:
            config_path: Optional path to config file.
                        Defaults to $XDG_CONFIG_HOME/inkwell/config.toml
                        (or ~/.config/inkwell/config.toml)

        Returns:
            Validated Config instance.

        Raises:
            FileNotFoundError: If the config file does not exist.
            ValueError: If the file cannot be parsed or holds invalid values.
        """
        if config_path is None:
            config_path = config_dir() / "config.toml"

        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                "Run 'inkwell init' to create the default configuration."
            )

        try:
            with open(config_path, "rb") as f:
                config_dict = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Failed to parse config file {config_path}: {e}")

        return cls.from_dict(config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "Config":
        """Build a Config from parsed TOML sections."""
        backend = config_dict.get("backend", {})
        review = config_dict.get("review", {})
        speech = config_dict.get("speech", {})
        storage = config_dict.get("storage", {})
        logging_section = config_dict.get("logging", {})

        output_dir = expand_env_var(speech.get("output_dir"))
        db_path = expand_env_var(storage.get("db_path"))

        try:
            config = cls(
                backend_url=expand_env_var(backend.get("url")),
                backend_anon_key=expand_env_var(backend.get("anon_key")),
                backend_access_token=expand_env_var(backend.get("access_token")),
                user_id=expand_env_var(backend.get("user_id")),
                backend_timeout=float(backend.get("timeout", 15.0)),
                review_model=review.get("model", cls.review_model),
                review_temperature=float(review.get("temperature", 0.4)),
                review_max_tokens=int(review.get("max_tokens", 1500)),
                review_api_base=expand_env_var(review.get("api_base")),
                speech_model_id=speech.get("model_id", cls.speech_model_id),
                speech_output_dir=Path(output_dir).expanduser() if output_dir else None,
                db_path=Path(db_path).expanduser() if db_path else None,
                log_level=str(logging_section.get("level", "WARNING")).upper(),
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid config value: {e}")

        config.validate()
        return config
