# duckchat/config/settings.py
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from duckchat.agent.context.structs import ContextBudget
from duckchat.exceptions.config import ConfigError
from duckchat.models import normalize_alias

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_HEADERS = Path(__file__).parent / "fallback_headers.json"


class Settings(BaseSettings):
    # === Upstream endpoints ===
    status_url: str = "https://duckduckgo.com/duckchat/v1/status"
    chat_url: str = "https://duckduckgo.com/duckchat/v1/chat"
    page_url: str = "https://duckduckgo.com/?q=DuckDuckGo+AI+Chat&ia=chat&duckai=1"

    # === Timeouts & retry (seconds) ===
    bootstrap_timeout: float = 10.0
    chat_timeout: float = 30.0
    header_timeout: float = 30.0
    challenge_backoff: float = 2.0
    max_retries: int = 3

    # === Conversation ===
    default_model: str = "gpt-4o-mini"
    global_prompt: str = ""

    # === Context budget ===
    max_context_bytes: int = 50_000
    importance_threshold: float = 0.3
    compression_ratio: float = 0.7
    max_messages: int = 30
    max_duplicates: int = 3

    # === History ===
    history_dir: Path = Field(default=Path("~/.duckchat/history"))
    history_max_sessions: int = 100
    history_retention_days: int = 30

    # === Headers ===
    fallback_headers_path: Path = Field(default=DEFAULT_FALLBACK_HEADERS)

    # === Logging ===
    log_level: str = "WARNING"
    log_file: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_prefix="DUCKCHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_and_compute(self) -> "Settings":
        """Validate ranges and normalize derived fields."""

        # 1. Log level
        if self.log_level.upper() not in logging._nameToLevel:
            raise ConfigError(
                f"Invalid log level: {self.log_level}",
                field_name="log_level",
                invalid_value=self.log_level,
            )
        self.log_level = self.log_level.upper()

        # 2. Model alias
        alias = normalize_alias(self.default_model)
        if alias is None:
            raise ConfigError(
                f"Unknown model alias: {self.default_model}",
                field_name="default_model",
                invalid_value=self.default_model,
            )
        self.default_model = alias

        # 3. Budget
        if self.max_context_bytes <= 0:
            raise ConfigError(
                "max_context_bytes must be positive",
                field_name="max_context_bytes",
                invalid_value=self.max_context_bytes,
            )
        for name in ("importance_threshold", "compression_ratio"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(
                    f"{name} must be within [0, 1]",
                    field_name=name,
                    invalid_value=value,
                )

        # 4. Retry
        if self.max_retries < 0:
            raise ConfigError(
                "max_retries cannot be negative",
                field_name="max_retries",
                invalid_value=self.max_retries,
            )

        self.history_dir = self.history_dir.expanduser()
        return self

    def context_budget(self) -> ContextBudget:
        """Budget consulted by the context optimizer."""
        return ContextBudget(
            max_bytes=self.max_context_bytes,
            importance_threshold=self.importance_threshold,
            target_compression_ratio=self.compression_ratio,
            max_messages=self.max_messages,
            max_duplicates=self.max_duplicates,
        )

    def load_fallback_headers(self) -> Dict[str, Any]:
        """Read the last-known-good header set from disk."""
        path = self.fallback_headers_path.expanduser()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(
                f"Failed to read fallback headers from {path}: {e}",
                field_name="fallback_headers_path",
                invalid_value=str(path),
            ) from e
        if not isinstance(data, dict):
            raise ConfigError(
                f"Fallback headers file must hold a JSON object: {path}",
                field_name="fallback_headers_path",
                invalid_value=str(path),
            )
        logger.debug("Loaded fallback headers from %s", path)
        return {k: v for k, v in data.items() if not k.startswith("_")}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
