"""Application configuration handling."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

from chat_bridge.core.errors import ConfigurationError

ENV_PREFIX = "CHB_"
DEFAULT_CONFIG_PATH = Path("~/.config/chat-bridge/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("provider", "api_url"): "provider_api_url",
    ("provider", "api_key"): "provider_api_key",
    ("provider", "assistant_id"): "provider_assistant_id",
    ("provider", "stream"): "stream_completions",
    ("provider", "answer_mode"): "provider_answer_mode",
    ("provider", "probe_timeout"): "probe_timeout",
    ("provider", "completion_timeout"): "completion_timeout",
    ("provider", "max_frame_bytes"): "max_frame_bytes",
    ("search_agent", "url"): "search_agent_url",
    ("search_agent", "timeout"): "search_agent_timeout",
    ("server", "cors_origins"): "cors_origins",
}


class AnswerMode(str, enum.Enum):
    """How the provider fills the ``answer`` field of successive stream frames."""

    # every frame carries the whole answer so far and may rewrite earlier text
    FULL = "full"
    # every frame carries only the text added since the previous frame
    DELTA = "delta"


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".chat-bridge" / "chat.db")
    provider_api_url: str | None = None
    provider_api_key: str | None = None
    provider_assistant_id: str | None = None
    stream_completions: bool = False
    provider_answer_mode: AnswerMode = AnswerMode.FULL
    probe_timeout: float = 30.0
    completion_timeout: float = 180.0
    max_frame_bytes: int = 8 * 1024 * 1024
    search_agent_url: str | None = None
    search_agent_timeout: float = 300.0
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None

    def provider_config(self) -> "ProviderConfig":
        """Build the explicit provider configuration handed to the bridge."""
        missing = [
            name
            for name, value in (
                ("provider_api_url", self.provider_api_url),
                ("provider_api_key", self.provider_api_key),
                ("provider_assistant_id", self.provider_assistant_id),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing provider configuration: {', '.join(missing)}")
        return ProviderConfig(
            api_url=self.provider_api_url.rstrip("/"),
            api_key=self.provider_api_key,
            assistant_id=self.provider_assistant_id,
            stream=self.stream_completions,
            answer_mode=self.provider_answer_mode,
            probe_timeout=self.probe_timeout,
            completion_timeout=self.completion_timeout,
            max_frame_bytes=self.max_frame_bytes,
        )


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Connection details for the retrieval completion provider."""

    api_url: str
    api_key: str
    assistant_id: str
    stream: bool = False
    answer_mode: AnswerMode = AnswerMode.FULL
    probe_timeout: float = 30.0
    completion_timeout: float = 180.0
    max_frame_bytes: int = 8 * 1024 * 1024

    @property
    def completions_endpoint(self) -> str:
        return f"{self.api_url}/api/v1/chats/{self.assistant_id}/completions"

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with CHB_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["AnswerMode", "ProviderConfig", "Settings", "get_settings"]
