"""Startup and application configuration."""

import json
import os
from typing import Any, Dict, Literal, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .prompts import ERROR_MESSAGE, SYSTEM_PROMPT, WELCOME_MESSAGE

logger = structlog.get_logger()

ENV_PREFIX = "THEOLOGY_CHAT_"


class AppConfig(BaseModel):
    """Immutable application settings, built once at startup."""

    model_config = ConfigDict(frozen=True)

    app_id: str = "default-app-id"
    model: str = "gemini-2.5-flash-preview-09-2025"
    api_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    system_prompt: str = SYSTEM_PROMPT
    welcome_message: str = WELCOME_MESSAGE
    error_message: str = ERROR_MESSAGE
    users_segment: str = "users"
    collection: str = "chat_data"
    document: str = "conversation_data"
    max_attempts: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=2.0, gt=0)
    max_sources: int = Field(default=5, ge=0)
    search_tool: str = "google_search"
    ignore_stale_snapshots: bool = False
    store_backend: Literal["memory", "firestore"] = "memory"

    @property
    def completion_url(self) -> str:
        return f"{self.api_base_url}/models/{self.model}:generateContent"

    def document_path(self, user_id: str) -> str:
        """Path of the single conversation document owned by ``user_id``."""
        return "/".join(
            [
                "artifacts",
                self.app_id,
                self.users_segment,
                user_id,
                self.collection,
                self.document,
            ]
        )


class StartupConfig(BaseModel):
    """Values injected by the runtime environment."""

    model_config = ConfigDict(frozen=True)

    provider_config: Dict[str, Any]
    completion_api_key: str = Field(min_length=1)
    bootstrap_token: Optional[str] = None
    session_user_id: Optional[str] = None

    @field_validator("provider_config")
    @classmethod
    def _require_provider_api_key(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        if not value.get("apiKey"):
            raise ValueError("provider_config must contain an 'apiKey'")
        return value


def _get(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = environ.get(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _require(environ: Mapping[str, str], name: str) -> str:
    value = _get(environ, name)
    if value is None:
        raise ConfigurationError(f"{ENV_PREFIX}{name} is not set")
    return value


def load_startup_config(environ: Optional[Mapping[str, str]] = None) -> StartupConfig:
    """Build the startup configuration from environment variables."""
    environ = os.environ if environ is None else environ

    raw_provider = _require(environ, "PROVIDER_CONFIG")
    try:
        provider_config = json.loads(raw_provider)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{ENV_PREFIX}PROVIDER_CONFIG is not valid JSON: {e}") from e
    if not isinstance(provider_config, dict):
        raise ConfigurationError(f"{ENV_PREFIX}PROVIDER_CONFIG must be a JSON object")

    try:
        config = StartupConfig(
            provider_config=provider_config,
            completion_api_key=_require(environ, "API_KEY"),
            bootstrap_token=_get(environ, "BOOTSTRAP_TOKEN"),
            session_user_id=_get(environ, "SESSION_USER_ID"),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid startup configuration: {e}") from e

    logger.info(
        "startup_config_loaded",
        has_bootstrap_token=config.bootstrap_token is not None,
        has_session_user=config.session_user_id is not None,
    )
    return config


def load_app_config(environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build the application configuration, overriding defaults from the environment."""
    environ = os.environ if environ is None else environ

    overrides: Dict[str, Any] = {}
    for field, name in (
        ("app_id", "APP_ID"),
        ("model", "MODEL"),
        ("store_backend", "STORE"),
    ):
        value = _get(environ, name)
        if value is not None:
            overrides[field] = value

    stale = _get(environ, "IGNORE_STALE_SNAPSHOTS")
    if stale is not None:
        overrides["ignore_stale_snapshots"] = stale.lower() in {"1", "true", "yes"}

    try:
        return AppConfig(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid application configuration: {e}") from e
