from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Dict, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

SERVER_NAME = "devin-mcp"
SERVER_VERSION = "0.1.0"
PROTOCOL_VERSION = "2024-11-05"

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "claude-plugins" / "devin" / "config.json"

_ENV_OVERRIDES: Dict[str, str] = {
    "DEVIN_API_BASE": "api_base_url",
    "DEVIN_API_VERSION": "api_version",
    "DEVIN_CREDENTIAL_BACKEND": "credential_backend",
    "DEVIN_CONFIG_PATH": "config_path",
    "DEVIN_SETUP_MODE": "setup_mode",
    "DEVIN_SETUP_HOST": "setup_host",
    "DEVIN_SETUP_PORT": "setup_port",
    "DEVIN_REQUEST_TIMEOUT": "request_timeout_seconds",
    "DEVIN_LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    api_base_url: str = Field("https://api.devin.ai", description="Root URL of the Devin REST API")
    api_version: Literal["v3beta1", "v1"] = "v3beta1"
    credential_backend: Literal["auto", "keychain", "file", "env"] = "auto"
    config_path: Path = DEFAULT_CONFIG_PATH
    setup_mode: Literal["inline", "browser"] = "inline"
    setup_host: str = "127.0.0.1"
    setup_port: int = Field(3747, ge=1, le=65535)
    setup_shutdown_delay_seconds: float = Field(1.5, ge=0)
    request_timeout_seconds: float = Field(
        30,
        ge=1,
        description="Timeout in seconds for Devin HTTP requests",
    )
    log_level: str = "INFO"

    @field_validator("api_base_url")
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("config_path")
    def expand_user(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("log_level")
    def normalize_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @property
    def resolved_backend(self) -> str:
        """Backend actually used once ``auto`` is resolved for this platform."""
        if self.credential_backend != "auto":
            return self.credential_backend
        return "keychain" if sys.platform == "darwin" else "file"

    @property
    def setup_url(self) -> str:
        return f"http://localhost:{self.setup_port}"


class ConfigLoaderError(RuntimeError):
    pass


def _env_overrides(environ: Dict[str, str]) -> Dict[str, str]:
    """Collect non-empty environment overrides keyed by settings field."""
    overrides: Dict[str, str] = {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is not None and value.strip():
            overrides[field_name] = value.strip()
    return overrides


def load_settings(environ: Dict[str, str] | None = None) -> Settings:
    """Build settings from defaults with environment variable overrides applied."""
    source = dict(os.environ) if environ is None else environ
    try:
        return Settings(**_env_overrides(source))
    except ValidationError as exc:
        raise ConfigLoaderError(str(exc)) from exc
