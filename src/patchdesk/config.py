"""Configuration loader: YAML file with environment variable fallbacks."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-sonnet-4.5"


@dataclass
class AIConfig:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    verify_ssl: bool = True
    max_duration: int = 30  # seconds; hard cap for one chat request
    max_steps: int = 5  # model steps per request when tool results are fed back
    connect_timeout: int = 5
    first_token_timeout: int = 30
    chunk_stall_timeout: int = 30


@dataclass
class AuthConfig:
    base_url: str
    timeout: float = 5.0  # seconds; per session lookup


@dataclass
class AppSettings:
    host: str = "127.0.0.1"
    port: int = 3000


@dataclass
class AppConfig:
    ai: AIConfig
    auth: AuthConfig
    app: AppSettings = field(default_factory=AppSettings)


def _get_config_path() -> Path:
    return Path.home() / ".patchdesk" / "config.yaml"


def _clamped_int(raw: Any, default: int, lo: int, hi: int) -> int:
    try:
        return max(lo, min(hi, int(raw)))
    except (ValueError, TypeError):
        return default


def load_config(config_path: Path | None = None) -> AppConfig:
    raw: dict[str, Any] = {}
    path = config_path or _get_config_path()

    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}

    ai_raw = raw.get("ai", {}) or {}
    base_url = ai_raw.get("base_url") or os.environ.get("OPENROUTER_BASE_URL", DEFAULT_BASE_URL)
    api_key = ai_raw.get("api_key") or os.environ.get("OPENROUTER_API_KEY", "")
    model = ai_raw.get("model") or os.environ.get("PATCHDESK_MODEL", DEFAULT_MODEL)

    if not api_key:
        raise ValueError(
            f"AI api_key is required. Set 'ai.api_key' in config.yaml ({path}) or OPENROUTER_API_KEY environment variable."
        )

    verify_ssl_raw = ai_raw.get("verify_ssl", os.environ.get("PATCHDESK_VERIFY_SSL", "true"))
    verify_ssl = str(verify_ssl_raw).lower() not in ("false", "0", "no")

    max_duration = _clamped_int(
        ai_raw.get("max_duration", os.environ.get("PATCHDESK_MAX_DURATION", 30)), 30, 5, 300
    )

    ai = AIConfig(
        api_key=api_key,
        base_url=base_url,
        model=model,
        verify_ssl=verify_ssl,
        max_duration=max_duration,
        max_steps=_clamped_int(ai_raw.get("max_steps", 5), 5, 1, 20),
        connect_timeout=_clamped_int(ai_raw.get("connect_timeout", 5), 5, 1, 60),
        first_token_timeout=_clamped_int(ai_raw.get("first_token_timeout", 30), 30, 1, 300),
        chunk_stall_timeout=_clamped_int(ai_raw.get("chunk_stall_timeout", 30), 30, 1, 300),
    )

    auth_raw = raw.get("auth", {}) or {}
    auth_url = auth_raw.get("base_url") or os.environ.get("PATCHDESK_AUTH_URL", "")
    if not auth_url:
        raise ValueError(
            "Auth base_url is required. Set 'auth.base_url' in config.yaml "
            f"({path}) or PATCHDESK_AUTH_URL environment variable."
        )
    try:
        auth_timeout = float(auth_raw.get("timeout", 5.0))
    except (ValueError, TypeError):
        auth_timeout = 5.0
    auth = AuthConfig(base_url=auth_url.rstrip("/"), timeout=auth_timeout)

    app_raw = raw.get("app", {}) or {}
    app_settings = AppSettings(
        host=app_raw.get("host", "127.0.0.1"),
        port=int(app_raw.get("port", 3000)),
    )

    return AppConfig(ai=ai, auth=auth, app=app_settings)
