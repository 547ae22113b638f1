"""Runtime configuration for the chat router.

Values are read from environment variables once and cached; call
:func:`reset_settings_cache` after changing the environment (tests do this
through ``monkeypatch``).
"""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1"
DEFAULT_MODEL = "google/gemini-2.5-flash"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclasses.dataclass(frozen=True)
class RouterSettings:
    """Settings shared by the gatekeeper, the relay and the stores."""

    gateway_api_key: str | None
    gateway_base_url: str = DEFAULT_GATEWAY_URL
    gateway_model: str = DEFAULT_MODEL
    gateway_timeout_seconds: float = 60.0
    rate_limit: int = 20
    rate_window_seconds: int = 60
    rate_limit_storage_uri: str = "memory://"
    duplicate_window_seconds: float = 30.0
    duplicate_cache_size: int = 10
    database_url: str | None = None
    cors_origins: tuple[str, ...] = ()
    expose_metrics: bool = True


@lru_cache(maxsize=1)
def get_settings() -> RouterSettings:
    """Load settings from the environment."""

    origins = os.getenv("ADMIN_UI_ORIGINS", "")
    return RouterSettings(
        gateway_api_key=os.getenv("AI_GATEWAY_API_KEY") or None,
        gateway_base_url=os.getenv("AI_GATEWAY_BASE_URL", DEFAULT_GATEWAY_URL),
        gateway_model=os.getenv("AI_GATEWAY_MODEL", DEFAULT_MODEL),
        gateway_timeout_seconds=float(os.getenv("AI_GATEWAY_TIMEOUT", "60")),
        rate_limit=int(os.getenv("CHAT_RATE_LIMIT", "20")),
        rate_window_seconds=int(os.getenv("CHAT_RATE_WINDOW_SECONDS", "60")),
        rate_limit_storage_uri=os.getenv("CHAT_RATE_LIMIT_STORAGE_URI", "memory://"),
        duplicate_window_seconds=float(os.getenv("CHAT_DUPLICATE_WINDOW_SECONDS", "30")),
        duplicate_cache_size=int(os.getenv("CHAT_DUPLICATE_CACHE_SIZE", "10")),
        database_url=os.getenv("DATABASE_URL") or None,
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        expose_metrics=_env_bool("EXPOSE_METRICS", True),
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()


__all__ = ["RouterSettings", "get_settings", "reset_settings_cache"]
