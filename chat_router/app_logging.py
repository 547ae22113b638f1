"""Log files for the chat router.

``app.log`` collects everything under the ``chat_router`` logger namespace and
``access.log`` gets one JSON entry per HTTP request. Both rotate at midnight.
Access entries carry the routing headers of the answer, so a chat turn can be
traced from the visitor id to the mode it was routed to. Visitor text never
reaches the files: message ``content`` is reduced to its length and personal
or credential fields are masked.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request, Response

from .settings import _env_bool

APP_LOGGER_NAME = "chat_router"
ACCESS_LOGGER_NAME = "uvicorn.access"
UNLOGGED_PATHS = frozenset({"/api/health", "/api/metrics"})

MASKED_FIELDS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "apikey",
        "token",
        "access_token",
        "password",
        "visitorname",
    }
)
LENGTH_ONLY_FIELDS = frozenset({"content"})


@dataclasses.dataclass(frozen=True)
class LogConfig:
    directory: str = "logs"
    level: int = logging.INFO
    json_lines: bool = False
    request_bodies: bool = False
    retention_days: int = 7
    rotate_utc: bool = False

    @classmethod
    def from_env(cls) -> "LogConfig":
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        return cls(
            directory=os.getenv("LOG_DIR", "logs"),
            level=getattr(logging, level_name, logging.INFO),
            json_lines=_env_bool("LOG_JSON", False),
            request_bodies=_env_bool("LOG_REQUEST_BODIES", False),
            retention_days=int(os.getenv("LOG_RETENTION_DAYS", "7")),
            rotate_utc=_env_bool("LOG_ROTATE_UTC", False),
        )


class JsonLineFormatter(logging.Formatter):
    """Render each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _formatter(config: LogConfig) -> logging.Formatter:
    if config.json_lines:
        return JsonLineFormatter()
    return logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")


def _rotating_handler(config: LogConfig, filename: str) -> logging.Handler:
    handler = TimedRotatingFileHandler(
        os.path.join(config.directory, filename),
        when="midnight",
        backupCount=config.retention_days,
        utc=config.rotate_utc,
        encoding="utf-8",
    )
    handler.setFormatter(_formatter(config))
    return handler


def scrub(payload: Any) -> Any:
    """Mask credentials and personal fields, keep only the length of chat text."""

    if isinstance(payload, list):
        return [scrub(item) for item in payload]
    if not isinstance(payload, dict):
        return payload

    cleaned: dict[str, Any] = {}
    for key, value in payload.items():
        field = str(key).lower()
        if field in MASKED_FIELDS:
            cleaned[key] = "***"
        elif field in LENGTH_ONLY_FIELDS and isinstance(value, str):
            cleaned[key] = f"<{len(value)} chars>"
        else:
            cleaned[key] = scrub(value)
    return cleaned


async def _captured_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return scrub(json.loads(raw))
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def _access_entry(request: Request, response: Response, request_id: str, started: float) -> dict[str, Any]:
    client_ip = request.headers.get("X-Forwarded-For")
    if not client_ip and request.client is not None:
        client_ip = request.client.host

    entry: dict[str, Any] = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "client_ip": client_ip,
        "headers": scrub(dict(request.headers)),
    }
    ai_mode = response.headers.get("X-AI-Mode")
    if ai_mode:
        entry["ai_mode"] = ai_mode
        entry["conversation_id"] = response.headers.get("X-Conversation-Id")
    return entry


def install_access_log(app: FastAPI, config: LogConfig) -> None:
    """Log every request except health and metrics, tagging it with ``X-Request-Id``."""

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        if request.url.path in UNLOGGED_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        # Starlette caches the body, so the route can still read it.
        body = await _captured_body(request) if config.request_bodies else None

        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id

        entry = _access_entry(request, response, request_id, started)
        if body is not None:
            entry["body"] = body
        access_logger.info(json.dumps(entry, default=str, ensure_ascii=False))
        return response


def init_logging(app: FastAPI | None = None, config: LogConfig | None = None) -> LogConfig:
    """Attach the rotating file handlers and, given an app, the access log.

    An ``app.log`` handler configured elsewhere is left alone; access handlers
    are always replaced so uvicorn's console output does not double up.
    """

    config = config or LogConfig.from_env()
    os.makedirs(config.directory, exist_ok=True)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    if not app_logger.handlers:
        app_logger.addHandler(_rotating_handler(config, "app.log"))
    app_logger.setLevel(config.level)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    access_logger.handlers.clear()
    access_logger.addHandler(_rotating_handler(config, "access.log"))
    access_logger.setLevel(config.level)

    if app is not None:
        install_access_log(app, config)
    return config
