import json
import logging
import tempfile
from pathlib import Path
from logging.handlers import TimedRotatingFileHandler

import pytest
from starlette.testclient import TestClient

from chat_router.app_logging import init_logging, scrub


def _clear_handlers(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    return logger


def _flush(*loggers: logging.Logger) -> None:
    for logger in loggers:
        for handler in logger.handlers:
            handler.flush()


@pytest.fixture
def log_dir(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        monkeypatch.setenv("LOG_DIR", tmpdir)
        yield Path(tmpdir)


def test_timed_rotating_handler_configuration(log_dir, monkeypatch):
    monkeypatch.setenv("LOG_RETENTION_DAYS", "5")
    app_logger = _clear_handlers("chat_router")
    access_logger = _clear_handlers("uvicorn.access")

    init_logging()

    app_handler = next(
        h for h in app_logger.handlers if isinstance(h, TimedRotatingFileHandler)
    )
    assert app_handler.when == "MIDNIGHT"
    assert app_handler.backupCount == 5

    access_handler = next(
        h for h in access_logger.handlers if isinstance(h, TimedRotatingFileHandler)
    )
    assert access_handler.when == "MIDNIGHT"
    assert access_handler.backupCount == 5

    app_logger.handlers.clear()
    access_logger.handlers.clear()


def test_log_files_and_redaction(log_dir, app_factory):
    _clear_handlers("chat_router")
    _clear_handlers("uvicorn.access")
    app = app_factory(log_dir, log_request_bodies=True)

    app_logger = logging.getLogger("chat_router")
    logging.getLogger("chat_router.routing.gatekeeper").info("hello router")

    with TestClient(app) as client:
        resp = client.post(
            "/echo",
            json={
                "visitorName": "Ana",
                "messages": [{"role": "user", "content": "meu cpf é 123"}],
            },
            headers={"Authorization": "Bearer secret"},
        )
        assert resp.status_code == 200

    access_logger = logging.getLogger("uvicorn.access")
    _flush(app_logger, access_logger)

    app_log = log_dir / "app.log"
    access_log = log_dir / "access.log"

    assert "hello router" in app_log.read_text()

    access_line = access_log.read_text().splitlines()[-1]
    payload = access_line.split(": ", 1)[1]
    data = json.loads(payload)
    assert data["headers"]["authorization"] == "***"
    assert data["body"]["visitorName"] == "***"
    assert data["body"]["messages"][0] == {"role": "user", "content": "<13 chars>"}
    assert "ai_mode" not in data

    app_logger.handlers.clear()
    access_logger.handlers.clear()


def test_access_log_records_routing_decision(log_dir, chat_app):
    access_logger = logging.getLogger("uvicorn.access")

    with TestClient(chat_app) as client:
        resp = client.post(
            "/api/chat-assistant",
            json={"messages": [{"role": "user", "content": "quanto custa o plano?"}]},
        )
        assert resp.status_code == 200

    _flush(access_logger)
    data = json.loads((log_dir / "access.log").read_text().splitlines()[-1].split(": ", 1)[1])
    assert data["path"] == "/api/chat-assistant"
    assert data["ai_mode"] == "sales"
    assert data["conversation_id"] == ""
    assert resp.headers["x-request-id"] == data["request_id"]

    access_logger.handlers.clear()


def test_scrub_masks_nested_fields_and_keeps_other_values():
    payload = {
        "visitorId": "v1",
        "VisitorName": "Ana",
        "messages": [{"role": "assistant", "content": "Olá!"}, {"role": "user", "content": None}],
        "nested": {"Authorization": "Bearer x", "items": [{"password": "hunter2"}]},
    }

    assert scrub(payload) == {
        "visitorId": "v1",
        "VisitorName": "***",
        "messages": [{"role": "assistant", "content": "<4 chars>"}, {"role": "user", "content": None}],
        "nested": {"Authorization": "***", "items": [{"password": "***"}]},
    }
