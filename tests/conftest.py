import pathlib
import sys
from contextlib import AsyncExitStack
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from chat_router.app_logging import init_logging
from chat_router.dependencies import (
    get_chat_repository,
    get_generation_client,
    reset_shared_state,
)
from chat_router.routing.generation import CompletionStream
from chat_router.routing.repository import InMemoryChatRepository
from chat_router.settings import reset_settings_cache

SSE_CHUNKS = (
    b'data: {"choices":[{"delta":{"content":"Ol\xc3\xa1"}}]}\n\n',
    b'data: {"choices":[{"delta":{"content":"!"}}]}\n\n',
    b"data: [DONE]\n\n",
)


class FakeUpstream:
    """Stands in for an open streaming HTTP response from the gateway."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.closed = False

    async def iter_bytes(self):
        for chunk in self.chunks:
            yield chunk

    async def close(self):
        self.closed = True


class FakeGeneration:
    """Records prompts and hands back a canned stream, or raises ``error``."""

    def __init__(self, chunks=SSE_CHUNKS, error=None):
        self.chunks = chunks
        self.error = error
        self.calls = []
        self.upstreams = []

    async def open_stream(self, system_prompt, history):
        self.calls.append((system_prompt, list(history)))
        if self.error is not None:
            raise self.error
        upstream = FakeUpstream(self.chunks)
        stack = AsyncExitStack()
        stack.push_async_callback(upstream.close)
        self.upstreams.append(upstream)
        return CompletionStream(upstream, stack)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Every test starts with default settings and fresh process-wide state."""

    for name in ("DATABASE_URL", "AI_GATEWAY_API_KEY", "ADMIN_UI_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("EXPOSE_METRICS", "false")
    reset_settings_cache()
    reset_shared_state()
    yield
    reset_settings_cache()
    reset_shared_state()


@pytest.fixture
def repository():
    return InMemoryChatRepository()


@pytest.fixture
def fake_generation():
    return FakeGeneration()


@pytest.fixture
def chat_app(repository, fake_generation) -> FastAPI:
    from chat_router.main import create_app

    app = create_app()
    app.dependency_overrides[get_chat_repository] = lambda: repository
    app.dependency_overrides[get_generation_client] = lambda: fake_generation
    return app


@pytest.fixture
def client(chat_app):
    return TestClient(chat_app)


@pytest.fixture
def token_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure operator token validation."""

    monkeypatch.setenv("CHAT_TOKEN_SECRET", "secret-key")
    monkeypatch.setenv("CHAT_TOKEN_AUDIENCE", "chat-admin")
    monkeypatch.setenv("CHAT_TOKEN_ISSUER", "auth.chat")
    monkeypatch.setenv("CHAT_TOKEN_ALGORITHM", "HS256")


def issue_token(
    *,
    secret: str = "secret-key",
    audience: str = "chat-admin",
    issuer: str = "auth.chat",
    user_id: str | None = "operator-1",
    expires_in: timedelta = timedelta(minutes=5),
    **extra_claims,
) -> str:
    """Generate a signed operator JWT for tests."""

    payload: dict[str, object] = {
        "aud": audience,
        "iss": issuer,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    if user_id is not None:
        payload["user_id"] = user_id
    payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_header(role: str, user_id: str = "operator-1") -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user_id=user_id, roles=[role])}"}


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app
