import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace

import httpx
import openai
import pytest

from chat_router.routing.generation import (
    GENERIC_MESSAGE,
    QUOTA_MESSAGE,
    RATE_LIMITED_MESSAGE,
    GenerationClient,
    GenerationError,
)
from chat_router.settings import RouterSettings
from conftest import SSE_CHUNKS, FakeUpstream


class FakeOpenAI:
    """Mimics ``client.chat.completions.with_streaming_response.create``."""

    def __init__(self, *, status_code: int | None = None, body=None):
        self.status_code = status_code
        self.body = body
        self.requests = []
        self.upstream = FakeUpstream(SSE_CHUNKS)
        self.exited = False
        self.chat = SimpleNamespace(
            completions=SimpleNamespace(
                with_streaming_response=SimpleNamespace(create=self._create)
            )
        )

    @asynccontextmanager
    async def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self.status_code is not None:
            request = httpx.Request("POST", "https://gateway.test/v1/chat/completions")
            response = httpx.Response(self.status_code, request=request)
            raise openai.APIStatusError("gateway error", response=response, body=self.body)
        try:
            yield self.upstream
        finally:
            self.exited = True


def _settings(**overrides):
    values = {"gateway_api_key": "test-key", "gateway_model": "test/model"}
    values.update(overrides)
    return RouterSettings(**values)


async def _collect(stream):
    return [chunk async for chunk in stream.iter_bytes()]


def test_stream_is_relayed_untouched():
    fake = FakeOpenAI()
    client = GenerationClient(_settings(), client=fake)

    async def run():
        stream = await client.open_stream("SYSTEM", [{"role": "user", "content": "oi"}])
        return await _collect(stream)

    assert asyncio.run(run()) == list(SSE_CHUNKS)
    assert fake.exited
    request = fake.requests[0]
    assert request["model"] == "test/model"
    assert request["stream"] is True
    assert request["messages"] == [
        {"role": "system", "content": "SYSTEM"},
        {"role": "user", "content": "oi"},
    ]


def test_closing_early_releases_the_upstream():
    fake = FakeOpenAI()
    client = GenerationClient(_settings(), client=fake)

    async def run():
        stream = await client.open_stream("SYSTEM", [])
        await stream.aclose()
        await stream.aclose()

    asyncio.run(run())
    assert fake.exited


@pytest.mark.parametrize(
    ("upstream", "status_code", "message"),
    [
        (429, 429, RATE_LIMITED_MESSAGE),
        (402, 402, QUOTA_MESSAGE),
        (500, 500, GENERIC_MESSAGE),
        (503, 500, GENERIC_MESSAGE),
        (401, 500, GENERIC_MESSAGE),
    ],
)
def test_gateway_status_is_mapped(upstream, status_code, message):
    fake = FakeOpenAI(status_code=upstream, body={"error": "upstream detail"})
    client = GenerationClient(_settings(), client=fake)

    with pytest.raises(GenerationError) as excinfo:
        asyncio.run(client.open_stream("SYSTEM", []))

    assert excinfo.value.status_code == status_code
    assert excinfo.value.message == message
    assert excinfo.value.upstream_status == upstream


def test_missing_api_key_is_a_configuration_error():
    client = GenerationClient(_settings(gateway_api_key=None))
    with pytest.raises(RuntimeError, match="AI_GATEWAY_API_KEY"):
        asyncio.run(client.open_stream("SYSTEM", []))
