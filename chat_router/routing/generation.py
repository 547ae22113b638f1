"""Streaming relay to the OpenAI-compatible generation gateway."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import AsyncExitStack
from typing import Any

import openai
from openai import AsyncOpenAI

from ..settings import RouterSettings, get_settings

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "Muitas solicitações. Por favor, aguarde um momento."
QUOTA_MESSAGE = "Serviço temporariamente indisponível."
GENERIC_MESSAGE = "Erro ao processar sua mensagem."


class GenerationError(RuntimeError):
    """Non-success answer from the gateway, carrying what the caller should see."""

    def __init__(self, status_code: int, message: str, *, upstream_status: int | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.upstream_status = upstream_status


def _map_status_error(exc: openai.APIStatusError) -> GenerationError:
    status = exc.status_code
    if status == 429:
        return GenerationError(429, RATE_LIMITED_MESSAGE, upstream_status=status)
    if status == 402:
        return GenerationError(402, QUOTA_MESSAGE, upstream_status=status)
    body = exc.body if exc.body is not None else exc.message
    logger.error("AI gateway error: status=%s body=%s", status, body)
    return GenerationError(500, GENERIC_MESSAGE, upstream_status=status)


class CompletionStream:
    """An open upstream stream whose raw bytes are relayed untouched.

    The upstream response is released when iteration finishes, when the
    consumer stops early (client disconnect closes the generator) or when
    :meth:`aclose` is called.
    """

    def __init__(self, response: Any, stack: AsyncExitStack) -> None:
        self._response = response
        self._stack = stack
        self._closed = False

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.iter_bytes():
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._stack.aclose()


class GenerationClient:
    """Open streaming chat completions against the configured gateway."""

    def __init__(
        self,
        settings: RouterSettings | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._settings.gateway_api_key:
                raise RuntimeError("AI_GATEWAY_API_KEY is not configured")
            self._client = AsyncOpenAI(
                api_key=self._settings.gateway_api_key,
                base_url=self._settings.gateway_base_url,
                timeout=self._settings.gateway_timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def open_stream(
        self, system_prompt: str, history: Sequence[dict[str, str]]
    ) -> CompletionStream:
        """Start a streaming completion; raises :class:`GenerationError` on HTTP failure."""

        client = self._get_client()
        messages = [{"role": "system", "content": system_prompt}, *history]
        stack = AsyncExitStack()
        try:
            response = await stack.enter_async_context(
                client.chat.completions.with_streaming_response.create(
                    model=self._settings.gateway_model,
                    messages=messages,
                    stream=True,
                )
            )
        except openai.APIStatusError as exc:
            await stack.aclose()
            raise _map_status_error(exc) from exc
        except BaseException:
            await stack.aclose()
            raise
        return CompletionStream(response, stack)


__all__ = [
    "CompletionStream",
    "GENERIC_MESSAGE",
    "GenerationClient",
    "GenerationError",
    "QUOTA_MESSAGE",
    "RATE_LIMITED_MESSAGE",
]
