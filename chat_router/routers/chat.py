"""Chat assistant endpoint: routes a visitor turn and relays the reply stream."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ..dependencies import get_gatekeeper
from ..routing import schemas
from ..routing.gatekeeper import ConversationGatekeeper
from ..routing.generation import GENERIC_MESSAGE
from ..routing.models import Decision, Handoff, Rejected, Relay, Skipped

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

ROUTING_HEADERS = ("X-Conversation-Id", "X-AI-Mode", "X-AI-Confidence")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=schemas.ErrorResponse(error=message).model_dump(),
    )


def _relay_response(decision: Relay, request: Request) -> StreamingResponse:
    async def body() -> AsyncIterator[bytes]:
        try:
            async for chunk in decision.stream.iter_bytes():
                if await request.is_disconnected():
                    logger.info(
                        "Client left conversation %s, closing upstream stream",
                        decision.conversation_id,
                    )
                    break
                yield chunk
        finally:
            await decision.stream.aclose()

    return StreamingResponse(
        body(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "X-Conversation-Id": decision.conversation_id or "",
            "X-AI-Mode": decision.classification.mode.value,
            "X-AI-Confidence": str(decision.classification.confidence),
        },
    )


def to_response(decision: Decision, request: Request):
    if isinstance(decision, Relay):
        return _relay_response(decision, request)
    if isinstance(decision, Handoff):
        return JSONResponse(schemas.HandoffResponse(message=decision.message).model_dump())
    if isinstance(decision, Skipped):
        return JSONResponse(schemas.SkipResponse(reason=decision.reason.value).model_dump())
    if isinstance(decision, Rejected):
        return _error(decision.status_code, decision.error)
    raise TypeError(f"Unsupported decision: {decision!r}")


@router.post("/api/chat-assistant")
async def chat_assistant(
    request: Request,
    gatekeeper: ConversationGatekeeper = Depends(get_gatekeeper),
):
    """Answer one visitor turn.

    Responses:

    - ``200 text/event-stream``: the gateway's stream, relayed as is, with
      the conversation id, detected mode and confidence in headers;
    - ``200 {"handoff": true, ...}``: the visitor asked for a human;
    - ``200 {"skipped": true, "reason": ...}``: the assistant stays silent;
    - ``429``/``402``/``500 {"error": ...}``: the turn was refused.
    """
    try:
        payload = schemas.ChatRequest.model_validate(await request.json())
    except ValueError:
        logger.exception("Malformed chat request body")
        return _error(500, GENERIC_MESSAGE)
    decision = await gatekeeper.handle(payload)
    return to_response(decision, request)
