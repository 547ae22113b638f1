"""Operator API: kill-switch, conversation takeover and mode configuration."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_chat_repository
from ..routing import schemas
from ..routing.models import ConversationStatus
from ..routing.modes import Mode
from ..routing.repository import (
    AI_ENABLED_SETTING,
    ChatRepository,
    ConversationNotFoundError,
)
from ..security.auth import OperatorTokenPayload, require_role

router = APIRouter(prefix="/api/admin/chat", tags=["chat-admin"])

TAKEOVER_NOTICE = "Um atendente assumiu a conversa. Como posso ajudar?"


def _require_conversation(
    repository: ChatRepository, conversation_id: str
) -> schemas.Conversation:
    conversation = repository.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
    return conversation


def _detail(repository: ChatRepository, conversation_id: str) -> schemas.ConversationDetail:
    conversation = _require_conversation(repository, conversation_id)
    return schemas.ConversationDetail(
        **conversation.model_dump(),
        messages=repository.list_messages(conversation_id),
    )


def _update(repository: ChatRepository, conversation_id: str, **changes) -> None:
    try:
        repository.update_conversation(conversation_id, **changes)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# Settings ---------------------------------------------------------------------


@router.get("/settings", response_model=schemas.AISettings)
def read_settings(
    operator: OperatorTokenPayload = Depends(require_role("operator")),
    repository: ChatRepository = Depends(get_chat_repository),
) -> schemas.AISettings:
    return schemas.AISettings.model_validate(repository.get_setting(AI_ENABLED_SETTING) or {})


@router.put("/settings", response_model=schemas.AISettings)
def update_settings(
    payload: schemas.SettingsUpdate,
    operator: OperatorTokenPayload = Depends(require_role("admin")),
    repository: ChatRepository = Depends(get_chat_repository),
) -> schemas.AISettings:
    value = {**(repository.get_setting(AI_ENABLED_SETTING) or {}), **payload.extra}
    value["enabled"] = payload.enabled
    repository.set_setting(AI_ENABLED_SETTING, value)
    return schemas.AISettings.model_validate(value)


# Conversations ----------------------------------------------------------------


@router.get("/conversations", response_model=schemas.ConversationList)
def list_conversations(
    status: str | None = None,
    limit: int = 50,
    operator: OperatorTokenPayload = Depends(require_role("operator")),
    repository: ChatRepository = Depends(get_chat_repository),
) -> schemas.ConversationList:
    items = repository.list_conversations(status=status, limit=limit)
    return schemas.ConversationList(items=items, total=len(items))


@router.get("/conversations/{conversation_id}", response_model=schemas.ConversationDetail)
def get_conversation(
    conversation_id: str,
    operator: OperatorTokenPayload = Depends(require_role("operator")),
    repository: ChatRepository = Depends(get_chat_repository),
) -> schemas.ConversationDetail:
    return _detail(repository, conversation_id)


@router.post("/conversations/{conversation_id}/takeover", response_model=schemas.ConversationDetail)
def take_over(
    conversation_id: str,
    operator: OperatorTokenPayload = Depends(require_role("operator")),
    repository: ChatRepository = Depends(get_chat_repository),
) -> schemas.ConversationDetail:
    """Assign the conversation to the caller; the assistant goes silent."""
    _require_conversation(repository, conversation_id)
    _update(
        repository,
        conversation_id,
        assigned_admin_id=operator["user_id"],
        transferred_at=datetime.now(timezone.utc),
    )
    repository.add_message(
        conversation_id,
        "system",
        TAKEOVER_NOTICE,
        is_ai_response=False,
        admin_id=operator["user_id"],
        message_type="system",
    )
    return _detail(repository, conversation_id)


@router.post("/conversations/{conversation_id}/release", response_model=schemas.ConversationDetail)
def release(
    conversation_id: str,
    operator: OperatorTokenPayload = Depends(require_role("operator")),
    repository: ChatRepository = Depends(get_chat_repository),
) -> schemas.ConversationDetail:
    """Hand the conversation back to the assistant."""
    _update(
        repository,
        conversation_id,
        assigned_admin_id=None,
        status=ConversationStatus.ACTIVE,
    )
    return _detail(repository, conversation_id)


@router.post("/conversations/{conversation_id}/close", response_model=schemas.ConversationDetail)
def close(
    conversation_id: str,
    operator: OperatorTokenPayload = Depends(require_role("operator")),
    repository: ChatRepository = Depends(get_chat_repository),
) -> schemas.ConversationDetail:
    _update(
        repository,
        conversation_id,
        status=ConversationStatus.CLOSED,
        closed_at=datetime.now(timezone.utc),
    )
    return _detail(repository, conversation_id)


# Modes and learned patterns -----------------------------------------------------


@router.get("/modes", response_model=list[schemas.ModeConfig])
def list_modes(
    operator: OperatorTokenPayload = Depends(require_role("operator")),
    repository: ChatRepository = Depends(get_chat_repository),
) -> list[schemas.ModeConfig]:
    return repository.list_mode_configs()


@router.put("/modes/{mode}", response_model=schemas.ModeConfig)
def update_mode(
    mode: Mode,
    payload: schemas.ModeConfigUpdate,
    operator: OperatorTokenPayload = Depends(require_role("admin")),
    repository: ChatRepository = Depends(get_chat_repository),
) -> schemas.ModeConfig:
    if mode is Mode.HANDOFF_HUMAN:
        raise HTTPException(status_code=422, detail="Handoff mode has no prompt template")
    return repository.upsert_mode_config(mode, payload)


@router.post("/learnings", response_model=schemas.LearnedPattern, status_code=201)
def add_learning(
    payload: schemas.LearningCreate,
    operator: OperatorTokenPayload = Depends(require_role("admin")),
    repository: ChatRepository = Depends(get_chat_repository),
) -> schemas.LearnedPattern:
    return repository.add_learning(payload)
