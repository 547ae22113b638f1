"""Pydantic schemas for the chat assistant and operator APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .modes import Mode


class ChatTurn(BaseModel):
    """One visitor or assistant turn; system instructions are composed server-side."""

    role: Literal["user", "assistant"]
    content: str = ""

    @field_validator("content", mode="before")
    @classmethod
    def _null_content_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ChatRequest(BaseModel):
    """Inbound body of the chat assistant endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatTurn] = Field(default_factory=list)
    conversation_id: str | None = Field(default=None, alias="conversationId")
    visitor_id: str | None = Field(default=None, alias="visitorId")
    visitor_name: str | None = Field(default=None, alias="visitorName")

    @property
    def latest_content(self) -> str:
        if not self.messages:
            return ""
        return self.messages[-1].content or ""


class Conversation(BaseModel):
    id: str
    visitor_id: str | None = None
    visitor_name: str | None = None
    current_mode: Mode = Mode.SUPPORT
    ai_confidence: float | None = None
    status: str = "active"
    assigned_admin_id: str | None = None
    escalation_reason: str | None = None
    transferred_at: datetime | None = None
    closed_at: datetime | None = None
    last_activity_at: datetime | None = None
    created_at: datetime | None = None


class ChatMessage(BaseModel):
    id: str
    conversation_id: str
    role: str
    content: str
    is_ai_response: bool = False
    admin_id: str | None = None
    message_type: str = "text"
    created_at: datetime


class ModeConfig(BaseModel):
    mode: Mode
    is_enabled: bool = True
    prompt_template: str | None = None
    updated_at: datetime | None = None


class LearnedPattern(BaseModel):
    id: str
    pattern: str
    response_template: str | None = None
    category: str = "general"
    success_score: float = 0.0
    is_active: bool = True


class AISettings(BaseModel):
    """Value of the ``chat_ai_enabled`` settings record."""

    model_config = ConfigDict(extra="allow")

    enabled: bool = True


# Response envelopes -----------------------------------------------------------


class HandoffResponse(BaseModel):
    handoff: Literal[True] = True
    message: str
    mode: Literal["handoff_human"] = "handoff_human"


class SkipResponse(BaseModel):
    skipped: Literal[True] = True
    reason: Literal["ai_disabled", "admin_takeover", "duplicate_message"]


class ErrorResponse(BaseModel):
    error: str


# Operator API -----------------------------------------------------------------


class SettingsUpdate(BaseModel):
    enabled: bool
    extra: dict[str, Any] = Field(default_factory=dict)


class ConversationList(BaseModel):
    items: list[Conversation]
    total: int


class ConversationDetail(Conversation):
    messages: list[ChatMessage] = Field(default_factory=list)


class ModeConfigUpdate(BaseModel):
    is_enabled: bool = True
    prompt_template: str | None = None


class LearningCreate(BaseModel):
    pattern: str = Field(min_length=1)
    response_template: str | None = None
    category: str = "general"
    success_score: float = 0.0
    is_active: bool = True
