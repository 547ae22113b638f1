"""Outcomes produced by the conversation gatekeeper for one inbound turn."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from .generation import CompletionStream
from .modes import Classification


class SkipReason(str, Enum):
    AI_DISABLED = "ai_disabled"
    ADMIN_TAKEOVER = "admin_takeover"
    DUPLICATE_MESSAGE = "duplicate_message"


class ConversationStatus:
    ACTIVE = "active"
    PENDING_HUMAN = "pending_human"
    CLOSED = "closed"


@dataclass
class Rejected:
    """The turn was refused; ``error`` is safe to show to the visitor."""

    status_code: int
    error: str


@dataclass
class Skipped:
    reason: SkipReason
    conversation_id: str | None = None


@dataclass
class Handoff:
    message: str
    conversation_id: str | None = None


@dataclass
class Relay:
    """A generation stream is open and ready to be relayed to the caller."""

    conversation_id: str | None
    classification: Classification
    credits_authorized: bool
    stream: CompletionStream


Decision = Union[Rejected, Skipped, Handoff, Relay]

__all__ = [
    "ConversationStatus",
    "Decision",
    "Handoff",
    "Rejected",
    "Relay",
    "SkipReason",
    "Skipped",
]
