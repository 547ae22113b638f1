"""Mode routing for the chat assistant: classification, dedup, limits and relay."""

from . import schemas
from .credits import is_authorized
from .dedup import ResponseCache
from .gatekeeper import ConversationGatekeeper
from .generation import CompletionStream, GenerationClient, GenerationError
from .models import Decision, Handoff, Rejected, Relay, SkipReason, Skipped
from .modes import Classification, Mode, classify
from .rate_limit import VisitorRateLimiter
from .repository import (
    ChatRepository,
    ConversationNotFoundError,
    InMemoryChatRepository,
    PostgresChatRepository,
)

__all__ = [
    "ChatRepository",
    "Classification",
    "CompletionStream",
    "ConversationGatekeeper",
    "ConversationNotFoundError",
    "Decision",
    "GenerationClient",
    "GenerationError",
    "Handoff",
    "InMemoryChatRepository",
    "Mode",
    "PostgresChatRepository",
    "Rejected",
    "Relay",
    "ResponseCache",
    "SkipReason",
    "Skipped",
    "VisitorRateLimiter",
    "classify",
    "is_authorized",
    "schemas",
]
