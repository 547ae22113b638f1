"""Per-turn decision logic for the chat assistant.

:class:`ConversationGatekeeper` decides, for each inbound turn, whether the
assistant may answer at all, which mode governs the answer, whether the
answer would repeat something just sent, and whether paid behaviour is
unlocked. Checks run in a fixed order:

1. visitor rate limit;
2. conversation resolution (lazy creation for new visitors);
3. global kill-switch (a missing settings record means enabled);
4. operator takeover;
5. mode classification, persisted on the conversation;
6. handoff to a human, answered with a fixed notice and no generation;
7. prompt composition and the streaming generation request.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from . import schemas
from .credits import is_authorized
from .dedup import ResponseCache
from .generation import GENERIC_MESSAGE, GenerationClient, GenerationError
from .models import (
    ConversationStatus,
    Decision,
    Handoff,
    Rejected,
    Relay,
    SkipReason,
    Skipped,
)
from .modes import Mode, classify
from .prompts import (
    HANDOFF_ESCALATION_REASON,
    HANDOFF_NOTICE,
    PromptTemplateStore,
    compose_system_prompt,
)
from .rate_limit import VisitorRateLimiter
from .repository import AI_ENABLED_SETTING, ChatRepository, ConversationNotFoundError

logger = logging.getLogger(__name__)

TOO_MANY_MESSAGES = "Muitas mensagens. Por favor, aguarde um momento."
LEARNINGS_LIMIT = 5


class ConversationGatekeeper:
    """Route one chat turn to a skip, a handoff notice or a generation stream."""

    def __init__(
        self,
        repository: ChatRepository,
        *,
        rate_limiter: VisitorRateLimiter,
        response_cache: ResponseCache,
        generation: GenerationClient,
        templates: PromptTemplateStore | None = None,
    ) -> None:
        self._repository = repository
        self._rate_limiter = rate_limiter
        self._responses = response_cache
        self._generation = generation
        self._templates = templates or PromptTemplateStore()

    async def handle(self, request: schemas.ChatRequest) -> Decision:
        """Evaluate ``request``; unexpected failures become a generic rejection."""

        try:
            return await self._evaluate(request)
        except Exception:
            logger.exception("Chat turn failed")
            return Rejected(500, GENERIC_MESSAGE)

    # ------------------------------------------------------------------
    # Steps

    async def _evaluate(self, request: schemas.ChatRequest) -> Decision:
        visitor_id = request.visitor_id
        if visitor_id and not self._rate_limiter.allow(visitor_id):
            return Rejected(429, TOO_MANY_MESSAGES)

        conversation_id = self._resolve_conversation(request)

        if not self._ai_enabled():
            logger.info("AI is disabled globally")
            return Skipped(SkipReason.AI_DISABLED, conversation_id)

        stored = False
        if conversation_id:
            conversation = self._repository.get_conversation(conversation_id)
            if conversation is None:
                logger.warning(
                    "Conversation %s not found, answering without persisted state",
                    conversation_id,
                )
            elif conversation.assigned_admin_id:
                logger.info("Operator took over conversation %s, skipping AI", conversation_id)
                return Skipped(SkipReason.ADMIN_TAKEOVER, conversation_id)
            else:
                stored = True

        latest = request.latest_content
        classification = classify(latest)
        logger.info(
            "Detected mode %s (confidence %.2f) for conversation %s",
            classification.mode.value,
            classification.confidence,
            conversation_id,
        )
        if stored:
            stored = self._persist(
                conversation_id,
                current_mode=classification.mode,
                ai_confidence=classification.confidence,
                last_activity_at=datetime.now(timezone.utc),
            )

        if classification.mode is Mode.HANDOFF_HUMAN:
            return self._hand_off(conversation_id, stored=stored)

        config = self._repository.get_mode_config(classification.mode)
        template = self._templates.resolve(classification.mode, config)
        credits_authorized = is_authorized(latest)
        learnings = self._repository.list_learnings(
            classification.mode.value, limit=LEARNINGS_LIMIT
        )
        system_prompt = compose_system_prompt(
            template,
            classification,
            credits_authorized=credits_authorized,
            learnings=learnings,
        )

        history = [turn.model_dump() for turn in request.messages]
        try:
            stream = await self._generation.open_stream(system_prompt, history)
        except GenerationError as exc:
            logger.warning(
                "Generation refused for conversation %s: upstream status %s",
                conversation_id,
                exc.upstream_status,
            )
            return Rejected(exc.status_code, exc.message)

        return Relay(
            conversation_id=conversation_id,
            classification=classification,
            credits_authorized=credits_authorized,
            stream=stream,
        )

    def _resolve_conversation(self, request: schemas.ChatRequest) -> str | None:
        if request.conversation_id or not request.visitor_id:
            return request.conversation_id
        try:
            conversation = self._repository.create_conversation(
                request.visitor_id,
                request.visitor_name,
                current_mode=Mode.SUPPORT,
            )
        except Exception:
            # The turn is still answered, only without persisted state.
            logger.exception("Error creating conversation for visitor %s", request.visitor_id)
            return None
        logger.info("Created conversation %s", conversation.id)
        return conversation.id

    def _ai_enabled(self) -> bool:
        setting = self._repository.get_setting(AI_ENABLED_SETTING)
        if not setting:
            return True
        return setting.get("enabled") is not False

    def _persist(self, conversation_id: str, **changes) -> bool:
        """Apply ``changes``; returns ``False`` when the row has disappeared."""

        try:
            self._repository.update_conversation(conversation_id, **changes)
        except ConversationNotFoundError:
            logger.warning("Conversation %s vanished, skipping update", conversation_id)
            return False
        return True

    def _hand_off(self, conversation_id: str | None, *, stored: bool) -> Decision:
        if self._responses.is_duplicate(conversation_id, HANDOFF_NOTICE):
            logger.info("Skipping duplicate handoff notice for %s", conversation_id)
            return Skipped(SkipReason.DUPLICATE_MESSAGE, conversation_id)

        if stored and self._persist(
            conversation_id,
            status=ConversationStatus.PENDING_HUMAN,
            escalation_reason=HANDOFF_ESCALATION_REASON,
        ):
            self._repository.add_message(
                conversation_id,
                "assistant",
                HANDOFF_NOTICE,
                is_ai_response=True,
            )
        self._responses.record(conversation_id, HANDOFF_NOTICE)
        return Handoff(HANDOFF_NOTICE, conversation_id)


__all__ = ["ConversationGatekeeper", "TOO_MANY_MESSAGES"]
