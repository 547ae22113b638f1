"""Persistence for conversations, messages, settings and mode configuration."""
from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol
from uuid import UUID, uuid4

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from . import schemas
from .modes import Mode

AI_ENABLED_SETTING = "chat_ai_enabled"
SCHEMA_PATH = Path(__file__).resolve().parents[1] / "schema.sql"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_CONVERSATION_COLUMNS = {
    "visitor_name",
    "current_mode",
    "ai_confidence",
    "status",
    "assigned_admin_id",
    "escalation_reason",
    "transferred_at",
    "closed_at",
    "last_activity_at",
}


class ConversationNotFoundError(LookupError):
    """Raised when a conversation id does not exist."""


class ChatRepository(Protocol):
    """Abstraction over the stores the router reads and writes."""

    def get_conversation(self, conversation_id: str) -> Optional[schemas.Conversation]: ...

    def create_conversation(
        self,
        visitor_id: str,
        visitor_name: Optional[str] = None,
        current_mode: Mode = Mode.SUPPORT,
    ) -> schemas.Conversation: ...

    def update_conversation(self, conversation_id: str, **changes: Any) -> None: ...

    def list_conversations(
        self, status: Optional[str] = None, limit: int = 50
    ) -> List[schemas.Conversation]: ...

    def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        *,
        is_ai_response: bool,
        admin_id: Optional[str] = None,
        message_type: str = "text",
    ) -> schemas.ChatMessage: ...

    def list_messages(self, conversation_id: str, limit: int = 100) -> List[schemas.ChatMessage]: ...

    def get_setting(self, key: str) -> Optional[Dict[str, Any]]: ...

    def set_setting(self, key: str, value: Dict[str, Any]) -> None: ...

    def get_mode_config(self, mode: Mode) -> Optional[schemas.ModeConfig]: ...

    def list_mode_configs(self) -> List[schemas.ModeConfig]: ...

    def upsert_mode_config(
        self, mode: Mode, payload: schemas.ModeConfigUpdate
    ) -> schemas.ModeConfig: ...

    def list_learnings(self, category: str, limit: int = 5) -> List[schemas.LearnedPattern]: ...

    def add_learning(self, payload: schemas.LearningCreate) -> schemas.LearnedPattern: ...


def _check_columns(changes: Mapping[str, Any]) -> None:
    unknown = set(changes) - _CONVERSATION_COLUMNS
    if unknown:
        raise ValueError(f"Unknown conversation fields: {', '.join(sorted(unknown))}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryChatRepository:
    """Dictionary-backed repository for tests and local runs without a database."""

    def __init__(self) -> None:
        self._conversations: Dict[str, schemas.Conversation] = {}
        self._messages: Dict[str, List[schemas.ChatMessage]] = {}
        self._settings: Dict[str, Dict[str, Any]] = {}
        self._modes: Dict[Mode, schemas.ModeConfig] = {}
        self._learnings: List[schemas.LearnedPattern] = []

    def get_conversation(self, conversation_id: str) -> Optional[schemas.Conversation]:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy() if conversation else None

    def create_conversation(
        self,
        visitor_id: str,
        visitor_name: Optional[str] = None,
        current_mode: Mode = Mode.SUPPORT,
    ) -> schemas.Conversation:
        now = _utcnow()
        conversation = schemas.Conversation(
            id=str(uuid4()),
            visitor_id=visitor_id,
            visitor_name=visitor_name,
            current_mode=current_mode,
            last_activity_at=now,
            created_at=now,
        )
        self._conversations[conversation.id] = conversation
        self._messages[conversation.id] = []
        return conversation.model_copy()

    def update_conversation(self, conversation_id: str, **changes: Any) -> None:
        _check_columns(changes)
        existing = self._conversations.get(conversation_id)
        if existing is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        self._conversations[conversation_id] = existing.model_copy(update=changes)

    def list_conversations(
        self, status: Optional[str] = None, limit: int = 50
    ) -> List[schemas.Conversation]:
        items = [
            c.model_copy()
            for c in self._conversations.values()
            if status is None or c.status == status
        ]
        items.sort(key=lambda c: c.last_activity_at or _EPOCH, reverse=True)
        return items[:limit]

    def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        *,
        is_ai_response: bool,
        admin_id: Optional[str] = None,
        message_type: str = "text",
    ) -> schemas.ChatMessage:
        message = schemas.ChatMessage(
            id=str(uuid4()),
            conversation_id=conversation_id,
            role=role,
            content=content,
            is_ai_response=is_ai_response,
            admin_id=admin_id,
            message_type=message_type,
            created_at=_utcnow(),
        )
        self._messages.setdefault(conversation_id, []).append(message)
        return message

    def list_messages(self, conversation_id: str, limit: int = 100) -> List[schemas.ChatMessage]:
        return list(self._messages.get(conversation_id, []))[-limit:]

    def get_setting(self, key: str) -> Optional[Dict[str, Any]]:
        value = self._settings.get(key)
        return dict(value) if value is not None else None

    def set_setting(self, key: str, value: Dict[str, Any]) -> None:
        self._settings[key] = dict(value)

    def get_mode_config(self, mode: Mode) -> Optional[schemas.ModeConfig]:
        config = self._modes.get(mode)
        return config.model_copy() if config else None

    def list_mode_configs(self) -> List[schemas.ModeConfig]:
        return [self._modes[m].model_copy() for m in sorted(self._modes, key=lambda m: m.value)]

    def upsert_mode_config(
        self, mode: Mode, payload: schemas.ModeConfigUpdate
    ) -> schemas.ModeConfig:
        config = schemas.ModeConfig(
            mode=mode,
            is_enabled=payload.is_enabled,
            prompt_template=payload.prompt_template,
            updated_at=_utcnow(),
        )
        self._modes[mode] = config
        return config.model_copy()

    def list_learnings(self, category: str, limit: int = 5) -> List[schemas.LearnedPattern]:
        matches = [item for item in self._learnings if item.category == category and item.is_active]
        matches.sort(key=lambda item: item.success_score, reverse=True)
        return matches[:limit]

    def add_learning(self, payload: schemas.LearningCreate) -> schemas.LearnedPattern:
        learning = schemas.LearnedPattern(id=str(uuid4()), **payload.model_dump())
        self._learnings.append(learning)
        return learning


def ensure_schema(conn: psycopg.Connection, schema_sql_path: Path = SCHEMA_PATH) -> None:
    """Create the chat tables when missing.

    Non-destructive: every statement uses ``IF NOT EXISTS`` so it can run on
    each start-up.
    """

    with conn.cursor() as cur:
        cur.execute(schema_sql_path.read_text(encoding="utf-8"))
    conn.commit()


def _stringify_ids(row: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (str(v) if isinstance(v, UUID) else v) for k, v in row.items()}


def _is_uuid(value: str) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


class PostgresChatRepository:
    """PostgreSQL implementation of :class:`ChatRepository`."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    # Utility -----------------------------------------------------------------
    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    # Conversations -----------------------------------------------------------
    def get_conversation(self, conversation_id: str) -> Optional[schemas.Conversation]:
        # Client-held ids that are not UUIDs cannot match a row.
        if not _is_uuid(conversation_id):
            return None
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT id, visitor_id, visitor_name, current_mode, ai_confidence, status,
                       assigned_admin_id, escalation_reason, transferred_at, closed_at,
                       last_activity_at, created_at
                FROM chat_conversations WHERE id = %s
                """,
                (conversation_id,),
            )
            row = cur.fetchone()
        if not row:
            return None
        return schemas.Conversation.model_validate(_stringify_ids(row))

    def create_conversation(
        self,
        visitor_id: str,
        visitor_name: Optional[str] = None,
        current_mode: Mode = Mode.SUPPORT,
    ) -> schemas.Conversation:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO chat_conversations (visitor_id, visitor_name, current_mode, last_activity_at)
                VALUES (%s, %s, %s, now())
                RETURNING id, visitor_id, visitor_name, current_mode, ai_confidence, status,
                          assigned_admin_id, escalation_reason, transferred_at, closed_at,
                          last_activity_at, created_at
                """,
                (visitor_id, visitor_name, current_mode.value),
            )
            row = cur.fetchone()
        return schemas.Conversation.model_validate(_stringify_ids(row))

    def update_conversation(self, conversation_id: str, **changes: Any) -> None:
        _check_columns(changes)
        if not _is_uuid(conversation_id):
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        if not changes:
            return
        columns = sorted(changes)
        assignments = ", ".join(f"{column} = %s" for column in columns)
        values = [
            changes[c].value if isinstance(changes[c], Mode) else changes[c]
            for c in columns
        ]
        with self._conn.cursor() as cur:
            cur.execute(
                f"UPDATE chat_conversations SET {assignments} WHERE id = %s",
                (*values, conversation_id),
            )
            if cur.rowcount == 0:
                raise ConversationNotFoundError(f"Conversation {conversation_id} not found")

    def list_conversations(
        self, status: Optional[str] = None, limit: int = 50
    ) -> List[schemas.Conversation]:
        query = """
            SELECT id, visitor_id, visitor_name, current_mode, ai_confidence, status,
                   assigned_admin_id, escalation_reason, transferred_at, closed_at,
                   last_activity_at, created_at
            FROM chat_conversations
        """
        params: list[Any] = []
        if status is not None:
            query += " WHERE status = %s"
            params.append(status)
        query += " ORDER BY last_activity_at DESC NULLS LAST LIMIT %s"
        params.append(limit)
        with self._cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [schemas.Conversation.model_validate(_stringify_ids(r)) for r in rows]

    # Messages ----------------------------------------------------------------
    def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        *,
        is_ai_response: bool,
        admin_id: Optional[str] = None,
        message_type: str = "text",
    ) -> schemas.ChatMessage:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO chat_messages (conversation_id, role, content, is_ai_response, admin_id, message_type)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING id, conversation_id, role, content, is_ai_response, admin_id,
                          message_type, created_at
                """,
                (conversation_id, role, content, is_ai_response, admin_id, message_type),
            )
            row = cur.fetchone()
        return schemas.ChatMessage.model_validate(_stringify_ids(row))

    def list_messages(self, conversation_id: str, limit: int = 100) -> List[schemas.ChatMessage]:
        if not _is_uuid(conversation_id):
            return []
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT id, conversation_id, role, content, is_ai_response, admin_id,
                       message_type, created_at
                FROM (
                    SELECT * FROM chat_messages WHERE conversation_id = %s
                    ORDER BY created_at DESC LIMIT %s
                ) recent
                ORDER BY created_at
                """,
                (conversation_id, limit),
            )
            rows = cur.fetchall()
        return [schemas.ChatMessage.model_validate(_stringify_ids(r)) for r in rows]

    # Settings ----------------------------------------------------------------
    def get_setting(self, key: str) -> Optional[Dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT setting_value FROM ai_assistant_settings WHERE setting_key = %s",
                (key,),
            )
            row = cur.fetchone()
        if not row:
            return None
        value = row["setting_value"]
        return dict(value) if isinstance(value, Mapping) else None

    def set_setting(self, key: str, value: Dict[str, Any]) -> None:
        with self._conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO ai_assistant_settings (setting_key, setting_value)
                VALUES (%s, %s)
                ON CONFLICT (setting_key) DO UPDATE SET setting_value = EXCLUDED.setting_value
                """,
                (key, Jsonb(value)),
            )

    # Mode configuration ------------------------------------------------------
    def get_mode_config(self, mode: Mode) -> Optional[schemas.ModeConfig]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT mode, is_enabled, prompt_template, updated_at FROM ai_mode_config WHERE mode = %s",
                (mode.value,),
            )
            row = cur.fetchone()
        return schemas.ModeConfig.model_validate(row) if row else None

    def list_mode_configs(self) -> List[schemas.ModeConfig]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT mode, is_enabled, prompt_template, updated_at FROM ai_mode_config ORDER BY mode"
            )
            rows = cur.fetchall()
        return [schemas.ModeConfig.model_validate(r) for r in rows]

    def upsert_mode_config(
        self, mode: Mode, payload: schemas.ModeConfigUpdate
    ) -> schemas.ModeConfig:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO ai_mode_config (mode, is_enabled, prompt_template, updated_at)
                VALUES (%s, %s, %s, now())
                ON CONFLICT (mode) DO UPDATE
                SET is_enabled = EXCLUDED.is_enabled,
                    prompt_template = EXCLUDED.prompt_template,
                    updated_at = EXCLUDED.updated_at
                RETURNING mode, is_enabled, prompt_template, updated_at
                """,
                (mode.value, payload.is_enabled, payload.prompt_template),
            )
            row = cur.fetchone()
        return schemas.ModeConfig.model_validate(row)

    # Learned patterns --------------------------------------------------------
    def list_learnings(self, category: str, limit: int = 5) -> List[schemas.LearnedPattern]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT id, pattern, response_template, category, success_score, is_active
                FROM ai_learnings
                WHERE category = %s AND is_active
                ORDER BY success_score DESC
                LIMIT %s
                """,
                (category, limit),
            )
            rows = cur.fetchall()
        return [schemas.LearnedPattern.model_validate(_stringify_ids(r)) for r in rows]

    def add_learning(self, payload: schemas.LearningCreate) -> schemas.LearnedPattern:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO ai_learnings (pattern, response_template, category, success_score, is_active)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING id, pattern, response_template, category, success_score, is_active
                """,
                (
                    payload.pattern,
                    payload.response_template,
                    payload.category,
                    payload.success_score,
                    payload.is_active,
                ),
            )
            row = cur.fetchone()
        return schemas.LearnedPattern.model_validate(_stringify_ids(row))


__all__ = [
    "AI_ENABLED_SETTING",
    "ChatRepository",
    "ConversationNotFoundError",
    "InMemoryChatRepository",
    "PostgresChatRepository",
    "SCHEMA_PATH",
    "ensure_schema",
]
