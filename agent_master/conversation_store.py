"""Conversation and message persistence."""

from __future__ import annotations

import json
import logging
import secrets
import time
import uuid
from typing import Any

from agent_master.db import Database, row_to_dict, utc_now_iso
from agent_master.models import CONVERSATION_STATUSES, MESSAGE_ROLES

LOGGER = logging.getLogger(__name__)

# Columns a caller may change through update_conversation.
_UPDATABLE_COLUMNS = {"title": "title", "status": "status", "metadata": "metadata_json", "agent_key": "agent_key"}


class ConversationStore:
    """Tenant-owned conversations and their append-only message log."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create_conversation(
        self,
        tenant_id: str,
        user_id: str,
        title: str,
        session_id: str | None = None,
        agent_key: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        conversation_id = uuid.uuid4().hex
        now = utc_now_iso()
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO conversations(
                    id, tenant_id, session_id, user_id, title, status, metadata_json, agent_key, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, 'active', ?, ?, ?, ?)
                """,
                (
                    conversation_id,
                    tenant_id,
                    session_id or _generate_session_id(),
                    user_id,
                    title,
                    json.dumps(metadata or {}),
                    agent_key,
                    now,
                    now,
                ),
            )
        return conversation_id

    def get_conversation(self, conversation_id: str) -> dict[str, Any] | None:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,)).fetchone()
        return row_to_dict(row) if row else None

    def get_by_session_id(self, session_id: str) -> dict[str, Any] | None:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM conversations WHERE session_id = ?", (session_id,)).fetchone()
        return row_to_dict(row) if row else None

    def list_by_tenant(self, tenant_id: str, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        return self._list("tenant_id", tenant_id, limit, offset)

    def list_by_user(self, user_id: str, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        return self._list("user_id", user_id, limit, offset)

    def _list(self, column: str, value: str, limit: int, offset: int) -> list[dict[str, Any]]:
        with self._db.connect() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM conversations
                WHERE {column} = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                (value, limit, offset),
            ).fetchall()
        return [row_to_dict(row) for row in rows]

    def update_conversation(self, conversation_id: str, **updates: Any) -> None:
        """Update title, status, metadata or agent_key; ``None`` values are skipped."""

        assignments: list[str] = []
        values: list[Any] = []
        for key, value in updates.items():
            if value is None:
                continue
            column = _UPDATABLE_COLUMNS.get(key)
            if column is None:
                raise ValueError(f"Conversation field cannot be updated: {key}")
            if key == "status" and value not in CONVERSATION_STATUSES:
                raise ValueError(f"Invalid conversation status: {value}")
            assignments.append(f"{column} = ?")
            values.append(json.dumps(value) if key == "metadata" else value)

        if not assignments:
            return

        assignments.append("updated_at = ?")
        values.extend([utc_now_iso(), conversation_id])
        with self._db.connect() as conn:
            conn.execute(f"UPDATE conversations SET {', '.join(assignments)} WHERE id = ?", values)

    def archive(self, conversation_id: str) -> None:
        self.update_conversation(conversation_id, status="archived")

    def soft_delete(self, conversation_id: str) -> None:
        self.update_conversation(conversation_id, status="deleted")

    def delete_conversation(self, conversation_id: str) -> None:
        """Hard delete: usage rows, then messages, then the conversation."""

        with self._db.connect() as conn:
            conn.execute("DELETE FROM ai_usage WHERE conversation_id = ?", (conversation_id,))
            conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
            conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        LOGGER.info("Deleted conversation %s", conversation_id)

    def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        function_name: str | None = None,
        function_args: Any = None,
        function_result: Any = None,
        tokens_used: int | None = None,
    ) -> int:
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Invalid message role: {role}")
        with self._db.connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO messages(
                    conversation_id, role, content, function_name, function_args_json,
                    function_result_json, tokens_used, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    conversation_id,
                    role,
                    content,
                    function_name,
                    _dumps_or_none(function_args),
                    _dumps_or_none(function_result),
                    tokens_used,
                    utc_now_iso(),
                ),
            )
            return int(cur.lastrowid)

    def get_message(self, message_id: int) -> dict[str, Any] | None:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        return row_to_dict(row) if row else None

    def attach_function_result(self, message_id: int, result: Any) -> None:
        """Record the outcome of the function an assistant message requested."""

        with self._db.connect() as conn:
            conn.execute(
                "UPDATE messages SET function_result_json = ? WHERE id = ? AND role = 'assistant'",
                (json.dumps(result), message_id),
            )

    def list_messages(self, conversation_id: str, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE conversation_id = ? ORDER BY id ASC LIMIT ? OFFSET ?",
                (conversation_id, limit, offset),
            ).fetchall()
        return [row_to_dict(row) for row in rows]

    def get_recent_messages(self, conversation_id: str, count: int = 10) -> list[dict[str, Any]]:
        """Return the newest ``count`` messages in chronological order."""

        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE conversation_id = ? ORDER BY id DESC LIMIT ?",
                (conversation_id, count),
            ).fetchall()
        return [row_to_dict(row) for row in reversed(rows)]

    def get_conversation_history(self, conversation_id: str, limit: int = 50) -> list[dict[str, Any]]:
        return self.get_recent_messages(conversation_id, limit)

    def get_token_usage(self, conversation_id: str) -> int:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT COALESCE(SUM(tokens_used), 0) AS total_tokens FROM messages WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
        return int(row["total_tokens"])

    def get_function_calls(self, conversation_id: str) -> list[dict[str, Any]]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE conversation_id = ? AND function_name IS NOT NULL
                ORDER BY id ASC
                """,
                (conversation_id,),
            ).fetchall()
        return [row_to_dict(row) for row in rows]


def _generate_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def _dumps_or_none(value: Any) -> str | None:
    return None if value is None else json.dumps(value)
