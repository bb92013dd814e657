"""SQLite persistence layer."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator

SCHEMA_VERSION = 1

_AGENT_BOOL_COLUMNS = ("is_enabled", "is_default")


class Database:
    """Small SQLite wrapper with explicit schema management.

    Owns the schema for every table; conversation and usage rows are accessed
    through ``ConversationStore`` and ``UsageLedger``, which borrow connections
    via :meth:`connect`.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and rolls back on error."""

        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or migrate schema."""

        with self.connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS tenants (
                id TEXT PRIMARY KEY,
                name TEXT,
                settings_json TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS agents (
                agent_key TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                public_description TEXT,
                is_enabled INTEGER NOT NULL DEFAULT 1,
                is_default INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS agent_prompts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                agent_key TEXT NOT NULL,
                category TEXT NOT NULL,
                content TEXT NOT NULL,
                version INTEGER NOT NULL,
                tenant_id TEXT,
                locale TEXT NOT NULL DEFAULT 'en',
                is_published INTEGER NOT NULL DEFAULT 0,
                metadata_json TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(agent_key, category, version)
            );

            CREATE TABLE IF NOT EXISTS tool_registry (
                tool_key TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                category TEXT,
                description TEXT,
                input_schema_json TEXT NOT NULL DEFAULT '{}',
                is_enabled INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS agent_tools (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                agent_key TEXT NOT NULL,
                tool_key TEXT NOT NULL,
                alias TEXT,
                arg_defaults_json TEXT NOT NULL DEFAULT '{}',
                arg_templates_json TEXT NOT NULL DEFAULT '{}',
                guardrails_json TEXT NOT NULL DEFAULT '{}',
                position INTEGER NOT NULL,
                tenant_id TEXT,
                function_name TEXT,
                function_description TEXT,
                function_parameters_json TEXT,
                parameter_mapping_json TEXT,
                created_at TEXT NOT NULL,
                UNIQUE(agent_key, tool_key)
            );

            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                session_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                metadata_json TEXT NOT NULL DEFAULT '{}',
                agent_key TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_conversations_tenant ON conversations(tenant_id);
            CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id);

            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                function_name TEXT,
                function_args_json TEXT,
                function_result_json TEXT,
                tokens_used INTEGER,
                created_at TEXT NOT NULL,
                FOREIGN KEY(conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id);

            CREATE TABLE IF NOT EXISTS ai_usage (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL,
                message_id INTEGER NOT NULL,
                tenant_id TEXT NOT NULL,
                operation TEXT NOT NULL,
                provider TEXT NOT NULL,
                model TEXT NOT NULL,
                model_version TEXT,
                start_time TEXT NOT NULL,
                end_time TEXT NOT NULL,
                latency_ms INTEGER NOT NULL,
                usage_input_tokens INTEGER,
                usage_output_tokens INTEGER,
                usage_total_tokens INTEGER,
                pricing_input_per_1k REAL,
                pricing_output_per_1k REAL,
                pricing_total_per_1k REAL,
                cost_input_usd REAL,
                cost_output_usd REAL,
                cost_total_usd REAL,
                cost_currency TEXT NOT NULL DEFAULT 'USD',
                status TEXT NOT NULL DEFAULT 'success',
                error_message TEXT,
                function_calls_json TEXT,
                metadata_json TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL,
                FOREIGN KEY(conversation_id) REFERENCES conversations(id) ON DELETE CASCADE,
                FOREIGN KEY(message_id) REFERENCES messages(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_ai_usage_conversation ON ai_usage(conversation_id);
            CREATE INDEX IF NOT EXISTS idx_ai_usage_tenant ON ai_usage(tenant_id);
            """
        )

    def upsert_tenant(self, tenant_id: str, name: str | None = None, settings: dict[str, Any] | None = None) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO tenants(id, name, settings_json, created_at)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    settings_json=excluded.settings_json
                """,
                (tenant_id, name, json.dumps(settings or {}), utc_now_iso()),
            )

    def get_tenant_settings(self, tenant_id: str) -> dict[str, Any] | None:
        with self.connect() as conn:
            row = conn.execute("SELECT settings_json FROM tenants WHERE id = ?", (tenant_id,)).fetchone()
        return json.loads(row["settings_json"]) if row else None

    def upsert_agent(
        self,
        agent_key: str,
        name: str,
        public_description: str = "",
        is_enabled: bool = True,
        is_default: bool = False,
    ) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO agents(agent_key, name, public_description, is_enabled, is_default, created_at)
                VALUES(?, ?, ?, ?, ?, ?)
                ON CONFLICT(agent_key) DO UPDATE SET
                    name=excluded.name,
                    public_description=excluded.public_description,
                    is_enabled=excluded.is_enabled,
                    is_default=excluded.is_default
                """,
                (agent_key, name, public_description, int(is_enabled), int(is_default), utc_now_iso()),
            )

    def get_agent(self, agent_key: str) -> dict[str, Any] | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM agents WHERE agent_key = ?", (agent_key,)).fetchone()
        return row_to_dict(row, bools=_AGENT_BOOL_COLUMNS) if row else None

    def list_agents(self, limit: int = 50) -> list[dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT agent_key, name, public_description, is_enabled, is_default
                FROM agents
                ORDER BY is_default DESC, name ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [row_to_dict(row, bools=_AGENT_BOOL_COLUMNS) for row in rows]

    def get_latest_prompt(self, agent_key: str, category: str) -> dict[str, Any] | None:
        with self.connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM agent_prompts
                WHERE agent_key = ? AND category = ?
                ORDER BY version DESC
                LIMIT 1
                """,
                (agent_key, category),
            ).fetchone()
        return _prompt_row(row) if row else None

    def list_prompt_versions(self, agent_key: str, category: str) -> list[dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM agent_prompts WHERE agent_key = ? AND category = ? ORDER BY version ASC",
                (agent_key, category),
            ).fetchall()
        return [_prompt_row(row) for row in rows]

    def publish_prompt(
        self,
        agent_key: str,
        category: str,
        content: str,
        tenant_id: str | None = None,
        locale: str = "en",
    ) -> dict[str, Any]:
        """Supersede the published prompt and append the next version as published."""

        now = utc_now_iso()
        with self.connect() as conn:
            conn.execute(
                """
                UPDATE agent_prompts SET is_published = 0, updated_at = ?
                WHERE agent_key = ? AND category = ? AND is_published = 1
                """,
                (now, agent_key, category),
            )
            row = conn.execute(
                "SELECT COALESCE(MAX(version), 0) AS version FROM agent_prompts WHERE agent_key = ? AND category = ?",
                (agent_key, category),
            ).fetchone()
            cur = conn.execute(
                """
                INSERT INTO agent_prompts(
                    agent_key, category, content, version, tenant_id, locale,
                    is_published, metadata_json, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, 1, '{}', ?, ?)
                """,
                (agent_key, category, content, int(row["version"]) + 1, tenant_id, locale, now, now),
            )
            inserted = conn.execute("SELECT * FROM agent_prompts WHERE id = ?", (cur.lastrowid,)).fetchone()
        return _prompt_row(inserted)

    def register_tool(
        self,
        tool_key: str,
        name: str,
        category: str | None = None,
        description: str = "",
        input_schema: dict[str, Any] | None = None,
        is_enabled: bool = True,
    ) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO tool_registry(tool_key, name, category, description, input_schema_json, is_enabled, created_at)
                VALUES(?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tool_key) DO UPDATE SET
                    name=excluded.name,
                    category=excluded.category,
                    description=excluded.description,
                    input_schema_json=excluded.input_schema_json,
                    is_enabled=excluded.is_enabled
                """,
                (
                    tool_key,
                    name,
                    category,
                    description,
                    json.dumps(input_schema or {"type": "object", "properties": {}}),
                    int(is_enabled),
                    utc_now_iso(),
                ),
            )

    def get_enabled_tool(self, tool_key: str) -> dict[str, Any] | None:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM tool_registry WHERE tool_key = ? AND is_enabled = 1", (tool_key,)
            ).fetchone()
        return _tool_row(row) if row else None

    def list_enabled_tools(self, category: str | None = None) -> list[dict[str, Any]]:
        query = "SELECT * FROM tool_registry WHERE is_enabled = 1"
        params: list[Any] = []
        if category:
            query += " AND category = ?"
            params.append(category)
        query += " ORDER BY name ASC"
        with self.connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_tool_row(row) for row in rows]

    def get_agent_tool(self, agent_key: str, tool_key: str) -> dict[str, Any] | None:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM agent_tools WHERE agent_key = ? AND tool_key = ?", (agent_key, tool_key)
            ).fetchone()
        return _agent_tool_row(row) if row else None

    def list_agent_tools(self, agent_key: str) -> list[dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM agent_tools WHERE agent_key = ? ORDER BY position ASC", (agent_key,)
            ).fetchall()
        return [_agent_tool_row(row) for row in rows]

    def insert_agent_tool(
        self,
        agent_key: str,
        tool_key: str,
        alias: str,
        arg_defaults: dict[str, Any] | None,
        tenant_id: str | None,
        function_name: str,
        function_description: str,
        function_parameters: dict[str, Any],
        parameter_mapping: dict[str, str],
    ) -> dict[str, Any]:
        """Append a tool to an agent at the next free position."""

        with self.connect() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(position), 0) + 1 AS next_position FROM agent_tools WHERE agent_key = ?",
                (agent_key,),
            ).fetchone()
            cur = conn.execute(
                """
                INSERT INTO agent_tools(
                    agent_key, tool_key, alias, arg_defaults_json, arg_templates_json, guardrails_json,
                    position, tenant_id, function_name, function_description,
                    function_parameters_json, parameter_mapping_json, created_at
                )
                VALUES (?, ?, ?, ?, '{}', '{}', ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    agent_key,
                    tool_key,
                    alias,
                    json.dumps(arg_defaults or {}),
                    int(row["next_position"]),
                    tenant_id,
                    function_name,
                    function_description,
                    json.dumps(function_parameters),
                    json.dumps(parameter_mapping),
                    utc_now_iso(),
                ),
            )
            inserted = conn.execute("SELECT * FROM agent_tools WHERE id = ?", (cur.lastrowid,)).fetchone()
        return _agent_tool_row(inserted)


def row_to_dict(row: sqlite3.Row, bools: Iterable[str] = ()) -> dict[str, Any]:
    """Convert a row, decoding ``*_json`` columns and integer flags.

    ``metadata_json`` becomes ``metadata``; NULL JSON columns decode to None.
    """
    result: dict[str, Any] = {}
    for key in row.keys():
        value = row[key]
        if key.endswith("_json"):
            result[key[: -len("_json")]] = json.loads(value) if value is not None else None
        else:
            result[key] = value
    for key in bools:
        if key in result and result[key] is not None:
            result[key] = bool(result[key])
    return result


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _prompt_row(row: sqlite3.Row) -> dict[str, Any]:
    return row_to_dict(row, bools=("is_published",))


def _tool_row(row: sqlite3.Row) -> dict[str, Any]:
    return row_to_dict(row, bools=("is_enabled",))


def _agent_tool_row(row: sqlite3.Row) -> dict[str, Any]:
    return row_to_dict(row)
