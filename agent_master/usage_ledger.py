"""Append-only ledger of model invocations and their estimated cost."""

from __future__ import annotations

import json
from typing import Any

from agent_master.db import Database, row_to_dict, utc_now_iso
from agent_master.models import USAGE_OPERATIONS, USAGE_STATUSES


class UsageLedger:
    """One row per model call, keyed to the conversation and message it produced."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def record(
        self,
        conversation_id: str,
        message_id: int,
        tenant_id: str,
        provider: str,
        model: str,
        start_time: str,
        end_time: str,
        latency_ms: int,
        operation: str = "chat",
        model_version: str | None = None,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        total_tokens: int | None = None,
        pricing_input_per_1k: float | None = None,
        pricing_output_per_1k: float | None = None,
        pricing_total_per_1k: float | None = None,
        cost_input_usd: float | None = None,
        cost_output_usd: float | None = None,
        cost_total_usd: float | None = None,
        cost_currency: str = "USD",
        status: str = "success",
        error_message: str | None = None,
        function_calls: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        if operation not in USAGE_OPERATIONS:
            raise ValueError(f"Invalid usage operation: {operation}")
        if status not in USAGE_STATUSES:
            raise ValueError(f"Invalid usage status: {status}")
        with self._db.connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO ai_usage(
                    conversation_id, message_id, tenant_id, operation, provider, model, model_version,
                    start_time, end_time, latency_ms, usage_input_tokens, usage_output_tokens, usage_total_tokens,
                    pricing_input_per_1k, pricing_output_per_1k, pricing_total_per_1k,
                    cost_input_usd, cost_output_usd, cost_total_usd, cost_currency, status, error_message,
                    function_calls_json, metadata_json, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    conversation_id,
                    message_id,
                    tenant_id,
                    operation,
                    provider,
                    model,
                    model_version,
                    start_time,
                    end_time,
                    latency_ms,
                    input_tokens,
                    output_tokens,
                    total_tokens,
                    pricing_input_per_1k,
                    pricing_output_per_1k,
                    pricing_total_per_1k,
                    cost_input_usd,
                    cost_output_usd,
                    cost_total_usd,
                    cost_currency,
                    status,
                    error_message,
                    None if function_calls is None else json.dumps(function_calls),
                    json.dumps(metadata or {}),
                    utc_now_iso(),
                ),
            )
            return int(cur.lastrowid)

    def get(self, usage_id: int) -> dict[str, Any] | None:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM ai_usage WHERE id = ?", (usage_id,)).fetchone()
        return row_to_dict(row) if row else None

    def list_by_conversation(self, conversation_id: str, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM ai_usage WHERE conversation_id = ? ORDER BY id DESC LIMIT ? OFFSET ?",
                (conversation_id, limit, offset),
            ).fetchall()
        return [row_to_dict(row) for row in rows]

    def list_by_tenant(self, tenant_id: str, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM ai_usage WHERE tenant_id = ? ORDER BY id DESC LIMIT ? OFFSET ?",
                (tenant_id, limit, offset),
            ).fetchall()
        return [row_to_dict(row) for row in rows]

    def usage_summary(self, conversation_id: str) -> dict[str, Any]:
        """Totals for one conversation grouped by provider and by operation."""

        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT provider, operation,
                       COALESCE(SUM(cost_total_usd), 0) AS cost,
                       COALESCE(SUM(usage_total_tokens), 0) AS tokens,
                       COUNT(*) AS operations
                FROM ai_usage
                WHERE conversation_id = ?
                GROUP BY provider, operation
                """,
                (conversation_id,),
            ).fetchall()
        return _summarize(rows)

    def tenant_usage_summary(
        self, tenant_id: str, from_date: str | None = None, to_date: str | None = None
    ) -> dict[str, Any]:
        """Tenant totals plus daily trend buckets, optionally bounded by ISO dates.

        The range filter only applies when both bounds are given.
        """
        query = """
            SELECT provider, operation, substr(created_at, 1, 10) AS date,
                   COALESCE(SUM(cost_total_usd), 0) AS cost,
                   COALESCE(SUM(usage_total_tokens), 0) AS tokens,
                   COUNT(*) AS operations
            FROM ai_usage
            WHERE tenant_id = ?
        """
        params: list[Any] = [tenant_id]
        if from_date and to_date:
            query += " AND created_at BETWEEN ? AND ?"
            params.extend([from_date, to_date])
        query += " GROUP BY provider, operation, date ORDER BY date ASC"

        with self._db.connect() as conn:
            rows = conn.execute(query, params).fetchall()

        summary = _summarize(rows)
        daily: dict[str, dict[str, float | int]] = {}
        for row in rows:
            bucket = daily.setdefault(row["date"], _empty_bucket())
            _accumulate(bucket, row)
        summary["daily_trends"] = [{"date": date, **bucket} for date, bucket in daily.items()]
        return summary

    def delete_by_conversation(self, conversation_id: str) -> None:
        with self._db.connect() as conn:
            conn.execute("DELETE FROM ai_usage WHERE conversation_id = ?", (conversation_id,))


def _summarize(rows: list[Any]) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "total_cost": 0.0,
        "total_tokens": 0,
        "total_operations": 0,
        "by_provider": {},
        "by_operation": {},
    }
    for row in rows:
        summary["total_cost"] += float(row["cost"])
        summary["total_tokens"] += int(row["tokens"])
        summary["total_operations"] += int(row["operations"])
        _accumulate(summary["by_provider"].setdefault(row["provider"], _empty_bucket()), row)
        _accumulate(summary["by_operation"].setdefault(row["operation"], _empty_bucket()), row)
    return summary


def _empty_bucket() -> dict[str, float | int]:
    return {"cost": 0.0, "tokens": 0, "operations": 0}


def _accumulate(bucket: dict[str, float | int], row: Any) -> None:
    bucket["cost"] += float(row["cost"])
    bucket["tokens"] += int(row["tokens"])
    bucket["operations"] += int(row["operations"])
