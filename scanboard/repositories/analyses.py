from __future__ import annotations

import json
import re
import threading
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from scanboard.analysis_status import TERMINAL_STATUSES
from scanboard.config import Settings
from scanboard.db.postgres import PostgresTxRunner
from scanboard.errors import NotFoundError

# Record field -> column. Only these fields are ever written by this core.
COLUMNS: dict[str, str] = {
    "id": "id",
    "status": "status",
    "logs": "logs",
    "staticAnalysisReport": "static_analysis_report",
    "penetrationTestReport": "penetration_test_report",
    "vulnerabilitiesFound": "vulnerabilities_found",
    "criticalCount": "critical_count",
    "highCount": "high_count",
    "mediumCount": "medium_count",
    "lowCount": "low_count",
    "completedAt": "completed_at",
    "sandboxStatus": "sandbox_status",
    "executiveSummary": "executive_summary",
    "startedAt": "started_at",
}

UPDATABLE_FIELDS: frozenset[str] = frozenset(COLUMNS) - {"id", "startedAt"}


def _validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def _check_fields(fields: Mapping[str, Any]) -> None:
    unknown = sorted(set(fields) - UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"unsupported analysis fields: {', '.join(unknown)}")


class InMemoryAnalysesRepository:
    def __init__(self, analyses: dict[str, dict[str, Any]] | None = None) -> None:
        self._analyses = analyses if analyses is not None else {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        with self._lock:
            self._analyses.clear()

    def create(self, *, analysis: dict[str, Any]) -> dict[str, Any]:
        item = dict(analysis)
        item.setdefault("status", "PENDING")
        item.setdefault("logs", [])
        with self._lock:
            self._analyses[str(item["id"])] = item
        return dict(item)

    def find_by_id(self, *, analysis_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._analyses.get(analysis_id)
            return dict(row) if row is not None else None

    def update(self, *, analysis_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        _check_fields(fields)
        with self._lock:
            row = self._analyses.get(analysis_id)
            if row is None:
                raise NotFoundError()
            row.update(fields)
            return dict(row)

    def list_non_terminal(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(x) for x in self._analyses.values() if x.get("status") not in TERMINAL_STATUSES]


def _row_to_record(columns: list[str], row: tuple[Any, ...]) -> dict[str, Any]:
    by_column = {column: field for field, column in COLUMNS.items()}
    record: dict[str, Any] = {}
    for column, value in zip(columns, row):
        if isinstance(value, datetime):
            value = value.isoformat()
        record[by_column[column]] = value
    return record


class PostgresAnalysesRepository:
    """Analyses table access; every method is one transaction."""

    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "analyses") -> None:
        self._tx_runner = tx_runner
        self._table_name = _validate_identifier(table_name)
        self._columns = list(COLUMNS.values())

    def _select_list(self) -> str:
        return ", ".join(self._columns)

    def create(self, *, analysis: dict[str, Any]) -> dict[str, Any]:
        item = dict(analysis)
        item.setdefault("status", "PENDING")
        item.setdefault("logs", [])
        fields = [f for f in COLUMNS if f in item]
        placeholders = ", ".join("%s::jsonb" if f == "logs" else "%s" for f in fields)
        sql = f"""
            INSERT INTO {self._table_name} ({", ".join(COLUMNS[f] for f in fields)})
            VALUES ({placeholders})
            RETURNING {self._select_list()}
        """
        params = tuple(json.dumps(item[f], ensure_ascii=False) if f == "logs" else item[f] for f in fields)

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
            return _row_to_record(self._columns, row)

        return self._tx_runner.run_in_tx(fn=_op)

    def find_by_id(self, *, analysis_id: str) -> dict[str, Any] | None:
        sql = f"""
            SELECT {self._select_list()}
            FROM {self._table_name}
            WHERE id = %s
            LIMIT 1
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (analysis_id,))
                row = cur.fetchone()
            if row is None:
                return None
            return _row_to_record(self._columns, row)

        return self._tx_runner.run_in_tx(fn=_op)

    def update(self, *, analysis_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        _check_fields(fields)
        if not fields:
            current = self.find_by_id(analysis_id=analysis_id)
            if current is None:
                raise NotFoundError()
            return current
        names = sorted(fields)
        assignments = ", ".join(
            f"{COLUMNS[name]} = %s::jsonb" if name == "logs" else f"{COLUMNS[name]} = %s" for name in names
        )
        params = [json.dumps(fields[name], ensure_ascii=False) if name == "logs" else fields[name] for name in names]
        sql = f"""
            UPDATE {self._table_name}
            SET {assignments}
            WHERE id = %s
            RETURNING {self._select_list()}
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (*params, analysis_id))
                row = cur.fetchone()
            if row is None:
                return None
            return _row_to_record(self._columns, row)

        updated = self._tx_runner.run_in_tx(fn=_op)
        if updated is None:
            raise NotFoundError()
        return updated

    def list_non_terminal(self) -> list[dict[str, Any]]:
        sql = f"""
            SELECT {self._select_list()}
            FROM {self._table_name}
            WHERE status <> ALL(%s)
            ORDER BY started_at ASC
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (sorted(TERMINAL_STATUSES),))
                rows = cur.fetchall()
            return [_row_to_record(self._columns, row) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)


def create_analyses_repository_from_env(
    environ: Mapping[str, str] | None = None,
) -> InMemoryAnalysesRepository | PostgresAnalysesRepository:
    settings = Settings.from_env(environ)
    if settings.store_backend == "memory":
        return InMemoryAnalysesRepository()
    if settings.store_backend == "postgres":
        if not settings.postgres_dsn:
            raise ValueError("POSTGRES_DSN must be set when SCANBOARD_STORE_BACKEND=postgres")
        return PostgresAnalysesRepository(
            tx_runner=PostgresTxRunner(settings.postgres_dsn),
            table_name=settings.analyses_table,
        )
    raise RuntimeError(f"unsupported store backend: {settings.store_backend}")
