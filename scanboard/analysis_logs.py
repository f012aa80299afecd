from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from scanboard.analysis_status import TransitionDecision, step_label_for

LOG_LEVELS: frozenset[str] = frozenset({"info", "warn", "error", "success"})
DEFAULT_LOG_LEVEL = "info"


def utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


def parse_logs(raw: Any) -> list[Any]:
    """Read a stored log sequence; anything unreadable counts as empty."""
    if raw is None:
        return []
    if isinstance(raw, (str, bytes, bytearray)):
        if not raw:
            return []
        try:
            raw = json.loads(raw)
        except (TypeError, ValueError):
            return []
    if not isinstance(raw, list):
        return []
    return [dict(item) if isinstance(item, dict) else item for item in raw]


def normalize_level(level: Any) -> str:
    if isinstance(level, str) and level.strip().lower() in LOG_LEVELS:
        return level.strip().lower()
    return DEFAULT_LOG_LEVEL


def _entry(*, timestamp: str, step: str, level: str, message: str, raw_output: str | None = None) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "timestamp": timestamp,
        "step": step,
        "level": level,
        "message": message,
    }
    if raw_output:
        entry["rawOutput"] = raw_output
    return entry


def accumulate_logs(
    existing: Any,
    decision: TransitionDecision,
    *,
    message: str | None = None,
    level: str | None = None,
    error: str | None = None,
    raw_output: str | None = None,
    now: Callable[[], str] = utcnow_iso,
) -> list[Any]:
    """Return the stored log sequence with this report's entries appended.

    Up to three entries are added, in order: a state-change line when the
    status moved, the worker's own message, and an error line. Replayed
    callbacks append again; entries are never deduplicated.
    """
    logs = list(parse_logs(existing))
    timestamp = now()
    step = step_label_for(decision.final_status)

    if decision.changed:
        logs.append(
            _entry(
                timestamp=timestamp,
                step=step,
                level="info",
                message=f"state changed: {decision.previous_status} → {decision.final_status}",
            )
        )
    if message:
        logs.append(
            _entry(
                timestamp=timestamp,
                step=step,
                level=normalize_level(level),
                message=str(message),
                raw_output=raw_output,
            )
        )
    if error:
        logs.append(
            _entry(
                timestamp=timestamp,
                step=step,
                level="error",
                message=str(error),
            )
        )
    return logs


def group_logs_by_step(logs: list[Any]) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {}
    for entry in logs:
        if not isinstance(entry, dict):
            continue
        grouped.setdefault(str(entry.get("step", "")), []).append(entry)
    return grouped
