from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

AUTHORITATIVE_STEP_STATUSES: frozenset[str | None] = frozenset({"success", None})


@dataclass(frozen=True)
class ReportMergeResult:
    changed: bool
    value: str | None = None


NO_CHANGE = ReportMergeResult(changed=False)


def coerce_report(raw: Any) -> dict[str, Any] | None:
    """Parse a report blob or pass a structured report through.

    Returns None when the value is not a JSON object.
    """
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError):
            return None
        if isinstance(parsed, dict):
            return parsed
    return None


def serialize_report(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        return raw.decode("utf-8", errors="replace")
    return json.dumps(raw, ensure_ascii=False, default=str)


def _step_status(report: dict[str, Any]) -> str | None:
    step_result = report.get("step_result")
    if not isinstance(step_result, Mapping):
        return None
    status = step_result.get("status")
    return str(status) if status is not None else None


def _findings_count(report: dict[str, Any]) -> int:
    findings = report.get("findings")
    if isinstance(findings, list):
        return len(findings)
    return 0


def is_authoritative(report: Any) -> bool:
    """A report reflects a real run with findings, not a skipped/empty placeholder."""
    parsed = coerce_report(report)
    if parsed is None:
        return False
    return _step_status(parsed) in AUTHORITATIVE_STEP_STATUSES and _findings_count(parsed) > 0


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (str, bytes, bytearray)) and not value)


def is_incoming_authoritative(existing: Any, incoming: Any) -> bool:
    if _is_empty(existing):
        return True
    parsed = coerce_report(incoming)
    if parsed is not None and _step_status(parsed) == "skipped":
        return False
    if is_authoritative(parsed):
        return True
    return not is_authoritative(existing)


def merge_report(existing: Any, incoming: Any) -> ReportMergeResult:
    """Decide what, if anything, to write into one report field.

    Stored evidence is only displaced by an authoritative report. The
    persisted value is the incoming blob verbatim, or the JSON form of a
    structured report.
    """
    if _is_empty(incoming):
        return NO_CHANGE
    if not is_incoming_authoritative(existing, incoming):
        return NO_CHANGE
    return ReportMergeResult(changed=True, value=serialize_report(incoming))
