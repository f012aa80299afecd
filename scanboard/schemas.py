from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class WebhookRequest(BaseModel):
    """Progress report posted by the analysis worker.

    Fields are accepted as sent and coerced by the ingestion handler; an
    off-type value never rejects the report. Only a missing ``analysis_id``
    is an error, and unknown statuses are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    analysis_id: Any = None
    status: Any = None
    log_message: Any = None
    log_level: Any = None
    raw_output: Any = None
    error: Any = None
    static_analysis_report: Any = None
    penetration_test_report: Any = None
    executive_summary: Any = None
    vulnerabilities_found: Any = None
    critical_count: Any = None
    high_count: Any = None
    medium_count: Any = None
    low_count: Any = None


COUNTER_FIELDS: dict[str, str] = {
    "vulnerabilities_found": "vulnerabilitiesFound",
    "critical_count": "criticalCount",
    "high_count": "highCount",
    "medium_count": "mediumCount",
    "low_count": "lowCount",
}


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code,
        "retryable": retryable,
        "meta": {
            "trace_id": trace_id,
        },
    }
    if details is not None:
        body["details"] = details
    return body
