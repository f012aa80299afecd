from __future__ import annotations

import hmac
import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from scanboard.analysis_logs import accumulate_logs, utcnow_iso
from scanboard.analysis_status import decide_transition
from scanboard.errors import ApiError, AuthenticationError, NotFoundError, ValidationError
from scanboard.report_merge import merge_report
from scanboard.schemas import COUNTER_FIELDS, WebhookRequest
from scanboard.security import mask_credential

logger = logging.getLogger(__name__)

REPORT_FIELDS: dict[str, str] = {
    "static_analysis_report": "staticAnalysisReport",
    "penetration_test_report": "penetrationTestReport",
}


class AnalysesRepository(Protocol):
    def find_by_id(self, *, analysis_id: str) -> dict[str, Any] | None: ...

    def update(self, *, analysis_id: str, fields: Mapping[str, Any]) -> dict[str, Any]: ...


@dataclass(frozen=True)
class WebhookOutcome:
    data: dict[str, Any] | None = None
    error: ApiError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def credential_matches(credential: str | None, expected: str) -> bool:
    if not expected or not credential:
        return False
    return hmac.compare_digest(credential.encode("utf-8"), expected.encode("utf-8"))


class WebhookIngestionHandler:
    """Apply one worker progress report to its analysis record.

    Each call is one read-decide-write cycle: load the snapshot, run the
    status, log and report decisions, then issue a single update. Rejections
    come back as a failed ``WebhookOutcome``, never as an exception.
    """

    def __init__(
        self,
        repository: AnalysesRepository,
        *,
        api_key: str,
        clock: Callable[[], str] = utcnow_iso,
    ) -> None:
        self.repository = repository
        self.api_key = api_key
        self.clock = clock

    def handle(self, payload: WebhookRequest | Mapping[str, Any], credential: str | None) -> WebhookOutcome:
        if not credential_matches(credential, self.api_key):
            logger.warning("webhook_rejected reason=invalid_api_key credential=%s", mask_credential(credential))
            return WebhookOutcome(error=AuthenticationError())

        if isinstance(payload, WebhookRequest):
            request = payload
        else:
            request = WebhookRequest.model_validate(dict(payload))
        analysis_id = (_as_text(request.analysis_id) or "").strip()
        if not analysis_id:
            return WebhookOutcome(error=ValidationError("analysis_id is required"))

        analysis = self.repository.find_by_id(analysis_id=analysis_id)
        if analysis is None:
            logger.info("webhook_rejected reason=not_found analysis_id=%s", analysis_id)
            return WebhookOutcome(error=NotFoundError())

        fields = self.build_update(analysis, request)
        try:
            updated = self.repository.update(analysis_id=analysis_id, fields=fields)
        except NotFoundError as exc:
            return WebhookOutcome(error=exc)

        logger.info(
            "webhook_applied analysis_id=%s status=%s->%s report_fields=%s",
            analysis_id,
            analysis.get("status"),
            updated.get("status"),
            ",".join(sorted(f for f in fields if f.endswith("Report"))) or "-",
        )
        return WebhookOutcome(
            data={
                "id": updated.get("id", analysis_id),
                "status": updated.get("status"),
                "changed": fields["status"] != analysis.get("status"),
                "completedAt": updated.get("completedAt"),
            }
        )

    def build_update(self, analysis: Mapping[str, Any], request: WebhookRequest) -> dict[str, Any]:
        """Compute the partial record to write for one report."""
        current_status = str(analysis.get("status") or "PENDING")
        decision = decide_transition(
            current_status,
            request.status,
            completed_at=analysis.get("completedAt"),
        )
        fields: dict[str, Any] = {
            "status": decision.final_status,
            "logs": accumulate_logs(
                analysis.get("logs"),
                decision,
                message=_as_text(request.log_message),
                level=request.log_level,
                error=_as_text(request.error),
                raw_output=_as_text(request.raw_output),
                now=self.clock,
            ),
        }

        for request_field, record_field in REPORT_FIELDS.items():
            merged = merge_report(analysis.get(record_field), getattr(request, request_field))
            if merged.changed:
                fields[record_field] = merged.value

        for request_field, record_field in COUNTER_FIELDS.items():
            value = _as_int(getattr(request, request_field))
            if value is not None:
                fields[record_field] = value

        summary = _as_text(request.executive_summary)
        if summary:
            fields["executiveSummary"] = summary
        if decision.completed_at_newly_set:
            fields["completedAt"] = self.clock()
        if decision.sandbox_status is not None:
            fields["sandboxStatus"] = decision.sandbox_status
        return fields
