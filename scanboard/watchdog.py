from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any, Protocol

from scanboard.analysis_logs import accumulate_logs
from scanboard.analysis_status import decide_transition, is_terminal_status
from scanboard.webhook import AnalysesRepository

logger = logging.getLogger(__name__)

STUCK_THRESHOLD_S = 30 * 60
STUCK_ERROR_MESSAGE = "analysis timed out"


class WatchdogRepository(AnalysesRepository, Protocol):
    def list_non_terminal(self) -> list[dict[str, Any]]: ...


def _parse_started_at(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def find_stuck_analysis_ids(
    analyses: Iterable[Mapping[str, Any]],
    *,
    now: datetime,
    threshold_s: float = STUCK_THRESHOLD_S,
) -> list[str]:
    """Ids of non-terminal analyses started more than ``threshold_s`` ago."""
    stuck: list[str] = []
    for analysis in analyses:
        if is_terminal_status(analysis.get("status")):
            continue
        started_at = _parse_started_at(analysis.get("startedAt"))
        if started_at is None:
            continue
        if (now - started_at).total_seconds() > threshold_s:
            stuck.append(str(analysis["id"]))
    return stuck


def fail_stuck_analyses(
    repository: WatchdogRepository,
    *,
    now: datetime | None = None,
    threshold_s: float = STUCK_THRESHOLD_S,
) -> list[str]:
    current_time = now or datetime.now(UTC)
    candidates = repository.list_non_terminal()
    stuck_ids = find_stuck_analysis_ids(candidates, now=current_time, threshold_s=threshold_s)
    by_id = {str(a["id"]): a for a in candidates}
    timestamp = current_time.isoformat()

    for analysis_id in stuck_ids:
        analysis = by_id[analysis_id]
        decision = decide_transition(
            str(analysis.get("status") or "PENDING"),
            "FAILED",
            completed_at=analysis.get("completedAt"),
        )
        fields: dict[str, Any] = {
            "status": decision.final_status,
            "logs": accumulate_logs(
                analysis.get("logs"),
                decision,
                error=STUCK_ERROR_MESSAGE,
                now=lambda: timestamp,
            ),
        }
        if decision.completed_at_newly_set:
            fields["completedAt"] = timestamp
        if decision.sandbox_status is not None:
            fields["sandboxStatus"] = decision.sandbox_status
        repository.update(analysis_id=analysis_id, fields=fields)
        logger.warning("analysis_marked_stuck analysis_id=%s previous_status=%s", analysis_id, decision.previous_status)
    return stuck_ids
