from __future__ import annotations

from datetime import UTC, datetime, timedelta

from scanboard.repositories import InMemoryAnalysesRepository
from scanboard.watchdog import STUCK_ERROR_MESSAGE, fail_stuck_analyses, find_stuck_analysis_ids

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _started(minutes_ago: int) -> str:
    return (NOW - timedelta(minutes=minutes_ago)).isoformat()


def test_find_stuck_analysis_ids_uses_threshold():
    analyses = [
        {"id": "old", "status": "BUILDING", "startedAt": _started(45)},
        {"id": "fresh", "status": "BUILDING", "startedAt": _started(5)},
        {"id": "done", "status": "COMPLETED", "startedAt": _started(120)},
        {"id": "unknown_start", "status": "PENDING", "startedAt": None},
        {"id": "zulu", "status": "CLONING", "startedAt": "2026-03-01T10:00:00Z"},
        {"id": "naive", "status": "CLONING", "startedAt": datetime(2026, 3, 1, 9, 0)},
    ]

    assert find_stuck_analysis_ids(analyses, now=NOW, threshold_s=1800) == ["old", "zulu", "naive"]


def test_fail_stuck_analyses_marks_failed_with_error_log():
    repo = InMemoryAnalysesRepository()
    repo.create(analysis={"id": "stuck", "status": "PENETRATION_TEST", "startedAt": _started(90)})
    repo.create(analysis={"id": "running", "status": "BUILDING", "startedAt": _started(10)})

    failed = fail_stuck_analyses(repo, now=NOW, threshold_s=1800)

    assert failed == ["stuck"]
    stuck = repo.find_by_id(analysis_id="stuck")
    assert stuck["status"] == "FAILED"
    assert stuck["sandboxStatus"] == "FAILED"
    assert stuck["completedAt"] == NOW.isoformat()
    assert [x["level"] for x in stuck["logs"]] == ["info", "error"]
    assert "PENETRATION_TEST" in stuck["logs"][0]["message"]
    assert stuck["logs"][1]["message"] == STUCK_ERROR_MESSAGE
    assert repo.find_by_id(analysis_id="running")["status"] == "BUILDING"


def test_fail_stuck_analyses_is_noop_when_nothing_is_stuck():
    repo = InMemoryAnalysesRepository()
    repo.create(analysis={"id": "a", "status": "COMPLETED", "startedAt": _started(600)})

    assert fail_stuck_analyses(repo, now=NOW, threshold_s=60) == []
    assert repo.find_by_id(analysis_id="a")["logs"] == []
