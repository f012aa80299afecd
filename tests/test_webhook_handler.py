from __future__ import annotations

import json

import pytest

from scanboard.errors import AuthenticationError, NotFoundError, ValidationError
from scanboard.repositories import InMemoryAnalysesRepository
from scanboard.webhook import WebhookIngestionHandler, credential_matches

KEY = "worker-secret"
NOW = "2026-03-01T12:00:00+00:00"


class RecordingRepository(InMemoryAnalysesRepository):
    def __init__(self) -> None:
        super().__init__()
        self.updates: list[tuple[str, dict]] = []

    def update(self, *, analysis_id, fields):
        self.updates.append((analysis_id, dict(fields)))
        return super().update(analysis_id=analysis_id, fields=fields)


@pytest.fixture
def repo() -> RecordingRepository:
    return RecordingRepository()


@pytest.fixture
def handler(repo: RecordingRepository) -> WebhookIngestionHandler:
    return WebhookIngestionHandler(repo, api_key=KEY, clock=lambda: NOW)


def _report(findings: int, status: str = "success") -> dict:
    return {
        "tool": "semgrep",
        "findings": [{"severity": "HIGH", "title": f"f{i}"} for i in range(findings)],
        "total": findings,
        "step_result": {"status": status},
    }


@pytest.mark.parametrize(
    ("credential", "expected", "matches"),
    [
        (KEY, KEY, True),
        ("wrong", KEY, False),
        (None, KEY, False),
        ("", KEY, False),
        ("", "", False),
        ("anything", "", False),
    ],
)
def test_credential_matches(credential, expected, matches):
    assert credential_matches(credential, expected) is matches


def test_wrong_credential_is_rejected_before_any_read(handler, repo):
    repo.create(analysis={"id": "an_1"})

    outcome = handler.handle({"analysis_id": "an_1", "status": "CLONING"}, "nope")

    assert outcome.ok is False
    assert isinstance(outcome.error, AuthenticationError)
    assert repo.updates == []


def test_missing_analysis_id_is_validation_error(handler, repo):
    for payload in ({}, {"analysis_id": "   "}, {"status": "CLONING"}):
        outcome = handler.handle(payload, KEY)
        assert isinstance(outcome.error, ValidationError)
        assert outcome.error.message == "analysis_id is required"
    assert repo.updates == []


def test_off_type_error_field_still_applies_terminal_status(handler, repo):
    repo.create(analysis={"id": "an_1", "status": "BUILDING"})

    outcome = handler.handle({"analysis_id": "an_1", "status": "FAILED", "error": {"message": "timeout"}}, KEY)

    assert outcome.ok
    stored = repo.find_by_id(analysis_id="an_1")
    assert stored["status"] == "FAILED"
    assert stored["logs"][-1]["level"] == "error"
    assert "timeout" in stored["logs"][-1]["message"]


def test_non_string_status_is_ignored_but_message_logged(handler, repo):
    repo.create(analysis={"id": "an_1", "status": "BUILDING"})

    outcome = handler.handle({"analysis_id": "an_1", "status": 3, "log_message": "step 3"}, KEY)

    assert outcome.ok
    assert outcome.data["status"] == "BUILDING"
    assert outcome.data["changed"] is False
    assert [x["message"] for x in repo.find_by_id(analysis_id="an_1")["logs"]] == ["step 3"]


def test_numeric_analysis_id_is_matched_as_text(handler, repo):
    repo.create(analysis={"id": "42"})

    outcome = handler.handle({"analysis_id": 42, "status": "CLONING"}, KEY)

    assert outcome.ok
    assert repo.find_by_id(analysis_id="42")["status"] == "CLONING"


def test_unusable_counters_are_skipped_not_rejected(handler, repo):
    repo.create(analysis={"id": "an_1", "status": "STATIC_ANALYSIS", "criticalCount": 5})

    outcome = handler.handle(
        {"analysis_id": "an_1", "critical_count": "many", "high_count": "7", "low_count": True, "medium_count": 2.0},
        KEY,
    )

    assert outcome.ok
    _, fields = repo.updates[0]
    assert "criticalCount" not in fields
    assert "lowCount" not in fields
    assert fields["highCount"] == 7
    assert fields["mediumCount"] == 2
    assert repo.find_by_id(analysis_id="an_1")["criticalCount"] == 5


def test_unknown_analysis_is_not_found(handler, repo):
    outcome = handler.handle({"analysis_id": "ghost", "status": "CLONING"}, KEY)

    assert isinstance(outcome.error, NotFoundError)
    assert outcome.error.http_status == 404
    assert repo.updates == []


def test_pending_to_cloning_writes_single_transition_line(handler, repo):
    repo.create(analysis={"id": "an_1"})

    outcome = handler.handle({"analysis_id": "an_1", "status": "CLONING"}, KEY)

    assert outcome.ok
    assert outcome.data == {"id": "an_1", "status": "CLONING", "changed": True, "completedAt": None}
    stored = repo.find_by_id(analysis_id="an_1")
    assert stored["status"] == "CLONING"
    assert len(stored["logs"]) == 1
    assert "PENDING" in stored["logs"][0]["message"]
    assert "CLONING" in stored["logs"][0]["message"]
    assert len(repo.updates) == 1


def test_late_non_terminal_report_keeps_completed_status(handler, repo):
    repo.create(analysis={"id": "an_1", "status": "COMPLETED", "completedAt": "2026-02-28T00:00:00+00:00"})

    outcome = handler.handle({"analysis_id": "an_1", "status": "BUILDING", "log_message": "late"}, KEY)

    assert outcome.data["status"] == "COMPLETED"
    assert outcome.data["changed"] is False
    stored = repo.find_by_id(analysis_id="an_1")
    assert stored["status"] == "COMPLETED"
    assert stored["completedAt"] == "2026-02-28T00:00:00+00:00"
    assert [x["message"] for x in stored["logs"]] == ["late"]


def test_terminal_correction_to_failed_is_applied(handler, repo):
    repo.create(analysis={"id": "an_1", "status": "COMPLETED", "completedAt": "2026-02-28T00:00:00+00:00"})

    handler.handle({"analysis_id": "an_1", "status": "FAILED", "error": "timeout"}, KEY)

    stored = repo.find_by_id(analysis_id="an_1")
    assert stored["status"] == "FAILED"
    assert stored["sandboxStatus"] == "FAILED"
    assert stored["completedAt"] == "2026-02-28T00:00:00+00:00"
    assert len(stored["logs"]) == 2
    assert "COMPLETED" in stored["logs"][0]["message"] and "FAILED" in stored["logs"][0]["message"]
    assert stored["logs"][1]["level"] == "error"
    assert stored["logs"][1]["message"] == "timeout"


def test_first_terminal_status_sets_completed_at_and_sandbox(handler, repo):
    repo.create(analysis={"id": "an_1", "status": "PENETRATION_TEST"})

    outcome = handler.handle({"analysis_id": "an_1", "status": "COMPLETED"}, KEY)

    assert outcome.data["completedAt"] == NOW
    stored = repo.find_by_id(analysis_id="an_1")
    assert stored["sandboxStatus"] == "COMPLETED"


def test_cancelled_does_not_touch_sandbox_status(handler, repo):
    repo.create(analysis={"id": "an_1", "status": "BUILDING"})

    handler.handle({"analysis_id": "an_1", "status": "CANCELLED"}, KEY)

    _, fields = repo.updates[0]
    assert fields["completedAt"] == NOW
    assert "sandboxStatus" not in fields


def test_unknown_status_is_ignored_but_message_logged(handler, repo):
    repo.create(analysis={"id": "an_1", "status": "BUILDING"})

    outcome = handler.handle(
        {"analysis_id": "an_1", "status": "DEPLOYING", "log_message": "hmm", "log_level": "warn"}, KEY
    )

    assert outcome.data["status"] == "BUILDING"
    stored = repo.find_by_id(analysis_id="an_1")
    assert stored["logs"] == [{"timestamp": NOW, "step": "build", "level": "warn", "message": "hmm"}]


def test_counters_are_written_only_when_present(handler, repo):
    repo.create(analysis={"id": "an_1", "status": "STATIC_ANALYSIS", "highCount": 9})

    handler.handle({"analysis_id": "an_1", "critical_count": 0, "vulnerabilities_found": 4}, KEY)

    _, fields = repo.updates[0]
    assert fields["criticalCount"] == 0
    assert fields["vulnerabilitiesFound"] == 4
    assert "highCount" not in fields
    assert repo.find_by_id(analysis_id="an_1")["highCount"] == 9


def test_skipped_report_does_not_overwrite_stored_findings(handler, repo):
    stored_report = json.dumps(_report(2))
    repo.create(analysis={"id": "an_1", "status": "BUILDING", "staticAnalysisReport": stored_report})

    handler.handle(
        {
            "analysis_id": "an_1",
            "static_analysis_report": _report(0, status="skipped"),
            "penetration_test_report": _report(1),
        },
        KEY,
    )

    _, fields = repo.updates[0]
    assert "staticAnalysisReport" not in fields
    assert json.loads(fields["penetrationTestReport"])["total"] == 1
    assert repo.find_by_id(analysis_id="an_1")["staticAnalysisReport"] == stored_report


def test_executive_summary_is_stored(handler, repo):
    repo.create(analysis={"id": "an_1", "status": "COMPLETED", "completedAt": NOW})

    handler.handle({"analysis_id": "an_1", "executive_summary": "2 critical issues"}, KEY)

    assert repo.find_by_id(analysis_id="an_1")["executiveSummary"] == "2 critical issues"


def test_replayed_callback_appends_again(handler, repo):
    repo.create(analysis={"id": "an_1", "status": "BUILDING"})
    payload = {"analysis_id": "an_1", "log_message": "layer 3/7"}

    handler.handle(payload, KEY)
    handler.handle(payload, KEY)

    assert [x["message"] for x in repo.find_by_id(analysis_id="an_1")["logs"]] == ["layer 3/7", "layer 3/7"]


def test_legacy_string_logs_are_extended(handler, repo):
    existing = [{"timestamp": "t0", "step": "pending", "level": "info", "message": "queued"}]
    repo.create(analysis={"id": "an_1", "logs": json.dumps(existing)})

    handler.handle({"analysis_id": "an_1", "status": "CLONING"}, KEY)

    logs = repo.find_by_id(analysis_id="an_1")["logs"]
    assert logs[0] == existing[0]
    assert len(logs) == 2
