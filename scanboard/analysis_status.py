from __future__ import annotations

from dataclasses import dataclass
from typing import Any

ANALYSIS_STATUSES: tuple[str, ...] = (
    "PENDING",
    "CLONING",
    "STATIC_ANALYSIS",
    "BUILDING",
    "PENETRATION_TEST",
    "COMPLETED",
    "FAILED",
    "CANCELLED",
)

TERMINAL_STATUSES: frozenset[str] = frozenset({"COMPLETED", "FAILED", "CANCELLED"})

# Terminal statuses the worker-facing contract mirrors into sandboxStatus.
SANDBOX_MIRRORED_STATUSES: frozenset[str] = frozenset({"COMPLETED", "FAILED"})

STEP_LABELS: dict[str, str] = {
    "PENDING": "pending",
    "CLONING": "repository clone",
    "STATIC_ANALYSIS": "static analysis",
    "BUILDING": "build",
    "PENETRATION_TEST": "penetration test",
    "COMPLETED": "completed",
    "FAILED": "failed",
    "CANCELLED": "cancelled",
}


def is_known_status(status: Any) -> bool:
    return isinstance(status, str) and status in ANALYSIS_STATUSES


def is_terminal_status(status: Any) -> bool:
    return isinstance(status, str) and status in TERMINAL_STATUSES


def step_label_for(status: str) -> str:
    return STEP_LABELS.get(status, status)


@dataclass(frozen=True)
class TransitionDecision:
    previous_status: str
    final_status: str
    changed: bool
    completed_at_newly_set: bool = False
    sandbox_status: str | None = None

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.final_status)


def decide_transition(
    current_status: str,
    requested_status: Any,
    *,
    completed_at: Any = None,
) -> TransitionDecision:
    """Resolve the status to persist for one status report.

    Terminal records accept only terminal corrections (e.g. a reprocessing
    pass turning COMPLETED into FAILED); stale progress reports that arrive
    after completion are ignored. Non-terminal records accept any recognized
    status, with no ordering enforced between intermediate steps.
    """
    if not is_known_status(requested_status):
        return TransitionDecision(
            previous_status=current_status,
            final_status=current_status,
            changed=False,
        )

    if is_terminal_status(current_status) and not is_terminal_status(requested_status):
        return TransitionDecision(
            previous_status=current_status,
            final_status=current_status,
            changed=False,
        )

    final_status = str(requested_status)
    newly_terminal = is_terminal_status(final_status) and not completed_at
    sandbox_status = final_status if final_status in SANDBOX_MIRRORED_STATUSES else None
    return TransitionDecision(
        previous_status=current_status,
        final_status=final_status,
        changed=final_status != current_status,
        completed_at_newly_set=newly_terminal,
        sandbox_status=sandbox_status,
    )
