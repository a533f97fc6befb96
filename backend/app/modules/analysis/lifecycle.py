"""Analysis record lifecycle.

    Pending ──> Running ──┬──> Completed
       │                  └──> Failed
       └──────> Completed   (pricing already published on the page)

Completed and Failed are terminal: nothing leaves them.
"""

from __future__ import annotations

from enum import Enum


class AnalysisStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({AnalysisStatus.completed, AnalysisStatus.failed})

ALLOWED_TRANSITIONS: dict[AnalysisStatus, frozenset[AnalysisStatus]] = {
    AnalysisStatus.pending: frozenset({AnalysisStatus.running, AnalysisStatus.completed}),
    AnalysisStatus.running: frozenset({AnalysisStatus.completed, AnalysisStatus.failed}),
    AnalysisStatus.completed: frozenset(),
    AnalysisStatus.failed: frozenset(),
}

# States a record may be created in
INITIAL_STATES = frozenset(
    {AnalysisStatus.pending, AnalysisStatus.running, AnalysisStatus.completed}
)


class InvalidTransitionError(ValueError):
    def __init__(self, current: AnalysisStatus, target: AnalysisStatus) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move analysis from {current.value} to {target.value}")


def can_transition(current: AnalysisStatus, target: AnalysisStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(current: AnalysisStatus | str, target: AnalysisStatus | str) -> AnalysisStatus:
    """Validate ``current -> target`` and return the new status.

    Raises:
        InvalidTransitionError: the move is not allowed (including any move
            out of a terminal state).
    """
    current = AnalysisStatus(current)
    target = AnalysisStatus(target)
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)
    return target
