"""Project board Status values and the standard transition graph.

Main flow: Icebox -> Backlog -> Planning -> Spec Review -> In Progress -> Review
-> Testing -> Done -> Released. Pending is a side state reachable from the
active stages; Not Planned is set when an issue is closed as won't-fix.
Backward transitions are allowed for corrections (e.g. Review -> In Progress).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ProjectStatus(str, Enum):
    ICEBOX = "Icebox"
    BACKLOG = "Backlog"
    PLANNING = "Planning"
    SPEC_REVIEW = "Spec Review"
    READY = "Ready"
    IN_PROGRESS = "In Progress"
    REVIEW = "Review"
    TESTING = "Testing"
    PENDING = "Pending"
    DONE = "Done"
    RELEASED = "Released"
    NOT_PLANNED = "Not Planned"


# Completed work; an OPEN issue carrying one of these has drifted.
TERMINAL_STATUSES: tuple[str, ...] = (
    ProjectStatus.DONE.value,
    ProjectStatus.RELEASED.value,
)

# Closing an issue from one of these can be intentional (duplicate, won't fix).
PRE_WORK_STATUSES: tuple[str, ...] = (
    ProjectStatus.BACKLOG.value,
    ProjectStatus.ICEBOX.value,
    ProjectStatus.PLANNING.value,
    ProjectStatus.SPEC_REVIEW.value,
    ProjectStatus.READY.value,
)


_S = ProjectStatus

STATUS_TRANSITIONS: dict[ProjectStatus, set[ProjectStatus]] = {
    _S.ICEBOX: {_S.BACKLOG, _S.NOT_PLANNED},
    _S.BACKLOG: {_S.PLANNING, _S.SPEC_REVIEW, _S.READY, _S.IN_PROGRESS, _S.ICEBOX, _S.NOT_PLANNED},
    _S.PLANNING: {_S.SPEC_REVIEW, _S.READY, _S.BACKLOG, _S.NOT_PLANNED},
    _S.SPEC_REVIEW: {_S.READY, _S.IN_PROGRESS, _S.BACKLOG, _S.NOT_PLANNED},
    _S.READY: {_S.IN_PROGRESS, _S.BACKLOG, _S.NOT_PLANNED},
    _S.IN_PROGRESS: {_S.REVIEW, _S.TESTING, _S.DONE, _S.PENDING, _S.NOT_PLANNED},
    _S.PENDING: {_S.IN_PROGRESS, _S.REVIEW, _S.BACKLOG, _S.NOT_PLANNED},
    _S.REVIEW: {_S.TESTING, _S.DONE, _S.IN_PROGRESS, _S.NOT_PLANNED},
    _S.TESTING: {_S.DONE, _S.REVIEW, _S.IN_PROGRESS, _S.NOT_PLANNED},
    _S.DONE: {_S.RELEASED},
    _S.RELEASED: set(),
    _S.NOT_PLANNED: {_S.BACKLOG},
}


@dataclass(frozen=True, slots=True)
class TransitionCheck:
    valid: bool
    warning: str | None = None


def _as_status(value: str | None) -> ProjectStatus | None:
    if not value:
        return None
    try:
        return ProjectStatus(value)
    except ValueError:
        return None


def validate_status_transition(current: str | None, target: str) -> TransitionCheck:
    """Check a Status change against the standard workflow.

    Warning only: boards are edited by hand, so a non-standard transition is
    reported but never blocked. Unknown statuses on either side skip the check.
    """

    src = _as_status(current)
    dst = _as_status(target)
    if src is None or dst is None:
        return TransitionCheck(valid=True)

    allowed = STATUS_TRANSITIONS.get(src, set())
    if dst in allowed:
        return TransitionCheck(valid=True)

    ordered = [s.value for s in ProjectStatus if s in allowed]
    expected = ", ".join(ordered) if ordered else "(terminal status)"
    return TransitionCheck(
        valid=False,
        warning=f'Status transition "{src.value}" -> "{dst.value}" is not standard. '
        f"Expected: {expected}",
    )
