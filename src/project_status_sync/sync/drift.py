"""Drift between issue state and board Status, and the explicit fix step.

The classifiers are pure functions over pre-fetched issues: they report
findings and never change anything. Remediation is a separate step: each
error finding maps to one `FixAction`, applied only when a caller asks for it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field

from project_status_sync.sync.config import MetricsConfig
from project_status_sync.sync.fields import FieldWrite, fetch_field_catalog, write_field
from project_status_sync.sync.github.client import ProjectsClient
from project_status_sync.sync.models import FieldCatalog, FieldType, Issue, IssueState
from project_status_sync.sync.status_update import remediation_hint, update_project_status
from project_status_sync.sync.workflow import (
    PRE_WORK_STATUSES,
    TERMINAL_STATUSES,
    ProjectStatus,
)

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    ERROR = "error"
    INFO = "info"


class InconsistencyKind(str, Enum):
    OPEN_WITH_TERMINAL_STATUS = "open-with-terminal-status"
    CLOSED_WITH_ACTIVE_STATUS = "closed-with-active-status"
    CLOSED_BEFORE_START = "closed-before-start"
    MISSING_COMPLETION_TIMESTAMP = "missing-completion-timestamp"
    STALE_IN_PROGRESS = "stale-in-progress"


class Inconsistency(BaseModel):
    """One detected mismatch for one issue."""

    number: int
    title: str = ""
    url: str = ""
    issue_state: IssueState
    project_status: str | None
    severity: Severity
    kind: InconsistencyKind
    description: str

    @classmethod
    def for_issue(
        cls, issue: Issue, *, severity: Severity, kind: InconsistencyKind, description: str
    ) -> Inconsistency:
        return cls(
            number=issue.number,
            title=issue.title,
            url=issue.url,
            issue_state=issue.state,
            project_status=issue.status,
            severity=severity,
            kind=kind,
            description=description,
        )


def classify_inconsistencies(
    issues: Iterable[Issue],
    terminal_statuses: Sequence[str] = TERMINAL_STATUSES,
    pre_work_statuses: Sequence[str] = PRE_WORK_STATUSES,
) -> list[Inconsistency]:
    """Compare each issue's OPEN/CLOSED state with its board Status.

    - OPEN with a terminal Status: error, the issue should be closed.
    - CLOSED with a pre-work or "Not Planned" Status: info, closing without
      finishing the work can be intentional (duplicate, won't fix).
    - CLOSED with any other non-terminal Status: error, Status should be Done.

    Issues without a board item or without a Status are skipped.
    """

    closed_unfinished = {*pre_work_statuses, ProjectStatus.NOT_PLANNED.value}
    findings: list[Inconsistency] = []

    for issue in issues:
        status = issue.status
        if status is None:
            continue

        if issue.state is IssueState.OPEN:
            if status in terminal_statuses:
                findings.append(
                    Inconsistency.for_issue(
                        issue,
                        severity=Severity.ERROR,
                        kind=InconsistencyKind.OPEN_WITH_TERMINAL_STATUS,
                        description=(
                            f'Issue is OPEN but Project Status is "{status}"; '
                            "the issue should be closed"
                        ),
                    )
                )
            continue

        if status in terminal_statuses:
            continue
        if status in closed_unfinished:
            findings.append(
                Inconsistency.for_issue(
                    issue,
                    severity=Severity.INFO,
                    kind=InconsistencyKind.CLOSED_BEFORE_START,
                    description=(
                        f'Issue is CLOSED with unfinished Project Status "{status}"; '
                        "may be intentional (duplicate or won't fix)"
                    ),
                )
            )
        else:
            findings.append(
                Inconsistency.for_issue(
                    issue,
                    severity=Severity.ERROR,
                    kind=InconsistencyKind.CLOSED_WITH_ACTIVE_STATUS,
                    description=(
                        f'Issue is CLOSED but Project Status is "{status}"; '
                        "Status should be Done"
                    ),
                )
            )

    return findings


def _parse_timestamp(text: str | None) -> datetime | None:
    """Parse a metrics date field; anything unparseable counts as missing."""

    if not text or not text.strip():
        return None
    try:
        parsed = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def classify_metrics_inconsistencies(
    issues: Iterable[Issue],
    text_values: Mapping[str, Mapping[str, str]],
    metrics: MetricsConfig,
    now: datetime | None = None,
) -> list[Inconsistency]:
    """Flag missing and stale lifecycle timestamps.

    Args:
        issues: issues with their matching project item.
        text_values: item id -> {Text field name -> value}.
        metrics: supplies the Status -> field mapping and the stale threshold.
        now: reference time; defaults to the current UTC time.
    """

    current = now or datetime.now(UTC)
    if current.tzinfo is None:
        current = current.replace(tzinfo=UTC)

    completed_field = metrics.date_field_for(ProjectStatus.DONE.value)
    started_field = metrics.date_field_for(ProjectStatus.IN_PROGRESS.value)
    threshold = metrics.stale_threshold_days
    findings: list[Inconsistency] = []

    for issue in issues:
        if issue.project_item is None:
            continue
        status = issue.status
        values = text_values.get(issue.project_item.id, {})

        if status in TERMINAL_STATUSES and completed_field:
            if _parse_timestamp(values.get(completed_field)) is None:
                findings.append(
                    Inconsistency.for_issue(
                        issue,
                        severity=Severity.ERROR,
                        kind=InconsistencyKind.MISSING_COMPLETION_TIMESTAMP,
                        description=(
                            f"Metrics: Missing '{completed_field}' timestamp for {status} "
                            "issue; cycle-time metrics will undercount"
                        ),
                    )
                )

        if status == ProjectStatus.IN_PROGRESS.value and started_field:
            started = _parse_timestamp(values.get(started_field))
            if started is not None and started < current - timedelta(days=threshold):
                days = (current - started).days
                findings.append(
                    Inconsistency.for_issue(
                        issue,
                        severity=Severity.INFO,
                        kind=InconsistencyKind.STALE_IN_PROGRESS,
                        description=(
                            f"Metrics: In Progress for {days} days "
                            f"(stale threshold: {threshold} days)"
                        ),
                    )
                )

    return findings


# ── Remediation ───────────────────────────────────────────────────────────


class FixActionKind(str, Enum):
    CLOSE_ISSUE = "close-issue"
    SET_STATUS_DONE = "set-status-done"
    BACKFILL_TIMESTAMP = "backfill-timestamp"


_FIX_FOR_KIND: dict[InconsistencyKind, FixActionKind] = {
    InconsistencyKind.OPEN_WITH_TERMINAL_STATUS: FixActionKind.CLOSE_ISSUE,
    InconsistencyKind.CLOSED_WITH_ACTIVE_STATUS: FixActionKind.SET_STATUS_DONE,
    InconsistencyKind.MISSING_COMPLETION_TIMESTAMP: FixActionKind.BACKFILL_TIMESTAMP,
}


@dataclass(frozen=True, slots=True)
class FixAction:
    number: int
    kind: FixActionKind
    description: str


class FixResult(BaseModel):
    number: int
    action: FixActionKind
    success: bool
    error: str | None = Field(default=None)


def plan_fixes(inconsistencies: Iterable[Inconsistency]) -> list[FixAction]:
    """Map each error finding to its fix. Info findings are left alone."""

    actions: list[FixAction] = []
    for finding in inconsistencies:
        if finding.severity is not Severity.ERROR:
            continue
        kind = _FIX_FOR_KIND.get(finding.kind)
        if kind is not None:
            actions.append(
                FixAction(number=finding.number, kind=kind, description=finding.description)
            )
    return actions


def apply_fixes(
    client: ProjectsClient,
    actions: Iterable[FixAction],
    issues: Iterable[Issue],
    *,
    owner: str,
    repo: str,
    metrics: MetricsConfig,
    today: date | None = None,
) -> list[FixResult]:
    """Apply fixes one at a time; a failed fix never stops the others."""

    by_number = {issue.number: issue for issue in issues}
    catalogs: dict[str, FieldCatalog] = {}
    results: list[FixResult] = []

    def _catalog(project_id: str) -> FieldCatalog:
        if project_id not in catalogs:
            catalogs[project_id] = fetch_field_catalog(client, project_id)
        return catalogs[project_id]

    for action in actions:
        logger.info(
            f"Fixing #{action.number}: {action.description}",
            extra={"issue_number": action.number, "action": action.kind.value},
        )
        issue = by_number.get(action.number)

        if action.kind is FixActionKind.CLOSE_ISSUE:
            closed = client.close_issue(
                repository=f"{owner}/{repo}", issue_number=action.number, state_reason="completed"
            )
            results.append(
                FixResult(
                    number=action.number, action=action.kind, success=closed.ok, error=closed.error
                )
            )
            continue

        item = issue.project_item if issue is not None else None
        if item is None:
            results.append(
                FixResult(
                    number=action.number,
                    action=action.kind,
                    success=False,
                    error="Could not resolve project item",
                )
            )
            continue

        catalog = _catalog(item.project_id)

        if action.kind is FixActionKind.SET_STATUS_DONE:
            updated = update_project_status(
                client,
                project_id=item.project_id,
                item_id=item.id,
                status_value=ProjectStatus.DONE.value,
                catalog=catalog,
                metrics=metrics,
                current_status=issue.status if issue is not None else None,
            )
            error = None
            if updated.reason is not None:
                error = remediation_hint(
                    updated.reason, owner=owner, repo=repo, issue_number=action.number
                )
            results.append(
                FixResult(
                    number=action.number, action=action.kind, success=updated.success, error=error
                )
            )
            continue

        # Backfill: prefer the real close date over today.
        field_name = metrics.date_field_for(ProjectStatus.DONE.value)
        definition = catalog.get(field_name) if field_name else None
        if definition is None or definition.type is not FieldType.TEXT:
            results.append(
                FixResult(
                    number=action.number,
                    action=action.kind,
                    success=False,
                    error=f"Text field '{field_name}' not found in project",
                )
            )
            continue

        # The batch read may be stale; never overwrite a recorded date.
        current = client.get_item_text_values(item_id=item.id)
        if not current.ok or current.value is None:
            results.append(
                FixResult(
                    number=action.number,
                    action=action.kind,
                    success=False,
                    error=f"Could not read '{field_name}': {current.error}",
                )
            )
            continue
        if current.value.get(definition.name, "").strip():
            logger.info(
                f"#{action.number}: '{definition.name}' already set, nothing to backfill",
                extra={"issue_number": action.number},
            )
            results.append(FixResult(number=action.number, action=action.kind, success=True))
            continue

        closed_at = issue.closed_at if issue is not None else None
        stamp = closed_at.date().isoformat() if closed_at else (today or date.today()).isoformat()
        ok = write_field(
            client,
            project_id=item.project_id,
            item_id=item.id,
            write=FieldWrite(field=definition, text=stamp),
        )
        results.append(
            FixResult(
                number=action.number,
                action=action.kind,
                success=ok,
                error=None if ok else "Failed to set Text field",
            )
        )

    return results


class CheckSummary(BaseModel):
    total_checked: int
    total_inconsistencies: int
    errors: int
    info: int
    fixed: int
    fix_failures: int


class CheckReport(BaseModel):
    repository: str
    fix_requested: bool = False
    inconsistencies: list[Inconsistency] = Field(default_factory=list)
    fixes: list[FixResult] = Field(default_factory=list)
    summary: CheckSummary

    @property
    def exit_code(self) -> int:
        """1 if a fix failed, or if errors remain and no fix was requested."""

        if self.summary.fix_failures > 0:
            return 1
        if not self.fix_requested and self.summary.errors > 0:
            return 1
        return 0


def build_check_report(
    *,
    repository: str,
    total_checked: int,
    inconsistencies: Sequence[Inconsistency],
    fixes: Sequence[FixResult] = (),
    fix_requested: bool = False,
) -> CheckReport:
    return CheckReport(
        repository=repository,
        fix_requested=fix_requested,
        inconsistencies=list(inconsistencies),
        fixes=list(fixes),
        summary=CheckSummary(
            total_checked=total_checked,
            total_inconsistencies=len(inconsistencies),
            errors=sum(1 for i in inconsistencies if i.severity is Severity.ERROR),
            info=sum(1 for i in inconsistencies if i.severity is Severity.INFO),
            fixed=sum(1 for f in fixes if f.success),
            fix_failures=sum(1 for f in fixes if not f.success),
        ),
    )
