"""Point-in-time consistency check for one repository.

Fetch, classify, optionally fix, report. Nothing is cached between runs.
"""

from __future__ import annotations

import logging
from datetime import datetime

from project_status_sync.sync.config import SyncSettings
from project_status_sync.sync.drift import (
    CheckReport,
    FixResult,
    apply_fixes,
    build_check_report,
    classify_inconsistencies,
    classify_metrics_inconsistencies,
    plan_fixes,
)
from project_status_sync.sync.github.client import ProjectsClient
from project_status_sync.sync.models import IssueState

logger = logging.getLogger(__name__)


def run_check(
    client: ProjectsClient,
    *,
    owner: str,
    repo: str,
    settings: SyncSettings,
    fix: bool = False,
    include_metrics: bool = True,
    project_name: str | None = None,
    now: datetime | None = None,
) -> CheckReport:
    """Check every listed issue against its item on the `project_name` board.

    `project_name` falls back to `settings.project_name`, then the repository
    name.
    """

    listed = client.list_issues(
        owner=owner,
        repo=repo,
        states=(IssueState.OPEN, IssueState.CLOSED),
        limit=settings.issue_limit,
        project_title=project_name or settings.project_name or repo,
    )
    if not listed.ok or listed.value is None:
        raise RuntimeError(f"Could not list issues for {owner}/{repo}: {listed.error}")
    issues = listed.value

    inconsistencies = classify_inconsistencies(
        issues,
        terminal_statuses=settings.terminal_statuses,
        pre_work_statuses=settings.pre_work_statuses,
    )
    logger.debug(
        "Status drift classified",
        extra={"issues": len(issues), "inconsistencies": len(inconsistencies)},
    )

    metrics = settings.metrics
    if include_metrics and metrics.enabled:
        project_ids = sorted(
            {issue.project_item.project_id for issue in issues if issue.project_item is not None}
        )
        text_values: dict[str, dict[str, str]] = {}
        readable: set[str] = set()
        for project_id in project_ids:
            fetched = client.get_project_text_values(project_id=project_id)
            if fetched.ok and fetched.value is not None:
                text_values.update(fetched.value)
                readable.add(project_id)
            else:
                # Without values every Done issue would look unstamped.
                logger.warning(
                    "Skipping metrics check for project: text values unavailable",
                    extra={"project_id": project_id, "error": fetched.error},
                )

        checked = [
            i for i in issues if i.project_item is not None and i.project_item.project_id in readable
        ]
        metrics_findings = classify_metrics_inconsistencies(checked, text_values, metrics, now=now)
        logger.debug("Metrics drift classified", extra={"inconsistencies": len(metrics_findings)})
        inconsistencies.extend(metrics_findings)

    fixes: list[FixResult] = []
    if fix:
        actions = plan_fixes(inconsistencies)
        fixes = apply_fixes(
            client, actions, issues, owner=owner, repo=repo, metrics=metrics
        )
        for result in fixes:
            if result.success:
                logger.info(
                    f"Fixed #{result.number} ({result.action.value})",
                    extra={"issue_number": result.number},
                )
            else:
                logger.error(
                    f"Failed to fix #{result.number} ({result.action.value}): {result.error}",
                    extra={"issue_number": result.number},
                )

    return build_check_report(
        repository=f"{owner}/{repo}",
        total_checked=len(issues),
        inconsistencies=inconsistencies,
        fixes=fixes,
        fix_requested=fix,
    )
