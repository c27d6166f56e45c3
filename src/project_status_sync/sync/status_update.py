"""Status updates with their timestamp side effect.

Two entry points:
- `update_project_status`: project and item ids already known (bulk listings)
- `resolve_and_update_status`: issue number only; locates the item first

Both stamp lifecycle dates after a successful Status write, so every code path
that changes Status (explicit update, close, reopen, drift fix) gets the same
side effect exactly once.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from project_status_sync.sync.config import MetricsConfig
from project_status_sync.sync.fields import (
    STATUS_FIELD,
    auto_set_timestamps,
    plan_field_write,
    warn_on_nonstandard_transition,
    write_field,
)
from project_status_sync.sync.github.client import ProjectsClient
from project_status_sync.sync.locator import resolve_project_item
from project_status_sync.sync.models import FieldDefinition, UpdateReason

logger = logging.getLogger(__name__)

_REMEDIATION_HINTS: dict[UpdateReason, str] = {
    UpdateReason.NO_PROJECT: (
        "No project found for '{owner}'. Create a project titled '{project}' "
        "(gh project create --owner {owner} --title \"{project}\") or pass --project NAME."
    ),
    UpdateReason.NO_ITEM: (
        "Issue #{number} is not on the project. Add it with: "
        "gh project item-add <project-number> --owner {owner} "
        "--url https://github.com/{owner}/{repo}/issues/{number}"
    ),
    UpdateReason.FIELD_NOT_FOUND: (
        "The project has no 'Status' single-select field. Create it in the "
        "project settings, then retry."
    ),
    UpdateReason.OPTION_NOT_FOUND: (
        "Use one of the Status options listed above, or add the option to the "
        "project's Status field."
    ),
    UpdateReason.UPDATE_FAILED: (
        "The GitHub request failed (see the error above). Check that the token has the "
        "'project' scope and that GitHub is reachable, then retry."
    ),
}


def remediation_hint(
    reason: UpdateReason,
    *,
    owner: str = "<owner>",
    repo: str = "<repo>",
    issue_number: int | str = "<number>",
    project_name: str | None = None,
) -> str:
    return _REMEDIATION_HINTS[reason].format(
        owner=owner, repo=repo, number=issue_number, project=project_name or repo
    )


@dataclass(frozen=True, slots=True)
class StatusUpdateResult:
    success: bool
    reason: UpdateReason | None = None
    error: str | None = None


def update_project_status(
    client: ProjectsClient,
    *,
    project_id: str,
    item_id: str,
    status_value: str,
    catalog: Mapping[str, FieldDefinition],
    metrics: MetricsConfig,
    current_status: str | None = None,
) -> StatusUpdateResult:
    warn_on_nonstandard_transition(current_status, status_value)
    planned = plan_field_write(STATUS_FIELD, status_value, catalog)
    if isinstance(planned, UpdateReason):
        return StatusUpdateResult(success=False, reason=planned)

    if not write_field(client, project_id=project_id, item_id=item_id, write=planned):
        return StatusUpdateResult(success=False, reason=UpdateReason.UPDATE_FAILED)

    auto_set_timestamps(
        client,
        project_id=project_id,
        item_id=item_id,
        status_value=status_value,
        catalog=catalog,
        metrics=metrics,
    )
    return StatusUpdateResult(success=True)


def resolve_and_update_status(
    client: ProjectsClient,
    *,
    owner: str,
    repo: str,
    issue_number: int,
    status_value: str,
    metrics: MetricsConfig,
    project_name: str | None = None,
) -> StatusUpdateResult:
    located = resolve_project_item(
        client,
        owner=owner,
        repo=repo,
        issue_number=issue_number,
        project_name=project_name,
    )
    if located.resolved is None:
        return StatusUpdateResult(
            success=False, reason=located.reason or UpdateReason.NO_ITEM, error=located.error
        )

    result = update_project_status(
        client,
        project_id=located.resolved.project_id,
        item_id=located.resolved.item_id,
        status_value=status_value,
        catalog=located.resolved.catalog,
        metrics=metrics,
        current_status=located.resolved.current_status,
    )
    if result.success:
        logger.info(
            f"Issue #{issue_number} -> {status_value}",
            extra={"repo": f"{owner}/{repo}", "issue_number": issue_number},
        )
    return result
