"""Resolve (owner, repo, issue number) to a project item and its field catalog."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from project_status_sync.sync.fields import fetch_field_catalog
from project_status_sync.sync.github.client import ProjectsClient
from project_status_sync.sync.models import (
    FieldCatalog,
    ProjectSummary,
    UpdateReason,
    select_project_item,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolvedProjectItem:
    project_id: str
    item_id: str
    catalog: FieldCatalog
    # Status on the board when the item was located; None if unset.
    current_status: str | None = None


@dataclass(frozen=True, slots=True)
class LocateResult:
    resolved: ResolvedProjectItem | None = None
    reason: UpdateReason | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.resolved is not None


def _pick_project(
    projects: Sequence[ProjectSummary], *, owner: str, project_name: str
) -> ProjectSummary | None:
    if not projects:
        return None
    for project in projects:
        if project.title == project_name:
            return project

    fallback = projects[0]
    logger.warning(
        f"No project named '{project_name}'. Using first project '{fallback.title}' as fallback.",
        extra={"owner": owner, "project_name": project_name, "fallback_project_id": fallback.id},
    )
    return fallback


def resolve_project_id(client: ProjectsClient, *, owner: str, project_name: str) -> str | None:
    """Find the owner's project titled `project_name`.

    Falls back to the owner's first project with a warning, so that a write to
    an unexpected board is visible in the logs. Returns None when the owner has
    no projects or they cannot be listed.
    """

    result = client.get_owner_projects(owner=owner)
    if not result.ok or not result.value:
        return None
    picked = _pick_project(result.value, owner=owner, project_name=project_name)
    return picked.id if picked else None


def resolve_project_item(
    client: ProjectsClient,
    *,
    owner: str,
    repo: str,
    issue_number: int,
    project_name: str | None = None,
) -> LocateResult:
    """Locate an issue's card on the repository's board.

    The catalog is fetched eagerly so later writes in the same operation reuse
    it. `no-project` and `no-item` need different fixes (create or link a
    project vs. add the issue to it); a failed GitHub call is `update-failed`
    with the transport error attached.
    """

    target = project_name or repo
    listed = client.get_owner_projects(owner=owner)
    if not listed.ok:
        return LocateResult(reason=UpdateReason.UPDATE_FAILED, error=listed.error)

    project = _pick_project(listed.value or [], owner=owner, project_name=target)
    if project is None:
        logger.warning("No project found", extra={"owner": owner, "project_name": target})
        return LocateResult(reason=UpdateReason.NO_PROJECT)
    project_id = project.id

    detail = client.get_issue(owner=owner, repo=repo, issue_number=issue_number)
    if not detail.ok or detail.value is None:
        logger.warning(
            f"Issue #{issue_number}: could not read project items",
            extra={"issue_number": issue_number, "error": detail.error},
        )
        return LocateResult(reason=UpdateReason.UPDATE_FAILED, error=detail.error)

    items = detail.value.linked_items
    item = select_project_item(items, project_title=target, project_id=project_id)
    if item is None:
        logger.warning(
            f"Issue #{issue_number}: not found in project",
            extra={"issue_number": issue_number, "project_id": project_id},
        )
        return LocateResult(reason=UpdateReason.NO_ITEM)

    if item.project_id != project_id:
        # The card lives on another board; write there rather than pairing its
        # item id with the wrong project id.
        logger.warning(
            f"Issue #{issue_number}: not on project '{target}', using item on "
            f"'{item.project_title}' instead",
            extra={
                "issue_number": issue_number,
                "expected_project_id": project_id,
                "item_project_id": item.project_id,
                "linked_items": len(items),
            },
        )
        project_id = item.project_id

    catalog = fetch_field_catalog(client, project_id)
    return LocateResult(
        resolved=ResolvedProjectItem(
            project_id=project_id,
            item_id=item.id,
            catalog=catalog,
            current_status=item.status.name if item.status else None,
        )
    )
