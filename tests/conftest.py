"""Test configuration and fixtures."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from project_status_sync.sync.config import MetricsConfig
from project_status_sync.sync.github.client import ApiResult, ProjectsClient
from project_status_sync.sync.models import (
    FieldCatalog,
    FieldDefinition,
    FieldType,
    Issue,
    IssueState,
    ProjectItem,
    SelectValue,
)


@pytest.fixture
def catalog() -> FieldCatalog:
    """A board with Status, Priority, a renamed Type field and two date fields."""
    fields = [
        FieldDefinition(
            id="F_status",
            name="Status",
            type=FieldType.SINGLE_SELECT,
            options={
                "Backlog": "opt_backlog",
                "In Progress": "opt_in_progress",
                "Review": "opt_review",
                "Done": "opt_done",
                "Not Planned": "opt_not_planned",
            },
        ),
        FieldDefinition(
            id="F_priority",
            name="Priority",
            type=FieldType.SINGLE_SELECT,
            options={"High": "opt_high", "Low": "opt_low"},
        ),
        FieldDefinition(
            id="F_type",
            name="Item Type",
            type=FieldType.SINGLE_SELECT,
            options={"Bug": "opt_bug", "Feature": "opt_feature"},
        ),
        FieldDefinition(id="F_started", name="Started At", type=FieldType.TEXT),
        FieldDefinition(id="F_completed", name="Completed At", type=FieldType.TEXT),
    ]
    return {f.name: f for f in fields}


@pytest.fixture
def metrics() -> MetricsConfig:
    """Metrics enabled with the default Status -> date field mapping."""
    return MetricsConfig(enabled=True)


@pytest.fixture
def mock_client() -> Mock:
    """A client whose writes succeed and whose items have no text values yet."""
    client = Mock(spec=ProjectsClient)
    client.update_item_field.return_value = ApiResult.success(None)
    client.get_item_text_values.return_value = ApiResult.success({})
    client.close_issue.return_value = ApiResult.success(None)
    client.reopen_issue.return_value = ApiResult.success(None)
    return client


def make_issue(
    number: int,
    *,
    state: IssueState = IssueState.OPEN,
    status: str | None = None,
    project_id: str = "P_1",
    item_id: str | None = None,
    on_board: bool = True,
    **kwargs,
) -> Issue:
    item = None
    if on_board:
        item = ProjectItem(
            id=item_id or f"I_{number}",
            project_id=project_id,
            project_title="octo-repo",
            status=SelectValue(name=status) if status else None,
        )
    return Issue(
        number=number,
        title=kwargs.pop("title", f"Issue {number}"),
        state=state,
        url=f"https://github.com/octo-org/octo-repo/issues/{number}",
        project_item=item,
        **kwargs,
    )


@pytest.fixture(name="make_issue")
def make_issue_fixture():
    """Factory for issues with (or without) a board item."""
    return make_issue
