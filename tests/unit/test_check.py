"""Unit tests for the repository-wide consistency check (mocked)."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import Mock

import pytest

from project_status_sync.sync.check import run_check
from project_status_sync.sync.config import MetricsConfig, SyncSettings
from project_status_sync.sync.drift import FixActionKind, InconsistencyKind
from project_status_sync.sync.github.client import ApiResult, ProjectsClient
from project_status_sync.sync.models import IssueState

NOW = datetime(2024, 3, 31, tzinfo=UTC)


def _settings(**kwargs) -> SyncSettings:
    return SyncSettings(github_token="test-token", _env_file=None, **kwargs)


def test_check_reports_drift_without_changing_anything(mock_client: Mock, make_issue) -> None:
    mock_client.list_issues.return_value = ApiResult.success(
        [
            make_issue(42, state=IssueState.OPEN, status="Done"),
            make_issue(43, state=IssueState.CLOSED, status="Done"),
            make_issue(44, state=IssueState.OPEN, on_board=False),
        ]
    )

    report = run_check(mock_client, owner="octo-org", repo="octo-repo", settings=_settings())

    assert report.repository == "octo-org/octo-repo"
    assert report.summary.total_checked == 3
    assert [i.number for i in report.inconsistencies] == [42]
    assert report.fixes == []
    assert report.exit_code == 1
    mock_client.close_issue.assert_not_called()
    mock_client.update_item_field.assert_not_called()
    mock_client.get_project_text_values.assert_not_called()


def test_check_with_fix_applies_one_action_per_error(mock_client: Mock, make_issue) -> None:
    mock_client.list_issues.return_value = ApiResult.success(
        [make_issue(42, state=IssueState.OPEN, status="Done")]
    )

    report = run_check(
        mock_client, owner="octo-org", repo="octo-repo", settings=_settings(), fix=True
    )

    assert [(f.number, f.action, f.success) for f in report.fixes] == [
        (42, FixActionKind.CLOSE_ISSUE, True)
    ]
    assert report.summary.fixed == 1
    assert report.exit_code == 0


def test_check_raises_when_issues_cannot_be_listed(mock_client: Mock) -> None:
    mock_client.list_issues.return_value = ApiResult.failure("401 Bad credentials")

    with pytest.raises(RuntimeError, match="Could not list issues"):
        run_check(mock_client, owner="octo-org", repo="octo-repo", settings=_settings())


def test_check_includes_metrics_when_enabled(mock_client: Mock, make_issue) -> None:
    mock_client.list_issues.return_value = ApiResult.success(
        [
            make_issue(1, state=IssueState.CLOSED, status="Done", project_id="P_a"),
            make_issue(2, state=IssueState.OPEN, status="In Progress", project_id="P_a"),
        ]
    )
    mock_client.get_project_text_values.return_value = ApiResult.success(
        {"I_2": {"Started At": "2024-01-01"}}
    )

    report = run_check(
        mock_client,
        owner="octo-org",
        repo="octo-repo",
        settings=_settings(metrics=MetricsConfig(enabled=True)),
        now=NOW,
    )

    assert sorted(i.kind for i in report.inconsistencies) == sorted(
        [InconsistencyKind.MISSING_COMPLETION_TIMESTAMP, InconsistencyKind.STALE_IN_PROGRESS]
    )
    mock_client.get_project_text_values.assert_called_once_with(project_id="P_a")


def test_check_skips_metrics_for_unreadable_projects(
    mock_client: Mock, make_issue, caplog: pytest.LogCaptureFixture
) -> None:
    mock_client.list_issues.return_value = ApiResult.success(
        [
            make_issue(1, state=IssueState.CLOSED, status="Done", project_id="P_a"),
            make_issue(2, state=IssueState.CLOSED, status="Done", project_id="P_b"),
        ]
    )
    mock_client.get_project_text_values.side_effect = [
        ApiResult.failure("timeout"),
        ApiResult.success({}),
    ]

    report = run_check(
        mock_client,
        owner="octo-org",
        repo="octo-repo",
        settings=_settings(metrics=MetricsConfig(enabled=True)),
        now=NOW,
    )

    assert [i.number for i in report.inconsistencies] == [2]
    assert "Skipping metrics check for project" in caplog.text


def test_check_without_metrics_flag_skips_metrics(mock_client: Mock, make_issue) -> None:
    mock_client.list_issues.return_value = ApiResult.success(
        [make_issue(1, state=IssueState.CLOSED, status="Done")]
    )

    report = run_check(
        mock_client,
        owner="octo-org",
        repo="octo-repo",
        settings=_settings(metrics=MetricsConfig(enabled=True)),
        include_metrics=False,
    )

    assert report.inconsistencies == []
    mock_client.get_project_text_values.assert_not_called()


@pytest.mark.parametrize(
    ("settings_project", "explicit_project", "expected"),
    [
        (None, None, "octo-repo"),
        ("Roadmap", None, "Roadmap"),
        ("Roadmap", "Sprint Board", "Sprint Board"),
    ],
)
def test_check_reads_status_from_the_configured_project(
    mock_client: Mock,
    settings_project: str | None,
    explicit_project: str | None,
    expected: str,
) -> None:
    mock_client.list_issues.return_value = ApiResult.success([])

    run_check(
        mock_client,
        owner="octo-org",
        repo="octo-repo",
        settings=_settings(project_name=settings_project),
        project_name=explicit_project,
    )

    assert mock_client.list_issues.call_args.kwargs["project_title"] == expected


def test_check_closed_issue_done_on_named_project_is_consistent(mock_client: Mock) -> None:
    """A closed issue is judged by the named board, not another board it sits on."""
    session = Mock()
    session.headers = {}
    response = Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = {
        "data": {
            "repository": {
                "issues": {
                    "pageInfo": {"hasNextPage": False, "endCursor": None},
                    "nodes": [
                        {
                            "number": 5,
                            "title": "Shipped",
                            "state": "CLOSED",
                            "projectItems": {
                                "nodes": [
                                    {
                                        "id": "I_unrelated",
                                        "project": {"id": "P_unrelated", "title": "Unrelated"},
                                        "status": {"name": "In Progress", "optionId": "o2"},
                                    },
                                    {
                                        "id": "I_roadmap",
                                        "project": {"id": "P_roadmap", "title": "Roadmap"},
                                        "status": {"name": "Done", "optionId": "o4"},
                                    },
                                ]
                            },
                        }
                    ],
                }
            }
        }
    }
    session.post.return_value = response
    client = ProjectsClient(token="test-token", session=session, github_api=Mock())

    report = run_check(
        client, owner="octo-org", repo="octo-repo", settings=_settings(), project_name="Roadmap"
    )

    assert report.summary.total_checked == 1
    assert report.inconsistencies == []
