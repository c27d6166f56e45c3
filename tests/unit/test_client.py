"""Unit tests for the Projects V2 client (session and PyGithub mocked)."""

from __future__ import annotations

from typing import Any
from unittest.mock import Mock

import pytest
import requests
from github import GithubException

from project_status_sync.sync.github.client import ProjectsClient
from project_status_sync.sync.models import FieldType, IssueState


def _response(payload: dict[str, Any]) -> Mock:
    resp = Mock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def _client(*payloads: dict[str, Any], base_url: str = "https://api.github.com") -> ProjectsClient:
    session = Mock()
    session.headers = {}
    session.post.side_effect = [_response(p) for p in payloads]
    return ProjectsClient(token="test-token", base_url=base_url, session=session, github_api=Mock())


def test_graphql_url_for_github_com_and_enterprise() -> None:
    assert _client()._graphql_url() == "https://api.github.com/graphql"
    assert (
        _client(base_url="https://github.example.com/api/v3/")._graphql_url()
        == "https://github.example.com/api/graphql"
    )


def test_client_requires_token() -> None:
    with pytest.raises(ValueError, match="token"):
        ProjectsClient(token="", session=Mock(), github_api=Mock())


def test_owner_projects_fall_back_to_user() -> None:
    client = _client(
        {
            "data": {"organization": None},
            "errors": [{"message": "Could not resolve to an Organization with the login"}],
        },
        {"data": {"user": {"projectsV2": {"nodes": [{"id": "P_1", "title": "octo-repo"}]}}}},
    )

    result = client.get_owner_projects(owner="octocat")

    assert result.ok
    assert [(p.id, p.title) for p in result.value or []] == [("P_1", "octo-repo")]


def test_project_fields_keep_single_select_and_text_only() -> None:
    client = _client(
        {
            "data": {
                "node": {
                    "fields": {
                        "nodes": [
                            {
                                "id": "F_status",
                                "name": "Status",
                                "dataType": "SINGLE_SELECT",
                                "options": [{"id": "o1", "name": "Todo"}, {"id": "o2", "name": "Done"}],
                            },
                            {"id": "F_started", "name": "Started At", "dataType": "TEXT"},
                            {"id": "F_points", "name": "Points", "dataType": "NUMBER"},
                            {},
                        ]
                    }
                }
            }
        }
    )

    result = client.get_project_fields(project_id="P_1")

    assert result.ok
    fields = {f.name: f for f in result.value or []}
    assert set(fields) == {"Status", "Started At"}
    assert fields["Status"].type is FieldType.SINGLE_SELECT
    assert fields["Status"].options == {"Todo": "o1", "Done": "o2"}
    assert fields["Started At"].type is FieldType.TEXT


def test_get_issue_parses_items_and_selects_repo_board() -> None:
    client = _client(
        {
            "data": {
                "repository": {
                    "issue": {
                        "number": 42,
                        "title": "Answer",
                        "url": "https://github.com/octo-org/octo-repo/issues/42",
                        "state": "CLOSED",
                        "closedAt": "2024-02-10T18:30:00Z",
                        "labels": {"nodes": [{"name": "bug"}]},
                        "assignees": {"nodes": [{"login": "octocat"}]},
                        "projectItems": {
                            "nodes": [
                                {
                                    "id": "I_roadmap",
                                    "project": {"id": "P_other", "title": "Roadmap"},
                                    "status": {"name": "Backlog", "optionId": "o1"},
                                },
                                {
                                    "id": "I_repo",
                                    "project": {"id": "P_repo", "title": "octo-repo"},
                                    "status": {"name": "Review", "optionId": "o3"},
                                    "priority": {"name": "High", "optionId": "p1"},
                                    "size": None,
                                },
                            ]
                        },
                    }
                }
            }
        }
    )

    result = client.get_issue(owner="octo-org", repo="octo-repo", issue_number=42)

    assert result.ok and result.value is not None
    issue = result.value.issue
    assert issue.state is IssueState.CLOSED
    assert issue.closed_at is not None and issue.closed_at.day == 10
    assert issue.labels == ("bug",)
    assert issue.assignees == ("octocat",)
    assert issue.status == "Review"
    assert issue.project_item is not None and issue.project_item.priority is not None
    assert issue.project_item.priority.name == "High"
    assert [i.id for i in result.value.linked_items] == ["I_roadmap", "I_repo"]


def test_get_issue_missing_is_a_failure() -> None:
    client = _client({"data": {"repository": {"issue": None}}})

    result = client.get_issue(owner="octo-org", repo="octo-repo", issue_number=999)

    assert not result.ok
    assert "not found" in (result.error or "")


def test_get_issue_rejects_non_positive_number() -> None:
    with pytest.raises(ValueError):
        _client().get_issue(owner="octo-org", repo="octo-repo", issue_number=0)


def test_list_issues_follows_pages() -> None:
    def page(numbers: list[int], *, has_next: bool, cursor: str | None) -> dict[str, Any]:
        return {
            "data": {
                "repository": {
                    "issues": {
                        "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                        "nodes": [{"number": n, "title": f"#{n}", "state": "OPEN"} for n in numbers],
                    }
                }
            }
        }

    client = _client(page([1, 2], has_next=True, cursor="c1"), page([3], has_next=False, cursor=None))

    result = client.list_issues(owner="octo-org", repo="octo-repo", limit=200)

    assert [i.number for i in result.value or []] == [1, 2, 3]
    second_call = client._session.post.call_args_list[1]
    assert second_call.kwargs["json"]["variables"]["cursor"] == "c1"


def test_update_item_field_requires_exactly_one_value() -> None:
    client = _client()

    with pytest.raises(ValueError):
        client.update_item_field(project_id="P", item_id="I", field_id="F")
    with pytest.raises(ValueError):
        client.update_item_field(project_id="P", item_id="I", field_id="F", option_id="o", text="t")


def test_update_item_field_graphql_error_is_a_failure(caplog: pytest.LogCaptureFixture) -> None:
    client = _client({"errors": [{"message": "Resource not accessible by integration"}]})

    result = client.update_item_field(project_id="P", item_id="I", field_id="F", text="2024-01-01")

    assert not result.ok
    assert "Resource not accessible by integration" in (result.error or "")
    assert "GitHub call failed" in caplog.text


def test_network_errors_become_failures() -> None:
    session = Mock()
    session.headers = {}
    session.post.side_effect = requests.ConnectionError("connection reset")
    client = ProjectsClient(token="t", session=session, github_api=Mock())

    result = client.get_item_text_values(item_id="I_1")

    assert not result.ok
    assert "connection reset" in (result.error or "")


def test_item_text_values_ignore_empty_and_non_text() -> None:
    client = _client(
        {
            "data": {
                "node": {
                    "fieldValues": {
                        "nodes": [
                            {"text": "2024-01-01", "field": {"name": "Started At"}},
                            {"text": "", "field": {"name": "Completed At"}},
                            {},
                        ]
                    }
                }
            }
        }
    )

    assert client.get_item_text_values(item_id="I_1").value == {"Started At": "2024-01-01"}


def test_close_issue_uses_pygithub_with_state_reason() -> None:
    github_api = Mock()
    client = ProjectsClient(token="t", session=Mock(headers={}), github_api=github_api)

    result = client.close_issue(
        repository="octo-org/octo-repo", issue_number=7, state_reason="not_planned"
    )

    assert result.ok
    github_api.get_repo.assert_called_once_with("octo-org/octo-repo")
    github_api.get_repo.return_value.get_issue.assert_called_once_with(7)
    github_api.get_repo.return_value.get_issue.return_value.edit.assert_called_once_with(
        state="closed", state_reason="not_planned"
    )


def test_reopen_issue_failure_is_reported() -> None:
    github_api = Mock()
    github_api.get_repo.side_effect = GithubException(404, {"message": "Not Found"}, None)
    client = ProjectsClient(token="t", session=Mock(headers={}), github_api=github_api)

    result = client.reopen_issue(repository="octo-org/octo-repo", issue_number=7)

    assert not result.ok
    assert "Not Found" in (result.error or "")


def _issue_with_items_page() -> dict[str, Any]:
    return {
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


def test_list_issues_selects_item_on_named_project() -> None:
    client = _client(_issue_with_items_page())

    result = client.list_issues(
        owner="octo-org", repo="octo-repo", states=(IssueState.CLOSED,), project_title="Roadmap"
    )

    assert result.ok and result.value is not None
    item = result.value[0].project_item
    assert item is not None and item.id == "I_roadmap"
    assert result.value[0].status == "Done"


def _text_values_page(item_id: str, *, has_next: bool, cursor: str | None) -> dict[str, Any]:
    return {
        "data": {
            "node": {
                "items": {
                    "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                    "nodes": [
                        {
                            "id": item_id,
                            "fieldValues": {
                                "nodes": [{"text": "2024-01-01", "field": {"name": "Started At"}}]
                            },
                        }
                    ],
                }
            }
        }
    }


def test_project_text_values_read_every_page() -> None:
    pages = [_text_values_page(f"I_{n}", has_next=n < 12, cursor=f"c{n}") for n in range(1, 13)]
    client = _client(*pages)

    result = client.get_project_text_values(project_id="P_1")

    assert result.ok and result.value is not None
    assert len(result.value) == 12
    assert result.value["I_12"] == {"Started At": "2024-01-01"}


def test_project_text_values_past_page_limit_is_a_failure(
    caplog: pytest.LogCaptureFixture,
) -> None:
    pages = [_text_values_page(f"I_{n}", has_next=True, cursor=f"c{n}") for n in range(1, 12)]
    client = _client(*pages)

    result = client.get_project_text_values(project_id="P_1", max_pages=10)

    assert not result.ok
    assert result.error == "Project P_1 has more than 10 pages of items"
    assert client._session.post.call_count == 10
    assert "Project has more items than the page limit" in caplog.text


def test_project_text_values_failed_later_page_is_a_failure() -> None:
    client = _client(
        _text_values_page("I_1", has_next=True, cursor="c1"),
        {"errors": [{"message": "Something went wrong"}]},
    )

    result = client.get_project_text_values(project_id="P_1")

    assert not result.ok
    assert result.value is None
    assert "Something went wrong" in (result.error or "")
