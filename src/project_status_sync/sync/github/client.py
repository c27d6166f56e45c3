"""GitHub Projects (V2) client wrapper.

GraphQL calls go through a `requests.Session`; issue open/close changes go
through PyGithub. Every public method returns an `ApiResult` instead of
raising for HTTP, network or GraphQL failures, so callers iterating over many
issues can continue past individual failures. Malformed responses still raise
`ValueError`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar
from urllib.parse import urlparse, urlunparse

import requests
from github import Auth, Github, GithubException

from project_status_sync.sync.models import (
    FieldDefinition,
    FieldType,
    Issue,
    IssueState,
    ProjectItem,
    ProjectSummary,
    SelectValue,
    select_project_item,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GitHubGraphQLError(RuntimeError):
    """GraphQL response carried an `errors` array."""


@dataclass(frozen=True, slots=True)
class ApiResult(Generic[T]):
    """Outcome of one remote call: either a value or an error message."""

    ok: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T) -> ApiResult[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> ApiResult[T]:
        return cls(ok=False, error=error)


@dataclass(frozen=True, slots=True)
class IssueDetail:
    """An issue plus every project item it is linked to."""

    issue: Issue
    linked_items: tuple[ProjectItem, ...]


_SELECT_VALUE = "... on ProjectV2ItemFieldSingleSelectValue { name optionId }"

_PROJECT_ITEM_FRAGMENT = f"""
          id
          project {{ id title }}
          status: fieldValueByName(name: "Status") {{ {_SELECT_VALUE} }}
          priority: fieldValueByName(name: "Priority") {{ {_SELECT_VALUE} }}
          size: fieldValueByName(name: "Size") {{ {_SELECT_VALUE} }}
"""

QUERY_ORG_PROJECTS = """
query($login: String!, $first: Int!) {
  organization(login: $login) {
    projectsV2(first: $first) { nodes { id title } }
  }
}
"""

QUERY_USER_PROJECTS = """
query($login: String!, $first: Int!) {
  user(login: $login) {
    projectsV2(first: $first) { nodes { id title } }
  }
}
"""

QUERY_PROJECT_FIELDS = """
query($projectId: ID!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      fields(first: 50) {
        nodes {
          ... on ProjectV2SingleSelectField { id name dataType options { id name } }
          ... on ProjectV2Field { id name dataType }
        }
      }
    }
  }
}
"""

QUERY_ISSUE_DETAIL = f"""
query($owner: String!, $name: String!, $number: Int!) {{
  repository(owner: $owner, name: $name) {{
    issue(number: $number) {{
      number
      title
      url
      state
      closedAt
      labels(first: 20) {{ nodes {{ name }} }}
      assignees(first: 10) {{ nodes {{ login }} }}
      projectItems(first: 10) {{
        nodes {{
{_PROJECT_ITEM_FRAGMENT}
        }}
      }}
    }}
  }}
}}
"""

QUERY_ISSUES_WITH_PROJECTS = f"""
query($owner: String!, $name: String!, $first: Int!, $cursor: String, $states: [IssueState!]) {{
  repository(owner: $owner, name: $name) {{
    issues(first: $first, after: $cursor, states: $states,
           orderBy: {{field: UPDATED_AT, direction: DESC}}) {{
      pageInfo {{ hasNextPage endCursor }}
      nodes {{
        number
        title
        url
        state
        closedAt
        labels(first: 20) {{ nodes {{ name }} }}
        assignees(first: 10) {{ nodes {{ login }} }}
        projectItems(first: 10) {{
          nodes {{
{_PROJECT_ITEM_FRAGMENT}
          }}
        }}
      }}
    }}
  }}
}}
"""

_TEXT_VALUES = """
        fieldValues(first: 50) {
          nodes {
            ... on ProjectV2ItemFieldTextValue {
              text
              field { ... on ProjectV2FieldCommon { name } }
            }
          }
        }
"""

QUERY_ITEM_TEXT_VALUES = f"""
query($itemId: ID!) {{
  node(id: $itemId) {{
    ... on ProjectV2Item {{
{_TEXT_VALUES}
    }}
  }}
}}
"""

QUERY_PROJECT_ITEM_TEXT_VALUES = f"""
query($projectId: ID!, $first: Int!, $cursor: String) {{
  node(id: $projectId) {{
    ... on ProjectV2 {{
      items(first: $first, after: $cursor) {{
        pageInfo {{ hasNextPage endCursor }}
        nodes {{
          id
{_TEXT_VALUES}
        }}
      }}
    }}
  }}
}}
"""

MUTATION_UPDATE_SELECT_FIELD = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
  updateProjectV2ItemFieldValue(input: {
    projectId: $projectId
    itemId: $itemId
    fieldId: $fieldId
    value: { singleSelectOptionId: $optionId }
  }) { projectV2Item { id } }
}
"""

MUTATION_UPDATE_TEXT_FIELD = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $text: String!) {
  updateProjectV2ItemFieldValue(input: {
    projectId: $projectId
    itemId: $itemId
    fieldId: $fieldId
    value: { text: $text }
  }) { projectV2Item { id } }
}
"""


def _dig(data: Any, *keys: str) -> Any:
    """Walk nested dicts, returning None as soon as a level is missing."""

    current = data
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _nodes(container: Any) -> list[dict[str, Any]]:
    nodes = _dig(container, "nodes")
    if not isinstance(nodes, list):
        return []
    return [n for n in nodes if isinstance(n, dict)]


class ProjectsClient:
    """Small wrapper around the GitHub GraphQL API for Projects V2 boards."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = "https://api.github.com",
        session: requests.Session | None = None,
        github_api: Github | None = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub token is required")

        self._rest_base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "project-status-sync",
            }
        )
        self._github = github_api or Github(auth=Auth.Token(token), base_url=self._rest_base_url)

    def _graphql_url(self) -> str:
        """Derive the GitHub GraphQL endpoint from the configured REST base URL.

        GitHub.com:
            REST: https://api.github.com
            GQL:  https://api.github.com/graphql

        GitHub Enterprise typically exposes REST as:
            https://github.example.com/api/v3
        and GraphQL as:
            https://github.example.com/api/graphql
        """

        parsed = urlparse(self._rest_base_url)
        path = parsed.path.rstrip("/")

        if path.endswith("/api/v3"):
            path = path[: -len("/api/v3")] + "/api/graphql"
        elif path.endswith("/api"):
            path = path[: -len("/api")] + "/api/graphql"
        elif path == "":
            path = "/graphql"
        else:
            path = path + "/graphql"

        return urlunparse(parsed._replace(path=path))

    def _graphql(self, *, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        url = self._graphql_url()
        resp = self._session.post(url, json={"query": query, "variables": variables}, timeout=30)
        resp.raise_for_status()
        payload: dict[str, Any] = resp.json()
        errors = payload.get("errors")
        if errors:
            # Avoid dumping the entire response; keep logs small and actionable.
            messages = []
            if isinstance(errors, list):
                for item in errors:
                    if isinstance(item, dict):
                        msg = item.get("message")
                        if isinstance(msg, str):
                            messages.append(msg)
            message = "; ".join(messages) if messages else "Unknown GraphQL error"
            raise GitHubGraphQLError(f"GitHub GraphQL error: {message}")
        return payload

    def _run(self, operation: str, call: Callable[[], T], **context: object) -> ApiResult[T]:
        try:
            return ApiResult.success(call())
        except (requests.RequestException, GitHubGraphQLError, GithubException) as e:
            logger.warning(
                "GitHub call failed",
                extra={"operation": operation, "error": str(e), **context},
            )
            return ApiResult.failure(str(e))

    # ── Parsing ────────────────────────────────────────────────────────────

    @staticmethod
    def _parse_select_value(node: Any) -> SelectValue | None:
        if not isinstance(node, dict):
            return None
        name = node.get("name")
        if not isinstance(name, str) or not name:
            return None
        option_id = node.get("optionId")
        return SelectValue(name=name, option_id=option_id if isinstance(option_id, str) else None)

    @classmethod
    def _parse_project_item_node(cls, node: dict[str, Any]) -> ProjectItem | None:
        item_id = node.get("id")
        project_id = _dig(node, "project", "id")
        if not isinstance(item_id, str) or not isinstance(project_id, str):
            return None
        title = _dig(node, "project", "title")
        return ProjectItem(
            id=item_id,
            project_id=project_id,
            project_title=title if isinstance(title, str) else "",
            status=cls._parse_select_value(node.get("status")),
            priority=cls._parse_select_value(node.get("priority")),
            size=cls._parse_select_value(node.get("size")),
        )

    @staticmethod
    def _parse_closed_at(value: object) -> datetime | None:
        if not isinstance(value, str) or not value.strip():
            return None
        return datetime.fromisoformat(value.replace("Z", "+00:00"))

    @classmethod
    def _parse_issue_node(
        cls, node: dict[str, Any], *, project_title: str
    ) -> tuple[Issue, tuple[ProjectItem, ...]]:
        number = node.get("number")
        if not isinstance(number, int) or number <= 0:
            raise ValueError("Invalid issue response: missing number")

        state_raw = node.get("state")
        try:
            state = IssueState(state_raw)
        except ValueError as e:
            raise ValueError(f"Invalid issue response: unknown state {state_raw!r}") from e

        items = tuple(
            item
            for item in (cls._parse_project_item_node(n) for n in _nodes(node.get("projectItems")))
            if item is not None
        )
        labels = tuple(
            n["name"] for n in _nodes(node.get("labels")) if isinstance(n.get("name"), str)
        )
        assignees = tuple(
            n["login"] for n in _nodes(node.get("assignees")) if isinstance(n.get("login"), str)
        )
        title = node.get("title")
        url = node.get("url")

        issue = Issue(
            number=number,
            title=title if isinstance(title, str) else "",
            url=url if isinstance(url, str) else "",
            state=state,
            closed_at=cls._parse_closed_at(node.get("closedAt")),
            labels=labels,
            assignees=assignees,
            project_item=select_project_item(items, project_title=project_title),
        )
        return issue, items

    @staticmethod
    def _parse_field_node(node: dict[str, Any]) -> FieldDefinition | None:
        field_id = node.get("id")
        name = node.get("name")
        if not isinstance(field_id, str) or not isinstance(name, str) or not name:
            return None

        raw_options = node.get("options")
        if isinstance(raw_options, list):
            options: dict[str, str] = {}
            for opt in raw_options:
                if isinstance(opt, dict):
                    opt_name = opt.get("name")
                    opt_id = opt.get("id")
                    if isinstance(opt_name, str) and isinstance(opt_id, str):
                        options[opt_name] = opt_id
            return FieldDefinition(
                id=field_id, name=name, type=FieldType.SINGLE_SELECT, options=options
            )

        if node.get("dataType") == "TEXT":
            return FieldDefinition(id=field_id, name=name, type=FieldType.TEXT)
        # Number, date, iteration and built-in fields are not managed here.
        return None

    @staticmethod
    def _parse_text_values(nodes: Iterable[dict[str, Any]]) -> dict[str, str]:
        values: dict[str, str] = {}
        for fv in nodes:
            name = _dig(fv, "field", "name")
            text = fv.get("text")
            if isinstance(name, str) and isinstance(text, str) and text:
                values[name] = text
        return values

    # ── Queries ────────────────────────────────────────────────────────────

    def get_owner_projects(self, *, owner: str, first: int = 50) -> ApiResult[list[ProjectSummary]]:
        """List an owner's projects, trying the organization first, then the user."""

        variables = {"login": owner, "first": first}
        org = self._run(
            "org_projects",
            lambda: self._graphql(query=QUERY_ORG_PROJECTS, variables=variables),
            owner=owner,
        )
        if org.ok and _dig(org.value, "data", "organization") is not None:
            container = _dig(org.value, "data", "organization", "projectsV2")
        else:
            user = self._run(
                "user_projects",
                lambda: self._graphql(query=QUERY_USER_PROJECTS, variables=variables),
                owner=owner,
            )
            if not user.ok:
                return ApiResult.failure(user.error or "Could not list projects")
            container = _dig(user.value, "data", "user", "projectsV2")

        projects: list[ProjectSummary] = []
        for node in _nodes(container):
            pid = node.get("id")
            title = node.get("title")
            if isinstance(pid, str) and pid:
                projects.append(
                    ProjectSummary(id=pid, title=title if isinstance(title, str) else "")
                )
        return ApiResult.success(projects)

    def get_project_fields(self, *, project_id: str) -> ApiResult[list[FieldDefinition]]:
        result = self._run(
            "project_fields",
            lambda: self._graphql(query=QUERY_PROJECT_FIELDS, variables={"projectId": project_id}),
            project_id=project_id,
        )
        if not result.ok:
            return ApiResult.failure(result.error or "Could not fetch project fields")

        fields: list[FieldDefinition] = []
        for node in _nodes(_dig(result.value, "data", "node", "fields")):
            definition = self._parse_field_node(node)
            if definition is not None:
                fields.append(definition)
        return ApiResult.success(fields)

    def get_issue(self, *, owner: str, repo: str, issue_number: int) -> ApiResult[IssueDetail]:
        """Fetch one issue with every project item linked to it."""

        if issue_number <= 0:
            raise ValueError("issue_number must be a positive integer")

        result = self._run(
            "issue_detail",
            lambda: self._graphql(
                query=QUERY_ISSUE_DETAIL,
                variables={"owner": owner, "name": repo, "number": issue_number},
            ),
            repo=f"{owner}/{repo}",
            issue_number=issue_number,
        )
        if not result.ok:
            return ApiResult.failure(result.error or "Could not fetch issue")

        node = _dig(result.value, "data", "repository", "issue")
        if not isinstance(node, dict):
            return ApiResult.failure(f"Issue #{issue_number} not found in {owner}/{repo}")

        issue, items = self._parse_issue_node(node, project_title=repo)
        return ApiResult.success(IssueDetail(issue=issue, linked_items=items))

    def list_issues(
        self,
        *,
        owner: str,
        repo: str,
        states: Iterable[IssueState] = (IssueState.OPEN,),
        limit: int = 100,
        project_title: str | None = None,
    ) -> ApiResult[list[Issue]]:
        """List issues with the item on the board titled `project_title`.

        `project_title` defaults to the repository name.

        Pages through results 100 at a time until `limit` issues are collected.
        A failure after the first page returns the issues fetched so far.
        """

        state_values = [s.value for s in states]
        title = project_title or repo
        issues: list[Issue] = []
        cursor: str | None = None

        while len(issues) < limit:
            variables = {
                "owner": owner,
                "name": repo,
                "first": min(100, limit - len(issues)),
                "cursor": cursor,
                "states": state_values,
            }
            result = self._run(
                "list_issues",
                lambda v=variables: self._graphql(query=QUERY_ISSUES_WITH_PROJECTS, variables=v),
                repo=f"{owner}/{repo}",
            )
            if not result.ok:
                if not issues:
                    return ApiResult.failure(result.error or "Could not list issues")
                break

            container = _dig(result.value, "data", "repository", "issues")
            for node in _nodes(container):
                issue, _items = self._parse_issue_node(node, project_title=title)
                issues.append(issue)

            page_info = _dig(container, "pageInfo") or {}
            end_cursor = page_info.get("endCursor")
            if not page_info.get("hasNextPage") or not isinstance(end_cursor, str):
                break
            cursor = end_cursor

        logger.debug("Issues fetched", extra={"repo": f"{owner}/{repo}", "count": len(issues)})
        return ApiResult.success(issues)

    def get_item_text_values(self, *, item_id: str) -> ApiResult[dict[str, str]]:
        """Return the non-empty Text field values of one project item."""

        result = self._run(
            "item_text_values",
            lambda: self._graphql(query=QUERY_ITEM_TEXT_VALUES, variables={"itemId": item_id}),
            item_id=item_id,
        )
        if not result.ok:
            return ApiResult.failure(result.error or "Could not fetch item field values")
        nodes = _nodes(_dig(result.value, "data", "node", "fieldValues"))
        return ApiResult.success(self._parse_text_values(nodes))

    def get_project_text_values(
        self, *, project_id: str, max_pages: int | None = None
    ) -> ApiResult[dict[str, dict[str, str]]]:
        """Batch-fetch Text field values: item id -> {field name -> text}.

        Pages through every item. The result is all or nothing: a failed page,
        or more pages than `max_pages`, is a failure, since a missing item
        would read as an unstamped one.
        """

        values: dict[str, dict[str, str]] = {}
        cursor: str | None = None
        pages = 0
        while True:
            if max_pages is not None and pages >= max_pages:
                logger.warning(
                    "Project has more items than the page limit",
                    extra={"project_id": project_id, "max_pages": max_pages},
                )
                return ApiResult.failure(
                    f"Project {project_id} has more than {max_pages} pages of items"
                )
            pages += 1
            variables = {"projectId": project_id, "first": 100, "cursor": cursor}
            result = self._run(
                "project_text_values",
                lambda v=variables: self._graphql(query=QUERY_PROJECT_ITEM_TEXT_VALUES, variables=v),
                project_id=project_id,
            )
            if not result.ok:
                return ApiResult.failure(result.error or "Could not fetch item field values")

            container = _dig(result.value, "data", "node", "items")
            for node in _nodes(container):
                item_id = node.get("id")
                if not isinstance(item_id, str):
                    continue
                texts = self._parse_text_values(_nodes(node.get("fieldValues")))
                if texts:
                    values[item_id] = texts

            page_info = _dig(container, "pageInfo") or {}
            end_cursor = page_info.get("endCursor")
            if not page_info.get("hasNextPage") or not isinstance(end_cursor, str):
                break
            cursor = end_cursor
        return ApiResult.success(values)

    # ── Mutations ──────────────────────────────────────────────────────────

    def update_item_field(
        self,
        *,
        project_id: str,
        item_id: str,
        field_id: str,
        option_id: str | None = None,
        text: str | None = None,
    ) -> ApiResult[None]:
        """Write one field value on a project item.

        Exactly one of `option_id` (single-select) or `text` must be given.
        There is no compare-and-swap: the last writer wins.
        """

        if (option_id is None) == (text is None):
            raise ValueError("Exactly one of option_id or text is required")

        variables: dict[str, Any] = {"projectId": project_id, "itemId": item_id, "fieldId": field_id}
        if option_id is not None:
            query = MUTATION_UPDATE_SELECT_FIELD
            variables["optionId"] = option_id
        else:
            query = MUTATION_UPDATE_TEXT_FIELD
            variables["text"] = text

        result = self._run(
            "update_item_field",
            lambda: self._graphql(query=query, variables=variables),
            item_id=item_id,
            field_id=field_id,
        )
        if not result.ok:
            return ApiResult.failure(result.error or "Field update failed")
        return ApiResult.success(None)

    def close_issue(
        self, *, repository: str, issue_number: int, state_reason: str = "completed"
    ) -> ApiResult[None]:
        """Close an issue. `state_reason` is "completed" or "not_planned"."""

        def _close() -> None:
            issue = self._github.get_repo(repository).get_issue(issue_number)
            issue.edit(state="closed", state_reason=state_reason)

        result = self._run(
            "close_issue", _close, repo=repository, issue_number=issue_number
        )
        if result.ok:
            logger.info(
                "Issue closed",
                extra={"repo": repository, "issue_number": issue_number, "reason": state_reason},
            )
        return result

    def reopen_issue(self, *, repository: str, issue_number: int) -> ApiResult[None]:
        def _reopen() -> None:
            issue = self._github.get_repo(repository).get_issue(issue_number)
            issue.edit(state="open")

        result = self._run(
            "reopen_issue", _reopen, repo=repository, issue_number=issue_number
        )
        if result.ok:
            logger.info("Issue reopened", extra={"repo": repository, "issue_number": issue_number})
        return result

    def close(self) -> None:
        self._session.close()
        self._github.close()
