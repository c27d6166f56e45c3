"""Domain types shared by the resolver, setter, locator and classifiers.

Issues and project items are owned by GitHub; these are read-only snapshots
taken for one logical operation.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class IssueState(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class FieldType(str, Enum):
    SINGLE_SELECT = "SINGLE_SELECT"
    TEXT = "TEXT"


class UpdateReason(str, Enum):
    """Closed set of reasons a Status update did not happen."""

    FIELD_NOT_FOUND = "field-not-found"
    OPTION_NOT_FOUND = "option-not-found"
    UPDATE_FAILED = "update-failed"
    NO_PROJECT = "no-project"
    NO_ITEM = "no-item"


@dataclass(frozen=True, slots=True)
class SelectValue:
    """A single-select value as shown on the board (display name + option id)."""

    name: str
    option_id: str | None = None


@dataclass(frozen=True, slots=True)
class ProjectItem:
    """A board card linked to an issue."""

    id: str
    project_id: str
    project_title: str = ""
    status: SelectValue | None = None
    priority: SelectValue | None = None
    size: SelectValue | None = None


@dataclass(frozen=True, slots=True)
class Issue:
    number: int
    title: str
    state: IssueState
    url: str = ""
    closed_at: datetime | None = None
    labels: tuple[str, ...] = ()
    assignees: tuple[str, ...] = ()
    project_item: ProjectItem | None = None

    @property
    def status(self) -> str | None:
        if self.project_item is None or self.project_item.status is None:
            return None
        return self.project_item.status.name or None


@dataclass(frozen=True, slots=True)
class FieldDefinition:
    id: str
    name: str
    type: FieldType
    # Option display name -> option id. Empty for TEXT fields.
    options: dict[str, str] = field(default_factory=dict)


# Declared field name -> definition, for one project.
FieldCatalog = dict[str, FieldDefinition]


@dataclass(frozen=True, slots=True)
class ProjectSummary:
    id: str
    title: str


def select_project_item(
    items: Sequence[ProjectItem],
    *,
    project_title: str,
    project_id: str | None = None,
) -> ProjectItem | None:
    """Pick the one item that represents an issue on the target board.

    Preference order: the item on `project_id`, then the item whose project is
    titled `project_title` (the repository-name convention), then the first
    linked item. Returns None when the issue is on no board.
    """

    if not items:
        return None
    if project_id:
        for item in items:
            if item.project_id == project_id:
                return item
    for item in items:
        if item.project_title == project_title:
            return item
    return items[0]
