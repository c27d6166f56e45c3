"""Project field resolution, field writes and lifecycle timestamps.

A `FieldCatalog` is fetched once per project per logical operation and passed
explicitly to every later call in that operation. Nothing here caches across
calls.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date

from project_status_sync.sync.config import MetricsConfig
from project_status_sync.sync.github.client import ProjectsClient
from project_status_sync.sync.models import (
    FieldCatalog,
    FieldDefinition,
    FieldType,
    UpdateReason,
)
from project_status_sync.sync.workflow import validate_status_transition

logger = logging.getLogger(__name__)

STATUS_FIELD = "Status"

# GitHub Projects reserves some field names (e.g. "Type"), so boards carry them
# under another name. Order matters: the first name present wins.
FIELD_FALLBACKS: dict[str, tuple[str, ...]] = {
    "Type": ("Item Type", "ItemType"),
}


def fetch_field_catalog(client: ProjectsClient, project_id: str) -> FieldCatalog:
    """Fetch the single-select and text fields of a project.

    Returns an empty catalog when the fields cannot be read.
    """

    result = client.get_project_fields(project_id=project_id)
    if not result.ok or result.value is None:
        logger.warning(
            "Could not fetch project fields",
            extra={"project_id": project_id, "error": result.error},
        )
        return {}
    return {definition.name: definition for definition in result.value}


def resolve_field_name(name: str, catalog: Mapping[str, FieldDefinition]) -> str | None:
    if name in catalog:
        return name
    for alt in FIELD_FALLBACKS.get(name, ()):
        if alt in catalog:
            return alt
    return None


def resolve_option_id(definition: FieldDefinition, value: str) -> str | None:
    """Find the option id for a display name, tolerating a case mismatch."""

    exact = definition.options.get(value)
    if exact:
        return exact

    lowered = value.lower()
    for option_name, option_id in definition.options.items():
        if option_name.lower() == lowered:
            logger.warning(
                f"Field '{definition.name}': case mismatch '{value}' -> '{option_name}'",
                extra={"field": definition.name, "value": value, "option": option_name},
            )
            return option_id
    return None


@dataclass(frozen=True, slots=True)
class FieldWrite:
    """A validated write: which field, and the option id or text to send."""

    field: FieldDefinition
    option_id: str | None = None
    text: str | None = None


def plan_field_write(
    name: str, value: str, catalog: Mapping[str, FieldDefinition]
) -> FieldWrite | UpdateReason:
    """Validate one name/value pair against the catalog.

    Emits the diagnostic for a skipped field and returns the reason, or returns
    the write to perform.
    """

    resolved = resolve_field_name(name, catalog)
    if resolved is None:
        fallbacks = FIELD_FALLBACKS.get(name, ())
        hint = f" (also tried: {', '.join(fallbacks)})" if fallbacks else ""
        logger.warning(
            f"Field '{name}' not found in project{hint}",
            extra={"field": name, "tried": [name, *fallbacks]},
        )
        return UpdateReason.FIELD_NOT_FOUND

    definition = catalog[resolved]
    if definition.type is FieldType.TEXT:
        return FieldWrite(field=definition, text=value)

    option_id = resolve_option_id(definition, value)
    if option_id is None:
        available = ", ".join(sorted(definition.options))
        logger.error(
            f"Invalid {name} value '{value}'. Available options: {available}",
            extra={"field": name, "value": value, "available": sorted(definition.options)},
        )
        return UpdateReason.OPTION_NOT_FOUND
    return FieldWrite(field=definition, option_id=option_id)


def write_field(
    client: ProjectsClient, *, project_id: str, item_id: str, write: FieldWrite
) -> bool:
    result = client.update_item_field(
        project_id=project_id,
        item_id=item_id,
        field_id=write.field.id,
        option_id=write.option_id,
        text=write.text,
    )
    if not result.ok:
        logger.warning(
            f"Failed to update field '{write.field.name}'",
            extra={"field": write.field.name, "item_id": item_id, "error": result.error},
        )
    return result.ok


def set_item_fields(
    client: ProjectsClient,
    *,
    project_id: str,
    item_id: str,
    fields: Mapping[str, str],
    catalog: Mapping[str, FieldDefinition] | None = None,
    current_status: str | None = None,
    metrics: MetricsConfig | None = None,
) -> int:
    """Write several fields on one project item, each independently.

    A field that cannot be resolved, has an invalid value, or fails to write is
    skipped with a diagnostic; the remaining fields are still written. A
    successful `Status` write stamps its lifecycle date when `metrics` is given.

    Returns:
        The number of fields actually written.
    """

    if not fields:
        return 0

    project_fields = catalog if catalog is not None else fetch_field_catalog(client, project_id)

    new_status = fields.get(STATUS_FIELD)
    if new_status:
        warn_on_nonstandard_transition(current_status, new_status)

    written = 0
    for name, value in fields.items():
        planned = plan_field_write(name, value, project_fields)
        if isinstance(planned, UpdateReason):
            continue
        if not write_field(client, project_id=project_id, item_id=item_id, write=planned):
            continue
        written += 1
        if name == STATUS_FIELD and metrics is not None:
            auto_set_timestamps(
                client,
                project_id=project_id,
                item_id=item_id,
                status_value=value,
                catalog=project_fields,
                metrics=metrics,
            )
    return written


def warn_on_nonstandard_transition(current_status: str | None, new_status: str) -> None:
    """Log (never block) a Status change outside the standard workflow."""

    check = validate_status_transition(current_status, new_status)
    if not check.valid:
        logger.warning(check.warning, extra={"from": current_status, "to": new_status})


def auto_set_timestamps(
    client: ProjectsClient,
    *,
    project_id: str,
    item_id: str,
    status_value: str,
    catalog: Mapping[str, FieldDefinition],
    metrics: MetricsConfig,
    today: date | None = None,
) -> None:
    """Stamp the lifecycle date field mapped to a Status, once.

    Most statuses have no mapped field, and boards without the metrics fields
    are normal; both are silent no-ops. A field that already holds a date is
    never overwritten.
    """

    if not metrics.enabled:
        return

    field_name = metrics.date_field_for(status_value)
    if field_name is None:
        return

    definition = catalog.get(field_name)
    if definition is None:
        logger.debug(
            f"Metrics: Text field '{field_name}' not found in project",
            extra={"field": field_name, "project_id": project_id},
        )
        return
    if definition.type is not FieldType.TEXT:
        logger.warning(
            f"Metrics: Field '{field_name}' is not a Text field", extra={"field": field_name}
        )
        return

    current = client.get_item_text_values(item_id=item_id)
    if not current.ok or current.value is None:
        logger.warning(
            f"Metrics: could not read '{field_name}'; not stamping",
            extra={"field": field_name, "item_id": item_id, "error": current.error},
        )
        return
    if current.value.get(field_name, "").strip():
        return

    stamp = (today or date.today()).isoformat()
    write = FieldWrite(field=definition, text=stamp)
    if write_field(client, project_id=project_id, item_id=item_id, write=write):
        logger.info(f"Metrics: {field_name} = {stamp}", extra={"field": field_name, "item_id": item_id})
