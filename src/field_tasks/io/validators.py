"""Validation rules for entity payloads, patches and backup rows.

Each validator returns a list of error strings (empty when the payload
is fine). Repositories join them into a ValidationError; the backup
loader labels them with the offending row.
"""

from dataclasses import fields as dc_fields

from field_tasks.database.models import JobSite, Quantity, StoreInfo
from field_tasks.utils.constants import (
    ENTITY_TYPES,
    INVENTORY_LEVELS,
    ITEM_STATES,
    ITEM_TYPES,
    ITEM_URGENCIES,
    JOB_PRIORITIES,
    JOB_STATUSES,
)
from field_tasks.utils.time import to_iso

JOB_READ_ONLY = {"id", "created_at", "updated_at"}
JOB_ITEM_READ_ONLY = {"id", "job_id", "created_at", "updated_at"}
INVENTORY_READ_ONLY = {"id", "name_key", "created_at", "updated_at"}


def _names(cls) -> set[str]:
    return {f.name for f in dc_fields(cls)}


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_patch(changes: dict, model, read_only: set[str],
                   label: str) -> list[str]:
    """Reject unknown and read-only keys in an update patch."""
    errors = []
    known = _names(model)
    for key in changes:
        if key not in known:
            errors.append(f"{label}: unknown field '{key}'")
        elif key in read_only:
            errors.append(f"{label}: field '{key}' cannot be changed")
    return errors


def _check_text(errors, data, key, label, required=False):
    if key not in data or data[key] is None:
        if required:
            errors.append(f"{label}: {key} is required")
        return
    value = data[key]
    if not isinstance(value, str):
        errors.append(f"{label}: {key} must be text")
    elif required and not value.strip():
        errors.append(f"{label}: {key} is required")


def _check_choice(errors, data, key, choices, label, required=False):
    if key not in data:
        if required:
            errors.append(f"{label}: {key} is required")
        return
    if data[key] not in choices:
        errors.append(
            f"{label}: {key} must be one of {', '.join(choices)} "
            f"(got {data[key]!r})"
        )


def _check_timestamp(errors, data, key, label, required=False):
    if key not in data or data[key] is None:
        if required:
            errors.append(f"{label}: {key} is required")
        return
    try:
        to_iso(data[key])
    except (ValueError, TypeError):
        errors.append(f"{label}: {key} is not a valid timestamp")


def _check_nested(errors, data, key, model, label):
    value = data.get(key)
    if value is None or isinstance(value, model):
        return
    if not isinstance(value, dict):
        errors.append(f"{label}: {key} must be an object")
        return
    unknown = set(value) - _names(model)
    if unknown:
        errors.append(
            f"{label}: {key} has unknown fields {', '.join(sorted(unknown))}"
        )


def _check_sort_order(errors, data, label):
    if "sort_order" in data and not _is_number(data["sort_order"]):
        errors.append(f"{label}: sort_order must be a number")


def validate_job(data: dict, partial: bool = False,
                 label: str = "Job") -> list[str]:
    """Validate job fields; ``partial`` skips required checks for patches."""
    errors: list[str] = []
    _check_text(errors, data, "title", label,
                required=not partial or "title" in data)
    _check_text(errors, data, "reference", label)
    _check_choice(errors, data, "status", JOB_STATUSES, label)
    _check_choice(errors, data, "priority", JOB_PRIORITIES, label)
    _check_nested(errors, data, "site", JobSite, label)
    _check_sort_order(errors, data, label)
    _check_timestamp(errors, data, "archived_at", label)
    return errors


def validate_job_item(data: dict, partial: bool = False,
                      label: str = "Job item") -> list[str]:
    errors: list[str] = []
    if not partial:
        _check_text(errors, data, "job_id", label, required=True)
    _check_choice(errors, data, "type", ITEM_TYPES, label,
                  required=not partial)
    _check_text(errors, data, "title", label,
                required=not partial or "title" in data)
    _check_text(errors, data, "details", label)
    _check_choice(errors, data, "urgency", ITEM_URGENCIES, label)
    _check_choice(errors, data, "state", ITEM_STATES, label)
    _check_sort_order(errors, data, label)
    _check_nested(errors, data, "quantity", Quantity, label)
    _check_nested(errors, data, "store", StoreInfo, label)
    _check_timestamp(errors, data, "reminder_at", label)
    _check_timestamp(errors, data, "done_at", label)

    quantity = data.get("quantity")
    if isinstance(quantity, dict):
        amount = quantity.get("amount")
    elif isinstance(quantity, Quantity):
        amount = quantity.amount
    else:
        amount = 0
    if quantity is not None and (not _is_number(amount) or amount < 0):
        errors.append(f"{label}: quantity amount must be a non-negative number")
    return errors


def validate_inventory_item(data: dict, partial: bool = False,
                            label: str = "Inventory item") -> list[str]:
    errors: list[str] = []
    _check_text(errors, data, "name", label,
                required=not partial or "name" in data)
    _check_choice(errors, data, "level", INVENTORY_LEVELS, label)
    _check_text(errors, data, "default_store", label)

    tags = data.get("tags")
    if tags is not None:
        if not isinstance(tags, (list, tuple, set)):
            errors.append(f"{label}: tags must be a list")
        elif not all(isinstance(t, str) and t.strip() for t in tags):
            errors.append(f"{label}: tags must be non-empty text")
    return errors


def validate_event(data: dict, label: str = "Event") -> list[str]:
    errors: list[str] = []
    _check_choice(errors, data, "entity_type", ENTITY_TYPES, label,
                  required=True)
    _check_text(errors, data, "entity_id", label, required=True)
    _check_text(errors, data, "action", label, required=True)
    meta = data.get("meta")
    if meta is not None and not isinstance(meta, dict):
        errors.append(f"{label}: meta must be an object")
    return errors


def validate_stored(data: dict, label: str,
                    stamps=("created_at", "updated_at")) -> list[str]:
    """Checks for a full stored record (backup rows): id and timestamps."""
    errors: list[str] = []
    _check_text(errors, data, "id", label, required=True)
    for key in stamps:
        _check_timestamp(errors, data, key, label, required=True)
    return errors
