"""
Change schemas.

One model per action the engine understands. Literal action tags keep a
model from inventing new operations; `extra="allow"` keeps any additional
fields it sends so previews can still show them.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from planwright.models import JsonDict

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "move_tasks": ("from_table_id", "to_table_id", "task_ids"),
    "update_task": ("table_id", "task_id", "updates"),
    "create_task": ("table_id", "task"),
    "delete_task": ("table_id", "task_id"),
    "create_table": ("table",),
    "update_table": ("table_id", "updates"),
    "reorder_tasks": ("table_id", "task_ids"),
}

ACTIONS = tuple(REQUIRED_FIELDS)


class _Change(BaseModel):
    model_config = ConfigDict(extra="allow")


class NewTask(_Change):
    id: str


class MoveTasks(_Change):
    action: Literal["move_tasks"]
    from_table_id: str
    to_table_id: str
    task_ids: list[str] = Field(min_length=1)


class UpdateTask(_Change):
    action: Literal["update_task"]
    table_id: str
    task_id: str
    updates: dict[str, Any]


class CreateTask(_Change):
    action: Literal["create_task"]
    table_id: str
    task: NewTask
    # "end" | "start" | index; anything else is rejected when applied
    position: Any = "end"


class DeleteTask(_Change):
    action: Literal["delete_task"]
    table_id: str
    task_id: str


class CreateTable(_Change):
    action: Literal["create_table"]
    table: dict[str, Any]


class UpdateTable(_Change):
    action: Literal["update_table"]
    table_id: str
    updates: dict[str, Any]


class ReorderTasks(_Change):
    action: Literal["reorder_tasks"]
    table_id: str
    task_ids: list[str]


Change = Union[MoveTasks, UpdateTask, CreateTask, DeleteTask, CreateTable, UpdateTable, ReorderTasks]

_MODELS: dict[str, type[_Change]] = {
    "move_tasks": MoveTasks,
    "update_task": UpdateTask,
    "create_task": CreateTask,
    "delete_task": DeleteTask,
    "create_table": CreateTable,
    "update_table": UpdateTable,
    "reorder_tasks": ReorderTasks,
}


class InvalidChangeError(ValueError):
    pass


def _first_error(action: str, exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ())) or "change"
    return f"{action}: {loc}: {err.get('msg', 'invalid value')}"


def validate_change(change: Any) -> str | None:
    """Structural check for one change. Returns an error string, or None when valid."""
    if not isinstance(change, dict):
        return "Change must be an object"

    action = change.get("action")
    if not action:
        return "Change missing action field"

    required = REQUIRED_FIELDS.get(action)
    if required is None:
        return f"Unknown action: {action}"

    for field in required:
        if field not in change:
            return f"{action}: missing required field: {field}"

    try:
        _MODELS[action].model_validate(change)
    except ValidationError as e:
        return _first_error(action, e)
    return None


def parse_change(change: JsonDict) -> Change:
    """Typed view of a raw change. Raises InvalidChangeError with the validation message."""
    error = validate_change(change)
    if error:
        raise InvalidChangeError(error)
    return _MODELS[change["action"]].model_validate(change)
