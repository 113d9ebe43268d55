"""
PLANWRIGHT Engine — Change Application

Applies an ordered list of changes to a deep clone of the workspace
document. The caller's document is never touched; it decides afterwards
whether to adopt `updated_workspace`.

Application is sequential, independent and best-effort. Each change runs
inside its own error boundary: a failure is recorded and the next change
still runs. This is not a transaction. A failed change leaves no trace in
the clone, but the changes around it do.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Callable

from loguru import logger

from planwright.changes import (
    CreateTable,
    CreateTask,
    DeleteTask,
    MoveTasks,
    ReorderTasks,
    UpdateTable,
    UpdateTask,
    parse_change,
)
from planwright.dates import add_days, extract_date, format_date_with_weekday, now_ms
from planwright.models import ApplyResult, JsonDict, Workspace

DEFAULT_START_TIME = "08:00"

# Fields a created table may carry; anything else the model sends is dropped.
_TABLE_FIELDS = ("id", "type", "title", "date", "startTime", "spaceId", "tasks", "position", "size")
_TABLE_TYPES = ("day", "list")


class ChangeError(Exception):
    """One change could not be applied. Caught per change by apply_changes."""


def apply_changes(
    workspace: Workspace | JsonDict,
    changes: list[Any],
    *,
    clock: Callable[[], int] = now_ms,
) -> ApplyResult:
    """Apply ``changes`` in order to a clone of ``workspace``."""
    document = workspace.to_document() if isinstance(workspace, Workspace) else workspace
    updated: JsonDict = copy.deepcopy(document or {})
    if not isinstance(updated.get("tables"), list):
        updated["tables"] = []

    errors: list[str] = []
    applied = 0

    logger.info(f"[ENGINE] Applying {len(changes)} changes to {len(updated['tables'])} tables")

    for raw in changes:
        action = raw.get("action", "?") if isinstance(raw, dict) else "?"
        try:
            change = parse_change(raw)
            _HANDLERS[change.action](updated, change, clock)
            applied += 1
            logger.debug(f"[ENGINE] ✓ {action}")
        except (ChangeError, ValueError) as e:
            logger.warning(f"[ENGINE] ✗ {action}: {e}")
            errors.append(f"Failed to apply {action}: {e}")

    logger.info(
        f"[ENGINE] Done — {applied}/{len(changes)} applied, "
        f"{len(errors)} errors, {len(updated['tables'])} tables"
    )

    return ApplyResult(
        success=not errors,
        applied_changes=applied,
        errors=errors,
        updated_workspace=updated,
    )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def _find_table(workspace: JsonDict, table_id: str) -> JsonDict | None:
    return next((t for t in workspace["tables"] if isinstance(t, dict) and t.get("id") == table_id), None)


def _require_table(workspace: JsonDict, table_id: str, label: str = "Table") -> JsonDict:
    table = _find_table(workspace, table_id)
    if table is None:
        raise ChangeError(f"{label} not found: {table_id}")
    if not isinstance(table.get("tasks"), list):
        table["tasks"] = []
    return table


def _task_index(table: JsonDict, task_id: str) -> int:
    for index, task in enumerate(table["tasks"]):
        if isinstance(task, dict) and task.get("id") == task_id:
            return index
    return -1


def default_position(table_count: int) -> dict[str, int]:
    """Staggered canvas position so new tables don't sit on top of each other."""
    return {"x": 20 + table_count * 100, "y": 20 + table_count * 50}


# ---------------------------------------------------------------------------
# Day tables
# ---------------------------------------------------------------------------

def find_or_create_day_table(workspace: JsonDict, date: str, clock: Callable[[], int] = now_ms) -> JsonDict:
    """Existing day table for ``date``, or a fresh empty one appended to the workspace."""
    for table in workspace["tables"]:
        if isinstance(table, dict) and table.get("type") == "day" and table.get("date") == date:
            logger.debug(f"[ENGINE] Found day table {table.get('id')} for {date}")
            return table

    settings = workspace.get("settings") or {}
    existing_ids = {t.get("id") for t in workspace["tables"] if isinstance(t, dict)}
    table_id = f"day-{clock()}"
    suffix = 1
    while table_id in existing_ids:
        table_id = f"day-{clock()}-{suffix}"
        suffix += 1

    table = {
        "id": table_id,
        "type": "day",
        "title": format_date_with_weekday(date, settings.get("dateFormat")),
        "date": date,
        "startTime": settings.get("defaultStartTime") or DEFAULT_START_TIME,
        "tasks": [],
        "position": default_position(len(workspace["tables"])),
        "spaceId": None,
    }
    workspace["tables"].append(table)
    logger.info(f"[ENGINE] Created day table {table_id} for {date}")
    return table


def _resolve_move_target(workspace: JsonDict, change: MoveTasks, source: JsonDict, clock: Callable[[], int]) -> JsonDict:
    """
    Target fallback chain. Models often point at tables that don't exist yet:
      1. exact id
      2. a YYYY-MM-DD inside the id → that day's table (created if missing)
      3. dated day-table source → the day after the source (created if missing)
    """
    target = _find_table(workspace, change.to_table_id)
    if target is not None:
        return target

    date = extract_date(change.to_table_id)
    if date:
        logger.debug(f"[ENGINE] Target {change.to_table_id} resolved by date {date}")
        return find_or_create_day_table(workspace, date, clock)

    if source.get("type") == "day" and source.get("date"):
        tomorrow = add_days(source["date"], 1)
        logger.debug(f"[ENGINE] Target {change.to_table_id} inferred as day after source: {tomorrow}")
        return find_or_create_day_table(workspace, tomorrow, clock)

    raise ChangeError(f"Target table not found: {change.to_table_id}")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _apply_move_tasks(workspace: JsonDict, change: MoveTasks, clock: Callable[[], int]) -> None:
    source = _require_table(workspace, change.from_table_id, "Source table")

    remaining = list(source["tasks"])
    moving = []
    for task_id in change.task_ids:
        index = next(
            (i for i, t in enumerate(remaining) if isinstance(t, dict) and t.get("id") == task_id),
            -1,
        )
        if index == -1:
            raise ChangeError(f"Task not found: {task_id}")
        moving.append(remaining.pop(index))

    target = _resolve_move_target(workspace, change, source, clock)
    if not isinstance(target.get("tasks"), list):
        target["tasks"] = []

    source["tasks"] = remaining
    target["tasks"].extend(moving)
    logger.debug(f"[ENGINE] Moved {len(moving)} tasks {source.get('id')} → {target.get('id')}")


def _apply_update_task(workspace: JsonDict, change: UpdateTask, clock: Callable[[], int]) -> None:
    table = _require_table(workspace, change.table_id)
    index = _task_index(table, change.task_id)
    if index == -1:
        raise ChangeError(f"Task not found: {change.task_id}")
    table["tasks"][index].update(copy.deepcopy(change.updates))


def _apply_create_task(workspace: JsonDict, change: CreateTask, clock: Callable[[], int]) -> None:
    table = _require_table(workspace, change.table_id)
    task = change.task.model_dump()
    position = change.position if change.position is not None else "end"

    if position == "end":
        table["tasks"].append(task)
    elif position == "start":
        table["tasks"].insert(0, task)
    elif isinstance(position, int) and not isinstance(position, bool):
        table["tasks"].insert(position, task)
    else:
        raise ChangeError(f"Invalid position: {position}")


def _apply_delete_task(workspace: JsonDict, change: DeleteTask, clock: Callable[[], int]) -> None:
    table = _require_table(workspace, change.table_id)
    index = _task_index(table, change.task_id)
    if index == -1:
        raise ChangeError(f"Task not found: {change.task_id}")
    del table["tasks"][index]


def _apply_create_table(workspace: JsonDict, change: CreateTable, clock: Callable[[], int]) -> None:
    new_table = copy.deepcopy(change.table)
    for field in ("id", "type", "title"):
        if not new_table.get(field):
            raise ChangeError(f"create_table: table must have {field}")
    if new_table["type"] not in _TABLE_TYPES:
        raise ChangeError(f"create_table: unknown table type: {new_table['type']}")

    if not isinstance(new_table.get("tasks"), list):
        new_table["tasks"] = []

    fallback = default_position(len(workspace["tables"]))
    position = new_table.get("position")
    if not isinstance(position, dict):
        new_table["position"] = fallback
    else:
        new_table["position"] = {
            "x": position["x"] if position.get("x") is not None else fallback["x"],
            "y": position["y"] if position.get("y") is not None else fallback["y"],
        }

    workspace["tables"].append({field: new_table.get(field) for field in _TABLE_FIELDS})


def _apply_update_table(workspace: JsonDict, change: UpdateTable, clock: Callable[[], int]) -> None:
    table = _require_table(workspace, change.table_id)
    table.update(copy.deepcopy(change.updates))


def _apply_reorder_tasks(workspace: JsonDict, change: ReorderTasks, clock: Callable[[], int]) -> None:
    table = _require_table(workspace, change.table_id)
    by_id = {t.get("id"): t for t in table["tasks"] if isinstance(t, dict)}

    seen: set[str] = set()
    for task_id in change.task_ids:
        if task_id not in by_id:
            raise ChangeError(f"Task not found for reorder: {task_id}")
        if task_id in seen:
            raise ChangeError(f"Duplicate task in reorder: {task_id}")
        seen.add(task_id)

    missing = [task_id for task_id in by_id if task_id not in seen]
    if missing:
        raise ChangeError(f"Task missing from reorder: {', '.join(str(m) for m in missing)}")

    table["tasks"] = [by_id[task_id] for task_id in change.task_ids]


_HANDLERS: dict[str, Callable[[JsonDict, Any, Callable[[], int]], None]] = {
    "move_tasks": _apply_move_tasks,
    "update_task": _apply_update_task,
    "create_task": _apply_create_task,
    "delete_task": _apply_delete_task,
    "create_table": _apply_create_table,
    "update_table": _apply_update_table,
    "reorder_tasks": _apply_reorder_tasks,
}


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

def snapshot(workspace: JsonDict) -> str:
    """Serialise ``workspace``. History stores `restore(snapshot(ws))` so entries are always JSON-clean."""
    return json.dumps(workspace)


def restore(serialized: str) -> JsonDict:
    return json.loads(serialized)


def diff_workspaces(before: JsonDict, after: JsonDict) -> dict[str, list[dict]]:
    """Table-level diff: added, removed and modified tables by id."""
    before_tables = {t["id"]: t for t in before.get("tables") or [] if isinstance(t, dict) and "id" in t}
    after_tables = {t["id"]: t for t in after.get("tables") or [] if isinstance(t, dict) and "id" in t}

    diff: dict[str, list[dict]] = {"added": [], "removed": [], "modified": []}
    for table_id, table in after_tables.items():
        if table_id not in before_tables:
            diff["added"].append({"type": "table", "id": table_id, "data": table})
    for table_id, table in before_tables.items():
        if table_id not in after_tables:
            diff["removed"].append({"type": "table", "id": table_id, "data": table})
    for table_id, table in after_tables.items():
        previous = before_tables.get(table_id)
        if previous is not None and previous != table:
            diff["modified"].append({"type": "table", "id": table_id, "before": previous, "after": table})
    return diff
