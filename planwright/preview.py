"""
One-line, human-readable descriptions of proposed changes.

Shown before anything is applied, so they speak in titles, not ids. A
description never fails: whatever cannot be resolved is shown by its id.
"""

from __future__ import annotations

from typing import Any

from planwright.dates import extract_date, format_date
from planwright.models import JsonDict


def _tables(workspace: JsonDict) -> list[dict]:
    return [t for t in workspace.get("tables") or [] if isinstance(t, dict)]


def _find_table(workspace: JsonDict, table_id: Any) -> dict | None:
    return next((t for t in _tables(workspace) if t.get("id") == table_id), None)


def _find_task(table: dict | None, task_id: Any) -> dict | None:
    if not table:
        return None
    return next(
        (t for t in table.get("tasks") or [] if isinstance(t, dict) and t.get("id") == task_id),
        None,
    )


def _table_label(table: dict | None, fallback: Any) -> str:
    if table:
        return table.get("title") or table.get("date") or str(fallback)
    return str(fallback)


def _yes_no(value: Any) -> str:
    return "yes" if value else "no"


def _describe_move(change: dict, workspace: JsonDict) -> str:
    source = _find_table(workspace, change.get("from_table_id"))
    target_id = change.get("to_table_id")
    target = _find_table(workspace, target_id)

    if target:
        target_label = _table_label(target, target_id)
    else:
        date = extract_date(str(target_id or ""))
        settings = workspace.get("settings") or {}
        target_label = format_date(date, settings.get("dateFormat")) if date else str(target_id)

    source_label = _table_label(source, change.get("from_table_id"))
    task_ids = change.get("task_ids") if isinstance(change.get("task_ids"), list) else []

    titles = []
    if source:
        for task_id in task_ids:
            task = _find_task(source, task_id)
            titles.append((task.get("title") or "(untitled)") if task else str(task_id))

    route = f"from '{source_label}' to '{target_label}'"
    if not titles:
        return f"Move {len(task_ids)} tasks {route}"
    if len(titles) <= 3:
        return f"Move {', '.join(_quoted(t) for t in titles)} {route}"
    shown = ", ".join(_quoted(t) for t in titles[:2])
    return f"Move {shown}, and {len(titles) - 2} more {route}"


def _quoted(title: str) -> str:
    return f"'{title}'"


def _describe_create_task(change: dict, workspace: JsonDict) -> str:
    table = _find_table(workspace, change.get("table_id"))
    task = change.get("task") if isinstance(change.get("task"), dict) else {}
    title = task.get("title") or "(untitled)"
    duration = f" ({task['duration']} min)" if task.get("duration") else ""
    return f"Add '{title}'{duration} to '{_table_label(table, change.get('table_id'))}'"


def _describe_update_task(change: dict, workspace: JsonDict) -> str:
    table = _find_table(workspace, change.get("table_id"))
    task = _find_task(table, change.get("task_id")) or {}
    title = task.get("title") or change.get("task_id")
    updates = change.get("updates") if isinstance(change.get("updates"), dict) else {}

    parts = []
    if "title" in updates:
        parts.append(f"title: '{task.get('title') or '(old)'}' → '{updates['title']}'")
    if "duration" in updates:
        parts.append(f"duration: {task.get('duration') or '?'} → {updates['duration']} min")
    if "group" in updates:
        parts.append(f"group: {task.get('group') or 'none'} → {updates['group']}")
    if "selected" in updates:
        parts.append(f"selected: {_yes_no(task.get('selected'))} → {_yes_no(updates['selected'])}")

    if not parts:
        table_title = (table or {}).get("title") or change.get("table_id")
        return f"Update '{title}' in '{table_title}'"
    return f"Update '{title}': {', '.join(parts)}"


def _describe_delete_task(change: dict, workspace: JsonDict) -> str:
    table = _find_table(workspace, change.get("table_id"))
    task = _find_task(table, change.get("task_id")) or {}
    title = task.get("title") or change.get("task_id")
    return f"Delete '{title}' from '{_table_label(table, change.get('table_id'))}'"


def _describe_create_table(change: dict, workspace: JsonDict) -> str:
    table = change.get("table") if isinstance(change.get("table"), dict) else {}
    kind = table.get("type") or "table"
    title = table.get("title") or table.get("date") or "(new table)"
    return f"Create {kind} table '{title}'"


def _describe_update_table(change: dict, workspace: JsonDict) -> str:
    table = _find_table(workspace, change.get("table_id"))
    label = _table_label(table, change.get("table_id"))
    current = table or {}
    updates = change.get("updates") if isinstance(change.get("updates"), dict) else {}

    parts = []
    if "title" in updates:
        parts.append(f"title: '{current.get('title') or '(old)'}' → '{updates['title']}'")
    if "startTime" in updates:
        parts.append(f"start time: {current.get('startTime') or '?'} → {updates['startTime']}")
    if "date" in updates:
        parts.append(f"date: {current.get('date') or '?'} → {updates['date']}")

    if not parts:
        return f"Update table '{label}'"
    return f"Update '{label}': {', '.join(parts)}"


def _describe_reorder(change: dict, workspace: JsonDict) -> str:
    table = _find_table(workspace, change.get("table_id"))
    task_ids = change.get("task_ids") if isinstance(change.get("task_ids"), list) else []
    return f"Reorder {len(task_ids)} tasks in '{_table_label(table, change.get('table_id'))}'"


_DESCRIBERS = {
    "move_tasks": _describe_move,
    "create_task": _describe_create_task,
    "update_task": _describe_update_task,
    "delete_task": _describe_delete_task,
    "create_table": _describe_create_table,
    "update_table": _describe_update_table,
    "reorder_tasks": _describe_reorder,
}


def describe_change(change: Any, workspace: JsonDict) -> str:
    if not isinstance(change, dict):
        return "invalid change"
    action = str(change.get("action") or "unknown action")
    describer = _DESCRIBERS.get(action)
    if describer is None:
        return action.replace("_", " ")
    return describer(change, workspace)


def describe_changes(changes: list[Any], workspace: JsonDict) -> list[str]:
    return [describe_change(change, workspace) for change in changes]
