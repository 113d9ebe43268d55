"""
Response validation.

Two layers:
  - the reply as a whole must match the shape of its request mode
    (raises ResponseValidationError, never retried)
  - each proposed change is checked structurally and against the
    workspace; problems are collected for the whole batch, not raised
"""

from __future__ import annotations

import json
from typing import Any

from loguru import logger

from planwright.changes import validate_change
from planwright.dates import extract_date
from planwright.errors import ResponseValidationError
from planwright.models import AIResult, JsonDict, RequestMode


def _strip_fences(content: str) -> str:
    """Drop markdown code fences in case the model ignored JSON mode."""
    content = content.strip()
    if content.startswith("```"):
        lines = content.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        content = "\n".join(lines)
    return content.strip()


def parse_response(content: str) -> JsonDict:
    text = _strip_fences(content or "")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(f"[VALIDATE] Raw response: {text[:500]}")
        raise ResponseValidationError(
            f"Failed to parse AI response: {e}", "INVALID_JSON", {"raw": text[:1000]}
        ) from e

    if not isinstance(data, dict):
        raise ResponseValidationError("AI response is not an object", "INVALID_RESPONSE")
    return data


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_result(raw: Any, mode: RequestMode) -> AIResult:
    """Check a decoded reply against its mode and return it as an AIResult."""
    if not isinstance(raw, dict):
        raise ResponseValidationError("AI response is not an object", "INVALID_RESPONSE")

    if mode == "analysis":
        if not isinstance(raw.get("insights"), list):
            raise ResponseValidationError("AI response missing insights array", "MISSING_INSIGHTS")
        if not _non_empty_str(raw.get("summary")):
            raise ResponseValidationError("AI response missing summary", "MISSING_SUMMARY")
        return AIResult(
            mode="analysis",
            changes=[],
            summary=raw["summary"],
            reasoning=raw["summary"],
            insights=[i for i in raw["insights"] if isinstance(i, dict)],
        )

    if not isinstance(raw.get("changes"), list):
        raise ResponseValidationError("AI response missing changes array", "MISSING_CHANGES")
    if not _non_empty_str(raw.get("summary")):
        raise ResponseValidationError("AI response missing summary", "MISSING_SUMMARY")
    if not _non_empty_str(raw.get("reasoning")):
        raise ResponseValidationError("AI response missing reasoning", "MISSING_REASONING")

    # Non-object entries are kept so the engine reports them as failed changes.
    return AIResult(
        mode="action",
        changes=raw["changes"],
        summary=raw["summary"],
        reasoning=raw["reasoning"],
    )


def validate_changes(changes: list[Any], workspace: JsonDict) -> list[str]:
    """
    Collect every structural and referential problem in a batch.

    Ids introduced by earlier create_table/create_task changes in the same
    batch count as existing for the changes that follow them.
    """
    errors: list[str] = []
    tables: dict[str, dict] = {}
    for table in workspace.get("tables") or []:
        if isinstance(table, dict) and "id" in table:
            tables[table["id"]] = table
    task_ids: dict[str, set] = {
        table_id: {t.get("id") for t in (table.get("tasks") or []) if isinstance(t, dict)}
        for table_id, table in tables.items()
    }

    for index, change in enumerate(changes):
        prefix = f"Change {index + 1}"
        error = validate_change(change)
        if error:
            errors.append(f"{prefix}: {error}")
            continue

        action = change["action"]
        if action == "create_table":
            new_id = change["table"].get("id")
            if new_id:
                tables[new_id] = change["table"]
                task_ids[new_id] = set()
            continue

        table_id = change["from_table_id"] if action == "move_tasks" else change["table_id"]
        if table_id not in tables:
            label = "Source table" if action == "move_tasks" else "Table"
            errors.append(f"{prefix}: {label} not found: {table_id}")
            continue

        known = task_ids[table_id]
        if action == "move_tasks":
            for task_id in change["task_ids"]:
                if task_id not in known:
                    errors.append(f"{prefix}: Task not found: {task_id}")
            if not _target_resolvable(change["to_table_id"], tables, tables[table_id]):
                errors.append(f"{prefix}: Target table not found: {change['to_table_id']}")
        elif action in ("update_task", "delete_task"):
            if change["task_id"] not in known:
                errors.append(f"{prefix}: Task not found: {change['task_id']}")
        elif action == "create_task":
            known.add(change["task"]["id"])

    if errors:
        logger.info(f"[VALIDATE] {len(errors)} problems in {len(changes)} changes")
    return errors


def _target_resolvable(target_id: str, tables: dict[str, dict], source: dict) -> bool:
    """Mirror of the engine's target fallback chain, without creating anything."""
    if target_id in tables or extract_date(target_id):
        return True
    return source.get("type") == "day" and bool(source.get("date"))
