"""
Context scoping.

Cuts the workspace down to what the provider needs to see for one request.
The filters compose in a fixed order: table ids, date range, task groups,
then the day-name heuristic.
"""

from __future__ import annotations

import json
import math
import re
from datetime import datetime

from loguru import logger

from planwright.dates import add_days, today_in
from planwright.models import AIRequest, JsonDict, Table, Workspace, WorkspaceContext

_DAY_NAME_RE = re.compile(
    r"\b(monday|tuesday|wednesday|thursday|friday|saturday|sunday|today|tomorrow)\b",
    re.IGNORECASE,
)

# Settings the provider is allowed to see.
_CONTEXT_SETTINGS = ("defaultDayStart", "defaultTaskDuration")

# Table fields the provider is allowed to see. Layout and host-only keys stay behind.
_CONTEXT_TABLE_FIELDS = {"id", "type", "title", "date", "start_time", "space_id", "tasks"}


def scope(
    workspace: Workspace | JsonDict,
    request: AIRequest,
    *,
    timezone: str | None = None,
    now: datetime | None = None,
) -> WorkspaceContext:
    """Build the provider-facing view of ``workspace`` for ``request``."""
    ws = Workspace.from_document(workspace)
    current_date = today_in(timezone, now)
    flt = request.context_filter

    tables = list(ws.tables)

    if flt and flt.table_ids:
        wanted = set(flt.table_ids)
        tables = [t for t in tables if t.id in wanted]

    if flt and flt.date_range:
        start, end = flt.date_range.start, flt.date_range.end
        tables = [t for t in tables if t.date and start <= t.date <= end]

    if flt and flt.task_groups:
        groups = set(flt.task_groups)
        tables = [
            t.model_copy(update={"tasks": [task for task in t.tasks if (task.group or "") in groups]})
            for t in tables
        ]

    match = _DAY_NAME_RE.search(request.prompt)
    if match and not (flt and flt.date_range):
        day_name = match.group(1).lower()
        tables = filter_by_day_name(tables, day_name, current_date)
        logger.debug(f"[CONTEXT] Day-name filter '{day_name}' kept {len(tables)} tables")

    return WorkspaceContext(
        tables=[Table.model_validate(t.model_dump(include=_CONTEXT_TABLE_FIELDS)) for t in tables],
        task_groups=ws.task_groups,
        settings={key: ws.settings.get(key) for key in _CONTEXT_SETTINGS},
        current_date=current_date,
        user_timezone=timezone or "UTC",
    )


def filter_by_day_name(tables: list[Table], day_name: str, current_date: str) -> list[Table]:
    """
    Keep the tables a day word in the prompt most likely refers to.

    "today" and "tomorrow" are exact date matches. Weekday names are only
    matched against table titles, not against the weekday the table's date
    actually falls on, so this is an approximation.
    """
    if day_name == "today":
        return [t for t in tables if t.date == current_date]
    if day_name == "tomorrow":
        tomorrow = add_days(current_date, 1)
        return [t for t in tables if t.date == tomorrow]
    return [t for t in tables if day_name in t.title.lower()]


def estimate_context_tokens(context: WorkspaceContext) -> int:
    """Rough token count for ``context`` (~4 characters per token). Advisory only."""
    payload = json.dumps(context.to_payload())
    return math.ceil(len(payload) / 4)
