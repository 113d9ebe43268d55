"""
PLANWRIGHT data model.

The host application owns the workspace document and persists it as JSON
with camelCase keys. These models are the typed view of that document;
unknown keys are carried through untouched.
"""

from __future__ import annotations

from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

JsonDict = dict[str, Any]

RequestMode = Literal["action", "analysis"]


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------

class _Document(BaseModel):
    """
    Lenient view of a host document.

    The engine writes whatever the model proposes, so a stored workspace can
    hold values outside these types. A field that does not validate falls
    back to its default; only a missing or unusable required field fails.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_when_invalid(cls, value, handler, info):
        try:
            return handler(value)
        except ValidationError:
            field = cls.model_fields[info.field_name]
            if field.is_required():
                raise
            logger.debug(f"[MODELS] {cls.__name__}.{info.field_name}: ignoring {value!r}")
            return field.get_default(call_default_factory=True)


def _keep_valid(items: Any, model: type[BaseModel]) -> list:
    """Validate list items one by one, dropping those that cannot be read."""
    if not isinstance(items, list):
        return []
    kept = []
    for item in items:
        try:
            kept.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"[MODELS] Skipping unreadable {model.__name__}: {e.errors()[0]['msg']}")
    return kept


class Task(_Document):
    id: str
    title: str = ""
    duration: int = 30  # minutes
    selected: bool = False
    group: str | None = None
    notebook: str | None = None


class Table(_Document):
    id: str
    # "todo" is what older workspaces call a list table
    type: Literal["day", "list", "todo"] = "list"
    title: str = ""
    date: str | None = None
    start_time: str | None = Field(default=None, alias="startTime")
    space_id: str | None = Field(default=None, alias="spaceId")
    tasks: list[Task] = Field(default_factory=list)

    @field_validator("tasks", mode="before")
    @classmethod
    def _readable_tasks(cls, value):
        return _keep_valid(value, Task)


class TaskGroup(_Document):
    id: str
    name: str = ""
    color: str = ""


class Workspace(_Document):
    tables: list[Table] = Field(default_factory=list)
    task_groups: list[TaskGroup] = Field(default_factory=list, alias="taskGroups")
    settings: JsonDict = Field(default_factory=dict)

    @field_validator("tables", mode="before")
    @classmethod
    def _readable_tables(cls, value):
        return _keep_valid(value, Table)

    @field_validator("task_groups", mode="before")
    @classmethod
    def _readable_groups(cls, value):
        return _keep_valid(value, TaskGroup)

    @classmethod
    def from_document(cls, document: "Workspace | JsonDict") -> "Workspace":
        if isinstance(document, Workspace):
            return document
        return cls.model_validate(document if isinstance(document, dict) else {})

    def to_document(self) -> JsonDict:
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class DateRange(BaseModel):
    start: str
    end: str


class ContextFilter(BaseModel):
    table_ids: list[str] = Field(default_factory=list)
    date_range: DateRange | None = None
    task_groups: list[str] = Field(default_factory=list)


class AIRequest(BaseModel):
    prompt: str
    mode: RequestMode = "action"
    context_filter: ContextFilter | None = None


class WorkspaceContext(_Document):
    """The reduced, provider-facing view of a workspace."""
    tables: list[Table] = Field(default_factory=list)
    task_groups: list[TaskGroup] = Field(default_factory=list, alias="taskGroups")
    settings: JsonDict = Field(default_factory=dict)
    current_date: str = Field(alias="currentDate")
    user_timezone: str = Field(alias="userTimezone")

    def to_payload(self) -> JsonDict:
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class Insight(_Document):
    type: str = "answer"
    title: str = ""
    description: str = ""
    data: Any = None


class AIResult(BaseModel):
    """
    What a provider reply boils down to once validated.

    Analysis replies carry insights and no changes; action replies carry
    changes. Changes stay raw dicts here: each one is parsed on its own by
    the engine so a single malformed change cannot sink the batch.
    """
    mode: RequestMode = "action"
    changes: list[Any] = Field(default_factory=list)
    summary: str
    reasoning: str = ""
    insights: list[JsonDict] = Field(default_factory=list)


class ApplyResult(BaseModel):
    success: bool
    applied_changes: int = 0
    errors: list[str] = Field(default_factory=list)
    updated_workspace: JsonDict = Field(default_factory=dict)


class ActionHistoryEntry(BaseModel):
    id: str
    timestamp: int  # epoch ms
    request_prompt: str = ""
    request_type: str = "action"
    changes: list[Any] = Field(default_factory=list)
    before_snapshot: JsonDict = Field(default_factory=dict)
    applied: bool = True
    applied_at: int | None = None
    undone_at: int | None = None
