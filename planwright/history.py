"""
Action history and undo.

Every applied batch is recorded with a full snapshot of the workspace as it
was before the batch. Undo hands that snapshot back; the host replaces its
workspace with it. There is one undo pointer per session: the most recent
action recorded through this instance.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any, Callable, Literal

from loguru import logger
from pydantic import BaseModel

from planwright.dates import now_ms
from planwright.engine import restore, snapshot
from planwright.errors import PlanwrightError
from planwright.models import ActionHistoryEntry, JsonDict
from planwright.vault import Vault

DEFAULT_UNDO_WINDOW_MINUTES = 60

UndoStatus = Literal["restored", "expired", "not_undoable"]


class UndoResult(BaseModel):
    status: UndoStatus
    workspace: JsonDict | None = None
    message: str = ""

    @property
    def restored(self) -> bool:
        return self.status == "restored"


class ActionHistory:
    def __init__(
        self,
        vault: Vault,
        undo_window_minutes: int = DEFAULT_UNDO_WINDOW_MINUTES,
        clock: Callable[[], int] = now_ms,
    ):
        self.vault = vault
        self.undo_window_minutes = undo_window_minutes
        self.clock = clock
        self.last_action: ActionHistoryEntry | None = None

    @property
    def window_ms(self) -> int:
        return self.undo_window_minutes * 60_000

    def record(
        self,
        prompt: str,
        changes: list[Any],
        before: JsonDict,
        request_type: str = "action",
    ) -> ActionHistoryEntry:
        now = self.clock()
        entry = ActionHistoryEntry(
            id=f"action-{now}-{uuid.uuid4().hex[:8]}",
            timestamp=now,
            request_prompt=prompt,
            request_type=request_type,
            changes=copy.deepcopy(changes),
            before_snapshot=restore(snapshot(before)),
            applied=True,
            applied_at=now,
        )
        self.vault.save_action(entry)
        self.last_action = entry
        logger.info(f"[HISTORY] Recorded {entry.id} ({len(changes)} changes)")
        return entry

    def can_undo(self, entry: ActionHistoryEntry, now: int | None = None) -> bool:
        if not entry.applied or entry.undone_at is not None or entry.applied_at is None:
            return False
        now = self.clock() if now is None else now
        return now - entry.applied_at <= self.window_ms

    def undo(self, entry: ActionHistoryEntry, now: int | None = None) -> UndoResult:
        now = self.clock() if now is None else now

        if not entry.applied or entry.undone_at is not None or entry.applied_at is None:
            return UndoResult(status="not_undoable", message="This action cannot be undone")

        if not self.can_undo(entry, now):
            logger.info(f"[HISTORY] Undo window expired for {entry.id}")
            self._forget(entry)
            return UndoResult(
                status="expired",
                message=f"Undo window expired ({self.undo_window_minutes} minutes)",
            )

        restored = restore(snapshot(entry.before_snapshot))
        entry.undone_at = now
        try:
            self.vault.update_action(entry.id, undone_at=now)
        except (PlanwrightError, ValueError, OSError) as e:
            # The restore stands even if the log can't be updated.
            logger.warning(f"[HISTORY] Could not mark {entry.id} as undone: {e!r}")

        self._forget(entry)
        logger.info(f"[HISTORY] Restored workspace from {entry.id}")
        return UndoResult(
            status="restored",
            workspace=restored,
            message=f"Undid: {entry.request_prompt}" if entry.request_prompt else "Undid last action",
        )

    def undo_last(self, now: int | None = None) -> UndoResult:
        if self.last_action is None:
            return UndoResult(status="not_undoable", message="Nothing to undo")
        return self.undo(self.last_action, now)

    def entries(self) -> list[ActionHistoryEntry]:
        return self.vault.load_history()

    def _forget(self, entry: ActionHistoryEntry) -> None:
        if self.last_action is not None and self.last_action.id == entry.id:
            self.last_action = None
