import copy

from planwright.engine import apply_changes, diff_workspaces, find_or_create_day_table, restore, snapshot
from planwright.models import Workspace

CLOCK = lambda: 1769400000000  # noqa: E731


def _table(workspace, table_id):
    return next(t for t in workspace["tables"] if t["id"] == table_id)


def _task_ids(workspace, table_id):
    return [t["id"] for t in _table(workspace, table_id)["tasks"]]


def _move(task_ids, source, target):
    return {"action": "move_tasks", "task_ids": task_ids, "from_table_id": source, "to_table_id": target}


# ---------------------------------------------------------------------------
# Batch behaviour
# ---------------------------------------------------------------------------

def test_caller_workspace_never_mutated(workspace):
    original = copy.deepcopy(workspace)
    result = apply_changes(workspace, [_move(["a"], "mon", "inbox")], clock=CLOCK)

    assert result.success
    assert workspace == original
    assert _task_ids(result.updated_workspace, "inbox") == ["d", "a"]


def test_best_effort_partial_success(workspace):
    changes = [
        {"action": "update_task", "table_id": "mon", "task_id": "a", "updates": {"duration": 45}},
        {"action": "delete_task", "table_id": "mon", "task_id": "ghost"},
        {"action": "create_task", "table_id": "inbox", "task": {"id": "n1", "title": "Milk", "duration": 5}},
    ]
    result = apply_changes(workspace, changes, clock=CLOCK)

    assert not result.success
    assert result.applied_changes == 2
    assert result.errors == ["Failed to apply delete_task: Task not found: ghost"]
    assert result.applied_changes + len(result.errors) == len(changes)
    assert _table(result.updated_workspace, "mon")["tasks"][0]["duration"] == 45
    assert _task_ids(result.updated_workspace, "inbox") == ["d", "n1"]


def test_malformed_changes_are_reported(workspace):
    result = apply_changes(workspace, ["junk", {"action": "explode"}], clock=CLOCK)

    assert result.applied_changes == 0
    assert result.errors == [
        "Failed to apply ?: Change must be an object",
        "Failed to apply explode: Unknown action: explode",
    ]
    assert result.updated_workspace == workspace


def test_accepts_workspace_model(workspace):
    model = Workspace.from_document(workspace)
    result = apply_changes(model, [{"action": "delete_task", "table_id": "inbox", "task_id": "d"}], clock=CLOCK)
    assert result.success
    assert _task_ids(result.updated_workspace, "inbox") == []


# ---------------------------------------------------------------------------
# move_tasks
# ---------------------------------------------------------------------------

def test_move_keeps_listed_order(workspace):
    result = apply_changes(workspace, [_move(["c", "a"], "mon", "inbox")], clock=CLOCK)
    assert _task_ids(result.updated_workspace, "mon") == ["b"]
    assert _task_ids(result.updated_workspace, "inbox") == ["d", "c", "a"]


def test_move_to_date_id_creates_day_table(workspace):
    result = apply_changes(workspace, [_move(["a"], "mon", "day-2026-01-30")], clock=CLOCK)

    assert result.success
    created = result.updated_workspace["tables"][-1]
    assert created == {
        "id": "day-1769400000000",
        "type": "day",
        "title": "Friday, 30. 01. 2026",
        "date": "2026-01-30",
        "startTime": "07:30",
        "tasks": [{"id": "a", "title": "Gym", "duration": 60, "group": "health"}],
        "position": {"x": 220, "y": 120},
        "spaceId": None,
    }


def test_move_to_date_id_reuses_existing_day(workspace):
    result = apply_changes(workspace, [_move(["d"], "inbox", "tbl_x9-2026-01-26")], clock=CLOCK)

    assert len(result.updated_workspace["tables"]) == 2
    assert _task_ids(result.updated_workspace, "mon") == ["a", "b", "c", "d"]


def test_move_from_day_infers_next_day(workspace):
    result = apply_changes(workspace, [_move(["b"], "mon", "tomorrow-table")], clock=CLOCK)

    created = result.updated_workspace["tables"][-1]
    assert created["date"] == "2026-01-27"
    assert created["title"] == "Tuesday, 27. 01. 2026"
    assert [t["id"] for t in created["tasks"]] == ["b"]


def test_move_to_unresolvable_target_changes_nothing(workspace):
    result = apply_changes(workspace, [_move(["d"], "inbox", "nowhere")], clock=CLOCK)

    assert result.errors == ["Failed to apply move_tasks: Target table not found: nowhere"]
    assert result.updated_workspace == workspace


def test_move_with_unknown_task_changes_nothing(workspace):
    result = apply_changes(workspace, [_move(["a", "ghost"], "mon", "day-2026-02-01")], clock=CLOCK)

    assert result.errors == ["Failed to apply move_tasks: Task not found: ghost"]
    assert result.updated_workspace == workspace


def test_move_from_unknown_source(workspace):
    result = apply_changes(workspace, [_move(["a"], "ghost", "inbox")], clock=CLOCK)
    assert result.errors == ["Failed to apply move_tasks: Source table not found: ghost"]


def test_day_table_id_collision_gets_suffix(workspace):
    workspace["tables"].append({"id": "day-1769400000000", "type": "list", "title": "Odd", "tasks": []})
    table = find_or_create_day_table(workspace, "2026-03-01", CLOCK)
    assert table["id"] == "day-1769400000000-1"


def test_day_table_title_follows_date_format(workspace):
    workspace["settings"]["dateFormat"] = "MM/DD/YYYY"
    table = find_or_create_day_table(workspace, "2026-03-01", CLOCK)
    assert table["title"] == "Sunday, 03/01/2026"


# ---------------------------------------------------------------------------
# Task changes
# ---------------------------------------------------------------------------

def test_update_task_is_a_shallow_merge(workspace):
    change = {"action": "update_task", "table_id": "mon", "task_id": "a", "updates": {"title": "Gym (legs)", "selected": True}}
    result = apply_changes(workspace, [change], clock=CLOCK)
    assert _table(result.updated_workspace, "mon")["tasks"][0] == {
        "id": "a", "title": "Gym (legs)", "duration": 60, "group": "health", "selected": True,
    }


def test_create_task_positions(workspace):
    changes = [
        {"action": "create_task", "table_id": "mon", "task": {"id": "s"}, "position": "start"},
        {"action": "create_task", "table_id": "mon", "task": {"id": "i"}, "position": 2},
        {"action": "create_task", "table_id": "mon", "task": {"id": "e"}},
        {"action": "create_task", "table_id": "mon", "task": {"id": "x"}, "position": "middle"},
    ]
    result = apply_changes(workspace, changes, clock=CLOCK)

    assert _task_ids(result.updated_workspace, "mon") == ["s", "a", "i", "b", "c", "e"]
    assert result.errors == ["Failed to apply create_task: Invalid position: middle"]


def test_delete_task(workspace):
    change = {"action": "delete_task", "table_id": "mon", "task_id": "b"}
    result = apply_changes(workspace, [change], clock=CLOCK)
    assert _task_ids(result.updated_workspace, "mon") == ["a", "c"]


# ---------------------------------------------------------------------------
# Table changes
# ---------------------------------------------------------------------------

def test_create_table_defaults_and_known_fields(workspace):
    change = {
        "action": "create_table",
        "table": {"id": "t1", "type": "list", "title": "Errands", "tasks": "none", "evil": 1},
    }
    result = apply_changes(workspace, [change], clock=CLOCK)

    created = result.updated_workspace["tables"][-1]
    assert created["tasks"] == []
    assert created["position"] == {"x": 220, "y": 120}
    assert "evil" not in created
    assert set(created) == {"id", "type", "title", "date", "startTime", "spaceId", "tasks", "position", "size"}


def test_create_table_completes_partial_position(workspace):
    change = {"action": "create_table", "table": {"id": "t1", "type": "list", "title": "E", "position": {"x": 5}}}
    result = apply_changes(workspace, [change], clock=CLOCK)
    assert result.updated_workspace["tables"][-1]["position"] == {"x": 5, "y": 120}


def test_create_table_requires_title(workspace):
    change = {"action": "create_table", "table": {"id": "t1", "type": "list"}}
    result = apply_changes(workspace, [change], clock=CLOCK)
    assert result.errors == ["Failed to apply create_table: create_table: table must have title"]


def test_create_table_rejects_unknown_type(workspace):
    change = {"action": "create_table", "table": {"id": "t1", "type": "board", "title": "Kanban"}}
    result = apply_changes(workspace, [change], clock=CLOCK)
    assert result.errors == ["Failed to apply create_table: create_table: unknown table type: board"]
    assert len(result.updated_workspace["tables"]) == 2


def test_create_table_does_not_alias_the_change(workspace):
    change = {"action": "create_table", "table": {"id": "t1", "type": "list", "title": "E"}}
    apply_changes(workspace, [change], clock=CLOCK)
    assert change["table"] == {"id": "t1", "type": "list", "title": "E"}


def test_update_table(workspace):
    change = {"action": "update_table", "table_id": "mon", "updates": {"startTime": "10:00"}}
    result = apply_changes(workspace, [change], clock=CLOCK)
    assert _table(result.updated_workspace, "mon")["startTime"] == "10:00"
    assert _table(result.updated_workspace, "mon")["title"] == "Monday, 26. 01. 2026"


def test_reorder_tasks(workspace):
    change = {"action": "reorder_tasks", "table_id": "mon", "task_ids": ["c", "a", "b"]}
    result = apply_changes(workspace, [change], clock=CLOCK)
    assert _task_ids(result.updated_workspace, "mon") == ["c", "a", "b"]


def test_reorder_must_be_a_permutation(workspace):
    changes = [
        {"action": "reorder_tasks", "table_id": "mon", "task_ids": ["c", "a", "zzz"]},
        {"action": "reorder_tasks", "table_id": "mon", "task_ids": ["c", "a"]},
        {"action": "reorder_tasks", "table_id": "mon", "task_ids": ["c", "a", "a"]},
    ]
    result = apply_changes(workspace, changes, clock=CLOCK)

    assert result.errors == [
        "Failed to apply reorder_tasks: Task not found for reorder: zzz",
        "Failed to apply reorder_tasks: Task missing from reorder: b",
        "Failed to apply reorder_tasks: Duplicate task in reorder: a",
    ]
    assert _task_ids(result.updated_workspace, "mon") == ["a", "b", "c"]


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

def test_snapshot_restore(workspace):
    assert restore(snapshot(workspace)) == workspace


def test_diff_workspaces(workspace):
    result = apply_changes(
        workspace,
        [
            {"action": "update_table", "table_id": "mon", "updates": {"startTime": "10:00"}},
            {"action": "create_table", "table": {"id": "t1", "type": "list", "title": "E"}},
        ],
        clock=CLOCK,
    )
    after = result.updated_workspace
    after["tables"] = [t for t in after["tables"] if t["id"] != "inbox"]

    diff = diff_workspaces(workspace, after)
    assert [d["id"] for d in diff["added"]] == ["t1"]
    assert [d["id"] for d in diff["removed"]] == ["inbox"]
    assert [d["id"] for d in diff["modified"]] == ["mon"]
