import pytest

from planwright.config_loader import AssistantConfig
from planwright.errors import ActionNotFoundError, VaultError
from planwright.history import ActionHistory
from planwright.models import ActionHistoryEntry
from planwright.vault import FernetCipher, FileBlobStore, MemoryBlobStore, Vault

T0 = 1769400000000
MINUTE = 60_000


class Clock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def history(vault, clock):
    return ActionHistory(vault, undo_window_minutes=60, clock=clock)


def _entry(index):
    return ActionHistoryEntry(id=f"action-{index}", timestamp=T0 + index, applied_at=T0 + index)


# ---------------------------------------------------------------------------
# History and undo
# ---------------------------------------------------------------------------

def test_record_persists_and_sets_last_action(history, workspace):
    entry = history.record("move gym", [{"action": "delete_task"}], workspace, "task-management")

    assert history.last_action is entry
    assert entry.applied and entry.applied_at == T0
    assert [e.id for e in history.entries()] == [entry.id]


def test_record_snapshots_a_copy(history, workspace):
    entry = history.record("move gym", [], workspace)
    workspace["tables"].clear()
    assert len(entry.before_snapshot["tables"]) == 2
    assert len(history.entries()[0].before_snapshot["tables"]) == 2


def test_undo_window_boundary(history, workspace):
    entry = history.record("move gym", [], workspace)
    assert history.can_undo(entry, T0 + 60 * MINUTE)
    assert not history.can_undo(entry, T0 + 60 * MINUTE + 1)


def test_undo_restores_snapshot(history, workspace, clock):
    entry = history.record("move gym", [], workspace)
    clock.now = T0 + 5 * MINUTE

    result = history.undo_last()

    assert result.status == "restored"
    assert result.workspace == workspace
    assert history.last_action is None
    assert history.vault.get_action(entry.id).undone_at == T0 + 5 * MINUTE


def test_undo_twice_is_refused(history, workspace):
    entry = history.record("move gym", [], workspace)
    assert history.undo(entry, T0 + 1).restored

    result = history.undo(entry, T0 + 2)
    assert result.status == "not_undoable"
    assert result.workspace is None


def test_expired_undo_clears_pointer(history, workspace):
    history.record("move gym", [], workspace)
    result = history.undo_last(T0 + 61 * MINUTE)

    assert result.status == "expired"
    assert result.workspace is None
    assert history.last_action is None


def test_nothing_to_undo(history):
    result = history.undo_last()
    assert result.status == "not_undoable"
    assert result.message == "Nothing to undo"


def test_marking_undone_is_best_effort(history, workspace, monkeypatch):
    entry = history.record("move gym", [], workspace)

    def broken(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(history.vault, "update_action", broken)
    result = history.undo(entry, T0 + 1)

    assert result.restored
    assert result.workspace == workspace


def test_unapplied_entry_is_not_undoable(history):
    entry = ActionHistoryEntry(id="x", timestamp=T0, applied=False, applied_at=T0)
    assert not history.can_undo(entry, T0)
    assert history.undo(entry, T0).status == "not_undoable"


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------

def test_log_keeps_last_fifty(vault):
    for index in range(55):
        vault.save_action(_entry(index))

    entries = vault.load_history()
    assert len(entries) == 50
    assert entries[0].id == "action-5"
    assert entries[-1].id == "action-54"


def test_update_unknown_action(vault):
    with pytest.raises(ActionNotFoundError):
        vault.update_action("ghost", undone_at=T0)


def test_stored_values_are_encrypted(vault):
    vault.save_config(AssistantConfig(api_key="sk-very-secret"))
    stored = vault.store.get("assistant-config")
    assert "sk-very-secret" not in stored
    assert vault.load_config().api_key == "sk-very-secret"


def test_wrong_secret_reads_nothing(vault):
    vault.save_config(AssistantConfig(api_key="sk-1"))
    vault.save_action(_entry(1))

    intruder = Vault(vault.store, "wrong", cipher=FernetCipher(b"0123456789abcdef", iterations=1_000))
    assert intruder.load_config() is None
    assert intruder.load_history() == []


def test_unreadable_log_is_not_overwritten(vault):
    for index in range(5):
        vault.save_action(_entry(index))

    intruder = Vault(vault.store, "wrong", cipher=FernetCipher(b"0123456789abcdef", iterations=1_000))
    intruder.save_action(_entry(99))
    with pytest.raises(VaultError):
        intruder.update_action("action-1", undone_at=T0)

    assert [e.id for e in vault.load_history()] == [f"action-{i}" for i in range(5)]


def test_is_configured(vault):
    assert not vault.is_configured()
    vault.save_config(AssistantConfig(api_key="sk-1"))
    assert vault.is_configured()
    vault.save_config(AssistantConfig(api_key="sk-1", enabled=False))
    assert not vault.is_configured()


def test_clear_config_clears_history(vault):
    vault.save_config(AssistantConfig(api_key="sk-1"))
    vault.save_action(_entry(1))

    vault.clear_config()

    assert vault.load_config() is None
    assert vault.load_history() == []


def test_save_action_swallows_store_failures(vault, monkeypatch):
    def broken(key, value):
        raise OSError("read-only")

    monkeypatch.setattr(vault.store, "put", broken)
    vault.save_action(_entry(1))
    assert vault.load_history() == []


def test_file_store_and_salt_survive_reopen(tmp_path):
    store = FileBlobStore(tmp_path / "store")
    Vault(store, "s3cret").save_config(AssistantConfig(api_key="sk-1", model="gpt-4o"))

    reopened = Vault(FileBlobStore(tmp_path / "store"), "s3cret")
    assert reopened.load_config().model == "gpt-4o"
    assert sorted(p.name for p in (tmp_path / "store").iterdir()) == ["assistant-config.blob", "kdf-salt.blob"]


def test_file_store_rejects_path_keys(tmp_path):
    store = FileBlobStore(tmp_path)
    with pytest.raises(ValueError):
        store.put("../escape", "x")


def test_memory_store_delete_is_idempotent():
    store = MemoryBlobStore()
    store.delete("missing")
    store.put("k", "v")
    store.delete("k")
    assert store.get("k") is None
