import copy
from types import SimpleNamespace

import pytest

from planwright.vault import FernetCipher, MemoryBlobStore, Vault

WORKSPACE = {
    "tables": [
        {
            "id": "mon",
            "type": "day",
            "title": "Monday, 26. 01. 2026",
            "date": "2026-01-26",
            "startTime": "09:00",
            "position": {"x": 20, "y": 20},
            "tasks": [
                {"id": "a", "title": "Gym", "duration": 60, "group": "health"},
                {"id": "b", "title": "Email", "duration": 15, "group": "work"},
                {"id": "c", "title": "Read", "duration": 30},
            ],
        },
        {
            "id": "inbox",
            "type": "list",
            "title": "Inbox",
            "position": {"x": 120, "y": 70},
            "tasks": [
                {"id": "d", "title": "Taxes", "duration": 90, "group": "work"},
            ],
        },
    ],
    "taskGroups": [
        {"id": "work", "name": "Work", "color": "#3366ff"},
        {"id": "health", "name": "Health", "color": "#33cc66"},
    ],
    "settings": {
        "dateFormat": "DD. MM. YYYY",
        "defaultStartTime": "07:30",
        "defaultDayStart": "07:00",
        "defaultTaskDuration": 30,
    },
}


@pytest.fixture
def workspace():
    return copy.deepcopy(WORKSPACE)


@pytest.fixture
def vault():
    # Low iteration count keeps key derivation fast in tests.
    return Vault(MemoryBlobStore(), "test-secret", cipher=FernetCipher(b"0123456789abcdef", iterations=1_000))


@pytest.fixture
def completion():
    """Build a LiteLLM-shaped completion response."""
    def _make(content, model="gpt-4o-mini"):
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
            usage=SimpleNamespace(prompt_tokens=12, completion_tokens=8, total_tokens=20),
            model=model,
        )
    return _make
