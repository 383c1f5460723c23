from __future__ import annotations

import json
import time

import pytest

from fakes import MemoryStore
from stateserver.state import StateSerializationError, StateService, default_state
from stateserver.store import DocumentStore

DEFAULT = {"todos": [], "bedtime": None, "timers": {}, "updatedAt": 0}


def test_default_on_empty_store():
    service = StateService(MemoryStore())
    assert service.load_state() == DEFAULT


def test_default_on_corrupt_store():
    service = StateService(MemoryStore("{not json"))
    assert service.load_state() == DEFAULT


@pytest.mark.parametrize("text", ["[1, 2]", '"scalar"', "42", "null"])
def test_default_when_stored_value_is_not_an_object(text):
    service = StateService(MemoryStore(text))
    assert service.load_state() == DEFAULT


def test_default_on_unreadable_record(tmp_path):
    store = DocumentStore(tmp_path)
    store.path.write_text("garbage", encoding="utf-8")
    assert StateService(store).load_state() == DEFAULT


def test_default_state_returns_fresh_objects():
    first = default_state()
    first["todos"].append("x")
    first["timers"]["t"] = 1
    assert default_state() == DEFAULT


def test_save_stamps_updated_at_with_current_time():
    service = StateService(MemoryStore())
    before = int(time.time() * 1000)
    saved = service.save_state({"todos": [], "bedtime": None, "timers": {}})
    after = int(time.time() * 1000)

    assert isinstance(saved["updatedAt"], int)
    assert before <= saved["updatedAt"] <= after


def test_save_overwrites_client_supplied_updated_at():
    service = StateService(MemoryStore(), clock=lambda: 1_700_000_000_000)
    saved = service.save_state({"todos": [], "updatedAt": 1})
    assert saved["updatedAt"] == 1_700_000_000_000


def test_save_persists_stamped_document():
    store = MemoryStore()
    service = StateService(store, clock=lambda: 5)
    saved = service.save_state({"bedtime": "22:30"})

    assert json.loads(store.text) == saved == {"bedtime": "22:30", "updatedAt": 5}
    assert service.load_state() == saved


def test_save_does_not_mutate_candidate():
    candidate = {"todos": [], "updatedAt": 1}
    StateService(MemoryStore(), clock=lambda: 9).save_state(candidate)
    assert candidate == {"todos": [], "updatedAt": 1}


def test_save_replaces_instead_of_merging(tmp_path):
    service = StateService(DocumentStore(tmp_path))
    service.save_state({"todos": ["a"], "timers": {"t1": 10}})
    b = service.save_state({"bedtime": "23:00"})

    loaded = service.load_state()
    assert loaded == b
    assert "todos" not in loaded and "timers" not in loaded


def test_serialization_failure_leaves_previous_document():
    store = MemoryStore()
    service = StateService(store, clock=lambda: 3)
    service.save_state({"todos": ["keep"]})

    with pytest.raises(StateSerializationError):
        service.save_state({"todos": [float("nan")]})
    with pytest.raises(StateSerializationError):
        service.save_state({"timers": {"bad": object()}})

    assert store.writes == 1
    assert service.load_state() == {"todos": ["keep"], "updatedAt": 3}


@pytest.mark.parametrize("text", ['{"todos": NaN}', '{"timers": {"t": Infinity}}', '{"x": -Infinity}'])
def test_default_when_stored_text_has_non_standard_constants(text):
    service = StateService(MemoryStore(text))
    assert service.load_state() == DEFAULT


def test_default_when_stored_text_is_nested_too_deep():
    depth = 100_000
    text = '{"todos": ' + "[" * depth + "]" * depth + "}"
    service = StateService(MemoryStore(text))
    assert service.load_state() == DEFAULT
