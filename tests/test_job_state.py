"""Tests for the in-memory JobState."""

from __future__ import annotations

import json

import pytest

from graph_qualys.graph.entities import Entity, create_direct_relationship
from graph_qualys.graph.job_state import DuplicateKeyError, JobState


def _entity(key: str, entity_type: str = "qualys_host", **properties) -> Entity:
    return Entity(
        key=key, type=entity_type, class_="Host", display_name=key,
        properties=properties,
    )


def test_add_and_find_entity():
    state = JobState()
    state.add_entity(_entity("h1", ipAddress="10.0.0.1"))
    assert state.has_key("h1")
    assert state.find_entity("h1").properties == {"ipAddress": "10.0.0.1"}
    assert state.find_entity("missing") is None


def test_duplicate_entity_key_raises():
    state = JobState()
    state.add_entity(_entity("h1"))
    with pytest.raises(DuplicateKeyError) as exc_info:
        state.add_entity(_entity("h1"))
    assert exc_info.value.key == "h1"


def test_duplicate_relationship_key_raises():
    state = JobState()
    a, b = _entity("a"), _entity("b")
    state.add_entities([a, b])
    state.add_relationships([create_direct_relationship(a, "HAS", b)])
    with pytest.raises(DuplicateKeyError):
        state.add_relationships([create_direct_relationship(a, "HAS", b)])


def test_iterate_by_type():
    state = JobState()
    state.add_entities([
        _entity("h1"), _entity("h2"), _entity("w1", "qualys_web_app"),
    ])
    assert [e.key for e in state.iterate_entities("qualys_host")] == ["h1", "h2"]
    assert len(list(state.iterate_entities())) == 3


def test_step_data():
    state = JobState()
    assert state.get_data("HOST_IDS") is None
    assert state.get_data("HOST_IDS", []) == []
    state.set_data("HOST_IDS", [1, 2])
    assert state.get_data("HOST_IDS") == [1, 2]


def test_summary_counts_by_type():
    state = JobState()
    account = _entity("acct", "qualys_account")
    host = _entity("h1")
    state.add_entities([account, host])
    state.add_relationships([create_direct_relationship(account, "HAS", host)])
    assert state.summary() == {
        "entities": {"qualys_account": 1, "qualys_host": 1},
        "relationships": {"qualys_account_has_host": 1},
    }


def test_write_json(tmp_path):
    state = JobState()
    a, b = _entity("a", hostId=1), _entity("b")
    state.add_entities([a, b])
    state.add_relationships([create_direct_relationship(a, "HAS", b)])

    path = state.write_json(tmp_path / "out" / "graph.json")

    document = json.loads(path.read_text())
    assert document["entities"][0] == {
        "_key": "a", "_type": "qualys_host", "_class": "Host",
        "displayName": "a", "hostId": 1,
    }
    assert document["relationships"][0]["_fromEntityKey"] == "a"
    assert document["relationships"][0]["_toEntityKey"] == "b"
