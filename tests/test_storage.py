from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from substrate import storage as world_storage
from substrate.constants import WORLD_STATE_RECORD, WORLD_STATE_SCHEMA_VERSION
from substrate.models import Corridor, Entity, Entropy, Room, WorldState
from substrate.storage import (
    InMemoryWorldStorage,
    JsonFileWorldStorage,
    StateLoadError,
    detect_schema_version,
    load_world_state,
    upgrade_payload,
)

NOW = 1_700_000_000.0


def _state() -> WorldState:
    state = WorldState(created_at=NOW, last_update=NOW + 5, cycle=4)
    state.set_rooms(
        [
            Room(id="a", name="Vault", topic="finance", entropy=Entropy(0.2, 3600.0, NOW)),
            Room(id="b", name="Lab", topic="science", entropy=Entropy(0.4, 7200.0, NOW)),
        ]
    )
    state.set_corridors([Corridor.between("a", "b", 0.55)])
    state.resync_connections()
    state.entities = {
        "entity_x": Entity(id="entity_x", name="x", topics=["finance"], current_room="a")
    }
    return state


def _legacy_payload() -> dict[str, Any]:
    return {
        "version": 2,
        "createdAt": 1_700_000_000_000,
        "lastUpdate": 1_700_000_600_000,
        "observationCycles": 7,
        "rooms": [
            {
                "id": "room_1",
                "name": "Server Hall",
                "number": 3,
                "topic": "tech",
                "sentiment": 0.25,
                "virality": 1.5,
                "entropy": {"score": 0.3, "halfLife": 14400, "createdAt": 1_700_000_000_000},
                "archetype": {"wallTexture": "metal_grid", "lightColor": "#00ff88", "ambience": "electric_hum"},
                "dimensions": {"width": 6, "height": 6, "depth": 6},
                "fragments": {"sentences": ["hello"], "words": ["hello"], "raw": "hello"},
                "source": {"tweetId": "t1", "timestamp": "x", "metrics": {"likes": 3}},
                "connections": ["room_2"],
                "position": {"x": 1.5, "y": -2},
                "traces": [{"from": "Vault", "topic": "finance", "echo": "e", "absorbedAt": 1_700_000_001_000}],
                "lastRefreshedCycle": 6,
                "_addedCycle": 2,
            },
            {"id": "room_2", "name": "Vault", "topic": "finance"},
        ],
        "corridors": [
            {"id": "corridor_room_1_room_2", "from": "room_1", "to": "room_2", "similarity": 0.5},
            {"from": "room_1", "to": "room_missing", "similarity": 0.9},
        ],
        "artifacts": [
            {"sourceRoom": "room_0", "sourceTopic": "tech", "fragments": ["a", "b"], "sentiment": 0, "collapsedAt": 1_700_000_000_000},
            {"sourceRoom": "room_9", "sourceName": "Lab", "sourceTopic": "science", "fragments": [], "collapsedAt": 1_700_000_000_000, "cycle": 5},
        ],
        "entities": [
            {
                "id": "entity__bob",
                "name": "@bob",
                "type": "person",
                "topics": ["tech"],
                "strength": 0.6,
                "appearances": 2,
                "firstSeen": 1_700_000_000_000,
                "lastSeen": 1_700_000_500_000,
                "currentRoom": "room_gone",
                "recentContexts": ["@bob hi"],
                "history": [{"from": "room_1", "to": "room_2", "timestamp": 1_700_000_100_000}],
            }
        ],
        "events": [
            {"timestamp": 1_700_000_000_000, "type": "topic_emerged", "description": "d", "involvedRooms": ["room_1"], "involvedEntities": []}
        ],
        "memory": {
            "topicHistory": [
                {"cycle": 6, "timestamp": 1_700_000_000_000, "topics": {"tech": {"count": 1, "avgSentiment": 0.25}}}
            ],
            "totalRoomHistory": [{"cycle": 6, "count": 2}],
            "maxHistoryLength": 50,
        },
        "stats": {"topics": ["tech"]},
    }


def test_round_trip_through_json_file(tmp_path: Path) -> None:
    storage = JsonFileWorldStorage(tmp_path / "data" / "world.json")
    original = _state()

    storage.save_state(original.to_dict())
    loaded = load_world_state(storage.load_state())

    assert loaded.to_dict() == original.to_dict()
    assert loaded.rooms["a"].connections == ["b"]
    assert not (tmp_path / "data" / "world.tmp").exists()


def test_saved_payload_is_self_describing(tmp_path: Path) -> None:
    path = tmp_path / "world.json"
    JsonFileWorldStorage(path).save_state(_state().to_dict())

    payload = json.loads(path.read_text("utf-8"))

    assert payload["record"] == WORLD_STATE_RECORD
    assert payload["schema_version"] == WORLD_STATE_SCHEMA_VERSION
    assert payload["cycle"] == 4
    assert payload["corridors"][0]["id"] == "corridor_a_b"


def test_missing_or_malformed_file_starts_fresh(tmp_path: Path) -> None:
    missing = JsonFileWorldStorage(tmp_path / "nope.json")
    broken_path = tmp_path / "broken.json"
    broken_path.write_text("{not json", "utf-8")
    listed_path = tmp_path / "list.json"
    listed_path.write_text("[1, 2]", "utf-8")

    for storage in (
        missing,
        JsonFileWorldStorage(broken_path),
        JsonFileWorldStorage(listed_path),
    ):
        state = load_world_state(storage.load_state(), now=NOW)
        assert state.rooms == {}
        assert state.cycle == 0
        assert state.created_at == NOW


def test_unknown_schema_starts_fresh_unless_strict() -> None:
    payload = {"record": "other", "schema_version": 99, "rooms": []}

    assert load_world_state(payload, now=NOW).cycle == 0
    with pytest.raises(StateLoadError):
        load_world_state(payload, strict=True)
    with pytest.raises(StateLoadError):
        load_world_state([], strict=True)


def test_schema_detection() -> None:
    assert detect_schema_version(_state().to_dict()) == 3
    assert detect_schema_version({"version": 2, "rooms": []}) == 2
    assert detect_schema_version({"rooms": []}) == 1
    assert detect_schema_version({"version": 9}) == 0


def test_legacy_layout_is_upgraded() -> None:
    state = load_world_state(_legacy_payload())

    assert state.cycle == 7
    assert state.created_at == pytest.approx(1_700_000_000.0)
    assert state.last_update == pytest.approx(1_700_000_600.0)

    room = state.rooms["room_1"]
    assert room.entropy.half_life == 14400
    assert room.entropy.created_at == pytest.approx(1_700_000_000.0)
    assert room.archetype.wall_texture == "metal_grid"
    assert room.source["observation_id"] == "t1"
    assert room.last_refreshed_cycle == 6
    assert room.added_cycle == 2
    assert room.traces[0].source_name == "Vault"
    assert room.traces[0].absorbed_at == pytest.approx(1_700_000_001.0)
    assert room.connections == ["room_2"]

    assert list(state.corridors) == ["room_1|room_2"]

    collapsed, pruned = state.artifacts
    assert collapsed.reason == "collapsed"
    assert pruned.reason == "pruned"
    assert pruned.cycle == 5

    entity = state.entities["entity__bob"]
    assert entity.kind == "named_mention"
    assert entity.current_room is None
    assert entity.history[0].to_room == "room_2"
    assert entity.last_seen == pytest.approx(1_700_000_500.0)

    assert state.events[0].kind == "topic_emerged"
    assert state.events[0].involved_rooms == ("room_1",)
    snapshot = state.memory.topic_history[0]
    assert snapshot.topics["tech"].avg_sentiment == 0.25
    assert state.memory.total_room_history[0].count == 2


def test_first_generation_layout_gets_empty_collections() -> None:
    payload = _legacy_payload()
    payload.pop("version")
    for key in ("entities", "events", "memory", "artifacts"):
        payload.pop(key)

    upgraded = upgrade_payload(payload)
    state = load_world_state(payload)

    assert upgraded["schema_version"] == 3
    assert state.entities == {}
    assert state.events == []
    assert state.artifacts == []
    assert state.memory.topic_history == []
    assert len(state.rooms) == 2


def test_malformed_legacy_values_do_not_crash_the_load() -> None:
    payload = _legacy_payload()
    payload["memory"] = {"topicHistory": [{"cycle": 1, "topics": ["tech"]}]}
    payload["rooms"][0]["entropy"] = "decayed"
    payload["rooms"][0]["source"] = {"tweetId": "t1", "metrics": ["likes"]}
    payload["rooms"][0]["archetype"] = ["metal_grid"]

    state = load_world_state(payload, now=NOW)

    assert state.cycle == 7
    assert state.memory.topic_history[0].topics == {}
    room = state.rooms["room_1"]
    assert room.entropy.score == 0.0
    assert room.source["metrics"] == {}


def test_bare_legacy_memory_shapes_load_without_error() -> None:
    state = load_world_state(
        {"version": 2, "rooms": [], "memory": {"topicHistory": [{"cycle": 1, "topics": "tech"}]}},
        now=NOW,
    )

    assert len(state.memory.topic_history) == 1
    assert state.rooms == {}


def test_upgrade_failure_is_a_cold_start_unless_strict(monkeypatch: pytest.MonkeyPatch) -> None:
    def _broken(payload: dict[str, Any]) -> dict[str, Any]:
        raise AttributeError("'list' object has no attribute 'items'")

    monkeypatch.setattr(world_storage, "upgrade_payload", _broken)

    state = load_world_state(_legacy_payload(), now=NOW)

    assert state.cycle == 0
    assert state.created_at == NOW
    with pytest.raises(StateLoadError):
        load_world_state(_legacy_payload(), strict=True)


def test_upgrade_does_not_mutate_the_input() -> None:
    payload = _legacy_payload()
    snapshot = json.dumps(payload, sort_keys=True)

    upgrade_payload(payload)

    assert json.dumps(payload, sort_keys=True) == snapshot


def test_in_memory_storage_returns_copies() -> None:
    storage = InMemoryWorldStorage()
    payload = _state().to_dict()

    storage.save_state(payload)
    payload["cycle"] = 99
    loaded = storage.load_state()
    loaded["rooms"].clear()

    assert storage.load_state()["cycle"] == 4
    assert len(storage.load_state()["rooms"]) == 2

    storage.reset()
    assert storage.load_state() == {}


def test_dangling_references_are_dropped_on_load() -> None:
    payload = _state().to_dict()
    payload["corridors"].append({"source": "a", "target": "ghost", "similarity": 0.9})
    payload["corridors"].append({"source": "b", "target": "a", "similarity": 0.1})
    payload["entities"][0]["current_room"] = "ghost"

    state = load_world_state(payload)

    assert list(state.corridors) == ["a|b"]
    assert state.corridors["a|b"].similarity == pytest.approx(0.55)
    assert state.entities["entity_x"].current_room is None


def test_json_file_reset_removes_file(tmp_path: Path) -> None:
    path = tmp_path / "world.json"
    storage = JsonFileWorldStorage(path)
    storage.save_state({"cycle": 1})

    storage.reset()

    assert not path.exists()
