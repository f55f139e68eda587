from __future__ import annotations

import random

import pytest

from substrate.entities import EntityTracker, entity_id_for
from substrate.models import Entity, Entropy, Movement, Room
from substrate.observer import Observation

NOW = 1_700_000_000.0


def _obs(text: str, topic: str = "tech", index: int = 0) -> Observation:
    return Observation(
        id=f"obs-{index}",
        text=text,
        timestamp="2026-01-01T00:00:00+00:00",
        topic=topic,
        sentiment=0.0,
        virality=0.0,
    )


def _room(room_id: str, topic: str, score: float) -> Room:
    return Room(
        id=room_id,
        name=f"Room {room_id}",
        topic=topic,
        entropy=Entropy(score=score, half_life=3600.0, created_at=NOW),
    )


def _tracker(seed: int = 2, **kwargs: float) -> EntityTracker:
    return EntityTracker(rng=random.Random(seed), **kwargs)


def test_third_mention_creates_a_named_inhabitant() -> None:
    entities: dict[str, Entity] = {}
    observations = [_obs(f"hi @alice ok {index}", index=index) for index in range(3)]

    created = _tracker().update(entities, observations, NOW)

    assert [entity.name for entity in created] == ["@alice"]
    entity = entities[entity_id_for("@alice")]
    assert entity.id == "entity__alice"
    assert entity.kind == "named_mention"
    assert entity.strength == pytest.approx(0.45)
    assert entity.appearances == 1
    assert entity.first_seen == NOW
    assert entity.topics == ["tech"]
    assert entity.current_room is None


def test_mentions_below_threshold_are_ignored() -> None:
    entities: dict[str, Entity] = {}

    created = _tracker().update(entities, [_obs("hi @bob"), _obs("yo @bob")], NOW)

    assert created == []
    assert entities == {}


def test_tags_and_long_words_become_concepts() -> None:
    observations = [
        _obs("#glitch quantum https://x.co/abc about", index=index)
        for index in range(3)
    ]

    mentions = _tracker().extract(observations)

    assert mentions["#glitch"].kind == "concept"
    assert mentions["word:quantum"].count == 3
    assert "word:about" not in mentions
    assert not any(key.startswith("word:http") for key in mentions)
    assert mentions["word:quantum"].contexts == [observations[0].text[:80]]


def test_returning_entity_grows_and_merges_topics() -> None:
    entity_id = entity_id_for("@alice")
    entities = {
        entity_id: Entity(
            id=entity_id,
            name="@alice",
            kind="named_mention",
            topics=["tech"],
            strength=0.95,
            appearances=4,
            first_seen=NOW - 100,
            last_seen=NOW - 100,
        )
    }
    observations = [_obs(f"@alice hey {index}", "culture", index) for index in range(3)]

    created = _tracker().update(entities, observations, NOW)

    entity = entities[entity_id]
    assert created == []
    assert entity.strength == 1.0
    assert entity.appearances == 5
    assert entity.last_seen == NOW
    assert entity.topics == ["tech", "culture"]
    assert entity.recent_contexts == [
        "@alice hey 0",
        "@alice hey 1",
    ]


def test_context_buffer_is_capped() -> None:
    entity_id = entity_id_for("@alice")
    entities = {
        entity_id: Entity(
            id=entity_id,
            name="@alice",
            recent_contexts=[f"old {index}" for index in range(10)],
        )
    }

    _tracker().update(
        entities, [_obs(f"@alice new {index}", index=index) for index in range(3)], NOW
    )

    contexts = entities[entity_id].recent_contexts
    assert len(contexts) == 10
    assert contexts[-2:] == ["@alice new 0", "@alice new 1"]


def test_unmentioned_entities_weaken_and_expire() -> None:
    entities = {
        "entity_fading": Entity(id="entity_fading", name="fading", strength=0.5, last_seen=NOW),
        "entity_gone": Entity(
            id="entity_gone", name="gone", strength=0.03, last_seen=NOW - 7200
        ),
        "entity_recent": Entity(
            id="entity_recent", name="recent", strength=0.03, last_seen=NOW - 60
        ),
    }

    _tracker().update(entities, [_obs("nothing here")], NOW)

    assert entities["entity_fading"].strength == pytest.approx(0.45)
    assert "entity_gone" not in entities
    assert entities["entity_recent"].strength == 0.0


def test_wander_picks_among_least_decayed_topic_rooms() -> None:
    rooms = [
        _room("t1", "tech", 0.9),
        _room("t2", "tech", 0.1),
        _room("t3", "tech", 0.2),
        _room("t4", "tech", 0.3),
        _room("s1", "science", 0.0),
    ]
    entities = {"e": Entity(id="e", name="e", topics=["tech"], current_room="s1")}

    moves = _tracker().wander(entities, rooms, NOW)

    entity = entities["e"]
    assert entity.current_room in {"t2", "t3", "t4"}
    assert moves == [Movement(from_room="s1", to_room=entity.current_room, timestamp=NOW)]
    assert entity.history == moves


def test_first_placement_is_not_a_move() -> None:
    entities = {"e": Entity(id="e", name="e", topics=["tech"])}

    moves = _tracker().wander(entities, [_room("t1", "tech", 0.0)], NOW)

    assert moves == []
    assert entities["e"].current_room == "t1"


def test_wander_history_is_capped() -> None:
    history = [Movement(f"a{index}", f"b{index}", NOW) for index in range(20)]
    entities = {
        "e": Entity(id="e", name="e", topics=["tech"], current_room="old", history=history)
    }

    _tracker().wander(entities, [_room("t1", "tech", 0.0)], NOW)

    assert len(entities["e"].history) == 20
    assert entities["e"].history[-1].to_room == "t1"
    assert entities["e"].history[0].from_room == "a1"


def test_wander_without_matching_room_unassigns() -> None:
    entities = {"e": Entity(id="e", name="e", topics=["finance"], current_room="gone")}

    moves = _tracker().wander(entities, [_room("t1", "tech", 0.0)], NOW)

    assert moves == []
    assert entities["e"].current_room is None


def test_entities_in_room_and_summary() -> None:
    entities = {
        "a": Entity(id="a", name="@a", kind="named_mention", strength=0.9, current_room="r1"),
        "b": Entity(id="b", name="#b", kind="concept", strength=0.2, current_room="r2"),
    }

    assert [entity.id for entity in EntityTracker.entities_in_room(entities, "r1")] == ["a"]

    summary = EntityTracker.summary(entities)
    assert summary["total"] == 2
    assert summary["named_mentions"] == 1
    assert summary["concepts"] == 1
    assert summary["strongest"][0]["name"] == "@a"
