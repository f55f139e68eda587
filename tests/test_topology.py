from __future__ import annotations

import math
import random

import pytest

from substrate.models import Corridor, Entropy, Room, corridor_key
from substrate.topology import TopologyEngine, layout_iterations, similarity

TOPICS = ("tech", "politics", "culture", "science", "existential")


def _room(
    room_id: str,
    topic: str = "tech",
    *,
    sentiment: float = 0.0,
    virality: float = 0.0,
) -> Room:
    return Room(
        id=room_id,
        name=f"Room {room_id}",
        topic=topic,
        sentiment=sentiment,
        virality=virality,
        entropy=Entropy(score=0.0, half_life=3600.0, created_at=0.0),
    )


def _world(count: int, seed: int = 3) -> list[Room]:
    rng = random.Random(seed)
    return [
        _room(
            f"r{index}",
            TOPICS[index % len(TOPICS)],
            sentiment=rng.uniform(-1.0, 1.0),
            virality=rng.uniform(0.0, 4.0),
        )
        for index in range(count)
    ]


def _engine(seed: int = 11, **kwargs: float) -> TopologyEngine:
    return TopologyEngine(rng=random.Random(seed), **kwargs)


def test_similarity_of_same_topic_rooms_matches_weighted_sum() -> None:
    left = _room("a", "tech", sentiment=0.5, virality=2.0)
    right = _room("b", "tech", sentiment=0.3, virality=2.0)

    score = similarity(left, right)

    assert score == pytest.approx(0.5 + 0.3 * 0.8 + 0.2 * 1.0)
    assert score > 0.4


def test_similarity_stays_in_unit_interval_for_out_of_range_inputs() -> None:
    left = _room("a", "tech", sentiment=5.0, virality=0.0)
    right = _room("b", "culture", sentiment=-5.0, virality=50.0)

    assert similarity(left, right) == 0.0
    assert 0.0 <= similarity(left, left) <= 1.0


def test_corridor_geometry_follows_similarity() -> None:
    corridor = Corridor.between("a", "b", 0.94)

    assert corridor.width == pytest.approx(3.82)
    assert corridor.length == pytest.approx(2.0)
    assert corridor.key == corridor_key("b", "a")


def test_corridor_id_does_not_depend_on_direction() -> None:
    forward = Corridor.between("a", "b", 0.5)
    backward = Corridor.between("b", "a", 0.5)

    assert forward.id == backward.id == "corridor_a_b"
    assert forward.to_dict()["id"] == backward.to_dict()["id"]


def test_generated_corridors_are_symmetric_and_unique() -> None:
    rooms = _world(40)
    corridors = _engine().generate_corridors(rooms)

    keys = [corridor.key for corridor in corridors]
    assert len(keys) == len(set(keys))

    by_id = {room.id: room for room in rooms}
    for corridor in corridors:
        assert corridor.source != corridor.target
        assert corridor.target in by_id[corridor.source].connections
        assert corridor.source in by_id[corridor.target].connections

    for room in rooms:
        assert len(room.connections) == len(set(room.connections))
    assert sum(len(room.connections) for room in rooms) == 2 * len(corridors)


def test_every_room_is_connected_even_above_any_similarity() -> None:
    rooms = _world(25)

    corridors = _engine(threshold=1.0).generate_corridors(rooms)

    assert corridors
    assert all(room.connections for room in rooms)


def test_single_room_gets_no_corridors() -> None:
    rooms = [_room("solo")]

    assert _engine().generate_corridors(rooms) == []
    assert rooms[0].connections == []


def test_generation_resets_previous_connections() -> None:
    rooms = [_room("a", sentiment=0.1), _room("b", sentiment=0.2)]
    rooms[0].connections = ["ghost"]

    _engine().generate_corridors(rooms)

    assert "ghost" not in rooms[0].connections
    assert rooms[0].connections == ["b"]
    assert rooms[1].connections == ["a"]


def test_intra_topic_links_are_limited_to_best_neighbors() -> None:
    rooms = [_room(f"t{index}", "tech", sentiment=0.0) for index in range(12)]

    corridors = _engine().generate_corridors(rooms)

    # Each room proposes at most five partners; proposals are deduplicated.
    assert len(corridors) <= 12 * 5
    assert all(corridor.similarity >= 0.4 for corridor in corridors)


class _RecordingRandom(random.Random):
    def __init__(self, seed: int) -> None:
        super().__init__(seed)
        self.samples: list[tuple[int, int]] = []

    def sample(self, population, k, **kwargs):  # type: ignore[override]
        self.samples.append((len(population), k))
        return super().sample(population, k, **kwargs)


def _cross_topic_world() -> list[Room]:
    singles = [
        _room("h0", "tech"),
        _room("p0", "politics"),
        _room("s0", "science"),
        _room("e0", "existential"),
    ]
    clique = [_room(f"c{index}", "culture") for index in range(4)]
    crowd = [_room(f"f{index}", "finance") for index in range(7)]
    return singles + clique + crowd


def test_cross_topic_links_come_from_sparse_rooms_only() -> None:
    rooms = _cross_topic_world()
    topic_of = {room.id: room.topic for room in rooms}
    rng = _RecordingRandom(5)

    corridors = TopologyEngine(rng=rng, threshold=0.45).generate_corridors(rooms)

    cross = [c for c in corridors if topic_of[c.source] != topic_of[c.target]]
    initiated: dict[str, int] = {}
    for corridor in cross:
        initiated[corridor.source] = initiated.get(corridor.source, 0) + 1

    # Rooms that already had three corridors never reach across topics.
    assert initiated == {"h0": 3, "p0": 3, "s0": 3}
    assert all(corridor.similarity >= 0.45 for corridor in cross)
    assert all(room.connections for room in rooms)


def test_cross_topic_candidates_are_sampled_from_large_topics() -> None:
    rng = _RecordingRandom(5)

    TopologyEngine(rng=rng, threshold=0.45).generate_corridors(_cross_topic_world())

    assert rng.samples == [(7, 5)]


def test_layout_iteration_budget_shrinks_with_room_count() -> None:
    assert layout_iterations(10) == 100
    assert layout_iterations(101) == 50
    assert layout_iterations(301) == 30


def test_layout_assigns_finite_rounded_positions() -> None:
    rooms = _world(30)
    engine = _engine()
    engine.generate_corridors(rooms)

    engine.layout_rooms(rooms, iterations=20)

    for room in rooms:
        assert math.isfinite(room.position.x)
        assert math.isfinite(room.position.y)
        assert room.position.x == round(room.position.x, 2)
        assert room.position.y == round(room.position.y, 2)


def test_layout_is_reproducible_with_the_same_seed() -> None:
    first = _world(20)
    second = _world(20)

    _engine(seed=5).build_topology(first)
    _engine(seed=5).build_topology(second)

    assert [room.position for room in first] == [room.position for room in second]


def test_build_topology_reports_stats() -> None:
    rooms = _world(10)

    result = _engine().build_topology(rooms)

    assert result.stats["total_rooms"] == 10
    assert result.stats["total_corridors"] == len(result.corridors)
    assert set(result.stats["topics"]) == {room.topic for room in rooms}
    assert result.stats["avg_sentiment"] == pytest.approx(
        sum(room.sentiment for room in rooms) / 10
    )


def test_build_topology_on_empty_world() -> None:
    result = _engine().build_topology([])

    assert result.corridors == []
    assert result.stats["total_rooms"] == 0
    assert result.stats["avg_sentiment"] == 0.0
