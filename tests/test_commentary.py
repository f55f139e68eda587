from __future__ import annotations

import random

from substrate.commentary import TEMPLATES, CommentaryGenerator, sentiment_bucket
from substrate.memory import TrendReport
from substrate.models import Entity, Room, WorldState


def _generator(seed: int = 8) -> CommentaryGenerator:
    return CommentaryGenerator(rng=random.Random(seed))


def test_sentiment_buckets() -> None:
    assert sentiment_bucket(0.5) == "positive"
    assert sentiment_bucket(-0.5) == "negative"
    assert sentiment_bucket(0.2) == "neutral"
    assert sentiment_bucket(-0.2) == "neutral"


def test_commentary_opens_with_a_line_from_the_matching_pool() -> None:
    generator = _generator()
    for sentiment, bucket in ((0.9, "positive"), (-0.9, "negative"), (0.0, "neutral")):
        for _ in range(20):
            room = Room(id="r", name="Vault", topic="finance", sentiment=sentiment)
            first = generator.generate(room).split("\n\n")[0]
            assert first in TEMPLATES["finance"][bucket]


def test_unknown_topic_uses_liminal_pool() -> None:
    room = Room(id="r", name="Hall", topic="mystery", sentiment=0.0)

    first = _generator().generate(room).split("\n\n")[0]

    assert first in TEMPLATES["liminal"]["neutral"]


def test_annotate_fills_every_room() -> None:
    rooms = [Room(id=str(index), name="Lab", topic="science") for index in range(5)]

    _generator().annotate_rooms(rooms)

    assert all(room.commentary for room in rooms)


def test_reflection_over_empty_world() -> None:
    line = _generator().cross_room_commentary(WorldState(), TrendReport())

    assert "empty" in line


def test_reflection_mentions_dominant_topic_trend_and_entity() -> None:
    state = WorldState()
    state.set_rooms(
        [
            Room(id="a", name="Vault", topic="finance"),
            Room(id="b", name="Bull Pen", topic="finance"),
            Room(id="c", name="Lab", topic="science"),
        ]
    )
    state.entities = {
        "e": Entity(id="e", name="@trader", strength=0.9, current_room="b"),
    }
    trends = TrendReport(insights=['"finance" is a new presence in the Substrate'])

    line = _generator().cross_room_commentary(state, trends)

    assert "3 rooms now" in line
    assert "finance, 2 of them" in line
    assert '"finance" is a new presence in the Substrate.' in line
    assert "@trader keeps returning to the bull pen." in line
