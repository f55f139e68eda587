from __future__ import annotations

import math
import random
import re
from dataclasses import dataclass
from typing import Iterable

from .constants import BASE_HALF_LIFE_SECONDS, FALLBACK_TOPIC
from .models import Archetype, Dimensions, Entropy, Fragments, Room
from .observer import Observation

_SENTENCE_BREAK = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class RoomArchetype:
    names: tuple[str, ...]
    wall_texture: str
    light_color: str
    ambience: str

    def archetype(self) -> Archetype:
        return Archetype(
            wall_texture=self.wall_texture,
            light_color=self.light_color,
            ambience=self.ambience,
        )


ARCHETYPES: dict[str, RoomArchetype] = {
    "tech": RoomArchetype(
        names=("Server Hall", "Data Center", "Terminal Room", "Circuit Maze", "Processing Bay"),
        wall_texture="metal_grid",
        light_color="#00ff88",
        ambience="electric_hum",
    ),
    "politics": RoomArchetype(
        names=("Echo Chamber", "Debate Hall", "Propaganda Room", "Ballot Chamber", "Filibuster Corridor"),
        wall_texture="marble_cracked",
        light_color="#ff4444",
        ambience="crowd_murmur",
    ),
    "culture": RoomArchetype(
        names=("Gallery", "Screening Room", "Arcade", "Sound Stage", "Meme Archive"),
        wall_texture="neon_tile",
        light_color="#ff66ff",
        ambience="static_music",
    ),
    "science": RoomArchetype(
        names=("Lab", "Observatory", "Specimen Room", "Clean Room", "Telescope Bay"),
        wall_texture="white_panel",
        light_color="#4488ff",
        ambience="instrument_beep",
    ),
    "finance": RoomArchetype(
        names=("Trading Floor", "Vault", "Ticker Room", "Bull Pen", "Ledger Archive"),
        wall_texture="dark_wood",
        light_color="#44ff44",
        ambience="ticker_tape",
    ),
    "existential": RoomArchetype(
        names=("Void Chamber", "Mirror Hall", "Dream Room", "Infinite Corridor", "Consciousness Pool"),
        wall_texture="dark_void",
        light_color="#8844ff",
        ambience="deep_drone",
    ),
    "liminal": RoomArchetype(
        names=("Empty Office", "Waiting Room", "Stairwell", "Parking Garage", "Hallway 7B"),
        wall_texture="yellow_wallpaper",
        light_color="#ffcc44",
        ambience="fluorescent_buzz",
    ),
}


def archetype_for(topic: str) -> RoomArchetype:
    return ARCHETYPES.get(topic) or ARCHETYPES[FALLBACK_TOPIC]


def room_dimensions(virality: float, sentiment: float) -> Dimensions:
    """Viral rooms are bigger; positive rooms wider, negative rooms taller."""
    base = 3.0 + virality * 2.0
    width = base * (1.0 + sentiment * 0.3)
    height = base * (1.0 - sentiment * 0.2)
    return Dimensions(
        width=max(2.0, round(width, 1)),
        height=max(2.0, round(height, 1)),
        depth=max(2.0, round(base, 1)),
    )


def room_entropy(virality: float, now: float) -> Entropy:
    return Entropy(
        score=0.0,
        half_life=BASE_HALF_LIFE_SECONDS * (1.0 + virality * 2.0),
        created_at=now,
    )


def extract_fragments(text: str) -> Fragments:
    sentences = [
        chunk.strip() for chunk in _SENTENCE_BREAK.split(text) if len(chunk.strip()) > 3
    ]
    words = [word for word in text.split() if len(word) > 4]
    return Fragments(sentences=sentences[:3], words=words[:8], raw=text)


class RoomFactory:
    """Turns classified observations into rooms, one topic cluster at a time."""

    def __init__(self, *, rng: random.Random) -> None:
        self._rng = rng
        self.room_count = 0

    def sync_count(self, rooms: Iterable[Room]) -> None:
        """Continue numbering after the highest number already in the world."""
        highest = max((room.number for room in rooms), default=0)
        self.room_count = max(self.room_count, highest)

    def _room_id(self, taken: set[str]) -> str:
        while True:
            room_id = f"room_{self._rng.getrandbits(32):08x}"
            if room_id not in taken:
                taken.add(room_id)
                return room_id

    def generate_room(
        self, observation: Observation, now: float, taken: set[str] | None = None
    ) -> Room:
        kind = archetype_for(observation.topic)
        self.room_count += 1
        return Room(
            id=self._room_id(taken if taken is not None else set()),
            name=kind.names[self._rng.randrange(len(kind.names))],
            number=self.room_count,
            topic=observation.topic,
            sentiment=observation.sentiment,
            virality=observation.virality,
            entropy=room_entropy(observation.virality, now),
            archetype=kind.archetype(),
            dimensions=room_dimensions(observation.virality, observation.sentiment),
            fragments=extract_fragments(observation.text),
            source={
                "observation_id": observation.id,
                "timestamp": observation.timestamp,
                "metrics": dict(observation.metrics),
            },
        )

    def generate_rooms(
        self,
        observations: list[Observation],
        now: float,
        existing_ids: Iterable[str] = (),
    ) -> list[Room]:
        taken = set(existing_ids)
        clusters: dict[str, list[Observation]] = {}
        for observation in observations:
            clusters.setdefault(observation.topic, []).append(observation)

        rooms: list[Room] = []
        for group in clusters.values():
            if len(group) <= 2:
                rooms.extend(self.generate_room(row, now, taken) for row in group)
                continue

            ranked = sorted(group, key=lambda row: row.virality, reverse=True)
            seed_count = math.ceil(len(group) / 3)
            nearby = ranked[seed_count : seed_count + 3]
            for seed in ranked[:seed_count]:
                room = self.generate_room(seed, now, taken)
                for row in nearby:
                    room.fragments.sentences.extend(extract_fragments(row.text).sentences[:1])
                rooms.append(room)
        return rooms
