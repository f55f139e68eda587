from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from .constants import (
    ENTITY_CONTEXT_CAPACITY,
    ENTITY_HISTORY_CAPACITY,
    ENTITY_MIN_APPEARANCES,
    ENTITY_REMOVAL_TIMEOUT_SECONDS,
    ENTITY_STOPWORDS,
    ENTITY_STRENGTH_DECAY,
    ENTITY_STRENGTH_GAIN,
    ENTITY_WANDER_CHOICES,
)
from .metrics import _clamp01
from .models import Entity, Movement, Room
from .observer import Observation

_NAME_MENTION = re.compile(r"@(\w+)")
_TAG_MENTION = re.compile(r"#(\w+)")
_WORD_EDGE = re.compile(r"^\W+|\W+$")
_MENTION_CONTEXTS = 5


def entity_id_for(key: str) -> str:
    return "entity_" + re.sub(r"[^a-z0-9]", "_", key.lower())


@dataclass
class Mention:
    key: str
    name: str
    kind: str
    count: int = 0
    contexts: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)

    def observe(self, text: str, topic: str, excerpt_chars: int) -> None:
        self.count += 1
        excerpt = text[:excerpt_chars]
        if len(self.contexts) < _MENTION_CONTEXTS and excerpt not in self.contexts:
            self.contexts.append(excerpt)
        if topic not in self.topics:
            self.topics.append(topic)


class EntityTracker:
    """Grows, decays and moves the inhabitants kept in ``WorldState.entities``.

    The tracker holds no population of its own; every call receives the
    entity arena it should work on.
    """

    def __init__(
        self,
        *,
        rng: random.Random,
        min_appearances: int = ENTITY_MIN_APPEARANCES,
        removal_timeout_seconds: float = ENTITY_REMOVAL_TIMEOUT_SECONDS,
        stopwords: Iterable[str] = ENTITY_STOPWORDS,
    ) -> None:
        self._rng = rng
        self._min_appearances = max(1, int(min_appearances))
        self._removal_timeout = max(0.0, float(removal_timeout_seconds))
        self._stopwords = frozenset(word.lower() for word in stopwords)

    def extract(self, observations: list[Observation]) -> dict[str, Mention]:
        mentions: dict[str, Mention] = {}

        def _mention(key: str, name: str, kind: str) -> Mention:
            row = mentions.get(key)
            if row is None:
                row = Mention(key=key, name=name, kind=kind)
                mentions[key] = row
            return row

        for observation in observations:
            text = observation.text or ""
            topic = observation.topic

            for match in _NAME_MENTION.finditer(text):
                name = "@" + match.group(1)
                _mention(name.lower(), name, "named_mention").observe(text, topic, 100)

            for match in _TAG_MENTION.finditer(text):
                name = "#" + match.group(1)
                _mention(name.lower(), name, "concept").observe(text, topic, 100)

            for raw in text.lower().split():
                if raw.startswith(("@", "#", "http")):
                    continue
                word = _WORD_EDGE.sub("", raw)
                if len(word) < 5 or word in self._stopwords:
                    continue
                _mention("word:" + word, word, "concept").observe(text, topic, 80)

        return mentions

    def update(
        self,
        entities: dict[str, Entity],
        observations: list[Observation],
        now: float,
        min_appearances: int | None = None,
    ) -> list[Entity]:
        threshold = self._min_appearances if min_appearances is None else max(1, int(min_appearances))
        mentions = self.extract(observations)
        mentioned_ids = {entity_id_for(key) for key in mentions}
        created: list[Entity] = []
        refreshed: set[str] = set()

        for key, mention in mentions.items():
            if mention.count < threshold:
                continue
            entity_id = entity_id_for(key)
            entity = entities.get(entity_id)

            if entity is not None:
                entity.appearances += 1
                entity.last_seen = now
                entity.strength = _clamp01(entity.strength + ENTITY_STRENGTH_GAIN)
                for context in mention.contexts[:2]:
                    if context not in entity.recent_contexts:
                        entity.recent_contexts.append(context)
                if len(entity.recent_contexts) > ENTITY_CONTEXT_CAPACITY:
                    entity.recent_contexts = entity.recent_contexts[-ENTITY_CONTEXT_CAPACITY:]
                for topic in mention.topics:
                    if topic not in entity.topics:
                        entity.topics.append(topic)
                refreshed.add(entity_id)
                continue

            entity = Entity(
                id=entity_id,
                name=mention.name,
                kind=mention.kind,
                topics=list(mention.topics),
                strength=_clamp01(0.3 + min(0.5, mention.count * 0.05)),
                appearances=1,
                first_seen=now,
                last_seen=now,
                recent_contexts=list(mention.contexts[:ENTITY_CONTEXT_CAPACITY]),
            )
            entities[entity_id] = entity
            created.append(entity)

        for entity_id, entity in entities.items():
            if entity_id in mentioned_ids:
                continue
            entity.strength = _clamp01(entity.strength - ENTITY_STRENGTH_DECAY)

        expired = [
            entity_id
            for entity_id, entity in entities.items()
            if entity.strength <= 0.0 and now - entity.last_seen > self._removal_timeout
        ]
        for entity_id in expired:
            del entities[entity_id]

        return created

    def wander(
        self, entities: dict[str, Entity], rooms: list[Room], now: float
    ) -> list[Movement]:
        """Move each entity to one of the least-decayed rooms of its topics.

        Only room-to-room changes are recorded as a Movement. First placement
        from no room, and unassignment when no topic room remains, update
        ``current_room`` without a history entry.
        """
        moves: list[Movement] = []
        for entity in entities.values():
            topics = set(entity.topics)
            candidates = [room for room in rooms if room.topic in topics]
            if not candidates:
                entity.current_room = None
                continue

            candidates.sort(key=lambda room: room.entropy.score)
            pool = candidates[: min(ENTITY_WANDER_CHOICES, len(candidates))]
            pick = pool[self._rng.randrange(len(pool))]

            previous = entity.current_room
            entity.current_room = pick.id
            if previous and previous != pick.id:
                move = Movement(from_room=previous, to_room=pick.id, timestamp=now)
                entity.history.append(move)
                if len(entity.history) > ENTITY_HISTORY_CAPACITY:
                    entity.history = entity.history[-ENTITY_HISTORY_CAPACITY:]
                moves.append(move)
        return moves

    @staticmethod
    def entities_in_room(entities: dict[str, Entity], room_id: str) -> list[Entity]:
        return [entity for entity in entities.values() if entity.current_room == room_id]

    @staticmethod
    def summary(entities: dict[str, Entity], limit: int = 5) -> dict[str, Any]:
        rows = list(entities.values())
        strongest = sorted(rows, key=lambda entity: entity.strength, reverse=True)[:limit]
        return {
            "total": len(rows),
            "named_mentions": sum(1 for entity in rows if entity.kind == "named_mention"),
            "concepts": sum(1 for entity in rows if entity.kind == "concept"),
            "strongest": [
                {
                    "name": entity.name,
                    "kind": entity.kind,
                    "strength": round(entity.strength, 2),
                    "appearances": entity.appearances,
                    "topics": list(entity.topics),
                }
                for entity in strongest
            ],
        }
