from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .constants import (
    BASE_HALF_LIFE_SECONDS,
    FALLBACK_TOPIC,
    MEMORY_HISTORY_LIMIT,
    WORLD_STATE_RECORD,
    WORLD_STATE_SCHEMA_VERSION,
)
from .metrics import _clamp01, _optional_int, _safe_float, _safe_int, _safe_str

ENTITY_KINDS: tuple[str, ...] = ("named_mention", "concept")


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, (list, tuple)) else []


def _str_list(value: Any) -> list[str]:
    rows: list[str] = []
    for item in _as_list(value):
        token = _safe_str(item)
        if token:
            rows.append(token)
    return rows


def corridor_key(left_id: str, right_id: str) -> str:
    """Order-independent key so (a, b) and (b, a) name the same corridor."""
    if left_id < right_id:
        return f"{left_id}|{right_id}"
    return f"{right_id}|{left_id}"


@dataclass
class Entropy:
    score: float = 0.0
    half_life: float = BASE_HALF_LIFE_SECONDS
    created_at: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "half_life": self.half_life,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Entropy":
        data = _as_dict(payload)
        return cls(
            score=_clamp01(_safe_float(data.get("score", 0.0), 0.0)),
            half_life=max(
                1e-6,
                _safe_float(data.get("half_life", BASE_HALF_LIFE_SECONDS), BASE_HALF_LIFE_SECONDS),
            ),
            created_at=_safe_float(data.get("created_at", 0.0), 0.0),
        )


@dataclass
class Archetype:
    wall_texture: str = "yellow_wallpaper"
    light_color: str = "#ffcc44"
    ambience: str = "fluorescent_buzz"

    def to_dict(self) -> dict[str, Any]:
        return {
            "wall_texture": self.wall_texture,
            "light_color": self.light_color,
            "ambience": self.ambience,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Archetype":
        data = _as_dict(payload)
        default = cls()
        return cls(
            wall_texture=_safe_str(data.get("wall_texture")) or default.wall_texture,
            light_color=_safe_str(data.get("light_color")) or default.light_color,
            ambience=_safe_str(data.get("ambience")) or default.ambience,
        )


@dataclass
class Dimensions:
    width: float = 3.0
    height: float = 3.0
    depth: float = 3.0

    def to_dict(self) -> dict[str, Any]:
        return {"width": self.width, "height": self.height, "depth": self.depth}

    @classmethod
    def from_dict(cls, payload: Any) -> "Dimensions":
        data = _as_dict(payload)
        return cls(
            width=_safe_float(data.get("width", 3.0), 3.0),
            height=_safe_float(data.get("height", 3.0), 3.0),
            depth=_safe_float(data.get("depth", 3.0), 3.0),
        )


@dataclass
class Fragments:
    sentences: list[str] = field(default_factory=list)
    words: list[str] = field(default_factory=list)
    raw: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "sentences": list(self.sentences),
            "words": list(self.words),
            "raw": self.raw,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Fragments":
        data = _as_dict(payload)
        return cls(
            sentences=_str_list(data.get("sentences")),
            words=_str_list(data.get("words")),
            raw=str(data.get("raw", "") or ""),
        )


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, payload: Any) -> "Position":
        data = _as_dict(payload)
        return cls(
            x=_safe_float(data.get("x", 0.0), 0.0),
            y=_safe_float(data.get("y", 0.0), 0.0),
        )


@dataclass(frozen=True)
class Trace:
    source_room: str
    source_name: str
    topic: str
    echo: str
    absorbed_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_room": self.source_room,
            "source_name": self.source_name,
            "topic": self.topic,
            "echo": self.echo,
            "absorbed_at": self.absorbed_at,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Trace":
        data = _as_dict(payload)
        return cls(
            source_room=_safe_str(data.get("source_room")),
            source_name=_safe_str(data.get("source_name")),
            topic=_safe_str(data.get("topic")) or FALLBACK_TOPIC,
            echo=str(data.get("echo", "...") or "..."),
            absorbed_at=_safe_float(data.get("absorbed_at", 0.0), 0.0),
        )


@dataclass
class Room:
    id: str
    name: str
    topic: str
    sentiment: float = 0.0
    virality: float = 0.0
    number: int = 0
    entropy: Entropy = field(default_factory=Entropy)
    archetype: Archetype = field(default_factory=Archetype)
    dimensions: Dimensions = field(default_factory=Dimensions)
    fragments: Fragments = field(default_factory=Fragments)
    source: dict[str, Any] = field(default_factory=dict)
    commentary: str = ""
    connections: list[str] = field(default_factory=list)
    position: Position = field(default_factory=Position)
    traces: list[Trace] = field(default_factory=list)
    last_refreshed_cycle: int | None = None
    added_cycle: int | None = None
    effects_cycle: int | None = None

    def clock_cycle(self) -> int:
        if self.last_refreshed_cycle is not None:
            return self.last_refreshed_cycle
        if self.added_cycle is not None:
            return self.added_cycle
        return 0

    def absorb_trace(self, trace: Trace, capacity: int) -> None:
        self.traces.append(trace)
        if len(self.traces) > capacity:
            self.traces = self.traces[-capacity:]

    def excerpt(self) -> str:
        if self.fragments.sentences:
            return self.fragments.sentences[0]
        return "..."

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "number": self.number,
            "topic": self.topic,
            "sentiment": self.sentiment,
            "virality": self.virality,
            "entropy": self.entropy.to_dict(),
            "archetype": self.archetype.to_dict(),
            "dimensions": self.dimensions.to_dict(),
            "fragments": self.fragments.to_dict(),
            "source": dict(self.source),
            "commentary": self.commentary,
            "connections": list(self.connections),
            "position": self.position.to_dict(),
            "traces": [trace.to_dict() for trace in self.traces],
            "last_refreshed_cycle": self.last_refreshed_cycle,
            "added_cycle": self.added_cycle,
            "effects_cycle": self.effects_cycle,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Room":
        data = _as_dict(payload)
        return cls(
            id=_safe_str(data.get("id")),
            name=_safe_str(data.get("name")) or "Unnamed Room",
            topic=_safe_str(data.get("topic")) or FALLBACK_TOPIC,
            sentiment=_safe_float(data.get("sentiment", 0.0), 0.0),
            virality=max(0.0, _safe_float(data.get("virality", 0.0), 0.0)),
            number=_safe_int(data.get("number", 0), 0),
            entropy=Entropy.from_dict(data.get("entropy")),
            archetype=Archetype.from_dict(data.get("archetype")),
            dimensions=Dimensions.from_dict(data.get("dimensions")),
            fragments=Fragments.from_dict(data.get("fragments")),
            source=dict(_as_dict(data.get("source"))),
            commentary=str(data.get("commentary", "") or ""),
            connections=_str_list(data.get("connections")),
            position=Position.from_dict(data.get("position")),
            traces=[
                Trace.from_dict(row)
                for row in _as_list(data.get("traces"))
                if isinstance(row, dict)
            ],
            last_refreshed_cycle=_optional_int(data.get("last_refreshed_cycle")),
            added_cycle=_optional_int(data.get("added_cycle")),
            effects_cycle=_optional_int(data.get("effects_cycle")),
        )


@dataclass
class Corridor:
    source: str
    target: str
    similarity: float
    width: float = 1.0
    length: float = 10.0
    decay: float = 0.0

    @classmethod
    def between(cls, source: str, target: str, similarity: float) -> "Corridor":
        return cls(
            source=source,
            target=target,
            similarity=similarity,
            width=1.0 + similarity * 3.0,
            length=max(2.0, (1.0 - similarity) * 10.0),
        )

    @property
    def key(self) -> str:
        return corridor_key(self.source, self.target)

    @property
    def id(self) -> str:
        return "corridor_" + self.key.replace("|", "_")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "similarity": self.similarity,
            "width": self.width,
            "length": self.length,
            "decay": self.decay,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Corridor":
        data = _as_dict(payload)
        similarity = _clamp01(_safe_float(data.get("similarity", 0.0), 0.0))
        corridor = cls.between(
            _safe_str(data.get("source")), _safe_str(data.get("target")), similarity
        )
        corridor.decay = _safe_float(data.get("decay", 0.0), 0.0)
        return corridor


@dataclass(frozen=True)
class Artifact:
    source_room: str
    source_name: str
    source_topic: str
    fragments: tuple[str, ...]
    excerpt: str
    sentiment: float
    created_at: float
    cycle: int
    reason: str = "collapsed"
    commentary: str | None = None
    absorbed_by: tuple[str, ...] = ()

    @property
    def orphaned(self) -> bool:
        return self.reason == "pruned" and not self.absorbed_by

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_room": self.source_room,
            "source_name": self.source_name,
            "source_topic": self.source_topic,
            "fragments": list(self.fragments),
            "excerpt": self.excerpt,
            "sentiment": self.sentiment,
            "commentary": self.commentary,
            "created_at": self.created_at,
            "cycle": self.cycle,
            "reason": self.reason,
            "absorbed_by": list(self.absorbed_by),
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Artifact":
        data = _as_dict(payload)
        commentary = data.get("commentary")
        return cls(
            source_room=_safe_str(data.get("source_room")),
            source_name=_safe_str(data.get("source_name")),
            source_topic=_safe_str(data.get("source_topic")) or FALLBACK_TOPIC,
            fragments=tuple(_str_list(data.get("fragments"))),
            excerpt=str(data.get("excerpt", "") or ""),
            sentiment=_safe_float(data.get("sentiment", 0.0), 0.0),
            created_at=_safe_float(data.get("created_at", 0.0), 0.0),
            cycle=_safe_int(data.get("cycle", 0), 0),
            reason=_safe_str(data.get("reason")) or "collapsed",
            commentary=str(commentary) if commentary else None,
            absorbed_by=tuple(_str_list(data.get("absorbed_by"))),
        )


@dataclass(frozen=True)
class Movement:
    from_room: str
    to_room: str
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_room": self.from_room,
            "to_room": self.to_room,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Movement":
        data = _as_dict(payload)
        return cls(
            from_room=_safe_str(data.get("from_room")),
            to_room=_safe_str(data.get("to_room")),
            timestamp=_safe_float(data.get("timestamp", 0.0), 0.0),
        )


@dataclass
class Entity:
    id: str
    name: str
    kind: str = "concept"
    topics: list[str] = field(default_factory=list)
    strength: float = 0.3
    appearances: int = 1
    first_seen: float = 0.0
    last_seen: float = 0.0
    current_room: str | None = None
    recent_contexts: list[str] = field(default_factory=list)
    history: list[Movement] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "topics": list(self.topics),
            "strength": self.strength,
            "appearances": self.appearances,
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
            "current_room": self.current_room,
            "recent_contexts": list(self.recent_contexts),
            "history": [row.to_dict() for row in self.history],
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "Entity":
        data = _as_dict(payload)
        kind = _safe_str(data.get("kind"))
        current_room = _safe_str(data.get("current_room"))
        return cls(
            id=_safe_str(data.get("id")),
            name=_safe_str(data.get("name")),
            kind=kind if kind in ENTITY_KINDS else "concept",
            topics=_str_list(data.get("topics")),
            strength=_clamp01(_safe_float(data.get("strength", 0.0), 0.0)),
            appearances=max(0, _safe_int(data.get("appearances", 1), 1)),
            first_seen=_safe_float(data.get("first_seen", 0.0), 0.0),
            last_seen=_safe_float(data.get("last_seen", 0.0), 0.0),
            current_room=current_room or None,
            recent_contexts=_str_list(data.get("recent_contexts")),
            history=[
                Movement.from_dict(row)
                for row in _as_list(data.get("history"))
                if isinstance(row, dict)
            ],
        )


@dataclass(frozen=True)
class WorldEvent:
    timestamp: float
    kind: str
    description: str
    involved_rooms: tuple[str, ...] = ()
    involved_entities: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "kind": self.kind,
            "description": self.description,
            "involved_rooms": list(self.involved_rooms),
            "involved_entities": list(self.involved_entities),
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "WorldEvent":
        data = _as_dict(payload)
        return cls(
            timestamp=_safe_float(data.get("timestamp", 0.0), 0.0),
            kind=_safe_str(data.get("kind")) or "unknown",
            description=str(data.get("description", "") or ""),
            involved_rooms=tuple(_str_list(data.get("involved_rooms"))),
            involved_entities=tuple(_str_list(data.get("involved_entities"))),
        )


@dataclass(frozen=True)
class TopicStat:
    count: int
    avg_sentiment: float

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "avg_sentiment": self.avg_sentiment}


@dataclass(frozen=True)
class MemorySnapshot:
    cycle: int
    timestamp: float
    topics: dict[str, TopicStat]

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle": self.cycle,
            "timestamp": self.timestamp,
            "topics": {topic: stat.to_dict() for topic, stat in self.topics.items()},
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "MemorySnapshot":
        data = _as_dict(payload)
        topics: dict[str, TopicStat] = {}
        for topic, row in _as_dict(data.get("topics")).items():
            stat = _as_dict(row)
            topics[str(topic)] = TopicStat(
                count=max(0, _safe_int(stat.get("count", 0), 0)),
                avg_sentiment=_safe_float(stat.get("avg_sentiment", 0.0), 0.0),
            )
        return cls(
            cycle=_safe_int(data.get("cycle", 0), 0),
            timestamp=_safe_float(data.get("timestamp", 0.0), 0.0),
            topics=topics,
        )


@dataclass(frozen=True)
class RoomCountSnapshot:
    cycle: int
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"cycle": self.cycle, "count": self.count}

    @classmethod
    def from_dict(cls, payload: Any) -> "RoomCountSnapshot":
        data = _as_dict(payload)
        return cls(
            cycle=_safe_int(data.get("cycle", 0), 0),
            count=max(0, _safe_int(data.get("count", 0), 0)),
        )


@dataclass
class MemoryState:
    topic_history: list[MemorySnapshot] = field(default_factory=list)
    total_room_history: list[RoomCountSnapshot] = field(default_factory=list)
    max_history_length: int = MEMORY_HISTORY_LIMIT

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_history": [row.to_dict() for row in self.topic_history],
            "total_room_history": [row.to_dict() for row in self.total_room_history],
            "max_history_length": self.max_history_length,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "MemoryState":
        data = _as_dict(payload)
        return cls(
            topic_history=[
                MemorySnapshot.from_dict(row)
                for row in _as_list(data.get("topic_history"))
                if isinstance(row, dict)
            ],
            total_room_history=[
                RoomCountSnapshot.from_dict(row)
                for row in _as_list(data.get("total_room_history"))
                if isinstance(row, dict)
            ],
            max_history_length=max(
                1,
                _safe_int(
                    data.get("max_history_length", MEMORY_HISTORY_LIMIT),
                    MEMORY_HISTORY_LIMIT,
                ),
            ),
        )


@dataclass
class WorldState:
    """The single aggregate every engine reads and mutates during a cycle.

    Rooms, corridors and entities live in insertion-ordered dicts keyed by
    stable string handles; cross references between records are always ids.
    """

    created_at: float = 0.0
    last_update: float | None = None
    cycle: int = 0
    version: int = WORLD_STATE_SCHEMA_VERSION
    rooms: dict[str, Room] = field(default_factory=dict)
    corridors: dict[str, Corridor] = field(default_factory=dict)
    artifacts: list[Artifact] = field(default_factory=list)
    entities: dict[str, Entity] = field(default_factory=dict)
    events: list[WorldEvent] = field(default_factory=list)
    memory: MemoryState = field(default_factory=MemoryState)
    stats: dict[str, Any] = field(default_factory=dict)

    def room_list(self) -> list[Room]:
        return list(self.rooms.values())

    def set_rooms(self, rooms: list[Room]) -> None:
        self.rooms = {room.id: room for room in rooms}

    def set_corridors(self, corridors: list[Corridor]) -> None:
        self.corridors = {corridor.key: corridor for corridor in corridors}

    def topics(self) -> set[str]:
        return {room.topic for room in self.rooms.values()}

    def adjacency(self) -> dict[str, set[str]]:
        neighbors: dict[str, set[str]] = {room_id: set() for room_id in self.rooms}
        for corridor in self.corridors.values():
            if corridor.source in neighbors:
                neighbors[corridor.source].add(corridor.target)
            if corridor.target in neighbors:
                neighbors[corridor.target].add(corridor.source)
        return neighbors

    def to_dict(self) -> dict[str, Any]:
        return {
            "record": WORLD_STATE_RECORD,
            "schema_version": WORLD_STATE_SCHEMA_VERSION,
            "version": self.version,
            "created_at": self.created_at,
            "last_update": self.last_update,
            "cycle": self.cycle,
            "rooms": [room.to_dict() for room in self.rooms.values()],
            "corridors": [corridor.to_dict() for corridor in self.corridors.values()],
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "entities": [entity.to_dict() for entity in self.entities.values()],
            "events": [event.to_dict() for event in self.events],
            "memory": self.memory.to_dict(),
            "stats": dict(self.stats),
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "WorldState":
        """Build from a payload already upgraded to the current schema."""
        data = _as_dict(payload)
        last_update = data.get("last_update")

        rooms: dict[str, Room] = {}
        for row in _as_list(data.get("rooms")):
            if not isinstance(row, dict):
                continue
            room = Room.from_dict(row)
            if room.id and room.id not in rooms:
                rooms[room.id] = room

        corridors: dict[str, Corridor] = {}
        for row in _as_list(data.get("corridors")):
            if not isinstance(row, dict):
                continue
            corridor = Corridor.from_dict(row)
            if (
                corridor.source == corridor.target
                or corridor.source not in rooms
                or corridor.target not in rooms
            ):
                continue
            corridors.setdefault(corridor.key, corridor)

        entities: dict[str, Entity] = {}
        for row in _as_list(data.get("entities")):
            if not isinstance(row, dict):
                continue
            entity = Entity.from_dict(row)
            if not entity.id:
                continue
            if entity.current_room is not None and entity.current_room not in rooms:
                entity.current_room = None
            entities[entity.id] = entity

        state = cls(
            created_at=_safe_float(data.get("created_at", 0.0), 0.0),
            last_update=(
                None if last_update is None else _safe_float(last_update, 0.0)
            ),
            cycle=max(0, _safe_int(data.get("cycle", 0), 0)),
            version=_safe_int(
                data.get("version", WORLD_STATE_SCHEMA_VERSION),
                WORLD_STATE_SCHEMA_VERSION,
            ),
            rooms=rooms,
            corridors=corridors,
            artifacts=[
                Artifact.from_dict(row)
                for row in _as_list(data.get("artifacts"))
                if isinstance(row, dict)
            ],
            entities=entities,
            events=[
                WorldEvent.from_dict(row)
                for row in _as_list(data.get("events"))
                if isinstance(row, dict)
            ],
            memory=MemoryState.from_dict(data.get("memory")),
            stats=dict(_as_dict(data.get("stats"))),
        )
        state.resync_connections()
        return state

    def resync_connections(self) -> None:
        """Rebuild each room's connection list from the corridor arena."""
        for room in self.rooms.values():
            room.connections = []
        for key, corridor in list(self.corridors.items()):
            source = self.rooms.get(corridor.source)
            target = self.rooms.get(corridor.target)
            if source is None or target is None:
                self.corridors.pop(key, None)
                continue
            source.connections.append(target.id)
            target.connections.append(source.id)
