from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable

from .constants import (
    MEMORY_HISTORY_LIMIT,
    WORLD_STATE_RECORD,
    WORLD_STATE_SCHEMA_VERSION,
)
from .metrics import _now_seconds, _safe_float, _safe_int
from .models import WorldState, _as_dict

_LOGGER = logging.getLogger(__name__)

_LEGACY_ENTITY_KINDS = {"person": "named_mention", "concept": "concept"}


class StateLoadError(ValueError):
    pass


def _ms_to_seconds(value: Any) -> float | None:
    if value is None:
        return None
    return _safe_float(value, 0.0) / 1000.0


def _rows(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [row for row in value if isinstance(row, dict)]


def detect_schema_version(payload: dict[str, Any]) -> int:
    """Versions 1 and 2 are the legacy camelCase layouts; 3 is current."""
    if "schema_version" in payload:
        return _safe_int(payload.get("schema_version"), 0)
    if payload.get("record") == WORLD_STATE_RECORD:
        return WORLD_STATE_SCHEMA_VERSION
    legacy = _safe_int(payload.get("version", 1), 1)
    return legacy if legacy in (1, 2) else 0


def _upgrade_v1_to_v2(payload: dict[str, Any]) -> dict[str, Any]:
    payload.setdefault("artifacts", [])
    payload.setdefault("entities", [])
    payload.setdefault("events", [])
    payload.setdefault(
        "memory",
        {
            "topicHistory": [],
            "totalRoomHistory": [],
            "maxHistoryLength": MEMORY_HISTORY_LIMIT,
        },
    )
    payload["version"] = 2
    return payload


def _upgrade_room(row: dict[str, Any]) -> dict[str, Any]:
    entropy = _as_dict(row.get("entropy"))
    archetype = _as_dict(row.get("archetype"))
    source = _as_dict(row.get("source"))
    return {
        "id": row.get("id"),
        "name": row.get("name"),
        "number": row.get("number", 0),
        "topic": row.get("topic"),
        "sentiment": row.get("sentiment", 0.0),
        "virality": row.get("virality", 0.0),
        "entropy": {
            "score": entropy.get("score", 0.0),
            "half_life": entropy.get("halfLife"),
            "created_at": _ms_to_seconds(entropy.get("createdAt")),
        },
        "archetype": {
            "wall_texture": archetype.get("wallTexture"),
            "light_color": archetype.get("lightColor"),
            "ambience": archetype.get("ambience"),
        },
        "dimensions": row.get("dimensions"),
        "fragments": row.get("fragments"),
        "source": {
            "observation_id": source.get("tweetId"),
            "timestamp": source.get("timestamp"),
            "metrics": _as_dict(source.get("metrics")),
        },
        "commentary": row.get("commentary", ""),
        "position": row.get("position"),
        "traces": [
            {
                "source_room": "",
                "source_name": trace.get("from"),
                "topic": trace.get("topic"),
                "echo": trace.get("echo"),
                "absorbed_at": _ms_to_seconds(trace.get("absorbedAt")),
            }
            for trace in _rows(row.get("traces"))
        ],
        "last_refreshed_cycle": row.get("lastRefreshedCycle"),
        "added_cycle": row.get("_addedCycle"),
    }


def _upgrade_artifact(row: dict[str, Any]) -> dict[str, Any]:
    fragments = row.get("fragments") if isinstance(row.get("fragments"), list) else []
    pruned = "cycle" in row
    return {
        "source_room": row.get("sourceRoom"),
        "source_name": row.get("sourceName"),
        "source_topic": row.get("sourceTopic"),
        "fragments": fragments,
        "excerpt": " ".join(str(word) for word in fragments),
        "sentiment": row.get("sentiment", 0.0),
        "commentary": row.get("commentary"),
        "created_at": _ms_to_seconds(row.get("collapsedAt")),
        "cycle": row.get("cycle", 0),
        "reason": "pruned" if pruned else "collapsed",
    }


def _upgrade_entity(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row.get("id"),
        "name": row.get("name"),
        "kind": _LEGACY_ENTITY_KINDS.get(str(row.get("type", "")), "concept"),
        "topics": row.get("topics") or [],
        "strength": row.get("strength", 0.0),
        "appearances": row.get("appearances", 1),
        "first_seen": _ms_to_seconds(row.get("firstSeen")),
        "last_seen": _ms_to_seconds(row.get("lastSeen")),
        "current_room": row.get("currentRoom"),
        "recent_contexts": row.get("recentContexts") or [],
        "history": [
            {
                "from_room": move.get("from"),
                "to_room": move.get("to"),
                "timestamp": _ms_to_seconds(move.get("timestamp")),
            }
            for move in _rows(row.get("history"))
        ],
    }


def _upgrade_event(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "timestamp": _ms_to_seconds(row.get("timestamp")),
        "kind": row.get("type"),
        "description": row.get("description", ""),
        "involved_rooms": row.get("involvedRooms") or [],
        "involved_entities": row.get("involvedEntities") or [],
    }


def _upgrade_memory(row: Any) -> dict[str, Any]:
    memory = _as_dict(row)
    return {
        "topic_history": [
            {
                "cycle": snapshot.get("cycle", 0),
                "timestamp": _ms_to_seconds(snapshot.get("timestamp")),
                "topics": {
                    str(topic): {
                        "count": stat.get("count", 0),
                        "avg_sentiment": stat.get("avgSentiment", 0.0),
                    }
                    for topic, stat in _as_dict(snapshot.get("topics")).items()
                    if isinstance(stat, dict)
                },
            }
            for snapshot in _rows(memory.get("topicHistory"))
        ],
        "total_room_history": _rows(memory.get("totalRoomHistory")),
        "max_history_length": memory.get("maxHistoryLength", MEMORY_HISTORY_LIMIT),
    }


def _upgrade_v2_to_v3(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "record": WORLD_STATE_RECORD,
        "schema_version": 3,
        "version": WORLD_STATE_SCHEMA_VERSION,
        "created_at": _ms_to_seconds(payload.get("createdAt")) or 0.0,
        "last_update": _ms_to_seconds(payload.get("lastUpdate")),
        "cycle": payload.get("observationCycles", 0),
        "rooms": [_upgrade_room(row) for row in _rows(payload.get("rooms"))],
        "corridors": [
            {
                "source": row.get("from"),
                "target": row.get("to"),
                "similarity": row.get("similarity", 0.0),
                "decay": row.get("decay", 0.0),
            }
            for row in _rows(payload.get("corridors"))
        ],
        "artifacts": [_upgrade_artifact(row) for row in _rows(payload.get("artifacts"))],
        "entities": [_upgrade_entity(row) for row in _rows(payload.get("entities"))],
        "events": [_upgrade_event(row) for row in _rows(payload.get("events"))],
        "memory": _upgrade_memory(payload.get("memory")),
        "stats": {},
    }


_UPGRADES: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    1: _upgrade_v1_to_v2,
    2: _upgrade_v2_to_v3,
}


def upgrade_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Walk a stored payload forward one schema version at a time."""
    version = detect_schema_version(payload)
    if version < 1 or version > WORLD_STATE_SCHEMA_VERSION:
        raise StateLoadError(f"unsupported world state schema: {version}")
    upgraded = copy.deepcopy(payload)
    while version < WORLD_STATE_SCHEMA_VERSION:
        upgraded = _UPGRADES[version](upgraded)
        version += 1
        _LOGGER.debug("upgraded world state payload to schema %d", version)
    return upgraded


def fresh_world_state(now: float | None = None) -> WorldState:
    return WorldState(created_at=_now_seconds() if now is None else float(now))


def load_world_state(
    payload: Any, *, strict: bool = False, now: float | None = None
) -> WorldState:
    """Build a WorldState from a stored payload; bad input starts a fresh world."""
    if not isinstance(payload, dict) or not payload:
        if strict:
            raise StateLoadError("world state payload must be a non-empty object")
        return fresh_world_state(now)
    try:
        return WorldState.from_dict(upgrade_payload(payload))
    except StateLoadError:
        if strict:
            raise
        _LOGGER.warning("unsupported world state payload, starting fresh")
    except (AttributeError, TypeError, ValueError, KeyError) as exc:
        if strict:
            raise StateLoadError(f"malformed world state payload: {exc}") from exc
        _LOGGER.warning("malformed world state payload, starting fresh: %s", exc)
    return fresh_world_state(now)


class InMemoryWorldStorage:
    backend_name = "memory"

    def __init__(self) -> None:
        self._payload: dict[str, Any] = {}
        self._lock = threading.Lock()

    def load_state(self) -> dict[str, Any]:
        with self._lock:
            return json.loads(json.dumps(self._payload, ensure_ascii=False))

    def save_state(self, state: dict[str, Any]) -> None:
        with self._lock:
            self._payload = json.loads(json.dumps(state, ensure_ascii=False))

    def reset(self) -> None:
        with self._lock:
            self._payload = {}


class JsonFileWorldStorage:
    backend_name = "json"

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load_state(self) -> dict[str, Any]:
        with self._lock:
            if not self._path.exists() or not self._path.is_file():
                _LOGGER.info("no world state at %s, starting fresh", self._path)
                return {}
            try:
                payload = json.loads(self._path.read_text("utf-8"))
            except (OSError, ValueError) as exc:
                _LOGGER.warning("unreadable world state at %s: %s", self._path, exc)
                return {}
            if isinstance(payload, dict):
                return payload
            _LOGGER.warning("world state at %s is not an object, ignoring", self._path)
            return {}

    def save_state(self, state: dict[str, Any]) -> None:
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            tmp_path.write_text(
                json.dumps(state, ensure_ascii=False, separators=(",", ":")),
                "utf-8",
            )
            tmp_path.replace(self._path)

    def reset(self) -> None:
        with self._lock:
            if self._path.exists():
                self._path.unlink()


def write_json(path: Path, payload: dict[str, Any]) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_suffix(".tmp")
    tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), "utf-8")
    tmp_path.replace(target)
