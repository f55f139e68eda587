from __future__ import annotations

import math
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable

from .constants import WORLD_SUMMARY_RECORD

if TYPE_CHECKING:
    from .models import Room, WorldState


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return float(default)
    if not math.isfinite(number):
        return float(default)
    return number


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return int(default)


def _safe_str(value: Any) -> str:
    return str(value or "").strip()


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _clamp01(value: float) -> float:
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


def _now_seconds() -> float:
    return time.time()


def _iso_from_seconds(seconds: float) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


def _mean(values: Iterable[float]) -> float:
    total = 0.0
    count = 0
    for value in values:
        total += value
        count += 1
    if count <= 0:
        return 0.0
    return total / count


def _unique_in_order(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    rows: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        rows.append(value)
    return rows


def topology_stats(rooms: list[Room], corridor_count: int) -> dict[str, Any]:
    return {
        "total_rooms": len(rooms),
        "total_corridors": int(corridor_count),
        "topics": _unique_in_order(room.topic for room in rooms),
        "avg_sentiment": _mean(room.sentiment for room in rooms),
        "avg_virality": _mean(room.virality for room in rooms),
    }


def world_summary(state: WorldState) -> dict[str, Any]:
    rooms = list(state.rooms.values())
    stats = state.stats if isinstance(state.stats, dict) else {}

    oldest_room = None
    most_decayed = None
    if rooms:
        oldest_room = min(rooms, key=lambda room: room.entropy.created_at).name
        most_decayed = max(rooms, key=lambda room: room.entropy.score).name

    return {
        "rooms": len(rooms),
        "corridors": len(state.corridors),
        "artifacts": len(state.artifacts),
        "entities": len(state.entities),
        "cycles": state.cycle,
        "topics": list(stats.get("topics", [])),
        "avg_sentiment": round(_safe_float(stats.get("avg_sentiment", 0.0)), 2),
        "events": len(state.events),
        "memory_snapshots": len(state.memory.topic_history),
        "oldest_room": oldest_room,
        "most_decayed": most_decayed,
    }


def compact_summary(
    state: WorldState, *, recent_limit: int = 30, now: float | None = None
) -> dict[str, Any]:
    """Small digest for low-power displays; high decay means score > 0.7."""
    topics: dict[str, int] = {}
    high_decay = 0
    for room in state.rooms.values():
        topics[room.topic] = topics.get(room.topic, 0) + 1
        if room.entropy.score > 0.7:
            high_decay += 1

    recent_rooms = [
        {
            "name": room.name,
            "topic": room.topic,
            "commentary": (room.commentary or "")[:120],
        }
        for room in (list(state.rooms.values())[-recent_limit:] if recent_limit > 0 else [])
    ]
    return {
        "record": WORLD_SUMMARY_RECORD,
        "rooms": len(state.rooms),
        "corridors": len(state.corridors),
        "entities": len(state.entities),
        "cycles": state.cycle,
        "high_decay": high_decay,
        "topics": topics,
        "recent_rooms": recent_rooms,
        "updated_at": _now_seconds() if now is None else _safe_float(now, 0.0),
    }
