from __future__ import annotations

import random
from dataclasses import dataclass, field

from .constants import (
    ORPHAN_CANDIDATES,
    PRUNE_ENTROPY,
    SOFT_DECAY_BOOST,
    SOFT_DECAY_FLOOR,
    STALE_CYCLES,
    TRACE_CAPACITY,
)
from .models import Artifact, Room, Trace, WorldEvent, WorldState


@dataclass
class PruneResult:
    kept: list[Room] = field(default_factory=list)
    pruned: list[Room] = field(default_factory=list)
    artifacts: list[Artifact] = field(default_factory=list)
    events: list[WorldEvent] = field(default_factory=list)
    boosted: list[Room] = field(default_factory=list)


class PruneEngine:
    """Evicts stale, decayed rooms and diffuses their residue to survivors.

    A room is pruned only when its topic has gone ``stale_cycles`` cycles
    without fresh activity *and* its entropy has reached ``prune_entropy``.
    Stale rooms that are only moderately decayed get an accelerated-decay
    boost instead. Every pruned room leaves an artifact; ``absorbed_by`` on
    that artifact lists the rooms that took a trace of it, and an empty
    tuple marks residue nobody could absorb.
    """

    def __init__(
        self,
        *,
        rng: random.Random,
        stale_cycles: int = STALE_CYCLES,
        prune_entropy: float = PRUNE_ENTROPY,
        soft_decay_floor: float = SOFT_DECAY_FLOOR,
        soft_decay_boost: float = SOFT_DECAY_BOOST,
        trace_capacity: int = TRACE_CAPACITY,
        orphan_candidates: int = ORPHAN_CANDIDATES,
    ) -> None:
        self._rng = rng
        self._stale_cycles = max(1, int(stale_cycles))
        self._prune_entropy = float(prune_entropy)
        self._soft_decay_floor = float(soft_decay_floor)
        self._soft_decay_boost = float(soft_decay_boost)
        self._trace_capacity = max(1, int(trace_capacity))
        self._orphan_candidates = max(1, int(orphan_candidates))

    def prune(
        self,
        state: WorldState,
        stale_cycles: int | None = None,
        *,
        now: float,
    ) -> PruneResult:
        stale_limit = self._stale_cycles if stale_cycles is None else max(1, int(stale_cycles))
        current_cycle = state.cycle
        neighbors = state.adjacency()
        result = PruneResult()

        for room in state.rooms.values():
            age = current_cycle - room.clock_cycle()
            stale = age >= stale_limit
            score = room.entropy.score
            if stale and score >= self._prune_entropy:
                result.pruned.append(room)
                continue
            if stale and score >= self._soft_decay_floor:
                room.entropy.score = min(1.0, score + self._soft_decay_boost)
                result.boosted.append(room)
            result.kept.append(room)

        pruned_ids = {room.id for room in result.pruned}
        kept_by_id = {room.id: room for room in result.kept}

        for room in result.pruned:
            living = [
                room_id
                for room_id in sorted(neighbors.get(room.id, set()))
                if room_id not in pruned_ids and room_id in kept_by_id
            ]
            trace = Trace(
                source_room=room.id,
                source_name=room.name,
                topic=room.topic,
                echo=room.excerpt(),
                absorbed_at=now,
            )

            recipients: list[str] = []
            for room_id in living:
                kept_by_id[room_id].absorb_trace(trace, self._trace_capacity)
                recipients.append(room_id)

            if not living:
                same_topic = [other for other in result.kept if other.topic == room.topic]
                if same_topic:
                    pool = same_topic[: self._orphan_candidates]
                    target = pool[self._rng.randrange(len(pool))]
                    target.absorb_trace(trace, self._trace_capacity)
                    recipients.append(target.id)

            result.artifacts.append(
                Artifact(
                    source_room=room.id,
                    source_name=room.name,
                    source_topic=room.topic,
                    fragments=tuple(room.fragments.words[:4]),
                    excerpt=room.excerpt(),
                    sentiment=room.sentiment,
                    created_at=now,
                    cycle=current_cycle,
                    reason="pruned",
                    commentary=room.commentary[:80] if room.commentary else None,
                    absorbed_by=tuple(recipients),
                )
            )

            result.events.append(
                WorldEvent(
                    timestamp=now,
                    kind="room_pruned",
                    description=(
                        f'"{room.name}" ({room.topic}) collapsed after '
                        f"{stale_limit}+ stale cycles. "
                        f"Entropy: {room.entropy.score:.2f}"
                    ),
                    involved_rooms=(room.id, *living[:3]),
                )
            )
            if not recipients:
                result.events.append(
                    WorldEvent(
                        timestamp=now,
                        kind="residue_orphaned",
                        description=(
                            f'Nothing remained to absorb "{room.name}" '
                            f"({room.topic}); its residue survives only as an artifact"
                        ),
                        involved_rooms=(room.id,),
                    )
                )

        return result

    @staticmethod
    def refresh_rooms(
        rooms: list[Room], new_rooms: list[Room], current_cycle: int
    ) -> None:
        fresh_topics = {room.topic for room in new_rooms}
        for room in rooms:
            if room.topic in fresh_topics:
                room.last_refreshed_cycle = current_cycle
        for room in new_rooms:
            room.last_refreshed_cycle = current_cycle
            room.added_cycle = current_cycle
