from __future__ import annotations

from dataclasses import dataclass, field

from .constants import ENTITY_DOMINANCE_STRENGTH, EVENT_LOG_LIMIT, MASS_COLLAPSE_COUNT
from .metrics import _unique_in_order
from .models import Room, WorldEvent, WorldState


@dataclass
class CycleContext:
    """What changed during one cycle, as seen by event detection."""

    new_rooms: list[Room] = field(default_factory=list)
    pruned_rooms: list[Room] = field(default_factory=list)
    prune_events: list[WorldEvent] = field(default_factory=list)
    collapsed_rooms: list[Room] = field(default_factory=list)
    prior_topics: set[str] = field(default_factory=set)
    surviving_topics: set[str] = field(default_factory=set)


class EventTracker:
    def __init__(
        self,
        *,
        log_limit: int = EVENT_LOG_LIMIT,
        dominance_strength: float = ENTITY_DOMINANCE_STRENGTH,
        mass_collapse_count: int = MASS_COLLAPSE_COUNT,
    ) -> None:
        self._log_limit = max(1, int(log_limit))
        self._dominance_strength = float(dominance_strength)
        self._mass_collapse_count = max(1, int(mass_collapse_count))

    def detect(
        self, state: WorldState, context: CycleContext, now: float
    ) -> list[WorldEvent]:
        events: list[WorldEvent] = list(context.prune_events)

        for room in context.collapsed_rooms:
            events.append(
                WorldEvent(
                    timestamp=now,
                    kind="room_collapsed",
                    description=(
                        f'"{room.name}" ({room.topic}) dissolved completely; '
                        "its fragments were harvested"
                    ),
                    involved_rooms=(room.id,),
                )
            )

        emerged = _unique_in_order(
            room.topic
            for room in context.new_rooms
            if room.topic not in context.prior_topics
        )
        for topic in emerged:
            events.append(
                WorldEvent(
                    timestamp=now,
                    kind="topic_emerged",
                    description=f'New topic "{topic}" appeared in the Substrate',
                    involved_rooms=tuple(
                        room.id for room in context.new_rooms if room.topic == topic
                    ),
                )
            )

        if context.pruned_rooms:
            for topic in _unique_in_order(room.topic for room in context.pruned_rooms):
                if topic in context.surviving_topics:
                    continue
                events.append(
                    WorldEvent(
                        timestamp=now,
                        kind="topic_death",
                        description=f'Topic "{topic}" has completely faded from the Substrate',
                        involved_rooms=tuple(
                            room.id
                            for room in context.pruned_rooms
                            if room.topic == topic
                        ),
                    )
                )

        for entity in state.entities.values():
            if entity.strength < self._dominance_strength:
                continue
            events.append(
                WorldEvent(
                    timestamp=now,
                    kind="entity_dominant",
                    description=(
                        f'"{entity.name}" ({entity.kind}) has become dominant, '
                        f"strength {entity.strength:.2f}, "
                        f"{entity.appearances} appearances"
                    ),
                    involved_rooms=(entity.current_room,) if entity.current_room else (),
                    involved_entities=(entity.id,),
                )
            )

        pruned_count = len(context.pruned_rooms)
        if pruned_count >= self._mass_collapse_count:
            events.append(
                WorldEvent(
                    timestamp=now,
                    kind="mass_collapse",
                    description=(
                        f"{pruned_count} rooms collapsed in a single cycle; "
                        "the Substrate is contracting"
                    ),
                    involved_rooms=tuple(
                        room.id
                        for room in context.pruned_rooms[: self._mass_collapse_count]
                    ),
                )
            )

        return events

    def record(self, state: WorldState, events: list[WorldEvent]) -> list[WorldEvent]:
        state.events.extend(events)
        if len(state.events) > self._log_limit:
            state.events = state.events[-self._log_limit :]
        return state.events
