from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from .commentary import CommentaryGenerator
from .constants import ARTIFACT_HISTORY_LIMIT, DEFAULT_SEED, WORLD_STATE_SCHEMA_VERSION
from .decay import DecayEngine
from .entities import EntityTracker
from .events import CycleContext, EventTracker
from .memory import MemoryEngine, TrendReport
from .metrics import _now_seconds, compact_summary, world_summary
from .models import Artifact, Entity, Movement, Room, WorldEvent, WorldState
from .observer import Observer, gather_observations
from .prune import PruneEngine
from .rooms import RoomFactory
from .storage import fresh_world_state, load_world_state
from .topology import TopologyEngine

_LOGGER = logging.getLogger(__name__)


@dataclass
class CycleReport:
    state: WorldState
    observations: int = 0
    new_rooms: list[Room] = field(default_factory=list)
    new_entities: list[Entity] = field(default_factory=list)
    pruned: list[Room] = field(default_factory=list)
    collapsed: list[Room] = field(default_factory=list)
    artifacts: list[Artifact] = field(default_factory=list)
    events: list[WorldEvent] = field(default_factory=list)
    moves: list[Movement] = field(default_factory=list)
    trends: TrendReport = field(default_factory=TrendReport)
    reflection: str = ""
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle": self.state.cycle,
            "skipped": self.skipped,
            "observations": self.observations,
            "new_rooms": [room.id for room in self.new_rooms],
            "new_entities": [entity.name for entity in self.new_entities],
            "pruned": [room.id for room in self.pruned],
            "collapsed": [room.id for room in self.collapsed],
            "events": [event.to_dict() for event in self.events],
            "moves": len(self.moves),
            "trends": self.trends.to_dict(),
            "reflection": self.reflection,
        }


class WorldOrchestrator:
    """Owns one WorldState and runs the observation cycle over it.

    Every collaborator is injected; ``build`` wires the default set around a
    single shared ``random.Random`` so a seed reproduces a whole run.
    """

    def __init__(
        self,
        *,
        state: WorldState,
        observer: Observer,
        factory: RoomFactory,
        topology: TopologyEngine,
        decay: DecayEngine,
        prune: PruneEngine,
        entities: EntityTracker,
        commentary: CommentaryGenerator,
        memory: MemoryEngine,
        events: EventTracker,
        clock: Callable[[], float] = _now_seconds,
        artifact_limit: int = ARTIFACT_HISTORY_LIMIT,
    ) -> None:
        self.state = state
        self._observer = observer
        self._factory = factory
        self._topology = topology
        self._decay = decay
        self._prune = prune
        self._entities = entities
        self._commentary = commentary
        self._memory = memory
        self._events = events
        self._clock = clock
        self._artifact_limit = max(1, int(artifact_limit))

    @classmethod
    def build(
        cls,
        *,
        observer: Observer,
        state: WorldState | None = None,
        seed: int | None = DEFAULT_SEED,
        clock: Callable[[], float] = _now_seconds,
    ) -> "WorldOrchestrator":
        rng = random.Random(seed)
        return cls(
            state=state if state is not None else fresh_world_state(clock()),
            observer=observer,
            factory=RoomFactory(rng=rng),
            topology=TopologyEngine(rng=rng),
            decay=DecayEngine(rng=rng),
            prune=PruneEngine(rng=rng),
            entities=EntityTracker(rng=rng),
            commentary=CommentaryGenerator(rng=rng),
            memory=MemoryEngine(),
            events=EventTracker(),
            clock=clock,
        )

    @classmethod
    def from_storage(
        cls,
        storage: Any,
        *,
        observer: Observer,
        seed: int | None = DEFAULT_SEED,
        clock: Callable[[], float] = _now_seconds,
    ) -> "WorldOrchestrator":
        state = load_world_state(storage.load_state(), now=clock())
        _LOGGER.info(
            "loaded world: %d rooms, %d corridors, %d entities",
            len(state.rooms),
            len(state.corridors),
            len(state.entities),
        )
        return cls.build(observer=observer, state=state, seed=seed, clock=clock)

    def save(self, storage: Any) -> None:
        storage.save_state(self.state.to_dict())
        _LOGGER.info(
            "saved world: %d rooms, %d corridors",
            len(self.state.rooms),
            len(self.state.corridors),
        )

    def _harvest_decay(self, now: float) -> tuple[list[Room], list[Artifact]]:
        state = self.state
        if not state.rooms:
            return [], []
        result = self._decay.tick(state.room_list(), now)
        self._decay.apply_effects(result.surviving, state.cycle)
        artifacts = [
            self._decay.harvest_fragments(room, now, state.cycle)
            for room in result.collapsed
        ]
        if result.collapsed:
            gone = {room.id for room in result.collapsed}
            state.rooms = {
                room_id: room for room_id, room in state.rooms.items() if room_id not in gone
            }
            state.resync_connections()
            for room in result.collapsed:
                _LOGGER.info("room %r (%s) collapsed into void", room.name, room.id)
        return result.collapsed, artifacts

    def _keep_artifacts(self, artifacts: list[Artifact]) -> None:
        self.state.artifacts.extend(artifacts)
        if len(self.state.artifacts) > self._artifact_limit:
            self.state.artifacts = self.state.artifacts[-self._artifact_limit :]

    def cycle(self, queries: Iterable[str]) -> CycleReport:
        state = self.state
        now = self._clock()

        observations = gather_observations(self._observer, queries)
        _LOGGER.info("observed %d posts", len(observations))
        if not observations:
            _LOGGER.info("no observations to process, world left unchanged")
            return CycleReport(state=state, skipped=True)

        prior_topics = state.topics()
        self._factory.sync_count(state.rooms.values())
        new_rooms = self._factory.generate_rooms(observations, now, existing_ids=state.rooms)
        _LOGGER.debug("generated %d new rooms", len(new_rooms))

        new_entities = self._entities.update(state.entities, observations, now)
        if new_entities:
            _LOGGER.debug("new entities: %s", ", ".join(entity.name for entity in new_entities))

        collapsed, harvested = self._harvest_decay(now)

        self._prune.refresh_rooms(state.room_list(), new_rooms, state.cycle)
        pruned = self._prune.prune(state, now=now)
        if pruned.pruned:
            state.rooms = {room.id: room for room in pruned.kept}
            state.resync_connections()
            _LOGGER.info("pruned %d stale rooms", len(pruned.pruned))
        surviving_topics = state.topics()

        self._commentary.annotate_rooms(new_rooms)
        for room in new_rooms:
            state.rooms[room.id] = room

        moves = self._entities.wander(state.entities, state.room_list(), now)

        topology = self._topology.build_topology(state.room_list())
        state.set_corridors(topology.corridors)
        state.stats = topology.stats
        _LOGGER.debug(
            "topology rebuilt: %d rooms, %d corridors",
            len(state.rooms),
            len(state.corridors),
        )

        events = self._events.detect(
            state,
            CycleContext(
                new_rooms=new_rooms,
                pruned_rooms=pruned.pruned,
                prune_events=pruned.events,
                collapsed_rooms=collapsed,
                prior_topics=prior_topics,
                surviving_topics=surviving_topics,
            ),
            now,
        )
        self._events.record(state, events)
        artifacts = [*harvested, *pruned.artifacts]
        self._keep_artifacts(artifacts)

        state.cycle += 1
        self._memory.update(state, now)
        trends = self._memory.analyze_trends(state)
        if trends.insights:
            _LOGGER.info("trends: %s", "; ".join(trends.insights))
        reflection = self._commentary.cross_room_commentary(state, trends)

        state.last_update = now
        state.version = WORLD_STATE_SCHEMA_VERSION
        _LOGGER.info(
            "cycle %d done: %d rooms, %d corridors, %d events",
            state.cycle,
            len(state.rooms),
            len(state.corridors),
            len(events),
        )
        return CycleReport(
            state=state,
            observations=len(observations),
            new_rooms=new_rooms,
            new_entities=new_entities,
            pruned=pruned.pruned,
            collapsed=collapsed,
            artifacts=artifacts,
            events=events,
            moves=moves,
            trends=trends,
            reflection=reflection,
        )

    def summary(self) -> dict[str, Any]:
        return world_summary(self.state)

    def compact_summary(self, *, recent_limit: int = 30) -> dict[str, Any]:
        return compact_summary(self.state, recent_limit=recent_limit, now=self._clock())
