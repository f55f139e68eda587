from .commentary import CommentaryGenerator
from .decay import DecayEngine, DecayResult, decay_score
from .entities import EntityTracker
from .events import CycleContext, EventTracker
from .memory import MemoryEngine, TrendReport
from .models import (
    Artifact,
    Corridor,
    Entity,
    MemorySnapshot,
    Room,
    Trace,
    WorldEvent,
    WorldState,
)
from .observer import (
    HttpSearchObserver,
    JsonlFeedObserver,
    Observation,
    StaticObserver,
)
from .prune import PruneEngine, PruneResult
from .rooms import RoomFactory
from .storage import (
    InMemoryWorldStorage,
    JsonFileWorldStorage,
    StateLoadError,
    load_world_state,
)
from .topology import TopologyEngine, similarity
from .world import CycleReport, WorldOrchestrator

__all__ = [
    "Artifact",
    "CommentaryGenerator",
    "Corridor",
    "CycleContext",
    "CycleReport",
    "DecayEngine",
    "DecayResult",
    "Entity",
    "EntityTracker",
    "EventTracker",
    "HttpSearchObserver",
    "InMemoryWorldStorage",
    "JsonFileWorldStorage",
    "JsonlFeedObserver",
    "MemoryEngine",
    "MemorySnapshot",
    "Observation",
    "PruneEngine",
    "PruneResult",
    "Room",
    "RoomFactory",
    "StateLoadError",
    "StaticObserver",
    "TopologyEngine",
    "Trace",
    "TrendReport",
    "WorldEvent",
    "WorldOrchestrator",
    "WorldState",
    "decay_score",
    "load_world_state",
    "similarity",
]
