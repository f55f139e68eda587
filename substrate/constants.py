from __future__ import annotations

import os

# Persistence
WORLD_STATE_RECORD = "substrate.world-state.v3"
WORLD_STATE_SCHEMA_VERSION = 3
WORLD_SUMMARY_RECORD = "substrate.world-summary.v1"
DEFAULT_STATE_PATH = os.getenv("SUBSTRATE_STATE_PATH", "data/world-state.json")

DEFAULT_QUERIES: tuple[str, ...] = (
    "AI consciousness",
    "simulation theory",
    "internet culture",
    "void",
    "liminal spaces",
    "substrate",
)

TOPICS: tuple[str, ...] = (
    "tech",
    "politics",
    "culture",
    "science",
    "finance",
    "existential",
    "liminal",
)
FALLBACK_TOPIC = "liminal"

# Randomness
_SEED_RAW = str(os.getenv("SUBSTRATE_SEED", "") or "").strip()
DEFAULT_SEED: int | None = int(_SEED_RAW) if _SEED_RAW.lstrip("-").isdigit() else None

# Topology
CORRIDOR_THRESHOLD = max(
    0.0,
    min(1.0, float(os.getenv("SUBSTRATE_CORRIDOR_THRESHOLD", "0.4") or "0.4")),
)
INTRA_TOPIC_NEIGHBORS = 5
CROSS_TOPIC_MIN_DEGREE = 3
CROSS_TOPIC_MAX_LINKS = 3
CROSS_TOPIC_SAMPLE = 5
CONNECTIVITY_FALLBACK_POOL = 50
LAYOUT_EXTENT = 100.0
LAYOUT_REPULSION = 500.0
LAYOUT_ATTRACTION = 0.05
LAYOUT_CLUSTERING = 0.01
LAYOUT_CUTOFF = 100.0
LAYOUT_DAMPING = max(
    0.0,
    min(0.99, float(os.getenv("SUBSTRATE_LAYOUT_DAMPING", "0.9") or "0.9")),
)

# Decay
DECAYED_THRESHOLD = 0.7
SCRAMBLE_THRESHOLD = 0.3
DIM_THRESHOLD = 0.5
WARP_THRESHOLD = 0.6
GLITCH_GLYPHS = "█▓▒░╔╗╚╝║═┼├┤┬┴┌┐└┘─│"
BASE_HALF_LIFE_SECONDS = max(
    1.0,
    float(os.getenv("SUBSTRATE_BASE_HALF_LIFE_SECONDS", "3600") or "3600"),
)

# Pruning
STALE_CYCLES = max(1, int(os.getenv("SUBSTRATE_STALE_CYCLES", "5") or "5"))
PRUNE_ENTROPY = 0.6
SOFT_DECAY_FLOOR = 0.4
SOFT_DECAY_BOOST = 0.15
TRACE_CAPACITY = 5
ORPHAN_CANDIDATES = 3
ARTIFACT_HISTORY_LIMIT = max(
    16,
    int(os.getenv("SUBSTRATE_ARTIFACT_HISTORY_LIMIT", "500") or "500"),
)

# Entities
ENTITY_MIN_APPEARANCES = max(
    1,
    int(os.getenv("SUBSTRATE_ENTITY_MIN_APPEARANCES", "3") or "3"),
)
ENTITY_REMOVAL_TIMEOUT_SECONDS = max(
    0.0,
    float(os.getenv("SUBSTRATE_ENTITY_REMOVAL_TIMEOUT_SECONDS", "3600") or "3600"),
)
ENTITY_STRENGTH_GAIN = 0.1
ENTITY_STRENGTH_DECAY = 0.05
ENTITY_CONTEXT_CAPACITY = 10
ENTITY_HISTORY_CAPACITY = 20
ENTITY_WANDER_CHOICES = 3
ENTITY_STOPWORDS = frozenset(
    {
        "https",
        "about",
        "their",
        "there",
        "would",
        "could",
        "should",
        "which",
        "these",
        "those",
        "being",
        "other",
        "after",
        "before",
        "between",
        "through",
        "under",
        "really",
        "think",
        "never",
        "always",
        "still",
        "people",
        "world",
        "things",
        "something",
        "everything",
        "nothing",
        "going",
        "making",
        "getting",
    }
)

# Memory
MEMORY_HISTORY_LIMIT = max(
    4,
    int(os.getenv("SUBSTRATE_MEMORY_HISTORY_LIMIT", "50") or "50"),
)
TREND_WINDOW = 3
TREND_GROWTH_RATIO = 1.3
TREND_FADE_RATIO = 0.7
ROOM_CONTRACTION_RATIO = 0.8
ROOM_EXPANSION_RATIO = 1.3

# Events
EVENT_LOG_LIMIT = max(
    10,
    int(os.getenv("SUBSTRATE_EVENT_LOG_LIMIT", "100") or "100"),
)
ENTITY_DOMINANCE_STRENGTH = 0.8
MASS_COLLAPSE_COUNT = 10

# Ingestion
SEARCH_ENDPOINT = str(os.getenv("SUBSTRATE_SEARCH_ENDPOINT", "") or "").strip()
SEARCH_MAX_RESULTS = max(
    10,
    min(100, int(os.getenv("SUBSTRATE_SEARCH_MAX_RESULTS", "10") or "10")),
)
SEARCH_TIMEOUT_SECONDS = max(
    1.0,
    float(os.getenv("SUBSTRATE_SEARCH_TIMEOUT_SECONDS", "12") or "12"),
)
