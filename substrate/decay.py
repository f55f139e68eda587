from __future__ import annotations

import math
import random
from dataclasses import dataclass, field

from .constants import (
    DECAYED_THRESHOLD,
    DIM_THRESHOLD,
    GLITCH_GLYPHS,
    SCRAMBLE_THRESHOLD,
    WARP_THRESHOLD,
)
from .metrics import _clamp01
from .models import Artifact, Room

_LN2 = math.log(2.0)


def decay_score(elapsed: float, half_life: float) -> float:
    if elapsed <= 0.0:
        return 0.0
    if half_life <= 0.0:
        return 1.0
    return _clamp01(1.0 - math.exp(-_LN2 * elapsed / half_life))


def dim_color(hex_color: str, entropy: float) -> str:
    text = str(hex_color or "").strip()
    if len(text) != 7 or not text.startswith("#"):
        return text
    try:
        channels = [int(text[offset : offset + 2], 16) for offset in (1, 3, 5)]
    except ValueError:
        return text
    factor = max(0.1, 1.0 - entropy * 0.8)
    return "#" + "".join(
        f"{min(255, int(round(channel * factor))):02x}" for channel in channels
    )


@dataclass
class DecayResult:
    active: list[Room] = field(default_factory=list)
    decayed: list[Room] = field(default_factory=list)
    collapsed: list[Room] = field(default_factory=list)

    @property
    def surviving(self) -> list[Room]:
        return [*self.active, *self.decayed]


class DecayEngine:
    """Ages rooms along an exponential half-life curve and degrades them."""

    def __init__(
        self,
        *,
        rng: random.Random,
        decayed_threshold: float = DECAYED_THRESHOLD,
        glyphs: str = GLITCH_GLYPHS,
    ) -> None:
        self._rng = rng
        self._decayed_threshold = _clamp01(float(decayed_threshold))
        self._glyphs = glyphs or GLITCH_GLYPHS

    def tick(self, rooms: list[Room], now: float) -> DecayResult:
        result = DecayResult()
        for room in rooms:
            elapsed = now - room.entropy.created_at
            score = decay_score(elapsed, room.entropy.half_life)
            # Stored score only rises; accelerated decay from pruning persists.
            room.entropy.score = max(room.entropy.score, score)

            if room.entropy.score >= 1.0:
                result.collapsed.append(room)
            elif room.entropy.score >= self._decayed_threshold:
                result.decayed.append(room)
            else:
                result.active.append(room)
        return result

    def scramble_text(self, text: str, entropy: float) -> str:
        if entropy < SCRAMBLE_THRESHOLD:
            return text
        chance = entropy * 0.6
        chars: list[str] = []
        for char in text:
            if char == " ":
                chars.append(char)
            elif self._rng.random() < chance:
                chars.append(self._rng.choice(self._glyphs))
            else:
                chars.append(char)
        return "".join(chars)

    def apply_effects(self, rooms: list[Room], cycle: int) -> None:
        """Degrade fragments, light and shape; at most once per room per cycle."""
        for room in rooms:
            if room.effects_cycle == cycle:
                continue
            room.effects_cycle = cycle
            entropy = room.entropy.score

            if entropy > SCRAMBLE_THRESHOLD:
                room.fragments.sentences = [
                    self.scramble_text(sentence, entropy)
                    for sentence in room.fragments.sentences
                ]

            if entropy > DIM_THRESHOLD:
                room.archetype.light_color = dim_color(
                    room.archetype.light_color, entropy
                )

            if entropy > WARP_THRESHOLD:
                warp = 1.0 + (self._rng.random() - 0.5) * entropy * 0.4
                room.dimensions.width *= warp
                room.dimensions.height *= 2.0 - warp

    def harvest_fragments(self, room: Room, now: float, cycle: int) -> Artifact:
        words = tuple(room.fragments.words[:3])
        return Artifact(
            source_room=room.id,
            source_name=room.name,
            source_topic=room.topic,
            fragments=words,
            excerpt=" ".join(words) if words else room.excerpt(),
            sentiment=room.sentiment,
            created_at=now,
            cycle=cycle,
            reason="collapsed",
            commentary=room.commentary[:80] if room.commentary else None,
        )
