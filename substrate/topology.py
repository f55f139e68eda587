from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import Any

from .constants import (
    CONNECTIVITY_FALLBACK_POOL,
    CORRIDOR_THRESHOLD,
    CROSS_TOPIC_MAX_LINKS,
    CROSS_TOPIC_MIN_DEGREE,
    CROSS_TOPIC_SAMPLE,
    INTRA_TOPIC_NEIGHBORS,
    LAYOUT_ATTRACTION,
    LAYOUT_CLUSTERING,
    LAYOUT_CUTOFF,
    LAYOUT_DAMPING,
    LAYOUT_EXTENT,
    LAYOUT_REPULSION,
)
from .metrics import _clamp01, topology_stats
from .models import Corridor, Position, Room, corridor_key


def similarity(left: Room, right: Room) -> float:
    score = 0.0
    if left.topic == right.topic:
        score += 0.5
    score += (1.0 - abs(left.sentiment - right.sentiment)) * 0.3
    score += max(0.0, 1.0 - abs(left.virality - right.virality) / 5.0) * 0.2
    return _clamp01(score)


def layout_iterations(room_count: int) -> int:
    if room_count > 300:
        return 30
    if room_count > 100:
        return 50
    return 100


def _group_by_topic(rooms: list[Room]) -> dict[str, list[Room]]:
    groups: dict[str, list[Room]] = {}
    for room in rooms:
        groups.setdefault(room.topic, []).append(room)
    return groups


@dataclass
class TopologyResult:
    corridors: list[Corridor]
    stats: dict[str, Any] = field(default_factory=dict)


class _CorridorSet:
    def __init__(self) -> None:
        self.corridors: list[Corridor] = []
        self._keys: set[str] = set()

    def link(self, left: Room, right: Room, score: float) -> bool:
        if left.id == right.id:
            return False
        key = corridor_key(left.id, right.id)
        if key in self._keys:
            return False
        self._keys.add(key)
        self.corridors.append(Corridor.between(left.id, right.id, score))
        left.connections.append(right.id)
        right.connections.append(left.id)
        return True


class TopologyEngine:
    """Derives corridors from room similarity and lays rooms out in 2-D."""

    def __init__(
        self,
        *,
        rng: random.Random,
        threshold: float = CORRIDOR_THRESHOLD,
        damping: float = LAYOUT_DAMPING,
        extent: float = LAYOUT_EXTENT,
        repulsion: float = LAYOUT_REPULSION,
        attraction: float = LAYOUT_ATTRACTION,
        clustering: float = LAYOUT_CLUSTERING,
        cutoff: float = LAYOUT_CUTOFF,
    ) -> None:
        self._rng = rng
        self._threshold = _clamp01(float(threshold))
        self._damping = max(0.0, min(0.99, float(damping)))
        self._extent = max(1.0, float(extent))
        self._repulsion = float(repulsion)
        self._attraction = float(attraction)
        self._clustering = float(clustering)
        self._cutoff = max(1.0, float(cutoff))

    @property
    def threshold(self) -> float:
        return self._threshold

    def generate_corridors(
        self, rooms: list[Room], threshold: float | None = None
    ) -> list[Corridor]:
        limit = self._threshold if threshold is None else float(threshold)
        for room in rooms:
            room.connections = []

        links = _CorridorSet()
        by_topic = _group_by_topic(rooms)

        for group in by_topic.values():
            for room in group:
                scored = [
                    (similarity(room, other), other)
                    for other in group
                    if other.id != room.id
                ]
                scored.sort(key=lambda row: row[0], reverse=True)
                for score, other in scored[:INTRA_TOPIC_NEIGHBORS]:
                    if score >= limit:
                        links.link(room, other, score)

        topics = list(by_topic)
        for topic, group in by_topic.items():
            for room in group:
                if len(room.connections) >= CROSS_TOPIC_MIN_DEGREE:
                    continue
                cross_links = 0
                for other_topic in topics:
                    if cross_links >= CROSS_TOPIC_MAX_LINKS:
                        break
                    if other_topic == topic:
                        continue
                    others = by_topic[other_topic]
                    if len(others) <= CROSS_TOPIC_SAMPLE:
                        sample = list(others)
                    else:
                        sample = self._rng.sample(others, CROSS_TOPIC_SAMPLE)
                    for other in sample:
                        score = similarity(room, other)
                        if score >= limit and links.link(room, other, score):
                            cross_links += 1
                            break

        if len(rooms) > 1:
            fallback_pool = rooms[:CONNECTIVITY_FALLBACK_POOL]
            for room in rooms:
                if room.connections:
                    continue
                same_topic = by_topic.get(room.topic, [])
                candidates = same_topic if len(same_topic) > 1 else fallback_pool
                best = self._best_match(room, candidates)
                if best is None:
                    best = self._best_match(room, rooms)
                if best is not None:
                    links.link(room, best[1], best[0])

        return links.corridors

    @staticmethod
    def _best_match(room: Room, candidates: list[Room]) -> tuple[float, Room] | None:
        best: tuple[float, Room] | None = None
        for other in candidates:
            if other.id == room.id:
                continue
            score = similarity(room, other)
            if best is None or score > best[0]:
                best = (score, other)
        return best

    def layout_rooms(
        self, rooms: list[Room], iterations: int | None = None
    ) -> list[Room]:
        count = len(rooms)
        if count == 0:
            return rooms
        steps = layout_iterations(count) if iterations is None else max(0, int(iterations))

        xs: list[float] = []
        ys: list[float] = []
        for _ in rooms:
            xs.append((self._rng.random() - 0.5) * self._extent)
            ys.append((self._rng.random() - 0.5) * self._extent)

        index_by_id = {room.id: index for index, room in enumerate(rooms)}
        neighbor_indexes = [
            [index_by_id[room_id] for room_id in room.connections if room_id in index_by_id]
            for room in rooms
        ]
        topic_members: dict[str, list[int]] = {}
        for index, room in enumerate(rooms):
            topic_members.setdefault(room.topic, []).append(index)

        vx = [0.0] * count
        vy = [0.0] * count
        cell = self._cutoff
        cutoff_sq = self._cutoff * self._cutoff

        for step in range(steps):
            temperature = 1.0 - (step / steps)

            grid: dict[tuple[int, int], list[int]] = {}
            for index in range(count):
                key = (math.floor(xs[index] / cell), math.floor(ys[index] / cell))
                grid.setdefault(key, []).append(index)

            # Sum over same-topic peers of (p_j - p_i) == topic_sum - n * p_i.
            topic_sums: dict[str, tuple[float, float, int]] = {}
            for topic, members in topic_members.items():
                topic_sums[topic] = (
                    sum(xs[index] for index in members),
                    sum(ys[index] for index in members),
                    len(members),
                )

            for index, room in enumerate(rooms):
                x = xs[index]
                y = ys[index]
                fx = 0.0
                fy = 0.0

                gx = math.floor(x / cell)
                gy = math.floor(y / cell)
                for ox in (-1, 0, 1):
                    for oy in (-1, 0, 1):
                        for other in grid.get((gx + ox, gy + oy), ()):
                            if other == index:
                                continue
                            dx = x - xs[other]
                            dy = y - ys[other]
                            dist_sq = (dx * dx) + (dy * dy)
                            if dist_sq > cutoff_sq:
                                continue
                            dist = max(1.0, math.sqrt(dist_sq))
                            force = self._repulsion / (dist * dist)
                            fx += (dx / dist) * force
                            fy += (dy / dist) * force

                for other in neighbor_indexes[index]:
                    fx += (xs[other] - x) * self._attraction
                    fy += (ys[other] - y) * self._attraction

                sum_x, sum_y, members = topic_sums[room.topic]
                fx += (sum_x - members * x) * self._clustering
                fy += (sum_y - members * y) * self._clustering

                vx[index] = (vx[index] + fx * temperature) * self._damping
                vy[index] = (vy[index] + fy * temperature) * self._damping

            for index in range(count):
                xs[index] = round(xs[index] + vx[index], 2)
                ys[index] = round(ys[index] + vy[index], 2)

        for index, room in enumerate(rooms):
            room.position = Position(x=round(xs[index], 2), y=round(ys[index], 2))
        return rooms

    def build_topology(self, rooms: list[Room]) -> TopologyResult:
        corridors = self.generate_corridors(rooms)
        self.layout_rooms(rooms)
        return TopologyResult(
            corridors=corridors,
            stats=topology_stats(rooms, len(corridors)),
        )
