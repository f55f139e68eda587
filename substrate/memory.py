from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .constants import (
    MEMORY_HISTORY_LIMIT,
    ROOM_CONTRACTION_RATIO,
    ROOM_EXPANSION_RATIO,
    TREND_FADE_RATIO,
    TREND_GROWTH_RATIO,
    TREND_WINDOW,
)
from .models import MemorySnapshot, RoomCountSnapshot, TopicStat, WorldState


@dataclass(frozen=True)
class TopicTrend:
    topic: str
    change: float | None = None

    def to_dict(self) -> dict[str, Any]:
        row: dict[str, Any] = {"topic": self.topic}
        if self.change is not None:
            row["change"] = self.change
        return row


@dataclass
class TrendReport:
    growing: list[TopicTrend] = field(default_factory=list)
    fading: list[TopicTrend] = field(default_factory=list)
    stable: list[TopicTrend] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.growing or self.fading or self.stable or self.insights)

    def to_dict(self) -> dict[str, Any]:
        return {
            "growing": [row.to_dict() for row in self.growing],
            "fading": [row.to_dict() for row in self.fading],
            "stable": [row.to_dict() for row in self.stable],
            "insights": list(self.insights),
        }


def _window_means(snapshots: list[MemorySnapshot]) -> dict[str, float]:
    # Averaged over the snapshots a topic appears in.
    totals: dict[str, int] = {}
    seen: dict[str, int] = {}
    for snapshot in snapshots:
        for topic, stat in snapshot.topics.items():
            totals[topic] = totals.get(topic, 0) + stat.count
            seen[topic] = seen.get(topic, 0) + 1
    return {topic: total / seen[topic] for topic, total in totals.items()}


class MemoryEngine:
    """Rolling per-topic history of the room population and its trends."""

    def __init__(
        self,
        *,
        max_history: int = MEMORY_HISTORY_LIMIT,
        window: int = TREND_WINDOW,
    ) -> None:
        self._max_history = max(1, int(max_history))
        self._window = max(1, int(window))

    def update(self, state: WorldState, now: float) -> MemorySnapshot:
        memory = state.memory

        sums: dict[str, list[float]] = {}
        for room in state.rooms.values():
            row = sums.setdefault(room.topic, [0, 0.0])
            row[0] += 1
            row[1] += room.sentiment

        snapshot = MemorySnapshot(
            cycle=state.cycle,
            timestamp=now,
            topics={
                topic: TopicStat(
                    count=int(count),
                    avg_sentiment=round(total / count, 2) if count else 0.0,
                )
                for topic, (count, total) in sums.items()
            },
        )
        memory.topic_history.append(snapshot)
        memory.total_room_history.append(
            RoomCountSnapshot(cycle=state.cycle, count=len(state.rooms))
        )

        limit = min(self._max_history, max(1, memory.max_history_length))
        memory.max_history_length = limit
        if len(memory.topic_history) > limit:
            memory.topic_history = memory.topic_history[-limit:]
        if len(memory.total_room_history) > limit:
            memory.total_room_history = memory.total_room_history[-limit:]
        return snapshot

    def analyze_trends(self, state: WorldState) -> TrendReport:
        history = state.memory.topic_history
        report = TrendReport()
        if len(history) < 2:
            return report

        window = self._window
        recent = history[-window:]
        older = history[-2 * window : -window]
        if not older:
            return report

        recent_avg = _window_means(recent)
        older_avg = _window_means(older)

        for topic in [*recent_avg, *(t for t in older_avg if t not in recent_avg)]:
            now_count = recent_avg.get(topic, 0.0)
            then_count = older_avg.get(topic, 0.0)

            if then_count == 0 and now_count > 0:
                report.growing.append(TopicTrend(topic, now_count))
                report.insights.append(f'"{topic}" is a new presence in the Substrate')
            elif now_count == 0 and then_count > 0:
                report.fading.append(TopicTrend(topic, -then_count))
                report.insights.append(f'"{topic}" discourse has gone silent')
            elif then_count > 0:
                ratio = now_count / then_count
                if ratio > TREND_GROWTH_RATIO:
                    report.growing.append(TopicTrend(topic, ratio))
                    report.insights.append(
                        f'"{topic}" keeps growing, up {round((ratio - 1) * 100)}%'
                    )
                elif ratio < TREND_FADE_RATIO:
                    report.fading.append(TopicTrend(topic, ratio))
                    report.insights.append(
                        f'"{topic}" is fading, down {round((1 - ratio) * 100)}%'
                    )
                else:
                    report.stable.append(TopicTrend(topic))

        counts = state.memory.total_room_history
        if len(counts) >= 3:
            latest = counts[-1].count
            earlier = counts[max(0, len(counts) - 4)].count
            if latest < earlier * ROOM_CONTRACTION_RATIO:
                report.insights.append(
                    f"the Substrate is contracting: {earlier} rooms down to {latest}"
                )
            elif latest > earlier * ROOM_EXPANSION_RATIO:
                report.insights.append(
                    f"the Substrate is expanding: {earlier} rooms grew to {latest}"
                )

        return report
