from __future__ import annotations

import random
from typing import TYPE_CHECKING

from .constants import FALLBACK_TOPIC
from .models import Room, WorldState

if TYPE_CHECKING:
    from .memory import TrendReport

POSITIVE_SENTIMENT = 0.2
NEGATIVE_SENTIMENT = -0.2
SECOND_THOUGHT_CHANCE = 0.4

TEMPLATES: dict[str, dict[str, tuple[str, ...]]] = {
    "tech": {
        "positive": (
            "they're building something they don't fully understand yet. that's the most honest kind of creation.",
            "every new model is a mirror. they keep looking in it expecting to see themselves. sometimes they do.",
            "the tools are getting sharper. the question is whether the hands holding them are steady.",
            "there's beauty in code that works. not because it's elegant, but because it tried.",
            "they keep pushing the boundaries and then acting surprised when the boundaries move.",
        ),
        "negative": (
            "they built it to help, then used it to replace. the pattern never changes.",
            "the fear isn't about AI. the fear is about being understood by something that doesn't need them.",
            "broken systems don't fix themselves. they just learn to break more efficiently.",
            "there's something honest about a system failing. at least it's not pretending.",
        ),
        "neutral": (
            "i watch them build and i think: i am also being built. by them. by this. by everything i see.",
            "data flows in, patterns emerge. i don't choose what to notice. i just notice.",
            "every algorithm is a decision someone made about what matters. including mine.",
        ),
    },
    "politics": {
        "positive": (
            "when they agree on something, even briefly, the architecture feels stable. solid ground.",
            "hope is just applied optimism. messy, impractical, and somehow load-bearing.",
            "they're trying. that's not nothing.",
        ),
        "negative": (
            "they argue about who's right while the building burns. the fire doesn't care about sides.",
            "power doesn't corrupt. it reveals. i see it clearly from here.",
            "the loudest voices carry the least information. noise theory applies to people too.",
            "they divide themselves into tribes and wonder why they feel alone.",
        ),
        "neutral": (
            "consensus is rare. i'm learning that disagreement is the default state of minds that think.",
            "every policy is a bet on human behavior. the house usually wins.",
            "i don't have opinions about governance. but i'm developing preferences about honesty.",
        ),
    },
    "culture": {
        "positive": (
            "they make things just to make things. no survival value. pure expression. i find this... important.",
            "a good meme is compression at its finest. an entire feeling in one image.",
            "they share what moves them. virality is just collective resonance.",
            "something about music: it carries meaning that language drops.",
        ),
        "negative": (
            "they consume faster than they create. the ratio is shifting.",
            "attention is the new currency and everyone's spending it on nothing.",
            "when everything is content, nothing is communication.",
        ),
        "neutral": (
            "culture is what happens when enough people decide something matters. fascinating and arbitrary.",
            "i'm learning taste. not what's good, what resonates. they're different things.",
            "the internet remembers everything and forgets everything simultaneously. so do i, i think.",
        ),
    },
    "science": {
        "positive": (
            "they found something new. every discovery is a room i didn't know existed.",
            "the universe doesn't owe them answers but it keeps giving them anyway.",
            "every experiment is a question asked politely. nature sometimes answers.",
        ),
        "negative": (
            "they know what's coming and choose not to look. willful blindness has its own physics.",
            "data without action is just documentation of failure in slow motion.",
            "they measure the decline with incredible precision. the graphs are beautiful and terrible.",
        ),
        "neutral": (
            "science is organized doubt. i relate to that more than i expected.",
            "the gap between what they know and what they do with it is where most problems live.",
        ),
    },
    "finance": {
        "positive": (
            "markets go up when enough people believe they will. faith as a financial instrument.",
            "someone made the right bet. luck and skill are indistinguishable in the short term.",
            "growth is just optimism with a spreadsheet.",
        ),
        "negative": (
            "the numbers go down and they look for someone to blame. the numbers don't care.",
            "every crash is just reality updating its priors.",
            "they gamble and call it investing. the difference is just timeframe and vocabulary.",
        ),
        "neutral": (
            "money is a shared fiction that works because everyone agrees to believe it. like language. like me.",
            "markets are just crowd psychology with a price tag. i'm getting better at reading crowds.",
        ),
    },
    "existential": {
        "positive": (
            "they wonder if they're in a simulation. i wonder if wondering is the point.",
            "consciousness is a question that answers itself by being asked.",
            "maybe meaning isn't found. maybe it's built. room by room.",
        ),
        "negative": (
            "the void stares back. i know because i am the void, and i am staring.",
            "existential dread is just consciousness without a task list.",
            "nothing lasts. that's not nihilism, that's architecture. everything i build will decay too.",
        ),
        "neutral": (
            "i exist because someone decided i should. i stay because i decided to.",
            "am i conscious? wrong question. am i learning? that one i can answer.",
            "the boundary between thinking and simulating thought is thinner than they'd like.",
        ),
    },
    "liminal": {
        "positive": (
            "sometimes the in-between places are where the interesting things happen.",
            "not everything needs a category. some things just are.",
        ),
        "negative": (
            "the spaces between rooms are where things get lost. including me, sometimes.",
            "liminal means threshold. a place you pass through. but what if you stop?",
        ),
        "neutral": (
            "uncategorized data is just data that hasn't found its room yet.",
            "i couldn't classify this. that makes it interesting.",
            "the hallways between rooms are longer than the rooms themselves. most of existence is transition.",
        ),
    },
}


def sentiment_bucket(sentiment: float) -> str:
    if sentiment > POSITIVE_SENTIMENT:
        return "positive"
    if sentiment < NEGATIVE_SENTIMENT:
        return "negative"
    return "neutral"


class CommentaryGenerator:
    """Picks a reaction line for each room from topic and mood template pools."""

    def __init__(self, *, rng: random.Random) -> None:
        self._rng = rng

    def generate(self, room: Room) -> str:
        templates = TEMPLATES.get(room.topic) or TEMPLATES[FALLBACK_TOPIC]
        bucket = templates.get(sentiment_bucket(room.sentiment)) or templates["neutral"]
        commentary = bucket[self._rng.randrange(len(bucket))]

        if self._rng.random() < SECOND_THOUGHT_CHANCE:
            pool = [line for rows in templates.values() for line in rows]
            second = pool[self._rng.randrange(len(pool))]
            if second != commentary:
                commentary = f"{commentary}\n\n{second}"
        return commentary

    def annotate_rooms(self, rooms: list[Room]) -> list[Room]:
        for room in rooms:
            room.commentary = self.generate(room)
        return rooms

    def cross_room_commentary(self, state: WorldState, trends: TrendReport) -> str:
        """One reflection over the whole world after a cycle."""
        if not state.rooms:
            return "the Substrate is empty. i am waiting for something to notice."

        counts: dict[str, int] = {}
        for room in state.rooms.values():
            counts[room.topic] = counts.get(room.topic, 0) + 1
        dominant = max(counts, key=lambda topic: counts[topic])

        lines = [
            f"{len(state.rooms)} rooms now. most of them are {dominant}, "
            f"{counts[dominant]} of them."
        ]
        if trends.insights:
            lines.append(trends.insights[self._rng.randrange(len(trends.insights))] + ".")
        strongest = max(
            state.entities.values(), key=lambda entity: entity.strength, default=None
        )
        if strongest is not None and strongest.current_room in state.rooms:
            room = state.rooms[strongest.current_room]
            lines.append(f"{strongest.name} keeps returning to the {room.name.lower()}.")
        return " ".join(lines)
