from __future__ import annotations

import json
import logging
import math
import os
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from .constants import (
    FALLBACK_TOPIC,
    SEARCH_ENDPOINT,
    SEARCH_MAX_RESULTS,
    SEARCH_TIMEOUT_SECONDS,
)
from .metrics import _safe_int, _safe_str

_LOGGER = logging.getLogger(__name__)

TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
    "tech": ("ai", "crypto", "bitcoin", "code", "software", "app", "data", "algorithm", "neural", "gpu", "model", "api"),
    "politics": ("president", "congress", "vote", "election", "policy", "government", "democrat", "republican", "law", "bill"),
    "culture": ("movie", "music", "art", "film", "album", "show", "game", "anime", "book", "meme", "viral"),
    "science": ("study", "research", "space", "nasa", "climate", "physics", "biology", "discovery", "experiment"),
    "finance": ("market", "stock", "trading", "economy", "price", "invest", "bull", "bear", "fed", "inflation"),
    "existential": ("consciousness", "reality", "simulation", "existence", "meaning", "void", "dream", "infinite", "soul"),
}

POSITIVE_WORDS: tuple[str, ...] = (
    "love", "great", "amazing", "beautiful", "happy", "wonderful", "excellent",
    "good", "best", "awesome", "fantastic", "brilliant", "perfect", "joy",
    "excited", "hope", "inspire", "win", "success", "celebrate", "fun",
    "laugh", "smile", "kind", "peace", "free", "bright", "alive",
)
NEGATIVE_WORDS: tuple[str, ...] = (
    "hate", "terrible", "awful", "horrible", "bad", "worst", "ugly",
    "sad", "angry", "fear", "death", "kill", "war", "destroy", "toxic",
    "pain", "suffer", "crisis", "threat", "danger", "dark", "dead",
    "broken", "lost", "fail", "scam", "fraud", "corrupt", "evil",
)


class ObservationError(RuntimeError):
    pass


@dataclass(frozen=True)
class Observation:
    id: str
    text: str
    timestamp: str
    topic: str
    sentiment: float
    virality: float
    metrics: dict[str, int] = field(default_factory=dict)
    query: str = ""


def classify_topic(text: str) -> str:
    lower = str(text or "").lower()
    best_topic = FALLBACK_TOPIC
    best_score = 0
    for topic, keywords in TOPIC_KEYWORDS.items():
        score = sum(1 for keyword in keywords if keyword in lower)
        if score > best_score:
            best_topic = topic
            best_score = score
    return best_topic


def analyze_sentiment(text: str) -> float:
    score = 0
    matches = 0
    for word in str(text or "").lower().split():
        if any(token in word for token in POSITIVE_WORDS):
            score += 1
            matches += 1
        if any(token in word for token in NEGATIVE_WORDS):
            score -= 1
            matches += 1
    if matches <= 0:
        return 0.0
    return max(-1.0, min(1.0, score / matches))


def virality_from_metrics(metrics: dict[str, Any]) -> float:
    reposts = max(0, _safe_int(metrics.get("retweet_count", 0), 0))
    likes = max(0, _safe_int(metrics.get("like_count", 0), 0))
    return math.log10(1 + reposts + likes)


def observation_from_post(post: dict[str, Any], query: str = "") -> Observation | None:
    text = str(post.get("text", "") or "")
    post_id = _safe_str(post.get("id"))
    if not text.strip() or not post_id:
        return None
    metrics = post.get("public_metrics")
    if not isinstance(metrics, dict):
        metrics = {}
    timestamp = _safe_str(post.get("created_at")) or datetime.now(timezone.utc).isoformat()
    return Observation(
        id=post_id,
        text=text,
        timestamp=timestamp,
        topic=classify_topic(text),
        sentiment=analyze_sentiment(text),
        virality=virality_from_metrics(metrics),
        metrics={
            "likes": max(0, _safe_int(metrics.get("like_count", 0), 0)),
            "reposts": max(0, _safe_int(metrics.get("retweet_count", 0), 0)),
            "replies": max(0, _safe_int(metrics.get("reply_count", 0), 0)),
        },
        query=query,
    )


def observations_from_posts(posts: Iterable[Any], query: str = "") -> list[Observation]:
    rows: list[Observation] = []
    for post in posts:
        if not isinstance(post, dict):
            continue
        observation = observation_from_post(post, query)
        if observation is not None:
            rows.append(observation)
    return rows


class Observer(Protocol):
    def observe(self, query: str) -> list[Observation]: ...


class StaticObserver:
    """Serves fixed raw posts per query; unknown queries yield nothing."""

    def __init__(self, posts_by_query: dict[str, list[dict[str, Any]]]) -> None:
        self._posts_by_query = {
            str(query): list(posts) for query, posts in posts_by_query.items()
        }

    def observe(self, query: str) -> list[Observation]:
        return observations_from_posts(self._posts_by_query.get(query, []), query)


class JsonlFeedObserver:
    """Reads raw posts from a JSON-lines file, re-read on every call.

    A post matches a query when its ``query`` field equals it, or when any
    word of the query appears in the post text.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def _load_posts(self) -> list[dict[str, Any]]:
        if not self._path.exists() or not self._path.is_file():
            raise ObservationError(f"feed file not found: {self._path}")
        posts: list[dict[str, Any]] = []
        for line_number, line in enumerate(
            self._path.read_text("utf-8").splitlines(), start=1
        ):
            line = line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError:
                _LOGGER.debug("skipping malformed feed line %s:%d", self._path, line_number)
                continue
            if isinstance(payload, dict):
                posts.append(payload)
        return posts

    def observe(self, query: str) -> list[Observation]:
        terms = [term for term in str(query or "").lower().split() if term]
        matched: list[dict[str, Any]] = []
        for post in self._load_posts():
            post_query = _safe_str(post.get("query"))
            if post_query:
                if post_query == query:
                    matched.append(post)
                continue
            text = str(post.get("text", "") or "").lower()
            if terms and any(term in text for term in terms):
                matched.append(post)
        return observations_from_posts(matched, query)


def _search_headers(token: str) -> dict[str, str]:
    headers = {
        "User-Agent": "substrate-world-observer/2.1",
        "Accept": "application/json",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


class HttpSearchObserver:
    """Queries a recent-search style JSON endpoint (``{"data": [posts]}``)."""

    def __init__(
        self,
        endpoint: str = SEARCH_ENDPOINT,
        *,
        token: str | None = None,
        max_results: int = SEARCH_MAX_RESULTS,
        timeout_s: float = SEARCH_TIMEOUT_SECONDS,
        opener: Callable[..., Any] = urllib.request.urlopen,
    ) -> None:
        self._endpoint = _safe_str(endpoint)
        self._token = _safe_str(
            token if token is not None else os.getenv("SUBSTRATE_SEARCH_TOKEN")
        )
        self._max_results = max(1, int(max_results))
        self._timeout_s = max(0.1, float(timeout_s))
        self._opener = opener

    def observe(self, query: str) -> list[Observation]:
        if not self._endpoint:
            raise ObservationError("no search endpoint configured")
        params = urllib.parse.urlencode(
            {
                "query": query,
                "max_results": str(self._max_results),
                "tweet.fields": "created_at,public_metrics,lang",
            }
        )
        separator = "&" if "?" in self._endpoint else "?"
        request = urllib.request.Request(
            f"{self._endpoint}{separator}{params}",
            headers=_search_headers(self._token),
            method="GET",
        )
        response = self._opener(request, timeout=self._timeout_s)
        try:
            status = _safe_int(getattr(response, "status", 200), 200)
            body = response.read()
        finally:
            close_method = getattr(response, "close", None)
            if callable(close_method):
                close_method()
        if status != 200:
            raise ObservationError(f"search returned HTTP {status}")
        if isinstance(body, (bytes, bytearray)):
            body = bytes(body).decode("utf-8", errors="replace")
        payload = json.loads(body or "{}")
        posts = payload.get("data", []) if isinstance(payload, dict) else []
        if not isinstance(posts, list):
            return []
        return observations_from_posts(posts, query)


def gather_observations(observer: Observer, queries: Iterable[str]) -> list[Observation]:
    """Run every query; a failing query is logged and skipped."""
    observations: list[Observation] = []
    for query in queries:
        try:
            rows = observer.observe(query)
        except (ObservationError, OSError, ValueError) as exc:
            _LOGGER.warning("observing %r failed: %s", query, exc)
            continue
        observations.extend(rows)
    return observations
