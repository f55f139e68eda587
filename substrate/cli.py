from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from .constants import DEFAULT_QUERIES, DEFAULT_SEED, DEFAULT_STATE_PATH, SEARCH_ENDPOINT
from .observer import HttpSearchObserver, JsonlFeedObserver, Observer
from .storage import JsonFileWorldStorage, write_json
from .world import WorldOrchestrator


def split_queries(raw: str) -> list[str]:
    return [part.strip() for part in str(raw or "").split(",") if part.strip()]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run one Substrate observation cycle and persist the world"
    )
    parser.add_argument("--state", type=Path, default=Path(DEFAULT_STATE_PATH))
    parser.add_argument("--queries", default=",".join(DEFAULT_QUERIES))
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--feed", type=Path, default=None, help="JSON-lines post feed")
    source.add_argument("--endpoint", default=SEARCH_ENDPOINT, help="search endpoint URL")
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED)
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="also write a compact world summary to this path",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def build_observer(args: argparse.Namespace) -> Observer:
    if args.feed is not None:
        return JsonlFeedObserver(args.feed)
    return HttpSearchObserver(args.endpoint)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    queries = split_queries(args.queries)
    if not queries:
        raise SystemExit("no queries given")

    storage = JsonFileWorldStorage(args.state)
    world = WorldOrchestrator.from_storage(
        storage, observer=build_observer(args), seed=args.seed
    )
    report = world.cycle(queries)
    if not report.skipped:
        world.save(storage)
    if report.reflection:
        print(report.reflection)

    if args.summary is not None:
        write_json(args.summary, world.compact_summary())

    print(json.dumps(world.summary(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
