"""Command-line interface entry point for the gamescout crawler."""

from __future__ import annotations

import argparse
import asyncio
from copy import deepcopy
import json
import os
from pathlib import Path
import signal
from typing import Any, Callable, Iterable
from urllib.parse import urlparse

import requests
import yaml
from dotenv import load_dotenv

from gamescout.alerts.notifier import Notifier, SubscriberRegistry
from gamescout.browser import PlaywrightRenderer
from gamescout.crawler.cycle import LETTERS, CrawlCycle
from gamescout.crawler.pipeline import DEFAULT_CONCURRENCY
from gamescout.logging_config import get_logger
from gamescout.models import CancelToken, CycleStats
from gamescout.scheduler import ContinuousScheduler
from gamescout.sources.rotrends import BASE_URL, DEFAULT_PAGE_SIZE, RotrendsClient
from gamescout.storage.db import get_engine, init_db_safe, make_session
from gamescout.storage.models_sql import Game
from gamescout.storage.store import GameStore


LOGGER = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "config.yml"

DEFAULT_CONFIG: dict[str, Any] = {
    "source": {
        "base_url": BASE_URL,
        "page_size": DEFAULT_PAGE_SIZE,
        "letters": list(LETTERS),
        "page_delay_seconds": 1.0,
    },
    "crawl": {"concurrency": DEFAULT_CONCURRENCY},
    "output": {"sqlite_path": "games.sqlite"},
    "alerts": {"chat_ids": []},
    "healthcheck_url": "",
}


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the application."""

    parser = argparse.ArgumentParser(
        description="Crawl rotrends.com for new games and alert subscribers."
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to the YAML configuration file.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run a single crawl cycle and print its summary instead of searching continuously.",
    )
    mode.add_argument(
        "--populate",
        action="store_true",
        help="Seed the database with one cycle; known URLs are skipped and no alerts are sent.",
    )
    mode.add_argument(
        "--stats",
        action="store_true",
        help="Print the number of stored games and the most recent ones.",
    )
    mode.add_argument(
        "--search",
        type=str,
        metavar="QUERY",
        help="Print stored games whose title contains QUERY.",
    )
    parser.add_argument(
        "--letters",
        type=str,
        help="Letters to crawl, in order (default: the full Cyrillic alphabet).",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Number of store writes in flight per cycle (default: 3).",
    )

    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.concurrency is not None and args.concurrency <= 0:
        parser.error("--concurrency must be a positive integer")

    letters_arg = (args.letters or "").strip()
    args.letters = [letter for letter in letters_arg if not letter.isspace() and letter != ","]
    if args.search is not None and not args.search.strip():
        parser.error("--search needs a non-empty query")
    return args


def _deep_merge(default: Any, override: Any) -> Any:
    if not isinstance(default, dict) or not isinstance(override, dict):
        return deepcopy(override)

    merged: dict[str, Any] = deepcopy(default)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _load_config(path: Path) -> dict[str, Any]:
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    else:
        LOGGER.warning("Configuration file %s not found; using defaults", path)
        data = {}

    return _deep_merge(DEFAULT_CONFIG, data) if data else deepcopy(DEFAULT_CONFIG)


def _resolve_config_path(path_value: str | Path | None) -> Path:
    if not path_value:
        raise RuntimeError("Missing configuration path value.")
    path = Path(path_value)
    if not path.is_absolute():
        path = Path.cwd() / path
    return path


def _split_chat_ids(raw: str | None) -> list[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    merged = deepcopy(config)

    concurrency = os.getenv("GAMESCOUT_CONCURRENCY")
    if concurrency:
        merged.setdefault("crawl", {})["concurrency"] = concurrency

    sqlite_path = os.getenv("GAMESCOUT_DATABASE_PATH")
    if sqlite_path:
        merged.setdefault("output", {})["sqlite_path"] = sqlite_path

    healthcheck_url = os.getenv("GAMESCOUT_HEALTHCHECK_URL")
    if healthcheck_url:
        merged["healthcheck_url"] = healthcheck_url

    env_chat_ids = _split_chat_ids(os.getenv("TELEGRAM_CHAT_IDS"))
    if env_chat_ids:
        alerts = merged.setdefault("alerts", {})
        existing = [str(chat_id) for chat_id in alerts.get("chat_ids") or []]
        alerts["chat_ids"] = existing + [c for c in env_chat_ids if c not in existing]
    return merged


def _resolve_concurrency(raw_value: Any) -> int:
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        LOGGER.warning(
            "Invalid concurrency %r; using default %d", raw_value, DEFAULT_CONCURRENCY
        )
        return DEFAULT_CONCURRENCY
    if value <= 0:
        LOGGER.warning(
            "Concurrency must be positive (got %d); using default %d",
            value,
            DEFAULT_CONCURRENCY,
        )
        return DEFAULT_CONCURRENCY
    return value


def _resolve_letters(raw_value: Any) -> list[str]:
    if isinstance(raw_value, str):
        letters = [letter for letter in raw_value if not letter.isspace()]
    elif isinstance(raw_value, (list, tuple)):
        letters = [str(item).strip() for item in raw_value if str(item).strip()]
    else:
        letters = []
    if not letters:
        LOGGER.warning("source.letters is empty or invalid; using the full alphabet")
        return list(LETTERS)
    return letters


def _ping_healthcheck(config: dict[str, Any]) -> None:
    url = (config or {}).get("healthcheck_url")
    if not url:
        LOGGER.debug("healthcheck: disabled")
        return
    host = urlparse(str(url)).netloc or urlparse(str(url)).path
    try:
        response = requests.get(url, timeout=5)
    except Exception as exc:  # pragma: no cover - defensive
        LOGGER.warning("Healthcheck ping failed for host=%s: %s", host, exc)
        return
    if response.status_code >= 400:
        LOGGER.warning(
            "Healthcheck returned status %s for host=%s",
            response.status_code,
            host,
        )
    else:
        LOGGER.info(
            "healthcheck ok | host=%s status=%s",
            host,
            response.status_code,
        )


def _log_progress(stats: CycleStats) -> None:
    LOGGER.info(
        "Progress | letter=%s | page=%d | seen=%d | new=%d | updated=%d | errors=%d",
        stats.index_key,
        stats.page_number,
        stats.total_seen,
        stats.new_count,
        stats.updated_count,
        stats.error_count,
    )


def _game_row(game: Game) -> dict[str, Any]:
    return {
        "source_id": game.source_id,
        "title": game.title,
        "url": game.url,
        "created_at": game.created_at.isoformat() if game.created_at else None,
        "updated_at": game.updated_at.isoformat() if game.updated_at else None,
    }


def _build_cycle(
    client: RotrendsClient,
    store: GameStore,
    config: dict[str, Any],
    *,
    notifier: Notifier | None,
    populate: bool = False,
) -> CrawlCycle:
    source = config.get("source", {})
    return CrawlCycle(
        client,
        store,
        letters=_resolve_letters(source.get("letters")),
        concurrency=_resolve_concurrency(config.get("crawl", {}).get("concurrency")),
        page_size=int(source.get("page_size") or DEFAULT_PAGE_SIZE),
        page_delay=float(source.get("page_delay_seconds", 1.0)),
        notifier=None if populate else notifier,
        track_status=not populate,
        skip_known_urls=populate,
        on_progress=_log_progress,
    )


def _install_signal_handlers(callback: Callable[[], None]) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, callback)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - Windows
            LOGGER.debug("Signal handler for %s not supported on this platform", sig)


async def _run_single_cycle(cycle: CrawlCycle, config: dict[str, Any]) -> CycleStats:
    token = CancelToken()
    _install_signal_handlers(token.cancel)
    stats = await cycle.run_cycle(token)
    if not stats.cancelled:
        await asyncio.to_thread(_ping_healthcheck, config)
    return stats


async def _run_continuous(cycle: CrawlCycle, config: dict[str, Any]) -> None:
    async def run_and_report(cancel: CancelToken) -> CycleStats:
        stats = await cycle.run_cycle(cancel)
        if not stats.cancelled:
            await asyncio.to_thread(_ping_healthcheck, config)
        return stats

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event.set)

    scheduler = ContinuousScheduler(run_and_report)
    scheduler.start()
    try:
        await stop_event.wait()
        LOGGER.info("Shutdown signal received; stopping continuous search")
    finally:
        await scheduler.shutdown()


async def _async_main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    LOGGER.info(
        "Parsed arguments: once=%s populate=%s stats=%s search=%s letters=%s concurrency=%s",
        args.once,
        args.populate,
        args.stats,
        args.search,
        "".join(args.letters) or None,
        args.concurrency,
    )

    load_dotenv()

    config = _apply_env_overrides(_load_config(_resolve_config_path(args.config)))
    if args.letters:
        config["source"]["letters"] = args.letters
    if args.concurrency is not None:
        config["crawl"]["concurrency"] = args.concurrency

    engine = get_engine(config["output"]["sqlite_path"])
    init_db_safe(engine)
    store = GameStore(make_session(engine))

    if args.stats:
        payload = {
            "total": store.count_all(),
            "recent": [_game_row(game) for game in store.recent(limit=10)],
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    if args.search is not None:
        matches = store.search(args.search.strip())
        print(json.dumps([_game_row(game) for game in matches], ensure_ascii=False, indent=2))
        return

    registry = SubscriberRegistry(config.get("alerts", {}).get("chat_ids") or [])
    notifier = Notifier(registry)
    if not registry:
        LOGGER.warning("No Telegram chat ids configured; new games will only be logged")

    async with PlaywrightRenderer() as renderer:
        client = RotrendsClient(renderer, base_url=config["source"]["base_url"])
        cycle = _build_cycle(client, store, config, notifier=notifier, populate=args.populate)
        if args.once or args.populate:
            stats = await _run_single_cycle(cycle, config)
            print(json.dumps(stats.as_summary(), ensure_ascii=False))
            return
        await _run_continuous(cycle, config)


def main() -> None:
    try:
        asyncio.run(_async_main())
    except KeyboardInterrupt:  # pragma: no cover - interactive safety
        LOGGER.info("Interrupted by user")


if __name__ == "__main__":
    main()
