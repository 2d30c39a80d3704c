from __future__ import annotations

import asyncio

import pytest

from gamescout.crawler.cycle import LETTERS, CrawlCycle
from gamescout.errors import FetchError
from gamescout.models import CancelToken, CatalogEntry
from gamescout.storage.db import get_engine, init_db_safe, make_session
from gamescout.storage.store import GameStore


@pytest.fixture()
def store(tmp_path):
    engine = get_engine(str(tmp_path / "games.sqlite"))
    init_db_safe(engine)
    try:
        yield GameStore(make_session(engine))
    finally:
        engine.dispose()


class PagedFetcher:
    """Serves ``pages[(letter, page)]``; anything else is an empty page."""

    def __init__(self, pages=None, errors=None, on_fetch=None):
        self.pages = pages or {}
        self.errors = errors or {}
        self.on_fetch = on_fetch
        self.calls: list[tuple[str, int]] = []

    async def fetch(self, index_key, page_number, page_size=100):
        self.calls.append((index_key, page_number))
        if self.on_fetch is not None:
            self.on_fetch(index_key, page_number)
        error = self.errors.get((index_key, page_number))
        if error is not None:
            raise error
        return list(self.pages.get((index_key, page_number), []))


async def _no_sleep(seconds: float) -> None:
    return None


def _game(identity: str, title: str) -> CatalogEntry:
    return CatalogEntry(identity, title, f"https://rotrends.com/games/{identity}")


def _cycle(fetcher, store, **kwargs) -> CrawlCycle:
    kwargs.setdefault("letters", ("а", "б"))
    return CrawlCycle(fetcher, store, page_delay=0, sleep=_no_sleep, **kwargs)


def test_alphabet_is_fixed_cyrillic_order() -> None:
    assert len(LETTERS) == 32
    assert LETTERS[0] == "а"
    assert LETTERS[-1] == "я"
    assert "ё" not in LETTERS


def test_cycle_counts_new_then_updated(store) -> None:
    fetcher = PagedFetcher({("а", 1): [_game("1", "Adopt Me"), _game("2", "Arsenal")]})
    cycle = _cycle(fetcher, store)

    first = asyncio.run(cycle.run_cycle())
    second = asyncio.run(cycle.run_cycle())

    assert (first.total_seen, first.new_count, first.store_total) == (2, 2, 2)
    assert (second.new_count, second.updated_count, second.store_total) == (0, 2, 2)
    assert first.cancelled is False
    assert first.finished_at is not None
    assert [call for call in fetcher.calls[:4]] == [("а", 1), ("а", 2), ("а", 3), ("а", 4)]


def test_key_level_error_does_not_abort_cycle(store) -> None:
    fetcher = PagedFetcher(
        pages={("б", 1): [_game("3", "Bee Swarm")]},
        errors={("а", 1): ValueError("unexpected markup")},
    )

    stats = asyncio.run(_cycle(fetcher, store).run_cycle())

    assert stats.error_count == 1
    assert stats.new_count == 1
    assert ("б", 1) in fetcher.calls


def test_failed_pages_are_counted_as_errors(store) -> None:
    fetcher = PagedFetcher(errors={("а", 2): FetchError("render failed")})

    stats = asyncio.run(_cycle(fetcher, store, letters=("а",)).run_cycle())

    assert stats.error_count == 1
    assert fetcher.calls == [("а", 1), ("а", 2), ("а", 3)]


def test_cancellation_stops_at_current_letter(store) -> None:
    token = CancelToken()

    def cancel_on_first_page(letter: str, page: int) -> None:
        token.cancel()

    fetcher = PagedFetcher(
        pages={("а", 1): [_game("1", "Adopt Me")], ("б", 1): [_game("2", "Bee Swarm")]},
        on_fetch=cancel_on_first_page,
    )

    stats = asyncio.run(_cycle(fetcher, store).run_cycle(token))

    assert stats.cancelled is True
    assert stats.index_key == "а"
    assert fetcher.calls == [("а", 1)]
    assert stats.new_count == 0
    assert stats.store_total == 0


def test_progress_callback_receives_snapshots_and_failures_are_ignored(store) -> None:
    seen = []

    def on_progress(snapshot):
        seen.append((snapshot.index_key, snapshot.page_number, snapshot.total_seen))
        raise RuntimeError("presentation layer crashed")

    fetcher = PagedFetcher({("а", 1): [_game("1", "Adopt Me")], ("б", 1): [_game("2", "Bee")]})

    stats = asyncio.run(_cycle(fetcher, store, on_progress=on_progress).run_cycle())

    assert stats.new_count == 2
    assert seen[:2] == [("а", 1, 1), ("б", 1, 2)]
    assert len(seen) == 3
