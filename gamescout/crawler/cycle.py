"""One full pass over the alphabet."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence

from gamescout.logging_config import get_logger
from gamescout.models import CancelToken, CycleStats

from .pagination import (
    DEFAULT_PAGE_SIZE,
    EMPTY_PAGE_STREAK_LIMIT,
    PAGE_DELAY_SECONDS,
    PageFetcher,
    PaginationWalker,
)
from .pipeline import DEFAULT_CONCURRENCY, EntryStore, NewEntrySink, UpsertPipeline

LOGGER = get_logger(__name__)

LETTERS: tuple[str, ...] = tuple("абвгдежзийклмнопрстуфхцчшщъыьэюя")

ProgressCallback = Callable[[CycleStats], None]


class CrawlCycle:
    """Walks every letter, feeding each page through a fresh upsert pipeline."""

    def __init__(
        self,
        fetcher: PageFetcher,
        store: EntryStore,
        *,
        letters: Sequence[str] = LETTERS,
        concurrency: int = DEFAULT_CONCURRENCY,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_delay: float = PAGE_DELAY_SECONDS,
        empty_streak_limit: int = EMPTY_PAGE_STREAK_LIMIT,
        notifier: NewEntrySink | None = None,
        track_status: bool = True,
        skip_known_urls: bool = False,
        on_progress: ProgressCallback | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.letters = tuple(letters)
        self._fetcher = fetcher
        self._store = store
        self._concurrency = concurrency
        self._page_size = page_size
        self._page_delay = page_delay
        self._empty_streak_limit = empty_streak_limit
        self._notifier = notifier
        self._track_status = track_status
        self._skip_known_urls = skip_known_urls
        self._on_progress = on_progress
        self._sleep = sleep

    def _new_pipeline(self) -> UpsertPipeline:
        return UpsertPipeline(
            self._store,
            concurrency=self._concurrency,
            notifier=self._notifier,
            track_status=self._track_status,
            skip_known_urls=self._skip_known_urls,
        )

    def _report(self, stats: CycleStats) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(stats.snapshot())
        except Exception as exc:
            LOGGER.warning("Progress callback failed: %s", exc)

    async def run_cycle(self, cancel: CancelToken | None = None) -> CycleStats:
        """Crawl every letter once and return the cycle counters.

        Errors for a single page, entry or letter are counted and the cycle moves
        on. Cancellation is honoured before each letter, page and entry; work that
        already started is allowed to finish.
        """

        cancel = cancel or CancelToken()
        stats = CycleStats()
        pipeline = self._new_pipeline()
        LOGGER.info(
            "Crawl cycle started | letters=%d | concurrency=%d",
            len(self.letters),
            pipeline.concurrency,
        )

        for letter in self.letters:
            if cancel.cancelled:
                break
            stats.index_key = letter
            stats.page_number = 0
            walker = PaginationWalker(
                self._fetcher,
                letter,
                page_size=self._page_size,
                empty_streak_limit=self._empty_streak_limit,
                page_delay=self._page_delay,
                sleep=self._sleep,
            )
            try:
                async for batch in walker.walk(cancel):
                    stats.page_number = batch.page_number
                    stats.total_seen += len(batch.entries)
                    await pipeline.process_batch(batch.entries, stats, cancel)
                    self._report(stats)
            except Exception as exc:
                stats.error_count += 1
                LOGGER.exception("Letter %s failed: %s", letter, exc)
            finally:
                stats.error_count += walker.failed_pages
            LOGGER.info(
                "Letter done | letter=%s | pages=%d | seen=%d | new=%d",
                letter,
                walker.pages_fetched,
                stats.total_seen,
                stats.new_count,
            )

        stats.cancelled = cancel.cancelled
        try:
            stats.store_total = await asyncio.to_thread(self._store.count_all)
        except Exception as exc:
            LOGGER.error("Could not count stored games: %s", exc)
        stats.finish()
        self._report(stats)

        LOGGER.info(
            "Crawl cycle %s | total=%d | new=%d | updated=%d | skipped=%d | errors=%d | "
            "store_total=%s | duration=%.1fs",
            "cancelled" if stats.cancelled else "finished",
            stats.total_seen,
            stats.new_count,
            stats.updated_count,
            stats.skipped_count,
            stats.error_count,
            stats.store_total,
            stats.duration,
        )
        return stats
