"""Page-by-page walk over one letter of the listing."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Protocol

from gamescout.errors import FetchError
from gamescout.logging_config import get_logger
from gamescout.models import CancelToken, CatalogEntry, PageBatch

LOGGER = get_logger(__name__)

DEFAULT_PAGE_SIZE = 100
EMPTY_PAGE_STREAK_LIMIT = 3
PAGE_DELAY_SECONDS = 1.0


class PageFetcher(Protocol):
    async def fetch(
        self, index_key: str, page_number: int, page_size: int = ...
    ) -> list[CatalogEntry]: ...


class PaginationWalker:
    """Yields non-empty page batches for one letter until the listing runs dry.

    A single empty page may be a render glitch, so the walk only ends after
    ``empty_streak_limit`` consecutive empty pages. Pages that failed with
    :class:`FetchError` count as empty and are tallied in ``failed_pages``.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        index_key: str,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        empty_streak_limit: int = EMPTY_PAGE_STREAK_LIMIT,
        page_delay: float = PAGE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.index_key = index_key
        self.failed_pages = 0
        self.pages_fetched = 0
        self._fetcher = fetcher
        self._page_size = page_size
        self._empty_streak_limit = max(1, empty_streak_limit)
        self._page_delay = page_delay
        self._sleep = sleep
        self._processed: set[int] = set()
        self._started = False

    async def walk(self, cancel: CancelToken | None = None) -> AsyncIterator[PageBatch]:
        if self._started:
            raise RuntimeError(f"Walk for letter {self.index_key!r} already started")
        self._started = True

        page_number = 1
        empty_streak = 0
        while True:
            if cancel is not None and cancel.cancelled:
                LOGGER.info(
                    "Walk cancelled | letter=%s | page=%d", self.index_key, page_number
                )
                return
            if page_number in self._processed:
                LOGGER.error(
                    "Page already processed; ending walk | letter=%s | page=%d",
                    self.index_key,
                    page_number,
                )
                return
            if page_number > 1 and self._page_delay > 0:
                await self._sleep(self._page_delay)

            try:
                entries = await self._fetcher.fetch(
                    self.index_key, page_number, self._page_size
                )
            except FetchError as exc:
                self.failed_pages += 1
                LOGGER.error(
                    "Page fetch failed | letter=%s | page=%d | error=%s",
                    self.index_key,
                    page_number,
                    exc,
                )
                entries = []
            self._processed.add(page_number)
            self.pages_fetched += 1

            if not entries:
                empty_streak += 1
                LOGGER.warning(
                    "Empty page %d for letter %s (%d/%d)",
                    page_number,
                    self.index_key,
                    empty_streak,
                    self._empty_streak_limit,
                )
                if empty_streak >= self._empty_streak_limit:
                    LOGGER.info(
                        "Stopping pagination for letter %s after %d empty pages",
                        self.index_key,
                        empty_streak,
                    )
                    return
                page_number += 1
                continue

            empty_streak = 0
            LOGGER.info(
                "Page parsed | letter=%s | page=%d | count=%d",
                self.index_key,
                page_number,
                len(entries),
            )
            yield PageBatch(
                index_key=self.index_key,
                page_number=page_number,
                entries=list(entries),
            )
            page_number += 1
