"""Bounded fan-out of page entries into the persistent store."""

from __future__ import annotations

import asyncio
from typing import Protocol

from gamescout.errors import StoreError
from gamescout.logging_config import get_logger
from gamescout.models import CancelToken, CatalogEntry, CycleStats, DedupResult

LOGGER = get_logger(__name__)

DEFAULT_CONCURRENCY = 3


class EntryStore(Protocol):
    def upsert_by_identity(self, entry: CatalogEntry) -> int: ...

    def upsert_with_status(self, entry: CatalogEntry) -> DedupResult: ...

    def exists_by_url(self, url: str) -> bool: ...

    def count_all(self) -> int: ...


class NewEntrySink(Protocol):
    def notify_new(self, entry: CatalogEntry) -> None: ...


class UpsertPipeline:
    """Classifies entries as new, updated or skipped against the store.

    One pipeline is created per crawl cycle; its semaphore bounds the number of
    store calls in flight across every page of that cycle. Store calls are
    blocking and run in worker threads.
    """

    def __init__(
        self,
        store: EntryStore,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        notifier: NewEntrySink | None = None,
        track_status: bool = True,
        skip_known_urls: bool = False,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._track_status = track_status
        self._skip_known_urls = skip_known_urls
        self.concurrency = max(1, int(concurrency))
        self._semaphore = asyncio.Semaphore(self.concurrency)

    async def upsert(self, entry: CatalogEntry) -> DedupResult:
        """Persist *entry*; raises :class:`StoreError` on persistence failure."""

        if self._track_status:
            return await asyncio.to_thread(self._store.upsert_with_status, entry)
        await asyncio.to_thread(self._store.upsert_by_identity, entry)
        return DedupResult(entry=entry, is_new=False)

    async def process_batch(
        self,
        entries: list[CatalogEntry],
        stats: CycleStats,
        cancel: CancelToken | None = None,
    ) -> None:
        """Upsert every entry of one page; failures are counted, never raised."""

        await asyncio.gather(*(self._process_entry(entry, stats, cancel) for entry in entries))

    async def _process_entry(
        self,
        entry: CatalogEntry,
        stats: CycleStats,
        cancel: CancelToken | None,
    ) -> None:
        if not entry.is_complete():
            stats.skipped_count += 1
            LOGGER.debug("Skipping incomplete entry | source_id=%s", entry.identity)
            return

        async with self._semaphore:
            if cancel is not None and cancel.cancelled:
                return
            try:
                if self._skip_known_urls and await asyncio.to_thread(
                    self._store.exists_by_url, entry.url
                ):
                    stats.skipped_count += 1
                    return
                result = await self.upsert(entry)
            except StoreError as exc:
                stats.error_count += 1
                LOGGER.warning("Failed to process game | %s", exc)
                return
            except Exception as exc:
                stats.error_count += 1
                LOGGER.warning(
                    "Failed to process game | source_id=%s | error=%s",
                    entry.identity,
                    exc,
                )
                return

        if not result.is_new:
            stats.updated_count += 1
            return

        stats.new_count += 1
        LOGGER.info("New game found: %s (%s)", entry.title, entry.url)
        await self._announce(entry)

    async def _announce(self, entry: CatalogEntry) -> None:
        if self._notifier is None:
            return
        try:
            await asyncio.to_thread(self._notifier.notify_new, entry)
        except Exception as exc:  # pragma: no cover - notifier swallows its own errors
            LOGGER.error("Notifier failed for %s: %s", entry.url, exc)
