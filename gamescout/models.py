"""Plain data types shared by the fetch client, the pipeline and the scheduler."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone


@dataclass(frozen=True)
class CatalogEntry:
    """One game discovered on a listing page, before persistence."""

    identity: str
    title: str
    url: str
    concurrent_users: int | None = None

    def is_complete(self) -> bool:
        return bool(self.identity and self.title.strip() and self.url.strip())


@dataclass(frozen=True)
class DedupResult:
    entry: CatalogEntry
    is_new: bool


@dataclass(frozen=True)
class PageBatch:
    index_key: str
    page_number: int
    entries: list[CatalogEntry]


@dataclass
class CycleStats:
    """Counters for one crawl cycle plus the position reached so far."""

    total_seen: int = 0
    new_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    index_key: str | None = None
    page_number: int = 0
    store_total: int | None = None
    cancelled: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    _started_monotonic: float = field(default_factory=time.monotonic, repr=False)

    def snapshot(self) -> "CycleStats":
        return replace(self)

    def finish(self) -> None:
        self.finished_at = datetime.now(timezone.utc)

    @property
    def duration(self) -> float:
        return time.monotonic() - self._started_monotonic

    def as_summary(self) -> dict[str, object]:
        return {
            "total": self.total_seen,
            "new": self.new_count,
            "updated": self.updated_count,
            "skipped": self.skipped_count,
            "errors": self.error_count,
            "store_total": self.store_total,
            "cancelled": self.cancelled,
            "last_letter": self.index_key,
            "last_page": self.page_number,
        }


class CancelToken:
    """Cooperative cancellation flag polled at letter, page and entry boundaries."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self._cancelled})"
