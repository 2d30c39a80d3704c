"""Ordered extraction strategies for one rendered listing page.

Each strategy returns ``None`` when it has nothing to say (for example no JSON
payload was observed) or a possibly empty list of entries. The first non-empty list
wins; an empty result after every strategy is the end-of-data signal.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Sequence

from gamescout.logging_config import get_logger
from gamescout.models import CatalogEntry

from .markup import DEFAULT_BASE_URL, finalize_entries, parse_static_markup
from .payload import payload_games, reconcile_payload

LOGGER = get_logger(__name__)

Strategy = Callable[[], Awaitable["list[CatalogEntry] | None"]]


def json_strategy(
    payload: Any,
    dom_entries: list[CatalogEntry],
    base_url: str = DEFAULT_BASE_URL,
) -> list[CatalogEntry] | None:
    items = payload_games(payload)
    if items is None:
        return None
    return reconcile_payload(items, dom_entries, base_url)


def dom_strategy(dom_entries: list[CatalogEntry]) -> list[CatalogEntry] | None:
    if not dom_entries:
        return None
    return finalize_entries(dom_entries)


def static_markup_strategy(
    html: str, base_url: str = DEFAULT_BASE_URL
) -> list[CatalogEntry] | None:
    if not html:
        return None
    return parse_static_markup(html, base_url)


async def run_chain(
    strategies: Sequence[tuple[str, Strategy]],
) -> tuple[str | None, list[CatalogEntry]]:
    """Run *strategies* in order and return ``(name, entries)`` of the first hit."""

    for name, strategy in strategies:
        entries = await strategy()
        if entries:
            LOGGER.debug("Extraction strategy %s produced %d entries", name, len(entries))
            return name, entries
    return None, []
