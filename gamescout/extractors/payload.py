"""Reconciliation of the listing JSON payload with DOM-scraped links."""

from __future__ import annotations

from typing import Any

import gamescout.selectors as selectors
from gamescout.models import CatalogEntry

from .markup import DEFAULT_BASE_URL, finalize_entries

PRIMARY_ID_KEYS = ("place_id", "game_id", "id")
SECONDARY_ID_KEYS = ("game_id", "id")
TITLE_KEYS = ("game_name", "title")
CCU_KEYS = ("playing", "ccu")


def _first_present(item: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = item.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def _concurrent_users(item: dict[str, Any]) -> int | None:
    for key in CCU_KEYS:
        value = item.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return int(value)
    return None


def payload_games(payload: Any) -> list[Any] | None:
    """Return ``payload["data"]["games"]`` when the payload carries a games list."""

    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    games = data.get("games")
    return games if isinstance(games, list) else None


def reconcile_payload(
    items: list[Any],
    dom_entries: list[CatalogEntry],
    base_url: str = DEFAULT_BASE_URL,
) -> list[CatalogEntry]:
    """Build entries from JSON *items*, borrowing URLs from matching DOM links.

    JSON items are keyed by ``place_id`` while rendered links carry the ``game_id``,
    so DOM entries are looked up by the item's secondary id. Links rendered by the
    page are more reliable than URLs synthesised from raw ids; synthesis is only the
    fallback when no rendered link matches.
    """

    dom_by_identity: dict[str, CatalogEntry] = {}
    for dom_entry in dom_entries:
        dom_by_identity.setdefault(dom_entry.identity, dom_entry)

    base = base_url.rstrip("/")
    entries: list[CatalogEntry] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        identity = _first_present(item, PRIMARY_ID_KEYS)
        secondary = _first_present(item, SECONDARY_ID_KEYS)
        dom_entry = dom_by_identity.get(secondary) if secondary else None
        if dom_entry is not None:
            url = dom_entry.url
        elif secondary:
            url = f"{base}{selectors.GAME_PATH_FRAGMENT}{secondary}"
        else:
            url = ""
        entries.append(
            CatalogEntry(
                identity=identity,
                title=_first_present(item, TITLE_KEYS),
                url=url,
                concurrent_users=_concurrent_users(item),
            )
        )
    return finalize_entries(entries)
