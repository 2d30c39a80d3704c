"""Helpers for turning listing markup into catalog entries."""

from __future__ import annotations

import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup

import gamescout.selectors as selectors
from gamescout.models import CatalogEntry

DEFAULT_BASE_URL = "https://rotrends.com"

_GAME_ID_RE = re.compile(r"/(?:games|game)/(\d+)")


def identity_from_url(url: str) -> str:
    """Return the numeric game id embedded in *url*, or the url itself."""

    match = _GAME_ID_RE.search(url or "")
    if match:
        return match.group(1)
    return url


def absolute_url(href: str, base_url: str = DEFAULT_BASE_URL) -> str:
    href = (href or "").strip()
    if href.startswith(("http://", "https://")):
        return href
    return urljoin(base_url.rstrip("/") + "/", href)


def finalize_entries(entries: list[CatalogEntry]) -> list[CatalogEntry]:
    """Drop incomplete entries and repeated identities, keeping first occurrences."""

    seen: set[str] = set()
    cleaned: list[CatalogEntry] = []
    for entry in entries:
        if not entry.is_complete():
            continue
        if entry.identity in seen:
            continue
        seen.add(entry.identity)
        cleaned.append(entry)
    return cleaned


def parse_static_markup(html: str, base_url: str = DEFAULT_BASE_URL) -> list[CatalogEntry]:
    """Parse game links out of raw page markup."""

    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    entries: list[CatalogEntry] = []
    for node in soup.select(selectors.STATIC_GAME_NODE):
        anchor = node if node.name == "a" else node.select_one(selectors.STATIC_GAME_ANCHOR)
        if anchor is None:
            continue
        href = str(anchor.get("href") or "").strip()
        if not href:
            continue
        title = str(anchor.get("title") or "").strip() or anchor.get_text(strip=True)
        url = absolute_url(href, base_url)
        entries.append(
            CatalogEntry(identity=identity_from_url(url), title=title, url=url)
        )
    return finalize_entries(entries)
