"""rotrends.com listing client.

Listing pages are rendered client-side: the games arrive in an XHR payload while
the page renders and the same games are linked from the rendered grid. Both are
read and reconciled, with the rendered grid and the static markup as fallbacks.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Protocol
from urllib.parse import quote, urlencode

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_incrementing,
)

import gamescout.selectors as selectors
from gamescout.errors import FetchError
from gamescout.extractors.chain import (
    dom_strategy,
    json_strategy,
    run_chain,
    static_markup_strategy,
)
from gamescout.extractors.markup import DEFAULT_BASE_URL
from gamescout.extractors.payload import payload_games
from gamescout.logging_config import get_logger
from gamescout.models import CatalogEntry

LOGGER = get_logger(__name__)

BASE_URL = DEFAULT_BASE_URL
DEFAULT_PAGE_SIZE = 100
MAX_ATTEMPTS = 3
FIRST_RETRY_DELAY = 2.0
GOTO_TIMEOUT_MS = 30000
JSON_WAIT_SECONDS = 7.0
DOM_WAIT_MS = 5000


class RenderHandle(Protocol):
    async def render(
        self, url: str, *, wait_until: str = ..., timeout_ms: int = ...
    ) -> tuple[str, str]: ...

    async def observe_json_response(
        self, predicate: Callable[[str], bool], timeout_s: float
    ) -> Any | None: ...

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> bool: ...

    async def extract_by_css(self, selector: str) -> list[dict[str, str]]: ...

    async def content(self) -> str: ...

    async def release(self) -> None: ...


class Renderer(Protocol):
    async def acquire_context(self) -> RenderHandle: ...


def build_listing_url(
    index_key: str,
    page_number: int,
    page_size: int = DEFAULT_PAGE_SIZE,
    base_url: str = BASE_URL,
) -> str:
    """Return the listing URL for *index_key*, sorted by current players."""

    params: list[tuple[str, str]] = [("keyword", index_key)]
    if page_number > 1:
        params.append(("page", str(page_number)))
    params.append(("page_size", str(page_size)))
    params.append(("sort", "-playing"))
    return f"{base_url.rstrip('/')}/games?{urlencode(params, quote_via=quote)}"


def is_listing_payload_url(url: str) -> bool:
    lowered = (url or "").lower()
    return any(hint in lowered for hint in selectors.LISTING_ENDPOINT_HINTS)


def _is_empty(entries: list[CatalogEntry] | None) -> bool:
    return not entries


def _dom_items_to_entries(items: list[dict[str, str]]) -> list[CatalogEntry]:
    return [
        CatalogEntry(
            identity=str(item.get("identity") or ""),
            title=str(item.get("title") or ""),
            url=str(item.get("href") or ""),
        )
        for item in items
    ]


class RotrendsClient:
    """Fetches one page of games for a letter, retrying flaky renders."""

    def __init__(
        self,
        renderer: Renderer,
        *,
        base_url: str = BASE_URL,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = FIRST_RETRY_DELAY,
        json_wait_seconds: float = JSON_WAIT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._renderer = renderer
        self._base_url = base_url.rstrip("/")
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._json_wait_seconds = json_wait_seconds
        self._sleep = sleep

    async def fetch(
        self,
        index_key: str,
        page_number: int,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> list[CatalogEntry]:
        """Return the games listed on one page.

        An empty result is retried as well as an error, since a blank render is
        indistinguishable from a transient failure on the first look. An empty
        list after the last attempt is returned as the end-of-data signal; an error
        on the last attempt is raised as :class:`FetchError`.
        """

        url = build_listing_url(index_key, page_number, page_size, self._base_url)

        def _before_sleep(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome
            reason = "empty result"
            if outcome is not None and outcome.failed:
                reason = f"error: {outcome.exception()}"
            LOGGER.warning(
                "Retrying listing page | letter=%s | page=%d | attempt=%d/%d | reason=%s",
                index_key,
                page_number,
                retry_state.attempt_number,
                self._max_attempts,
                reason,
            )

        def _give_up(retry_state: RetryCallState) -> list[CatalogEntry]:
            outcome = retry_state.outcome
            if outcome is not None and outcome.failed:
                exc = outcome.exception()
                LOGGER.error(
                    "Max attempts exceeded | letter=%s | page=%d | error=%s",
                    index_key,
                    page_number,
                    exc,
                )
                raise FetchError(
                    str(exc) or exc.__class__.__name__,
                    url=url,
                    index_key=index_key,
                    page_number=page_number,
                ) from exc
            LOGGER.warning(
                "No games parsed after %d attempts | letter=%s | page=%d",
                retry_state.attempt_number,
                index_key,
                page_number,
            )
            return []

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_incrementing(start=self._retry_delay, increment=1),
            retry=retry_if_exception_type(Exception) | retry_if_result(_is_empty),
            before_sleep=_before_sleep,
            retry_error_callback=_give_up,
            sleep=self._sleep,
        )
        return await retrying(self._fetch_once, url, index_key, page_number)

    async def _fetch_once(
        self, url: str, index_key: str, page_number: int
    ) -> list[CatalogEntry]:
        handle = await self._renderer.acquire_context()
        try:
            LOGGER.info(
                "Navigating to listing | letter=%s | page=%d | url=%s",
                index_key,
                page_number,
                url,
            )
            final_url, title = await handle.render(
                url, wait_until="domcontentloaded", timeout_ms=GOTO_TIMEOUT_MS
            )
            LOGGER.debug("Page loaded | final_url=%s | title=%s", final_url, title)

            payload = await handle.observe_json_response(
                is_listing_payload_url, self._json_wait_seconds
            )
            dom_cache: list[CatalogEntry] | None = None

            async def _dom_entries() -> list[CatalogEntry]:
                nonlocal dom_cache
                if dom_cache is None:
                    await handle.wait_for_selector(selectors.GAME_LINK, DOM_WAIT_MS)
                    dom_cache = _dom_items_to_entries(
                        await handle.extract_by_css(selectors.GAME_LINK)
                    )
                return dom_cache

            async def _from_json() -> list[CatalogEntry] | None:
                if payload_games(payload) is None:
                    return None
                return json_strategy(payload, await _dom_entries(), self._base_url)

            async def _from_dom() -> list[CatalogEntry] | None:
                return dom_strategy(await _dom_entries())

            async def _from_markup() -> list[CatalogEntry] | None:
                return static_markup_strategy(await handle.content(), self._base_url)

            strategy, entries = await run_chain(
                [
                    ("json", _from_json),
                    ("dom", _from_dom),
                    ("markup", _from_markup),
                ]
            )
            LOGGER.info(
                "Parsed listing page | letter=%s | page=%d | strategy=%s | count=%d",
                index_key,
                page_number,
                strategy or "none",
                len(entries),
            )
            return entries
        finally:
            await handle.release()
