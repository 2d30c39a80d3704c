"""Exception types raised by the crawl core."""

from __future__ import annotations

from typing import Optional


class _ContextError(Exception):
    default_message = "Crawl failure."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        url: Optional[str] = None,
        index_key: Optional[str] = None,
        page_number: Optional[int] = None,
        identity: Optional[str] = None,
    ) -> None:
        self.message = message or self.default_message
        self.url = url
        self.index_key = index_key
        self.page_number = page_number
        self.identity = identity
        super().__init__(self.message)

    def __str__(self) -> str:
        context_parts: list[str] = []
        if self.index_key:
            context_parts.append(f"letter={self.index_key}")
        if self.page_number is not None:
            context_parts.append(f"page={self.page_number}")
        if self.identity:
            context_parts.append(f"source_id={self.identity}")
        if self.url:
            context_parts.append(f"url={self.url}")
        context = ", ".join(context_parts)
        return f"{self.message} ({context})" if context else self.message


class FetchError(_ContextError):
    """Raised when a listing page cannot be rendered after every attempt."""

    default_message = "Failed to fetch listing page."


class StoreError(_ContextError):
    """Raised when a single entry cannot be persisted."""

    default_message = "Failed to persist entry."
