"""Telegram alerts for newly discovered games."""

from __future__ import annotations

import os
import re
import threading
import time
from typing import Iterable

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gamescout.logging_config import get_logger
from gamescout.models import CatalogEntry

LOGGER = get_logger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
NEW_GAME_HEADING = "🎮 Найдена новая игра!"

_MARKDOWN_V2_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")
_MARKDOWN_V2_LINK_SPECIAL = re.compile(r"([)\\])")


class TransientDeliveryError(RuntimeError):
    """Network failure, rate limit or server error; worth retrying."""


class DeliveryRejected(RuntimeError):
    """Telegram refused the message as sent."""


def escape_markdown_v2(text: str) -> str:
    return _MARKDOWN_V2_SPECIAL.sub(r"\\\1", text)


def format_markdown(entry: CatalogEntry) -> str:
    url = _MARKDOWN_V2_LINK_SPECIAL.sub(r"\\\1", entry.url)
    return (
        f"{escape_markdown_v2(NEW_GAME_HEADING)}\n\n"
        f"[{escape_markdown_v2(entry.title)}]({url})"
    )


def format_plain(entry: CatalogEntry) -> str:
    return f"{NEW_GAME_HEADING}\n\n{entry.title}\n{entry.url}"


class SubscriberRegistry:
    """Append-only set of chat ids that receive alerts."""

    def __init__(self, chat_ids: Iterable[str | int] = ()) -> None:
        self._lock = threading.Lock()
        self._chat_ids: dict[str, None] = {}
        for chat_id in chat_ids:
            self.add(chat_id)

    def add(self, chat_id: str | int) -> bool:
        key = str(chat_id).strip()
        if not key:
            return False
        with self._lock:
            if key in self._chat_ids:
                return False
            self._chat_ids[key] = None
        LOGGER.info("Subscriber registered | chat_id=%s", key)
        return True

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self._chat_ids)

    def __len__(self) -> int:
        with self._lock:
            return len(self._chat_ids)

    def __contains__(self, chat_id: object) -> bool:
        with self._lock:
            return str(chat_id).strip() in self._chat_ids


class Notifier:
    """Send a message per new game to every subscriber when a bot token is present."""

    def __init__(
        self,
        registry: SubscriberRegistry,
        token: str | None = None,
        *,
        session: requests.Session | None = None,
        min_interval: float = 1.0,
        timeout: float = 8,
    ) -> None:
        self.registry = registry
        self._token = token if token is not None else os.getenv("TELEGRAM_BOT_TOKEN")
        self._session = session or requests.Session()
        self._min_interval = min_interval
        self._timeout = timeout
        self._send_lock = threading.Lock()
        self._last_send = 0.0

    def notify_new(self, entry: CatalogEntry) -> None:
        """Alert every subscriber about *entry*; never raises."""

        chat_ids = self.registry.snapshot()
        if not self._token or not chat_ids:
            LOGGER.info("Alert (noop): %s | %s", entry.title, entry.url)
            return

        delivered = 0
        for chat_id in chat_ids:
            try:
                if self._deliver(chat_id, entry):
                    delivered += 1
            except Exception as exc:  # pragma: no cover - _deliver handles its own errors
                LOGGER.error("Alert delivery crashed | chat_id=%s | error=%s", chat_id, exc)
        LOGGER.info(
            "New game alert sent | title=%s | delivered=%d/%d",
            entry.title,
            delivered,
            len(chat_ids),
        )

    def _deliver(self, chat_id: str, entry: CatalogEntry) -> bool:
        try:
            self._send_message(chat_id, format_markdown(entry), parse_mode="MarkdownV2")
            return True
        except Exception as exc:
            LOGGER.warning(
                "Formatted alert failed; sending plain text | chat_id=%s | error=%s",
                chat_id,
                exc,
            )

        try:
            self._send_message(chat_id, format_plain(entry))
            return True
        except Exception as exc:
            LOGGER.error(
                "Alert delivery failed even as plain text | chat_id=%s | error=%s",
                chat_id,
                exc,
            )
            return False

    def _throttle(self) -> None:
        with self._send_lock:
            elapsed = time.monotonic() - self._last_send
            if elapsed < self._min_interval:
                time.sleep(self._min_interval - elapsed)
            self._last_send = time.monotonic()

    @retry(
        retry=retry_if_exception_type(TransientDeliveryError),
        wait=wait_exponential(multiplier=0.5, max=10),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _send_message(self, chat_id: str, text: str, parse_mode: str | None = None) -> None:
        self._throttle()
        url = f"{TELEGRAM_API_URL}/bot{self._token}/sendMessage"
        payload: dict[str, object] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": False,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        try:
            response = self._session.post(url, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            raise TransientDeliveryError(str(exc)) from exc
        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientDeliveryError(f"HTTP {status}")
        if status >= 400:
            raise DeliveryRejected(f"HTTP {status}: {response.text[:200]}")
