"""Centralised helpers for Playwright launch configuration."""

from __future__ import annotations

import os
import shlex
from functools import lru_cache
from typing import Any
from urllib.parse import urlparse

from playwright.async_api import Browser, Playwright

_FALSE_VALUES = {"0", "false", "no", "off"}

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in _FALSE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


@lru_cache(maxsize=1)
def headless_enabled() -> bool:
    """Return True if Playwright should run in headless mode."""

    return _as_bool(os.getenv("GAMESCOUT_HEADLESS"), True)


def _proxy_config() -> dict[str, str] | None:
    raw = os.getenv("GAMESCOUT_PROXY")
    if not raw:
        return None
    parsed = urlparse(raw)
    if not parsed.scheme:
        return {"server": f"http://{raw}"}
    return {"server": raw}


def resolve_user_agent() -> str:
    value = (os.getenv("USER_AGENT") or "").strip()
    return value or DEFAULT_USER_AGENT


def default_timeout_ms() -> int:
    value = _env_int("GAMESCOUT_PAGE_TIMEOUT_MS", 30000)
    return value if value > 0 else 30000


def launch_kwargs() -> dict[str, Any]:
    """Return kwargs passed to chromium.launch."""

    args = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-accelerated-2d-canvas",
        "--no-first-run",
        "--no-zygote",
        "--disable-gpu",
    ]
    extra_args = os.getenv("GAMESCOUT_CHROMIUM_ARGS")
    if extra_args:
        args.extend(shlex.split(extra_args))

    kwargs: dict[str, Any] = {
        "headless": headless_enabled(),
        "args": args,
    }

    channel = os.getenv("GAMESCOUT_BROWSER_CHANNEL")
    if channel:
        kwargs["channel"] = channel

    proxy = _proxy_config()
    if proxy:
        kwargs["proxy"] = proxy

    return kwargs


def context_options() -> dict[str, Any]:
    """Return kwargs for ``browser.new_context`` used for every isolated render."""

    options: dict[str, Any] = {
        "user_agent": resolve_user_agent(),
        "viewport": dict(DEFAULT_VIEWPORT),
    }
    if _as_bool(os.getenv("GAMESCOUT_IGNORE_HTTPS_ERRORS"), False):
        options["ignore_https_errors"] = True
    return options


async def launch_browser(playwright: Playwright) -> Browser:
    """Launch Chromium according to env overrides."""

    return await playwright.chromium.launch(**launch_kwargs())


async def close_browser(browser: Browser | None) -> None:
    """Close the provided browser without raising."""

    if browser is None:
        return
    try:
        await browser.close()
    except Exception:
        pass
