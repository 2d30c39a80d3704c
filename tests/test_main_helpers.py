from __future__ import annotations

import pytest

from gamescout import main
from gamescout.crawler.cycle import LETTERS
from gamescout.main import (
    DEFAULT_CONFIG,
    _apply_env_overrides,
    _deep_merge,
    _load_config,
    _ping_healthcheck,
    _resolve_concurrency,
    _resolve_letters,
    parse_args,
)


def test_parse_args_defaults_to_continuous_search() -> None:
    args = parse_args([])
    assert args.once is False
    assert args.populate is False
    assert args.letters == []
    assert args.concurrency is None


def test_parse_args_letters_and_concurrency() -> None:
    args = parse_args(["--once", "--letters", "а, б в", "--concurrency", "5"])
    assert args.once is True
    assert args.letters == ["а", "б", "в"]
    assert args.concurrency == 5


def test_parse_args_rejects_bad_values() -> None:
    with pytest.raises(SystemExit):
        parse_args(["--concurrency", "0"])
    with pytest.raises(SystemExit):
        parse_args(["--once", "--populate"])


def test_deep_merge_keeps_unrelated_defaults() -> None:
    merged = _deep_merge(DEFAULT_CONFIG, {"source": {"page_size": 50}})
    assert merged["source"]["page_size"] == 50
    assert merged["source"]["base_url"] == "https://rotrends.com"
    assert DEFAULT_CONFIG["source"]["page_size"] == 100


def test_load_config_reads_yaml(tmp_path) -> None:
    path = tmp_path / "config.yml"
    path.write_text("crawl:\n  concurrency: 6\noutput:\n  sqlite_path: x.sqlite\n", encoding="utf-8")

    config = _load_config(path)

    assert config["crawl"]["concurrency"] == 6
    assert config["output"]["sqlite_path"] == "x.sqlite"
    assert config["source"]["letters"] == list(LETTERS)


def test_load_config_missing_file_uses_defaults(tmp_path) -> None:
    assert _load_config(tmp_path / "missing.yml") == DEFAULT_CONFIG


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("GAMESCOUT_CONCURRENCY", "4")
    monkeypatch.setenv("GAMESCOUT_DATABASE_PATH", "/data/games.sqlite")
    monkeypatch.setenv("TELEGRAM_CHAT_IDS", "10, 20,,10")
    monkeypatch.setenv("GAMESCOUT_HEALTHCHECK_URL", "https://hc.example/ping")
    config = _deep_merge(DEFAULT_CONFIG, {"alerts": {"chat_ids": [10]}})

    merged = _apply_env_overrides(config)

    assert merged["crawl"]["concurrency"] == "4"
    assert merged["output"]["sqlite_path"] == "/data/games.sqlite"
    assert merged["alerts"]["chat_ids"] == ["10", "20"]
    assert merged["healthcheck_url"] == "https://hc.example/ping"
    assert config["alerts"]["chat_ids"] == [10]


def test_resolve_concurrency_falls_back_to_default() -> None:
    assert _resolve_concurrency("4") == 4
    assert _resolve_concurrency("many") == 3
    assert _resolve_concurrency(-2) == 3
    assert _resolve_concurrency(None) == 3


def test_resolve_letters_accepts_string_or_list() -> None:
    assert _resolve_letters("аб в") == ["а", "б", "в"]
    assert _resolve_letters(["а", " ", "я"]) == ["а", "я"]
    assert _resolve_letters([]) == list(LETTERS)


def test_ping_healthcheck(monkeypatch) -> None:
    requested = []

    class _Response:
        status_code = 200

    def fake_get(url, timeout):
        requested.append(url)
        return _Response()

    monkeypatch.setattr(main.requests, "get", fake_get)

    _ping_healthcheck({"healthcheck_url": ""})
    _ping_healthcheck({"healthcheck_url": "https://hc.example/ping"})

    assert requested == ["https://hc.example/ping"]
