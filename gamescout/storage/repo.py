"""Repository helpers for interacting with persistent storage."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gamescout.models import CatalogEntry, DedupResult

from .models_sql import Game


def _now(ts: datetime | None) -> datetime:
    return ts if ts is not None else datetime.now(timezone.utc)


def get_game_by_source_id(session: Session, source_id: str) -> Game | None:
    stmt = select(Game).where(Game.source_id == source_id).limit(1)
    return session.execute(stmt).scalar_one_or_none()


def find_game_by_title_url(session: Session, title: str, url: str) -> Game | None:
    """Return the oldest row stored under *title* and *url*.

    Historical duplicates of the pair may exist; the oldest row is the one that
    absorbs later sightings.
    """

    stmt = (
        select(Game)
        .where(Game.title == title, Game.url == url)
        .order_by(Game.id.asc())
        .limit(1)
    )
    return session.execute(stmt).scalar_one_or_none()


def upsert_game(
    session: Session,
    entry: CatalogEntry,
    *,
    ts_utc: datetime | None = None,
) -> int:
    """Insert or update a game keyed by its upstream identity; return its id."""

    now = _now(ts_utc)
    game = get_game_by_source_id(session, entry.identity)
    if game is None:
        game = Game(
            source_id=entry.identity,
            title=entry.title,
            url=entry.url,
            created_at=now,
            updated_at=now,
        )
        session.add(game)
    else:
        game.title = entry.title
        game.url = entry.url
        game.updated_at = now
    session.flush()
    return game.id


def upsert_game_with_status(
    session: Session,
    entry: CatalogEntry,
    *,
    ts_utc: datetime | None = None,
) -> DedupResult:
    """Upsert *entry* and report whether it was seen for the first time.

    Matching order:

    1. an existing row with the same title and url is the same game under a churned
       identity, so only its ``source_id`` and ``updated_at`` change;
    2. an existing row with the same ``source_id`` gets the new title and url;
    3. otherwise a new row is inserted.
    """

    now = _now(ts_utc)

    by_pair = find_game_by_title_url(session, entry.title, entry.url)
    if by_pair is not None:
        if by_pair.source_id != entry.identity:
            # The incoming identity may already belong to another row; the unique
            # constraint forbids moving it, so the pair row keeps its identity.
            if get_game_by_source_id(session, entry.identity) is None:
                by_pair.source_id = entry.identity
        by_pair.updated_at = now
        session.flush()
        return DedupResult(entry=entry, is_new=False)

    existing = get_game_by_source_id(session, entry.identity)
    if existing is not None:
        existing.title = entry.title
        existing.url = entry.url
        existing.updated_at = now
        session.flush()
        return DedupResult(entry=entry, is_new=False)

    session.add(
        Game(
            source_id=entry.identity,
            title=entry.title,
            url=entry.url,
            created_at=now,
            updated_at=now,
        )
    )
    session.flush()
    return DedupResult(entry=entry, is_new=True)


def game_exists_by_url(session: Session, url: str) -> bool:
    stmt = select(Game.id).where(Game.url == url).limit(1)
    return session.execute(stmt).first() is not None


def count_games(session: Session) -> int:
    stmt = select(func.count(Game.id))
    return int(session.scalar(stmt) or 0)


def list_recent_games(session: Session, *, limit: int = 100, offset: int = 0) -> list[Game]:
    """Return games ordered by discovery time, newest first."""

    stmt = (
        select(Game)
        .order_by(Game.created_at.desc(), Game.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(session.scalars(stmt))


def search_games(session: Session, query: str, *, limit: int = 50) -> list[Game]:
    """Return games whose title contains *query*, newest first."""

    needle = (query or "").strip()
    if not needle:
        return []
    stmt = (
        select(Game)
        .where(Game.title.contains(needle, autoescape=True))
        .order_by(Game.created_at.desc(), Game.id.desc())
        .limit(limit)
    )
    return list(session.scalars(stmt))
