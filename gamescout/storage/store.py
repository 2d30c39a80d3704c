"""Store gateway used by the crawl pipeline.

Every call opens its own session and commits or rolls back before returning, so a
single ``GameStore`` can be shared by the upsert worker threads.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from gamescout.errors import StoreError
from gamescout.logging_config import get_logger
from gamescout.models import CatalogEntry, DedupResult

from . import repo
from .models_sql import Game

LOGGER = get_logger(__name__)

T = TypeVar("T")


class GameStore:
    """Persistent store collaborator backed by a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _transaction(self, action: Callable[[Session], T], *, write: bool) -> T:
        session = None
        try:
            session = self._session_factory()
            result = action(session)
            if write:
                session.commit()
            return result
        except SQLAlchemyError:
            if session is not None:
                session.rollback()
            raise
        finally:
            if session is not None:
                session.close()

    def upsert_by_identity(self, entry: CatalogEntry) -> int:
        try:
            return self._transaction(lambda s: repo.upsert_game(s, entry), write=True)
        except SQLAlchemyError as exc:
            raise StoreError(str(exc), identity=entry.identity, url=entry.url) from exc

    def upsert_with_status(self, entry: CatalogEntry) -> DedupResult:
        try:
            return self._transaction(
                lambda s: repo.upsert_game_with_status(s, entry), write=True
            )
        except IntegrityError:
            # Another worker inserted the same game between our lookup and insert.
            LOGGER.debug(
                "Concurrent insert detected; re-running match | source_id=%s",
                entry.identity,
            )
        except SQLAlchemyError as exc:
            raise StoreError(str(exc), identity=entry.identity, url=entry.url) from exc

        try:
            result = self._transaction(
                lambda s: repo.upsert_game_with_status(s, entry), write=True
            )
        except SQLAlchemyError as exc:
            raise StoreError(str(exc), identity=entry.identity, url=entry.url) from exc
        return DedupResult(entry=result.entry, is_new=False)

    def exists_by_url(self, url: str) -> bool:
        try:
            return self._transaction(lambda s: repo.game_exists_by_url(s, url), write=False)
        except SQLAlchemyError as exc:
            raise StoreError(str(exc), url=url) from exc

    def count_all(self) -> int:
        try:
            return self._transaction(repo.count_games, write=False)
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def recent(self, limit: int = 20) -> list[Game]:
        return self._transaction(
            lambda s: repo.list_recent_games(s, limit=limit), write=False
        )

    def search(self, query: str, limit: int = 50) -> list[Game]:
        return self._transaction(
            lambda s: repo.search_games(s, query, limit=limit), write=False
        )
