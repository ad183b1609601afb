from __future__ import annotations

import logging
from typing import Optional, Union

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .backoff import BackoffStrategy
from .entities import Base
from .models import UrlType
from .repositories import AccountRepository, ItemRepository, SuperTagRepository, TagRepository

LOGGER = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///band_db.sqlite"


class Database:
    """Owns the engine, the session factory and the repositories.

    SQLite is used from several worker threads at once, so connections are
    created with check_same_thread disabled and a busy timeout; writers that
    still hit "database is locked" are retried by the repositories.
    """

    def __init__(
        self,
        url: str = DEFAULT_DATABASE_URL,
        echo: bool = False,
        backoff: Optional[BackoffStrategy] = None,
        lock_retries: int = 5,
    ) -> None:
        self.url = url
        connect_args = {}
        if url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": 30}
        self.engine: Engine = create_engine(url, echo=echo, connect_args=connect_args)
        self._sessions: sessionmaker[Session] = sessionmaker(
            bind=self.engine, expire_on_commit=False
        )

        backoff = backoff or BackoffStrategy(base_seconds=0.1, max_seconds=2.0)
        self.account = AccountRepository(self._sessions, backoff, lock_retries)
        self.item = ItemRepository(self._sessions, backoff, lock_retries)
        self.tag = TagRepository(self._sessions, backoff, lock_retries)
        self.super_tag = SuperTagRepository(self._sessions, backoff, lock_retries)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)
        LOGGER.debug("Ensured schema exists for %s", self.url)

    def repository(self, url_type: UrlType) -> Union[AccountRepository, ItemRepository]:
        if url_type == UrlType.ACCOUNT:
            return self.account
        if url_type == UrlType.ITEM:
            return self.item
        raise ValueError(f"Unknown url type: {url_type}")

    def reset_all_busy(self) -> int:
        """Clear busy flags left behind by a crashed run."""
        cleared = self.account.reset_all_busy() + self.item.reset_all_busy()
        if cleared:
            LOGGER.warning("Reset %d stale busy flag(s) from a previous run", cleared)
        return cleared

    def close(self) -> None:
        self.engine.dispose()
