"""Repositories over the task and relationship tables.

Every insert follows the same insert-or-get pattern: look the row up, insert
it if missing, and if the insert loses a race to another worker (unique
constraint violation) fetch the row that won instead of failing.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from .backoff import BackoffStrategy
from .entities import (
    AccountEntity,
    FollowerEntity,
    ItemEntity,
    ItemToAccountEntity,
    ItemToTagEntity,
    SuperTagEntity,
    TagEntity,
    TagToSuperTagEntity,
    utc_now,
)
from .models import InsertResult

LOGGER = logging.getLogger(__name__)

R = TypeVar("R")
TaskT = TypeVar("TaskT", AccountEntity, ItemEntity)


class BaseRepository:
    def __init__(
        self,
        sessions: sessionmaker[Session],
        backoff: BackoffStrategy,
        lock_retries: int = 5,
    ) -> None:
        self._sessions = sessions
        self._backoff = backoff
        self._lock_retries = max(1, lock_retries)

    def _retry_locked(self, fn: Callable[[], R]) -> R:
        """Run a write, retrying while SQLite reports the database as locked."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except OperationalError as exc:
                if "locked" not in str(exc).lower() or attempt >= self._lock_retries:
                    raise
                sleep_s = self._backoff.get_sleep(attempt)
                LOGGER.debug("Database locked, retry %d in %.2fs", attempt, sleep_s)
                time.sleep(sleep_s)

    def _find(self, model: Type[Any], **keys: Any) -> Optional[Any]:
        with self._sessions() as session:
            return session.scalars(select(model).filter_by(**keys).limit(1)).first()

    def _insert_or_get(self, model: Type[Any], lookup: Dict[str, Any], fields: Dict[str, Any]) -> InsertResult:
        existing = self._find(model, **lookup)
        if existing is not None:
            return InsertResult(existing, False)

        def _insert():
            with self._sessions.begin() as session:
                entity = model(**lookup, **fields)
                session.add(entity)
            return entity

        try:
            return InsertResult(self._retry_locked(_insert), True)
        except IntegrityError:
            existing = self._find(model, **lookup)
            if existing is None:
                raise
            LOGGER.debug("Insert race on %s %s, using existing row", model.__tablename__, lookup)
            return InsertResult(existing, False)

    def _add_relation(self, model: Type[Any], keys: Dict[str, Any], fields: Optional[Dict[str, Any]] = None) -> bool:
        """Insert a relationship row; False when the pair already existed."""
        fields = fields or {}

        def _add() -> bool:
            with self._sessions.begin() as session:
                existing = session.scalars(select(model).filter_by(**keys).limit(1)).first()
                if existing is not None:
                    for name, value in fields.items():
                        if getattr(existing, name) != value:
                            setattr(existing, name, value)
                    return False
                session.add(model(**keys, **fields))
            return True

        try:
            return self._retry_locked(_add)
        except IntegrityError:
            if self._find(model, **keys) is None:
                raise
            return False

    def _execute(self, statement: Any) -> int:
        def _run() -> int:
            with self._sessions.begin() as session:
                return session.execute(statement).rowcount

        return self._retry_locked(_run)


class TaskRepository(BaseRepository, Generic[TaskT]):
    """Task state for one crawlable entity kind."""

    entity: Type[TaskT]

    def _new_fields(self) -> Dict[str, Any]:
        return {"is_busy": False, "failed_count": 0, "last_processing_date": None}

    def _not_processed_filters(self) -> List[Any]:
        return []

    def get_by_id(self, task_id: int) -> Optional[TaskT]:
        with self._sessions() as session:
            return session.get(self.entity, task_id)

    def get_by_url(self, url: str) -> Optional[TaskT]:
        return self._find(self.entity, url=url)

    def insert_or_get(self, url: str) -> InsertResult:
        return self._insert_or_get(self.entity, {"url": url}, self._new_fields())

    def get_not_processed(self, limit: int = 400, failed_below: Optional[int] = None) -> List[TaskT]:
        """Tasks never completed and not held by a worker."""
        stmt = select(self.entity).where(
            self.entity.last_processing_date.is_(None),
            self.entity.is_busy.is_(False),
            *self._not_processed_filters(),
        )
        if failed_below is not None:
            stmt = stmt.where(self.entity.failed_count < failed_below)
        stmt = stmt.order_by(self.entity.id).limit(limit)
        with self._sessions() as session:
            return list(session.scalars(stmt))

    def try_claim(self, task_id: int) -> bool:
        """Atomically mark a free, unfinished task busy; False if another worker got there first."""
        stmt = (
            update(self.entity)
            .where(
                self.entity.id == task_id,
                self.entity.is_busy.is_(False),
                self.entity.last_processing_date.is_(None),
            )
            .values(is_busy=True)
        )
        return self._execute(stmt) == 1

    def update_busy(self, task_id: int, is_busy: bool) -> None:
        self._execute(update(self.entity).where(self.entity.id == task_id).values(is_busy=is_busy))

    def update_failed(self, task_id: int, clear: bool = False) -> None:
        value = 0 if clear else self.entity.failed_count + 1
        self._execute(update(self.entity).where(self.entity.id == task_id).values(failed_count=value))

    def update_processing_date(self, task_id: int, when: Optional[datetime] = None) -> None:
        self._execute(
            update(self.entity)
            .where(self.entity.id == task_id)
            .values(last_processing_date=when or utc_now())
        )

    def reset_all_busy(self) -> int:
        return self._execute(
            update(self.entity).where(self.entity.is_busy.is_(True)).values(is_busy=False)
        )

    def count_by_state(self) -> Dict[str, int]:
        e = self.entity
        with self._sessions() as session:
            total = session.scalar(select(func.count()).select_from(e)) or 0
            processed = session.scalar(
                select(func.count()).select_from(e).where(e.last_processing_date.is_not(None))
            ) or 0
            busy = session.scalar(select(func.count()).select_from(e).where(e.is_busy.is_(True))) or 0
            failing = session.scalar(
                select(func.count())
                .select_from(e)
                .where(e.last_processing_date.is_(None), e.failed_count > 0)
            ) or 0
        return {"total": total, "processed": processed, "busy": busy, "failing": failing}

    def remove_by_url(self, url: str) -> bool:
        existing = self.get_by_url(url)
        if existing is None:
            return False

        def _remove() -> None:
            with self._sessions.begin() as session:
                for stmt in self._relation_cleanup(existing.id):
                    session.execute(stmt)
                session.execute(delete(self.entity).where(self.entity.id == existing.id))

        self._retry_locked(_remove)
        LOGGER.info("Removed %s task %s", self.entity.__tablename__, url)
        return True

    def _relation_cleanup(self, task_id: int) -> List[Any]:
        raise NotImplementedError


class AccountRepository(TaskRepository[AccountEntity]):
    entity = AccountEntity

    def _relation_cleanup(self, task_id: int) -> List[Any]:
        return [
            delete(ItemToAccountEntity).where(ItemToAccountEntity.account_id == task_id),
            delete(FollowerEntity).where(
                or_(FollowerEntity.follower_id == task_id, FollowerEntity.followed_id == task_id)
            ),
        ]

    def add_item(self, account_id: int, item_id: int, wishlist: bool = False) -> bool:
        """Link an item to an account; `wishlist` separates wanted from owned."""
        return self._add_relation(
            ItemToAccountEntity,
            {"item_id": item_id, "account_id": account_id},
            {"wishlist": wishlist},
        )

    def add_follower(self, followed_id: int, follower_id: int) -> bool:
        return self._add_relation(
            FollowerEntity,
            {"followed_id": followed_id, "follower_id": follower_id},
        )


class ItemRepository(TaskRepository[ItemEntity]):
    entity = ItemEntity

    def _new_fields(self) -> Dict[str, Any]:
        fields = super()._new_fields()
        fields.update(release_date=None, image_url=None, album_id=None)
        return fields

    def _not_processed_filters(self) -> List[Any]:
        return [or_(ItemEntity.url.like("%/album/%"), ItemEntity.url.like("%/track/%"))]

    def _relation_cleanup(self, task_id: int) -> List[Any]:
        return [
            delete(ItemToAccountEntity).where(ItemToAccountEntity.item_id == task_id),
            delete(ItemToTagEntity).where(ItemToTagEntity.item_id == task_id),
            update(ItemEntity).where(ItemEntity.album_id == task_id).values(album_id=None),
        ]

    def update_release_date(self, item_id: int, date: datetime) -> bool:
        """Set the release date once; later values never overwrite it."""
        stmt = (
            update(ItemEntity)
            .where(ItemEntity.id == item_id, ItemEntity.release_date.is_(None))
            .values(release_date=date)
        )
        return self._execute(stmt) == 1

    def update_image_url(self, item_id: int, image_url: str) -> bool:
        stmt = (
            update(ItemEntity)
            .where(
                ItemEntity.id == item_id,
                or_(ItemEntity.image_url.is_(None), ItemEntity.image_url != image_url),
            )
            .values(image_url=image_url)
        )
        return self._execute(stmt) == 1

    def update_track_album(self, track_id: int, album_id: int) -> bool:
        if track_id == album_id:
            return False
        stmt = (
            update(ItemEntity)
            .where(
                ItemEntity.id == track_id,
                or_(ItemEntity.album_id.is_(None), ItemEntity.album_id != album_id),
            )
            .values(album_id=album_id)
        )
        return self._execute(stmt) == 1

    def insert_track_to_album(self, track_url: str, album_id: int) -> bool:
        track = self.insert_or_get(track_url).entity
        return self.update_track_album(track.id, album_id)


class TagRepository(BaseRepository):
    def insert_or_get(self, name: str) -> InsertResult:
        return self._insert_or_get(TagEntity, {"name": name.strip().lower()}, {})

    def add_item(self, tag_id: int, item_id: int) -> bool:
        return self._add_relation(ItemToTagEntity, {"item_id": item_id, "tag_id": tag_id})

    def get_page(self, offset: int, limit: int = 500) -> List[TagEntity]:
        stmt = select(TagEntity).order_by(TagEntity.id).offset(offset).limit(limit)
        with self._sessions() as session:
            return list(session.scalars(stmt))


class SuperTagRepository(BaseRepository):
    def all(self) -> List[SuperTagEntity]:
        with self._sessions() as session:
            return list(session.scalars(select(SuperTagEntity).order_by(SuperTagEntity.id)))

    def insert_or_get(self, name: str) -> InsertResult:
        return self._insert_or_get(SuperTagEntity, {"name": name.strip().lower()}, {})

    def add_tag(self, super_tag_id: int, tag_id: int) -> bool:
        return self._add_relation(TagToSuperTagEntity, {"tag_id": tag_id, "super_tag_id": super_tag_id})
