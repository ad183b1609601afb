"""SQLAlchemy ORM tables for crawl tasks and their relationships."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TaskMixin:
    """Columns shared by every crawlable entity."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    last_processing_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_busy: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} id={self.id} url={self.url!r} busy={self.is_busy} "
            f"failed={self.failed_count} processed={self.last_processing_date}>"
        )


class AccountEntity(TaskMixin, Base):
    __tablename__ = "accounts"


class ItemEntity(TaskMixin, Base):
    __tablename__ = "items"

    release_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    # a track points at its album
    album_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("items.id"), nullable=True, index=True
    )


class TagEntity(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)


class SuperTagEntity(Base):
    """Curated umbrella genre that crawled tags are grouped under."""

    __tablename__ = "super_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)


class ItemToAccountEntity(Base):
    __tablename__ = "items_to_accounts"

    item_id: Mapped[int] = mapped_column(Integer, ForeignKey("items.id"), primary_key=True)
    account_id: Mapped[int] = mapped_column(Integer, ForeignKey("accounts.id"), primary_key=True, index=True)
    wishlist: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")


class ItemToTagEntity(Base):
    __tablename__ = "items_to_tags"

    item_id: Mapped[int] = mapped_column(Integer, ForeignKey("items.id"), primary_key=True)
    tag_id: Mapped[int] = mapped_column(Integer, ForeignKey("tags.id"), primary_key=True, index=True)


class TagToSuperTagEntity(Base):
    __tablename__ = "tags_to_super_tags"

    tag_id: Mapped[int] = mapped_column(Integer, ForeignKey("tags.id"), primary_key=True)
    super_tag_id: Mapped[int] = mapped_column(Integer, ForeignKey("super_tags.id"), primary_key=True, index=True)


class FollowerEntity(Base):
    __tablename__ = "followers"

    follower_id: Mapped[int] = mapped_column(Integer, ForeignKey("accounts.id"), primary_key=True)
    followed_id: Mapped[int] = mapped_column(Integer, ForeignKey("accounts.id"), primary_key=True, index=True)
