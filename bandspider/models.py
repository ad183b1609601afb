from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar

T = TypeVar("T")
E = TypeVar("E")


class UrlType(str, Enum):
    ACCOUNT = "account"
    ITEM = "item"


@dataclass(frozen=True)
class QueueEvent:
    """A dequeued, eligible task handed to a worker."""

    id: int
    url: str
    type: UrlType


@dataclass(frozen=True)
class InsertResult(Generic[E]):
    entity: E
    is_inserted: bool


@dataclass
class TabData(Generic[T]):
    """Data read from one tab/section of a page.

    `error` is set when that section failed to read; the rest of the
    page is still usable.
    """

    data: Optional[T] = None
    total: int = 0
    error: Optional[Exception] = None


@dataclass(frozen=True)
class TabStatistic:
    total: int = 0
    new_records: int = 0
    new_relations: int = 0
    all_scraped: bool = True


@dataclass
class AccountPageData:
    url: str
    collection: TabData[List[str]]
    wishlist: TabData[List[str]]
    followers: TabData[List[str]]
    following: TabData[List[str]]

    @property
    def errors(self) -> List[Exception]:
        tabs = (self.collection, self.wishlist, self.followers, self.following)
        return [t.error for t in tabs if t.error is not None]


@dataclass
class ItemPageData:
    url: str
    accounts: TabData[List[str]]
    tags: TabData[List[str]]
    release_date: TabData[datetime]
    album: TabData[str] = field(default_factory=TabData)
    tracks: TabData[List[str]] = field(default_factory=TabData)
    image_url: TabData[str] = field(default_factory=TabData)

    @property
    def errors(self) -> List[Exception]:
        tabs = (self.accounts, self.tags, self.release_date, self.album, self.tracks, self.image_url)
        return [t.error for t in tabs if t.error is not None]


@dataclass(frozen=True)
class AccountPageStatistic:
    collection: TabStatistic
    wishlist: TabStatistic
    followers: TabStatistic
    following: TabStatistic


@dataclass(frozen=True)
class ItemPageStatistic:
    accounts: TabStatistic
    tags: TabStatistic
    release_date: TabStatistic
    album: TabStatistic
    tracks: TabStatistic
    image: TabStatistic


@dataclass(frozen=True)
class PageResult:
    event: QueueEvent
    statistic: Any
    errors: List[Exception] = field(default_factory=list)


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one claim/process/commit cycle for a task."""

    worker_id: int
    url: str
    type: UrlType
    success: bool
    latency_ms: int
    error_type: Optional[str] = None
    statistic: Any = None


@dataclass(frozen=True)
class StatisticSnapshot:
    window_secs: Optional[int]
    processed: int
    failed: int
    rate_limited: int
    timeouts: int
    elapsed_secs: float
    throughput_per_min: float
    avg_latency_ms: float
    timestamp: float
