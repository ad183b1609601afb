"""Maintenance pass that groups crawled tags under curated super tags."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from rapidfuzz import fuzz

from .database import Database
from .entities import SuperTagEntity

LOGGER = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[-_]")


def normalize_tag_name(name: str) -> str:
    """Lowercase and drop dashes/underscores: "Hip_Hop" -> "hiphop"."""
    return _SEPARATORS.sub("", name or "").strip().lower()


@dataclass(frozen=True)
class SuperTagSummary:
    tags: int
    linked: int
    unmatched: int


class SuperTagUpdate:
    """Links every stored tag to its closest super tags by fuzzy name match.

    Tags are paged through in id order. Each one is scored against all
    super tags with ``fuzz.ratio`` on normalised names; up to ``limit``
    matches scoring at least ``min_score`` (0..1) are linked.
    """

    def __init__(self, database: Database, limit: int = 3, min_score: float = 0.7, page_size: int = 500) -> None:
        self._database = database
        self._limit = limit
        self._min_score = min_score
        self._page_size = page_size

    def load(self, names: Iterable[str]) -> int:
        """Store curated super tag names; returns how many were new."""
        created = 0
        for name in names:
            if name.strip() and self._database.super_tag.insert_or_get(name).is_inserted:
                created += 1
        return created

    def match(self, tag_name: str, super_tags: List[SuperTagEntity]) -> List[Tuple[SuperTagEntity, float]]:
        normalized = normalize_tag_name(tag_name)
        scored = []
        for super_tag in super_tags:
            score = fuzz.ratio(normalized, normalize_tag_name(super_tag.name)) / 100.0
            if score >= self._min_score:
                scored.append((super_tag, score))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[: self._limit]

    def run(self) -> SuperTagSummary:
        super_tags = self._database.super_tag.all()
        if not super_tags:
            LOGGER.warning("No super tags stored, nothing to link")
            return SuperTagSummary(tags=0, linked=0, unmatched=0)

        tags = linked = unmatched = 0
        offset = 0
        while True:
            page = self._database.tag.get_page(offset, self._page_size)
            if not page:
                break
            offset += len(page)
            for tag in page:
                tags += 1
                matches = self.match(tag.name, super_tags)
                if not matches:
                    unmatched += 1
                    LOGGER.warning("No match found for tag %r", tag.name)
                    continue
                for super_tag, score in matches:
                    if self._database.super_tag.add_tag(super_tag.id, tag.id):
                        linked += 1
                        LOGGER.info("Linked tag %r to super tag %r (%.2f)", tag.name, super_tag.name, score)

        LOGGER.info("Super tag update done: tags=%d linked=%d unmatched=%d", tags, linked, unmatched)
        return SuperTagSummary(tags=tags, linked=linked, unmatched=unmatched)
