"""
Pattern Index

Stores categories by PatternKey and answers best-match queries.

Categories are bucketed by their first pattern token when it is a literal
word; patterns opening with a wildcard or set reference go to a shared
wildcard bucket. A pattern that opens with literal ``L`` can only match input
that opens with ``L``, so ``bucket[first input token] + wildcard bucket``
yields exactly the candidates a full scan would.

Session-scoped categories are stored with an owner session id and are
invisible to every other session. Slots are keyed by (PatternKey, owner):
a session overlay shadows a shared category with the same key instead of
replacing it for everyone.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from golem.category import WILDCARDS, Category, PatternKey
from golem.locks import ReadWriteLock
from golem.matcher import MatchResult, SetLookup, align, match
from golem.normalizer import SET_TOKEN

logger = logging.getLogger(__name__)

_WILDCARD_BUCKET = ""

Slot = Tuple[PatternKey, Optional[str]]


@dataclass(frozen=True)
class IndexEntry:
    category: Category
    owner: Optional[str]
    sequence: int


def _bucket_for(category: Category) -> str:
    first = category.tokens[0]
    if first in WILDCARDS or SET_TOKEN.match(first):
        return _WILDCARD_BUCKET
    return first


class PatternIndex:
    """Thread-safe category store with bucketed candidate lookup."""

    def __init__(self, that_before_topic: bool = True):
        self.that_before_topic = that_before_topic
        self._lock = ReadWriteLock()
        self._slots: Dict[Slot, IndexEntry] = {}
        self._buckets: Dict[str, Dict[Slot, IndexEntry]] = {}
        self._sequence = itertools.count(1)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._slots)

    def insert(self, category: Category, owner: Optional[str] = None) -> bool:
        """Add or overwrite the category at its PatternKey. Returns True on overwrite."""
        slot = (category.key, owner)
        entry = IndexEntry(category, owner, next(self._sequence))
        bucket = _bucket_for(category)
        with self._lock.write():
            replaced = slot in self._slots
            self._slots[slot] = entry
            self._buckets.setdefault(bucket, {})[slot] = entry
        if replaced:
            logger.debug("Replaced category %s (owner=%s)", category.key, owner)
        return replaced

    def remove(self, key: PatternKey, owner: Optional[str] = None) -> bool:
        """Delete the slot if present. Removing a missing key is a no-op."""
        slot = (key, owner)
        with self._lock.write():
            entry = self._slots.pop(slot, None)
            if entry is None:
                return False
            bucket = self._buckets.get(_bucket_for(entry.category))
            if bucket is not None:
                bucket.pop(slot, None)
        return True

    def remove_owner(self, owner: str) -> int:
        """Drop every category owned by a session."""
        with self._lock.write():
            slots = [slot for slot in self._slots if slot[1] == owner]
            for slot in slots:
                entry = self._slots.pop(slot)
                self._buckets.get(_bucket_for(entry.category), {}).pop(slot, None)
        return len(slots)

    def get(self, key: PatternKey, owner: Optional[str] = None) -> Optional[Category]:
        with self._lock.read():
            entry = self._slots.get((key, owner))
        return entry.category if entry else None

    def categories(self, owner: Optional[str] = None, include_shared: bool = True) -> List[Category]:
        with self._lock.read():
            entries = list(self._slots.values())
        return [
            e.category
            for e in sorted(entries, key=lambda e: e.sequence)
            if e.owner == owner or (include_shared and e.owner is None)
        ]

    def __iter__(self) -> Iterator[Category]:
        return iter(self.categories())

    def _snapshot(self, first_token: Optional[str]) -> List[IndexEntry]:
        with self._lock.read():
            entries = list(self._buckets.get(_WILDCARD_BUCKET, {}).values())
            if first_token:
                entries.extend(self._buckets.get(first_token, {}).values())
        return entries

    def candidates(
        self,
        tokens: Sequence[str],
        that: Sequence[str] = (),
        topic: Sequence[str] = (),
        session_id: Optional[str] = None,
        sets: Optional[SetLookup] = None,
    ) -> List[Category]:
        """Categories visible to the session whose that/topic filters accept the context.

        Ordered from most to least specific pattern, newest first within a tie.
        """
        visible = []
        for entry in self._snapshot(tokens[0] if tokens else None):
            if entry.owner is not None and entry.owner != session_id:
                continue
            category = entry.category
            if category.that and align(category.that_tokens, that, None, sets) is None:
                continue
            if category.topic and align(category.topic_tokens, topic, None, sets) is None:
                continue
            visible.append(entry)
        visible.sort(
            key=lambda e: (
                e.category.is_exact,
                -sum(1 for t in e.category.tokens if t in WILDCARDS or SET_TOKEN.match(t)),
                e.sequence,
            ),
            reverse=True,
        )
        return [e.category for e in visible]

    def match(
        self,
        tokens: Sequence[str],
        *,
        that: Sequence[str] = (),
        topic: Sequence[str] = (),
        original: Optional[Sequence[str]] = None,
        original_that: Optional[Sequence[str]] = None,
        session_id: Optional[str] = None,
        sets: Optional[SetLookup] = None,
    ) -> Optional[MatchResult]:
        """Return the highest priority match, or None when nothing matches.

        The index lock is held only while the candidate snapshot is taken,
        so recursive matching from inside template evaluation never waits
        on itself.
        """
        if not tokens:
            return None
        best: Optional[MatchResult] = None
        for entry in self._snapshot(tokens[0]):
            if entry.owner is not None and entry.owner != session_id:
                continue
            result = match(
                tokens,
                entry.category,
                that=that,
                topic=topic,
                original=original,
                original_that=original_that,
                sets=sets,
                that_before_topic=self.that_before_topic,
                sequence=entry.sequence,
            )
            if result is None:
                continue
            result.owner = entry.owner
            if best is None or result.specificity > best.specificity:
                best = result
        return best
