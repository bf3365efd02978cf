"""
Learning Subsystem

Runtime insertion and removal of categories:

    learn      session scoped; only the learning session can match it
    learnf     shared and written through to the LearnedCategoryStore
    unlearn    drops the session's own copy, else the shared entry
    unlearnf   drops the shared entry and its persisted row

Every learned category carries a provenance record (scope, session, time,
source tag), and each session accumulates learning statistics.

Persistence failures never roll back the in-memory change; they are logged
and reported in the returned LearnResult.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from golem.category import Category, LearnedCategoryRecord, LearningScope, PatternKey
from golem.context import ChatSession
from golem.errors import PersistenceError
from golem.pattern_index import PatternIndex
from golem.persistence import LearnedCategoryStore

logger = logging.getLogger(__name__)


@dataclass
class LearnResult:
    changed: int = 0
    rejected: int = 0
    persisted: bool = False
    error: Optional[str] = None


@dataclass
class SessionLearningStats:
    total_learned: int = 0
    total_unlearned: int = 0
    validation_errors: int = 0
    last_learned: Optional[float] = None
    last_unlearned: Optional[float] = None
    sources: Counter = field(default_factory=Counter)
    pattern_types: Counter = field(default_factory=Counter)

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_learned": self.total_learned,
            "total_unlearned": self.total_unlearned,
            "validation_errors": self.validation_errors,
            "last_learned": self.last_learned,
            "last_unlearned": self.last_unlearned,
            "learning_sources": dict(self.sources),
            "pattern_types": dict(self.pattern_types),
        }


class LearningManager:
    """Applies learn/unlearn requests to the index and the persistent store."""

    def __init__(self, index: PatternIndex, store: Optional[LearnedCategoryStore] = None):
        self.index = index
        self.store = store
        self._lock = threading.Lock()
        self._records: Dict[Tuple[PatternKey, Optional[str]], LearnedCategoryRecord] = {}
        self._stats: Dict[str, SessionLearningStats] = {}

    def _session_stats(self, session_id: str) -> SessionLearningStats:
        return self._stats.setdefault(session_id, SessionLearningStats())

    # learn / unlearn -----------------------------------------------

    def learn(
        self,
        categories: Iterable[Category],
        session: ChatSession,
        persistent: bool = False,
        rejected: int = 0,
    ) -> LearnResult:
        scope = LearningScope.PERSISTENT if persistent else LearningScope.SESSION
        owner = None if persistent else session.id
        source = "learnf" if persistent else "learn"
        result = LearnResult(rejected=rejected)
        now = time.time()

        for category in categories:
            record = LearnedCategoryRecord(
                category=category,
                scope=scope,
                session_id=session.id,
                learned_at=now,
                source=source,
            )
            replaced = self.index.insert(category, owner=owner)
            with self._lock:
                self._records[(category.key, owner)] = record
                stats = self._session_stats(session.id)
                stats.total_learned += 1
                stats.last_learned = now
                stats.sources[source] += 1
                stats.pattern_types[category.pattern_type] += 1
            result.changed += 1
            logger.info(
                "%s %s category %s in session %s",
                "Re-learned" if replaced else "Learned", scope.value, category.key, session.id,
            )
            if persistent and self.store is not None:
                self._write_through(result, self.store.put, category.key, record)

        if rejected:
            with self._lock:
                self._session_stats(session.id).validation_errors += rejected
        return result

    def unlearn(self, keys: Iterable[PatternKey], session: ChatSession, persistent: bool = False) -> LearnResult:
        result = LearnResult()
        now = time.time()
        for key in keys:
            if persistent:
                removed = self.index.remove(key)
                if self.store is not None:
                    self._write_through(result, self.store.delete, key)
                owner = None
            elif self.index.remove(key, owner=session.id):
                removed, owner = True, session.id
            else:
                removed, owner = self.index.remove(key), None

            if not removed:
                logger.info("Nothing to unlearn for %s in session %s", key, session.id)
                continue
            with self._lock:
                self._records.pop((key, owner), None)
                stats = self._session_stats(session.id)
                stats.total_unlearned += 1
                stats.last_unlearned = now
            result.changed += 1
            logger.info("Unlearned %s in session %s", key, session.id)
        return result

    @staticmethod
    def _write_through(result: LearnResult, operation, key: PatternKey, *args) -> None:
        try:
            operation(key, *args)
        except PersistenceError as exc:
            logger.error("Persistence failed for %s: %s", key, exc)
            result.persisted = False
            result.error = str(exc)
            return
        if result.error is None:
            result.persisted = True

    # startup replay ------------------------------------------------

    def load_persistent(self) -> int:
        """Replay every persisted category into the index."""
        if self.store is None:
            return 0
        records = self.store.list_all()
        for record in records:
            self.index.insert(record.category)
            with self._lock:
                self._records[(record.key, None)] = record
        logger.info("Restored %d persisted categories from %s", len(records), self.store.storage_path)
        return len(records)

    # bookkeeping ---------------------------------------------------

    def records(self) -> List[LearnedCategoryRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda r: r.learned_at)

    def session_categories(self, session_id: str) -> List[Category]:
        return self.index.categories(owner=session_id, include_shared=False)

    def session_stats(self, session_id: str) -> SessionLearningStats:
        with self._lock:
            return self._stats.get(session_id) or SessionLearningStats()

    def clear_session(self, session_id: str) -> int:
        removed = self.index.remove_owner(session_id)
        with self._lock:
            for slot in [s for s in self._records if s[1] == session_id]:
                del self._records[slot]
        logger.info("Cleared %d learned categories from session %s", removed, session_id)
        return removed

    def forget_session(self, session_id: str) -> None:
        self.clear_session(session_id)
        with self._lock:
            self._stats.pop(session_id, None)

    def summary(self) -> Dict[str, object]:
        with self._lock:
            session_stats = {sid: stats.to_dict() for sid, stats in self._stats.items()}
            persistent = sum(1 for r in self._records.values() if r.scope is LearningScope.PERSISTENT)
            session_scoped = len(self._records) - persistent
        return {
            "total_categories": len(self.index),
            "learned_session": session_scoped,
            "learned_persistent": persistent,
            "persistence": str(self.store.storage_path) if self.store else None,
            "session_stats": session_stats,
            "global_stats": {
                "total_learned": sum(s["total_learned"] for s in session_stats.values()),
                "total_unlearned": sum(s["total_unlearned"] for s in session_stats.values()),
                "validation_errors": sum(s["validation_errors"] for s in session_stats.values()),
            },
        }
