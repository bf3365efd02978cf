"""
Category model.

A category is one rule of the corpus: a trigger pattern, optional that and
topic filters, and a response template. Categories are immutable once built;
re-learning the same PatternKey replaces the stored category wholesale.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from golem.errors import CategoryError, TemplateSyntaxError
from golem.normalizer import SET_TOKEN, normalize_pattern
from golem.template import Node, parse_template

WILDCARDS = ("*", "_")


class LearningScope(Enum):
    """Where a learned category lives."""
    SESSION = "session"
    PERSISTENT = "persistent"


@dataclass(frozen=True)
class PatternKey:
    """Normalized (pattern, that, topic) triple identifying an index slot."""
    pattern: str
    that: str = ""
    topic: str = ""

    def encode(self) -> str:
        return json.dumps([self.pattern, self.that, self.topic])

    @classmethod
    def decode(cls, raw: str) -> "PatternKey":
        pattern, that, topic = json.loads(raw)
        return cls(pattern, that, topic)

    def __str__(self) -> str:
        parts = [self.pattern]
        if self.that:
            parts.append(f"THAT {self.that}")
        if self.topic:
            parts.append(f"TOPIC {self.topic}")
        return " | ".join(parts)


def _filter(value: Optional[str]) -> str:
    # "*" filters accept everything and are stored as absent
    normalized = normalize_pattern(value or "")
    return "" if normalized == "*" else normalized


@dataclass(frozen=True)
class Category:
    pattern: str
    template: str
    that: str = ""
    topic: str = ""
    source: str = ""
    nodes: Tuple[Node, ...] = field(default=(), compare=False, repr=False)

    @classmethod
    def build(
        cls,
        pattern: str,
        template: str,
        that: Optional[str] = None,
        topic: Optional[str] = None,
        source: str = "",
    ) -> "Category":
        """Normalize the filters, parse the template and validate the result.

        Raises:
            CategoryError: if the pattern is empty or the template is malformed.
        """
        normalized = normalize_pattern(pattern)
        if not normalized:
            raise CategoryError(f"Empty pattern in {source or 'category'}")
        if template is None:
            raise CategoryError(f"Category {normalized!r} has no template")
        try:
            nodes = parse_template(template)
        except TemplateSyntaxError as exc:
            raise CategoryError(f"Category {normalized!r}: {exc}") from exc
        return cls(
            pattern=normalized,
            template=template,
            that=_filter(that),
            topic=_filter(topic),
            source=source,
            nodes=nodes,
        )

    @property
    def key(self) -> PatternKey:
        return PatternKey(self.pattern, self.that, self.topic)

    @property
    def tokens(self) -> Tuple[str, ...]:
        return tuple(self.pattern.split())

    @property
    def that_tokens(self) -> Tuple[str, ...]:
        return tuple(self.that.split())

    @property
    def topic_tokens(self) -> Tuple[str, ...]:
        return tuple(self.topic.split())

    @property
    def is_exact(self) -> bool:
        return not any(t in WILDCARDS or SET_TOKEN.match(t) for t in self.tokens)

    @property
    def pattern_type(self) -> str:
        if self.is_exact:
            return "exact"
        if any(SET_TOKEN.match(t) for t in self.tokens):
            return "set"
        if "_" in self.tokens:
            return "underscore"
        return "wildcard"

    def to_markup(self) -> str:
        that = f"<that>{self.that}</that>" if self.that else ""
        body = f"<pattern>{self.pattern}</pattern>{that}<template>{self.template}</template>"
        if self.topic:
            return f'<topic name="{self.topic}"><category>{body}</category></topic>'
        return f"<category>{body}</category>"


@dataclass
class LearnedCategoryRecord:
    """A learned category plus its provenance."""

    category: Category
    scope: LearningScope
    session_id: Optional[str] = None
    learned_at: float = field(default_factory=time.time)
    source: str = "learn"

    @property
    def key(self) -> PatternKey:
        return self.category.key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.category.pattern,
            "that": self.category.that,
            "topic": self.category.topic,
            "template": self.category.template,
            "scope": self.scope.value,
            "session_id": self.session_id,
            "learned_at": self.learned_at,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearnedCategoryRecord":
        category = Category.build(
            data["pattern"],
            data["template"],
            that=data.get("that") or None,
            topic=data.get("topic") or None,
            source=data.get("source", "learnf"),
        )
        return cls(
            category=category,
            scope=LearningScope(data.get("scope", LearningScope.PERSISTENT.value)),
            session_id=data.get("session_id"),
            learned_at=float(data.get("learned_at") or time.time()),
            source=data.get("source", "learnf"),
        )
