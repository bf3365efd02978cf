"""
Wildcard Matcher

Aligns normalized input tokens against one category's pattern tokens.

  literal  must equal the input token
  _        consumes exactly one token
  *        consumes one or more tokens, longest span first, backtracking
           until the rest of the pattern aligns
  <set>n</set>
           consumes the longest run of tokens that is a member of set ``n``

Captures come back in pattern order and are cut from the case-preserving
tokens when those are supplied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Collection, List, Optional, Sequence, Set, Tuple

from golem.category import WILDCARDS, Category
from golem.normalizer import SET_TOKEN

logger = logging.getLogger(__name__)

SetLookup = Callable[[str], Collection[str]]


@dataclass
class Alignment:
    """Result of aligning one token sequence against one pattern."""
    captures: List[str] = field(default_factory=list)
    consumed: int = 0  # input tokens swallowed by wildcards and set references


def align(
    pattern: Sequence[str],
    tokens: Sequence[str],
    original: Optional[Sequence[str]] = None,
    sets: Optional[SetLookup] = None,
) -> Optional[Alignment]:
    """Align ``tokens`` against ``pattern``; return None when they cannot match."""
    if original is None or len(original) != len(tokens):
        original = tokens
    n_pat, n_in = len(pattern), len(tokens)
    if n_pat > n_in:
        return None

    # every pattern token needs at least one input token
    min_rest = [0] * (n_pat + 1)
    for p in range(n_pat - 1, -1, -1):
        min_rest[p] = min_rest[p + 1] + 1

    dead_ends: Set[Tuple[int, int]] = set()
    spans: List[Tuple[int, int]] = []

    def _walk(p: int, j: int) -> bool:
        if p == n_pat:
            return j == n_in
        if (p, j) in dead_ends or n_in - j < min_rest[p]:
            return False
        token = pattern[p]
        if token == "*":
            for end in range(n_in - min_rest[p + 1], j, -1):
                spans.append((j, end))
                if _walk(p + 1, end):
                    return True
                spans.pop()
        elif token == "_":
            spans.append((j, j + 1))
            if _walk(p + 1, j + 1):
                return True
            spans.pop()
        else:
            set_ref = SET_TOKEN.match(token)
            if set_ref:
                members = sets(set_ref.group(1)) if sets else ()
                if members:
                    for end in range(n_in - min_rest[p + 1], j, -1):
                        if " ".join(tokens[j:end]) in members:
                            spans.append((j, end))
                            if _walk(p + 1, end):
                                return True
                            spans.pop()
            elif tokens[j] == token and _walk(p + 1, j + 1):
                return True
        dead_ends.add((p, j))
        return False

    if not _walk(0, 0):
        return None
    return Alignment(
        captures=[" ".join(original[a:b]) for a, b in spans],
        consumed=sum(b - a for a, b in spans),
    )


def filter_score(tokens: Sequence[str]) -> int:
    """0 for an absent filter, 1 for a wildcard filter, 2 for a literal one."""
    if not tokens:
        return 0
    if any(t in WILDCARDS or SET_TOKEN.match(t) for t in tokens):
        return 1
    return 2


@dataclass
class MatchResult:
    category: Category
    stars: List[str]
    that_stars: List[str] = field(default_factory=list)
    topic_stars: List[str] = field(default_factory=list)
    specificity: Tuple[int, ...] = ()
    owner: Optional[str] = None


def match(
    tokens: Sequence[str],
    category: Category,
    *,
    that: Sequence[str] = (),
    topic: Sequence[str] = (),
    original: Optional[Sequence[str]] = None,
    original_that: Optional[Sequence[str]] = None,
    sets: Optional[SetLookup] = None,
    that_before_topic: bool = True,
    sequence: int = 0,
) -> Optional[MatchResult]:
    """Match input plus conversational context against a single category.

    Returns None on failure. ``specificity`` orders competing matches, higher
    wins: exact literal first, then fewest input tokens taken by wildcards,
    then fewest wildcard markers, then that/topic filter specificity (order
    configurable), then the most recent insertion.
    """
    that_caps: List[str] = []
    if category.that:
        that_alignment = align(category.that_tokens, that, original_that, sets)
        if that_alignment is None:
            return None
        that_caps = that_alignment.captures

    topic_caps: List[str] = []
    if category.topic:
        topic_alignment = align(category.topic_tokens, topic, None, sets)
        if topic_alignment is None:
            return None
        topic_caps = topic_alignment.captures

    alignment = align(category.tokens, tokens, original, sets)
    if alignment is None:
        return None

    markers = sum(1 for t in category.tokens if t in WILDCARDS or SET_TOKEN.match(t))
    filters = (filter_score(category.that_tokens), filter_score(category.topic_tokens))
    if not that_before_topic:
        filters = filters[::-1]
    specificity = (1 if category.is_exact else 0, -alignment.consumed, -markers) + filters + (sequence,)
    return MatchResult(category, alignment.captures, that_caps, topic_caps, specificity)
