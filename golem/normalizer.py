"""
Lexical Normalizer

Canonicalizes raw text into the uppercase token space shared by stored
patterns, runtime input and the that/topic filters.

Pipeline (applied in order):
  1. Contraction expansion   ("what's" -> "what is", "I'd've" -> "I would have")
  2. Punctuation stripping   (everything that is not a letter or digit splits tokens)
  3. Whitespace collapse
  4. Case folding to upper case

The case-preserving variant runs steps 1-3 only, so its tokens line up
one-to-one with the folded tokens. Wildcard captures are cut from the
case-preserving tokens, which lets "My name is Ada" capture "Ada" rather
than "ADA".
"""

from __future__ import annotations

import re
from typing import Dict, List, Tuple

__all__ = [
    "normalize",
    "tokenize",
    "tokenize_preserving_case",
    "normalize_pattern",
    "normalize_that",
    "expand_contractions",
    "denormalize",
    "capitalize_sentences",
    "capitalize_words",
    "substitute_person",
    "substitute_person2",
    "substitute_gender",
    "SET_TOKEN",
]


# Longest forms first so "I'd've" wins over "I'd".
_CONTRACTIONS: Tuple[Tuple[str, str], ...] = (
    ("i'd've", "i would have"),
    ("shouldn't've", "should not have"),
    ("wouldn't've", "would not have"),
    ("couldn't've", "could not have"),
    ("won't", "will not"),
    ("can't", "cannot"),
    ("shan't", "shall not"),
    ("ain't", "is not"),
    ("let's", "let us"),
    ("i'm", "i am"),
    ("i'd", "i had"),
    ("what's", "what is"),
    ("where's", "where is"),
    ("who's", "who is"),
    ("how's", "how is"),
    ("that's", "that is"),
    ("there's", "there is"),
    ("here's", "here is"),
    ("it's", "it is"),
    ("he's", "he is"),
    ("she's", "she is"),
    ("y'all", "you all"),
)

_SUFFIX_CONTRACTIONS: Tuple[Tuple[str, str], ...] = (
    ("n't", " not"),
    ("'re", " are"),
    ("'ve", " have"),
    ("'ll", " will"),
    ("'d", " would"),
)

_APOSTROPHES = re.compile(r"[‘’ʼ`]")
_WORD_WITH_APOSTROPHE = re.compile(r"[A-Za-z]+(?:'[A-Za-z]+)+")
_NON_TOKEN = re.compile(r"[^\w\s]|_", re.UNICODE)
_MULTI_WHITESPACE = re.compile(r"\s+")
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")

# Set references survive pattern normalization as a single token.
SET_TOKEN = re.compile(r"^<set>([^<>\s]+)</set>$")
_PATTERN_SET = re.compile(r"<set>\s*([^<>]*?)\s*</set>|<set\s+name\s*=\s*[\"']([^\"']*)[\"']\s*/>", re.IGNORECASE)


def _match_case(source: str, replacement: str) -> str:
    if source.isupper() and len(source) > 1:
        return replacement.upper()
    if source[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def _expand_word(word: str) -> str:
    lowered = word.lower()
    for contraction, expansion in _CONTRACTIONS:
        if lowered == contraction:
            return _match_case(word, expansion)
        if lowered.startswith(contraction + "'"):
            # stacked forms such as "i'm'a" keep expanding on the tail
            head = _match_case(word[: len(contraction)], expansion)
            return head + " " + _expand_word(word[len(contraction) + 1:])
    for suffix, expansion in _SUFFIX_CONTRACTIONS:
        if lowered.endswith(suffix) and len(lowered) > len(suffix):
            stem = word[: -len(suffix)]
            tail = expansion.upper() if word.isupper() else expansion
            return _expand_word(stem) + tail
    return word


def expand_contractions(text: str) -> str:
    """Expand English contractions, keeping the capitalization of each word."""
    text = _APOSTROPHES.sub("'", text)
    return _WORD_WITH_APOSTROPHE.sub(lambda m: _expand_word(m.group(0)), text)


def _prepare(text: str) -> str:
    text = expand_contractions(text or "")
    text = _NON_TOKEN.sub(" ", text)
    return _MULTI_WHITESPACE.sub(" ", text).strip()


def normalize(text: str) -> str:
    """Return the canonical, space separated, upper case form of ``text``.

    ``normalize(normalize(x)) == normalize(x)`` holds for every input.
    """
    return _prepare(text).upper()


def tokenize(text: str) -> List[str]:
    return normalize(text).split()


def tokenize_preserving_case(text: str) -> List[str]:
    """Tokens aligned with :func:`tokenize` but in their original case."""
    return _prepare(text).split()


def normalize_pattern(pattern: str) -> str:
    """Normalize a category pattern, keeping ``*``, ``_`` and set references.

    Set references (``<set>colors</set>``) become one ``<set>colors</set>``
    token with a lower case name.
    """
    placeholders: Dict[str, str] = {}

    def _stash(match: re.Match) -> str:
        name = (match.group(1) or match.group(2) or "").strip().lower()
        marker = f" SETREF{len(placeholders)}X "
        placeholders[marker.strip()] = f"<set>{name}</set>"
        return marker

    text = _PATTERN_SET.sub(_stash, pattern or "")
    tokens: List[str] = []
    for raw in _MULTI_WHITESPACE.split(text.strip()):
        if not raw:
            continue
        if raw in placeholders:
            tokens.append(placeholders[raw])
        elif raw in ("*", "_"):
            tokens.append(raw)
        else:
            tokens.extend(_wildcard_aware_tokens(raw))
    return " ".join(tokens)


def _wildcard_aware_tokens(raw: str) -> List[str]:
    # "HELLO*" style glued wildcards are split off rather than stripped
    out: List[str] = []
    for piece in re.split(r"(\*|(?<![A-Za-z0-9])_(?![A-Za-z0-9]))", raw):
        if piece in ("*", "_"):
            out.append(piece)
        elif piece:
            out.extend(normalize(piece).split())
    return out


def normalize_that(response: str) -> str:
    """Normalize the last sentence of a bot response for that-matching."""
    sentences = [s for s in _SENTENCE_END.split((response or "").strip()) if normalize(s)]
    if not sentences:
        return ""
    return normalize(sentences[-1])


def denormalize(text: str) -> str:
    """Turn normalized text back into a readable sentence.

    ``"HELLO WORLD"`` becomes ``"Hello world."``; existing terminal
    punctuation is kept.
    """
    collapsed = _MULTI_WHITESPACE.sub(" ", text or "").strip()
    if not collapsed:
        return ""
    lowered = collapsed.lower()
    result = lowered[0].upper() + lowered[1:]
    if result[-1] not in ".!?":
        result += "."
    return result


def capitalize_sentences(text: str) -> str:
    parts = re.split(r"([.!?]\s+)", text)
    return "".join(p[:1].upper() + p[1:] if i % 2 == 0 else p for i, p in enumerate(parts))


def capitalize_words(text: str) -> str:
    return " ".join(w[:1].upper() + w[1:].lower() for w in text.split())


# ──────────────────────────────────────────────────────────────────
# Pronoun substitution
# ──────────────────────────────────────────────────────────────────

_PERSON: Dict[str, str] = {
    "i": "you",
    "me": "you",
    "my": "your",
    "mine": "yours",
    "myself": "yourself",
    "am": "are",
    "was": "were",
    "you": "I",
    "your": "my",
    "yours": "mine",
    "yourself": "myself",
    "are": "am",
    "were": "was",
    "we": "you",
    "us": "you",
    "our": "your",
    "ours": "yours",
}

_PERSON2: Dict[str, str] = {
    "i": "he",
    "me": "him",
    "my": "his",
    "mine": "his",
    "myself": "himself",
    "am": "is",
    "we": "they",
    "us": "them",
    "our": "their",
    "ours": "theirs",
    "he": "I",
    "him": "me",
    "his": "my",
    "himself": "myself",
    "she": "I",
    "her": "me",
    "hers": "mine",
    "herself": "myself",
    "they": "we",
    "them": "us",
    "their": "our",
    "theirs": "ours",
}

_GENDER: Dict[str, str] = {
    "he": "she",
    "him": "her",
    "his": "her",
    "himself": "herself",
    "she": "he",
    "her": "his",
    "hers": "his",
    "herself": "himself",
    "man": "woman",
    "woman": "man",
    "boy": "girl",
    "girl": "boy",
}

_WORD_WITH_EDGES = re.compile(r"^(\W*)(.*?)(\W*)$", re.UNICODE)


def _substitute(text: str, table: Dict[str, str]) -> str:
    words = _MULTI_WHITESPACE.sub(" ", text or "").strip().split(" ")
    out: List[str] = []
    for word in words:
        match = _WORD_WITH_EDGES.match(word)
        lead, core, trail = match.groups() if match else ("", word, "")
        replacement = table.get(core.lower())
        if replacement is None:
            out.append(word)
            continue
        if replacement != "I" and core != "I":
            replacement = _match_case(core, replacement)
        out.append(f"{lead}{replacement}{trail}")
    return " ".join(out).strip()


def substitute_person(text: str) -> str:
    """Swap first and second person ("I am happy" -> "you are happy")."""
    return _substitute(text, _PERSON)


def substitute_person2(text: str) -> str:
    """Swap first and third person ("I like my dog" -> "he likes his dog")."""
    return _substitute(text, _PERSON2)


def substitute_gender(text: str) -> str:
    return _substitute(text, _GENDER)
