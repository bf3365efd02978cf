"""
Stage 6: formatting.

Case conversion, trimming, substring/replace/split/join style string
operations, (de)normalization and the history references (that, input,
request, response, repeat).
"""

import logging
import random
import re

from golem.normalizer import denormalize, normalize
from golem.pipeline import Stage, StageProcessor
from golem.template import TagKind

logger = logging.getLogger(__name__)

_SENTENCE = re.compile(r"[^.!?]+[.!?]*")

_IRREGULAR_PLURALS = {
    "child": "children",
    "person": "people",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "goose": "geese",
    "tooth": "teeth",
    "foot": "feet",
    "ox": "oxen",
}


def pluralize_word(word: str) -> str:
    lowered = word.lower()
    if lowered in _IRREGULAR_PLURALS:
        plural = _IRREGULAR_PLURALS[lowered]
        return plural.upper() if word.isupper() else plural
    if lowered.endswith("s") and not lowered.endswith(("ss", "us")):
        return word
    if lowered.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    if lowered.endswith("y") and len(lowered) > 1 and lowered[-2] not in "aeiou":
        return word[:-1] + "ies"
    return word + "s"


def _index_attr(ctx, node, default=1):
    # "2,1" style indexes address the sentence too; only the first part counts
    raw = ctx.attribute(node, "index")
    if not raw:
        return default
    try:
        return int(raw.split(",")[0].strip())
    except ValueError:
        return default


def _delimiter(ctx, node, default=" "):
    value = ctx.attribute(node, "delimiter")
    return value if value else default


class FormatProcessor(StageProcessor):
    stage = Stage.FORMAT

    def __init__(self, rng: random.Random = None):
        super().__init__()
        self.rng = rng or random.Random()
        self.handlers = {
            TagKind.UPPERCASE: self._uppercase,
            TagKind.LOWERCASE: self._lowercase,
            TagKind.FORMAL: self._formal,
            TagKind.CAPITALIZE: self._capitalize,
            TagKind.REVERSE: self._reverse,
            TagKind.ACRONYM: self._acronym,
            TagKind.TRIM: self._trim,
            TagKind.SUBSTRING: self._substring,
            TagKind.REPLACE: self._replace,
            TagKind.COUNT: self._count,
            TagKind.LENGTH: self._length,
            TagKind.PLURALIZE: self._pluralize,
            TagKind.SHUFFLE: self._shuffle,
            TagKind.SPLIT: self._split,
            TagKind.JOIN: self._join,
            TagKind.UNIQUE: self._unique,
            TagKind.INDENT: self._indent,
            TagKind.DEDENT: self._dedent,
            TagKind.NORMALIZE: self._normalize,
            TagKind.DENORMALIZE: self._denormalize,
            TagKind.REPEAT: self._repeat,
            TagKind.THAT: self._that,
            TagKind.INPUT: self._input,
            TagKind.REQUEST: self._request,
            TagKind.RESPONSE: self._response,
            TagKind.EVAL: self._eval,
        }

    # case ----------------------------------------------------------

    def _uppercase(self, node, content, ctx):
        return " ".join(content.split()).upper()

    def _lowercase(self, node, content, ctx):
        return " ".join(content.split()).lower()

    def _formal(self, node, content, ctx):
        return " ".join(w[:1].upper() + w[1:].lower() for w in content.split())

    def _capitalize(self, node, content, ctx):
        tokens = content.split()
        if len(tokens) > 1 and all(len(t) == 1 for t in tokens):
            return " ".join(t.upper() for t in tokens)
        if not content:
            return ""
        return content[:1].upper() + content[1:].lower()

    def _reverse(self, node, content, ctx):
        return content[::-1]

    def _acronym(self, node, content, ctx):
        return "".join(w[0].upper() for w in content.split())

    def _trim(self, node, content, ctx):
        return content.strip()

    # string operations ---------------------------------------------

    def _substring(self, node, content, ctx):
        text = content.strip()
        start_raw, end_raw = ctx.attribute(node, "start"), ctx.attribute(node, "end")
        if start_raw is None or end_raw is None:
            return content
        try:
            start, end = int(start_raw), int(end_raw)
        except ValueError:
            return text
        start = max(start, 0)
        end = min(end, len(text))
        if start >= end:
            return ""
        return text[start:end]

    def _replace(self, node, content, ctx):
        search, replacement = ctx.attribute(node, "search"), ctx.attribute(node, "replace")
        if search is None or replacement is None:
            return content
        text = content.strip()
        return text.replace(search, replacement) if search else text

    def _count(self, node, content, ctx):
        search = ctx.attribute(node, "search")
        text = content.strip()
        if not search or not text:
            return "0"
        return str(text.count(search))

    def _length(self, node, content, ctx):
        text = content.strip()
        if not text:
            return "0"
        kind = (ctx.attribute(node, "type") or "").strip().lower()
        if kind == "words":
            return str(len(text.split()))
        if kind == "sentences":
            return str(len([s for s in _SENTENCE.findall(text) if s.strip()]))
        return str(len(text))

    def _pluralize(self, node, content, ctx):
        return " ".join(pluralize_word(w) for w in content.split())

    def _shuffle(self, node, content, ctx):
        words = content.split()
        self.rng.shuffle(words)
        return " ".join(words)

    def _split(self, node, content, ctx):
        text = content.strip()
        if not text:
            return ""
        delimiter = _delimiter(ctx, node)
        limit = ctx.attribute_int(node, "limit", 0)
        parts = text.split(delimiter, limit - 1) if limit > 0 else text.split(delimiter)
        return " ".join(p.strip() for p in parts if p.strip())

    def _join(self, node, content, ctx):
        return _delimiter(ctx, node).join(content.split())

    def _unique(self, node, content, ctx):
        delimiter = _delimiter(ctx, node)
        seen = []
        for item in content.strip().split(delimiter):
            if item and item not in seen:
                seen.append(item)
        return delimiter.join(seen)

    def _indent(self, node, content, ctx):
        if not content:
            return ""
        prefix = self._unit(node, ctx) * ctx.attribute_int(node, "level", 1)
        return "\n".join(prefix + line for line in content.split("\n"))

    def _dedent(self, node, content, ctx):
        unit = self._unit(node, ctx)
        level = ctx.attribute_int(node, "level", 1)
        lines = []
        for line in content.split("\n"):
            for _ in range(level):
                if line.startswith(unit):
                    line = line[len(unit):]
            lines.append(line)
        return "\n".join(lines)

    @staticmethod
    def _unit(node, ctx):
        char = node.attr("char")
        if char is None:
            return " "
        return char.replace("\\t", "\t") or " "

    def _normalize(self, node, content, ctx):
        return normalize(content)

    def _denormalize(self, node, content, ctx):
        return denormalize(content)

    # history references ----------------------------------------------

    def _repeat(self, node, content, ctx):
        request = ctx.session.get_request(1)
        if not request:
            return ""
        times = max(ctx.attribute_int(node, "times", 1), 1)
        return " ".join([request] * times)

    def _that(self, node, content, ctx):
        return ctx.session.get_response(_index_attr(ctx, node))

    def _input(self, node, content, ctx):
        # index 1 is the input being answered, older inputs come from history
        index = _index_attr(ctx, node)
        if index == 1 and ctx.input:
            return ctx.input
        return ctx.session.get_request(index - 1 if ctx.input else index)

    def _request(self, node, content, ctx):
        return ctx.session.get_request(_index_attr(ctx, node))

    def _response(self, node, content, ctx):
        return ctx.session.get_response(_index_attr(ctx, node))

    def _eval(self, node, content, ctx):
        return content.strip()
