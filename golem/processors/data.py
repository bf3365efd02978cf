"""Stage 4: date/time formatting and random choice."""

import logging
import random
from datetime import datetime

from golem.pipeline import Stage, StageProcessor
from golem.template import TagKind

logger = logging.getLogger(__name__)


def format_date(now: datetime, fmt: str = None) -> str:
    if fmt:
        return now.strftime(fmt)
    return f"{now:%A, %B} {now.day}, {now.year}"


def format_time(now: datetime, fmt: str = None) -> str:
    if fmt:
        return now.strftime(fmt)
    hour = now.hour % 12 or 12
    return f"{hour}:{now:%M %p}"


class DataProcessor(StageProcessor):
    stage = Stage.DATA
    lazy = frozenset({TagKind.RANDOM})

    def __init__(self, rng: random.Random = None, clock=datetime.now):
        super().__init__()
        self.rng = rng or random.Random()
        self.clock = clock
        self.handlers = {
            TagKind.DATE: self._date,
            TagKind.TIME: self._time,
            TagKind.RANDOM: self._random,
        }

    def _date(self, node, content, ctx):
        fmt = ctx.attribute(node, "format") or ctx.attribute(node, "jformat")
        try:
            return format_date(self.clock(), fmt)
        except ValueError:
            logger.warning("Bad date format %r", fmt)
            return format_date(self.clock())

    def _time(self, node, content, ctx):
        fmt = ctx.attribute(node, "format")
        try:
            return format_time(self.clock(), fmt)
        except ValueError:
            logger.warning("Bad time format %r", fmt)
            return format_time(self.clock())

    def _random(self, node, content, ctx):
        # only the chosen branch is evaluated; empty branches are skipped
        items = node.child_tags(TagKind.LI)
        order = list(items)
        self.rng.shuffle(order)
        for li in order:
            text = ctx.evaluate(li.children).strip()
            if text:
                return text
        return ""
