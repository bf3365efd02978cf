"""Stage 1: substitute wildcard captures."""

from golem.pipeline import Stage, StageProcessor
from golem.template import TagKind


class WildcardProcessor(StageProcessor):
    stage = Stage.WILDCARD

    def __init__(self):
        super().__init__()
        self.handlers = {
            TagKind.STAR: self._star,
            TagKind.THATSTAR: self._thatstar,
            TagKind.TOPICSTAR: self._topicstar,
        }

    def _star(self, node, content, ctx):
        index = ctx.attribute_int(node, "index", 1)
        if not ctx.stars:
            # a pattern without wildcards falls back to the that-filter captures
            return ctx.that_star(index)
        return ctx.star(index)

    def _thatstar(self, node, content, ctx):
        return ctx.that_star(ctx.attribute_int(node, "index", 1))

    def _topicstar(self, node, content, ctx):
        return ctx.topic_star(ctx.attribute_int(node, "index", 1))
