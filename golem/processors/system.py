"""Stage 8: information about the running bot."""

import logging

from golem.category import WILDCARDS
from golem.normalizer import SET_TOKEN
from golem.pipeline import Stage, StageProcessor
from golem.template import TagKind

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "1.0"


class SystemProcessor(StageProcessor):
    stage = Stage.SYSTEM

    def __init__(self):
        super().__init__()
        self.handlers = {
            TagKind.SIZE: self._size,
            TagKind.VERSION: self._version,
            TagKind.ID: self._id,
            TagKind.VOCABULARY: self._vocabulary,
            TagKind.PROGRAM: self._program,
            TagKind.SYSTEM: self._disabled,
            TagKind.JAVASCRIPT: self._disabled,
            TagKind.GOSSIP: self._disabled,
        }

    def _size(self, node, content, ctx):
        return str(len(ctx.kb.index))

    def _version(self, node, content, ctx):
        return ctx.kb.get_property("version") or DEFAULT_VERSION

    def _id(self, node, content, ctx):
        return ctx.session.id

    def _vocabulary(self, node, content, ctx):
        words = set()
        for category in ctx.kb.index:
            words.update(t for t in category.tokens if t not in WILDCARDS and not SET_TOKEN.match(t))
        return str(len(words))

    def _program(self, node, content, ctx):
        return f"golem {self._version(node, content, ctx)}"

    def _disabled(self, node, content, ctx):
        # host execution is never performed
        logger.debug("Ignoring <%s> in session %s", node.tag, ctx.session.id)
        return ""
