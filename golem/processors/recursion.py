"""
Stage 3: recursive matching, external calls, learning and out-of-band tags.

Recursion is depth counted: every ``<srai>``/``<sr>`` hop evaluates the
matched template in a context one level deeper, and a hop at the configured
limit resolves to empty text instead of recursing further.
"""

import html
import logging
from typing import Iterable, List

from golem.corpus import parse_fragment
from golem.pipeline import EvaluationContext, Stage, StageProcessor
from golem.sraix import SRAIXRequest
from golem.template import Node, TagKind, TagNode, TextNode

logger = logging.getLogger(__name__)

_STRUCTURAL = frozenset({TagKind.CATEGORY, TagKind.PATTERN, TagKind.THAT, TagKind.TOPIC, TagKind.TEMPLATE})
_WILDCARD_REFS = {
    TagKind.STAR: "stars",
    TagKind.THATSTAR: "that_stars",
    TagKind.TOPICSTAR: "topic_stars",
}


class RecursionProcessor(StageProcessor):
    stage = Stage.RECURSION
    lazy = frozenset({TagKind.LEARN, TagKind.LEARNF, TagKind.UNLEARN, TagKind.UNLEARNF, TagKind.OOB})

    def __init__(self):
        super().__init__()
        self.handlers = {
            TagKind.SRAI: self._srai,
            TagKind.SR: self._sr,
            TagKind.SRAIX: self._sraix,
            TagKind.LEARN: self._learn,
            TagKind.LEARNF: self._learnf,
            TagKind.UNLEARN: self._unlearn,
            TagKind.UNLEARNF: self._unlearnf,
            TagKind.OOB: self._oob,
        }

    # recursive matching --------------------------------------------

    def redirect(self, text: str, ctx: EvaluationContext, tag: str = "srai") -> str:
        text = text.strip()
        if not text:
            return ""
        limit = ctx.engine.config.max_recursion_depth
        if ctx.depth >= limit:
            logger.warning(
                "Recursion limit (%d) reached in session %s at <%s>%s</%s>",
                limit, ctx.session.id, tag, text, tag,
            )
            return ""
        result = ctx.engine.match(text, ctx.session)
        if result is None:
            logger.info("<%s> found no category for %r", tag, text)
            return text
        child = ctx.descend(result.stars, result.that_stars, result.topic_stars)
        return ctx.engine.evaluator.render(result.category.nodes, child)

    def _srai(self, node, content, ctx):
        return self.redirect(content, ctx)

    def _sr(self, node, content, ctx):
        star = ctx.star(1)
        if not star:
            return ""
        return self.redirect(star, ctx, tag="sr")

    # external calls ------------------------------------------------

    def _sraix(self, node, content, ctx):
        service = ctx.attribute(node, "service") or ctx.attribute(node, "bot") or ""
        request = SRAIXRequest(
            default=ctx.attribute(node, "default"),
            hint=ctx.attribute(node, "hint") or "",
            botid=ctx.attribute(node, "botid") or "",
            host=ctx.attribute(node, "host") or "",
            wildcards={f"star{i}": value for i, value in enumerate(ctx.stars, start=1)},
        )
        text = html.unescape(content).strip()
        result = ctx.engine.gateway.invoke(service.strip(), text, request)
        if result.handled:
            return result.text
        logger.info("Unhandled <sraix service=%r> in session %s: %s", service, ctx.session.id, result.error)
        return text

    # learning ------------------------------------------------------

    def learnable_markup(self, nodes: Iterable[Node], ctx: EvaluationContext, in_template: bool = False) -> str:
        """Serialize learn content, resolving what must be fixed at learn time.

        Pattern, that and topic text is evaluated now. Inside the template
        only ``<eval>`` and wildcard references with captured values are
        evaluated; every other tag stays as markup for when the learned
        category fires.
        """
        parts: List[str] = []
        for node in nodes:
            if isinstance(node, TextNode):
                parts.append(node.to_markup())
                continue
            kind = node.kind
            if not in_template and kind in _STRUCTURAL:
                inner = self.learnable_markup(node.children, ctx, in_template=kind is TagKind.TEMPLATE)
                parts.append(node.to_markup(inner=inner))
            elif not in_template or kind is TagKind.EVAL:
                parts.append(html.escape(ctx.evaluate(node.children if kind is TagKind.EVAL else (node,)), quote=False))
            elif kind in _WILDCARD_REFS and getattr(ctx, _WILDCARD_REFS[kind]):
                parts.append(html.escape(ctx.evaluate((node,)), quote=False))
            else:
                parts.append(node.to_markup(inner=self.learnable_markup(node.children, ctx, in_template=True)))
        return "".join(parts)

    def _parse(self, node: TagNode, ctx: EvaluationContext):
        parsed = parse_fragment(self.learnable_markup(node.children, ctx), source=f"<{node.tag}>")
        for error in parsed.errors:
            logger.warning("Rejected category in <%s> (session %s): %s", node.tag, ctx.session.id, error)
        return parsed

    def _learn(self, node, content, ctx):
        parsed = self._parse(node, ctx)
        ctx.engine.learning.learn(parsed.categories, ctx.session, persistent=False, rejected=len(parsed.errors))
        return ""

    def _learnf(self, node, content, ctx):
        parsed = self._parse(node, ctx)
        result = ctx.engine.learning.learn(parsed.categories, ctx.session, persistent=True, rejected=len(parsed.errors))
        if result.error:
            logger.warning("<learnf> in session %s was not persisted: %s", ctx.session.id, result.error)
        return ""

    def _unlearn(self, node, content, ctx):
        keys = [c.key for c in self._parse(node, ctx).categories]
        ctx.engine.learning.unlearn(keys, ctx.session, persistent=False)
        return ""

    def _unlearnf(self, node, content, ctx):
        keys = [c.key for c in self._parse(node, ctx).categories]
        ctx.engine.learning.unlearn(keys, ctx.session, persistent=True)
        return ""

    # out of band ---------------------------------------------------

    def _oob(self, node, content, ctx):
        results = []
        for child in node.children:
            if not isinstance(child, TagNode):
                continue
            body = ctx.evaluate(child.children).strip()
            results.append(ctx.engine.oob.dispatch(child.tag, body, ctx.session))
        return " ".join(r for r in results if r)
