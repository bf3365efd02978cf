"""
Template evaluation pipeline.

Every tag kind is owned by exactly one stage, and stages run in a fixed
order:

    1 WILDCARD    star, thatstar, topicstar
    2 VARIABLE    bot, get, set, think, var, condition, topic
    3 RECURSION   srai, sr, sraix, learn(f), unlearn(f), oob
    4 DATA        date, time, random
    5 TEXT        person, person2, gender, sentence, word, first, rest, explode,
                  subj, pred, obj, uniq
    6 FORMAT      case conversion, trim, substring/replace/split/join, ...
    7 COLLECTION  map, list, array
    8 SYSTEM      size, version, id, ...

The evaluator walks the parsed node tree once. At each element it consults
the stage processors in stage order and hands the node to the first one that
owns its kind. Children are resolved before their parent sees the content,
so a stage never receives a tag an earlier stage should have rewritten.
Control tags (condition, random, learn, oob) are marked
lazy and evaluate their own children.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from golem.context import ChatSession, KnowledgeBase, VariableContext
from golem.template import Node, TagKind, TagNode, TextNode, parse_template
from golem.errors import TemplateSyntaxError

if TYPE_CHECKING:
    from golem.bot import Golem

logger = logging.getLogger(__name__)


class Stage(IntEnum):
    WILDCARD = 1
    VARIABLE = 2
    RECURSION = 3
    DATA = 4
    TEXT = 5
    FORMAT = 6
    COLLECTION = 7
    SYSTEM = 8


@dataclass
class EvaluationContext:
    """Everything a tag handler may read or mutate during one evaluation.

    Passed down the tree by reference; recursive matches get a fresh copy
    from :meth:`descend` with ``depth + 1`` and their own local scope.
    """

    engine: "Golem"
    session: ChatSession
    variables: VariableContext
    stars: List[str] = field(default_factory=list)
    that_stars: List[str] = field(default_factory=list)
    topic_stars: List[str] = field(default_factory=list)
    depth: int = 0
    input: str = ""

    @classmethod
    def create(
        cls,
        engine: "Golem",
        session: ChatSession,
        stars: Sequence[str] = (),
        that_stars: Sequence[str] = (),
        topic_stars: Sequence[str] = (),
        depth: int = 0,
        user_input: str = "",
    ) -> "EvaluationContext":
        return cls(
            engine=engine,
            session=session,
            variables=VariableContext(session, engine.kb),
            stars=list(stars),
            that_stars=list(that_stars),
            topic_stars=list(topic_stars),
            depth=depth,
            input=user_input,
        )

    @property
    def kb(self) -> KnowledgeBase:
        return self.engine.kb

    def descend(
        self,
        stars: Sequence[str] = (),
        that_stars: Sequence[str] = (),
        topic_stars: Sequence[str] = (),
    ) -> "EvaluationContext":
        return EvaluationContext.create(
            self.engine,
            self.session,
            stars,
            that_stars,
            topic_stars,
            depth=self.depth + 1,
            user_input=self.input,
        )

    def evaluate(self, nodes: Iterable[Node]) -> str:
        return self.engine.evaluator.evaluate(nodes, self)

    def attribute(self, node: TagNode, name: str, default: Optional[str] = None) -> Optional[str]:
        """Attribute value with any embedded tags evaluated."""
        raw = node.attr(name)
        if raw is None:
            return default
        if "<" not in raw:
            return raw
        try:
            return self.evaluate(parse_template(raw)).strip()
        except TemplateSyntaxError:
            logger.warning("Attribute %s=%r on <%s> is not valid markup", name, raw, node.tag)
            return raw

    def attribute_int(self, node: TagNode, name: str, default: int) -> int:
        raw = self.attribute(node, name)
        try:
            return int(raw.strip()) if raw is not None else default
        except ValueError:
            return default

    def star(self, index: int = 1) -> str:
        return _nth(self.stars, index)

    def that_star(self, index: int = 1) -> str:
        return _nth(self.that_stars, index)

    def topic_star(self, index: int = 1) -> str:
        return _nth(self.topic_stars, index)


def _nth(values: Sequence[str], index: int) -> str:
    if 1 <= index <= len(values):
        return values[index - 1]
    return ""


Handler = Callable[[TagNode, Optional[str], EvaluationContext], str]


class StageProcessor:
    """
    Base class for one pipeline stage.

    Subclasses fill ``handlers`` (kind -> bound method) and list the kinds
    whose children they evaluate themselves in ``lazy``; every other handler
    receives the already evaluated content.
    """

    stage: Stage
    lazy: FrozenSet[TagKind] = frozenset()

    def __init__(self) -> None:
        self.handlers: Dict[TagKind, Handler] = {}

    @property
    def kinds(self) -> FrozenSet[TagKind]:
        return frozenset(self.handlers)

    def owns(self, kind: TagKind) -> bool:
        return kind in self.handlers

    def process(self, node: TagNode, content: Optional[str], ctx: EvaluationContext) -> str:
        return self.handlers[node.kind](node, content, ctx)


class TemplateEvaluator:
    """Single tree walk dispatching every element to its owning stage."""

    def __init__(self, processors: Iterable[StageProcessor]):
        self.processors: Tuple[StageProcessor, ...] = tuple(sorted(processors, key=lambda p: p.stage))
        owners: Dict[TagKind, StageProcessor] = {}
        for processor in self.processors:
            for kind in processor.kinds:
                if kind in owners:
                    raise ValueError(
                        f"<{kind.value}> claimed by both {owners[kind].stage.name} and {processor.stage.name}"
                    )
                owners[kind] = processor
        self._owners = owners
        self._metrics: Counter = Counter()
        self._metrics_lock = threading.Lock()

    def stage_of(self, kind: TagKind) -> Optional[Stage]:
        processor = self._owners.get(kind)
        return processor.stage if processor else None

    @property
    def metrics(self) -> Mapping[str, int]:
        with self._metrics_lock:
            return dict(self._metrics)

    def reset_metrics(self) -> None:
        with self._metrics_lock:
            self._metrics.clear()

    def evaluate(self, nodes: Iterable[Node], ctx: EvaluationContext) -> str:
        parts: List[str] = []
        for node in nodes:
            if isinstance(node, TextNode):
                parts.append(node.text)
            else:
                parts.append(self.evaluate_node(node, ctx))
        return "".join(parts)

    def evaluate_node(self, node: TagNode, ctx: EvaluationContext) -> str:
        processor = self._owners.get(node.kind)
        if processor is None:
            # unknown tags pass through with their content resolved
            return node.to_markup(inner=self.evaluate(node.children, ctx))
        with self._metrics_lock:
            self._metrics[processor.stage.name.lower()] += 1
        if node.kind in processor.lazy:
            return processor.process(node, None, ctx)
        content = self.evaluate(node.children, ctx)
        logger.debug("<%s> -> %s stage", node.tag, processor.stage.name)
        return processor.process(node, content, ctx)

    def render(self, nodes: Iterable[Node], ctx: EvaluationContext) -> str:
        """Evaluate a whole template and tidy the whitespace of the result."""
        return tidy(self.evaluate(nodes, ctx))


def tidy(text: str) -> str:
    """Strip trailing whitespace and leading blank lines.

    Leading spaces survive unless the text opens with a line break, so
    indented output keeps its shape while template indentation disappears.
    """
    text = text.rstrip()
    if text[:1] in ("\n", "\r"):
        return text.lstrip()
    return text.lstrip("\r\n")


def default_processors() -> List[StageProcessor]:
    from golem.processors import (
        CollectionProcessor,
        DataProcessor,
        FormatProcessor,
        RecursionProcessor,
        SystemProcessor,
        TextProcessor,
        VariableProcessor,
        WildcardProcessor,
    )

    return [
        WildcardProcessor(),
        VariableProcessor(),
        RecursionProcessor(),
        DataProcessor(),
        TextProcessor(),
        FormatProcessor(),
        CollectionProcessor(),
        SystemProcessor(),
    ]
