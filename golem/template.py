"""
Template parser.

Turns template markup into a tree of typed nodes once, at load time. Every
element carries a :class:`TagKind`, so the evaluator dispatches on the kind
instead of searching the text for tag names.

    "Hello <star/>, <uppercase><get name="x"/></uppercase>"

    TextNode("Hello ")
    TagNode(STAR)
    TextNode(", ")
    TagNode(UPPERCASE)
        TagNode(GET, {"name": "x"})
"""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from enum import Enum
from html.parser import HTMLParser
from typing import Dict, List, Optional, Tuple, Union

from golem.errors import TemplateSyntaxError

__all__ = ["TagKind", "TextNode", "TagNode", "Node", "parse_template", "to_markup"]


class TagKind(Enum):
    # wildcards
    STAR = "star"
    THATSTAR = "thatstar"
    TOPICSTAR = "topicstar"
    # variables
    BOT = "bot"
    GET = "get"
    SET = "set"
    THINK = "think"
    VAR = "var"
    CONDITION = "condition"
    TOPIC = "topic"
    # recursion and external calls
    SRAI = "srai"
    SR = "sr"
    SRAIX = "sraix"
    LEARN = "learn"
    LEARNF = "learnf"
    UNLEARN = "unlearn"
    UNLEARNF = "unlearnf"
    OOB = "oob"
    # data
    DATE = "date"
    TIME = "time"
    RANDOM = "random"
    # text
    PERSON = "person"
    PERSON2 = "person2"
    GENDER = "gender"
    SENTENCE = "sentence"
    WORD = "word"
    FIRST = "first"
    REST = "rest"
    EXPLODE = "explode"
    SUBJ = "subj"
    PRED = "pred"
    OBJ = "obj"
    UNIQ = "uniq"
    # formatting
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    FORMAL = "formal"
    CAPITALIZE = "capitalize"
    REVERSE = "reverse"
    ACRONYM = "acronym"
    TRIM = "trim"
    SUBSTRING = "substring"
    REPLACE = "replace"
    COUNT = "count"
    LENGTH = "length"
    PLURALIZE = "pluralize"
    SHUFFLE = "shuffle"
    SPLIT = "split"
    JOIN = "join"
    UNIQUE = "unique"
    INDENT = "indent"
    DEDENT = "dedent"
    NORMALIZE = "normalize"
    DENORMALIZE = "denormalize"
    REPEAT = "repeat"
    THAT = "that"
    INPUT = "input"
    REQUEST = "request"
    RESPONSE = "response"
    EVAL = "eval"
    # collections
    MAP = "map"
    LIST = "list"
    ARRAY = "array"
    # system
    SIZE = "size"
    VERSION = "version"
    ID = "id"
    VOCABULARY = "vocabulary"
    PROGRAM = "program"
    SYSTEM = "system"
    JAVASCRIPT = "javascript"
    GOSSIP = "gossip"
    # structural tags consumed by their parents
    LI = "li"
    LOOP = "loop"
    CATEGORY = "category"
    PATTERN = "pattern"
    TEMPLATE = "template"
    UNKNOWN = "unknown"

    @classmethod
    def of(cls, tag: str) -> "TagKind":
        try:
            return cls(tag)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class TextNode:
    text: str

    def to_markup(self) -> str:
        return html.escape(self.text, quote=False)


@dataclass(frozen=True)
class TagNode:
    tag: str
    attributes: Dict[str, str] = field(default_factory=dict, hash=False)
    children: Tuple["Node", ...] = ()
    self_closing: bool = False

    @property
    def kind(self) -> TagKind:
        return TagKind.of(self.tag)

    def attr(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attributes.get(name, default)

    def child_tags(self, kind: TagKind) -> List["TagNode"]:
        return [c for c in self.children if isinstance(c, TagNode) and c.kind is kind]

    def contains(self, *kinds: TagKind) -> bool:
        for child in self.children:
            if isinstance(child, TagNode) and (child.kind in kinds or child.contains(*kinds)):
                return True
        return False

    def to_markup(self, inner: Optional[str] = None) -> str:
        attrs = "".join(f' {k}="{html.escape(v)}"' for k, v in self.attributes.items())
        if inner is None:
            inner = to_markup(self.children)
        if not inner and self.self_closing:
            return f"<{self.tag}{attrs}/>"
        return f"<{self.tag}{attrs}>{inner}</{self.tag}>"


Node = Union[TextNode, TagNode]


def to_markup(nodes: Tuple[Node, ...]) -> str:
    return "".join(node.to_markup() for node in nodes)


class _Frame:
    __slots__ = ("tag", "attributes", "children")

    def __init__(self, tag: str, attributes: Dict[str, str]):
        self.tag = tag
        self.attributes = attributes
        self.children: List[Node] = []


class _TemplateBuilder(HTMLParser):
    """Stack based tree builder on top of the stdlib tokenizer."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.root = _Frame("#root", {})
        self.stack: List[_Frame] = [self.root]

    def _append(self, node: Node) -> None:
        siblings = self.stack[-1].children
        if isinstance(node, TextNode) and siblings and isinstance(siblings[-1], TextNode):
            siblings[-1] = TextNode(siblings[-1].text + node.text)
        else:
            siblings.append(node)

    def handle_starttag(self, tag, attrs):
        self.stack.append(_Frame(tag, {k: (v if v is not None else "") for k, v in attrs}))

    def handle_startendtag(self, tag, attrs):
        attributes = {k: (v if v is not None else "") for k, v in attrs}
        self._append(TagNode(tag, attributes, (), self_closing=True))

    def handle_endtag(self, tag):
        if len(self.stack) == 1 or self.stack[-1].tag != tag:
            open_tag = self.stack[-1].tag if len(self.stack) > 1 else None
            raise TemplateSyntaxError(
                f"Unexpected </{tag}>" + (f" while <{open_tag}> is open" if open_tag else "")
            )
        frame = self.stack.pop()
        self._append(TagNode(frame.tag, frame.attributes, tuple(frame.children)))

    def handle_data(self, data):
        if data:
            self._append(TextNode(data))

    def unknown_decl(self, data):
        if data.upper().startswith("CDATA["):
            self._append(TextNode(data[len("CDATA["):]))

    def handle_comment(self, data):
        pass


def parse_template(source: str) -> Tuple[Node, ...]:
    """Parse template markup into a tuple of nodes.

    Raises:
        TemplateSyntaxError: on mismatched or unclosed tags.
    """
    builder = _TemplateBuilder()
    builder.feed(source or "")
    builder.close()
    if len(builder.stack) > 1:
        raise TemplateSyntaxError(f"Unclosed <{builder.stack[-1].tag}> in template")
    return tuple(builder.root.children)
