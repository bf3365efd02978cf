"""
Corpus loading.

Reads category documents:

    <aiml>
      <category>
        <pattern>HELLO *</pattern>
        <that>WHAT IS YOUR NAME</that>          optional
        <template>Hi <star/>!</template>
      </category>
      <topic name="FOOD">
        <category> ... </category>            topic applied to each
      </topic>
    </aiml>

A category that cannot be built is reported in ``CorpusParseResult.errors``
and skipped; every other category of the document still loads. A document
that is not well-formed XML is split on its ``<category>`` blocks and each
block is parsed on its own.

Set and map files come as JSON or as plain lines:

    colors.set     ["red", "green"]          or one member per line
    capitals.map   {"France": "Paris"}       or "France:Paris" lines
"""

from __future__ import annotations

import json
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from golem.category import Category
from golem.errors import CategoryError

logger = logging.getLogger(__name__)

CORPUS_SUFFIXES = {
    ".properties": "properties",
    ".set": "set",
    ".map": "map",
    ".aiml": "aiml",
}
# properties first so bot values and service configs exist before categories
_LOAD_ORDER = ("properties", "set", "map", "aiml")

_CATEGORY_BLOCK = re.compile(r"<category\b.*?</category>", re.DOTALL | re.IGNORECASE)


@dataclass
class CorpusParseResult:
    source: str = ""
    categories: List[Category] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def extend(self, other: "CorpusParseResult") -> None:
        self.categories.extend(other.categories)
        self.errors.extend(other.errors)


# ──────────────────────────────────────────────────────────────────
# Categories
# ──────────────────────────────────────────────────────────────────

def _strip_namespaces(root: ET.Element) -> None:
    for elem in root.iter():
        if isinstance(elem.tag, str) and "}" in elem.tag:
            elem.tag = elem.tag.split("}", 1)[1]


def inner_markup(elem: ET.Element) -> str:
    """The element's content as markup, without its own start/end tags."""
    parts = [_escape_text(elem.text or "")]
    for child in elem:
        parts.append(ET.tostring(child, encoding="unicode"))
    return "".join(parts)


def _escape_text(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _category_from_element(elem: ET.Element, topic: Optional[str], source: str) -> Category:
    pattern = elem.find("pattern")
    template = elem.find("template")
    if pattern is None:
        raise CategoryError(f"Category without <pattern> in {source}")
    if template is None:
        raise CategoryError(f"Category {inner_markup(pattern).strip()!r} has no <template>")
    that = elem.find("that")
    own_topic = elem.find("topic")
    return Category.build(
        inner_markup(pattern),
        inner_markup(template),
        that=inner_markup(that) if that is not None else None,
        topic=inner_markup(own_topic) if own_topic is not None else topic,
        source=source,
    )


def _collect(root: ET.Element, source: str, result: CorpusParseResult) -> None:
    def _visit(parent: ET.Element, topic: Optional[str]) -> None:
        for child in parent:
            if child.tag == "category":
                try:
                    result.categories.append(_category_from_element(child, topic, source))
                except CategoryError as exc:
                    logger.warning("Rejected category in %s: %s", source, exc)
                    result.errors.append(str(exc))
            elif child.tag == "topic":
                _visit(child, child.get("name") or topic)
            else:
                logger.debug("Ignoring <%s> at corpus level in %s", child.tag, source)

    if root.tag == "category":
        wrapper = ET.Element("aiml")
        wrapper.append(root)
        _visit(wrapper, None)
    else:
        _visit(root, None)


def parse_corpus(data: Union[bytes, str], source: str = "<corpus>") -> CorpusParseResult:
    """Parse a category document.

    Never raises for malformed content; problems end up in ``errors``.
    """
    result = CorpusParseResult(source=source)
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        logger.warning("%s is not well-formed (%s); loading category by category", source, exc)
        result.errors.append(f"{source}: {exc}")
        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        for number, block in enumerate(_CATEGORY_BLOCK.findall(text), start=1):
            try:
                element = ET.fromstring(block)
            except ET.ParseError as block_exc:
                message = f"{source}: category #{number}: {block_exc}"
                logger.warning("Rejected category: %s", message)
                result.errors.append(message)
                continue
            _strip_namespaces(element)
            _collect(element, source, result)
        return result

    _strip_namespaces(root)
    _collect(root, source, result)
    logger.debug("Parsed %d categories from %s (%d errors)", len(result.categories), source, len(result.errors))
    return result


def parse_fragment(markup: str, source: str = "<learn>") -> CorpusParseResult:
    """Parse the category markup found inside a learn tag."""
    return parse_corpus(f"<aiml>{markup}</aiml>", source=source)


# ──────────────────────────────────────────────────────────────────
# Sets and maps
# ──────────────────────────────────────────────────────────────────

def _content_lines(text: str) -> Iterator[str]:
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            yield line


def parse_set(text: str) -> List[str]:
    stripped = text.strip()
    if stripped.startswith("["):
        try:
            payload = json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid set JSON: {exc}") from exc
        members = []
        for item in payload:
            # pandorabots style: each member is a list of words
            members.append(" ".join(item) if isinstance(item, list) else str(item))
        return [m.strip() for m in members if m.strip()]
    return list(_content_lines(text))


def parse_map(text: str) -> Dict[str, str]:
    stripped = text.strip()
    if stripped.startswith(("[", "{")):
        try:
            payload = json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid map JSON: {exc}") from exc
        if isinstance(payload, dict):
            return {str(k): str(v) for k, v in payload.items()}
        pairs = {}
        for item in payload:
            if not isinstance(item, list) or len(item) != 2:
                raise ValueError(f"Map entries must be [key, value] pairs, got {item!r}")
            pairs[str(item[0])] = str(item[1])
        return pairs

    pairs = {}
    for line in _content_lines(text):
        key, sep, value = line.partition(":")
        if not sep:
            logger.warning("Skipping map line without ':' separator: %r", line)
            continue
        pairs[key.strip()] = value.strip()
    return pairs


# ──────────────────────────────────────────────────────────────────
# Files
# ──────────────────────────────────────────────────────────────────

def kind_of(path: Union[str, Path]) -> Optional[str]:
    return CORPUS_SUFFIXES.get(Path(path).suffix.lower())


def corpus_files(directory: Union[str, Path]) -> List[Tuple[str, Path]]:
    """Every loadable file below ``directory`` as (kind, path), in load order."""
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Corpus directory not found: {root}")
    found = [(kind_of(p), p) for p in sorted(root.rglob("*")) if p.is_file() and kind_of(p)]
    return sorted(found, key=lambda item: (_LOAD_ORDER.index(item[0]), str(item[1])))


def read_corpus_file(path: Union[str, Path]) -> CorpusParseResult:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Corpus file not found: {file_path}")
    return parse_corpus(file_path.read_bytes(), source=str(file_path))
