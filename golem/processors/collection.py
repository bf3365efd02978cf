"""
Stage 7: named collections.

    <map name="capitals" key="France"/>                   lookup
    <map name="colors" key="red" operation="set">#F00</map>
    <list name="todo" operation="add">milk</list>
    <list name="todo" index="0"/>                          0-based
    <array name="slots" index="2" operation="set">x</array>

Without an ``operation`` every tag reads. A map lookup that misses returns
the key itself; a list or array index out of range returns "".
"""

import logging

from golem.pipeline import Stage, StageProcessor
from golem.template import TagKind

logger = logging.getLogger(__name__)


def _operation(ctx, node, default="get"):
    return (ctx.attribute(node, "operation") or default).strip().lower()


def _optional_index(ctx, node):
    raw = ctx.attribute(node, "index")
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Non-numeric index %r on <%s>", raw, node.tag)
        return None


class CollectionProcessor(StageProcessor):
    stage = Stage.COLLECTION

    def __init__(self):
        super().__init__()
        self.handlers = {
            TagKind.MAP: self._map,
            TagKind.LIST: self._list,
            TagKind.ARRAY: self._array,
        }

    def _map(self, node, content, ctx):
        kb = ctx.kb
        name = ctx.attribute(node, "name") or ""
        operation = _operation(ctx, node)
        key = ctx.attribute(node, "key")
        value = content.strip()

        if operation in ("set", "assign", "put"):
            if not key:
                logger.warning("<map name=%r operation=%r> without a key", name, operation)
                return ""
            kb.map_set(name, key.strip(), value)
            return ""
        if operation in ("remove", "delete"):
            kb.map_remove(name, (key if key is not None else value).strip())
            return ""
        if operation == "clear":
            kb.map_clear(name)
            return ""
        if operation in ("size", "length"):
            return str(len(kb.map_items(name)))
        if operation in ("contains", "has"):
            found = kb.map_get(name, (key if key is not None else value).strip())
            return "true" if found is not None else "false"
        if operation == "keys":
            return " ".join(k for k, _ in kb.map_items(name))
        if operation == "values":
            return " ".join(v for _, v in kb.map_items(name))
        if operation == "list":
            return " ".join(f"{k}:{v}" for k, v in kb.map_items(name))
        if operation != "get":
            logger.warning("Unknown map operation %r on map %s", operation, name)
            return ""

        lookup = (key if key is not None else value).strip()
        found = kb.map_get(name, lookup)
        return found if found is not None else lookup

    def _list(self, node, content, ctx):
        kb = ctx.kb
        name = ctx.attribute(node, "name") or ""
        operation = _operation(ctx, node)
        index = _optional_index(ctx, node)
        value = content.strip()

        if operation in ("add", "append"):
            kb.list_append(name, value)
            return ""
        if operation == "insert":
            kb.list_insert(name, index if index is not None else -1, value)
            return ""
        if operation in ("remove", "delete"):
            if index is not None:
                kb.list_remove_at(name, index)
            else:
                kb.list_remove_value(name, value)
            return ""
        if operation == "clear":
            kb.list_clear(name)
            return ""
        if operation in ("size", "length"):
            return str(len(kb.list_items(name)))
        if operation in ("contains", "has"):
            return "true" if value in kb.list_items(name) else "false"
        if operation != "get":
            logger.warning("Unknown list operation %r on list %s", operation, name)
            return ""

        items = kb.list_items(name)
        if index is None:
            return " ".join(items)
        return items[index] if 0 <= index < len(items) else ""

    def _array(self, node, content, ctx):
        kb = ctx.kb
        name = ctx.attribute(node, "name") or ""
        operation = _operation(ctx, node)
        index = _optional_index(ctx, node)
        value = content.strip()

        if operation in ("set", "assign"):
            kb.array_set(name, index, value)
            return ""
        if operation == "clear":
            kb.array_clear(name)
            return ""
        if operation == "resize":
            try:
                kb.array_resize(name, max(0, int(value)))
            except ValueError:
                logger.warning("<array name=%r operation=resize> needs a number, got %r", name, value)
            return ""
        if operation in ("size", "length"):
            return str(len(kb.array_items(name)))
        if operation != "get":
            logger.warning("Unknown array operation %r on array %s", operation, name)
            return ""

        items = kb.array_items(name)
        if index is None:
            return " ".join(item for item in items if item)
        return items[index] if 0 <= index < len(items) else ""
