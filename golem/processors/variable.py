"""
Stage 2: bot properties, variable get/set, think, topic and conditions.

``<set name="x">`` writes the session scope, ``<set var="x">`` the local
scope of the current evaluation. ``<set name="topic">`` also moves the
session topic. A ``<set>`` with an ``operation`` attribute other than
``assign`` works on the named set collection instead.
"""

import logging

from golem.context import VariableScope
from golem.normalizer import normalize
from golem.pipeline import Stage, StageProcessor
from golem.template import TagKind, TagNode

logger = logging.getLogger(__name__)

MAX_CONDITION_LOOPS = 100


def _values_match(actual: str, expected: str) -> bool:
    if expected.strip() == "*":
        return bool(actual.strip())
    return normalize(actual) == normalize(expected)


class VariableProcessor(StageProcessor):
    stage = Stage.VARIABLE
    lazy = frozenset({TagKind.CONDITION})

    def __init__(self):
        super().__init__()
        self.handlers = {
            TagKind.BOT: self._bot,
            TagKind.GET: self._get,
            TagKind.SET: self._set,
            TagKind.THINK: self._think,
            TagKind.VAR: self._var,
            TagKind.CONDITION: self._condition,
            TagKind.TOPIC: self._topic,
        }

    def _bot(self, node, content, ctx):
        name = ctx.attribute(node, "name") or content.strip()
        return ctx.kb.get_property(name) or ""

    def _get(self, node, content, ctx):
        var = ctx.attribute(node, "var")
        if var:
            return ctx.variables.get(var, VariableScope.LOCAL)
        name = ctx.attribute(node, "name")
        if not name:
            return content
        value = ctx.variables.lookup(name)
        if value is None:
            return content.strip()
        return value

    def _set(self, node, content, ctx):
        value = content.strip()
        var = ctx.attribute(node, "var")
        if var:
            ctx.variables.set(var, value, VariableScope.LOCAL)
            return ""
        name = ctx.attribute(node, "name")
        if not name:
            logger.warning("<set> without name or var in session %s", ctx.session.id)
            return ""
        operation = (ctx.attribute(node, "operation") or "assign").strip().lower()
        if operation != "assign":
            return self._set_collection(name, operation, value, ctx)
        ctx.variables.set(name, value, VariableScope.SESSION)
        return ""

    def _set_collection(self, name, operation, value, ctx):
        kb = ctx.kb
        if operation in ("add", "insert"):
            kb.set_add(name, value)
        elif operation in ("remove", "delete"):
            kb.set_remove(name, value)
        elif operation == "clear":
            kb.set_clear(name)
        elif operation in ("size", "length"):
            return str(len(kb.set_members(name)))
        elif operation in ("contains", "has"):
            return "true" if kb.set_contains(name, value) else "false"
        elif operation == "get":
            return " ".join(kb.set_members(name))
        else:
            logger.warning("Unknown set operation %r on set %s", operation, name)
        return ""

    def _think(self, node, content, ctx):
        return ""

    def _var(self, node, content, ctx):
        name = ctx.attribute(node, "name")
        if not name:
            return content
        ctx.variables.set(name, content.strip(), VariableScope.LOCAL)
        return ""

    def _topic(self, node, content, ctx):
        return ctx.session.topic

    # conditions ----------------------------------------------------

    @staticmethod
    def _subject(node: TagNode, ctx):
        var = ctx.attribute(node, "var")
        if var:
            return ctx.variables.get(var, VariableScope.LOCAL)
        name = ctx.attribute(node, "name")
        if name:
            return ctx.variables.get(name)
        return None

    def _condition(self, node, content, ctx):
        subject = self._subject(node, ctx)
        items = node.child_tags(TagKind.LI)

        if not items:
            expected = ctx.attribute(node, "value")
            if expected is not None:
                return ctx.evaluate(node.children) if _values_match(subject or "", expected) else ""
            return ctx.evaluate(node.children) if subject else ""

        output = []
        for _ in range(MAX_CONDITION_LOOPS):
            chosen = self._choose(items, subject, ctx)
            if chosen is None:
                break
            body = [c for c in chosen.children if not (isinstance(c, TagNode) and c.kind is TagKind.LOOP)]
            output.append(ctx.evaluate(body).strip())
            if not chosen.child_tags(TagKind.LOOP):
                break
            # a looping branch re-tests against the current variable values
            subject = self._subject(node, ctx)
        else:
            logger.warning("Condition loop limit (%d) reached in session %s", MAX_CONDITION_LOOPS, ctx.session.id)
        return " ".join(part for part in output if part)

    def _choose(self, items, subject, ctx):
        for li in items:
            expected = ctx.attribute(li, "value")
            own_subject = self._subject(li, ctx)
            if own_subject is None:
                own_subject = subject
            if expected is None:
                if li.attr("name") is None and li.attr("var") is None:
                    return li
                if own_subject:
                    return li
                continue
            if own_subject is not None and _values_match(own_subject, expected):
                return li
        return None
