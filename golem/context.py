"""
Variable / Context Store

  ChatSession      per-conversation state (variables, topic, histories)
  KnowledgeBase    bot-wide state: pattern index, properties, globals and
                   the named collections (sets, maps, lists, arrays)
  VariableContext  per-evaluation resolver over an ordered list of scopes

Resolution order for an unscoped lookup:

    local  ->  session  ->  global  ->  property  ->  ""
"""

from __future__ import annotations

import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Tuple

from golem.locks import ReadWriteLock
from golem.normalizer import normalize, normalize_that
from golem.pattern_index import PatternIndex


# ──────────────────────────────────────────────────────────────────
# Sessions
# ──────────────────────────────────────────────────────────────────

def _new_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:12]}"


@dataclass
class ChatSession:
    """
    State for one conversation.

    Only the request currently holding ``lock`` mutates a session; requests
    for different sessions never contend.
    """

    id: str = field(default_factory=_new_session_id)
    variables: Dict[str, str] = field(default_factory=dict)
    topic: str = ""
    history_size: int = 100
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)

    def __post_init__(self):
        self.input_history: Deque[str] = deque(maxlen=self.history_size)
        self.response_history: Deque[str] = deque(maxlen=self.history_size)
        self.that_history: Deque[str] = deque(maxlen=self.history_size)
        self.lock = threading.Lock()

    def touch(self) -> None:
        self.last_activity = time.time()

    def push_history(self, user_input: str, response: str) -> None:
        """Record one exchange. Empty responses do not move the that-context."""
        self.input_history.append(user_input)
        self.response_history.append(response)
        that = normalize_that(response)
        if that:
            self.that_history.append(that)
        self.touch()

    @staticmethod
    def _nth_recent(items: Deque[str], index: int) -> str:
        # index 1 is the most recent entry
        if index < 1 or index > len(items):
            return ""
        return items[-index]

    def get_request(self, index: int = 1) -> str:
        return self._nth_recent(self.input_history, index)

    def get_response(self, index: int = 1) -> str:
        return self._nth_recent(self.response_history, index)

    def get_that(self, index: int = 1) -> str:
        return self._nth_recent(self.that_history, index)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "topic": self.topic,
            "variables": dict(self.variables),
            "turns": len(self.input_history),
            "created_at": self.created_at,
            "last_activity": self.last_activity,
        }


# ──────────────────────────────────────────────────────────────────
# Knowledge base
# ──────────────────────────────────────────────────────────────────

class KnowledgeBase:
    """
    Bot-wide state shared by every session.

    All table access goes through methods that take the internal
    reader/writer lock; the raw dictionaries are never handed out.
    """

    def __init__(self, index: Optional[PatternIndex] = None):
        self.index = index if index is not None else PatternIndex()
        self._lock = ReadWriteLock()
        self._properties: Dict[str, str] = {}
        self._globals: Dict[str, str] = {}
        self._sets: Dict[str, List[str]] = {}
        self._maps: Dict[str, Dict[str, str]] = {}
        self._lists: Dict[str, List[str]] = {}
        self._arrays: Dict[str, List[str]] = {}

    # properties / globals ----------------------------------------

    def get_property(self, name: str) -> Optional[str]:
        with self._lock.read():
            return self._properties.get(name)

    def set_property(self, name: str, value: str) -> None:
        with self._lock.write():
            self._properties[name] = value

    def update_properties(self, values: Dict[str, str]) -> None:
        with self._lock.write():
            self._properties.update(values)

    def properties(self) -> Dict[str, str]:
        with self._lock.read():
            return dict(self._properties)

    def get_global(self, name: str) -> Optional[str]:
        with self._lock.read():
            return self._globals.get(name)

    def set_global(self, name: str, value: str) -> None:
        with self._lock.write():
            self._globals[name] = value

    # sets ----------------------------------------------------------

    def has_set(self, name: str) -> bool:
        with self._lock.read():
            return name.lower() in self._sets

    def set_members(self, name: str) -> List[str]:
        with self._lock.read():
            return list(self._sets.get(name.lower(), []))

    def normalized_set(self, name: str) -> frozenset:
        """Members in the normalized token space, for pattern matching."""
        return frozenset(normalize(m) for m in self.set_members(name))

    def set_add(self, name: str, *values: str) -> None:
        with self._lock.write():
            members = self._sets.setdefault(name.lower(), [])
            for value in values:
                if value and value.lower() not in (m.lower() for m in members):
                    members.append(value)

    def set_remove(self, name: str, value: str) -> bool:
        with self._lock.write():
            members = self._sets.get(name.lower(), [])
            kept = [m for m in members if m.lower() != value.lower()]
            self._sets[name.lower()] = kept
            return len(kept) != len(members)

    def set_clear(self, name: str) -> None:
        with self._lock.write():
            self._sets[name.lower()] = []

    def set_contains(self, name: str, value: str) -> bool:
        with self._lock.read():
            return value.lower() in (m.lower() for m in self._sets.get(name.lower(), []))

    # maps ----------------------------------------------------------

    def map_get(self, name: str, key: str) -> Optional[str]:
        with self._lock.read():
            table = self._maps.get(name, {})
            if key in table:
                return table[key]
            lowered = key.lower()
            for candidate, value in table.items():
                if candidate.lower() == lowered:
                    return value
            return None

    def map_set(self, name: str, key: str, value: str) -> None:
        with self._lock.write():
            self._maps.setdefault(name, {})[key] = value

    def map_update(self, name: str, values: Dict[str, str]) -> None:
        with self._lock.write():
            self._maps.setdefault(name, {}).update(values)

    def map_remove(self, name: str, key: str) -> bool:
        with self._lock.write():
            return self._maps.get(name, {}).pop(key, None) is not None

    def map_clear(self, name: str) -> None:
        with self._lock.write():
            self._maps[name] = {}

    def map_items(self, name: str) -> List[Tuple[str, str]]:
        with self._lock.read():
            return sorted(self._maps.get(name, {}).items())

    # lists ---------------------------------------------------------

    def list_items(self, name: str) -> List[str]:
        with self._lock.read():
            return list(self._lists.get(name, []))

    def list_append(self, name: str, value: str) -> None:
        with self._lock.write():
            self._lists.setdefault(name, []).append(value)

    def list_insert(self, name: str, index: int, value: str) -> None:
        with self._lock.write():
            items = self._lists.setdefault(name, [])
            if 0 <= index <= len(items):
                items.insert(index, value)
            else:
                items.append(value)

    def list_remove_at(self, name: str, index: int) -> bool:
        with self._lock.write():
            items = self._lists.get(name, [])
            if 0 <= index < len(items):
                del items[index]
                return True
            return False

    def list_remove_value(self, name: str, value: str) -> bool:
        with self._lock.write():
            items = self._lists.get(name, [])
            if value in items:
                items.remove(value)
                return True
            return False

    def list_clear(self, name: str) -> None:
        with self._lock.write():
            self._lists[name] = []

    # arrays --------------------------------------------------------

    def array_items(self, name: str) -> List[str]:
        with self._lock.read():
            return list(self._arrays.get(name, []))

    def array_set(self, name: str, index: Optional[int], value: str) -> None:
        """Assign at ``index``, growing with empty slots; None appends."""
        with self._lock.write():
            items = self._arrays.setdefault(name, [])
            if index is None or index < 0:
                items.append(value)
                return
            if index >= len(items):
                items.extend([""] * (index + 1 - len(items)))
            items[index] = value

    def array_resize(self, name: str, size: int) -> None:
        with self._lock.write():
            items = self._arrays.setdefault(name, [])
            if size < len(items):
                del items[size:]
            else:
                items.extend([""] * (size - len(items)))

    def array_clear(self, name: str) -> None:
        with self._lock.write():
            self._arrays[name] = []

    def stats(self) -> Dict[str, int]:
        with self._lock.read():
            counts = {
                "properties": len(self._properties),
                "globals": len(self._globals),
                "sets": len(self._sets),
                "maps": len(self._maps),
                "lists": len(self._lists),
                "arrays": len(self._arrays),
            }
        counts["categories"] = len(self.index)
        return counts


# ──────────────────────────────────────────────────────────────────
# Variable resolution
# ──────────────────────────────────────────────────────────────────

class VariableScope(Enum):
    LOCAL = "local"
    SESSION = "session"
    GLOBAL = "global"
    PROPERTY = "property"


class VariableContext:
    """
    Ordered scope resolver created fresh for every template evaluation.

    Each scope is a (scope, reader) pair consulted in list order; the first
    reader that knows the name wins. Local bindings live in this object only
    and vanish with it.
    """

    def __init__(self, session: ChatSession, kb: KnowledgeBase):
        self.session = session
        self.kb = kb
        self.locals: Dict[str, str] = {}
        self._scopes: List[Tuple[VariableScope, Callable[[str], Optional[str]]]] = [
            (VariableScope.LOCAL, self.locals.get),
            (VariableScope.SESSION, session.variables.get),
            (VariableScope.GLOBAL, kb.get_global),
            (VariableScope.PROPERTY, kb.get_property),
        ]

    @property
    def scopes(self) -> List[VariableScope]:
        return [scope for scope, _ in self._scopes]

    def lookup(self, name: str) -> Optional[str]:
        for _, reader in self._scopes:
            value = reader(name)
            if value is not None:
                return value
        return None

    def get(self, name: str, scope: Optional[VariableScope] = None, default: str = "") -> str:
        if scope is None:
            value = self.lookup(name)
        else:
            reader = dict(self._scopes)[scope]
            value = reader(name)
        return default if value is None else value

    def set(self, name: str, value: str, scope: VariableScope = VariableScope.SESSION) -> None:
        if scope is VariableScope.LOCAL:
            self.locals[name] = value
        elif scope is VariableScope.SESSION:
            self.session.variables[name] = value
            if name == "topic":
                self.session.topic = value
        elif scope is VariableScope.GLOBAL:
            self.kb.set_global(name, value)
        else:
            self.kb.set_property(name, value)

    def push_history(self, user_input: str, response: str) -> None:
        self.session.push_history(user_input, response)
