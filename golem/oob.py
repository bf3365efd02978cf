"""
Out-of-band handler registry.

``<oob><name>payload</name></oob>`` in a template calls the handler
registered under ``name`` with the evaluated payload. Handlers are plain
callables ``(payload, session) -> str``; an unregistered name is logged and
contributes nothing to the response.
"""

import logging
import re
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from golem.context import ChatSession

logger = logging.getLogger(__name__)

OOBHandler = Callable[[str, ChatSession], str]

_OOB_MESSAGE = re.compile(r"^\s*<oob>\s*<([A-Za-z][\w.-]*)(?:\s[^>]*)?>(.*?)</\1>\s*</oob>\s*$", re.DOTALL)


@dataclass
class RegisteredHandler:
    name: str
    handler: OOBHandler
    description: str = ""


def parse_oob_message(text: str) -> Optional[Tuple[str, str]]:
    """Split raw ``<oob><name>body</name></oob>`` input into (name, body)."""
    match = _OOB_MESSAGE.match(text or "")
    if not match:
        return None
    return match.group(1).lower(), match.group(2).strip()


class OOBRegistry:
    def __init__(self):
        self._handlers: Dict[str, RegisteredHandler] = {}
        self._lock = threading.Lock()

    def register_handler(self, name: str, handler: OOBHandler, description: str = "") -> None:
        if not name:
            raise ValueError("OOB handler name cannot be empty")
        if not callable(handler):
            raise TypeError(f"OOB handler for {name!r} is not callable")
        with self._lock:
            self._handlers[name.lower()] = RegisteredHandler(name.lower(), handler, description)
        logger.info("Registered OOB handler %s", name)

    def unregister_handler(self, name: str) -> bool:
        with self._lock:
            return self._handlers.pop(name.lower(), None) is not None

    def list_handlers(self) -> Dict[str, str]:
        with self._lock:
            return {name: entry.description for name, entry in sorted(self._handlers.items())}

    def has_handler(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self._handlers

    def dispatch(self, name: str, body: str, session: ChatSession) -> str:
        with self._lock:
            entry = self._handlers.get(name.lower())
        if entry is None:
            logger.warning("No OOB handler for <%s> (session %s)", name, session.id)
            return ""
        try:
            result = entry.handler(body, session)
        except Exception:
            # a failing handler contributes nothing to the response
            logger.exception("OOB handler %s failed in session %s", name, session.id)
            return ""
        return "" if result is None else str(result)
