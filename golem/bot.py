"""
Golem facade.

Ties the pieces together for one bot instance:

    corpus / set / map / properties loading  ->  PatternIndex + KnowledgeBase
    respond(text, session)                   ->  match, evaluate, record history
    execute(command, args)                   ->  shell-style command surface

Sessions live in an LRU cache bounded by ``config.max_sessions``. Each
request holds its session's lock for the whole match-evaluate-record cycle,
so requests for one session are serialized while different sessions run in
parallel.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from golem.category import Category
from golem.config import GolemConfig, bot_properties, load_properties
from golem.context import ChatSession, KnowledgeBase
from golem.corpus import (
    CorpusParseResult,
    corpus_files,
    kind_of,
    parse_corpus,
    parse_map,
    parse_set,
    read_corpus_file,
)
from golem.errors import CommandError, GolemError, SessionError
from golem.learning import LearningManager
from golem.matcher import MatchResult
from golem.normalizer import tokenize, tokenize_preserving_case
from golem.oob import OOBHandler, OOBRegistry, parse_oob_message
from golem.pattern_index import PatternIndex
from golem.persistence import LearnedCategoryStore
from golem.pipeline import EvaluationContext, TemplateEvaluator, default_processors
from golem.sraix import SRAIXConfig, SRAIXGateway, SRAIXRequest
from golem.template import parse_template
from golem.version import __version__

logger = logging.getLogger(__name__)


@dataclass
class Response:
    """Response from processing one input."""

    text: str
    session_id: str
    pattern: Optional[str] = None
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "text": self.text,
            "session_id": self.session_id,
            "pattern": self.pattern,
            "is_fallback": self.is_fallback,
        }


class Golem:
    """One bot: corpus, shared knowledge, sessions and the evaluation pipeline."""

    def __init__(self, config: Optional[GolemConfig] = None, store: Optional[LearnedCategoryStore] = None):
        self.config = config or GolemConfig()
        self.config.validate()
        self.index = PatternIndex(that_before_topic=self.config.that_before_topic)
        self.kb = KnowledgeBase(self.index)
        self.evaluator = TemplateEvaluator(default_processors())
        if store is None and self.config.persistence_path:
            store = LearnedCategoryStore(self.config.persistence_path)
        self.learning = LearningManager(self.index, store)
        self.gateway = SRAIXGateway(default_timeout=self.config.sraix_default_timeout)
        self.oob = OOBRegistry()

        self._sessions: "OrderedDict[str, ChatSession]" = OrderedDict()
        self._sessions_lock = threading.Lock()
        self._current_id: Optional[str] = None

        self.kb.set_property("version", self.kb.get_property("version") or __version__)
        if store is not None:
            self.learning.load_persistent()

    # ──────────────────────────────────────────────────────────────
    # Loading
    # ──────────────────────────────────────────────────────────────

    def _index_categories(self, result: CorpusParseResult) -> CorpusParseResult:
        for category in result.categories:
            self.index.insert(category)
        logger.info(
            "Loaded %d categories from %s (%d rejected)", len(result.categories), result.source, len(result.errors)
        )
        return result

    def load_corpus(self, data: Union[bytes, str], source: str = "<corpus>") -> CorpusParseResult:
        return self._index_categories(parse_corpus(data, source=source))

    def add_category(
        self, pattern: str, template: str, that: Optional[str] = None, topic: Optional[str] = None
    ) -> Category:
        category = Category.build(pattern, template, that=that, topic=topic, source="api")
        self.index.insert(category)
        return category

    def load_file(self, path: Union[str, Path]) -> CorpusParseResult:
        """Load one corpus, set, map or properties file."""
        file_path = Path(path)
        kind = kind_of(file_path)
        if kind is None:
            raise ValueError(f"Unsupported file type: {file_path}")
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        if kind == "aiml":
            return self._index_categories(read_corpus_file(file_path))

        text = file_path.read_text(encoding="utf-8")
        if kind == "set":
            members = parse_set(text)
            self.kb.set_add(file_path.stem, *members)
            logger.info("Loaded set %s (%d members)", file_path.stem, len(members))
        elif kind == "map":
            entries = parse_map(text)
            self.kb.map_update(file_path.stem, entries)
            logger.info("Loaded map %s (%d entries)", file_path.stem, len(entries))
        else:
            self.load_properties(load_properties(file_path))
        return CorpusParseResult(source=str(file_path))

    def load_directory(self, path: Union[str, Path]) -> CorpusParseResult:
        """Load every supported file below ``path``: properties, sets, maps, then categories."""
        combined = CorpusParseResult(source=str(path))
        for _, file_path in corpus_files(path):
            try:
                combined.extend(self.load_file(file_path))
            except ValueError as exc:
                logger.warning("Skipping %s: %s", file_path, exc)
                combined.errors.append(f"{file_path}: {exc}")
        return combined

    def load(self, path: Union[str, Path]) -> CorpusParseResult:
        target = Path(path)
        if target.is_dir():
            return self.load_directory(target)
        return self.load_file(target)

    def load_properties(self, props: Dict[str, str]) -> None:
        self.kb.update_properties(bot_properties(props))
        self.gateway.configure_from_properties(props)

    # ──────────────────────────────────────────────────────────────
    # Sessions
    # ──────────────────────────────────────────────────────────────

    def create_session(self, session_id: Optional[str] = None) -> ChatSession:
        kwargs = {"id": session_id} if session_id else {}
        session = ChatSession(history_size=self.config.history_size, **kwargs)
        evicted = []
        with self._sessions_lock:
            if session.id in self._sessions:
                raise SessionError(f"Session already exists: {session.id}")
            while len(self._sessions) >= self.config.max_sessions:
                evicted.append(self._sessions.popitem(last=False)[0])
            self._sessions[session.id] = session
            self._current_id = session.id
        for old_id in evicted:
            logger.info("Evicted idle session %s", old_id)
            self.learning.forget_session(old_id)
        logger.info("Created session %s", session.id)
        return session

    def get_session(self, session_id: str) -> ChatSession:
        with self._sessions_lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionError(f"Session not found: {session_id}")
            self._sessions.move_to_end(session_id)
            return session

    def delete_session(self, session_id: str) -> None:
        with self._sessions_lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionError(f"Session not found: {session_id}")
            if self._current_id == session_id:
                self._current_id = next(reversed(self._sessions), None)
        self.learning.forget_session(session_id)
        logger.info("Deleted session %s", session_id)

    def switch_session(self, session_id: str) -> ChatSession:
        session = self.get_session(session_id)
        with self._sessions_lock:
            self._current_id = session.id
        return session

    @property
    def current_session(self) -> Optional[ChatSession]:
        with self._sessions_lock:
            return self._sessions.get(self._current_id) if self._current_id else None

    def list_sessions(self) -> List[ChatSession]:
        with self._sessions_lock:
            return list(self._sessions.values())

    def _session_for(self, session_id: Optional[str]) -> ChatSession:
        if session_id is None:
            return self.current_session or self.create_session()
        try:
            return self.get_session(session_id)
        except SessionError:
            pass
        try:
            return self.create_session(session_id)
        except SessionError:
            # another request created it first
            return self.get_session(session_id)

    # ──────────────────────────────────────────────────────────────
    # Matching and responding
    # ──────────────────────────────────────────────────────────────

    def match(self, text: str, session: ChatSession) -> Optional[MatchResult]:
        return self.index.match(
            tokenize(text),
            that=session.get_that(1).split(),
            topic=tokenize(session.topic),
            original=tokenize_preserving_case(text),
            session_id=session.id,
            sets=self.kb.normalized_set,
        )

    def respond(self, text: str, session_id: Optional[str] = None) -> Response:
        session = self._session_for(session_id)
        with session.lock:
            oob = parse_oob_message(text)
            if oob is not None:
                reply = self.oob.dispatch(oob[0], oob[1], session)
                session.push_history(text, reply)
                return Response(text=reply, session_id=session.id, pattern=None)

            result = self.match(text, session)
            if result is None:
                logger.info("No category matched %r in session %s", text, session.id)
                reply = self.config.not_understood_response
                session.push_history(text, reply)
                return Response(text=reply, session_id=session.id, is_fallback=True)

            ctx = EvaluationContext.create(
                self, session, result.stars, result.that_stars, result.topic_stars, user_input=text
            )
            try:
                reply = self.evaluator.render(result.category.nodes, ctx)
            except RecursionError:
                logger.error(
                    "Template nesting exhausted the interpreter stack for %s in session %s",
                    result.category.key, session.id,
                )
                reply = ""
            session.push_history(text, reply)
            logger.debug("%s -> %s -> %r", text, result.category.key, reply)
            return Response(text=reply, session_id=session.id, pattern=str(result.category.key))

    def process_input(self, text: str, session_id: Optional[str] = None) -> str:
        return self.respond(text, session_id).text

    def evaluate_template(self, template: str, session_id: Optional[str] = None, stars: Sequence[str] = ()) -> str:
        """Evaluate a template outside of matching (used by tools and tests)."""
        session = self._session_for(session_id)
        nodes = parse_template(template)
        with session.lock:
            ctx = EvaluationContext.create(self, session, stars)
            return self.evaluator.render(nodes, ctx)

    # ──────────────────────────────────────────────────────────────
    # Services, out-of-band handlers, learning
    # ──────────────────────────────────────────────────────────────

    def add_sraix_config(self, config: SRAIXConfig) -> None:
        self.gateway.add_config(config)

    def load_sraix_configs(self, path: Union[str, Path]) -> List[str]:
        target = Path(path)
        if target.is_dir():
            return self.gateway.load_directory(target)
        return self.gateway.load_file(target)

    def register_oob_handler(self, name: str, handler: OOBHandler, description: str = "") -> None:
        self.oob.register_handler(name, handler, description)

    def session_learning_stats(self, session_id: str) -> Dict[str, object]:
        self.get_session(session_id)
        return self.learning.session_stats(session_id).to_dict()

    def session_learned_categories(self, session_id: str) -> List[Category]:
        self.get_session(session_id)
        return self.learning.session_categories(session_id)

    def clear_session_learning(self, session_id: str) -> int:
        self.get_session(session_id)
        return self.learning.clear_session(session_id)

    def stats(self) -> Dict[str, object]:
        with self._sessions_lock:
            sessions = len(self._sessions)
        return {
            "version": __version__,
            "sessions": sessions,
            "knowledge_base": self.kb.stats(),
            "sraix_services": sorted(self.gateway.list_configs()),
            "oob_handlers": sorted(self.oob.list_handlers()),
            "pipeline": dict(self.evaluator.metrics),
            "learning": self.learning.summary()["global_stats"],
        }

    def close(self) -> None:
        self.gateway.close()

    # ──────────────────────────────────────────────────────────────
    # Command surface
    # ──────────────────────────────────────────────────────────────

    def execute(self, command: str, args: Sequence[str] = ()) -> str:
        """Run one shell command and return its printable output.

        Raises:
            CommandError: unknown command or missing/invalid arguments.
        """
        handlers: Dict[str, Callable[[List[str]], str]] = {
            "load": self._cmd_load,
            "chat": self._cmd_chat,
            "session": self._cmd_session,
            "properties": self._cmd_properties,
            "sraix": self._cmd_sraix,
            "oob": self._cmd_oob,
            "learning": self._cmd_learning,
            "help": self._cmd_help,
        }
        handler = handlers.get(command.lower())
        if handler is None:
            raise CommandError(f"Unknown command: {command} (try 'help')")
        try:
            return handler(list(args))
        except CommandError:
            raise
        except (GolemError, FileNotFoundError, ValueError) as exc:
            raise CommandError(f"{command}: {exc}") from exc

    @staticmethod
    def _require(args: List[str], count: int, usage: str) -> None:
        if len(args) < count:
            raise CommandError(f"usage: {usage}")

    def _cmd_load(self, args):
        self._require(args, 1, "load <file-or-directory>")
        result = self.load(args[0])
        lines = [f"Loaded {len(result.categories)} categories from {args[0]}"]
        lines.extend(f"  rejected: {error}" for error in result.errors)
        return "\n".join(lines)

    def _cmd_chat(self, args):
        self._require(args, 1, "chat <text>")
        return self.respond(" ".join(args)).text

    def _cmd_session(self, args):
        self._require(args, 1, "session create|list|switch|delete|current [id]")
        action, rest = args[0].lower(), args[1:]
        if action == "create":
            return f"Created session {self.create_session(rest[0] if rest else None).id}"
        if action == "list":
            current = self._current_id
            lines = [
                f"{'*' if s.id == current else ' '} {s.id} ({len(s.input_history)} turns)"
                for s in self.list_sessions()
            ]
            return "\n".join(lines) if lines else "No sessions"
        if action == "switch":
            self._require(rest, 1, "session switch <id>")
            return f"Switched to session {self.switch_session(rest[0]).id}"
        if action == "delete":
            self._require(rest, 1, "session delete <id>")
            self.delete_session(rest[0])
            return f"Deleted session {rest[0]}"
        if action == "current":
            session = self.current_session
            return session.id if session else "No current session"
        raise CommandError(f"Unknown session action: {action}")

    def _cmd_properties(self, args):
        if not args or args[0].lower() == "list":
            props = self.kb.properties()
            return "\n".join(f"{k}={v}" for k, v in sorted(props.items())) or "No properties"
        action = args[0].lower()
        if action == "get":
            self._require(args, 2, "properties get <name>")
            return self.kb.get_property(args[1]) or ""
        if action == "set":
            self._require(args, 3, "properties set <name> <value>")
            self.kb.set_property(args[1], " ".join(args[2:]))
            return f"{args[1]}={' '.join(args[2:])}"
        raise CommandError(f"Unknown properties action: {action}")

    def _cmd_sraix(self, args):
        if not args or args[0].lower() == "list":
            configs = self.gateway.list_configs()
            lines = [f"{name}: {c.method} {c.url_template or c.base_url}" for name, c in sorted(configs.items())]
            return "\n".join(lines) or "No SRAIX services configured"
        action = args[0].lower()
        if action == "load":
            self._require(args, 2, "sraix load <file-or-directory>")
            return f"Loaded SRAIX services: {', '.join(self.load_sraix_configs(args[1])) or 'none'}"
        if action == "test":
            self._require(args, 3, "sraix test <service> <text>")
            result = self.gateway.invoke(args[1], " ".join(args[2:]), SRAIXRequest())
            return result.text if result.handled else f"SRAIX error: {result.error}"
        raise CommandError(f"Unknown sraix action: {action}")

    def _cmd_oob(self, args):
        if not args or args[0].lower() == "list":
            handlers = self.oob.list_handlers()
            return "\n".join(f"{n}: {d}" if d else n for n, d in handlers.items()) or "No OOB handlers"
        action = args[0].lower()
        if action == "test":
            self._require(args, 2, "oob test <name> [payload]")
            session = self.current_session or self.create_session()
            return self.oob.dispatch(args[1], " ".join(args[2:]), session)
        raise CommandError(f"Unknown oob action: {action}")

    def _cmd_learning(self, args):
        action = args[0].lower() if args else "summary"
        if action == "summary":
            summary = self.learning.summary()
            totals = summary["global_stats"]
            return (
                f"categories={summary['total_categories']} "
                f"session_learned={summary['learned_session']} persistent_learned={summary['learned_persistent']} "
                f"learned={totals['total_learned']} unlearned={totals['total_unlearned']}"
            )
        session_id = args[1] if len(args) > 1 else (self._current_id or "")
        if not session_id:
            raise CommandError("No session selected")
        if action == "stats":
            stats = self.session_learning_stats(session_id)
            return " ".join(f"{k}={v}" for k, v in stats.items())
        if action == "session":
            categories = self.session_learned_categories(session_id)
            return "\n".join(str(c.key) for c in categories) or "No learned categories"
        if action == "clear":
            return f"Cleared {self.clear_session_learning(session_id)} learned categories"
        raise CommandError(f"Unknown learning action: {action}")

    def _cmd_help(self, args):
        return "\n".join([
            "load <path>                          load a corpus file or directory",
            "chat <text>                          talk in the current session",
            "session create|list|switch|delete|current [id]",
            "properties [list|get <k>|set <k> <v>]",
            "sraix [list|load <path>|test <service> <text>]",
            "oob [list|test <name> [payload]]",
            "learning [summary|stats|session|clear] [session-id]",
            "help                                 this text",
        ])

