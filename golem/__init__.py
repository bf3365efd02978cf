"""golem - markup-driven conversational pattern interpreter."""

from .version import __version__
from .bot import Golem, Response
from .category import Category, LearnedCategoryRecord, LearningScope, PatternKey
from .config import GolemConfig
from .context import ChatSession, KnowledgeBase, VariableContext, VariableScope
from .corpus import CorpusParseResult, parse_corpus
from .errors import (
    CategoryError,
    CommandError,
    GolemError,
    PersistenceError,
    SessionError,
    SRAIXError,
    TemplateSyntaxError,
)
from .normalizer import normalize
from .pattern_index import PatternIndex
from .sraix import SRAIXConfig, SRAIXGateway

__all__ = [
    "__version__",
    "Golem",
    "Response",
    "Category",
    "LearnedCategoryRecord",
    "LearningScope",
    "PatternKey",
    "GolemConfig",
    "ChatSession",
    "KnowledgeBase",
    "VariableContext",
    "VariableScope",
    "CorpusParseResult",
    "parse_corpus",
    "GolemError",
    "CategoryError",
    "CommandError",
    "PersistenceError",
    "SessionError",
    "SRAIXError",
    "TemplateSyntaxError",
    "normalize",
    "PatternIndex",
    "SRAIXConfig",
    "SRAIXGateway",
]
