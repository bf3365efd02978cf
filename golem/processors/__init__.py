"""Stage processors for the template pipeline, one module per stage."""

from golem.processors.wildcard import WildcardProcessor
from golem.processors.variable import VariableProcessor
from golem.processors.recursion import RecursionProcessor
from golem.processors.data import DataProcessor
from golem.processors.text import TextProcessor
from golem.processors.formatting import FormatProcessor
from golem.processors.collection import CollectionProcessor
from golem.processors.system import SystemProcessor

__all__ = [
    "WildcardProcessor",
    "VariableProcessor",
    "RecursionProcessor",
    "DataProcessor",
    "TextProcessor",
    "FormatProcessor",
    "CollectionProcessor",
    "SystemProcessor",
]
