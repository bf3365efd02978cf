"""
Configuration for golem.

    GolemConfig                 engine settings, overridable from GOLEM_*
                                environment variables
    load_properties             key=value bot properties files
    load_sraix_config_file      JSON service configs (list or single object)
    load_sraix_config_directory every *.json in a directory

Loaders raise FileNotFoundError for missing paths and ValueError for
malformed content.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from golem.sraix import SRAIXConfig, substitute_env

logger = logging.getLogger(__name__)

SERVICE_PREFIXES = ("sraix.", "service.")


def _truthy(name: str) -> bool:
    return os.getenv(name, "").lower() in {"1", "true", "yes", "on"}


@dataclass
class GolemConfig:
    """Engine settings."""

    # Matching / evaluation
    max_recursion_depth: int = 32
    that_before_topic: bool = True
    not_understood_response: str = "I'm sorry, I don't understand."

    # Sessions
    history_size: int = 100
    max_sessions: int = 1000

    # Learning
    persistence_path: Optional[str] = None

    # External calls
    sraix_default_timeout: float = 30.0

    # Logging
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, **overrides) -> "GolemConfig":
        """Defaults, then GOLEM_* environment variables, then ``overrides``."""
        cfg = cls()
        ints = {
            "GOLEM_MAX_RECURSION_DEPTH": "max_recursion_depth",
            "GOLEM_HISTORY_SIZE": "history_size",
            "GOLEM_MAX_SESSIONS": "max_sessions",
        }
        for env, attr in ints.items():
            raw = os.getenv(env)
            if raw:
                try:
                    setattr(cfg, attr, int(raw))
                except ValueError:
                    logger.warning("Ignoring non-integer %s=%r", env, raw)
        if os.getenv("GOLEM_SRAIX_TIMEOUT"):
            try:
                cfg.sraix_default_timeout = float(os.environ["GOLEM_SRAIX_TIMEOUT"])
            except ValueError:
                logger.warning("Ignoring non-numeric GOLEM_SRAIX_TIMEOUT=%r", os.environ["GOLEM_SRAIX_TIMEOUT"])
        if os.getenv("GOLEM_TOPIC_FIRST") is not None:
            cfg.that_before_topic = not _truthy("GOLEM_TOPIC_FIRST")
        if os.getenv("GOLEM_NOT_UNDERSTOOD"):
            cfg.not_understood_response = os.environ["GOLEM_NOT_UNDERSTOOD"]
        if os.getenv("GOLEM_PERSISTENCE_PATH"):
            cfg.persistence_path = os.environ["GOLEM_PERSISTENCE_PATH"]
        if os.getenv("GOLEM_LOG_LEVEL"):
            cfg.log_level = os.environ["GOLEM_LOG_LEVEL"].upper()
        if _truthy("GOLEM_VERBOSE"):
            cfg.log_level = "DEBUG"
        for key, value in overrides.items():
            if not hasattr(cfg, key):
                raise ValueError(f"Unknown config option: {key}")
            setattr(cfg, key, value)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        if self.max_recursion_depth < 1:
            raise ValueError("max_recursion_depth must be at least 1")
        if self.history_size < 1:
            raise ValueError("history_size must be at least 1")
        if self.sraix_default_timeout <= 0:
            raise ValueError("sraix_default_timeout must be positive")

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


# ──────────────────────────────────────────────────────────────────
# Properties files
# ──────────────────────────────────────────────────────────────────

def parse_properties(text: str) -> Dict[str, str]:
    props: Dict[str, str] = {}
    for number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith(("#", "!")):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            key, sep, value = line.partition(":")
        if not sep or not key.strip():
            raise ValueError(f"Line {number}: expected key=value, got {line!r}")
        props[key.strip()] = substitute_env(value.strip())
    return props


def load_properties(path: Union[str, Path]) -> Dict[str, str]:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Properties file not found: {file_path}")
    try:
        return parse_properties(file_path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise ValueError(f"{file_path}: {exc}") from exc


def bot_properties(props: Dict[str, str]) -> Dict[str, str]:
    """The entries that are bot properties rather than service settings."""
    return {k: v for k, v in props.items() if not k.lower().startswith(SERVICE_PREFIXES)}


# ──────────────────────────────────────────────────────────────────
# SRAIX service configs
# ──────────────────────────────────────────────────────────────────

def load_sraix_config_file(path: Union[str, Path]) -> List[SRAIXConfig]:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"SRAIX config file not found: {file_path}")
    try:
        payload = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{file_path}: invalid JSON: {exc}") from exc

    if isinstance(payload, dict) and "services" in payload:
        payload = payload["services"]
    records = payload if isinstance(payload, list) else [payload]
    configs = []
    for record in records:
        if isinstance(record, dict):
            record = {k: substitute_env(v) if isinstance(v, str) else v for k, v in record.items()}
        try:
            configs.append(SRAIXConfig.from_dict(record))
        except ValueError as exc:
            raise ValueError(f"{file_path}: {exc}") from exc
    return configs


def load_sraix_config_directory(path: Union[str, Path]) -> List[SRAIXConfig]:
    directory = Path(path)
    if not directory.is_dir():
        raise FileNotFoundError(f"SRAIX config directory not found: {directory}")
    configs: List[SRAIXConfig] = []
    for file_path in sorted(directory.glob("*.json")):
        configs.extend(load_sraix_config_file(file_path))
    return configs
