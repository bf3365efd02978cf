from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from golem.bot import Golem
from golem.config import GolemConfig


def aiml(*categories: str) -> str:
    """Wrap category markup in a corpus document."""
    return "<aiml>" + "".join(categories) + "</aiml>"


def category(pattern: str, template: str, that: str = None) -> str:
    that_part = f"<that>{that}</that>" if that else ""
    return f"<category><pattern>{pattern}</pattern>{that_part}<template>{template}</template></category>"


@pytest.fixture
def bot():
    """Golem with default settings and no persistence."""
    instance = Golem(GolemConfig())
    yield instance
    instance.close()


@pytest.fixture
def persistent_bot_factory(tmp_path):
    """Build bots sharing one learned-category database, to simulate restarts."""
    db_path = tmp_path / "learned" / "categories.db"
    created = []

    def _make() -> Golem:
        instance = Golem(GolemConfig(persistence_path=str(db_path)))
        created.append(instance)
        return instance

    yield _make
    for instance in created:
        instance.close()


@pytest.fixture
def session(bot):
    return bot.create_session()


@pytest.fixture
def say(bot, session):
    """Send one line in the fixture session and return the reply text."""

    def _say(text: str, session_id: str = None) -> str:
        return bot.process_input(text, session_id or session.id)

    return _say


@pytest.fixture
def evaluate(bot, session):
    """Evaluate a template snippet in the fixture session."""

    def _evaluate(template: str, stars=()) -> str:
        return bot.evaluate_template(template, session.id, stars)

    return _evaluate
