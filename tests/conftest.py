"""
Shared pytest fixtures for the tomekeeper test suite.
"""

import os

import pytest
from unittest.mock import MagicMock

from tomekeeper.tools.content import load_content
from tomekeeper.tools.state_adapter import StateAdapter
from tomekeeper.tools.storage import MemoryStore
from tomekeeper.tools.storage_keys import empty_state


@pytest.fixture(scope="session")
def content():
    """The reference content shipped with the package."""
    return load_content()


@pytest.fixture
def adapter(content):
    """Adapter over an empty canonical document."""
    return StateAdapter(empty_state(), content)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def handler():
    """MagicMock change-event handler."""
    return MagicMock()


@pytest.fixture
def make_quest():
    """Factory for a plain quest dict as the UI would submit it."""

    def _make(**overrides):
        quest = {
            "type": "♥ Organize the Stacks",
            "prompt": "Read a book with a blue cover",
            "book": "The Hobbit",
            "bookAuthor": "J.R.R. Tolkien",
            "month": "January",
            "year": "2025",
        }
        quest.update(overrides)
        return quest

    return _make


@pytest.fixture
def isolated_env(monkeypatch):
    """os.environ replaced by a copy without TOMEKEEPER_* variables.

    load_dotenv writes into os.environ; the copy keeps that from leaking
    between tests.
    """
    env = {k: v for k, v in os.environ.items() if not k.startswith("TOMEKEEPER_")}
    monkeypatch.setattr(os, "environ", env)
    return env
