"""
Shared fixtures.

Usage:
    Fixtures defined here are available to every test module.
    Builders (user_id, ledger_row, make_http_response, ...) and the
    stateful MockDatabase live in tests.fakes.
"""

import json

import pytest

from tests.fakes import FakeProvider, MockDatabase


@pytest.fixture
def mock_db():
    """Empty in-memory database."""
    return MockDatabase()


@pytest.fixture
def provider():
    """Multicast fake provider (B = 500)."""
    return FakeProvider()


@pytest.fixture
def text_messages():
    return [{"type": "text", "text": "ありがとうございました"}]


@pytest.fixture
def message_file(tmp_path, text_messages):
    """Message file in the {"messages": [...]} shape."""
    path = tmp_path / "messages.json"
    path.write_text(json.dumps({"messages": text_messages}), encoding="utf-8")
    return str(path)
