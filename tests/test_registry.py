"""Tests for SessionRegistry."""

from unittest.mock import MagicMock

import pytest

from core.errors import SessionError
from sessions.registry import SessionRegistry


def test_create_then_get():
    registry = SessionRegistry()
    transport, server = MagicMock(), MagicMock()

    session = registry.create("abc", transport, server)

    assert registry.get("abc") is session
    assert session.transport is transport
    assert session.tool_server is server
    assert "abc" in registry
    assert len(registry) == 1


def test_remove_then_get():
    registry = SessionRegistry()
    session = registry.create("abc", MagicMock(), MagicMock())

    assert registry.remove("abc") is session
    assert registry.get("abc") is None
    assert "abc" not in registry


def test_create_remove_get_never_stale():
    registry = SessionRegistry()
    registry.create("abc", MagicMock(), MagicMock())
    registry.remove("abc")
    assert registry.get("abc") is None
    assert registry.session_ids() == []


def test_unknown_ids():
    registry = SessionRegistry()
    assert registry.get("nope") is None
    assert registry.remove("nope") is None


def test_one_session_per_id():
    registry = SessionRegistry()
    first = registry.create("abc", MagicMock(), MagicMock())

    with pytest.raises(SessionError):
        registry.create("abc", MagicMock(), MagicMock())

    assert registry.get("abc") is first


def test_registries_are_independent():
    one, two = SessionRegistry(), SessionRegistry()
    one.create("abc", MagicMock(), MagicMock())
    assert two.get("abc") is None
    assert [s.session_id for s in one] == ["abc"]
