"""Tests for SkillSession cleanup at shutdown."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

from sandbox.errors import RemovalFailed
from sandbox.session import SkillSession


def _manager() -> MagicMock:
    manager = MagicMock()
    manager.remove = AsyncMock(return_value=True)
    return manager


def test_record_is_ordered_and_deduplicated():
    session = SkillSession()
    for name in ("pdf", "docx", "pdf"):
        session.record(name)
    assert list(session) == ["pdf", "docx"]
    assert len(session) == 2
    assert "pdf" in session


def test_drain_removes_each_skill_once():
    session = SkillSession()
    session.record("pdf")
    session.record("docx")
    manager = _manager()

    failed = asyncio.run(session.drain(manager))

    assert failed == []
    assert [c.args[0] for c in manager.remove.await_args_list] == ["pdf", "docx"]
    assert len(session) == 0


def test_drain_empty_session_makes_no_calls():
    manager = _manager()
    assert asyncio.run(SkillSession().drain(manager)) == []
    manager.remove.assert_not_called()


def test_drain_continues_past_failures():
    session = SkillSession()
    for name in ("pdf", "docx", "xlsx"):
        session.record(name)
    manager = _manager()
    manager.remove.side_effect = [True, RemovalFailed("busy"), True]

    failed = asyncio.run(session.drain(manager))

    assert failed == ["docx"]
    assert manager.remove.await_count == 3
    assert len(session) == 0


def test_second_drain_is_a_noop():
    session = SkillSession()
    session.record("pdf")
    manager = _manager()
    asyncio.run(session.drain(manager))
    asyncio.run(session.drain(manager))
    assert manager.remove.await_count == 1
