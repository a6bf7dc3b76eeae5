"""
Unit Tests for Application State
Tests for: snapshot loading and change application
"""
from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

import db
from models import Change
from state import AppState


@pytest.fixture
def repo(monkeypatch):
    mocks = {
        "get_event": AsyncMock(return_value=None),
        "get_registration": AsyncMock(return_value=None),
        "list_events": AsyncMock(return_value=[]),
        "list_registrations": AsyncMock(return_value=[]),
    }
    for name, mock in mocks.items():
        monkeypatch.setattr(db, name, mock)
    return mocks


class TestSnapshots:
    """Snapshots follow repository changes"""

    async def test_load(self, repo, make_event, make_registration):
        repo["list_events"].return_value = [make_event(id=1), make_event(id=2, is_open=False)]
        repo["list_registrations"].return_value = [make_registration(id=7)]
        state = AppState()

        await state.load()

        assert set(state.events) == {1, 2}
        assert [e.id for e in state.open_events()] == [1]
        assert [r.id for r in state.registrations_for(1)] == [7]

    async def test_insert_and_update(self, repo, make_registration):
        state = AppState()
        reg = make_registration(id=7)
        repo["get_registration"].return_value = reg

        await state.apply(Change("registrations", "INSERT", 7))
        assert state.registrations[7] is reg

        updated = replace(reg, version=2)
        repo["get_registration"].return_value = updated
        await state.apply(Change("registrations", "UPDATE", 7))
        assert state.registrations[7].version == 2

    async def test_delete_needs_no_read(self, repo, make_event):
        state = AppState()
        state.events[1] = make_event(id=1)

        await state.apply(Change("events", "DELETE", 1))

        assert state.events == {}
        repo["get_event"].assert_not_awaited()

    async def test_vanished_record_is_dropped(self, repo, make_event):
        state = AppState()
        state.events[1] = make_event(id=1)

        await state.apply(Change("events", "UPDATE", 1))

        assert 1 not in state.events

    async def test_unknown_table_ignored(self, repo):
        state = AppState()
        await state.apply(Change("audit", "INSERT", 1))
        repo["get_event"].assert_not_awaited()
        repo["get_registration"].assert_not_awaited()

    async def test_events_sorted_by_date(self, repo, make_event):
        from datetime import date

        state = AppState()
        state.events = {
            1: make_event(id=1, date=date(2026, 5, 1)),
            2: make_event(id=2, date=date(2026, 4, 1)),
        }
        assert [e.id for e in state.sorted_events()] == [2, 1]


class TestChangeOrdering:
    """Notifications are applied one at a time, in arrival order"""

    async def test_slow_older_read_does_not_overwrite_newer(self, repo, make_registration):
        import asyncio

        state = AppState()
        reg = make_registration(id=7)
        reads = iter([(0.05, replace(reg, version=2)), (0, replace(reg, version=3))])

        async def _slow_then_fast(reg_id):
            delay, record = next(reads)
            await asyncio.sleep(delay)
            return record

        repo["get_registration"].side_effect = _slow_then_fast

        state.dispatch(Change("registrations", "UPDATE", 7))
        state.dispatch(Change("registrations", "UPDATE", 7))
        await state.settle()

        assert state.registrations[7].version == 3
        await state.close()

    async def test_failed_apply_does_not_stop_later_changes(self, repo, make_event):
        state = AppState()
        repo["get_event"].side_effect = [ConnectionError("db down"), make_event(id=2)]

        state.dispatch(Change("events", "INSERT", 1))
        state.dispatch(Change("events", "INSERT", 2))
        await state.settle()

        assert list(state.events) == [2]
        await state.close()
