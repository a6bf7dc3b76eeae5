"""
Unit Tests for the Repository Layer
Tests for: row mapping, update whitelists, CAS writes, delete guard, LISTEN parsing
"""
import json
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

import db
from errors import EventDeletionBlocked, RemoteWriteError
from models import Change, PaymentStatus, PricingMode


def _event_row(**overrides):
    row = {
        "id": 1, "name": "CodeJam", "date": date(2026, 3, 14), "venue": "Main Block",
        "description": None, "pricing_mode": "per-person", "price_per_person": 100,
        "price_per_team": 0, "max_team_size": 3, "payment_qr_url": None,
        "bank_details": None, "group_link": "https://chat.whatsapp.com/x",
        "is_open": True, "created_at": datetime(2026, 2, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


def _registration_row(members, **overrides):
    row = {
        "id": 7, "event_id": 1, "team_name": "Byte Me", "lead_email": "lead@kluniversity.in",
        "lead_phone": "9876543210", "members": members, "payment_status": "pending",
        "transaction_ref": "UTR1", "payment_proof_url": None, "lead_telegram_id": 555,
        "version": 4, "created_at": datetime(2026, 3, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


@pytest.fixture
def fake_pool(monkeypatch):
    pool = MagicMock()
    pool.fetchrow = AsyncMock()
    pool.fetch = AsyncMock()
    pool.fetchval = AsyncMock()
    pool.execute = AsyncMock()
    monkeypatch.setattr(db, "pool", pool)
    return pool


class TestRowMapping:
    """Database rows → domain objects"""

    def test_event_row(self):
        event = db._row_to_event(_event_row(pricing_mode="per-team"))
        assert event.pricing_mode == PricingMode.PER_TEAM
        assert event.group_link == "https://chat.whatsapp.com/x"

    def test_registration_row_with_json_text(self, make_member):
        members = [make_member(), make_member(attendance=True)]
        raw = json.dumps([m.to_dict() for m in members])

        reg = db._row_to_registration(_registration_row(raw))

        assert reg.members == members
        assert reg.payment_status == PaymentStatus.PENDING
        assert reg.version == 4

    def test_registration_row_with_decoded_json(self, make_member):
        member = make_member()
        reg = db._row_to_registration(_registration_row([member.to_dict()]))
        assert reg.members == [member]

    def test_registration_row_without_members(self):
        assert db._row_to_registration(_registration_row(None)).members == []


class TestWrites:
    """Update whitelists and error translation"""

    async def test_update_event_rejects_unknown_field(self, fake_pool):
        with pytest.raises(ValueError):
            await db.update_event(1, owner="mallory")
        fake_pool.fetchrow.assert_not_awaited()

    async def test_update_registration_rejects_members(self, fake_pool):
        with pytest.raises(ValueError):
            await db.update_registration(7, members="[]")
        fake_pool.fetchrow.assert_not_awaited()

    async def test_set_payment_status_bumps_version(self, fake_pool, make_member):
        fake_pool.fetchrow.return_value = _registration_row(
            [make_member().to_dict()], payment_status="approved", version=5,
        )

        reg = await db.set_payment_status(7, PaymentStatus.APPROVED)

        sql, status, reg_id = fake_pool.fetchrow.await_args.args
        assert "version = version + 1" in sql
        assert (status, reg_id) == ("approved", 7)
        assert reg.payment_status == PaymentStatus.APPROVED

    async def test_driver_error_becomes_remote_write_error(self, fake_pool):
        fake_pool.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate")
        with pytest.raises(RemoteWriteError):
            await db.set_event_open(1, False)

    async def test_cas_conflict_returns_none(self, fake_pool, make_member):
        fake_pool.fetchrow.return_value = None
        result = await db.replace_members_if_version(7, [make_member()], 3)

        assert result is None
        sql, payload, reg_id, version = fake_pool.fetchrow.await_args.args
        assert "WHERE id = $2 AND version = $3" in sql
        assert (reg_id, version) == (7, 3)
        assert json.loads(payload)[0]["attendance"] is False


class TestDeleteEvent:
    """Events with registrations cannot be deleted"""

    async def test_blocked_by_registrations(self, fake_pool, monkeypatch):
        monkeypatch.setattr(db, "count_event_registrations", AsyncMock(return_value=2))

        with pytest.raises(EventDeletionBlocked) as exc:
            await db.delete_event(1)

        assert exc.value.details == {"event_id": 1, "registrations": 2}
        fake_pool.execute.assert_not_awaited()

    async def test_foreign_key_race_is_reported_as_blocked(self, fake_pool, monkeypatch):
        monkeypatch.setattr(
            db, "count_event_registrations", AsyncMock(side_effect=[0, 1]),
        )
        fake_pool.execute.side_effect = asyncpg.ForeignKeyViolationError("fk")

        with pytest.raises(EventDeletionBlocked):
            await db.delete_event(1)

    async def test_deletes_empty_event(self, fake_pool, monkeypatch):
        monkeypatch.setattr(db, "count_event_registrations", AsyncMock(return_value=0))
        fake_pool.execute.return_value = "DELETE 1"

        assert await db.delete_event(1) is True


class TestSubscribe:
    """LISTEN payloads → Change messages"""

    async def test_notification_payloads(self, monkeypatch):
        conn = MagicMock()
        conn.add_listener = AsyncMock()
        monkeypatch.setattr(asyncpg, "connect", AsyncMock(return_value=conn))
        received = []

        await db.subscribe(received.append)
        channel, listener = conn.add_listener.await_args.args
        listener(conn, 1, channel, '{"table":"registrations","op":"UPDATE","id":7}')
        listener(conn, 1, channel, "not json")
        listener(conn, 1, channel, '{"table":"events"}')

        assert channel == db.CHANGES_CHANNEL
        assert received == [Change("registrations", "UPDATE", 7)]


class TestReads:
    """Fresh reads by id"""

    async def test_id_beyond_serial_range_is_missing(self, fake_pool):
        assert await db.get_registration(2**31) is None
        assert await db.get_event(2**31) is None
        fake_pool.fetchrow.assert_not_awaited()

    async def test_largest_serial_id_is_queried(self, fake_pool):
        fake_pool.fetchrow.return_value = None
        assert await db.get_registration(2**31 - 1) is None
        fake_pool.fetchrow.assert_awaited_once()
