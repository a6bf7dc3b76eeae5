"""Database layer — asyncpg pool, DDL schema, event and registration repositories."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import date
from typing import Callable, Iterator, Optional

import asyncpg

from config import DATABASE_URL
from errors import EventDeletionBlocked, RemoteWriteError
from models import (
    Change, Event, Member, Registration,
    PaymentStatus, PricingMode,
)

logger = logging.getLogger(__name__)

pool: Optional[asyncpg.Pool] = None

CHANGES_CHANNEL = "hms_changes"

# SERIAL ids are int4; larger values cannot name a row
_MAX_ID = 2**31 - 1

# ---------------------------------------------------------------------------
# DDL: idempotent schema creation
# ---------------------------------------------------------------------------

SCHEMA_SQL = """
DO $$ BEGIN
    CREATE TYPE pricing_mode AS ENUM ('per-person', 'per-team');
EXCEPTION WHEN duplicate_object THEN NULL; END $$;

DO $$ BEGIN
    CREATE TYPE payment_status AS ENUM ('pending', 'approved', 'rejected');
EXCEPTION WHEN duplicate_object THEN NULL; END $$;

CREATE TABLE IF NOT EXISTS events (
    id               SERIAL PRIMARY KEY,
    name             TEXT NOT NULL,
    date             DATE NOT NULL,
    venue            TEXT,
    description      TEXT,
    pricing_mode     pricing_mode NOT NULL DEFAULT 'per-person',
    price_per_person INTEGER NOT NULL DEFAULT 0 CHECK (price_per_person >= 0),
    price_per_team   INTEGER NOT NULL DEFAULT 0 CHECK (price_per_team >= 0),
    max_team_size    INTEGER NOT NULL DEFAULT 4 CHECK (max_team_size >= 1),
    payment_qr_url   TEXT,
    bank_details     TEXT,
    group_link       TEXT,
    is_open          BOOLEAN NOT NULL DEFAULT TRUE,
    created_at       TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS registrations (
    id                SERIAL PRIMARY KEY,
    event_id          INTEGER NOT NULL REFERENCES events(id) ON DELETE RESTRICT,
    team_name         TEXT NOT NULL,
    lead_email        TEXT NOT NULL,
    lead_phone        TEXT NOT NULL,
    transaction_ref   TEXT,
    payment_proof_url TEXT,
    payment_status    payment_status NOT NULL DEFAULT 'pending',
    lead_telegram_id  BIGINT,
    members           JSONB NOT NULL DEFAULT '[]'::jsonb,
    version           INTEGER NOT NULL DEFAULT 1,
    created_at        TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS registrations_event_idx ON registrations (event_id);

CREATE OR REPLACE FUNCTION hms_notify_change() RETURNS trigger AS $$
DECLARE
    row_id INTEGER;
BEGIN
    IF TG_OP = 'DELETE' THEN
        row_id := OLD.id;
    ELSE
        row_id := NEW.id;
    END IF;
    PERFORM pg_notify(
        'hms_changes',
        json_build_object('table', TG_TABLE_NAME, 'op', TG_OP, 'id', row_id)::text
    );
    RETURN NULL;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS events_notify ON events;
CREATE TRIGGER events_notify
    AFTER INSERT OR UPDATE OR DELETE ON events
    FOR EACH ROW EXECUTE FUNCTION hms_notify_change();

DROP TRIGGER IF EXISTS registrations_notify ON registrations;
CREATE TRIGGER registrations_notify
    AFTER INSERT OR UPDATE OR DELETE ON registrations
    FOR EACH ROW EXECUTE FUNCTION hms_notify_change();
"""


# ---------------------------------------------------------------------------
# Pool lifecycle
# ---------------------------------------------------------------------------

async def init_db() -> None:
    """Create the connection pool and run DDL."""
    global pool
    pool = await asyncpg.create_pool(DATABASE_URL, min_size=2, max_size=10)
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info("Database initialised")


async def close_db() -> None:
    """Gracefully close the pool."""
    global pool
    if pool:
        await pool.close()
        pool = None
    logger.info("Database pool closed")


@contextmanager
def _write_guard(action: str) -> Iterator[None]:
    """Translate driver failures on writes into RemoteWriteError."""
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        logger.exception("%s failed", action)
        raise RemoteWriteError() from exc


# ---------------------------------------------------------------------------
# Change notifications
# ---------------------------------------------------------------------------

async def subscribe(callback: Callable[[Change], None]) -> asyncpg.Connection:
    """LISTEN for row changes on a dedicated connection.

    The callback is invoked synchronously from the connection's reader
    with one ``Change`` per committed row change.
    """
    conn = await asyncpg.connect(DATABASE_URL)

    def _on_notify(connection, pid, channel, payload) -> None:
        try:
            data = json.loads(payload)
            change = Change(table=data["table"], op=data["op"], id=int(data["id"]))
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring malformed change payload: %r", payload)
            return
        callback(change)

    await conn.add_listener(CHANGES_CHANNEL, _on_notify)
    logger.info("Listening on %s", CHANGES_CHANNEL)
    return conn


async def unsubscribe(conn: asyncpg.Connection) -> None:
    if not conn.is_closed():
        await conn.close()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

_EVENT_COLUMNS = {
    "name", "date", "venue", "description", "pricing_mode",
    "price_per_person", "price_per_team", "max_team_size",
    "payment_qr_url", "bank_details", "group_link", "is_open",
}


async def create_event(
    name: str,
    date: date,
    *,
    venue: Optional[str] = None,
    description: Optional[str] = None,
    pricing_mode: PricingMode = PricingMode.PER_PERSON,
    price_per_person: int = 0,
    price_per_team: int = 0,
    max_team_size: int = 4,
    payment_qr_url: Optional[str] = None,
    bank_details: Optional[str] = None,
    group_link: Optional[str] = None,
    is_open: bool = True,
) -> Event:
    with _write_guard("create_event"):
        row = await pool.fetchrow(
            """
            INSERT INTO events
                (name, date, venue, description, pricing_mode, price_per_person,
                 price_per_team, max_team_size, payment_qr_url, bank_details,
                 group_link, is_open)
            VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12)
            RETURNING *
            """,
            name, date, venue, description, pricing_mode.value, price_per_person,
            price_per_team, max_team_size, payment_qr_url, bank_details,
            group_link, is_open,
        )
    return _row_to_event(row)


async def list_events() -> list[Event]:
    rows = await pool.fetch("SELECT * FROM events ORDER BY date, id")
    return [_row_to_event(r) for r in rows]


async def get_event(event_id: int) -> Optional[Event]:
    if not 0 < event_id <= _MAX_ID:
        return None
    row = await pool.fetchrow("SELECT * FROM events WHERE id = $1", event_id)
    return _row_to_event(row) if row else None


async def update_event(event_id: int, **fields) -> Optional[Event]:
    if not fields:
        return await get_event(event_id)
    unknown = set(fields) - _EVENT_COLUMNS
    if unknown:
        raise ValueError(f"Unknown event fields: {', '.join(sorted(unknown))}")
    sets = []
    vals = []
    for i, (k, v) in enumerate(fields.items(), 1):
        sets.append(f"{k} = ${i}")
        vals.append(v.value if isinstance(v, PricingMode) else v)
    vals.append(event_id)
    with _write_guard("update_event"):
        row = await pool.fetchrow(
            f"UPDATE events SET {', '.join(sets)} WHERE id = ${len(vals)} RETURNING *",
            *vals,
        )
    return _row_to_event(row) if row else None


async def set_event_open(event_id: int, is_open: bool) -> Optional[Event]:
    return await update_event(event_id, is_open=is_open)


async def count_event_registrations(event_id: int) -> int:
    return await pool.fetchval(
        "SELECT count(*) FROM registrations WHERE event_id = $1", event_id,
    )


async def delete_event(event_id: int) -> bool:
    """Delete an event that has no registrations.

    Raises EventDeletionBlocked when registrations still reference it.
    """
    count = await count_event_registrations(event_id)
    if count:
        raise EventDeletionBlocked(event_id, count)
    try:
        with _write_guard("delete_event"):
            tag = await pool.execute("DELETE FROM events WHERE id = $1", event_id)
    except RemoteWriteError as exc:
        if isinstance(exc.__cause__, asyncpg.ForeignKeyViolationError):
            raise EventDeletionBlocked(
                event_id, await count_event_registrations(event_id),
            ) from exc
        raise
    return tag == "DELETE 1"


def _row_to_event(row: asyncpg.Record) -> Event:
    return Event(
        id=row["id"],
        name=row["name"],
        date=row["date"],
        venue=row["venue"],
        description=row["description"],
        pricing_mode=PricingMode(row["pricing_mode"]),
        price_per_person=row["price_per_person"],
        price_per_team=row["price_per_team"],
        max_team_size=row["max_team_size"],
        payment_qr_url=row["payment_qr_url"],
        bank_details=row["bank_details"],
        group_link=row["group_link"],
        is_open=row["is_open"],
        created_at=row["created_at"],
    )


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------

_REGISTRATION_COLUMNS = {
    "team_name", "lead_email", "lead_phone", "transaction_ref",
    "payment_proof_url", "payment_status",
}


async def create_registration(
    event_id: int,
    team_name: str,
    lead_email: str,
    lead_phone: str,
    members: list[Member],
    *,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
    transaction_ref: Optional[str] = None,
    payment_proof_url: Optional[str] = None,
    lead_telegram_id: Optional[int] = None,
) -> Registration:
    with _write_guard("create_registration"):
        row = await pool.fetchrow(
            """
            INSERT INTO registrations
                (event_id, team_name, lead_email, lead_phone, members,
                 payment_status, transaction_ref, payment_proof_url,
                 lead_telegram_id)
            VALUES ($1,$2,$3,$4,$5::jsonb,$6,$7,$8,$9)
            RETURNING *
            """,
            event_id, team_name, lead_email, lead_phone, _dump_members(members),
            payment_status.value, transaction_ref, payment_proof_url,
            lead_telegram_id,
        )
    return _row_to_registration(row)


async def list_registrations(event_id: Optional[int] = None) -> list[Registration]:
    if event_id is None:
        rows = await pool.fetch("SELECT * FROM registrations ORDER BY created_at, id")
    else:
        rows = await pool.fetch(
            "SELECT * FROM registrations WHERE event_id = $1 ORDER BY created_at, id",
            event_id,
        )
    return [_row_to_registration(r) for r in rows]


async def list_registrations_by_status(status: PaymentStatus) -> list[Registration]:
    rows = await pool.fetch(
        "SELECT * FROM registrations WHERE payment_status = $1 ORDER BY created_at, id",
        status.value,
    )
    return [_row_to_registration(r) for r in rows]


async def list_registrations_for_lead(telegram_id: int) -> list[Registration]:
    rows = await pool.fetch(
        "SELECT * FROM registrations WHERE lead_telegram_id = $1 ORDER BY created_at, id",
        telegram_id,
    )
    return [_row_to_registration(r) for r in rows]


async def get_registration(registration_id: int) -> Optional[Registration]:
    if not 0 < registration_id <= _MAX_ID:
        return None
    row = await pool.fetchrow(
        "SELECT * FROM registrations WHERE id = $1", registration_id,
    )
    return _row_to_registration(row) if row else None


async def update_registration(registration_id: int, **fields) -> Optional[Registration]:
    if not fields:
        return await get_registration(registration_id)
    unknown = set(fields) - _REGISTRATION_COLUMNS
    if unknown:
        raise ValueError(f"Unknown registration fields: {', '.join(sorted(unknown))}")
    sets = []
    vals = []
    for i, (k, v) in enumerate(fields.items(), 1):
        sets.append(f"{k} = ${i}")
        vals.append(v.value if isinstance(v, PaymentStatus) else v)
    vals.append(registration_id)
    with _write_guard("update_registration"):
        row = await pool.fetchrow(
            f"UPDATE registrations SET {', '.join(sets)}, version = version + 1 "
            f"WHERE id = ${len(vals)} RETURNING *",
            *vals,
        )
    return _row_to_registration(row) if row else None


async def set_payment_status(
    registration_id: int, status: PaymentStatus,
) -> Optional[Registration]:
    return await update_registration(registration_id, payment_status=status)


async def replace_members_if_version(
    registration_id: int,
    members: list[Member],
    expected_version: int,
) -> Optional[Registration]:
    """Compare-and-swap the embedded member list.

    Returns the updated registration, or None when the stored version no
    longer matches ``expected_version`` (someone else wrote in between).
    """
    with _write_guard("replace_members"):
        row = await pool.fetchrow(
            """
            UPDATE registrations
            SET members = $1::jsonb, version = version + 1
            WHERE id = $2 AND version = $3
            RETURNING *
            """,
            _dump_members(members), registration_id, expected_version,
        )
    return _row_to_registration(row) if row else None


def _dump_members(members: list[Member]) -> str:
    return json.dumps([m.to_dict() for m in members])


def _row_to_registration(row: asyncpg.Record) -> Registration:
    raw = row["members"]
    if isinstance(raw, str):
        raw = json.loads(raw)
    return Registration(
        id=row["id"],
        event_id=row["event_id"],
        team_name=row["team_name"],
        lead_email=row["lead_email"],
        lead_phone=row["lead_phone"],
        members=[Member.from_dict(m) for m in raw or []],
        payment_status=PaymentStatus(row["payment_status"]),
        transaction_ref=row["transaction_ref"],
        payment_proof_url=row["payment_proof_url"],
        lead_telegram_id=row["lead_telegram_id"],
        version=row["version"],
        created_at=row["created_at"],
    )
