"""Reporting — per-event stats and CSV exports built from in-memory snapshots."""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping, Optional

from errors import ValidationError
from models import Event, PricingMode, Registration


@dataclass(frozen=True)
class EventStats:
    teams: int
    members: int
    revenue: int
    present: int = 0


def event_stats(event: Event, registrations: Iterable[Registration]) -> EventStats:
    regs = [r for r in registrations if r.event_id == event.id]
    teams = len(regs)
    members = sum(len(r.members) for r in regs)
    present = sum(r.present_count for r in regs)
    if event.pricing_mode == PricingMode.PER_PERSON:
        revenue = members * event.price_per_person
    else:
        revenue = teams * event.price_per_team
    return EventStats(teams=teams, members=members, revenue=revenue, present=present)


def _to_csv(header: list[str], rows: list[list]) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue().encode("utf-8")


def _serialize(val) -> str:
    if val is None:
        return ""
    if isinstance(val, datetime):
        return val.isoformat()
    return str(val)


TEAM_HEADER = [
    "Team Name", "Lead Email", "Lead Phone",
    "Member Name", "Reg No", "Email", "Year", "Department",
]

ROSTER_HEADER = [
    "Team ID", "Team Name", "Lead Email", "Lead Phone",
    "Member Name", "Reg No", "Email", "Year", "Department",
    "Attendance", "Payment Status", "Transaction Ref", "Timestamp",
]

ATTENDANCE_HEADER = ["Event", "Team", "Member Name", "Reg No", "Email", "Status"]


def team_csv(registration: Registration) -> bytes:
    r = registration
    rows = [
        [r.team_name, r.lead_email, r.lead_phone,
         m.name, m.reg_no, m.email, m.year.value, m.department_label]
        for m in r.members
    ]
    return _to_csv(TEAM_HEADER, rows)


def event_roster_csv(event: Event, registrations: Iterable[Registration]) -> bytes:
    """One row per member of every team registered for *event*."""
    regs = [r for r in registrations if r.event_id == event.id]
    if not regs:
        raise ValidationError(f"No registrations for {event.name}.")
    rows = []
    for r in regs:
        for m in r.members:
            rows.append([
                r.id, r.team_name, r.lead_email, r.lead_phone,
                m.name, m.reg_no, m.email, m.year.value, m.department_label,
                "PRESENT" if m.attendance else "ABSENT",
                r.payment_status.value,
                _serialize(r.transaction_ref),
                _serialize(r.created_at),
            ])
    return _to_csv(ROSTER_HEADER, rows)


def attendance_csv(
    events: Mapping[int, Event],
    registrations: Iterable[Registration],
) -> bytes:
    """Every member marked present, across all events."""
    rows = []
    for r in registrations:
        event = events.get(r.event_id)
        event_name = event.name if event else "Unknown"
        for m in r.members:
            if m.attendance:
                rows.append([event_name, r.team_name, m.name, m.reg_no, m.email, "PRESENT"])
    if not rows:
        raise ValidationError("No members marked present yet.")
    return _to_csv(ATTENDANCE_HEADER, rows)


def _safe(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "_", name).strip("_") or "export"


def team_csv_filename(registration: Registration) -> str:
    return f"{_safe(registration.team_name)}_data.csv"


def roster_csv_filename(event: Event) -> str:
    return f"{_safe(event.name)}_FULL_DATA.csv"


def attendance_csv_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"attendance_report_{now:%Y%m%d_%H%M%S}.csv"
