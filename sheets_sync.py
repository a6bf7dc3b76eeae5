"""Google Sheets export — push events, members and attendance to a spreadsheet."""

from __future__ import annotations

import asyncio
import json
import logging

import gspread
from google.oauth2.service_account import Credentials

from config import GOOGLE_SHEETS_ID, GOOGLE_CREDENTIALS_JSON
from reports import event_stats
from state import AppState

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


def _get_sheets_client() -> gspread.Client:
    """Build an authorized gspread client from the JSON env var."""
    creds_dict = json.loads(GOOGLE_CREDENTIALS_JSON)
    creds = Credentials.from_service_account_info(creds_dict, scopes=SCOPES)
    return gspread.authorize(creds)


def _serialize(val) -> str:
    if val is None:
        return ""
    if hasattr(val, "isoformat"):
        return val.isoformat()
    if hasattr(val, "value"):
        return str(val.value)
    return str(val)


def build_tables(state: AppState) -> dict[str, list[list[str]]]:
    """Worksheet title → rows (header first) from the current snapshots."""
    regs = state.all_registrations()

    events = [[
        "id", "name", "date", "venue", "pricing_mode", "price_per_person",
        "price_per_team", "max_team_size", "is_open", "teams", "members",
        "revenue", "present",
    ]]
    for e in state.sorted_events():
        stats = event_stats(e, regs)
        events.append([
            _serialize(e.id), e.name, _serialize(e.date), e.venue or "",
            e.pricing_mode.value, _serialize(e.price_per_person),
            _serialize(e.price_per_team), _serialize(e.max_team_size),
            _serialize(e.is_open), _serialize(stats.teams),
            _serialize(stats.members), _serialize(stats.revenue),
            _serialize(stats.present),
        ])

    members = [[
        "registration_id", "event_id", "team_name", "lead_email", "lead_phone",
        "payment_status", "transaction_ref", "member_id", "member_name",
        "reg_no", "email", "year", "department", "attendance", "created_at",
    ]]
    for r in regs:
        for m in r.members:
            members.append([
                _serialize(r.id), _serialize(r.event_id), r.team_name,
                r.lead_email, r.lead_phone, r.payment_status.value,
                r.transaction_ref or "", m.id, m.name, m.reg_no, m.email,
                m.year.value, m.department_label, _serialize(m.attendance),
                _serialize(r.created_at),
            ])

    attendance = [["event", "team_name", "member_name", "reg_no", "email", "status"]]
    for r in regs:
        event = state.event(r.event_id)
        for m in r.members:
            if m.attendance:
                attendance.append([
                    event.name if event else f"#{r.event_id}", r.team_name,
                    m.name, m.reg_no, m.email, "PRESENT",
                ])

    return {"Events": events, "Members": members, "Attendance": attendance}


async def export_all(state: AppState) -> str:
    """Export the current snapshots to Google Sheets.

    Returns a summary string.
    """
    if not GOOGLE_SHEETS_ID or not GOOGLE_CREDENTIALS_JSON:
        return "Google Sheets is not configured (GOOGLE_SHEETS_ID / GOOGLE_CREDENTIALS_JSON)."

    tables = build_tables(state)
    await asyncio.to_thread(_push, tables)

    summary = ", ".join(f"{k}: {len(v) - 1}" for k, v in tables.items())
    logger.info("Exported to Google Sheets: %s", summary)
    return f"Export finished. {summary}"


def _push(tables: dict[str, list[list[str]]]) -> None:
    gc = _get_sheets_client()
    sh = gc.open_by_key(GOOGLE_SHEETS_ID)
    for title, data in tables.items():
        _write_sheet(sh, title, data)


def _write_sheet(sh: gspread.Spreadsheet, title: str, data: list[list[str]]) -> None:
    """Write data to a worksheet, creating it if necessary."""
    try:
        ws = sh.worksheet(title)
    except gspread.WorksheetNotFound:
        ws = sh.add_worksheet(title=title, rows=max(len(data), 1), cols=len(data[0]) if data else 1)
    ws.clear()
    if data:
        ws.update(range_name="A1", values=data)
