"""Ticket codec — per-member QR codes for check-in."""

from __future__ import annotations

import io
import json
import re
from dataclasses import dataclass

import qrcode
from qrcode.constants import ERROR_CORRECT_M

from errors import DecodeError
from models import Member, Registration


@dataclass(frozen=True)
class TicketPayload:
    event_id: int
    registration_id: int
    member_id: str


def payload_for(registration: Registration, member: Member) -> TicketPayload:
    return TicketPayload(registration.event_id, registration.id, member.id)


def encode_payload(payload: TicketPayload) -> str:
    return json.dumps(
        {"e": payload.event_id, "t": payload.registration_id, "m": payload.member_id},
        separators=(",", ":"),
    )


def decode_payload(raw: str) -> TicketPayload:
    """Parse a scanned ticket. Raises DecodeError on anything malformed."""
    try:
        data = json.loads(raw.strip())
    except (ValueError, AttributeError) as exc:
        raise DecodeError() from exc
    if not isinstance(data, dict) or set(data) != {"e", "t", "m"}:
        raise DecodeError()

    event_id, registration_id, member_id = data["e"], data["t"], data["m"]
    for value in (event_id, registration_id):
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise DecodeError()
    if not isinstance(member_id, str) or not member_id:
        raise DecodeError()
    return TicketPayload(event_id, registration_id, member_id)


def render_png(payload: TicketPayload) -> bytes:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=10, border=4)
    qr.add_data(encode_payload(payload))
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def ticket_filename(registration: Registration, member: Member) -> str:
    def clean(s: str) -> str:
        return re.sub(r"[^A-Za-z0-9_-]+", "_", s).strip("_") or "x"

    return f"{clean(registration.team_name)}-{clean(member.name)}-TICKET.png"
