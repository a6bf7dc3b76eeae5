"""Check-in protocol — scan, fresh read, conditional mark-present, CAS write.

The registration is always re-read from the database, never taken from the
in-memory snapshot. The member list is written with a compare-and-swap on
``version``; a lost swap re-reads the record and decides again.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Optional

import db
from config import CHECKIN_MAX_ATTEMPTS
from errors import DecodeError, HMSError
from tickets import decode_payload

logger = logging.getLogger(__name__)


class ScanStatus(str, enum.Enum):
    MARKED = "marked"
    ALREADY_PRESENT = "already_present"
    NOT_FOUND = "not_found"
    DECODE_ERROR = "decode_error"
    ERROR = "error"


@dataclass(frozen=True)
class ScanResult:
    status: ScanStatus
    message: str
    member_name: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ScanStatus.MARKED


async def check_in(raw: str) -> ScanResult:
    try:
        payload = decode_payload(raw)
    except DecodeError as exc:
        return ScanResult(ScanStatus.DECODE_ERROR, exc.message)

    try:
        for attempt in range(1, CHECKIN_MAX_ATTEMPTS + 1):
            reg = await db.get_registration(payload.registration_id)
            if reg is None or reg.event_id != payload.event_id:
                return ScanResult(ScanStatus.NOT_FOUND, "Registration not found")

            member = reg.find_member(payload.member_id)
            if member is None:
                return ScanResult(ScanStatus.NOT_FOUND, "Member not found")
            if member.attendance:
                return ScanResult(
                    ScanStatus.ALREADY_PRESENT,
                    f"{member.name} already marked present",
                    member.name,
                )

            members = [
                replace(m, attendance=True) if m.id == member.id else m
                for m in reg.members
            ]
            updated = await db.replace_members_if_version(reg.id, members, reg.version)
            if updated is not None:
                logger.info(
                    "Checked in member %s of registration #%s", member.id, reg.id,
                )
                return ScanResult(
                    ScanStatus.MARKED, f"Marked PRESENT: {member.name}", member.name,
                )
            logger.info(
                "Version conflict on registration #%s (attempt %d/%d)",
                reg.id, attempt, CHECKIN_MAX_ATTEMPTS,
            )
    except HMSError as exc:
        logger.error("Check-in failed: %s", exc.message)
        return ScanResult(ScanStatus.ERROR, exc.message)
    except Exception:
        logger.exception("Check-in failed")
        return ScanResult(ScanStatus.ERROR, "Error updating attendance. Scan again.")

    return ScanResult(ScanStatus.ERROR, "Registration is busy. Scan again.")
