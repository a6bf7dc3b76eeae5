"""Domain models — enums and dataclasses."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional


class PricingMode(str, enum.Enum):
    PER_PERSON = "per-person"
    PER_TEAM = "per-team"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class YearOfStudy(str, enum.Enum):
    FIRST = "I"
    SECOND = "II"
    THIRD = "III"
    FOURTH = "IV"


class Department(str, enum.Enum):
    CSE = "CSE"
    AIDS = "AI&DS"
    ECE = "ECE"
    EEE = "EEE"
    MECH = "MECH"
    CIVIL = "CIVIL"
    BT = "BT"
    BBA = "BBA"
    OTHER = "OTHER"


def new_member_id() -> str:
    """Short locally generated member id (kept small for QR payloads)."""
    return uuid.uuid4().hex[:12]


@dataclass
class Event:
    id: int
    name: str
    date: date
    venue: Optional[str] = None
    description: Optional[str] = None
    pricing_mode: PricingMode = PricingMode.PER_PERSON
    price_per_person: int = 0
    price_per_team: int = 0
    max_team_size: int = 4
    payment_qr_url: Optional[str] = None
    bank_details: Optional[str] = None
    group_link: Optional[str] = None
    is_open: bool = True
    created_at: Optional[datetime] = None

    def price_for(self, member_count: int) -> int:
        if self.pricing_mode == PricingMode.PER_PERSON:
            return self.price_per_person * member_count
        return self.price_per_team

    @property
    def is_free(self) -> bool:
        if self.pricing_mode == PricingMode.PER_PERSON:
            return self.price_per_person == 0
        return self.price_per_team == 0


@dataclass
class Member:
    name: str
    reg_no: str
    email: str
    year: YearOfStudy
    department: Department
    department_other: Optional[str] = None
    attendance: bool = False
    id: str = field(default_factory=new_member_id)

    @property
    def department_label(self) -> str:
        if self.department == Department.OTHER and self.department_other:
            return self.department_other
        return self.department.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "reg_no": self.reg_no,
            "email": self.email,
            "year": self.year.value,
            "department": self.department.value,
            "department_other": self.department_other,
            "attendance": self.attendance,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Member:
        return cls(
            id=data["id"],
            name=data["name"],
            reg_no=data["reg_no"],
            email=data["email"],
            year=YearOfStudy(data["year"]),
            department=Department(data["department"]),
            department_other=data.get("department_other"),
            attendance=bool(data.get("attendance", False)),
        )


@dataclass
class Registration:
    id: int
    event_id: int
    team_name: str
    lead_email: str
    lead_phone: str
    members: list[Member] = field(default_factory=list)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    transaction_ref: Optional[str] = None
    payment_proof_url: Optional[str] = None
    lead_telegram_id: Optional[int] = None
    version: int = 1
    created_at: Optional[datetime] = None

    def find_member(self, member_id: str) -> Optional[Member]:
        for m in self.members:
            if m.id == member_id:
                return m
        return None

    @property
    def present_count(self) -> int:
        return sum(1 for m in self.members if m.attendance)


@dataclass(frozen=True)
class Change:
    """One repository change notification."""

    table: str
    op: str
    id: int
