"""Registration wizard — Details → Payment → Confirmed.

The wizard is plain state plus validation; the Telegram conversation in
``handlers.registration`` drives it and mirrors ``to_draft()`` into the
persisted ``user_data`` after every change.
"""

from __future__ import annotations

import enum
import logging
import re
from collections.abc import MutableMapping
from typing import Any, Awaitable, Callable, Mapping, Optional

import db
import storage
from config import INSTITUTION_EMAIL_DOMAIN
from errors import NotFoundError, ValidationError
from images import normalize_image_async
from models import Event, Member, PaymentStatus, Registration

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@([^@\s]+)$")


def is_institutional_email(email: str, domain: str = INSTITUTION_EMAIL_DOMAIN) -> bool:
    m = _EMAIL_RE.match((email or "").strip())
    return bool(m) and m.group(1).lower() == domain.lower()


class Step(str, enum.Enum):
    DETAILS = "details"
    PAYMENT = "payment"
    CONFIRMED = "confirmed"


# ---------------------------------------------------------------------------
# Draft store
# ---------------------------------------------------------------------------

class DraftStore:
    """Key-value draft storage over a persisted mapping (``user_data``)."""

    KEY = "reg_draft"

    def __init__(self, backing: MutableMapping) -> None:
        self._backing = backing

    def get(self) -> Optional[dict[str, Any]]:
        return self._backing.get(self.KEY)

    def set(self, draft: dict[str, Any]) -> None:
        self._backing[self.KEY] = draft

    def remove(self) -> None:
        self._backing.pop(self.KEY, None)


# ---------------------------------------------------------------------------
# Wizard
# ---------------------------------------------------------------------------

class RegistrationWizard:
    def __init__(self) -> None:
        self.step = Step.DETAILS
        self.event: Optional[Event] = None
        self.team_name = ""
        self.lead_email = ""
        self.lead_phone = ""
        self.members: list[Member] = []
        # Member being entered field by field
        self.pending_member: dict[str, Any] = {}
        self.proof_file_id: Optional[str] = None
        self.proof_file_name: Optional[str] = None
        self.transaction_ref = ""
        self.submitting = False
        self.registration: Optional[Registration] = None

    # -- draft round trip ---------------------------------------------------

    def to_draft(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "event_id": self.event.id if self.event else None,
            "team_name": self.team_name,
            "lead_email": self.lead_email,
            "lead_phone": self.lead_phone,
            "members": [m.to_dict() for m in self.members],
            "pending_member": dict(self.pending_member),
            "proof_file_id": self.proof_file_id,
            "proof_file_name": self.proof_file_name,
            "transaction_ref": self.transaction_ref,
        }

    @classmethod
    def from_draft(
        cls,
        draft: Optional[Mapping[str, Any]],
        events: Mapping[int, Event],
    ) -> RegistrationWizard:
        wiz = cls()
        if not draft:
            return wiz
        event_id = draft.get("event_id")
        wiz.event = events.get(event_id) if event_id is not None else None
        wiz.team_name = draft.get("team_name", "")
        wiz.lead_email = draft.get("lead_email", "")
        wiz.lead_phone = draft.get("lead_phone", "")
        wiz.members = [Member.from_dict(m) for m in draft.get("members", [])]
        wiz.pending_member = dict(draft.get("pending_member") or {})
        wiz.proof_file_id = draft.get("proof_file_id")
        wiz.proof_file_name = draft.get("proof_file_name")
        wiz.transaction_ref = draft.get("transaction_ref", "")
        step = Step(draft.get("step", Step.DETAILS.value))
        # The event may have vanished since the draft was saved
        wiz.step = step if wiz.event is not None and step != Step.CONFIRMED else Step.DETAILS
        return wiz

    def reset(self) -> None:
        self.__init__()

    # -- details --------------------------------------------------------------

    def select_event(self, event: Event) -> None:
        if not event.is_open:
            raise ValidationError(f"Registrations for {event.name} are closed.", "event")
        if len(self.members) > event.max_team_size:
            raise ValidationError(
                f"{event.name} allows at most {event.max_team_size} members; "
                f"your team has {len(self.members)}.",
                "event",
            )
        self.event = event
        self.step = Step.DETAILS

    def set_team_name(self, name: str) -> None:
        self.team_name = name.strip()

    def set_lead_email(self, email: str) -> None:
        email = email.strip()
        if not is_institutional_email(email):
            raise ValidationError(
                f"Use your @{INSTITUTION_EMAIL_DOMAIN} email.", "lead_email",
            )
        self.lead_email = email

    def set_lead_phone(self, phone: str) -> None:
        self.lead_phone = phone.strip()

    @property
    def max_team_size(self) -> Optional[int]:
        return self.event.max_team_size if self.event else None

    @property
    def can_add_member(self) -> bool:
        return self.event is not None and len(self.members) < self.event.max_team_size

    def add_member(self, member: Member) -> None:
        if self.event is None:
            raise ValidationError("Select an event first.", "event")
        if len(self.members) >= self.event.max_team_size:
            raise ValidationError(
                f"Maximum team size is {self.event.max_team_size}.", "members",
            )
        if not is_institutional_email(member.email):
            raise ValidationError(
                f"{member.name}: use an @{INSTITUTION_EMAIL_DOMAIN} email.", "members",
            )
        self.members.append(member)
        self.pending_member = {}

    def remove_member(self, index: int) -> Member:
        return self.members.pop(index)

    def price(self) -> int:
        if self.event is None:
            return 0
        return self.event.price_for(len(self.members))

    def validate_details(self) -> None:
        if self.event is None:
            raise ValidationError("Select an event.", "event")
        if not self.team_name:
            raise ValidationError("Enter a team name.", "team_name")
        if not self.lead_phone:
            raise ValidationError("Enter the team lead's mobile number.", "lead_phone")
        if not is_institutional_email(self.lead_email):
            raise ValidationError(
                f"Team lead email must be an @{INSTITUTION_EMAIL_DOMAIN} address.",
                "lead_email",
            )
        if not self.members:
            raise ValidationError("Add at least one team member.", "members")
        if len(self.members) > self.event.max_team_size:
            raise ValidationError(
                f"Maximum team size is {self.event.max_team_size}.", "members",
            )
        for m in self.members:
            if not is_institutional_email(m.email):
                raise ValidationError(
                    f"{m.name}: use an @{INSTITUTION_EMAIL_DOMAIN} email.", "members",
                )

    def go_to_payment(self) -> None:
        self.validate_details()
        self.step = Step.PAYMENT

    def back_to_details(self) -> None:
        if self.step == Step.PAYMENT:
            self.step = Step.DETAILS

    # -- payment --------------------------------------------------------------

    def attach_proof(self, file_id: str, file_name: Optional[str] = None) -> None:
        self.proof_file_id = file_id
        self.proof_file_name = file_name

    def set_transaction_ref(self, ref: str) -> None:
        self.transaction_ref = ref.strip()

    def validate_payment(self) -> None:
        self.validate_details()
        if self.step != Step.PAYMENT:
            raise ValidationError("Complete the team details first.", "step")
        if self.price() > 0:
            if not self.proof_file_id:
                raise ValidationError("Please upload payment proof.", "payment_proof")
            if not self.transaction_ref:
                raise ValidationError("Enter the transaction reference.", "transaction_ref")

    async def submit(
        self,
        fetch_proof: Callable[[str], Awaitable[bytes]],
        lead_telegram_id: Optional[int] = None,
    ) -> Registration:
        """Upload proof (paid events), insert the registration, confirm.

        Any failure propagates and leaves the wizard as it was.
        """
        if self.submitting:
            raise ValidationError("Submission already in progress.", "step")
        self.validate_payment()

        self.submitting = True
        try:
            event = await db.get_event(self.event.id)
            if event is None:
                raise NotFoundError("Event", self.event.id)
            if not event.is_open:
                raise ValidationError(f"Registrations for {event.name} are closed.", "event")
            if len(self.members) > event.max_team_size:
                raise ValidationError(
                    f"Maximum team size is {event.max_team_size}.", "members",
                )

            price = event.price_for(len(self.members))
            proof_url = None
            transaction_ref = None
            if price > 0:
                if not self.proof_file_id or not self.transaction_ref:
                    raise ValidationError(
                        "Payment proof and transaction reference are required.",
                        "payment_proof",
                    )
                blob = await fetch_proof(self.proof_file_id)
                storage.check_size(blob)
                blob = await normalize_image_async(blob)
                proof_url = await storage.upload(
                    blob, f"{self.team_name}-proof.jpg", storage.PAYMENT_PROOFS,
                )
                transaction_ref = self.transaction_ref

            status = PaymentStatus.APPROVED if price == 0 else PaymentStatus.PENDING
            reg = await db.create_registration(
                event_id=event.id,
                team_name=self.team_name,
                lead_email=self.lead_email,
                lead_phone=self.lead_phone,
                members=list(self.members),
                payment_status=status,
                transaction_ref=transaction_ref,
                payment_proof_url=proof_url,
                lead_telegram_id=lead_telegram_id,
            )
        finally:
            self.submitting = False

        self.event = event
        self.registration = reg
        self.step = Step.CONFIRMED
        logger.info(
            "Registration #%s (%s) created for event #%s, status %s",
            reg.id, reg.team_name, event.id, status.value,
        )
        return reg
