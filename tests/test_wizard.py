"""
Unit Tests for the Registration Wizard
Tests for: email rule, step transitions, payment gating, submit, drafts
"""
from unittest.mock import AsyncMock

import pytest

import db
import storage
import wizard
from errors import RemoteWriteError, UploadError, ValidationError
from models import PaymentStatus, PricingMode
from wizard import DraftStore, RegistrationWizard, Step, is_institutional_email


def _filled(event, members) -> RegistrationWizard:
    wiz = RegistrationWizard()
    wiz.select_event(event)
    wiz.set_team_name("Byte Me")
    wiz.set_lead_email("lead@kluniversity.in")
    wiz.set_lead_phone("9876543210")
    for m in members:
        wiz.add_member(m)
    return wiz


@pytest.fixture
def remote(monkeypatch, make_registration):
    """Patch every remote collaborator the wizard touches."""
    mocks = {
        "get_event": AsyncMock(),
        "create_registration": AsyncMock(),
        "normalize": AsyncMock(return_value=b"normalized-jpeg"),
        "upload": AsyncMock(return_value="https://res.cloudinary.com/demo/proof.jpg"),
    }
    monkeypatch.setattr(db, "get_event", mocks["get_event"])
    monkeypatch.setattr(db, "create_registration", mocks["create_registration"])
    monkeypatch.setattr(wizard, "normalize_image_async", mocks["normalize"])
    monkeypatch.setattr(storage, "upload", mocks["upload"])

    async def _create(**kwargs):
        return make_registration(
            id=42,
            event_id=kwargs["event_id"],
            members=kwargs["members"],
            payment_status=kwargs["payment_status"],
            payment_proof_url=kwargs["payment_proof_url"],
            transaction_ref=kwargs["transaction_ref"],
        )

    mocks["create_registration"].side_effect = _create
    return mocks


class TestInstitutionalEmail:
    """Email domain rule"""

    @pytest.mark.parametrize("email", [
        "2200030001@kluniversity.in",
        "Someone@KLUniversity.IN",
        "  padded@kluniversity.in  ",
    ])
    def test_accepts_domain(self, email):
        assert is_institutional_email(email)

    @pytest.mark.parametrize("email", [
        "",
        "someone@gmail.com",
        "@kluniversity.in",
        "someone@kluniversity.in.evil.com",
        "someone@sub.kluniversity.in",
        "two words@kluniversity.in",
        "a@b@kluniversity.in",
    ])
    def test_rejects_others(self, email):
        assert not is_institutional_email(email)


class TestDetailsStep:
    """Details → Payment transition"""

    def test_closed_event_cannot_be_selected(self, make_event):
        wiz = RegistrationWizard()
        with pytest.raises(ValidationError):
            wiz.select_event(make_event(is_open=False))
        assert wiz.event is None

    def test_add_member_respects_max_team_size(self, make_event, make_member):
        wiz = _filled(make_event(max_team_size=2), [make_member(), make_member()])
        assert not wiz.can_add_member
        with pytest.raises(ValidationError):
            wiz.add_member(make_member())
        assert len(wiz.members) == 2

    def test_add_member_rejects_foreign_email(self, make_event, make_member):
        wiz = _filled(make_event(), [])
        with pytest.raises(ValidationError):
            wiz.add_member(make_member(email="someone@gmail.com"))
        assert wiz.members == []

    def test_switching_to_smaller_event_is_rejected(self, make_event, make_member):
        wiz = _filled(make_event(max_team_size=3), [make_member() for _ in range(3)])
        with pytest.raises(ValidationError):
            wiz.select_event(make_event(id=2, max_team_size=2))
        assert wiz.event.id == 1

    def test_lead_email_must_match_domain(self):
        wiz = RegistrationWizard()
        with pytest.raises(ValidationError) as exc:
            wiz.set_lead_email("lead@gmail.com")
        assert exc.value.field == "lead_email"

    @pytest.mark.parametrize("field, value", [
        ("team_name", ""),
        ("lead_phone", ""),
        ("lead_email", "lead@gmail.com"),
    ])
    def test_missing_detail_blocks_payment(self, make_event, make_member, field, value):
        wiz = _filled(make_event(), [make_member()])
        setattr(wiz, field, value)
        with pytest.raises(ValidationError) as exc:
            wiz.go_to_payment()
        assert exc.value.field == field
        assert wiz.step == Step.DETAILS

    def test_no_event_blocks_payment(self):
        wiz = RegistrationWizard()
        with pytest.raises(ValidationError) as exc:
            wiz.go_to_payment()
        assert exc.value.field == "event"

    def test_member_with_foreign_email_blocks_payment(self, make_event, make_member):
        wiz = _filled(make_event(), [make_member()])
        wiz.members[0].email = "x@gmail.com"
        with pytest.raises(ValidationError):
            wiz.go_to_payment()

    def test_valid_details_move_to_payment(self, make_event, make_member):
        wiz = _filled(make_event(), [make_member()])
        wiz.go_to_payment()
        assert wiz.step == Step.PAYMENT
        wiz.back_to_details()
        assert wiz.step == Step.DETAILS

    def test_price_follows_member_count(self, make_event, make_member):
        wiz = _filled(make_event(), [make_member(), make_member()])
        assert wiz.price() == 200
        wiz.remove_member(0)
        assert wiz.price() == 100


class TestPaymentGating:
    """Paid events need proof and a transaction reference"""

    async def test_paid_without_proof_rejected_before_remote_call(
        self, make_event, make_member, remote,
    ):
        wiz = _filled(make_event(), [make_member()])
        wiz.go_to_payment()
        wiz.set_transaction_ref("UTR123")
        fetch = AsyncMock()

        with pytest.raises(ValidationError) as exc:
            await wiz.submit(fetch)

        assert exc.value.field == "payment_proof"
        remote["get_event"].assert_not_awaited()
        remote["create_registration"].assert_not_awaited()
        fetch.assert_not_awaited()

    async def test_paid_without_transaction_ref_rejected_before_remote_call(
        self, make_event, make_member, remote,
    ):
        wiz = _filled(make_event(), [make_member()])
        wiz.go_to_payment()
        wiz.attach_proof("file-1", "proof.png")

        with pytest.raises(ValidationError) as exc:
            await wiz.submit(AsyncMock())

        assert exc.value.field == "transaction_ref"
        remote["get_event"].assert_not_awaited()

    async def test_submit_requires_payment_step(self, make_event, make_member, remote):
        wiz = _filled(make_event(price_per_person=0), [make_member()])
        with pytest.raises(ValidationError):
            await wiz.submit(AsyncMock())
        remote["create_registration"].assert_not_awaited()


class TestSubmit:
    """Submission of the final step"""

    async def test_codejam_paid_team_is_pending(self, make_event, make_member, remote):
        event = make_event()
        remote["get_event"].return_value = event
        wiz = _filled(event, [make_member(), make_member()])
        wiz.go_to_payment()
        wiz.attach_proof("file-1", "proof.png")
        wiz.set_transaction_ref("UTR123")
        fetch = AsyncMock(return_value=b"raw-image")

        assert wiz.price() == 200
        reg = await wiz.submit(fetch, lead_telegram_id=555)

        fetch.assert_awaited_once_with("file-1")
        remote["normalize"].assert_awaited_once_with(b"raw-image")
        remote["upload"].assert_awaited_once()
        assert remote["upload"].await_args.args[0] == b"normalized-jpeg"
        kwargs = remote["create_registration"].await_args.kwargs
        assert kwargs["payment_status"] == PaymentStatus.PENDING
        assert kwargs["payment_proof_url"] == "https://res.cloudinary.com/demo/proof.jpg"
        assert kwargs["transaction_ref"] == "UTR123"
        assert kwargs["lead_telegram_id"] == 555
        assert reg.payment_status == PaymentStatus.PENDING
        assert wiz.step == Step.CONFIRMED
        assert wiz.registration is reg

    async def test_openmic_free_team_is_approved_without_payment(
        self, make_event, make_member, remote,
    ):
        event = make_event(name="OpenMic", price_per_person=0, max_team_size=4)
        remote["get_event"].return_value = event
        wiz = _filled(event, [make_member() for _ in range(4)])
        wiz.go_to_payment()
        fetch = AsyncMock()

        reg = await wiz.submit(fetch)

        assert reg.payment_status == PaymentStatus.APPROVED
        fetch.assert_not_awaited()
        remote["upload"].assert_not_awaited()
        kwargs = remote["create_registration"].await_args.kwargs
        assert kwargs["payment_proof_url"] is None
        assert kwargs["transaction_ref"] is None
        assert len(kwargs["members"]) == 4

    async def test_per_team_pricing_charges_flat_price(self, make_event, make_member, remote):
        event = make_event(pricing_mode=PricingMode.PER_TEAM, price_per_team=300, price_per_person=0)
        remote["get_event"].return_value = event
        wiz = _filled(event, [make_member(), make_member(), make_member()])
        assert wiz.price() == 300

    async def test_upload_failure_leaves_form_intact(self, make_event, make_member, remote):
        event = make_event()
        remote["get_event"].return_value = event
        remote["upload"].side_effect = UploadError()
        wiz = _filled(event, [make_member()])
        wiz.go_to_payment()
        wiz.attach_proof("file-1")
        wiz.set_transaction_ref("UTR123")
        before = wiz.to_draft()

        with pytest.raises(UploadError):
            await wiz.submit(AsyncMock(return_value=b"raw"))

        assert wiz.to_draft() == before
        assert wiz.step == Step.PAYMENT
        assert not wiz.submitting
        remote["create_registration"].assert_not_awaited()

    async def test_insert_failure_allows_retry(self, make_event, make_member, remote):
        event = make_event(price_per_person=0)
        remote["get_event"].return_value = event
        original = remote["create_registration"].side_effect
        remote["create_registration"].side_effect = RemoteWriteError()
        wiz = _filled(event, [make_member()])
        wiz.go_to_payment()

        with pytest.raises(RemoteWriteError):
            await wiz.submit(AsyncMock())
        assert wiz.step == Step.PAYMENT

        remote["create_registration"].side_effect = original
        reg = await wiz.submit(AsyncMock())
        assert reg.id == 42
        assert wiz.step == Step.CONFIRMED

    async def test_oversize_proof_rejected_before_upload(self, make_event, make_member, remote):
        event = make_event()
        remote["get_event"].return_value = event
        wiz = _filled(event, [make_member()])
        wiz.go_to_payment()
        wiz.attach_proof("file-1")
        wiz.set_transaction_ref("UTR123")
        huge = b"x" * (storage.MAX_UPLOAD_BYTES + 1)

        with pytest.raises(UploadError):
            await wiz.submit(AsyncMock(return_value=huge))

        remote["normalize"].assert_not_awaited()
        remote["upload"].assert_not_awaited()

    async def test_event_closed_since_selection(self, make_event, make_member, remote):
        remote["get_event"].return_value = make_event(is_open=False)
        wiz = _filled(make_event(price_per_person=0), [make_member()])
        wiz.go_to_payment()

        with pytest.raises(ValidationError):
            await wiz.submit(AsyncMock())
        remote["create_registration"].assert_not_awaited()

    async def test_max_team_size_rechecked_against_fresh_event(
        self, make_event, make_member, remote,
    ):
        remote["get_event"].return_value = make_event(price_per_person=0, max_team_size=1)
        wiz = _filled(make_event(price_per_person=0, max_team_size=3), [make_member(), make_member()])
        wiz.go_to_payment()

        with pytest.raises(ValidationError):
            await wiz.submit(AsyncMock())
        remote["create_registration"].assert_not_awaited()

    async def test_second_submit_while_in_flight_is_rejected(
        self, make_event, make_member, remote,
    ):
        event = make_event(price_per_person=0)
        remote["get_event"].return_value = event
        wiz = _filled(event, [make_member()])
        wiz.go_to_payment()
        wiz.submitting = True

        with pytest.raises(ValidationError):
            await wiz.submit(AsyncMock())
        remote["get_event"].assert_not_awaited()


class TestDrafts:
    """Draft persistence through a mapping"""

    def test_draft_round_trip(self, make_event, make_member):
        event = make_event()
        wiz = _filled(event, [make_member()])
        wiz.pending_member = {"name": "Half Done"}
        wiz.go_to_payment()
        wiz.attach_proof("file-1", "proof.png")
        wiz.set_transaction_ref("UTR123")

        user_data = {}
        store = DraftStore(user_data)
        store.set(wiz.to_draft())

        restored = RegistrationWizard.from_draft(store.get(), {event.id: event})
        assert restored.to_draft() == wiz.to_draft()
        assert restored.step == Step.PAYMENT

    def test_missing_event_resets_to_details(self, make_event, make_member):
        event = make_event()
        wiz = _filled(event, [make_member()])
        wiz.go_to_payment()

        restored = RegistrationWizard.from_draft(wiz.to_draft(), {})
        assert restored.event is None
        assert restored.step == Step.DETAILS
        assert restored.team_name == "Byte Me"

    def test_empty_draft_gives_fresh_wizard(self):
        wiz = RegistrationWizard.from_draft(None, {})
        assert wiz.step == Step.DETAILS
        assert wiz.members == []

    def test_remove_clears_draft(self):
        user_data = {"reg_draft": {"team_name": "x"}, "is_admin": True}
        DraftStore(user_data).remove()
        assert user_data == {"is_admin": True}

    def test_reset(self, make_event, make_member):
        wiz = _filled(make_event(), [make_member()])
        wiz.reset()
        assert wiz.event is None
        assert wiz.to_draft()["members"] == []
