"""Integration tests for the payment schedule, fines and settlement."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from esusu.models import Participation, Payment, PaymentStatus
from esusu.services import payment_service
from esusu.services.errors import ErrorCode
from esusu.services.payment_service import PaymentService
from esusu.utils.dates import add_months


@pytest.fixture
def service(db_session):
    return PaymentService(db_session)


@pytest.fixture
def scheduled(db_session, service, admin, member, make_cycle, join):
    """Active cycle with one PACK_50K member and generated payments."""
    cycle = make_cycle()
    participation_id = join(member, cycle, tier="PACK_50K")
    assert service.generate_cycle_payments(cycle.id, admin.id).success
    payments = (
        db_session.execute(
            select(Payment).where(Payment.participation_id == participation_id).order_by(Payment.month_number)
        )
        .scalars()
        .all()
    )
    return cycle, db_session.get(Participation, participation_id), payments


class TestGenerateCyclePayments:
    def test_schedule_is_contiguous_with_due_dates(self, scheduled):
        cycle, participation, payments = scheduled

        assert [p.month_number for p in payments] == list(range(1, 13))
        for payment in payments:
            assert payment.due_date == add_months(cycle.start_date, payment.month_number - 1, day=28)
            assert payment.amount == participation.monthly_amount
            assert payment.status == PaymentStatus.PENDING
            assert payment.has_fine is False

    def test_skips_opted_out_participants(self, db_session, service, admin, make_cycle, make_user, join):
        cycle = make_cycle()
        stay = join(make_user(), cycle)
        leave = join(make_user(), cycle)
        db_session.get(Participation, leave).has_opted_out = True
        db_session.commit()

        result = service.generate_cycle_payments(cycle.id, admin.id)

        assert result.value == 12
        owners = set(db_session.execute(select(Payment.participation_id)).scalars())
        assert owners == {stay}

    def test_runs_once(self, scheduled, service, admin):
        cycle, _, _ = scheduled
        assert service.generate_cycle_payments(cycle.id, admin.id).error_code == ErrorCode.PAYMENTS_EXIST

    def test_admin_only(self, service, member, make_cycle):
        cycle = make_cycle()
        assert service.generate_cycle_payments(cycle.id, member.id).error_code == ErrorCode.UNAUTHORIZED


class TestRecordPayment:
    def test_late_payment_gets_stamped_fine(self, db_session, service, scheduled, monkeypatch):
        _, participation, payments = scheduled
        payment = payments[0]
        payment.due_date = date(2025, 1, 29)
        db_session.commit()
        monkeypatch.setattr(
            payment_service, "utcnow", lambda: datetime(2025, 2, 2, 10, 0, tzinfo=timezone.utc)
        )

        result = service.record_payment(payment.id, Decimal("50000"))

        assert result.success, result.message
        assert result.value.has_fine is True
        assert result.value.fine_amount == Decimal("2500")
        db_session.refresh(payment)
        assert payment.status == PaymentStatus.PAID
        assert payment.has_fine is True
        assert payment.fine_amount == participation.fine_amount
        assert payment.fine_paid is True
        assert payment.paid_amount == Decimal("50000")
        assert payment.total_charged == Decimal("52500")

    def test_payment_on_due_date_has_no_fine(self, db_session, service, scheduled, monkeypatch):
        _, _, payments = scheduled
        payment = payments[0]
        payment.due_date = date(2025, 1, 29)
        db_session.commit()
        monkeypatch.setattr(
            payment_service, "utcnow", lambda: datetime(2025, 1, 29, 23, 0, tzinfo=timezone.utc)
        )

        result = service.record_payment(payment.id, Decimal("50000"), proof_reference="bank-ref-1")

        assert result.value.has_fine is False
        db_session.refresh(payment)
        assert payment.fine_amount == Decimal("0")
        assert payment.fine_paid is False
        assert payment.proof_of_payment == "bank-ref-1"

    def test_second_settlement_fails(self, service, scheduled):
        _, _, payments = scheduled
        payment_id = payments[5].id
        assert service.record_payment(payment_id, Decimal("50000")).success

        again = service.record_payment(payment_id, Decimal("50000"))

        assert again.error_code == ErrorCode.ALREADY_PAID

    def test_non_positive_amount(self, service, scheduled):
        _, _, payments = scheduled
        assert service.record_payment(payments[0].id, Decimal("0")).error_code == ErrorCode.INVALID_AMOUNT

    def test_missing_payment(self, service, scheduled):
        assert service.record_payment(9999, Decimal("100")).error_code == ErrorCode.NOT_FOUND


class TestMemberSettlement:
    def test_upload_proof_settles_at_base_amount(self, db_session, service, scheduled, member):
        _, _, payments = scheduled
        payment = payments[-1]

        result = service.upload_payment_proof(
            payment.id, member.id, "proofs/abc.png", content_type="image/png", size_bytes=2048
        )

        assert result.success, result.message
        db_session.refresh(payment)
        assert payment.status == PaymentStatus.PAID
        assert payment.paid_amount == payment.amount
        assert payment.proof_of_payment == "proofs/abc.png"
        assert payment.has_fine is False

    @pytest.mark.parametrize(
        "reference, content_type, size_bytes",
        [
            ("", "image/png", 100),
            ("proofs/a.gif", "image/gif", 100),
            ("proofs/huge.pdf", "application/pdf", 6 * 1024 * 1024),
        ],
    )
    def test_invalid_proof(self, service, scheduled, member, reference, content_type, size_bytes):
        _, _, payments = scheduled
        result = service.upload_payment_proof(
            payments[-1].id, member.id, reference, content_type=content_type, size_bytes=size_bytes
        )
        assert result.error_code == ErrorCode.INVALID_PROOF

    def test_cannot_settle_someone_elses_payment(self, service, scheduled, make_user):
        _, _, payments = scheduled
        stranger = make_user()
        assert service.mark_payment_as_paid(payments[-1].id, stranger.id).error_code == ErrorCode.UNAUTHORIZED

    def test_mark_as_paid(self, db_session, service, scheduled, member):
        _, _, payments = scheduled
        assert service.mark_payment_as_paid(payments[-1].id, member.id).success
        db_session.refresh(payments[-1])
        assert payments[-1].status == PaymentStatus.PAID


class TestVerification:
    def test_approve_pending_settles(self, db_session, service, scheduled, admin):
        _, _, payments = scheduled
        payment = payments[-1]

        assert service.verify_payment(admin.id, payment.id, approved=True, notes="ok").success

        db_session.refresh(payment)
        assert payment.status == PaymentStatus.PAID
        assert payment.verified_by == admin.id
        assert payment.verified_at is not None

    def test_reject_clears_proof_without_reverting(self, db_session, service, scheduled, admin, member):
        _, _, payments = scheduled
        payment = payments[-1]
        service.upload_payment_proof(payment.id, member.id, "proofs/blurry.jpg")
        assert [p.id for p in service.get_payments_needing_verification()] == [payment.id]

        assert service.verify_payment(admin.id, payment.id, approved=False).success

        db_session.refresh(payment)
        assert payment.status == PaymentStatus.PAID
        assert payment.proof_of_payment is None
        assert payment.notes == "Payment proof rejected by admin"
        assert service.get_payments_needing_verification() == []

    def test_verify_requires_admin(self, service, scheduled, member):
        _, _, payments = scheduled
        result = service.verify_payment(member.id, payments[0].id, approved=True)
        assert result.error_code == ErrorCode.UNAUTHORIZED

    def test_verify_missing_payment(self, service, scheduled, admin):
        assert service.verify_payment(admin.id, 12345, approved=True).error_code == ErrorCode.NOT_FOUND


class TestMemberView:
    def test_user_payments_and_overdue(self, service, scheduled, member):
        _, participation, payments = scheduled
        service.record_payment(payments[-1].id, Decimal("50000"))

        view = service.get_user_payments(member.id)

        assert view["participation"]["id"] == participation.id
        assert len(view["payments"]) == 12
        assert view["stats"]["total_paid"] == Decimal("50000")
        assert view["stats"]["pending_count"] == 11
        # Months one and two of a cycle that started two months ago are past due
        assert view["stats"]["overdue_count"] >= 2
        assert service.get_overdue_count(participation.id) == view["stats"]["overdue_count"]

    def test_no_active_participation(self, service, member):
        view = service.get_user_payments(member.id)
        assert view["participation"] is None
        assert view["payments"] == []
