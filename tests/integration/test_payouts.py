"""Integration tests for payout processing and payout views."""

from decimal import Decimal

import pytest

from esusu.models import Payout, PayoutStatus
from esusu.services.errors import ErrorCode
from esusu.services.payment_service import PaymentService
from esusu.services.payout_service import BatchResult, PayoutService
from esusu.services.slot_service import SlotService


@pytest.fixture
def service(db_session):
    return PayoutService(db_session)


@pytest.fixture
def picked(db_session, make_cycle, make_user, join):
    """Active cycle where three members hold numbers 3, 4 and 5."""
    cycle = make_cycle()
    users = [make_user(f"Picker {n}") for n in (3, 4, 5)]
    payout_ids = []
    for number, user in zip((3, 4, 5), users):
        join(user, cycle)
        result = SlotService(db_session).pick_number(user.id, number)
        assert result.success, result.message
        payout_ids.append(result.value.payout_id)
    return cycle, users, payout_ids


class TestProcessPayout:
    def test_second_processing_keeps_first_reference(self, db_session, service, picked, admin):
        _, _, payout_ids = picked
        payout_id = payout_ids[0]

        first = service.process_payout(payout_id, admin.id, "TRX-001")
        second = service.process_payout(payout_id, admin.id, "TRX-002")

        assert first.success, first.message
        assert second.error_code == ErrorCode.ALREADY_PROCESSED
        payout = db_session.get(Payout, payout_id)
        assert payout.status == PayoutStatus.PAID
        assert payout.transfer_reference == "TRX-001"
        assert payout.processed_by == admin.id
        assert payout.paid_at is not None

    def test_reference_required(self, db_session, service, picked, admin):
        _, _, payout_ids = picked
        result = service.process_payout(payout_ids[0], admin.id, "   ")
        assert result.error_code == ErrorCode.MISSING_REFERENCE
        assert db_session.get(Payout, payout_ids[0]).status == PayoutStatus.PENDING

    def test_admin_only(self, service, picked, member):
        _, _, payout_ids = picked
        assert service.process_payout(payout_ids[0], member.id, "TRX").error_code == ErrorCode.UNAUTHORIZED

    def test_missing_payout(self, service, picked, admin):
        assert service.process_payout(9999, admin.id, "TRX").error_code == ErrorCode.NOT_FOUND


class TestBatchProcess:
    def test_references_are_numbered_and_failures_counted(self, db_session, service, picked, admin):
        _, _, payout_ids = picked
        service.process_payout(payout_ids[1], admin.id, "EARLIER")

        result = service.batch_process_payouts(payout_ids + [9999], admin.id, "BATCH-OCT")

        assert result.success
        batch = result.value
        assert isinstance(batch, BatchResult)
        assert (batch.successful, batch.failed) == (2, 2)
        assert [r.error_code for r in batch.results] == [
            None,
            ErrorCode.ALREADY_PROCESSED,
            None,
            ErrorCode.NOT_FOUND,
        ]
        db_session.expire_all()
        assert db_session.get(Payout, payout_ids[0]).transfer_reference == "BATCH-OCT-1"
        assert db_session.get(Payout, payout_ids[1]).transfer_reference == "EARLIER"
        assert db_session.get(Payout, payout_ids[2]).transfer_reference == "BATCH-OCT-3"

    def test_empty_batch_rejected(self, service, admin):
        assert service.batch_process_payouts([], admin.id, "REF").error_code == ErrorCode.INVALID_REQUEST

    def test_base_reference_required(self, service, picked, admin):
        _, _, payout_ids = picked
        result = service.batch_process_payouts(payout_ids, admin.id, "")
        assert result.error_code == ErrorCode.MISSING_REFERENCE


class TestPayoutViews:
    def test_list_and_stats(self, service, picked, admin):
        cycle, _, payout_ids = picked
        service.process_payout(payout_ids[0], admin.id, "TRX-1")

        everything = service.list_payouts()
        pending = service.list_payouts("pending")
        completed = service.list_payouts("completed")
        stats = service.get_payout_stats()

        assert [p.scheduled_month for p in everything] == [3, 4, 5]
        assert [p.id for p in completed] == [payout_ids[0]]
        assert len(pending) == 2
        assert everything[0].bank_details["account_number"] == "0123456789"
        assert everything[0].cycle_name == cycle.name
        assert stats.total == 3
        assert (stats.pending, stats.completed) == (2, 1)
        assert stats.completed_amount == Decimal("500000")
        assert stats.pending_amount == Decimal("1000000")
        # Slot 3 of a cycle that started two months ago is due this month or earlier
        assert stats.overdue <= 2

    def test_user_payout_info_and_details(self, db_session, service, picked, admin):
        _, users, payout_ids = picked
        owner = users[0]
        PaymentService(db_session).generate_cycle_payments(picked[0].id, admin.id)

        info = service.get_user_payout_info(owner.id)
        details = service.get_payout_details(payout_ids[0], owner.id)

        assert info["active_payout"].id == payout_ids[0]
        assert info["statistics"]["total_expected"] == Decimal("500000")
        assert info["statistics"]["pending_count"] == 1
        assert details["monthly_amount"] == Decimal("50000")
        assert details["contribution_progress"] == {
            "paid": 0,
            "total": 20,
            "percentage": 0,
            "total_contributed": Decimal("0"),
        }
        assert service.get_payout_details(payout_ids[0], users[1].id) is None

    def test_timeline_marks_current_user(self, service, picked):
        cycle, users, _ = picked

        timeline = service.get_payout_timeline(users[1].id)

        assert timeline["cycle_name"] == cycle.name
        assert timeline["total_slots"] == 20
        assert timeline["user_position"] == 4
        assert [entry["month"] for entry in timeline["timeline"]] == [3, 4, 5]
        assert [entry["is_current_user"] for entry in timeline["timeline"]] == [False, True, False]
        assert 1 <= timeline["current_month"] <= 20

    def test_timeline_without_active_cycle(self, service, member):
        timeline = service.get_payout_timeline(member.id)
        assert timeline["timeline"] == []
        assert timeline["user_position"] is None

    def test_upcoming_excludes_processed_and_past(self, service, picked, admin):
        _, _, payout_ids = picked
        service.process_payout(payout_ids[2], admin.id, "TRX-5")

        upcoming = service.get_upcoming_payouts(days=400)

        months = [p.scheduled_month for p in upcoming]
        assert 4 in months
        assert 5 not in months
        assert months == sorted(months)
        assert service.get_upcoming_payouts(days=400, limit=1)[0].scheduled_month == months[0]
