"""Integration tests for cycle creation, updates and lifecycle."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from esusu.models import Cycle, CycleStatus
from esusu.services import cycle_service
from esusu.services.audit_service import AuditService
from esusu.services.cycle_service import CycleService
from esusu.services.errors import ErrorCode
from esusu.services.payment_service import PaymentService
from esusu.services.slot_service import SlotService
from esusu.utils.dates import add_months, utcnow


@pytest.fixture
def service(db_session):
    return CycleService(db_session)


def cycle_fields(**overrides) -> dict:
    start = add_months(utcnow().date().replace(day=1), 2, day=1)
    fields = {
        "name": "2026 Main Cycle",
        "start_date": start,
        "end_date": add_months(start, 11, day=28),
        "registration_deadline": utcnow() + timedelta(days=10),
        "total_slots": 20,
        "payment_deadline_day": 28,
    }
    fields.update(overrides)
    return fields


class TestCreateCycle:
    def test_admin_creates_cycle(self, db_session, service, admin):
        result = service.create_cycle(admin.id, **cycle_fields())

        assert result.success, result.message
        cycle = db_session.get(Cycle, result.value)
        assert cycle.status == CycleStatus.UPCOMING
        assert cycle.total_slots == 20
        [audit] = AuditService.history(db_session, "cycle", cycle.id)
        assert audit.action == "create"
        assert audit.actor_id == admin.id
        assert audit.changes == {"name": cycle.name}

    def test_non_admin_is_rejected(self, db_session, service, member):
        result = service.create_cycle(member.id, **cycle_fields())

        assert result.error_code == ErrorCode.UNAUTHORIZED
        assert db_session.execute(select(Cycle)).first() is None

    def test_inactive_admin_is_rejected(self, service, make_user):
        suspended = make_user("Old Admin", is_administrator=True, is_active=False)
        assert service.create_cycle(suspended.id, **cycle_fields()).error_code == ErrorCode.UNAUTHORIZED

    def test_end_before_start(self, service, admin):
        fields = cycle_fields()
        fields["end_date"] = fields["start_date"] - timedelta(days=1)
        assert service.create_cycle(admin.id, **fields).error_code == ErrorCode.INVALID_RANGE

    def test_deadline_must_precede_start(self, service, admin):
        fields = cycle_fields()
        fields["registration_deadline"] = utcnow() + timedelta(days=400)
        assert service.create_cycle(admin.id, **fields).error_code == ErrorCode.INVALID_RANGE

    @pytest.mark.parametrize("slots", [0, 9, 101])
    def test_slot_range(self, service, admin, slots):
        result = service.create_cycle(admin.id, **cycle_fields(total_slots=slots))
        assert result.error_code == ErrorCode.INVALID_RANGE

    def test_deadline_day_range(self, service, admin):
        result = service.create_cycle(admin.id, **cycle_fields(payment_deadline_day=32))
        assert result.error_code == ErrorCode.INVALID_RANGE


class TestUpdateCycle:
    def test_updates_only_given_fields(self, db_session, service, admin, make_cycle):
        cycle = make_cycle(status=CycleStatus.UPCOMING, **cycle_fields())

        result = service.update_cycle(cycle.id, admin.id, name="Renamed")

        assert result.success, result.message
        db_session.refresh(cycle)
        assert cycle.name == "Renamed"
        assert cycle.total_slots == 20

    def test_shrinking_below_picked_number_conflicts(
        self, db_session, service, admin, make_cycle, make_user, join
    ):
        cycle = make_cycle(**cycle_fields())
        user = make_user()
        join(user, cycle)
        assert SlotService(db_session).pick_number(user.id, 15).success

        result = service.update_cycle(cycle.id, admin.id, total_slots=12)

        assert result.error_code == ErrorCode.CAPACITY_CONFLICT
        assert result.details["minimum"] == 15
        db_session.refresh(cycle)
        assert cycle.total_slots == 20

    def test_growing_is_allowed(self, db_session, service, admin, make_cycle):
        cycle = make_cycle(**cycle_fields())
        assert service.update_cycle(cycle.id, admin.id, total_slots=30).success
        db_session.refresh(cycle)
        assert cycle.total_slots == 30

    def test_invalid_status_transition(self, service, admin, make_cycle):
        cycle = make_cycle(**cycle_fields(), status=CycleStatus.CANCELLED)
        result = service.update_cycle(cycle.id, admin.id, status=CycleStatus.ACTIVE)
        assert result.error_code == ErrorCode.INVALID_STATUS_TRANSITION

    def test_activation(self, db_session, service, admin, make_cycle):
        cycle = make_cycle(**cycle_fields(), status=CycleStatus.UPCOMING)
        assert service.update_cycle(cycle.id, admin.id, status=CycleStatus.ACTIVE).success
        db_session.refresh(cycle)
        assert cycle.status == CycleStatus.ACTIVE

    def test_missing_cycle(self, service, admin):
        assert service.update_cycle(999, admin.id, name="x").error_code == ErrorCode.NOT_FOUND


class TestLifecycle:
    def test_close_blocked_by_pending_payments(self, db_session, service, admin, member, make_cycle, join):
        cycle = make_cycle()
        join(member, cycle)
        assert PaymentService(db_session).generate_cycle_payments(cycle.id, admin.id).success

        result = service.close_cycle(cycle.id, admin.id)

        assert result.error_code == ErrorCode.PENDING_ITEMS
        assert result.details["pending_payments"] == 12

    def test_close_empty_active_cycle(self, db_session, service, admin, make_cycle):
        cycle = make_cycle()
        assert service.close_cycle(cycle.id, admin.id).success
        db_session.refresh(cycle)
        assert cycle.status == CycleStatus.COMPLETED
        assert service.cancel_cycle(cycle.id, admin.id).error_code == ErrorCode.INVALID_STATUS_TRANSITION

    def test_cancel(self, db_session, service, admin, make_cycle):
        cycle = make_cycle(status=CycleStatus.UPCOMING)
        assert service.cancel_cycle(cycle.id, admin.id).success
        db_session.refresh(cycle)
        assert cycle.is_closed

    def test_delete_requires_no_participants(self, db_session, service, admin, member, make_cycle, join):
        joined = make_cycle()
        join(member, joined)
        empty = make_cycle(name="Empty")

        assert service.delete_cycle(joined.id, admin.id).error_code == ErrorCode.HAS_PARTICIPANTS
        assert service.delete_cycle(empty.id, admin.id).success
        assert service.get_by_id(empty.id) is None


class TestQueries:
    def test_details_report_available_slots(self, service, make_cycle, make_user, join):
        cycle = make_cycle()
        for _ in range(3):
            join(make_user(), cycle)

        details = service.get_cycle_details(cycle.id)

        assert details.participant_count == 3
        assert details.available_slots == 17
        assert all(p.has_bank_details for p in details.participants)

    def test_details_missing(self, service):
        assert service.get_cycle_details(404) is None

    def test_available_excludes_past_deadline_and_closed(self, service, make_cycle):
        open_cycle = make_cycle(name="Open")
        make_cycle(name="Late", registration_deadline=utcnow() - timedelta(days=1))
        make_cycle(name="Done", status=CycleStatus.COMPLETED)

        available = service.get_available_cycles()

        assert [c.id for c in available] == [open_cycle.id]

    def test_available_closes_at_the_deadline(self, service, make_cycle, monkeypatch):
        now = utcnow().replace(microsecond=0)
        make_cycle(name="Closing", registration_deadline=now)
        monkeypatch.setattr(cycle_service, "utcnow", lambda: now)

        assert service.get_available_cycles() == []

    def test_active_cycle_and_picking_window(self, service, make_cycle):
        make_cycle(name="Upcoming", status=CycleStatus.UPCOMING)
        active = make_cycle(name="Active", number_picking_start_date=utcnow() + timedelta(days=3))

        info = service.get_active_cycle()

        assert info.id == active.id
        assert info.can_pick_numbers is False

    def test_list_cycles_counters(self, db_session, service, admin, make_cycle, make_user, join):
        cycle = make_cycle()
        join(make_user(), cycle)
        join(make_user(), cycle)
        PaymentService(db_session).generate_cycle_payments(cycle.id, admin.id)

        summary = service.list_cycles()[0]

        assert summary.total_participants == 2
        assert summary.available_slots == 18
        assert summary.total_payments == 24
        assert summary.pending_payments == 24
