"""Cycle registry: create, update, query and close contribution cycles."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from esusu.config import settings
from esusu.models.cycle import Cycle, CycleStatus
from esusu.models.participation import Participation
from esusu.models.payment import Payment, PaymentStatus
from esusu.models.payout import Payout, PayoutStatus
from esusu.services.audit_service import AuditService
from esusu.services.auth_service import require_admin
from esusu.services.errors import (
    CapacityConflictError,
    HasParticipantsError,
    InvalidRangeError,
    InvalidStatusTransitionError,
    NotFoundError,
    OperationResult,
    PendingItemsError,
    ValidationError,
)
from esusu.services.transactions import run_ledger_operation
from esusu.utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)

# Allowed status changes; COMPLETED and CANCELLED are final
STATUS_TRANSITIONS: dict[CycleStatus, set[CycleStatus]] = {
    CycleStatus.UPCOMING: {CycleStatus.ACTIVE, CycleStatus.CANCELLED},
    CycleStatus.ACTIVE: {CycleStatus.COMPLETED, CycleStatus.CANCELLED},
    CycleStatus.COMPLETED: set(),
    CycleStatus.CANCELLED: set(),
}

_UNSET = object()


@dataclass
class ParticipantInfo:
    """Participant row shown in cycle details."""

    id: int
    user_id: int
    user_name: str
    user_phone: str | None
    user_email: str | None
    contribution_mode: str
    picked_number: int | None
    has_opted_out: bool
    registered_at: datetime
    has_bank_details: bool


@dataclass
class CycleDetails:
    """Cycle with derived slot availability."""

    id: int
    name: str
    start_date: date
    end_date: date
    registration_deadline: datetime
    number_picking_start_date: datetime | None
    status: CycleStatus
    total_slots: int
    payment_deadline_day: int
    participant_count: int
    available_slots: int
    participants: list[ParticipantInfo] = field(default_factory=list)


@dataclass
class CycleSummary:
    """Cycle with participation, payment and payout counters."""

    id: int
    name: str
    status: CycleStatus
    start_date: date
    end_date: date
    registration_deadline: datetime
    total_slots: int
    payment_deadline_day: int
    total_participants: int
    active_participants: int
    picked_numbers: int
    available_slots: int
    total_payments: int
    paid_payments: int
    pending_payments: int
    total_payouts: int
    completed_payouts: int


@dataclass
class ActiveCycleInfo:
    """The current ACTIVE cycle as seen by the slot picker."""

    id: int
    name: str
    total_slots: int
    status: CycleStatus
    can_pick_numbers: bool
    number_picking_start_date: datetime | None


def count_participants(db: Session, cycle_id: int) -> int:
    """Number of participations registered in a cycle."""
    return db.execute(
        select(func.count(Participation.id)).where(Participation.cycle_id == cycle_id)
    ).scalar_one()


def max_picked_number(db: Session, cycle_id: int) -> int:
    """Highest slot number picked in a cycle, 0 when none."""
    return db.execute(
        select(func.max(Participation.picked_number)).where(Participation.cycle_id == cycle_id)
    ).scalar_one() or 0


def lock_cycle(db: Session, cycle_id: int) -> Cycle:
    """Load a cycle row with a write lock for the rest of the transaction.

    Raises:
        NotFoundError: Cycle does not exist
    """
    cycle = db.execute(
        select(Cycle).where(Cycle.id == cycle_id).with_for_update()
    ).scalar_one_or_none()
    if cycle is None:
        raise NotFoundError("Cycle not found", {"cycle_id": cycle_id})
    return cycle


def claim_slot(db: Session, cycle_id: int) -> bool:
    """Take one of the cycle's free slots.

    The increment and the capacity test are one UPDATE statement, so the
    database serializes concurrent claims on the row even where SELECT ... FOR
    UPDATE is not supported. Returns False when the cycle is already full.
    """
    claimed = db.execute(
        update(Cycle)
        .where(Cycle.id == cycle_id, Cycle.participant_count < Cycle.total_slots)
        .values(participant_count=Cycle.participant_count + 1)
        .execution_options(synchronize_session=False)
    )
    return claimed.rowcount == 1


def picking_open(cycle: Cycle, now: datetime | None = None) -> bool:
    """True when members may pick numbers in the cycle."""
    if cycle.number_picking_start_date is None:
        return cycle.status == CycleStatus.ACTIVE
    return (now or utcnow()) >= ensure_utc(cycle.number_picking_start_date)


def _validate_schedule(
    name: str,
    start_date: date,
    end_date: date,
    registration_deadline: datetime,
    number_picking_start_date: datetime | None,
    total_slots: int,
    payment_deadline_day: int,
) -> None:
    if not name or not name.strip():
        raise ValidationError("Cycle name is required")
    if end_date <= start_date:
        raise InvalidRangeError("End date must be after start date")
    start_moment = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
    if ensure_utc(registration_deadline) >= start_moment:
        raise InvalidRangeError("Registration deadline must be before start date")
    if number_picking_start_date is not None:
        end_moment = datetime.combine(end_date, time.max, tzinfo=timezone.utc)
        if ensure_utc(number_picking_start_date) > end_moment:
            raise InvalidRangeError("Number picking must start before the cycle ends")
    if total_slots < 1 or not (settings.min_total_slots <= total_slots <= settings.max_total_slots):
        raise InvalidRangeError(
            f"Total slots must be between {settings.min_total_slots} and {settings.max_total_slots}"
        )
    if payment_deadline_day < 1 or payment_deadline_day > 31:
        raise InvalidRangeError("Payment deadline day must be between 1 and 31")


def _ensure_no_pending_items(db: Session, cycle_id: int) -> None:
    pending_payments = db.execute(
        select(func.count(Payment.id)).where(
            Payment.cycle_id == cycle_id, Payment.status == PaymentStatus.PENDING
        )
    ).scalar_one()
    pending_payouts = db.execute(
        select(func.count(Payout.id)).where(
            Payout.cycle_id == cycle_id, Payout.status == PayoutStatus.PENDING
        )
    ).scalar_one()
    if pending_payments or pending_payouts:
        raise PendingItemsError(
            f"Cannot close cycle: {pending_payments} pending payment(s) and "
            f"{pending_payouts} pending payout(s) remaining",
            {"pending_payments": pending_payments, "pending_payouts": pending_payouts},
        )


class CycleService:
    """Service for contribution cycle operations.

    Owns slot capacity and the timing windows (registration, number picking,
    payment deadline day) of every cycle.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, cycle_id: int) -> Cycle | None:
        """Get cycle by ID."""
        return self.db.get(Cycle, cycle_id)

    def create_cycle(
        self,
        admin_id: int,
        name: str,
        start_date: date,
        end_date: date,
        registration_deadline: datetime,
        total_slots: int,
        payment_deadline_day: int,
        number_picking_start_date: datetime | None = None,
        status: CycleStatus = CycleStatus.UPCOMING,
    ) -> OperationResult:
        """Create a new cycle.

        Args:
            admin_id: Administrator creating the cycle
            name: Display name
            start_date: First month of the cycle
            end_date: Last day of the cycle
            registration_deadline: Joins are accepted until this moment (before start_date)
            total_slots: Capacity and highest slot number
            payment_deadline_day: Day of month payments fall due
            number_picking_start_date: Optional moment picking opens
            status: UPCOMING or ACTIVE

        Returns:
            OperationResult with the new cycle id
        """

        def operation(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            _validate_schedule(
                name,
                start_date,
                end_date,
                registration_deadline,
                number_picking_start_date,
                total_slots,
                payment_deadline_day,
            )
            initial_status = CycleStatus(status)
            if initial_status not in (CycleStatus.UPCOMING, CycleStatus.ACTIVE):
                raise InvalidStatusTransitionError("New cycles must be UPCOMING or ACTIVE")

            cycle = Cycle(
                name=name.strip(),
                start_date=start_date,
                end_date=end_date,
                registration_deadline=registration_deadline,
                number_picking_start_date=number_picking_start_date,
                status=initial_status,
                total_slots=total_slots,
                payment_deadline_day=payment_deadline_day,
            )
            db.add(cycle)
            db.flush()
            AuditService.log(db, "cycle", cycle.id, "create", admin_id, {"name": cycle.name})
            logger.info(
                "Created cycle id=%d name=%s slots=%d dates=%s to %s",
                cycle.id,
                cycle.name,
                total_slots,
                start_date,
                end_date,
            )
            return OperationResult.ok(cycle.id, "Cycle created successfully")

        return run_ledger_operation(self.db, "create_cycle", operation)

    def update_cycle(
        self,
        cycle_id: int,
        admin_id: int,
        name: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        registration_deadline: datetime | None = None,
        number_picking_start_date=_UNSET,
        status: CycleStatus | None = None,
        total_slots: int | None = None,
        payment_deadline_day: int | None = None,
    ) -> OperationResult:
        """Update cycle fields. Omitted fields keep their values.

        total_slots can never drop below the participant count or the highest
        number already picked. Passing number_picking_start_date=None clears it.

        Returns:
            OperationResult with the cycle id
        """

        def operation(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            cycle = lock_cycle(db, cycle_id)

            new_picking = (
                cycle.number_picking_start_date
                if number_picking_start_date is _UNSET
                else number_picking_start_date
            )
            merged = {
                "name": cycle.name if name is None else name,
                "start_date": start_date or cycle.start_date,
                "end_date": end_date or cycle.end_date,
                "registration_deadline": registration_deadline or cycle.registration_deadline,
                "number_picking_start_date": new_picking,
                "total_slots": cycle.total_slots if total_slots is None else total_slots,
                "payment_deadline_day": payment_deadline_day or cycle.payment_deadline_day,
            }
            _validate_schedule(**merged)

            if total_slots is not None and total_slots < cycle.total_slots:
                floor = max(max_picked_number(db, cycle_id), count_participants(db, cycle_id))
                if total_slots < floor:
                    raise CapacityConflictError(
                        f"Cannot reduce total slots below {floor}: participants or picked "
                        f"numbers already use them",
                        {"minimum": floor},
                    )

            changes: dict = {}
            if status is not None and CycleStatus(status) != cycle.status:
                target = CycleStatus(status)
                if target not in STATUS_TRANSITIONS[cycle.status]:
                    raise InvalidStatusTransitionError(
                        f"Cannot change status from {cycle.status.value} to {target.value}"
                    )
                if target == CycleStatus.COMPLETED:
                    _ensure_no_pending_items(db, cycle_id)
                changes["status"] = target.value
                cycle.status = target

            for key, value in merged.items():
                if getattr(cycle, key) != value:
                    changes[key] = str(value)
                    setattr(cycle, key, value)

            AuditService.log(db, "cycle", cycle.id, "update", admin_id, changes or None)
            logger.info("Updated cycle %d by admin %d: %s", cycle_id, admin_id, sorted(changes))
            return OperationResult.ok(cycle.id, "Cycle updated successfully")

        return run_ledger_operation(self.db, "update_cycle", operation)

    def get_cycle_details(self, cycle_id: int) -> CycleDetails | None:
        """Get cycle with participants and available slots.

        Returns:
            CycleDetails or None if not found
        """
        cycle = self.db.execute(
            select(Cycle)
            .where(Cycle.id == cycle_id)
            .options(
                selectinload(Cycle.participations).selectinload(Participation.user),
                selectinload(Cycle.participations).selectinload(Participation.bank_details),
            )
        ).scalar_one_or_none()
        if cycle is None:
            return None

        participant_count = len(cycle.participations)
        return CycleDetails(
            id=cycle.id,
            name=cycle.name,
            start_date=cycle.start_date,
            end_date=cycle.end_date,
            registration_deadline=cycle.registration_deadline,
            number_picking_start_date=cycle.number_picking_start_date,
            status=cycle.status,
            total_slots=cycle.total_slots,
            payment_deadline_day=cycle.payment_deadline_day,
            participant_count=participant_count,
            available_slots=cycle.total_slots - participant_count,
            participants=[
                ParticipantInfo(
                    id=p.id,
                    user_id=p.user_id,
                    user_name=p.user.full_name,
                    user_phone=p.user.phone,
                    user_email=p.user.email,
                    contribution_mode=p.contribution_mode.value,
                    picked_number=p.picked_number,
                    has_opted_out=p.has_opted_out,
                    registered_at=p.registered_at,
                    has_bank_details=p.bank_details is not None,
                )
                for p in sorted(cycle.participations, key=lambda p: p.id)
            ],
        )

    def list_cycles(self) -> list[CycleSummary]:
        """List all cycles, newest first, with counters."""
        cycles = (
            self.db.execute(
                select(Cycle)
                .order_by(Cycle.created_at.desc(), Cycle.id.desc())
                .options(
                    selectinload(Cycle.participations),
                    selectinload(Cycle.payments),
                    selectinload(Cycle.payouts),
                )
            )
            .scalars()
            .all()
        )
        return [
            CycleSummary(
                id=c.id,
                name=c.name,
                status=c.status,
                start_date=c.start_date,
                end_date=c.end_date,
                registration_deadline=c.registration_deadline,
                total_slots=c.total_slots,
                payment_deadline_day=c.payment_deadline_day,
                total_participants=len(c.participations),
                active_participants=sum(1 for p in c.participations if not p.has_opted_out),
                picked_numbers=sum(1 for p in c.participations if p.picked_number is not None),
                available_slots=c.total_slots - len(c.participations),
                total_payments=len(c.payments),
                paid_payments=sum(1 for p in c.payments if p.status == PaymentStatus.PAID),
                pending_payments=sum(1 for p in c.payments if p.status == PaymentStatus.PENDING),
                total_payouts=len(c.payouts),
                completed_payouts=sum(1 for p in c.payouts if p.status == PayoutStatus.PAID),
            )
            for c in cycles
        ]

    def get_available_cycles(self) -> list[CycleDetails]:
        """ACTIVE or UPCOMING cycles still open for registration, earliest start first."""
        now = utcnow()
        cycles = (
            self.db.execute(
                select(Cycle)
                .where(Cycle.status.in_([CycleStatus.ACTIVE, CycleStatus.UPCOMING]))
                .order_by(Cycle.start_date.asc())
                .options(selectinload(Cycle.participations))
            )
            .scalars()
            .all()
        )
        return [
            CycleDetails(
                id=c.id,
                name=c.name,
                start_date=c.start_date,
                end_date=c.end_date,
                registration_deadline=c.registration_deadline,
                number_picking_start_date=c.number_picking_start_date,
                status=c.status,
                total_slots=c.total_slots,
                payment_deadline_day=c.payment_deadline_day,
                participant_count=len(c.participations),
                available_slots=c.total_slots - len(c.participations),
            )
            for c in cycles
            if ensure_utc(c.registration_deadline) > now
        ]

    def get_active_cycle(self) -> ActiveCycleInfo | None:
        """Most recently created ACTIVE cycle, or None."""
        cycle = (
            self.db.execute(
                select(Cycle)
                .where(Cycle.status == CycleStatus.ACTIVE)
                .order_by(Cycle.created_at.desc(), Cycle.id.desc())
            )
            .scalars()
            .first()
        )
        if cycle is None:
            return None
        return ActiveCycleInfo(
            id=cycle.id,
            name=cycle.name,
            total_slots=cycle.total_slots,
            status=cycle.status,
            can_pick_numbers=picking_open(cycle),
            number_picking_start_date=cycle.number_picking_start_date,
        )

    def close_cycle(self, cycle_id: int, admin_id: int) -> OperationResult:
        """Mark an ACTIVE cycle COMPLETED once nothing is pending."""

        def operation(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            cycle = lock_cycle(db, cycle_id)
            if CycleStatus.COMPLETED not in STATUS_TRANSITIONS[cycle.status]:
                raise InvalidStatusTransitionError(
                    f"Cannot close a cycle in status {cycle.status.value}"
                )
            _ensure_no_pending_items(db, cycle_id)
            cycle.status = CycleStatus.COMPLETED
            AuditService.log(db, "cycle", cycle_id, "close", admin_id, {"status": "COMPLETED"})
            logger.info("Closed cycle %d", cycle_id)
            return OperationResult.ok(cycle_id, "Cycle closed successfully")

        return run_ledger_operation(self.db, "close_cycle", operation)

    def cancel_cycle(self, cycle_id: int, admin_id: int) -> OperationResult:
        """Cancel a cycle that has not completed."""

        def operation(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            cycle = lock_cycle(db, cycle_id)
            if CycleStatus.CANCELLED not in STATUS_TRANSITIONS[cycle.status]:
                raise InvalidStatusTransitionError(
                    f"Cannot cancel a cycle in status {cycle.status.value}"
                )
            cycle.status = CycleStatus.CANCELLED
            AuditService.log(db, "cycle", cycle_id, "cancel", admin_id, {"status": "CANCELLED"})
            logger.info("Cancelled cycle %d", cycle_id)
            return OperationResult.ok(cycle_id, "Cycle cancelled")

        return run_ledger_operation(self.db, "cancel_cycle", operation)

    def delete_cycle(self, cycle_id: int, admin_id: int) -> OperationResult:
        """Delete a cycle nobody has joined."""

        def operation(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            cycle = lock_cycle(db, cycle_id)
            if count_participants(db, cycle_id) > 0:
                raise HasParticipantsError()
            db.delete(cycle)
            AuditService.log(db, "cycle", cycle_id, "delete", admin_id, {"name": cycle.name})
            logger.info("Deleted cycle %d", cycle_id)
            return OperationResult.ok(cycle_id, "Cycle deleted successfully")

        return run_ledger_operation(self.db, "delete_cycle", operation)


__all__ = [
    "ActiveCycleInfo",
    "CycleDetails",
    "CycleService",
    "CycleSummary",
    "ParticipantInfo",
    "claim_slot",
    "count_participants",
    "lock_cycle",
    "max_picked_number",
    "picking_open",
]
