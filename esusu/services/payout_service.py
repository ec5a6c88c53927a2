"""Payout scheduling and processing.

A payout is derived from the participation's picked number: slot n is paid in
the n-th month of the cycle, on the cycle's payment deadline day.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from esusu.models.cycle import Cycle, CycleStatus
from esusu.models.participation import Participation
from esusu.models.payment import Payment, PaymentStatus
from esusu.models.payout import Payout, PayoutStatus
from esusu.services.audit_service import AuditService
from esusu.services.auth_service import require_admin
from esusu.services.errors import (
    AlreadyProcessedError,
    MissingReferenceError,
    NotFoundError,
    OperationResult,
    ValidationError,
)
from esusu.services.transactions import run_ledger_operation
from esusu.utils.dates import add_months, months_spanned, utcnow

logger = logging.getLogger(__name__)


def compute_payout_date(cycle: Cycle, picked_number: int) -> date:
    """Scheduled payout date for a slot number.

    start_date shifted by (picked_number - 1) months with the day forced to the
    cycle's payment deadline day (clamped to the month's last day).
    """
    return add_months(cycle.start_date, picked_number - 1, day=cycle.payment_deadline_day)


def upsert_payout(db: Session, participation: Participation, cycle: Cycle) -> Payout:
    """Create or refresh the payout row for a participation's picked number.

    Must be called inside the transaction that set picked_number so both
    writes commit together.
    """
    number = participation.picked_number
    scheduled_date = compute_payout_date(cycle, number)
    payout = db.execute(
        select(Payout).where(Payout.participation_id == participation.id)
    ).scalar_one_or_none()

    if payout is None:
        payout = Payout(
            participation_id=participation.id,
            user_id=participation.user_id,
            cycle_id=cycle.id,
            amount=participation.total_payout,
            scheduled_month=number,
            scheduled_date=scheduled_date,
            status=PayoutStatus.PENDING,
        )
        db.add(payout)
    else:
        payout.scheduled_month = number
        payout.scheduled_date = scheduled_date
        payout.amount = participation.total_payout
    db.flush()
    return payout


@dataclass
class PayoutView:
    """Payout with member, cycle and bank context."""

    id: int
    user_id: int
    user_name: str
    user_phone: str | None
    user_email: str | None
    cycle_id: int
    cycle_name: str
    contribution_mode: str
    amount: Decimal
    scheduled_month: int | None
    scheduled_date: date | None
    status: PayoutStatus
    paid_at: datetime | None
    transfer_reference: str | None
    processed_by: int | None
    notes: str | None
    bank_details: dict | None = None


@dataclass
class PayoutStats:
    total: int
    pending: int
    completed: int
    overdue: int
    pending_amount: Decimal
    completed_amount: Decimal


@dataclass
class BatchResult:
    """Outcome of a best-effort batch: one result per payout id, in order."""

    successful: int
    failed: int
    results: list[OperationResult] = field(default_factory=list)


def _bank_dict(participation: Participation) -> dict | None:
    bank = participation.bank_details
    if bank is None:
        return None
    return {
        "bank_name": bank.bank_name,
        "account_number": bank.account_number,
        "account_name": bank.account_name,
    }


def _to_view(payout: Payout) -> PayoutView:
    participation = payout.participation
    return PayoutView(
        id=payout.id,
        user_id=payout.user_id,
        user_name=payout.user.full_name,
        user_phone=payout.user.phone,
        user_email=payout.user.email,
        cycle_id=payout.cycle_id,
        cycle_name=payout.cycle.name,
        contribution_mode=participation.contribution_mode.value,
        amount=payout.amount,
        scheduled_month=payout.scheduled_month,
        scheduled_date=payout.scheduled_date,
        status=payout.status,
        paid_at=payout.paid_at,
        transfer_reference=payout.transfer_reference,
        processed_by=payout.processed_by,
        notes=payout.notes,
        bank_details=_bank_dict(participation),
    )


def _with_context(stmt):
    return stmt.options(
        selectinload(Payout.user),
        selectinload(Payout.cycle),
        selectinload(Payout.participation).selectinload(Participation.bank_details),
    )


class PayoutService:
    """Service for payout processing and payout views."""

    def __init__(self, db: Session):
        self.db = db

    def process_payout(
        self,
        payout_id: int,
        admin_id: int,
        transfer_reference: str,
        notes: str | None = None,
    ) -> OperationResult:
        """Mark a PENDING payout as PAID.

        The status precondition is re-checked by a conditional UPDATE, so of
        two concurrent attempts exactly one succeeds.

        Args:
            payout_id: Payout to settle
            admin_id: Administrator processing the transfer
            transfer_reference: Bank transfer reference (required)
            notes: Optional notes

        Returns:
            OperationResult with the payout id
        """

        def operation(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            payout = db.get(Payout, payout_id)
            if payout is None:
                raise NotFoundError("Payout not found", {"payout_id": payout_id})
            if payout.status != PayoutStatus.PENDING:
                raise AlreadyProcessedError()
            reference = (transfer_reference or "").strip()
            if not reference:
                raise MissingReferenceError()

            paid_at = utcnow()
            result = db.execute(
                update(Payout)
                .where(Payout.id == payout_id, Payout.status == PayoutStatus.PENDING)
                .values(
                    status=PayoutStatus.PAID,
                    paid_at=paid_at,
                    transfer_reference=reference,
                    processed_by=admin_id,
                    notes=notes or None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AlreadyProcessedError()
            db.expire(payout)

            AuditService.log(db, "payout", payout_id, "process", admin_id, {"reference": reference})
            logger.info("Payout %d processed by admin %d (ref=%s)", payout_id, admin_id, reference)
            return OperationResult.ok(payout_id, "Payout processed successfully")

        return run_ledger_operation(self.db, "process_payout", operation)

    def batch_process_payouts(
        self, payout_ids: list[int], admin_id: int, base_reference: str
    ) -> OperationResult:
        """Process several payouts, each independently.

        Payout i (1-based) gets reference "{base_reference}-{i}". Failures do
        not undo the others; they are counted and reported per id.

        Returns:
            OperationResult whose value is a BatchResult
        """

        def check(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            if not payout_ids:
                raise ValidationError("No payouts selected")
            if not (base_reference or "").strip():
                raise MissingReferenceError()
            return OperationResult.ok()

        precheck = run_ledger_operation(self.db, "batch_process_payouts", check)
        if not precheck.success:
            return precheck

        base = base_reference.strip()
        results = [
            self.process_payout(payout_id, admin_id, f"{base}-{index}")
            for index, payout_id in enumerate(payout_ids, start=1)
        ]
        successful = sum(1 for r in results if r.success)
        failed = len(results) - successful
        logger.info("Batch payout processing: %d succeeded, %d failed", successful, failed)

        message = f"Processed {successful} payout(s)"
        if failed:
            message += f", {failed} failed"
        return OperationResult.ok(BatchResult(successful, failed, results), message)

    def list_payouts(self, status_filter: str = "all") -> list[PayoutView]:
        """All payouts ordered by scheduled date.

        Args:
            status_filter: "all", "pending" or "completed"
        """
        stmt = select(Payout).order_by(Payout.scheduled_date.asc(), Payout.id.asc())
        if status_filter == "pending":
            stmt = stmt.where(Payout.status == PayoutStatus.PENDING)
        elif status_filter == "completed":
            stmt = stmt.where(Payout.status == PayoutStatus.PAID)
        return [_to_view(p) for p in self.db.execute(_with_context(stmt)).scalars().all()]

    def get_payout_stats(self) -> PayoutStats:
        """Payout counts and amounts by status."""
        today = utcnow().date()

        def count(*conditions) -> int:
            return self.db.execute(select(func.count(Payout.id)).where(*conditions)).scalar_one()

        def total(status: PayoutStatus) -> Decimal:
            value = self.db.execute(
                select(func.sum(Payout.amount)).where(Payout.status == status)
            ).scalar_one()
            return Decimal(value or 0)

        return PayoutStats(
            total=count(),
            pending=count(Payout.status == PayoutStatus.PENDING),
            completed=count(Payout.status == PayoutStatus.PAID),
            overdue=count(Payout.status == PayoutStatus.PENDING, Payout.scheduled_date < today),
            pending_amount=total(PayoutStatus.PENDING),
            completed_amount=total(PayoutStatus.PAID),
        )

    def get_upcoming_payouts(self, days: int = 30, limit: int = 10) -> list[PayoutView]:
        """PENDING payouts scheduled within the next ``days`` days."""
        today = utcnow().date()
        stmt = (
            select(Payout)
            .where(
                Payout.status == PayoutStatus.PENDING,
                Payout.scheduled_date >= today,
                Payout.scheduled_date <= today + timedelta(days=days),
            )
            .order_by(Payout.scheduled_date.asc())
            .limit(limit)
        )
        return [_to_view(p) for p in self.db.execute(_with_context(stmt)).scalars().all()]

    def get_user_payouts(self, user_id: int) -> list[PayoutView]:
        """A member's payouts, latest scheduled first."""
        stmt = (
            select(Payout)
            .where(Payout.user_id == user_id)
            .order_by(Payout.scheduled_date.desc(), Payout.id.desc())
        )
        return [_to_view(p) for p in self.db.execute(_with_context(stmt)).scalars().all()]

    def get_user_payout_info(self, user_id: int) -> dict:
        """A member's payouts with the next pending one and totals."""
        payouts = sorted(
            self.get_user_payouts(user_id),
            key=lambda p: (p.scheduled_date or date.max, p.id),
        )
        pending = [p for p in payouts if p.status == PayoutStatus.PENDING]
        completed = [p for p in payouts if p.status == PayoutStatus.PAID]
        return {
            "payouts": payouts,
            "active_payout": pending[0] if pending else None,
            "statistics": {
                "total_expected": sum((p.amount for p in payouts), Decimal("0")),
                "total_received": sum((p.amount for p in completed), Decimal("0")),
                "total_pending": sum((p.amount for p in pending), Decimal("0")),
                "completed_count": len(completed),
                "pending_count": len(pending),
            },
        }

    def get_payout_timeline(self, user_id: int) -> dict:
        """Payout order of the current ACTIVE cycle with the member's position."""
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
            return {"timeline": [], "current_month": 0, "user_position": None, "cycle_name": "", "total_slots": 0}

        payouts = (
            self.db.execute(
                select(Payout)
                .where(Payout.cycle_id == cycle.id)
                .order_by(Payout.scheduled_month.asc())
                .options(selectinload(Payout.user))
            )
            .scalars()
            .all()
        )
        elapsed = months_spanned(cycle.start_date, utcnow().date())
        user_payout = next((p for p in payouts if p.user_id == user_id), None)
        return {
            "timeline": [
                {
                    "month": p.scheduled_month,
                    "user_id": p.user_id,
                    "user_name": p.user.full_name,
                    "status": p.status,
                    "amount": p.amount,
                    "scheduled_date": p.scheduled_date,
                    "is_current_user": p.user_id == user_id,
                }
                for p in payouts
            ],
            "current_month": max(1, min(elapsed, cycle.total_slots)),
            "user_position": user_payout.scheduled_month if user_payout else None,
            "cycle_name": cycle.name,
            "total_slots": cycle.total_slots,
        }

    def get_payout_details(self, payout_id: int, user_id: int) -> dict | None:
        """One of the member's payouts with contribution progress.

        Returns:
            Details dict, or None if the payout does not exist or belongs to someone else
        """
        payout = self.db.execute(
            _with_context(select(Payout).where(Payout.id == payout_id))
        ).scalar_one_or_none()
        if payout is None or payout.user_id != user_id:
            return None

        paid = (
            self.db.execute(
                select(Payment).where(
                    Payment.participation_id == payout.participation_id,
                    Payment.status == PaymentStatus.PAID,
                )
            )
            .scalars()
            .all()
        )
        total_months = payout.cycle.total_slots
        return {
            "payout": _to_view(payout),
            "monthly_amount": payout.participation.monthly_amount,
            "contribution_progress": {
                "paid": len(paid),
                "total": total_months,
                "percentage": round(len(paid) / total_months * 100) if total_months else 0,
                "total_contributed": sum((p.paid_amount or Decimal("0") for p in paid), Decimal("0")),
            },
        }


__all__ = [
    "BatchResult",
    "PayoutService",
    "PayoutStats",
    "PayoutView",
    "compute_payout_date",
    "upsert_payout",
]
