"""Monthly payment schedule, fines and settlement.

Settlement is a one-way PENDING -> PAID transition applied by a conditional
UPDATE, so a payment can be settled at most once no matter how many sessions
try. The member's tendered amount and the late fine are stored separately;
``Payment.total_charged`` derives the sum on read.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from esusu.config import settings
from esusu.models.cycle import Cycle, CycleStatus
from esusu.models.participation import Participation
from esusu.models.payment import Payment, PaymentStatus
from esusu.services.audit_service import AuditService
from esusu.services.auth_service import require_admin
from esusu.services.cycle_service import lock_cycle
from esusu.services.errors import (
    AlreadyPaidError,
    InvalidAmountError,
    InvalidProofError,
    NotFoundError,
    OperationResult,
    PaymentsExistError,
    UnauthorizedError,
)
from esusu.services.transactions import run_ledger_operation
from esusu.utils.dates import add_months, months_spanned, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FineAssessment:
    """Fine decision for settling a payment on a given day."""

    has_fine: bool
    fine_amount: Decimal


@dataclass
class SettlementResult:
    """What a successful settlement applied."""

    payment_id: int
    paid_amount: Decimal
    has_fine: bool
    fine_amount: Decimal

    @property
    def total_charged(self) -> Decimal:
        return self.paid_amount + self.fine_amount


def assess_fine(due_date: date, fine_amount: Decimal, settled_on: date) -> FineAssessment:
    """Flat fine when settled after the due date, nothing on or before it."""
    if settled_on > due_date:
        return FineAssessment(True, Decimal(fine_amount))
    return FineAssessment(False, Decimal("0"))


def payment_months(cycle: Cycle) -> int:
    """Number of monthly payments in a cycle, capped by its slot count."""
    return min(months_spanned(cycle.start_date, cycle.end_date), cycle.total_slots)


def due_date_for_month(cycle: Cycle, month_number: int) -> date:
    """Due date of the n-th monthly payment (1-based)."""
    return add_months(cycle.start_date, month_number - 1, day=cycle.payment_deadline_day)


def build_payment_schedule(cycle: Cycle, participation: Participation) -> list[Payment]:
    """Unsaved Payment rows for months 1..N of a participation."""
    return [
        Payment(
            participation_id=participation.id,
            user_id=participation.user_id,
            cycle_id=cycle.id,
            month_number=month,
            amount=participation.monthly_amount,
            due_date=due_date_for_month(cycle, month),
            status=PaymentStatus.PENDING,
            has_fine=False,
            fine_amount=Decimal("0"),
        )
        for month in range(1, payment_months(cycle) + 1)
    ]


def _settle(
    db: Session,
    payment: Payment,
    tendered: Decimal,
    proof_reference: str | None = None,
    verified_by: int | None = None,
    notes: str | None = None,
) -> SettlementResult:
    if payment.status == PaymentStatus.PAID:
        raise AlreadyPaidError()

    now = utcnow()
    fine = assess_fine(payment.due_date, payment.participation.fine_amount, now.date())
    values = {
        "status": PaymentStatus.PAID,
        "paid_at": now,
        "paid_amount": tendered,
        "has_fine": fine.has_fine,
        "fine_amount": fine.fine_amount,
        # The fine is collected together with the late payment
        "fine_paid": fine.has_fine,
    }
    if proof_reference is not None:
        values["proof_of_payment"] = proof_reference
    if verified_by is not None:
        values.update(verified_by=verified_by, verified_at=now)
    if notes is not None:
        values["notes"] = notes

    result = db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AlreadyPaidError()
    db.expire(payment)

    logger.info(
        "Payment %d settled: paid=%s fine=%s",
        payment.id,
        tendered,
        fine.fine_amount,
    )
    return SettlementResult(payment.id, tendered, fine.has_fine, fine.fine_amount)


def _settled_message(settlement: SettlementResult, base: str) -> str:
    if settlement.has_fine:
        return f"{base} with {settlement.fine_amount:,.2f} late fine"
    return base


def validate_proof(
    proof_reference: str | None,
    content_type: str | None = None,
    size_bytes: int | None = None,
) -> str:
    """Check an uploaded proof's reference and, when known, its file metadata.

    Raises:
        InvalidProofError: Empty reference, oversized file or unsupported type
    """
    reference = (proof_reference or "").strip()
    if not reference:
        raise InvalidProofError("Proof of payment reference is required")
    if size_bytes is not None and (size_bytes <= 0 or size_bytes > settings.proof_max_bytes):
        raise InvalidProofError(
            f"File size must be less than {settings.proof_max_bytes // (1024 * 1024)}MB"
        )
    if content_type is not None and content_type not in settings.proof_allowed_content_types:
        raise InvalidProofError("Only JPG, PNG, and PDF files are allowed")
    return reference


def _load_payment(db: Session, payment_id: int) -> Payment:
    payment = db.execute(
        select(Payment)
        .where(Payment.id == payment_id)
        .options(selectinload(Payment.participation))
    ).scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Payment not found", {"payment_id": payment_id})
    return payment


class PaymentService:
    """Service for monthly payment obligations."""

    def __init__(self, db: Session):
        self.db = db

    def generate_cycle_payments(self, cycle_id: int, admin_id: int) -> OperationResult:
        """Create the monthly payment rows of every active participant.

        Month n is due on start_date + (n - 1) months at the payment deadline
        day. Runs once per cycle.

        Returns:
            OperationResult with the number of rows created
        """

        def operation(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            cycle = lock_cycle(db, cycle_id)
            existing = db.execute(
                select(func.count(Payment.id)).where(Payment.cycle_id == cycle_id)
            ).scalar_one()
            if existing:
                raise PaymentsExistError()

            participations = (
                db.execute(
                    select(Participation).where(
                        Participation.cycle_id == cycle_id,
                        Participation.has_opted_out.is_(False),
                    )
                )
                .scalars()
                .all()
            )
            created = 0
            for participation in participations:
                rows = build_payment_schedule(cycle, participation)
                db.add_all(rows)
                created += len(rows)
            db.flush()

            months = payment_months(cycle)
            AuditService.log(
                db, "cycle", cycle_id, "generate_payments", admin_id, {"payments": created}
            )
            logger.info(
                "Generated %d payments (%d months x %d participants) for cycle %d",
                created,
                months,
                len(participations),
                cycle_id,
            )
            return OperationResult.ok(
                created,
                f"Generated {months} months of payments for {len(participations)} participants",
            )

        return run_ledger_operation(self.db, "generate_cycle_payments", operation)

    def record_payment(
        self,
        payment_id: int,
        amount: Decimal,
        proof_reference: str | None = None,
    ) -> OperationResult:
        """Settle a payment with the amount the member tendered.

        A fine equal to the participation's stamped fine is applied when the
        payment is settled after its due date.

        Returns:
            OperationResult with a SettlementResult
        """

        def operation(db: Session) -> OperationResult:
            if amount is None or Decimal(amount) <= 0:
                raise InvalidAmountError("Payment amount must be positive")
            payment = _load_payment(db, payment_id)
            reference = (proof_reference or "").strip() or None
            settlement = _settle(db, payment, Decimal(amount), reference)
            return OperationResult.ok(settlement, _settled_message(settlement, "Payment recorded"))

        return run_ledger_operation(self.db, "record_payment", operation)

    def upload_payment_proof(
        self,
        payment_id: int,
        user_id: int,
        proof_reference: str,
        content_type: str | None = None,
        size_bytes: int | None = None,
    ) -> OperationResult:
        """Settle the member's own payment against an uploaded proof.

        The proof file itself is stored elsewhere; only its reference is kept.
        The tendered amount is the payment's base amount.

        Returns:
            OperationResult with a SettlementResult
        """

        def operation(db: Session) -> OperationResult:
            reference = validate_proof(proof_reference, content_type, size_bytes)
            payment = _load_payment(db, payment_id)
            if payment.user_id != user_id:
                raise UnauthorizedError("Unauthorized")
            settlement = _settle(db, payment, Decimal(payment.amount), reference)
            return OperationResult.ok(
                settlement, _settled_message(settlement, "Payment proof uploaded")
            )

        return run_ledger_operation(self.db, "upload_payment_proof", operation)

    def mark_payment_as_paid(self, payment_id: int, user_id: int) -> OperationResult:
        """Member marks their own payment paid at its base amount."""

        def operation(db: Session) -> OperationResult:
            payment = _load_payment(db, payment_id)
            if payment.user_id != user_id:
                raise UnauthorizedError("Unauthorized")
            settlement = _settle(db, payment, Decimal(payment.amount))
            return OperationResult.ok(
                settlement, _settled_message(settlement, "Payment marked as paid")
            )

        return run_ledger_operation(self.db, "mark_payment_as_paid", operation)

    def verify_payment(
        self,
        admin_id: int,
        payment_id: int,
        approved: bool,
        notes: str | None = None,
    ) -> OperationResult:
        """Approve or reject a payment's proof.

        Approving a PENDING payment settles it at its base amount. Approving a
        PAID one only stamps the verifier. Rejecting clears the proof reference
        and records the verifier and notes; settlement is never reverted.

        Returns:
            OperationResult with the payment id
        """

        def operation(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            payment = _load_payment(db, payment_id)
            now = utcnow()

            if approved and payment.status == PaymentStatus.PENDING:
                _settle(
                    db,
                    payment,
                    Decimal(payment.amount),
                    verified_by=admin_id,
                    notes=notes or None,
                )
            elif approved:
                payment.verified_by = admin_id
                payment.verified_at = now
                if notes:
                    payment.notes = notes
            else:
                payment.proof_of_payment = None
                payment.verified_by = admin_id
                payment.verified_at = now
                payment.notes = notes or "Payment proof rejected by admin"

            AuditService.log(
                db,
                "payment",
                payment_id,
                "verify" if approved else "reject_proof",
                admin_id,
                {"approved": approved},
            )
            logger.info(
                "Payment %d %s by admin %d",
                payment_id,
                "verified" if approved else "proof rejected",
                admin_id,
            )
            message = "Payment verified successfully" if approved else "Payment proof rejected"
            return OperationResult.ok(payment_id, message)

        return run_ledger_operation(self.db, "verify_payment", operation)

    def get_payments_needing_verification(self) -> list[Payment]:
        """Payments with a proof reference that no admin has looked at yet."""
        return (
            self.db.execute(
                select(Payment)
                .where(Payment.proof_of_payment.is_not(None), Payment.verified_by.is_(None))
                .order_by(Payment.updated_at.desc(), Payment.id.desc())
                .options(
                    selectinload(Payment.user),
                    selectinload(Payment.cycle),
                    selectinload(Payment.participation),
                )
            )
            .scalars()
            .all()
        )

    def get_overdue_count(self, participation_id: int) -> int:
        """PENDING payments whose due date has passed, recomputed on every call."""
        today = utcnow().date()
        return self.db.execute(
            select(func.count(Payment.id)).where(
                Payment.participation_id == participation_id,
                Payment.status == PaymentStatus.PENDING,
                Payment.due_date < today,
            )
        ).scalar_one()

    def get_user_payments(self, user_id: int) -> dict:
        """The member's payments in their ACTIVE cycle with totals.

        Returns:
            Dict with "participation" (or None), "payments" and "stats"
        """
        participation = (
            self.db.execute(
                select(Participation)
                .join(Cycle, Participation.cycle_id == Cycle.id)
                .where(Participation.user_id == user_id, Cycle.status == CycleStatus.ACTIVE)
                .order_by(Participation.registered_at.desc(), Participation.id.desc())
                .options(selectinload(Participation.payments), selectinload(Participation.cycle))
            )
            .scalars()
            .first()
        )
        empty_stats = {
            "total_paid": Decimal("0"),
            "total_fines": Decimal("0"),
            "pending_count": 0,
            "overdue_count": 0,
        }
        if participation is None:
            return {"participation": None, "payments": [], "stats": empty_stats}

        today = utcnow().date()
        payments = sorted(participation.payments, key=lambda p: p.month_number)
        pending = [p for p in payments if p.status == PaymentStatus.PENDING]
        return {
            "participation": {
                "id": participation.id,
                "cycle_name": participation.cycle.name,
                "contribution_mode": participation.contribution_mode.value,
                "monthly_amount": participation.monthly_amount,
                "fine_amount": participation.fine_amount,
            },
            "payments": payments,
            "stats": {
                "total_paid": sum(
                    (p.paid_amount or Decimal("0") for p in payments if p.status == PaymentStatus.PAID),
                    Decimal("0"),
                ),
                "total_fines": sum(
                    (p.fine_amount for p in payments if p.has_fine), Decimal("0")
                ),
                "pending_count": len(pending),
                "overdue_count": sum(1 for p in pending if p.due_date < today),
            },
        }


__all__ = [
    "FineAssessment",
    "PaymentService",
    "SettlementResult",
    "assess_fine",
    "build_payment_schedule",
    "due_date_for_month",
    "payment_months",
    "validate_proof",
]
