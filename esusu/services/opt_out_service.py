"""Early exit from a cycle: eligibility, refund calculation and admin review."""

import logging
from decimal import ROUND_FLOOR, Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from esusu.models.cycle import Cycle, CycleStatus
from esusu.models.opt_out_request import OptOutRequest, OptOutStatus
from esusu.models.participation import Participation
from esusu.models.payment import PaymentStatus
from esusu.models.payout import Payout, PayoutStatus
from esusu.services.audit_service import AuditService
from esusu.services.auth_service import require_admin
from esusu.services.errors import (
    AlreadyReviewedError,
    NotEligibleError,
    NotFoundError,
    OperationResult,
    UnauthorizedError,
    ValidationError,
)
from esusu.services.settings_service import SettingsService
from esusu.services.transactions import run_ledger_operation
from esusu.utils.dates import utcnow

logger = logging.getLogger(__name__)

MIN_REASON_LENGTH = 10


def compute_refund(total_paid: Decimal, penalty_percent: int) -> tuple[Decimal, Decimal]:
    """Penalty (floored to whole units) and refund for an opt-out.

    Returns:
        (penalty_amount, refund_amount)
    """
    penalty = (Decimal(total_paid) * penalty_percent / 100).to_integral_value(rounding=ROUND_FLOOR)
    return penalty, Decimal(total_paid) - penalty


class OptOutService:
    """Service for opt-out requests."""

    def __init__(self, db: Session):
        self.db = db

    def _active_participation(self, db: Session, user_id: int) -> Participation | None:
        return (
            db.execute(
                select(Participation)
                .join(Cycle, Participation.cycle_id == Cycle.id)
                .where(Participation.user_id == user_id, Cycle.status == CycleStatus.ACTIVE)
                .order_by(Cycle.created_at.desc(), Cycle.id.desc())
                .options(
                    selectinload(Participation.payments),
                    selectinload(Participation.cycle),
                    selectinload(Participation.bank_details),
                )
            )
            .scalars()
            .first()
        )

    def _assess(self, db: Session, user_id: int) -> dict:
        participation = self._active_participation(db, user_id)
        if participation is None:
            return {"eligible": False, "reason": "You are not participating in any active cycle"}
        if participation.has_opted_out:
            return {"eligible": False, "reason": "You have already opted out of this cycle"}
        if participation.payout is not None and participation.payout.status == PayoutStatus.PAID:
            return {
                "eligible": False,
                "reason": "You have already received your payout and cannot opt out",
            }

        existing = db.execute(
            select(OptOutRequest).where(
                OptOutRequest.user_id == user_id,
                OptOutRequest.cycle_id == participation.cycle_id,
                OptOutRequest.status == OptOutStatus.PENDING_APPROVAL,
            )
        ).scalar_one_or_none()
        if existing is not None:
            return {
                "eligible": False,
                "reason": "You already have a pending opt-out request",
                "existing_request": {
                    "id": existing.id,
                    "requested_at": existing.requested_at,
                    "status": existing.status,
                },
            }

        paid = [p for p in participation.payments if p.status == PaymentStatus.PAID]
        total_paid = sum((p.paid_amount or Decimal("0") for p in paid), Decimal("0"))
        percent = SettingsService(db).get_tier_snapshot().opt_out_penalty_percent
        penalty, refund = compute_refund(total_paid, percent)
        bank = participation.bank_details
        return {
            "eligible": True,
            "participation": {
                "id": participation.id,
                "cycle_id": participation.cycle_id,
                "cycle_name": participation.cycle.name,
                "contribution_mode": participation.contribution_mode.value,
                "monthly_amount": participation.monthly_amount,
                "total_payout": participation.total_payout,
                "picked_number": participation.picked_number,
                "registered_at": participation.registered_at,
            },
            "calculations": {
                "total_paid": total_paid,
                "penalty_percent": percent,
                "penalty_amount": penalty,
                "refund_amount": refund,
                "payments_made": len(paid),
            },
            "bank_details": (
                {
                    "bank_name": bank.bank_name,
                    "account_number": bank.account_number,
                    "account_name": bank.account_name,
                }
                if bank
                else None
            ),
        }

    def get_opt_out_info(self, user_id: int) -> dict:
        """Whether the member may opt out of their active cycle, and the refund they would get."""
        return self._assess(self.db, user_id)

    def submit_opt_out_request(self, user_id: int, cycle_id: int, reason: str) -> OperationResult:
        """File an opt-out request with the refund figures frozen at submission.

        Returns:
            OperationResult with the request id
        """

        def operation(db: Session) -> OperationResult:
            text = (reason or "").strip()
            if len(text) < MIN_REASON_LENGTH:
                raise ValidationError(
                    f"Please provide a detailed reason (at least {MIN_REASON_LENGTH} characters)"
                )
            info = self._assess(db, user_id)
            if not info["eligible"]:
                raise NotEligibleError(info["reason"])
            if info["participation"]["cycle_id"] != cycle_id:
                raise NotEligibleError("You are not participating in this cycle")

            calculations = info["calculations"]
            request = OptOutRequest(
                user_id=user_id,
                cycle_id=cycle_id,
                reason=text,
                status=OptOutStatus.PENDING_APPROVAL,
                total_paid=calculations["total_paid"],
                penalty_amount=calculations["penalty_amount"],
                refund_amount=calculations["refund_amount"],
            )
            db.add(request)
            db.flush()

            logger.info("User %d requested opt-out from cycle %d (request %d)", user_id, cycle_id, request.id)
            return OperationResult.ok(
                request.id,
                "Opt-out request submitted successfully. Please wait for admin approval.",
            )

        return run_ledger_operation(self.db, "submit_opt_out_request", operation)

    def cancel_opt_out_request(self, request_id: int, user_id: int) -> OperationResult:
        """Withdraw the member's own request while it is still pending."""

        def operation(db: Session) -> OperationResult:
            request = db.get(OptOutRequest, request_id)
            if request is None:
                raise NotFoundError("Request not found", {"request_id": request_id})
            if request.user_id != user_id:
                raise UnauthorizedError("Unauthorized")
            if request.status != OptOutStatus.PENDING_APPROVAL:
                raise AlreadyReviewedError("Only pending requests can be cancelled")
            db.delete(request)
            logger.info("User %d cancelled opt-out request %d", user_id, request_id)
            return OperationResult.ok(request_id, "Opt-out request cancelled successfully")

        return run_ledger_operation(self.db, "cancel_opt_out_request", operation)

    def review_opt_out_request(
        self,
        request_id: int,
        admin_id: int,
        approved: bool,
        notes: str | None = None,
    ) -> OperationResult:
        """Approve or reject a pending request.

        Approval marks the participation opted out and waives its pending
        payout in the same transaction.
        """

        def operation(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            request = db.get(OptOutRequest, request_id)
            if request is None:
                raise NotFoundError("Request not found", {"request_id": request_id})
            if request.status != OptOutStatus.PENDING_APPROVAL:
                raise AlreadyReviewedError()

            request.status = OptOutStatus.APPROVED if approved else OptOutStatus.REJECTED
            request.reviewed_at = utcnow()
            request.reviewed_by = admin_id
            request.review_notes = notes or None

            waived = 0
            if approved:
                db.execute(
                    update(Participation)
                    .where(
                        Participation.user_id == request.user_id,
                        Participation.cycle_id == request.cycle_id,
                    )
                    .values(has_opted_out=True)
                    .execution_options(synchronize_session=False)
                )
                waived = db.execute(
                    update(Payout)
                    .where(
                        Payout.user_id == request.user_id,
                        Payout.cycle_id == request.cycle_id,
                        Payout.status == PayoutStatus.PENDING,
                    )
                    .values(status=PayoutStatus.WAIVED, notes="Cancelled due to opt-out")
                    .execution_options(synchronize_session=False)
                ).rowcount

            AuditService.log(
                db,
                "opt_out_request",
                request_id,
                "approve" if approved else "reject",
                admin_id,
                {"waived_payouts": waived},
            )
            logger.info(
                "Opt-out request %d %s by admin %d",
                request_id,
                "approved" if approved else "rejected",
                admin_id,
            )
            message = (
                "Opt-out request approved. User has been removed from the cycle."
                if approved
                else "Opt-out request rejected."
            )
            return OperationResult.ok(request_id, message)

        return run_ledger_operation(self.db, "review_opt_out_request", operation)

    def get_user_opt_out_requests(self, user_id: int) -> list[OptOutRequest]:
        """The member's requests, newest first."""
        return (
            self.db.execute(
                select(OptOutRequest)
                .where(OptOutRequest.user_id == user_id)
                .order_by(OptOutRequest.requested_at.desc(), OptOutRequest.id.desc())
                .options(selectinload(OptOutRequest.cycle))
            )
            .scalars()
            .all()
        )

    def get_pending_opt_out_requests(self) -> list[OptOutRequest]:
        """Requests awaiting review, oldest first."""
        return (
            self.db.execute(
                select(OptOutRequest)
                .where(OptOutRequest.status == OptOutStatus.PENDING_APPROVAL)
                .order_by(OptOutRequest.requested_at.asc(), OptOutRequest.id.asc())
                .options(selectinload(OptOutRequest.user), selectinload(OptOutRequest.cycle))
            )
            .scalars()
            .all()
        )

    def get_opt_out_stats(self) -> dict:
        """Request counts by status and approved refund/penalty totals."""

        def count(status: OptOutStatus) -> int:
            return self.db.execute(
                select(func.count(OptOutRequest.id)).where(OptOutRequest.status == status)
            ).scalar_one()

        refunded, penalties = self.db.execute(
            select(func.sum(OptOutRequest.refund_amount), func.sum(OptOutRequest.penalty_amount)).where(
                OptOutRequest.status == OptOutStatus.APPROVED
            )
        ).one()
        return {
            "pending": count(OptOutStatus.PENDING_APPROVAL),
            "approved": count(OptOutStatus.APPROVED),
            "rejected": count(OptOutStatus.REJECTED),
            "total_refunded": Decimal(refunded or 0),
            "total_penalties": Decimal(penalties or 0),
        }


__all__ = ["OptOutService", "compute_refund"]
