"""Read-only reconciliation reports over payments, payouts and participations.

Every figure is recomputed from current ledger state on each call. Collected
money is always the sum of ``paid_amount`` over PAID payments, so
``profit == total_collected - paid_out`` holds for every window.
"""

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from esusu.models.cycle import Cycle, CycleStatus
from esusu.models.participation import Participation
from esusu.models.payment import Payment, PaymentStatus
from esusu.models.payout import Payout, PayoutStatus
from esusu.models.user import User
from esusu.services.payment_service import payment_months
from esusu.utils.dates import days_between, ensure_utc, month_bounds, trailing_month_starts, utcnow

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _sum(values) -> Decimal:
    return sum((Decimal(v) for v in values if v is not None), ZERO)


def _rate(part, whole) -> int:
    """Whole-number percentage, 0 when there is nothing to measure against."""
    if not whole:
        return 0
    return round(Decimal(part) / Decimal(whole) * 100)


class ReportService:
    """Service for administrative financial reports."""

    def __init__(self, db: Session):
        self.db = db

    def _payments(self, *conditions) -> list[Payment]:
        return list(
            self.db.execute(
                select(Payment)
                .where(*conditions)
                .options(
                    selectinload(Payment.user),
                    selectinload(Payment.cycle),
                    selectinload(Payment.participation),
                )
            )
            .scalars()
            .all()
        )

    def _payouts(self, *conditions) -> list[Payout]:
        return list(
            self.db.execute(
                select(Payout)
                .where(*conditions)
                .options(selectinload(Payout.user), selectinload(Payout.cycle))
            )
            .scalars()
            .all()
        )

    def get_financial_summary(self, cycle_id: int | None = None) -> dict:
        """Collections, payouts and profit, optionally for one cycle.

        Overdue collections include the participation's stamped fine, which
        will be charged when the payment is eventually settled.
        """
        payment_filter = [Payment.cycle_id == cycle_id] if cycle_id is not None else []
        payout_filter = [Payout.cycle_id == cycle_id] if cycle_id is not None else []
        today = utcnow().date()

        paid = self._payments(Payment.status == PaymentStatus.PAID, *payment_filter)
        pending = self._payments(Payment.status == PaymentStatus.PENDING, *payment_filter)
        paid_out = self._payouts(Payout.status == PayoutStatus.PAID, *payout_filter)
        pending_payouts = self._payouts(Payout.status == PayoutStatus.PENDING, *payout_filter)

        total_collected = _sum(p.paid_amount for p in paid)
        total_paid_out = _sum(p.amount for p in paid_out)
        overdue = [p for p in pending if p.due_date < today]
        return {
            "collections": {
                "total": total_collected,
                "fines": _sum(p.fine_amount for p in paid if p.has_fine),
                "pending": _sum(p.amount for p in pending),
                "overdue": _sum(p.amount + p.participation.fine_amount for p in overdue),
            },
            "payouts": {
                "completed": {"amount": total_paid_out, "count": len(paid_out)},
                "pending": {
                    "amount": _sum(p.amount for p in pending_payouts),
                    "count": len(pending_payouts),
                },
            },
            "profit": total_collected - total_paid_out,
            "net_balance": total_collected - total_paid_out,
        }

    def get_defaulters_report(self, cycle_id: int | None = None) -> list[dict]:
        """Members with overdue PENDING payments, largest total overdue first."""
        today = utcnow().date()
        conditions = [Payment.status == PaymentStatus.PENDING, Payment.due_date < today]
        if cycle_id is not None:
            conditions.append(Payment.cycle_id == cycle_id)
        overdue = sorted(self._payments(*conditions), key=lambda p: (p.due_date, p.id))

        by_user: dict[int, dict] = {}
        for payment in overdue:
            entry = by_user.get(payment.user_id)
            if entry is None:
                entry = by_user[payment.user_id] = {
                    "user_id": payment.user_id,
                    "user_name": payment.user.full_name,
                    "user_phone": payment.user.phone,
                    "user_email": payment.user.email,
                    "overdue_payments": [],
                    "total_overdue": ZERO,
                    "total_fines": ZERO,
                }
            fine = Decimal(payment.participation.fine_amount)
            entry["overdue_payments"].append(
                {
                    "id": payment.id,
                    "cycle_name": payment.cycle.name,
                    "month_number": payment.month_number,
                    "amount": payment.amount,
                    "due_date": payment.due_date,
                    "fine_amount": fine,
                    "days_past_due": days_between(payment.due_date, today),
                }
            )
            entry["total_overdue"] += payment.amount + fine
            entry["total_fines"] += fine

        return sorted(by_user.values(), key=lambda d: d["total_overdue"], reverse=True)

    def get_cycle_performance(self) -> list[dict]:
        """Occupancy and collection rates per cycle, newest start first.

        Expected collection is each participant's stamped monthly amount times
        the cycle's number of payment months.
        """
        cycles = (
            self.db.execute(
                select(Cycle)
                .order_by(Cycle.start_date.desc(), Cycle.id.desc())
                .options(
                    selectinload(Cycle.participations),
                    selectinload(Cycle.payments),
                    selectinload(Cycle.payouts),
                )
            )
            .scalars()
            .all()
        )
        today = utcnow().date()
        report = []
        for cycle in cycles:
            participants = len(cycle.participations)
            pending = [p for p in cycle.payments if p.status == PaymentStatus.PENDING]
            collected = _sum(p.paid_amount for p in cycle.payments if p.status == PaymentStatus.PAID)
            expected = _sum(p.monthly_amount for p in cycle.participations) * payment_months(cycle)
            report.append(
                {
                    "id": cycle.id,
                    "name": cycle.name,
                    "status": cycle.status,
                    "start_date": cycle.start_date,
                    "end_date": cycle.end_date,
                    "participants": {
                        "total": participants,
                        "capacity": cycle.total_slots,
                        "occupancy_rate": _rate(participants, cycle.total_slots),
                    },
                    "payments": {
                        "pending": len(pending),
                        "overdue": sum(1 for p in pending if p.due_date < today),
                    },
                    "collections": {
                        "total": collected,
                        "expected": expected,
                        "collection_rate": _rate(collected, expected),
                    },
                    "payouts": {
                        "completed": sum(1 for p in cycle.payouts if p.status == PayoutStatus.PAID),
                        "pending": sum(1 for p in cycle.payouts if p.status == PayoutStatus.PENDING),
                    },
                }
            )
        return report

    def get_monthly_reconciliation(self, month: int, year: int) -> dict:
        """Money in and out during one calendar month (UTC)."""
        start, end = month_bounds(month, year)
        received = sorted(
            self._payments(
                Payment.status == PaymentStatus.PAID,
                Payment.paid_at >= start,
                Payment.paid_at < end,
            ),
            key=lambda p: (ensure_utc(p.paid_at), p.id),
        )
        paid_out = sorted(
            self._payouts(
                Payout.status == PayoutStatus.PAID,
                Payout.paid_at >= start,
                Payout.paid_at < end,
            ),
            key=lambda p: (ensure_utc(p.paid_at), p.id),
        )

        total_received = _sum(p.paid_amount for p in received)
        fines = _sum(p.fine_amount for p in received if p.has_fine)
        total_paid_out = _sum(p.amount for p in paid_out)
        return {
            "month": month,
            "year": year,
            "period": {"start": start, "end": end},
            "payments": {
                "count": len(received),
                "total": total_received,
                "fines": fines,
                "details": [
                    {
                        "id": p.id,
                        "user_name": p.user.full_name,
                        "cycle_name": p.cycle.name,
                        "amount": p.paid_amount,
                        "paid_at": p.paid_at,
                        "has_fine": p.has_fine,
                        "fine_amount": p.fine_amount,
                    }
                    for p in received
                ],
            },
            "payouts": {
                "count": len(paid_out),
                "total": total_paid_out,
                "details": [
                    {
                        "id": p.id,
                        "user_name": p.user.full_name,
                        "cycle_name": p.cycle.name,
                        "amount": p.amount,
                        "paid_at": p.paid_at,
                        "transfer_reference": p.transfer_reference,
                    }
                    for p in paid_out
                ],
            },
            "summary": {
                "total_received": total_received,
                "total_paid_out": total_paid_out,
                "net_cash_flow": total_received - total_paid_out,
                "fines_collected": fines,
            },
        }

    def get_payment_trends(self, months: int = 12) -> list[dict]:
        """Settled payment volume per month over the trailing window, oldest first."""
        trends = []
        for first in trailing_month_starts(utcnow().date(), months):
            start, end = month_bounds(first.month, first.year)
            total, count = self.db.execute(
                select(func.sum(Payment.paid_amount), func.count(Payment.id)).where(
                    Payment.status == PaymentStatus.PAID,
                    Payment.paid_at >= start,
                    Payment.paid_at < end,
                )
            ).one()
            trends.append(
                {
                    "month": first.strftime("%b %Y"),
                    "amount": Decimal(total or 0),
                    "count": count,
                }
            )
        return trends

    def get_admin_dashboard_stats(self) -> dict:
        """Headline counts and totals for the admin dashboard."""
        today = utcnow().date()

        def count(model, *conditions) -> int:
            return self.db.execute(select(func.count(model.id)).where(*conditions)).scalar_one()

        summary = self.get_financial_summary()
        stats = {
            "users": {
                "total": count(User),
                "active": count(User, User.is_active.is_(True)),
                "administrators": count(User, User.is_administrator.is_(True)),
            },
            "cycles": {
                "total": count(Cycle),
                "active": count(Cycle, Cycle.status == CycleStatus.ACTIVE),
                "upcoming": count(Cycle, Cycle.status == CycleStatus.UPCOMING),
            },
            "participations": {
                "total": count(Participation),
                "opted_out": count(Participation, Participation.has_opted_out.is_(True)),
            },
            "payments": {
                "pending": count(Payment, Payment.status == PaymentStatus.PENDING),
                "overdue": count(
                    Payment, Payment.status == PaymentStatus.PENDING, Payment.due_date < today
                ),
                "unverified": count(
                    Payment, Payment.proof_of_payment.is_not(None), Payment.verified_by.is_(None)
                ),
            },
            "payouts": {
                "pending": count(Payout, Payout.status == PayoutStatus.PENDING),
                "completed": count(Payout, Payout.status == PayoutStatus.PAID),
            },
            "financials": {
                "total_collected": summary["collections"]["total"],
                "total_paid_out": summary["payouts"]["completed"]["amount"],
                "profit": summary["profit"],
            },
        }
        logger.debug("Dashboard stats computed: %s", stats["payments"])
        return stats

    def get_member_dashboard(self, user_id: int) -> dict | None:
        """One member's standing across every cycle they joined, or None.

        The active participation is the newest one in an ACTIVE cycle that the
        member has not opted out of. Pending, overdue, expected payout and
        recent payments describe that participation only. Contributions and
        fines span all of the member's participations.
        """
        user = self.db.get(User, user_id)
        if user is None:
            return None
        participations = (
            self.db.execute(
                select(Participation)
                .where(Participation.user_id == user_id)
                .order_by(Participation.registered_at.desc(), Participation.id.desc())
                .options(
                    selectinload(Participation.cycle),
                    selectinload(Participation.payments),
                    selectinload(Participation.payout),
                )
            )
            .scalars()
            .all()
        )
        active = next(
            (
                p
                for p in participations
                if p.cycle.status == CycleStatus.ACTIVE and not p.has_opted_out
            ),
            None,
        )
        today = utcnow().date()
        all_payments = [payment for p in participations for payment in p.payments]
        active_payments = list(active.payments) if active is not None else []
        pending = [p for p in active_payments if p.status == PaymentStatus.PENDING]
        # Five latest obligations that have fallen due, newest first
        recent = sorted(
            (p for p in active_payments if p.due_date <= today),
            key=lambda p: (p.due_date, p.id),
            reverse=True,
        )[:5]

        active_view = None
        if active is not None:
            payout = active.payout
            active_view = {
                "id": active.id,
                "cycle_id": active.cycle_id,
                "cycle_name": active.cycle.name,
                "contribution_mode": active.contribution_mode,
                "picked_number": active.picked_number,
                "monthly_amount": active.monthly_amount,
                "total_payout": active.total_payout,
                "registered_at": active.registered_at,
                "payout_scheduled": payout.scheduled_date if payout is not None else None,
                "payout_status": payout.status if payout is not None else None,
            }

        return {
            "user": {
                "id": user.id,
                "full_name": user.full_name,
                "phone": user.phone,
                "email": user.email,
                "is_active": user.is_active,
            },
            "active_participation": active_view,
            "stats": {
                "total_contributed": _sum(
                    p.paid_amount for p in all_payments if p.status == PaymentStatus.PAID
                ),
                "pending_payments": len(pending),
                "overdue_payments": sum(1 for p in pending if p.due_date < today),
                "total_fines": _sum(p.fine_amount for p in all_payments if p.has_fine),
                "expected_payout": active.total_payout if active is not None else ZERO,
            },
            "recent_payments": [
                {
                    "id": p.id,
                    "month_number": p.month_number,
                    "amount": p.amount,
                    "due_date": p.due_date,
                    "paid_at": p.paid_at,
                    "status": p.status,
                    "has_fine": p.has_fine,
                    "fine_amount": p.fine_amount,
                }
                for p in recent
            ],
            "participations": [
                {
                    "id": p.id,
                    "cycle_id": p.cycle_id,
                    "cycle_name": p.cycle.name,
                    "status": p.cycle.status,
                    "contribution_mode": p.contribution_mode,
                    "has_opted_out": p.has_opted_out,
                }
                for p in participations
            ],
        }

    def get_recent_activities(self, limit: int = 5) -> dict:
        """Latest settled payments, completed payouts and registrations, newest first."""
        payments = (
            self.db.execute(
                select(Payment)
                .where(Payment.status == PaymentStatus.PAID)
                .order_by(Payment.paid_at.desc(), Payment.id.desc())
                .limit(limit)
                .options(selectinload(Payment.user), selectinload(Payment.cycle))
            )
            .scalars()
            .all()
        )
        payouts = (
            self.db.execute(
                select(Payout)
                .where(Payout.status == PayoutStatus.PAID)
                .order_by(Payout.paid_at.desc(), Payout.id.desc())
                .limit(limit)
                .options(selectinload(Payout.user), selectinload(Payout.cycle))
            )
            .scalars()
            .all()
        )
        registrations = (
            self.db.execute(
                select(Participation)
                .order_by(Participation.registered_at.desc(), Participation.id.desc())
                .limit(limit)
                .options(selectinload(Participation.user), selectinload(Participation.cycle))
            )
            .scalars()
            .all()
        )
        return {
            "payments": [
                {
                    "id": p.id,
                    "user_name": p.user.full_name,
                    "cycle_name": p.cycle.name,
                    "month_number": p.month_number,
                    "amount": p.paid_amount,
                    "paid_at": p.paid_at,
                }
                for p in payments
            ],
            "payouts": [
                {
                    "id": p.id,
                    "user_name": p.user.full_name,
                    "cycle_name": p.cycle.name,
                    "amount": p.amount,
                    "paid_at": p.paid_at,
                    "transfer_reference": p.transfer_reference,
                }
                for p in payouts
            ],
            "registrations": [
                {
                    "id": r.id,
                    "user_name": r.user.full_name,
                    "cycle_name": r.cycle.name,
                    "contribution_mode": r.contribution_mode,
                    "registered_at": r.registered_at,
                }
                for r in registrations
            ],
        }


__all__ = ["ReportService"]
