"""Payout ORM model."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from esusu.models import Base, BaseModel


class PayoutStatus(str, Enum):
    """Processing status of a payout."""

    PENDING = "PENDING"
    PAID = "PAID"
    WAIVED = "WAIVED"


class Payout(Base, BaseModel):
    """Scheduled lump-sum disbursement owed to a participation.

    Derived from the participation's picked number: scheduled_month always
    equals that number and scheduled_date follows from the cycle start.
    """

    __tablename__ = "payouts"

    participation_id: Mapped[int] = mapped_column(
        ForeignKey("participations.id"),
        nullable=False,
        unique=True,
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    cycle_id: Mapped[int] = mapped_column(ForeignKey("cycles.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    scheduled_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    status: Mapped[PayoutStatus] = mapped_column(
        SQLEnum(PayoutStatus),
        nullable=False,
        default=PayoutStatus.PENDING,
        index=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transfer_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    processed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    participation: Mapped["Participation"] = relationship(  # noqa: F821
        "Participation", back_populates="payout"
    )
    cycle: Mapped["Cycle"] = relationship("Cycle", back_populates="payouts")  # noqa: F821
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])  # noqa: F821

    __table_args__ = (Index("idx_payout_status_paid_at", "status", "paid_at"),)

    def __repr__(self) -> str:
        return (
            f"<Payout(id={self.id}, participation_id={self.participation_id}, "
            f"scheduled_month={self.scheduled_month}, status={self.status})>"
        )


__all__ = ["Payout", "PayoutStatus"]
