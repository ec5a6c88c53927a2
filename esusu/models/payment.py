"""Monthly payment obligation ORM model."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from esusu.models import Base, BaseModel


class PaymentStatus(str, Enum):
    """Settlement status of a monthly payment."""

    PENDING = "PENDING"
    PAID = "PAID"


class Payment(Base, BaseModel):
    """Model representing one month's contribution owed by a participation.

    Settlement is one-way: PENDING -> PAID. The tendered amount and the fine
    are stored separately; the total charged is derived on read.
    """

    __tablename__ = "payments"

    participation_id: Mapped[int] = mapped_column(
        ForeignKey("participations.id"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    cycle_id: Mapped[int] = mapped_column(
        ForeignKey("cycles.id"),
        nullable=False,
        index=True,
    )
    month_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="1-based month within the cycle",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Base monthly amount owed",
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Amount tendered by the member, fine excluded",
    )
    has_fine: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    fine_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0"),
        nullable=False,
    )
    fine_paid: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Set when a fined payment settles, the fine being charged with it",
    )
    proof_of_payment: Mapped[str | None] = mapped_column(
        String(1024),
        nullable=True,
        comment="Opaque reference returned by the proof storage",
    )
    verified_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    participation: Mapped["Participation"] = relationship(  # noqa: F821
        "Participation", back_populates="payments"
    )
    cycle: Mapped["Cycle"] = relationship("Cycle", back_populates="payments")  # noqa: F821
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])  # noqa: F821

    __table_args__ = (
        UniqueConstraint("participation_id", "month_number", name="uq_payment_participation_month"),
        Index("idx_payment_status_due", "status", "due_date"),
        Index("idx_payment_status_paid_at", "status", "paid_at"),
    )

    @property
    def total_charged(self) -> Decimal:
        """Tendered amount plus any fine applied at settlement."""
        return (self.paid_amount or Decimal("0")) + (self.fine_amount if self.has_fine else Decimal("0"))

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, participation_id={self.participation_id}, "
            f"month={self.month_number}, status={self.status}, due_date={self.due_date})>"
        )


__all__ = ["Payment", "PaymentStatus"]
