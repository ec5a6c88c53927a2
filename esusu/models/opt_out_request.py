"""Opt-out request ORM model."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Numeric, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from esusu.models import Base, BaseModel


class OptOutStatus(str, Enum):
    """Review status of an opt-out request."""

    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class OptOutRequest(Base, BaseModel):
    """Member request to leave a cycle early, with the refund computed at submission."""

    __tablename__ = "opt_out_requests"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    cycle_id: Mapped[int] = mapped_column(ForeignKey("cycles.id"), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[OptOutStatus] = mapped_column(
        SQLEnum(OptOutStatus),
        nullable=False,
        default=OptOutStatus.PENDING_APPROVAL,
        index=True,
    )
    total_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    penalty_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])  # noqa: F821
    cycle: Mapped["Cycle"] = relationship("Cycle")  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<OptOutRequest(id={self.id}, user_id={self.user_id}, cycle_id={self.cycle_id}, "
            f"status={self.status})>"
        )


__all__ = ["OptOutRequest", "OptOutStatus"]
