"""Participation and bank details ORM models."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from esusu.models import Base, BaseModel


class ContributionTier(str, Enum):
    """Named contribution plans."""

    PACK_20K = "PACK_20K"
    PACK_50K = "PACK_50K"
    PACK_100K = "PACK_100K"


class Participation(Base, BaseModel):
    """One member's enrollment in one cycle.

    Amounts are copied from the tier settings at join time, so later changes
    to the tier rates never touch existing participants.
    """

    __tablename__ = "participations"

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
    contribution_mode: Mapped[ContributionTier] = mapped_column(
        SQLEnum(ContributionTier),
        nullable=False,
        comment="Tier chosen at join time",
    )
    monthly_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Monthly contribution stamped from the tier",
    )
    total_payout: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Lump-sum payout stamped from the tier",
    )
    fine_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Flat late-payment fine stamped from the tier",
    )
    picked_number: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Payout slot number, unique within the cycle once set",
    )
    has_opted_out: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="participations")  # noqa: F821
    cycle: Mapped["Cycle"] = relationship("Cycle", back_populates="participations")  # noqa: F821
    bank_details: Mapped["BankDetails"] = relationship(
        "BankDetails",
        back_populates="participation",
        uselist=False,
        cascade="all, delete-orphan",
    )
    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="participation",
        cascade="all, delete-orphan",
        order_by="Payment.month_number",
    )
    payout: Mapped["Payout"] = relationship(  # noqa: F821
        "Payout",
        back_populates="participation",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "cycle_id", name="uq_participation_user_cycle"),
        UniqueConstraint("cycle_id", "picked_number", name="uq_participation_cycle_number"),
        Index("idx_participation_cycle_opted_out", "cycle_id", "has_opted_out"),
    )

    def __repr__(self) -> str:
        return (
            f"<Participation(id={self.id}, user_id={self.user_id}, cycle_id={self.cycle_id}, "
            f"mode={self.contribution_mode}, picked_number={self.picked_number})>"
        )


class BankDetails(Base, BaseModel):
    """Bank account that receives a participation's payout."""

    __tablename__ = "bank_details"

    participation_id: Mapped[int] = mapped_column(
        ForeignKey("participations.id"),
        nullable=False,
        unique=True,
    )
    bank_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_number: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="10-digit account number",
    )
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)

    participation: Mapped["Participation"] = relationship(
        "Participation", back_populates="bank_details"
    )

    def __repr__(self) -> str:
        return (
            f"<BankDetails(id={self.id}, participation_id={self.participation_id}, "
            f"bank_name={self.bank_name})>"
        )


__all__ = ["BankDetails", "ContributionTier", "Participation"]
