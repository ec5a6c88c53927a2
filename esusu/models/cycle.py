"""Contribution cycle ORM model."""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Date, DateTime, Integer, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from esusu.models import Base, BaseModel


class CycleStatus(str, Enum):
    """Lifecycle status of a contribution cycle."""

    UPCOMING = "UPCOMING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Cycle(Base, BaseModel):
    """Model representing one fixed-duration run of the contribution scheme.

    A cycle has a bounded number of payout slots; every participant claims one
    slot number which decides the month of their lump-sum payout.
    """

    __tablename__ = "cycles"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Display name (e.g., '2025 January Cycle')",
    )
    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="First month of contributions and payouts",
    )
    end_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Last day of the cycle",
    )
    registration_deadline: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Members can join until this moment",
    )
    number_picking_start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Slot picking opens at this moment (immediately when empty)",
    )
    status: Mapped[CycleStatus] = mapped_column(
        SQLEnum(CycleStatus),
        nullable=False,
        default=CycleStatus.UPCOMING,
        index=True,
    )
    total_slots: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Maximum number of participants and highest slot number",
    )
    participant_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Participations registered so far, claimed with a guarded UPDATE",
    )
    payment_deadline_day: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Day of month on which payments fall due and payouts are made",
    )

    # Relationships
    participations: Mapped[list["Participation"]] = relationship(  # noqa: F821
        "Participation",
        back_populates="cycle",
        cascade="all, delete-orphan",
    )
    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="cycle",
    )
    payouts: Mapped[list["Payout"]] = relationship(  # noqa: F821
        "Payout",
        back_populates="cycle",
    )

    __table_args__ = (
        CheckConstraint("total_slots >= 1", name="ck_cycles_total_slots_positive"),
        CheckConstraint(
            "participant_count <= total_slots", name="ck_cycles_participant_count_capacity"
        ),
        CheckConstraint(
            "payment_deadline_day BETWEEN 1 AND 31", name="ck_cycles_payment_deadline_day"
        ),
    )

    @property
    def is_closed(self) -> bool:
        """True once the cycle no longer accepts registrations or picks."""
        return self.status in (CycleStatus.COMPLETED, CycleStatus.CANCELLED)

    def __repr__(self) -> str:
        return (
            f"<Cycle(id={self.id}, name={self.name}, status={self.status}, "
            f"total_slots={self.total_slots})>"
        )


__all__ = ["Cycle", "CycleStatus"]
