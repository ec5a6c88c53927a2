"""System-wide contribution tier settings."""

from decimal import Decimal

from sqlalchemy import Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from esusu.models import Base, BaseModel


class SystemSettings(Base, BaseModel):
    """Single-row table with the current tier rates and opt-out penalty.

    Rates are read once per join and stamped onto the participation.
    """

    __tablename__ = "system_settings"

    pack_20k_monthly: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("20000"))
    pack_20k_payout: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("200000"))
    pack_20k_fine: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("2000"))

    pack_50k_monthly: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("50000"))
    pack_50k_payout: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("500000"))
    pack_50k_fine: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("2500"))

    pack_100k_monthly: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("100000"))
    pack_100k_payout: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("1000000"))
    pack_100k_fine: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("5000"))

    opt_out_penalty_percent: Mapped[int] = mapped_column(Integer, default=10)

    def __repr__(self) -> str:
        return f"<SystemSettings(id={self.id}, opt_out_penalty_percent={self.opt_out_penalty_percent})>"


__all__ = ["SystemSettings"]
