"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from esusu.models.audit_log import AuditLog  # noqa: E402
from esusu.models.cycle import Cycle, CycleStatus  # noqa: E402
from esusu.models.opt_out_request import OptOutRequest, OptOutStatus  # noqa: E402
from esusu.models.participation import BankDetails, ContributionTier, Participation  # noqa: E402
from esusu.models.payment import Payment, PaymentStatus  # noqa: E402
from esusu.models.payout import Payout, PayoutStatus  # noqa: E402
from esusu.models.system_settings import SystemSettings  # noqa: E402
from esusu.models.user import User  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "AuditLog",
    "BankDetails",
    "ContributionTier",
    "Cycle",
    "CycleStatus",
    "OptOutRequest",
    "OptOutStatus",
    "Participation",
    "Payment",
    "PaymentStatus",
    "Payout",
    "PayoutStatus",
    "SystemSettings",
    "User",
]
