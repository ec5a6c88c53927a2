"""Contribution tier settings.

Tier rates live in a single ``SystemSettings`` row. Joins read an immutable
``TierSnapshot`` once and stamp the amounts onto the participation, so rate
changes only affect members who join afterwards.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from esusu.config import settings
from esusu.models.participation import ContributionTier
from esusu.models.system_settings import SystemSettings
from esusu.services.audit_service import AuditService
from esusu.services.auth_service import require_admin
from esusu.services.errors import InvalidAmountError, InvalidTierError, OperationResult
from esusu.services.transactions import run_ledger_operation

logger = logging.getLogger(__name__)

# Column prefix per tier on SystemSettings
TIER_COLUMNS = {
    ContributionTier.PACK_20K: "pack_20k",
    ContributionTier.PACK_50K: "pack_50k",
    ContributionTier.PACK_100K: "pack_100k",
}


@dataclass(frozen=True)
class TierRates:
    """Amounts fixed by one tier."""

    monthly_amount: Decimal
    total_payout: Decimal
    fine_amount: Decimal


@dataclass(frozen=True)
class TierSnapshot:
    """Tier rates as read at one moment."""

    tiers: dict[ContributionTier, TierRates]
    opt_out_penalty_percent: int

    def rates_for(self, tier: ContributionTier | str) -> TierRates:
        """Rates for a tier tag.

        Raises:
            InvalidTierError: Unknown tier
        """
        return self.tiers[parse_tier(tier)]


def parse_tier(tier: ContributionTier | str) -> ContributionTier:
    """Coerce a tier tag, raising InvalidTierError for unknown values."""
    try:
        return ContributionTier(tier)
    except ValueError:
        raise InvalidTierError(details={"tier": str(tier)}) from None


def default_snapshot() -> TierSnapshot:
    """Snapshot built from configured defaults only."""
    return TierSnapshot(
        tiers={
            tier: TierRates(
                monthly_amount=getattr(settings, f"{prefix}_monthly"),
                total_payout=getattr(settings, f"{prefix}_payout"),
                fine_amount=getattr(settings, f"{prefix}_fine"),
            )
            for tier, prefix in TIER_COLUMNS.items()
        },
        opt_out_penalty_percent=settings.opt_out_penalty_percent,
    )


class SettingsService:
    """Read and update the system-wide tier settings."""

    def __init__(self, db: Session):
        self.db = db

    def _get_or_create_row(self) -> SystemSettings:
        row = self.db.execute(select(SystemSettings).order_by(SystemSettings.id)).scalars().first()
        if row is None:
            defaults = default_snapshot()
            row = SystemSettings(opt_out_penalty_percent=defaults.opt_out_penalty_percent)
            for tier, prefix in TIER_COLUMNS.items():
                rates = defaults.tiers[tier]
                setattr(row, f"{prefix}_monthly", rates.monthly_amount)
                setattr(row, f"{prefix}_payout", rates.total_payout)
                setattr(row, f"{prefix}_fine", rates.fine_amount)
            self.db.add(row)
            self.db.flush()
            logger.info("Created default system settings row (id=%d)", row.id)
        return row

    def get_tier_snapshot(self) -> TierSnapshot:
        """Read current tier rates.

        Falls back to configured defaults when no settings row exists yet;
        does not write.
        """
        row = self.db.execute(select(SystemSettings).order_by(SystemSettings.id)).scalars().first()
        if row is None:
            return default_snapshot()
        return TierSnapshot(
            tiers={
                tier: TierRates(
                    monthly_amount=Decimal(getattr(row, f"{prefix}_monthly")),
                    total_payout=Decimal(getattr(row, f"{prefix}_payout")),
                    fine_amount=Decimal(getattr(row, f"{prefix}_fine")),
                )
                for tier, prefix in TIER_COLUMNS.items()
            },
            opt_out_penalty_percent=row.opt_out_penalty_percent,
        )

    def get_system_settings(self) -> dict:
        """Tier rates keyed by tier tag, for display."""
        snapshot = self.get_tier_snapshot()
        return {
            "tiers": {
                tier.value: {
                    "monthly": rates.monthly_amount,
                    "payout": rates.total_payout,
                    "fine": rates.fine_amount,
                }
                for tier, rates in snapshot.tiers.items()
            },
            "opt_out_penalty_percent": snapshot.opt_out_penalty_percent,
        }

    def update_tier(
        self,
        admin_id: int,
        tier: ContributionTier | str,
        monthly_amount: Decimal,
        total_payout: Decimal,
        fine_amount: Decimal,
    ) -> OperationResult:
        """Change one tier's rates. Existing participations keep their stamped amounts.

        Args:
            admin_id: Administrator making the change
            tier: Tier tag
            monthly_amount: New monthly contribution
            total_payout: New lump-sum payout
            fine_amount: New late fine (may be zero)

        Returns:
            OperationResult with the updated rates
        """

        def operation(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            key = parse_tier(tier)
            if monthly_amount <= 0 or total_payout <= 0 or fine_amount < 0:
                raise InvalidAmountError("Tier amounts must be positive")

            row = self._get_or_create_row()
            prefix = TIER_COLUMNS[key]
            setattr(row, f"{prefix}_monthly", monthly_amount)
            setattr(row, f"{prefix}_payout", total_payout)
            setattr(row, f"{prefix}_fine", fine_amount)
            AuditService.log(
                db,
                "settings",
                row.id,
                "update_tier",
                admin_id,
                {
                    "tier": key.value,
                    "monthly": str(monthly_amount),
                    "payout": str(total_payout),
                    "fine": str(fine_amount),
                },
            )
            logger.info("Tier %s updated by admin %d", key.value, admin_id)
            return OperationResult.ok(
                TierRates(monthly_amount, total_payout, fine_amount),
                "Settings updated successfully",
            )

        return run_ledger_operation(self.db, "update_tier", operation)

    def update_opt_out_penalty(self, admin_id: int, percent: int) -> OperationResult:
        """Change the opt-out penalty percentage (0-100)."""

        def operation(db: Session) -> OperationResult:
            require_admin(db, admin_id)
            if percent < 0 or percent > 100:
                raise InvalidAmountError("Penalty percent must be between 0 and 100")
            row = self._get_or_create_row()
            row.opt_out_penalty_percent = percent
            AuditService.log(db, "settings", row.id, "update_penalty", admin_id, {"percent": percent})
            return OperationResult.ok(percent, "Settings updated successfully")

        return run_ledger_operation(self.db, "update_opt_out_penalty", operation)


__all__ = [
    "SettingsService",
    "TierRates",
    "TierSnapshot",
    "default_snapshot",
    "parse_tier",
]
