"""Participation ledger: registering members into cycles."""

import logging
import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from esusu.models.cycle import Cycle, CycleStatus
from esusu.models.participation import BankDetails, ContributionTier, Participation
from esusu.models.user import User
from esusu.services.cycle_service import claim_slot, lock_cycle
from esusu.services.errors import (
    AlreadyRegisteredError,
    CycleClosedError,
    DeadlinePassedError,
    InvalidBankDetailsError,
    NoSlotsAvailableError,
    NotFoundError,
    OperationResult,
    ValidationError,
)
from esusu.services.settings_service import SettingsService, parse_tier
from esusu.services.transactions import run_ledger_operation
from esusu.utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)

ACCOUNT_NUMBER_PATTERN = re.compile(r"^\d{10}$")


@dataclass(frozen=True)
class BankDetailsInput:
    """Payout bank account supplied at join time."""

    bank_name: str
    account_number: str
    account_name: str


def validate_bank_details(bank_details: BankDetailsInput) -> BankDetailsInput:
    """Check bank details shape and return a stripped copy.

    Raises:
        InvalidBankDetailsError: Missing fields or account number not 10 digits
    """
    bank_name = (bank_details.bank_name or "").strip()
    account_number = (bank_details.account_number or "").strip()
    account_name = (bank_details.account_name or "").strip()
    if not bank_name or not account_number or not account_name:
        raise InvalidBankDetailsError("Bank details are required")
    if not ACCOUNT_NUMBER_PATTERN.match(account_number):
        raise InvalidBankDetailsError("Account number must be 10 digits")
    return BankDetailsInput(bank_name, account_number, account_name)


def find_participation(db: Session, user_id: int, cycle_id: int) -> Participation | None:
    """Participation for (user, cycle), or None."""
    return db.execute(
        select(Participation).where(
            Participation.user_id == user_id, Participation.cycle_id == cycle_id
        )
    ).scalar_one_or_none()


class ParticipationService:
    """Service for cycle registration.

    Enforces one participation per member per cycle and the cycle's slot
    capacity, and stamps tier amounts onto each new participation.
    """

    def __init__(self, db: Session):
        self.db = db

    def join_cycle(
        self,
        user_id: int,
        cycle_id: int,
        tier: ContributionTier | str,
        bank_details: BankDetailsInput,
    ) -> OperationResult:
        """Register a member into a cycle with their payout bank account.

        The participation and its bank details are written in one transaction.
        The slot is claimed with a guarded counter UPDATE on the cycle row, so
        two members racing for the last slot cannot both win on any backend.

        Args:
            user_id: Joining member
            cycle_id: Target cycle
            tier: Contribution tier tag
            bank_details: Payout account

        Returns:
            OperationResult with the new participation id
        """

        def operation(db: Session) -> OperationResult:
            key = parse_tier(tier)
            clean_bank = validate_bank_details(bank_details)
            if db.get(User, user_id) is None:
                raise NotFoundError("User not found", {"user_id": user_id})

            cycle = lock_cycle(db, cycle_id)
            if ensure_utc(cycle.registration_deadline) <= utcnow():
                raise DeadlinePassedError()
            if cycle.is_closed:
                raise CycleClosedError()
            if find_participation(db, user_id, cycle_id) is not None:
                raise AlreadyRegisteredError()
            if not claim_slot(db, cycle_id):
                raise NoSlotsAvailableError()

            rates = SettingsService(db).get_tier_snapshot().rates_for(key)
            participation = Participation(
                user_id=user_id,
                cycle_id=cycle_id,
                contribution_mode=key,
                monthly_amount=rates.monthly_amount,
                total_payout=rates.total_payout,
                fine_amount=rates.fine_amount,
            )
            participation.bank_details = BankDetails(
                bank_name=clean_bank.bank_name,
                account_number=clean_bank.account_number,
                account_name=clean_bank.account_name,
            )
            db.add(participation)
            try:
                db.flush()
            except IntegrityError:
                # Lost a race with a concurrent join by the same member
                raise AlreadyRegisteredError() from None

            logger.info(
                "User %d joined cycle %d with %s (participation %d)",
                user_id,
                cycle_id,
                key.value,
                participation.id,
            )
            return OperationResult.ok(participation.id, "Successfully joined the cycle!")

        return run_ledger_operation(self.db, "join_cycle", operation)

    def check_participation(self, user_id: int, cycle_id: int) -> bool:
        """True if the member is registered in the cycle."""
        return find_participation(self.db, user_id, cycle_id) is not None

    def get_participation(self, user_id: int, cycle_id: int) -> Participation | None:
        """Get the member's participation in a cycle."""
        return find_participation(self.db, user_id, cycle_id)

    def get_active_participation(self, user_id: int) -> Participation | None:
        """The member's participation in an ACTIVE cycle, most recent first."""
        return (
            self.db.execute(
                select(Participation)
                .join(Cycle, Participation.cycle_id == Cycle.id)
                .where(Participation.user_id == user_id, Cycle.status == CycleStatus.ACTIVE)
                .order_by(Participation.registered_at.desc(), Participation.id.desc())
            )
            .scalars()
            .first()
        )

    def update_bank_details(
        self, user_id: int, participation_id: int, bank_details: BankDetailsInput
    ) -> OperationResult:
        """Replace the payout bank account of the member's own participation."""

        def operation(db: Session) -> OperationResult:
            clean_bank = validate_bank_details(bank_details)
            participation = db.get(Participation, participation_id)
            if participation is None or participation.user_id != user_id:
                raise NotFoundError("Participation not found")
            if participation.has_opted_out:
                raise ValidationError("Participation has been opted out")
            if participation.bank_details is None:
                participation.bank_details = BankDetails(
                    bank_name=clean_bank.bank_name,
                    account_number=clean_bank.account_number,
                    account_name=clean_bank.account_name,
                )
            else:
                participation.bank_details.bank_name = clean_bank.bank_name
                participation.bank_details.account_number = clean_bank.account_number
                participation.bank_details.account_name = clean_bank.account_name
            logger.info("Updated bank details for participation %d", participation_id)
            return OperationResult.ok(participation_id, "Bank details updated")

        return run_ledger_operation(self.db, "update_bank_details", operation)


__all__ = [
    "BankDetailsInput",
    "ParticipationService",
    "find_participation",
    "validate_bank_details",
]
