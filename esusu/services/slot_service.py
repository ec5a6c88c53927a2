"""Slot allocation: assigning unique payout numbers within a cycle.

The authoritative "is this number free" check happens inside the same
transaction that writes the number, with the (cycle_id, picked_number) unique
constraint as backstop. ``get_taken_numbers`` is advisory only.
"""

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from esusu.config import settings
from esusu.models.cycle import Cycle, CycleStatus
from esusu.models.participation import Participation
from esusu.models.payout import Payout
from esusu.services.cycle_service import picking_open
from esusu.services.errors import (
    AlreadyPickedError,
    NotEligibleError,
    NotRegisteredError,
    OperationResult,
    OutOfRangeError,
    PickingNotOpenError,
    ReservedNumberError,
    SlotTakenError,
)
from esusu.services.payout_service import upsert_payout
from esusu.services.transactions import run_ledger_operation
from esusu.utils.dates import ensure_utc

logger = logging.getLogger(__name__)


@dataclass
class PickResult:
    """Number assigned to a participation and its payout."""

    number: int
    participation_id: int
    payout_id: int
    scheduled_date: date


def house_reserved_numbers() -> frozenset[int]:
    """Slot numbers kept by the house."""
    return frozenset(settings.house_reserved_numbers)


def _active_participation_for_update(db: Session, user_id: int) -> Participation | None:
    return (
        db.execute(
            select(Participation)
            .join(Cycle, Participation.cycle_id == Cycle.id)
            .where(Participation.user_id == user_id, Cycle.status == CycleStatus.ACTIVE)
            .order_by(Cycle.created_at.desc(), Cycle.id.desc())
            .with_for_update(of=Participation)
        )
        .scalars()
        .first()
    )


class SlotService:
    """Service for picking payout numbers."""

    def __init__(self, db: Session):
        self.db = db

    def pick_number(self, user_id: int, number: int) -> OperationResult:
        """Assign a payout number to the member's active participation.

        Checks, in order: house-reserved, registered in an ACTIVE cycle and
        not opted out, picking window open, not already picked, in range, not
        taken. The number and the payout row commit together or not at all.

        Args:
            user_id: Member picking
            number: Requested slot number

        Returns:
            OperationResult with a PickResult. Repeating the same number is a
            no-op success; asking for a different one fails with ALREADY_PICKED
            and the existing number in details["picked_number"].
        """

        def operation(db: Session) -> OperationResult:
            if number in house_reserved_numbers():
                raise ReservedNumberError(details={"number": number})

            participation = _active_participation_for_update(db, user_id)
            if participation is None:
                raise NotRegisteredError()
            if participation.has_opted_out:
                raise NotEligibleError("Members who opted out cannot pick a number")
            cycle = participation.cycle

            if cycle.number_picking_start_date is not None and not picking_open(cycle):
                opens = ensure_utc(cycle.number_picking_start_date)
                raise PickingNotOpenError(
                    f"Number picking starts on {opens.date().isoformat()}",
                    {"opens_at": opens.isoformat()},
                )
            if participation.picked_number is not None:
                if participation.picked_number == number and participation.payout is not None:
                    # Repeat of the caller's own pick: report it, change nothing
                    payout = participation.payout
                    return OperationResult.ok(
                        PickResult(number, participation.id, payout.id, payout.scheduled_date),
                        "You have already picked this number",
                        already_picked=True,
                    )
                raise AlreadyPickedError(details={"picked_number": participation.picked_number})
            if number < 1 or number > cycle.total_slots:
                raise OutOfRangeError(
                    f"Number must be between 1 and {cycle.total_slots}",
                    {"total_slots": cycle.total_slots},
                )

            holder = db.execute(
                select(Participation.id).where(
                    Participation.cycle_id == cycle.id,
                    Participation.picked_number == number,
                    Participation.id != participation.id,
                )
            ).scalar_one_or_none()
            if holder is not None:
                raise SlotTakenError(details={"number": number})

            participation.picked_number = number
            try:
                db.flush()
                payout = upsert_payout(db, participation, cycle)
            except IntegrityError:
                # Concurrent pick of the same number committed first
                raise SlotTakenError(details={"number": number}) from None

            logger.info(
                "User %d picked number %d in cycle %d (payout %d on %s)",
                user_id,
                number,
                cycle.id,
                payout.id,
                payout.scheduled_date,
            )
            return OperationResult.ok(
                PickResult(number, participation.id, payout.id, payout.scheduled_date),
                "Number picked successfully",
            )

        return run_ledger_operation(self.db, "pick_number", operation)

    def get_taken_numbers(self, cycle_id: int) -> list[int]:
        """House-reserved numbers plus every number picked in the cycle, sorted.

        Advisory only: availability is decided by pick_number's transaction.
        """
        picked = self.db.execute(
            select(Participation.picked_number).where(
                Participation.cycle_id == cycle_id, Participation.picked_number.is_not(None)
            )
        ).scalars()
        return sorted(house_reserved_numbers().union(picked))

    def get_user_pick(self, user_id: int) -> dict | None:
        """The member's number and payout date in the ACTIVE cycle, if picked."""
        row = self.db.execute(
            select(Participation, Payout)
            .join(Cycle, Participation.cycle_id == Cycle.id)
            .outerjoin(Payout, Payout.participation_id == Participation.id)
            .where(
                Participation.user_id == user_id,
                Cycle.status == CycleStatus.ACTIVE,
                Participation.picked_number.is_not(None),
            )
            .order_by(Cycle.created_at.desc(), Cycle.id.desc())
        ).first()
        if row is None:
            return None
        participation, payout = row
        return {
            "number": participation.picked_number,
            "payout_date": payout.scheduled_date if payout else None,
        }


__all__ = ["PickResult", "SlotService", "house_reserved_numbers"]
