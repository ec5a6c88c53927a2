"""Cycle registry, registration and slot routes."""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from esusu.api.errors import NotFoundError, raise_for_result
from esusu.api.schemas import (
    AdminAction,
    CycleCreate,
    CycleUpdate,
    JoinCycleRequest,
    PickNumberRequest,
    ResultResponse,
    result_response,
)
from esusu.services import get_db
from esusu.services.cycle_service import CycleService
from esusu.services.participation_service import BankDetailsInput, ParticipationService
from esusu.services.payment_service import PaymentService
from esusu.services.slot_service import SlotService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cycles"])


@router.get("/cycles")
async def list_cycles(db: Session = Depends(get_db)):
    """All cycles with participation, payment and payout counters."""
    return jsonable_encoder(CycleService(db).list_cycles())


@router.get("/cycles/available")
async def available_cycles(db: Session = Depends(get_db)):
    """Cycles still open for registration."""
    return jsonable_encoder(CycleService(db).get_available_cycles())


@router.get("/cycles/active")
async def active_cycle(db: Session = Depends(get_db)):
    """The current ACTIVE cycle, or null."""
    return jsonable_encoder(CycleService(db).get_active_cycle())


@router.get("/cycles/{cycle_id}")
async def cycle_details(cycle_id: int, db: Session = Depends(get_db)):
    details = CycleService(db).get_cycle_details(cycle_id)
    if details is None:
        raise NotFoundError("Cycle not found")
    return jsonable_encoder(details)


@router.post("/cycles", response_model=ResultResponse, status_code=status.HTTP_201_CREATED)
async def create_cycle(payload: CycleCreate, db: Session = Depends(get_db)) -> ResultResponse:
    """Create a cycle (admin only).

    Returns:
        201: ResultResponse with the cycle id
        400: Invalid dates or slot range
        403: Caller is not an administrator
    """
    result = CycleService(db).create_cycle(**payload.model_dump())
    return result_response(raise_for_result(result))


@router.patch("/cycles/{cycle_id}", response_model=ResultResponse)
async def update_cycle(
    cycle_id: int, payload: CycleUpdate, db: Session = Depends(get_db)
) -> ResultResponse:
    """Update the fields present in the payload (admin only)."""
    fields = payload.model_dump(exclude_unset=True, exclude={"admin_id"})
    result = CycleService(db).update_cycle(cycle_id, payload.admin_id, **fields)
    return result_response(raise_for_result(result))


@router.post("/cycles/{cycle_id}/close", response_model=ResultResponse)
async def close_cycle(
    cycle_id: int, payload: AdminAction, db: Session = Depends(get_db)
) -> ResultResponse:
    result = CycleService(db).close_cycle(cycle_id, payload.admin_id)
    return result_response(raise_for_result(result))


@router.post("/cycles/{cycle_id}/cancel", response_model=ResultResponse)
async def cancel_cycle(
    cycle_id: int, payload: AdminAction, db: Session = Depends(get_db)
) -> ResultResponse:
    result = CycleService(db).cancel_cycle(cycle_id, payload.admin_id)
    return result_response(raise_for_result(result))


@router.delete("/cycles/{cycle_id}", response_model=ResultResponse)
async def delete_cycle(cycle_id: int, admin_id: int, db: Session = Depends(get_db)) -> ResultResponse:
    result = CycleService(db).delete_cycle(cycle_id, admin_id)
    return result_response(raise_for_result(result))


@router.post(
    "/cycles/{cycle_id}/participations",
    response_model=ResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def join_cycle(
    cycle_id: int, payload: JoinCycleRequest, db: Session = Depends(get_db)
) -> ResultResponse:
    """Register a member into a cycle.

    Returns:
        201: ResultResponse with the participation id
        400: Invalid tier or bank details
        409: Already registered, deadline passed, cycle closed or full
    """
    bank = BankDetailsInput(**payload.bank_details.model_dump())
    result = ParticipationService(db).join_cycle(
        payload.user_id, cycle_id, payload.contribution_mode, bank
    )
    return result_response(raise_for_result(result))


@router.get("/cycles/{cycle_id}/taken-numbers")
async def taken_numbers(cycle_id: int, db: Session = Depends(get_db)) -> dict:
    """House-reserved and picked numbers. Advisory: a pick can still lose a race."""
    return {"cycle_id": cycle_id, "taken": SlotService(db).get_taken_numbers(cycle_id)}


@router.post("/cycles/{cycle_id}/payments/generate", response_model=ResultResponse)
async def generate_payments(
    cycle_id: int, payload: AdminAction, db: Session = Depends(get_db)
) -> ResultResponse:
    result = PaymentService(db).generate_cycle_payments(cycle_id, payload.admin_id)
    return result_response(raise_for_result(result))


@router.post("/slots/pick", response_model=ResultResponse)
async def pick_number(payload: PickNumberRequest, db: Session = Depends(get_db)) -> ResultResponse:
    """Pick a payout number in the member's active cycle.

    Returns:
        200: ResultResponse with number, payout id and scheduled date
        400: Reserved or out-of-range number
        404: Member not registered in an active cycle
        409: Picking closed, number taken or member already picked
    """
    result = SlotService(db).pick_number(payload.user_id, payload.number)
    return result_response(raise_for_result(result))
