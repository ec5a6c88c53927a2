"""Payout processing routes."""

from typing import Literal

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from esusu.api.errors import NotFoundError, raise_for_result
from esusu.api.schemas import (
    BatchPayoutRequest,
    ProcessPayoutRequest,
    ResultResponse,
    result_response,
)
from esusu.services import get_db
from esusu.services.payout_service import PayoutService

router = APIRouter(prefix="/payouts", tags=["payouts"])


@router.get("")
async def list_payouts(
    status: Literal["all", "pending", "completed"] = "all", db: Session = Depends(get_db)
):
    return jsonable_encoder(PayoutService(db).list_payouts(status))


@router.get("/stats")
async def payout_stats(db: Session = Depends(get_db)):
    return jsonable_encoder(PayoutService(db).get_payout_stats())


@router.get("/upcoming")
async def upcoming_payouts(days: int = 30, limit: int = 10, db: Session = Depends(get_db)):
    return jsonable_encoder(PayoutService(db).get_upcoming_payouts(days=days, limit=limit))


@router.post("/batch", response_model=ResultResponse)
async def batch_process_payouts(
    payload: BatchPayoutRequest, db: Session = Depends(get_db)
) -> ResultResponse:
    """Process several payouts; individual failures are reported, not rolled up."""
    result = PayoutService(db).batch_process_payouts(
        payload.payout_ids, payload.admin_id, payload.base_reference
    )
    return result_response(raise_for_result(result))


@router.get("/{payout_id}")
async def payout_details(payout_id: int, user_id: int, db: Session = Depends(get_db)):
    details = PayoutService(db).get_payout_details(payout_id, user_id)
    if details is None:
        raise NotFoundError("Payout not found")
    return jsonable_encoder(details)


@router.post("/{payout_id}/process", response_model=ResultResponse)
async def process_payout(
    payout_id: int, payload: ProcessPayoutRequest, db: Session = Depends(get_db)
) -> ResultResponse:
    """Mark a payout as transferred.

    Returns:
        200: ResultResponse with the payout id
        400: Missing transfer reference
        403: Caller is not an administrator
        404: Payout not found
        409: Payout already processed
    """
    result = PayoutService(db).process_payout(
        payout_id, payload.admin_id, payload.transfer_reference, payload.notes
    )
    return result_response(raise_for_result(result))
