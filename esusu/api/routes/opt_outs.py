"""Opt-out request routes."""

from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from esusu.api.errors import raise_for_result
from esusu.api.schemas import (
    OptOutRequestResponse,
    OptOutReviewRequest,
    OptOutSubmitRequest,
    ResultResponse,
    result_response,
)
from esusu.services import get_db
from esusu.services.opt_out_service import OptOutService

router = APIRouter(prefix="/opt-outs", tags=["opt-outs"])


@router.post("", response_model=ResultResponse, status_code=status.HTTP_201_CREATED)
async def submit_opt_out(
    payload: OptOutSubmitRequest, db: Session = Depends(get_db)
) -> ResultResponse:
    result = OptOutService(db).submit_opt_out_request(
        payload.user_id, payload.cycle_id, payload.reason
    )
    return result_response(raise_for_result(result))


@router.get("/pending", response_model=list[OptOutRequestResponse])
async def pending_opt_outs(db: Session = Depends(get_db)):
    requests = OptOutService(db).get_pending_opt_out_requests()
    return [OptOutRequestResponse.model_validate(r) for r in requests]


@router.get("/stats")
async def opt_out_stats(db: Session = Depends(get_db)):
    return jsonable_encoder(OptOutService(db).get_opt_out_stats())


@router.delete("/{request_id}", response_model=ResultResponse)
async def cancel_opt_out(
    request_id: int, user_id: int, db: Session = Depends(get_db)
) -> ResultResponse:
    result = OptOutService(db).cancel_opt_out_request(request_id, user_id)
    return result_response(raise_for_result(result))


@router.post("/{request_id}/review", response_model=ResultResponse)
async def review_opt_out(
    request_id: int, payload: OptOutReviewRequest, db: Session = Depends(get_db)
) -> ResultResponse:
    result = OptOutService(db).review_opt_out_request(
        request_id, payload.admin_id, payload.approved, payload.notes
    )
    return result_response(raise_for_result(result))
