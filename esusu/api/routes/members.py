"""Member-facing views: dashboard, own pick, payments, payouts and opt-out eligibility."""

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from esusu.api.errors import NotFoundError
from esusu.api.schemas import OptOutRequestResponse, PaymentResponse
from esusu.services import get_db
from esusu.services.opt_out_service import OptOutService
from esusu.services.payment_service import PaymentService
from esusu.services.payout_service import PayoutService
from esusu.services.report_service import ReportService
from esusu.services.slot_service import SlotService

router = APIRouter(prefix="/users/{user_id}", tags=["members"])


@router.get("/dashboard")
async def member_dashboard(user_id: int, db: Session = Depends(get_db)):
    """Active participation, contribution totals and recent payments of one member."""
    dashboard = ReportService(db).get_member_dashboard(user_id)
    if dashboard is None:
        raise NotFoundError("User not found")
    return jsonable_encoder(dashboard)


@router.get("/pick")
async def user_pick(user_id: int, db: Session = Depends(get_db)):
    """The member's number and payout date in the active cycle, or null."""
    return jsonable_encoder(SlotService(db).get_user_pick(user_id))


@router.get("/payments")
async def user_payments(user_id: int, db: Session = Depends(get_db)) -> dict:
    data = PaymentService(db).get_user_payments(user_id)
    data["payments"] = [PaymentResponse.model_validate(p) for p in data["payments"]]
    return jsonable_encoder(data)


@router.get("/payouts")
async def user_payouts(user_id: int, db: Session = Depends(get_db)):
    return jsonable_encoder(PayoutService(db).get_user_payout_info(user_id))


@router.get("/payout-timeline")
async def payout_timeline(user_id: int, db: Session = Depends(get_db)):
    return jsonable_encoder(PayoutService(db).get_payout_timeline(user_id))


@router.get("/opt-out")
async def opt_out_info(user_id: int, db: Session = Depends(get_db)):
    return jsonable_encoder(OptOutService(db).get_opt_out_info(user_id))


@router.get("/opt-out-requests", response_model=list[OptOutRequestResponse])
async def user_opt_out_requests(user_id: int, db: Session = Depends(get_db)):
    requests = OptOutService(db).get_user_opt_out_requests(user_id)
    return [OptOutRequestResponse.model_validate(r) for r in requests]
