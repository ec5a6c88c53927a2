"""Admin reporting and tier settings routes."""

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from esusu.api.errors import raise_for_result
from esusu.api.schemas import (
    PenaltyUpdateRequest,
    ResultResponse,
    TierUpdateRequest,
    result_response,
)
from esusu.services import get_db
from esusu.services.report_service import ReportService
from esusu.services.settings_service import SettingsService

router = APIRouter(tags=["admin"])


@router.get("/reports/financial")
async def financial_summary(cycle_id: int | None = None, db: Session = Depends(get_db)):
    return jsonable_encoder(ReportService(db).get_financial_summary(cycle_id))


@router.get("/reports/defaulters")
async def defaulters(cycle_id: int | None = None, db: Session = Depends(get_db)):
    return jsonable_encoder(ReportService(db).get_defaulters_report(cycle_id))


@router.get("/reports/cycles")
async def cycle_performance(db: Session = Depends(get_db)):
    return jsonable_encoder(ReportService(db).get_cycle_performance())


@router.get("/reports/reconciliation")
async def monthly_reconciliation(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000),
    db: Session = Depends(get_db),
):
    return jsonable_encoder(ReportService(db).get_monthly_reconciliation(month, year))


@router.get("/reports/trends")
async def payment_trends(db: Session = Depends(get_db)):
    return jsonable_encoder(ReportService(db).get_payment_trends())


@router.get("/reports/dashboard")
async def dashboard_stats(db: Session = Depends(get_db)):
    return jsonable_encoder(ReportService(db).get_admin_dashboard_stats())


@router.get("/reports/recent-activity")
async def recent_activity(limit: int = Query(5, ge=1, le=50), db: Session = Depends(get_db)):
    return jsonable_encoder(ReportService(db).get_recent_activities(limit))


@router.get("/settings")
async def system_settings(db: Session = Depends(get_db)):
    return jsonable_encoder(SettingsService(db).get_system_settings())


@router.put("/settings/tiers/{tier}", response_model=ResultResponse)
async def update_tier(
    tier: str, payload: TierUpdateRequest, db: Session = Depends(get_db)
) -> ResultResponse:
    """Change one tier's rates. Existing participations are not affected."""
    result = SettingsService(db).update_tier(
        payload.admin_id,
        tier,
        payload.monthly_amount,
        payload.total_payout,
        payload.fine_amount,
    )
    return result_response(raise_for_result(result))


@router.put("/settings/opt-out-penalty", response_model=ResultResponse)
async def update_opt_out_penalty(
    payload: PenaltyUpdateRequest, db: Session = Depends(get_db)
) -> ResultResponse:
    result = SettingsService(db).update_opt_out_penalty(payload.admin_id, payload.percent)
    return result_response(raise_for_result(result))
