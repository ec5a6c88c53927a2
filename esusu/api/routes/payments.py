"""Payment settlement and verification routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from esusu.api.errors import raise_for_result
from esusu.api.schemas import (
    MarkPaidRequest,
    PaymentProofRequest,
    PaymentResponse,
    RecordPaymentRequest,
    ResultResponse,
    VerifyPaymentRequest,
    result_response,
)
from esusu.services import get_db
from esusu.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/unverified", response_model=list[PaymentResponse])
async def unverified_payments(db: Session = Depends(get_db)) -> list[PaymentResponse]:
    """Payments carrying a proof that no admin has reviewed."""
    payments = PaymentService(db).get_payments_needing_verification()
    return [PaymentResponse.model_validate(p) for p in payments]


@router.post("/{payment_id}/record", response_model=ResultResponse)
async def record_payment(
    payment_id: int, payload: RecordPaymentRequest, db: Session = Depends(get_db)
) -> ResultResponse:
    """Settle a payment with the tendered amount.

    Returns:
        200: ResultResponse with the applied fine
        400: Non-positive amount
        404: Payment not found
        409: Payment already paid
    """
    result = PaymentService(db).record_payment(
        payment_id, payload.amount, payload.proof_reference
    )
    return result_response(raise_for_result(result))


@router.post("/{payment_id}/proof", response_model=ResultResponse)
async def upload_payment_proof(
    payment_id: int, payload: PaymentProofRequest, db: Session = Depends(get_db)
) -> ResultResponse:
    result = PaymentService(db).upload_payment_proof(
        payment_id,
        payload.user_id,
        payload.proof_reference,
        content_type=payload.content_type,
        size_bytes=payload.size_bytes,
    )
    return result_response(raise_for_result(result))


@router.post("/{payment_id}/mark-paid", response_model=ResultResponse)
async def mark_payment_as_paid(
    payment_id: int, payload: MarkPaidRequest, db: Session = Depends(get_db)
) -> ResultResponse:
    result = PaymentService(db).mark_payment_as_paid(payment_id, payload.user_id)
    return result_response(raise_for_result(result))


@router.post("/{payment_id}/verify", response_model=ResultResponse)
async def verify_payment(
    payment_id: int, payload: VerifyPaymentRequest, db: Session = Depends(get_db)
) -> ResultResponse:
    result = PaymentService(db).verify_payment(
        payload.admin_id, payment_id, payload.approved, payload.notes
    )
    return result_response(raise_for_result(result))
