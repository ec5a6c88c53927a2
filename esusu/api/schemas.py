"""Pydantic request and response schemas for the ledger API."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from esusu.models.cycle import CycleStatus
from esusu.models.opt_out_request import OptOutStatus
from esusu.models.payment import PaymentStatus


class ResultResponse(BaseModel):
    """Successful ledger operation."""

    success: bool = True
    message: str | None = None
    value: Any = None
    details: dict[str, Any] = Field(default_factory=dict)


class CycleCreate(BaseModel):
    """Payload for POST /cycles."""

    admin_id: int = Field(..., description="ID of the admin creating the cycle")
    name: str = Field(..., min_length=1, max_length=255)
    start_date: date
    end_date: date
    registration_deadline: datetime
    number_picking_start_date: datetime | None = None
    total_slots: int
    payment_deadline_day: int
    status: CycleStatus = CycleStatus.UPCOMING


class CycleUpdate(BaseModel):
    """Payload for PATCH /cycles/{cycle_id}. Omitted fields are left unchanged."""

    admin_id: int
    name: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    registration_deadline: datetime | None = None
    number_picking_start_date: datetime | None = None
    status: CycleStatus | None = None
    total_slots: int | None = None
    payment_deadline_day: int | None = None


class AdminAction(BaseModel):
    """Payload carrying only the acting admin."""

    admin_id: int


class BankDetailsPayload(BaseModel):
    bank_name: str
    account_number: str = Field(..., description="10-digit account number")
    account_name: str


class JoinCycleRequest(BaseModel):
    """Payload for POST /cycles/{cycle_id}/participations."""

    user_id: int
    contribution_mode: str = Field(..., description="PACK_20K, PACK_50K or PACK_100K")
    bank_details: BankDetailsPayload


class PickNumberRequest(BaseModel):
    """Payload for POST /slots/pick."""

    user_id: int
    number: int


class RecordPaymentRequest(BaseModel):
    """Payload for POST /payments/{payment_id}/record."""

    amount: Decimal
    proof_reference: str | None = None


class PaymentProofRequest(BaseModel):
    """Payload for POST /payments/{payment_id}/proof.

    The file itself goes to blob storage; only its reference is sent here.
    """

    user_id: int
    proof_reference: str
    content_type: str | None = None
    size_bytes: int | None = None


class MarkPaidRequest(BaseModel):
    user_id: int


class VerifyPaymentRequest(BaseModel):
    """Payload for POST /payments/{payment_id}/verify."""

    admin_id: int
    approved: bool
    notes: str | None = None


class ProcessPayoutRequest(BaseModel):
    """Payload for POST /payouts/{payout_id}/process."""

    admin_id: int
    transfer_reference: str
    notes: str | None = None


class BatchPayoutRequest(BaseModel):
    """Payload for POST /payouts/batch."""

    admin_id: int
    payout_ids: list[int]
    base_reference: str


class OptOutSubmitRequest(BaseModel):
    """Payload for POST /opt-outs."""

    user_id: int
    cycle_id: int
    reason: str


class OptOutReviewRequest(BaseModel):
    """Payload for POST /opt-outs/{request_id}/review."""

    admin_id: int
    approved: bool
    notes: str | None = None


class TierUpdateRequest(BaseModel):
    """Payload for PUT /settings/tiers/{tier}."""

    admin_id: int
    monthly_amount: Decimal
    total_payout: Decimal
    fine_amount: Decimal


class PenaltyUpdateRequest(BaseModel):
    admin_id: int
    percent: int


class PaymentResponse(BaseModel):
    """A monthly payment obligation."""

    id: int
    participation_id: int
    user_id: int
    cycle_id: int
    month_number: int
    amount: Decimal
    due_date: date
    status: PaymentStatus
    paid_at: datetime | None
    paid_amount: Decimal | None
    has_fine: bool
    fine_amount: Decimal
    proof_of_payment: str | None
    verified_by: int | None
    verified_at: datetime | None
    notes: str | None

    model_config = {"from_attributes": True}


class OptOutRequestResponse(BaseModel):
    """An opt-out request with its frozen refund figures."""

    id: int
    user_id: int
    cycle_id: int
    reason: str
    status: OptOutStatus
    total_paid: Decimal
    penalty_amount: Decimal
    refund_amount: Decimal
    requested_at: datetime
    reviewed_at: datetime | None
    reviewed_by: int | None
    review_notes: str | None

    model_config = {"from_attributes": True}


def result_response(result) -> ResultResponse:
    """Wrap a successful OperationResult with a JSON-safe value."""
    return ResultResponse(
        message=result.message,
        value=jsonable_encoder(result.value),
        details=jsonable_encoder(result.details),
    )
