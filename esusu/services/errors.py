"""Ledger error taxonomy and structured operation results.

Expected business conditions (a taken slot, a settled payment) are ordinary
outcomes: service internals raise a typed ``LedgerError`` and the public
operation turns it into a failed ``OperationResult``. Infrastructure failures
surface as ``INTERNAL_ERROR`` so callers can tell them apart and retry.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Broad failure categories."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    ALREADY_IN_TERMINAL_STATE = "already_in_terminal_state"
    INTERNAL = "internal"


class ErrorCode(str, Enum):
    """Every failure an operation can report."""

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    INVALID_RANGE = "invalid_range"
    CAPACITY_CONFLICT = "capacity_conflict"
    INVALID_STATUS_TRANSITION = "invalid_status_transition"
    ALREADY_REGISTERED = "already_registered"
    DEADLINE_PASSED = "deadline_passed"
    CYCLE_CLOSED = "cycle_closed"
    NO_SLOTS_AVAILABLE = "no_slots_available"
    INVALID_BANK_DETAILS = "invalid_bank_details"
    INVALID_TIER = "invalid_tier"
    RESERVED_NUMBER = "reserved_number"
    NOT_REGISTERED = "not_registered"
    PICKING_NOT_OPEN = "picking_not_open"
    ALREADY_PICKED = "already_picked"
    OUT_OF_RANGE = "out_of_range"
    SLOT_TAKEN = "slot_taken"
    ALREADY_PAID = "already_paid"
    INVALID_PROOF = "invalid_proof"
    INVALID_AMOUNT = "invalid_amount"
    ALREADY_PROCESSED = "already_processed"
    MISSING_REFERENCE = "missing_reference"
    PAYMENTS_EXIST = "payments_exist"
    PENDING_ITEMS = "pending_items"
    HAS_PARTICIPANTS = "has_participants"
    NOT_ELIGIBLE = "not_eligible"
    ALREADY_REVIEWED = "already_reviewed"
    INVALID_REQUEST = "invalid_request"
    INTERNAL_ERROR = "internal_error"


ERROR_KINDS: dict[ErrorCode, ErrorKind] = {
    ErrorCode.UNAUTHORIZED: ErrorKind.UNAUTHORIZED,
    ErrorCode.NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.NOT_REGISTERED: ErrorKind.NOT_FOUND,
    ErrorCode.INVALID_RANGE: ErrorKind.VALIDATION,
    ErrorCode.INVALID_BANK_DETAILS: ErrorKind.VALIDATION,
    ErrorCode.INVALID_TIER: ErrorKind.VALIDATION,
    ErrorCode.RESERVED_NUMBER: ErrorKind.VALIDATION,
    ErrorCode.OUT_OF_RANGE: ErrorKind.VALIDATION,
    ErrorCode.INVALID_PROOF: ErrorKind.VALIDATION,
    ErrorCode.INVALID_AMOUNT: ErrorKind.VALIDATION,
    ErrorCode.MISSING_REFERENCE: ErrorKind.VALIDATION,
    ErrorCode.INVALID_REQUEST: ErrorKind.VALIDATION,
    ErrorCode.CAPACITY_CONFLICT: ErrorKind.CONFLICT,
    ErrorCode.INVALID_STATUS_TRANSITION: ErrorKind.CONFLICT,
    ErrorCode.ALREADY_REGISTERED: ErrorKind.CONFLICT,
    ErrorCode.DEADLINE_PASSED: ErrorKind.CONFLICT,
    ErrorCode.CYCLE_CLOSED: ErrorKind.CONFLICT,
    ErrorCode.NO_SLOTS_AVAILABLE: ErrorKind.CONFLICT,
    ErrorCode.PICKING_NOT_OPEN: ErrorKind.CONFLICT,
    ErrorCode.SLOT_TAKEN: ErrorKind.CONFLICT,
    ErrorCode.PAYMENTS_EXIST: ErrorKind.CONFLICT,
    ErrorCode.PENDING_ITEMS: ErrorKind.CONFLICT,
    ErrorCode.HAS_PARTICIPANTS: ErrorKind.CONFLICT,
    ErrorCode.NOT_ELIGIBLE: ErrorKind.CONFLICT,
    ErrorCode.ALREADY_PICKED: ErrorKind.ALREADY_IN_TERMINAL_STATE,
    ErrorCode.ALREADY_PAID: ErrorKind.ALREADY_IN_TERMINAL_STATE,
    ErrorCode.ALREADY_PROCESSED: ErrorKind.ALREADY_IN_TERMINAL_STATE,
    ErrorCode.ALREADY_REVIEWED: ErrorKind.ALREADY_IN_TERMINAL_STATE,
    ErrorCode.INTERNAL_ERROR: ErrorKind.INTERNAL,
}


class LedgerError(Exception):
    """Base ledger business-rule error."""

    code: ErrorCode = ErrorCode.INVALID_REQUEST
    default_message = "Invalid request"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def kind(self) -> ErrorKind:
        return ERROR_KINDS[self.code]


class ValidationError(LedgerError):
    """Malformed input."""

    code = ErrorCode.INVALID_REQUEST


class UnauthorizedError(LedgerError):
    """Caller lacks the required privilege."""

    code = ErrorCode.UNAUTHORIZED
    default_message = "Unauthorized: Admin access required"


class NotFoundError(LedgerError):
    """Referenced entity does not exist."""

    code = ErrorCode.NOT_FOUND
    default_message = "Not found"


class InvalidRangeError(LedgerError):
    code = ErrorCode.INVALID_RANGE
    default_message = "Invalid date or slot range"


class CapacityConflictError(LedgerError):
    code = ErrorCode.CAPACITY_CONFLICT
    default_message = "Total slots cannot be reduced below current usage"


class InvalidStatusTransitionError(LedgerError):
    code = ErrorCode.INVALID_STATUS_TRANSITION
    default_message = "Cycle status change is not allowed"


class AlreadyRegisteredError(LedgerError):
    code = ErrorCode.ALREADY_REGISTERED
    default_message = "You are already registered for this cycle"


class DeadlinePassedError(LedgerError):
    code = ErrorCode.DEADLINE_PASSED
    default_message = "Registration deadline has passed"


class CycleClosedError(LedgerError):
    code = ErrorCode.CYCLE_CLOSED
    default_message = "This cycle is no longer accepting registrations"


class NoSlotsAvailableError(LedgerError):
    code = ErrorCode.NO_SLOTS_AVAILABLE
    default_message = "No available slots in this cycle"


class InvalidBankDetailsError(LedgerError):
    code = ErrorCode.INVALID_BANK_DETAILS
    default_message = "Account number must be 10 digits"


class InvalidTierError(LedgerError):
    code = ErrorCode.INVALID_TIER
    default_message = "Invalid contribution mode"


class ReservedNumberError(LedgerError):
    code = ErrorCode.RESERVED_NUMBER
    default_message = "This number is reserved and cannot be picked"


class NotRegisteredError(LedgerError):
    code = ErrorCode.NOT_REGISTERED
    default_message = "You must join this cycle before picking a number"


class PickingNotOpenError(LedgerError):
    code = ErrorCode.PICKING_NOT_OPEN
    default_message = "Number picking has not started yet"


class AlreadyPickedError(LedgerError):
    code = ErrorCode.ALREADY_PICKED
    default_message = "You have already picked a number"


class OutOfRangeError(LedgerError):
    code = ErrorCode.OUT_OF_RANGE
    default_message = "Number is outside the cycle's slot range"


class SlotTakenError(LedgerError):
    code = ErrorCode.SLOT_TAKEN
    default_message = "This number has already been picked by another user"


class AlreadyPaidError(LedgerError):
    code = ErrorCode.ALREADY_PAID
    default_message = "This payment has already been marked as paid"


class InvalidProofError(LedgerError):
    code = ErrorCode.INVALID_PROOF
    default_message = "Invalid proof of payment"


class InvalidAmountError(LedgerError):
    code = ErrorCode.INVALID_AMOUNT
    default_message = "Amount must be positive"


class AlreadyProcessedError(LedgerError):
    code = ErrorCode.ALREADY_PROCESSED
    default_message = "Payout has already been processed"


class MissingReferenceError(LedgerError):
    code = ErrorCode.MISSING_REFERENCE
    default_message = "Transfer reference is required"


class PaymentsExistError(LedgerError):
    code = ErrorCode.PAYMENTS_EXIST
    default_message = "Payments have already been generated for this cycle"


class PendingItemsError(LedgerError):
    code = ErrorCode.PENDING_ITEMS
    default_message = "Cycle still has pending payments or payouts"


class HasParticipantsError(LedgerError):
    code = ErrorCode.HAS_PARTICIPANTS
    default_message = "Cannot delete cycle with participants. Close it instead."


class NotEligibleError(LedgerError):
    code = ErrorCode.NOT_ELIGIBLE
    default_message = "You are not eligible to opt out"


class AlreadyReviewedError(LedgerError):
    code = ErrorCode.ALREADY_REVIEWED
    default_message = "Request has already been reviewed"


@dataclass
class OperationResult:
    """Outcome of a ledger operation."""

    success: bool
    value: Any = None
    message: str | None = None
    error_code: ErrorCode | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_kind(self) -> ErrorKind | None:
        return ERROR_KINDS[self.error_code] if self.error_code else None

    @classmethod
    def ok(cls, value: Any = None, message: str | None = None, **details: Any) -> "OperationResult":
        return cls(success=True, value=value, message=message, details=details)

    @classmethod
    def fail(cls, error: LedgerError) -> "OperationResult":
        return cls(
            success=False,
            message=error.message,
            error_code=error.code,
            details=dict(error.details),
        )

    @classmethod
    def internal_error(cls, message: str = "Something went wrong. Please try again.") -> "OperationResult":
        return cls(success=False, message=message, error_code=ErrorCode.INTERNAL_ERROR)

    def __bool__(self) -> bool:
        return self.success


__all__ = [
    "ErrorKind",
    "ErrorCode",
    "LedgerError",
    "OperationResult",
    "ValidationError",
    "UnauthorizedError",
    "NotFoundError",
    "InvalidRangeError",
    "CapacityConflictError",
    "InvalidStatusTransitionError",
    "AlreadyRegisteredError",
    "DeadlinePassedError",
    "CycleClosedError",
    "NoSlotsAvailableError",
    "InvalidBankDetailsError",
    "InvalidTierError",
    "ReservedNumberError",
    "NotRegisteredError",
    "PickingNotOpenError",
    "AlreadyPickedError",
    "OutOfRangeError",
    "SlotTakenError",
    "AlreadyPaidError",
    "InvalidProofError",
    "InvalidAmountError",
    "AlreadyProcessedError",
    "MissingReferenceError",
    "PaymentsExistError",
    "PendingItemsError",
    "HasParticipantsError",
    "NotEligibleError",
    "AlreadyReviewedError",
]
