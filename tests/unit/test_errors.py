"""Unit tests for the error taxonomy and operation results."""

from esusu.services.errors import (
    ERROR_KINDS,
    AlreadyPaidError,
    ErrorCode,
    ErrorKind,
    NotRegisteredError,
    OperationResult,
    SlotTakenError,
    UnauthorizedError,
)


def test_every_error_code_has_a_kind():
    assert set(ERROR_KINDS) == set(ErrorCode)


def test_error_defaults_and_kind():
    error = SlotTakenError(details={"number": 5})
    assert error.code == ErrorCode.SLOT_TAKEN
    assert error.kind == ErrorKind.CONFLICT
    assert error.message == "This number has already been picked by another user"
    assert error.details == {"number": 5}


def test_terminal_state_errors():
    assert AlreadyPaidError().kind == ErrorKind.ALREADY_IN_TERMINAL_STATE


def test_not_registered_is_not_found():
    assert NotRegisteredError().kind == ErrorKind.NOT_FOUND


def test_fail_result_copies_error():
    result = OperationResult.fail(UnauthorizedError("nope", {"user_id": 3}))
    assert not result
    assert result.success is False
    assert result.error_code == ErrorCode.UNAUTHORIZED
    assert result.error_kind == ErrorKind.UNAUTHORIZED
    assert result.message == "nope"
    assert result.details == {"user_id": 3}


def test_ok_result_carries_details():
    result = OperationResult.ok(7, "done", already_picked=True)
    assert result
    assert result.value == 7
    assert result.error_kind is None
    assert result.details == {"already_picked": True}


def test_internal_error_result():
    result = OperationResult.internal_error()
    assert result.error_code == ErrorCode.INTERNAL_ERROR
    assert result.error_kind == ErrorKind.INTERNAL
