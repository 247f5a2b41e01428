"""
Tests for the exception hierarchy.
"""

from http import HTTPStatus

from querygate.errors.exceptions import (
    CredentialAcquisitionError,
    DatabaseError,
    QueryGateError,
    RetryExhaustedError,
    ServiceError,
    SubStatusCode,
    TransientDatabaseError,
    error_code_of,
)


class TestQueryGateError:

    def test_basic_error(self):
        err = QueryGateError("Something went wrong")
        assert err.message == "Something went wrong"
        assert err.cause is None
        assert err.context == {}
        assert str(err) == "Something went wrong"

    def test_error_with_cause(self):
        cause = ValueError("Invalid value")
        err = CredentialAcquisitionError("Wrapper message", cause=cause)
        assert err.cause is cause
        assert str(err) == "Wrapper message | Caused by: Invalid value"


class TestDatabaseError:

    def test_code_is_kept(self):
        err = TransientDatabaseError("deadlock", code=1205, context={"attempt": 1})
        assert err.code == 1205
        assert err.context == {"attempt": 1}
        assert isinstance(err, DatabaseError)

    def test_error_code_of(self):
        assert error_code_of(DatabaseError("x", code=1205)) == "1205"
        assert error_code_of(DatabaseError("x", code=" 40P01 ")) == "40P01"
        assert error_code_of(DatabaseError("x")) is None
        assert error_code_of(ValueError("x")) is None
        assert error_code_of(None) is None


class TestRetryExhaustedError:

    def test_carries_last_error(self):
        last = DatabaseError("timeout", code=-2)
        err = RetryExhaustedError(6, last)
        assert err.attempts == 6
        assert err.last_error is last
        assert err.cause is last
        assert "6 attempts" in str(err)


class TestServiceError:

    def test_defaults(self):
        err = ServiceError("Database operation failed")
        assert err.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
        assert err.sub_status == SubStatusCode.DATABASE_OPERATION_FAILED
        assert err.inner is None

    def test_inner_is_cause(self):
        inner = DatabaseError("boom", code=1)
        err = ServiceError(
            "Data source not found",
            status_code=HTTPStatus.BAD_REQUEST,
            sub_status=SubStatusCode.DATA_SOURCE_NOT_FOUND,
            inner=inner,
        )
        assert err.inner is inner
        assert err.status_code == 400
        assert err.sub_status.value == "DataSourceNotFound"
