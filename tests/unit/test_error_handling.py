"""
Tests for the error taxonomy and the store_operation decorator.
"""

import logging

import pytest
from pymongo.errors import DuplicateKeyError, OperationFailure

from docrepo.common.error_handling import log_on_exception, store_operation
from docrepo.common.errors import (
    AuthenticationError,
    BatchInsertFailed,
    ConflictError,
    DocRepoError,
    DuplicateRecord,
    InfrastructureError,
    InvalidCredentials,
    InvalidIdentifier,
    InvalidPagination,
    InvalidRegistration,
    InvalidSortOrder,
    InvalidToken,
    NotFoundError,
    StoreUnavailable,
    UpdateTargetNotFound,
    UserNotFound,
    ValidationError,
)


class TestErrorTaxonomy:
    """Each error kind maps to one status code."""

    @pytest.mark.parametrize("error_cls,parent,status", [
        (UpdateTargetNotFound, NotFoundError, 404),
        (InvalidSortOrder, ValidationError, 400),
        (InvalidIdentifier, ValidationError, 400),
        (InvalidPagination, ValidationError, 400),
        (InvalidRegistration, ValidationError, 400),
        (DuplicateRecord, ConflictError, 409),
        (UserNotFound, AuthenticationError, 401),
        (InvalidCredentials, AuthenticationError, 401),
        (InvalidToken, AuthenticationError, 401),
        (StoreUnavailable, InfrastructureError, 500),
        (BatchInsertFailed, InfrastructureError, 500),
    ])
    def test_status_codes(self, error_cls, parent, status):
        error = error_cls()

        assert isinstance(error, parent)
        assert isinstance(error, DocRepoError)
        assert error.status_code == status
        assert error.client_error is (status < 500)

    def test_messages(self):
        assert UpdateTargetNotFound().message == "Failed to update"
        assert InvalidSortOrder().message == "sortOrder must be 1 or -1"
        assert str(UserNotFound()) == str(InvalidCredentials())

    def test_custom_message(self):
        assert StoreUnavailable("find failed").message == "find failed"

    def test_to_dict(self):
        assert InvalidSortOrder().to_dict() == {
            "error": "InvalidSortOrder",
            "message": "sortOrder must be 1 or -1",
            "status_code": 400,
        }

    def test_batch_insert_reports_failures(self):
        data = BatchInsertFailed("2 rejected", failed_count=2).to_dict()

        assert data["failed_count"] == 2
        assert data["message"] == "2 rejected"


class TestStoreOperation:
    """Tests for the store_operation decorator."""

    def test_passes_result_through(self):
        @store_operation("ok")
        def ok():
            return 42

        assert ok() == 42

    def test_docrepo_errors_untouched(self):
        @store_operation("raise")
        def fail():
            raise InvalidIdentifier()

        with pytest.raises(InvalidIdentifier):
            fail()

    def test_duplicate_key_translated(self, caplog):
        @store_operation("insert")
        def insert():
            raise DuplicateKeyError("E11000 dup key: { email: \"a@example.com\" }", code=11000)

        with caplog.at_level(logging.INFO):
            with pytest.raises(DuplicateRecord):
                insert()

        assert "code 11000" in caplog.text
        assert "a@example.com" not in caplog.text

    def test_driver_error_translated_and_logged(self, caplog):
        @store_operation("aggregate")
        def aggregate():
            raise OperationFailure("bad stage")

        with pytest.raises(StoreUnavailable) as exc_info:
            aggregate()

        assert "aggregate failed" in exc_info.value.message
        assert any(record.levelno == logging.ERROR for record in caplog.records)

    def test_non_critical_logs_warning(self, caplog):
        @store_operation("count", critical=False)
        def count():
            raise OperationFailure("slow")

        with pytest.raises(StoreUnavailable):
            count()

        assert [record.levelno for record in caplog.records] == [logging.WARNING]

    def test_log_success(self, caplog):
        @store_operation("ping", log_success=True)
        def ping():
            return True

        with caplog.at_level(logging.DEBUG):
            ping()

        assert "[ping] Completed" in caplog.text

    def test_preserves_function_name(self):
        @store_operation("named")
        def find_things():
            pass

        assert find_things.__name__ == "find_things"


class TestLogOnException:

    def test_logs_and_reraises(self, caplog):
        logger = logging.getLogger("docrepo.test")

        with pytest.raises(RuntimeError):
            with log_on_exception(logger, "signing", level=logging.ERROR):
                raise RuntimeError("boom")

        assert "[signing] Failed: boom" in caplog.text

    def test_silent_on_success(self, caplog):
        logger = logging.getLogger("docrepo.test")

        with log_on_exception(logger, "signing"):
            pass

        assert caplog.text == ""
