"""
Unit tests for the domain and infrastructure exception hierarchies.
"""

import asyncio
import uuid

import pytest

from notequiz.core.exceptions import DatabaseError, ErrorSeverity, LockAcquisitionError
from notequiz.modules.shared.exceptions import (
    DependencyError,
    InvalidTransitionError,
    NotFoundError,
    OutOfOrderError,
    PoolExhaustedError,
    SessionNotActiveError,
    SessionNotTerminalError,
    UnavailableConfigurationError,
    ValidationError,
    classify_error,
    is_transient_error,
    should_alert,
)


@pytest.mark.unit
class TestCategories:
    @pytest.mark.parametrize(
        "exc, category",
        [
            (ValidationError("limit", "too big"), "validation"),
            (UnavailableConfigurationError("treble", 45, 0), "validation"),
            (InvalidTransitionError(uuid.uuid4(), "completed", "start"), "state"),
            (SessionNotActiveError(uuid.uuid4(), "pending", "submit_answer"), "state"),
            (SessionNotTerminalError(uuid.uuid4(), "in_progress"), "state"),
            (OutOfOrderError(uuid.uuid4(), 3, 5), "state"),
            (PoolExhaustedError(10), "state"),
            (NotFoundError("QuizSession", uuid.uuid4()), "not_found"),
            (DependencyError("gateway.save_session"), "dependency"),
            (RuntimeError("boom"), "internal"),
        ],
    )
    def test_classify(self, exc, category):
        assert classify_error(exc) == category

    def test_only_dependency_errors_are_transient(self):
        assert is_transient_error(DependencyError("gateway.load_session"))
        assert not is_transient_error(OutOfOrderError(uuid.uuid4(), 2, 1))
        assert not is_transient_error(ValidationError("clef", "bad"))

    def test_client_mistakes_do_not_alert(self):
        assert not should_alert(ValidationError("clef", "bad"))
        assert not should_alert(NotFoundError("Group"))
        assert should_alert(RuntimeError("boom"))


@pytest.mark.unit
class TestDetails:
    def test_out_of_order_duplicate_flag(self):
        session_id = uuid.uuid4()

        duplicate = OutOfOrderError(session_id, expected=4, received=3)
        skip = OutOfOrderError(session_id, expected=4, received=6)

        assert duplicate.is_duplicate
        assert not skip.is_duplicate
        assert duplicate.details["expected"] == 4
        assert duplicate.error_code == "OUT_OF_ORDER"

    def test_unavailable_configuration_details(self):
        exc = UnavailableConfigurationError("treble", 45, 2)

        assert exc.error_code == "UNAVAILABLE_CONFIGURATION"
        assert exc.details["duration"] == 45
        assert exc.field == "configuration"

    def test_not_found_message(self):
        exc = NotFoundError("Group", "abc")

        assert "Group not found: abc" in str(exc)
        assert exc.error_code == "GROUP_NOT_FOUND"

    def test_dependency_error_describes_timeout(self):
        exc = DependencyError("gateway.save_session", asyncio.TimeoutError(), 2.5)

        assert "timed out after 2.5s" in exc.message
        assert exc.timeout_seconds == 2.5
        assert exc.severity == ErrorSeverity.WARNING

    def test_dependency_error_describes_cause(self):
        cause = DatabaseError("save_session", RuntimeError("connection reset"))

        exc = DependencyError("gateway.save_session", cause, 5.0)

        assert "DatabaseError" in exc.message
        assert exc.details["original_error_type"] == "DatabaseError"

    def test_to_dict(self):
        data = ValidationError("limit", "too big").to_dict()

        assert data["category"] == "validation"
        assert data["error_code"] == "VALIDATION_LIMIT"
        assert data["is_retryable"] is False


@pytest.mark.unit
class TestInfrastructure:
    def test_lock_acquisition_error_is_retryable(self):
        exc = LockAcquisitionError("quiz_session:1", 5.0)

        assert exc.is_retryable
        assert exc.details["lock_key"] == "quiz_session:1"
