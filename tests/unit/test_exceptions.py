"""Unit tests for the exception hierarchy (progression/exceptions.py)"""
import logging
import pybreaker
import psycopg

from progression.exceptions import (
    ConfigurationError,
    NoFreezeAvailable,
    ProgressionError,
    RecordNotFoundError,
    StoreUnavailable,
    ValidationError,
    wrap_store_exception,
)


# ============================================================================
# Hierarchy Tests
# ============================================================================

def test_progression_error_to_dict():
    error = ProgressionError("Failed to append", student_id="s1", operation="award_xp", context={"amount": 5})

    data = error.to_dict()

    assert data["error"] == "ProgressionError"
    assert data["message"] == "Failed to append"
    assert data["student_id"] == "s1"
    assert data["operation"] == "award_xp"
    assert data["request_id"]


def test_validation_error_carries_field():
    error = ValidationError("must be positive", field="total_points", value=0)

    assert error.field == "total_points"
    assert error.context == {"field": "total_points", "value": 0}
    assert "total_points" in error.user_message


def test_record_not_found():
    error = RecordNotFoundError("missing", record_type="DailyQuest", record_id="q-1")

    assert error.record_id == "q-1"
    assert error.user_message == "DailyQuest not found."


def test_no_freeze_available_logs_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="progression.exceptions"):
        error = NoFreezeAvailable("s1")

    assert error.student_id == "s1"
    assert caplog.records[-1].levelno == logging.WARNING


def test_configuration_error_key():
    assert ConfigurationError("bad", config_key="LEVEL_UP_BONUS_MODE").config_key == "LEVEL_UP_BONUS_MODE"


# ============================================================================
# Wrapping Tests
# ============================================================================

def test_wrap_operational_error():
    wrapped = wrap_store_exception(psycopg.OperationalError("connection refused"), "get_streak", "s1")

    assert isinstance(wrapped, StoreUnavailable)
    assert wrapped.operation == "get_streak"
    assert "connection refused" in wrapped.message


def test_wrap_circuit_breaker_error():
    wrapped = wrap_store_exception(pybreaker.CircuitBreakerError("open"), "get_streak")

    assert isinstance(wrapped, StoreUnavailable)
    assert "circuit open" in wrapped.message


def test_wrap_keeps_progression_errors():
    original = StoreUnavailable(operation="x")

    assert wrap_store_exception(original, "y") is original


def test_wrap_unexpected_error():
    wrapped = wrap_store_exception(KeyError("k"), "list_divisions")

    assert type(wrapped) is ProgressionError
    assert wrapped.cause is not None
