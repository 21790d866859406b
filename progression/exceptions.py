"""
Exception hierarchy for the progression engine

Every error carries a request ID, the student it concerns, the operation that
failed and structured context, and logs itself on construction.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class ProgressionError(Exception):
    """
    Base exception for all progression engine errors

    Example:
        raise ProgressionError(
            message="Failed to append XP transaction",
            student_id="stu-1",
            operation="award_xp",
            context={"amount": 50}
        )
    """

    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        student_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.student_id = student_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,
            "request_id": self.request_id,
            "student_id": self.student_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }
        if self.cause:
            log_data["cause"] = str(self.cause)
        logger.log(
            self.log_level,
            f"{self.__class__.__name__}: {self.message}",
            extra=log_data,
            exc_info=self.cause if self.cause else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for callers that surface errors"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "student_id": self.student_id,
            "operation": self.operation,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (Caller Input)
# ==========================================

class ValidationError(ProgressionError):
    """
    Raised when caller input fails validation

    Examples:
    - negative score
    - score above total points
    - unknown activity type
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Store Errors
# ==========================================

class StoreError(ProgressionError):
    """Base class for ledger store errors"""
    pass


class StoreUnavailable(StoreError):
    """The ledger store could not complete a read or write"""

    def __init__(self, message: str = "Ledger store unavailable", **kwargs):
        kwargs.setdefault("user_message", "Progress could not be saved right now. Please try again in a moment.")
        super().__init__(message=message, **kwargs)


class RecordNotFoundError(StoreError):
    """Requested record does not exist"""

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


# ==========================================
# Domain Errors
# ==========================================

class NoFreezeAvailable(ProgressionError):
    """Student tried to spend a streak freeze with none left"""

    log_level = logging.WARNING

    def __init__(self, student_id: str, **kwargs):
        super().__init__(
            message=f"No streak freezes available for student {student_id}",
            student_id=student_id,
            operation="use_freeze",
            user_message="You have no streak freezes left this month.",
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(ProgressionError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_store_exception(
    error: Exception,
    operation: str,
    student_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> ProgressionError:
    """
    Wrap driver and breaker exceptions into our exception hierarchy

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="append_xp_transaction", student_id="stu-1")
    """
    import psycopg
    import pybreaker

    if isinstance(error, ProgressionError):
        return error

    if isinstance(error, pybreaker.CircuitBreakerError):
        return StoreUnavailable(
            message=f"Ledger store circuit open during {operation}",
            student_id=student_id,
            operation=operation,
            context=context,
            cause=error,
        )

    if isinstance(error, psycopg.OperationalError):
        return StoreUnavailable(
            message=f"Database connection failed: {error}",
            student_id=student_id,
            operation=operation,
            context=context,
            cause=error,
        )

    if isinstance(error, psycopg.Error):
        return StoreUnavailable(
            message=f"Database query failed: {error}",
            student_id=student_id,
            operation=operation,
            context=context,
            cause=error,
        )

    return ProgressionError(
        message=f"Unexpected error in {operation}: {error}",
        student_id=student_id,
        operation=operation,
        context=context,
        cause=error,
    )
