"""Takeoff error handling.

Custom exceptions and error codes for the measurement engine and its
Cloud Function endpoints.
"""

from typing import Optional, Dict, Any


# Error Codes
class ErrorCode:
    """Error code constants."""

    # Validation Errors (1xxx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"

    # Calibration Errors (2xxx)
    CALIBRATION_INVALID_DISTANCE = "CALIBRATION_INVALID_DISTANCE"
    CALIBRATION_INCOMPLETE = "CALIBRATION_INCOMPLETE"
    CALIBRATION_REQUIRED = "CALIBRATION_REQUIRED"

    # Capture Errors (3xxx)
    TOOL_UNAVAILABLE = "TOOL_UNAVAILABLE"
    SAVE_IN_FLIGHT = "SAVE_IN_FLIGHT"

    # Firestore Errors (5xxx)
    FIRESTORE_ERROR = "FIRESTORE_ERROR"
    FIRESTORE_WRITE_FAILED = "FIRESTORE_WRITE_FAILED"
    MEASUREMENT_NOT_FOUND = "MEASUREMENT_NOT_FOUND"
    TAKEOFF_ITEM_NOT_FOUND = "TAKEOFF_ITEM_NOT_FOUND"


class TakeoffError(Exception):
    """Base exception for Takeoff errors.

    Provides structured error information for API responses.

    Attributes:
        code: Error code from ErrorCode constants
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Initialize TakeoffError.

        Args:
            code: Error code from ErrorCode constants
            message: Human-readable error message
            details: Additional error context
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response.

        Returns:
            Dictionary with code, message, and details.
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(TakeoffError):
    """Validation-specific error."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details={**(details or {}), "field": field} if field else details
        )
        self.field = field


class CalibrationError(TakeoffError):
    """Raised when a calibration cannot be established.

    The session keeps whatever scale it had before the attempt; callers are
    expected to show ``message`` to the user.
    """

    def __init__(self, code: str, message: str, details: Optional[Dict] = None):
        super().__init__(code=code, message=message, details=details)


class CaptureError(TakeoffError):
    """Shape capture error (tool gating, duplicate saves)."""

    def __init__(self, code: str, message: str, tool: Optional[str] = None):
        super().__init__(
            code=code,
            message=message,
            details={"tool": tool} if tool else None
        )
        self.tool = tool
