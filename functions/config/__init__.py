"""Takeoff configuration.

This package contains:
- settings: Environment variables and configuration
- errors: Custom exceptions and error codes
"""

from config.settings import settings
from config.errors import (
    ErrorCode,
    TakeoffError,
    ValidationError,
    CalibrationError,
    CaptureError,
)

__all__ = [
    "settings",
    "ErrorCode",
    "TakeoffError",
    "ValidationError",
    "CalibrationError",
    "CaptureError",
]
