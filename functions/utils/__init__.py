"""Utility modules for Takeoff functions."""

from utils.logging_config import configure_logging

__all__ = [
    "configure_logging",
]
