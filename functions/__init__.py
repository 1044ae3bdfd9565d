"""Takeoff Measurement Engine - Cloud Functions.

This package contains the Python Cloud Functions behind the blueprint
measurement overlay: calibration, linear / area / count / note capture,
measurement persistence and takeoff item linking, plus variance and QA
reports over a project's takeoff.

Layout:
- config/: Settings and error codes
- models/: Pydantic models for measurements, takeoff items, actuals and QA
- services/: Geometry, capture state machine, Firestore store, reports
- utils/: Logging configuration
"""

__version__ = "1.0.0"
