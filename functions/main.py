"""Cloud Function entry points for the Takeoff measurement engine.

Provides HTTP endpoints for:
- Saving, loading, linking and deleting blueprint measurements
- Creating takeoff items from measurements
- Stateless calibration and measurement value computation
- Variance and QA reports
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List
from datetime import datetime, date

import structlog
from firebase_functions import https_fn, options
from firebase_admin import initialize_app
from pydantic import ValidationError as PydanticValidationError

from config.settings import settings
from config.errors import CalibrationError, TakeoffError, ErrorCode, ValidationError
from models.measurement import MeasurementDraft, Point, unit_for
from models.takeoff_item import TakeoffItemRequest
from services.geometry import compute_calibration_scale, measurement_value
from services.measurement_store import MeasurementStore
from services.qa import build_qa_report
from services.variance import category_breakdown, summarize_actuals
from utils.logging_config import configure_logging

# Initialize Firebase Admin SDK
try:
    initialize_app()
except ValueError:
    # Already initialized
    pass

# Misconfiguration fails the cold start
settings.validate()
configure_logging(settings.log_level, settings.log_format)
logger = structlog.get_logger()

NOT_FOUND_CODES = {ErrorCode.MEASUREMENT_NOT_FOUND, ErrorCode.TAKEOFF_ITEM_NOT_FOUND}
CLIENT_ERROR_CODES = {
    ErrorCode.VALIDATION_ERROR,
    ErrorCode.MISSING_FIELD,
    ErrorCode.INVALID_FIELD,
    ErrorCode.CALIBRATION_INVALID_DISTANCE,
    ErrorCode.CALIBRATION_INCOMPLETE,
    ErrorCode.CALIBRATION_REQUIRED,
}

ENDPOINT_CONFIG = {
    "timeout_sec": 30,
    "memory": options.MemoryOption.MB_256,
    "region": "us-central1"
}

# ============================================================================
# Helper Functions
# ============================================================================


def success_response(data: Any) -> Dict[str, Any]:
    """Build success response."""
    return {"success": True, "data": data}


def error_response(code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    """Build error response."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {}
        }
    }


def get_request_json(req: https_fn.Request) -> Dict[str, Any]:
    """Extract JSON from request body.

    Raises:
        ValidationError: If JSON is invalid.
    """
    try:
        return req.get_json(force=True) or {}
    except Exception as e:
        raise ValidationError(
            message=f"Invalid JSON in request body: {str(e)}"
        )


def require_fields(data: Dict[str, Any], *names: str) -> None:
    """Raise a MISSING_FIELD error for the first absent field."""
    for name in names:
        if data.get(name) in (None, ""):
            raise TakeoffError(
                code=ErrorCode.MISSING_FIELD,
                message=f"Missing {name} in request",
                details={"field": name}
            )


def int_field(data: Dict[str, Any], name: str) -> int:
    """Read an integer field, raising INVALID_FIELD when it is not one."""
    try:
        return int(data[name])
    except (TypeError, ValueError):
        raise TakeoffError(
            code=ErrorCode.INVALID_FIELD,
            message=f"{name} must be an integer, got {data[name]!r}",
            details={"field": name}
        )


def _pydantic_errors(e: PydanticValidationError) -> List[str]:
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]


def _status_for(code: str) -> int:
    if code in NOT_FOUND_CODES:
        return 404
    if code in CLIENT_ERROR_CODES:
        return 400
    return 500


def _handle(
    req: https_fn.Request,
    name: str,
    handler: Callable[[Dict[str, Any]], Awaitable[Any]]
) -> https_fn.Response:
    """Run an async handler against the request body and wrap the result."""
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req)
        result = asyncio.run(handler(data))
        return _json_response(success_response(result))

    except PydanticValidationError as e:
        return _json_response(
            error_response(
                ErrorCode.VALIDATION_ERROR,
                "Invalid request payload",
                {"errors": _pydantic_errors(e)}
            ),
            status=400
        )
    except TakeoffError as e:
        status = _status_for(e.code)
        if status >= 500:
            logger.error(f"{name}_error", error=e.message, code=e.code)
        return _json_response(
            error_response(e.code, e.message, e.details),
            status=status
        )
    except Exception as e:
        logger.exception(f"{name}_exception", error=str(e))
        return _json_response(
            error_response(
                ErrorCode.FIRESTORE_ERROR,
                f"Failed to {name.replace('_', ' ')}: {str(e)}"
            ),
            status=500
        )


def build_draft(payload: Dict[str, Any]) -> MeasurementDraft:
    """Build a draft from a request payload.

    ``unit`` and ``value`` are derived from type, points and scale when the
    client omits them; when present they must agree with the derivation.
    """
    data = dict(payload)
    kind = data.get("type")
    if kind is None:
        raise TakeoffError(
            code=ErrorCode.MISSING_FIELD,
            message="Missing type in measurement",
            details={"field": "type"}
        )
    try:
        data.setdefault("unit", unit_for(kind))
    except ValueError:
        raise TakeoffError(
            code=ErrorCode.INVALID_FIELD,
            message=f"Unknown measurement type: {kind}",
            details={"field": "type"}
        )
    if "value" not in data:
        try:
            points = [Point.model_validate(p) for p in data.get("points") or []]
            data["value"] = measurement_value(kind, points, float(data["scale"]))
        except (KeyError, TypeError, ValueError, ZeroDivisionError):
            # Leave the offending field for model validation to report
            data["value"] = 0.0
    return MeasurementDraft.model_validate(data)


# ============================================================================
# Measurement Endpoints
# ============================================================================


async def _save_measurement_async(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and persist a finalized measurement.

    Request body:
    {
        "projectId": "proj-xxx",
        "planFileId": "plan-xxx",
        "measurement": {"type": "area", "points": [...], "pageNumber": 1, "scale": 48.0}
    }
    """
    require_fields(data, "projectId", "planFileId", "measurement")
    draft = build_draft(data["measurement"])
    store = MeasurementStore()
    measurement_id = await store.save_measurement(data["projectId"], data["planFileId"], draft)
    return {
        "measurementId": measurement_id,
        "type": draft.type,
        "value": draft.value,
        "unit": draft.unit,
    }


async def _list_measurements_async(data: Dict[str, Any]) -> Dict[str, Any]:
    require_fields(data, "planFileId", "pageNumber")
    page_number = int_field(data, "pageNumber")
    store = MeasurementStore()
    measurements = await store.list_measurements(data["planFileId"], page_number)
    return {
        "planFileId": data["planFileId"],
        "pageNumber": page_number,
        "measurements": [m.model_dump(by_alias=True, mode="json") for m in measurements],
    }


async def _link_measurement_async(data: Dict[str, Any]) -> Dict[str, Any]:
    require_fields(data, "measurementId", "takeoffItemId")
    store = MeasurementStore()
    await store.link_line_item(data["measurementId"], data["takeoffItemId"])
    return {"measurementId": data["measurementId"], "takeoffItemId": data["takeoffItemId"]}


async def _create_takeoff_async(data: Dict[str, Any]) -> Dict[str, Any]:
    require_fields(data, "measurementId", "takeoffItem")
    request = TakeoffItemRequest.model_validate(data["takeoffItem"])
    store = MeasurementStore()
    item_id = await store.create_takeoff_item(data["measurementId"], request)
    return {"measurementId": data["measurementId"], "takeoffItemId": item_id}


async def _delete_measurement_async(data: Dict[str, Any]) -> Dict[str, Any]:
    require_fields(data, "measurementId")
    store = MeasurementStore()
    cleared = await store.delete_measurement(data["measurementId"])
    return {"deleted": True, "linkCleared": cleared}


async def _compute_measurement_async(data: Dict[str, Any]) -> Dict[str, Any]:
    draft = build_draft(data)
    return {"type": draft.type, "value": draft.value, "unit": draft.unit}


async def _calibrate_scale_async(data: Dict[str, Any]) -> Dict[str, Any]:
    """Pixels per foot from two points and a known distance in feet."""
    points = [Point.model_validate(p) for p in data.get("points") or []]
    if len(points) != 2:
        raise CalibrationError(
            code=ErrorCode.CALIBRATION_INCOMPLETE,
            message=f"Calibration needs exactly 2 points, got {len(points)}",
            details={"points": len(points)}
        )
    scale = compute_calibration_scale(points[0], points[1], data.get("feet"))
    return {"scale": scale, "unit": "px/ft"}


@https_fn.on_request(**ENDPOINT_CONFIG)
def save_measurement(req: https_fn.Request) -> https_fn.Response:
    """Save a finalized measurement; responds with the assigned ID."""
    return _handle(req, "save_measurement", _save_measurement_async)


@https_fn.on_request(**ENDPOINT_CONFIG)
def list_measurements(req: https_fn.Request) -> https_fn.Response:
    """Load saved measurements for {planFileId, pageNumber}."""
    return _handle(req, "list_measurements", _list_measurements_async)


@https_fn.on_request(**ENDPOINT_CONFIG)
def link_measurement(req: https_fn.Request) -> https_fn.Response:
    """Link a measurement to an existing takeoff item."""
    return _handle(req, "link_measurement", _link_measurement_async)


@https_fn.on_request(**ENDPOINT_CONFIG)
def create_takeoff_from_measurement(req: https_fn.Request) -> https_fn.Response:
    """Create a takeoff item from a saved measurement and link them."""
    return _handle(req, "create_takeoff_item", _create_takeoff_async)


@https_fn.on_request(**ENDPOINT_CONFIG)
def delete_measurement(req: https_fn.Request) -> https_fn.Response:
    """Delete a measurement, clearing the link on its takeoff item."""
    return _handle(req, "delete_measurement", _delete_measurement_async)


@https_fn.on_request(**ENDPOINT_CONFIG)
def compute_measurement(req: https_fn.Request) -> https_fn.Response:
    """Compute value and unit for {type, points, scale} without saving."""
    return _handle(req, "compute_measurement", _compute_measurement_async)


@https_fn.on_request(**ENDPOINT_CONFIG)
def calibrate_scale(req: https_fn.Request) -> https_fn.Response:
    """Compute a calibration scale for {points: [p1, p2], feet}."""
    return _handle(req, "calibrate_scale", _calibrate_scale_async)


# ============================================================================
# Report Endpoints
# ============================================================================


async def _variance_report_async(data: Dict[str, Any]) -> Dict[str, Any]:
    require_fields(data, "projectId")
    store = MeasurementStore()
    actuals = await store.list_actual_costs(data["projectId"])
    summary = summarize_actuals(actuals)
    return {
        "projectId": data["projectId"],
        "summary": summary.model_dump(by_alias=True),
        "categories": [row.model_dump(by_alias=True) for row in category_breakdown(actuals)],
    }


async def _qa_report_async(data: Dict[str, Any]) -> Dict[str, Any]:
    require_fields(data, "projectId")
    project_id = data["projectId"]
    store = MeasurementStore()
    items = await store.list_takeoff_items(project_id, include_drafts=False)
    measurements = await store.list_project_measurements(project_id)
    rfis = await store.list_open_rfis(project_id)
    report = build_qa_report(items, measurements, rfis)
    return {"projectId": project_id, **report.model_dump(by_alias=True)}


@https_fn.on_request(**ENDPOINT_CONFIG)
def variance_report(req: https_fn.Request) -> https_fn.Response:
    """Estimated vs. actual totals and per-category breakdown."""
    return _handle(req, "variance_report", _variance_report_async)


@https_fn.on_request(**ENDPOINT_CONFIG)
def qa_report(req: https_fn.Request) -> https_fn.Response:
    """Scored QA findings for a project's final takeoff items."""
    return _handle(req, "qa_report", _qa_report_async)


# ============================================================================
# Response Helpers
# ============================================================================


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "3600"
}


def _cors_response() -> https_fn.Response:
    """Return CORS preflight response."""
    return https_fn.Response(
        "",
        status=204,
        headers=CORS_HEADERS
    )


def _json_response(data: dict, status: int = 200) -> https_fn.Response:
    """Return JSON response with CORS headers."""

    def _json_default(o: Any):
        """JSON serializer for objects not serializable by default.

        Firestore returns timestamp types like `DatetimeWithNanoseconds` which
        behave like datetime objects but are not JSON serializable.
        """
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return str(o)

    return https_fn.Response(
        json.dumps(data, default=_json_default),
        status=status,
        mimetype="application/json",
        headers=CORS_HEADERS
    )
