"""Save / create-takeoff-item flow for finalized measurements.

Sits between a CaptureSession (which produces drafts) and the
MeasurementStore. Saves of distinct measurements may run concurrently and
complete in any order; resubmitting a draft whose save is still in flight is
rejected.
"""

import asyncio
from typing import Callable, Dict, Optional, Set, Tuple

import structlog

from config.errors import CaptureError, ErrorCode, TakeoffError
from models.measurement import MeasurementDraft, MeasurementType
from models.takeoff_item import TakeoffItemRequest
from services.measurement_store import MeasurementStore

logger = structlog.get_logger(__name__)

Notifier = Callable[[str, str], None]

DESCRIPTION_TEMPLATES: Dict[str, str] = {
    MeasurementType.LINEAR.value: "Linear measurement: {value:.1f} {unit}",
    MeasurementType.AREA.value: "Area measurement: {value:.1f} {unit}",
    MeasurementType.COUNT.value: "Count: {value:.0f} {unit}",
}


def _draft_key(draft: MeasurementDraft) -> Tuple:
    return (
        draft.type,
        draft.page_number,
        draft.scale,
        tuple((p.x, p.y) for p in draft.points),
        draft.label,
    )


def _log_notifier(title: str, message: str) -> None:
    logger.warning("user_notification", title=title, message=message)


class TakeoffWorkflow:
    """Persists finalized measurements for one plan file.

    Args:
        store: Persistence collaborator.
        project_id: Owning project.
        plan_file_id: Plan file being measured.
        notifier: Called with ``(title, message)`` for user-visible errors.
    """

    def __init__(
        self,
        store: MeasurementStore,
        project_id: str,
        plan_file_id: str,
        notifier: Optional[Notifier] = None
    ):
        self.store = store
        self.project_id = project_id
        self.plan_file_id = plan_file_id
        self.notifier = notifier or _log_notifier
        self._in_flight: Set[Tuple] = set()
        self._lock = asyncio.Lock()

    @property
    def saves_in_flight(self) -> int:
        return len(self._in_flight)

    async def submit(self, draft: MeasurementDraft) -> str:
        """Save a finalized draft and return its measurement ID.

        Raises:
            CaptureError: If the same draft is already being saved.
            TakeoffError: If the save fails; the user has been notified and
                nothing is retried.
        """
        key = _draft_key(draft)
        async with self._lock:
            if key in self._in_flight:
                raise CaptureError(
                    code=ErrorCode.SAVE_IN_FLIGHT,
                    message="This measurement is still being saved",
                    tool=draft.type
                )
            self._in_flight.add(key)

        try:
            return await self.store.save_measurement(self.project_id, self.plan_file_id, draft)
        except TakeoffError as e:
            self.notifier("Error saving measurement", e.message)
            raise
        finally:
            self._in_flight.discard(key)

    def offer_takeoff_item(self, draft: MeasurementDraft) -> Optional[TakeoffItemRequest]:
        """Pre-filled takeoff item proposal for a saved draft.

        Notes carry no quantity and get no proposal. The category is left for
        the user to choose, so the proposal is returned as a plain template
        via ``model_construct``.
        """
        template = DESCRIPTION_TEMPLATES.get(draft.type)
        if template is None:
            return None
        return TakeoffItemRequest.model_construct(
            category="",
            description=template.format(value=draft.value, unit=draft.unit),
            quantity=draft.value,
            unit=draft.unit,
            draft=True,
        )

    async def accept_takeoff_item(
        self,
        measurement_id: str,
        request: TakeoffItemRequest
    ) -> str:
        """Create the takeoff item and link it to the measurement.

        The request is validated first, so an offer whose category was never
        chosen is rejected before anything is written.

        Raises:
            pydantic.ValidationError: If the request is incomplete.
            TakeoffError: If the store fails; the user has been notified.
        """
        request = TakeoffItemRequest.model_validate(request.model_dump())
        try:
            return await self.store.create_takeoff_item(measurement_id, request)
        except TakeoffError as e:
            self.notifier("Error creating takeoff item", e.message)
            raise

    async def delete(self, measurement_id: str) -> bool:
        """Delete a measurement; returns True if a takeoff item link was cleared."""
        try:
            return await self.store.delete_measurement(measurement_id)
        except TakeoffError as e:
            self.notifier("Error deleting measurement", e.message)
            raise
