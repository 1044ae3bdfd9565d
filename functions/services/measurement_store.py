"""Firestore persistence for blueprint measurements and takeoff items.

Provides the Save / Load / Link / Delete operations behind the measurement
overlay, plus the project-level reads used by variance and QA reports.

Layout:
  /blueprintMeasurements/{measurementId}
  /projects/{projectId}/takeoffItems/{takeoffItemId}
  /projects/{projectId}/actualCosts/{actualId}
  /projects/{projectId}/rfis/{rfiId}
"""

from datetime import datetime, timezone
from typing import Dict, Any, Optional, List
import inspect
import structlog

from firebase_admin import firestore
from pydantic import ValidationError as PydanticValidationError

from config.errors import TakeoffError, ErrorCode
from models.actuals import ActualCost
from models.measurement import Measurement, MeasurementDraft
from models.qa import RFI
from models.takeoff_item import TakeoffItem, TakeoffItemRequest

logger = structlog.get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created_sort_key(measurement: Measurement):
    created = measurement.created_at
    if created is None:
        return _EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def _measurements_from_docs(docs) -> List[Measurement]:
    """Parse measurement documents, leaving out any that fail validation."""
    results = []
    for doc in docs:
        try:
            results.append(Measurement.from_firestore(doc.id, doc.to_dict() or {}))
        except PydanticValidationError as e:
            logger.warning(
                "measurement_skipped",
                measurement_id=doc.id,
                errors=[err["msg"] for err in e.errors()],
            )
    return results


class MeasurementStore:
    """Service for measurement and takeoff item Firestore operations.

    Note: Firebase Admin SDK for Python is synchronous. Methods are
    marked async for interface compatibility but operations are sync.
    """

    COLLECTION_MEASUREMENTS = "blueprintMeasurements"
    COLLECTION_PROJECTS = "projects"
    SUBCOLLECTION_TAKEOFF_ITEMS = "takeoffItems"
    SUBCOLLECTION_ACTUALS = "actualCosts"
    SUBCOLLECTION_RFIS = "rfis"

    def __init__(self, db=None):
        """Initialize MeasurementStore.

        Args:
            db: Optional Firestore client. If not provided, uses default.
        """
        self._db = db

    @property
    def db(self):
        """Get Firestore client (lazy initialization)."""
        if self._db is None:
            self._db = firestore.client()
        return self._db

    async def _maybe_await(self, result: Any) -> Any:
        """Await result if it is awaitable (supports AsyncMock in unit tests)."""
        if inspect.isawaitable(result):
            return await result
        return result

    def _measurement_ref(self, measurement_id: str):
        return self.db.collection(self.COLLECTION_MEASUREMENTS).document(measurement_id)

    def _project_collection(self, project_id: str, name: str):
        return (
            self.db
            .collection(self.COLLECTION_PROJECTS)
            .document(project_id)
            .collection(name)
        )

    # =========================================================================
    # Measurements
    # =========================================================================

    async def save_measurement(
        self,
        project_id: str,
        plan_file_id: str,
        draft: MeasurementDraft
    ) -> str:
        """Persist a finalized measurement.

        Args:
            project_id: Owning project.
            plan_file_id: Plan file (document) the measurement was drawn on.
            draft: Complete, validated measurement payload.

        Returns:
            The assigned measurement ID.

        Raises:
            TakeoffError: If Firestore operation fails.
        """
        try:
            doc_ref = self.db.collection(self.COLLECTION_MEASUREMENTS).document()

            data = draft.to_firestore_dict()
            data.update({
                "projectId": project_id,
                "planFileId": plan_file_id,
                "takeoffItemId": None,
                "createdAt": firestore.SERVER_TIMESTAMP,
                "updatedAt": firestore.SERVER_TIMESTAMP,
            })

            await self._maybe_await(doc_ref.set(data))
            logger.info(
                "measurement_saved",
                measurement_id=doc_ref.id,
                plan_file_id=plan_file_id,
                type=draft.type,
                value=draft.value,
                page=draft.page_number,
            )
            return doc_ref.id

        except Exception as e:
            logger.error("measurement_save_failed", plan_file_id=plan_file_id, error=str(e))
            raise TakeoffError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to save measurement: {str(e)}",
                details={"plan_file_id": plan_file_id}
            )

    async def get_measurement(self, measurement_id: str) -> Optional[Measurement]:
        """Fetch a measurement by ID.

        Returns:
            The measurement or None if not found.

        Raises:
            TakeoffError: If Firestore operation fails.
        """
        try:
            doc = await self._maybe_await(self._measurement_ref(measurement_id).get())
            if doc.exists:
                return Measurement.from_firestore(doc.id, doc.to_dict() or {})
            return None

        except Exception as e:
            logger.error("measurement_get_failed", measurement_id=measurement_id, error=str(e))
            raise TakeoffError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to get measurement: {str(e)}",
                details={"measurement_id": measurement_id}
            )

    async def _require_measurement(self, measurement_id: str) -> Measurement:
        measurement = await self.get_measurement(measurement_id)
        if measurement is None:
            raise TakeoffError(
                code=ErrorCode.MEASUREMENT_NOT_FOUND,
                message=f"Measurement not found: {measurement_id}",
                details={"measurement_id": measurement_id}
            )
        return measurement

    async def list_measurements(
        self,
        plan_file_id: str,
        page_number: int
    ) -> List[Measurement]:
        """Load the measurements saved on one page of a plan file.

        Returns:
            Measurements ordered by creation time.

        Raises:
            TakeoffError: If Firestore operation fails.
        """
        try:
            query = (
                self.db
                .collection(self.COLLECTION_MEASUREMENTS)
                .where(filter=firestore.FieldFilter("planFileId", "==", plan_file_id))
                .where(filter=firestore.FieldFilter("pageNumber", "==", page_number))
            )
            results = _measurements_from_docs(query.stream())
            results.sort(key=_created_sort_key)
            return results

        except Exception as e:
            logger.error(
                "measurements_list_failed",
                plan_file_id=plan_file_id,
                page=page_number,
                error=str(e)
            )
            raise TakeoffError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to load measurements: {str(e)}",
                details={"plan_file_id": plan_file_id, "page_number": page_number}
            )

    async def list_project_measurements(self, project_id: str) -> List[Measurement]:
        """All measurements in a project, across plan files and pages.

        Failures are logged and yield an empty list.
        """
        try:
            query = (
                self.db
                .collection(self.COLLECTION_MEASUREMENTS)
                .where(filter=firestore.FieldFilter("projectId", "==", project_id))
            )
            return _measurements_from_docs(query.stream())
        except Exception as e:
            logger.warning("project_measurements_list_failed", project_id=project_id, error=str(e))
            return []

    async def link_line_item(self, measurement_id: str, takeoff_item_id: str) -> None:
        """Record that a measurement justifies a takeoff item.

        A measurement carries at most one link; relinking clears the reverse
        reference on the previously linked item.

        Raises:
            TakeoffError: If either document is missing or the write fails.
        """
        measurement = await self._require_measurement(measurement_id)
        items = self._project_collection(measurement.project_id, self.SUBCOLLECTION_TAKEOFF_ITEMS)

        try:
            item_ref = items.document(takeoff_item_id)
            item_doc = await self._maybe_await(item_ref.get())
        except Exception as e:
            logger.error("takeoff_item_get_failed", takeoff_item_id=takeoff_item_id, error=str(e))
            raise TakeoffError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to get takeoff item: {str(e)}",
                details={"takeoff_item_id": takeoff_item_id}
            )

        if not item_doc.exists:
            raise TakeoffError(
                code=ErrorCode.TAKEOFF_ITEM_NOT_FOUND,
                message=f"Takeoff item not found: {takeoff_item_id}",
                details={"takeoff_item_id": takeoff_item_id}
            )

        try:
            batch = self.db.batch()
            batch.update(self._measurement_ref(measurement_id), {
                "takeoffItemId": takeoff_item_id,
                "updatedAt": firestore.SERVER_TIMESTAMP,
            })
            batch.update(item_ref, {
                "measurementId": measurement_id,
                "updatedAt": firestore.SERVER_TIMESTAMP,
            })

            previous = measurement.linked_line_item_id
            if previous and previous != takeoff_item_id:
                await self._clear_reverse_reference(batch, items.document(previous), measurement_id)

            await self._maybe_await(batch.commit())
            logger.info(
                "measurement_linked",
                measurement_id=measurement_id,
                takeoff_item_id=takeoff_item_id,
                previous_item_id=previous,
            )

        except Exception as e:
            logger.error("measurement_link_failed", measurement_id=measurement_id, error=str(e))
            raise TakeoffError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to link measurement: {str(e)}",
                details={"measurement_id": measurement_id, "takeoff_item_id": takeoff_item_id}
            )

    async def _clear_reverse_reference(self, batch, item_ref, measurement_id: str) -> bool:
        """Queue removal of ``measurementId`` on an item that points at us."""
        item_doc = await self._maybe_await(item_ref.get())
        if not item_doc.exists:
            return False
        if (item_doc.to_dict() or {}).get("measurementId") != measurement_id:
            return False
        batch.update(item_ref, {
            "measurementId": firestore.DELETE_FIELD,
            "updatedAt": firestore.SERVER_TIMESTAMP,
        })
        return True

    async def delete_measurement(self, measurement_id: str) -> bool:
        """Delete a measurement and clear the link on its takeoff item.

        Both writes are committed in one batch so a takeoff item never keeps
        a reference to a deleted measurement.

        Returns:
            True if a takeoff item reference was cleared.

        Raises:
            TakeoffError: If the measurement is missing or the write fails.
        """
        measurement = await self._require_measurement(measurement_id)

        try:
            batch = self.db.batch()
            batch.delete(self._measurement_ref(measurement_id))

            cleared = False
            if measurement.linked_line_item_id and measurement.project_id:
                item_ref = self._project_collection(
                    measurement.project_id, self.SUBCOLLECTION_TAKEOFF_ITEMS
                ).document(measurement.linked_line_item_id)
                cleared = await self._clear_reverse_reference(batch, item_ref, measurement_id)

            await self._maybe_await(batch.commit())
            logger.info(
                "measurement_deleted",
                measurement_id=measurement_id,
                takeoff_item_id=measurement.linked_line_item_id,
                link_cleared=cleared,
            )
            return cleared

        except Exception as e:
            logger.error("measurement_delete_failed", measurement_id=measurement_id, error=str(e))
            raise TakeoffError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to delete measurement: {str(e)}",
                details={"measurement_id": measurement_id}
            )

    # =========================================================================
    # Takeoff items
    # =========================================================================

    async def create_takeoff_item(
        self,
        measurement_id: str,
        request: TakeoffItemRequest
    ) -> str:
        """Create a takeoff item from a saved measurement and link the two.

        An item the measurement was previously linked to loses its reverse
        reference in the same batch.

        Returns:
            The new takeoff item ID.

        Raises:
            TakeoffError: If the measurement is missing or the write fails.
        """
        measurement = await self._require_measurement(measurement_id)

        try:
            items = self._project_collection(measurement.project_id, self.SUBCOLLECTION_TAKEOFF_ITEMS)
            item_ref = items.document()

            item_data = {
                "projectId": measurement.project_id,
                "planFileId": measurement.plan_file_id,
                "measurementId": measurement_id,
                "category": request.category,
                "description": request.description,
                "quantity": request.quantity,
                "unit": request.unit,
                "draft": request.draft,
                "createdAt": firestore.SERVER_TIMESTAMP,
                "updatedAt": firestore.SERVER_TIMESTAMP,
            }

            batch = self.db.batch()
            batch.set(item_ref, item_data)
            batch.update(self._measurement_ref(measurement_id), {
                "takeoffItemId": item_ref.id,
                "updatedAt": firestore.SERVER_TIMESTAMP,
            })

            previous = measurement.linked_line_item_id
            if previous:
                await self._clear_reverse_reference(batch, items.document(previous), measurement_id)

            await self._maybe_await(batch.commit())

            logger.info(
                "takeoff_item_created",
                takeoff_item_id=item_ref.id,
                measurement_id=measurement_id,
                previous_item_id=previous,
                category=request.category,
                quantity=request.quantity,
                unit=request.unit,
                draft=request.draft,
            )
            return item_ref.id

        except Exception as e:
            logger.error("takeoff_item_create_failed", measurement_id=measurement_id, error=str(e))
            raise TakeoffError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to create takeoff item: {str(e)}",
                details={"measurement_id": measurement_id}
            )

    async def list_takeoff_items(
        self,
        project_id: str,
        include_drafts: bool = True
    ) -> List[TakeoffItem]:
        """List takeoff items for a project.

        Raises:
            TakeoffError: If Firestore operation fails.
        """
        try:
            query = self._project_collection(project_id, self.SUBCOLLECTION_TAKEOFF_ITEMS)
            if not include_drafts:
                query = query.where(filter=firestore.FieldFilter("draft", "==", False))
            return [
                TakeoffItem.from_firestore(doc.id, doc.to_dict() or {})
                for doc in query.stream()
            ]
        except Exception as e:
            logger.error("takeoff_items_list_failed", project_id=project_id, error=str(e))
            raise TakeoffError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to list takeoff items: {str(e)}",
                details={"project_id": project_id}
            )

    # =========================================================================
    # Reporting reads
    # =========================================================================

    async def list_actual_costs(self, project_id: str) -> List[ActualCost]:
        """List estimated/actual cost records for a project.

        Raises:
            TakeoffError: If Firestore operation fails.
        """
        try:
            coll_ref = self._project_collection(project_id, self.SUBCOLLECTION_ACTUALS)
            return [
                ActualCost.model_validate({**(doc.to_dict() or {}), "id": doc.id})
                for doc in coll_ref.stream()
            ]
        except Exception as e:
            logger.error("actual_costs_list_failed", project_id=project_id, error=str(e))
            raise TakeoffError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to list actual costs: {str(e)}",
                details={"project_id": project_id}
            )

    async def list_open_rfis(self, project_id: str) -> List[RFI]:
        """List open RFIs for a project. Failures yield an empty list."""
        try:
            query = self._project_collection(project_id, self.SUBCOLLECTION_RFIS).where(
                filter=firestore.FieldFilter("status", "==", "open")
            )
            return [
                RFI.model_validate({**(doc.to_dict() or {}), "id": doc.id})
                for doc in query.stream()
            ]
        except Exception as e:
            logger.warning("rfis_list_failed", project_id=project_id, error=str(e))
            return []
