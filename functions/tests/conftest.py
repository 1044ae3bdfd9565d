"""Pytest configuration and shared fixtures for Takeoff tests."""

import os
import sys
import pytest
from unittest.mock import AsyncMock, MagicMock


# ============================================================================
# Ensure local imports work (config/, models/, services/, utils/)
# ============================================================================
#
# Our codebase uses absolute imports like `from models...` / `from services...`.
# This guarantees that `functions/` is importable as the top-level module root.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


# ============================================================================
# Firebase Mocks
# ============================================================================

@pytest.fixture
def mock_firestore_client():
    """Mock Firestore client."""
    client = MagicMock()

    collection_mock = MagicMock()
    document_mock = MagicMock()

    # Set up chain: client.collection().document()
    client.collection.return_value = collection_mock
    collection_mock.document.return_value = document_mock
    document_mock.id = "meas-generated"

    document_mock.get = AsyncMock(return_value=MagicMock(exists=False))
    document_mock.set = AsyncMock()
    document_mock.update = AsyncMock()
    document_mock.delete = AsyncMock()

    batch_mock = MagicMock()
    batch_mock.commit = AsyncMock()
    client.batch.return_value = batch_mock

    return client


@pytest.fixture
def mock_measurement_store(mock_firestore_client):
    """MeasurementStore with mocked client."""
    from services.measurement_store import MeasurementStore

    return MeasurementStore(db=mock_firestore_client)


@pytest.fixture
def fake_db():
    """In-memory Firestore."""
    from tests.fixtures.fake_firestore import FakeFirestore

    return FakeFirestore()


@pytest.fixture
def store(fake_db):
    """MeasurementStore backed by the in-memory Firestore."""
    from services.measurement_store import MeasurementStore

    return MeasurementStore(db=fake_db)


# ============================================================================
# Sample Data Fixtures
# ============================================================================

@pytest.fixture
def sample_project_id():
    return "proj-test-001"


@pytest.fixture
def sample_plan_file_id():
    return "plan-test-001"


@pytest.fixture
def unit_square():
    """Unit square vertices, counter-clockwise in page coordinates."""
    from models.measurement import Point

    return [Point(x=0, y=0), Point(x=0, y=1), Point(x=1, y=1), Point(x=1, y=0)]


@pytest.fixture
def calibrated_session():
    """Capture session on page 1 calibrated to 10 px/ft."""
    from services.capture import CaptureSession

    return CaptureSession(page_number=1, calibration_scale=10.0)


@pytest.fixture
def linear_draft():
    """30 px line at 10 px/ft = 3 LF."""
    from models.measurement import MeasurementDraft, Point

    return MeasurementDraft(
        type="linear",
        value=3.0,
        unit="LF",
        points=[Point(x=0, y=0), Point(x=30, y=0)],
        page_number=1,
        scale=10.0,
    )


@pytest.fixture
def area_draft():
    """20x10 px rectangle at 10 px/ft = 2 SF."""
    from models.measurement import MeasurementDraft, Point

    return MeasurementDraft(
        type="area",
        value=2.0,
        unit="SF",
        points=[Point(x=0, y=0), Point(x=20, y=0), Point(x=20, y=10), Point(x=0, y=10)],
        page_number=2,
        scale=10.0,
    )
