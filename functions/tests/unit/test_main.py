"""Tests for HTTP handler plumbing in main.py."""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from config.errors import ErrorCode, TakeoffError


@pytest.fixture(scope="module")
def main_module():
    with patch("firebase_admin.initialize_app"):
        import main
    return main


def _request(body, method="POST"):
    req = MagicMock()
    req.method = method
    req.get_json.return_value = body
    return req


def _body(response):
    return json.loads(response.get_data(as_text=True))


@pytest.fixture
def store_cls(main_module):
    store = MagicMock()
    store.save_measurement = AsyncMock(return_value="meas-1")
    store.link_line_item = AsyncMock()
    store.delete_measurement = AsyncMock(return_value=True)
    store.create_takeoff_item = AsyncMock(return_value="item-1")
    with patch.object(main_module, "MeasurementStore", return_value=store) as cls:
        cls.instance = store
        yield cls


class TestBuildDraft:

    def test_derives_unit_and_value(self, main_module):
        draft = main_module.build_draft({
            "type": "area",
            "points": [{"x": 0, "y": 0}, {"x": 20, "y": 0}, {"x": 20, "y": 10}, {"x": 0, "y": 10}],
            "pageNumber": 1,
            "scale": 10,
        })
        assert draft.unit == "SF"
        assert draft.value == pytest.approx(2.0)

    def test_missing_type(self, main_module):
        with pytest.raises(TakeoffError) as exc:
            main_module.build_draft({"points": []})
        assert exc.value.code == ErrorCode.MISSING_FIELD

    def test_unknown_type(self, main_module):
        with pytest.raises(TakeoffError) as exc:
            main_module.build_draft({"type": "volume"})
        assert exc.value.code == ErrorCode.INVALID_FIELD


class TestHandlers:

    def test_options_preflight(self, main_module):
        response = main_module._handle(_request({}, method="OPTIONS"), "save_measurement", AsyncMock())
        assert response.status_code == 204

    def test_save_measurement(self, main_module, store_cls):
        body = {
            "projectId": "proj-1",
            "planFileId": "plan-a",
            "measurement": {
                "type": "linear",
                "points": [{"x": 0, "y": 0}, {"x": 30, "y": 40}],
                "pageNumber": 1,
                "scale": 10,
            },
        }
        response = main_module._handle(_request(body), "save_measurement", main_module._save_measurement_async)

        assert response.status_code == 200
        data = _body(response)["data"]
        assert data == {"measurementId": "meas-1", "type": "linear", "value": 5.0, "unit": "LF"}
        project_id, plan_file_id, draft = store_cls.instance.save_measurement.call_args[0]
        assert (project_id, plan_file_id) == ("proj-1", "plan-a")
        assert draft.scale == 10

    def test_save_missing_field(self, main_module, store_cls):
        response = main_module._handle(
            _request({"projectId": "proj-1"}), "save_measurement", main_module._save_measurement_async
        )
        assert response.status_code == 400
        assert _body(response)["error"]["code"] == ErrorCode.MISSING_FIELD
        store_cls.instance.save_measurement.assert_not_called()

    def test_save_invalid_shape(self, main_module, store_cls):
        body = {
            "projectId": "proj-1",
            "planFileId": "plan-a",
            "measurement": {"type": "area", "points": [{"x": 0, "y": 0}, {"x": 1, "y": 1}], "pageNumber": 1, "scale": 1},
        }
        response = main_module._handle(_request(body), "save_measurement", main_module._save_measurement_async)

        assert response.status_code == 400
        error = _body(response)["error"]
        assert error["code"] == ErrorCode.VALIDATION_ERROR
        assert error["details"]["errors"]

    def test_list_rejects_non_numeric_page(self, main_module, store_cls):
        response = main_module._handle(
            _request({"planFileId": "plan-a", "pageNumber": "two"}),
            "list_measurements",
            main_module._list_measurements_async,
        )

        assert response.status_code == 400
        error = _body(response)["error"]
        assert error["code"] == ErrorCode.INVALID_FIELD
        assert error["details"] == {"field": "pageNumber"}
        store_cls.instance.list_measurements.assert_not_called()

    def test_not_found_maps_to_404(self, main_module, store_cls):
        store_cls.instance.delete_measurement.side_effect = TakeoffError(
            code=ErrorCode.MEASUREMENT_NOT_FOUND, message="Measurement not found: m9"
        )
        response = main_module._handle(
            _request({"measurementId": "m9"}), "delete_measurement", main_module._delete_measurement_async
        )
        assert response.status_code == 404

    def test_write_failure_maps_to_500(self, main_module, store_cls):
        store_cls.instance.link_line_item.side_effect = TakeoffError(
            code=ErrorCode.FIRESTORE_WRITE_FAILED, message="Failed to link measurement: offline"
        )
        response = main_module._handle(
            _request({"measurementId": "m1", "takeoffItemId": "i1"}),
            "link_measurement",
            main_module._link_measurement_async,
        )
        assert response.status_code == 500
        assert _body(response)["success"] is False

    def test_delete_reports_link_cleared(self, main_module, store_cls):
        response = main_module._handle(
            _request({"measurementId": "m1"}), "delete_measurement", main_module._delete_measurement_async
        )
        assert _body(response)["data"] == {"deleted": True, "linkCleared": True}

    def test_create_takeoff_rejects_unknown_category(self, main_module, store_cls):
        body = {
            "measurementId": "m1",
            "takeoffItem": {"category": "Spaceships", "description": "x", "quantity": 1, "unit": "EA"},
        }
        response = main_module._handle(_request(body), "create_takeoff_item", main_module._create_takeoff_async)
        assert response.status_code == 400
        store_cls.instance.create_takeoff_item.assert_not_called()


class TestCalibrationEndpoint:

    def test_scale(self, main_module):
        body = {"points": [{"x": 0, "y": 0}, {"x": 120, "y": 0}], "feet": "10"}
        response = main_module._handle(_request(body), "calibrate_scale", main_module._calibrate_scale_async)
        assert _body(response)["data"] == {"scale": 12.0, "unit": "px/ft"}

    @pytest.mark.parametrize("feet", ["abc", "0", "-3", None])
    def test_invalid_distance(self, main_module, feet):
        body = {"points": [{"x": 0, "y": 0}, {"x": 120, "y": 0}], "feet": feet}
        response = main_module._handle(_request(body), "calibrate_scale", main_module._calibrate_scale_async)
        assert response.status_code == 400
        assert _body(response)["error"]["code"] == ErrorCode.CALIBRATION_INVALID_DISTANCE

    def test_needs_two_points(self, main_module):
        body = {"points": [{"x": 0, "y": 0}], "feet": 10}
        response = main_module._handle(_request(body), "calibrate_scale", main_module._calibrate_scale_async)
        assert _body(response)["error"]["code"] == ErrorCode.CALIBRATION_INCOMPLETE


def test_compute_measurement(main_module):
    body = {"type": "count", "points": [{"x": 1, "y": 1}, {"x": 2, "y": 2}], "pageNumber": 3, "scale": 1}
    response = main_module._handle(_request(body), "compute_measurement", main_module._compute_measurement_async)
    assert _body(response)["data"] == {"type": "count", "value": 2.0, "unit": "EA"}


class TestLocalServer:

    @pytest.fixture
    def client(self, main_module):
        import serve_local

        self.project = serve_local.os.environ["GCLOUD_PROJECT"]
        return serve_local.app.test_client()

    def test_health(self, client):
        assert client.get("/health").get_json()["status"] == "ok"

    def test_routes_to_handler(self, client):
        response = client.post(
            f"/{self.project}/us-central1/calibrate_scale",
            json={"points": [{"x": 0, "y": 0}, {"x": 0, "y": 48}], "feet": 4},
        )
        assert response.status_code == 200
        assert response.get_json()["data"]["scale"] == 12.0
