"""Unit tests for environment-driven settings."""

import pytest

from config.settings import Settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "FIREBASE_PROJECT_ID", "GCLOUD_PROJECT", "USE_FIREBASE_EMULATORS", "FUNCTIONS_EMULATOR",
        "K_SERVICE", "DEFAULT_CALIBRATION_FEET", "VARIANCE_CRITICAL_PCT", "VARIANCE_WARNING_PCT",
        "VARIANCE_FAVORABLE_PCT", "LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestValidate:

    def test_defaults_are_valid_locally(self, clean_env):
        Settings().validate()

    def test_deployed_without_project_fails(self, clean_env):
        clean_env.setenv("K_SERVICE", "save_measurement")
        with pytest.raises(ValueError, match="FIREBASE_PROJECT_ID"):
            Settings().validate()

    def test_deployed_project_from_gcloud_env(self, clean_env):
        clean_env.setenv("K_SERVICE", "save_measurement")
        clean_env.setenv("GCLOUD_PROJECT", "takeoff-prod")
        settings = Settings()
        settings.validate()
        assert settings.firebase_project_id == "takeoff-prod"

    def test_non_positive_calibration_default(self, clean_env):
        clean_env.setenv("DEFAULT_CALIBRATION_FEET", "0")
        with pytest.raises(ValueError, match="DEFAULT_CALIBRATION_FEET"):
            Settings().validate()

    def test_thresholds_out_of_order(self, clean_env):
        clean_env.setenv("VARIANCE_WARNING_PCT", "20")
        with pytest.raises(ValueError, match="Variance thresholds"):
            Settings().validate()

    def test_unknown_log_format(self, clean_env):
        clean_env.setenv("LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="LOG_FORMAT"):
            Settings().validate()
