"""Takeoff configuration settings.

Loads configuration from environment variables with sensible defaults.
"""

import os
from typing import Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Load .env file for non-secret configuration (emulator hosts, thresholds, etc.)
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    # Firebase Configuration
    firebase_project_id: Optional[str] = field(
        default_factory=lambda: os.getenv("FIREBASE_PROJECT_ID") or os.getenv("GCLOUD_PROJECT")
    )
    use_firebase_emulators: bool = field(default_factory=lambda: _env_bool("USE_FIREBASE_EMULATORS"))
    firestore_emulator_host: str = field(default_factory=lambda: os.getenv("FIRESTORE_EMULATOR_HOST", "localhost:8081"))

    # Measurement Configuration
    default_calibration_feet: float = field(default_factory=lambda: float(os.getenv("DEFAULT_CALIBRATION_FEET", "10")))

    # Variance thresholds (percent, positive = over budget)
    variance_critical_pct: float = field(default_factory=lambda: float(os.getenv("VARIANCE_CRITICAL_PCT", "10")))
    variance_warning_pct: float = field(default_factory=lambda: float(os.getenv("VARIANCE_WARNING_PCT", "5")))
    variance_favorable_pct: float = field(default_factory=lambda: float(os.getenv("VARIANCE_FAVORABLE_PCT", "-5")))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = field(default_factory=lambda: os.getenv("LOG_FORMAT", "console"))

    def validate(self) -> None:
        """Validate required settings are present and consistent.

        Raises:
            ValueError: If a setting is missing or out of range.
        """
        if self.is_deployed and not self.firebase_project_id and not self.is_emulator_mode:
            raise ValueError("FIREBASE_PROJECT_ID is required in production")
        if self.default_calibration_feet <= 0:
            raise ValueError("DEFAULT_CALIBRATION_FEET must be positive")
        if not (self.variance_favorable_pct < self.variance_warning_pct < self.variance_critical_pct):
            raise ValueError(
                "Variance thresholds must satisfy FAVORABLE < WARNING < CRITICAL"
            )
        if self.log_format.lower() not in ("console", "json"):
            raise ValueError(f"LOG_FORMAT must be console or json, got {self.log_format}")

    @property
    def is_deployed(self) -> bool:
        """Running inside Cloud Functions / Cloud Run."""
        return bool(os.getenv("K_SERVICE"))

    @property
    def is_emulator_mode(self) -> bool:
        """Check if running in emulator mode."""
        return self.use_firebase_emulators or _env_bool("FUNCTIONS_EMULATOR")


# Singleton settings instance
settings = Settings()
