"""Environment-based configuration for FaceWatch."""

from __future__ import annotations

from typing import Literal, Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from FACEWATCH_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FACEWATCH_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Detection cadence (live feed)
    detection_interval_ms: int = Field(default=500, ge=1)
    detect_timeout: float | None = Field(default=None, gt=0)

    # Detector selection
    detector: Literal["random"] = "random"
    random_min_faces: int = Field(default=1, ge=0)
    random_max_faces: int = Field(default=3, ge=0)
    random_min_confidence: float = Field(default=0.7, ge=0.0, lt=1.0)
    random_seed: int | None = None

    # Inference thread pool
    max_concurrent: int = Field(default=2, ge=1)
    inference_queue_timeout: float = Field(default=5.0, gt=0)

    # Camera
    camera_device: int = Field(default=0, ge=0)
    camera_width: int = Field(default=640, ge=1)
    camera_height: int = Field(default=480, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)

    # Notifications kept for the UI
    notification_history: int = Field(default=50, ge=1)

    @model_validator(mode="after")
    def _check_face_range(self) -> Self:
        if self.random_max_faces < self.random_min_faces:
            raise ValueError("random_max_faces must be >= random_min_faces")
        return self

    @property
    def detection_interval(self) -> float:
        """Live-feed detection cadence in seconds."""
        return self.detection_interval_ms / 1000.0


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
