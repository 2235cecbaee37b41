"""Tests for environment-based settings."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from facewatch.config import Settings, get_settings


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.detection_interval_ms == 500
        assert settings.detection_interval == pytest.approx(0.5)
        assert settings.detect_timeout is None
        assert settings.detector == "random"
        assert (settings.random_min_faces, settings.random_max_faces) == (1, 3)
        assert settings.random_min_confidence == pytest.approx(0.7)
        assert (settings.camera_width, settings.camera_height) == (640, 480)

    def test_env_overrides(self) -> None:
        env = {
            "FACEWATCH_DETECTION_INTERVAL_MS": "250",
            "FACEWATCH_DETECT_TIMEOUT": "1.5",
            "FACEWATCH_CAMERA_DEVICE": "2",
            "FACEWATCH_RANDOM_SEED": "99",
        }
        with patch.dict(os.environ, env):
            settings = get_settings()
        assert settings.detection_interval == pytest.approx(0.25)
        assert settings.detect_timeout == pytest.approx(1.5)
        assert settings.camera_device == 2
        assert settings.random_seed == 99

    def test_rejects_inverted_face_range(self) -> None:
        with pytest.raises(ValidationError, match="random_max_faces"):
            Settings(random_min_faces=4, random_max_faces=2)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"detection_interval_ms": 0},
            {"detect_timeout": 0},
            {"random_min_confidence": 1.0},
            {"max_concurrent": 0},
        ],
    )
    def test_rejects_out_of_range_values(self, overrides: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            Settings(**overrides)  # type: ignore[arg-type]

    def test_unknown_detector_rejected(self) -> None:
        with patch.dict(os.environ, {"FACEWATCH_DETECTOR": "yolo"}), pytest.raises(ValidationError):
            get_settings()
