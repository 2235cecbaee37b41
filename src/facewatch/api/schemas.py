"""Pydantic request/response schemas for the FaceWatch API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class DetectedFace(BaseModel):
    """A single detected face in native frame pixels."""

    x: float = Field(ge=0.0, description="Left edge in native pixels")
    y: float = Field(ge=0.0, description="Top edge in native pixels")
    width: float = Field(gt=0.0, description="Box width in native pixels")
    height: float = Field(gt=0.0, description="Box height in native pixels")
    confidence: float = Field(ge=0.0, le=1.0, description="Detection confidence (0.0-1.0)")


class FrameSizeModel(BaseModel):
    width: int
    height: int


class DetectionsResponse(BaseModel):
    """Latest detection batch for the current source."""

    mode: str | None = Field(description="Current input: 'camera', 'image', or null")
    native_size: FrameSizeModel | None
    count: int
    detections: list[DetectedFace]


class SchedulerStatsModel(BaseModel):
    ticks: int
    issued: int
    skipped_busy: int
    skipped_not_ready: int
    delivered: int
    discarded: int
    failed: int


class StatusResponse(BaseModel):
    """Pipeline status as shown by the UI controls."""

    mode: str | None
    camera_active: bool
    detection_state: str = Field(description="Scheduler state: 'idle', 'running', or 'stopping'")
    detecting: bool
    in_flight: bool
    native_size: FrameSizeModel | None
    faces_detected: int
    stats: SchedulerStatsModel


class NotificationModel(BaseModel):
    level: str = Field(description="'success', 'info', or 'error'")
    message: str
    timestamp: float


class NotificationsResponse(BaseModel):
    notifications: list[NotificationModel]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    detector: str
    concurrent_requests: int
    queue_depth: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
