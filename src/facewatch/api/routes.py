"""API route definitions."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse, Response

from facewatch.api.schemas import (
    DetectedFace,
    DetectionsResponse,
    ErrorResponse,
    FrameSizeModel,
    HealthResponse,
    NotificationModel,
    NotificationsResponse,
    SchedulerStatsModel,
    StatusResponse,
)
from facewatch.capture.image_loader import ImageTooLargeError
from facewatch.errors import AcquisitionFailedError, SchedulerStateError
from facewatch.pipeline.detection import FrameSize

if TYPE_CHECKING:
    from facewatch.ml.inference import InferencePool
    from facewatch.pipeline.detection import Detection
    from facewatch.session import DetectionSession

router = APIRouter(prefix="/api/v1")


def _get_session(request: Request) -> DetectionSession:
    session: DetectionSession = request.app.state.session
    return session


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _size_model(size: FrameSize | None) -> FrameSizeModel | None:
    if size is None:
        return None
    return FrameSizeModel(width=size.width, height=size.height)


def _faces(detections: list[Detection]) -> list[DetectedFace]:
    return [DetectedFace(**d.to_dict()) for d in detections]


def _status_response(session: DetectionSession) -> StatusResponse:
    current = session.status()
    scheduler = session.scheduler
    return StatusResponse(
        mode=current.mode,
        camera_active=current.camera_active,
        detection_state=scheduler.state,
        detecting=current.detecting,
        in_flight=scheduler.in_flight,
        native_size=_size_model(current.native_size),
        faces_detected=len(current.detections),
        stats=SchedulerStatsModel(**asdict(scheduler.stats)),
    )


def _detections_response(session: DetectionSession, detections: list[Detection]) -> DetectionsResponse:
    current = session.status()
    return DetectionsResponse(
        mode=current.mode,
        native_size=_size_model(current.native_size),
        count=len(detections),
        detections=_faces(detections),
    )


# -- Camera ------------------------------------------------------------------


@router.post(
    "/camera/start",
    response_model=StatusResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse}},
    summary="Start the live camera",
)
async def start_camera(request: Request) -> StatusResponse | JSONResponse:
    session = _get_session(request)
    try:
        session.start_camera()
    except AcquisitionFailedError as exc:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, f"Failed to access camera: {exc}")
    return _status_response(session)


@router.post("/camera/stop", response_model=StatusResponse, summary="Stop the live camera")
async def stop_camera(request: Request) -> StatusResponse:
    session = _get_session(request)
    session.stop_camera()
    return _status_response(session)


# -- Detection ---------------------------------------------------------------


@router.post(
    "/detection/start",
    response_model=StatusResponse,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="Start detection on the camera feed or loaded image",
)
async def start_detection(request: Request) -> StatusResponse | JSONResponse:
    session = _get_session(request)
    try:
        session.start_detection()
    except SchedulerStateError as exc:
        return _error(status.HTTP_409_CONFLICT, str(exc))
    return _status_response(session)


@router.post("/detection/stop", response_model=StatusResponse, summary="Stop detection")
async def stop_detection(request: Request) -> StatusResponse:
    session = _get_session(request)
    session.stop_detection()
    return _status_response(session)


@router.post(
    "/image",
    response_model=DetectionsResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_413_CONTENT_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"model": ErrorResponse},
    },
    summary="Upload an image and detect faces in it",
)
async def upload_image(
    request: Request,
    file: UploadFile,
    analyze: Annotated[bool, Query()] = True,
) -> DetectionsResponse | JSONResponse:
    """Replace the current input with the uploaded image.

    Detection runs once unless ``analyze=false``; the image can then be
    analyzed later, and again, with ``POST /image/analyze``.
    """
    if file.content_type is not None and not file.content_type.startswith("image/"):
        return _error(status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, "Please select a valid image file")

    session = _get_session(request)
    data = await file.read()
    try:
        if analyze:
            detections = await session.analyze_image(data, name=file.filename or "image")
        else:
            session.load_image(data, name=file.filename or "image")
            detections = []
    except ImageTooLargeError as exc:
        return _error(status.HTTP_413_CONTENT_TOO_LARGE, str(exc))
    except AcquisitionFailedError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))
    return _detections_response(session, detections)


@router.post(
    "/image/analyze",
    response_model=DetectionsResponse,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="Detect faces in the loaded image",
)
async def analyze_image(request: Request) -> DetectionsResponse | JSONResponse:
    session = _get_session(request)
    try:
        detections = await session.analyze()
    except SchedulerStateError as exc:
        return _error(status.HTTP_409_CONFLICT, str(exc))
    return _detections_response(session, detections)


@router.post("/reset", response_model=StatusResponse, summary="Stop everything and clear results")
async def reset(request: Request) -> StatusResponse:
    session = _get_session(request)
    session.reset()
    return _status_response(session)


# -- Read-only ---------------------------------------------------------------


@router.get("/status", response_model=StatusResponse, summary="Pipeline status")
async def get_status(request: Request) -> StatusResponse:
    return _status_response(_get_session(request))


@router.get("/detections", response_model=DetectionsResponse, summary="Latest detections")
async def get_detections(request: Request) -> DetectionsResponse:
    session = _get_session(request)
    return _detections_response(session, session.detections)


@router.get("/notifications", response_model=NotificationsResponse, summary="Recent notifications")
async def get_notifications(request: Request) -> NotificationsResponse:
    session = _get_session(request)
    return NotificationsResponse(
        notifications=[
            NotificationModel(level=n.level, message=n.message, timestamp=n.timestamp)
            for n in session.notifications
        ]
    )


@router.get(
    "/overlay",
    response_class=Response,
    responses={
        status.HTTP_200_OK: {"content": {"image/png": {}}},
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    },
    summary="Current frame with detection boxes",
)
async def get_overlay(
    request: Request,
    width: Annotated[int | None, Query(ge=1)] = None,
    height: Annotated[int | None, Query(ge=1)] = None,
) -> Response:
    """Return a PNG of the current frame, optionally scaled to a display size."""
    if (width is None) != (height is None):
        return _error(status.HTTP_400_BAD_REQUEST, "Pass both width and height, or neither")
    display = FrameSize(width=width, height=height) if width is not None and height is not None else None

    png = _get_session(request).render_overlay(display)
    if png is None:
        return _error(status.HTTP_404_NOT_FOUND, "No frame available")
    return Response(content=png, media_type="image/png")


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    session = _get_session(request)
    pool = _get_inference_pool(request)
    return HealthResponse(
        status="ok",
        detector=session.detector.model_name,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )
