"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from facewatch.api.routes import router
from facewatch.config import get_settings
from facewatch.ml.face_detector import build_detector
from facewatch.ml.inference import InferencePool
from facewatch.session import DetectionSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting FaceWatch (detector=%s, interval=%sms, camera=%s@%dx%d)",
        settings.detector,
        settings.detection_interval_ms,
        settings.camera_device,
        settings.camera_width,
        settings.camera_height,
    )

    inference_pool = InferencePool.from_settings(settings)
    app.state.inference_pool = inference_pool
    app.state.session = DetectionSession(settings, build_detector(settings, inference_pool))

    logger.info("FaceWatch ready")
    yield

    logger.info("Shutting down FaceWatch")
    await app.state.session.aclose()
    inference_pool.shutdown()
    logger.info("FaceWatch shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="FaceWatch",
        description="Face detection over a live camera feed or an uploaded image",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    settings = get_settings()
    uvicorn.run("facewatch.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
