"""HTTP routes: flight upload/processing and result queries."""

from __future__ import annotations

import logging
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from flightfusion.config import AppConfig
from flightfusion.errors import ValidationError
from flightfusion.pipeline import FlightProcessor
from flightfusion.recording.models import FlightRequest

logger = logging.getLogger(__name__)


def _save_uploads(files: list[UploadFile], directory: Path) -> list[str]:
    """Write uploads under their original names so name order is preserved."""
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for upload in files:
        name = Path(upload.filename or "").name
        if not name:
            raise ValidationError("Uploaded file has no name")
        dest = directory / name
        with open(dest, "wb") as out:
            shutil.copyfileobj(upload.file, out)
        paths.append(str(dest))
    return paths


def _parse_date(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid flight date: {value!r}") from None


def create_router(processor: FlightProcessor, config: AppConfig) -> APIRouter:
    router = APIRouter()
    store = processor.store

    @router.post("/api/flights")
    async def api_process_flight(
        name: str = Form(...),
        date: str = Form(...),
        description: str = Form(""),
        camera_fov: Optional[float] = Form(None),
        log: Optional[UploadFile] = File(None),
        videos: Optional[list[UploadFile]] = File(None),
        tracking: Optional[list[UploadFile]] = File(None),
    ):
        batch_dir = Path(config.storage.upload_dir) / uuid.uuid4().hex
        log_path = None
        if log is not None:
            log_path = _save_uploads([log], batch_dir / "logs")[0]
        video_paths = _save_uploads(videos or [], batch_dir / "videos")
        tracking_paths = _save_uploads(tracking or [], batch_dir / "tracking")

        request = FlightRequest(
            name=name,
            date=_parse_date(date),
            description=description,
            log_path=log_path,
            video_paths=video_paths,
            tracking_paths=tracking_paths,
            camera_fov=camera_fov,
        )
        flight_id = await run_in_threadpool(processor.process, request)
        logger.info("API: flight #%d processed", flight_id)
        return JSONResponse({"success": True, "data": store.get_flight(flight_id)})

    @router.get("/api/flights")
    async def api_flights(limit: int = 100):
        return JSONResponse(store.list_flights(limit))

    @router.get("/api/flights/{flight_id}")
    async def api_flight(flight_id: int):
        flight = store.get_flight(flight_id)
        if flight is None:
            return JSONResponse({"error": "Flight not found"}, 404)
        return JSONResponse(flight)

    @router.get("/api/videos/{video_id}")
    async def api_video(video_id: int):
        video = store.get_video(video_id)
        if video is None:
            return JSONResponse({"error": "Video not found"}, 404)
        return JSONResponse(video)

    @router.get("/api/videos/{video_id}/frames")
    async def api_video_frames(video_id: int):
        if store.get_video(video_id) is None:
            return JSONResponse({"error": "Video not found"}, 404)
        return JSONResponse(store.get_frames(video_id))

    return router
