from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from fastapi import APIRouter, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from .config import ServiceConfig, config_from_env
from .pipeline import VideoDubbingAgent
from .service import DubbingService
from .tracker import JobTracker, is_terminal
from .workspace import safe_unlink

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dub")


def _service(request: Request) -> DubbingService:
    return request.app.state.service


async def progress_events(tracker: JobTracker, job_id: str, interval: float) -> AsyncIterator[Dict[str, str]]:
    """Yield the job's progress every ``interval`` seconds until it is terminal or gone."""
    while True:
        progress = tracker.progress(job_id)
        if progress is None:
            return
        yield {"data": str(progress)}
        if is_terminal(progress):
            return
        await asyncio.sleep(interval)


@router.post("")
def start_job(request: Request, video: UploadFile = File(...)):
    service = _service(request)
    upload_path = service.save_upload(video.file, video.filename)
    job_id = service.submit(upload_path)
    return {"jobId": job_id}


@router.get("/progress/{job_id}")
async def job_progress(request: Request, job_id: str):
    service = _service(request)
    if job_id not in service.tracker:
        raise HTTPException(status_code=404, detail="Unknown job")
    return EventSourceResponse(progress_events(service.tracker, job_id, service.config.poll_interval))


@router.get("/download")
def download(request: Request, job: str):
    service = _service(request)
    artifact = service.retire(job)
    if artifact is None:
        raise HTTPException(status_code=404, detail="No finished output for this job")
    if not artifact.exists():
        logger.warning("[Job %s] Output %s vanished before download", job, artifact)
        raise HTTPException(status_code=404, detail="No finished output for this job")
    return FileResponse(
        artifact,
        media_type="video/mp4",
        filename=service.config.download_filename,
        background=BackgroundTask(safe_unlink, artifact),
    )


def create_app(service: Optional[DubbingService] = None, config: Optional[ServiceConfig] = None) -> FastAPI:
    """Build the web app; without a service one is created, which fails fast on missing ffmpeg or keys."""
    if service is None:
        config = config or config_from_env()
        service = DubbingService(VideoDubbingAgent(config.pipeline), config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        service.shutdown(wait=True)

    app = FastAPI(title="dub-agent", lifespan=lifespan)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=service.config.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app
