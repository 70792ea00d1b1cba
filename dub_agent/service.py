from __future__ import annotations

import logging
import shutil
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from .config import ServiceConfig
from .pipeline import VideoDubbingAgent
from .tracker import JobTracker
from .workspace import safe_unlink

logger = logging.getLogger(__name__)


def new_job_id() -> str:
    return uuid.uuid4().hex


class DubbingService:
    """Runs dub jobs in the background and keeps the tracker in sync with them."""

    def __init__(
        self,
        agent: VideoDubbingAgent,
        config: Optional[ServiceConfig] = None,
        tracker: Optional[JobTracker] = None,
        id_factory: Callable[[], str] = new_job_id,
    ):
        self.agent = agent
        self.config = config or ServiceConfig()
        self.tracker = tracker or JobTracker()
        self.id_factory = id_factory
        self.config.upload_dir.mkdir(parents=True, exist_ok=True)
        self.config.output_dir.mkdir(parents=True, exist_ok=True)
        self._executor = ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="dub-job")

    def output_path(self, job_id: str) -> Path:
        return self.config.output_dir / f"{job_id}.mp4"

    def save_upload(self, stream: BinaryIO, filename: Optional[str] = None) -> Path:
        suffix = Path(filename or "").suffix or ".mp4"
        destination = self.config.upload_dir / f"{uuid.uuid4().hex}{suffix}"
        with open(destination, "wb") as buffer:
            shutil.copyfileobj(stream, buffer)
        return destination

    def submit(self, video_path: Path) -> str:
        """Register a job for ``video_path`` and start it; returns immediately."""
        self.sweep()
        job_id = self.id_factory()
        self.tracker.create(job_id)
        try:
            future = self._executor.submit(self._run, job_id, Path(video_path))
        except Exception:
            logger.error("[Job %s] Could not be scheduled", job_id)
            self.tracker.fail(job_id)
            safe_unlink(Path(video_path))
            raise
        future.add_done_callback(lambda done, job_id=job_id: self._finished(job_id, done))
        logger.info("[Job %s] Queued %s", job_id, video_path)
        return job_id

    def retire(self, job_id: str) -> Optional[Path]:
        """Claim the artifact of a completed job; ``None`` if there is none (anymore)."""
        return self.tracker.fetch_and_retire(job_id)

    def sweep(self) -> None:
        if self.config.job_ttl_seconds is None:
            return
        for artifact in self.tracker.sweep(self.config.job_ttl_seconds):
            safe_unlink(artifact)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run(self, job_id: str, video_path: Path) -> None:
        try:
            self.agent.run_job(job_id, video_path, self.tracker, self.output_path(job_id))
        finally:
            safe_unlink(video_path)

    def _finished(self, job_id: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("[Job %s] Crashed outside the pipeline: %r", job_id, exc)
            self.tracker.fail(job_id)
