from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

FAILED = -1
COMPLETE = 100


def is_terminal(progress: Optional[int]) -> bool:
    return progress is not None and (progress >= COMPLETE or progress < 0)


class JobTracker:
    """Thread-safe registry of job progress and finished artifacts.

    Progress runs 0..99 while a job is running, then ends at 100 (complete,
    with an output path) or -1 (failed). Terminal jobs never change again;
    they leave the registry through :meth:`fetch_and_retire` or :meth:`sweep`.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._lock = threading.Lock()
        self._progress: Dict[str, int] = {}
        self._outputs: Dict[str, Path] = {}
        self._touched: Dict[str, float] = {}
        self._clock = clock

    def create(self, job_id: str) -> None:
        with self._lock:
            if job_id in self._progress:
                raise ValueError(f"Job {job_id} already exists")
            self._set(job_id, 0)

    def update(self, job_id: str, percent: int) -> None:
        with self._lock:
            current = self._progress.get(job_id)
            if current is None or is_terminal(current):
                logger.warning("Ignoring progress %s for job %s in state %s", percent, job_id, current)
                return
            self._set(job_id, max(0, min(int(percent), COMPLETE - 1)))

    def fail(self, job_id: str) -> None:
        with self._lock:
            current = self._progress.get(job_id)
            if is_terminal(current):
                logger.warning("Job %s already finished with %s, not marking failed", job_id, current)
                return
            self._set(job_id, FAILED)

    def complete(self, job_id: str, output_path: Path) -> None:
        with self._lock:
            current = self._progress.get(job_id)
            if current is None or is_terminal(current):
                raise ValueError(f"Job {job_id} cannot complete from state {current}")
            self._outputs[job_id] = Path(output_path)
            self._set(job_id, COMPLETE)

    def progress(self, job_id: str) -> Optional[int]:
        with self._lock:
            return self._progress.get(job_id)

    def output(self, job_id: str) -> Optional[Path]:
        with self._lock:
            return self._outputs.get(job_id)

    def fetch_and_retire(self, job_id: str) -> Optional[Path]:
        """Hand out a finished artifact exactly once.

        Both registry entries are dropped; deleting the file after delivery is
        the caller's job.
        """
        with self._lock:
            output = self._outputs.pop(job_id, None)
            if output is None:
                return None
            self._progress.pop(job_id, None)
            self._touched.pop(job_id, None)
            return output

    def sweep(self, max_age_seconds: float) -> List[Path]:
        """Retire terminal jobs untouched for ``max_age_seconds``; returns their artifacts."""
        cutoff = self._clock() - max_age_seconds
        expired: List[Path] = []
        with self._lock:
            stale = [
                job_id
                for job_id, progress in self._progress.items()
                if is_terminal(progress) and self._touched.get(job_id, 0.0) <= cutoff
            ]
            for job_id in stale:
                self._progress.pop(job_id, None)
                self._touched.pop(job_id, None)
                output = self._outputs.pop(job_id, None)
                if output is not None:
                    expired.append(output)
        if stale:
            logger.info("Swept %s abandoned jobs", len(stale))
        return expired

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._progress

    def _set(self, job_id: str, value: int) -> None:
        self._progress[job_id] = value
        self._touched[job_id] = self._clock()
