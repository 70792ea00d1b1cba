from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


def safe_unlink(path: Optional[Path]) -> None:
    if path is None:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove %s: %s", path, exc)


class JobWorkspace:
    """Scratch directory holding the intermediate files of one dub job.

    Every path handed out by :meth:`allocate` is removed by :meth:`cleanup`,
    which the pipeline runs whether the job succeeded or not.
    """

    def __init__(self, root: Path, name: Optional[str] = None):
        self.directory = Path(root) / (name or uuid.uuid4().hex)
        self._paths: List[Path] = []

    def __enter__(self) -> "JobWorkspace":
        self.directory.mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def allocate(self, suffix: str, prefix: str = "clip") -> Path:
        path = self.directory / f"{prefix}_{len(self._paths):04d}_{uuid.uuid4().hex[:8]}{suffix}"
        self._paths.append(path)
        return path

    def release(self, path: Path) -> None:
        safe_unlink(path)

    @property
    def paths(self) -> List[Path]:
        return list(self._paths)

    def cleanup(self) -> None:
        for path in self._paths:
            safe_unlink(path)
        self._paths.clear()
        try:
            self.directory.rmdir()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Workspace %s not removed: %s", self.directory, exc)
