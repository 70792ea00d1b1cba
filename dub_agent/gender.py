from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import GenderConfig
from .media import FFmpegShell, MediaError
from .types import FEMALE, GENDERS, MALE

logger = logging.getLogger(__name__)


class GenderDetector:
    """Guess a speaker's voice gender from the average RMS loudness of a short clip.

    Quiet clips (below ``threshold_db``) are treated as female, everything else as
    male. Detection never raises: measurement problems fall back to
    ``config.fallback`` so one noisy segment cannot fail a dub.
    """

    def __init__(self, media: FFmpegShell, config: Optional[GenderConfig] = None):
        self.media = media
        self.config = config or GenderConfig()
        if self.config.fallback not in GENDERS:
            raise ValueError(f"Unsupported fallback gender: {self.config.fallback}")

    def detect(self, audio_clip: Path) -> str:
        try:
            levels = self.media.measure_rms_levels(audio_clip)
        except MediaError as exc:
            logger.warning("Gender detection failed for %s, defaulting to %s: %s", audio_clip, self.config.fallback, exc)
            return self.config.fallback

        if not levels:
            logger.warning("No RMS statistics for %s, defaulting to %s", audio_clip, self.config.fallback)
            return self.config.fallback

        average = sum(levels) / len(levels)
        gender = FEMALE if average < self.config.threshold_db else MALE
        logger.debug("Average RMS %.2f dB over %s windows -> %s", average, len(levels), gender)
        return gender
