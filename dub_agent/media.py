from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from .config import MediaConfig

logger = logging.getLogger(__name__)

BinaryResolver = Callable[[], Optional[str]]

RMS_PATTERN = re.compile(r"RMS level dB: (-?\d+(?:\.\d+)?)")


class MediaError(RuntimeError):
    """An ffmpeg invocation failed."""


class BinaryNotFoundError(MediaError):
    """The ffmpeg binary could not be located."""


def explicit_path(path: Optional[str]) -> BinaryResolver:
    return lambda: path or None


def from_env(variable: str = "FFMPEG_BINARY") -> BinaryResolver:
    return lambda: os.getenv(variable) or None


def from_path(name: str = "ffmpeg") -> BinaryResolver:
    return lambda: shutil.which(name)


def first_of(*resolvers: BinaryResolver) -> BinaryResolver:
    """Try each resolver in order and return the first hit."""

    def resolve() -> Optional[str]:
        for resolver in resolvers:
            found = resolver()
            if found:
                return found
        return None

    return resolve


def default_resolver(config: MediaConfig) -> BinaryResolver:
    return first_of(explicit_path(config.ffmpeg_path), from_env(), from_path())


def _tail(text: str, limit: int = 2000) -> str:
    text = text or ""
    return text if len(text) <= limit else text[-limit:]


def _seconds(value: float) -> str:
    return f"{value:.3f}"


class FFmpegShell:
    """Thin wrapper around the ffmpeg binary with a fixed argument grammar per operation."""

    def __init__(self, config: Optional[MediaConfig] = None, resolver: Optional[BinaryResolver] = None):
        self.config = config or MediaConfig()
        resolver = resolver or default_resolver(self.config)
        binary = resolver()
        if not binary:
            raise BinaryNotFoundError("FFmpeg binary not found. Install ffmpeg or set FFMPEG_BINARY.")
        self.binary = binary
        logger.info("Using ffmpeg binary at %s", self.binary)

    def run(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        argv = [self.binary, "-hide_banner", "-nostdin", "-y", *args]
        logger.debug("Running: %s", " ".join(argv))
        try:
            return subprocess.run(
                argv,
                check=True,
                capture_output=True,
                text=True,
                timeout=self.config.timeout_seconds,
            )
        except subprocess.CalledProcessError as exc:
            raise MediaError(f"ffmpeg exited with status {exc.returncode}: {_tail(exc.stderr)}") from exc
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise MediaError(f"ffmpeg could not be run: {exc}") from exc

    def extract_audio(self, source_media: Path, output_path: Path) -> Path:
        self.run(["-i", str(source_media), "-vn", "-map", "a", "-q:a", "0", str(output_path)])
        logger.info("Extracted audio: %s", output_path)
        return output_path

    def synthesize_silence(self, duration: float, output_path: Path) -> Optional[Path]:
        if duration <= 0:
            return None
        self.run(
            [
                "-f",
                "lavfi",
                "-i",
                f"anullsrc=r={self.config.sample_rate}:cl=mono",
                "-t",
                _seconds(duration),
                "-c:a",
                "pcm_s16le",
                str(output_path),
            ]
        )
        return output_path

    def extract_clip(self, source_audio: Path, start: float, end: float, output_path: Path) -> Path:
        self.run(
            [
                "-i",
                str(source_audio),
                "-ss",
                _seconds(start),
                "-to",
                _seconds(end),
                "-c",
                "copy",
                str(output_path),
            ]
        )
        return output_path

    def concatenate(self, clips: Iterable[Path], output_path: Path) -> Path:
        clips = list(clips)
        if not clips:
            raise MediaError("Nothing to concatenate.")
        list_file = output_path.with_name(f"{output_path.stem}_concat.txt")
        lines = [f"file '{Path(clip).resolve().as_posix()}'" for clip in clips]
        list_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
        try:
            self.run(["-f", "concat", "-safe", "0", "-i", str(list_file), "-c", "copy", str(output_path)])
        finally:
            list_file.unlink(missing_ok=True)
        logger.info("Concatenated %s clips into %s", len(clips), output_path)
        return output_path

    def remix(self, source_media: Path, dubbed_audio: Path, output_path: Path) -> Path:
        level = self.config.original_audio_mix_level
        graph = (
            f"[0:a]volume={level}[a0];[1:a]volume=1.0[a1];"
            "[a0][a1]amix=inputs=2:dropout_transition=0:normalize=0[aout]"
        )
        self.run(
            [
                "-i",
                str(source_media),
                "-i",
                str(dubbed_audio),
                "-filter_complex",
                graph,
                "-map",
                "0:v:0",
                "-map",
                "[aout]",
                "-c:v",
                "copy",
                "-shortest",
                str(output_path),
            ]
        )
        logger.info("Wrote remixed video to %s", output_path)
        return output_path

    def measure_rms_levels(self, audio_path: Path) -> List[float]:
        result = self.run(["-i", str(audio_path), "-af", "astats=metadata=1:reset=1", "-f", "null", "-"])
        return [float(value) for value in RMS_PATTERN.findall(result.stderr or "")]
