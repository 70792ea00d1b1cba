from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from dub_agent.config import MediaConfig, PipelineConfig
from dub_agent.media import MediaError
from dub_agent.pipeline import VideoDubbingAgent
from dub_agent.types import Segment

MALE_POOL = ("m0", "m1", "m2", "m3")
FEMALE_POOL = ("f0", "f1", "f2", "f3")


class FakeMedia:
    """Records every ffmpeg operation and writes a placeholder file for its output."""

    def __init__(self, rms_levels: Sequence[float] = (-20.0,), fail_on: Sequence[str] = ()):
        self.config = MediaConfig()
        self.calls: List[tuple] = []
        self.rms_levels = list(rms_levels)
        self.fail_on = set(fail_on)

    def _produce(self, op: str, output_path: Path, *details) -> Path:
        self.calls.append((op, *details))
        if op in self.fail_on:
            raise MediaError(f"{op} failed")
        Path(output_path).write_bytes(b"\x00")
        return Path(output_path)

    def ops(self) -> List[str]:
        return [call[0] for call in self.calls]

    def extract_audio(self, source_media, output_path):
        return self._produce("extract_audio", output_path, source_media)

    def synthesize_silence(self, duration, output_path):
        if duration <= 0:
            return None
        return self._produce("silence", output_path, duration)

    def extract_clip(self, source_audio, start, end, output_path):
        return self._produce("clip", output_path, start, end)

    def concatenate(self, clips, output_path):
        return self._produce("concatenate", output_path, list(clips))

    def remix(self, source_media, dubbed_audio, output_path):
        return self._produce("remix", output_path, source_media, dubbed_audio)

    def measure_rms_levels(self, audio_path):
        self.calls.append(("rms", audio_path))
        if "rms" in self.fail_on:
            raise MediaError("astats failed")
        return list(self.rms_levels)


class FakeTranscriber:
    def __init__(self, segments: Sequence[Segment]):
        self.segments = list(segments)
        self.calls: List[Path] = []

    def transcribe(self, audio_path):
        self.calls.append(audio_path)
        return list(self.segments)


class FakeTranslator:
    def __init__(self, fail_on: Optional[str] = None):
        self.calls: List[str] = []
        self.fail_on = fail_on

    def translate(self, text):
        self.calls.append(text)
        if self.fail_on is not None and self.fail_on in text:
            raise RuntimeError("translation service unavailable")
        return f"EN({text.rstrip('!?！？')})"


class FakeTTS:
    def __init__(self, male=MALE_POOL, female=FEMALE_POOL):
        self._pools = (male, female)
        self.calls: List[tuple] = []

    @property
    def voice_pools(self):
        return self._pools

    def synthesize(self, text, voice, emotion, output_path):
        self.calls.append((text, voice, emotion))
        Path(output_path).write_bytes(b"\x00")
        return Path(output_path)


@pytest.fixture
def pipeline_config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(work_root=tmp_path / "work")


@pytest.fixture
def source_video(tmp_path: Path) -> Path:
    video = tmp_path / "source.mp4"
    video.write_bytes(b"\x00" * 16)
    return video


@pytest.fixture
def make_agent(pipeline_config: PipelineConfig):
    def factory(segments, media=None, translator=None, tts=None):
        return VideoDubbingAgent(
            config=pipeline_config,
            media=media or FakeMedia(),
            transcriber=FakeTranscriber(segments),
            translator=translator or FakeTranslator(),
            tts=tts or FakeTTS(),
        )

    return factory
