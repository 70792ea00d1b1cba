from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from openai import OpenAI

from .config import PipelineConfig, require_api_key
from .gender import GenderDetector
from .media import FFmpegShell
from .timeline import TimelineReconstructor
from .tracker import JobTracker
from .transcription import BaseTranscriber, build_transcriber
from .translation import BaseTranslator, build_translator
from .tts import BaseTTS, build_tts
from .types import DubResult
from .voices import VoicePolicy
from .workspace import JobWorkspace, safe_unlink

logger = logging.getLogger(__name__)

EXTRACTING = 5
TRANSCRIBING = 15
SEGMENTS_DONE = 70
CONCATENATING = 75
REMIXING = 90

DEFAULT_KEY_ENV = "OPENAI_API_KEY"


class PipelineError(RuntimeError):
    """A pipeline stage produced something the next stage cannot use."""


def _ignore_progress(_: int) -> None:
    return None


class VideoDubbingAgent:
    """High-level orchestrator that turns a Chinese-language video into an English dub."""

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        client: Optional[OpenAI] = None,
        media: Optional[FFmpegShell] = None,
        transcriber: Optional[BaseTranscriber] = None,
        translator: Optional[BaseTranslator] = None,
        tts: Optional[BaseTTS] = None,
        gender_detector: Optional[GenderDetector] = None,
    ):
        self.config = config or PipelineConfig()
        if client is None:
            key_env = self._shared_client_key_env(transcriber, translator, tts)
            if key_env:
                client = OpenAI(api_key=require_api_key(key_env, "OpenAI services"))
        self.client = client
        self.media = media or FFmpegShell(self.config.media)
        self.transcriber = transcriber or build_transcriber(self.config.transcription, client=self.client)
        self.translator = translator or build_translator(self.config.translation, client=self.client)
        self.tts = tts or build_tts(self.config.tts, client=self.client, sample_rate=self.config.media.sample_rate)
        self.gender_detector = gender_detector or GenderDetector(self.media, self.config.gender)
        # unusable pools are a startup error, not a job error
        VoicePolicy(*self.tts.voice_pools)

    def dub(
        self,
        video_path: Path,
        output_path: Path,
        on_progress: Optional[Callable[[int], None]] = None,
        workspace_name: Optional[str] = None,
    ) -> DubResult:
        report = on_progress or _ignore_progress
        video_path = Path(video_path).resolve()
        if not video_path.exists():
            raise FileNotFoundError(video_path)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Starting dub of %s", video_path)
        with JobWorkspace(self.config.work_root, workspace_name) as workspace:
            try:
                return self._run_stages(video_path, output_path, workspace, report)
            except BaseException:
                safe_unlink(output_path)
                raise

    def run_job(self, job_id: str, video_path: Path, tracker: JobTracker, output_path: Path) -> Optional[DubResult]:
        """Run one tracked job; any failure ends as progress -1 instead of an exception."""
        try:
            result = self.dub(
                video_path,
                output_path,
                on_progress=lambda percent: tracker.update(job_id, percent),
                workspace_name=job_id,
            )
        except Exception:
            logger.exception("[Job %s] Failed", job_id)
            tracker.fail(job_id)
            return None
        tracker.complete(job_id, result.video_path)
        logger.info("[Job %s] Finished: %s", job_id, result.video_path)
        return result

    def _run_stages(
        self,
        video_path: Path,
        output_path: Path,
        workspace: JobWorkspace,
        report: Callable[[int], None],
    ) -> DubResult:
        report(EXTRACTING)
        logger.info("Step 1/4: Extracting source audio...")
        extracted_audio = self.media.extract_audio(video_path, workspace.allocate(".wav", "extracted"))

        report(TRANSCRIBING)
        logger.info("Step 2/4: Transcribing source audio...")
        segments = self.transcriber.transcribe(extracted_audio)
        if not segments:
            raise PipelineError(f"No speech segments found in {video_path}")

        logger.info("Step 3/4: Translating and voicing %s segments...", len(segments))
        reconstructor = TimelineReconstructor(
            media=self.media,
            translator=self.translator,
            gender_detector=self.gender_detector,
            tts=self.tts,
            workspace=workspace,
            progress_range=(TRANSCRIBING, SEGMENTS_DONE),
        )
        timeline, lines = reconstructor.reconstruct(
            segments,
            extracted_audio,
            VoicePolicy(*self.tts.voice_pools),
            on_progress=report,
        )

        logger.info("Step 4/4: Building dubbed track and remixing final video...")
        report(CONCATENATING)
        dubbed_audio = self.media.concatenate(timeline.paths, workspace.allocate(".wav", "dubbed"))
        report(REMIXING)
        self.media.remix(video_path, dubbed_audio, output_path)

        result = DubResult(
            video_path=output_path,
            lines=lines,
            timeline_entries=len(timeline),
            silence_seconds=timeline.silence_duration,
        )
        logger.info(
            "Dub completed: %s clips, %.2fs of silence -> %s",
            result.timeline_entries,
            result.silence_seconds,
            output_path,
        )
        return result

    def _shared_client_key_env(self, transcriber, translator, tts) -> Optional[str]:
        """Key variable for one client shared by every OpenAI-backed stage, or None.

        Stages with their own key variable or endpoint resolve their own client.
        """
        configs = []
        if transcriber is None:
            configs.append(self.config.transcription)
        if translator is None:
            configs.append(self.config.translation)
        if tts is None:
            configs.append(self.config.tts)
        openai_configs = [cfg for cfg in configs if (cfg.provider or "openai").lower() == "openai"]
        if not openai_configs:
            return None
        key_envs = {cfg.api_key_env or DEFAULT_KEY_ENV for cfg in openai_configs}
        if key_envs != {DEFAULT_KEY_ENV} or any(cfg.api_base for cfg in openai_configs):
            return None
        return DEFAULT_KEY_ENV
