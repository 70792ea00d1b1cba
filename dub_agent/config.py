from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional


class ConfigurationError(ValueError):
    """Raised when the process cannot be configured to run dub jobs."""


@dataclass
class MediaConfig:
    """Configuration for the ffmpeg shell adapter."""

    ffmpeg_path: Optional[str] = None  # falls back to $FFMPEG_BINARY, then PATH
    sample_rate: int = 24000  # matches OpenAI WAV speech so concat can stream-copy
    original_audio_mix_level: float = 0.15
    timeout_seconds: Optional[float] = None


@dataclass
class TranscriptionConfig:
    """Configuration for speech-to-text."""

    provider: str = "openai"
    model: str = "whisper-1"
    language: str = "zh"
    model_size: str = "base"  # local whisper only
    device: Optional[str] = None
    api_base: Optional[str] = None
    api_key_env: Optional[str] = "OPENAI_API_KEY"


@dataclass
class TranslationConfig:
    """Configuration for text translation."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_retries: int = 3
    retry_delay: float = 3.0
    api_base: Optional[str] = None
    api_key_env: Optional[str] = "OPENAI_API_KEY"


@dataclass
class GenderConfig:
    """Loudness heuristic used to pick a voice gender per speaker."""

    threshold_db: float = -12.5
    fallback: str = "male"


@dataclass
class TTSConfig:
    """Configuration for text-to-speech synthesis."""

    provider: str = "openai"
    model: str = "gpt-4o-mini-tts"
    format: str = "wav"
    max_retries: int = 3
    retry_delay: float = 3.0
    api_base: Optional[str] = None
    api_key_env: Optional[str] = "OPENAI_API_KEY"
    male_voices: List[str] = field(default_factory=lambda: ["onyx", "nova", "shimmer", "ballad"])
    female_voices: List[str] = field(default_factory=lambda: ["alloy", "verse", "fable", "coral"])
    edge_male_voices: List[str] = field(
        default_factory=lambda: [
            "en-US-GuyNeural",
            "en-US-ChristopherNeural",
            "en-US-EricNeural",
            "en-US-RogerNeural",
        ]
    )
    edge_female_voices: List[str] = field(
        default_factory=lambda: [
            "en-US-JennyNeural",
            "en-US-AriaNeural",
            "en-US-MichelleNeural",
            "en-US-AnaNeural",
        ]
    )
    edge_volume: str = "+0%"


@dataclass
class PipelineConfig:
    """Top level configuration for the dubbing agent."""

    media: MediaConfig = field(default_factory=MediaConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    translation: TranslationConfig = field(default_factory=TranslationConfig)
    gender: GenderConfig = field(default_factory=GenderConfig)
    tts: TTSConfig = field(default_factory=TTSConfig)
    work_root: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "dub_agent" / "work")


@dataclass
class ServiceConfig:
    """Settings for the background job service and its web front end."""

    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    upload_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "dub_agent" / "uploads")
    output_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "dub_agent" / "output")
    max_workers: int = 2
    poll_interval: float = 1.0
    job_ttl_seconds: Optional[float] = None  # None keeps undownloaded artifacts forever
    download_filename: str = "dubbed.mp4"
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])


def require_api_key(env_name: Optional[str], purpose: str) -> str:
    """Return the API key stored in ``env_name`` or fail initialization."""
    if not env_name:
        raise ConfigurationError(f"No API key environment variable configured for {purpose}.")
    api_key = os.getenv(env_name)
    if not api_key:
        raise ConfigurationError(
            f"API key for {purpose} not found. Please set environment variable '{env_name}'."
        )
    return api_key


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> ServiceConfig:
    """Build a :class:`ServiceConfig` from ``DUB_*`` environment variables."""
    env = os.environ if environ is None else environ
    config = ServiceConfig()
    pipeline = config.pipeline

    if env.get("FFMPEG_BINARY"):
        pipeline.media.ffmpeg_path = env["FFMPEG_BINARY"]
    if env.get("DUB_ORIGINAL_MIX_LEVEL"):
        pipeline.media.original_audio_mix_level = float(env["DUB_ORIGINAL_MIX_LEVEL"])
    if env.get("DUB_TRANSCRIPTION_PROVIDER"):
        pipeline.transcription.provider = env["DUB_TRANSCRIPTION_PROVIDER"]
    if env.get("DUB_SOURCE_LANGUAGE"):
        pipeline.transcription.language = env["DUB_SOURCE_LANGUAGE"]
    if env.get("DUB_TRANSLATION_PROVIDER"):
        pipeline.translation.provider = env["DUB_TRANSLATION_PROVIDER"]
        if pipeline.translation.provider == "deepseek":
            pipeline.translation.model = "deepseek-chat"
            pipeline.translation.api_key_env = "DEEPSEEK_API_KEY"
    if env.get("DUB_TRANSLATION_MODEL"):
        pipeline.translation.model = env["DUB_TRANSLATION_MODEL"]
    if env.get("DUB_TTS_PROVIDER"):
        pipeline.tts.provider = env["DUB_TTS_PROVIDER"]
    # voice overrides apply to the active provider's pools
    edge = (pipeline.tts.provider or "openai").lower() == "edge"
    if env.get("DUB_MALE_VOICES"):
        voices = _split(env["DUB_MALE_VOICES"])
        if edge:
            pipeline.tts.edge_male_voices = voices
        else:
            pipeline.tts.male_voices = voices
    if env.get("DUB_FEMALE_VOICES"):
        voices = _split(env["DUB_FEMALE_VOICES"])
        if edge:
            pipeline.tts.edge_female_voices = voices
        else:
            pipeline.tts.female_voices = voices
    if env.get("DUB_GENDER_THRESHOLD_DB"):
        pipeline.gender.threshold_db = float(env["DUB_GENDER_THRESHOLD_DB"])
    if env.get("DUB_WORK_DIR"):
        pipeline.work_root = Path(env["DUB_WORK_DIR"])

    if env.get("DUB_UPLOAD_DIR"):
        config.upload_dir = Path(env["DUB_UPLOAD_DIR"])
    if env.get("DUB_OUTPUT_DIR"):
        config.output_dir = Path(env["DUB_OUTPUT_DIR"])
    if env.get("DUB_MAX_WORKERS"):
        config.max_workers = int(env["DUB_MAX_WORKERS"])
    if env.get("DUB_POLL_INTERVAL"):
        config.poll_interval = float(env["DUB_POLL_INTERVAL"])
    if env.get("DUB_JOB_TTL_SECONDS"):
        config.job_ttl_seconds = float(env["DUB_JOB_TTL_SECONDS"])
    if env.get("DUB_ALLOWED_ORIGINS"):
        config.allowed_origins = _split(env["DUB_ALLOWED_ORIGINS"])
    return config
