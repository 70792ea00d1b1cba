from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional

from openai import OpenAI

from .config import TranscriptionConfig, require_api_key
from .types import Segment

logger = logging.getLogger(__name__)


def _field(raw: Any, name: str, default: Any = None) -> Any:
    if isinstance(raw, dict):
        return raw.get(name, default)
    return getattr(raw, name, default)


def segments_from_payload(raw_segments: Optional[Iterable[Any]]) -> List[Segment]:
    """Convert engine segments (dicts or SDK objects) into :class:`Segment` in engine order."""
    collected = []
    for raw in raw_segments or []:
        speaker = _field(raw, "speaker")
        collected.append(
            Segment(
                start=float(_field(raw, "start")),
                end=float(_field(raw, "end")),
                text=str(_field(raw, "text", "")).strip(),
                speaker=str(speaker) if speaker else None,
            )
        )
    if logger.isEnabledFor(logging.DEBUG):
        for idx, seg in enumerate(collected, start=1):
            logger.debug("Segment %03d: %.2f-%.2f %s", idx, seg.start, seg.end, seg.text)
    return collected


class BaseTranscriber:
    def transcribe(self, audio_path: Path) -> List[Segment]:
        raise NotImplementedError


class OpenAITranscriber(BaseTranscriber):
    """Hosted Whisper transcription returning timestamped segments."""

    def __init__(self, config: TranscriptionConfig, client: Optional[OpenAI] = None):
        self.config = config
        if client is not None and config.api_base:
            logger.warning("Ignoring provided OpenAI client because custom api_base was supplied.")
            client = None
        if client is None:
            kwargs = {"api_key": require_api_key(config.api_key_env, "transcription")}
            if config.api_base:
                kwargs["base_url"] = config.api_base
            client = OpenAI(**kwargs)
        self.client = client

    def transcribe(self, audio_path: Path) -> List[Segment]:
        logger.info("Transcribing %s with %s (language=%s)", audio_path, self.config.model, self.config.language)
        with open(audio_path, "rb") as audio_file:
            response = self.client.audio.transcriptions.create(
                file=audio_file,
                model=self.config.model,
                language=self.config.language,
                response_format="verbose_json",
            )
        segments = segments_from_payload(_field(response, "segments"))
        logger.info("Transcription complete: %s segments", len(segments))
        return segments


class WhisperTranscriber(BaseTranscriber):
    """Local openai-whisper model, loaded on first use."""

    def __init__(self, config: TranscriptionConfig):
        self.config = config
        self._model = None

    def _load_model(self):
        if self._model is not None:
            return self._model
        try:
            import whisper  # type: ignore
        except ImportError as exc:
            raise RuntimeError("openai-whisper package is required for the local transcription provider.") from exc
        logger.info("Loading Whisper model '%s' on device '%s'...", self.config.model_size, self.config.device or "default")
        self._model = whisper.load_model(self.config.model_size, device=self.config.device)
        return self._model

    def transcribe(self, audio_path: Path) -> List[Segment]:
        model = self._load_model()
        logger.info("Transcribing audio from %s", audio_path)
        result = model.transcribe(
            str(audio_path),
            language=self.config.language,
            task="transcribe",
            condition_on_previous_text=False,
            word_timestamps=False,
        )
        segments = segments_from_payload(result.get("segments", []))
        logger.info("Transcription complete: %s segments", len(segments))
        return segments


def build_transcriber(config: TranscriptionConfig, client: Optional[OpenAI] = None) -> BaseTranscriber:
    provider = (config.provider or "openai").lower()
    if provider == "openai":
        return OpenAITranscriber(config=config, client=client)
    if provider == "local":
        return WhisperTranscriber(config=config)
    raise ValueError(f"Unsupported transcription provider: {config.provider}")
