from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional, Sequence, Tuple

from openai import APIError, OpenAI
from pydub import AudioSegment

from .config import TTSConfig, require_api_key
from .types import ENERGETIC, FIRM, NEUTRAL

logger = logging.getLogger(__name__)

TONE_PROMPTS = {
    ENERGETIC: "Speak with lively energy.",
    FIRM: "Speak clearly with confidence.",
    NEUTRAL: "Speak naturally.",
}

# rate, pitch
EDGE_PROSODY = {
    ENERGETIC: ("+10%", "+5Hz"),
    FIRM: ("-5%", "-2Hz"),
    NEUTRAL: ("+0%", "+0Hz"),
}


class BaseTTS:
    def synthesize(self, text: str, voice: str, emotion: str, output_path: Path) -> Path:
        raise NotImplementedError

    @property
    def voice_pools(self) -> Tuple[Sequence[str], Sequence[str]]:
        """Male and female voice identifiers this engine understands."""
        raise NotImplementedError


class OpenAITTS(BaseTTS):
    """Use OpenAI's TTS models to generate English speech clips."""

    def __init__(self, config: TTSConfig, client: Optional[OpenAI] = None):
        self.config = config
        if client is not None and config.api_base:
            logger.warning("Ignoring provided OpenAI client because custom api_base was supplied.")
            client = None
        if client is None:
            kwargs = {"api_key": require_api_key(config.api_key_env, "speech synthesis")}
            if config.api_base:
                kwargs["base_url"] = config.api_base
            client = OpenAI(**kwargs)
        self.client = client

    @property
    def voice_pools(self) -> Tuple[Sequence[str], Sequence[str]]:
        return self.config.male_voices, self.config.female_voices

    def synthesize(self, text: str, voice: str, emotion: str, output_path: Path) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        request = {
            "model": self.config.model,
            "voice": voice,
            "input": text,
            "response_format": self.config.format,
        }
        # Only the gpt-4o speech models accept style instructions.
        if self.config.model.startswith("gpt-4o"):
            request["instructions"] = TONE_PROMPTS.get(emotion, TONE_PROMPTS[NEUTRAL])
        for attempt in range(1, self.config.max_retries + 1):
            try:
                with self.client.audio.speech.with_streaming_response.create(**request) as response:
                    response.stream_to_file(output_path)
                logger.debug("Generated TTS clip at %s (voice=%s, emotion=%s)", output_path, voice, emotion)
                return output_path
            except APIError as exc:
                logger.warning("TTS attempt %s failed: %s", attempt, exc)
                if attempt >= self.config.max_retries:
                    raise
                time.sleep(self.config.retry_delay)
        raise RuntimeError("Unreachable TTS retry loop")


class EdgeTTS(BaseTTS):
    """Use Microsoft Edge neural voices without requiring Azure credentials.

    Edge streams MP3, so every clip is re-encoded to mono PCM WAV at the
    timeline sample rate before it joins the timeline.
    """

    def __init__(self, config: TTSConfig, sample_rate: int = 24000):
        try:
            import edge_tts  # type: ignore
        except ImportError as exc:
            raise RuntimeError("edge-tts package is required for Edge TTS provider.") from exc
        self.edge_tts = edge_tts
        self.config = config
        self.sample_rate = sample_rate

    @property
    def voice_pools(self) -> Tuple[Sequence[str], Sequence[str]]:
        return self.config.edge_male_voices, self.config.edge_female_voices

    def synthesize(self, text: str, voice: str, emotion: str, output_path: Path) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        mp3_path = output_path.with_suffix(".edge.mp3")
        try:
            self._run_async(self._synthesize_to_file(text, voice, emotion, mp3_path))
            clip = AudioSegment.from_file(mp3_path, format="mp3")
            clip = clip.set_frame_rate(self.sample_rate).set_channels(1).set_sample_width(2)
            clip.export(output_path, format="wav")
        finally:
            mp3_path.unlink(missing_ok=True)
        logger.debug("Generated Edge TTS clip at %s (voice=%s, emotion=%s)", output_path, voice, emotion)
        return output_path

    async def _synthesize_to_file(self, text: str, voice: str, emotion: str, output_path: Path) -> None:
        rate, pitch = EDGE_PROSODY.get(emotion, EDGE_PROSODY[NEUTRAL])
        communicate = self.edge_tts.Communicate(
            text=text,
            voice=voice,
            rate=rate,
            pitch=pitch,
            volume=self.config.edge_volume,
        )
        with open(output_path, "wb") as outfile:
            async for chunk in communicate.stream():
                if chunk["type"] == "audio":
                    outfile.write(chunk["data"])

    def _run_async(self, coroutine) -> None:
        loop = asyncio.new_event_loop()
        try:
            loop.run_until_complete(coroutine)
        finally:
            loop.close()


def build_tts(config: TTSConfig, client: Optional[OpenAI] = None, sample_rate: int = 24000) -> BaseTTS:
    provider = (config.provider or "openai").lower()
    if provider == "openai":
        return OpenAITTS(config=config, client=client)
    if provider == "edge":
        return EdgeTTS(config=config, sample_rate=sample_rate)
    raise ValueError(f"Unsupported TTS provider: {config.provider}")
