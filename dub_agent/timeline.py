from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from .gender import GenderDetector
from .media import FFmpegShell, MediaError
from .translation import BaseTranslator
from .tts import BaseTTS
from .types import SILENCE, SPEECH, DubbedLine, Segment, Timeline, TimelineEntry
from .voices import VoicePolicy, classify_emotion, speaker_label
from .workspace import JobWorkspace

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class TimelineReconstructor:
    """Rebuild the source timeline as an ordered list of silence and speech clips.

    Segments are processed strictly in the order given. The gap before every
    segment becomes a silence clip of exactly that length; overlapping segments
    (negative gaps) get no silence. Nothing is added after the last segment.
    """

    def __init__(
        self,
        media: FFmpegShell,
        translator: BaseTranslator,
        gender_detector: GenderDetector,
        tts: BaseTTS,
        workspace: JobWorkspace,
        progress_range: Tuple[int, int] = (15, 70),
    ):
        self.media = media
        self.translator = translator
        self.gender_detector = gender_detector
        self.tts = tts
        self.workspace = workspace
        self.progress_range = progress_range

    def reconstruct(
        self,
        segments: Sequence[Segment],
        source_audio: Path,
        voice_policy: VoicePolicy,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Tuple[Timeline, List[DubbedLine]]:
        timeline = Timeline()
        lines: List[DubbedLine] = []
        total = len(segments)
        last_end = 0.0

        for index, segment in enumerate(segments):
            gap = segment.start - last_end
            if gap > 0:
                silence_path = self.media.synthesize_silence(gap, self.workspace.allocate(".wav", "silence"))
                if silence_path is not None:
                    timeline.append(TimelineEntry(path=silence_path, kind=SILENCE, duration=gap))
            elif gap < 0:
                logger.debug("Segment %s overlaps the previous one by %.3fs", index, -gap)

            label = speaker_label(segment, index)
            profile = voice_policy.profile(label)
            if profile is None:
                profile = voice_policy.register(label, self._detect_gender(segment, source_audio))
                logger.info("Speaker %s detected as %s", label, profile.gender)

            translation = self.translator.translate(segment.text)
            emotion = classify_emotion(segment.text)
            voice = voice_policy.assign_voice(profile)
            speech_path = self.tts.synthesize(
                translation, voice, emotion, self.workspace.allocate(".wav", "speech")
            )
            timeline.append(
                TimelineEntry(path=speech_path, kind=SPEECH, segment_index=index, voice=voice, emotion=emotion)
            )
            lines.append(
                DubbedLine(
                    segment=segment,
                    translation=translation,
                    speaker=label,
                    gender=profile.gender,
                    voice=voice,
                    emotion=emotion,
                )
            )
            logger.debug("Segment %s/%s voiced by %s (%s)", index + 1, total, voice, emotion)

            last_end = segment.end
            if on_progress is not None:
                on_progress(self._progress(index + 1, total))

        return timeline, lines

    def _detect_gender(self, segment: Segment, source_audio: Path) -> str:
        clip = self.workspace.allocate(".wav", "gender")
        try:
            try:
                self.media.extract_clip(source_audio, segment.start, segment.end, clip)
            except MediaError as exc:
                fallback = self.gender_detector.config.fallback
                logger.warning("Could not cut %.2f-%.2f for gender detection, using %s: %s",
                               segment.start, segment.end, fallback, exc)
                return fallback
            return self.gender_detector.detect(clip)
        finally:
            self.workspace.release(clip)

    def _progress(self, done: int, total: int) -> int:
        low, high = self.progress_range
        return low + math.floor(done / total * (high - low))
