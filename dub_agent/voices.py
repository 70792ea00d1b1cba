from __future__ import annotations

from typing import Dict, Optional, Sequence

from .config import ConfigurationError
from .types import ENERGETIC, FEMALE, FIRM, MALE, NEUTRAL, Segment, SpeakerProfile

EXCLAMATION_MARKS = ("!", "！")
QUESTION_MARKS = ("?", "？")


def classify_emotion(source_text: str) -> str:
    """Pick a delivery style from punctuation in the untranslated text."""
    if any(mark in source_text for mark in EXCLAMATION_MARKS):
        return ENERGETIC
    if any(mark in source_text for mark in QUESTION_MARKS):
        return FIRM
    return NEUTRAL


def speaker_label(segment: Segment, index: int) -> str:
    return segment.speaker or f"segment_{index}"


class VoicePolicy:
    """Per-job mapping from speakers to synthetic voices.

    Each speaker cycles through the pool of its gender, one step per assigned
    segment, so the N-th line of a speaker always gets the same voice.
    """

    def __init__(self, male_voices: Sequence[str], female_voices: Sequence[str]):
        if not male_voices or not female_voices:
            raise ConfigurationError("Both voice pools need at least one voice.")
        overlap = set(male_voices) & set(female_voices)
        if overlap:
            raise ConfigurationError(f"Voice pools must be disjoint, shared: {sorted(overlap)}")
        self.pools: Dict[str, tuple] = {MALE: tuple(male_voices), FEMALE: tuple(female_voices)}
        self.profiles: Dict[str, SpeakerProfile] = {}

    def profile(self, label: str) -> Optional[SpeakerProfile]:
        return self.profiles.get(label)

    def register(self, label: str, gender: str) -> SpeakerProfile:
        if label in self.profiles:
            raise ValueError(f"Speaker {label!r} already has a cached gender")
        if gender not in self.pools:
            raise ValueError(f"Unsupported gender: {gender}")
        profile = SpeakerProfile(label=label, gender=gender)
        self.profiles[label] = profile
        return profile

    def assign_voice(self, profile: SpeakerProfile) -> str:
        pool = self.pools[profile.gender]
        voice = pool[profile.rotation_index % len(pool)]
        profile.rotation_index += 1
        return voice
