from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

MALE = "male"
FEMALE = "female"
GENDERS = (MALE, FEMALE)

ENERGETIC = "energetic"
FIRM = "firm"
NEUTRAL = "neutral"

SILENCE = "silence"
SPEECH = "speech"


@dataclass(frozen=True)
class Segment:
    """Single transcript segment with timing data on the source timeline."""

    start: float
    end: float
    text: str
    speaker: Optional[str] = None


@dataclass
class SpeakerProfile:
    """Per-job voice state for one speaker label."""

    label: str
    gender: str
    rotation_index: int = 0


@dataclass
class TimelineEntry:
    """One clip of the reconstructed dub track."""

    path: Path
    kind: str
    duration: Optional[float] = None
    segment_index: Optional[int] = None
    voice: Optional[str] = None
    emotion: Optional[str] = None


@dataclass
class Timeline:
    """Ordered clips that make up the dub track, in source chronology."""

    entries: List[TimelineEntry] = field(default_factory=list)

    def append(self, entry: TimelineEntry) -> None:
        self.entries.append(entry)

    @property
    def paths(self) -> List[Path]:
        return [entry.path for entry in self.entries]

    @property
    def silence_duration(self) -> float:
        return sum(entry.duration or 0.0 for entry in self.entries if entry.kind == SILENCE)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class DubbedLine:
    """A segment together with everything the pipeline decided for it."""

    segment: Segment
    translation: str
    speaker: str
    gender: str
    voice: str
    emotion: str


@dataclass
class DubResult:
    """Artifacts and metadata of one finished dub."""

    video_path: Path
    lines: List[DubbedLine]
    timeline_entries: int
    silence_seconds: float
