from __future__ import annotations

import datetime as dt
import json
from pathlib import Path
from typing import Iterable

import srt

from .types import DubbedLine


def write_bilingual_srt(lines: Iterable[DubbedLine], output_path: Path, english_first: bool = True) -> Path:
    subtitles = []
    for idx, line in enumerate(lines, start=1):
        segment = line.segment
        content_lines = [line.translation, segment.text] if english_first else [segment.text, line.translation]
        subtitles.append(
            srt.Subtitle(
                index=idx,
                start=dt.timedelta(seconds=segment.start),
                end=dt.timedelta(seconds=segment.end),
                content="\n".join(content_lines),
            )
        )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(srt.compose(subtitles), encoding="utf-8")
    return output_path


def write_transcript_json(lines: Iterable[DubbedLine], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = [
        {
            "start": line.segment.start,
            "end": line.segment.end,
            "text_zh": line.segment.text,
            "text_en": line.translation,
            "speaker": line.speaker,
            "gender": line.gender,
            "voice": line.voice,
            "emotion": line.emotion,
        }
        for line in lines
    ]
    output_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return output_path
