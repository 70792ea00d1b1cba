from __future__ import annotations

import json

from dub_agent.exports import write_bilingual_srt, write_transcript_json
from dub_agent.types import DubbedLine, Segment

LINES = [
    DubbedLine(Segment(0.0, 2.0, "你好!"), "Hello!", "segment_0", "male", "onyx", "energetic"),
    DubbedLine(Segment(3.5, 5.0, "再见"), "Goodbye.", "segment_1", "female", "alloy", "neutral"),
]


def test_bilingual_srt(tmp_path):
    path = write_bilingual_srt(LINES, tmp_path / "subs" / "dub.srt")

    text = path.read_text(encoding="utf-8")
    assert "00:00:00,000 --> 00:00:02,000\nHello!\n你好!" in text
    assert "00:00:03,500 --> 00:00:05,000\nGoodbye.\n再见" in text


def test_transcript_json(tmp_path):
    path = write_transcript_json(LINES, tmp_path / "dub.json")

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload[1] == {
        "start": 3.5,
        "end": 5.0,
        "text_zh": "再见",
        "text_en": "Goodbye.",
        "speaker": "segment_1",
        "gender": "female",
        "voice": "alloy",
        "emotion": "neutral",
    }
