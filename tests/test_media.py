from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

import dub_agent.media as media_mod
from dub_agent.config import MediaConfig
from dub_agent.media import BinaryNotFoundError, FFmpegShell, MediaError, first_of, from_env


class Recorder:
    def __init__(self, stderr: str = "", returncode: int = 0):
        self.argvs = []
        self.stderr = stderr
        self.returncode = returncode
        self.list_contents = None

    def __call__(self, argv, **kwargs):
        self.argvs.append(argv)
        if "concat" in argv:
            self.list_contents = Path(argv[argv.index("-i") + 1]).read_text(encoding="utf-8")
        if self.returncode:
            raise subprocess.CalledProcessError(self.returncode, argv, output="", stderr=self.stderr)
        return subprocess.CompletedProcess(argv, 0, stdout="", stderr=self.stderr)


@pytest.fixture
def recorder(monkeypatch):
    rec = Recorder()
    monkeypatch.setattr(media_mod.subprocess, "run", rec)
    return rec


@pytest.fixture
def shell():
    return FFmpegShell(MediaConfig(), resolver=lambda: "/opt/ffmpeg/bin/ffmpeg")


def test_missing_binary_is_fatal():
    with pytest.raises(BinaryNotFoundError):
        FFmpegShell(resolver=lambda: None)


def test_resolvers_are_tried_in_order(monkeypatch):
    monkeypatch.setenv("FFMPEG_BINARY", "/custom/ffmpeg")
    resolver = first_of(lambda: None, from_env(), lambda: "/usr/bin/ffmpeg")
    assert resolver() == "/custom/ffmpeg"

    monkeypatch.delenv("FFMPEG_BINARY")
    assert resolver() == "/usr/bin/ffmpeg"


def test_explicit_path_wins_over_environment(monkeypatch):
    monkeypatch.setenv("FFMPEG_BINARY", "/env/ffmpeg")
    shell = FFmpegShell(MediaConfig(ffmpeg_path="/explicit/ffmpeg"))
    assert shell.binary == "/explicit/ffmpeg"


def test_extract_audio_keeps_audio_stream_only(recorder, shell, tmp_path):
    shell.extract_audio(tmp_path / "in.mp4", tmp_path / "out.wav")

    argv = recorder.argvs[0]
    assert argv[0] == "/opt/ffmpeg/bin/ffmpeg"
    assert "-y" in argv
    assert argv[-8:] == [
        "-i", str(tmp_path / "in.mp4"), "-vn", "-map", "a", "-q:a", "0", str(tmp_path / "out.wav"),
    ]


def test_non_positive_silence_runs_nothing(recorder, shell, tmp_path):
    assert shell.synthesize_silence(0, tmp_path / "s.wav") is None
    assert shell.synthesize_silence(-0.5, tmp_path / "s.wav") is None
    assert recorder.argvs == []


def test_silence_is_mono_at_configured_rate(recorder, shell, tmp_path):
    out = shell.synthesize_silence(1.25, tmp_path / "s.wav")

    argv = recorder.argvs[0]
    assert out == tmp_path / "s.wav"
    assert "anullsrc=r=24000:cl=mono" in argv
    assert argv[argv.index("-t") + 1] == "1.250"
    assert argv[argv.index("-c:a") + 1] == "pcm_s16le"


def test_clip_is_copy_cut(recorder, shell, tmp_path):
    shell.extract_clip(tmp_path / "a.wav", 3.0, 5.5, tmp_path / "c.wav")

    argv = recorder.argvs[0]
    assert argv[argv.index("-ss") + 1] == "3.000"
    assert argv[argv.index("-to") + 1] == "5.500"
    assert argv[argv.index("-c") + 1] == "copy"


def test_concatenate_preserves_order_and_removes_list(recorder, shell, tmp_path):
    clips = [tmp_path / "b.wav", tmp_path / "a.wav", tmp_path / "c.wav"]

    shell.concatenate(clips, tmp_path / "dub.wav")

    argv = recorder.argvs[0]
    assert argv[argv.index("-f") + 1] == "concat"
    assert argv[argv.index("-safe") + 1] == "0"
    assert argv[argv.index("-c") + 1] == "copy"
    listed = [line.split("'")[1] for line in recorder.list_contents.splitlines()]
    assert [Path(p).name for p in listed] == ["b.wav", "a.wav", "c.wav"]
    assert not (tmp_path / "dub_concat.txt").exists()


def test_concatenate_nothing_is_an_error(recorder, shell, tmp_path):
    with pytest.raises(MediaError):
        shell.concatenate([], tmp_path / "dub.wav")


def test_remix_keeps_video_and_mixes_dub_at_full_level(recorder, shell, tmp_path):
    shell.remix(tmp_path / "in.mp4", tmp_path / "dub.wav", tmp_path / "out.mp4")

    argv = recorder.argvs[0]
    graph = argv[argv.index("-filter_complex") + 1]
    assert graph.startswith("[0:a]volume=0.15[a0];[1:a]volume=1.0[a1];")
    assert graph.endswith("[a0][a1]amix=inputs=2:dropout_transition=0:normalize=0[aout]")
    maps = [argv[i + 1] for i, arg in enumerate(argv) if arg == "-map"]
    assert maps == ["0:v:0", "[aout]"]
    assert argv[argv.index("-c:v") + 1] == "copy"
    assert "-shortest" in argv


def test_rms_levels_are_parsed_from_stderr(recorder, shell, tmp_path):
    recorder.stderr = (
        "[Parsed_astats_0 @ 0x1] Channel: 1\n"
        "[Parsed_astats_0 @ 0x1] RMS level dB: -18.25\n"
        "[Parsed_astats_0 @ 0x1] RMS level dB: -inf\n"
        "[Parsed_astats_0 @ 0x1] Overall\n"
        "[Parsed_astats_0 @ 0x1] RMS level dB: -6\n"
    )

    assert shell.measure_rms_levels(tmp_path / "c.wav") == [-18.25, -6.0]


def test_failed_invocation_raises_media_error(monkeypatch, shell, tmp_path):
    monkeypatch.setattr(media_mod.subprocess, "run", Recorder(stderr="Invalid data found", returncode=1))

    with pytest.raises(MediaError, match="Invalid data found"):
        shell.extract_audio(tmp_path / "in.mp4", tmp_path / "out.wav")
