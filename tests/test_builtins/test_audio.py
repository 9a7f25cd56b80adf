"""Tests for the audio plugin -- ffmpeg argument builders and commands."""

from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from mediaproc.builtins.audio import (
    audio,
    build_convert_args,
    build_merge_args,
    build_normalize_args,
    build_trim_args,
)
from mediaproc.errors import ExternalToolError


@pytest.fixture
def song(tmp_path):
    path = tmp_path / "in" / "song.wav"
    path.parent.mkdir()
    path.write_bytes(b"RIFF")
    return path


class TestBuildArgs:
    def test_convert_defaults(self):
        assert build_convert_args(Path("in.wav"), Path("out.mp3"), "mp3") == [
            "-i", "in.wav", "-c:a", "libmp3lame", "-b:a", "192k", "out.mp3",
        ]

    def test_convert_lossless_skips_bitrate(self):
        args = build_convert_args(Path("in.mp3"), Path("out.flac"), "flac", sample_rate=48000, channels=1)
        assert "-b:a" not in args
        assert args[-5:] == ["-ar", "48000", "-ac", "1", "out.flac"]

    def test_convert_drop_video(self):
        args = build_convert_args(Path("clip.mp4"), Path("clip.aac"), "aac", drop_video=True)
        assert args[:3] == ["-i", "clip.mp4", "-vn"]

    def test_normalize_loudnorm(self):
        args = build_normalize_args(Path("a.mp3"), Path("b.mp3"), target=-14.0, max_level=-1.0)
        assert args == ["-i", "a.mp3", "-af", "loudnorm=I=-14.0:TP=-1.0:LRA=11", "b.mp3"]

    def test_normalize_peak(self):
        args = build_normalize_args(Path("a.mp3"), Path("b.mp3"), method="peak")
        assert "dynaudnorm=p=0.95" in args

    def test_trim_with_fades(self):
        args = build_trim_args(Path("a.mp3"), Path("b.mp3"), 10, 5, fade_in=1, fade_out=2)
        assert args == [
            "-ss", "10", "-i", "a.mp3", "-t", "5",
            "-af", "afade=t=in:st=0:d=1,afade=t=out:st=3:d=2",
            "b.mp3",
        ]

    def test_trim_fast_copy(self):
        args = build_trim_args(Path("a.mp3"), Path("b.mp3"), 1.5, fast=True)
        assert args == ["-ss", "1.5", "-i", "a.mp3", "-c", "copy", "b.mp3"]

    def test_merge_concat_demuxer(self):
        files = [Path("a.mp3"), Path("b.mp3")]
        args = build_merge_args(files, Path("all.mp3"), Path(".all.concat.txt"), "mp3")
        assert args == [
            "-f", "concat", "-safe", "0", "-i", ".all.concat.txt",
            "-c:a", "libmp3lame", "-b:a", "192k", "all.mp3",
        ]

    def test_merge_crossfade_chain(self):
        files = [Path("a.wav"), Path("b.wav"), Path("c.wav")]
        args = build_merge_args(files, Path("all.flac"), Path("list.txt"), "flac", crossfade=2)
        assert args[:6] == ["-i", "a.wav", "-i", "b.wav", "-i", "c.wav"]
        graph = args[args.index("-filter_complex") + 1]
        assert graph == "[0:a][1:a]acrossfade=d=2[a1];[a1][2:a]acrossfade=d=2[a2]"
        assert args[args.index("-map") + 1] == "[a2]"
        assert "-b:a" not in args
        assert "list.txt" not in args

    def test_merge_normalize(self):
        files = [Path("a.mp3"), Path("b.mp3")]
        plain = build_merge_args(files, Path("o.mp3"), Path("l.txt"), "mp3", normalize=True)
        assert plain[plain.index("-af") + 1] == "loudnorm=I=-16.0:TP=-1.5:LRA=11"
        faded = build_merge_args(files, Path("o.mp3"), Path("l.txt"), "mp3", crossfade=1.5, normalize=True)
        graph = faded[faded.index("-filter_complex") + 1]
        assert graph.endswith("[a1]loudnorm=I=-16.0:TP=-1.5:LRA=11[out]")
        assert faded[faded.index("-map") + 1] == "[out]"


class TestConvertCommand:
    def test_dry_run(self, app, song, tmp_path):
        out = tmp_path / "out"
        result = CliRunner().invoke(audio, ["convert", str(song), "-o", str(out), "--dry-run"], obj=app)
        assert result.exit_code == 0, result.output
        assert "Converting: song.wav" in result.output
        assert "[DRY-RUN] ffmpeg -hide_banner -y -i" in result.output
        assert str(out / "song-converted.mp3") in result.output
        assert "1 skipped (dry run)" in result.output

    @patch("mediaproc.builtins.audio.run_ffmpeg")
    @patch("mediaproc.builtins.options.check_ffmpeg", return_value=True)
    def test_runs_ffmpeg(self, _check, mock_run, app, song, tmp_path):
        out = tmp_path / "final.ogg"
        result = CliRunner().invoke(audio, ["convert", str(song), "-o", str(out), "-f", "ogg"], obj=app)
        assert result.exit_code == 0, result.output
        args = mock_run.call_args.args[0]
        assert args[-1] == str(out)
        assert "libvorbis" in args
        assert "1 succeeded" in result.output

    @patch("mediaproc.builtins.audio.run_ffmpeg", side_effect=ExternalToolError("ffmpeg", 1, "bad"))
    @patch("mediaproc.builtins.options.check_ffmpeg", return_value=True)
    def test_failure_exit_code(self, _check, _run, app, song, tmp_path):
        result = CliRunner().invoke(audio, ["convert", str(song), "-o", str(tmp_path / "out")], obj=app)
        assert result.exit_code == 1
        assert "1 failed" in result.output

    @patch("mediaproc.builtins.options.check_ffmpeg", return_value=False)
    def test_ffmpeg_missing(self, _check, app, song):
        result = CliRunner().invoke(audio, ["convert", str(song)], obj=app)
        assert result.exit_code == 1
        assert "FFmpeg not found" in result.output

    def test_no_inputs(self, app, tmp_path):
        result = CliRunner().invoke(audio, ["convert", str(tmp_path / "none.wav"), "--dry-run"], obj=app)
        assert result.exit_code == 2
        assert "No valid input files found" in result.output

    def test_file_output_with_directory_input(self, app, tmp_path):
        src = tmp_path / "in"
        src.mkdir()
        (src / "a.wav").write_bytes(b"x")
        (src / "b.wav").write_bytes(b"x")
        result = CliRunner().invoke(
            audio, ["convert", str(src), "-o", str(tmp_path / "out.mp3"), "--dry-run"], obj=app
        )
        assert result.exit_code == 2
        assert "Use a directory instead" in result.output


class TestOtherCommands:
    def test_extract_from_video(self, app, tmp_path):
        clip = tmp_path / "clip.mp4"
        clip.write_bytes(b"x")
        result = CliRunner().invoke(
            audio, ["extract", str(clip), "-o", str(tmp_path / "out"), "--dry-run"], obj=app
        )
        assert result.exit_code == 0, result.output
        assert "clip-audio.mp3" in result.output
        assert "-vn" in result.output

    def test_normalize_dry_run(self, app, song, tmp_path):
        result = CliRunner().invoke(
            audio, ["normalize", str(song), "-o", str(tmp_path / "out"), "--dry-run"], obj=app
        )
        assert result.exit_code == 0, result.output
        assert "song-normalized.wav" in result.output
        assert "loudnorm=I=-16.0" in result.output

    def test_trim_end_and_duration(self, app, song):
        result = CliRunner().invoke(audio, ["trim", str(song), "-e", "5", "-d", "3"], obj=app)
        assert result.exit_code == 2
        assert "either --end or --duration" in result.output

    def test_trim_end_before_start(self, app, song):
        result = CliRunner().invoke(audio, ["trim", str(song), "-s", "10", "-e", "5"], obj=app)
        assert result.exit_code == 2
        assert "End time must be after start time" in result.output

    def test_trim_fast_with_fade(self, app, song):
        result = CliRunner().invoke(audio, ["trim", str(song), "--fast", "--fade-in", "1"], obj=app)
        assert result.exit_code == 2

    def test_trim_dry_run(self, app, song, tmp_path):
        result = CliRunner().invoke(
            audio,
            ["trim", str(song), "-s", "0:10", "-e", "0:25", "-o", str(tmp_path / "out"), "--dry-run"],
            obj=app,
        )
        assert result.exit_code == 0, result.output
        assert "-ss 10 -i" in result.output
        assert "-t 15" in result.output

    @patch("mediaproc.builtins.audio.probe", side_effect=ExternalToolError("ffprobe", 1, "corrupt"))
    def test_info_reports_probe_errors(self, _probe, app, song):
        result = CliRunner().invoke(audio, ["info", str(song)], obj=app)
        assert result.exit_code == 0
        assert "song.wav: ffprobe exited with code 1" in result.output


class TestMergeCommand:
    @pytest.fixture
    def parts(self, tmp_path):
        folder = tmp_path / "parts"
        folder.mkdir()
        for name in ("01.mp3", "02.mp3", "notes.txt"):
            (folder / name).write_bytes(b"x")
        return folder

    def test_dry_run(self, app, parts, tmp_path):
        out = tmp_path / "book" / "full.mp3"
        result = CliRunner().invoke(audio, ["merge", str(parts), "-o", str(out), "--dry-run"], obj=app)
        assert result.exit_code == 0, result.output
        assert f"Merging: 2 files -> {out}" in result.output
        assert "-f concat -safe 0" in result.output
        assert "1 skipped (dry run)" in result.output
        assert not out.exists()
        assert not (out.parent / ".full.concat.txt").exists()

    def test_needs_two_files(self, app, parts):
        result = CliRunner().invoke(audio, ["merge", str(parts / "01.mp3"), "--dry-run"], obj=app)
        assert result.exit_code == 2
        assert "At least 2 input files are required, found 1" in result.output

    def test_format_from_output_extension(self, app, parts, tmp_path):
        result = CliRunner().invoke(
            audio, ["merge", str(parts), "-o", str(tmp_path / "all.flac"), "--dry-run"], obj=app
        )
        assert result.exit_code == 0, result.output
        assert "-c:a flac" in result.output

    def test_unknown_output_format(self, app, parts, tmp_path):
        result = CliRunner().invoke(
            audio, ["merge", str(parts), "-o", str(tmp_path / "all.xyz"), "--dry-run"], obj=app
        )
        assert result.exit_code == 2
        assert "pass --format" in result.output

    def test_refuses_to_overwrite_input(self, app, parts):
        result = CliRunner().invoke(
            audio, ["merge", str(parts), "-o", str(parts / "01.mp3"), "--dry-run"], obj=app
        )
        assert result.exit_code == 2
        assert "Output would overwrite its input" in result.output

    @patch("mediaproc.builtins.options.check_ffmpeg", return_value=True)
    def test_runs_with_concat_list(self, _check, app, parts, tmp_path):
        out = tmp_path / "all.mp3"
        seen = {}

        def fake_run(args, ffmpeg_bin, verbose):
            list_file = Path(args[args.index("-i") + 1])
            seen["list"] = list_file.read_text()
            seen["path"] = list_file

        with patch("mediaproc.builtins.audio.run_ffmpeg", side_effect=fake_run):
            result = CliRunner().invoke(
                audio, ["merge", f"{parts / '02.mp3'},{parts}", "-o", str(out)], obj=app
            )
        assert result.exit_code == 0, result.output
        assert seen["list"] == f"file '{parts / '02.mp3'}'\nfile '{parts / '01.mp3'}'\n"
        assert not seen["path"].exists()
        assert "1 succeeded" in result.output

    @patch("mediaproc.builtins.audio.run_ffmpeg", side_effect=ExternalToolError("ffmpeg", 1, "bad"))
    @patch("mediaproc.builtins.options.check_ffmpeg", return_value=True)
    def test_failure_exit_code(self, _check, _run, app, parts, tmp_path):
        out = tmp_path / "all.mp3"
        result = CliRunner().invoke(audio, ["merge", str(parts), "-o", str(out)], obj=app)
        assert result.exit_code == 1
        assert "1 failed" in result.output
        assert not (tmp_path / ".all.concat.txt").exists()
