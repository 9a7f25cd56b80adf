"""Video plugin -- convert, resize, merge, extract audio or frames, and inspect video via FFmpeg."""

from __future__ import annotations

from pathlib import Path

import click
from loguru import logger

from .. import __version__
from ..batch import run_batch, run_merge
from ..errors import ExternalToolError
from ..ffmpeg import (
    MediaMetadata,
    build_command,
    duration_to_timestamp,
    format_file_size,
    parse_time,
    probe,
    run_ffmpeg,
    write_concat_list,
)
from ..models import VIDEO_EXTENSIONS
from ..paths import parse_input_paths
from .audio import AUDIO_FORMATS
from .audio import build_convert_args as build_audio_args
from .options import (
    collect_inputs,
    current_config,
    finish,
    input_output_options,
    merge_target,
    require_ffmpeg,
    resolve_or_fail,
)

name = "mediaproc-video"
version = __version__

log = logger.bind(stage="video")

# format -> (video codec, audio codec)
FORMATS: dict[str, tuple[str, str]] = {
    "mp4": ("libx264", "aac"),
    "mkv": ("libx264", "aac"),
    "mov": ("libx264", "aac"),
    "m4v": ("libx264", "aac"),
    "webm": ("libvpx-vp9", "libopus"),
    "avi": ("mpeg4", "libmp3lame"),
}

CODEC_ALIASES: dict[str, str] = {
    "h264": "libx264",
    "h265": "libx265",
    "hevc": "libx265",
    "vp9": "libvpx-vp9",
    "av1": "libaom-av1",
}

AUDIO_CODEC_ALIASES: dict[str, str] = {
    "aac": "aac",
    "mp3": "libmp3lame",
    "opus": "libopus",
}

PRESETS = ["ultrafast", "superfast", "veryfast", "faster", "fast", "medium", "slow", "slower", "veryslow"]

SCALE_PRESETS: dict[str, tuple[int, int]] = {
    "480p": (854, 480),
    "720p": (1280, 720),
    "1080p": (1920, 1080),
    "1440p": (2560, 1440),
    "4k": (3840, 2160),
}

FRAME_FORMATS = ["jpg", "png"]

# x264/x265 only; other encoders get no -preset
_PRESET_ENCODERS = frozenset({"libx264", "libx265"})


def build_convert_args(
    src: Path,
    dest: Path,
    fmt: str = "mp4",
    crf: int = 23,
    preset: str = "medium",
    codec: str | None = None,
    audio_codec: str | None = None,
    bitrate: str | None = None,
    audio_bitrate: str = "192k",
    no_audio: bool = False,
    threads: int | None = None,
    fast: bool = False,
) -> list[str]:
    """ffmpeg arguments for a video transcode, or a remux with ``fast``."""
    args = ["-i", str(src)]
    if fast:
        args += ["-c", "copy"]
        if no_audio:
            args.append("-an")
        args.append(str(dest))
        return args

    default_video, default_audio = FORMATS.get(fmt, FORMATS["mp4"])
    video_codec = CODEC_ALIASES.get(codec, codec) if codec else default_video
    args += ["-c:v", video_codec]
    if bitrate:
        args += ["-b:v", bitrate]
    else:
        args += ["-crf", str(crf)]
    if video_codec in _PRESET_ENCODERS:
        args += ["-preset", preset]

    if no_audio:
        args.append("-an")
    else:
        acodec = AUDIO_CODEC_ALIASES.get(audio_codec, audio_codec) if audio_codec else default_audio
        args += ["-c:a", acodec, "-b:a", audio_bitrate]

    if threads:
        args += ["-threads", str(threads)]
    if fmt in ("mp4", "mov", "m4v"):
        args += ["-movflags", "+faststart"]
    args.append(str(dest))
    return args


def scale_filter(width: int | None, height: int | None) -> str:
    """ffmpeg scale filter; a missing side keeps the aspect ratio (even size)."""
    return f"scale={width or -2}:{height or -2}"


def resize_suffix(width: int | None, height: int | None) -> str:
    """Output name suffix ``-<w>x<h>``; a side left to the aspect ratio is ``auto``."""
    return f"-{width or 'auto'}x{height or 'auto'}"


def build_resize_args(
    src: Path,
    dest: Path,
    width: int | None,
    height: int | None,
    crf: int = 23,
    preset: str = "medium",
) -> list[str]:
    return [
        "-i", str(src),
        "-vf", scale_filter(width, height),
        "-c:v", "libx264",
        "-crf", str(crf),
        "-preset", preset,
        "-c:a", "copy",
        str(dest),
    ]


def build_merge_args(
    files: list[Path],
    dest: Path,
    list_file: Path,
    re_encode: bool = False,
    crf: int = 23,
    preset: str = "medium",
) -> list[str]:
    """Concat demuxer with stream copy, or the concat filter when re-encoding."""
    if not re_encode:
        return ["-f", "concat", "-safe", "0", "-i", str(list_file), "-c", "copy", str(dest)]

    args: list[str] = []
    for file in files:
        args += ["-i", str(file)]
    streams = "".join(f"[{i}:v][{i}:a]" for i in range(len(files)))
    return args + [
        "-filter_complex", f"{streams}concat=n={len(files)}:v=1:a=1[outv][outa]",
        "-map", "[outv]",
        "-map", "[outa]",
        "-c:v", "libx264",
        "-crf", str(crf),
        "-preset", preset,
        "-c:a", "aac",
        str(dest),
    ]


def build_frames_args(
    src: Path,
    pattern: Path,
    fps: float = 1.0,
    start: float | None = None,
    end: float | None = None,
    quality: int = 2,
) -> list[str]:
    """Write ``fps`` frames per second to the numbered ``pattern``."""
    args = ["-i", str(src)]
    if start is not None:
        args += ["-ss", f"{start:g}"]
    if end is not None:
        args += ["-to", f"{end:g}"]
    args += ["-vf", f"fps={fps:g}"]
    if pattern.suffix.lower() in (".jpg", ".jpeg"):
        args += ["-q:v", str(quality)]
    args.append(str(pattern))
    return args


def build_thumbnail_args(
    src: Path,
    dest: Path,
    at: float = 1.0,
    width: int | None = None,
) -> list[str]:
    args = ["-ss", f"{at:g}", "-i", str(src), "-frames:v", "1"]
    if width:
        args += ["-vf", scale_filter(width, None)]
    if dest.suffix.lower() in (".jpg", ".jpeg"):
        args += ["-q:v", "2"]
    args.append(str(dest))
    return args


def needs_re_encode(metadata: list[MediaMetadata]) -> bool:
    """True when the inputs differ in resolution or video codec."""
    first = metadata[0]
    return any(
        (m.width, m.height, m.video_codec) != (first.width, first.height, first.video_codec)
        for m in metadata[1:]
    )


def _preview(args: list[str]) -> str:
    return " ".join(build_command(args, current_config().ffmpeg_bin))


@click.group()
def video() -> None:
    """Video processing commands (powered by FFmpeg)."""


@video.command("convert")
@input_output_options
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(list(FORMATS)),
    default="mp4",
    show_default=True,
    help="Target container format.",
)
@click.option("-q", "--quality", "crf", type=click.IntRange(0, 51), default=23, show_default=True, help="CRF, lower is better.")
@click.option("--codec", default=None, help="Video codec: h264, h265, vp9, av1 (or any ffmpeg encoder).")
@click.option("--audio-codec", default=None, help="Audio codec: aac, mp3, opus.")
@click.option("--preset", type=click.Choice(PRESETS), default="medium", show_default=True, help="Encoding preset.")
@click.option("-b", "--bitrate", default=None, help="Target video bitrate (e.g. 5M, 2000k); replaces CRF.")
@click.option("--audio-bitrate", default="192k", show_default=True, help="Audio bitrate.")
@click.option("--no-audio", is_flag=True, help="Remove audio from the output.")
@click.option("--threads", type=click.IntRange(min=1), default=None, help="Encoding threads (default: auto).")
@click.option("--fast", is_flag=True, help="Remux without re-encoding.")
def convert_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    fmt: str,
    crf: int,
    codec: str | None,
    audio_codec: str | None,
    preset: str,
    bitrate: str | None,
    audio_bitrate: str,
    no_audio: bool,
    threads: int | None,
    fast: bool,
) -> None:
    """Convert videos to another container/codec."""
    config = require_ffmpeg(dry_run)
    mapping = resolve_or_fail(
        input_spec,
        output,
        VIDEO_EXTENSIONS,
        new_extension=fmt,
        preserve_structure=preserve_structure,
    )

    def _args(src: Path, dest: Path) -> list[str]:
        return build_convert_args(
            src,
            dest,
            fmt=fmt,
            crf=crf,
            preset=preset,
            codec=codec,
            audio_codec=audio_codec,
            bitrate=bitrate,
            audio_bitrate=audio_bitrate,
            no_audio=no_audio,
            threads=threads,
            fast=fast,
        )

    batch = run_batch(
        mapping,
        lambda src, dest: run_ffmpeg(_args(src, dest), config.ffmpeg_bin, verbose),
        label="Converting",
        dry_run=dry_run,
        describe=lambda src, dest: _preview(_args(src, dest)),
    )
    finish(batch)


@video.command("resize")
@input_output_options
@click.option("-w", "--width", type=click.IntRange(min=1), default=None, help="Width in pixels.")
@click.option("-h", "--height", type=click.IntRange(min=1), default=None, help="Height in pixels.")
@click.option("--scale", type=click.Choice(list(SCALE_PRESETS)), default=None, help="Scale preset.")
@click.option("-q", "--quality", "crf", type=click.IntRange(0, 51), default=23, show_default=True, help="CRF, lower is better.")
@click.option("--preset", type=click.Choice(PRESETS), default="medium", show_default=True, help="Encoding preset.")
def resize_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    width: int | None,
    height: int | None,
    scale: str | None,
    crf: int,
    preset: str,
) -> None:
    """Resize videos to a resolution or scale preset."""
    if scale:
        width, height = SCALE_PRESETS[scale]
    if not width and not height:
        raise click.UsageError("Specify --width, --height or --scale.")

    config = require_ffmpeg(dry_run)
    mapping = resolve_or_fail(
        input_spec,
        output,
        VIDEO_EXTENSIONS,
        suffix=resize_suffix(width, height),
        new_extension=".mp4",
        preserve_structure=preserve_structure,
    )

    def _args(src: Path, dest: Path) -> list[str]:
        return build_resize_args(src, dest, width, height, crf, preset)

    batch = run_batch(
        mapping,
        lambda src, dest: run_ffmpeg(_args(src, dest), config.ffmpeg_bin, verbose),
        label="Resizing",
        dry_run=dry_run,
        describe=lambda src, dest: _preview(_args(src, dest)),
    )
    finish(batch)


@video.command("extract-audio")
@input_output_options
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(AUDIO_FORMATS),
    default="mp3",
    show_default=True,
    help="Audio format.",
)
@click.option("-b", "--bitrate", default="192k", show_default=True, help="Audio bitrate.")
def extract_audio_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    fmt: str,
    bitrate: str,
) -> None:
    """Extract the audio track from videos."""
    config = require_ffmpeg(dry_run)
    mapping = resolve_or_fail(
        input_spec,
        output,
        VIDEO_EXTENSIONS,
        new_extension=fmt,
        preserve_structure=preserve_structure,
    )

    def _args(src: Path, dest: Path) -> list[str]:
        return build_audio_args(src, dest, fmt, bitrate, drop_video=True)

    batch = run_batch(
        mapping,
        lambda src, dest: run_ffmpeg(_args(src, dest), config.ffmpeg_bin, verbose),
        label="Extracting",
        dry_run=dry_run,
        describe=lambda src, dest: _preview(_args(src, dest)),
    )
    finish(batch)


@video.command("merge")
@click.argument("inputs", metavar="INPUT...", nargs=-1, required=True)
@click.option("-o", "--output", default="merged.mp4", show_default=True, help="Output file.")
@click.option("--re-encode", is_flag=True, help="Re-encode instead of stream copy (handles mixed inputs).")
@click.option("-q", "--quality", "crf", type=click.IntRange(0, 51), default=23, show_default=True, help="CRF when re-encoding.")
@click.option("--preset", type=click.Choice(PRESETS), default="medium", show_default=True, help="Preset when re-encoding.")
@click.option("--dry-run", is_flag=True, help="Show what would happen without doing it.")
@click.option("-v", "--verbose", is_flag=True, help="Show external tool output.")
def merge_cmd(
    inputs: tuple[str, ...],
    output: str,
    re_encode: bool,
    crf: int,
    preset: str,
    dry_run: bool,
    verbose: bool,
) -> None:
    """Join several videos, in order, into one."""
    files = collect_inputs(inputs, VIDEO_EXTENSIONS)
    config = require_ffmpeg(dry_run)
    dest = merge_target(output, files)

    if not re_encode and not dry_run:
        try:
            metadata = [probe(file, config.ffprobe_bin) for file in files]
        except (ExternalToolError, OSError, ValueError) as exc:
            raise click.ClickException(f"Could not inspect inputs: {exc}") from exc
        if needs_re_encode(metadata):
            log.warning("Inputs differ in resolution or codec, switching to re-encode")
            click.echo("Inputs differ in resolution or codec: re-encoding")
            re_encode = True

    list_file = dest.parent / f".{dest.stem}.concat.txt"
    args = build_merge_args(files, dest, list_file, re_encode, crf, preset)

    def _process() -> None:
        if not re_encode:
            write_concat_list(files, list_file)
        try:
            run_ffmpeg(args, config.ffmpeg_bin, verbose)
        finally:
            list_file.unlink(missing_ok=True)

    batch = run_merge(
        files,
        dest,
        _process,
        dry_run=dry_run,
        describe=lambda: _preview(args),
    )
    finish(batch)


@video.command("extract-frames")
@input_output_options
@click.option("--fps", type=click.FloatRange(min=0, min_open=True), default=1.0, show_default=True, help="Frames per second to extract.")
@click.option("-s", "--start", default=None, help="Start time (HH:MM:SS or seconds).")
@click.option("-e", "--end", default=None, help="End time (HH:MM:SS or seconds).")
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(FRAME_FORMATS),
    default="jpg",
    show_default=True,
    help="Image format.",
)
@click.option("-q", "--quality", type=click.IntRange(1, 31), default=2, show_default=True, help="JPEG quality, 1 is best.")
def extract_frames_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    fps: float,
    start: str | None,
    end: str | None,
    fmt: str,
    quality: int,
) -> None:
    """Extract frames from videos, one folder (<name>-frames) per video."""
    try:
        start_s = parse_time(start) if start else None
        end_s = parse_time(end) if end else None
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    if end_s is not None and end_s <= (start_s or 0):
        raise click.UsageError("End time must be after start time.")

    config = require_ffmpeg(dry_run)
    mapping = resolve_or_fail(
        input_spec,
        output,
        VIDEO_EXTENSIONS,
        suffix="-frames",
        new_extension=fmt,
        preserve_structure=preserve_structure,
    )

    def _args(src: Path, dest: Path) -> list[str]:
        pattern = dest.with_suffix("") / f"frame_%04d.{fmt}"
        return build_frames_args(src, pattern, fps, start_s, end_s, quality)

    def _process(src: Path, dest: Path) -> None:
        dest.with_suffix("").mkdir(parents=True, exist_ok=True)
        run_ffmpeg(_args(src, dest), config.ffmpeg_bin, verbose)

    batch = run_batch(
        mapping,
        _process,
        label="Extracting frames",
        dry_run=dry_run,
        describe=lambda src, dest: _preview(_args(src, dest)),
    )
    finish(batch)


@video.command("extract-thumbnail")
@input_output_options
@click.option("-t", "--time", "at", default="00:00:01", show_default=True, help="Position (HH:MM:SS or seconds).")
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(FRAME_FORMATS),
    default="jpg",
    show_default=True,
    help="Image format.",
)
@click.option("-w", "--width", type=click.IntRange(min=1), default=None, help="Thumbnail width; height keeps the aspect ratio.")
def extract_thumbnail_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    at: str,
    fmt: str,
    width: int | None,
) -> None:
    """Grab a single frame from each video."""
    try:
        position = parse_time(at)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--time") from exc

    config = require_ffmpeg(dry_run)
    mapping = resolve_or_fail(
        input_spec,
        output,
        VIDEO_EXTENSIONS,
        suffix="-thumb",
        new_extension=fmt,
        preserve_structure=preserve_structure,
    )

    def _args(src: Path, dest: Path) -> list[str]:
        return build_thumbnail_args(src, dest, position, width)

    batch = run_batch(
        mapping,
        lambda src, dest: run_ffmpeg(_args(src, dest), config.ffmpeg_bin, verbose),
        label="Thumbnail",
        dry_run=dry_run,
        describe=lambda src, dest: _preview(_args(src, dest)),
    )
    finish(batch)


@video.command("info")
@click.argument("input_spec", metavar="INPUT")
def info_cmd(input_spec: str) -> None:
    """Show duration, resolution, codecs and bitrate of video files."""
    config = current_config()
    files = parse_input_paths(
        input_spec,
        VIDEO_EXTENSIONS,
        recursive=config.recursive,
        max_depth=config.max_depth,
    )
    if not files:
        raise click.UsageError("No valid video files found")
    for file in files:
        try:
            meta = probe(file, config.ffprobe_bin)
        except (ExternalToolError, OSError, ValueError) as exc:
            log.debug(f"probe failed for {file}: {exc}")
            click.echo(f"{file.name}: {exc}", err=True)
            continue
        click.echo(f"{file.name}")
        click.echo(f"  Duration:   {duration_to_timestamp(meta.duration)}")
        click.echo(f"  Resolution: {meta.width}x{meta.height}")
        click.echo(f"  Video:      {meta.video_codec or 'none'} @ {meta.fps:g} fps")
        click.echo(f"  Audio:      {meta.audio_codec or 'none'}")
        click.echo(f"  Bitrate:    {meta.bit_rate // 1000} kb/s")
        click.echo(f"  Size:       {format_file_size(meta.size)}")


def register(cli: click.Group) -> None:
    cli.add_command(video)
