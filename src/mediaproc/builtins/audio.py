"""Audio plugin -- convert, normalize, trim, merge and inspect audio via FFmpeg."""

from __future__ import annotations

from pathlib import Path

import click
from loguru import logger

from .. import __version__
from ..batch import run_batch, run_merge
from ..errors import ExternalToolError
from ..ffmpeg import (
    build_command,
    duration_to_timestamp,
    format_file_size,
    get_duration,
    parse_time,
    probe,
    run_ffmpeg,
    write_concat_list,
)
from ..models import AUDIO_EXTENSIONS, VIDEO_EXTENSIONS
from ..paths import parse_input_paths
from .options import (
    collect_inputs,
    current_config,
    finish,
    input_output_options,
    merge_target,
    require_ffmpeg,
    resolve_or_fail,
)

name = "mediaproc-audio"
version = __version__

log = logger.bind(stage="audio")

AUDIO_FORMATS = ["mp3", "aac", "m4a", "wav", "flac", "ogg", "opus"]

CODECS: dict[str, str] = {
    "mp3": "libmp3lame",
    "aac": "aac",
    "m4a": "aac",
    "flac": "flac",
    "wav": "pcm_s16le",
    "ogg": "libvorbis",
    "opus": "libopus",
}

LOSSLESS_FORMATS = frozenset({"flac", "wav"})

QUALITY_BITRATES: dict[str, str | None] = {
    "low": "96k",
    "medium": "192k",
    "high": "320k",
    "lossless": None,
}


def build_convert_args(
    src: Path,
    dest: Path,
    fmt: str,
    bitrate: str | None = "192k",
    sample_rate: int | None = None,
    channels: int | None = None,
    codec: str | None = None,
    drop_video: bool = False,
) -> list[str]:
    """ffmpeg arguments for an audio transcode (also used for extraction)."""
    args = ["-i", str(src)]
    if drop_video:
        args.append("-vn")
    codec = codec or CODECS.get(fmt)
    if codec:
        args += ["-c:a", codec]
    if bitrate and fmt not in LOSSLESS_FORMATS:
        args += ["-b:a", bitrate]
    if sample_rate:
        args += ["-ar", str(sample_rate)]
    if channels:
        args += ["-ac", str(channels)]
    args.append(str(dest))
    return args


def loudnorm_filter(target: float = -16.0, max_level: float = -1.5) -> str:
    return f"loudnorm=I={target}:TP={max_level}:LRA=11"


def build_normalize_args(
    src: Path,
    dest: Path,
    method: str = "loudnorm",
    target: float = -16.0,
    max_level: float = -1.5,
) -> list[str]:
    """Single-pass EBU R128 loudnorm, or dynaudnorm peak normalization."""
    if method == "loudnorm":
        audio_filter = loudnorm_filter(target, max_level)
    else:
        audio_filter = "dynaudnorm=p=0.95"
    return ["-i", str(src), "-af", audio_filter, str(dest)]


def build_trim_args(
    src: Path,
    dest: Path,
    start: float = 0.0,
    length: float | None = None,
    fade_in: float | None = None,
    fade_out: float | None = None,
    fast: bool = False,
) -> list[str]:
    """Cut ``length`` seconds from ``start``; fades need a re-encode."""
    args = ["-ss", f"{start:g}", "-i", str(src)]
    if length is not None:
        args += ["-t", f"{length:g}"]

    filters = []
    if fade_in:
        filters.append(f"afade=t=in:st=0:d={fade_in:g}")
    if fade_out and length is not None:
        filters.append(f"afade=t=out:st={max(length - fade_out, 0):g}:d={fade_out:g}")
    if filters:
        args += ["-af", ",".join(filters)]

    if fast:
        args += ["-c", "copy"]
    args.append(str(dest))
    return args


def build_merge_args(
    files: list[Path],
    dest: Path,
    list_file: Path,
    fmt: str,
    bitrate: str | None = "192k",
    crossfade: float | None = None,
    normalize: bool = False,
) -> list[str]:
    """Join ``files`` into ``dest``.

    Without a crossfade the inputs go through the concat demuxer (``list_file``).
    With one, every file is a separate input chained through ``acrossfade``.
    """
    if crossfade:
        args: list[str] = []
        for file in files:
            args += ["-i", str(file)]
        chain = []
        previous = "[0:a]"
        for index in range(1, len(files)):
            label = f"[a{index}]"
            chain.append(f"{previous}[{index}:a]acrossfade=d={crossfade:g}{label}")
            previous = label
        if normalize:
            chain.append(f"{previous}{loudnorm_filter()}[out]")
            previous = "[out]"
        args += ["-filter_complex", ";".join(chain), "-map", previous]
    else:
        args = ["-f", "concat", "-safe", "0", "-i", str(list_file)]
        if normalize:
            args += ["-af", loudnorm_filter()]

    codec = CODECS.get(fmt)
    if codec:
        args += ["-c:a", codec]
    if bitrate and fmt not in LOSSLESS_FORMATS:
        args += ["-b:a", bitrate]
    args.append(str(dest))
    return args


def _preview(args: list[str]) -> str:
    return " ".join(build_command(args, current_config().ffmpeg_bin))


@click.group()
def audio() -> None:
    """Audio processing commands (powered by FFmpeg)."""


@audio.command("convert")
@input_output_options
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(AUDIO_FORMATS),
    default="mp3",
    show_default=True,
    help="Output format.",
)
@click.option("-b", "--bitrate", default="192k", show_default=True, help="Audio bitrate (e.g. 128k, 320k).")
@click.option("-s", "--sample-rate", type=int, default=None, help="Sample rate in Hz (e.g. 44100, 48000).")
@click.option("-c", "--channels", type=click.IntRange(1, 8), default=None, help="Number of channels.")
@click.option(
    "-q",
    "--quality",
    type=click.Choice(list(QUALITY_BITRATES)),
    default=None,
    help="Quality preset; overrides --bitrate.",
)
@click.option("--codec", default=None, help="Audio codec override (libmp3lame, aac, flac, ...).")
def convert_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    fmt: str,
    bitrate: str,
    sample_rate: int | None,
    channels: int | None,
    quality: str | None,
    codec: str | None,
) -> None:
    """Convert audio files between formats."""
    config = require_ffmpeg(dry_run)
    mapping = resolve_or_fail(
        input_spec,
        output,
        AUDIO_EXTENSIONS,
        suffix="-converted",
        new_extension=fmt,
        preserve_structure=preserve_structure,
    )
    target_bitrate = QUALITY_BITRATES[quality] if quality else bitrate

    def _args(src: Path, dest: Path) -> list[str]:
        return build_convert_args(src, dest, fmt, target_bitrate, sample_rate, channels, codec)

    batch = run_batch(
        mapping,
        lambda src, dest: run_ffmpeg(_args(src, dest), config.ffmpeg_bin, verbose),
        label="Converting",
        dry_run=dry_run,
        describe=lambda src, dest: _preview(_args(src, dest)),
    )
    finish(batch)


@audio.command("extract")
@input_output_options
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(AUDIO_FORMATS),
    default="mp3",
    show_default=True,
    help="Output format.",
)
@click.option("-b", "--bitrate", default="192k", show_default=True, help="Audio bitrate.")
@click.option("--sample-rate", type=int, default=None, help="Sample rate in Hz.")
@click.option("--channels", type=click.IntRange(1, 8), default=None, help="Number of channels.")
def extract_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    fmt: str,
    bitrate: str,
    sample_rate: int | None,
    channels: int | None,
) -> None:
    """Extract the audio track from video files."""
    config = require_ffmpeg(dry_run)
    mapping = resolve_or_fail(
        input_spec,
        output,
        VIDEO_EXTENSIONS,
        suffix="-audio",
        new_extension=fmt,
        preserve_structure=preserve_structure,
    )

    def _args(src: Path, dest: Path) -> list[str]:
        return build_convert_args(
            src, dest, fmt, bitrate, sample_rate, channels, drop_video=True
        )

    batch = run_batch(
        mapping,
        lambda src, dest: run_ffmpeg(_args(src, dest), config.ffmpeg_bin, verbose),
        label="Extracting",
        dry_run=dry_run,
        describe=lambda src, dest: _preview(_args(src, dest)),
    )
    finish(batch)


@audio.command("normalize")
@input_output_options
@click.option("-t", "--target", type=float, default=-16.0, show_default=True, help="Target loudness in LUFS.")
@click.option("-l", "--max-level", type=float, default=-1.5, show_default=True, help="Maximum true peak in dB.")
@click.option(
    "-m",
    "--method",
    type=click.Choice(["loudnorm", "peak"]),
    default="loudnorm",
    show_default=True,
    help="loudnorm (EBU R128) or peak.",
)
@click.option("--format", "fmt", type=click.Choice(AUDIO_FORMATS), default=None, help="Output format (default: same as input).")
def normalize_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    target: float,
    max_level: float,
    method: str,
    fmt: str | None,
) -> None:
    """Normalize audio loudness."""
    config = require_ffmpeg(dry_run)
    mapping = resolve_or_fail(
        input_spec,
        output,
        AUDIO_EXTENSIONS,
        suffix="-normalized",
        new_extension=fmt,
        preserve_structure=preserve_structure,
    )

    def _args(src: Path, dest: Path) -> list[str]:
        return build_normalize_args(src, dest, method, target, max_level)

    batch = run_batch(
        mapping,
        lambda src, dest: run_ffmpeg(_args(src, dest), config.ffmpeg_bin, verbose),
        label="Normalizing",
        dry_run=dry_run,
        describe=lambda src, dest: _preview(_args(src, dest)),
    )
    finish(batch)


@audio.command("trim")
@input_output_options
@click.option("-s", "--start", default="0", show_default=True, help="Start time (HH:MM:SS or seconds).")
@click.option("-e", "--end", default=None, help="End time (HH:MM:SS or seconds).")
@click.option("-d", "--duration", default=None, help="Duration from start (HH:MM:SS or seconds).")
@click.option("--fade-in", type=float, default=None, help="Fade-in length in seconds.")
@click.option("--fade-out", type=float, default=None, help="Fade-out length in seconds.")
@click.option("--format", "fmt", type=click.Choice(AUDIO_FORMATS), default=None, help="Output format (default: same as input).")
@click.option("--fast", is_flag=True, help="Stream copy, no re-encoding.")
def trim_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    start: str,
    end: str | None,
    duration: str | None,
    fade_in: float | None,
    fade_out: float | None,
    fmt: str | None,
    fast: bool,
) -> None:
    """Cut a section out of audio files."""
    if end and duration:
        raise click.UsageError("Use either --end or --duration, not both.")
    if fast and (fade_in or fade_out):
        raise click.UsageError("Fades need re-encoding and cannot be combined with --fast.")
    try:
        start_s = parse_time(start)
        length = None
        if duration:
            length = parse_time(duration)
        elif end:
            length = parse_time(end) - start_s
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    if length is not None and length <= 0:
        raise click.UsageError("End time must be after start time.")

    config = require_ffmpeg(dry_run)
    mapping = resolve_or_fail(
        input_spec,
        output,
        AUDIO_EXTENSIONS,
        suffix="-trimmed",
        new_extension=fmt,
        preserve_structure=preserve_structure,
    )

    def _args(src: Path, dest: Path) -> list[str]:
        clip = length
        if fade_out and clip is None and not dry_run:
            clip = max(get_duration(src, config.ffprobe_bin) - start_s, 0.0)
        return build_trim_args(src, dest, start_s, clip, fade_in, fade_out, fast)

    batch = run_batch(
        mapping,
        lambda src, dest: run_ffmpeg(_args(src, dest), config.ffmpeg_bin, verbose),
        label="Trimming",
        dry_run=dry_run,
        describe=lambda src, dest: _preview(_args(src, dest)),
    )
    finish(batch)


@audio.command("merge")
@click.argument("inputs", metavar="INPUT...", nargs=-1, required=True)
@click.option("-o", "--output", default="merged.mp3", show_default=True, help="Output file.")
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(AUDIO_FORMATS),
    default=None,
    help="Output format (default: from the output extension).",
)
@click.option("-b", "--bitrate", default="192k", show_default=True, help="Audio bitrate.")
@click.option("--crossfade", type=click.FloatRange(0, 10, min_open=True), default=None, help="Crossfade between files, in seconds.")
@click.option("--normalize", is_flag=True, help="Normalize loudness of the merged audio.")
@click.option("--dry-run", is_flag=True, help="Show what would happen without doing it.")
@click.option("-v", "--verbose", is_flag=True, help="Show external tool output.")
def merge_cmd(
    inputs: tuple[str, ...],
    output: str,
    fmt: str | None,
    bitrate: str,
    crossfade: float | None,
    normalize: bool,
    dry_run: bool,
    verbose: bool,
) -> None:
    """Join several audio files, in order, into one."""
    files = collect_inputs(inputs, AUDIO_EXTENSIONS)
    fmt = fmt or Path(output).suffix.lower().lstrip(".")
    if fmt not in CODECS:
        raise click.UsageError(f"Cannot infer an audio format from output {output}; pass --format.")
    config = require_ffmpeg(dry_run)
    dest = merge_target(output, files)
    list_file = dest.parent / f".{dest.stem}.concat.txt"
    args = build_merge_args(files, dest, list_file, fmt, bitrate, crossfade, normalize)

    def _process() -> None:
        if not crossfade:
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


@audio.command("info")
@click.argument("input_spec", metavar="INPUT")
def info_cmd(input_spec: str) -> None:
    """Show duration, codec, sample rate and channels of audio files."""
    config = current_config()
    files = parse_input_paths(
        input_spec,
        AUDIO_EXTENSIONS,
        recursive=config.recursive,
        max_depth=config.max_depth,
    )
    if not files:
        raise click.UsageError("No valid audio files found")
    for file in files:
        try:
            meta = probe(file, config.ffprobe_bin)
        except (ExternalToolError, OSError, ValueError) as exc:
            click.echo(f"{file.name}: {exc}", err=True)
            continue
        click.echo(f"{file.name}")
        click.echo(f"  Duration:    {duration_to_timestamp(meta.duration)}")
        click.echo(f"  Codec:       {meta.audio_codec or 'unknown'}")
        click.echo(f"  Sample rate: {meta.sample_rate} Hz")
        click.echo(f"  Channels:    {meta.channels}")
        click.echo(f"  Size:        {format_file_size(meta.size)}")


def register(cli: click.Group) -> None:
    cli.add_command(audio)
