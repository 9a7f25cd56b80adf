"""FFmpeg / ffprobe subprocess wrappers."""

from __future__ import annotations

import json
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .errors import ExternalToolError

log = logger.bind(stage="ffmpeg")


@dataclass
class MediaMetadata:
    """Subset of ffprobe output used by the built-in commands."""

    duration: float = 0.0
    format_name: str = ""
    size: int = 0
    bit_rate: int = 0
    video_codec: str = ""
    width: int = 0
    height: int = 0
    fps: float = 0.0
    audio_codec: str = ""
    sample_rate: int = 0
    channels: int = 0


def _run_ffprobe(args: list[str], ffprobe_bin: str = "ffprobe") -> subprocess.CompletedProcess:
    """Run ffprobe with common flags."""
    return subprocess.run(
        [ffprobe_bin, "-v", "error"] + args,
        capture_output=True,
        text=True,
    )


def check_tool(binary: str) -> bool:
    """True if ``binary`` is on PATH and answers ``-version``."""
    if shutil.which(binary) is None:
        return False
    try:
        result = subprocess.run(
            [binary, "-version"],
            capture_output=True,
            text=True,
        )
    except OSError:
        return False
    return result.returncode == 0


def check_ffmpeg(ffmpeg_bin: str = "ffmpeg") -> bool:
    return check_tool(ffmpeg_bin)


def get_duration(file: Path, ffprobe_bin: str = "ffprobe") -> float:
    """Get duration in seconds."""
    result = _run_ffprobe(
        [
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(file),
        ],
        ffprobe_bin,
    )
    output = result.stdout.strip()
    if not output:
        raise ValueError(f"ffprobe returned empty duration for {file}")
    return float(output)


def _parse_rate(rate: str) -> float:
    """Parse an ffprobe frame rate like ``30000/1001``."""
    if not rate:
        return 0.0
    num, _, den = rate.partition("/")
    try:
        if den:
            return float(num) / float(den) if float(den) else 0.0
        return float(num)
    except ValueError:
        return 0.0


def probe(file: Path, ffprobe_bin: str = "ffprobe") -> MediaMetadata:
    """Read format and first audio/video stream details.

    Raises ExternalToolError if ffprobe fails, ValueError on unreadable output.
    """
    result = _run_ffprobe(
        ["-show_format", "-show_streams", "-of", "json", str(file)],
        ffprobe_bin,
    )
    if result.returncode != 0:
        raise ExternalToolError(ffprobe_bin, result.returncode, result.stderr.strip())
    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise ValueError(f"ffprobe returned invalid JSON for {file}") from exc

    fmt = data.get("format", {})
    meta = MediaMetadata(
        duration=float(fmt.get("duration") or 0.0),
        format_name=fmt.get("format_name", ""),
        size=int(fmt.get("size") or 0),
        bit_rate=int(fmt.get("bit_rate") or 0),
    )
    for stream in data.get("streams", []):
        kind = stream.get("codec_type")
        if kind == "video" and not meta.video_codec:
            meta.video_codec = stream.get("codec_name", "")
            meta.width = int(stream.get("width") or 0)
            meta.height = int(stream.get("height") or 0)
            meta.fps = _parse_rate(stream.get("r_frame_rate", ""))
        elif kind == "audio" and not meta.audio_codec:
            meta.audio_codec = stream.get("codec_name", "")
            meta.sample_rate = int(stream.get("sample_rate") or 0)
            meta.channels = int(stream.get("channels") or 0)
    return meta


def build_command(args: list[str], ffmpeg_bin: str = "ffmpeg") -> list[str]:
    """Prefix ffmpeg arguments with the binary and non-interactive flags."""
    return [ffmpeg_bin, "-hide_banner", "-y"] + args


def run_ffmpeg(args: list[str], ffmpeg_bin: str = "ffmpeg", verbose: bool = False) -> None:
    """Run ffmpeg to completion. Raises ExternalToolError on non-zero exit."""
    cmd = build_command(args, ffmpeg_bin)
    log.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=not verbose, text=True)
    except FileNotFoundError as exc:
        raise ExternalToolError(ffmpeg_bin, 127, str(exc)) from exc
    if result.returncode != 0:
        stderr = (result.stderr or "")[-500:]
        raise ExternalToolError(ffmpeg_bin, result.returncode, stderr.strip())


def concat_list_lines(files: list[Path]) -> list[str]:
    """ffmpeg concat demuxer entries, one ``file '<path>'`` line per input."""
    lines = []
    for file in files:
        escaped = str(file).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return lines


def write_concat_list(files: list[Path], list_path: Path) -> Path:
    list_path.write_text("\n".join(concat_list_lines(files)) + "\n")
    log.debug(f"Wrote {len(files)} entries to {list_path}")
    return list_path


def parse_time(value: str) -> float:
    """Parse ``HH:MM:SS(.ms)``, ``MM:SS`` or plain seconds into seconds."""
    value = value.strip()
    if not value:
        raise ValueError("empty time value")
    seconds = 0.0
    for part in value.split(":"):
        seconds = seconds * 60 + float(part)
    if seconds < 0:
        raise ValueError(f"negative time value: {value}")
    return seconds


def duration_to_timestamp(seconds: float) -> str:
    """Convert seconds to HH:MM:SS."""
    total = int(seconds)
    h = total // 3600
    m = (total % 3600) // 60
    s = total % 60
    return f"{h:02d}:{m:02d}:{s:02d}"


def format_file_size(size: int) -> str:
    """Human readable size: ``512 B``, ``1.50 KB``, ``2.00 MB``."""
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in ("KB", "MB", "GB", "TB"):
        value /= 1024
        if value < 1024 or unit == "TB":
            return f"{value:.2f} {unit}"
    return f"{value:.2f} TB"
