"""Options and helpers shared by the built-in plugin commands."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from pathlib import Path

import click

from ..batch import echo_summary
from ..config import MediaprocConfig
from ..context import current_context
from ..ffmpeg import check_ffmpeg
from ..models import BatchResult
from ..paths import parse_input_paths, validate_paths


def input_output_options(func: Callable) -> Callable:
    """INPUT argument plus -o/--output, --dry-run and -v/--verbose."""
    decorators = [
        click.argument("input_spec", metavar="INPUT"),
        click.option(
            "-o",
            "--output",
            default=None,
            help="Output file (single input) or directory. Defaults to the current directory.",
        ),
        click.option(
            "--preserve-structure",
            is_flag=True,
            help="Mirror input sub-directories under the output directory.",
        ),
        click.option("--dry-run", is_flag=True, help="Show what would happen without doing it."),
        click.option("-v", "--verbose", is_flag=True, help="Show external tool output."),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def current_config() -> MediaprocConfig:
    return current_context().config


def resolve_or_fail(
    input_spec: str,
    output: str | None,
    allowed_extensions: Iterable[str] | None,
    suffix: str = "",
    new_extension: str | None = None,
    preserve_structure: bool = False,
) -> dict[Path, Path]:
    """Resolve inputs/outputs or abort the command with a usage error."""
    config = current_config()
    resolved = validate_paths(
        input_spec,
        output,
        allowed_extensions=allowed_extensions,
        recursive=config.recursive,
        max_depth=config.max_depth,
        suffix=suffix,
        new_extension=new_extension,
        preserve_structure=preserve_structure,
    )
    if resolved.errors:
        raise click.UsageError("\n".join(resolved.errors))
    return resolved.output_map


def collect_inputs(
    inputs: Iterable[str],
    allowed_extensions: Iterable[str] | None,
    minimum: int = 2,
) -> list[Path]:
    """Expand every INPUT token, in order, keeping the first of each file."""
    config = current_config()
    files: list[Path] = []
    for token in inputs:
        files.extend(
            parse_input_paths(
                token,
                allowed_extensions,
                recursive=config.recursive,
                max_depth=config.max_depth,
            )
        )
    files = list(dict.fromkeys(files))
    if len(files) < minimum:
        message = f"At least {minimum} input files are required, found {len(files)}"
        if allowed_extensions:
            message += f"\nAllowed extensions: {', '.join(sorted(allowed_extensions))}"
        raise click.UsageError(message)
    return files


def merge_target(output: str, inputs: list[Path]) -> Path:
    """Absolute output file for a many-to-one command; creates its directory."""
    dest = Path(os.path.abspath(output))
    if dest.is_dir() or str(output).endswith(("/", os.sep)):
        raise click.UsageError(f"Output must be a file, not a directory: {dest}")
    if dest in inputs:
        raise click.UsageError(f"Output would overwrite its input: {dest}")
    dest.parent.mkdir(parents=True, exist_ok=True)
    return dest


def require_ffmpeg(dry_run: bool) -> MediaprocConfig:
    """Return the config, failing early when ffmpeg is needed but missing."""
    config = current_config()
    if not dry_run and not check_ffmpeg(config.ffmpeg_bin):
        raise click.ClickException("FFmpeg not found. Please install FFmpeg first.")
    return config


def finish(batch: BatchResult) -> None:
    """Print the summary; exit 1 if any file failed."""
    echo_summary(batch)
    if batch.failed:
        raise click.exceptions.Exit(1)
