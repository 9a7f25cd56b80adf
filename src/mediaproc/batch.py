"""Sequential batch runner shared by plugin commands.

Files are processed one at a time, in mapping order. A failing file is
recorded and the batch moves on to the next one.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path

import click
from loguru import logger

from .errors import ExternalToolError
from .models import BatchResult, ProcessingResult

log = logger.bind(stage="batch")

ProcessFn = Callable[[Path, Path], None]
DescribeFn = Callable[[Path, Path], str]


def run_batch(
    mapping: dict[Path, Path],
    process: ProcessFn,
    label: str = "Processing",
    dry_run: bool = False,
    describe: DescribeFn | None = None,
) -> BatchResult:
    """Run ``process(input, output)`` for every pair in ``mapping``.

    In dry-run mode nothing is processed; ``describe`` (if given) is echoed
    for each pair instead.
    """
    batch = BatchResult(total=len(mapping))
    if not mapping:
        log.warning("Nothing to process")
        return batch

    for index, (src, dest) in enumerate(mapping.items(), start=1):
        prefix = f"[{index}/{batch.total}]" if batch.total > 1 else ""
        click.echo(f"{prefix}{' ' if prefix else ''}{label}: {src.name} -> {dest}")
        item = ProcessingResult(input=src, output=dest)

        if dry_run:
            if describe is not None:
                click.echo(f"  [DRY-RUN] {describe(src, dest)}")
            item.skipped = True
            batch.skipped += 1
            batch.results.append(item)
            continue

        _attempt(batch, item, label, lambda: process(src, dest))

    return batch


def run_merge(
    inputs: list[Path],
    dest: Path,
    process: Callable[[], None],
    label: str = "Merging",
    dry_run: bool = False,
    describe: Callable[[], str] | None = None,
) -> BatchResult:
    """Run one many-to-one job (every input into ``dest``).

    Reporting matches ``run_batch``: the job counts as a single item.
    """
    batch = BatchResult(total=1)
    click.echo(f"{label}: {len(inputs)} files -> {dest}")
    for src in inputs:
        click.echo(f"  {src.name}")
    item = ProcessingResult(input=inputs[0], output=dest)

    if dry_run:
        if describe is not None:
            click.echo(f"  [DRY-RUN] {describe()}")
        item.skipped = True
        batch.skipped += 1
        batch.results.append(item)
        return batch

    _attempt(batch, item, label, process)
    return batch


def _attempt(
    batch: BatchResult,
    item: ProcessingResult,
    label: str,
    action: Callable[[], None],
) -> None:
    started = time.monotonic()
    try:
        action()
    except (ExternalToolError, OSError, ValueError) as exc:
        item.error = str(exc)
        batch.failed += 1
        log.error(f"{label} failed for {item.input}: {exc}")
        click.echo(f"  FAILED: {exc}", err=True)
    else:
        item.success = True
        batch.completed += 1
    item.duration = time.monotonic() - started
    batch.results.append(item)


def echo_summary(batch: BatchResult) -> None:
    """Print the one-line batch summary."""
    parts = [f"{batch.completed} succeeded"]
    if batch.failed:
        parts.append(f"{batch.failed} failed")
    if batch.skipped:
        parts.append(f"{batch.skipped} skipped (dry run)")
    click.echo(f"\nDone: {', '.join(parts)} of {batch.total} file(s)")
