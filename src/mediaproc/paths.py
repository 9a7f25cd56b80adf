"""Input expansion and output mapping shared by every batch command.

Input side: a comma-separated specification (files and/or directories) is
expanded into a deduplicated list of absolute, existing files that pass an
optional extension filter. Directory scans are depth first and deterministic:
files of a directory in name order, then its sub-directories in name order.

Output side: the output specification is classified as one explicit file (it
has an extension, or names an existing file) or a directory (no extension,
an existing directory, or omitted = cwd). Each input then gets exactly one
destination named ``<stem><suffix><ext>``.

``validate_paths`` is the entry point for commands. It never raises for
expected conditions and reports them through ``ValidatedPaths.errors``.
"""

from __future__ import annotations

import os
from collections import Counter
from collections.abc import Iterable, Sequence
from pathlib import Path

from loguru import logger

from .errors import OutputConfigError
from .models import OutputTarget, ValidatedPaths

log = logger.bind(stage="paths")

DEFAULT_MAX_DEPTH = 10

NO_INPUT_FILES_ERROR = "No valid input files found matching the criteria"
MULTI_FILE_OUTPUT_ERROR = (
    "Cannot specify a file output path for multiple input files. "
    "Use a directory instead."
)


def normalize_extension(ext: str) -> str:
    """Lowercase an extension and make sure it starts with a dot."""
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext


def _normalize_extensions(extensions: Iterable[str] | None) -> frozenset[str] | None:
    """None or an empty collection both mean "no filter"."""
    if not extensions:
        return None
    return frozenset(normalize_extension(e) for e in extensions)


def is_allowed_extension(path: Path, allowed_extensions: Iterable[str] | None) -> bool:
    """Case-insensitive extension check. No filter allows everything."""
    allowed = _normalize_extensions(allowed_extensions)
    if allowed is None:
        return True
    return path.suffix.lower() in allowed


def _absolute(path: str | Path) -> Path:
    # abspath keeps symlink names (unlike resolve), outputs are named after them
    return Path(os.path.abspath(Path(path).expanduser()))


def _scan(
    directory: Path,
    allowed: frozenset[str] | None,
    recursive: bool,
    max_depth: int,
    depth: int,
) -> list[Path]:
    if depth > max_depth:
        return []

    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        log.debug(f"Skipping unreadable directory {directory}: {exc}")
        return []

    files: list[Path] = []
    subdirs: list[Path] = []
    for entry in entries:
        try:
            if entry.is_file():
                if allowed is None or Path(entry.name).suffix.lower() in allowed:
                    files.append(Path(entry.path))
            elif entry.is_dir():
                subdirs.append(Path(entry.path))
        except OSError as exc:
            log.debug(f"Skipping unreadable entry {entry.path}: {exc}")

    if recursive:
        for sub in subdirs:
            files.extend(_scan(sub, allowed, recursive, max_depth, depth + 1))
    return files


def find_files_in_directory(
    directory: str | Path,
    allowed_extensions: Iterable[str] | None = None,
    recursive: bool = True,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> list[Path]:
    """List files under ``directory`` that pass the extension filter.

    The directory itself is depth 0. Directories deeper than ``max_depth`` are
    not read. Unreadable sub-trees are skipped, never fatal.
    """
    return _scan(
        _absolute(directory),
        _normalize_extensions(allowed_extensions),
        recursive,
        max_depth,
        depth=0,
    )


def parse_input_paths(
    input_spec: str,
    allowed_extensions: Iterable[str] | None = None,
    recursive: bool = True,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> list[Path]:
    """Expand a comma-separated input specification into existing files.

    Supports a single file ("photo.jpg"), several files ("a.jpg,b.jpg"),
    directories ("./photos/") and any mix of them. Missing paths are skipped
    silently; an empty list means nothing matched.
    """
    allowed = _normalize_extensions(allowed_extensions)
    found: list[Path] = []

    for token in input_spec.split(","):
        token = token.strip()
        if not token:
            continue
        path = _absolute(token)

        if os.path.isfile(path):
            if allowed is None or path.suffix.lower() in allowed:
                found.append(path)
            else:
                log.debug(f"Skipping {path}: extension not allowed")
        elif os.path.isdir(path):
            found.extend(_scan(path, allowed, recursive, max_depth, depth=0))
        else:
            log.debug(f"Skipping missing input: {token}")

    # Dedup preserving first occurrence
    return list(dict.fromkeys(found))


def classify_output(output: str | Path | None) -> OutputTarget:
    """Decide whether an output specification names a file or a directory.

    - omitted -> current working directory
    - existing directory, or a trailing separator -> directory
    - has an extension, or is an existing file -> explicit file
    - anything else -> directory (created later)
    """
    if output is None or not str(output).strip():
        return OutputTarget(path=Path.cwd(), is_file=False)

    path = _absolute(output)
    if str(output).endswith(("/", os.sep)) or path.is_dir():
        return OutputTarget(path=path, is_file=False)
    if path.suffix or path.is_file():
        return OutputTarget(path=path, is_file=True)
    return OutputTarget(path=path, is_file=False)


def output_filename(
    input_file: Path,
    suffix: str = "",
    new_extension: str | None = None,
) -> str:
    """Build ``<stem><suffix><ext>``; ``ext`` defaults to the input's own."""
    ext = normalize_extension(new_extension) if new_extension else input_file.suffix
    return f"{input_file.stem}{suffix}{ext}"


def find_common_base_path(files: Sequence[str | Path]) -> Path | None:
    """Deepest directory shared by the parents of all ``files``.

    Returns None when nothing but the filesystem anchor is shared (or the
    files live on different drives).
    """
    if not files:
        return None
    parents = [os.fspath(Path(f).parent) for f in files]
    try:
        common = Path(os.path.commonpath(parents))
    except ValueError:
        return None
    if common == Path(common.anchor):
        return None
    return common


def plan_output_paths(
    input_files: Sequence[Path],
    target: OutputTarget,
    suffix: str = "",
    new_extension: str | None = None,
    preserve_structure: bool = False,
) -> dict[Path, Path]:
    """Compute the input -> output mapping without touching the filesystem.

    Raises OutputConfigError for an explicit file target with several inputs.
    """
    inputs = [Path(f) for f in input_files]
    if not inputs:
        return {}

    if target.is_file:
        if len(inputs) > 1:
            raise OutputConfigError(MULTI_FILE_OUTPUT_ERROR)
        return {inputs[0]: target.path}

    base = None
    if preserve_structure and len(inputs) > 1:
        base = find_common_base_path(inputs)
        if base is None:
            log.debug("No common base path; placing outputs flat")

    mapping: dict[Path, Path] = {}
    for f in inputs:
        dest_dir = target.path
        if base is not None:
            dest_dir = target.path / f.parent.relative_to(base)
        mapping[f] = dest_dir / output_filename(f, suffix, new_extension)
    return mapping


def _ensure_output_dirs(mapping: dict[Path, Path], target: OutputTarget) -> None:
    if not target.is_file:
        target.path.mkdir(parents=True, exist_ok=True)
    for dest in mapping.values():
        dest.parent.mkdir(parents=True, exist_ok=True)


def resolve_output_paths(
    input_files: Sequence[Path],
    output: str | Path | None = None,
    suffix: str = "",
    new_extension: str | None = None,
    preserve_structure: bool = False,
) -> dict[Path, Path]:
    """Map each input file to exactly one output path, creating directories.

    Raises OutputConfigError (before anything is created) when ``output`` is
    an explicit file and there is more than one input.
    """
    if not input_files:
        return {}
    target = classify_output(output)
    mapping = plan_output_paths(
        input_files,
        target,
        suffix=suffix,
        new_extension=new_extension,
        preserve_structure=preserve_structure,
    )
    _ensure_output_dirs(mapping, target)
    return mapping


def find_output_collisions(mapping: dict[Path, Path]) -> list[Path]:
    """Output paths claimed by more than one input."""
    counts = Counter(mapping.values())
    return [dest for dest, n in counts.items() if n > 1]


def validate_paths(
    input_spec: str,
    output: str | Path | None = None,
    allowed_extensions: Iterable[str] | None = None,
    recursive: bool = True,
    max_depth: int = DEFAULT_MAX_DEPTH,
    suffix: str = "",
    new_extension: str | None = None,
    preserve_structure: bool = False,
) -> ValidatedPaths:
    """Resolve inputs and outputs in one step, collecting errors.

    Every check runs before any output directory is created, so a failed
    validation leaves the filesystem untouched.
    """
    allowed = _normalize_extensions(allowed_extensions)
    result = ValidatedPaths()
    result.input_files = parse_input_paths(
        input_spec,
        allowed_extensions=allowed,
        recursive=recursive,
        max_depth=max_depth,
    )

    if not result.input_files:
        result.errors.append(NO_INPUT_FILES_ERROR)
        if allowed:
            result.errors.append(f"Allowed extensions: {', '.join(sorted(allowed))}")
        return result

    target = classify_output(output)
    try:
        mapping = plan_output_paths(
            result.input_files,
            target,
            suffix=suffix,
            new_extension=new_extension,
            preserve_structure=preserve_structure,
        )
    except OutputConfigError as exc:
        result.errors.append(str(exc))
        return result

    for dest in find_output_collisions(mapping):
        result.errors.append(f"Multiple input files would be written to {dest}")
    for src, dest in mapping.items():
        if src == dest:
            result.errors.append(f"Output would overwrite its input: {src}")
    if result.errors:
        return result

    _ensure_output_dirs(mapping, target)
    result.output_map = mapping
    log.debug(
        f"Resolved {len(result.input_files)} input(s) -> "
        f"{'file' if target.is_file else 'directory'} {target.path}"
    )
    return result
