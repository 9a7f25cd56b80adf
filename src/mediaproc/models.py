"""Core enums, extension sets, and record types for mediaproc.

Enums:
    MediaType    -- Media category detected from a file extension.
    PluginState  -- Per-plugin load state (unattempted, loading, loaded, failed).
    PluginType   -- Where a plugin comes from (built-in, official, community,
                    third-party). Derived from the distribution name.

Extension sets are plain frozensets of lowercase, dot-prefixed suffixes. Plugin
commands pass them to ``paths.parse_input_paths`` as the allowed-extension
filter. ``ALL_EXTENSIONS`` is ``None``, meaning "no filter".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Protocol, runtime_checkable


class MediaType(StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    THREED = "3d"
    ANIMATION = "animation"
    UNKNOWN = "unknown"


class PluginState(StrEnum):
    UNATTEMPTED = "unattempted"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class PluginType(StrEnum):
    BUILT_IN = "built-in"
    OFFICIAL = "official"
    COMMUNITY = "community"
    THIRD_PARTY = "third-party"


IMAGE_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".jpg",
        ".jpeg",
        ".png",
        ".gif",
        ".bmp",
        ".webp",
        ".tiff",
        ".tif",
        ".svg",
        ".ico",
        ".heic",
        ".heif",
    }
)

VIDEO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".mp4",
        ".avi",
        ".mov",
        ".mkv",
        ".flv",
        ".wmv",
        ".webm",
        ".m4v",
        ".mpg",
        ".mpeg",
        ".3gp",
        ".ts",
        ".mts",
        ".m2ts",
    }
)

AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".mp3",
        ".wav",
        ".flac",
        ".aac",
        ".ogg",
        ".m4a",
        ".wma",
        ".opus",
        ".ape",
        ".alac",
    }
)

DOCUMENT_EXTENSIONS: frozenset[str] = frozenset(
    {".pdf", ".doc", ".docx", ".txt", ".rtf", ".odt", ".md", ".html", ".xml"}
)

THREED_EXTENSIONS: frozenset[str] = frozenset(
    {".obj", ".fbx", ".gltf", ".glb", ".stl", ".dae", ".3ds", ".blend", ".ply"}
)

ANIMATION_EXTENSIONS: frozenset[str] = frozenset({".gif", ".apng", ".webp", ".mp4"})

ALL_EXTENSIONS = None

# Pillow can read and write these without extra plugins
RASTER_IMAGE_EXTENSIONS: frozenset[str] = IMAGE_EXTENSIONS - {".svg", ".heic", ".heif"}

# Detection order matters: animation formats overlap image/video
_DETECTION_ORDER: list[tuple[MediaType, frozenset[str]]] = [
    (MediaType.IMAGE, IMAGE_EXTENSIONS),
    (MediaType.VIDEO, VIDEO_EXTENSIONS),
    (MediaType.AUDIO, AUDIO_EXTENSIONS),
    (MediaType.DOCUMENT, DOCUMENT_EXTENSIONS),
    (MediaType.THREED, THREED_EXTENSIONS),
]


def detect_media_type(path: Path | str) -> MediaType:
    """Map a file path to its media category by extension (case-insensitive)."""
    suffix = Path(path).suffix.lower()
    for media_type, extensions in _DETECTION_ORDER:
        if suffix in extensions:
            return media_type
    return MediaType.UNKNOWN


@runtime_checkable
class MediaprocPlugin(Protocol):
    """Anything exposing ``register(cli)`` is a plugin.

    ``register`` may be a plain function or a coroutine function. It receives
    the root click group and adds its own commands to it.
    """

    def register(self, cli: Any) -> Any: ...


@dataclass(frozen=True)
class PluginRecord:
    """A successfully loaded plugin."""

    name: str
    module: ModuleType
    register: Callable[..., Any]
    version: str = "unknown"
    built_in: bool = False


@dataclass(frozen=True)
class Loaded:
    record: PluginRecord

    @property
    def name(self) -> str:
        return self.record.name


@dataclass(frozen=True)
class Failed:
    name: str
    reason: str


LoadResult = Loaded | Failed


@dataclass(frozen=True)
class OutputTarget:
    """Classified output specification: a directory or one explicit file."""

    path: Path
    is_file: bool


@dataclass
class ValidatedPaths:
    """Resolved inputs, their output mapping, and any user-facing errors."""

    input_files: list[Path] = field(default_factory=list)
    output_map: dict[Path, Path] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class ProcessingResult:
    """Outcome of processing a single input file."""

    input: Path
    output: Path | None = None
    success: bool = False
    error: str | None = None
    duration: float = 0.0
    skipped: bool = False


@dataclass
class BatchResult:
    """Result summary from a sequential batch run."""

    completed: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    results: list[ProcessingResult] = field(default_factory=list)
