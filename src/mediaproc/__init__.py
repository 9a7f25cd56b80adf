"""mediaproc -- plugin-based media processing CLI (FFmpeg and Pillow under the hood).

Core modules:
    cli             -- Click group with core commands (list, info, convert, doctor).
                       main() loads plugins onto the group before parsing.
    config          -- Configuration via pydantic-settings (MEDIAPROC_* env vars)
                       and loguru setup.
    paths           -- Input expansion (files, comma lists, directories) and
                       output mapping (suffix, extension, structure preservation).
    plugin_manager  -- Plugin discovery from pyproject.toml, dynamic import,
                       registration, and per-plugin failure isolation.
    ffmpeg          -- ffmpeg/ffprobe subprocess wrappers.
    batch           -- Sequential per-file runner with result summary.
    models          -- Enums, extension sets, plugin and batch record types.
    errors          -- Exception hierarchy.

Subpackages:
    builtins    -- Bundled plugins: audio, video (FFmpeg) and image (Pillow).
"""

__version__ = "0.4.0"
