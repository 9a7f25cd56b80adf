"""Image plugin -- resize, convert, grayscale, thumbnail and inspect images via Pillow."""

from __future__ import annotations

from pathlib import Path

import click
from loguru import logger
from PIL import Image, ImageOps

from .. import __version__
from ..batch import run_batch
from ..ffmpeg import format_file_size
from ..models import RASTER_IMAGE_EXTENSIONS
from ..paths import parse_input_paths
from .options import current_config, finish, input_output_options, resolve_or_fail

name = "mediaproc-image"
version = __version__

log = logger.bind(stage="image")

IMAGE_FORMATS = ["jpg", "png", "webp", "gif", "bmp", "tiff"]

PIL_FORMATS: dict[str, str] = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
    ".webp": "WEBP",
    ".gif": "GIF",
    ".bmp": "BMP",
    ".tif": "TIFF",
    ".tiff": "TIFF",
    ".avif": "AVIF",
}

FIT_MODES = ["fill", "inside", "contain", "cover"]

# Formats without an alpha channel
_NO_ALPHA = frozenset({"JPEG", "BMP"})


def _open(path: Path) -> Image.Image:
    """Open an image with EXIF orientation applied."""
    with Image.open(path) as img:
        img.load()
        return ImageOps.exif_transpose(img)


def _pil_format(dest: Path) -> str | None:
    """Pillow format name for an output path, None when Pillow has no writer."""
    ext = dest.suffix.lower()
    return PIL_FORMATS.get(ext) or Image.registered_extensions().get(ext)


def _save(img: Image.Image, dest: Path, quality: int = 85) -> None:
    fmt = _pil_format(dest)
    if fmt in _NO_ALPHA and img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    options: dict = {}
    if fmt in ("JPEG", "WEBP", "AVIF"):
        options["quality"] = quality
    if fmt == "PNG":
        options["optimize"] = True
    img.save(dest, format=fmt, **options)
    log.debug(f"Saved {dest} ({fmt}, {img.width}x{img.height})")


def target_size(
    size: tuple[int, int], width: int | None, height: int | None
) -> tuple[int, int]:
    """Fill in a missing dimension from the source aspect ratio."""
    src_w, src_h = size
    if width and height:
        return width, height
    if width:
        return width, max(1, round(src_h * width / src_w))
    if height:
        return max(1, round(src_w * height / src_h)), height
    return size


def resize_image(
    img: Image.Image,
    width: int | None,
    height: int | None,
    fit: str = "inside",
    background: str = "black",
) -> Image.Image:
    """Resize according to ``fit``.

    fill    -- stretch to exactly width x height
    inside  -- largest size that fits inside the box, aspect kept
    contain -- like inside, then pad to the box with ``background``
    cover   -- scale and center-crop to fill the box
    """
    box = target_size(img.size, width, height)
    if fit == "fill" or not (width and height):
        return img.resize(box, Image.Resampling.LANCZOS)
    if fit == "inside":
        return ImageOps.contain(img, box, Image.Resampling.LANCZOS)
    if fit == "contain":
        return ImageOps.pad(img, box, Image.Resampling.LANCZOS, color=background)
    if fit == "cover":
        return ImageOps.fit(img, box, Image.Resampling.LANCZOS)
    raise ValueError(f"Unknown fit mode: {fit}")


@click.group()
def image() -> None:
    """Image processing commands (powered by Pillow)."""


@image.command("resize")
@input_output_options
@click.option("-w", "--width", type=click.IntRange(min=1), default=None, help="Target width in pixels.")
@click.option("-h", "--height", type=click.IntRange(min=1), default=None, help="Target height in pixels.")
@click.option(
    "--fit",
    type=click.Choice(FIT_MODES),
    default="inside",
    show_default=True,
    help="How the image fits the box when both sides are given.",
)
@click.option("--background", default="black", show_default=True, help="Padding color for --fit contain.")
@click.option("-q", "--quality", type=click.IntRange(1, 100), default=85, show_default=True, help="Output quality.")
def resize_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    width: int | None,
    height: int | None,
    fit: str,
    background: str,
    quality: int,
) -> None:
    """Resize images."""
    if not width and not height:
        raise click.UsageError("Specify --width and/or --height.")
    mapping = resolve_or_fail(
        input_spec,
        output,
        RASTER_IMAGE_EXTENSIONS,
        suffix="-resized",
        preserve_structure=preserve_structure,
    )

    def _process(src: Path, dest: Path) -> None:
        _save(resize_image(_open(src), width, height, fit, background), dest, quality)

    batch = run_batch(
        mapping,
        _process,
        label="Resizing",
        dry_run=dry_run,
        describe=lambda src, dest: f"resize {width or 'auto'}x{height or 'auto'} ({fit})",
    )
    finish(batch)


@image.command("convert")
@input_output_options
@click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(IMAGE_FORMATS),
    required=True,
    help="Target format.",
)
@click.option("-q", "--quality", type=click.IntRange(1, 100), default=85, show_default=True, help="Output quality.")
def convert_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    fmt: str,
    quality: int,
) -> None:
    """Convert images to another format."""
    mapping = resolve_or_fail(
        input_spec,
        output,
        RASTER_IMAGE_EXTENSIONS,
        new_extension=fmt,
        preserve_structure=preserve_structure,
    )
    batch = run_batch(
        mapping,
        lambda src, dest: _save(_open(src), dest, quality),
        label="Converting",
        dry_run=dry_run,
        describe=lambda src, dest: f"convert to {_pil_format(dest) or dest.suffix} (quality {quality})",
    )
    finish(batch)


@image.command("grayscale")
@input_output_options
@click.option("-q", "--quality", type=click.IntRange(1, 100), default=85, show_default=True, help="Output quality.")
def grayscale_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    quality: int,
) -> None:
    """Convert images to grayscale."""
    mapping = resolve_or_fail(
        input_spec,
        output,
        RASTER_IMAGE_EXTENSIONS,
        suffix="-grayscale",
        preserve_structure=preserve_structure,
    )
    batch = run_batch(
        mapping,
        lambda src, dest: _save(ImageOps.grayscale(_open(src)), dest, quality),
        label="Grayscale",
        dry_run=dry_run,
        describe=lambda src, dest: "grayscale",
    )
    finish(batch)


@image.command("thumbnail")
@input_output_options
@click.option("-s", "--size", type=click.IntRange(min=1), default=200, show_default=True, help="Longest side in pixels.")
@click.option("-q", "--quality", type=click.IntRange(1, 100), default=80, show_default=True, help="Output quality.")
def thumbnail_cmd(
    input_spec: str,
    output: str | None,
    preserve_structure: bool,
    dry_run: bool,
    verbose: bool,
    size: int,
    quality: int,
) -> None:
    """Create thumbnails no larger than SIZE x SIZE."""
    mapping = resolve_or_fail(
        input_spec,
        output,
        RASTER_IMAGE_EXTENSIONS,
        suffix="-thumb",
        preserve_structure=preserve_structure,
    )

    def _process(src: Path, dest: Path) -> None:
        img = _open(src)
        img.thumbnail((size, size), Image.Resampling.LANCZOS)
        _save(img, dest, quality)

    batch = run_batch(
        mapping,
        _process,
        label="Thumbnail",
        dry_run=dry_run,
        describe=lambda src, dest: f"thumbnail {size}x{size}",
    )
    finish(batch)


@image.command("info")
@click.argument("input_spec", metavar="INPUT")
def info_cmd(input_spec: str) -> None:
    """Show dimensions, mode and format of images."""
    config = current_config()
    files = parse_input_paths(
        input_spec,
        RASTER_IMAGE_EXTENSIONS,
        recursive=config.recursive,
        max_depth=config.max_depth,
    )
    if not files:
        raise click.UsageError("No valid image files found")
    for file in files:
        try:
            with Image.open(file) as img:
                width, height, mode, fmt = img.width, img.height, img.mode, img.format
        except OSError as exc:
            click.echo(f"{file.name}: {exc}", err=True)
            continue
        click.echo(f"{file.name}")
        click.echo(f"  Dimensions: {width}x{height}")
        click.echo(f"  Mode:       {mode}")
        click.echo(f"  Format:     {fmt}")
        click.echo(f"  Size:       {format_file_size(file.stat().st_size)}")


def register(cli: click.Group) -> None:
    cli.add_command(image)
