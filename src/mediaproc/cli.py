"""CLI entry point for mediaproc."""

import importlib.util
import json
import shutil
from datetime import datetime
from pathlib import Path

import click
from loguru import logger

from . import __version__
from .config import MediaprocConfig
from .context import CliContext
from .ffmpeg import format_file_size
from .models import MediaType, detect_media_type
from .plugin_manager import PluginManager

log = logger.bind(stage="cli")


def _plugin_for(media_type: MediaType, plugins: PluginManager) -> str:
    return f"{plugins.plugin_prefix}{media_type.value}"


def _echo_plugin_status(media_type: MediaType, plugins: PluginManager) -> None:
    plugin = _plugin_for(media_type, plugins)
    if plugins.is_plugin_loaded(plugin):
        click.echo(f"  {media_type.value} plugin is loaded - command is ready")
    elif plugin in plugins.failures:
        click.echo(f"  {media_type.value} plugin failed to load: {plugins.failures[plugin]}")
    else:
        click.echo(f"  {media_type.value} plugin not installed")
        click.echo(f"  Install: pip install {plugin}")


@click.group()
@click.version_option(__version__, prog_name="mediaproc")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Modern, plugin-based media processing CLI."""
    if ctx.obj is None:
        ctx.obj = CliContext()
    if verbose:
        ctx.obj.config.verbose = True
        ctx.obj.config.setup_logging()


@cli.command("list")
@click.pass_obj
def list_plugins(app: CliContext) -> None:
    """List loaded mediaproc plugins."""
    plugins = app.plugins
    names = plugins.get_loaded_plugins()

    if not names:
        click.echo("No plugins loaded")
        click.echo("Declare plugins (mediaproc-*) in your pyproject.toml dependencies.")
    else:
        built_in = [n for n in names if plugins.get_plugin(n).built_in]
        external = [n for n in names if not plugins.get_plugin(n).built_in]
        click.echo(f"Loaded plugins ({len(names)} total)")
        for title, group in (("Built-in", built_in), ("Installed", external)):
            if not group:
                continue
            click.echo(f"\n{title}:")
            for name in group:
                record = plugins.get_plugin(name)
                kind = plugins.plugin_type(name).value
                click.echo(f"  {name:<24} {record.version:<10} {kind}")

    if plugins.failures:
        click.echo("\nFailed to load:")
        for name, reason in plugins.failures.items():
            click.echo(f"  {name}: {reason}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def info(app: CliContext, file: str, as_json: bool) -> None:
    """Show basic information for any media file."""
    path = Path(file).resolve()
    stat = path.stat()
    media_type = detect_media_type(path)
    modified = datetime.fromtimestamp(stat.st_mtime).isoformat(timespec="seconds")
    suggested = "" if media_type == MediaType.UNKNOWN else media_type.value

    if as_json:
        click.echo(
            json.dumps(
                {
                    "name": path.name,
                    "path": str(path),
                    "type": media_type.value,
                    "extension": path.suffix.lower().lstrip("."),
                    "size": stat.st_size,
                    "modified": modified,
                    "suggestedPlugin": suggested,
                },
                indent=2,
            )
        )
        return

    click.echo(f"Name:      {path.name}")
    click.echo(f"Type:      {media_type.value} ({path.suffix.lower()})")
    click.echo(f"Size:      {format_file_size(stat.st_size)} ({stat.st_size} bytes)")
    click.echo(f"Path:      {path}")
    click.echo(f"Modified:  {modified}")

    if not suggested:
        click.echo("\nUnknown media type - no plugin available")
        return
    click.echo("\nDetailed info:")
    click.echo(f"  mediaproc {suggested} info {file}")
    _echo_plugin_status(media_type, app.plugins)


@cli.command()
@click.argument("input_file", metavar="INPUT", type=click.Path(exists=True, dir_okay=False))
@click.argument("output")
@click.pass_obj
def convert(app: CliContext, input_file: str, output: str) -> None:
    """Suggest the plugin command that converts INPUT to OUTPUT."""
    media_type = detect_media_type(input_file)
    if media_type == MediaType.UNKNOWN:
        raise click.UsageError(
            f"Unsupported input format: {Path(input_file).suffix or '(none)'}"
        )

    target = Path(output).suffix.lower().lstrip(".")
    command = f"mediaproc {media_type.value} convert {input_file} -o {output}"
    if target:
        command += f" -f {target}"

    click.echo(f"{media_type.value.capitalize()} conversion")
    click.echo(f"  Input:  {input_file}")
    click.echo(f"  Output: {output}")
    click.echo("\nSuggested command:")
    click.echo(f"  {command}")
    _echo_plugin_status(media_type, app.plugins)


# media type -> strategy -> (description, target extension, plugin command options)
OPTIMIZE_STRATEGIES: dict[MediaType, dict[str, tuple[str, str, str]]] = {
    MediaType.IMAGE: {
        "lossless": ("Lossless (PNG)", ".png", "convert -f png"),
        "aggressive": ("Aggressive (WebP Q70, smaller files)", ".webp", "convert -f webp -q 70"),
        "balanced": ("Balanced (WebP Q85)", ".webp", "convert -f webp -q 85"),
    },
    MediaType.VIDEO: {
        "lossless": ("Lossless (H.265 CRF 0)", ".mp4", "convert --codec h265 -q 0"),
        "aggressive": ("Aggressive (H.265 CRF 28)", ".mp4", "convert --codec h265 -q 28"),
        "balanced": ("Balanced (H.265 CRF 23)", ".mp4", "convert --codec h265 -q 23"),
    },
    MediaType.AUDIO: {
        "lossless": ("Lossless (FLAC)", ".flac", "convert -f flac"),
        "aggressive": ("Aggressive (Opus 96 kbps)", ".opus", "convert -f opus -b 96k"),
        "balanced": ("Balanced (Opus 128 kbps)", ".opus", "convert -f opus -b 128k"),
    },
}


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--output", default=None, help="Output file (default: <name>.optimized.<ext>).")
@click.option("--aggressive", is_flag=True, help="Smaller files at lower quality.")
@click.option("--lossless", is_flag=True, help="Keep full quality.")
@click.pass_obj
def optimize(app: CliContext, file: str, output: str | None, aggressive: bool, lossless: bool) -> None:
    """Suggest the plugin command that optimizes FILE."""
    if aggressive and lossless:
        raise click.UsageError("--aggressive and --lossless cannot be combined.")
    media_type = detect_media_type(file)
    strategies = OPTIMIZE_STRATEGIES.get(media_type)
    if strategies is None:
        supported = ", ".join(t.value for t in OPTIMIZE_STRATEGIES)
        raise click.UsageError(
            f"Unsupported file format for optimization: {Path(file).suffix or '(none)'}"
            f" (supported: {supported})"
        )

    level = "lossless" if lossless else "aggressive" if aggressive else "balanced"
    description, extension, options = strategies[level]
    source = Path(file)
    target = output or str(source.with_name(f"{source.stem}.optimized{extension}"))

    click.echo(f"{media_type.value.capitalize()} optimization")
    click.echo(f"  File:     {file}")
    click.echo(f"  Strategy: {description}")
    click.echo("\nRecommended command:")
    click.echo(f"  mediaproc {media_type.value} {options} {file} -o {target}")
    _echo_plugin_status(media_type, app.plugins)


@cli.command()
@click.pass_obj
def doctor(app: CliContext) -> None:
    """Check that the external tools used by plugins are available."""
    config = app.config
    checks = {
        config.ffmpeg_bin: shutil.which(config.ffmpeg_bin) is not None,
        config.ffprobe_bin: shutil.which(config.ffprobe_bin) is not None,
        "Pillow": importlib.util.find_spec("PIL") is not None,
    }
    for tool, ok in checks.items():
        click.echo(f"  {'OK     ' if ok else 'MISSING'} {tool}")
    if not all(checks.values()):
        raise click.exceptions.Exit(1)


def main() -> None:
    """Build the CLI: config, logging, plugins, then argument parsing."""
    config = MediaprocConfig()
    config.setup_logging()

    plugins = PluginManager(
        project_dir=config.project_dir,
        plugin_prefix=config.plugin_prefix,
        core_package=config.core_package,
    )
    try:
        plugins.load_plugins(cli)
    except (Exception, SystemExit) as exc:
        # Plugin loading is never fatal
        log.error(f"Error loading plugins: {exc}")

    cli(obj=CliContext(config=config, plugins=plugins))
