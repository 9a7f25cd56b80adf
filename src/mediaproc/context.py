"""Object handed to every command through click's context."""

from __future__ import annotations

from dataclasses import dataclass, field

import click

from .config import MediaprocConfig
from .plugin_manager import PluginManager


@dataclass
class CliContext:
    config: MediaprocConfig = field(default_factory=MediaprocConfig)
    plugins: PluginManager = field(default_factory=PluginManager)


def current_context() -> CliContext:
    """The CliContext of the running command, or a default one."""
    ctx = click.get_current_context(silent=True)
    obj = ctx.find_object(CliContext) if ctx is not None else None
    return obj if obj is not None else CliContext()
