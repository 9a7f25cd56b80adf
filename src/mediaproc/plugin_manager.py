"""Plugin discovery, loading, and bookkeeping.

A plugin is any importable module exposing ``register(cli)`` (sync or async).
It receives the root click group and adds its own commands to it.

Discovery reads the nearest ``pyproject.toml`` (regular and dev dependencies)
and keeps the names that carry the plugin prefix (``mediaproc-``). Built-in
plugins ship inside this package and are always attempted first; a local
checkout under ``<project>/plugins/<short-name>/__init__.py`` takes precedence
over the bundled copy.

Each plugin moves through unattempted -> loading -> loaded | failed exactly
once per process. One plugin failing never stops the others from loading.
"""

from __future__ import annotations

import asyncio
import importlib
import importlib.util
import inspect
import re
import sys
import tomllib
from collections.abc import Callable
from pathlib import Path
from types import MappingProxyType, ModuleType
from typing import Any

from loguru import logger

from .errors import PluginLoadError
from .models import (
    Failed,
    Loaded,
    LoadResult,
    MediaprocPlugin,
    PluginRecord,
    PluginState,
    PluginType,
)

log = logger.bind(stage="plugins")

PLUGIN_PREFIX = "mediaproc-"
CORE_PACKAGE = "mediaproc"
MANIFEST_NAME = "pyproject.toml"

# Distribution name -> bundled module
BUILTIN_PLUGINS: dict[str, str] = {
    "mediaproc-image": "mediaproc.builtins.image",
    "mediaproc-video": "mediaproc.builtins.video",
    "mediaproc-audio": "mediaproc.builtins.audio",
}

OFFICIAL_PLUGINS: frozenset[str] = frozenset(
    {
        "mediaproc-image",
        "mediaproc-video",
        "mediaproc-audio",
        "mediaproc-document",
        "mediaproc-animation",
        "mediaproc-3d",
        "mediaproc-stream",
        "mediaproc-ai",
        "mediaproc-metadata",
        "mediaproc-pipeline",
    }
)

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?)")


def normalize_name(name: str) -> str:
    """PEP 503 normalization: lowercase, runs of -_. become a single dash."""
    return re.sub(r"[-_.]+", "-", name).lower()


def requirement_name(requirement: str) -> str | None:
    """Project name of a PEP 508 requirement string, without version/extras."""
    match = _REQUIREMENT_NAME.match(requirement)
    if not match:
        return None
    return normalize_name(match.group(1))


def find_manifest(start: Path) -> Path | None:
    """Nearest pyproject.toml at or above ``start``."""
    start = start.resolve()
    for directory in (start, *start.parents):
        candidate = directory / MANIFEST_NAME
        if candidate.is_file():
            return candidate
    return None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    # dependency-groups may hold {include-group = "..."} tables
    return [item for item in value if isinstance(item, str)]


def read_declared_dependencies(manifest: Path) -> list[str]:
    """Names declared as regular or dev dependencies, in declaration order.

    Raises tomllib.TOMLDecodeError / OSError for unreadable manifests.
    """
    data = tomllib.loads(manifest.read_text(encoding="utf-8"))

    project = data.get("project", {})
    if not isinstance(project, dict):
        project = {}
    optional = project.get("optional-dependencies", {})
    groups = data.get("dependency-groups", {})

    declared = _string_list(project.get("dependencies"))
    if isinstance(optional, dict):
        declared += _string_list(optional.get("dev"))
    if isinstance(groups, dict):
        declared += _string_list(groups.get("dev"))

    names = [requirement_name(req) for req in declared]
    return list(dict.fromkeys(n for n in names if n))


def detect_plugin_type(name: str, prefix: str = PLUGIN_PREFIX) -> PluginType:
    """Classify a distribution name: official, community, or third-party."""
    if name in OFFICIAL_PLUGINS:
        return PluginType.OFFICIAL
    if name.startswith(prefix):
        return PluginType.COMMUNITY
    return PluginType.THIRD_PARTY


def _import_from_path(module_name: str, path: Path) -> ModuleType:
    """Import a package from its ``__init__.py`` outside sys.path."""
    spec = importlib.util.spec_from_file_location(
        module_name, path, submodule_search_locations=[str(path.parent)]
    )
    if spec is None or spec.loader is None:
        raise ImportError(f"Unable to load plugin module from {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


async def _await(awaitable: Any) -> Any:
    return await awaitable


class PluginManager:
    """Owns the process-wide plugin table.

    The table is filled once during startup by ``load_plugins`` and exposed
    read-only through ``registry`` afterwards.
    """

    def __init__(
        self,
        project_dir: Path | None = None,
        plugin_prefix: str = PLUGIN_PREFIX,
        core_package: str = CORE_PACKAGE,
        builtin_plugins: dict[str, str] | None = None,
    ) -> None:
        self.project_dir = Path(project_dir) if project_dir else Path.cwd()
        self.plugin_prefix = plugin_prefix.lower()
        self.core_package = normalize_name(core_package)
        self.builtin_plugins = dict(
            BUILTIN_PLUGINS if builtin_plugins is None else builtin_plugins
        )
        self._plugins: dict[str, PluginRecord] = {}
        self._states: dict[str, PluginState] = {}
        self._failures: dict[str, str] = {}

    # -- Discovery --

    def discover_plugins(self) -> list[str]:
        """Plugin names declared in the nearest pyproject.toml.

        A missing or unparsable manifest means "no plugins", never an error.
        """
        manifest = find_manifest(self.project_dir)
        if manifest is None:
            log.debug(f"No {MANIFEST_NAME} found from {self.project_dir}")
            return []

        try:
            names = read_declared_dependencies(manifest)
        except (tomllib.TOMLDecodeError, OSError, UnicodeDecodeError) as exc:
            log.warning(f"Could not read {manifest}: {exc}")
            return []

        plugins = [
            n
            for n in names
            if n.startswith(self.plugin_prefix) and n != self.core_package
        ]
        log.debug(f"Discovered {len(plugins)} plugin(s) in {manifest}: {plugins}")
        return plugins

    def module_name_for(self, name: str) -> str:
        """Import name for a plugin distribution name."""
        if name in self.builtin_plugins:
            return self.builtin_plugins[name]
        return name.replace("-", "_")

    def local_plugin_path(self, name: str) -> Path:
        short = name.removeprefix(self.plugin_prefix)
        return self.project_dir / "plugins" / short / "__init__.py"

    # -- Loading --

    def _load(
        self,
        name: str,
        cli: Any,
        built_in: bool,
        importer: Callable[[], ModuleType],
    ) -> bool:
        if name in self._plugins:
            return True
        if self._states.get(name) == PluginState.FAILED:
            raise PluginLoadError(name, self._failures.get(name, "previous attempt failed"))

        self._states[name] = PluginState.LOADING
        try:
            module = importer()
            register = getattr(module, "register", None)
            if not isinstance(module, MediaprocPlugin) or not callable(register):
                raise PluginLoadError(
                    name, f"Plugin {name} does not export a register() function"
                )

            outcome = register(cli)
            if inspect.isawaitable(outcome):
                asyncio.run(_await(outcome))
        except (Exception, SystemExit) as exc:
            # A plugin calling sys.exit() fails alone, the CLI keeps going
            if isinstance(exc, PluginLoadError):
                reason = exc.reason
            elif isinstance(exc, SystemExit):
                reason = f"Plugin exited during load (code {exc.code})"
            else:
                reason = str(exc)
            reason = reason or type(exc).__name__
            self._states[name] = PluginState.FAILED
            self._failures[name] = reason
            if isinstance(exc, PluginLoadError):
                raise
            raise PluginLoadError(name, reason) from exc

        version = getattr(module, "__version__", None) or getattr(module, "version", None)
        self._plugins[name] = PluginRecord(
            name=name,
            module=module,
            register=register,
            version=str(version) if version else "unknown",
            built_in=built_in,
        )
        self._states[name] = PluginState.LOADED
        log.debug(f"Loaded plugin {name} (built_in={built_in})")
        return True

    def load_plugin(self, name: str, cli: Any, built_in: bool = False) -> bool:
        """Import ``name`` and let it register its commands on ``cli``.

        Loading an already-loaded plugin is a no-op returning True.
        Raises PluginLoadError if the import fails, ``register`` is missing,
        or ``register`` itself raises.
        """
        module_name = self.module_name_for(name)
        return self._load(
            name, cli, built_in, lambda: importlib.import_module(module_name)
        )

    def load_builtin_plugins(self, cli: Any) -> list[LoadResult]:
        """Load bundled plugins, preferring a local checkout when present."""
        results: list[LoadResult] = []
        for name in self.builtin_plugins:
            if name in self._plugins:
                continue
            local_path = self.local_plugin_path(name)
            try:
                if local_path.is_file():
                    log.debug(f"Loading {name} from local build {local_path}")
                    module_name = name.replace("-", "_")
                    self._load(
                        name,
                        cli,
                        True,
                        lambda: _import_from_path(module_name, local_path),
                    )
                else:
                    self.load_plugin(name, cli, built_in=True)
                results.append(Loaded(self._plugins[name]))
            except PluginLoadError as exc:
                log.warning(f"Warning: {exc}")
                results.append(Failed(name=name, reason=exc.reason))
        return results

    def load_plugins(self, cli: Any) -> list[LoadResult]:
        """Load built-in plugins, then every discovered external plugin.

        Failures are logged as warnings and returned as ``Failed`` entries;
        loading always continues with the next candidate.
        """
        results = self.load_builtin_plugins(cli)

        for name in self.discover_plugins():
            if name in self._plugins:
                continue
            try:
                self.load_plugin(name, cli, built_in=False)
                results.append(Loaded(self._plugins[name]))
            except PluginLoadError as exc:
                log.warning(f"Warning: {exc}")
                results.append(Failed(name=name, reason=exc.reason))

        loaded = sum(1 for r in results if isinstance(r, Loaded))
        log.debug(f"Plugins: {loaded} loaded, {len(results) - loaded} failed")
        return results

    # -- Bookkeeping --

    @property
    def registry(self) -> MappingProxyType[str, PluginRecord]:
        """Read-only view of loaded plugins keyed by name."""
        return MappingProxyType(self._plugins)

    @property
    def failures(self) -> MappingProxyType[str, str]:
        return MappingProxyType(self._failures)

    def state(self, name: str) -> PluginState:
        return self._states.get(name, PluginState.UNATTEMPTED)

    def get_loaded_plugins(self) -> list[str]:
        return list(self._plugins)

    def is_plugin_loaded(self, name: str) -> bool:
        return name in self._plugins

    def get_plugin(self, name: str) -> PluginRecord | None:
        return self._plugins.get(name)

    def plugin_type(self, name: str) -> PluginType:
        record = self._plugins.get(name)
        if record is not None and record.built_in:
            return PluginType.BUILT_IN
        return detect_plugin_type(name, self.plugin_prefix)

    def unload_plugin(self, name: str) -> bool:
        """Drop the record of a loaded plugin.

        Commands it registered stay on the CLI and its state is left as is.
        """
        if name not in self._plugins:
            return False
        del self._plugins[name]
        return True
