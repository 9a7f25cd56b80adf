"""Shared fixtures: isolated environment and a ready CliContext."""

import os

import pytest

from mediaproc.config import MediaprocConfig
from mediaproc.context import CliContext
from mediaproc.plugin_manager import PluginManager


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    """Drop MEDIAPROC_* vars and run every test from its own tmp dir."""
    for var in list(os.environ):
        if var.startswith("MEDIAPROC_"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def app(tmp_path):
    config = MediaprocConfig(_env_file=None, project_dir=tmp_path)
    return CliContext(config=config, plugins=PluginManager(project_dir=tmp_path))
