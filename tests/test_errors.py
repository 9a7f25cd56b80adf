"""Tests for errors.py -- exception hierarchy."""

from mediaproc.errors import (
    ConfigError,
    ExternalToolError,
    MediaprocError,
    OutputConfigError,
    PluginLoadError,
)


class TestExceptionHierarchy:
    def test_all_inherit_from_mediaproc_error(self):
        assert issubclass(ConfigError, MediaprocError)
        assert issubclass(OutputConfigError, ConfigError)
        assert issubclass(PluginLoadError, MediaprocError)
        assert issubclass(ExternalToolError, MediaprocError)

    def test_mediaproc_error_is_exception(self):
        assert issubclass(MediaprocError, Exception)


class TestPluginLoadError:
    def test_attributes(self):
        err = PluginLoadError("mediaproc-foo", "No module named 'mediaproc_foo'")
        assert err.plugin == "mediaproc-foo"
        assert err.reason == "No module named 'mediaproc_foo'"
        assert str(err) == "Failed to load plugin mediaproc-foo: No module named 'mediaproc_foo'"


class TestExternalToolError:
    def test_attributes(self):
        err = ExternalToolError("ffmpeg", 1, "Invalid data found")
        assert err.tool == "ffmpeg"
        assert err.exit_code == 1
        assert err.stderr == "Invalid data found"
        assert "ffmpeg exited with code 1" in str(err)
