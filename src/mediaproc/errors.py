"""Exception hierarchy for mediaproc."""


class MediaprocError(Exception):
    """Base exception for all mediaproc errors."""


class ConfigError(MediaprocError):
    """Invalid or missing configuration."""


class OutputConfigError(ConfigError):
    """Output destination cannot be used with the resolved inputs.

    Raised before any directory is created, e.g. an explicit file output
    combined with several input files.
    """


class PluginLoadError(MediaprocError):
    """A plugin could not be imported, validated, or registered."""

    def __init__(self, plugin: str, reason: str) -> None:
        super().__init__(f"Failed to load plugin {plugin}: {reason}")
        self.plugin = plugin
        self.reason = reason


class ExternalToolError(MediaprocError):
    """An external subprocess (ffmpeg, ffprobe, etc.) failed."""

    def __init__(self, tool: str, exit_code: int, stderr: str) -> None:
        super().__init__(f"{tool} exited with code {exit_code}: {stderr}")
        self.tool = tool
        self.exit_code = exit_code
        self.stderr = stderr
