"""mediaproc configuration via pydantic-settings (.env + MEDIAPROC_* env vars)."""

import sys
from pathlib import Path

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = (
    "{time:YYYY-MM-DDTHH:mm:ssZ} | {level:<8} | "
    "{extra[stage]:<12} | {message}"
)


class MediaprocConfig(BaseSettings):
    """All CLI configuration with layered resolution:
    .env file < environment variables < constructor kwargs.
    """

    model_config = SettingsConfigDict(
        env_prefix="MEDIAPROC_",
        env_file=".env",
        extra="ignore",
    )

    # -- Plugin discovery --
    project_dir: Path = Field(default_factory=Path.cwd)
    plugin_prefix: str = "mediaproc-"
    core_package: str = "mediaproc"

    # -- Input scanning --
    recursive: bool = True
    max_depth: int = 10

    # -- External tools --
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"

    # -- Logging --
    log_dir: Path | None = None
    log_level: str = "WARNING"
    verbose: bool = False

    def setup_logging(self) -> None:
        """Configure loguru for the CLI."""
        logger.remove()  # Remove default stderr handler

        def _default_extra(record):
            record["extra"].setdefault("stage", "")
            return True

        level = "DEBUG" if self.verbose else self.log_level.upper()
        logger.add(
            sys.stderr,
            format=LOG_FORMAT,
            level=level,
            filter=_default_extra,
        )

        if self.log_dir is None:
            return

        self.log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self.log_dir / "mediaproc.log"),
            format=LOG_FORMAT,
            level="DEBUG",
            rotation="10 MB",
            retention="30 days",
            filter=_default_extra,
        )
