"""Tests for models.py -- media detection and record types."""

from pathlib import Path
from types import SimpleNamespace

import pytest

from mediaproc.models import (
    ALL_EXTENSIONS,
    IMAGE_EXTENSIONS,
    RASTER_IMAGE_EXTENSIONS,
    BatchResult,
    Failed,
    Loaded,
    MediaprocPlugin,
    MediaType,
    PluginRecord,
    ValidatedPaths,
    detect_media_type,
)


class TestDetectMediaType:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("photo.JPG", MediaType.IMAGE),
            ("anim.gif", MediaType.IMAGE),
            ("clip.mkv", MediaType.VIDEO),
            ("song.flac", MediaType.AUDIO),
            ("paper.pdf", MediaType.DOCUMENT),
            ("model.glb", MediaType.THREED),
            ("data.bin", MediaType.UNKNOWN),
            ("noext", MediaType.UNKNOWN),
        ],
    )
    def test_by_extension(self, name, expected):
        assert detect_media_type(Path(name)) == expected

    def test_accepts_strings(self):
        assert detect_media_type("/tmp/a.wav") == MediaType.AUDIO


class TestExtensionSets:
    def test_all_means_no_filter(self):
        assert ALL_EXTENSIONS is None

    def test_raster_subset(self):
        assert RASTER_IMAGE_EXTENSIONS < IMAGE_EXTENSIONS
        assert ".svg" not in RASTER_IMAGE_EXTENSIONS

    def test_lowercase_dotted(self):
        assert all(e.startswith(".") and e == e.lower() for e in IMAGE_EXTENSIONS)


class TestRecords:
    def test_validated_paths_ok(self):
        assert ValidatedPaths().ok
        assert not ValidatedPaths(errors=["bad"]).ok

    def test_loaded_name(self):
        record = PluginRecord(name="mediaproc-x", module=None, register=print)
        assert Loaded(record).name == "mediaproc-x"
        assert record.version == "unknown"

    def test_failed_equality(self):
        assert Failed("a", "boom") == Failed(name="a", reason="boom")

    def test_batch_defaults(self):
        batch = BatchResult()
        assert (batch.completed, batch.failed, batch.skipped, batch.total) == (0, 0, 0, 0)
        assert batch.results == []

    def test_plugin_protocol(self):
        assert isinstance(SimpleNamespace(register=lambda cli: None), MediaprocPlugin)
        assert not isinstance(SimpleNamespace(), MediaprocPlugin)
