"""Tests for batch.py -- sequential runner and summary."""

from pathlib import Path

from mediaproc.batch import echo_summary, run_batch, run_merge
from mediaproc.errors import ExternalToolError
from mediaproc.models import BatchResult


def _mapping(*names: str) -> dict[Path, Path]:
    return {Path(f"/in/{n}"): Path(f"/out/{n}") for n in names}


class TestRunBatch:
    def test_processes_in_order(self):
        seen = []
        batch = run_batch(_mapping("a.mp3", "b.mp3"), lambda src, dest: seen.append(src.name))
        assert seen == ["a.mp3", "b.mp3"]
        assert (batch.completed, batch.failed, batch.total) == (2, 0, 2)
        assert all(r.success for r in batch.results)

    def test_failure_continues(self, capsys):
        def process(src, dest):
            if src.name == "a.mp3":
                raise ExternalToolError("ffmpeg", 1, "Invalid data")

        batch = run_batch(_mapping("a.mp3", "b.mp3"), process, label="Converting")
        assert (batch.completed, batch.failed) == (1, 1)
        assert batch.results[0].error == "ffmpeg exited with code 1: Invalid data"
        assert batch.results[1].success
        captured = capsys.readouterr()
        assert "[1/2] Converting: a.mp3 -> /out/a.mp3" in captured.out
        assert "FAILED: ffmpeg exited with code 1" in captured.err

    def test_dry_run(self, capsys):
        calls = []
        batch = run_batch(
            _mapping("a.jpg"),
            lambda src, dest: calls.append(src),
            dry_run=True,
            describe=lambda src, dest: f"resize {src.name}",
        )
        assert calls == []
        assert batch.skipped == 1
        assert batch.results[0].skipped
        assert "[DRY-RUN] resize a.jpg" in capsys.readouterr().out

    def test_empty_mapping(self):
        batch = run_batch({}, lambda src, dest: None)
        assert batch.total == 0
        assert batch.results == []


class TestRunMerge:
    def test_success(self, capsys):
        calls = []
        inputs = [Path("/in/a.mp3"), Path("/in/b.mp3")]
        batch = run_merge(inputs, Path("/out/all.mp3"), lambda: calls.append("run"))
        assert calls == ["run"]
        assert (batch.completed, batch.failed, batch.total) == (1, 0, 1)
        assert batch.results[0].output == Path("/out/all.mp3")
        out = capsys.readouterr().out
        assert "Merging: 2 files -> /out/all.mp3" in out
        assert "  b.mp3" in out

    def test_failure_recorded(self):
        def process():
            raise ExternalToolError("ffmpeg", 1, "Invalid data")

        batch = run_merge([Path("/in/a.mp3"), Path("/in/b.mp3")], Path("/out/x.mp3"), process)
        assert batch.failed == 1
        assert "Invalid data" in batch.results[0].error

    def test_dry_run(self, capsys):
        calls = []
        batch = run_merge(
            [Path("/in/a.mp4"), Path("/in/b.mp4")],
            Path("/out/x.mp4"),
            lambda: calls.append("run"),
            dry_run=True,
            describe=lambda: "ffmpeg -f concat",
        )
        assert calls == []
        assert batch.skipped == 1
        assert "[DRY-RUN] ffmpeg -f concat" in capsys.readouterr().out


class TestEchoSummary:
    def test_counts(self, capsys):
        echo_summary(BatchResult(completed=2, failed=1, total=3))
        assert "Done: 2 succeeded, 1 failed of 3 file(s)" in capsys.readouterr().out

    def test_dry_run_summary(self, capsys):
        echo_summary(BatchResult(skipped=2, total=2))
        assert "Done: 0 succeeded, 2 skipped (dry run) of 2 file(s)" in capsys.readouterr().out
