"""Tests for the local artifact manager."""

import shutil
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

from conftest import FIXED_NOW, FakeCompiler
from css_channels.artifacts.local import LocalArtifactManager
from css_channels.build.dispatcher import BuildDispatcher
from css_channels.channels.registry import ChannelRegistry
from css_channels.config import RebuildSelection
from css_channels.core.models import (
    ArtifactLocation,
    KnownCreationTime,
    Scope,
)
from css_channels.retention.policies import (
    CustomClean,
    NukeLocal,
    RebuildClean,
    SafeClean,
)


def _manager(
    dist_dir: Path,
    compiler: FakeCompiler | None = None,
    selection: RebuildSelection = RebuildSelection.ALL,
) -> LocalArtifactManager:
    dispatcher = BuildDispatcher(compiler or FakeCompiler(), dist_dir, clock=lambda: FIXED_NOW)
    return LocalArtifactManager(
        dist_dir,
        ChannelRegistry(),
        dispatcher,
        project_root=dist_dir.parent,
        rebuild_selection=selection,
    )


class TestScan:
    """Tests for scanning the dist tree."""

    def test_scan_lists_top_level_entries(self, populated_dist: Path) -> None:
        """Every top-level entry becomes a local location."""
        inventory = _manager(populated_dist).scan()
        assert {loc.name for loc in inventory} == {
            "stable", "latest", "p", "v", "preview-2024-01-01-00-00-00"
        }
        assert all(loc.scope == Scope.LOCAL for loc in inventory)

    def test_scan_reads_preview_time_from_name(self, populated_dist: Path) -> None:
        """Preview creation time comes from the folder name."""
        inventory = _manager(populated_dist).scan()
        preview = next(loc for loc in inventory if loc.is_preview)
        assert preview.created_at == KnownCreationTime(
            datetime(2024, 1, 1, tzinfo=timezone.utc)
        )

    def test_scan_missing_dist_is_empty(self, temp_dir: Path) -> None:
        """A missing dist root scans as empty."""
        assert _manager(temp_dir / "nope").scan() == frozenset()

    def test_scan_is_fresh_each_time(self, populated_dist: Path) -> None:
        """Scans reflect changes made between calls."""
        manager = _manager(populated_dist)
        before = manager.scan()
        (populated_dist / "c").mkdir()
        assert len(manager.scan()) == len(before) + 1


class TestDelete:
    """Tests for deleting local locations."""

    def test_delete_absent_path_is_success(self, dist_dir: Path) -> None:
        """Deleting an already-absent path is not an error."""
        ghost = ArtifactLocation("ghost", Scope.LOCAL, str(dist_dir / "ghost"))
        report = _manager(dist_dir).delete([ghost])
        assert report.ok
        assert report.succeeded == [str(dist_dir / "ghost")]

    def test_delete_records_failures_and_continues(self, populated_dist: Path) -> None:
        """One undeletable folder does not stop the others."""
        manager = _manager(populated_dist)
        inventory = manager.scan()
        stable_path = str(populated_dist / "stable")

        real_rmtree = shutil.rmtree

        def flaky_rmtree(path, *args, **kwargs):
            if str(path) == stable_path:
                raise PermissionError("denied")
            return real_rmtree(path, *args, **kwargs)

        with patch("css_channels.artifacts.local.shutil.rmtree", side_effect=flaky_rmtree):
            report = manager.delete(inventory)

        assert list(report.failed) == [stable_path]
        assert len(report.succeeded) == 4
        assert (populated_dist / "stable").exists()
        assert not (populated_dist / "latest").exists()


class TestApply:
    """Tests for applying decisions."""

    def test_safe_clean_keeps_protected(self, populated_dist: Path) -> None:
        """SafeClean leaves stable and latest on disk."""
        manager = _manager(populated_dist)
        decision = SafeClean().evaluate(manager.scan(), FIXED_NOW)

        result = manager.apply(decision)

        assert result.ok
        assert sorted(p.name for p in populated_dist.iterdir()) == ["latest", "stable"]

    def test_nuke_keeps_empty_dist_root(self, populated_dist: Path) -> None:
        """NukeLocal empties the dist root but keeps the directory."""
        manager = _manager(populated_dist)
        manager.apply(NukeLocal().evaluate(manager.scan(), FIXED_NOW))
        assert populated_dist.is_dir()
        assert list(populated_dist.iterdir()) == []

    def test_rebuild_runs_after_delete(self, populated_dist: Path) -> None:
        """RebuildClean deletes everything then builds every channel."""
        compiler = FakeCompiler()
        manager = _manager(populated_dist, compiler)
        (populated_dist / "stale.txt").write_text("x")

        result = manager.apply(RebuildClean().evaluate(manager.scan(), FIXED_NOW))

        assert result.rebuild is not None and result.rebuild.ok
        assert compiler.calls == ["stable", "latest", "preview", "p", "v", "c"]
        assert not (populated_dist / "stale.txt").exists()
        assert not (populated_dist / "preview-2024-01-01-00-00-00").exists()
        assert (populated_dist / "preview-2024-01-10-12-00-00").is_dir()

    def test_rebuild_skipped_when_delete_fails(self, populated_dist: Path) -> None:
        """A half-deleted tree is never rebuilt."""
        compiler = FakeCompiler()
        manager = _manager(populated_dist, compiler)
        decision = RebuildClean().evaluate(manager.scan(), FIXED_NOW)

        with patch(
            "css_channels.artifacts.local.shutil.rmtree",
            side_effect=PermissionError("denied"),
        ):
            result = manager.apply(decision)

        assert result.rebuild is None
        assert result.rebuild_skipped
        assert compiler.calls == []
        assert not result.ok

    def test_rebuild_existing_selection(self, dist_dir: Path) -> None:
        """The existing selection rebuilds only channels that were present."""
        for name in ("stable", "p", "preview-2024-01-01-00-00-00"):
            (dist_dir / name).mkdir()
        compiler = FakeCompiler()
        manager = _manager(dist_dir, compiler, RebuildSelection.EXISTING)

        manager.apply(RebuildClean().evaluate(manager.scan(), FIXED_NOW))

        assert compiler.calls == ["stable", "preview", "p"]

    def test_dry_run_touches_nothing(self, populated_dist: Path) -> None:
        """Dry runs report the decision without deleting."""
        compiler = FakeCompiler()
        manager = _manager(populated_dist, compiler)
        decision = RebuildClean().evaluate(manager.scan(), FIXED_NOW)

        result = manager.apply(decision, dry_run=True)

        assert result.dry_run
        assert len(result.deleted) == 5
        assert len(list(populated_dist.iterdir())) == 5
        assert compiler.calls == []

    def test_custom_clean_single_folder(self, populated_dist: Path) -> None:
        """CustomClean removes exactly the named folder."""
        manager = _manager(populated_dist)
        manager.apply(CustomClean(folder_name="p").evaluate(manager.scan(), FIXED_NOW))
        assert not (populated_dist / "p").exists()
        assert (populated_dist / "v").exists()


class TestRootHygiene:
    """Tests for stray file removal in the project root."""

    def test_removes_stray_files(self, project_dir: Path, dist_dir: Path) -> None:
        """Archives, logs and OS metadata are removed; sources are kept."""
        for name in ("ucss-1.0.0.tgz", "npm-debug.log", "Thumbs.db", ".DS_Store", "package.json"):
            (project_dir / name).write_text("x")

        removed = _manager(dist_dir).clean_root_artifacts()

        assert sorted(Path(p).name for p in removed) == [
            ".DS_Store", "Thumbs.db", "npm-debug.log", "ucss-1.0.0.tgz"
        ]
        assert (project_dir / "package.json").exists()
        assert not (project_dir / "npm-debug.log").exists()

    def test_dry_run_keeps_files(self, project_dir: Path, dist_dir: Path) -> None:
        """Dry runs list stray files without removing them."""
        (project_dir / "build.log").write_text("x")
        removed = _manager(dist_dir).clean_root_artifacts(dry_run=True)
        assert removed == [str(project_dir / "build.log")]
        assert (project_dir / "build.log").exists()

    def test_directories_are_ignored(self, project_dir: Path, dist_dir: Path) -> None:
        """Directories with junk-like names are left alone."""
        (project_dir / "logs.log").mkdir()
        assert _manager(dist_dir).clean_root_artifacts() == []
