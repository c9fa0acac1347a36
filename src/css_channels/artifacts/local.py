"""
Local Artifact Manager.

Scans the local dist tree into ArtifactLocations and applies retention
decisions to it. Deletion always completes before any rebuild starts.
"""

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from css_channels.build.dispatcher import BuildDispatcher
from css_channels.channels.registry import ChannelRegistry
from css_channels.config import RebuildSelection
from css_channels.core.models import (
    ApplyResult,
    ArtifactLocation,
    Channel,
    CreationTime,
    Decision,
    DeleteReport,
    KnownCreationTime,
    Scope,
    UnknownCreationTime,
    is_preview_name,
    parse_preview_timestamp,
)

logger = logging.getLogger(__name__)

# Stray files removed from the project root by full and safe cleans
ROOT_JUNK_SUFFIXES = (".tgz", ".log")
ROOT_JUNK_NAMES = frozenset({"thumbs.db", ".ds_store"})


def _creation_time(path: Path) -> CreationTime:
    """Name timestamp first, then filesystem mtime."""
    stamp = parse_preview_timestamp(path.name)
    if stamp is not None:
        return KnownCreationTime(at=stamp)
    try:
        mtime = path.stat().st_mtime
    except OSError as e:
        return UnknownCreationTime(reason=f"stat failed: {e}")
    return KnownCreationTime(at=datetime.fromtimestamp(mtime, tz=timezone.utc))


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


class LocalArtifactManager:
    """Applies delete and rebuild decisions to the local artifact tree."""

    def __init__(
        self,
        dist_root: Path,
        registry: ChannelRegistry,
        dispatcher: BuildDispatcher,
        project_root: Path | None = None,
        rebuild_selection: RebuildSelection = RebuildSelection.ALL,
    ):
        """
        Initialize manager.

        Args:
            dist_root: Local artifact root (the RetentionScope for local policies)
            registry: Channel registry used to pick rebuild channels
            dispatcher: Build dispatcher for rebuild-after-clean
            project_root: Root scanned for stray build files
            rebuild_selection: Which channels a rebuild compiles
        """
        self._dist_root = dist_root
        self._registry = registry
        self._dispatcher = dispatcher
        self._project_root = project_root or dist_root.parent
        self._rebuild_selection = rebuild_selection

    @property
    def dist_root(self) -> Path:
        return self._dist_root

    def scan(self) -> frozenset[ArtifactLocation]:
        """Enumerate the top-level entries of the dist root, fresh on every call."""
        if not self._dist_root.is_dir():
            return frozenset()
        return frozenset(
            ArtifactLocation(
                channel_id=entry.name,
                scope=Scope.LOCAL,
                path=str(entry),
                created_at=_creation_time(entry),
                is_dir=entry.is_dir(),
            )
            for entry in self._dist_root.iterdir()
        )

    def delete(self, locations: Iterable[ArtifactLocation]) -> DeleteReport:
        """
        Delete each location, recording outcomes per path.

        An already-absent path counts as deleted. Other filesystem errors are
        recorded and the batch continues; nothing is retried.
        """
        report = DeleteReport()
        for location in sorted(locations, key=lambda loc: loc.path):
            path = Path(location.path)
            try:
                _remove_path(path)
            except FileNotFoundError:
                logger.debug("Already absent: %s", path)
            except OSError as e:
                logger.error("Failed to delete %s: %s", path, e)
                report.failed[location.path] = str(e)
                continue
            logger.info("Deleted %s", path)
            report.succeeded.append(location.path)
        return report

    def apply(self, decision: Decision, dry_run: bool = False) -> ApplyResult:
        """
        Apply a decision to the local tree.

        Args:
            decision: Policy output to apply
            dry_run: Report the decision without touching the filesystem

        Returns:
            ApplyResult with the delete report and, when the decision asks
            for it, the rebuild batch
        """
        result = ApplyResult(
            policy=decision.policy,
            scope=Scope.LOCAL,
            deleted=decision.deleted_paths(),
            preserved=decision.preserved_paths(),
            noop=decision.is_noop,
            dry_run=dry_run,
        )
        if dry_run:
            return result

        result.report = self.delete(decision.to_delete)
        if not decision.rebuild_after:
            return result

        if result.report.failed:
            result.rebuild_skipped = (
                f"{len(result.report.failed)} location(s) could not be deleted"
            )
            logger.warning("Skipping rebuild: %s", result.rebuild_skipped)
            return result

        channels = self.rebuild_channels(decision)
        logger.info("Rebuilding %d channel(s)", len(channels))
        result.rebuild = self._dispatcher.build_all(channels)
        return result

    def rebuild_channels(self, decision: Decision) -> tuple[Channel, ...]:
        """Channels compiled after a rebuild-clean, in registry order."""
        if self._rebuild_selection == RebuildSelection.ALL:
            return self._registry.all()

        existing = {loc.channel_id for loc in decision.to_delete}
        had_preview = any(is_preview_name(name) for name in existing)
        return tuple(
            channel
            for channel in self._registry.all()
            if channel.id in existing or (channel.is_preview and had_preview)
        )

    def clean_root_artifacts(self, dry_run: bool = False) -> list[str]:
        """Remove stray archives, logs and OS metadata files from the project root."""
        if not self._project_root.is_dir():
            return []

        removed = []
        for entry in sorted(self._project_root.iterdir()):
            name = entry.name.lower()
            if not entry.is_file():
                continue
            if not (name.endswith(ROOT_JUNK_SUFFIXES) or name in ROOT_JUNK_NAMES):
                continue
            if not dry_run:
                try:
                    entry.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    logger.warning("Could not remove %s: %s", entry, e)
                    continue
            removed.append(str(entry))
        if removed:
            logger.info("Removed %d stray file(s) from %s", len(removed), self._project_root)
        return removed
