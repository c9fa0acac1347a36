"""
Remote Sync Engine.

Applies push and delete decisions against the remote root. Listings are
taken fresh on every call; the remote tree is the only source of truth.
"""

import logging
import posixpath
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from css_channels.channels.registry import LATEST, STABLE
from css_channels.core.exceptions import TransportError
from css_channels.core.models import (
    ROOT_INDEX,
    ApplyResult,
    ArtifactLocation,
    Channel,
    CreationTime,
    Decision,
    DeleteReport,
    KnownCreationTime,
    MirrorResult,
    PushResult,
    Scope,
    UnknownCreationTime,
    parse_preview_timestamp,
)
from css_channels.remote.transport import RemoteEntry, Transport
from css_channels.retention.policies import RetentionPolicy

logger = logging.getLogger(__name__)

# Files served from the remote root, uploaded from the dist root
ROOT_FILES = (ROOT_INDEX, ".htaccess")


def _creation_time(entry: RemoteEntry) -> CreationTime:
    """Name timestamp first, then listing metadata."""
    stamp = parse_preview_timestamp(entry.name)
    if stamp is not None:
        return KnownCreationTime(at=stamp)
    if entry.modified is not None:
        return KnownCreationTime(at=entry.modified)
    return UnknownCreationTime(reason="no listing metadata")


class RemoteSyncEngine:
    """Pushes channel artifacts to the remote and deletes remote locations."""

    def __init__(
        self,
        transport: Transport,
        remote_root: str,
        dist_root: Path,
        max_workers: int = 1,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize engine.

        Args:
            transport: File-sync capability for the remote host
            remote_root: Remote directory holding all channels
            dist_root: Local artifact root (source of root files and archives)
            max_workers: Concurrent deletes, honored only by thread-safe transports
            clock: Source of "now" for age-based policies
        """
        self._transport = transport
        self._remote_root = remote_root or "/"
        self._dist_root = dist_root
        self._max_workers = max(1, max_workers)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def remote_root(self) -> str:
        return self._remote_root

    def list_remote(self, root: str | None = None) -> frozenset[ArtifactLocation]:
        """
        Enumerate entries under the remote root.

        A missing root yields an empty inventory.

        Raises:
            TransportError: If the remote cannot be reached or listed
        """
        root = root or self._remote_root
        if not self._transport.exists(root):
            logger.info("Remote root %s does not exist", root)
            return frozenset()
        return frozenset(
            ArtifactLocation(
                channel_id=entry.name,
                scope=Scope.REMOTE,
                path=posixpath.join(root, entry.name),
                created_at=_creation_time(entry),
                is_dir=entry.is_dir,
            )
            for entry in self._transport.list_dir(root)
        )

    def _delete_one(self, location: ArtifactLocation) -> str | None:
        """Delete one location; return the error message on failure."""
        try:
            self._transport.remove(location.path, location.is_dir)
        except TransportError as e:
            logger.error("Failed to delete remote %s: %s", location.path, e)
            return str(e)
        except Exception as e:
            logger.exception("Unexpected error deleting remote %s", location.path)
            return f"{type(e).__name__}: {e}"
        logger.info("Deleted remote %s", location.path)
        return None

    def delete(self, locations: Iterable[ArtifactLocation]) -> DeleteReport:
        """
        Delete every location, waiting for all of them.

        One failure never cancels its siblings; the report lists exactly
        which paths failed.
        """
        ordered = sorted(locations, key=lambda loc: loc.path)
        errors: dict[str, str | None] = {}

        if self._max_workers > 1 and self._transport.thread_safe and len(ordered) > 1:
            with ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="remote-delete"
            ) as executor:
                futures = {executor.submit(self._delete_one, loc): loc for loc in ordered}
                for future in as_completed(futures):
                    errors[futures[future].path] = future.result()
        else:
            for loc in ordered:
                errors[loc.path] = self._delete_one(loc)

        report = DeleteReport()
        for loc in ordered:
            error = errors[loc.path]
            if error is None:
                report.succeeded.append(loc.path)
            else:
                report.failed[loc.path] = error
        if report.failed:
            logger.warning(
                "%d of %d remote deletions failed", len(report.failed), len(ordered)
            )
        return report

    def apply(self, decision: Decision, dry_run: bool = False) -> ApplyResult:
        """Apply a decision to the remote."""
        result = ApplyResult(
            policy=decision.policy,
            scope=Scope.REMOTE,
            deleted=decision.deleted_paths(),
            preserved=decision.preserved_paths(),
            noop=decision.is_noop,
            dry_run=dry_run,
        )
        if not dry_run and not decision.is_noop:
            result.report = self.delete(decision.to_delete)
        return result

    def run_policy(self, policy: RetentionPolicy, dry_run: bool = False) -> ApplyResult:
        """Scan the remote, evaluate ``policy`` and apply the decision."""
        inventory = self.list_remote()
        decision = policy.evaluate(inventory, self._clock())
        logger.info(
            "%s: %d to delete, %d preserved",
            decision.policy,
            len(decision.to_delete),
            len(decision.to_preserve),
        )
        return self.apply(decision, dry_run=dry_run)

    def _remote_path_for(self, channel: Channel, target: str) -> str:
        if not channel.is_preview:
            return channel.remote_path(self._remote_root)
        moment = parse_preview_timestamp(target)
        if moment is None:
            return posixpath.join(self._remote_root, target)
        return channel.remote_path(self._remote_root, moment)

    def bootstrap(self) -> bool:
        """
        Prepare a never-deployed remote.

        Creates the remote root if absent and uploads the root files when the
        remote has neither an index document nor a stable channel.

        Returns:
            True if anything was created or uploaded

        Raises:
            TransportError: If the remote root cannot be created
        """
        changed = False
        if not self._transport.exists(self._remote_root):
            logger.info("Bootstrapping remote root %s", self._remote_root)
            self._transport.ensure_dir(self._remote_root)
            changed = True

        names = {entry.name for entry in self._transport.list_dir(self._remote_root)}
        if ROOT_INDEX in names or STABLE in names:
            return changed

        for name in ROOT_FILES:
            source = self._dist_root / name
            if source.is_file():
                self._transport.upload_file(source, posixpath.join(self._remote_root, name))
                logger.info("Bootstrapped %s", name)
                changed = True
        return changed

    def refresh_root_files(self) -> list[str]:
        """Force-upload the root files; failures are returned as warnings."""
        warnings = []
        for name in ROOT_FILES:
            source = self._dist_root / name
            if not source.is_file():
                continue
            try:
                self._transport.upload_file(source, posixpath.join(self._remote_root, name))
            except TransportError as e:
                warnings.append(f"Could not refresh {name}: {e}")
        return warnings

    def push(self, channel: Channel, local_path: Path, target: str | None = None) -> PushResult:
        """
        Upload one channel's built artifacts.

        Args:
            channel: Channel being deployed
            local_path: Built artifact directory
            target: Resolved instance name (timestamped for previews)

        Returns:
            PushResult; transport failures are reported, not raised
        """
        target = target or local_path.name
        remote_path = self._remote_path_for(channel, target)
        result = PushResult(
            channel_id=channel.id,
            local_path=str(local_path),
            remote_path=remote_path,
            ok=False,
        )
        if not local_path.is_dir():
            result.error = f"Local artifacts not found: {local_path}"
            logger.error(result.error)
            return result

        try:
            if channel.id == LATEST:
                result.bootstrapped = self.bootstrap()
            logger.info("Uploading %s -> %s", local_path, remote_path)
            result.uploaded_files = self._transport.upload_dir(local_path, remote_path)
        except TransportError as e:
            result.error = str(e)
            logger.error("Push of %s failed: %s", channel.id, e)
            return result

        result.ok = True
        if channel.id == STABLE:
            result.warnings.extend(self.refresh_root_files())

        archive = local_path.parent / f"{local_path.name}.zip"
        if archive.is_file():
            try:
                self._transport.upload_file(
                    archive, posixpath.join(self._remote_root, archive.name)
                )
            except TransportError as e:
                result.warnings.append(f"Archive upload failed: {e}")

        for warning in result.warnings:
            logger.warning(warning)
        return result

    def ensure_structure(self, local_dir: Path, remote_dir: str | None = None) -> MirrorResult:
        """
        Pre-create the directory skeleton of ``local_dir`` on the remote.

        Parents are created before children. A directory that cannot be
        created is recorded as a warning and the rest continue.
        """
        remote_dir = remote_dir or posixpath.join(self._remote_root, local_dir.name)
        relative_dirs = sorted(
            (p.relative_to(local_dir).as_posix() for p in local_dir.rglob("*") if p.is_dir()),
            key=lambda rel: (rel.count("/"), rel),
        )
        targets = [remote_dir] + [posixpath.join(remote_dir, rel) for rel in relative_dirs]

        result = MirrorResult()
        for target in targets:
            try:
                self._transport.ensure_dir(target)
            except TransportError as e:
                logger.warning("Could not create %s: %s", target, e)
                result.warnings.append(f"{target}: {e}")
                continue
            result.created.append(target)
        return result
