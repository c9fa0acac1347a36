"""
Orchestrator Core - named release operations.

Composes the registry, build dispatcher, retention policies and the local
and remote artifact managers into build, deploy, clean, remote cleanup,
remote wipe and nuke.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

from css_channels.artifacts.local import LocalArtifactManager
from css_channels.build.dispatcher import BuildDispatcher, CommandCompiler, Compiler
from css_channels.channels.registry import (
    LATEST,
    ChannelRegistry,
    current_branch,
    default_channel_for_branch,
)
from css_channels.config import Settings
from css_channels.core.exceptions import ConfigurationError, NotFoundError, TransportError
from css_channels.core.models import (
    ALL_TARGETS,
    ApplyResult,
    BatchBuildResult,
    Channel,
    DeployResult,
    MirrorResult,
    NukeResult,
    Operation,
    OperationKind,
    Scope,
    Variant,
)
from css_channels.remote.sync import RemoteSyncEngine
from css_channels.remote.transport import FTPTransport, LocalTransport, Transport
from css_channels.retention.policies import (
    REMOTE_WIPE_MODES,
    CustomClean,
    NukeLocal,
    PreviewClean,
    PreviewGC,
    RebuildClean,
    RetentionPolicy,
    SafeClean,
)

logger = logging.getLogger(__name__)

# Local clean modes
CLEAN_MODES: dict[str, type[RetentionPolicy]] = {
    "reset": RebuildClean,
    "all": NukeLocal,
    "safe": SafeClean,
    "preview": PreviewClean,
}

# Modes that also sweep stray files from the project root
_HYGIENE_MODES = frozenset({"reset", "all", "safe"})

_NATURAL_SCOPES: dict[OperationKind, Scope] = {
    OperationKind.BUILD: Scope.LOCAL,
    OperationKind.DEPLOY: Scope.REMOTE,
    OperationKind.CLEAN: Scope.LOCAL,
    OperationKind.REMOTE_CLEANUP: Scope.REMOTE,
    OperationKind.REMOTE_WIPE: Scope.REMOTE,
    OperationKind.NUKE: Scope.BOTH,
}

_ALLOWED_SCOPES: dict[OperationKind, frozenset[Scope]] = {
    OperationKind.BUILD: frozenset({Scope.LOCAL}),
    OperationKind.DEPLOY: frozenset({Scope.REMOTE}),
    OperationKind.CLEAN: frozenset({Scope.LOCAL, Scope.REMOTE}),
    OperationKind.REMOTE_CLEANUP: frozenset({Scope.REMOTE}),
    OperationKind.REMOTE_WIPE: frozenset({Scope.REMOTE}),
    OperationKind.NUKE: frozenset({Scope.LOCAL, Scope.REMOTE, Scope.BOTH}),
}

TransportFactory = Callable[[], Transport]


class Orchestrator:
    """
    Entry point for every named release operation.

    Remote transports are opened per operation and closed when it
    finishes; local and remote inventories are rescanned every time.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        registry: ChannelRegistry | None = None,
        compiler: Compiler | None = None,
        transport_factory: TransportFactory | None = None,
        clock: Callable[[], datetime] | None = None,
        branch_resolver: Callable[[Path], str | None] | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Runtime configuration (loaded from environment if None)
            registry: Channel registry (built from settings if None)
            compiler: Asset compiler (command compiler from settings if None)
            transport_factory: Opens the remote transport for one operation
            clock: Source of "now"
            branch_resolver: Returns the current git branch of a project root
        """
        self._settings = settings or Settings.from_env()
        self._registry = registry or ChannelRegistry.from_catalog(self._settings.catalog_file)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._branch_resolver = branch_resolver or current_branch
        self._transport_factory = transport_factory or self._default_transport

        if compiler is None:
            try:
                compiler = CommandCompiler(
                    self._settings.build_command, self._settings.project_root
                )
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid build command: {e}", env_var="CSS_CHANNELS_BUILD_COMMAND"
                ) from e
        self._dispatcher = BuildDispatcher(
            compiler,
            self._settings.dist_root,
            max_workers=self._settings.build_workers,
            clock=self._clock,
        )
        self._local = LocalArtifactManager(
            self._settings.dist_root,
            self._registry,
            self._dispatcher,
            project_root=self._settings.project_root,
            rebuild_selection=self._settings.rebuild_selection,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def registry(self) -> ChannelRegistry:
        return self._registry

    def _default_transport(self) -> Transport:
        if self._settings.remote_local_path is not None:
            return LocalTransport(self._settings.remote_local_path)
        return FTPTransport(
            self._settings.ftp_credentials(),
            retries=self._settings.connect_retries,
            retry_delay=self._settings.retry_delay_seconds,
        )

    @contextmanager
    def _open_remote(self) -> Iterator[RemoteSyncEngine]:
        transport = self._transport_factory()
        try:
            yield RemoteSyncEngine(
                transport,
                self._settings.remote_root,
                self._settings.dist_root,
                max_workers=self._settings.delete_workers,
                clock=self._clock,
            )
        finally:
            transport.close()

    def resolve_channel(self, channel_id: str | None = None, variant: str | None = None) -> Channel:
        """
        Pick the channel for a build or deploy.

        An explicit channel wins, then a variant (p, c, v) deployed as its
        own channel, then the channel mapped from the current git branch.

        Raises:
            UnknownChannelError: If the chosen id is not in the registry
        """
        if channel_id:
            return self._registry.resolve(channel_id)
        if variant:
            return self._registry.resolve(variant)
        branch = self._branch_resolver(self._settings.project_root)
        chosen = default_channel_for_branch(branch)
        logger.info("Branch %s -> channel %s", branch or "(unknown)", chosen)
        return self._registry.resolve(chosen)

    def build(self, channel_id: str | None = None, full: bool = False) -> BatchBuildResult:
        """
        Build one channel, or every channel in registry order.

        Raises:
            UnknownChannelError: If ``channel_id`` is not in the registry
        """
        if full:
            return self._dispatcher.build_all(self._registry.all())
        channel = self.resolve_channel(channel_id)
        return BatchBuildResult(results=[self._dispatcher.build(channel)])

    def deploy(self, channel_id: str | None = None, variant: str | None = None) -> DeployResult:
        """
        Build a channel and push it to the remote.

        With both a channel and a variant, the channel is built with that
        variant in place of its own. A failed build aborts before anything
        is pushed. Deploying latest or
        a preview runs the remote preview GC afterwards; problems there are
        warnings only.

        Raises:
            UnknownChannelError: If the channel cannot be resolved
            ConfigurationError: If remote credentials are missing
        """
        channel = self.resolve_channel(channel_id, variant)
        override = Variant(variant) if channel_id and variant else None
        build = self._dispatcher.build(channel, variant=override)
        result = DeployResult(channel_id=channel.id, build=build)
        if not build.ok:
            logger.error("Build failed for %s, aborting deploy", channel.id)
            return result

        with self._open_remote() as engine:
            result.push = engine.push(channel, Path(build.output_path or ""), build.target)
            if not result.push.ok:
                return result
            if channel.id == LATEST or channel.is_preview:
                try:
                    result.cleanup = engine.run_policy(
                        PreviewGC(ttl_days=self._settings.preview_ttl_days)
                    )
                except TransportError as e:
                    result.warnings.append(f"Preview cleanup failed: {e}")
                else:
                    for path, error in result.cleanup.report.failed.items():
                        result.warnings.append(f"Preview cleanup could not delete {path}: {error}")
        return result

    def clean(
        self,
        mode: str = "reset",
        folder: str | None = None,
        dry_run: bool = False,
    ) -> ApplyResult:
        """
        Clean the local artifact tree.

        Args:
            mode: One of CLEAN_MODES; ignored when ``folder`` is given
            folder: Single dist folder to delete
            dry_run: Report the decision without deleting

        Returns:
            ApplyResult; a missing ``folder`` is a no-op result
        """
        if folder:
            policy: RetentionPolicy = CustomClean(folder_name=folder)
        else:
            try:
                policy = CLEAN_MODES[mode]()
            except KeyError:
                raise ValueError(
                    f"Unknown clean mode: {mode} (expected one of {', '.join(CLEAN_MODES)})"
                )

        inventory = self._local.scan()
        try:
            decision = policy.evaluate(inventory, self._clock())
        except NotFoundError:
            message = f"Target not found: {folder}. Nothing to delete."
            logger.info(message)
            return ApplyResult(
                policy=policy.name,
                scope=Scope.LOCAL,
                preserved=sorted(loc.path for loc in inventory),
                noop=True,
                dry_run=dry_run,
                message=message,
            )

        result = self._local.apply(decision, dry_run=dry_run)
        if folder is None and mode in _HYGIENE_MODES:
            result.root_files_removed = self._local.clean_root_artifacts(dry_run=dry_run)
        return result

    def remote_cleanup(self, dry_run: bool = False) -> ApplyResult:
        """
        Delete remote previews older than the configured TTL.

        Raises:
            TransportError: If the remote cannot be reached or listed
        """
        with self._open_remote() as engine:
            return engine.run_policy(
                PreviewGC(ttl_days=self._settings.preview_ttl_days), dry_run=dry_run
            )

    def remote_wipe(self, mode: str = "default", dry_run: bool = False) -> ApplyResult:
        """
        Wipe the remote according to ``mode`` (default, safe, stable, all).

        Raises:
            TransportError: If the remote cannot be reached or listed
        """
        try:
            policy_class = REMOTE_WIPE_MODES[mode]
        except KeyError:
            raise ValueError(
                f"Unknown wipe mode: {mode} (expected one of {', '.join(REMOTE_WIPE_MODES)})"
            )
        with self._open_remote() as engine:
            return engine.run_policy(policy_class(), dry_run=dry_run)

    def ensure_remote_structure(self, local_dir: Path, remote_dir: str | None = None) -> MirrorResult:
        """Pre-create the directory skeleton of ``local_dir`` on the remote."""
        with self._open_remote() as engine:
            return engine.ensure_structure(local_dir, remote_dir)

    def nuke(self, dry_run: bool = False) -> NukeResult:
        """
        Delete all local artifacts and wipe the remote.

        Both halves always run; each outcome, including an unexpected
        error, is recorded independently.
        """
        result = NukeResult()
        try:
            result.local = self.clean(mode="all", dry_run=dry_run)
        except Exception as e:
            logger.exception("Local nuke failed")
            result.local_error = f"{type(e).__name__}: {e}"

        try:
            result.remote = self.remote_wipe(mode="all", dry_run=dry_run)
        except Exception as e:
            logger.exception("Remote wipe failed")
            result.remote_error = f"{type(e).__name__}: {e}"
        return result

    def build_summary(self, batch: BatchBuildResult) -> str:
        """Generate a human-readable summary of a build batch."""
        lines = [f"Builds: {len(batch.succeeded)}/{len(batch.results)} succeeded"]
        for i, result in enumerate(batch.results):
            status_symbol = "✓" if result.ok else "✗"
            lines.append(f"  [{i+1}] {status_symbol} {result.channel_id} -> {result.target}")
            if result.duration_ms is not None:
                lines.append(f"      Time: {result.duration_ms:.0f}ms")
            if result.error:
                lines.append(f"      Error: {result.error}")
        return "\n".join(lines)

    def apply_summary(self, result: ApplyResult) -> str:
        """Generate a human-readable summary of an applied decision."""
        verb = "Would delete" if result.dry_run else "Deleted"
        lines = [f"Policy: {result.policy} ({result.scope.value})"]
        if result.message:
            lines.append(result.message)
        elif result.noop:
            lines.append("Nothing to delete.")

        deleted = result.deleted if result.dry_run else result.report.succeeded
        for path in deleted:
            lines.append(f"  ✓ {verb}: {path}")
        for path, error in result.report.failed.items():
            lines.append(f"  ✗ Failed: {path}: {error}")
        for path in result.preserved:
            lines.append(f"  = Kept: {path}")
        for path in result.root_files_removed:
            lines.append(f"  ✓ {verb}: {path}")

        if result.rebuild_skipped:
            lines.append(f"Rebuild skipped: {result.rebuild_skipped}")
        elif result.rebuild is not None:
            lines.append(self.build_summary(result.rebuild))
        return "\n".join(lines)

    def execute(self, operation: Operation):
        """
        Dispatch an Operation request to the matching method.

        An operation without a scope runs in the natural scope of its kind.
        A remote-scoped clean runs the preview GC, or a wipe when a mode is
        given; a local- or remote-scoped nuke runs only that half.

        Raises:
            ValueError: If the kind does not support the requested scope
        """
        scope = operation.scope or _NATURAL_SCOPES[operation.kind]
        if scope not in _ALLOWED_SCOPES[operation.kind]:
            raise ValueError(
                f"{operation.kind.value} does not support scope {scope.value}"
            )

        target = operation.target
        match operation.kind:
            case OperationKind.BUILD:
                if target == ALL_TARGETS:
                    return self.build(full=True)
                return self.build(channel_id=target)
            case OperationKind.DEPLOY:
                return self.deploy(channel_id=target, variant=operation.mode)
            case OperationKind.CLEAN if scope == Scope.REMOTE:
                if target and target != ALL_TARGETS:
                    raise ValueError("Folder targets apply to the local scope only")
                if operation.mode:
                    return self.remote_wipe(mode=operation.mode)
                return self.remote_cleanup()
            case OperationKind.CLEAN:
                if target and target != ALL_TARGETS:
                    return self.clean(folder=target)
                return self.clean(mode=operation.mode or "reset")
            case OperationKind.REMOTE_CLEANUP:
                return self.remote_cleanup()
            case OperationKind.REMOTE_WIPE:
                return self.remote_wipe(mode=operation.mode or "default")
            case OperationKind.NUKE if scope == Scope.LOCAL:
                return self.clean(mode="all")
            case OperationKind.NUKE if scope == Scope.REMOTE:
                return self.remote_wipe(mode="all")
            case OperationKind.NUKE:
                return self.nuke()
        raise ValueError(f"Unsupported operation: {operation.kind}")
