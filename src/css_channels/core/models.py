"""
Core data models for CSS Channels.

Channels and artifact locations are immutable value objects; operation
results use pydantic schemas so they can be rendered and serialized.
"""

import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from css_channels.core.exceptions import InvariantViolationError

PREVIEW_PREFIX = "preview-"
PREVIEW_TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"

# Accepted name layouts, most specific first
_PREVIEW_NAME_FORMATS = (
    PREVIEW_TIMESTAMP_FORMAT,
    "%Y-%m-%d-%H-%M",
    "%Y-%m-%dT%H-%M",
    "%Y-%m-%d",
)

ROOT_INDEX = "index.html"


class Scope(Enum):
    """Where an artifact lives or an operation applies."""

    LOCAL = "local"
    REMOTE = "remote"
    BOTH = "both"


class Variant(Enum):
    """Build variant passed to the asset compiler."""

    STANDARD = "standard"
    PREFIXED = "p"  # classes and variables
    CLASSES = "c"
    VARIABLES = "v"


class OperationKind(Enum):
    """Named high-level operations."""

    BUILD = "build"
    DEPLOY = "deploy"
    CLEAN = "clean"
    REMOTE_CLEANUP = "remote_cleanup"
    REMOTE_WIPE = "remote_wipe"
    NUKE = "nuke"


ALL_TARGETS = "all"


@dataclass(frozen=True)
class Operation:
    """A request handed to the orchestrator."""

    kind: OperationKind
    target: str | None = None
    # Channel id, ALL_TARGETS or a dist folder name
    scope: Scope | None = None
    # None means the natural scope of ``kind``
    mode: str | None = None


def preview_name(moment: datetime) -> str:
    """Return the folder name of a preview instance created at ``moment``."""
    moment = moment.astimezone(timezone.utc)
    return f"{PREVIEW_PREFIX}{moment.strftime(PREVIEW_TIMESTAMP_FORMAT)}"


def is_preview_name(name: str) -> bool:
    """Return True if a folder name belongs to a preview instance."""
    return name.startswith(PREVIEW_PREFIX)


def parse_preview_timestamp(name: str) -> datetime | None:
    """Parse the UTC creation time encoded in a preview folder name."""
    if not is_preview_name(name):
        return None
    stamp = name[len(PREVIEW_PREFIX):]
    for fmt in _PREVIEW_NAME_FORMATS:
        try:
            return datetime.strptime(stamp, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


@dataclass(frozen=True)
class Channel:
    """A named build variant and where its artifacts live."""

    id: str
    variant: Variant
    local_path_template: str
    remote_path_template: str
    protected_by_default: bool = False
    description: str = ""

    @property
    def is_preview(self) -> bool:
        """Preview channels are instantiated per build with a timestamp."""
        return "{timestamp}" in self.local_path_template

    def instance_name(self, moment: datetime | None = None) -> str:
        """Resolve the folder name of this channel (timestamped for previews)."""
        if not self.is_preview:
            return self.local_path_template
        moment = moment or datetime.now(timezone.utc)
        stamp = moment.astimezone(timezone.utc).strftime(PREVIEW_TIMESTAMP_FORMAT)
        return self.local_path_template.format(timestamp=stamp)

    def local_path(self, dist_dir: Path, moment: datetime | None = None) -> Path:
        """Resolve the local artifact directory."""
        return dist_dir / self.instance_name(moment)

    def remote_path(self, remote_root: str, moment: datetime | None = None) -> str:
        """Resolve the remote artifact directory."""
        if self.is_preview:
            moment = moment or datetime.now(timezone.utc)
            stamp = moment.astimezone(timezone.utc).strftime(PREVIEW_TIMESTAMP_FORMAT)
            relative = self.remote_path_template.format(timestamp=stamp)
        else:
            relative = self.remote_path_template
        return posixpath.join(remote_root, relative)


@dataclass(frozen=True)
class KnownCreationTime:
    """Creation time backed by a folder name or listing metadata."""

    at: datetime


@dataclass(frozen=True)
class UnknownCreationTime:
    """Creation time could not be determined; never eligible for age-based deletion."""

    reason: str = field(default="unavailable", compare=False)


CreationTime = KnownCreationTime | UnknownCreationTime


@dataclass(frozen=True)
class ArtifactLocation:
    """A resolved local or remote path for one channel at one point in time."""

    channel_id: str
    scope: Scope
    path: str
    created_at: CreationTime = field(default_factory=UnknownCreationTime)
    is_dir: bool = True

    @property
    def name(self) -> str:
        """Last path component."""
        return posixpath.basename(self.path.rstrip("/")) or self.path

    @property
    def is_preview(self) -> bool:
        return is_preview_name(self.channel_id)

    def age(self, now: datetime) -> timedelta | None:
        """Age relative to ``now``; None when the creation time is unknown."""
        match self.created_at:
            case KnownCreationTime(at=at):
                return now - at
            case _:
                return None


def _sorted_paths(locations: frozenset[ArtifactLocation]) -> list[str]:
    return sorted(loc.path for loc in locations)


@dataclass(frozen=True)
class Decision:
    """
    Output of a retention policy.

    Every scanned location lands in exactly one of ``to_delete`` and
    ``to_preserve``; construction fails otherwise.
    """

    policy: str
    inventory: frozenset[ArtifactLocation]
    to_delete: frozenset[ArtifactLocation]
    to_preserve: frozenset[ArtifactLocation]
    rebuild_after: bool = False

    def __post_init__(self) -> None:
        overlap = self.to_delete & self.to_preserve
        if overlap:
            raise InvariantViolationError(
                f"Policy {self.policy} both deletes and preserves locations",
                policy=self.policy,
                overlap=_sorted_paths(overlap),
            )
        covered = self.to_delete | self.to_preserve
        if covered != self.inventory:
            raise InvariantViolationError(
                f"Policy {self.policy} does not cover its inventory",
                policy=self.policy,
                missing=_sorted_paths(self.inventory ^ covered),
            )

    @classmethod
    def partition(
        cls,
        policy: str,
        inventory: frozenset[ArtifactLocation],
        to_delete: frozenset[ArtifactLocation],
        rebuild_after: bool = False,
    ) -> "Decision":
        """Build a decision whose preserve-set is the complement of ``to_delete``."""
        return cls(
            policy=policy,
            inventory=inventory,
            to_delete=to_delete,
            to_preserve=inventory - to_delete,
            rebuild_after=rebuild_after,
        )

    @property
    def is_noop(self) -> bool:
        return not self.to_delete

    def deleted_paths(self) -> list[str]:
        return _sorted_paths(self.to_delete)

    def preserved_paths(self) -> list[str]:
        return _sorted_paths(self.to_preserve)


class BuildResult(BaseModel):
    """Result of building one channel."""

    channel_id: str
    target: str = Field(description="Resolved folder name, timestamped for previews")
    ok: bool
    output_path: str | None = None
    duration_ms: float | None = None
    error: str | None = None
    error_type: str | None = None
    timestamp: str = Field(default_factory=lambda: _iso_timestamp())


class BatchBuildResult(BaseModel):
    """Per-channel results of a multi-channel build, in registry order."""

    results: list[BuildResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failed(self) -> list[BuildResult]:
        return [r for r in self.results if not r.ok]

    @property
    def succeeded(self) -> list[BuildResult]:
        return [r for r in self.results if r.ok]


class DeleteReport(BaseModel):
    """
    Per-location outcome of a delete batch.

    A report with any ``failed`` entries is a partial failure: the batch ran
    to completion and ``failed`` lists exactly what to retry.
    """

    succeeded: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict, description="path -> error")

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def is_partial_failure(self) -> bool:
        return bool(self.failed)


class ApplyResult(BaseModel):
    """Result of applying a decision to the local tree or the remote."""

    policy: str
    scope: Scope
    deleted: list[str] = Field(default_factory=list)
    preserved: list[str] = Field(default_factory=list)
    report: DeleteReport = Field(default_factory=DeleteReport)
    rebuild: BatchBuildResult | None = None
    rebuild_skipped: str | None = None
    root_files_removed: list[str] = Field(default_factory=list)
    noop: bool = False
    dry_run: bool = False
    message: str | None = None

    @property
    def ok(self) -> bool:
        if not self.report.ok:
            return False
        if self.rebuild_skipped:
            return False
        return self.rebuild is None or self.rebuild.ok


class PushResult(BaseModel):
    """Result of pushing one channel's artifacts to the remote."""

    channel_id: str
    local_path: str
    remote_path: str
    ok: bool
    bootstrapped: bool = False
    uploaded_files: int = 0
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)


class MirrorResult(BaseModel):
    """Outcome of pre-creating a local directory skeleton on the remote."""

    created: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class DeployResult(BaseModel):
    """Build followed by push for one channel."""

    channel_id: str
    build: BuildResult
    push: PushResult | None = None
    cleanup: ApplyResult | None = None
    warnings: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.build.ok and self.push is not None and self.push.ok


class NukeResult(BaseModel):
    """Independent outcomes of the local nuke and the remote wipe-all."""

    local: ApplyResult | None = None
    local_error: str | None = None
    remote: ApplyResult | None = None
    remote_error: str | None = None

    @property
    def ok(self) -> bool:
        return (
            self.local_error is None
            and self.remote_error is None
            and self.local is not None
            and self.local.ok
            and self.remote is not None
            and self.remote.ok
        )


def _iso_timestamp() -> str:
    """Return current ISO8601 timestamp in UTC."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
