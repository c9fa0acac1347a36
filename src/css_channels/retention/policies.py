"""
Retention Policy Engine.

Each destructive operation is one variant of a closed policy family with a
single ``evaluate(inventory, now) -> Decision`` method. Evaluation is pure:

    to_delete   = matched_by_pattern - protected
    to_preserve = inventory - to_delete

Protection is an allow-list subtracted after pattern matching, so a
protected location survives even when it matches a deletion pattern.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import ClassVar, Iterable

from css_channels.channels.registry import LATEST, STABLE
from css_channels.core.exceptions import NotFoundError
from css_channels.core.models import (
    ROOT_INDEX,
    ArtifactLocation,
    Decision,
    Scope,
)

LOCAL_ONLY = frozenset({Scope.LOCAL})
REMOTE_ONLY = frozenset({Scope.REMOTE})
ANY_SCOPE = frozenset({Scope.LOCAL, Scope.REMOTE})

DEFAULT_PREVIEW_TTL_DAYS = 7


class RetentionPolicy(ABC):
    """A pure rule mapping an artifact inventory to a delete/preserve decision."""

    name: ClassVar[str]
    scopes: ClassVar[frozenset[Scope]] = LOCAL_ONLY
    protected: ClassVar[frozenset[str]] = frozenset()
    rebuild_after: ClassVar[bool] = False

    @abstractmethod
    def matches(self, location: ArtifactLocation, now: datetime) -> bool:
        """Return True if the deletion pattern selects ``location``."""

    def is_protected(self, location: ArtifactLocation) -> bool:
        return location.channel_id in self.protected

    def evaluate(self, inventory: Iterable[ArtifactLocation], now: datetime) -> Decision:
        """Partition ``inventory`` into delete and preserve sets."""
        inventory = frozenset(inventory)
        matched = frozenset(
            loc for loc in inventory
            if loc.scope in self.scopes and self.matches(loc, now)
        )
        shielded = frozenset(loc for loc in matched if self.is_protected(loc))
        return Decision.partition(
            policy=self.name,
            inventory=inventory,
            to_delete=matched - shielded,
            rebuild_after=self.rebuild_after,
        )


@dataclass(frozen=True)
class RebuildClean(RetentionPolicy):
    """Delete everything under the local dist root, then rebuild."""

    name: ClassVar[str] = "rebuild_clean"
    rebuild_after: ClassVar[bool] = True

    def matches(self, location: ArtifactLocation, now: datetime) -> bool:
        return True


@dataclass(frozen=True)
class NukeLocal(RetentionPolicy):
    """Delete everything under the local dist root; no rebuild."""

    name: ClassVar[str] = "nuke_local"

    def matches(self, location: ArtifactLocation, now: datetime) -> bool:
        return True


@dataclass(frozen=True)
class SafeClean(RetentionPolicy):
    """Delete everything local except stable and latest."""

    name: ClassVar[str] = "safe_clean"
    protected: ClassVar[frozenset[str]] = frozenset({STABLE, LATEST})

    def matches(self, location: ArtifactLocation, now: datetime) -> bool:
        return True


@dataclass(frozen=True)
class PreviewClean(RetentionPolicy):
    """Delete every local preview folder regardless of age."""

    name: ClassVar[str] = "preview_clean"

    def matches(self, location: ArtifactLocation, now: datetime) -> bool:
        return location.is_preview


@dataclass(frozen=True)
class PreviewGC(RetentionPolicy):
    """
    Delete preview folders older than the TTL.

    Locations with an unknown creation time are always preserved.
    """

    ttl_days: int = DEFAULT_PREVIEW_TTL_DAYS

    name: ClassVar[str] = "preview_gc"
    scopes: ClassVar[frozenset[Scope]] = ANY_SCOPE

    def matches(self, location: ArtifactLocation, now: datetime) -> bool:
        if not location.is_preview:
            return False
        age = location.age(now)
        if age is None:
            return False
        return age > timedelta(days=self.ttl_days)


@dataclass(frozen=True)
class RemoteWipe(RetentionPolicy):
    """Delete remote latest and previews; stable, p, v and the root index survive."""

    name: ClassVar[str] = "remote_wipe"
    scopes: ClassVar[frozenset[Scope]] = REMOTE_ONLY
    protected: ClassVar[frozenset[str]] = frozenset({STABLE, "p", "v", ROOT_INDEX})

    def matches(self, location: ArtifactLocation, now: datetime) -> bool:
        return location.channel_id == LATEST or location.is_preview


@dataclass(frozen=True)
class RemoteWipeSafe(RetentionPolicy):
    """Delete remote previews only."""

    name: ClassVar[str] = "remote_wipe_safe"
    scopes: ClassVar[frozenset[Scope]] = REMOTE_ONLY
    protected: ClassVar[frozenset[str]] = frozenset({STABLE, LATEST, "p", "v", ROOT_INDEX})

    def matches(self, location: ArtifactLocation, now: datetime) -> bool:
        return location.is_preview


@dataclass(frozen=True)
class RemoteWipeStable(RetentionPolicy):
    """Reduce the remote to stable and the root index."""

    name: ClassVar[str] = "remote_wipe_stable"
    scopes: ClassVar[frozenset[Scope]] = REMOTE_ONLY
    protected: ClassVar[frozenset[str]] = frozenset({STABLE, ROOT_INDEX})

    def matches(self, location: ArtifactLocation, now: datetime) -> bool:
        return True


@dataclass(frozen=True)
class RemoteWipeAll(RetentionPolicy):
    """Delete everything on the remote. No exceptions."""

    name: ClassVar[str] = "remote_wipe_all"
    scopes: ClassVar[frozenset[Scope]] = REMOTE_ONLY

    def matches(self, location: ArtifactLocation, now: datetime) -> bool:
        return True


@dataclass(frozen=True)
class CustomClean(RetentionPolicy):
    """Delete exactly one named folder under the local dist root."""

    folder_name: str

    name: ClassVar[str] = "custom_clean"

    def matches(self, location: ArtifactLocation, now: datetime) -> bool:
        return location.name == self.folder_name

    def evaluate(self, inventory: Iterable[ArtifactLocation], now: datetime) -> Decision:
        """
        Select the named folder.

        Raises:
            NotFoundError: If no local location has that exact name
        """
        decision = super().evaluate(inventory, now)
        if decision.is_noop:
            raise NotFoundError(target=self.folder_name, scope=Scope.LOCAL.value)
        return decision


REMOTE_WIPE_MODES: dict[str, type[RetentionPolicy]] = {
    "default": RemoteWipe,
    "safe": RemoteWipeSafe,
    "stable": RemoteWipeStable,
    "all": RemoteWipeAll,
}
