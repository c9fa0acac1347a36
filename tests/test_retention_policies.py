"""Tests for the retention policy engine."""

from datetime import datetime, timedelta, timezone

import pytest

from css_channels.core.exceptions import NotFoundError
from css_channels.core.models import (
    ArtifactLocation,
    CreationTime,
    KnownCreationTime,
    Scope,
    UnknownCreationTime,
)
from css_channels.retention.policies import (
    CustomClean,
    NukeLocal,
    PreviewClean,
    PreviewGC,
    RebuildClean,
    RemoteWipe,
    RemoteWipeAll,
    RemoteWipeSafe,
    RemoteWipeStable,
    SafeClean,
)

NOW = datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc)


def loc(name: str, scope: Scope = Scope.LOCAL, created_at: CreationTime | None = None) -> ArtifactLocation:
    root = "dist" if scope == Scope.LOCAL else ""
    return ArtifactLocation(
        channel_id=name,
        scope=scope,
        path=f"{root}/{name}",
        created_at=created_at or UnknownCreationTime(),
    )


def names(locations) -> set[str]:
    return {location.name for location in locations}


def remote_inventory() -> frozenset[ArtifactLocation]:
    return frozenset(
        loc(name, Scope.REMOTE)
        for name in ("stable", "latest", "p", "v", "index.html", "preview-2024-01-01")
    )


def local_inventory() -> frozenset[ArtifactLocation]:
    return frozenset(
        loc(name) for name in ("stable", "latest", "p", "v", "c", "preview-2024-01-01")
    )


ALL_POLICIES = [
    RebuildClean(),
    NukeLocal(),
    SafeClean(),
    PreviewClean(),
    PreviewGC(),
    RemoteWipe(),
    RemoteWipeSafe(),
    RemoteWipeStable(),
    RemoteWipeAll(),
    CustomClean(folder_name="p"),
]


class TestTotality:
    """Every policy partitions its inventory."""

    @pytest.mark.parametrize("policy", ALL_POLICIES, ids=lambda p: p.name)
    def test_partition_is_disjoint_and_total(self, policy) -> None:
        """toDelete and toPreserve are disjoint and cover the inventory."""
        inventory = local_inventory() | remote_inventory()

        decision = policy.evaluate(inventory, NOW)

        assert not decision.to_delete & decision.to_preserve
        assert decision.to_delete | decision.to_preserve == inventory

    @pytest.mark.parametrize("policy", ALL_POLICIES[:-1], ids=lambda p: p.name)
    def test_empty_inventory_is_noop(self, policy) -> None:
        """Nothing scanned means nothing deleted."""
        assert policy.evaluate(frozenset(), NOW).is_noop


class TestLocalPolicies:
    """Tests for local clean policies."""

    def test_rebuild_clean_deletes_everything(self) -> None:
        """RebuildClean deletes all local entries and asks for a rebuild."""
        decision = RebuildClean().evaluate(local_inventory(), NOW)
        assert decision.to_delete == local_inventory()
        assert decision.rebuild_after

    def test_nuke_local_does_not_rebuild(self) -> None:
        """NukeLocal deletes everything without rebuilding."""
        decision = NukeLocal().evaluate(local_inventory(), NOW)
        assert decision.to_delete == local_inventory()
        assert not decision.rebuild_after

    def test_safe_clean_keeps_stable_and_latest(self) -> None:
        """SafeClean on {stable, latest, preview-Z, p} deletes preview-Z and p."""
        inventory = frozenset(loc(n) for n in ("stable", "latest", "preview-Z", "p"))

        decision = SafeClean().evaluate(inventory, NOW)

        assert names(decision.to_delete) == {"preview-Z", "p"}
        assert names(decision.to_preserve) == {"stable", "latest"}
        assert not decision.rebuild_after

    def test_preview_clean_ignores_age(self) -> None:
        """PreviewClean deletes every local preview, even brand new ones."""
        inventory = frozenset(
            {
                loc("stable"),
                loc("preview-new", created_at=KnownCreationTime(NOW)),
                loc("preview-unknown"),
            }
        )
        decision = PreviewClean().evaluate(inventory, NOW)
        assert names(decision.to_delete) == {"preview-new", "preview-unknown"}

    def test_local_policies_never_touch_remote(self) -> None:
        """Local policies preserve remote locations in a mixed inventory."""
        inventory = local_inventory() | remote_inventory()
        decision = NukeLocal().evaluate(inventory, NOW)
        assert all(location.scope == Scope.LOCAL for location in decision.to_delete)
        assert remote_inventory() <= decision.to_preserve


class TestCustomClean:
    """Tests for single-folder cleans."""

    def test_exact_match_only(self) -> None:
        """Only the folder with exactly that name is deleted."""
        inventory = frozenset({loc("p"), loc("preview-2024-01-01"), loc("pp")})
        decision = CustomClean(folder_name="p").evaluate(inventory, NOW)
        assert names(decision.to_delete) == {"p"}

    def test_no_glob_expansion(self) -> None:
        """Glob characters are matched literally."""
        inventory = frozenset({loc("preview-2024-01-01")})
        with pytest.raises(NotFoundError):
            CustomClean(folder_name="preview-*").evaluate(inventory, NOW)

    def test_missing_target_raises_not_found(self) -> None:
        """A missing folder raises NotFoundError naming it."""
        with pytest.raises(NotFoundError) as exc_info:
            CustomClean(folder_name="ghost").evaluate(local_inventory(), NOW)
        assert exc_info.value.target == "ghost"


class TestPreviewGC:
    """Tests for age-based preview garbage collection."""

    def test_deletes_only_expired_previews(self) -> None:
        """Previews at T-8 days are deleted, T-6 days are kept."""
        old = loc("preview-X", Scope.REMOTE, KnownCreationTime(NOW - timedelta(days=8)))
        young = loc("preview-Y", Scope.REMOTE, KnownCreationTime(NOW - timedelta(days=6)))

        decision = PreviewGC().evaluate(frozenset({old, young}), NOW)

        assert decision.to_delete == frozenset({old})
        assert decision.to_preserve == frozenset({young})

    def test_unknown_age_is_preserved(self) -> None:
        """Previews without a creation time are never deleted."""
        unknown = loc("preview-Q", Scope.REMOTE, UnknownCreationTime("no metadata"))
        decision = PreviewGC().evaluate(frozenset({unknown}), NOW)
        assert decision.is_noop

    def test_non_previews_are_never_collected(self) -> None:
        """Old non-preview folders survive GC."""
        ancient = loc("latest", Scope.REMOTE, KnownCreationTime(NOW - timedelta(days=365)))
        decision = PreviewGC().evaluate(frozenset({ancient}), NOW)
        assert decision.is_noop

    def test_exactly_ttl_is_kept(self) -> None:
        """A preview exactly at the TTL is not yet expired."""
        edge = loc("preview-E", Scope.REMOTE, KnownCreationTime(NOW - timedelta(days=7)))
        assert PreviewGC().evaluate(frozenset({edge}), NOW).is_noop

    def test_custom_ttl(self) -> None:
        """The TTL is configurable."""
        young = loc("preview-Y", Scope.LOCAL, KnownCreationTime(NOW - timedelta(days=2)))
        decision = PreviewGC(ttl_days=1).evaluate(frozenset({young}), NOW)
        assert decision.to_delete == frozenset({young})


class TestRemoteWipes:
    """Tests for remote wipe policies."""

    def test_remote_wipe(self) -> None:
        """RemoteWipe deletes latest and previews; stable, p, v, index.html survive."""
        decision = RemoteWipe().evaluate(remote_inventory(), NOW)
        assert names(decision.to_delete) == {"latest", "preview-2024-01-01"}
        assert names(decision.to_preserve) == {"stable", "p", "v", "index.html"}

    def test_remote_wipe_safe(self) -> None:
        """RemoteWipeSafe deletes only the preview folder."""
        decision = RemoteWipeSafe().evaluate(remote_inventory(), NOW)
        assert names(decision.to_delete) == {"preview-2024-01-01"}
        assert not names(decision.to_delete) & {"stable", "latest", "p", "v", "index.html"}

    def test_remote_wipe_stable(self) -> None:
        """RemoteWipeStable keeps only stable and the root index."""
        decision = RemoteWipeStable().evaluate(remote_inventory(), NOW)
        assert names(decision.to_preserve) == {"stable", "index.html"}

    def test_remote_wipe_all_preserves_nothing(self) -> None:
        """RemoteWipeAll is the only policy with an empty preserve set."""
        decision = RemoteWipeAll().evaluate(remote_inventory(), NOW)
        assert decision.to_preserve == frozenset()
        assert decision.to_delete == remote_inventory()

    def test_allow_list_beats_pattern(self) -> None:
        """A protected name survives even when the deletion pattern matches it."""
        decision = RemoteWipeStable().evaluate(
            frozenset({loc("stable", Scope.REMOTE), loc("c", Scope.REMOTE)}), NOW
        )
        assert names(decision.to_delete) == {"c"}

    def test_remote_wipes_never_touch_local(self) -> None:
        """Remote wipes preserve local locations in a mixed inventory."""
        inventory = local_inventory() | remote_inventory()
        decision = RemoteWipeAll().evaluate(inventory, NOW)
        assert local_inventory() <= decision.to_preserve
