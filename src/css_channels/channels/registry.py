"""
Channel Registry - static catalog of release channels.

The catalog is fixed at process start: either the built-in channel list or a
YAML file named by CSS_CHANNELS_CATALOG. Channels are never mutated.
"""

import logging
import subprocess
from pathlib import Path
from typing import Any, Iterable

import yaml

from css_channels.core.exceptions import ConfigurationError, UnknownChannelError
from css_channels.core.models import PREVIEW_PREFIX, Channel, Variant

logger = logging.getLogger(__name__)

STABLE = "stable"
LATEST = "latest"
PREVIEW = "preview"

# Build order for full builds
DEFAULT_CHANNELS: tuple[Channel, ...] = (
    Channel(
        id=STABLE,
        variant=Variant.STANDARD,
        local_path_template="stable",
        remote_path_template="stable",
        protected_by_default=True,
        description="Production release built from main",
    ),
    Channel(
        id=LATEST,
        variant=Variant.STANDARD,
        local_path_template="latest",
        remote_path_template="latest",
        protected_by_default=True,
        description="Development head built from dev",
    ),
    Channel(
        id=PREVIEW,
        variant=Variant.STANDARD,
        local_path_template=PREVIEW_PREFIX + "{timestamp}",
        remote_path_template=PREVIEW_PREFIX + "{timestamp}",
        description="Timestamped snapshot of a feature branch",
    ),
    Channel(
        id="p",
        variant=Variant.PREFIXED,
        local_path_template="p",
        remote_path_template="p",
        description="Prefixed classes and variables",
    ),
    Channel(
        id="v",
        variant=Variant.VARIABLES,
        local_path_template="v",
        remote_path_template="v",
        description="Prefixed variable namespace only",
    ),
    Channel(
        id="c",
        variant=Variant.CLASSES,
        local_path_template="c",
        remote_path_template="c",
        description="Prefixed classes only",
    ),
)

# Git branch -> channel for builds and deploys without an explicit channel
BRANCH_CHANNELS = {
    "main": STABLE,
    "dev": LATEST,
}


def _parse_channel(data: dict[str, Any], source: Path) -> Channel:
    """Parse one catalog entry."""
    try:
        channel_id = str(data["id"])
        variant = Variant(data.get("variant", Variant.STANDARD.value))
    except (KeyError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid channel entry in {source.name}: {e}",
            config_file=str(source),
            details={"entry": data},
        )
    local_template = str(data.get("local_path", channel_id))
    return Channel(
        id=channel_id,
        variant=variant,
        local_path_template=local_template,
        remote_path_template=str(data.get("remote_path", local_template)),
        protected_by_default=bool(data.get("protected", False)),
        description=str(data.get("description", "")),
    )


def load_catalog(path: Path) -> tuple[Channel, ...]:
    """Load a channel catalog from a YAML file."""
    if not path.exists():
        raise ConfigurationError(
            f"Channel catalog not found: {path}", config_file=str(path)
        )

    data = yaml.safe_load(path.read_text())
    if isinstance(data, dict):
        data = data.get("channels")
    if not isinstance(data, list) or not data:
        raise ConfigurationError(
            f"Invalid YAML structure in {path}: expected a list of channels",
            config_file=str(path),
        )

    return tuple(_parse_channel(item, path) for item in data)


class ChannelRegistry:
    """Registry of all release channels, in deterministic build order."""

    def __init__(self, channels: Iterable[Channel] | None = None):
        """Initialize registry from a channel sequence (built-in catalog by default)."""
        self._channels: dict[str, Channel] = {}
        for channel in channels if channels is not None else DEFAULT_CHANNELS:
            if channel.id in self._channels:
                raise ConfigurationError(
                    f"Duplicate channel id: {channel.id}", config_key="channels"
                )
            self._channels[channel.id] = channel

    @classmethod
    def from_catalog(cls, path: Path | None) -> "ChannelRegistry":
        """Create a registry from a YAML catalog, or the built-in one if None."""
        if path is None:
            return cls()
        logger.debug("Loading channel catalog from %s", path)
        return cls(load_catalog(path))

    def resolve(self, channel_id: str) -> Channel:
        """
        Get a channel by id.

        Raises:
            UnknownChannelError: If the id is not in the catalog
        """
        channel = self._channels.get(channel_id)
        if channel is None:
            raise UnknownChannelError(channel_id=channel_id, known=self.ids())
        return channel

    def all(self) -> tuple[Channel, ...]:
        """All channels in registry order."""
        return tuple(self._channels.values())

    def ids(self) -> list[str]:
        """Return all channel ids."""
        return list(self._channels.keys())

    def protected_ids(self) -> frozenset[str]:
        """Ids of channels protected by default."""
        return frozenset(c.id for c in self._channels.values() if c.protected_by_default)

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._channels

    def __len__(self) -> int:
        return len(self._channels)


def current_branch(project_root: Path) -> str | None:
    """Return the checked-out git branch, or None outside a repository."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            cwd=project_root,
            capture_output=True,
            text=True,
            check=True,
            shell=False,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
    return result.stdout.strip() or None


def default_channel_for_branch(branch: str | None) -> str:
    """main -> stable, dev -> latest, anything else -> preview."""
    return BRANCH_CHANNELS.get(branch or "", PREVIEW)
