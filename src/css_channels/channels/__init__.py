"""
CSS Channels Registry Module.

Provides the static channel catalog and branch-based channel defaults.
"""

from .registry import (
    DEFAULT_CHANNELS,
    LATEST,
    PREVIEW,
    STABLE,
    ChannelRegistry,
    current_branch,
    default_channel_for_branch,
    load_catalog,
)

__all__ = [
    "DEFAULT_CHANNELS",
    "STABLE",
    "LATEST",
    "PREVIEW",
    "ChannelRegistry",
    "current_branch",
    "default_channel_for_branch",
    "load_catalog",
]
