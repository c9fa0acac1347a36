"""
CSS Channels Retention Module.

Pure decision logic for every clean, garbage-collection and wipe operation.
"""

from .policies import (
    DEFAULT_PREVIEW_TTL_DAYS,
    REMOTE_WIPE_MODES,
    CustomClean,
    NukeLocal,
    PreviewClean,
    PreviewGC,
    RebuildClean,
    RemoteWipe,
    RemoteWipeAll,
    RemoteWipeSafe,
    RemoteWipeStable,
    RetentionPolicy,
    SafeClean,
)

__all__ = [
    "DEFAULT_PREVIEW_TTL_DAYS",
    "REMOTE_WIPE_MODES",
    "RetentionPolicy",
    "RebuildClean",
    "NukeLocal",
    "SafeClean",
    "PreviewClean",
    "PreviewGC",
    "RemoteWipe",
    "RemoteWipeSafe",
    "RemoteWipeStable",
    "RemoteWipeAll",
    "CustomClean",
]
