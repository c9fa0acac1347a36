"""
CSS Channels Core Module.

Provides foundational types and the error taxonomy.
"""

__all__ = [
    "ArtifactLocation",
    "Channel",
    "CreationTime",
    "Decision",
    "KnownCreationTime",
    "Scope",
    "UnknownCreationTime",
    "Variant",
    # Exceptions
    "ChannelsError",
    "UnknownChannelError",
    "NotFoundError",
    "TransportError",
    "BuildError",
    "ConfigurationError",
    "InvariantViolationError",
]

from css_channels.core.exceptions import (
    BuildError,
    ChannelsError,
    ConfigurationError,
    InvariantViolationError,
    NotFoundError,
    TransportError,
    UnknownChannelError,
)
from css_channels.core.models import (
    ArtifactLocation,
    Channel,
    CreationTime,
    Decision,
    KnownCreationTime,
    Scope,
    UnknownCreationTime,
    Variant,
)
