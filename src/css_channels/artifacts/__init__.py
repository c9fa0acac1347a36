"""Local artifact tree management."""

from .local import LocalArtifactManager

__all__ = ["LocalArtifactManager"]
