"""Orchestration of named release operations."""

from .core import CLEAN_MODES, Orchestrator

__all__ = ["CLEAN_MODES", "Orchestrator"]
