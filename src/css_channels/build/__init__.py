"""Build dispatch for release channels."""

from .dispatcher import BuildDispatcher, CommandCompiler, Compiler

__all__ = ["BuildDispatcher", "CommandCompiler", "Compiler"]
