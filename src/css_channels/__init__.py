"""
CSS Channels - release channel orchestration for a CSS distribution.

Builds named channel variants, deploys them to a remote host and reclaims
old artifacts through retention policies that never touch protected channels.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
