"""
CSS Channels Exception Hierarchy.

Defines all custom exceptions used by the channel orchestrator.
Provides consistent error handling and debugging information.
"""

from typing import Any


class ChannelsError(Exception):
    """
    Base exception for all CSS Channels errors.

    All custom exceptions inherit from this class, allowing
    generic catch blocks and consistent error handling.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        """
        Initialize a ChannelsError.

        Args:
            message: Human-readable error message
            details: Optional structured data for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with details."""
        base = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{base} ({details_str})"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class UnknownChannelError(ChannelsError):
    """
    Raised when a channel id is not in the registry catalog.

    Fatal: the orchestrator cannot decide what to build or push.
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        channel_id: str | None = None,
        known: list[str] | None = None,
    ):
        details: dict[str, Any] = {}
        if channel_id:
            details["channel_id"] = channel_id
        if known:
            details["known"] = known

        super().__init__(message or f"Unknown channel: {channel_id}", details=details)
        self.channel_id = channel_id


class NotFoundError(ChannelsError):
    """
    Raised when a named cleanup target does not exist.

    Non-fatal for targeted cleans; callers usually treat it as a no-op.
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        target: str | None = None,
        scope: str | None = None,
    ):
        details: dict[str, Any] = {}
        if target:
            details["target"] = target
        if scope:
            details["scope"] = scope

        super().__init__(message or f"Target not found: {target}", details=details)
        self.target = target
        self.scope = scope


class TransportError(ChannelsError):
    """
    Errors from the remote transport.

    Raised when:
    - The remote host cannot be reached (fatal for the operation)
    - A single remote path cannot be listed, created or removed
      (recorded per location, the batch continues)
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        path: str | None = None,
        missing: bool = False,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a TransportError.

        Args:
            message: Human-readable error message
            operation: Transport operation that failed (connect, list, remove...)
            path: Remote path involved
            missing: The path does not exist on the remote
            details: Optional structured data for debugging
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        if path:
            details["path"] = path

        super().__init__(message, details=details)
        self.operation = operation
        self.path = path
        self.missing = missing


class BuildError(ChannelsError):
    """Raised by a compiler when building one channel fails."""

    def __init__(
        self,
        message: str,
        *,
        channel_id: str | None = None,
        returncode: int | None = None,
    ):
        details: dict[str, Any] = {}
        if channel_id:
            details["channel_id"] = channel_id
        if returncode is not None:
            details["returncode"] = returncode

        super().__init__(message, details=details)
        self.channel_id = channel_id
        self.returncode = returncode


class ConfigurationError(ChannelsError):
    """
    Errors in configuration loading or validation.

    Raised when:
    - Required environment variables are not set
    - The channel catalog file is missing or malformed
    - Configuration values are invalid
    """

    def __init__(
        self,
        message: str,
        *,
        config_file: str | None = None,
        env_var: str | None = None,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a ConfigurationError.

        Args:
            message: Human-readable error message
            config_file: Path to configuration file if applicable
            env_var: Environment variable name if applicable
            config_key: Configuration key if applicable
            details: Optional structured data for debugging
        """
        details = details or {}
        if config_file:
            details["config_file"] = config_file
        if env_var:
            details["env_var"] = env_var
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, details=details)
        self.config_file = config_file
        self.env_var = env_var
        self.config_key = config_key


class InvariantViolationError(ChannelsError):
    """Raised when a retention decision is not a disjoint, total partition."""

    def __init__(
        self,
        message: str,
        *,
        policy: str | None = None,
        overlap: list[str] | None = None,
        missing: list[str] | None = None,
    ):
        details: dict[str, Any] = {}
        if policy:
            details["policy"] = policy
        if overlap:
            details["overlap"] = overlap
        if missing:
            details["missing"] = missing

        super().__init__(message, details=details)
        self.policy = policy
