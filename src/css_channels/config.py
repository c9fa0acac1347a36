"""
Runtime configuration loaded from the environment.

Environment variables:
- CSS_CHANNELS_PROJECT_ROOT: Project root (default: current directory)
- CSS_CHANNELS_DIST_DIR: Local artifact root (default: <project_root>/dist)
- CSS_CHANNELS_REMOTE_ROOT: Remote root directory (default: /)
- CSS_CHANNELS_REMOTE_PATH: Serve the remote from a mounted directory instead of FTP
- CSS_CHANNELS_PREVIEW_TTL_DAYS: Preview retention period (default: 7)
- CSS_CHANNELS_BUILD_COMMAND: Compiler command template
- CSS_CHANNELS_BUILD_WORKERS / CSS_CHANNELS_DELETE_WORKERS: Parallelism (default: 1)
- CSS_CHANNELS_REBUILD_SELECTION: "all" or "existing" (default: all)
- CSS_CHANNELS_CATALOG: Optional YAML channel catalog
- FTP_SERVER, FTP_USERNAME, FTP_PASSWORD, FTP_SECURE: Remote credentials
"""

import os
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from css_channels.core.exceptions import ConfigurationError

DEFAULT_BUILD_COMMAND = "node scripts/build.js {target} {variant}"


class RebuildSelection(Enum):
    """Which channels a rebuild-after-clean compiles."""

    ALL = "all"  # every registry channel
    EXISTING = "existing"  # only channels that had artifacts before the clean


class FTPCredentials(BaseModel):
    """Credentials for the FTP transport."""

    host: str
    user: str
    password: str = Field(repr=False)
    secure: bool = False


class Settings(BaseModel):
    """Configuration for the channel orchestrator."""

    project_root: Path = Field(default_factory=Path.cwd)
    dist_dir: Path | None = None
    remote_root: str = "/"
    remote_local_path: Path | None = None
    preview_ttl_days: int = Field(default=7, ge=0)
    connect_retries: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=2.0, ge=0)
    build_command: str = DEFAULT_BUILD_COMMAND
    build_workers: int = Field(default=1, ge=1)
    delete_workers: int = Field(default=1, ge=1)
    rebuild_selection: RebuildSelection = RebuildSelection.ALL
    catalog_file: Path | None = None
    ftp_host: str | None = None
    ftp_user: str | None = None
    ftp_password: str | None = Field(default=None, repr=False)
    ftp_secure: bool = False

    @property
    def dist_root(self) -> Path:
        """Local artifact root."""
        return self.dist_dir or self.project_root / "dist"

    def ftp_credentials(self) -> FTPCredentials:
        """
        Return FTP credentials.

        Raises:
            ConfigurationError: If any credential is missing
        """
        missing = [
            env_var
            for env_var, value in (
                ("FTP_SERVER", self.ftp_host),
                ("FTP_USERNAME", self.ftp_user),
                ("FTP_PASSWORD", self.ftp_password),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing environment variables: {', '.join(missing)}",
                env_var=missing[0],
            )
        return FTPCredentials(
            host=self.ftp_host,  # type: ignore[arg-type]
            user=self.ftp_user,  # type: ignore[arg-type]
            password=self.ftp_password,  # type: ignore[arg-type]
            secure=self.ftp_secure,
        )

    @classmethod
    def from_env(cls) -> "Settings":
        """Load configuration from environment."""
        project_root = Path(os.getenv("CSS_CHANNELS_PROJECT_ROOT") or Path.cwd())
        dist_dir = os.getenv("CSS_CHANNELS_DIST_DIR")
        remote_path = os.getenv("CSS_CHANNELS_REMOTE_PATH")
        catalog = os.getenv("CSS_CHANNELS_CATALOG")

        selection_str = os.getenv("CSS_CHANNELS_REBUILD_SELECTION", "all").lower()
        try:
            selection = RebuildSelection(selection_str)
        except ValueError:
            raise ConfigurationError(
                f"Invalid rebuild selection: {selection_str}",
                env_var="CSS_CHANNELS_REBUILD_SELECTION",
                details={"allowed": [s.value for s in RebuildSelection]},
            )

        try:
            return cls(
                project_root=project_root,
                dist_dir=Path(dist_dir) if dist_dir else None,
                remote_root=os.getenv("CSS_CHANNELS_REMOTE_ROOT", "/"),
                remote_local_path=Path(remote_path) if remote_path else None,
                preview_ttl_days=_int_env("CSS_CHANNELS_PREVIEW_TTL_DAYS", 7),
                build_command=os.getenv("CSS_CHANNELS_BUILD_COMMAND", DEFAULT_BUILD_COMMAND),
                build_workers=_int_env("CSS_CHANNELS_BUILD_WORKERS", 1),
                delete_workers=_int_env("CSS_CHANNELS_DELETE_WORKERS", 1),
                rebuild_selection=selection,
                catalog_file=Path(catalog) if catalog else None,
                ftp_host=os.getenv("FTP_SERVER"),
                ftp_user=os.getenv("FTP_USERNAME"),
                ftp_password=os.getenv("FTP_PASSWORD"),
                ftp_secure=os.getenv("FTP_SECURE", "false").lower() == "true",
            )
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise ConfigurationError(
                f"Invalid configuration: {', '.join(fields)}",
                config_key=fields[0] if fields else None,
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer", env_var=name)
