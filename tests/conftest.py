"""Pytest configuration and fixtures."""

import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import pytest

from css_channels.config import Settings
from css_channels.core.exceptions import BuildError
from css_channels.core.models import Channel, Variant
from css_channels.orchestrator.core import Orchestrator
from css_channels.remote.transport import LocalTransport

FIXED_NOW = datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc)


class FakeCompiler:
    """Compiler that writes a stylesheet, or fails for selected channels."""

    def __init__(self, fail: set[str] | None = None):
        self.fail = fail or set()
        self.calls: list[str] = []
        self.variants: dict[str, Variant] = {}
        self._lock = threading.Lock()

    def __call__(self, channel: Channel, target: str, output_dir: Path) -> None:
        with self._lock:
            self.calls.append(channel.id)
            self.variants[channel.id] = channel.variant
        if channel.id in self.fail:
            raise BuildError(f"compile failed for {channel.id}", channel_id=channel.id)
        output_dir.mkdir(parents=True, exist_ok=True)
        (output_dir / "ucss.min.css").write_text(f"/* {channel.id} */")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_dir(temp_dir: Path) -> Path:
    """Provide a project root with an empty dist directory."""
    project = temp_dir / "project"
    (project / "dist").mkdir(parents=True)
    return project


@pytest.fixture
def dist_dir(project_dir: Path) -> Path:
    """Return the local dist root of the test project."""
    return project_dir / "dist"


@pytest.fixture
def populated_dist(dist_dir: Path) -> Path:
    """Provide a dist tree with every kind of channel folder."""
    for name in ("stable", "latest", "p", "v", "preview-2024-01-01-00-00-00"):
        folder = dist_dir / name
        folder.mkdir()
        (folder / "ucss.min.css").write_text("/* css */")
    return dist_dir


@pytest.fixture
def remote_dir(temp_dir: Path) -> Path:
    """Provide an empty directory standing in for the remote host."""
    remote = temp_dir / "remote"
    remote.mkdir()
    return remote


@pytest.fixture
def populated_remote(remote_dir: Path) -> Path:
    """Provide a remote tree with protected and deletable entries."""
    for name in ("stable", "latest", "p", "v", "preview-2024-01-01", "preview-2024-01-08-09-30-00"):
        folder = remote_dir / name
        folder.mkdir()
        (folder / "ucss.min.css").write_text("/* css */")
    (remote_dir / "index.html").write_text("<html></html>")
    return remote_dir


@pytest.fixture
def local_transport(remote_dir: Path) -> LocalTransport:
    """Provide a transport backed by the fake remote directory."""
    return LocalTransport(remote_dir)


@pytest.fixture
def compiler() -> FakeCompiler:
    """Provide a compiler that always succeeds."""
    return FakeCompiler()


@pytest.fixture
def settings(project_dir: Path, remote_dir: Path) -> Settings:
    """Provide settings pointing at the test project and fake remote."""
    return Settings(
        project_root=project_dir,
        remote_local_path=remote_dir,
        build_command="true",
    )


@pytest.fixture
def orchestrator(settings: Settings, compiler: FakeCompiler) -> Orchestrator:
    """Provide an orchestrator on the main branch with a fixed clock."""
    return Orchestrator(
        settings=settings,
        compiler=compiler,
        clock=lambda: FIXED_NOW,
        branch_resolver=lambda _: "main",
    )
