"""
Build Dispatcher - invokes the asset compiler once per channel.

The compiler itself is an external collaborator. A failed channel never
aborts a batch: every channel gets its own BuildResult, reported in
registry order.
"""

import logging
import shlex
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Protocol, Sequence

from css_channels.core.exceptions import BuildError
from css_channels.core.models import BatchBuildResult, BuildResult, Channel, Variant

logger = logging.getLogger(__name__)


class Compiler(Protocol):
    """External asset compiler capability."""

    def __call__(self, channel: Channel, target: str, output_dir: Path) -> None:
        """Compile ``channel`` into ``output_dir``; raise on failure."""
        ...


class CommandCompiler:
    """
    Compiler that shells out to a build command.

    The command template is shell-split and each argument is formatted with
    ``{target}``, ``{variant}`` and ``{output}``. Arguments that format to an
    empty string are dropped, so the standard variant adds no modifier.
    """

    def __init__(self, command_template: str, cwd: Path):
        self._template = shlex.split(command_template)
        self._cwd = cwd
        if not self._template:
            raise ValueError("Build command template is empty")

    def command_for(self, channel: Channel, target: str, output_dir: Path) -> list[str]:
        """Render the command line for one channel."""
        variant = "" if channel.variant == Variant.STANDARD else channel.variant.value
        args = [
            part.format(target=target, variant=variant, output=str(output_dir))
            for part in self._template
        ]
        return [a for a in args if a]

    def __call__(self, channel: Channel, target: str, output_dir: Path) -> None:
        cmd = self.command_for(channel, target, output_dir)
        logger.debug("Running compiler: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                cwd=self._cwd,
                capture_output=True,
                text=True,
                shell=False,
            )
        except FileNotFoundError as e:
            raise BuildError(f"Compiler not found: {cmd[0]}", channel_id=channel.id) from e

        if result.returncode != 0:
            tail = (result.stderr or result.stdout).strip().splitlines()[-5:]
            raise BuildError(
                f"Compiler exited with {result.returncode}: {' | '.join(tail)}",
                channel_id=channel.id,
                returncode=result.returncode,
            )


class BuildDispatcher:
    """Runs the compiler per channel and records independent outcomes."""

    def __init__(
        self,
        compiler: Compiler,
        dist_root: Path,
        max_workers: int = 1,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize dispatcher.

        Args:
            compiler: External compiler capability
            dist_root: Local artifact root
            max_workers: Parallel builds in a batch (1 = sequential)
            clock: Source of "now" for preview timestamps
        """
        self._compiler = compiler
        self._dist_root = dist_root
        self._max_workers = max(1, max_workers)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build(
        self,
        channel: Channel,
        moment: datetime | None = None,
        variant: Variant | None = None,
    ) -> BuildResult:
        """
        Build a single channel; never raises for compiler failures.

        ``variant`` overrides the channel's own variant for this build only;
        the target folder is unchanged.
        """
        moment = moment or self._clock()
        if variant is not None and variant != channel.variant:
            logger.info("Building %s with variant %s", channel.id, variant.value)
            channel = replace(channel, variant=variant)
        target = channel.instance_name(moment)
        output_dir = channel.local_path(self._dist_root, moment)
        logger.info("Building %s -> %s", channel.id, output_dir)

        start_time = time.time()
        try:
            self._compiler(channel, target, output_dir)
        except Exception as e:
            elapsed_ms = (time.time() - start_time) * 1000
            logger.error("Build failed for %s: %s", channel.id, e)
            return BuildResult(
                channel_id=channel.id,
                target=target,
                ok=False,
                output_path=str(output_dir),
                duration_ms=elapsed_ms,
                error=str(e),
                error_type=type(e).__name__,
            )

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info("Built %s in %.0fms", channel.id, elapsed_ms)
        return BuildResult(
            channel_id=channel.id,
            target=target,
            ok=True,
            output_path=str(output_dir),
            duration_ms=elapsed_ms,
        )

    def build_all(self, channels: Iterable[Channel]) -> BatchBuildResult:
        """
        Build every channel, continuing past failures.

        Channels touch disjoint subtrees, so with ``max_workers > 1`` they are
        built concurrently; results keep the input order either way.
        """
        ordered: Sequence[Channel] = tuple(channels)
        moment = self._clock()

        if self._max_workers == 1 or len(ordered) < 2:
            results = [self.build(channel, moment) for channel in ordered]
        else:
            with ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="build"
            ) as executor:
                futures = [executor.submit(self.build, channel, moment) for channel in ordered]
                results = [f.result() for f in futures]

        batch = BatchBuildResult(results=results)
        if batch.failed:
            logger.warning(
                "%d of %d channel builds failed: %s",
                len(batch.failed),
                len(batch.results),
                ", ".join(r.channel_id for r in batch.failed),
            )
        return batch
