"""
Remote transports.

The sync engine only needs a small file-sync capability: list a directory,
create directories, remove entries and upload files. ``FTPTransport`` talks
to the deployment host; ``LocalTransport`` serves a mounted directory and
backs the test suite.
"""

import ftplib
import logging
import os
import posixpath
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from css_channels.config import FTPCredentials
from css_channels.core.exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteEntry:
    """One entry of a remote directory listing."""

    name: str
    is_dir: bool
    modified: datetime | None = None


class Transport(ABC):
    """Abstract file-sync capability used by the Remote Sync Engine."""

    # Whether independent calls may be issued from several threads
    thread_safe: bool = False

    @abstractmethod
    def list_dir(self, path: str) -> list[RemoteEntry]:
        """
        List a remote directory.

        Raises:
            TransportError: If the directory cannot be listed
        """

    @abstractmethod
    def ensure_dir(self, path: str) -> None:
        """Create ``path`` and any missing parents."""

    @abstractmethod
    def remove(self, path: str, is_dir: bool) -> None:
        """Remove a file or a directory tree. Absent paths are not an error."""

    @abstractmethod
    def upload_file(self, local_path: Path, remote_path: str) -> None:
        """Upload one file, replacing any existing remote file."""

    def exists(self, path: str) -> bool:
        """Return True if ``path`` is present on the remote."""
        path = path.rstrip("/")
        if not path:
            return True
        parent, name = posixpath.split(path)
        try:
            entries = self.list_dir(parent or "/")
        except TransportError as e:
            if e.missing:
                return False
            raise
        return any(entry.name == name for entry in entries)

    def upload_dir(self, local_dir: Path, remote_dir: str) -> int:
        """
        Upload a directory tree.

        Returns:
            Number of files uploaded
        """
        self.ensure_dir(remote_dir)
        uploaded = 0
        for root, dirs, files in os.walk(local_dir):
            dirs.sort()
            relative = Path(root).relative_to(local_dir).as_posix()
            target = remote_dir if relative == "." else posixpath.join(remote_dir, relative)
            self.ensure_dir(target)
            for name in sorted(files):
                self.upload_file(Path(root) / name, posixpath.join(target, name))
                uploaded += 1
        return uploaded

    def close(self) -> None:
        """Release the connection, if any."""

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _parse_mlsd_modify(value: str | None) -> datetime | None:
    """Parse an MLSD ``modify`` fact (YYYYMMDDHHMMSS[.sss], UTC)."""
    if not value:
        return None
    try:
        return datetime.strptime(value[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _is_missing(error: Exception) -> bool:
    return isinstance(error, ftplib.error_perm) and str(error).startswith("550")


class FTPTransport(Transport):
    """
    FTP / explicit FTPS transport.

    Connects lazily on first use. Connecting is retried with a fixed delay;
    individual file operations are not retried and surface as
    TransportError to the caller.
    """

    def __init__(
        self,
        credentials: FTPCredentials,
        retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 30.0,
    ):
        self._credentials = credentials
        self._timeout = timeout
        self._ftp: ftplib.FTP | None = None
        self._connect_with_retry = retry(
            stop=stop_after_attempt(retries),
            wait=wait_fixed(retry_delay),
            retry=retry_if_exception_type(ftplib.all_errors),
            before_sleep=self._log_retry,
            reraise=True,
        )(self._connect_once)

    @staticmethod
    def _log_retry(retry_state) -> None:
        logger.warning(
            "FTP connection attempt %d failed: %s",
            retry_state.attempt_number,
            retry_state.outcome.exception(),
        )

    def _connect_once(self) -> ftplib.FTP:
        creds = self._credentials
        ftp_class = ftplib.FTP_TLS if creds.secure else ftplib.FTP
        ftp = ftp_class(timeout=self._timeout)
        try:
            ftp.connect(creds.host)
            ftp.login(creds.user, creds.password)
            if isinstance(ftp, ftplib.FTP_TLS):
                ftp.prot_p()
        except ftplib.all_errors:
            ftp.close()
            raise
        return ftp

    def connect(self) -> ftplib.FTP:
        """
        Return the open connection, connecting if needed.

        Raises:
            TransportError: If every connection attempt failed
        """
        if self._ftp is None:
            logger.info("Connecting to %s", self._credentials.host)
            try:
                self._ftp = self._connect_with_retry()
            except ftplib.all_errors as e:
                raise TransportError(
                    f"Could not connect to {self._credentials.host}: {e}",
                    operation="connect",
                ) from e
        return self._ftp

    def list_dir(self, path: str) -> list[RemoteEntry]:
        ftp = self.connect()
        try:
            return [
                RemoteEntry(
                    name=name,
                    is_dir=facts.get("type") == "dir",
                    modified=_parse_mlsd_modify(facts.get("modify")),
                )
                for name, facts in ftp.mlsd(path, facts=["type", "modify"])
                if facts.get("type") not in ("cdir", "pdir") and name not in (".", "..")
            ]
        except ftplib.error_perm as e:
            if _is_missing(e):
                raise TransportError(str(e), operation="list", path=path, missing=True) from e
            logger.debug("MLSD unsupported (%s), falling back to NLST", e)
        except ftplib.all_errors as e:
            raise TransportError(str(e), operation="list", path=path) from e
        return self._list_without_mlsd(ftp, path)

    def _list_without_mlsd(self, ftp: ftplib.FTP, path: str) -> list[RemoteEntry]:
        """NLST listing; directory-ness probed with CWD, no timestamps."""
        try:
            names = ftp.nlst(path)
            entries = []
            for raw in names:
                name = posixpath.basename(raw.rstrip("/"))
                if name in (".", ".."):
                    continue
                entries.append(
                    RemoteEntry(name=name, is_dir=self._is_dir(ftp, posixpath.join(path, name)))
                )
            return entries
        except ftplib.all_errors as e:
            raise TransportError(
                str(e), operation="list", path=path, missing=_is_missing(e)
            ) from e

    @staticmethod
    def _is_dir(ftp: ftplib.FTP, path: str) -> bool:
        current = ftp.pwd()
        try:
            ftp.cwd(path)
        except ftplib.error_perm:
            return False
        ftp.cwd(current)
        return True

    def ensure_dir(self, path: str) -> None:
        ftp = self.connect()
        prefix = "/" if path.startswith("/") else ""
        for part in [p for p in path.split("/") if p]:
            prefix = posixpath.join(prefix, part)
            try:
                ftp.mkd(prefix)
                logger.debug("Created remote directory %s", prefix)
            except ftplib.error_perm as e:
                if not self._is_dir(ftp, prefix):
                    raise TransportError(str(e), operation="mkdir", path=prefix) from e
            except ftplib.all_errors as e:
                raise TransportError(str(e), operation="mkdir", path=prefix) from e

    def remove(self, path: str, is_dir: bool) -> None:
        ftp = self.connect()
        try:
            self._remove(ftp, path, is_dir)
        except TransportError as e:
            if e.missing:
                logger.debug("Already absent on remote: %s", path)
                return
            raise
        except ftplib.all_errors as e:
            if _is_missing(e) and not self.exists(path):
                logger.debug("Already absent on remote: %s", path)
                return
            raise TransportError(str(e), operation="remove", path=path) from e

    def _remove(self, ftp: ftplib.FTP, path: str, is_dir: bool) -> None:
        if not is_dir:
            ftp.delete(path)
            return
        for entry in self.list_dir(path):
            self._remove(ftp, posixpath.join(path, entry.name), entry.is_dir)
        ftp.rmd(path)

    def upload_file(self, local_path: Path, remote_path: str) -> None:
        ftp = self.connect()
        try:
            with open(local_path, "rb") as fh:
                ftp.storbinary(f"STOR {remote_path}", fh)
        except ftplib.all_errors as e:
            raise TransportError(str(e), operation="upload", path=remote_path) from e
        logger.debug("Uploaded %s -> %s", local_path, remote_path)

    def close(self) -> None:
        if self._ftp is None:
            return
        try:
            self._ftp.quit()
        except ftplib.all_errors:
            self._ftp.close()
        finally:
            self._ftp = None


class LocalTransport(Transport):
    """Transport over a directory on a mounted filesystem."""

    thread_safe = True

    def __init__(self, root: Path):
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        parts = [p for p in path.split("/") if p and p != "."]
        if ".." in parts:
            raise TransportError("Path escapes the remote root", operation="resolve", path=path)
        return self._root.joinpath(*parts)

    def list_dir(self, path: str) -> list[RemoteEntry]:
        directory = self._resolve(path)
        try:
            children = sorted(directory.iterdir())
            return [
                RemoteEntry(
                    name=child.name,
                    is_dir=child.is_dir(),
                    modified=datetime.fromtimestamp(child.stat().st_mtime, tz=timezone.utc),
                )
                for child in children
            ]
        except FileNotFoundError as e:
            raise TransportError(str(e), operation="list", path=path, missing=True) from e
        except OSError as e:
            raise TransportError(str(e), operation="list", path=path) from e

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def ensure_dir(self, path: str) -> None:
        try:
            self._resolve(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransportError(str(e), operation="mkdir", path=path) from e

    def remove(self, path: str, is_dir: bool) -> None:
        target = self._resolve(path)
        try:
            if is_dir and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink()
        except FileNotFoundError:
            logger.debug("Already absent on remote: %s", path)
        except OSError as e:
            raise TransportError(str(e), operation="remove", path=path) from e

    def upload_file(self, local_path: Path, remote_path: str) -> None:
        target = self._resolve(remote_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(local_path, target)
        except OSError as e:
            raise TransportError(str(e), operation="upload", path=remote_path) from e
