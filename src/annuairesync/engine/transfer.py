"""File transfer abstraction for the registry exchange directories.

This module provides:
- Abstract interface for the transfer channel
- LocalFSTransferChannel for development/testing

The registry exposes three remote locations: /incoming for batch files,
/reports for confirmation reports and /reports/archive for processed
reports. The production transport (SFTP) is injected by the host
application.
"""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

INCOMING_DIR = "/incoming"
REPORTS_DIR = "/reports"
ARCHIVE_DIR = "/reports/archive"


class TransferError(Exception):
    """Raised when a transfer operation fails."""


class TransferChannel(ABC):
    """Abstract interface for the registry file-transfer channel."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of the remote endpoint."""

    @abstractmethod
    def upload(self, local_path: Path, remote_name: str) -> str:
        """Upload a batch file to the incoming directory.

        Args:
            local_path: File to send.
            remote_name: Name of the file on the remote side.

        Returns:
            Remote path of the uploaded file.

        Raises:
            TransferError: If the upload fails.
        """

    @abstractmethod
    def list(self, remote_dir: str = REPORTS_DIR) -> list[str]:
        """List file names in a remote directory.

        Args:
            remote_dir: Remote directory.

        Returns:
            File names (not paths), sorted.

        Raises:
            TransferError: If the directory cannot be listed.
        """

    @abstractmethod
    def download(self, remote_path: str, local_path: Path) -> None:
        """Download a remote file.

        Args:
            remote_path: Remote file path.
            local_path: Destination path (overwritten).

        Raises:
            TransferError: If the download fails.
        """

    @abstractmethod
    def archive(self, remote_path: str) -> str:
        """Move a processed report to the archive directory.

        Args:
            remote_path: Remote file path.

        Returns:
            Remote path of the archived file.

        Raises:
            TransferError: If the move fails.
        """


class LocalFSTransferChannel(TransferChannel):
    """Transfer channel backed by a local directory tree.

    Remote paths are resolved under root, so /incoming/x.csv maps to
    <root>/incoming/x.csv.
    """

    def __init__(self, root: Path | str) -> None:
        """Initialize the channel.

        Args:
            root: Directory standing in for the remote server.
        """
        self._root = Path(root).resolve()
        for remote_dir in (INCOMING_DIR, REPORTS_DIR, ARCHIVE_DIR):
            self._resolve(remote_dir).mkdir(parents=True, exist_ok=True)

    @property
    def location(self) -> str:
        """Return the local root path."""
        return f"Local filesystem: {self._root}"

    def _resolve(self, remote_path: str) -> Path:
        relative = PurePosixPath(remote_path.lstrip("/"))
        if ".." in relative.parts:
            raise TransferError(f"Invalid remote path: {remote_path}")
        return self._root.joinpath(*relative.parts)

    def upload(self, local_path: Path, remote_name: str) -> str:
        """Copy a batch file into <root>/incoming."""
        remote_path = f"{INCOMING_DIR}/{remote_name}"
        try:
            shutil.copyfile(local_path, self._resolve(remote_path))
        except OSError as e:
            raise TransferError(f"Upload of {remote_name} failed: {e}") from e
        logger.debug("Uploaded %s to %s", local_path, remote_path)
        return remote_path

    def list(self, remote_dir: str = REPORTS_DIR) -> list[str]:
        """List regular files in a directory under root."""
        path = self._resolve(remote_dir)
        try:
            return sorted(entry.name for entry in path.iterdir() if entry.is_file())
        except OSError as e:
            raise TransferError(f"Cannot list {remote_dir}: {e}") from e

    def download(self, remote_path: str, local_path: Path) -> None:
        """Copy a file from under root."""
        local_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(self._resolve(remote_path), local_path)
        except OSError as e:
            raise TransferError(f"Download of {remote_path} failed: {e}") from e

    def archive(self, remote_path: str) -> str:
        """Move a file into <root>/reports/archive."""
        name = PurePosixPath(remote_path).name
        archived_path = f"{ARCHIVE_DIR}/{name}"
        try:
            self._resolve(remote_path).replace(self._resolve(archived_path))
        except OSError as e:
            raise TransferError(f"Archive of {remote_path} failed: {e}") from e
        return archived_path
