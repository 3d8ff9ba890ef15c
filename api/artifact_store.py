"""
Artifact Store
==============

Filesystem side of uploaded test artifacts.

Layout:
    {upload_root}/{test_name}/{original_basename}

This service handles:
- Per-test directory creation on demand
- Reducing client filenames to a base name so uploads stay inside their test directory
- Streaming an upload body to disk in fixed-size chunks, up to a size limit
- Checking that a recorded path still exists before it is served

Usage:
    from api.artifact_store import ArtifactStore

    store = ArtifactStore(settings.upload_path)
    target = store.ensure_test_dir("run1") / store.sanitize_filename("out.log")
    size = await store.write_stream(upload, target)
"""
from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path, PurePosixPath
from typing import Any

# Configure logging
_logger = logging.getLogger(__name__)

# Size of each read from the upload stream and from stored files
CHUNK_SIZE = 64 * 1024


class ArtifactStoreError(Exception):
    """The artifact store could not create a directory or write a file."""


class InvalidArtifactName(ValueError):
    """A test name or filename would resolve outside the artifact store."""


class ArtifactTooLarge(ArtifactStoreError):
    """An upload body grew past the configured size limit."""

    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        super().__init__(f"Upload exceeds the {limit_bytes} byte limit")


class ArtifactStore:
    """
    Directory tree holding uploaded artifact bytes, one subdirectory per test.

    Attributes:
        root: Absolute path of the upload root
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        _logger.debug("ArtifactStore initialized: root=%s", self.root)

    def ensure_root(self) -> None:
        """Create the upload root. Raises ArtifactStoreError on failure."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArtifactStoreError(f"Failed to create upload root {self.root}: {e}") from e

    @staticmethod
    def sanitize_filename(filename: str | None) -> str:
        """
        Reduce a client-supplied filename to its base name.

        Both ``/`` and ``\\`` count as separators, whatever the host OS, so
        ``..\\..\\evil.txt`` and ``../../evil.txt`` both become ``evil.txt``.

        Raises:
            InvalidArtifactName: if nothing usable remains
        """
        base = PurePosixPath((filename or "").replace("\\", "/")).name.strip()
        if base in ("", ".", "..") or "\x00" in base:
            raise InvalidArtifactName(f"Invalid filename: {filename!r}")
        return base

    def test_dir(self, test_name: str) -> Path:
        """
        Directory for a test's artifacts (not created).

        Raises:
            InvalidArtifactName: if the name is not a single path component
        """
        if (
            not test_name
            or test_name in (".", "..")
            or "/" in test_name
            or "\\" in test_name
            or "\x00" in test_name
        ):
            raise InvalidArtifactName(f"Test name cannot be used as a directory: {test_name!r}")

        target = (self.root / test_name).resolve()
        if target.parent != self.root:
            raise InvalidArtifactName(f"Test name escapes the upload root: {test_name!r}")
        return target

    def ensure_test_dir(self, test_name: str) -> Path:
        """
        Create the test's directory if missing and return it.

        Concurrent callers are fine: creation is idempotent.

        Raises:
            InvalidArtifactName: see test_dir
            ArtifactStoreError: if the directory cannot be created
        """
        target = self.test_dir(test_name)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            _logger.error("Failed to create artifact directory %s: %s", target, e)
            raise ArtifactStoreError(f"Failed to create directory for test '{test_name}'") from e
        return target

    async def write_stream(self, upload: Any, target: Path, max_bytes: int | None = None) -> int:
        """
        Copy an upload body to ``target`` chunk by chunk.

        Bytes go to a temporary file beside ``target`` that replaces it only
        once the whole body has been read, so a failed or oversized upload
        leaves any earlier file with the same name intact.

        Args:
            upload: Object with an async ``read(size)`` (e.g. fastapi.UploadFile)
            target: Destination path inside a test directory
            max_bytes: Largest body accepted; None for no limit

        Returns:
            Number of bytes written

        Raises:
            ArtifactTooLarge: if the body grows past ``max_bytes``
            ArtifactStoreError: if the file cannot be written
        """
        partial = target.with_name(f".{target.name}.{uuid.uuid4().hex}.part")
        size = 0
        try:
            with open(partial, "wb") as out:
                while chunk := await upload.read(CHUNK_SIZE):
                    size += len(chunk)
                    if max_bytes is not None and size > max_bytes:
                        raise ArtifactTooLarge(max_bytes)
                    out.write(chunk)
            os.replace(partial, target)
        except OSError as e:
            self.discard(partial)
            raise ArtifactStoreError(f"Failed to write {target.name}") from e
        except BaseException:
            self.discard(partial)
            raise

        _logger.debug("Wrote %d bytes to %s", size, target)
        return size

    def discard(self, path: str | Path) -> bool:
        """
        Remove a stored file, only if it lies inside the upload root.

        Returns:
            True if a file was deleted
        """
        target = Path(path).resolve()
        if os.path.commonpath([self.root, target]) != str(self.root):
            return False
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            _logger.warning("Could not remove artifact file %s: %s", target, e)
            return False
        _logger.info("Deleted artifact file: %s", target)
        return True

    @staticmethod
    def resolve(path: str | Path) -> Path | None:
        """Return the stored path if the file still exists, else None."""
        file_path = Path(path)
        if not file_path.is_file():
            _logger.warning("Artifact file not found on disk: %s", file_path)
            return None
        return file_path

    @staticmethod
    def iter_chunks(file_path: Path, chunk_size: int = CHUNK_SIZE):
        """Generator that yields file content in chunks for streaming."""
        with open(file_path, "rb") as f:
            while chunk := f.read(chunk_size):
                yield chunk
