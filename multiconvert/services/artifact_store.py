"""Temporary artifact storage.

Owns the managed temp directory shared by strategies (write), the
reaper (delete) and download endpoints (read). Artifact names are
``<uuid4-hex><ext>`` and never reused.
"""

import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import structlog

from multiconvert.core.config import StorageConfig
from multiconvert.core.validation import is_safe_filename

logger = structlog.get_logger(__name__)


@dataclass
class StorageUsage:
    """Artifact directory usage statistics."""

    file_count: int
    total_bytes: int

    def to_dict(self) -> dict:
        return {
            "file_count": self.file_count,
            "total_bytes": self.total_bytes,
            "total_mb": round(self.total_bytes / (1024 * 1024), 2),
        }


class StorageError(Exception):
    """Exception raised for storage-related errors."""

    pass


class ArtifactStore:
    """Allocates, resolves and deletes files in the managed temp directory."""

    def __init__(self, config: StorageConfig) -> None:
        """Initialize the artifact store.

        Args:
            config: Storage configuration with the temp directory and limits.
        """
        self.config = config
        self.root = Path(config.temp_dir)
        self.max_file_size = config.max_file_size

        logger.debug(
            "artifact_store_initialized",
            temp_dir=str(self.root),
            max_file_size=self.max_file_size,
        )

    def _probe_write(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)

            # Unique probe name so concurrent workers never collide
            probe = self.root / f".write_test_{os.getpid()}_{uuid.uuid4().hex}"
            try:
                probe.touch()
                probe.unlink(missing_ok=True)
            except PermissionError as e:
                raise StorageError(
                    f"Insufficient permissions to write to temp directory: {self.root}"
                ) from e

        except OSError as e:
            raise StorageError(f"Failed to initialize temp directory: {e}") from e

    def initialize(self) -> None:
        """Create the temp directory and verify write permissions.

        Raises:
            StorageError: If directory creation fails or permissions are insufficient.
        """
        self._probe_write()
        logger.info("storage_initialized", temp_dir=str(self.root), writable=True)

    def is_writable(self) -> bool:
        """Best-effort writability probe used by readiness checks. Logs nothing."""
        try:
            self._probe_write()
        except StorageError:
            return False
        return True

    def _ensure_root(self) -> None:
        if not self.root.is_dir():
            logger.warning("temp_directory_recreated", temp_dir=str(self.root))
            self.root.mkdir(parents=True, exist_ok=True)

    def allocate(self, extension: str) -> Path:
        """Return a fresh path inside the temp directory.

        The file is not created. ``extension`` may be given with or
        without the leading dot, or empty for a bare stem.
        """
        self._ensure_root()
        if extension and not extension.startswith("."):
            extension = f".{extension}"
        return self.root / f"{uuid.uuid4().hex}{extension}"

    def delete(self, path: Union[str, Path, None]) -> bool:
        """Remove a file if present.

        Returns:
            True if a file was removed, False if it was missing or could
            not be removed.
        """
        if not path:
            return False
        target = Path(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("artifact_delete_failed", filepath=str(target), error=str(e))
            return False

        logger.debug("artifact_deleted", filepath=str(target))
        return True

    def sweep(self, max_age_seconds: float) -> int:
        """Delete files older than ``max_age_seconds``.

        Non-recursive. Hidden entries and directories are skipped. A file
        exactly ``max_age_seconds`` old is kept. Per-file failures are
        logged and skipped.

        Returns:
            Number of files removed.
        """
        files_deleted = 0
        bytes_reclaimed = 0
        current_time = time.time()

        try:
            self._ensure_root()
            entries = list(self.root.iterdir())
        except OSError as e:
            logger.error("sweep_directory_access_failed", temp_dir=str(self.root), error=str(e))
            return 0

        for filepath in entries:
            if filepath.name.startswith("."):
                continue

            try:
                if not filepath.is_file():
                    continue
                stat = filepath.stat()
                age_seconds = current_time - stat.st_mtime
                if age_seconds <= max_age_seconds:
                    continue

                filepath.unlink()
                files_deleted += 1
                bytes_reclaimed += stat.st_size

                logger.info(
                    "artifact_expired",
                    filename=filepath.name,
                    size_bytes=stat.st_size,
                    age_minutes=round(age_seconds / 60, 1),
                )

            except FileNotFoundError:
                # Removed concurrently
                continue
            except OSError as e:
                logger.warning("artifact_sweep_failed", filename=filepath.name, error=str(e))

        logger.info(
            "sweep_completed",
            files_deleted=files_deleted,
            bytes_reclaimed=bytes_reclaimed,
            max_age_seconds=max_age_seconds,
        )
        return files_deleted

    def usage(self) -> StorageUsage:
        """Count files and bytes in the temp directory, skipping unreadable entries."""
        file_count = 0
        total_bytes = 0

        try:
            self._ensure_root()
            entries = list(self.root.iterdir())
        except OSError as e:
            logger.warning("usage_directory_access_failed", error=str(e))
            return StorageUsage(file_count=0, total_bytes=0)

        for filepath in entries:
            if filepath.name.startswith("."):
                continue
            try:
                if filepath.is_file():
                    file_count += 1
                    total_bytes += filepath.stat().st_size
            except OSError:
                continue

        return StorageUsage(file_count=file_count, total_bytes=total_bytes)

    def resolve(self, filename: str) -> Optional[Path]:
        """Map a bare artifact filename to an existing file in the temp directory.

        Returns:
            The path if the name is safe and the file exists, else None.
        """
        if not is_safe_filename(filename):
            return None
        candidate = self.root / filename
        try:
            if candidate.is_file():
                return candidate
        except OSError:
            return None
        return None


# Global artifact store instance
_artifact_store: Optional[ArtifactStore] = None


def configure_artifact_store(config: StorageConfig) -> ArtifactStore:
    """Configure and initialize the global artifact store.

    Args:
        config: Storage configuration.

    Returns:
        Configured ArtifactStore instance.
    """
    global _artifact_store
    _artifact_store = ArtifactStore(config)
    _artifact_store.initialize()
    return _artifact_store


def get_artifact_store() -> ArtifactStore:
    """Get the global artifact store instance.

    Raises:
        RuntimeError: If the artifact store is not configured.
    """
    if _artifact_store is None:
        raise RuntimeError("Artifact store not configured. Call configure_artifact_store() first.")
    return _artifact_store
