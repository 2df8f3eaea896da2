"""Storage snapshot persistence.

The snapshot is stored at <network-root>/storage.json and holds the manager
config (including installed plugins) and the repository registry.
"""

import logging
from pathlib import Path

from pydantic import ValidationError

from roast.config.parser import ConfigError, load_json, save_json
from roast.config.schemas import StorageSnapshot
from roast.errors import RoastError

logger = logging.getLogger(__name__)


class StorageError(RoastError):
    """The storage snapshot could not be read, parsed or written."""

    code = 7

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(message)


class FileStorage:
    """Reads and writes the storage snapshot of one network root."""

    STORAGE_FILE = "storage.json"

    def __init__(self, root: Path) -> None:
        """Initialize the storage.

        Args:
            root: Network root directory
        """
        self.root = root

    @property
    def path(self) -> Path:
        """Get the snapshot file path."""
        return self.root / self.STORAGE_FILE

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> StorageSnapshot | None:
        """Load the snapshot from disk.

        Returns:
            The snapshot, or None on first run (no file yet)

        Raises:
            StorageError: If the file exists but cannot be read or is invalid
        """
        if not self.path.exists():
            logger.info("Storage file %s does not exist yet", self.path)
            return None

        try:
            return StorageSnapshot.model_validate(load_json(self.path))
        except ConfigError as e:
            raise StorageError(e.message, self.path) from e
        except ValidationError as e:
            raise StorageError(f"Invalid storage snapshot {self.path}: {e}", self.path) from e

    def store(self, snapshot: StorageSnapshot) -> None:
        """Write the snapshot to disk, replacing the previous one atomically.

        Raises:
            StorageError: If the snapshot cannot be written
        """
        try:
            save_json(self.path, snapshot.model_dump(mode="json"))
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}", self.path) from e
        logger.debug("Stored snapshot with %d repositories", len(snapshot.repositories))
