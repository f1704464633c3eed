"""
TASK STORE - JSON Collection Persistence

Reads and writes the whole task collection file:

    {"metadata": {...}, "tasks": [...]}

Write Discipline:
- Whole-file, atomic: write a temp file in the same directory, fsync,
  then os.replace over the original
- Optimistic version check: the (mtime_ns, size) fingerprint seen at
  load must still match at save, else StaleCollectionError. A concurrent
  writer makes the save fail instead of being silently overwritten.

Usage:
    store = TaskStore(Path("tasks.json"))
    with store.edit() as collection:
        GraphMutator(collection).add_dependency("T2", "T1")
    # saved only if the block exited cleanly
"""
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Tuple

from core.schemas import SchemaError, TaskCollection, decode_collection, encode_collection

logger = logging.getLogger(__name__)

Fingerprint = Tuple[int, int]


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class StoreError(Exception):
    """Base exception for task store operations."""
    pass


class CollectionFormatError(StoreError):
    """The file is not a valid task collection."""
    def __init__(self, path: Path, detail: str):
        self.path = path
        super().__init__(f"Invalid task collection {path}: {detail}")


class StaleCollectionError(StoreError):
    """The file changed on disk since it was loaded."""
    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Task collection changed on disk since load: {path}")


# =============================================================================
# TASK STORE
# =============================================================================

class TaskStore:
    """
    A single JSON task collection file.

    Not a lock: two processes can still both load, but only the first
    save wins; the second gets StaleCollectionError.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._fingerprint: Optional[Fingerprint] = None

    def _current_fingerprint(self) -> Optional[Fingerprint]:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> TaskCollection:
        """
        Read and decode the collection.

        Raises:
            StoreError: If the file cannot be read
            CollectionFormatError: If the content is not a task collection
        """
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise StoreError(f"Failed to read {self.path}: {e}") from e

        self._fingerprint = self._current_fingerprint()
        try:
            collection = decode_collection(raw)
        except SchemaError as e:
            raise CollectionFormatError(self.path, str(e)) from e

        logger.debug(f"Loaded {len(collection.tasks)} task(s) from {self.path}")
        return collection

    def save(self, collection: TaskCollection, check_version: bool = True) -> None:
        """
        Atomically write the collection.

        Args:
            collection: The collection to write
            check_version: Refuse to overwrite a file that changed since load

        Raises:
            StaleCollectionError: If the file changed since load
            StoreError: If the write fails
        """
        if check_version and self._current_fingerprint() != self._fingerprint:
            raise StaleCollectionError(self.path)

        data = encode_collection(collection)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreError(f"Failed to write {self.path}: {e}") from e

        self._fingerprint = self._current_fingerprint()
        logger.debug(f"Saved {len(collection.tasks)} task(s) to {self.path}")

    @contextmanager
    def edit(self) -> Iterator[TaskCollection]:
        """Load, yield for mutation, and save if the block succeeds."""
        collection = self.load()
        yield collection
        self.save(collection)

    def __repr__(self) -> str:
        return f"TaskStore({str(self.path)!r})"
