"""Scratch-directory management: unique paths, size checks and best-effort deletion."""

import logging
import os
import time
import uuid

from .errors import NotFound, StorageError

logger = logging.getLogger(__name__)


class TempStorage:
    """Hands out unique paths inside a shared scratch directory.

    Concurrent requests never collide because every path combines the current
    time with a random token, so no locking is needed.
    """

    def __init__(self, scratch_dir: str) -> None:
        self.scratch_dir = scratch_dir

    def allocate(self, suffix: str = ".mp4") -> str:
        """Return a fresh path in the scratch directory. Nothing is written."""
        try:
            os.makedirs(self.scratch_dir, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create scratch directory {self.scratch_dir}: {exc}") from exc
        name = f"video-{time.time_ns()}-{uuid.uuid4().hex}{suffix}"
        return os.path.join(self.scratch_dir, name)

    def size_of(self, path: str) -> int:
        try:
            return os.stat(path).st_size
        except FileNotFoundError as exc:
            raise NotFound(f"No such file: {path}") from exc
        except OSError as exc:
            raise StorageError(f"Cannot stat {path}: {exc}") from exc

    def release(self, path: str) -> None:
        """Delete path if it exists. Failures are logged, never raised."""
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Could not delete %s: %s", path, exc)
            return
        logger.debug("Released %s", path)

    def count(self) -> int:
        """Number of files currently in the scratch directory."""
        if not os.path.isdir(self.scratch_dir):
            return 0
        return len(os.listdir(self.scratch_dir))
