"""
Advisory file locks for the submission queue.

Each lock is a sibling ``*.lock`` file held with an exclusive, non-blocking
``flock``. Locks are per open file description, so two FileLock objects on
the same path conflict even inside one process.
"""

import fcntl
import logging
import os
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Lock files older than this are treated as abandoned by a dead worker
STALE_LOCK_SECONDS = 300


class FileLock:
    """Exclusive non-blocking lock backed by a lock file."""

    def __init__(self, path: Path, stale_after: float = STALE_LOCK_SECONDS):
        self.path = Path(path)
        self.stale_after = stale_after
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def age_seconds(self) -> Optional[float]:
        """Seconds since the lock file was last touched, None if absent."""
        try:
            return time.time() - self.path.stat().st_mtime
        except FileNotFoundError:
            return None

    def is_stale(self) -> bool:
        age = self.age_seconds()
        return age is not None and age > self.stale_after

    def acquire(self) -> bool:
        """Try to take the lock without blocking. Returns False if held elsewhere."""
        if self._fd is not None:
            return True

        if self.is_stale():
            logger.warning(f"Removing stale lock file: {self.path.name}")
            self.path.unlink(missing_ok=True)

        fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            return False

        # The previous holder may have unlinked the path between our open and flock
        try:
            same_file = os.fstat(fd).st_ino == os.stat(self.path).st_ino
        except FileNotFoundError:
            same_file = False
        if not same_file:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
            return False

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()} {int(time.time())}\n".encode())
        self._fd = fd
        return True

    def release(self) -> None:
        """Drop the lock and remove the lock file. Safe to call when not held."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            self.path.unlink(missing_ok=True)
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    def __enter__(self) -> bool:
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
