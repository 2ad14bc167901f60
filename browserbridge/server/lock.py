"""
BrowserBridge Startup Lock
--------------------------
Cross-process advisory file lock that serializes server spawning per endpoint.

Several bridges (one per editor window) can fail their first probe at the same
moment; only the holder of this lock may spawn.
"""

import hashlib
import logging
import tempfile
from pathlib import Path
from typing import Optional

import portalocker

from browserbridge.core.types import ServerEndpoint

logger = logging.getLogger("BrowserBridge.StartupLock")


def startup_lock_path(endpoint: ServerEndpoint) -> Path:
    """Lock scope is the endpoint, not the install dir or config file."""
    key_hash = hashlib.sha1(str(endpoint).encode("utf-8")).hexdigest()[:12]
    return Path(tempfile.gettempdir()) / f"browserbridge_start_{key_hash}.lock"


class StartupLock:
    def __init__(self, lock_file_path: Path, timeout: float = 8.0):
        self.lock_file_path = lock_file_path
        self.timeout = timeout
        self._lock: Optional[portalocker.Lock] = None

    @property
    def held(self) -> bool:
        return self._lock is not None

    def acquire(self) -> bool:
        """
        Block up to ``timeout`` seconds for the lock.

        Returns False when another process keeps holding it, which means that
        process is currently spawning the server.
        """
        self.lock_file_path.parent.mkdir(parents=True, exist_ok=True)
        lock = portalocker.Lock(
            str(self.lock_file_path),
            mode="a",
            timeout=self.timeout,
            flags=portalocker.LOCK_EX | portalocker.LOCK_NB,
        )
        try:
            lock.acquire()
        except portalocker.exceptions.LockException as exc:
            logger.info("Startup lock %s held by another process: %s", self.lock_file_path, exc)
            return False
        self._lock = lock
        return True

    def release(self) -> None:
        if self._lock is None:
            return
        try:
            self._lock.release()
        finally:
            self._lock = None


def get_startup_lock(endpoint: ServerEndpoint, timeout: float = 8.0) -> StartupLock:
    return StartupLock(startup_lock_path(endpoint), timeout=timeout)
