from __future__ import annotations

import fcntl
import json
import logging
import os
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from deployer.errors import ArtifactIOError, CacheLockedError


logger = logging.getLogger(__name__)

# A releasing holder unlinks the file; reopen if we locked the old inode.
_OPEN_ATTEMPTS = 5


def _same_file(fd: int, path: Path) -> bool:
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return False
    held = os.fstat(fd)
    return (held.st_dev, held.st_ino) == (st.st_dev, st.st_ino)


class CacheLock:
    """Exclusive lock guarding one cache directory.

    Exclusion is a ``flock`` on an open descriptor of ``path``, so the kernel
    drops it when the holder exits or crashes. The JSON payload in the file
    (pid, run_id) only identifies the holder in error messages. The lock file
    lives beside the cache directory, never inside it.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.payload: Optional[Dict[str, Any]] = None
        self._fd: Optional[int] = None

    def _read(self) -> Dict[str, Any]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return raw if isinstance(raw, dict) else {}

    def _open_locked(self) -> int:
        for _ in range(_OPEN_ATTEMPTS):
            fd = os.open(str(self.path), os.O_CREAT | os.O_RDWR, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                holder = self._read()
                raise CacheLockedError(
                    f"cache is locked by pid {holder.get('pid', 'unknown')} "
                    f"(run {holder.get('run_id', 'unknown')}); lock file {self.path}"
                )
            except OSError:
                os.close(fd)
                raise
            if _same_file(fd, self.path):
                return fd
            os.close(fd)
        raise CacheLockedError(f"cache lock {self.path} keeps being replaced by another run")

    def acquire(self, *, run_id: Optional[str] = None, pid: Optional[int] = None) -> Dict[str, Any]:
        if self._fd is not None:
            raise CacheLockedError(f"cache lock {self.path} is already held by this run")
        if pid is None:
            pid = os.getpid()
        payload: Dict[str, Any] = {
            "pid": int(pid),
            "run_id": str(run_id or uuid.uuid4()),
            "started_at_ms": int(time.time() * 1000),
        }

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = self._open_locked()
        except OSError as exc:
            raise ArtifactIOError(f"lock_error: {exc}") from exc

        try:
            if os.fstat(fd).st_size > 0:
                # Left behind by a holder that died without releasing.
                previous = self._read()
                logger.warning("Recovering stale cache lock %s (pid %s)", self.path, previous.get("pid", "unknown"))
                payload["recovered"] = True
            os.ftruncate(fd, 0)
            os.write(fd, json.dumps(payload).encode("utf-8"))
        except OSError as exc:
            os.close(fd)
            raise ArtifactIOError(f"lock_error: {exc}") from exc

        self._fd = fd
        self.payload = payload
        return payload

    def release(self) -> bool:
        fd = self._fd
        if fd is None:
            return True
        self._fd = None
        self.payload = None
        try:
            # Unlink while still holding the flock; waiters recheck the inode.
            if _same_file(fd, self.path):
                self.path.unlink()
        except OSError as exc:
            logger.warning("Failed to remove cache lock %s: %s", self.path, exc)
            return False
        finally:
            os.close(fd)
        return True

    @contextmanager
    def held(self, *, run_id: Optional[str] = None) -> Iterator[Dict[str, Any]]:
        payload = self.acquire(run_id=run_id)
        try:
            yield payload
        finally:
            self.release()
