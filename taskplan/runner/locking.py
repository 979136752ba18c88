"""
Per-feature run lock.

Uses flock on .taskplan/locks/<feature>.lock. The kernel drops the lock
when the holding process exits, so a crashed run never blocks the next
one. Lock files are never deleted: deleting them lets two processes hold
"exclusive" locks on different inodes with the same path.
"""

import atexit
import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path

from taskplan.lib.errors import ConcurrentRunDetected

logger = logging.getLogger(__name__)


def lock_path(state_dir: Path, feature: str) -> Path:
    return state_dir / "locks" / f"{feature}.lock"


def read_holder(lock_file: Path) -> str | None:
    """PID recorded by the current (or last) holder, if any."""
    try:
        content = lock_file.read_text().strip()
    except (IOError, OSError):
        return None
    return content or None


def is_locked(state_dir: Path, feature: str) -> bool:
    """True if a live run currently holds the feature lock."""
    lock_file = lock_path(state_dir, feature)
    if not lock_file.exists():
        return False
    with open(lock_file, "r") as fd:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        fcntl.flock(fd, fcntl.LOCK_UN)
    return False


@contextmanager
def feature_lock(state_dir: Path, feature: str, readonly: bool = False):
    """
    Hold the feature lock for the duration of a run.

    Does not wait: if another live run holds the lock, raises
    ConcurrentRunDetected naming the holder pid.

    With readonly, nothing is created or written: a missing lock file
    means no run has ever held the lock, so there is nothing to take.
    """
    lock_file = lock_path(state_dir, feature)
    if readonly and not lock_file.exists():
        yield
        return
    if not readonly:
        lock_file.parent.mkdir(parents=True, exist_ok=True)

    # Append mode so a failed attempt does not truncate the holder's pid
    fd = open(lock_file, "r" if readonly else "a+")
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        fd.close()
        raise ConcurrentRunDetected(feature, read_holder(lock_file))

    def cleanup():
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
            fd.close()
        except (IOError, OSError, ValueError):
            pass

    atexit.register(cleanup)
    try:
        if not readonly:
            fd.seek(0)
            fd.truncate()
            fd.write(f"{os.getpid()}\n")
            fd.flush()
        logger.debug(f"Acquired lock {lock_file}")
        yield
    finally:
        atexit.unregister(cleanup)
        cleanup()
