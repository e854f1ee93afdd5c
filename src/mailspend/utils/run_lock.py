"""Process-level lock so a manual run never overlaps the scheduled one."""
import fcntl
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from mailspend.utils.logger import get_app_dir


class RunLockHeld(RuntimeError):
    """Another process is already running a batch."""


def get_lock_path() -> Path:
    return get_app_dir() / "batch.lock"


@contextmanager
def acquire_run_lock(lock_path: Optional[Path] = None):
    """Acquire an exclusive, non-blocking OS file lock for the batch.

    Raises:
        RunLockHeld: If another process holds the lock.
    """
    lock_path = lock_path or get_lock_path()
    lock_file = lock_path.open("w")
    try:
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        lock_file.close()
        raise RunLockHeld(f"Another batch is already running (lock: {lock_path})") from None
    try:
        yield
    finally:
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        lock_file.close()
