"""
Advisory file locks for the ledger files.

Each ledger is guarded by a sidecar ``<ledger>.lock`` file so that atomic
replaces of the ledger itself never invalidate a held lock. Acquisition
polls a non-blocking ``flock`` until the timeout runs out.
"""
import contextlib
import fcntl
import logging
import os
import time

from exceptions import LockTimeoutException

logger = logging.getLogger("main")

DEFAULT_TIMEOUT = 5.0
POLL_INTERVAL = 0.05


def lock_path_for(path):
    return f"{path}.lock"


@contextlib.contextmanager
def locked(path, shared=False, timeout=DEFAULT_TIMEOUT, poll_interval=POLL_INTERVAL):
    """Hold a shared or exclusive lock on ``path`` for the duration of the block"""
    lock_path = lock_path_for(path)
    os.makedirs(os.path.dirname(lock_path) or ".", exist_ok=True)
    mode = fcntl.LOCK_SH if shared else fcntl.LOCK_EX
    lock_file = open(lock_path, "a+")
    deadline = time.monotonic() + timeout
    try:
        while True:
            try:
                fcntl.flock(lock_file, mode | fcntl.LOCK_NB)
                break
            except (BlockingIOError, IOError):
                if time.monotonic() >= deadline:
                    kind = "shared" if shared else "exclusive"
                    raise LockTimeoutException(f"Timed out after {timeout}s waiting for {kind} lock on {path}")
                time.sleep(poll_interval)
    except BaseException:
        lock_file.close()
        raise

    try:
        yield lock_file
    finally:
        try:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
        except (OSError, ValueError) as e:
            logger.debug(f"Lock release failed for {path}: {e}")
        lock_file.close()
