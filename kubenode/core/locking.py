import fcntl
import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class LockHeldError(RuntimeError):
    """Another provisioning run already holds the host lock."""


@contextmanager
def single_instance(lock_file: str) -> Iterator[Path]:
    """
    Holds an exclusive, non-blocking flock for the duration of a run.
    The lock file stays behind with the last holder's metadata for diagnostics.
    """
    path = Path(lock_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = open(path, "a+")
    try:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            handle.seek(0)
            holder = handle.read().strip() or "unknown holder"
            raise LockHeldError(f"{path} is held by {holder}") from e

        handle.seek(0)
        handle.truncate()
        handle.write(json.dumps({"pid": os.getpid(), "path": str(path)}))
        handle.flush()
        try:
            yield path
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    finally:
        handle.close()
