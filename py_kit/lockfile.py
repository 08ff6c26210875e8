import os
from contextlib import contextmanager

from py_kit.errors import LockError


@contextmanager
def locked(path):
    """Hold ``<path>.lock`` for the duration of the block.

    The lock file is created exclusively; a second writer gets LockError.
    """
    lock_path = f"{path}.lock"
    os.makedirs(os.path.dirname(lock_path) or ".", exist_ok=True)
    try:
        fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        raise LockError(path) from None
    try:
        yield
    finally:
        os.close(fd)
        os.remove(lock_path)


def write_atomic(path, data: bytes):
    tmp_path = f"{path}.tmp.{os.getpid()}"
    with open(tmp_path, 'wb') as f:
        f.write(data)
    os.replace(tmp_path, path)
