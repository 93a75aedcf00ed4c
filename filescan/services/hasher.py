from __future__ import annotations

import hashlib
import os
import threading

CHUNK_SIZE = 1024 * 1024


class HashingStopped(Exception):
    """Raised when the stop flag is set before the file has been fully read."""


def sha256_file(
    path: str | os.PathLike[str],
    *,
    chunk_size: int = CHUNK_SIZE,
    stop: threading.Event | None = None,
) -> str:
    """
    Return the lowercase hex SHA-256 of the file's bytes.

    The file is read in chunks, never loaded whole. Raises OSError when the
    path can't be opened or read. When ``stop`` is set the read ends at the
    next chunk boundary, the file is closed and HashingStopped is raised.
    """
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        while True:
            if stop is not None and stop.is_set():
                raise HashingStopped(os.fspath(path))
            chunk = fh.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()
