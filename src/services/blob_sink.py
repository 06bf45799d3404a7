"""
Durable secondary sink for backup copies.

The disaster-recovery copy of each snapshot is written here, independently
of the primary document store.
"""

import logging
import os
import tempfile
from typing import Protocol

logger = logging.getLogger(__name__)


class BlobSink(Protocol):
    """Protocol for a key/payload blob writer."""

    def write_blob(self, key: str, payload: bytes) -> str:
        """Persists payload under key and returns its location."""


class LocalFileSink(BlobSink):
    """Writes blobs as files under a directory."""

    def __init__(self, directory: str):
        self.directory = os.path.abspath(directory)

    def _path_for(self, key: str) -> str:
        name = os.path.basename(key)
        if not name or name in (".", ".."):
            raise ValueError(f"Invalid blob key: {key!r}")
        return os.path.join(self.directory, name)

    def write_blob(self, key: str, payload: bytes) -> str:
        """Writes atomically: temp file in the same directory, then rename."""
        os.makedirs(self.directory, exist_ok=True)
        target = self._path_for(key)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(tmp_path, target)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.info("Wrote backup copy %s (%d bytes)", target, len(payload))
        return target
