"""
Durable snapshot storage for the response cache.

A snapshot is an opaque blob. Writers replace the whole snapshot
atomically so a crash mid-write never leaves a truncated file behind.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Protocol, Union

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    """Where cache snapshots are written to and read back from."""

    def write(self, blob: bytes) -> None: ...

    def read(self) -> Optional[bytes]: ...


class FileSnapshotStore:
    """Single-file snapshot with write-to-temp-then-rename semantics."""

    def __init__(self, path: Union[str, os.PathLike]) -> None:
        self.path = Path(path)

    def write(self, blob: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(temp_file, "wb") as f:
            f.write(blob)
            f.flush()
            os.fsync(f.fileno())
        temp_file.replace(self.path)
        logger.debug("Wrote cache snapshot to %s (%d bytes)", self.path, len(blob))

    def read(self) -> Optional[bytes]:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None


class MemorySnapshotStore:
    """Keeps the latest snapshot in memory; used by tests and the console demo."""

    def __init__(self, blob: Optional[bytes] = None) -> None:
        self.blob = blob
        self.writes = 0

    def write(self, blob: bytes) -> None:
        self.blob = blob
        self.writes += 1

    def read(self) -> Optional[bytes]:
        return self.blob
