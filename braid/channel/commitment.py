from __future__ import annotations

import hashlib

from braid.common.types import Path, VisibilityMask


def commit_path(path: Path) -> bytes:
    """SHA-256 commitment to an ordered path of cells."""
    hasher = hashlib.sha256()
    for x, y in path:
        hasher.update(f"{x},{y}".encode("ascii"))
    return hasher.digest()


def commit_exploration(mask: VisibilityMask) -> bytes:
    """SHA-256 commitment to every revealed cell, x-major order."""
    hasher = hashlib.sha256()
    for x, column in enumerate(mask):
        for y, discovered in enumerate(column):
            if discovered:
                hasher.update(f"{x},{y}".encode("ascii"))
    return hasher.digest()
