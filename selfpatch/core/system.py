"""Disk space checks backed by psutil."""

import logging
import os

import psutil

logger = logging.getLogger(__name__)


def _existing_ancestor(path: str) -> str:
    path = os.path.abspath(path)
    while not os.path.exists(path):
        parent = os.path.dirname(path)
        if parent == path:
            break
        path = parent
    return path


def free_bytes(path: str) -> int:
    """Free bytes on the volume that holds ``path`` (or would hold it)."""
    return psutil.disk_usage(_existing_ancestor(path)).free


def has_free_space(path: str, required_bytes: int) -> tuple[bool, int]:
    """Return (enough, available) for writing ``required_bytes`` under path."""
    available = free_bytes(path)
    if available < required_bytes:
        logger.warning("Low disk space at %s: %.1f MB free, %.1f MB needed",
                       path, available / 1024 / 1024, required_bytes / 1024 / 1024)
        return False, available
    return True, available
