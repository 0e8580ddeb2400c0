"""Moves a staged self-patch into the live install root.

Runs after RepairApplier returns SUCCESS in self-patching mode, typically
from a helper process once the patched application has exited.

On Windows, running .exe/.dll can be RENAMED but not overwritten.
Pattern: try copy → on PermissionError → rename old to .bak → copy new.
"""

import logging
import os
import shutil

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = '.bak'


def apply_staged_files(staging_dir: str, root_dir: str) -> tuple[int, int]:
    """Copy every staged file over root_dir. Returns (copied, renamed).

    Raises OSError when a locked file can neither be replaced nor renamed.
    """
    copied = 0
    renamed = 0

    for dirpath, _dirs, files in os.walk(staging_dir):
        for filename in files:
            src = os.path.join(dirpath, filename)
            rel_path = os.path.relpath(src, staging_dir)
            dest = os.path.join(root_dir, rel_path)
            os.makedirs(os.path.dirname(dest), exist_ok=True)

            try:
                shutil.copy2(src, dest)
            except PermissionError:
                # Locked: move it aside, then copy the new one in
                bak_path = dest + BACKUP_SUFFIX
                if os.path.exists(bak_path):
                    os.remove(bak_path)
                os.rename(dest, bak_path)
                shutil.copy2(src, dest)
                renamed += 1
            copied += 1

    logger.info("Staged files applied: %d copied, %d renamed", copied, renamed)
    return copied, renamed


def cleanup_staging(staging_dir: str):
    """Delete the staging directory once it has been applied."""
    shutil.rmtree(staging_dir, ignore_errors=True)


def cleanup_backups(root_dir: str) -> int:
    """Delete .bak files left by a previous swap. Returns how many were removed."""
    removed = 0
    for dirpath, _dirs, files in os.walk(root_dir):
        for f in files:
            if not f.endswith(BACKUP_SUFFIX):
                continue
            try:
                os.remove(os.path.join(dirpath, f))
                removed += 1
            except OSError as e:
                # Still locked by the old process; the next startup retries
                logger.debug("Could not remove %s: %s", f, e)
    return removed
