"""File signature check: size plus MD5 fingerprint."""

import hashlib
import logging
import os

logger = logging.getLogger(__name__)

# Read buffer for hashing (80 KB, same as the download buffer)
HASH_BUFFER = 81920


def file_md5(path: str) -> str:
    """Return the lowercase hex MD5 of a file."""
    digest = hashlib.md5()
    with open(path, 'rb') as f:
        while True:
            chunk = f.read(HASH_BUFFER)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def matches_signature(path: str, expected_size: int, expected_md5: str) -> bool:
    """True if the file at ``path`` exists with the expected size and MD5.

    The size is compared first so a mismatching file is never hashed. A file
    that cannot be read does not match.
    """
    if not os.path.isfile(path):
        return False
    try:
        if os.path.getsize(path) != expected_size:
            return False
        return file_md5(path) == expected_md5.lower()
    except OSError as e:
        logger.warning("Cannot read %s: %s", path, e)
        return False
