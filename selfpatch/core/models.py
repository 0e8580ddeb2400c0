"""Patch data models: manifest entries, stages, results and failure reasons."""

from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import quote

from packaging.version import Version


@dataclass(frozen=True)
class VersionItem:
    """One file of the target version, as listed in the manifest."""

    path: str               # Relative, '/'-separated; also the cache key
    size: int               # Uncompressed size
    md5: str                # Uncompressed fingerprint
    compressed_size: int    # Size of the payload served by the remote
    compressed_md5: str     # Fingerprint of the payload served by the remote


@dataclass
class VersionInfo:
    """Manifest of the target version."""

    version: Version
    base_download_url: str
    maintenance_check_url: str = ""
    files: list[VersionItem] = field(default_factory=list)

    def download_url_for(self, item: VersionItem) -> str:
        base = self.base_download_url
        if base and not base.endswith('/'):
            base += '/'
        return base + quote(item.path.lstrip('/'))

    def is_newer_than(self, current_version: str) -> bool:
        return self.version > Version(current_version)


class PatchStage(Enum):
    CALCULATING_FILES_TO_UPDATE = "calculating_files_to_update"
    CALCULATING_FILES_TO_DOWNLOAD = "calculating_files_to_download"
    VERIFYING_FILES_ON_SERVER = "verifying_files_on_server"
    DOWNLOADING_FILES = "downloading_files"
    UPDATING_FILES = "updating_files"
    CLEANUP = "cleanup"
    FINISHED = "finished"


class PatchResult(Enum):
    SUCCESS = "success"
    ALREADY_UP_TO_DATE = "already_up_to_date"
    FAILED = "failed"


class PatchFailReason(Enum):
    NONE = "none"
    CANCELLED = "cancelled"
    UNDER_MAINTENANCE = "under_maintenance"
    FILE_DOES_NOT_EXIST_ON_SERVER = "file_does_not_exist_on_server"
    FILE_IS_NOT_VALID_ON_SERVER = "file_is_not_valid_on_server"
    DOWNLOAD_ERROR = "download_error"
    CORRUPT_DOWNLOAD_ERROR = "corrupt_download_error"
    DECOMPRESSION_ERROR = "decompression_error"
    INSUFFICIENT_SPACE = "insufficient_space"


class ManifestError(RuntimeError):
    """Raised when a manifest cannot be read or is malformed."""


class DecompressionError(RuntimeError):
    """Raised when a downloaded payload cannot be decompressed."""
