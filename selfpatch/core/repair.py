"""Repair engine: reconciles the local tree against the manifest.

One sequential pass per run:
  1. files to update  : manifest items whose local (or staged) copy is stale
  2. files to download: update items with no valid compressed copy in cache
  3. optional pre-flight: remote existence/size and free disk space
  4. fetch + install, one item at a time, so at most one payload is in flight
  5. purge the download cache

Every failure is reported through the returned PatchResult and the
fail_reason/fail_details fields on PatchComms. A failed run leaves the tree
resumable: the next run recomputes both sets and skips finished work.
"""

import logging
import os
import shutil
import time

from selfpatch.core.comms import PatchComms
from selfpatch.core.models import (
    DecompressionError, PatchFailReason, PatchResult, PatchStage, VersionItem,
)
from selfpatch.core.signature import matches_signature
from selfpatch.core.system import has_free_space

logger = logging.getLogger(__name__)


class _PatchFailed(Exception):
    """Unwinds a run to RepairApplier.run(); never escapes it."""

    def __init__(self, reason: PatchFailReason, details: str):
        super().__init__(details)
        self.reason = reason
        self.details = details


class RepairApplier:
    """Brings the install root in line with ``comms.version_info``.

    A RepairApplier runs once per PatchComms; construct fresh ones to retry.
    """

    def __init__(self, comms: PatchComms):
        self.comms = comms

    def run(self) -> PatchResult:
        comms = self.comms
        if comms.result is not None:
            raise RuntimeError("PatchComms already holds a finished run")

        try:
            result = self._run()
        except _PatchFailed as e:
            comms.fail(e.reason, e.details)
            result = PatchResult.FAILED

        comms.result = result
        comms.stage = PatchStage.FINISHED
        return result

    # ── Phases ───────────────────────────────────────────────────────

    def _run(self) -> PatchResult:
        comms = self.comms
        self._check_cancel()

        if comms.is_under_maintenance():
            raise _PatchFailed(PatchFailReason.UNDER_MAINTENANCE,
                               "Server is under maintenance, please try again later")

        timer = time.perf_counter()

        comms.stage = PatchStage.CALCULATING_FILES_TO_UPDATE
        comms.log("Calculating new or changed files")
        files_to_update = self.find_files_to_update()

        if not files_to_update:
            comms.log("All files are up to date")
            return PatchResult.ALREADY_UP_TO_DATE

        comms.stage = PatchStage.CALCULATING_FILES_TO_DOWNLOAD
        comms.log("Calculating files to download")
        files_to_download = self.find_files_to_download(files_to_update)

        if files_to_download and comms.verify_files:
            comms.stage = PatchStage.VERIFYING_FILES_ON_SERVER
            self.verify_files_on_server(files_to_download)

        if comms.check_free_space:
            self._check_free_space(files_to_download, files_to_update)

        if files_to_download:
            comms.log(f"Downloading {len(files_to_download)} files")
        comms.log(f"Updating {len(files_to_update)} files")

        download_timer = time.perf_counter()
        self.download_and_update_files(files_to_download, files_to_update)
        comms.log(f"All files are downloaded and updated in "
                  f"{time.perf_counter() - download_timer:.1f} seconds")

        comms.stage = PatchStage.CLEANUP
        shutil.rmtree(comms.downloads_path, ignore_errors=True)

        comms.log(f"Patch applied in {time.perf_counter() - timer:.1f} seconds")
        return PatchResult.SUCCESS

    def find_files_to_update(self) -> list[VersionItem]:
        """Manifest items with no matching copy in the live (or staging) root."""
        comms = self.comms
        result = []
        for item in comms.version_info.files:
            self._check_cancel()

            if matches_signature(comms.local_path(item), item.size, item.md5):
                continue
            if comms.self_patching and matches_signature(
                    comms.staged_path(item), item.size, item.md5):
                continue

            result.append(item)
        return result

    def find_files_to_download(self, files_to_update: list[VersionItem]) -> list[VersionItem]:
        """Update items whose compressed payload is missing or invalid in cache."""
        comms = self.comms
        result = []
        for item in files_to_update:
            self._check_cancel()

            if not matches_signature(comms.download_path(item),
                                     item.compressed_size, item.compressed_md5):
                result.append(item)
        return result

    def verify_files_on_server(self, files_to_download: list[VersionItem]):
        """Fail fast if any payload is absent or has the wrong size remotely.

        A remote size of 0 means the server did not report one; it is accepted.
        """
        comms = self.comms
        for item in files_to_download:
            self._check_cancel()

            exists, size = comms.remote.exists(comms.version_info.download_url_for(item))
            if not exists:
                raise _PatchFailed(PatchFailReason.FILE_DOES_NOT_EXIST_ON_SERVER,
                                   f"File {item.path} does not exist on the server")
            if size > 0 and size != item.compressed_size:
                raise _PatchFailed(PatchFailReason.FILE_IS_NOT_VALID_ON_SERVER,
                                   f"File {item.path} is not valid on the server "
                                   f"(expected {item.compressed_size} bytes, got {size})")

    def download_and_update_files(self, files_to_download: list[VersionItem],
                                  files_to_update: list[VersionItem]):
        """Walk the update list, fetching an item first when it is the next download.

        files_to_download is a subsequence of files_to_update, so a single
        cursor matched on path is enough to pair them up.
        """
        comms = self.comms
        j = 0
        for item in files_to_update:
            self._check_cancel()

            download_path = comms.download_path(item)

            if j < len(files_to_download) and files_to_download[j].path == item.path:
                comms.stage = PatchStage.DOWNLOADING_FILES
                self._download(item, download_path, j + 1, len(files_to_download))
                j += 1

            self._check_cancel()

            comms.stage = PatchStage.UPDATING_FILES
            self._install(item, download_path)

    # ── Helpers ──────────────────────────────────────────────────────

    def _install(self, item: VersionItem, download_path: str):
        comms = self.comms
        target_path = os.path.join(comms.install_root, *item.path.split('/'))
        try:
            os.makedirs(os.path.dirname(target_path), exist_ok=True)
            comms.decompressor.decompress(download_path, target_path)
        except DecompressionError as e:
            logger.error("%s", e)
            raise _PatchFailed(PatchFailReason.DECOMPRESSION_ERROR,
                               f"File {item.path} could not be decompressed") from e
        except OSError as e:
            # e.g. a file from the old version sits where a directory is needed
            logger.error("Cannot install %s: %s", item.path, e)
            raise _PatchFailed(PatchFailReason.DECOMPRESSION_ERROR,
                               f"File {item.path} could not be installed: {e}") from e

        try:
            os.remove(download_path)
        except OSError as e:
            logger.warning("Could not remove cached %s: %s", item.path, e)

    def _download(self, item: VersionItem, download_path: str, index: int, total: int):
        comms = self.comms

        comms.log(f"Downloading file {index}/{total}: {item.path} "
                  f"({item.compressed_size / 1024 / 1024:.2f} MB)")
        timer = time.perf_counter()

        try:
            os.makedirs(os.path.dirname(download_path), exist_ok=True)
            downloaded = comms.remote.fetch(comms.version_info.download_url_for(item),
                                            download_path, item.compressed_size)
        except OSError as e:
            logger.error("Cannot download %s: %s", item.path, e)
            downloaded = None
        if downloaded is None:
            raise _PatchFailed(PatchFailReason.DOWNLOAD_ERROR,
                               f"File {item.path} could not be downloaded")

        if not matches_signature(downloaded, item.compressed_size, item.compressed_md5):
            # A corrupt payload must never be picked up as a valid cache entry
            try:
                os.remove(downloaded)
            except OSError as e:
                logger.warning("Could not remove corrupt %s: %s", downloaded, e)
            raise _PatchFailed(PatchFailReason.CORRUPT_DOWNLOAD_ERROR,
                               f"Downloaded file {item.path} is corrupt")

        comms.log(f"{item.path} downloaded in {time.perf_counter() - timer:.1f} seconds")

    def _check_free_space(self, files_to_download: list[VersionItem],
                          files_to_update: list[VersionItem]):
        comms = self.comms
        required = (sum(i.compressed_size for i in files_to_download)
                    + sum(i.size for i in files_to_update))
        enough, available = has_free_space(comms.install_root, required)
        if not enough:
            raise _PatchFailed(PatchFailReason.INSUFFICIENT_SPACE,
                               f"Not enough free disk space: {required / 1024 / 1024:.1f} MB "
                               f"needed, {available / 1024 / 1024:.1f} MB available")

    def _check_cancel(self):
        if self.comms.cancelled:
            raise _PatchFailed(PatchFailReason.CANCELLED, "Operation cancelled")
