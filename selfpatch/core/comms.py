"""Run state shared between the repair engine and its caller.

The engine is the only writer. Callers (CLI, Qt worker) read stage, log and
failure fields, and may call cancel() from any thread.
"""

import logging
import os
import threading
from typing import Callable, Protocol

from selfpatch.core.models import (
    PatchFailReason, PatchResult, PatchStage, VersionInfo, VersionItem,
)

logger = logging.getLogger(__name__)


class RemoteSource(Protocol):
    def exists(self, url: str) -> tuple[bool, int]: ...

    def fetch(self, url: str, dest_path: str, expected_size: int) -> str | None: ...


class Decompressor(Protocol):
    def decompress(self, src_path: str, dest_path: str) -> None: ...


class PatchComms:
    """Explicit handle carrying configuration, collaborators and run state."""

    def __init__(self, root_path: str, downloads_path: str, version_info: VersionInfo,
                 remote: RemoteSource, decompressor: Decompressor,
                 decompressed_path: str = "",
                 self_patching: bool = False,
                 verify_files: bool = True,
                 check_free_space: bool = False,
                 maintenance_check: Callable[[], bool] | None = None,
                 cancel_event: threading.Event | None = None,
                 on_log: Callable[[str], None] | None = None,
                 on_stage: Callable[[PatchStage], None] | None = None):
        if self_patching and not decompressed_path:
            raise ValueError("Self-patching requires a decompressed (staging) path")

        self.root_path = root_path
        self.downloads_path = downloads_path
        self.decompressed_path = decompressed_path
        self.version_info = version_info
        self.remote = remote
        self.decompressor = decompressor
        self.self_patching = self_patching
        self.verify_files = verify_files
        self.check_free_space = check_free_space

        self._maintenance_check = maintenance_check
        self._cancel_event = cancel_event or threading.Event()
        self._on_log = on_log
        self._on_stage = on_stage

        self._stage: PatchStage | None = None
        self.logs: list[str] = []
        self.fail_reason = PatchFailReason.NONE
        self.fail_details = ""
        self.result: PatchResult | None = None

    # ── Control ──────────────────────────────────────────────────────

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self):
        """Request cooperative cancellation; observed at the next checkpoint."""
        self._cancel_event.set()

    def is_under_maintenance(self) -> bool:
        if self._maintenance_check is None:
            return False
        return self._maintenance_check()

    # ── Progress ─────────────────────────────────────────────────────

    @property
    def stage(self) -> PatchStage | None:
        return self._stage

    @stage.setter
    def stage(self, value: PatchStage):
        if value is self._stage:
            return
        self._stage = value
        logger.debug("Stage -> %s", value.name)
        if self._on_stage:
            self._on_stage(value)

    def log(self, message: str):
        self.logs.append(message)
        logger.info(message)
        if self._on_log:
            self._on_log(message)

    def fail(self, reason: PatchFailReason, details: str):
        self.fail_reason = reason
        self.fail_details = details

    # ── Paths ────────────────────────────────────────────────────────

    @staticmethod
    def _join(root: str, item: VersionItem) -> str:
        return os.path.join(root, *item.path.split('/'))

    def local_path(self, item: VersionItem) -> str:
        return self._join(self.root_path, item)

    def staged_path(self, item: VersionItem) -> str:
        return self._join(self.decompressed_path, item)

    def download_path(self, item: VersionItem) -> str:
        return self._join(self.downloads_path, item)

    @property
    def install_root(self) -> str:
        return self.decompressed_path if self.self_patching else self.root_path
