"""QThread wrapper that runs a repair in the background.

PyQt6 is imported lazily so the engine itself stays free of any Qt
dependency; only GUI front-ends pull it in.
"""

import logging

from selfpatch.core.comms import PatchComms
from selfpatch.core.repair import RepairApplier

logger = logging.getLogger(__name__)


def _get_worker_class():
    """Lazy import to avoid PyQt6 at module level."""
    from PyQt6.QtCore import QThread, pyqtSignal

    class RepairWorker(QThread):
        """Background worker for a repair run.

        The comms callbacks fire on the worker thread; re-emitting them as
        signals lets Qt dispatch them to the main thread.
        """

        stage_changed = pyqtSignal(str)            # PatchStage value
        log_message = pyqtSignal(str)
        finished_with_result = pyqtSignal(object)  # PatchResult

        def __init__(self, comms_factory, parent=None):
            super().__init__(parent)
            self._comms_factory = comms_factory
            self.comms: PatchComms | None = None

        def build(self) -> PatchComms:
            self.comms = self._comms_factory(
                on_log=self.log_message.emit,
                on_stage=lambda stage: self.stage_changed.emit(stage.value),
            )
            return self.comms

        def cancel(self):
            if self.comms is not None:
                self.comms.cancel()

        def run(self):
            """Thread entry point."""
            comms = self.comms or self.build()
            result = RepairApplier(comms).run()
            if comms.fail_details:
                logger.error("Repair failed: %s (%s)",
                             comms.fail_details, comms.fail_reason.value)
            self.finished_with_result.emit(result)

    return RepairWorker


# Module-level accessor
_RepairWorkerClass = None


def get_repair_worker_class():
    """Get the RepairWorker class (lazy-imported to avoid PyQt6 at import time)."""
    global _RepairWorkerClass
    if _RepairWorkerClass is None:
        _RepairWorkerClass = _get_worker_class()
    return _RepairWorkerClass
