"""Workers - task handlers and the client-side status poller."""

from audiomuse_aio.application.workers.analysis_core_worker import AnalysisCoreWorker
from audiomuse_aio.application.workers.library_scan_worker import LibraryScanWorker
from audiomuse_aio.application.workers.status_poller import PollerState, TaskStatusPoller

__all__ = [
    "AnalysisCoreWorker",
    "LibraryScanWorker",
    "PollerState",
    "TaskStatusPoller",
]
