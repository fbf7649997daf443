from qt_app.services.dialog_service import DialogService
from qt_app.services.recent_files_service import RecentFilesService
from qt_app.services.status_service import StatusService
from qt_app.services.worker import ProgressCallback, WorkerHandle, run_in_worker

__all__ = [
    "DialogService",
    "ProgressCallback",
    "RecentFilesService",
    "StatusService",
    "WorkerHandle",
    "run_in_worker",
]
