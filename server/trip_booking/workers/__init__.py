"""Background workers for the trip booking service."""

from .expiry_sweeper import ExpirySweeper, SweepReport
from .manager import WorkerManager
from .notification_worker import NotificationResendWorker

__all__ = ["ExpirySweeper", "NotificationResendWorker", "SweepReport", "WorkerManager"]
