"""Background worker that retries undelivered waitlist notifications."""

from ..core.observability import get_logger
from ..services.reservation_coordinator import ReservationCoordinator
from .base import BaseWorker


class NotificationResendWorker(BaseWorker):
    """
    Redelivers room-available notifications that failed the first time.

    Only NOTIFIED entries still inside their booking window are retried.
    """

    def __init__(self, coordinator: ReservationCoordinator, interval_seconds: int = 600, batch_size: int = 100):
        super().__init__(name="NotificationResend", interval_seconds=interval_seconds)
        self.coordinator = coordinator
        self.batch_size = batch_size
        self.log = get_logger(__name__).with_context(worker=self.name)

    async def process(self) -> None:
        delivered = await self.coordinator.resend_notifications(limit=self.batch_size)
        if delivered:
            self.log.info("Resent waitlist notifications", delivered=delivered)
