"""Background sweep that reclaims expired holds and lapsed waitlist notifications."""

import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Optional

from ..core.clock import utcnow
from ..core.observability import get_logger, metrics_collector
from ..services.reservation_coordinator import ReservationCoordinator
from ..services.results import ReservationOutcome, ReservationResult
from .base import BaseWorker


@dataclass
class SweepReport:
    """What one sweep did."""

    swept_at: datetime
    notifications_expired: int = 0
    holds_released: int = 0
    rooms_reclaimed: int = 0
    promoted: int = 0
    skipped: int = 0
    errors: int = 0


class ExpirySweeper(BaseWorker):
    """
    Periodic reclamation through the coordinator's own entry points.

    A sweep first closes NOTIFIED waitlist entries whose booking window has
    passed, then releases every hold expired at the sweep instant. Each entry
    is one coordinator call; a failing entry is logged and the sweep moves on.
    Overlapping sweeps are safe because every call re-checks state under the
    trip lock.
    """

    def __init__(
        self,
        coordinator: ReservationCoordinator,
        interval_seconds: int = 300,
        batch_size: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(name="ExpirySweeper", interval_seconds=interval_seconds)
        self.coordinator = coordinator
        self.batch_size = batch_size
        self.clock = clock or coordinator.clock or utcnow
        self.log = get_logger(__name__).with_context(worker=self.name)

    async def process(self) -> None:
        await self.sweep()

    def _tally(self, report: SweepReport, result: ReservationResult, kind: str, entry_id) -> None:
        if result.ok and result.changed:
            if kind == "notification":
                report.notifications_expired += 1
            else:
                report.holds_released += 1
            report.rooms_reclaimed += result.reclaimed
            report.promoted += len(result.promoted)
        elif result.outcome is ReservationOutcome.CONFLICT and result.retryable:
            report.errors += 1
            self.log.warning(
                "Sweep entry failed; it will be retried next sweep",
                kind=kind,
                entry_id=str(entry_id),
                detail=result.detail,
            )
        else:
            # Settled by a user action or an overlapping sweep
            report.skipped += 1

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Run one sweep as of now."""
        now = now or self.clock()
        report = SweepReport(swept_at=now)
        started = time.perf_counter()

        async for entry_id in self.coordinator.expired_notification_ids(now, self.batch_size):
            try:
                result = await self.coordinator.expire_notification(entry_id, now)
            except Exception as e:
                report.errors += 1
                self.log.error("Expiring waitlist notification failed", entry_id=entry_id, error=str(e))
                continue
            self._tally(report, result, "notification", entry_id)

        async for hold_id in self.coordinator.expired_hold_ids(now, self.batch_size):
            try:
                result = await self.coordinator.release_hold(hold_id, expired_as_of=now)
            except Exception as e:
                report.errors += 1
                self.log.error("Releasing expired hold failed", cart_entry_id=str(hold_id), error=str(e))
                continue
            self._tally(report, result, "hold", hold_id)

        duration = time.perf_counter() - started
        metrics_collector.record_sweep(duration, report.rooms_reclaimed)

        summary = {key: value for key, value in asdict(report).items() if key != "swept_at"}
        if report.notifications_expired or report.holds_released or report.errors:
            self.log.info("Expiry sweep completed", duration_seconds=round(duration, 3), **summary)
        else:
            self.log.debug("Expiry sweep found nothing to reclaim", duration_seconds=round(duration, 3))
        return report
