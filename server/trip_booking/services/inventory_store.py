"""Room counters for trip pools."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConflictError, NotFoundError
from ..core.observability import metrics_collector
from ..models.trip import DateVariant, Trip

logger = logging.getLogger(__name__)

# Date selector of a trip's own departure date
BASE_DATE = -1


@dataclass(frozen=True)
class Pool:
    """An independent room counter: a trip's base date or one of its date variants."""

    trip_id: UUID
    date_index: int = BASE_DATE

    @property
    def is_base(self) -> bool:
        return self.date_index == BASE_DATE

    def __str__(self) -> str:
        return f"{self.trip_id}:{self.date_index}"


class CapacityConflictError(ConflictError):
    """Exception when a capacity adjustment would push a counter below zero."""

    def __init__(self, pool: Pool, requested_delta: int, capacity_total: int, available: int):
        super().__init__(
            detail=f"Cannot reduce capacity by {abs(requested_delta)} rooms. "
                   f"Pool {pool} has {available} of {capacity_total} rooms unallocated",
            conflicting_resource={
                "trip_id": str(pool.trip_id),
                "date_index": pool.date_index,
                "requested_delta": requested_delta,
                "capacity_total": capacity_total,
                "available_rooms": available,
            }
        )
        self.problem_details.update({
            "code": "CAPACITY_CONFLICT",
            "retryable": False
        })


class InventoryStore:
    """
    Atomic operations on pool room counters.

    Every write is a single conditional UPDATE, so a counter can never be
    observed below zero or above its provisioned capacity. Callers serialize
    per trip; the statements stay correct without that.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _target(self, pool: Pool):
        if pool.date_index < BASE_DATE:
            raise NotFoundError("pool", str(pool))
        if pool.is_base:
            return Trip, (Trip.id == pool.trip_id,)
        return DateVariant, (
            DateVariant.trip_id == pool.trip_id,
            DateVariant.position == pool.date_index,
        )

    async def counters(self, pool: Pool) -> tuple[int, int]:
        """
        Read a pool's counters.

        Returns:
            (capacity_total, available_rooms)

        Raises:
            NotFoundError: If the trip or date variant does not exist
        """
        model, criteria = self._target(pool)
        row = (
            await self.db.execute(
                select(model.capacity_total, model.available_rooms).where(*criteria)
            )
        ).one_or_none()
        if row is None:
            raise NotFoundError("date_variant" if not pool.is_base else "trip", str(pool))
        return row.capacity_total, row.available_rooms

    async def peek(self, pool: Pool) -> int:
        """Current available rooms of a pool."""
        _, available = await self.counters(pool)
        return available

    async def capacity(self, pool: Pool) -> int:
        """Provisioned rooms of a pool."""
        capacity_total, _ = await self.counters(pool)
        return capacity_total

    async def try_decrement(self, pool: Pool, quantity: int) -> bool:
        """
        Take rooms from a pool if enough are available.

        Returns:
            True if the rooms were taken, False if the pool had fewer than requested
        """
        if quantity < 1:
            raise ValueError("quantity must be positive")

        model, criteria = self._target(pool)
        result = await self.db.execute(
            update(model)
            .where(*criteria, model.available_rooms >= quantity)
            .values(available_rooms=model.available_rooms - quantity)
            .execution_options(synchronize_session=False)
        )
        taken = result.rowcount == 1

        logger.debug(
            "Inventory decrement attempted",
            extra={
                "pool": str(pool),
                "quantity": quantity,
                "taken": taken,
            }
        )
        return taken

    async def increment(self, pool: Pool, quantity: int) -> int:
        """
        Return rooms to a pool, never past its provisioned capacity.

        A clamped increment means rooms were returned twice somewhere upstream;
        it is logged and counted rather than raised.

        Returns:
            Number of rooms actually added
        """
        if quantity < 1:
            raise ValueError("quantity must be positive")

        capacity_total, available = await self.counters(pool)
        added = min(quantity, capacity_total - available)

        if added < quantity:
            logger.warning(
                "Inventory increment clamped at capacity",
                extra={
                    "pool": str(pool),
                    "requested_quantity": quantity,
                    "added_quantity": added,
                    "capacity_total": capacity_total,
                    "available_rooms": available,
                }
            )
            metrics_collector.record_inventory_clamp()

        model, criteria = self._target(pool)
        await self.db.execute(
            update(model)
            .where(*criteria)
            .values(
                available_rooms=case(
                    (model.available_rooms + quantity > model.capacity_total, model.capacity_total),
                    else_=model.available_rooms + quantity,
                )
            )
            .execution_options(synchronize_session=False)
        )
        return added

    async def adjust_capacity(self, pool: Pool, delta: int) -> tuple[int, int]:
        """
        Provision or withdraw rooms; both counters move by delta.

        Returns:
            (capacity_total, available_rooms) after the adjustment

        Raises:
            NotFoundError: If the pool does not exist
            CapacityConflictError: If either counter would drop below zero
        """
        capacity_total, available = await self.counters(pool)
        if capacity_total + delta < 0 or available + delta < 0:
            logger.warning(
                "Capacity adjustment rejected",
                extra={
                    "pool": str(pool),
                    "requested_delta": delta,
                    "capacity_total": capacity_total,
                    "available_rooms": available,
                }
            )
            raise CapacityConflictError(pool, delta, capacity_total, available)

        model, criteria = self._target(pool)
        await self.db.execute(
            update(model)
            .where(*criteria, model.available_rooms + delta >= 0)
            .values(
                capacity_total=model.capacity_total + delta,
                available_rooms=model.available_rooms + delta,
            )
            .execution_options(synchronize_session=False)
        )
        return capacity_total + delta, available + delta
