"""Typed results returned by the reservation coordinator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from ..core.exceptions import (
    ConflictError,
    InsufficientInventoryError,
    NotFoundError,
    ProblemDetailsException,
)
from ..models.waitlist import WaitlistEntry
from .notifier import RoomAvailableEvent


class ReservationOutcome(str, Enum):
    """Closed set of coordinator outcomes."""
    OK = "OK"
    PROMPT_WAITLIST = "PROMPT_WAITLIST"
    ALREADY_ON_WAITLIST = "ALREADY_ON_WAITLIST"
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"


# Outcomes that are answers rather than failures
SUCCESS_OUTCOMES = frozenset({
    ReservationOutcome.OK,
    ReservationOutcome.PROMPT_WAITLIST,
    ReservationOutcome.ALREADY_ON_WAITLIST,
})


@dataclass
class ReservationResult:
    """
    Outcome of one coordinator operation.

    ``data`` carries the operation's entity (hold, waitlist entry, booking,
    adjustment or snapshot). ``promoted`` lists waitlist entries that moved
    to NOTIFIED as a side effect, and ``events`` the notifications owed to them.
    """

    outcome: ReservationOutcome
    data: Any = None
    detail: Optional[str] = None
    available: Optional[int] = None
    requested: Optional[int] = None
    queue_length: Optional[int] = None
    position: Optional[int] = None
    reclaimed: int = 0
    changed: bool = True
    retryable: bool = False
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    promoted: list[WaitlistEntry] = field(default_factory=list)
    events: list[RoomAvailableEvent] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome is ReservationOutcome.OK

    @property
    def succeeded(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES

    @classmethod
    def success(cls, data: Any = None, **kwargs) -> "ReservationResult":
        return cls(ReservationOutcome.OK, data=data, **kwargs)

    @classmethod
    def prompt_waitlist(cls, queue_length: int) -> "ReservationResult":
        return cls(
            ReservationOutcome.PROMPT_WAITLIST,
            available=0,
            queue_length=queue_length,
            detail="No rooms are available; the user may join the waitlist",
        )

    @classmethod
    def already_on_waitlist(cls, entry: WaitlistEntry, queue_length: int, position: Optional[int] = None) -> "ReservationResult":
        return cls(
            ReservationOutcome.ALREADY_ON_WAITLIST,
            data=entry,
            queue_length=queue_length,
            position=position,
            detail="The user is already on the waitlist for this trip",
        )

    @classmethod
    def insufficient_inventory(cls, requested: int, available: int) -> "ReservationResult":
        return cls(
            ReservationOutcome.INSUFFICIENT_INVENTORY,
            requested=requested,
            available=available,
            detail=f"Requested rooms ({requested}) exceed available rooms ({available})",
        )

    @classmethod
    def not_found(cls, resource_type: str, resource_id: Any = None, detail: Optional[str] = None) -> "ReservationResult":
        return cls(
            ReservationOutcome.NOT_FOUND,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            detail=detail or f"The requested {resource_type} could not be found",
        )

    @classmethod
    def conflict(cls, detail: str, retryable: bool = False) -> "ReservationResult":
        return cls(ReservationOutcome.CONFLICT, detail=detail, retryable=retryable)

    @classmethod
    def from_exception(cls, exc: ProblemDetailsException) -> "ReservationResult":
        """Interpret an engine exception as a typed result."""
        if isinstance(exc, NotFoundError):
            return cls.not_found(
                exc.extensions.get("resource_type", "resource"),
                exc.extensions.get("resource_id"),
                detail=exc.problem_details.get("detail"),
            )
        if isinstance(exc, InsufficientInventoryError):
            return cls.insufficient_inventory(
                exc.extensions["requested_quantity"],
                exc.extensions["available_quantity"],
            )
        return cls.conflict(
            exc.problem_details.get("detail") or "Conflict",
            retryable=bool(exc.problem_details.get("retryable")),
        )

    def to_problem(self, trip_id: Optional[UUID] = None, date_index: Optional[int] = None) -> Optional[ProblemDetailsException]:
        """The HTTP problem for a failed outcome, or None for a successful one."""
        if self.outcome is ReservationOutcome.INSUFFICIENT_INVENTORY:
            return InsufficientInventoryError(
                requested_quantity=self.requested or 0,
                available_quantity=self.available or 0,
                trip_id=str(trip_id) if trip_id else None,
                date_index=date_index,
            )
        if self.outcome is ReservationOutcome.NOT_FOUND:
            return NotFoundError(
                resource_type=self.resource_type or "resource",
                resource_id=self.resource_id,
                detail=self.detail,
            )
        if self.outcome is ReservationOutcome.CONFLICT:
            return ConflictError(detail=self.detail or "Conflict", retryable=self.retryable)
        return None
