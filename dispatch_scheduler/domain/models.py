"""Domain models for channel capacity allocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional


class ReservationKind(str, Enum):
    BOOKING = "booking"
    HOLD = "hold"


@dataclass(frozen=True)
class TimeSlot:
    name: str
    active: bool = True


@dataclass(frozen=True)
class ChannelCapacity:
    channel_id: str
    max_per_slot: Optional[float]


@dataclass(frozen=True)
class ReservationRecord:
    channel_id: str
    date: date
    hour: str
    quantity: float
    kind: ReservationKind
    requesting_area: Optional[str] = None
    owner: Optional[str] = None
    reservation_id: Optional[int] = None
    created_at: Optional[str] = None


@dataclass
class DemandEntry:
    """One requested dispatch; ``extra`` carries opaque submission fields."""

    channel_id: str
    date: date
    hour: str
    quantity: float
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def bucket(self) -> tuple[str, date, str]:
        return (self.channel_id, self.date, self.hour)

    def copy(self, **changes: Any) -> "DemandEntry":
        values = {
            "channel_id": self.channel_id,
            "date": self.date,
            "hour": self.hour,
            "quantity": self.quantity,
            "extra": dict(self.extra),
        }
        values.update(changes)
        return DemandEntry(**values)


@dataclass(frozen=True)
class DroppedDemand:
    channel_id: str
    date: Optional[date]
    hour: str
    quantity: float
    reason: str


@dataclass(frozen=True)
class AllocationResult:
    entries: list[DemandEntry]
    dropped: list[DroppedDemand]
    passes: int


@dataclass(frozen=True)
class SlotAvailability:
    hour: str
    effective_max: float
    reserved: float
    available: float
