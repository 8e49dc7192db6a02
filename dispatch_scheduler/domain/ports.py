"""Storage-facing ports consumed by the allocation engine."""

from __future__ import annotations

from datetime import date
from typing import ContextManager, Optional, Protocol

from dispatch_scheduler.domain.models import ChannelCapacity, ReservationRecord, TimeSlot


class LedgerError(RuntimeError):
    """Base failure for reservation ledger storage."""


class LedgerReadError(LedgerError):
    """Raised when committed quantity cannot be read."""


class LedgerWriteError(LedgerError):
    """Raised when a reservation row cannot be written."""


class TimeSlotSource(Protocol):
    def list_active_time_slots(self, domain: str) -> list[TimeSlot]:
        ...


class ChannelCapacitySource(Protocol):
    def get_channel_capacity(self, channel_id: str) -> Optional[ChannelCapacity]:
        ...


class ReservationLedger(Protocol):
    """Committed-quantity store.

    ``allocation_scope`` brackets a capacity check and the writes that depend
    on it. Implementations decide the isolation it gives.
    """

    def sum_reserved_quantity(
        self,
        channel_id: str,
        reservation_date: date,
        hour: str,
        requesting_area: Optional[str],
    ) -> float:
        ...

    def append_reservation(self, record: ReservationRecord) -> int:
        ...

    def allocation_scope(self) -> ContextManager[None]:
        ...
