"""Read accessors for time-slot and channel-capacity reference data."""

from __future__ import annotations

from typing import Optional

from dispatch_scheduler.domain.constraints import find_next_slot
from dispatch_scheduler.domain.models import TimeSlot
from dispatch_scheduler.domain.ports import ChannelCapacitySource, TimeSlotSource


class TimeSlotCatalog:
    """Active slots of one scheduling domain, loaded once per instance."""

    def __init__(self, source: TimeSlotSource, domain: str) -> None:
        self._domain = domain
        self._slots: list[TimeSlot] = sorted(
            (slot for slot in source.list_active_time_slots(domain) if slot.active),
            key=lambda slot: slot.name,
        )
        self._names = tuple(slot.name.strip() for slot in self._slots)

    @property
    def domain(self) -> str:
        return self._domain

    @property
    def slots(self) -> list[TimeSlot]:
        return list(self._slots)

    @property
    def names(self) -> tuple[str, ...]:
        return self._names

    def __len__(self) -> int:
        return len(self._names)

    def next_slot(self, hour: str) -> Optional[str]:
        return find_next_slot(self._names, hour)


class ChannelCapacityProfile:
    """Per-run cache over channel capacity lookups.

    ``max_per_slot`` returns ``None`` for exempt channels: either no capacity
    row exists or the row carries no limit.
    """

    def __init__(self, source: ChannelCapacitySource) -> None:
        self._source = source
        self._cache: dict[str, Optional[float]] = {}

    def max_per_slot(self, channel_id: str) -> Optional[float]:
        if channel_id not in self._cache:
            capacity = self._source.get_channel_capacity(channel_id)
            self._cache[channel_id] = capacity.max_per_slot if capacity else None
        return self._cache[channel_id]

    def is_exempt(self, channel_id: str) -> bool:
        return self.max_per_slot(channel_id) is None
