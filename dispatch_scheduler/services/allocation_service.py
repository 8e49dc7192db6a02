"""Channel capacity allocation: fit demand into per-slot channel limits."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Iterator, Optional, Sequence

from dispatch_scheduler.domain.constraints import (
    QUANTITY_PRECISION,
    AllocationConfig,
    available_capacity,
    default_pass_limit,
    effective_max_per_slot,
    validate_allocation_config,
)
from dispatch_scheduler.domain.models import AllocationResult, DemandEntry, DroppedDemand
from dispatch_scheduler.domain.ports import (
    ChannelCapacitySource,
    ReservationLedger,
    TimeSlotSource,
)
from dispatch_scheduler.services.catalog_service import ChannelCapacityProfile, TimeSlotCatalog
from dispatch_scheduler.services.validation_service import is_well_formed
from dispatch_scheduler.utils.logger import get_logger


logger = get_logger(__name__)

Bucket = tuple[str, date, str]


class AllocationConsistencyError(RuntimeError):
    """Raised when allocation does not settle within its pass limit."""


class _DemandArena:
    """Entries keyed by a stable id plus the list order they are scanned in."""

    def __init__(self, entries: Sequence[DemandEntry]) -> None:
        self._entries: dict[int, DemandEntry] = {}
        self._order: list[int] = []
        self._next_id = 0
        for entry in entries:
            self._order.append(self._store(entry.copy()))

    def _store(self, entry: DemandEntry) -> int:
        entry_id = self._next_id
        self._next_id += 1
        self._entries[entry_id] = entry
        return entry_id

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[tuple[int, DemandEntry]]:
        for entry_id in list(self._order):
            yield entry_id, self._entries[entry_id]

    def insert_after(self, anchor_id: int, entry: DemandEntry) -> int:
        entry_id = self._store(entry)
        self._order.insert(self._order.index(anchor_id) + 1, entry_id)
        return entry_id

    def remove(self, entry_id: int) -> DemandEntry:
        self._order.remove(entry_id)
        return self._entries.pop(entry_id)

    def entries(self) -> list[DemandEntry]:
        return [self._entries[entry_id] for entry_id in self._order]


class _AllocationRun:
    """State of one ``allocate`` call: reference data, area and drops."""

    def __init__(
        self,
        *,
        catalog: TimeSlotCatalog,
        profile: ChannelCapacityProfile,
        ledger: ReservationLedger,
        shared_hours: frozenset[str],
        requesting_area: Optional[str],
    ) -> None:
        self.catalog = catalog
        self.profile = profile
        self.ledger = ledger
        self.shared_hours = shared_hours
        self.requesting_area = requesting_area
        self.dropped: list[DroppedDemand] = []

    def available(
        self,
        channel_id: str,
        entry_date: date,
        hour: str,
        max_per_slot: float,
        staged: dict[Bucket, float],
    ) -> float:
        effective_max = effective_max_per_slot(max_per_slot, hour, self.shared_hours)
        reserved = self.ledger.sum_reserved_quantity(
            channel_id,
            entry_date,
            hour,
            self.requesting_area,
        )
        reserved += staged[(channel_id, entry_date, hour)]
        return available_capacity(effective_max, reserved)

    def relocation_target(
        self,
        entry: DemandEntry,
        max_per_slot: float,
        staged: dict[Bucket, float],
    ) -> Optional[str]:
        """Next slot in order; after the last slot, any slot of the day with room."""
        next_hour = self.catalog.next_slot(entry.hour)
        if next_hour is not None:
            return next_hour
        for hour in self.catalog.names:
            if self.available(entry.channel_id, entry.date, hour, max_per_slot, staged) > 0:
                return hour
        return None

    def drop(self, entry: DemandEntry, quantity: float, reason: str) -> None:
        self.dropped.append(
            DroppedDemand(
                channel_id=entry.channel_id,
                date=entry.date if isinstance(entry.date, date) else None,
                hour=entry.hour,
                quantity=quantity,
                reason=reason,
            )
        )
        if reason == "malformed":
            logger.debug(
                "Malformed demand removed | channel_id=%s | hour=%s | quantity=%s",
                entry.channel_id,
                entry.hour,
                quantity,
            )
            return
        logger.warning(
            (
                "Demand dropped | reason=%s | channel_id=%s | date=%s | hour=%s | "
                "quantity=%s | requesting_area=%s"
            ),
            reason,
            entry.channel_id,
            entry.date,
            entry.hour,
            quantity,
            self.requesting_area,
        )

    def run_pass(self, arena: _DemandArena) -> bool:
        """Scan once; return True as soon as the working list is mutated."""
        staged: dict[Bucket, float] = defaultdict(float)
        for entry_id, entry in arena:
            if not is_well_formed(entry):
                arena.remove(entry_id)
                self.drop(entry, entry.quantity, "malformed")
                return True

            max_per_slot = self.profile.max_per_slot(entry.channel_id)
            if max_per_slot is None:
                continue

            available = self.available(
                entry.channel_id,
                entry.date,
                entry.hour,
                max_per_slot,
                staged,
            )
            if entry.quantity <= available:
                staged[entry.bucket] += entry.quantity
                continue

            if available <= 0:
                target = self.relocation_target(entry, max_per_slot, staged)
                if target is None:
                    arena.remove(entry_id)
                    self.drop(entry, entry.quantity, "no slot with capacity")
                else:
                    logger.debug(
                        "Demand moved | channel_id=%s | from_hour=%s | to_hour=%s | quantity=%s",
                        entry.channel_id,
                        entry.hour,
                        target,
                        entry.quantity,
                    )
                    entry.hour = target
                return True

            remainder = round(entry.quantity - available, QUANTITY_PRECISION)
            entry.quantity = available
            staged[entry.bucket] += available
            target = self.relocation_target(entry, max_per_slot, staged)
            if target is None:
                self.drop(entry, remainder, "no slot with capacity for remainder")
            else:
                arena.insert_after(entry_id, entry.copy(hour=target, quantity=remainder))
                logger.debug(
                    "Demand split | channel_id=%s | hour=%s | kept=%s | remainder=%s | next_hour=%s",
                    entry.channel_id,
                    entry.hour,
                    available,
                    remainder,
                    target,
                )
            return True
        return False


class CapacityAllocator:
    """Fits demand into channel capacity, splitting overflow onto later slots.

    Every structural change (drop, move, split) restarts the scan so that the
    staged per-pass reservations always reflect the current list. The number
    of passes is bounded; exceeding the bound raises
    ``AllocationConsistencyError``. Ledger read failures propagate.
    """

    def __init__(
        self,
        *,
        time_slot_source: TimeSlotSource,
        capacity_source: ChannelCapacitySource,
        ledger: ReservationLedger,
        config: AllocationConfig,
    ) -> None:
        validate_allocation_config(config)
        self._time_slot_source = time_slot_source
        self._capacity_source = capacity_source
        self._ledger = ledger
        self._config = config

    @property
    def config(self) -> AllocationConfig:
        return self._config

    def allocate(
        self,
        entries: Sequence[DemandEntry],
        *,
        domain: str,
        requesting_area: Optional[str] = None,
    ) -> AllocationResult:
        catalog = TimeSlotCatalog(self._time_slot_source, domain)
        run = _AllocationRun(
            catalog=catalog,
            profile=ChannelCapacityProfile(self._capacity_source),
            ledger=self._ledger,
            shared_hours=self._config.shared_capacity_hours,
            requesting_area=requesting_area,
        )
        arena = _DemandArena(entries)
        pass_limit = self._config.max_passes or default_pass_limit(len(arena), len(catalog))

        passes = 0
        changed = True
        while changed:
            passes += 1
            if passes > pass_limit:
                raise AllocationConsistencyError(
                    f"Allocation did not settle within {pass_limit} passes "
                    f"(domain={domain}, entries={len(arena)}, slots={len(catalog)})"
                )
            changed = run.run_pass(arena)

        allocated = [entry for entry in arena.entries() if entry.quantity > 0]
        logger.info(
            (
                "Allocation completed | domain=%s | requesting_area=%s | entries_in=%s | "
                "entries_out=%s | dropped=%s | passes=%s"
            ),
            domain,
            requesting_area,
            len(entries),
            len(allocated),
            len(run.dropped),
            passes,
        )
        return AllocationResult(entries=allocated, dropped=run.dropped, passes=passes)
