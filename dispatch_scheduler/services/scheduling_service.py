"""Submission scheduling: validate, allocate and record dispatch demand."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from dispatch_scheduler.domain.constraints import AllocationConfig
from dispatch_scheduler.domain.models import DemandEntry, DroppedDemand
from dispatch_scheduler.domain.ports import LedgerReadError
from dispatch_scheduler.repository.data_repository import DataRepository
from dispatch_scheduler.services.allocation_service import (
    AllocationConsistencyError,
    CapacityAllocator,
)
from dispatch_scheduler.services.schedule_recorder import RecordingSummary, ScheduleRecorder
from dispatch_scheduler.services.validation_service import DemandValidator, RawDemand
from dispatch_scheduler.utils.config import Settings, get_settings
from dispatch_scheduler.utils.logger import get_logger


logger = get_logger(__name__)


class SchedulingValidationError(Exception):
    """Raised when a scheduling request cannot be processed as submitted."""


class AllocationFailedError(Exception):
    """Raised when allocation for a submission cannot complete."""


class LedgerUnavailableError(AllocationFailedError):
    """Raised when committed capacity could not be read."""


@dataclass(frozen=True)
class SchedulingOutcome:
    domain: str
    requesting_area: Optional[str]
    entries: list[DemandEntry]
    dropped: list[DroppedDemand]
    rejected_count: int
    passes: int
    recording: Optional[RecordingSummary]

    @property
    def allocated_quantity(self) -> float:
        return sum(entry.quantity for entry in self.entries)

    @property
    def dropped_quantity(self) -> float:
        return sum(item.quantity for item in self.dropped)


def resolve_requesting_area(
    payload: Mapping[str, Any],
    fields: Sequence[str],
) -> Optional[str]:
    """Return the first non-blank area among ``fields`` of a submission payload."""
    for field_name in fields:
        value = payload.get(field_name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def build_allocation_config(settings: Settings) -> AllocationConfig:
    return AllocationConfig(shared_capacity_hours=frozenset(settings.shared_capacity_hours))


class DispatchSchedulingService:
    """Single entry point used by every scheduling domain (CRM, GAM, ...)."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        allocator: Optional[CapacityAllocator] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._validator = DemandValidator()
        self._allocator = allocator or CapacityAllocator(
            time_slot_source=self._repository,
            capacity_source=self._repository,
            ledger=self._repository,
            config=build_allocation_config(self._settings),
        )
        self._recorder = ScheduleRecorder(self._repository)

    def requesting_area_from(self, payload: Mapping[str, Any]) -> Optional[str]:
        return resolve_requesting_area(payload, self._settings.requesting_area_fields)

    def schedule_submission(
        self,
        *,
        domain: str,
        demand: Iterable[RawDemand],
        requesting_area: Optional[str] = None,
        owner: Optional[str] = None,
        persist: bool = True,
    ) -> SchedulingOutcome:
        if domain not in self._settings.scheduling_domains:
            raise SchedulingValidationError(f"Unknown scheduling domain: {domain}")

        raw_demand = list(demand)
        entries = self._validator.validate(raw_demand)
        rejected_count = len(raw_demand) - len(entries)

        with self._repository.allocation_scope():
            try:
                result = self._allocator.allocate(
                    entries,
                    domain=domain,
                    requesting_area=requesting_area,
                )
            except LedgerReadError as exc:
                logger.error("Allocation aborted, ledger unavailable | domain=%s", domain)
                raise LedgerUnavailableError(str(exc)) from exc
            except AllocationConsistencyError as exc:
                logger.error("Allocation aborted, consistency violation | domain=%s", domain)
                raise AllocationFailedError(str(exc)) from exc

            recording = None
            if persist:
                recording = self._recorder.record(
                    result.entries,
                    requesting_area=requesting_area,
                    owner=owner,
                )

        logger.info(
            (
                "Submission scheduled | domain=%s | requesting_area=%s | rejected=%s | "
                "allocated_entries=%s | dropped_entries=%s"
            ),
            domain,
            requesting_area,
            rejected_count,
            len(result.entries),
            len(result.dropped),
        )
        return SchedulingOutcome(
            domain=domain,
            requesting_area=requesting_area,
            entries=result.entries,
            dropped=result.dropped,
            rejected_count=rejected_count,
            passes=result.passes,
            recording=recording,
        )
