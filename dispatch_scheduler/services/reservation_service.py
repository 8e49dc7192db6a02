"""Manual reservation management: holds, edits, release and slot availability."""

from __future__ import annotations

import re
from dataclasses import replace
from datetime import date
from typing import Any, Optional

from dispatch_scheduler.domain.constraints import available_capacity, effective_max_per_slot
from dispatch_scheduler.domain.models import (
    ChannelCapacity,
    ReservationKind,
    ReservationRecord,
    SlotAvailability,
    TimeSlot,
)
from dispatch_scheduler.repository.data_repository import DataRepository
from dispatch_scheduler.services.catalog_service import TimeSlotCatalog
from dispatch_scheduler.services.validation_service import normalize_hour, parse_demand_date
from dispatch_scheduler.utils.config import Settings, get_settings
from dispatch_scheduler.utils.logger import get_logger


logger = get_logger(__name__)

HOUR_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class ReservationValidationError(Exception):
    """Raised when reservation inputs are invalid."""


class ChannelNotFoundError(Exception):
    """Raised when a channel has no capacity profile."""


class ReservationNotFoundError(Exception):
    """Raised when a reservation id does not exist."""


class InsufficientCapacityError(Exception):
    """Raised when a reservation would exceed the slot's remaining capacity."""

    def __init__(
        self,
        *,
        channel_id: str,
        hour: str,
        effective_max: float,
        reserved: float,
        requested: float,
    ) -> None:
        self.channel_id = channel_id
        self.hour = hour
        self.effective_max = effective_max
        self.reserved = reserved
        self.requested = requested
        self.available = available_capacity(effective_max, reserved)
        super().__init__(
            f"Insufficient capacity for {channel_id} at {hour}: "
            f"limit={effective_max:g}, reserved={reserved:g}, "
            f"requested={requested:g}, available={self.available:g}"
        )


def _require_date(value: Any) -> date:
    parsed = parse_demand_date(value)
    if parsed is None:
        raise ReservationValidationError("date must be YYYY-MM-DD or DD/MM/YYYY")
    return parsed


def _require_hour(value: Any) -> str:
    hour = normalize_hour(value)
    if not HOUR_PATTERN.match(hour):
        raise ReservationValidationError("hour must follow HH:MM format")
    return hour


class ReservationService:
    """Admin-side operations on the reservation ledger and reference data."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._shared_hours = frozenset(self._settings.shared_capacity_hours)

    def _require_domain(self, domain: str) -> None:
        if domain not in self._settings.scheduling_domains:
            raise ReservationValidationError(f"Unknown scheduling domain: {domain}")

    def _require_capacity(self, channel_id: str) -> ChannelCapacity:
        capacity = self._repository.get_channel_capacity(channel_id)
        if capacity is None:
            raise ChannelNotFoundError(f"Channel {channel_id} has no capacity profile")
        return capacity

    def _check_capacity(
        self,
        capacity: ChannelCapacity,
        record: ReservationRecord,
        exclude_reservation_id: Optional[int] = None,
    ) -> None:
        """Raise ``InsufficientCapacityError`` unless ``record`` fits its slot."""
        if capacity.max_per_slot is None:
            return
        effective_max = effective_max_per_slot(
            capacity.max_per_slot,
            record.hour,
            self._shared_hours,
        )
        reserved = self._repository.sum_reserved_quantity(
            record.channel_id,
            record.date,
            record.hour,
            record.requesting_area,
            exclude_reservation_id=exclude_reservation_id,
        )
        if record.quantity > available_capacity(effective_max, reserved):
            raise InsufficientCapacityError(
                channel_id=record.channel_id,
                hour=record.hour,
                effective_max=effective_max,
                reserved=reserved,
                requested=record.quantity,
            )

    def create_reservation(
        self,
        *,
        channel_id: str,
        reservation_date: Any,
        hour: Any,
        quantity: float,
        requesting_area: str,
        owner: Optional[str] = None,
        kind: ReservationKind = ReservationKind.HOLD,
    ) -> ReservationRecord:
        """Validate capacity for the requesting area, then append the row."""
        parsed_date = _require_date(reservation_date)
        parsed_hour = _require_hour(hour)
        if quantity <= 0:
            raise ReservationValidationError("quantity must be > 0")
        if not requesting_area or not requesting_area.strip():
            raise ReservationValidationError("requesting_area is required")

        capacity = self._require_capacity(channel_id)
        record = ReservationRecord(
            channel_id=channel_id,
            date=parsed_date,
            hour=parsed_hour,
            quantity=float(quantity),
            kind=kind,
            requesting_area=requesting_area.strip(),
            owner=owner,
        )
        with self._repository.allocation_scope():
            self._check_capacity(capacity, record)
            reservation_id = self._repository.append_reservation(record)

        logger.info(
            "Reservation created | id=%s | kind=%s | channel_id=%s | date=%s | hour=%s | quantity=%s",
            reservation_id,
            kind.value,
            channel_id,
            parsed_date,
            parsed_hour,
            record.quantity,
        )
        return self.get_reservation(reservation_id)

    def update_reservation(
        self,
        reservation_id: int,
        *,
        channel_id: Optional[str] = None,
        reservation_date: Any = None,
        hour: Any = None,
        quantity: Optional[float] = None,
        requesting_area: Optional[str] = None,
        owner: Optional[str] = None,
    ) -> ReservationRecord:
        """Change a reservation in place.

        Only the given fields change. Capacity is re-checked for the resulting
        channel/date/hour with the edited row left out of the reserved sum.
        """
        existing = self.get_reservation(reservation_id)
        changes: dict[str, Any] = {}
        if channel_id is not None:
            if not channel_id.strip():
                raise ReservationValidationError("channel_id must be non-empty")
            changes["channel_id"] = channel_id.strip()
        if reservation_date is not None:
            changes["date"] = _require_date(reservation_date)
        if hour is not None:
            changes["hour"] = _require_hour(hour)
        if quantity is not None:
            if quantity <= 0:
                raise ReservationValidationError("quantity must be > 0")
            changes["quantity"] = float(quantity)
        if requesting_area is not None:
            if not requesting_area.strip():
                raise ReservationValidationError("requesting_area must be non-empty")
            changes["requesting_area"] = requesting_area.strip()
        if owner is not None:
            changes["owner"] = owner

        updated = replace(existing, **changes)
        capacity = self._require_capacity(updated.channel_id)
        with self._repository.allocation_scope():
            self._check_capacity(capacity, updated, exclude_reservation_id=reservation_id)
            if not self._repository.update_reservation(updated):
                raise ReservationNotFoundError(f"Reservation {reservation_id} not found")

        logger.info(
            "Reservation updated | id=%s | channel_id=%s | date=%s | hour=%s | quantity=%s",
            reservation_id,
            updated.channel_id,
            updated.date,
            updated.hour,
            updated.quantity,
        )
        return self.get_reservation(reservation_id)

    def get_reservation(self, reservation_id: int) -> ReservationRecord:
        record = self._repository.get_reservation(reservation_id)
        if record is None:
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
        return record

    def list_reservations(
        self,
        *,
        channel_id: Optional[str] = None,
        reservation_date: Any = None,
        kind: Optional[ReservationKind] = None,
        owner: Optional[str] = None,
        requesting_area: Optional[str] = None,
    ) -> list[ReservationRecord]:
        parsed_date = _require_date(reservation_date) if reservation_date is not None else None
        return self._repository.list_reservations(
            channel_id=channel_id,
            reservation_date=parsed_date,
            kind=kind,
            owner=owner,
            requesting_area=requesting_area,
        )

    def delete_reservation(self, reservation_id: int) -> None:
        if not self._repository.delete_reservation(reservation_id):
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
        logger.info("Reservation deleted | id=%s", reservation_id)

    def release_slot(
        self,
        *,
        channel_id: str,
        reservation_date: Any,
        hour: Any,
        requesting_area: Optional[str] = None,
    ) -> int:
        """Free a channel/date/hour bucket, e.g. after a touchpoint moved."""
        parsed_date = _require_date(reservation_date)
        parsed_hour = _require_hour(hour)
        deleted = self._repository.delete_reservations_for_slot(
            channel_id,
            parsed_date,
            parsed_hour,
            requesting_area,
        )
        logger.info(
            "Slot released | channel_id=%s | date=%s | hour=%s | requesting_area=%s | deleted=%s",
            channel_id,
            parsed_date,
            parsed_hour,
            requesting_area,
            deleted,
        )
        return deleted

    def slot_availability(
        self,
        *,
        domain: str,
        channel_id: str,
        reservation_date: Any,
        requesting_area: Optional[str] = None,
    ) -> list[SlotAvailability]:
        """Remaining capacity per active slot as seen by ``requesting_area``."""
        self._require_domain(domain)
        parsed_date = _require_date(reservation_date)
        capacity = self._require_capacity(channel_id)
        if capacity.max_per_slot is None:
            return []

        catalog = TimeSlotCatalog(self._repository, domain)
        availability: list[SlotAvailability] = []
        for hour in catalog.names:
            effective_max = effective_max_per_slot(capacity.max_per_slot, hour, self._shared_hours)
            reserved = self._repository.sum_reserved_quantity(
                channel_id,
                parsed_date,
                hour,
                requesting_area,
            )
            availability.append(
                SlotAvailability(
                    hour=hour,
                    effective_max=effective_max,
                    reserved=reserved,
                    available=available_capacity(effective_max, reserved),
                )
            )
        return availability

    def set_channel_capacity(
        self,
        channel_id: str,
        max_per_slot: Optional[float],
    ) -> ChannelCapacity:
        if max_per_slot is not None and max_per_slot < 0:
            raise ReservationValidationError("max_per_slot must be >= 0")
        return self._repository.save_channel_capacity(channel_id, max_per_slot)

    def set_time_slot(self, domain: str, name: str, active: bool = True) -> TimeSlot:
        self._require_domain(domain)
        return self._repository.save_time_slot(domain, _require_hour(name), active)
