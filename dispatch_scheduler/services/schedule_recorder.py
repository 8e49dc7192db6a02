"""Persist allocated demand as booking rows in the reservation ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from dispatch_scheduler.domain.models import DemandEntry, ReservationKind, ReservationRecord
from dispatch_scheduler.domain.ports import LedgerWriteError, ReservationLedger
from dispatch_scheduler.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RecordingSummary:
    reservation_ids: list[int] = field(default_factory=list)
    failed: list[DemandEntry] = field(default_factory=list)

    @property
    def recorded_count(self) -> int:
        return len(self.reservation_ids)


def build_booking(
    entry: DemandEntry,
    requesting_area: Optional[str],
    owner: Optional[str],
) -> ReservationRecord:
    return ReservationRecord(
        channel_id=entry.channel_id,
        date=entry.date,
        hour=entry.hour,
        quantity=entry.quantity,
        kind=ReservationKind.BOOKING,
        requesting_area=requesting_area,
        owner=owner,
    )


class ScheduleRecorder:
    """Best-effort audit write: one booking per allocated entry.

    A failed append is logged and skipped; the allocation it belongs to has
    already been handed to the caller and is not rolled back.
    """

    def __init__(self, ledger: ReservationLedger) -> None:
        self._ledger = ledger

    def record(
        self,
        entries: Sequence[DemandEntry],
        *,
        requesting_area: Optional[str] = None,
        owner: Optional[str] = None,
    ) -> RecordingSummary:
        if not requesting_area:
            logger.warning("Recording bookings without a requesting area")

        reservation_ids: list[int] = []
        failed: list[DemandEntry] = []
        for entry in entries:
            if entry.quantity <= 0:
                continue
            try:
                reservation_id = self._ledger.append_reservation(
                    build_booking(entry, requesting_area, owner)
                )
            except LedgerWriteError:
                logger.exception(
                    "Booking write failed | channel_id=%s | date=%s | hour=%s | quantity=%s",
                    entry.channel_id,
                    entry.date,
                    entry.hour,
                    entry.quantity,
                )
                failed.append(entry)
                continue
            reservation_ids.append(reservation_id)

        logger.info(
            "Bookings recorded | recorded=%s | failed=%s | requesting_area=%s",
            len(reservation_ids),
            len(failed),
            requesting_area,
        )
        return RecordingSummary(reservation_ids=reservation_ids, failed=failed)
