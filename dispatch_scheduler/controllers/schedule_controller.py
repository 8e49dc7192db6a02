"""HTTP controller layer for submission scheduling and slot availability."""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from dispatch_scheduler.controllers.dependencies import (
    get_reservation_service,
    get_scheduling_service,
)
from dispatch_scheduler.domain.ports import LedgerReadError
from dispatch_scheduler.services.reservation_service import (
    ChannelNotFoundError,
    ReservationService,
    ReservationValidationError,
)
from dispatch_scheduler.services.scheduling_service import (
    AllocationFailedError,
    DispatchSchedulingService,
    LedgerUnavailableError,
    SchedulingValidationError,
)
from dispatch_scheduler.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["scheduling"])


class DemandEntryPayload(BaseModel):
    """Subitem as received from the form layer; malformed ones are dropped later."""

    model_config = ConfigDict(extra="allow")

    channel_id: Optional[Any] = None
    date: Optional[Any] = None
    hour: Optional[Any] = None
    quantity: Optional[Any] = None


class ScheduleSubmissionRequest(BaseModel):
    requesting_area: Optional[str] = None
    owner: Optional[str] = None
    persist: bool = True
    subitems: list[DemandEntryPayload] = Field(default_factory=list)
    submission: dict[str, Any] = Field(default_factory=dict)


class AllocatedEntryResponse(BaseModel):
    channel_id: str
    date: date
    hour: str
    quantity: float = Field(gt=0.0)
    extra: dict[str, Any] = Field(default_factory=dict)


class DroppedDemandResponse(BaseModel):
    channel_id: str
    date: Optional[date]
    hour: str
    quantity: float
    reason: str


class ScheduleSubmissionResponse(BaseModel):
    domain: str
    requesting_area: Optional[str]
    entries: list[AllocatedEntryResponse]
    dropped: list[DroppedDemandResponse]
    rejected_count: int = Field(ge=0)
    recorded_count: int = Field(ge=0)
    failed_record_count: int = Field(ge=0)


class SlotAvailabilityResponse(BaseModel):
    hour: str
    effective_max: float = Field(ge=0.0)
    reserved: float = Field(ge=0.0)
    available: float = Field(ge=0.0)


@router.post(
    "/submissions/{domain}/schedule",
    response_model=ScheduleSubmissionResponse,
    status_code=status.HTTP_200_OK,
)
async def schedule_submission(
    domain: str,
    payload: ScheduleSubmissionRequest,
    service: DispatchSchedulingService = Depends(get_scheduling_service),
) -> ScheduleSubmissionResponse:
    """Fit a submission's subitems into channel capacity and book them."""
    requesting_area = payload.requesting_area or service.requesting_area_from(payload.submission)
    try:
        outcome = service.schedule_submission(
            domain=domain,
            demand=[item.model_dump() for item in payload.subitems],
            requesting_area=requesting_area,
            owner=payload.owner,
            persist=payload.persist,
        )
    except SchedulingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except LedgerUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except AllocationFailedError as exc:
        logger.exception("Allocation failed for submission")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc

    recording = outcome.recording
    return ScheduleSubmissionResponse(
        domain=outcome.domain,
        requesting_area=outcome.requesting_area,
        entries=[
            AllocatedEntryResponse(
                channel_id=entry.channel_id,
                date=entry.date,
                hour=entry.hour,
                quantity=entry.quantity,
                extra=entry.extra,
            )
            for entry in outcome.entries
        ],
        dropped=[
            DroppedDemandResponse(
                channel_id=item.channel_id,
                date=item.date,
                hour=item.hour,
                quantity=item.quantity,
                reason=item.reason,
            )
            for item in outcome.dropped
        ],
        rejected_count=outcome.rejected_count,
        recorded_count=recording.recorded_count if recording else 0,
        failed_record_count=len(recording.failed) if recording else 0,
    )


@router.get(
    "/availability",
    response_model=list[SlotAvailabilityResponse],
    status_code=status.HTTP_200_OK,
)
async def slot_availability(
    domain: str = Query(min_length=1),
    channel_id: str = Query(min_length=1),
    reservation_date: date = Query(alias="date"),
    requesting_area: Optional[str] = None,
    service: ReservationService = Depends(get_reservation_service),
) -> list[SlotAvailabilityResponse]:
    try:
        availability = service.slot_availability(
            domain=domain,
            channel_id=channel_id,
            reservation_date=reservation_date,
            requesting_area=requesting_area,
        )
    except ReservationValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ChannelNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except LedgerReadError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return [
        SlotAvailabilityResponse(
            hour=item.hour,
            effective_max=item.effective_max,
            reserved=item.reserved,
            available=item.available,
        )
        for item in availability
    ]
