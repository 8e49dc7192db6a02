"""HTTP controller layer for manual reservations and reference data."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field, field_validator

from dispatch_scheduler.controllers.dependencies import get_reservation_service
from dispatch_scheduler.domain.models import ReservationKind, ReservationRecord
from dispatch_scheduler.domain.ports import LedgerReadError
from dispatch_scheduler.services.reservation_service import (
    ChannelNotFoundError,
    InsufficientCapacityError,
    ReservationNotFoundError,
    ReservationService,
    ReservationValidationError,
)


router = APIRouter(tags=["reservations"])


class CreateReservationRequest(BaseModel):
    channel_id: str = Field(min_length=1)
    date: date
    hour: str = Field(pattern=r"^([01]?\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")
    quantity: float = Field(gt=0.0)
    requesting_area: str = Field(min_length=1)
    owner: Optional[str] = None
    kind: ReservationKind = ReservationKind.HOLD

    @field_validator("requesting_area")
    @classmethod
    def validate_requesting_area(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("requesting_area must be non-empty")
        return value.strip()


class UpdateReservationRequest(BaseModel):
    channel_id: Optional[str] = Field(default=None, min_length=1)
    reservation_date: Optional[date] = Field(default=None, alias="date")
    hour: Optional[str] = Field(default=None, pattern=r"^([01]?\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")
    quantity: Optional[float] = Field(default=None, gt=0.0)
    requesting_area: Optional[str] = Field(default=None, min_length=1)
    owner: Optional[str] = None


class ReservationResponse(BaseModel):
    id: int
    channel_id: str
    date: date
    hour: str
    quantity: float
    kind: ReservationKind
    requesting_area: Optional[str]
    owner: Optional[str]
    created_at: Optional[str]


class ReleaseSlotResponse(BaseModel):
    deleted: int = Field(ge=0)


class ChannelCapacityRequest(BaseModel):
    max_per_slot: Optional[float] = Field(default=None, ge=0.0)


class ChannelCapacityResponse(BaseModel):
    channel_id: str
    max_per_slot: Optional[float]


class TimeSlotRequest(BaseModel):
    active: bool = True


class TimeSlotResponse(BaseModel):
    domain: str
    name: str
    active: bool


def _to_response(record: ReservationRecord) -> ReservationResponse:
    return ReservationResponse(
        id=record.reservation_id,
        channel_id=record.channel_id,
        date=record.date,
        hour=record.hour,
        quantity=record.quantity,
        kind=record.kind,
        requesting_area=record.requesting_area,
        owner=record.owner,
        created_at=record.created_at,
    )


@router.post(
    "/reservations",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_reservation(
    payload: CreateReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """Create a hold (or booking) after checking the slot's remaining capacity."""
    try:
        record = service.create_reservation(
            channel_id=payload.channel_id,
            reservation_date=payload.date,
            hour=payload.hour,
            quantity=payload.quantity,
            requesting_area=payload.requesting_area,
            owner=payload.owner,
            kind=payload.kind,
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
    except InsufficientCapacityError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except LedgerReadError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return _to_response(record)


@router.get(
    "/reservations",
    response_model=list[ReservationResponse],
    status_code=status.HTTP_200_OK,
)
async def list_reservations(
    channel_id: Optional[str] = None,
    reservation_date: Optional[date] = Query(default=None, alias="date"),
    kind: Optional[ReservationKind] = None,
    owner: Optional[str] = None,
    requesting_area: Optional[str] = None,
    service: ReservationService = Depends(get_reservation_service),
) -> list[ReservationResponse]:
    records = service.list_reservations(
        channel_id=channel_id,
        reservation_date=reservation_date,
        kind=kind,
        owner=owner,
        requesting_area=requesting_area,
    )
    return [_to_response(record) for record in records]


@router.get(
    "/reservations/{reservation_id}",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def get_reservation(
    reservation_id: int,
    service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        return _to_response(service.get_reservation(reservation_id))
    except ReservationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.put(
    "/reservations/{reservation_id}",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def update_reservation(
    reservation_id: int,
    payload: UpdateReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """Edit a reservation; capacity is re-checked without the row's own quantity."""
    try:
        record = service.update_reservation(
            reservation_id,
            channel_id=payload.channel_id,
            reservation_date=payload.reservation_date,
            hour=payload.hour,
            quantity=payload.quantity,
            requesting_area=payload.requesting_area,
            owner=payload.owner,
        )
    except ReservationValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except (ReservationNotFoundError, ChannelNotFoundError) as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InsufficientCapacityError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except LedgerReadError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return _to_response(record)


@router.delete(
    "/reservations/{reservation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_reservation(
    reservation_id: int,
    service: ReservationService = Depends(get_reservation_service),
) -> Response:
    try:
        service.delete_reservation(reservation_id)
    except ReservationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/reservations",
    response_model=ReleaseSlotResponse,
    status_code=status.HTTP_200_OK,
)
async def release_slot(
    channel_id: str = Query(min_length=1),
    reservation_date: date = Query(alias="date"),
    hour: str = Query(min_length=1),
    requesting_area: Optional[str] = None,
    service: ReservationService = Depends(get_reservation_service),
) -> ReleaseSlotResponse:
    """Delete every reservation of one channel/date/hour bucket."""
    try:
        deleted = service.release_slot(
            channel_id=channel_id,
            reservation_date=reservation_date,
            hour=hour,
            requesting_area=requesting_area,
        )
    except ReservationValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return ReleaseSlotResponse(deleted=deleted)


@router.put(
    "/channels/{channel_id}/capacity",
    response_model=ChannelCapacityResponse,
    status_code=status.HTTP_200_OK,
)
async def set_channel_capacity(
    channel_id: str,
    payload: ChannelCapacityRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> ChannelCapacityResponse:
    try:
        capacity = service.set_channel_capacity(channel_id, payload.max_per_slot)
    except ReservationValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return ChannelCapacityResponse(
        channel_id=capacity.channel_id,
        max_per_slot=capacity.max_per_slot,
    )


@router.put(
    "/time_slots/{domain}/{name}",
    response_model=TimeSlotResponse,
    status_code=status.HTTP_200_OK,
)
async def set_time_slot(
    domain: str,
    name: str,
    payload: TimeSlotRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> TimeSlotResponse:
    try:
        slot = service.set_time_slot(domain, name, payload.active)
    except ReservationValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return TimeSlotResponse(domain=domain, name=slot.name, active=slot.active)
