from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from dispatch_scheduler.controllers.reservation_controller import router as reservation_router
from dispatch_scheduler.domain.models import ReservationKind
from dispatch_scheduler.domain.ports import LedgerReadError
from dispatch_scheduler.repository.data_repository import DataRepository
from dispatch_scheduler.services.reservation_service import (
    ChannelNotFoundError,
    InsufficientCapacityError,
    ReservationNotFoundError,
    ReservationService,
    ReservationValidationError,
)
from dispatch_scheduler.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        scheduling_domains=("crm", "gam"),
        default_time_slots=("08:00", "08:30", "09:00", "10:00"),
        shared_capacity_hours=("08:00", "08:30"),
    )


def _build_service(tmp_path, filename: str) -> tuple[ReservationService, DataRepository]:
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_reference_data()
    service = ReservationService(repository=repository, settings=settings)
    service.set_channel_capacity("sms", 10)
    return service, repository


def test_hold_is_created_within_capacity(tmp_path):
    service, _ = _build_service(tmp_path, "hold.db")

    record = service.create_reservation(
        channel_id="sms",
        reservation_date="2026-03-10",
        hour="10:00",
        quantity=4,
        requesting_area="Marketing",
        owner="ana@example.com",
    )

    assert record.reservation_id is not None
    assert record.kind is ReservationKind.HOLD
    assert record.requesting_area == "Marketing"
    assert service.get_reservation(record.reservation_id) == record


def test_shared_hour_limit_rejects_oversized_hold(tmp_path):
    service, _ = _build_service(tmp_path, "shared_limit.db")

    with pytest.raises(InsufficientCapacityError) as exc_info:
        service.create_reservation(
            channel_id="sms",
            reservation_date="2026-03-10",
            hour="08:00",
            quantity=6,
            requesting_area="Marketing",
        )

    assert exc_info.value.effective_max == 5
    assert exc_info.value.available == 5


def test_other_area_hold_blocks_but_own_hold_does_not(tmp_path):
    service, _ = _build_service(tmp_path, "area_holds.db")
    service.create_reservation(
        channel_id="sms",
        reservation_date="2026-03-10",
        hour="10:00",
        quantity=7,
        requesting_area="Marketing",
    )

    with pytest.raises(InsufficientCapacityError):
        service.create_reservation(
            channel_id="sms",
            reservation_date="2026-03-10",
            hour="10:00",
            quantity=4,
            requesting_area="Sales",
        )

    again = service.create_reservation(
        channel_id="sms",
        reservation_date="2026-03-10",
        hour="10:00",
        quantity=8,
        requesting_area="Marketing",
    )
    assert again.quantity == 8


def test_exempt_channel_accepts_any_quantity(tmp_path):
    service, _ = _build_service(tmp_path, "exempt.db")
    service.set_channel_capacity("email", None)

    record = service.create_reservation(
        channel_id="email",
        reservation_date="2026-03-10",
        hour="10:00",
        quantity=10_000,
        requesting_area="Marketing",
    )

    assert record.quantity == 10_000
    assert service.slot_availability(
        domain="crm",
        channel_id="email",
        reservation_date="2026-03-10",
    ) == []


def test_invalid_inputs_are_rejected(tmp_path):
    service, _ = _build_service(tmp_path, "invalid.db")
    base = {
        "channel_id": "sms",
        "reservation_date": "2026-03-10",
        "hour": "10:00",
        "quantity": 1,
        "requesting_area": "Marketing",
    }

    for overrides in ({"hour": "25:00"}, {"reservation_date": "soon"}, {"quantity": 0}, {"requesting_area": " "}):
        with pytest.raises(ReservationValidationError):
            service.create_reservation(**{**base, **overrides})

    with pytest.raises(ChannelNotFoundError):
        service.create_reservation(**{**base, "channel_id": "fax"})


def test_release_slot_frees_capacity(tmp_path):
    service, _ = _build_service(tmp_path, "release.db")
    service.create_reservation(
        channel_id="sms",
        reservation_date="2026-03-10",
        hour="09:00",
        quantity=10,
        requesting_area="Marketing",
    )

    deleted = service.release_slot(channel_id="sms", reservation_date="2026-03-10", hour="9:00")
    availability = service.slot_availability(
        domain="crm",
        channel_id="sms",
        reservation_date="2026-03-10",
        requesting_area="Sales",
    )

    assert deleted == 1
    assert [(item.hour, item.available) for item in availability] == [
        ("08:00", 5),
        ("08:30", 5),
        ("09:00", 10),
        ("10:00", 10),
    ]


def test_delete_missing_reservation_raises(tmp_path):
    service, _ = _build_service(tmp_path, "missing.db")

    with pytest.raises(ReservationNotFoundError):
        service.delete_reservation(999)


def test_time_slot_changes_require_known_domain(tmp_path):
    service, repository = _build_service(tmp_path, "slots.db")

    service.set_time_slot("gam", "12:00")
    with pytest.raises(ReservationValidationError):
        service.set_time_slot("billing", "12:00")

    assert [slot.name for slot in repository.list_active_time_slots("gam")][-1] == "12:00"


def _build_test_app(tmp_path) -> FastAPI:
    service, repository = _build_service(tmp_path, "reservation_api.db")
    app = FastAPI()
    app.include_router(reservation_router)
    app.state.repository = repository
    app.state.reservation_service = service
    return app


def test_reservation_endpoints_flow(tmp_path):
    client = TestClient(_build_test_app(tmp_path))

    created = client.post(
        "/reservations",
        json={
            "channel_id": "sms",
            "date": "2026-03-10",
            "hour": "10:00",
            "quantity": 6,
            "requesting_area": "Marketing",
        },
    )
    assert created.status_code == 201
    reservation_id = created.json()["id"]
    assert created.json()["kind"] == "hold"

    conflict = client.post(
        "/reservations",
        json={
            "channel_id": "sms",
            "date": "2026-03-10",
            "hour": "10:00",
            "quantity": 5,
            "requesting_area": "Sales",
        },
    )
    assert conflict.status_code == 409

    unknown_channel = client.post(
        "/reservations",
        json={
            "channel_id": "fax",
            "date": "2026-03-10",
            "hour": "10:00",
            "quantity": 1,
            "requesting_area": "Sales",
        },
    )
    assert unknown_channel.status_code == 404

    listed = client.get("/reservations", params={"channel_id": "sms", "date": "2026-03-10"})
    assert [item["id"] for item in listed.json()] == [reservation_id]

    assert client.get(f"/reservations/{reservation_id}").status_code == 200
    assert client.delete(f"/reservations/{reservation_id}").status_code == 204
    assert client.get(f"/reservations/{reservation_id}").status_code == 404


def test_reference_data_endpoints(tmp_path):
    client = TestClient(_build_test_app(tmp_path))

    capacity = client.put("/channels/push/capacity", json={"max_per_slot": 3})
    assert capacity.status_code == 200
    assert capacity.json() == {"channel_id": "push", "max_per_slot": 3.0}

    slot = client.put("/time_slots/crm/12:00", json={"active": False})
    assert slot.status_code == 200
    assert slot.json() == {"domain": "crm", "name": "12:00", "active": False}

    unknown_domain = client.put("/time_slots/billing/12:00", json={"active": True})
    assert unknown_domain.status_code == 400


def test_release_slot_endpoint(tmp_path):
    client = TestClient(_build_test_app(tmp_path))
    for area in ("Marketing", "Sales"):
        client.post(
            "/reservations",
            json={
                "channel_id": "sms",
                "date": "2026-03-10",
                "hour": "09:00",
                "quantity": 2,
                "requesting_area": area,
            },
        )

    response = client.delete(
        "/reservations",
        params={"channel_id": "sms", "date": "2026-03-10", "hour": "09:00", "requesting_area": "Sales"},
    )

    assert response.status_code == 200
    assert response.json() == {"deleted": 1}


def test_update_rechecks_capacity_without_the_edited_row(tmp_path):
    service, _ = _build_service(tmp_path, "update_own_row.db")
    booking = service.create_reservation(
        channel_id="sms",
        reservation_date="2026-03-10",
        hour="10:00",
        quantity=10,
        requesting_area="Marketing",
        kind=ReservationKind.BOOKING,
    )

    updated = service.update_reservation(booking.reservation_id, quantity=9, owner="ops@example.com")

    assert updated.quantity == 9
    assert updated.owner == "ops@example.com"
    assert updated.kind is ReservationKind.BOOKING
    assert updated.created_at == booking.created_at


def test_update_into_a_full_slot_is_rejected(tmp_path):
    service, _ = _build_service(tmp_path, "update_conflict.db")
    service.create_reservation(
        channel_id="sms",
        reservation_date="2026-03-10",
        hour="09:00",
        quantity=8,
        requesting_area="Sales",
    )
    hold = service.create_reservation(
        channel_id="sms",
        reservation_date="2026-03-10",
        hour="10:00",
        quantity=5,
        requesting_area="Marketing",
    )

    with pytest.raises(InsufficientCapacityError):
        service.update_reservation(hold.reservation_id, hour="9:00")

    moved = service.update_reservation(hold.reservation_id, hour="9:00", quantity=2)
    assert (moved.hour, moved.quantity) == ("09:00", 2)


def test_update_validates_inputs(tmp_path):
    service, _ = _build_service(tmp_path, "update_invalid.db")
    hold = service.create_reservation(
        channel_id="sms",
        reservation_date="2026-03-10",
        hour="10:00",
        quantity=1,
        requesting_area="Marketing",
    )

    with pytest.raises(ReservationNotFoundError):
        service.update_reservation(999, quantity=1)
    with pytest.raises(ReservationValidationError):
        service.update_reservation(hold.reservation_id, quantity=0)
    with pytest.raises(ReservationValidationError):
        service.update_reservation(hold.reservation_id, requesting_area="  ")
    with pytest.raises(ChannelNotFoundError):
        service.update_reservation(hold.reservation_id, channel_id="fax")


def test_list_reservations_filters_by_owner_and_area(tmp_path):
    service, _ = _build_service(tmp_path, "list_filters.db")
    for area, owner in (("Marketing", "ana"), ("Sales", "ana"), ("Sales", "bruno")):
        service.create_reservation(
            channel_id="sms",
            reservation_date="2026-03-10",
            hour="10:00",
            quantity=1,
            requesting_area=area,
            owner=owner,
        )

    by_owner = service.list_reservations(owner="ana")
    by_owner_and_area = service.list_reservations(owner="ana", requesting_area="Sales")

    assert [(r.requesting_area, r.owner) for r in by_owner] == [("Marketing", "ana"), ("Sales", "ana")]
    assert [(r.requesting_area, r.owner) for r in by_owner_and_area] == [("Sales", "ana")]


def test_update_endpoint(tmp_path):
    client = TestClient(_build_test_app(tmp_path))
    created = client.post(
        "/reservations",
        json={
            "channel_id": "sms",
            "date": "2026-03-10",
            "hour": "10:00",
            "quantity": 4,
            "requesting_area": "Marketing",
            "owner": "ana",
        },
    ).json()

    updated = client.put(f"/reservations/{created['id']}", json={"hour": "09:00", "quantity": 6})
    assert updated.status_code == 200
    assert (updated.json()["hour"], updated.json()["quantity"]) == ("09:00", 6.0)

    too_big = client.put(f"/reservations/{created['id']}", json={"hour": "08:00"})
    assert too_big.status_code == 409

    missing = client.put("/reservations/999", json={"quantity": 1})
    assert missing.status_code == 404

    listed = client.get("/reservations", params={"owner": "ana", "requesting_area": "Marketing"})
    assert [item["id"] for item in listed.json()] == [created["id"]]


def test_ledger_outage_on_hold_creation_returns_503(tmp_path, monkeypatch):
    service, repository = _build_service(tmp_path, "hold_outage.db")

    def _offline(*args, **kwargs):
        raise LedgerReadError("ledger offline")

    monkeypatch.setattr(repository, "sum_reserved_quantity", _offline)
    app = FastAPI()
    app.include_router(reservation_router)
    app.state.reservation_service = service
    client = TestClient(app)

    response = client.post(
        "/reservations",
        json={
            "channel_id": "sms",
            "date": "2026-03-10",
            "hour": "10:00",
            "quantity": 1,
            "requesting_area": "Marketing",
        },
    )

    assert response.status_code == 503
