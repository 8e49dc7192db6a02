from __future__ import annotations

from datetime import date, datetime

from dispatch_scheduler.domain.models import DemandEntry
from dispatch_scheduler.services.validation_service import (
    DemandValidator,
    normalize_hour,
    parse_demand_date,
    parse_quantity,
)


def _raw(**overrides):
    item = {
        "channel_id": "sms",
        "date": "2026-03-10",
        "hour": "09:00",
        "quantity": 10,
    }
    item.update(overrides)
    return item


def test_well_formed_entry_is_kept_with_passthrough_fields():
    entries = DemandValidator().validate([_raw(touchpoint="TP-1", channel_name="SMS")])

    assert entries == [
        DemandEntry(
            channel_id="sms",
            date=date(2026, 3, 10),
            hour="09:00",
            quantity=10.0,
            extra={"touchpoint": "TP-1", "channel_name": "SMS"},
        )
    ]


def test_malformed_entries_are_dropped_without_error():
    raw = [
        _raw(channel_id=""),
        _raw(channel_id=None),
        _raw(date=""),
        _raw(date="not-a-date"),
        _raw(date="2026-02-30"),
        _raw(hour=""),
        _raw(hour="   "),
        _raw(quantity=0),
        _raw(quantity=-3),
        _raw(quantity="abc"),
        _raw(quantity=None),
        "not a mapping",
        _raw(),
    ]

    entries = DemandValidator().validate(raw)

    assert len(entries) == 1
    assert entries[0].channel_id == "sms"


def test_revalidating_valid_output_is_a_no_op():
    validator = DemandValidator()
    first = validator.validate([_raw(), _raw(channel_id="email", hour="08:00:00", extra_field=1)])

    second = validator.validate(first)

    assert second == first


def test_validation_does_not_share_passthrough_dicts():
    validator = DemandValidator()
    first = validator.validate([_raw(touchpoint="TP-1")])
    second = validator.validate(first)

    second[0].extra["touchpoint"] = "changed"

    assert first[0].extra["touchpoint"] == "TP-1"


def test_parse_demand_date_accepts_known_formats():
    expected = date(2026, 3, 10)
    assert parse_demand_date("2026-03-10") == expected
    assert parse_demand_date("10/03/2026") == expected
    assert parse_demand_date("10-03-2026") == expected
    assert parse_demand_date("20260310") == expected
    assert parse_demand_date(datetime(2026, 3, 10, 14, 30)) == expected
    assert parse_demand_date(expected) == expected
    assert parse_demand_date("March 10") is None


def test_normalize_hour_drops_seconds():
    assert normalize_hour("08:30:00") == "08:30"
    assert normalize_hour("8:00") == "08:00"
    assert normalize_hour("8:00:00") == "08:00"
    assert normalize_hour(" 09:00 ") == "09:00"
    assert normalize_hour(None) == ""


def test_parse_quantity_handles_numeric_strings_and_rejects_bools():
    assert parse_quantity("12") == 12.0
    assert parse_quantity(2.5) == 2.5
    assert parse_quantity(True) is None
    assert parse_quantity("nan") is None


def test_single_digit_hours_are_zero_padded_on_validation():
    entries = DemandValidator().validate([_raw(hour="8:30")])

    assert entries[0].hour == "08:30"
