"""Tests for capacity rules and allocation config validation."""

from __future__ import annotations

import pytest

from dispatch_scheduler.domain.constraints import (
    AllocationConfig,
    available_capacity,
    default_pass_limit,
    effective_max_per_slot,
    find_next_slot,
    validate_allocation_config,
)


SHARED = frozenset({"08:00", "08:30"})
SLOTS = ("08:00", "08:30", "09:00", "10:00")


def valid_config(**overrides) -> AllocationConfig:
    defaults = {
        "shared_capacity_hours": SHARED,
        "max_passes": None,
    }
    defaults.update(overrides)
    return AllocationConfig(**defaults)


# --- Config validation ---

def test_valid_config_passes() -> None:
    validate_allocation_config(valid_config())


def test_empty_shared_hours_passes() -> None:
    validate_allocation_config(valid_config(shared_capacity_hours=frozenset()))


def test_blank_shared_hour_raises() -> None:
    with pytest.raises(ValueError):
        validate_allocation_config(valid_config(shared_capacity_hours=frozenset({"08:00", " "})))


def test_max_passes_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_allocation_config(valid_config(max_passes=0))


# --- Shared-hour halving ---

def test_shared_hour_halves_channel_limit() -> None:
    assert effective_max_per_slot(10, "08:00", SHARED) == 5
    assert effective_max_per_slot(10, "08:30", SHARED) == 5


def test_regular_hour_uses_full_channel_limit() -> None:
    assert effective_max_per_slot(10, "10:00", SHARED) == 10


def test_shared_hours_are_configurable() -> None:
    assert effective_max_per_slot(10, "08:00", frozenset({"12:00"})) == 10
    assert effective_max_per_slot(10, "12:00", frozenset({"12:00"})) == 5


def test_odd_limit_halves_to_fraction() -> None:
    assert effective_max_per_slot(7, "08:00", SHARED) == 3.5


# --- Available capacity ---

def test_available_capacity_never_negative() -> None:
    assert available_capacity(5, 8) == 0.0


def test_available_capacity_rounds_float_residue() -> None:
    assert available_capacity(0.3, 0.1 + 0.2) == 0.0


# --- Next slot ---

def test_next_slot_follows_current_hour() -> None:
    assert find_next_slot(SLOTS, "08:30") == "09:00"


def test_next_slot_for_unknown_hour_is_first_slot() -> None:
    assert find_next_slot(SLOTS, "07:00") == "08:00"


def test_no_next_slot_after_last_hour() -> None:
    assert find_next_slot(SLOTS, "10:00") is None


def test_no_next_slot_in_empty_catalog() -> None:
    assert find_next_slot((), "10:00") is None


# --- Pass limit ---

def test_pass_limit_grows_with_entries_and_slots() -> None:
    assert default_pass_limit(1, 1) == 7
    assert default_pass_limit(2, 3) == 41
    assert default_pass_limit(0, 0) == 3
