"""Domain-level capacity rules shared by allocation and hold validation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence


QUANTITY_PRECISION = 6


@dataclass(frozen=True)
class AllocationConfig:
    shared_capacity_hours: frozenset[str]
    max_passes: Optional[int] = None


def validate_allocation_config(config: AllocationConfig) -> None:
    for hour in config.shared_capacity_hours:
        if not hour or not hour.strip():
            raise ValueError("shared_capacity_hours must not contain blank hours")
    if config.max_passes is not None and config.max_passes <= 0:
        raise ValueError("max_passes must be > 0")


def is_shared_capacity_hour(hour: str, shared_hours: frozenset[str]) -> bool:
    return hour in shared_hours


def effective_max_per_slot(
    max_per_slot: float,
    hour: str,
    shared_hours: frozenset[str],
) -> float:
    """Half the channel limit for shared hours, the full limit otherwise."""
    if is_shared_capacity_hour(hour, shared_hours):
        return max_per_slot / 2
    return max_per_slot


def available_capacity(effective_max: float, reserved: float) -> float:
    # Rounded to QUANTITY_PRECISION decimals.
    return round(max(0.0, effective_max - reserved), QUANTITY_PRECISION)


def find_next_slot(slot_names: Sequence[str], current_hour: str) -> Optional[str]:
    """Return the slot after ``current_hour``, the first slot if it is unknown,
    or ``None`` when ``current_hour`` is the last slot."""
    try:
        next_index = list(slot_names).index(current_hour) + 1
    except ValueError:
        next_index = 0
    if next_index >= len(slot_names):
        return None
    return slot_names[next_index]


def default_pass_limit(entry_count: int, slot_count: int) -> int:
    """Upper bound on allocation passes for ``entry_count`` entries over
    ``slot_count`` slots.

    Splits fill at most one slot per (channel, date) each, so the working list
    never holds more than ``n * (s + 1)`` entries. Each position settles after
    at most ``s + 2`` restarts: a jump onto the first slot for an unknown hour,
    ``s - 1`` forward moves, one fallback jump and one split or drop. One
    extra pass is the clean final scan.

    ``n * s`` alone is too small: with slots a, b and c where b and c are
    fully booked, one entry at b restarts five times (b to c, fallback to a,
    split, remainder b to c, drop).
    """
    entries = max(1, entry_count)
    return entries * (slot_count + 1) * (slot_count + 2) + 1
