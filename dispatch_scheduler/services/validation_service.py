"""Demand validation: reduce raw submission subitems to well-formed entries."""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Union

from dispatch_scheduler.domain.models import DemandEntry
from dispatch_scheduler.utils.logger import get_logger


logger = get_logger(__name__)

DEMAND_FIELDS = ("channel_id", "date", "hour", "quantity")

_DATE_FORMATS = (
    (re.compile(r"^\d{4}-\d{2}-\d{2}$"), "%Y-%m-%d"),
    (re.compile(r"^\d{2}/\d{2}/\d{4}$"), "%d/%m/%Y"),
    (re.compile(r"^\d{2}-\d{2}-\d{4}$"), "%d-%m-%Y"),
    (re.compile(r"^\d{8}$"), "%Y%m%d"),
)
_HOUR_PARTS = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")

RawDemand = Union[Mapping[str, Any], DemandEntry]


def parse_demand_date(value: Any) -> Optional[date]:
    """Parse ISO, DD/MM/YYYY, DD-MM-YYYY or YYYYMMDD into a calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None:
        return None
    text = str(value).strip()
    for pattern, fmt in _DATE_FORMATS:
        if pattern.match(text):
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                return None
    return None


def normalize_hour(value: Any) -> str:
    """Return ``HH:MM`` for ``H:MM``, ``HH:MM`` or ``HH:MM:SS``; other text is only stripped."""
    if value is None:
        return ""
    text = str(value).strip()
    match = _HOUR_PARTS.match(text)
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}"
    return text


def parse_quantity(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        quantity = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(quantity) or math.isinf(quantity):
        return None
    return quantity


def is_well_formed(entry: DemandEntry) -> bool:
    return bool(
        entry.channel_id
        and entry.channel_id.strip()
        and isinstance(entry.date, date)
        and entry.hour
        and entry.hour.strip()
        and entry.quantity > 0
    )


class DemandValidator:
    """Drops malformed demand silently; upstream form noise is expected."""

    def validate(self, raw_demand: Iterable[RawDemand]) -> list[DemandEntry]:
        valid: list[DemandEntry] = []
        dropped = 0
        for raw in raw_demand:
            entry = self._coerce(raw)
            if entry is None or not is_well_formed(entry):
                dropped += 1
                continue
            valid.append(entry)
        if dropped:
            logger.debug(
                "Malformed demand dropped | dropped=%s | kept=%s",
                dropped,
                len(valid),
            )
        return valid

    def _coerce(self, raw: RawDemand) -> Optional[DemandEntry]:
        if isinstance(raw, DemandEntry):
            channel_id = raw.channel_id
            raw_date: Any = raw.date
            raw_hour: Any = raw.hour
            raw_quantity: Any = raw.quantity
            extra = dict(raw.extra)
        elif isinstance(raw, Mapping):
            channel_id = raw.get("channel_id")
            raw_date = raw.get("date")
            raw_hour = raw.get("hour")
            raw_quantity = raw.get("quantity")
            extra = {key: value for key, value in raw.items() if key not in DEMAND_FIELDS}
        else:
            return None

        channel = str(channel_id).strip() if channel_id is not None else ""
        parsed_date = parse_demand_date(raw_date)
        quantity = parse_quantity(raw_quantity)
        if not channel or parsed_date is None or quantity is None:
            return None
        return DemandEntry(
            channel_id=channel,
            date=parsed_date,
            hour=normalize_hour(raw_hour),
            quantity=quantity,
            extra=extra,
        )
