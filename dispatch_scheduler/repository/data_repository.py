"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Iterator, Optional

from dispatch_scheduler.domain.models import (
    ChannelCapacity,
    ReservationKind,
    ReservationRecord,
    TimeSlot,
)
from dispatch_scheduler.domain.ports import LedgerReadError, LedgerWriteError
from dispatch_scheduler.utils.config import Settings, get_settings
from dispatch_scheduler.utils.logger import get_logger


logger = get_logger(__name__)


def _normalize_area(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic.

    Serves as time-slot catalog source, channel capacity source and
    reservation ledger.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS TimeSlots (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        domain TEXT NOT NULL,
                        name TEXT NOT NULL,
                        active INTEGER NOT NULL DEFAULT 1 CHECK (active IN (0,1)),
                        UNIQUE (domain, name)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ChannelCapacities (
                        channel_id TEXT PRIMARY KEY,
                        max_per_slot REAL CHECK (max_per_slot IS NULL OR max_per_slot >= 0),
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ChannelReservations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        channel_id TEXT NOT NULL,
                        reservation_date TEXT NOT NULL,
                        hour TEXT NOT NULL,
                        quantity REAL NOT NULL CHECK (quantity > 0),
                        kind TEXT NOT NULL DEFAULT 'booking'
                            CHECK (kind IN ('booking', 'hold')),
                        requesting_area TEXT,
                        owner TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservations_channel_date_hour
                    ON ChannelReservations(channel_id, reservation_date, hour);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_reference_data(self) -> None:
        """Seed default time slots for every configured domain that has none."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                seeded_domains = []
                for domain in self._settings.scheduling_domains:
                    cursor.execute(
                        "SELECT COUNT(*) AS count FROM TimeSlots WHERE domain = ?;",
                        (domain,),
                    )
                    if int(cursor.fetchone()["count"]) > 0:
                        continue
                    cursor.executemany(
                        """
                        INSERT INTO TimeSlots (domain, name, active)
                        VALUES (?, ?, 1);
                        """,
                        [(domain, slot) for slot in self._settings.default_time_slots],
                    )
                    seeded_domains.append(domain)
                conn.commit()
        except sqlite3.Error as exc:
            raise RuntimeError(f"Reference data seeding failed: {exc}") from exc

        if seeded_domains:
            logger.info(
                "Time slots seeded | domains=%s | slots=%s",
                seeded_domains,
                len(self._settings.default_time_slots),
            )
        else:
            logger.info("Time slots already present; skipping seed")

    # Time slot catalog

    def list_active_time_slots(self, domain: str) -> list[TimeSlot]:
        """Return active slots for a scheduling domain ordered by name."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT name, active
                FROM TimeSlots
                WHERE domain = ? AND active = 1
                ORDER BY name ASC;
                """,
                (domain,),
            )
            return [
                TimeSlot(name=str(row["name"]).strip(), active=bool(row["active"]))
                for row in cursor.fetchall()
            ]

    def save_time_slot(self, domain: str, name: str, active: bool = True) -> TimeSlot:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO TimeSlots (domain, name, active)
                VALUES (?, ?, ?)
                ON CONFLICT (domain, name) DO UPDATE SET active = excluded.active;
                """,
                (domain, name, int(active)),
            )
            conn.commit()
        return TimeSlot(name=name, active=active)

    # Channel capacity profile

    def get_channel_capacity(self, channel_id: str) -> Optional[ChannelCapacity]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT channel_id, max_per_slot FROM ChannelCapacities WHERE channel_id = ?;",
                (channel_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            max_per_slot = row["max_per_slot"]
            return ChannelCapacity(
                channel_id=str(row["channel_id"]),
                max_per_slot=float(max_per_slot) if max_per_slot is not None else None,
            )

    def save_channel_capacity(
        self,
        channel_id: str,
        max_per_slot: Optional[float],
    ) -> ChannelCapacity:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO ChannelCapacities (channel_id, max_per_slot)
                VALUES (?, ?)
                ON CONFLICT (channel_id) DO UPDATE SET
                    max_per_slot = excluded.max_per_slot,
                    updated_at = CURRENT_TIMESTAMP;
                """,
                (channel_id, max_per_slot),
            )
            conn.commit()
        return ChannelCapacity(channel_id=channel_id, max_per_slot=max_per_slot)

    # Reservation ledger

    @contextmanager
    def allocation_scope(self) -> Iterator[None]:
        """Bracket a capacity check and the bookings written from it.

        No lock or transaction is taken here: concurrent submissions can both
        observe the same free capacity and both commit.
        """
        yield

    def sum_reserved_quantity(
        self,
        channel_id: str,
        reservation_date: date,
        hour: str,
        requesting_area: Optional[str],
        exclude_reservation_id: Optional[int] = None,
    ) -> float:
        """Sum bookings plus holds owned by other areas for one bucket.

        Holds of the caller's own area are excluded so that area can reuse
        them. A caller without an area sees every hold, and a hold without an
        area counts against every caller. ``exclude_reservation_id`` leaves one
        row out, for re-checking a reservation that is being edited.
        """
        area = _normalize_area(requesting_area)
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT COALESCE(SUM(quantity), 0) AS reserved
                    FROM ChannelReservations
                    WHERE channel_id = ?
                      AND reservation_date = ?
                      AND hour = ?
                      AND (? IS NULL OR id <> ?)
                      AND (
                          kind = 'booking'
                          OR ? IS NULL
                          OR requesting_area IS NULL
                          OR TRIM(requesting_area) <> ?
                      );
                    """,
                    (
                        channel_id,
                        reservation_date.isoformat(),
                        hour,
                        exclude_reservation_id,
                        exclude_reservation_id,
                        area,
                        area,
                    ),
                )
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise LedgerReadError(
                f"Reserved quantity lookup failed for {channel_id}/{reservation_date}/{hour}: {exc}"
            ) from exc
        return float(row["reserved"])

    def append_reservation(self, record: ReservationRecord) -> int:
        """Insert one ledger row and return its id."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO ChannelReservations (
                        channel_id,
                        reservation_date,
                        hour,
                        quantity,
                        kind,
                        requesting_area,
                        owner
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        record.channel_id,
                        record.date.isoformat(),
                        record.hour,
                        record.quantity,
                        record.kind.value,
                        _normalize_area(record.requesting_area),
                        record.owner,
                    ),
                )
                conn.commit()
                return int(cursor.lastrowid)
        except sqlite3.Error as exc:
            raise LedgerWriteError(
                f"Reservation insert failed for {record.channel_id}/{record.date}/{record.hour}: {exc}"
            ) from exc

    def update_reservation(self, record: ReservationRecord) -> bool:
        """Overwrite the mutable fields of an existing row; False if it is gone."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    UPDATE ChannelReservations
                    SET channel_id = ?,
                        reservation_date = ?,
                        hour = ?,
                        quantity = ?,
                        requesting_area = ?,
                        owner = ?
                    WHERE id = ?;
                    """,
                    (
                        record.channel_id,
                        record.date.isoformat(),
                        record.hour,
                        record.quantity,
                        _normalize_area(record.requesting_area),
                        record.owner,
                        record.reservation_id,
                    ),
                )
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise LedgerWriteError(
                f"Reservation update failed for id {record.reservation_id}: {exc}"
            ) from exc

    def get_reservation(self, reservation_id: int) -> Optional[ReservationRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM ChannelReservations WHERE id = ?;",
                (reservation_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_reservation(row)

    def list_reservations(
        self,
        channel_id: Optional[str] = None,
        reservation_date: Optional[date] = None,
        kind: Optional[ReservationKind] = None,
        owner: Optional[str] = None,
        requesting_area: Optional[str] = None,
    ) -> list[ReservationRecord]:
        """Return ledger rows ordered by date, hour and insertion."""
        clauses: list[str] = []
        params: list[str] = []
        if channel_id is not None:
            clauses.append("channel_id = ?")
            params.append(channel_id)
        if reservation_date is not None:
            clauses.append("reservation_date = ?")
            params.append(reservation_date.isoformat())
        if kind is not None:
            clauses.append("kind = ?")
            params.append(kind.value)
        if owner is not None:
            clauses.append("owner = ?")
            params.append(owner)
        area = _normalize_area(requesting_area)
        if area is not None:
            clauses.append("TRIM(requesting_area) = ?")
            params.append(area)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT *
                FROM ChannelReservations
                {where}
                ORDER BY reservation_date ASC, hour ASC, id ASC;
                """,
                tuple(params),
            )
            return [_row_to_reservation(row) for row in cursor.fetchall()]

    def delete_reservation(self, reservation_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM ChannelReservations WHERE id = ?;",
                (reservation_id,),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete_reservations_for_slot(
        self,
        channel_id: str,
        reservation_date: date,
        hour: str,
        requesting_area: Optional[str] = None,
    ) -> int:
        """Delete every row of one bucket, optionally limited to one area."""
        area = _normalize_area(requesting_area)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                DELETE FROM ChannelReservations
                WHERE channel_id = ?
                  AND reservation_date = ?
                  AND hour = ?
                  AND (? IS NULL OR requesting_area = ?);
                """,
                (channel_id, reservation_date.isoformat(), hour, area, area),
            )
            conn.commit()
            return int(cursor.rowcount)

    def count_reservations(self, kind: Optional[ReservationKind] = None) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            if kind is None:
                cursor.execute("SELECT COUNT(*) AS count FROM ChannelReservations;")
            else:
                cursor.execute(
                    "SELECT COUNT(*) AS count FROM ChannelReservations WHERE kind = ?;",
                    (kind.value,),
                )
            return int(cursor.fetchone()["count"])


def _row_to_reservation(row: sqlite3.Row) -> ReservationRecord:
    return ReservationRecord(
        reservation_id=int(row["id"]),
        channel_id=str(row["channel_id"]),
        date=date.fromisoformat(str(row["reservation_date"])),
        hour=str(row["hour"]),
        quantity=float(row["quantity"]),
        kind=ReservationKind(str(row["kind"])),
        requesting_area=row["requesting_area"],
        owner=row["owner"],
        created_at=row["created_at"],
    )
