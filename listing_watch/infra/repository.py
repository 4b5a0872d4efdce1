"""Persistence collaborator: tracked targets and the listings seen for them."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager, suppress
from pathlib import Path
from threading import Lock
from typing import Iterator, Protocol

from ..config import TrackedTarget
from ..errors import StorageFailure
from ..records import ListingRecord, SeenListing
from .storage import SQLiteManager

_UNSET = object()
DEFAULT_DETAIL_URL = "https://www.yad2.co.il/realestate/item/{token}"


class ListingStore(Protocol):
    """The only operations the scan pipeline performs against storage."""

    def get_seen_tokens(self, target_id: int) -> set[str]:
        ...

    def append_seen_listing(self, target_id: int, record: ListingRecord) -> bool:
        ...

    def get_all_listings(self, target_id: int) -> list[SeenListing]:
        ...

    def get_listings_below_threshold(self, target_id: int, threshold: float) -> list[SeenListing]:
        ...


class SQLiteListingStore:
    """SQLite-backed listing store plus the target bookkeeping used by the CLI."""

    def __init__(
        self,
        manager: SQLiteManager,
        db_path: Path,
        detail_url_template: str = DEFAULT_DETAIL_URL,
    ) -> None:
        self.manager = manager
        self.db_path = db_path
        self.detail_url_template = detail_url_template
        self._lock = Lock()
        self._conn = self.manager.connect(db_path)

    @contextmanager
    def _cursor(self, *, commit: bool = False) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                if commit:
                    self._conn.commit()
            except sqlite3.Error as exc:
                with suppress(sqlite3.Error):
                    self._conn.rollback()
                raise StorageFailure(f"Database error: {exc}") from exc

    # ------------------------------------------------------------------
    # Listing contract
    # ------------------------------------------------------------------
    def get_seen_tokens(self, target_id: int) -> set[str]:
        with self._cursor() as conn:
            rows = conn.execute(
                "SELECT token FROM seen_listings WHERE target_id = ?", (target_id,)
            ).fetchall()
        return {row["token"] for row in rows}

    def append_seen_listing(self, target_id: int, record: ListingRecord) -> bool:
        """Record a listing once; returns False when the token was already stored."""

        with self._cursor(commit=True) as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO seen_listings
                    (target_id, token, price, sqm, price_per_sqm, address, rooms, property_type)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    target_id,
                    record.token,
                    record.price,
                    record.area,
                    record.price_per_area,
                    record.address,
                    record.rooms,
                    record.property_type,
                ),
            )
            return cur.rowcount > 0

    def get_all_listings(self, target_id: int) -> list[SeenListing]:
        with self._cursor() as conn:
            rows = conn.execute(
                "SELECT * FROM seen_listings WHERE target_id = ? ORDER BY first_seen_at DESC, id DESC",
                (target_id,),
            ).fetchall()
        return [self._row_to_listing(row) for row in rows]

    def get_listings_below_threshold(self, target_id: int, threshold: float) -> list[SeenListing]:
        with self._cursor() as conn:
            rows = conn.execute(
                """
                SELECT * FROM seen_listings
                WHERE target_id = ? AND price_per_sqm IS NOT NULL AND price_per_sqm <= ?
                ORDER BY price_per_sqm
                """,
                (target_id, threshold),
            ).fetchall()
        return [self._row_to_listing(row) for row in rows]

    # ------------------------------------------------------------------
    # Tracked targets
    # ------------------------------------------------------------------
    def add_target(self, name: str, url: str, max_price_per_sqm: float | None = None) -> TrackedTarget:
        # validate before anything is written
        TrackedTarget(id=0, name=name, url=url, max_price_per_sqm=max_price_per_sqm)
        with self._cursor(commit=True) as conn:
            cur = conn.execute(
                "INSERT INTO tracked_targets (name, url, max_price_per_sqm) VALUES (?, ?, ?)",
                (name, url, max_price_per_sqm),
            )
            target_id = cur.lastrowid
        target = self.get_target(target_id)
        assert target is not None
        return target

    def list_targets(self) -> list[TrackedTarget]:
        with self._cursor() as conn:
            rows = conn.execute(
                "SELECT * FROM tracked_targets ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [self._row_to_target(row) for row in rows]

    def get_target(self, target_id: int) -> TrackedTarget | None:
        with self._cursor() as conn:
            row = conn.execute(
                "SELECT * FROM tracked_targets WHERE id = ?", (target_id,)
            ).fetchone()
        return self._row_to_target(row) if row else None

    def update_target(
        self,
        target_id: int,
        *,
        name: str | None = None,
        url: str | None = None,
        max_price_per_sqm: float | None | object = _UNSET,
    ) -> TrackedTarget | None:
        """Update fields of a target; a changed URL drops the listings seen for the old search."""

        current = self.get_target(target_id)
        if current is None:
            return None
        sets: list[str] = []
        values: list[object] = []
        if name is not None:
            sets.append("name = ?")
            values.append(name)
        if url is not None:
            sets.append("url = ?")
            values.append(url)
        if max_price_per_sqm is not _UNSET:
            sets.append("max_price_per_sqm = ?")
            values.append(max_price_per_sqm)
        if not sets:
            return current
        TrackedTarget(
            id=target_id,
            name=current.name if name is None else name,
            url=current.url if url is None else url,
            max_price_per_sqm=(
                current.max_price_per_sqm if max_price_per_sqm is _UNSET else max_price_per_sqm
            ),
        )
        with self._cursor(commit=True) as conn:
            if url is not None and url != current.url:
                conn.execute("DELETE FROM seen_listings WHERE target_id = ?", (target_id,))
            conn.execute(
                f"UPDATE tracked_targets SET {', '.join(sets)} WHERE id = ?",
                (*values, target_id),
            )
        return self.get_target(target_id)

    def remove_target(self, target_id: int) -> bool:
        with self._cursor(commit=True) as conn:
            conn.execute("DELETE FROM seen_listings WHERE target_id = ?", (target_id,))
            cur = conn.execute("DELETE FROM tracked_targets WHERE id = ?", (target_id,))
            return cur.rowcount > 0

    # ------------------------------------------------------------------
    def _row_to_listing(self, row: sqlite3.Row) -> SeenListing:
        return SeenListing(
            target_id=row["target_id"],
            token=row["token"],
            price=row["price"],
            area=row["sqm"],
            price_per_area=row["price_per_sqm"],
            address=row["address"] or "",
            rooms=row["rooms"],
            property_type=row["property_type"] or "",
            first_seen_at=row["first_seen_at"],
            link=self.detail_url_template.format(token=row["token"]),
        )

    @staticmethod
    def _row_to_target(row: sqlite3.Row) -> TrackedTarget:
        return TrackedTarget(
            id=row["id"],
            name=row["name"],
            url=row["url"],
            max_price_per_sqm=row["max_price_per_sqm"],
            created_at=row["created_at"],
        )


__all__ = ["ListingStore", "SQLiteListingStore"]
