from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Protocol

from ..errors import StoreUnavailable
from ..models import Enrichment, EnrichmentCacheEntry


class EnrichmentStore(Protocol):
    """Durable tier of the enrichment cache, keyed by normalized PIN."""

    def get(self, pin: str) -> Optional[EnrichmentCacheEntry]:
        ...

    def upsert(self, entry: EnrichmentCacheEntry) -> None:
        ...


class SQLiteEnrichmentStore:
    """SQLite persistence for provider answers.

    ``has_data`` separates "answered with nothing usable" from an answer whose
    fields all happen to be null. Every sqlite3 error surfaces as
    StoreUnavailable.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        try:
            if str(path) != ":memory:":
                self.path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(path), check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            raise StoreUnavailable(f"cannot open enrichment store {path}: {exc}") from exc

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def _init_schema(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS enrichment_cache (
                pin TEXT PRIMARY KEY,
                living_area REAL,
                year_built INTEGER,
                bedrooms INTEGER,
                bathrooms REAL,
                has_data INTEGER NOT NULL DEFAULT 0,
                raw_payload TEXT,
                fetched_at TEXT NOT NULL
            )
            """
        )
        self.conn.commit()

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise StoreUnavailable("enrichment store is closed")
        return self.conn

    def get(self, pin: str) -> Optional[EnrichmentCacheEntry]:
        with self._lock:
            try:
                row = self._connection().execute(
                    "SELECT * FROM enrichment_cache WHERE pin = ?", (pin,)
                ).fetchone()
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"read failed for {pin}: {exc}") from exc
        if row is None:
            return None
        enrichment = None
        if row["has_data"]:
            enrichment = Enrichment(
                living_area=row["living_area"],
                year_built=row["year_built"],
                bedrooms=row["bedrooms"],
                bathrooms=row["bathrooms"],
            )
        raw_payload = None
        if row["raw_payload"] is not None:
            try:
                raw_payload = json.loads(row["raw_payload"])
            except ValueError:
                raw_payload = None
        return EnrichmentCacheEntry(
            pin=row["pin"],
            enrichment=enrichment,
            raw_payload=raw_payload if isinstance(raw_payload, dict) else None,
            fetched_at=datetime.fromisoformat(row["fetched_at"]),
        )

    def upsert(self, entry: EnrichmentCacheEntry) -> None:
        enrichment = entry.enrichment or Enrichment()
        raw = None
        if entry.raw_payload is not None:
            raw = json.dumps(entry.raw_payload, sort_keys=True, default=str)
        with self._lock:
            try:
                conn = self._connection()
                conn.execute(
                    """
                    INSERT INTO enrichment_cache (
                        pin, living_area, year_built, bedrooms, bathrooms,
                        has_data, raw_payload, fetched_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(pin) DO UPDATE SET
                        living_area=excluded.living_area,
                        year_built=excluded.year_built,
                        bedrooms=excluded.bedrooms,
                        bathrooms=excluded.bathrooms,
                        has_data=excluded.has_data,
                        raw_payload=excluded.raw_payload,
                        fetched_at=excluded.fetched_at
                    """,
                    (
                        entry.pin,
                        enrichment.living_area,
                        enrichment.year_built,
                        enrichment.bedrooms,
                        enrichment.bathrooms,
                        1 if entry.enrichment is not None else 0,
                        raw,
                        entry.fetched_at.isoformat(),
                    ),
                )
                conn.commit()
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"write failed for {entry.pin}: {exc}") from exc

    def summary(self) -> Dict[str, int]:
        with self._lock:
            try:
                row = self._connection().execute(
                    """
                    SELECT
                        COUNT(*) AS entries,
                        COALESCE(SUM(has_data), 0) AS with_data,
                        COALESCE(SUM(raw_payload IS NOT NULL), 0) AS with_payload
                    FROM enrichment_cache
                    """
                ).fetchone()
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"summary failed: {exc}") from exc
        return {
            "entries": int(row["entries"]),
            "with_data": int(row["with_data"]),
            "with_payload": int(row["with_payload"]),
        }
