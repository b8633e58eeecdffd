# src/storage/sqlite_store.py — v1
"""SQLite-backed result store (RESULT_STORE_BACKEND=sqlite).

Uses stdlib sqlite3. Items are stored as JSON documents keyed by
(entity, workflow_id, id); the result set GUID lives in a meta table so a
reopened file keeps its identity.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Mapping, Sequence

from pydantic import BaseModel

from toppbridge.core.models import Peak, SpectrumDescriptor
from toppbridge.storage.base_result_store import BaseResultStore, ItemKey

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS spectra (
    workflow_id INTEGER NOT NULL,
    spectrum_id INTEGER NOT NULL,
    retention_time REAL NOT NULL,
    mass_over_charge REAL NOT NULL,
    charge INTEGER NOT NULL DEFAULT 0,
    peaks TEXT NOT NULL DEFAULT '[]',
    PRIMARY KEY (workflow_id, spectrum_id)
);
CREATE TABLE IF NOT EXISTS entities (
    name TEXT PRIMARY KEY
);
CREATE TABLE IF NOT EXISTS items (
    entity TEXT NOT NULL,
    workflow_id INTEGER NOT NULL,
    id INTEGER NOT NULL,
    seq INTEGER NOT NULL,
    data TEXT NOT NULL,
    PRIMARY KEY (entity, workflow_id, id)
);
CREATE TABLE IF NOT EXISTS connections (
    entity TEXT NOT NULL,
    workflow_id INTEGER NOT NULL,
    id INTEGER NOT NULL,
    spectrum_workflow_id INTEGER NOT NULL,
    spectrum_id INTEGER NOT NULL,
    PRIMARY KEY (entity, workflow_id, id, spectrum_workflow_id, spectrum_id)
);
"""


class SqliteResultStore(BaseResultStore):
    """Result store persisted to a single SQLite file."""

    def __init__(self, db_path: Path | str, result_set_guid: str | None = None) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        self._guid = self._init_guid(result_set_guid)

    def _init_guid(self, requested: str | None) -> str:
        row = self._db.execute("SELECT value FROM meta WHERE key = 'guid'").fetchone()
        if row is not None:
            if requested and requested != row[0]:
                logger.warning(
                    "%s already has result set GUID %s, ignoring %s",
                    self._db_path.name, row[0], requested,
                )
            return row[0]
        guid = requested or str(uuid.uuid4())
        self._db.execute("INSERT INTO meta (key, value) VALUES ('guid', ?)", (guid,))
        self._db.commit()
        return guid

    @property
    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError(f"Result store {self._db_path} is closed")
        return self._conn

    @property
    def result_set_guid(self) -> str:
        return self._guid

    async def is_live(self) -> bool:
        if self._conn is None:
            return False
        self._conn.execute("SELECT 1").fetchone()
        return True

    # --- Spectra ---

    async def add_spectra(
        self, spectra: Sequence[tuple[SpectrumDescriptor, Sequence[Peak]]]
    ) -> None:
        self._db.executemany(
            """INSERT OR REPLACE INTO spectra
               (workflow_id, spectrum_id, retention_time, mass_over_charge, charge, peaks)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [
                (
                    s.workflow_id,
                    s.spectrum_id,
                    s.retention_time,
                    s.mass_over_charge,
                    s.charge,
                    json.dumps([[p.mz, p.intensity] for p in peaks]),
                )
                for s, peaks in spectra
            ],
        )
        self._db.commit()

    async def list_spectra(self, workflow_id: int | None = None) -> list[SpectrumDescriptor]:
        sql = "SELECT workflow_id, spectrum_id, retention_time, mass_over_charge, charge FROM spectra"
        params: tuple[Any, ...] = ()
        if workflow_id is not None:
            sql += " WHERE workflow_id = ?"
            params = (workflow_id,)
        sql += " ORDER BY workflow_id, spectrum_id"
        return [_descriptor(row) for row in self._db.execute(sql, params).fetchall()]

    async def read_spectrum(self, workflow_id: int, spectrum_id: int) -> SpectrumDescriptor | None:
        row = self._db.execute(
            """SELECT workflow_id, spectrum_id, retention_time, mass_over_charge, charge
               FROM spectra WHERE workflow_id = ? AND spectrum_id = ?""",
            (workflow_id, spectrum_id),
        ).fetchone()
        return None if row is None else _descriptor(row)

    async def read_peaks(self, workflow_id: int, spectrum_id: int) -> list[Peak] | None:
        row = self._db.execute(
            "SELECT peaks FROM spectra WHERE workflow_id = ? AND spectrum_id = ?",
            (workflow_id, spectrum_id),
        ).fetchone()
        if row is None:
            return None
        return [Peak(mz=mz, intensity=intensity) for mz, intensity in json.loads(row[0])]

    # --- Entities ---

    async def register_entity(self, entity: str) -> None:
        self._db.execute("INSERT OR IGNORE INTO entities (name) VALUES (?)", (entity,))
        self._db.commit()

    async def next_id(self, entity: str) -> int:
        row = self._db.execute(
            "SELECT COALESCE(MAX(id), 0) FROM items WHERE entity = ?", (entity,)
        ).fetchone()
        return int(row[0]) + 1

    async def insert_items(self, entity: str, items: Sequence[BaseModel]) -> None:
        row = self._db.execute(
            "SELECT COALESCE(MAX(seq), 0) FROM items WHERE entity = ?", (entity,)
        ).fetchone()
        seq = int(row[0])
        rows = []
        for item in items:
            seq += 1
            data = item.model_dump(mode="json")
            rows.append((entity, data["workflow_id"], data["id"], seq, json.dumps(data)))
        self._db.executemany(
            "INSERT OR REPLACE INTO items (entity, workflow_id, id, seq, data) VALUES (?, ?, ?, ?, ?)",
            rows,
        )
        self._db.commit()

    async def read_items(self, entity: str) -> list[dict[str, Any]]:
        rows = self._db.execute(
            "SELECT data FROM items WHERE entity = ? ORDER BY seq", (entity,)
        ).fetchall()
        return [json.loads(row[0]) for row in rows]

    async def update_items(
        self, entity: str, updates: Mapping[ItemKey, Mapping[str, Any]]
    ) -> int:
        changed = 0
        for (workflow_id, item_id), fields in updates.items():
            row = self._db.execute(
                "SELECT data FROM items WHERE entity = ? AND workflow_id = ? AND id = ?",
                (entity, workflow_id, item_id),
            ).fetchone()
            if row is None:
                continue
            data = json.loads(row[0])
            data.update(fields)
            self._db.execute(
                "UPDATE items SET data = ? WHERE entity = ? AND workflow_id = ? AND id = ?",
                (json.dumps(data), entity, workflow_id, item_id),
            )
            changed += 1
        self._db.commit()
        return changed

    async def connect_items(
        self, entity: str, pairs: Sequence[tuple[ItemKey, ItemKey]]
    ) -> None:
        self._db.executemany(
            """INSERT OR IGNORE INTO connections
               (entity, workflow_id, id, spectrum_workflow_id, spectrum_id)
               VALUES (?, ?, ?, ?, ?)""",
            [(entity, *item_key, *spectrum_key) for item_key, spectrum_key in pairs],
        )
        self._db.commit()

    async def connected_spectra(self, entity: str, key: ItemKey) -> list[ItemKey]:
        rows = self._db.execute(
            """SELECT spectrum_workflow_id, spectrum_id FROM connections
               WHERE entity = ? AND workflow_id = ? AND id = ?
               ORDER BY spectrum_workflow_id, spectrum_id""",
            (entity, *key),
        ).fetchall()
        return [(int(a), int(b)) for a, b in rows]

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def _descriptor(row: tuple[Any, ...]) -> SpectrumDescriptor:
    return SpectrumDescriptor(
        workflow_id=row[0],
        spectrum_id=row[1],
        retention_time=row[2],
        mass_over_charge=row[3],
        charge=row[4],
    )
