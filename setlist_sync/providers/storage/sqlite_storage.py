"""SQLite-backed row store.

Every logical table lives in a single ``records`` table as JSON documents,
unique on ``(table_name, natural_key)``.  Uses ``aiosqlite`` for async I/O
and opens one connection per operation.  Upserts run inside
``BEGIN IMMEDIATE`` so two writers racing on the same natural key are
serialized by SQLite and end up with one row.

Equality filters on string values are pushed down to SQLite through
``json_extract``; every filter is then re-checked in Python, which also
handles the comparison operators and ordering.
"""

from __future__ import annotations

import json
import uuid
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from setlist_sync.interfaces.storage_provider import IStorageProvider, StoredRecord
from setlist_sync.models.entities import utc_now
from setlist_sync.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/setlist_sync.db")

_CREATE_RECORDS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS records (
    id          TEXT    PRIMARY KEY,
    table_name  TEXT    NOT NULL,
    natural_key TEXT    NOT NULL,
    fields      TEXT    NOT NULL,
    created_at  TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_records_natural_key ON records(table_name, natural_key);",
    "CREATE INDEX IF NOT EXISTS idx_records_table ON records(table_name);",
]

_SELECT_BY_KEY_SQL = """\
SELECT id, table_name, natural_key, fields, created_at, updated_at
FROM records
WHERE table_name = ? AND natural_key = ?;
"""

_SELECT_BY_ID_SQL = """\
SELECT id, table_name, natural_key, fields, created_at, updated_at
FROM records
WHERE table_name = ? AND id = ?;
"""

_SELECT_TABLE_SQL = """\
SELECT id, table_name, natural_key, fields, created_at, updated_at
FROM records
WHERE table_name = ?
"""

_INSERT_SQL = """\
INSERT INTO records (id, table_name, natural_key, fields, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?);
"""

_UPDATE_SQL = """\
UPDATE records SET fields = ?, updated_at = ?
WHERE id = ?;
"""

_OPERATORS = ("ne", "gte", "gt", "lte", "lt", "in")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _split_filter(name: str) -> tuple[str, str]:
    field_name, sep, op = name.rpartition("__")
    if sep and op in _OPERATORS:
        return field_name, op
    return name, "eq"


def _matches(fields: dict[str, Any], filters: dict[str, Any]) -> bool:
    for name, expected in filters.items():
        field_name, op = _split_filter(name)
        actual = fields.get(field_name)
        if isinstance(expected, Enum):
            expected = expected.value
        if op == "eq":
            if actual != expected:
                return False
        elif op == "ne":
            if actual == expected:
                return False
        elif op == "in":
            values = [v.value if isinstance(v, Enum) else v for v in expected]
            if actual not in values:
                return False
        else:
            if actual is None or expected is None:
                return False
            try:
                ok = {
                    "gte": actual >= expected,
                    "gt": actual > expected,
                    "lte": actual <= expected,
                    "lt": actual < expected,
                }[op]
            except TypeError:
                return False
            if not ok:
                return False
    return True


def _sort_records(records: list[StoredRecord], order_by: list[str]) -> list[StoredRecord]:
    # Stable multi-key sort: apply keys from least to most significant.
    # Missing values always sort last.
    result = list(records)
    for spec in reversed(order_by):
        descending = spec.startswith("-")
        field_name = spec.lstrip("-")
        present = [r for r in result if _field_value(r, field_name) is not None]
        missing = [r for r in result if _field_value(r, field_name) is None]
        present.sort(key=lambda r: _field_value(r, field_name), reverse=descending)
        result = present + missing
    return result


def _field_value(record: StoredRecord, field_name: str) -> Any:
    if field_name == "id":
        return record.id
    if field_name == "natural_key":
        return record.natural_key
    if field_name in ("created_at", "updated_at") and field_name not in record.fields:
        value = getattr(record, field_name)
        return value.isoformat() if value else None
    return record.fields.get(field_name)


def _row_to_record(row: aiosqlite.Row, created: bool = False) -> StoredRecord:
    return StoredRecord(
        id=row["id"],
        table=row["table_name"],
        natural_key=row["natural_key"],
        fields=json.loads(row["fields"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        created=created,
    )


class SQLiteStorageProvider(IStorageProvider):
    """JSON-document store on a local SQLite file."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the records table and its indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_RECORDS_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("storage_db_initialized", path=str(self._db_path))

    async def upsert(
        self,
        table: str,
        natural_key: str,
        fields: dict[str, Any],
    ) -> StoredRecord:
        """Insert or shallow-merge the document under (*table*, *natural_key*)."""
        if not natural_key:
            raise StorageError(message=f"Empty natural key for table '{table}'")

        now = utc_now().isoformat()
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("BEGIN IMMEDIATE;")
                cursor = await db.execute(_SELECT_BY_KEY_SQL, (table, natural_key))
                row = await cursor.fetchone()

                if row is None:
                    record_id = uuid.uuid4().hex
                    payload = json.dumps(fields, default=_json_default, sort_keys=True)
                    await db.execute(
                        _INSERT_SQL,
                        (record_id, table, natural_key, payload, now, now),
                    )
                    created = True
                else:
                    record_id = row["id"]
                    merged = {**json.loads(row["fields"]), **fields}
                    payload = json.dumps(merged, default=_json_default, sort_keys=True)
                    await db.execute(_UPDATE_SQL, (payload, now, record_id))
                    created = False

                await db.commit()

                cursor = await db.execute(_SELECT_BY_ID_SQL, (table, record_id))
                stored = await cursor.fetchone()
        except (aiosqlite.Error, TypeError, ValueError) as exc:
            raise StorageError(
                message=f"Upsert into '{table}' failed for key '{natural_key}': {exc}"
            ) from exc

        logger.debug("record_upserted", table=table, natural_key=natural_key, created=created)
        return _row_to_record(stored, created=created)

    async def get(self, table: str, natural_key: str) -> StoredRecord | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_BY_KEY_SQL, (table, natural_key))
            row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def get_by_id(self, table: str, record_id: str) -> StoredRecord | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_BY_ID_SQL, (table, record_id))
            row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def query(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: list[str] | None = None,
        limit: int | None = None,
    ) -> list[StoredRecord]:
        """Return records of *table* matching *filters*, ordered and limited."""
        filters = filters or {}
        sql = _SELECT_TABLE_SQL
        params: list[Any] = [table]
        for name, value in filters.items():
            field_name, op = _split_filter(name)
            if op == "eq" and isinstance(value, str) and field_name.isidentifier():
                sql += f" AND json_extract(fields, '$.{field_name}') = ?"
                params.append(value)
        sql += " ORDER BY created_at, id;"

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()

        records = [_row_to_record(row) for row in rows]
        records = [r for r in records if _matches(r.fields, filters)]
        if order_by:
            records = _sort_records(records, order_by)
        if limit is not None:
            records = records[:limit]
        return records
