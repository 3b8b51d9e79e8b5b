import asyncio
import json
import re
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from site_cms.errors import ExpectedSingleRowError, StoreError

SECTION_TABLE = "site_content"
HISTORY_TABLE = "content_history"
PENDING_TABLE = "pending_actions"

STATUS_COLLECTIONS = (
    SECTION_TABLE,
    "team_members",
    "gallery_images",
    "programs",
    "initiatives",
    "events",
    "stats",
)
ALL_TABLES = STATUS_COLLECTIONS + (HISTORY_TABLE, PENDING_TABLE)

_COLUMNS = ("id", "sort_order", "created_at")
_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    SECTION_TABLE: ("section", "content"),
    "team_members": ("name", "role"),
    "gallery_images": ("src",),
    "programs": ("title",),
    "initiatives": ("title",),
    "events": ("title", "slug"),
    "stats": ("label", "value"),
}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class ContentStore:
    """Named collections of JSON records kept in SQLite.

    Every table shares one shape: ``id``, ``sort_order`` and ``created_at``
    are real columns, everything else lives in the ``data`` JSON payload.
    Public query methods are coroutines that run the blocking sqlite3 work
    on a worker thread.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_schema(self) -> None:
        conn = self._get_conn()
        cursor = conn.cursor()
        for table in ALL_TABLES:
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    sort_order INTEGER,
                    created_at TEXT NOT NULL,
                    data TEXT NOT NULL DEFAULT '{{}}'
                )
            """)
        conn.commit()
        conn.close()

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self._insert_sync, table, values)

    async def select(
        self,
        table: str,
        *,
        eq: dict[str, Any] | None = None,
        ilike: dict[str, str] | None = None,
        lt: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        return await asyncio.to_thread(
            self._select_sync, table, eq, ilike, lt, order_by, descending, limit, offset
        )

    async def select_single(
        self,
        table: str,
        *,
        eq: dict[str, Any] | None = None,
        ilike: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        rows = await self.select(table, eq=eq, ilike=ilike)
        if len(rows) != 1:
            raise ExpectedSingleRowError(table, len(rows))
        return rows[0]

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        *,
        eq: dict[str, Any] | None = None,
        ilike: dict[str, str] | None = None,
        single: bool = False,
    ) -> list[dict[str, Any]] | dict[str, Any]:
        rows = await asyncio.to_thread(self._update_sync, table, values, eq, ilike, single)
        return rows[0] if single else rows

    async def delete(
        self,
        table: str,
        *,
        eq: dict[str, Any] | None = None,
        ilike: dict[str, str] | None = None,
        lt: dict[str, Any] | None = None,
        ids: list[str] | None = None,
        single: bool = False,
    ) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._delete_sync, table, eq, ilike, lt, ids, single)

    async def count(self, table: str) -> int:
        return await asyncio.to_thread(self._count_sync, table)

    def _insert_sync(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        self._check_table(table)
        self._check_values(table, values)
        row = {"id": uuid.uuid4().hex, "created_at": utc_now(), **values}
        self._check_required(table, row)
        payload = {k: v for k, v in row.items() if k not in _COLUMNS}
        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT INTO {table} (id, sort_order, created_at, data) VALUES (?, ?, ?, ?)",
                (row["id"], row.get("sort_order"), row["created_at"], json.dumps(payload)),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"insert into {table} failed: {exc}") from exc
        finally:
            conn.close()
        return row

    def _select_sync(
        self,
        table: str,
        eq: dict[str, Any] | None,
        ilike: dict[str, str] | None,
        lt: dict[str, Any] | None,
        order_by: str | None,
        descending: bool,
        limit: int | None,
        offset: int,
    ) -> list[dict[str, Any]]:
        self._check_table(table)
        where, params = self._where(eq, ilike, lt)
        sql = f"SELECT rowid, id, sort_order, created_at, data FROM {table}{where}"
        if order_by is not None:
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY {self._field_expr(order_by)} {direction}, rowid {direction}"
        if limit is not None or offset:
            sql += " LIMIT ? OFFSET ?"
            params.extend([-1 if limit is None else limit, offset])
        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"select from {table} failed: {exc}") from exc
        finally:
            conn.close()
        return [self._row_to_dict(row) for row in rows]

    def _update_sync(
        self,
        table: str,
        values: dict[str, Any],
        eq: dict[str, Any] | None,
        ilike: dict[str, str] | None,
        single: bool,
    ) -> list[dict[str, Any]]:
        self._check_table(table)
        self._check_values(table, values)
        if not values:
            raise StoreError(f"no values to update in {table}")
        where, params = self._where(eq, ilike, None)
        conn = self._get_conn()
        try:
            matched = conn.execute(
                f"SELECT rowid, id, sort_order, created_at, data FROM {table}{where}", params
            ).fetchall()
            if single and len(matched) != 1:
                raise ExpectedSingleRowError(table, len(matched))
            updated = []
            for raw in matched:
                current = self._row_to_dict(raw)
                merged = {**current, **values, "id": current["id"]}
                self._check_required(table, merged)
                payload = {k: v for k, v in merged.items() if k not in _COLUMNS}
                conn.execute(
                    f"UPDATE {table} SET sort_order = ?, created_at = ?, data = ? WHERE id = ?",
                    (merged.get("sort_order"), merged["created_at"], json.dumps(payload), merged["id"]),
                )
                updated.append(merged)
            conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"update of {table} failed: {exc}") from exc
        finally:
            conn.close()
        return updated

    def _delete_sync(
        self,
        table: str,
        eq: dict[str, Any] | None,
        ilike: dict[str, str] | None,
        lt: dict[str, Any] | None,
        ids: list[str] | None,
        single: bool,
    ) -> list[dict[str, Any]]:
        self._check_table(table)
        where, params = self._where(eq, ilike, lt)
        if ids is not None:
            if not ids:
                return []
            placeholders = ", ".join("?" for _ in ids)
            where += (" AND " if where else " WHERE ") + f"id IN ({placeholders})"
            params.extend(ids)
        conn = self._get_conn()
        try:
            matched = conn.execute(
                f"SELECT rowid, id, sort_order, created_at, data FROM {table}{where}", params
            ).fetchall()
            if single and len(matched) != 1:
                raise ExpectedSingleRowError(table, len(matched))
            conn.execute(f"DELETE FROM {table}{where}", params)
            conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"delete from {table} failed: {exc}") from exc
        finally:
            conn.close()
        return [self._row_to_dict(row) for row in matched]

    def _count_sync(self, table: str) -> int:
        self._check_table(table)
        conn = self._get_conn()
        try:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        except sqlite3.Error as exc:
            raise StoreError(f"count of {table} failed: {exc}") from exc
        finally:
            conn.close()

    def _where(
        self,
        eq: dict[str, Any] | None,
        ilike: dict[str, str] | None,
        lt: dict[str, Any] | None,
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for name, value in (eq or {}).items():
            if value is None:
                clauses.append(f"{self._field_expr(name)} IS NULL")
            else:
                clauses.append(f"{self._field_expr(name)} = ?")
                params.append(value)
        for name, pattern in (ilike or {}).items():
            clauses.append(f"lower({self._field_expr(name)}) LIKE lower(?)")
            params.append(pattern)
        for name, value in (lt or {}).items():
            clauses.append(f"{self._field_expr(name)} < ?")
            params.append(value)
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def _field_expr(self, name: str) -> str:
        if not _FIELD_NAME.match(name):
            raise StoreError(f"invalid field name: {name!r}")
        if name in _COLUMNS:
            return name
        return f"json_extract(data, '$.{name}')"

    def _check_table(self, table: str) -> None:
        if table not in ALL_TABLES:
            raise StoreError(f"unknown table: {table}")

    def _check_values(self, table: str, values: Any) -> None:
        if not isinstance(values, dict):
            raise StoreError(f"values for {table} must be an object, got {type(values).__name__}")

    def _check_required(self, table: str, row: dict[str, Any]) -> None:
        missing = [name for name in REQUIRED_FIELDS.get(table, ()) if row.get(name) is None]
        if missing:
            raise StoreError(f"{table} requires {', '.join(missing)}")

    def _row_to_dict(self, row: sqlite3.Row) -> dict[str, Any]:
        record: dict[str, Any] = {"id": row["id"], "created_at": row["created_at"]}
        if row["sort_order"] is not None:
            record["sort_order"] = row["sort_order"]
        record.update(json.loads(row["data"]))
        return record
