import logging
from typing import Any

from site_cms.errors import StoreError
from site_cms.store.sqlite_store import HISTORY_TABLE, ContentStore

logger = logging.getLogger(__name__)

NOTHING_TO_UNDO = "Nothing to undo: no recent changes found."


class HistoryLog:
    """Bounded log of record pre-images backing one-step undo."""

    def __init__(self, store: ContentStore, limit: int = 50) -> None:
        self._store = store
        self._limit = limit

    async def record(self, table: str, record_id: str, previous: dict[str, Any]) -> None:
        try:
            await self._store.insert(
                HISTORY_TABLE,
                {
                    "table_name": table,
                    "record_id": record_id,
                    "previous_data": previous,
                    "action_description": f"Updated {table}",
                },
            )
            await self._evict()
        except StoreError:
            logger.exception("Failed to save history for %s/%s", table, record_id)

    async def _evict(self) -> None:
        stale = await self._store.select(
            HISTORY_TABLE,
            order_by="created_at",
            descending=True,
            offset=self._limit,
        )
        if stale:
            await self._store.delete(HISTORY_TABLE, ids=[row["id"] for row in stale])

    async def undo(self) -> dict[str, str]:
        latest = await self._store.select(
            HISTORY_TABLE, order_by="created_at", descending=True, limit=1
        )
        if not latest:
            return {"message": NOTHING_TO_UNDO}

        entry = latest[0]
        table_name = entry["table_name"]
        record_id = entry["record_id"]
        previous = entry.get("previous_data") or {}
        await self._store.update(table_name, previous, eq={"id": record_id})
        await self._store.delete(HISTORY_TABLE, eq={"id": entry["id"]})
        label = previous.get("section") or record_id
        logger.info("Undid last change to %s (%s)", table_name, label)
        return {"message": f"Reverted last change to {table_name} ({label})"}

    async def size(self) -> int:
        return await self._store.count(HISTORY_TABLE)
