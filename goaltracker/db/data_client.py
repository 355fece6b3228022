from contextlib import contextmanager
from typing import Any, Optional
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from goaltracker.utils.util_func import new_id

logger = logging.getLogger(__name__)

TABLES = (
    "goals",
    "tasks",
    "milestones",
    "reflections",
    "resources",
    "task_completions",
    "communities",
    "posts",
    "comments",
    "community_members",
    "post_likes",
    "profiles",
    "daily_task_stats",
    "goal_builder_sessions",
)

# Mongo's own key never leaves the client
_NO_MONGO_ID = {"_id": 0}


class DataClientError(Exception):
    def __init__(self, table: str, operation: str, error: Exception):
        self.table = table
        self.operation = operation
        self.error = error
        super().__init__(f"{operation} on '{table}' failed: {error}")


class DuplicateRowError(DataClientError):
    """A write collided with a unique index."""


class DataClient:
    """Thin typed CRUD surface over the remote store.

    Every row is a plain dict identified by a string ``id``. Filters are
    Mongo filter documents, so callers can use equality as well as ``$in``,
    ``$gte`` and ``$lte``.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    def _table(self, name: str):
        if name not in TABLES:
            raise ValueError(f"Unknown table: {name}")
        return self.db[name]

    @contextmanager
    def _guard(self, table: str, operation: str):
        try:
            yield
        except DuplicateKeyError as e:
            logger.warning(f"[MongoDB] {operation} on {table} hit a unique key: {e}")
            raise DuplicateRowError(table, operation, e) from e
        except PyMongoError as e:
            logger.error(f"[MongoDB] {operation} on {table} failed: {e}")
            raise DataClientError(table, operation, e) from e

    async def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        with self._guard(table, "select"):
            cursor = self._table(table).find(filters or {}, _NO_MONGO_ID)
            if order_by:
                cursor = cursor.sort(order_by, DESCENDING if descending else ASCENDING)
            if limit:
                cursor = cursor.limit(limit)
            return await cursor.to_list(length=None)

    async def select_one(self, table: str, filters: dict) -> Optional[dict]:
        with self._guard(table, "select_one"):
            return await self._table(table).find_one(filters, _NO_MONGO_ID)

    async def insert(self, table: str, row: dict) -> dict:
        doc = dict(row)
        doc.setdefault("id", new_id())
        with self._guard(table, "insert"):
            await self._table(table).insert_one(doc)
        doc.pop("_id", None)
        return doc

    async def insert_many(self, table: str, rows: list[dict]) -> list[dict]:
        if not rows:
            return []
        docs = []
        for row in rows:
            doc = dict(row)
            doc.setdefault("id", new_id())
            docs.append(doc)
        with self._guard(table, "insert_many"):
            await self._table(table).insert_many(docs)
        for doc in docs:
            doc.pop("_id", None)
        return docs

    async def update(self, table: str, filters: dict, values: dict) -> list[dict]:
        values = {k: v for k, v in values.items() if k != "id"}
        with self._guard(table, "update"):
            if values:
                await self._table(table).update_many(filters, {"$set": values})
        return await self.select(table, filters)

    async def upsert(self, table: str, row: dict, on: tuple[str, ...] = ("id",)) -> dict:
        """Insert ``row`` or update the row matching it on the ``on`` columns."""
        key = {column: row[column] for column in on}
        values = {k: v for k, v in row.items() if k not in on and k != "id"}
        update: dict[str, Any] = {"$setOnInsert": {"id": row.get("id") or new_id()}}
        if "id" in key:
            update = {}
        if values:
            update["$set"] = values
        if not update:
            update = {"$set": key}
        with self._guard(table, "upsert"):
            await self._table(table).update_one(key, update, upsert=True)
            return await self._table(table).find_one(key, _NO_MONGO_ID)

    async def delete(self, table: str, filters: dict) -> int:
        if not filters:
            raise ValueError("Refusing to delete without filters")
        with self._guard(table, "delete"):
            result = await self._table(table).delete_many(filters)
        return result.deleted_count

    async def increment(self, table: str, filters: dict, field: str, amount: int = 1) -> None:
        """Adjust a counter column, clamping it at zero."""
        with self._guard(table, "increment"):
            await self._table(table).update_many(filters, {"$inc": {field: amount}})
            if amount < 0:
                await self._table(table).update_many(
                    {**filters, field: {"$lt": 0}}, {"$set": {field: 0}}
                )

    async def distinct(self, table: str, field: str, filters: Optional[dict] = None) -> list:
        with self._guard(table, "distinct"):
            return await self._table(table).distinct(field, filters or {})
