from datetime import date

import pytest
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import PyMongoError

from goaltracker.db.data_client import DataClient, DataClientError
from goaltracker.services.goal_store import GoalStore, store_registry
from goaltracker.services.goals_service import GoalStateService

# a Monday; weekday 1 with Sunday as 0
TODAY = date(2026, 10, 19)


class FlakyClient(DataClient):
    """DataClient that records writes and fails the ones listed in ``fail_on``."""

    def __init__(self, db):
        super().__init__(db)
        self.fail_on = set()
        self.calls = []

    def _record(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if (operation, table) in self.fail_on:
            raise DataClientError(table, operation, PyMongoError("simulated outage"))

    def writes(self, table: str = None):
        return [c for c in self.calls if c[0] != "select" and (table is None or c[1] == table)]

    async def select(self, table, filters=None, **kwargs):
        self._record("select", table)
        return await super().select(table, filters, **kwargs)

    async def insert(self, table, row):
        self._record("insert", table)
        return await super().insert(table, row)

    async def insert_many(self, table, rows):
        self._record("insert_many", table)
        return await super().insert_many(table, rows)

    async def update(self, table, filters, values):
        self._record("update", table)
        return await super().update(table, filters, values)

    async def upsert(self, table, row, on=("id",)):
        self._record("upsert", table)
        return await super().upsert(table, row, on)

    async def delete(self, table, filters):
        self._record("delete", table)
        return await super().delete(table, filters)


@pytest.fixture
def db():
    return AsyncMongoMockClient()["goaltracker_test"]


@pytest.fixture
def client(db):
    return FlakyClient(db)


@pytest.fixture(autouse=True)
def clear_store_registry():
    store_registry.clear()
    yield
    store_registry.clear()


@pytest.fixture
def make_service(client):
    def factory(user_id: str = "user-1", today: date = TODAY) -> GoalStateService:
        return GoalStateService(client, user_id, store=GoalStore(user_id), today=lambda: today)

    return factory
