import pytest

from goaltracker.db.data_client import DataClient


@pytest.mark.asyncio
async def test_insert_assigns_id_and_hides_mongo_key(db):
    client = DataClient(db)
    row = await client.insert("goals", {"title": "Learn Spanish", "user_id": "u"})
    assert row["id"]
    assert "_id" not in row
    stored = await client.select_one("goals", {"id": row["id"]})
    assert stored == {"id": row["id"], "title": "Learn Spanish", "user_id": "u"}


@pytest.mark.asyncio
async def test_upsert_on_composite_key_keeps_one_row(db):
    client = DataClient(db)
    key = {"task_id": "t1", "completion_date": "2026-10-19"}
    first = await client.upsert("task_completions", {**key, "completed": True}, on=tuple(key))
    second = await client.upsert("task_completions", {**key, "completed": False}, on=tuple(key))
    rows = await client.select("task_completions", key)
    assert len(rows) == 1
    assert rows[0]["completed"] is False
    assert first["id"] == second["id"]


@pytest.mark.asyncio
async def test_increment_never_goes_negative(db):
    client = DataClient(db)
    await client.insert("posts", {"id": "p1", "likes": 0})
    await client.increment("posts", {"id": "p1"}, "likes", -1)
    row = await client.select_one("posts", {"id": "p1"})
    assert row["likes"] == 0


@pytest.mark.asyncio
async def test_select_orders_and_limits(db):
    client = DataClient(db)
    await client.insert_many("milestones", [{"date": "2026-12-01"}, {"date": "2026-11-01"}, {"date": "2027-01-01"}])
    rows = await client.select("milestones", order_by="date", descending=True, limit=2)
    assert [r["date"] for r in rows] == ["2027-01-01", "2026-12-01"]


@pytest.mark.asyncio
async def test_delete_requires_filters(db):
    with pytest.raises(ValueError):
        await DataClient(db).delete("goals", {})


@pytest.mark.asyncio
async def test_unknown_table_is_rejected(db):
    with pytest.raises(ValueError):
        await DataClient(db).select("users")


@pytest.mark.asyncio
async def test_distinct_values(db):
    client = DataClient(db)
    await client.insert_many("tasks", [{"user_id": "a"}, {"user_id": "b"}, {"user_id": "a"}])
    assert sorted(await client.distinct("tasks", "user_id")) == ["a", "b"]
