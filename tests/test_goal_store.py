from datetime import date

from goaltracker.schemas.goal_schema import Goal
from goaltracker.services.goal_store import EntityTable, GoalStore, StoreSnapshot


def goal(goal_id, title="Run a marathon", progress=0):
    return Goal(id=goal_id, user_id="u", title=title, start_date=date(2026, 10, 1), progress=progress)


def test_refresh_replaces_untouched_entries():
    store = GoalStore("u")
    store.goals.put("g1", goal("g1", "old"), store.tick())
    generation = store.begin_refresh()
    store.apply_snapshot(generation, StoreSnapshot(goals={"g1": goal("g1", "new")}))
    assert store.goals.get("g1").title == "new"
    assert store.loaded


def test_refresh_keeps_local_write_made_while_fetching():
    store = GoalStore("u")
    store.goals.put("g1", goal("g1", progress=10), store.tick())
    generation = store.begin_refresh()
    # user edits while the fetch is in flight
    store.goals.put("g1", goal("g1", progress=60), store.tick())
    store.apply_snapshot(generation, StoreSnapshot(goals={"g1": goal("g1", progress=10)}))
    assert store.goals.get("g1").progress == 60


def test_refresh_does_not_resurrect_deleted_entries():
    store = GoalStore("u")
    store.goals.put("g1", goal("g1"), store.tick())
    generation = store.begin_refresh()
    store.goals.remove("g1", store.tick())
    store.apply_snapshot(generation, StoreSnapshot(goals={"g1": goal("g1")}))
    assert "g1" not in store.goals


def test_refresh_drops_entries_missing_remotely():
    store = GoalStore("u")
    store.goals.put("g1", goal("g1"), store.tick())
    store.apply_snapshot(store.begin_refresh(), StoreSnapshot())
    assert len(store.goals) == 0


def test_entry_created_during_refresh_survives():
    table = EntityTable()
    generation = 5
    table.put("new", "value", 6)
    table.merge({}, generation, 7)
    assert table.get("new") == "value"


def test_notifications_are_drained_once():
    store = GoalStore("u")
    store.notify("error", "Failed to update task")
    drained = store.drain_notifications()
    assert [n.message for n in drained] == ["Failed to update task"]
    assert store.drain_notifications() == []


def test_overlapping_refreshes_keep_deleted_entries_gone():
    store = GoalStore("u")
    store.goals.put("g1", goal("g1"), store.tick())
    slow = store.begin_refresh()
    store.goals.remove("g1", store.tick())
    fast = store.begin_refresh()

    store.apply_snapshot(fast, StoreSnapshot())
    # the slow fetch still saw g1 before it was deleted
    store.apply_snapshot(slow, StoreSnapshot(goals={"g1": goal("g1")}))

    assert "g1" not in store.goals


def test_overlapping_refreshes_keep_newer_snapshot():
    store = GoalStore("u")
    slow = store.begin_refresh()
    fast = store.begin_refresh()
    store.apply_snapshot(fast, StoreSnapshot(goals={"g1": goal("g1", progress=40)}))
    store.apply_snapshot(slow, StoreSnapshot(goals={"g1": goal("g1", progress=10)}))
    assert store.goals.get("g1").progress == 40


def test_tombstones_are_pruned_once_no_refresh_is_pending():
    store = GoalStore("u")
    store.goals.put("g1", goal("g1"), store.tick())
    generation = store.begin_refresh()
    store.goals.remove("g1", store.tick())
    store.apply_snapshot(generation, StoreSnapshot())
    # a later refresh that sees g1 again is authoritative
    store.apply_snapshot(store.begin_refresh(), StoreSnapshot(goals={"g1": goal("g1")}))
    assert "g1" in store.goals


def test_abandoned_refresh_releases_tombstones():
    store = GoalStore("u")
    store.goals.put("g1", goal("g1"), store.tick())
    failed = store.begin_refresh()
    store.goals.remove("g1", store.tick())
    store.abandon_refresh(failed)
    store.apply_snapshot(store.begin_refresh(), StoreSnapshot())
    assert store.goals._tombstones == {}
