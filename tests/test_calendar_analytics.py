from datetime import date, timedelta

import pytest

from conftest import TODAY
from goaltracker.schemas.goal_schema import GoalCreate, MilestoneCreate
from goaltracker.schemas.task_schema import TaskCreate
from goaltracker.services.analytics_service import (
    AnalyticsService,
    snapshot_all_users,
    snapshot_daily_stats,
)
from goaltracker.services.calendar_service import CalendarService, calendar_end
from goaltracker.utils import scheduler
from goaltracker.utils.util_func import add_months


async def seed(service):
    goal = await service.create_goal(
        GoalCreate(title="Guitar", start_date=TODAY, end_date=TODAY + timedelta(days=13))
    )
    daily = await service.create_task(TaskCreate(title="Practice", type="daily", goal_id=goal.id))
    weekly = await service.create_task(TaskCreate(title="Lesson", type="weekly", weekday=3, goal_id=goal.id))
    await service.create_milestone(goal.id, MilestoneCreate(title="First song", date=TODAY + timedelta(days=7)))
    await service.create_milestone(goal.id, MilestoneCreate(title="Missed", date=TODAY - timedelta(days=1)))
    return goal, daily, weekly


@pytest.mark.asyncio
async def test_calendar_events_until_goal_end(client, make_service):
    service = make_service()
    goal, daily, _ = await seed(service)
    await service.update_goal_task(daily.id, True)

    events = await CalendarService(client, service).events()

    counts = [e for e in events if e.type == "task-count"]
    assert counts[0].start == TODAY.isoformat()
    assert counts[0].title == "1/1 Tasks"
    assert counts[-1].start == (TODAY + timedelta(days=13)).isoformat()
    wednesday = next(e for e in counts if e.start == "2026-10-21")
    assert wednesday.title == "0/2 Tasks"

    milestones = [e for e in events if e.type == "milestone"]
    assert [m.title for m in milestones] == ["First song"]
    assert milestones[0].goal_title == "Guitar"


@pytest.mark.asyncio
async def test_goal_less_daily_task_runs_a_year_past_other_goals(client, make_service):
    service = make_service()
    await service.create_goal(
        GoalCreate(title="Sprint", start_date=TODAY, end_date=TODAY + timedelta(days=10))
    )
    await service.create_task(TaskCreate(title="Stretch", type="daily"))

    events = await CalendarService(client, service).events()

    counts = [e for e in events if e.type == "task-count"]
    assert len(counts) == 366
    assert counts[-1].start == (TODAY + timedelta(days=365)).isoformat()


@pytest.mark.asyncio
async def test_custom_task_after_goal_end_still_shows(client, make_service):
    service = make_service()
    goal = await service.create_goal(
        GoalCreate(title="Sprint", start_date=TODAY, end_date=TODAY + timedelta(days=10))
    )
    late = TODAY + timedelta(days=20)
    await service.create_task(TaskCreate(title="Retro", type="custom", date=late, goal_id=goal.id))

    events = await CalendarService(client, service).events(TODAY, late)

    assert [e.start for e in events if e.type == "task-count"] == [late.isoformat()]


@pytest.mark.asyncio
async def test_weekly_task_once_in_a_seven_day_calendar_window(client, make_service):
    service = make_service()
    await service.create_task(TaskCreate(title="Swim", type="weekly", weekday=1))

    events = await CalendarService(client, service).events(TODAY, TODAY + timedelta(days=6))

    instances = [i for e in events for i in e.tasks]
    assert [(i.task.title, i.date) for i in instances] == [("Swim", TODAY)]


def test_calendar_defaults_to_six_months_without_tasks():
    assert calendar_end([], [], TODAY) == add_months(TODAY, 6)


def test_add_months_clamps_to_month_end():
    assert add_months(date(2027, 1, 31), 1) == date(2027, 2, 28)
    assert add_months(date(2026, 10, 19), 12) == date(2027, 10, 19)


@pytest.mark.asyncio
async def test_calendar_day_lists_instances(client, make_service):
    service = make_service()
    await seed(service)
    instances = await CalendarService(client, service).day(TODAY + timedelta(days=2))
    assert sorted(i.task.title for i in instances) == ["Lesson", "Practice"]


@pytest.mark.asyncio
async def test_completion_series_for_last_week(client, make_service):
    service = make_service()
    _, daily, _ = await seed(service)
    await service.update_goal_task(daily.id, True)

    series = await AnalyticsService(client, service).completion_series("7d")

    assert len(series) == 7
    assert series[-1].date == TODAY.isoformat()
    assert series[-1].rate == 1.0
    # tasks did not exist yet
    assert series[0].total == 0


@pytest.mark.asyncio
async def test_completion_series_for_explicit_days_skips_bad_ones(client, make_service):
    service = make_service()
    await seed(service)
    series = await AnalyticsService(client, service).completion_series(days=[TODAY.isoformat(), "soon"])
    assert [p.date for p in series] == [TODAY.isoformat()]


@pytest.mark.asyncio
async def test_progress_overview(client, make_service):
    service = make_service()
    goal, daily, _ = await seed(service)
    await service.update_goal_task(daily.id, True)
    overview = await AnalyticsService(client, service).progress_overview()
    # no milestone done, the only task due today is done
    assert [(p.goal_id, p.progress) for p in overview] == [(goal.id, 30)]


@pytest.mark.asyncio
async def test_snapshot_daily_stats_is_idempotent(client, make_service):
    service = make_service()
    _, daily, _ = await seed(service)
    await service.update_goal_task(daily.id, True)

    await snapshot_daily_stats(client, "user-1", TODAY)
    stat = await snapshot_daily_stats(client, "user-1", TODAY)

    assert (stat.total, stat.completed) == (1, 1)
    rows = await client.select("daily_task_stats", {"user_id": "user-1"})
    assert len(rows) == 1
    history = await AnalyticsService(client, service).stats_history()
    assert [h.date for h in history] == [TODAY.isoformat()]


@pytest.mark.asyncio
async def test_snapshot_all_users(client, make_service):
    await seed(make_service("a"))
    await seed(make_service("b"))
    assert await snapshot_all_users(client, TODAY) == 2


@pytest.mark.asyncio
async def test_nightly_job_snapshots_yesterday(db, client, make_service, monkeypatch):
    await seed(make_service("a"))

    async def fake_database():
        return db

    monkeypatch.setattr(scheduler, "get_database", fake_database)
    monkeypatch.setattr(scheduler, "get_today", lambda: TODAY + timedelta(days=1))

    assert await scheduler.daily_stats_snapshot() == 1
    rows = await client.select("daily_task_stats", {"user_id": "a"})
    assert [r["date"] for r in rows] == [TODAY.isoformat()]
