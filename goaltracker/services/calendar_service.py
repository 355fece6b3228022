from fastapi import HTTPException
from datetime import date, timedelta
from typing import Dict, List, Optional
import logging

from goaltracker.db.data_client import DataClient, DataClientError
from goaltracker.schemas.analytics_schema import CalendarEvent
from goaltracker.schemas.goal_schema import Goal, Milestone
from goaltracker.schemas.task_schema import CustomTask, Task, TaskInstance
from goaltracker.utils.util_func import add_months
from goaltracker.services.goals_service import GoalStateService
from goaltracker.services.recurrence import (
    DEFAULT_HORIZON_DAYS,
    completion_index,
    is_completed,
    task_dates,
)

logger = logging.getLogger(__name__)

DEFAULT_CALENDAR_MONTHS = 6


def _goal_end(task: Task, goal_ends: Dict[str, Optional[date]]) -> Optional[date]:
    return goal_ends.get(task.goal_id) if task.goal_id else None


def calendar_end(goals: List[Goal], tasks: List[Task], today: date) -> date:
    """Last day worth showing: the latest goal end, or a year ahead when a
    recurring task has no end of its own. Six months when there is nothing."""
    goal_ends = {g.id: g.end_date for g in goals}
    end_dates = [g.end_date for g in goals if g.end_date]
    if any(not isinstance(t, CustomTask) and _goal_end(t, goal_ends) is None for t in tasks):
        end_dates.append(today + timedelta(days=DEFAULT_HORIZON_DAYS))
    if not end_dates:
        return add_months(today, DEFAULT_CALENDAR_MONTHS)
    return max(end_dates)


def instances_by_day(
    tasks: List[Task], goals: List[Goal], completions, start: date, end: date, today: date
) -> Dict[date, List[TaskInstance]]:
    goal_ends = {g.id: g.end_date for g in goals}
    index = completion_index(completions)
    days: Dict[date, List[TaskInstance]] = {}
    for task in tasks:
        for day in task_dates(task, today, _goal_end(task, goal_ends), since=start):
            if start <= day <= end:
                days.setdefault(day, []).append(
                    TaskInstance(task=task, date=day, completed=is_completed(task, day, index))
                )
    return days


def build_calendar_events(
    goals: List[Goal],
    tasks: List[Task],
    milestones: List[Milestone],
    completions,
    start: date,
    end: date,
    today: date,
) -> List[CalendarEvent]:
    goals_by_id = {g.id: g for g in goals}
    events: List[CalendarEvent] = []

    by_day = instances_by_day(tasks, goals, completions, start, end, today)
    for day in sorted(by_day):
        instances = by_day[day]
        completed = sum(1 for i in instances if i.completed)
        events.append(
            CalendarEvent(
                id=f"tasks-{day.isoformat()}",
                title=f"{completed}/{len(instances)} Tasks",
                start=day.isoformat(),
                type="task-count",
                tasks=instances,
            )
        )

    for milestone in milestones:
        if milestone.date < today or not (start <= milestone.date <= end):
            continue
        goal = goals_by_id.get(milestone.goal_id)
        events.append(
            CalendarEvent(
                id=milestone.id,
                title=milestone.title,
                start=milestone.date.isoformat(),
                type="milestone",
                goal_id=milestone.goal_id,
                goal_title=goal.title if goal else None,
                goal_color=goal.color if goal else None,
                completed=milestone.completed,
            )
        )
    return events


class CalendarService:
    def __init__(self, client: DataClient, goal_service: GoalStateService):
        self.client = client
        self.goal_service = goal_service

    async def _completions(self, start: date, end: date) -> list:
        try:
            return await self.client.select(
                "task_completions",
                {
                    "user_id": self.goal_service.user_id,
                    "completion_date": {"$gte": start.isoformat(), "$lte": end.isoformat()},
                },
            )
        except DataClientError as e:
            raise HTTPException(status_code=500, detail=str(e))

    async def events(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[CalendarEvent]:
        await self.goal_service.ensure_loaded()
        store = self.goal_service.store
        today = self.goal_service.today()
        goals = store.goals.values()
        start = start or today
        end = end or calendar_end(goals, store.tasks.values(), today)
        if end < start:
            raise HTTPException(status_code=422, detail="End date is before start date")
        completions = await self._completions(start, end)
        return build_calendar_events(
            goals, store.tasks.values(), store.milestones.values(), completions, start, end, today
        )

    async def day(self, day: date) -> List[TaskInstance]:
        await self.goal_service.ensure_loaded()
        store = self.goal_service.store
        completions = await self._completions(day, day)
        by_day = instances_by_day(
            store.tasks.values(), store.goals.values(), completions, day, day, self.goal_service.today()
        )
        return by_day.get(day, [])
