"""Projection of task definitions onto concrete calendar days.

A task definition is one of three variants:

- daily: one instance per day from its creation date onward
- weekly: one instance on each day whose weekday (0 = Sunday) matches
- custom: a single instance on its own date

Completion of recurring instances lives in ``TaskCompletion`` records keyed by
``(task_id, ISO date)``; a missing record means the instance is incomplete.
Custom tasks carry their own ``completed`` flag.
"""

from datetime import date, datetime, time, timedelta
from dateutil.rrule import DAILY, FR, MO, SA, SU, TH, TU, WE, WEEKLY, rrule
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union
import logging

from goaltracker.schemas.analytics_schema import CompletionPoint
from goaltracker.schemas.task_schema import (
    CustomTask,
    Task,
    TaskCompletion,
    TaskInstance,
    WeeklyTask,
)

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 365

# rrule weekdays indexed with Sunday as 0
SUNDAY_FIRST = (SU, MO, TU, WE, TH, FR, SA)

CompletionKey = Tuple[str, str]
CompletionIndex = Mapping[CompletionKey, bool]


def parse_iso_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    value = value.strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    # full timestamps keep their calendar day
    if len(value) <= 10 or value[10] not in "T ":
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def sunday_weekday(day: date) -> int:
    """Weekday number with Sunday as 0 and Saturday as 6."""
    return (day.weekday() + 1) % 7


def date_range(start: date, end: date) -> List[date]:
    if end < start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def is_active_on(task: Task, day: date) -> bool:
    if isinstance(task, CustomTask):
        return day == task.date
    if day < task.date:
        return False
    if isinstance(task, WeeklyTask):
        return sunday_weekday(day) == task.weekday
    return True


def completion_key(task_id: str, day: date) -> CompletionKey:
    return (task_id, day.isoformat())


def completion_index(
    completions: Iterable[Union[TaskCompletion, dict]],
) -> Dict[CompletionKey, bool]:
    index: Dict[CompletionKey, bool] = {}
    for completion in completions:
        if isinstance(completion, dict):
            task_id = completion.get("task_id")
            day = parse_iso_date(completion.get("completion_date"))
            completed = bool(completion.get("completed"))
        else:
            task_id = completion.task_id
            day = completion.completion_date
            completed = completion.completed
        if not task_id or day is None:
            continue
        index[completion_key(task_id, day)] = completed
    return index


def _as_index(completions) -> CompletionIndex:
    if isinstance(completions, Mapping):
        return completions
    return completion_index(completions or [])


def is_completed(task: Task, day: date, index: CompletionIndex) -> bool:
    if isinstance(task, CustomTask):
        return task.completed
    return index.get(completion_key(task.id, day), False)


def tasks_for_day(tasks: Iterable[Task], day: date, completions=None) -> List[TaskInstance]:
    index = _as_index(completions)
    return [
        TaskInstance(task=task, date=day, completed=is_completed(task, day, index))
        for task in tasks
        if is_active_on(task, day)
    ]


def horizon_end(today: date, goal_end: Optional[date] = None) -> date:
    return goal_end or today + timedelta(days=DEFAULT_HORIZON_DAYS)


def task_dates(
    task: Task, today: date, goal_end: Optional[date] = None, since: Optional[date] = None
) -> List[date]:
    """Instance dates of one task from ``since`` (default today), bounded by its
    goal's end date or a year ahead when it has none."""
    if isinstance(task, CustomTask):
        return [task.date]
    start = max(task.date, since or today)
    end = horizon_end(today, goal_end)
    if end < start:
        return []
    if isinstance(task, WeeklyTask):
        rule = rrule(
            WEEKLY,
            byweekday=SUNDAY_FIRST[task.weekday],
            dtstart=datetime.combine(start, time()),
            until=datetime.combine(end, time()),
        )
    else:
        rule = rrule(DAILY, dtstart=datetime.combine(start, time()), until=datetime.combine(end, time()))
    return [occurrence.date() for occurrence in rule]


def project_range(
    tasks: Iterable[Task], completions, start: date, end: date
) -> Dict[date, List[TaskInstance]]:
    tasks = list(tasks)
    index = _as_index(completions)
    return {day: tasks_for_day(tasks, day, index) for day in date_range(start, end)}


def completion_rate(total: int, completed: int) -> float:
    if total == 0:
        return 0.0
    return completed / total


def completion_rate_series(
    tasks: Iterable[Task], completions, days: Iterable[Union[str, date]]
) -> List[CompletionPoint]:
    tasks = list(tasks)
    index = _as_index(completions)
    series = []
    for raw_day in days:
        day = parse_iso_date(raw_day)
        if day is None:
            logger.warning(f"[Recurrence] Skipping unparsable day {raw_day!r}")
            continue
        instances = tasks_for_day(tasks, day, index)
        completed = sum(1 for instance in instances if instance.completed)
        series.append(
            CompletionPoint(
                date=day.isoformat(),
                total=len(instances),
                completed=completed,
                rate=completion_rate(len(instances), completed),
            )
        )
    return series
