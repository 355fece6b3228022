from datetime import date
from typing import Iterable, List

from goaltracker.schemas.goal_schema import Milestone
from goaltracker.schemas.task_schema import CustomTask, Task
from goaltracker.services.recurrence import CompletionIndex, is_active_on, is_completed

MILESTONE_WEIGHT = 0.7
TASK_WEIGHT = 0.3


def task_ratio(tasks: Iterable[Task], today: date, index: CompletionIndex):
    """Completed share of the goal's tasks as they stand today.

    Recurring tasks count only when active today; custom tasks always count
    with their own flag. Returns None when nothing counts.
    """
    counted: List[bool] = []
    for task in tasks:
        if isinstance(task, CustomTask):
            counted.append(task.completed)
        elif is_active_on(task, today):
            counted.append(is_completed(task, today, index))
    if not counted:
        return None
    return sum(counted) / len(counted)


def compute_progress(
    milestones: Iterable[Milestone], tasks: Iterable[Task], today: date, index: CompletionIndex
) -> int:
    milestones = list(milestones)
    milestone_ratio = (
        sum(1 for m in milestones if m.completed) / len(milestones) if milestones else None
    )
    tasks_done = task_ratio(tasks, today, index)

    if milestone_ratio is None and tasks_done is None:
        return 0
    if tasks_done is None:
        return round(100 * milestone_ratio)
    if milestone_ratio is None:
        return round(100 * tasks_done)
    return round(100 * (MILESTONE_WEIGHT * milestone_ratio + TASK_WEIGHT * tasks_done))
