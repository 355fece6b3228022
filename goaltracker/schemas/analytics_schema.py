from pydantic import BaseModel
from typing import List, Literal, Optional

from goaltracker.schemas.task_schema import TaskInstance


class CompletionPoint(BaseModel):
    date: str
    total: int
    completed: int
    rate: float


class DailyTaskStat(CompletionPoint):
    user_id: str


class GoalProgress(BaseModel):
    goal_id: str
    name: str
    progress: int
    fill: str


class CalendarEvent(BaseModel):
    id: str
    title: str
    start: str
    all_day: bool = True
    type: Literal["milestone", "task-count"]
    goal_id: Optional[str] = None
    goal_title: Optional[str] = None
    goal_color: Optional[str] = None
    completed: Optional[bool] = None
    tasks: List[TaskInstance] = []
