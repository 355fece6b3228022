from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from typing import Annotated, List, Literal, Optional, Union
import datetime as dt
import logging

logger = logging.getLogger(__name__)


class TaskBase(BaseModel):
    id: str
    user_id: str
    goal_id: Optional[str] = None
    title: str
    # creation date for recurring tasks, instance date for custom ones
    date: dt.date


class DailyTask(TaskBase):
    type: Literal["daily"] = "daily"


class WeeklyTask(TaskBase):
    type: Literal["weekly"] = "weekly"
    weekday: int = Field(..., ge=0, le=6)


class CustomTask(TaskBase):
    type: Literal["custom"] = "custom"
    completed: bool = False


Task = Annotated[Union[DailyTask, WeeklyTask, CustomTask], Field(discriminator="type")]
RecurringTask = Union[DailyTask, WeeklyTask]

task_adapter: TypeAdapter = TypeAdapter(Task)


def parse_task(row: dict) -> Optional[Task]:
    """Validate a stored row, dropping it when it is malformed."""
    try:
        return task_adapter.validate_python(row)
    except ValidationError as e:
        logger.warning(f"[Tasks] Dropping malformed task {row.get('id')}: {e}")
        return None


def parse_tasks(rows: List[dict]) -> List[Task]:
    return [task for task in (parse_task(row) for row in rows) if task is not None]


def task_to_row(task: Task) -> dict:
    return task.model_dump(mode="json")


class TaskCreate(BaseModel):
    title: str
    type: Literal["daily", "weekly", "custom"]
    goal_id: Optional[str] = None
    weekday: Optional[int] = Field(default=None, ge=0, le=6)
    date: Optional[dt.date] = None


class TaskUpdate(BaseModel):
    completed: Optional[bool] = None
    title: Optional[str] = None


class TaskCompletion(BaseModel):
    task_id: str
    completion_date: dt.date
    completed: bool
    user_id: str


class TaskInstance(BaseModel):
    task: Task
    date: dt.date
    completed: bool
