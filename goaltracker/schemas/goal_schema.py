from pydantic import BaseModel, Field
from typing import List, Literal, Optional
import datetime as dt

from goaltracker.schemas.task_schema import Task


class SmartGoal(BaseModel):
    specific: str = ""
    measurable: str = ""
    achievable: str = ""
    relevant: str = ""
    timeBound: str = ""


class Milestone(BaseModel):
    id: str
    goal_id: str
    title: str
    date: dt.date
    completed: bool = False


class Reflection(BaseModel):
    id: str
    user_id: str
    goal_id: Optional[str] = None
    content: str
    date: dt.date


class Resource(BaseModel):
    id: str
    user_id: str
    goal_id: Optional[str] = None
    title: str
    url: str


class Goal(BaseModel):
    id: str
    user_id: str
    title: str
    description: str = ""
    smart_goal: SmartGoal = Field(default_factory=SmartGoal)
    reasoning: str = ""
    start_date: dt.date
    end_date: Optional[dt.date] = None
    color: str = ""
    progress: int = 0
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class GoalDetail(Goal):
    tasks: List[Task] = []
    milestones: List[Milestone] = []
    reflections: List[Reflection] = []
    resources: List[Resource] = []


class GoalCreate(BaseModel):
    title: str
    description: str = ""
    smart_goal: SmartGoal = Field(default_factory=SmartGoal)
    reasoning: str = ""
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    color: Optional[str] = None


class GoalUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    smart_goal: Optional[SmartGoal] = None
    reasoning: Optional[str] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    color: Optional[str] = None


class MilestoneCreate(BaseModel):
    title: str
    date: dt.date
    completed: bool = False


class MilestoneUpdate(BaseModel):
    completed: bool


class ReflectionCreate(BaseModel):
    content: str
    goal_id: Optional[str] = None
    date: Optional[dt.date] = None


class ResourceCreate(BaseModel):
    title: str
    url: str
    goal_id: Optional[str] = None


class Notification(BaseModel):
    level: Literal["info", "success", "error"]
    message: str
    created_at: dt.datetime
