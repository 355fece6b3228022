from pydantic import BaseModel
from typing import List, Optional

from goaltracker.schemas.goal_schema import SmartGoal


class PlanRequest(BaseModel):
    title: str
    reasoning: str
    specific: str
    targetDate: str


class PlanMilestone(BaseModel):
    title: str
    date: str


class PlanTask(BaseModel):
    title: str
    type: str
    date: Optional[str] = None
    weekday: Optional[int] = None


class RawPlan(BaseModel):
    smartGoal: SmartGoal
    milestones: List[PlanMilestone] = []
    tasks: List[PlanTask] = []


class PlanResponse(BaseModel):
    plan: str
    rawPlan: RawPlan


class ChatRequest(BaseModel):
    prompt: str


class ChatResponse(BaseModel):
    output: str

