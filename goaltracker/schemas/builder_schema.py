from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime
from enum import Enum

from goaltracker.schemas.goal_schema import SmartGoal
from goaltracker.schemas.plan_schema import PlanResponse


class BuilderState(str, Enum):
    GOAL_TITLE = "GOAL_TITLE"
    GOAL_WHY = "GOAL_WHY"
    GOAL_SPECIFIC = "GOAL_SPECIFIC"
    GOAL_TIMELINE = "GOAL_TIMELINE"
    CONFIRM_PLAN = "CONFIRM_PLAN"
    COMPLETED = "COMPLETED"


class BuilderMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class GoalDetails(BaseModel):
    title: str = ""
    description: str = ""
    smart_goal: SmartGoal = Field(default_factory=SmartGoal)
    reasoning: str = ""
    start_date: str = ""
    end_date: str = ""
    color: str = ""


class BuilderSession(BaseModel):
    user_id: str
    state: BuilderState = BuilderState.GOAL_TITLE
    details: GoalDetails = Field(default_factory=GoalDetails)
    plan: Optional[PlanResponse] = None
    used_fallback: bool = False
    goal_id: Optional[str] = None
    messages: List[BuilderMessage] = []
    updated_at: Optional[datetime] = None


class BuilderTextInput(BaseModel):
    text: str


class BuilderDateInput(BaseModel):
    target_date: str
