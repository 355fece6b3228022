from langchain_core.prompts import PromptTemplate
from langchain_openai import ChatOpenAI
from pydantic import ValidationError
from dotenv import load_dotenv
from datetime import date, timedelta
from typing import Optional
import json
import logging
import os
import re

from goaltracker.schemas.goal_schema import SmartGoal
from goaltracker.schemas.plan_schema import (
    PlanMilestone,
    PlanRequest,
    PlanResponse,
    PlanTask,
    RawPlan,
)
from goaltracker.services.recurrence import parse_iso_date
from goaltracker.utils.util_func import get_today

load_dotenv()
logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
MILESTONE_SPACING_DAYS = 30

PLAN_PROMPT = PromptTemplate(
    input_variables=["title", "reasoning", "specific", "target_date"],
    template="""
Create a structured SMART goal plan for: "{title}"

Context:
- User's motivation: {reasoning}
- Success criteria: {specific}
- Target date: {target_date}

Return a valid JSON object with this exact structure (no additional text):
{{
  "smartGoal": {{
    "specific": "Clear goal statement",
    "measurable": "How to track progress",
    "achievable": "Why it's realistic",
    "relevant": "Connection to motivation",
    "timeBound": "Timeline with target date"
  }},
  "milestones": [
    {{"title": "Clear milestone description", "date": "YYYY-MM-DD"}}
  ],
  "tasks": [
    {{"title": "Daily task description", "type": "daily", "date": "YYYY-MM-DD"}},
    {{"title": "Weekly task description", "type": "weekly", "weekday": 0, "date": "YYYY-MM-DD"}}
  ]
}}

Requirements:
- Include 2-3 daily practice tasks
- Include at least 5 different weekly tasks spread across different days
- Each weekly task should be on a different day (weekday: 0-6, where 0 is Sunday)
- Tasks should build up progressively towards the final goal
- Task types must be exactly "daily" or "weekly"
""",
)


class PlanGenerationError(Exception):
    pass


def extract_json(text: str) -> str:
    """Pull the outermost {...} block out of free model text."""
    flat = text.replace("\n", "")
    match = re.search(r"\{.*\}", flat)
    if not match:
        raise PlanGenerationError("No JSON object found in model output")
    return match.group(0)


def repair_json(block: str) -> str:
    """Patch the separator mistakes models commonly make."""
    cleaned = block
    cleaned = re.sub(r"\}\s*\{", "},{", cleaned)
    cleaned = re.sub(r"\}\"", "},\"", cleaned)
    cleaned = re.sub(r",\s*,", ",", cleaned)
    cleaned = re.sub(r",\s*([\]}])", r"\1", cleaned)
    return cleaned


def fix_dates(plan: dict, start: date) -> dict:
    """Anchor task dates on the plan start and replace placeholder milestone
    dates with dates spaced a month apart."""
    if isinstance(plan.get("tasks"), list):
        plan["tasks"] = [
            {**task, "date": start.isoformat()} for task in plan["tasks"] if isinstance(task, dict)
        ]
    if isinstance(plan.get("milestones"), list):
        fixed = []
        for i, milestone in enumerate(plan["milestones"]):
            if not isinstance(milestone, dict):
                continue
            if parse_iso_date(milestone.get("date")) is None:
                milestone = {
                    **milestone,
                    "date": (start + timedelta(days=MILESTONE_SPACING_DAYS * (i + 1))).isoformat(),
                }
            fixed.append(milestone)
        plan["milestones"] = fixed
    return plan


def validate_plan(plan) -> RawPlan:
    if not isinstance(plan, dict):
        raise PlanGenerationError("Plan is not a JSON object")
    smart_goal = plan.get("smartGoal")
    if not isinstance(smart_goal, dict) or not smart_goal.get("specific"):
        raise PlanGenerationError("Missing SMART goal data")
    if not isinstance(plan.get("milestones"), list):
        raise PlanGenerationError("Missing milestones data")
    if not isinstance(plan.get("tasks"), list):
        raise PlanGenerationError("Missing tasks data")
    try:
        return RawPlan.model_validate(plan)
    except ValidationError as e:
        raise PlanGenerationError(f"Invalid plan structure: {e}")


def _pretty_date(value: str) -> str:
    d = parse_iso_date(value)
    if d is None:
        return value
    return f"{d:%b} {d.day}, {d.year}"


def format_plan(plan: RawPlan) -> str:
    sg = plan.smartGoal
    milestones = "\n\n".join(f"{_pretty_date(m.date)}\n  ▸ {m.title}" for m in plan.milestones)
    daily = "\n\n".join(f"• {t.title}" for t in plan.tasks if t.type == "daily")
    weekly = "\n\n".join(
        f"{WEEKDAY_NAMES[t.weekday if t.weekday in range(7) else 0]}:\n  ▸ {t.title}"
        for t in plan.tasks
        if t.type == "weekly"
    )
    sections = [
        "📋 SMART Goal Breakdown\n──────────────────────",
        f"🎯 Specific:\n{sg.specific}",
        f"📊 Measurable:\n{sg.measurable}",
        f"✅ Achievable:\n{sg.achievable}",
        f"💫 Relevant:\n{sg.relevant}",
        f"⏱️ Timeline:\n{sg.timeBound}",
        f"\n🏆 Key Milestones\n──────────────────\n\n{milestones}",
        f"\n📝 Daily Practice\n──────────────────\n\n{daily}",
        f"\n🔄 Weekly Schedule\n──────────────────\n\n{weekly}",
    ]
    return "\n\n".join(sections)


def fallback_plan(request: PlanRequest, today: Optional[date] = None) -> PlanResponse:
    """Static plan built from the user's own answers."""
    today = today or get_today()
    target = parse_iso_date(request.targetDate) or today + timedelta(days=90)
    if target <= today:
        target = today + timedelta(days=1)
    span = (target - today).days
    raw = RawPlan(
        smartGoal=SmartGoal(
            specific=request.specific or f"Achieve {request.title}",
            measurable=f"Track daily practice and check off milestones for {request.title}",
            achievable=f"Break {request.title} into small daily steps and weekly reviews",
            relevant=request.reasoning,
            timeBound=f"Complete by {request.targetDate}",
        ),
        milestones=[
            PlanMilestone(
                title=f"Build a consistent routine for {request.title}",
                date=(today + timedelta(days=span // 3)).isoformat(),
            ),
            PlanMilestone(
                title=f"Reach the halfway point of {request.title}",
                date=(today + timedelta(days=2 * span // 3)).isoformat(),
            ),
            PlanMilestone(title=f"Achieve {request.title}", date=target.isoformat()),
        ],
        tasks=[
            PlanTask(
                title=f"Spend 30 minutes working on {request.title}",
                type="daily",
                date=today.isoformat(),
            ),
            PlanTask(
                title="Review the week and plan the next one",
                type="weekly",
                weekday=0,
                date=today.isoformat(),
            ),
        ],
    )
    return PlanResponse(plan=format_plan(raw), rawPlan=raw)


def _content_text(response) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in content
        )
    return str(content)


class PlanService:
    def __init__(self, llm=None):
        self._llm = llm

    @property
    def llm(self):
        # built on first use so a missing key only fails the call that needs it
        if self._llm is None:
            self._llm = ChatOpenAI(
                temperature=float(os.getenv("OPENAI_TEMPERATURE", "0.7")),
                model=os.getenv("OPENAI_MODEL", "gpt-3.5-turbo"),
                openai_api_key=os.getenv("OPENAI_API_KEY"),
            )
        return self._llm

    async def chat_completion(self, prompt: str) -> str:
        response = await self.llm.ainvoke(prompt)
        return _content_text(response)

    async def generate_plan(self, request: PlanRequest, today: Optional[date] = None) -> PlanResponse:
        today = today or get_today()
        prompt = PLAN_PROMPT.format(
            title=request.title,
            reasoning=request.reasoning,
            specific=request.specific,
            target_date=request.targetDate,
        )
        raw_text = await self.chat_completion(prompt.strip())
        block = extract_json(raw_text)
        try:
            parsed = json.loads(block)
        except json.JSONDecodeError:
            try:
                parsed = json.loads(repair_json(block))
            except json.JSONDecodeError as e:
                logger.error(f"[Plan] JSON parsing error: {e}. Raw JSON: {block[:500]}")
                raise PlanGenerationError("Failed to parse AI response")
        raw = validate_plan(fix_dates(parsed, today))
        return PlanResponse(plan=format_plan(raw), rawPlan=raw)
