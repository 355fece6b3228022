from fastapi import HTTPException
from datetime import date, datetime, timedelta
from typing import Callable, Optional
import logging
import re

from goaltracker.db.data_client import DataClient, DataClientError
from goaltracker.schemas.builder_schema import BuilderMessage, BuilderSession, BuilderState
from goaltracker.schemas.plan_schema import PlanRequest
from goaltracker.services.goals_service import GoalStateService
from goaltracker.services.plan_service import PlanService, fallback_plan
from goaltracker.services.recurrence import parse_iso_date
from goaltracker.utils.util_func import add_months, get_current_time, get_today, random_goal_color

logger = logging.getLogger(__name__)

SESSION_TABLE = "goal_builder_sessions"

WELCOME = """Hi there! 👋

I'm excited to help you turn your dreams into achievable goals! Let's get started.

What's a goal you've been thinking about lately?"""

CONFIRM_PLAN = "How does this plan look? Type 'yes' to create your goal or tell me what to change."
PLAN_FALLBACK_NOTE = "I couldn't generate a custom plan right now, so here is a starter plan based on your answers."
ASK_CHANGES = "What would you like to change about the plan? You can also type 'yes' to go ahead with it."
ASK_DATE = "I couldn't work out that date. Please pick a target date (for example 2027-03-15 or '6 months')."
SUCCESS = "Perfect! Your SMART goal is all set! Ready to begin this exciting journey? 🚀"
SAVE_FAILED = "Something went wrong while saving your goal. Type 'yes' to try again."
ALREADY_DONE = "Your goal has been created. Start over to create another one."

YES_ANSWERS = {"yes", "y", "yes!", "ok", "okay"}


def motivation_prompt(goal: str) -> str:
    return f""""{goal}" is an inspiring goal! 🌟

Let's delve deeper to understand your WHY:
- Why is this goal important to you personally?
- How will achieving it make a difference in your life?

I'm all ears! 📝"""


def specific_prompt(goal: str) -> str:
    return f"""Thanks for sharing! Now let's make your goal specific.

For {goal}, what exactly would success look like?
What level would you like to reach?

The clearer we make this, the better! 🎯"""


def timeline_prompt(goal: str) -> str:
    return f"""Great! Now let's set a timeline.

When would you like to achieve {goal}?
This helps us create realistic milestones and tasks. ⏰"""


_DAY_MONTH = re.compile(r"(\d{1,2})(?:st|nd|rd|th)?\s+(?:of\s+)?([a-z]+)(?:,?\s+(\d{4}|\d{2}))?")
_MONTH_DAY = re.compile(r"([a-z]+)\s+(\d{1,2})(?:st|nd|rd|th)?(?:,?\s+(\d{4}|\d{2}))?")


def _named_date(day_text: str, month_text: str, year_text: Optional[str], today: date) -> Optional[date]:
    year = int(year_text) if year_text else today.year
    if year < 100:
        year += 2000
    for fmt in ("%d %B %Y", "%d %b %Y"):
        try:
            parsed = datetime.strptime(f"{day_text} {month_text} {year}", fmt).date()
        except ValueError:
            continue
        if not year_text and parsed < today:
            parsed = parsed.replace(year=parsed.year + 1)
        return parsed
    return None


def parse_timeline(text: str, today: date) -> Optional[date]:
    """Turn a free-text timeline answer into a target date."""
    value = text.strip().lower()
    iso = parse_iso_date(value)
    if iso is not None:
        return iso
    if "next year" in value:
        return add_months(today, 12)
    match = re.search(r"(\d+)\s*(day|week|month|year)s?", value)
    if match:
        amount, unit = int(match.group(1)), match.group(2)
        if unit == "day":
            return today + timedelta(days=amount)
        if unit == "week":
            return today + timedelta(weeks=amount)
        if unit == "month":
            return add_months(today, amount)
        return add_months(today, 12 * amount)
    if "month" in value:
        return add_months(today, 3)
    match = _DAY_MONTH.search(value)
    if match:
        parsed = _named_date(match.group(1), match.group(2), match.group(3), today)
        if parsed:
            return parsed
    match = _MONTH_DAY.search(value)
    if match:
        return _named_date(match.group(2), match.group(1), match.group(3), today)
    return None


class GoalBuilder:
    """Guided goal creation: title, why, specifics, target date, then a
    generated plan to confirm. The only way back is ``restart``."""

    def __init__(
        self,
        client: DataClient,
        user_id: str,
        goal_service: GoalStateService,
        plan_service: PlanService,
        today: Optional[Callable[[], date]] = None,
    ):
        self.client = client
        self.user_id = user_id
        self.goal_service = goal_service
        self.plan_service = plan_service
        self._today = today or get_today

    def _new_session(self) -> BuilderSession:
        session = BuilderSession(user_id=self.user_id)
        session.details.start_date = self._today().isoformat()
        session.details.color = random_goal_color()
        session.messages.append(BuilderMessage(role="assistant", content=WELCOME))
        return session

    async def load(self) -> BuilderSession:
        try:
            row = await self.client.select_one(SESSION_TABLE, {"user_id": self.user_id})
        except DataClientError as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not row:
            return self._new_session()
        return BuilderSession.model_validate(row)

    async def save(self, session: BuilderSession) -> BuilderSession:
        session.updated_at = get_current_time()
        try:
            await self.client.upsert(
                SESSION_TABLE, session.model_dump(mode="json"), on=("user_id",)
            )
        except DataClientError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return session

    async def restart(self) -> BuilderSession:
        return await self.save(self._new_session())

    @staticmethod
    def _say(session: BuilderSession, content: str) -> None:
        session.messages.append(BuilderMessage(role="assistant", content=content))

    async def handle_text(self, text: str) -> BuilderSession:
        text = text.strip()
        if not text:
            raise HTTPException(status_code=422, detail="Message is empty")
        session = await self.load()
        session.messages.append(BuilderMessage(role="user", content=text))
        details = session.details

        if session.state == BuilderState.GOAL_TITLE:
            details.title = text
            details.description = f"SMART goal: {text}"
            self._say(session, motivation_prompt(text))
            session.state = BuilderState.GOAL_WHY
        elif session.state == BuilderState.GOAL_WHY:
            details.reasoning = text
            details.smart_goal.relevant = text
            self._say(session, specific_prompt(details.title))
            session.state = BuilderState.GOAL_SPECIFIC
        elif session.state == BuilderState.GOAL_SPECIFIC:
            details.smart_goal.specific = text
            self._say(session, timeline_prompt(details.title))
            session.state = BuilderState.GOAL_TIMELINE
        elif session.state == BuilderState.GOAL_TIMELINE:
            target = parse_timeline(text, self._today())
            if target is None:
                self._say(session, ASK_DATE)
            else:
                await self._generate_plan(session, target)
        elif session.state == BuilderState.CONFIRM_PLAN:
            if text.lower() in YES_ANSWERS:
                await self._confirm(session)
            else:
                self._say(session, ASK_CHANGES)
        else:
            self._say(session, ALREADY_DONE)

        return await self.save(session)

    async def select_target_date(self, value: str) -> BuilderSession:
        session = await self.load()
        if session.state != BuilderState.GOAL_TIMELINE:
            raise HTTPException(status_code=409, detail="Not waiting for a target date")
        target = parse_iso_date(value)
        if target is None:
            raise HTTPException(status_code=422, detail="Invalid target date")
        session.messages.append(BuilderMessage(role="user", content=target.isoformat()))
        await self._generate_plan(session, target)
        return await self.save(session)

    async def _generate_plan(self, session: BuilderSession, target: date) -> None:
        today = self._today()
        details = session.details
        details.end_date = target.isoformat()
        request = PlanRequest(
            title=details.title,
            reasoning=details.reasoning,
            specific=details.smart_goal.specific,
            targetDate=target.isoformat(),
        )
        try:
            plan = await self.plan_service.generate_plan(request, today)
            session.used_fallback = False
        except Exception as e:
            # any model or parsing failure falls back so the flow never blocks
            logger.warning(f"[Builder] Plan generation failed, using fallback: {e}")
            plan = fallback_plan(request, today)
            session.used_fallback = True

        session.plan = plan
        details.smart_goal = plan.rawPlan.smartGoal
        if session.used_fallback:
            self._say(session, PLAN_FALLBACK_NOTE)
        self._say(session, f"{plan.plan}\n\n{CONFIRM_PLAN}")
        session.state = BuilderState.CONFIRM_PLAN

    async def _confirm(self, session: BuilderSession) -> None:
        goal, result = await self.goal_service.create_goal_from_plan(
            session.details, session.plan.rawPlan
        )
        if not result.ok:
            self._say(session, SAVE_FAILED)
            return
        session.goal_id = goal.id
        self._say(session, SUCCESS)
        session.state = BuilderState.COMPLETED
