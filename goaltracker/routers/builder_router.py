from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from goaltracker.db.data_client import DataClient
from goaltracker.db.mongo import get_database
from goaltracker.routers.goal_router import get_goal_service
from goaltracker.routers.plan_router import get_plan_service
from goaltracker.schemas.builder_schema import BuilderDateInput, BuilderSession, BuilderTextInput
from goaltracker.services.goal_builder import GoalBuilder
from goaltracker.services.goals_service import GoalStateService
from goaltracker.services.plan_service import PlanService

router = APIRouter()


def get_goal_builder(
    goal_service: GoalStateService = Depends(get_goal_service),
    plan_service: PlanService = Depends(get_plan_service),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> GoalBuilder:
    return GoalBuilder(DataClient(db), goal_service.user_id, goal_service, plan_service)


@router.get("/", response_model=BuilderSession)
async def get_session(builder: GoalBuilder = Depends(get_goal_builder)):
    return await builder.load()


@router.post("/message", response_model=BuilderSession)
async def send_message(data: BuilderTextInput, builder: GoalBuilder = Depends(get_goal_builder)):
    return await builder.handle_text(data.text)


@router.post("/target-date", response_model=BuilderSession)
async def select_target_date(
    data: BuilderDateInput, builder: GoalBuilder = Depends(get_goal_builder)
):
    return await builder.select_target_date(data.target_date)


@router.post("/restart", response_model=BuilderSession)
async def restart(builder: GoalBuilder = Depends(get_goal_builder)):
    return await builder.restart()
