from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List, Optional

from goaltracker.db.data_client import DataClient
from goaltracker.db.mongo import get_database
from goaltracker.routers.goal_router import get_goal_service
from goaltracker.schemas.analytics_schema import CompletionPoint, DailyTaskStat, GoalProgress
from goaltracker.services.analytics_service import AnalyticsService
from goaltracker.services.goals_service import GoalStateService

router = APIRouter()


def get_analytics_service(
    goal_service: GoalStateService = Depends(get_goal_service),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> AnalyticsService:
    return AnalyticsService(DataClient(db), goal_service)


@router.get("/completion", response_model=List[CompletionPoint])
async def completion_series(
    range_key: str = Query(default="7d", alias="range"),
    days: Optional[List[str]] = Query(default=None),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return await service.completion_series(range_key, days)


@router.get("/progress", response_model=List[GoalProgress])
async def progress_overview(service: AnalyticsService = Depends(get_analytics_service)):
    return await service.progress_overview()


@router.get("/history", response_model=List[DailyTaskStat])
async def stats_history(
    limit: int = Query(default=30, ge=1, le=365),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return await service.stats_history(limit)
