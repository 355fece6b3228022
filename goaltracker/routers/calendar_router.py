from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from datetime import date
from typing import List, Optional

from goaltracker.db.data_client import DataClient
from goaltracker.db.mongo import get_database
from goaltracker.routers.goal_router import get_goal_service
from goaltracker.schemas.analytics_schema import CalendarEvent
from goaltracker.schemas.task_schema import TaskInstance
from goaltracker.services.calendar_service import CalendarService
from goaltracker.services.goals_service import GoalStateService
from goaltracker.services.recurrence import parse_iso_date

router = APIRouter()


def _parse_day(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    day = parse_iso_date(value)
    if day is None:
        raise HTTPException(status_code=422, detail=f"Invalid date: {value}")
    return day


@router.get("/events", response_model=List[CalendarEvent])
async def calendar_events(
    start: Optional[str] = None,
    end: Optional[str] = None,
    goal_service: GoalStateService = Depends(get_goal_service),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    service = CalendarService(DataClient(db), goal_service)
    return await service.events(_parse_day(start), _parse_day(end))


@router.get("/day/{day}", response_model=List[TaskInstance])
async def calendar_day(
    day: str,
    goal_service: GoalStateService = Depends(get_goal_service),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    service = CalendarService(DataClient(db), goal_service)
    return await service.day(_parse_day(day))
