from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List

from goaltracker.db.data_client import DataClient
from goaltracker.db.mongo import get_database
from goaltracker.schemas.goal_schema import (
    Goal,
    GoalCreate,
    GoalDetail,
    GoalUpdate,
    Milestone,
    MilestoneCreate,
    MilestoneUpdate,
    Notification,
    Reflection,
    ReflectionCreate,
    Resource,
    ResourceCreate,
)
from goaltracker.services.goals_service import GoalStateService
from goaltracker.utils.auth import get_current_user_id

router = APIRouter()


async def get_goal_service(
    user_id: str = Depends(get_current_user_id),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> GoalStateService:
    service = GoalStateService(DataClient(db), user_id)
    await service.ensure_loaded()
    return service


@router.get("/", response_model=List[GoalDetail])
async def list_goals(service: GoalStateService = Depends(get_goal_service)):
    return service.goals()


@router.post("/", response_model=Goal)
async def create_goal(data: GoalCreate, service: GoalStateService = Depends(get_goal_service)):
    return await service.create_goal(data)


@router.post("/refresh", response_model=List[GoalDetail])
async def refresh_goals(service: GoalStateService = Depends(get_goal_service)):
    return await service.refresh()


@router.get("/notifications", response_model=List[Notification])
async def drain_notifications(service: GoalStateService = Depends(get_goal_service)):
    return service.store.drain_notifications()


@router.get("/{goal_id}", response_model=GoalDetail)
async def get_goal(goal_id: str, service: GoalStateService = Depends(get_goal_service)):
    return service.goal_detail(goal_id)


@router.patch("/{goal_id}", response_model=Goal)
async def update_goal(
    goal_id: str, updates: GoalUpdate, service: GoalStateService = Depends(get_goal_service)
):
    return await service.update_goal(goal_id, updates)


@router.delete("/{goal_id}")
async def delete_goal(goal_id: str, service: GoalStateService = Depends(get_goal_service)):
    result = await service.delete_goal(goal_id)
    return {
        "deleted": result.ok,
        "completed_steps": result.completed,
        "failed_step": result.failed_step,
    }


@router.post("/{goal_id}/milestones", response_model=Milestone)
async def create_milestone(
    goal_id: str, data: MilestoneCreate, service: GoalStateService = Depends(get_goal_service)
):
    return await service.create_milestone(goal_id, data)


@router.patch("/milestones/{milestone_id}", response_model=Milestone)
async def update_milestone(
    milestone_id: str,
    data: MilestoneUpdate,
    service: GoalStateService = Depends(get_goal_service),
):
    return await service.update_goal_milestone(milestone_id, data.completed)


@router.delete("/milestones/{milestone_id}")
async def delete_milestone(milestone_id: str, service: GoalStateService = Depends(get_goal_service)):
    await service.delete_milestone(milestone_id)
    return {"message": "Milestone deleted"}


@router.post("/reflections", response_model=Reflection)
async def add_reflection(
    data: ReflectionCreate, service: GoalStateService = Depends(get_goal_service)
):
    return await service.add_reflection(data)


@router.delete("/reflections/{reflection_id}")
async def delete_reflection(
    reflection_id: str, service: GoalStateService = Depends(get_goal_service)
):
    await service.delete_reflection(reflection_id)
    return {"message": "Reflection deleted"}


@router.post("/resources", response_model=Resource)
async def add_resource(data: ResourceCreate, service: GoalStateService = Depends(get_goal_service)):
    return await service.add_resource(data)


@router.delete("/resources/{resource_id}")
async def delete_resource(resource_id: str, service: GoalStateService = Depends(get_goal_service)):
    await service.delete_resource(resource_id)
    return {"message": "Resource deleted"}
