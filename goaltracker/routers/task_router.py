from fastapi import APIRouter, Depends
from typing import List

from goaltracker.routers.goal_router import get_goal_service
from goaltracker.schemas.task_schema import Task, TaskCreate, TaskInstance, TaskUpdate
from goaltracker.services.goals_service import GoalStateService

router = APIRouter()


@router.get("/", response_model=List[Task])
async def list_tasks(service: GoalStateService = Depends(get_goal_service)):
    return service.tasks()


@router.post("/", response_model=Task)
async def create_task(data: TaskCreate, service: GoalStateService = Depends(get_goal_service)):
    return await service.create_task(data)


@router.get("/today", response_model=List[TaskInstance])
async def today_tasks(service: GoalStateService = Depends(get_goal_service)):
    return service.today_tasks()


@router.patch("/{task_id}")
async def update_task(
    task_id: str, data: TaskUpdate, service: GoalStateService = Depends(get_goal_service)
):
    # a body without a title toggles completion when "completed" is omitted
    if data.title is not None:
        task = await service.rename_task(task_id, data.title)
        if data.completed is None:
            return task
    return await service.update_goal_task(task_id, data.completed)


@router.delete("/{task_id}")
async def delete_task(task_id: str, service: GoalStateService = Depends(get_goal_service)):
    await service.delete_task(task_id)
    return {"message": "Task deleted"}
