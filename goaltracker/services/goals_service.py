from fastapi import HTTPException
from pydantic import BaseModel, ValidationError
from typing import Callable, List, Optional, Tuple, Type
from datetime import date
import asyncio
import logging

from goaltracker.db.data_client import DataClient, DataClientError
from goaltracker.schemas.goal_schema import (
    Goal,
    GoalCreate,
    GoalDetail,
    GoalUpdate,
    Milestone,
    MilestoneCreate,
    Reflection,
    ReflectionCreate,
    Resource,
    ResourceCreate,
)
from goaltracker.schemas.builder_schema import GoalDetails
from goaltracker.schemas.plan_schema import RawPlan
from goaltracker.schemas.task_schema import (
    CustomTask,
    Task,
    TaskCompletion,
    TaskCreate,
    TaskInstance,
    parse_tasks,
    task_adapter,
    task_to_row,
)
from goaltracker.services.goal_store import (
    GoalStore,
    StoreSnapshot,
    completion_store_key,
    store_registry,
)
from goaltracker.services.progress import compute_progress
from goaltracker.services.recurrence import (
    completion_index,
    completion_key,
    parse_iso_date,
    tasks_for_day,
)
from goaltracker.services.saga import Saga, SagaResult
from goaltracker.utils.util_func import get_current_time, get_today, new_id, random_goal_color

logger = logging.getLogger(__name__)

PLAN_TASK_TYPES = ("daily", "weekly")


def validate_rows(model: Type[BaseModel], rows: List[dict]) -> list:
    valid = []
    for row in rows:
        try:
            valid.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning(f"[Goals] Dropping malformed {model.__name__} {row.get('id')}: {e}")
    return valid


class GoalStateService:
    """Single source of truth for one user's goals, tasks and milestones.

    Reads come from the user's ``GoalStore``. Writes either persist first and
    then update the store, or update the store optimistically and persist
    afterwards; a failed optimistic write notifies the user and falls back to
    ``refresh``.
    """

    def __init__(
        self,
        client: DataClient,
        user_id: str,
        store: Optional[GoalStore] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.client = client
        self.user_id = user_id
        self.store = store or store_registry.get(user_id)
        self._today = today or get_today

    def today(self) -> date:
        return self._today()

    async def ensure_loaded(self):
        if not self.store.loaded:
            await self.refresh()

    async def _fetch_goal_tree(self):
        goal_rows = await self.client.select(
            "goals", {"user_id": self.user_id}, order_by="created_at", descending=True
        )
        goal_ids = [row["id"] for row in goal_rows]
        if not goal_ids:
            return goal_rows, []
        milestone_rows = await self.client.select(
            "milestones", {"goal_id": {"$in": goal_ids}}, order_by="date"
        )
        return goal_rows, milestone_rows

    async def refresh(self):
        generation = self.store.begin_refresh()
        today = self.today()
        try:
            (
                (goal_rows, milestone_rows),
                task_rows,
                completion_rows,
                reflection_rows,
                resource_rows,
            ) = await asyncio.gather(
                self._fetch_goal_tree(),
                self.client.select("tasks", {"user_id": self.user_id}),
                self.client.select(
                    "task_completions",
                    {"user_id": self.user_id, "completion_date": today.isoformat()},
                ),
                self.client.select("reflections", {"user_id": self.user_id}),
                self.client.select("resources", {"user_id": self.user_id}),
            )
        except DataClientError as e:
            logger.error(f"[Goals] Refresh failed for {self.user_id}: {e}")
            self.store.abandon_refresh(generation)
            self.store.notify("error", "Failed to load your goals")
            raise HTTPException(status_code=500, detail="Failed to load goals")

        completions = validate_rows(TaskCompletion, completion_rows)
        snapshot = StoreSnapshot(
            goals={g.id: g for g in validate_rows(Goal, goal_rows)},
            tasks={t.id: t for t in parse_tasks(task_rows)},
            milestones={m.id: m for m in validate_rows(Milestone, milestone_rows)},
            reflections={r.id: r for r in validate_rows(Reflection, reflection_rows)},
            resources={r.id: r for r in validate_rows(Resource, resource_rows)},
            completions={
                completion_store_key(c.task_id, c.completion_date): c for c in completions
            },
        )
        self.store.apply_snapshot(generation, snapshot)
        return self.goals()

    async def _recover(self, message: str, error: Exception):
        logger.error(f"[Goals] {message}: {error}")
        self.store.notify("error", message)
        try:
            await self.refresh()
        except HTTPException:
            logger.error("[Goals] Recovery refresh failed, local state may be stale")
        raise HTTPException(status_code=500, detail=message)

    # Read views

    def _completion_index(self):
        return completion_index(self.store.completions.values())

    def _goal_tasks(self, goal_id: str) -> List[Task]:
        return [t for t in self.store.tasks.values() if t.goal_id == goal_id]

    def _goal_milestones(self, goal_id: str) -> List[Milestone]:
        return sorted(
            (m for m in self.store.milestones.values() if m.goal_id == goal_id),
            key=lambda m: m.date,
        )

    def _detail(self, goal: Goal) -> GoalDetail:
        return GoalDetail(
            **goal.model_dump(),
            tasks=self._goal_tasks(goal.id),
            milestones=self._goal_milestones(goal.id),
            reflections=[r for r in self.store.reflections.values() if r.goal_id == goal.id],
            resources=[r for r in self.store.resources.values() if r.goal_id == goal.id],
        )

    def goals(self) -> List[GoalDetail]:
        goals = sorted(
            self.store.goals.values(),
            key=lambda g: g.created_at.timestamp() if g.created_at else 0,
            reverse=True,
        )
        return [self._detail(goal) for goal in goals]

    def _require_goal(self, goal_id: str) -> Goal:
        goal = self.store.goals.get(goal_id)
        if goal is None:
            raise HTTPException(status_code=404, detail="Goal not found")
        return goal

    def goal_detail(self, goal_id: str) -> GoalDetail:
        return self._detail(self._require_goal(goal_id))

    def tasks(self) -> List[Task]:
        return self.store.tasks.values()

    def today_tasks(self) -> List[TaskInstance]:
        return tasks_for_day(self.store.tasks.values(), self.today(), self._completion_index())

    def progress_for(self, goal_id: str) -> int:
        return compute_progress(
            self._goal_milestones(goal_id),
            self._goal_tasks(goal_id),
            self.today(),
            self._completion_index(),
        )

    async def _sync_progress(self, goal_id: Optional[str]) -> Optional[Goal]:
        """Recompute a goal's progress and persist it when it changed."""
        if not goal_id:
            return None
        goal = self.store.goals.get(goal_id)
        if goal is None:
            return None
        progress = self.progress_for(goal_id)
        if progress == goal.progress:
            return goal
        now = get_current_time()
        updated = goal.model_copy(update={"progress": progress, "updated_at": now})
        self.store.goals.put(goal_id, updated, self.store.tick())
        try:
            await self.client.update(
                "goals", {"id": goal_id}, {"progress": progress, "updated_at": now}
            )
        except DataClientError as e:
            await self._recover("Failed to save goal progress", e)
        return updated

    # Goals

    async def create_goal(self, data: GoalCreate) -> Goal:
        now = get_current_time()
        row = {
            "id": new_id(),
            "user_id": self.user_id,
            "title": data.title,
            "description": data.description,
            "smart_goal": data.smart_goal.model_dump(),
            "reasoning": data.reasoning,
            "start_date": (data.start_date or self.today()).isoformat(),
            "end_date": data.end_date.isoformat() if data.end_date else None,
            "color": data.color or random_goal_color(),
            "progress": 0,
            "created_at": now,
            "updated_at": now,
        }
        try:
            saved = await self.client.insert("goals", row)
        except DataClientError as e:
            await self._recover("Failed to create goal", e)
        goal = Goal.model_validate(saved)
        self.store.goals.put(goal.id, goal, self.store.tick())
        self.store.notify("success", "Goal created successfully!")
        return goal

    async def update_goal(self, goal_id: str, updates: GoalUpdate) -> Goal:
        goal = self._require_goal(goal_id)
        changes = updates.model_dump(exclude_unset=True)
        if not changes:
            return goal
        now = get_current_time()
        updated = goal.model_copy(
            update={
                **{k: v for k, v in changes.items() if k != "smart_goal"},
                **({"smart_goal": updates.smart_goal} if "smart_goal" in changes else {}),
                "updated_at": now,
            }
        )
        self.store.goals.put(goal_id, updated, self.store.tick())
        stored = updated.model_dump(mode="json", include=set(changes))
        try:
            await self.client.update("goals", {"id": goal_id}, {**stored, "updated_at": now})
        except DataClientError as e:
            await self._recover("Failed to update goal", e)
        return updated

    async def delete_goal(self, goal_id: str) -> SagaResult:
        """Delete a goal with its tasks, their completions and its milestones.

        Local state drops all three right away. The remote deletes run in
        sequence without a compensating transaction, so a failure part way
        leaves the remaining rows behind; the result names the steps that ran.
        """
        self._require_goal(goal_id)
        stamp = self.store.tick()
        task_ids = [t.id for t in self._goal_tasks(goal_id)]
        for task_id in task_ids:
            self.store.tasks.remove(task_id, stamp)
        for key, completion in list(self.store.completions.items()):
            if completion.task_id in task_ids:
                self.store.completions.remove(key, stamp)
        for milestone in self._goal_milestones(goal_id):
            self.store.milestones.remove(milestone.id, stamp)
        self.store.goals.remove(goal_id, stamp)

        saga = Saga(f"delete goal {goal_id}")
        saga.step(
            "completions",
            lambda: self.client.delete("task_completions", {"task_id": {"$in": task_ids}}),
        )
        saga.step("tasks", lambda: self.client.delete("tasks", {"goal_id": goal_id}))
        saga.step("milestones", lambda: self.client.delete("milestones", {"goal_id": goal_id}))
        saga.step(
            "goal", lambda: self.client.delete("goals", {"id": goal_id, "user_id": self.user_id})
        )
        result = await saga.run()
        if not result.ok:
            logger.error(
                f"[Goals] Goal {goal_id} partially deleted, done: {result.completed}, "
                f"failed: {result.failed_step}"
            )
            self.store.notify("error", "Failed to delete goal completely")
        return result

    async def create_goal_from_plan(
        self, details: GoalDetails, raw_plan: RawPlan
    ) -> Tuple[Optional[GoalDetail], SagaResult]:
        """Persist a generated plan: goal, then milestones, then tasks.

        A failing step rolls back the steps before it.
        """
        today = self.today()
        now = get_current_time()
        goal_id = new_id()
        start = parse_iso_date(details.start_date) or today
        end = parse_iso_date(details.end_date)
        goal_row = {
            "id": goal_id,
            "user_id": self.user_id,
            "title": details.title,
            "description": details.description or f"SMART goal: {details.title}",
            "smart_goal": raw_plan.smartGoal.model_dump(),
            "reasoning": details.reasoning,
            "start_date": start.isoformat(),
            "end_date": end.isoformat() if end else None,
            "color": details.color or random_goal_color(),
            "progress": 0,
            "created_at": now,
            "updated_at": now,
        }

        milestone_rows = []
        for milestone in raw_plan.milestones:
            milestone_date = parse_iso_date(milestone.date)
            if milestone_date is None:
                logger.warning(f"[Goals] Skipping milestone with bad date: {milestone.date!r}")
                continue
            milestone_rows.append(
                {
                    "id": new_id(),
                    "goal_id": goal_id,
                    "title": milestone.title,
                    "date": milestone_date.isoformat(),
                    "completed": False,
                }
            )

        tasks: List[Task] = []
        for plan_task in raw_plan.tasks:
            if plan_task.type not in PLAN_TASK_TYPES:
                continue
            row = {
                "id": new_id(),
                "user_id": self.user_id,
                "goal_id": goal_id,
                "title": plan_task.title,
                "type": plan_task.type,
                "date": (parse_iso_date(plan_task.date) or start).isoformat(),
            }
            if plan_task.type == "weekly":
                row["weekday"] = plan_task.weekday if plan_task.weekday is not None else 0
            try:
                tasks.append(task_adapter.validate_python(row))
            except ValidationError as e:
                logger.warning(f"[Goals] Skipping invalid plan task {plan_task.title!r}: {e}")
        task_rows = [task_to_row(task) for task in tasks]

        saga = Saga(f"create goal {goal_id}")
        saga.step(
            "goal",
            lambda: self.client.insert("goals", goal_row),
            lambda: self.client.delete("goals", {"id": goal_id}),
        )
        saga.step(
            "milestones",
            lambda: self.client.insert_many("milestones", milestone_rows),
            lambda: self.client.delete("milestones", {"goal_id": goal_id}),
        )
        saga.step(
            "tasks",
            lambda: self.client.insert_many("tasks", task_rows),
            lambda: self.client.delete("tasks", {"goal_id": goal_id}),
        )
        result = await saga.run()
        if not result.ok:
            self.store.notify("error", "Failed to create goal")
            return None, result

        stamp = self.store.tick()
        goal = Goal.model_validate(goal_row)
        self.store.goals.put(goal_id, goal, stamp)
        for milestone in validate_rows(Milestone, milestone_rows):
            self.store.milestones.put(milestone.id, milestone, stamp)
        for task in tasks:
            self.store.tasks.put(task.id, task, stamp)
        self.store.notify("success", "Goal created successfully!")
        return self._detail(goal), result

    # Tasks

    def _require_task(self, task_id: str) -> Task:
        task = self.store.tasks.get(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    async def create_task(self, data: TaskCreate) -> Task:
        if data.goal_id:
            self._require_goal(data.goal_id)
        row = {
            "id": new_id(),
            "user_id": self.user_id,
            "goal_id": data.goal_id,
            "title": data.title,
            "type": data.type,
            "date": (data.date or self.today()).isoformat(),
        }
        if data.type == "weekly":
            row["weekday"] = data.weekday
        if data.type == "custom":
            row["completed"] = False
        try:
            task = task_adapter.validate_python(row)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))

        try:
            await self.client.insert("tasks", task_to_row(task))
        except DataClientError as e:
            await self._recover("Failed to create task", e)
        self.store.tasks.put(task.id, task, self.store.tick())
        await self._sync_progress(task.goal_id)
        return task

    async def update_goal_task(self, task_id: str, completed: Optional[bool] = None) -> TaskInstance:
        """Set (or toggle, when ``completed`` is None) a task's completion.

        Custom tasks update their own row. Recurring tasks upsert the
        completion record for today only.
        """
        task = self._require_task(task_id)
        today = self.today()

        if isinstance(task, CustomTask):
            target = (not task.completed) if completed is None else completed
            updated = task.model_copy(update={"completed": target})
            self.store.tasks.put(task.id, updated, self.store.tick())
            try:
                await self.client.update("tasks", {"id": task.id}, {"completed": target})
            except DataClientError as e:
                await self._recover("Failed to update task", e)
            instance = TaskInstance(task=updated, date=updated.date, completed=target)
        else:
            current = self._completion_index().get(completion_key(task.id, today), False)
            target = (not current) if completed is None else completed
            completion = TaskCompletion(
                task_id=task.id, completion_date=today, completed=target, user_id=self.user_id
            )
            self.store.put_completion(completion)
            try:
                await self.client.upsert(
                    "task_completions",
                    completion.model_dump(mode="json"),
                    on=("task_id", "completion_date"),
                )
            except DataClientError as e:
                await self._recover("Failed to update task", e)
            instance = TaskInstance(task=task, date=today, completed=target)

        await self._sync_progress(task.goal_id)
        return instance

    async def rename_task(self, task_id: str, title: str) -> Task:
        task = self._require_task(task_id)
        if not title.strip():
            raise HTTPException(status_code=422, detail="Task title is empty")
        updated = task.model_copy(update={"title": title.strip()})
        self.store.tasks.put(task_id, updated, self.store.tick())
        try:
            await self.client.update("tasks", {"id": task_id}, {"title": updated.title})
        except DataClientError as e:
            await self._recover("Failed to update task", e)
        return updated

    async def delete_task(self, task_id: str) -> None:
        task = self._require_task(task_id)
        try:
            await self.client.delete("tasks", {"id": task_id, "user_id": self.user_id})
            await self.client.delete("task_completions", {"task_id": task_id})
        except DataClientError as e:
            await self._recover("Failed to delete task", e)
        stamp = self.store.tick()
        self.store.tasks.remove(task_id, stamp)
        for key, completion in list(self.store.completions.items()):
            if completion.task_id == task_id:
                self.store.completions.remove(key, stamp)
        await self._sync_progress(task.goal_id)

    # Milestones

    def _require_milestone(self, milestone_id: str) -> Milestone:
        milestone = self.store.milestones.get(milestone_id)
        if milestone is None:
            raise HTTPException(status_code=404, detail="Milestone not found")
        return milestone

    async def create_milestone(self, goal_id: str, data: MilestoneCreate) -> Milestone:
        self._require_goal(goal_id)
        milestone = Milestone(id=new_id(), goal_id=goal_id, **data.model_dump())
        try:
            await self.client.insert("milestones", milestone.model_dump(mode="json"))
        except DataClientError as e:
            await self._recover("Failed to create milestone", e)
        self.store.milestones.put(milestone.id, milestone, self.store.tick())
        await self._sync_progress(goal_id)
        return milestone

    async def update_goal_milestone(self, milestone_id: str, completed: bool) -> Milestone:
        """Write the milestone, then the owning goal's progress.

        The two writes are not atomic; if the second fails the stored
        progress stays stale until the recovery refresh recomputes it locally.
        """
        milestone = self._require_milestone(milestone_id)
        updated = milestone.model_copy(update={"completed": completed})
        self.store.milestones.put(milestone_id, updated, self.store.tick())
        try:
            await self.client.update("milestones", {"id": milestone_id}, {"completed": completed})
        except DataClientError as e:
            await self._recover("Failed to update milestone", e)
        await self._sync_progress(milestone.goal_id)
        return updated

    async def delete_milestone(self, milestone_id: str) -> None:
        milestone = self._require_milestone(milestone_id)
        try:
            await self.client.delete("milestones", {"id": milestone_id})
        except DataClientError as e:
            await self._recover("Failed to delete milestone", e)
        self.store.milestones.remove(milestone_id, self.store.tick())
        await self._sync_progress(milestone.goal_id)

    # Reflections and resources

    async def add_reflection(self, data: ReflectionCreate) -> Reflection:
        if data.goal_id:
            self._require_goal(data.goal_id)
        reflection = Reflection(
            id=new_id(),
            user_id=self.user_id,
            goal_id=data.goal_id,
            content=data.content,
            date=data.date or self.today(),
        )
        try:
            await self.client.insert("reflections", reflection.model_dump(mode="json"))
        except DataClientError as e:
            await self._recover("Failed to save reflection", e)
        self.store.reflections.put(reflection.id, reflection, self.store.tick())
        return reflection

    async def delete_reflection(self, reflection_id: str) -> None:
        if reflection_id not in self.store.reflections:
            raise HTTPException(status_code=404, detail="Reflection not found")
        try:
            await self.client.delete("reflections", {"id": reflection_id, "user_id": self.user_id})
        except DataClientError as e:
            await self._recover("Failed to delete reflection", e)
        self.store.reflections.remove(reflection_id, self.store.tick())

    async def add_resource(self, data: ResourceCreate) -> Resource:
        if data.goal_id:
            self._require_goal(data.goal_id)
        resource = Resource(id=new_id(), user_id=self.user_id, **data.model_dump())
        try:
            await self.client.insert("resources", resource.model_dump(mode="json"))
        except DataClientError as e:
            await self._recover("Failed to save resource", e)
        self.store.resources.put(resource.id, resource, self.store.tick())
        return resource

    async def delete_resource(self, resource_id: str) -> None:
        if resource_id not in self.store.resources:
            raise HTTPException(status_code=404, detail="Resource not found")
        try:
            await self.client.delete("resources", {"id": resource_id, "user_id": self.user_id})
        except DataClientError as e:
            await self._recover("Failed to delete resource", e)
        self.store.resources.remove(resource_id, self.store.tick())
