from fastapi import HTTPException
from datetime import date, timedelta
from typing import List, Optional
import logging

from goaltracker.db.data_client import DataClient, DataClientError
from goaltracker.schemas.analytics_schema import CompletionPoint, DailyTaskStat, GoalProgress
from goaltracker.schemas.task_schema import parse_tasks
from goaltracker.services.goals_service import GoalStateService
from goaltracker.services.recurrence import completion_rate_series, parse_iso_date

logger = logging.getLogger(__name__)

RANGES = {"7d": 7, "30d": 30, "90d": 90}
STATS_TABLE = "daily_task_stats"


def range_days(range_key: str, today: date) -> List[date]:
    if range_key not in RANGES:
        raise HTTPException(
            status_code=422, detail=f"Unknown range '{range_key}', use one of {', '.join(RANGES)}"
        )
    count = RANGES[range_key]
    return [today - timedelta(days=offset) for offset in range(count - 1, -1, -1)]


class AnalyticsService:
    def __init__(self, client: DataClient, goal_service: GoalStateService):
        self.client = client
        self.goal_service = goal_service

    async def completion_series(
        self, range_key: str = "7d", days: Optional[List[str]] = None
    ) -> List[CompletionPoint]:
        await self.goal_service.ensure_loaded()
        if days is None:
            days = range_days(range_key, self.goal_service.today())
        parsed = [d for d in (parse_iso_date(day) for day in days) if d is not None]
        if not parsed:
            return completion_rate_series(self.goal_service.tasks(), [], days)
        try:
            completions = await self.client.select(
                "task_completions",
                {
                    "user_id": self.goal_service.user_id,
                    "completion_date": {
                        "$gte": min(parsed).isoformat(),
                        "$lte": max(parsed).isoformat(),
                    },
                },
            )
        except DataClientError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return completion_rate_series(self.goal_service.tasks(), completions, days)

    async def progress_overview(self) -> List[GoalProgress]:
        await self.goal_service.ensure_loaded()
        return [
            GoalProgress(
                goal_id=goal.id,
                name=goal.title,
                progress=self.goal_service.progress_for(goal.id),
                fill=goal.color,
            )
            for goal in self.goal_service.goals()
        ]

    async def stats_history(self, limit: int = 30) -> List[DailyTaskStat]:
        try:
            rows = await self.client.select(
                STATS_TABLE,
                {"user_id": self.goal_service.user_id},
                order_by="date",
                descending=True,
                limit=limit,
            )
        except DataClientError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return [DailyTaskStat.model_validate(row) for row in reversed(rows)]


async def snapshot_daily_stats(client: DataClient, user_id: str, day: date) -> DailyTaskStat:
    """Store one user's task completion totals for ``day``."""
    tasks = parse_tasks(await client.select("tasks", {"user_id": user_id}))
    completions = await client.select(
        "task_completions", {"user_id": user_id, "completion_date": day.isoformat()}
    )
    point = completion_rate_series(tasks, completions, [day])[0]
    stat = DailyTaskStat(user_id=user_id, **point.model_dump())
    await client.upsert(STATS_TABLE, stat.model_dump(), on=("user_id", "date"))
    return stat


async def snapshot_all_users(client: DataClient, day: date) -> int:
    user_ids = await client.distinct("tasks", "user_id")
    saved = 0
    for user_id in user_ids:
        try:
            await snapshot_daily_stats(client, user_id, day)
            saved += 1
        except DataClientError as e:
            logger.error(f"[Analytics] Snapshot for {user_id} on {day} failed: {e}")
    logger.info(f"[Analytics] Stored daily stats for {saved}/{len(user_ids)} users on {day}")
    return saved
