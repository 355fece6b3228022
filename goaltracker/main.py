from fastapi import FastAPI
from dotenv import load_dotenv
import logging
import os

from goaltracker.db.mongo import connect_to_mongo, close_mongo_connection
from goaltracker.routers import (
    analytics_router,
    builder_router,
    calendar_router,
    community_router,
    goal_router,
    plan_router,
    task_router,
    webhook_router,
)

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from goaltracker.utils.scheduler import daily_stats_snapshot
from goaltracker.utils.util_func import APP_TIMEZONE
import pytz

load_dotenv()
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Goal Tracker API")
scheduler = AsyncIOScheduler()

# Register routers
app.include_router(goal_router.router, prefix="/goals", tags=["Goals"])
app.include_router(task_router.router, prefix="/tasks", tags=["Tasks"])
app.include_router(calendar_router.router, prefix="/calendar", tags=["Calendar"])
app.include_router(analytics_router.router, prefix="/analytics", tags=["Analytics"])
app.include_router(plan_router.router, prefix="/api", tags=["Plan"])
app.include_router(builder_router.router, prefix="/builder", tags=["Goal Builder"])
app.include_router(community_router.router, prefix="/communities", tags=["Community"])
app.include_router(webhook_router.router, prefix="/webhooks", tags=["Webhooks"])


@app.on_event("startup")
async def startup_event():
    tz = pytz.timezone(APP_TIMEZONE)
    await connect_to_mongo()
    scheduler.add_job(
        daily_stats_snapshot,
        CronTrigger(hour=int(os.getenv("DAILY_STATS_HOUR", "0")), minute=5, timezone=tz),
    )
    scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    scheduler.shutdown()
    logger.info("[Scheduler] Shutdown")
    close_mongo_connection()


@app.get("/")
async def root():
    return {"message": "Goal Tracker API is running."}
