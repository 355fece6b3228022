from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from dotenv import load_dotenv
from pymongo.errors import ServerSelectionTimeoutError
import os
import logging
from pymongo import ASCENDING

load_dotenv()
logger = logging.getLogger(__name__)

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "goaltracker")

# Setup client with short timeout for quick failure
client = AsyncIOMotorClient(MONGO_URI, serverSelectionTimeoutMS=3000)

# Global DB object
db: AsyncIOMotorDatabase | None = None


async def connect_to_mongo():
    global db
    try:
        await client.admin.command("ping")
        db = client[MONGO_DB_NAME]
        logger.info("[MongoDB] Connected successfully.")
        await init_indexes()
    except ServerSelectionTimeoutError as e:
        logger.error(f"[MongoDB] Connection failed: {e}")
        db = None


async def get_database() -> AsyncIOMotorDatabase:
    if db is None:
        raise RuntimeError("Database not available")
    return db


async def init_indexes():
    if db is None:
        raise RuntimeError("Database not initialized")

    await db["task_completions"].create_index(
        [("task_id", ASCENDING), ("completion_date", ASCENDING)],
        unique=True,
        name="idx_task_completion_date_unique",
    )
    await db["post_likes"].create_index(
        [("post_id", ASCENDING), ("user_id", ASCENDING)],
        unique=True,
        name="idx_post_like_unique",
    )
    await db["community_members"].create_index(
        [("community_id", ASCENDING), ("user_id", ASCENDING)],
        unique=True,
        name="idx_community_member_unique",
    )
    await db["posts"].create_index(
        [("user_id", ASCENDING), ("client_id", ASCENDING)],
        unique=True,
        partialFilterExpression={"client_id": {"$type": "string"}},
        name="idx_post_author_client_id_unique",
    )
    await db["daily_task_stats"].create_index(
        [("user_id", ASCENDING), ("date", ASCENDING)],
        unique=True,
        name="idx_daily_stats_user_date_unique",
    )
    for table in ("goals", "tasks", "reflections", "resources"):
        await db[table].create_index([("user_id", ASCENDING)])
    for table in ("tasks", "milestones"):
        await db[table].create_index([("goal_id", ASCENDING)])

    logger.info("[MongoDB] Indexes initialized.")


def close_mongo_connection():
    client.close()
    logger.info("[MongoDB] Connection closed.")
