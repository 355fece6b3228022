from datetime import timedelta
import logging

from goaltracker.db.data_client import DataClient
from goaltracker.db.mongo import get_database
from goaltracker.services.analytics_service import snapshot_all_users
from goaltracker.utils.util_func import get_today

logger = logging.getLogger(__name__)


async def daily_stats_snapshot():
    """Store yesterday's completion totals for every user with tasks."""
    day = get_today() - timedelta(days=1)
    try:
        db = await get_database()
        saved = await snapshot_all_users(DataClient(db), day)
        return saved
    except Exception as e:
        logger.error(f"[Scheduler] Daily stats snapshot for {day} failed: {e}")
        raise
