from datetime import datetime, date
from dateutil.relativedelta import relativedelta
from dotenv import load_dotenv
import os
import random
import uuid
import pytz

load_dotenv()

APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Asia/Jakarta")


def get_current_time(loc: str = APP_TIMEZONE):
    tz = pytz.timezone(loc)
    curr_time = datetime.now(tz)
    return curr_time


def get_today(loc: str = APP_TIMEZONE) -> date:
    return get_current_time(loc).date()


def new_id() -> str:
    return str(uuid.uuid4())


def random_goal_color() -> str:
    return f"hsl({random.randint(0, 359)}, 70%, 50%)"


def add_months(day: date, months: int) -> date:
    # the day of month is clamped, so Jan 31 + 1 month is the last day of February
    return day + relativedelta(months=months)
