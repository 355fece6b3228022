from datetime import date

from goaltracker.schemas.goal_schema import Milestone
from goaltracker.schemas.task_schema import CustomTask, DailyTask, WeeklyTask
from goaltracker.services.progress import compute_progress
from goaltracker.services.recurrence import completion_index

MONDAY = date(2026, 10, 19)


def milestone(mid, completed):
    return Milestone(id=mid, goal_id="g1", title=mid, date=MONDAY, completed=completed)


def test_no_children_means_zero_progress():
    assert compute_progress([], [], MONDAY, {}) == 0


def test_milestones_alone():
    milestones = [milestone("m1", True), milestone("m2", False)]
    assert compute_progress(milestones, [], MONDAY, {}) == 50


def test_tasks_alone_use_todays_completions():
    tasks = [
        DailyTask(id="d1", user_id="u", goal_id="g1", title="a", date=MONDAY),
        DailyTask(id="d2", user_id="u", goal_id="g1", title="b", date=MONDAY),
    ]
    index = completion_index([{"task_id": "d1", "completion_date": "2026-10-19", "completed": True}])
    assert compute_progress([], tasks, MONDAY, index) == 50


def test_weighted_when_both_exist():
    milestones = [milestone("m1", True), milestone("m2", False)]
    tasks = [CustomTask(id="c1", user_id="u", goal_id="g1", title="c", date=MONDAY, completed=True)]
    # 0.7 * 0.5 + 0.3 * 1.0
    assert compute_progress(milestones, tasks, MONDAY, {}) == 65


def test_recurring_tasks_not_due_today_do_not_count():
    milestones = [milestone("m1", True)]
    tasks = [WeeklyTask(id="w1", user_id="u", goal_id="g1", title="w", date=MONDAY, weekday=5)]
    assert compute_progress(milestones, tasks, MONDAY, {}) == 100
