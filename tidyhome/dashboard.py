"""Dashboard aggregation.

Everything here is computed from the task table at request time. The
functions take ``now`` explicitly; the routes pass the wall-clock time.
Weeks start on Monday 00:00 local time.
"""
import math
from datetime import datetime, timedelta
from typing import Iterable

from sqlalchemy import func
from sqlmodel import Session, col, select

from .access import visible_to
from .config import UPCOMING_LIMIT
from .models import Category, Task
from .tasks import priority_rank

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

CLEANING_CATEGORIES = {"cleaning", "laundry", "maintenance"}
GOOD_DAY_RATE = 0.8
STREAK_WINDOW_DAYS = 30

CLEANLINESS_LABELS = [
    (90, "Sparkling Clean!", "✨"),
    (80, "Very Clean", "🌟"),
    (70, "Pretty Clean", "😊"),
    (60, "Getting There", "🔄"),
    (40, "Needs Work", "💪"),
]


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(moment: datetime) -> datetime:
    day = start_of_day(moment)
    return day - timedelta(days=day.weekday())


def week_over_week_change(this_week: int, last_week: int) -> int:
    if last_week > 0:
        return round_half_up((this_week - last_week) / last_week * 100)
    return 100 if this_week > 0 else 0


def clock(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def short_date(moment: datetime) -> str:
    return f"{WEEKDAYS[moment.weekday()][:3]}, {MONTHS[moment.month - 1]} {moment.day}"


def due_date_label(due: datetime, now: datetime) -> str:
    today = start_of_day(now)
    tomorrow = today + timedelta(days=1)
    if due < today:
        return f"Overdue ({short_date(due)})"
    if due < tomorrow:
        return f"Today, {clock(due)}"
    if due < tomorrow + timedelta(days=1):
        return f"Tomorrow, {clock(due)}"
    return f"{WEEKDAYS[due.weekday()]}, {MONTHS[due.month - 1]} {due.day}, {clock(due)}"


def _count(session: Session, *conditions) -> int:
    return session.exec(select(func.count(Task.id)).where(*conditions)).one()


def dashboard_stats(session: Session, user_id: int, now: datetime) -> dict:
    today = start_of_day(now)
    tomorrow = today + timedelta(days=1)
    week_start = start_of_week(now)
    last_week_start = week_start - timedelta(days=7)
    mine = Task.user_id == user_id
    pending = Task.is_completed == False  # noqa: E712
    done = Task.is_completed == True  # noqa: E712

    completed_this_week = _count(session, mine, done, Task.completed_at >= week_start)
    completed_last_week = _count(
        session,
        mine,
        done,
        Task.completed_at >= last_week_start,
        Task.completed_at < week_start,
    )
    return {
        "totalTasks": _count(session, mine, pending),
        "overdueTasks": _count(session, mine, pending, Task.due_date < now),
        "dueTodayTasks": _count(
            session, mine, pending, Task.due_date >= today, Task.due_date < tomorrow
        ),
        "completedThisWeek": completed_this_week,
        "completedThisWeekChange": week_over_week_change(completed_this_week, completed_last_week),
    }


def upcoming_tasks(
    session: Session, user_id: int, now: datetime, limit: int = UPCOMING_LIMIT
) -> list[dict]:
    tasks = session.exec(
        select(Task)
        .where(Task.user_id == user_id, Task.is_completed == False)  # noqa: E712
        .order_by(col(Task.due_date).asc(), priority_rank().desc(), col(Task.id).asc())
        .limit(limit)
    ).all()
    upcoming = []
    for task in tasks:
        category = session.get(Category, task.category_id)
        upcoming.append(
            {
                "id": task.id,
                "title": task.title,
                "description": task.description,
                "dueDate": due_date_label(task.due_date, now),
                "priority": task.priority.value,
                "category": category.name if category else None,
                "categoryColor": category.color if category else None,
                "categoryEmoji": category.emoji if category else None,
                "estimatedMinutes": task.estimated_minutes,
                "isOverdue": task.due_date < now,
            }
        )
    return upcoming


def cleanliness_label(score: int) -> dict:
    for threshold, label, emoji in CLEANLINESS_LABELS:
        if score >= threshold:
            return {"label": label, "emoji": emoji}
    return {"label": "Time to Clean!", "emoji": "🧹"}


def _rate(tasks: list[Task]) -> float:
    if not tasks:
        return 1.0
    return sum(1 for t in tasks if t.is_completed) / len(tasks)


def _due_on(tasks: Iterable[Task], day: datetime) -> list[Task]:
    return [t for t in tasks if start_of_day(t.due_date) == day]


def cleanliness_metrics(
    tasks: list[Task], category_names: dict[int, str], now: datetime
) -> dict:
    today = start_of_day(now)
    week_start = start_of_week(now)
    week_end = week_start + timedelta(days=7)
    recent = [t for t in tasks if now - timedelta(days=7) <= t.due_date <= now]
    this_week = [t for t in tasks if week_start <= t.due_date < week_end]
    due_today = _due_on(tasks, today)

    breakdown: dict[str, dict[str, int]] = {}
    for task in recent:
        name = category_names.get(task.category_id, "Other")
        entry = breakdown.setdefault(name, {"completed": 0, "total": 0})
        entry["total"] += 1
        if task.is_completed:
            entry["completed"] += 1

    daily_progress = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        day_tasks = _due_on(tasks, day)
        completed = sum(1 for t in day_tasks if t.is_completed)
        daily_progress.append(
            {
                "name": WEEKDAYS[day.weekday()][:3],
                "completed": completed,
                "total": len(day_tasks),
                "score": round_half_up(_rate(day_tasks) * 100),
            }
        )

    streak = 0
    day = today
    for _ in range(STREAK_WINDOW_DAYS):
        day_tasks = _due_on(tasks, day)
        day -= timedelta(days=1)
        if not day_tasks:
            continue
        if _rate(day_tasks) < GOOD_DAY_RATE:
            break
        streak += 1

    cleaning = [
        t for t in recent if category_names.get(t.category_id, "").lower() in CLEANING_CATEGORIES
    ]
    overall = round_half_up((_rate(recent) * 0.4 + _rate(cleaning) * 0.6) * 100)
    return {
        "overallScore": overall,
        "weeklyScore": round_half_up(_rate(this_week) * 100),
        "streak": streak,
        "completedToday": sum(1 for t in due_today if t.is_completed),
        "completedThisWeek": sum(1 for t in this_week if t.is_completed),
        "totalTasks": len(tasks),
        "categoryBreakdown": breakdown,
        "dailyProgress": daily_progress,
        **cleanliness_label(overall),
    }


def cleanliness_for_user(session: Session, user_id: int, now: datetime) -> dict:
    tasks = list(session.exec(select(Task).where(visible_to(Task, user_id))).all())
    category_ids = {t.category_id for t in tasks}
    names = {}
    if category_ids:
        names = {
            c.id: c.name
            for c in session.exec(select(Category).where(col(Category.id).in_(category_ids))).all()
        }
    return cleanliness_metrics(tasks, names, now)
