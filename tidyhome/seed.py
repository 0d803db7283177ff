"""Load demo data: one user, one household and a week of chores.

Run with ``python -m tidyhome.seed``. Existing rows are wiped first.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlmodel import Session, select

from . import db
from .auth import hash_password
from .categories import DEFAULT_CATEGORIES
from .config import LOG_LEVEL
from .dashboard import start_of_week
from .logging_setup import setup_logging
from .models import (
    Category,
    Household,
    HouseholdMember,
    MemberRole,
    Priority,
    RecurrenceRule,
    Task,
    TaskHistory,
    User,
)

logger = logging.getLogger(__name__)

DEMO_EMAIL = "demo@example.com"
DEMO_PASSWORD = "Demo1234"

# (weekday offset from Monday, title, category, minutes, priority, shared)
DEMO_TASKS = [
    (0, "Vacuum living room", "Cleaning", 30, Priority.medium, True),
    (0, "Clean kitchen counters", "Kitchen", 15, Priority.high, True),
    (1, "Do laundry - whites", "Laundry", 45, Priority.medium, False),
    (1, "Water the plants", "Outdoor", 10, Priority.low, False),
    (2, "Grocery shopping", "Shopping", 60, Priority.high, True),
    (3, "Change air filter", "Maintenance", 20, Priority.medium, False),
    (4, "Organize pantry", "Organizing", 40, Priority.low, True),
    (5, "Mow the lawn", "Outdoor", 50, Priority.medium, False),
    (6, "Clean bathroom", "Cleaning", 35, Priority.high, True),
]

TABLES = (TaskHistory, RecurrenceRule, Task, Category, HouseholdMember, Household, User)


def clear(session: Session):
    for model in TABLES:
        for row in session.exec(select(model)).all():
            session.delete(row)
        session.commit()


def seed_demo(session: Session, now: Optional[datetime] = None) -> User:
    now = now or datetime.now()
    clear(session)

    user = User(email=DEMO_EMAIL, name="Demo User", hashed_password=hash_password(DEMO_PASSWORD))
    household = Household(name="Demo Household", description="A sample household for demonstration")
    session.add(user)
    session.add(household)
    session.flush()
    session.add(HouseholdMember(user_id=user.id, household_id=household.id, role=MemberRole.admin))

    personal = {}
    shared = {}
    for entry in DEFAULT_CATEGORIES:
        personal[entry["name"]] = Category(user_id=user.id, **entry)
        shared[entry["name"]] = Category(household_id=household.id, **entry)
    session.add_all([*personal.values(), *shared.values()])
    session.flush()

    monday = start_of_week(now)
    for offset, title, category, minutes, priority, is_shared in DEMO_TASKS:
        due = monday + timedelta(days=offset, hours=10)
        done = due < now - timedelta(hours=2)
        task = Task(
            title=title,
            due_date=due,
            estimated_minutes=minutes,
            priority=priority,
            is_completed=done,
            completed_at=due + timedelta(hours=1) if done else None,
            category_id=(shared if is_shared else personal)[category].id,
            user_id=None if is_shared else user.id,
            household_id=household.id if is_shared else None,
        )
        if done:
            task.history.append(
                TaskHistory(
                    action="completed", completed_by=user.id, completion_time=task.completed_at
                )
            )
        if title == "Water the plants":
            task.recurrence_rule = RecurrenceRule(interval=1, days_of_week="1,4")
        session.add(task)
    session.commit()
    session.refresh(user)
    logger.info("seeded demo data for %s (%d tasks)", user.email, len(DEMO_TASKS))
    return user


def main():
    setup_logging(LOG_LEVEL)
    db.init_db()
    with Session(db.engine) as session:
        seed_demo(session)
    logger.info("log in as %s / %s", DEMO_EMAIL, DEMO_PASSWORD)


if __name__ == "__main__":
    main()
