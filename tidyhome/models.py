from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, SQLModel, Relationship

SINGLE_OWNER_CHECK = "(user_id IS NULL) <> (household_id IS NULL)"


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class MemberRole(str, Enum):
    admin = "admin"
    member = "member"
    owner = "owner"  # older households; treated like admin


class Frequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


MANAGER_ROLES = (MemberRole.admin, MemberRole.owner)
PRIORITY_RANK = {Priority.high: 3, Priority.medium: 2, Priority.low: 1}


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str
    hashed_password: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    memberships: list["HouseholdMember"] = Relationship(
        back_populates="user", sa_relationship_kwargs={"passive_deletes": True}
    )


class Household(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    members: list["HouseholdMember"] = Relationship(
        back_populates="household",
        sa_relationship_kwargs={"passive_deletes": True, "order_by": "HouseholdMember.joined_at"},
    )


class HouseholdMember(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "household_id", name="uq_member_user_household"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", ondelete="CASCADE", index=True)
    household_id: int = Field(foreign_key="household.id", ondelete="CASCADE", index=True)
    role: MemberRole = Field(default=MemberRole.member)
    joined_at: datetime = Field(default_factory=datetime.now)

    user: User = Relationship(back_populates="memberships")
    household: Household = Relationship(back_populates="members")


class Category(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("name", "user_id", name="uq_category_user_name"),
        UniqueConstraint("name", "household_id", name="uq_category_household_name"),
        CheckConstraint(SINGLE_OWNER_CHECK, name="ck_category_single_owner"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    emoji: Optional[str] = None
    color: Optional[str] = None
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", ondelete="CASCADE", index=True)
    household_id: Optional[int] = Field(
        default=None, foreign_key="household.id", ondelete="CASCADE", index=True
    )
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Task(SQLModel, table=True):
    __table_args__ = (CheckConstraint(SINGLE_OWNER_CHECK, name="ck_task_single_owner"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    due_date: datetime = Field(index=True)
    priority: Priority = Field(default=Priority.medium)
    is_completed: bool = Field(default=False)
    completed_at: Optional[datetime] = None
    estimated_minutes: Optional[int] = None
    actual_minutes: Optional[int] = None
    category_id: int = Field(foreign_key="category.id", index=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", ondelete="CASCADE", index=True)
    household_id: Optional[int] = Field(
        default=None, foreign_key="household.id", ondelete="CASCADE", index=True
    )
    assigned_to_id: Optional[int] = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    parent_task_id: Optional[int] = Field(default=None, foreign_key="task.id", ondelete="SET NULL")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    history: list["TaskHistory"] = Relationship(
        back_populates="task",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "passive_deletes": True},
    )
    recurrence_rule: Optional["RecurrenceRule"] = Relationship(
        back_populates="task",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "passive_deletes": True,
            "uselist": False,
        },
    )


class RecurrenceRule(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="task.id", ondelete="CASCADE", unique=True)
    frequency: Frequency = Field(default=Frequency.weekly)
    interval: int = Field(default=1)
    days_of_week: Optional[str] = None  # comma separated, 0 = Monday
    end_date: Optional[datetime] = None
    occurrences: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.now)

    task: Optional[Task] = Relationship(back_populates="recurrence_rule")


class TaskHistory(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="task.id", ondelete="CASCADE", index=True)
    action: str
    completed_by: Optional[int] = Field(default=None, foreign_key="user.id", ondelete="SET NULL")
    completion_time: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    task: Optional[Task] = Relationship(back_populates="history")


__all__ = [
    "User",
    "Household",
    "HouseholdMember",
    "Category",
    "Task",
    "RecurrenceRule",
    "TaskHistory",
    "Priority",
    "MemberRole",
    "Frequency",
    "MANAGER_ROLES",
    "PRIORITY_RANK",
]
