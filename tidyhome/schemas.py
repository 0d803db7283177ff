from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlmodel import Session

from .models import (
    Category,
    Frequency,
    Household,
    HouseholdMember,
    MemberRole,
    Priority,
    RecurrenceRule,
    Task,
    TaskHistory,
    User,
)


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


LocalDateTime = Annotated[datetime, AfterValidator(to_local_naive)]


class Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RegisterPayload(Payload):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginPayload(Payload):
    email: Optional[str] = None
    password: Optional[str] = None


class RecurrencePayload(Payload):
    frequency: Frequency = Frequency.weekly
    interval: int = Field(default=1, ge=1)
    days_of_week: Optional[list[int]] = None
    end_date: Optional[LocalDateTime] = None
    occurrences: Optional[int] = Field(default=None, ge=1)

    @field_validator("days_of_week")
    @classmethod
    def _check_days(cls, value):
        if value is not None and any(day < 0 or day > 6 for day in value):
            raise ValueError("days of week run from 0 (Monday) to 6 (Sunday)")
        return value


class TaskCreatePayload(Payload):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[LocalDateTime] = None
    estimated_minutes: Optional[int] = Field(default=None, ge=0)
    priority: Priority = Priority.medium
    category_id: Optional[int] = None
    household_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    parent_task_id: Optional[int] = None
    recurrence_rule: Optional[RecurrencePayload] = None


class TaskPatch(Payload):
    """Partial task update; only fields present in the request are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    is_completed: Optional[bool] = None
    due_date: Optional[LocalDateTime] = None
    estimated_minutes: Optional[int] = Field(default=None, ge=0)
    actual_minutes: Optional[int] = Field(default=None, ge=0)
    priority: Optional[Priority] = None
    category_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    recurrence_rule: Optional[RecurrencePayload] = None

    def supplied(self, name: str) -> bool:
        return name in self.model_fields_set


TASK_PATCH_FIELDS = (
    "title",
    "description",
    "is_completed",
    "due_date",
    "estimated_minutes",
    "actual_minutes",
    "priority",
    "category_id",
    "assigned_to_id",
)
NON_NULLABLE_FIELDS = {"title", "is_completed", "due_date", "priority", "category_id"}


def task_state(task: Task) -> dict[str, Any]:
    state = {name: getattr(task, name) for name in TASK_PATCH_FIELDS}
    state["completed_at"] = task.completed_at
    return state


def merge_task_patch(existing: dict[str, Any], patch: TaskPatch, now: datetime) -> dict[str, Any]:
    """Return ``existing`` with the supplied patch fields applied.

    ``None`` clears nullable fields and is ignored for required ones. Moving
    to completed stamps ``completed_at`` with ``now``; an already completed
    task keeps its original timestamp; un-completing clears it.
    """
    merged = dict(existing)
    for name in TASK_PATCH_FIELDS:
        if not patch.supplied(name):
            continue
        value = getattr(patch, name)
        if value is None and name in NON_NULLABLE_FIELDS:
            continue
        merged[name] = value
    if merged["is_completed"]:
        if not existing.get("is_completed") or existing.get("completed_at") is None:
            merged["completed_at"] = now
    else:
        merged["completed_at"] = None
    return merged


class CategoryPayload(Payload):
    name: Optional[str] = None
    emoji: Optional[str] = None
    color: Optional[str] = None
    household_id: Optional[int] = None


class CategoryInitPayload(Payload):
    household_id: Optional[int] = None


class HouseholdPayload(Payload):
    name: Optional[str] = None
    description: Optional[str] = None


class InvitePayload(Payload):
    email: Optional[str] = None
    household_id: Optional[int] = None
    role: str = MemberRole.member.value


def user_summary(user: Optional[User]) -> Optional[dict]:
    if not user:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


def household_summary(household: Optional[Household]) -> Optional[dict]:
    if not household:
        return None
    return {"id": household.id, "name": household.name}


def category_summary(category: Optional[Category]) -> Optional[dict]:
    if not category:
        return None
    return {
        "id": category.id,
        "name": category.name,
        "emoji": category.emoji,
        "color": category.color,
    }


def serialize_category(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "emoji": category.emoji,
        "color": category.color,
        "userId": category.user_id,
        "householdId": category.household_id,
        "createdAt": category.created_at,
        "updatedAt": category.updated_at,
    }


def serialize_member(member: HouseholdMember) -> dict:
    return {
        "id": member.id,
        "role": member.role.value,
        "joinedAt": member.joined_at,
        "user": user_summary(member.user),
    }


def serialize_recurrence(rule: Optional[RecurrenceRule]) -> Optional[dict]:
    if not rule:
        return None
    days = [int(d) for d in rule.days_of_week.split(",")] if rule.days_of_week else None
    return {
        "id": rule.id,
        "taskId": rule.task_id,
        "frequency": rule.frequency.value,
        "interval": rule.interval,
        "daysOfWeek": days,
        "endDate": rule.end_date,
        "occurrences": rule.occurrences,
    }


def serialize_history(entry: TaskHistory) -> dict:
    return {
        "id": entry.id,
        "taskId": entry.task_id,
        "action": entry.action,
        "completedBy": entry.completed_by,
        "completionTime": entry.completion_time,
        "notes": entry.notes,
        "createdAt": entry.created_at,
    }


def serialize_task(session: Session, task: Task) -> dict:
    category = session.get(Category, task.category_id)
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "dueDate": task.due_date,
        "priority": task.priority.value,
        "isCompleted": task.is_completed,
        "completedAt": task.completed_at,
        "estimatedMinutes": task.estimated_minutes,
        "actualMinutes": task.actual_minutes,
        "categoryId": task.category_id,
        "userId": task.user_id,
        "householdId": task.household_id,
        "assignedToId": task.assigned_to_id,
        "parentTaskId": task.parent_task_id,
        "createdAt": task.created_at,
        "updatedAt": task.updated_at,
        "category": category_summary(category),
        "user": user_summary(session.get(User, task.user_id)) if task.user_id else None,
        "household": household_summary(session.get(Household, task.household_id))
        if task.household_id
        else None,
    }
