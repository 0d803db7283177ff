import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import case, func
from sqlmodel import col, select

from .access import (
    Owner,
    Personal,
    RequestContext,
    Shared,
    is_member,
    manageable_by,
    owner_columns,
    owner_of,
    require_membership,
    visible_to,
)
from .categories import get_visible_category
from .config import TASK_PAGE_LIMIT
from .errors import Forbidden, NotFound, ValidationFailed
from .models import PRIORITY_RANK, Priority, RecurrenceRule, Task, TaskHistory, User
from .schemas import (
    RecurrencePayload,
    TaskCreatePayload,
    TaskPatch,
    merge_task_patch,
    serialize_history,
    serialize_recurrence,
    serialize_task,
    task_state,
    user_summary,
)

logger = logging.getLogger(__name__)

STATUS_FILTERS = ("all", "pending", "completed", "overdue")
HISTORY_LIMIT = 10


@dataclass
class TaskFilters:
    status: str = "all"
    priority: Optional[str] = None
    category_id: Optional[int] = None
    household_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    limit: int = TASK_PAGE_LIMIT
    offset: int = 0


def priority_rank():
    return case(PRIORITY_RANK, value=Task.priority, else_=0)


def filter_conditions(ctx: RequestContext, filters: TaskFilters) -> list:
    conditions = [visible_to(Task, ctx.user_id)]
    if filters.status == "completed":
        conditions.append(Task.is_completed == True)  # noqa: E712
    elif filters.status == "pending":
        conditions.append(Task.is_completed == False)  # noqa: E712
    elif filters.status == "overdue":
        conditions.append(Task.is_completed == False)  # noqa: E712
        conditions.append(Task.due_date < ctx.now)
    if filters.priority in Priority.__members__:
        conditions.append(Task.priority == Priority(filters.priority))
    if filters.category_id is not None:
        conditions.append(Task.category_id == filters.category_id)
    if filters.household_id is not None:
        conditions.append(Task.household_id == filters.household_id)
    if filters.assigned_to_id is not None:
        conditions.append(Task.assigned_to_id == filters.assigned_to_id)
    return conditions


def list_tasks(ctx: RequestContext, filters: TaskFilters) -> dict:
    conditions = filter_conditions(ctx, filters)
    tasks = ctx.session.exec(
        select(Task)
        .where(*conditions)
        .order_by(
            col(Task.is_completed).asc(),
            col(Task.due_date).asc(),
            priority_rank().desc(),
            col(Task.created_at).desc(),
            col(Task.id).desc(),
        )
        .offset(filters.offset)
        .limit(filters.limit)
    ).all()
    total = ctx.session.exec(select(func.count(Task.id)).where(*conditions)).one()
    return {
        "tasks": [serialize_task(ctx.session, task) for task in tasks],
        "totalCount": total,
        "hasMore": filters.offset + len(tasks) < total,
    }


def get_visible_task(ctx: RequestContext, task_id: int) -> Task:
    task = ctx.session.exec(
        select(Task).where(Task.id == task_id, visible_to(Task, ctx.user_id))
    ).first()
    if not task:
        raise NotFound("Task not found or access denied")
    return task


def get_task_detail(ctx: RequestContext, task_id: int) -> dict:
    task = get_visible_task(ctx, task_id)
    session = ctx.session
    subtasks = session.exec(
        select(Task)
        .where(Task.parent_task_id == task.id, visible_to(Task, ctx.user_id))
        .order_by(Task.due_date)
    ).all()
    history = session.exec(
        select(TaskHistory)
        .where(TaskHistory.task_id == task.id)
        .order_by(col(TaskHistory.created_at).desc(), col(TaskHistory.id).desc())
        .limit(HISTORY_LIMIT)
    ).all()
    detail = serialize_task(session, task)
    detail["assignedTo"] = (
        user_summary(session.get(User, task.assigned_to_id)) if task.assigned_to_id else None
    )
    detail["subTasks"] = [serialize_task(session, sub) for sub in subtasks]
    detail["taskHistory"] = [serialize_history(entry) for entry in history]
    detail["recurrenceRule"] = serialize_recurrence(task.recurrence_rule)
    return detail


def check_assignee(ctx: RequestContext, owner: Owner, assigned_to_id: Optional[int]):
    if assigned_to_id is None:
        return
    if isinstance(owner, Shared):
        if not is_member(ctx.session, assigned_to_id, owner.household_id):
            raise ValidationFailed("Assignee must be a member of the household")
    elif assigned_to_id != owner.user_id:
        raise ValidationFailed("Personal tasks can only be assigned to their owner")


def rule_values(payload: RecurrencePayload) -> dict:
    days = payload.days_of_week
    return {
        "frequency": payload.frequency,
        "interval": payload.interval,
        "days_of_week": ",".join(str(d) for d in sorted(set(days))) if days else None,
        "end_date": payload.end_date,
        "occurrences": payload.occurrences,
    }


def create_task(ctx: RequestContext, payload: TaskCreatePayload) -> Task:
    session = ctx.session
    title = (payload.title or "").strip()
    if not title or payload.due_date is None or payload.category_id is None:
        raise ValidationFailed("Title, due date, and category are required")
    if not get_visible_category(session, ctx.user_id, payload.category_id):
        raise Forbidden("Invalid category or access denied")
    if payload.household_id is not None:
        require_membership(ctx, payload.household_id)
        owner: Owner = Shared(payload.household_id)
    else:
        owner = Personal(ctx.user_id)
    check_assignee(ctx, owner, payload.assigned_to_id)
    if payload.parent_task_id is not None:
        parent = session.exec(
            select(Task).where(Task.id == payload.parent_task_id, visible_to(Task, ctx.user_id))
        ).first()
        if not parent:
            raise ValidationFailed("Invalid parent task")

    task = Task(
        title=title,
        description=payload.description or None,
        due_date=payload.due_date,
        estimated_minutes=payload.estimated_minutes,
        priority=payload.priority,
        category_id=payload.category_id,
        assigned_to_id=payload.assigned_to_id,
        parent_task_id=payload.parent_task_id,
        created_at=ctx.now,
        updated_at=ctx.now,
        **owner_columns(owner),
    )
    if payload.recurrence_rule:
        task.recurrence_rule = RecurrenceRule(**rule_values(payload.recurrence_rule))
    session.add(task)
    session.commit()
    session.refresh(task)
    logger.info("user %s created task %s (%s)", ctx.user_id, task.id, owner)
    return task


def update_task(ctx: RequestContext, task_id: int, patch: TaskPatch) -> Task:
    session = ctx.session
    task = get_visible_task(ctx, task_id)
    if patch.supplied("title") and patch.title is not None and not patch.title.strip():
        raise ValidationFailed("Title cannot be empty")

    existing = task_state(task)
    merged = merge_task_patch(existing, patch, ctx.now)
    if merged["category_id"] != existing["category_id"]:
        if not get_visible_category(session, ctx.user_id, merged["category_id"]):
            raise Forbidden("Invalid category or access denied")
    if merged["assigned_to_id"] != existing["assigned_to_id"]:
        check_assignee(ctx, owner_of(task), merged["assigned_to_id"])

    for name, value in merged.items():
        setattr(task, name, value)
    if patch.supplied("title") and task.title:
        task.title = task.title.strip()
    task.updated_at = ctx.now

    if merged["is_completed"] and not existing["is_completed"]:
        session.add(
            TaskHistory(
                task_id=task.id,
                action="completed",
                completed_by=ctx.user_id,
                completion_time=ctx.now,
                created_at=ctx.now,
            )
        )

    if patch.supplied("recurrence_rule"):
        if patch.recurrence_rule is None:
            task.recurrence_rule = None
        elif task.recurrence_rule is None:
            task.recurrence_rule = RecurrenceRule(**rule_values(patch.recurrence_rule))
        else:
            for name, value in rule_values(patch.recurrence_rule).items():
                setattr(task.recurrence_rule, name, value)

    session.add(task)
    session.commit()
    session.refresh(task)
    return task


def delete_task(ctx: RequestContext, task_id: int) -> None:
    session = ctx.session
    task = session.exec(
        select(Task).where(Task.id == task_id, manageable_by(Task, ctx.user_id))
    ).first()
    if not task:
        raise NotFound("Task not found or insufficient permissions")
    subtasks = session.exec(select(Task).where(Task.parent_task_id == task.id)).all()
    for sub in subtasks:
        sub.parent_task_id = None
        session.add(sub)
    session.delete(task)
    session.commit()
    logger.info("user %s deleted task %s", ctx.user_id, task_id)

