import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .access import (
    Owner,
    Personal,
    RequestContext,
    Shared,
    owned_by,
    owner_columns,
    owner_of,
    require_membership,
    visible_to,
)
from .errors import Conflict, NotFound, ValidationFailed
from .models import Category, Household, Task
from .schemas import CategoryPayload, household_summary

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {"name": "Cleaning", "emoji": "🧹", "color": "#3B82F6"},
    {"name": "Kitchen", "emoji": "🍳", "color": "#10B981"},
    {"name": "Laundry", "emoji": "👕", "color": "#8B5CF6"},
    {"name": "Shopping", "emoji": "🛒", "color": "#F59E0B"},
    {"name": "Maintenance", "emoji": "🔧", "color": "#6B7280"},
    {"name": "Outdoor", "emoji": "🌳", "color": "#059669"},
    {"name": "Organizing", "emoji": "📦", "color": "#EC4899"},
    {"name": "Pet Care", "emoji": "🐾", "color": "#F97316"},
    {"name": "Other", "emoji": "📌", "color": "#64748B"},
]

DUPLICATE_NAME = "A category with this name already exists"


def get_visible_category(session: Session, user_id: int, category_id: int) -> Optional[Category]:
    return session.exec(
        select(Category).where(Category.id == category_id, visible_to(Category, user_id))
    ).first()


def scope_categories(session: Session, owner: Owner) -> list[Category]:
    return list(
        session.exec(
            select(Category).where(owned_by(Category, owner)).order_by(Category.name)
        ).all()
    )


def name_taken(session: Session, owner: Owner, name: str, exclude_id: Optional[int] = None) -> bool:
    query = select(Category.id).where(owned_by(Category, owner), Category.name == name)
    if exclude_id is not None:
        query = query.where(Category.id != exclude_id)
    return session.exec(query).first() is not None


def task_counts(session: Session, user_id: int) -> dict[int, int]:
    rows = session.exec(
        select(Task.category_id, func.count(Task.id))
        .where(visible_to(Task, user_id))
        .group_by(Task.category_id)
    ).all()
    return {category_id: count for category_id, count in rows}


def list_categories(ctx: RequestContext) -> list[dict]:
    session = ctx.session
    categories = session.exec(
        select(Category)
        .where(visible_to(Category, ctx.user_id))
        .order_by(Category.name, Category.id)
    ).all()
    counts = task_counts(session, ctx.user_id)
    return [
        {
            "id": category.id,
            "name": category.name,
            "emoji": category.emoji,
            "color": category.color,
            "taskCount": counts.get(category.id, 0),
            "isPersonal": category.user_id is not None,
            "household": household_summary(session.get(Household, category.household_id))
            if category.household_id
            else None,
            "createdAt": category.created_at,
            "updatedAt": category.updated_at,
        }
        for category in categories
    ]


def _commit_or_conflict(session: Session):
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict(DUPLICATE_NAME)


def create_category(ctx: RequestContext, payload: CategoryPayload) -> Category:
    session = ctx.session
    name = (payload.name or "").strip()
    if not name:
        raise ValidationFailed("Name is required")
    if payload.household_id is not None:
        require_membership(ctx, payload.household_id)
        owner: Owner = Shared(payload.household_id)
    else:
        owner = Personal(ctx.user_id)
    if name_taken(session, owner, name):
        raise Conflict(DUPLICATE_NAME)
    category = Category(
        name=name,
        emoji=payload.emoji or None,
        color=payload.color or None,
        created_at=ctx.now,
        updated_at=ctx.now,
        **owner_columns(owner),
    )
    session.add(category)
    _commit_or_conflict(session)
    session.refresh(category)
    logger.info("user %s created category %s (%s)", ctx.user_id, category.id, owner)
    return category


def get_category_or_404(ctx: RequestContext, category_id: int) -> Category:
    category = get_visible_category(ctx.session, ctx.user_id, category_id)
    if not category:
        raise NotFound("Category not found or access denied")
    return category


def update_category(ctx: RequestContext, category_id: int, payload: CategoryPayload) -> Category:
    session = ctx.session
    category = get_category_or_404(ctx, category_id)
    supplied = payload.model_fields_set
    if "name" in supplied:
        name = (payload.name or "").strip()
        if not name:
            raise ValidationFailed("Name is required")
        if name_taken(session, owner_of(category), name, exclude_id=category.id):
            raise Conflict(DUPLICATE_NAME)
        category.name = name
    if "emoji" in supplied:
        category.emoji = payload.emoji or None
    if "color" in supplied:
        category.color = payload.color or None
    category.updated_at = ctx.now
    session.add(category)
    _commit_or_conflict(session)
    session.refresh(category)
    return category


def delete_category(ctx: RequestContext, category_id: int) -> None:
    session = ctx.session
    category = get_category_or_404(ctx, category_id)
    in_use = session.exec(
        select(func.count(Task.id)).where(Task.category_id == category.id)
    ).one()
    if in_use:
        raise Conflict(f"Category is still used by {in_use} task(s)", taskCount=in_use)
    session.delete(category)
    session.commit()
    logger.info("user %s deleted category %s", ctx.user_id, category_id)


def get_or_create_defaults(
    ctx: RequestContext, household_id: Optional[int] = None
) -> tuple[list[Category], bool]:
    """Seed the default categories for a scope that has none.

    Returns the scope's categories and whether they were created by this call.
    """
    session = ctx.session
    if household_id is not None:
        require_membership(ctx, household_id)
        owner: Owner = Shared(household_id)
    else:
        owner = Personal(ctx.user_id)

    existing = scope_categories(session, owner)
    if existing:
        return existing, False
    for entry in DEFAULT_CATEGORIES:
        session.add(
            Category(created_at=ctx.now, updated_at=ctx.now, **entry, **owner_columns(owner))
        )
    try:
        session.commit()
    except IntegrityError:
        # a concurrent request seeded the same scope first; the unique name constraint stopped us
        session.rollback()
        logger.info("default categories for %s already seeded concurrently", owner)
        return scope_categories(session, owner), False
    logger.info("seeded %d default categories for %s", len(DEFAULT_CATEGORIES), owner)
    return scope_categories(session, owner), True
