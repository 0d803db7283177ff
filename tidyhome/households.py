import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from .access import RequestContext, get_membership, household_ids_of, require_membership
from .auth import normalize_email, validate_email
from .errors import Conflict, NotImplementedYet, ValidationFailed
from .models import MANAGER_ROLES, Category, Household, HouseholdMember, MemberRole, Task
from .schemas import HouseholdPayload, InvitePayload, serialize_member
from .users import get_user_by_email

logger = logging.getLogger(__name__)

INVITABLE_ROLES = (MemberRole.admin.value, MemberRole.member.value)
NEW_USER_INVITE_MESSAGE = (
    "Invitation system for new users is not implemented yet. "
    "Only existing users can be added to households."
)
NEW_USER_INVITE_SUGGESTION = (
    "Ask the person to create an account first, then invite them using their registered email."
)


def _counts_by_household(session: Session, query) -> dict[int, int]:
    return {household_id: count for household_id, count in session.exec(query).all()}


def serialize_household(
    household: Household, user_id: int, active_tasks: int = 0, categories: int = 0
) -> dict:
    members = list(household.members)
    mine = next((m for m in members if m.user_id == user_id), None)
    return {
        "id": household.id,
        "name": household.name,
        "description": household.description,
        "createdAt": household.created_at,
        "updatedAt": household.updated_at,
        "userRole": mine.role.value if mine else MemberRole.member.value,
        "userJoinedAt": mine.joined_at if mine else None,
        "members": [serialize_member(member) for member in members],
        "stats": {
            "activeTasks": active_tasks,
            "categories": categories,
            "members": len(members),
        },
    }


def list_households(ctx: RequestContext) -> list[dict]:
    session = ctx.session
    households = session.exec(
        select(Household)
        .where(col(Household.id).in_(household_ids_of(ctx.user_id)))
        .order_by(Household.name, Household.id)
    ).all()
    ids = [h.id for h in households]
    if not ids:
        return []
    active = _counts_by_household(
        session,
        select(Task.household_id, func.count(Task.id))
        .where(col(Task.household_id).in_(ids), Task.is_completed == False)  # noqa: E712
        .group_by(Task.household_id),
    )
    categories = _counts_by_household(
        session,
        select(Category.household_id, func.count(Category.id))
        .where(col(Category.household_id).in_(ids))
        .group_by(Category.household_id),
    )
    return [
        serialize_household(h, ctx.user_id, active.get(h.id, 0), categories.get(h.id, 0))
        for h in households
    ]


def create_household(ctx: RequestContext, payload: HouseholdPayload) -> Household:
    session = ctx.session
    name = (payload.name or "").strip()
    if not name:
        raise ValidationFailed("Name is required")
    household = Household(
        name=name,
        description=(payload.description or "").strip() or None,
        created_at=ctx.now,
        updated_at=ctx.now,
    )
    try:
        session.add(household)
        session.flush()
        session.add(
            HouseholdMember(
                user_id=ctx.user_id,
                household_id=household.id,
                role=MemberRole.admin,
                joined_at=ctx.now,
            )
        )
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(household)
    logger.info("user %s created household %s", ctx.user_id, household.id)
    return household


def invite_member(ctx: RequestContext, payload: InvitePayload) -> HouseholdMember:
    session = ctx.session
    email = normalize_email(payload.email or "")
    if not email or payload.household_id is None:
        raise ValidationFailed("Email and household ID are required")
    if not validate_email(email):
        raise ValidationFailed("Invalid email format")
    if payload.role not in INVITABLE_ROLES:
        raise ValidationFailed("Role must be 'admin' or 'member'")
    require_membership(
        ctx,
        payload.household_id,
        roles=MANAGER_ROLES,
        message="You don't have permission to invite members to this household",
    )

    invitee = get_user_by_email(session, email)
    if not invitee:
        raise NotImplementedYet(NEW_USER_INVITE_MESSAGE, suggestion=NEW_USER_INVITE_SUGGESTION)
    if get_membership(session, invitee.id, payload.household_id):
        raise Conflict("This user is already a member of the household")

    member = HouseholdMember(
        user_id=invitee.id,
        household_id=payload.household_id,
        role=MemberRole(payload.role),
        joined_at=ctx.now,
    )
    session.add(member)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("This user is already a member of the household")
    session.refresh(member)
    logger.info(
        "user %s added user %s to household %s as %s",
        ctx.user_id,
        invitee.id,
        payload.household_id,
        member.role.value,
    )
    return member
