"""Access control gate.

Every task and category belongs to exactly one scope: a single user
(``Personal``) or a household (``Shared``). The database stores this as two
nullable columns; the service layer works with the tagged union below and
filters every query through ``visible_to`` so a client-supplied id is never
trusted on its own.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Union

from fastapi import Depends
from sqlalchemy import or_
from sqlmodel import Session, col, select

from .auth import require_user
from .db import get_session
from .errors import Forbidden
from .models import MANAGER_ROLES, HouseholdMember, MemberRole, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Personal:
    user_id: int


@dataclass(frozen=True)
class Shared:
    household_id: int


Owner = Union[Personal, Shared]


def owner_of(row) -> Owner:
    if row.household_id is not None and row.user_id is None:
        return Shared(row.household_id)
    if row.user_id is not None and row.household_id is None:
        return Personal(row.user_id)
    raise ValueError(f"{type(row).__name__} {row.id} does not have exactly one owner")


def owner_columns(owner: Owner) -> dict:
    if isinstance(owner, Shared):
        return {"user_id": None, "household_id": owner.household_id}
    return {"user_id": owner.user_id, "household_id": None}


@dataclass
class RequestContext:
    session: Session
    user: User
    now: datetime = field(default_factory=datetime.now)

    @property
    def user_id(self) -> int:
        return self.user.id


def get_context(
    session: Session = Depends(get_session), user: User = Depends(require_user)
) -> RequestContext:
    return RequestContext(session=session, user=user)


def household_ids_of(user_id: int, roles: Optional[Iterable[MemberRole]] = None):
    query = select(HouseholdMember.household_id).where(HouseholdMember.user_id == user_id)
    if roles is not None:
        query = query.where(col(HouseholdMember.role).in_(list(roles)))
    return query


def visible_to(model, user_id: int):
    """WHERE owner = user OR household IN (user's households)."""
    return or_(model.user_id == user_id, col(model.household_id).in_(household_ids_of(user_id)))


def manageable_by(model, user_id: int):
    return or_(
        model.user_id == user_id,
        col(model.household_id).in_(household_ids_of(user_id, MANAGER_ROLES)),
    )


def owned_by(model, owner: Owner):
    if isinstance(owner, Shared):
        return model.household_id == owner.household_id
    return model.user_id == owner.user_id


def get_membership(
    session: Session,
    user_id: int,
    household_id: int,
    roles: Optional[Iterable[MemberRole]] = None,
) -> Optional[HouseholdMember]:
    query = select(HouseholdMember).where(
        HouseholdMember.user_id == user_id, HouseholdMember.household_id == household_id
    )
    if roles is not None:
        query = query.where(col(HouseholdMember.role).in_(list(roles)))
    return session.exec(query).first()


def require_membership(
    ctx: RequestContext,
    household_id: int,
    roles: Optional[Iterable[MemberRole]] = None,
    message: str = "Access denied to household",
) -> HouseholdMember:
    membership = get_membership(ctx.session, ctx.user_id, household_id, roles)
    if not membership:
        logger.warning("user %s refused access to household %s", ctx.user_id, household_id)
        raise Forbidden(message)
    return membership


def is_member(session: Session, user_id: int, household_id: int) -> bool:
    return get_membership(session, user_id, household_id) is not None
