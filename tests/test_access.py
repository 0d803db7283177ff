import pytest
from sqlmodel import Session, select

from tidyhome.access import (
    Personal,
    RequestContext,
    Shared,
    get_membership,
    owner_columns,
    owner_of,
    require_membership,
    visible_to,
)
from tidyhome.errors import Forbidden
from tidyhome.models import Category, Household, HouseholdMember, MemberRole, User


def make_world(session: Session):
    alice = User(email="a@example.com", name="A", hashed_password="x")
    bob = User(email="b@example.com", name="B", hashed_password="x")
    home = Household(name="Home")
    session.add_all([alice, bob, home])
    session.commit()
    session.add(HouseholdMember(user_id=alice.id, household_id=home.id, role=MemberRole.owner))
    session.add_all(
        [
            Category(name="Alice only", user_id=alice.id),
            Category(name="Bob only", user_id=bob.id),
            Category(name="Home", household_id=home.id),
        ]
    )
    session.commit()
    return alice, bob, home


def test_owner_round_trip():
    assert owner_columns(Personal(3)) == {"user_id": 3, "household_id": None}
    assert owner_columns(Shared(5)) == {"user_id": None, "household_id": 5}
    assert owner_of(Category(name="x", user_id=3)) == Personal(3)
    assert owner_of(Category(name="x", household_id=5)) == Shared(5)
    with pytest.raises(ValueError):
        owner_of(Category(name="x"))


def test_visible_to_includes_household_rows(session: Session):
    alice, bob, _ = make_world(session)
    alice_sees = session.exec(select(Category.name).where(visible_to(Category, alice.id))).all()
    bob_sees = session.exec(select(Category.name).where(visible_to(Category, bob.id))).all()
    assert sorted(alice_sees) == ["Alice only", "Home"]
    assert bob_sees == ["Bob only"]


def test_membership_checks(session: Session):
    alice, bob, home = make_world(session)
    assert get_membership(session, alice.id, home.id) is not None
    # legacy "owner" rows count as managers
    assert get_membership(session, alice.id, home.id, (MemberRole.admin, MemberRole.owner))
    assert get_membership(session, alice.id, home.id, (MemberRole.admin,)) is None

    ctx = RequestContext(session=session, user=bob)
    with pytest.raises(Forbidden) as excinfo:
        require_membership(ctx, home.id)
    assert excinfo.value.status_code == 403
    assert excinfo.value.to_payload() == {"error": "Access denied to household"}
