from datetime import datetime

import pytest

from conftest import make_category, make_task
from tidyhome.client import ApiError, TaskStore


@pytest.fixture
def store(alice):
    return TaskStore(alice)


def test_fetch_replaces_cache(store, alice):
    category = make_category(alice)
    make_task(alice, category["id"], "One")
    make_task(alice, category["id"], "Two")

    assert store.stale
    assert sorted(t["title"] for t in store.tasks_view()) == ["One", "Two"]
    assert not store.stale
    assert [c["name"] for c in store.fetch_categories()] == ["Cleaning"]
    assert store.fetch_households() == []


def test_mutations_update_cache_after_success(store):
    category = store.create_category(name="Kitchen")
    assert [c["id"] for c in store.categories] == [category["id"]]

    task = store.create_task(
        title="Dishes", dueDate=datetime(2030, 1, 15, 18, 0), categoryId=category["id"]
    )
    assert [t["id"] for t in store.tasks] == [task["id"]]

    toggled = store.toggle_task_complete(task["id"])
    assert toggled["isCompleted"] is True
    assert store.tasks[0]["isCompleted"] is True
    assert store.tasks[0]["completedAt"] is not None

    store.update_task(task["id"], title="Pots")
    assert store.tasks[0]["title"] == "Pots"

    store.delete_task(task["id"])
    assert store.tasks == []
    store.delete_category(category["id"])
    assert store.categories == []

    household = store.create_household(name="Home")
    assert store.households == [household]


def test_failed_mutation_leaves_cache_untouched(store, alice):
    category = make_category(alice)
    task = make_task(alice, category["id"])
    store.fetch_tasks()
    store.fetch_categories()
    before_tasks = [dict(t) for t in store.tasks]

    with pytest.raises(ApiError) as excinfo:
        store.update_task(task["id"], title="   ")
    assert excinfo.value.status_code == 400
    assert store.error == "Title cannot be empty"
    assert store.tasks == before_tasks

    with pytest.raises(ApiError) as excinfo:
        store.delete_category(category["id"])
    assert excinfo.value.status_code == 409
    assert [c["id"] for c in store.categories] == [category["id"]]

    with pytest.raises(ApiError):
        store.create_task(title="No category")
    assert len(store.tasks) == 1


def test_error_is_cleared_by_next_success(store):
    with pytest.raises(ApiError):
        store.delete_task(9999)
    assert store.error == "Task not found or insufficient permissions"
    store.fetch_tasks()
    assert store.error is None


def test_invalidate_triggers_refetch(store, alice):
    category = make_category(alice)
    store.tasks_view()
    assert store.tasks == []

    # written behind the store's back
    make_task(alice, category["id"], "Elsewhere")
    assert store.tasks_view() == []
    store.invalidate()
    assert [t["title"] for t in store.tasks_view()] == ["Elsewhere"]


def test_local_filter(store, alice):
    kitchen = make_category(alice, "Kitchen")
    cleaning = make_category(alice, "Cleaning")
    make_task(alice, kitchen["id"], "Cook", priority="high")
    mop = make_task(alice, cleaning["id"], "Mop", priority="low", assignedToId=alice.user_id)
    store.fetch_tasks()
    store.toggle_task_complete(mop["id"])

    store.set_filter(status="pending")
    assert [t["title"] for t in store.filtered_tasks()] == ["Cook"]
    store.set_filter(status="completed")
    assert [t["title"] for t in store.filtered_tasks()] == ["Mop"]
    store.set_filter(status="all", priority="high")
    assert [t["title"] for t in store.filtered_tasks()] == ["Cook"]
    store.set_filter(priority="all", category_id=cleaning["id"])
    assert [t["title"] for t in store.filtered_tasks()] == ["Mop"]
    store.set_filter(category_id=None, assigned_to_id=alice.user_id)
    assert [t["title"] for t in store.filtered_tasks()] == ["Mop"]


def test_requires_session(client):
    store = TaskStore(client)
    with pytest.raises(ApiError) as excinfo:
        store.fetch_tasks()
    assert excinfo.value.status_code == 401
    assert store.error == "Unauthorized"


def test_overdue_filter_and_unknown_status(store, alice):
    category = make_category(alice)
    late = make_task(alice, category["id"], "Late", "2020-01-01T09:00:00")
    make_task(alice, category["id"], "Soon", "2030-01-01T09:00:00")
    done = make_task(alice, category["id"], "Done late", "2020-01-02T09:00:00")
    store.fetch_tasks()
    store.toggle_task_complete(done["id"])

    store.set_filter(status="overdue")
    assert [t["id"] for t in store.filtered_tasks()] == [late["id"]]
    assert store.filtered_tasks(now=datetime(2019, 1, 1)) == []

    with pytest.raises(ValueError):
        store.set_filter(status="someday")
    assert store.filter.status == "overdue"
