from datetime import datetime

from tidyhome.models import Priority
from tidyhome.schemas import TaskPatch, merge_task_patch

NOW = datetime(2025, 1, 15, 12, 0)


def existing(**overrides):
    state = {
        "title": "Vacuum",
        "description": "Living room",
        "is_completed": False,
        "completed_at": None,
        "due_date": datetime(2025, 1, 16, 9, 0),
        "estimated_minutes": 30,
        "actual_minutes": None,
        "priority": Priority.medium,
        "category_id": 1,
        "assigned_to_id": None,
    }
    state.update(overrides)
    return state


def test_empty_patch_changes_nothing():
    before = existing()
    assert merge_task_patch(before, TaskPatch(), NOW) == before


def test_only_supplied_fields_are_applied():
    patch = TaskPatch.model_validate({"title": "Mop", "estimatedMinutes": 45})
    merged = merge_task_patch(existing(), patch, NOW)
    assert merged["title"] == "Mop"
    assert merged["estimated_minutes"] == 45
    assert merged["description"] == "Living room"
    assert merged["priority"] == Priority.medium


def test_null_clears_optional_fields_but_not_required_ones():
    patch = TaskPatch.model_validate(
        {"description": None, "assignedToId": None, "title": None, "dueDate": None, "priority": None}
    )
    merged = merge_task_patch(existing(assigned_to_id=7), patch, NOW)
    assert merged["description"] is None
    assert merged["assigned_to_id"] is None
    assert merged["title"] == "Vacuum"
    assert merged["due_date"] == datetime(2025, 1, 16, 9, 0)
    assert merged["priority"] == Priority.medium


def test_completing_stamps_now():
    merged = merge_task_patch(existing(), TaskPatch(is_completed=True), NOW)
    assert merged["is_completed"] is True
    assert merged["completed_at"] == NOW


def test_already_completed_keeps_original_timestamp():
    done_at = datetime(2025, 1, 10, 8, 0)
    before = existing(is_completed=True, completed_at=done_at)
    merged = merge_task_patch(before, TaskPatch(is_completed=True, title="Renamed"), NOW)
    assert merged["completed_at"] == done_at


def test_reopening_clears_completed_at():
    before = existing(is_completed=True, completed_at=datetime(2025, 1, 10, 8, 0))
    merged = merge_task_patch(before, TaskPatch(is_completed=False), NOW)
    assert merged["is_completed"] is False
    assert merged["completed_at"] is None


def test_merge_does_not_mutate_input():
    before = existing()
    merge_task_patch(before, TaskPatch(title="Other", is_completed=True), NOW)
    assert before == existing()


def test_patch_ignores_unknown_fields_and_accepts_camel_case():
    patch = TaskPatch.model_validate({"isCompleted": True, "color": "red"})
    assert patch.supplied("is_completed")
    assert not patch.supplied("title")
