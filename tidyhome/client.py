"""Client-side state store.

``TaskStore`` keeps a local copy of the caller's tasks, categories and
households and talks to the JSON API through an ``httpx.Client`` (the
FastAPI ``TestClient`` works too). Mutations hit the API first and only
touch the cache once the server has accepted them; nothing is reconciled
afterwards, so call ``invalidate()`` when another client may have written.
"""
import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

FETCH_LIMIT = 200
FILTER_STATUSES = ("all", "pending", "completed", "overdue")


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


@dataclass
class TaskFilter:
    status: str = "all"  # one of FILTER_STATUSES
    priority: str = "all"
    category_id: Optional[int] = None
    assigned_to_id: Optional[int] = None

    def matches(self, task: dict, now: datetime) -> bool:
        if self.status == "completed" and not task["isCompleted"]:
            return False
        if self.status == "pending" and task["isCompleted"]:
            return False
        if self.status == "overdue" and (
            task["isCompleted"] or datetime.fromisoformat(task["dueDate"]) >= now
        ):
            return False
        if self.priority != "all" and task["priority"] != self.priority:
            return False
        if self.category_id is not None and task["categoryId"] != self.category_id:
            return False
        if self.assigned_to_id is not None and task.get("assignedToId") != self.assigned_to_id:
            return False
        return True


def _encode(fields: dict) -> dict:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in fields.items()
    }


class TaskStore:
    def __init__(self, http: httpx.Client):
        self.http = http
        self.tasks: list[dict] = []
        self.categories: list[dict] = []
        self.households: list[dict] = []
        self.filter = TaskFilter()
        self.error: Optional[str] = None
        self.stale = True

    def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            self.error = f"Request failed: {exc}"
            logger.warning("%s %s failed: %s", method, url, exc)
            raise ApiError(0, self.error) from exc
        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = body.get("error") if isinstance(body, dict) else None
            self.error = message or response.reason_phrase
            logger.warning("%s %s answered %s: %s", method, url, response.status_code, self.error)
            raise ApiError(response.status_code, self.error)
        self.error = None
        return response.json()

    def fetch_tasks(self) -> list[dict]:
        data = self._request("GET", "/api/tasks", params={"limit": FETCH_LIMIT})
        self.tasks = data["tasks"]
        self.stale = False
        return self.tasks

    def fetch_categories(self) -> list[dict]:
        self.categories = self._request("GET", "/api/categories")
        return self.categories

    def fetch_households(self) -> list[dict]:
        self.households = self._request("GET", "/api/households")
        return self.households

    def invalidate(self):
        self.stale = True

    def set_filter(self, **changes) -> TaskFilter:
        if changes.get("status", "all") not in FILTER_STATUSES:
            raise ValueError(f"unknown status filter: {changes['status']}")
        self.filter = dataclasses.replace(self.filter, **changes)
        return self.filter

    def filtered_tasks(self, now: Optional[datetime] = None) -> list[dict]:
        now = now or datetime.now()
        return [task for task in self.tasks if self.filter.matches(task, now)]

    def tasks_view(self) -> list[dict]:
        if self.stale:
            self.fetch_tasks()
        return self.filtered_tasks()

    def _replace_task(self, task: dict):
        self.tasks = [task if t["id"] == task["id"] else t for t in self.tasks]

    def create_task(self, **fields) -> dict:
        task = self._request("POST", "/api/tasks", json=_encode(fields))
        self.tasks.append(task)
        return task

    def update_task(self, task_id: int, **changes) -> dict:
        task = self._request("PATCH", f"/api/tasks/{task_id}", json=_encode(changes))
        self._replace_task(task)
        return task

    def toggle_task_complete(self, task_id: int) -> dict:
        cached = next((t for t in self.tasks if t["id"] == task_id), None)
        if cached is None:
            cached = self._request("GET", f"/api/tasks/{task_id}")
        return self.update_task(task_id, isCompleted=not cached["isCompleted"])

    def delete_task(self, task_id: int):
        self._request("DELETE", f"/api/tasks/{task_id}")
        self.tasks = [t for t in self.tasks if t["id"] != task_id]

    def create_category(self, **fields) -> dict:
        category = self._request("POST", "/api/categories", json=fields)
        self.categories.append(category)
        return category

    def delete_category(self, category_id: int):
        self._request("DELETE", f"/api/categories/{category_id}")
        self.categories = [c for c in self.categories if c["id"] != category_id]

    def create_household(self, **fields) -> dict:
        household = self._request("POST", "/api/households", json=fields)
        self.households.append(household)
        return household
