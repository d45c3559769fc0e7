"""
Microsoft To Do access via Microsoft Graph API.

TodoApi maps task-list and task operations onto Graph v1.0 REST calls.
The bearer token is not managed here: an auth callback (usually
``TokenProvider.get_access_token`` from ms_login) is invoked for every
request, so token refresh happens transparently inside the provider.

Tasks are passed through as plain dicts in Graph schema
(title, status, importance, dueDateTime, body, ...).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests

from ms_login import AuthError, LoginRequired, TokenProvider

log = logging.getLogger(__name__)

GRAPH_BASE = "https://graph.microsoft.com/v1.0"
LISTS_PATH = "/me/todo/lists"


@dataclass
class TodoTaskList:
    """A To Do list with its tasks attached."""
    id: str
    display_name: str
    tasks: list[dict] = field(default_factory=list)
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_graph(cls, data: dict, tasks: Optional[list] = None) -> "TodoTaskList":
        return cls(
            id=data["id"],
            display_name=data.get("displayName", ""),
            tasks=list(tasks or []),
            raw=dict(data),
        )

    def to_dict(self) -> dict:
        return {**self.raw, "id": self.id, "displayName": self.display_name, "tasks": self.tasks}


def build_task(title: str = None, status: str = None, importance: str = None,
               due: str = None, body: str = None, time_zone: str = "UTC") -> dict:
    """Build a Graph todoTask payload from the given fields; unset fields are omitted.

    ``due`` is an ISO date or datetime ("2026-10-31" or "2026-10-31T17:00:00").
    """
    task = {}
    if title is not None:
        task["title"] = title
    if status is not None:
        task["status"] = status
    if importance is not None:
        task["importance"] = importance
    if due is not None:
        if "T" not in due:
            due = f"{due}T00:00:00"
        task["dueDateTime"] = {"dateTime": due, "timeZone": time_zone}
    if body is not None:
        task["body"] = {"content": body, "contentType": "text"}
    return task


def odata_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class TodoApi:
    """Wrapper around the Microsoft Graph To Do API."""

    def __init__(self, auth_provider: Callable[[], str], base_url: str = GRAPH_BASE,
                 timeout: int = 30, max_workers: int = 8):
        self.auth_provider = auth_provider
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_workers = max(1, int(max_workers))

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.auth_provider()}",
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}{path}"

    def _get(self, path: str, params: dict = None) -> dict:
        r = requests.get(self._url(path), headers=self._headers(), params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _get_all(self, path: str, params: dict = None) -> list[dict]:
        """GET a collection, following @odata.nextLink."""
        items = []
        url = path
        while url:
            data = self._get(url, params=params)
            items.extend(data.get("value", []))
            url = data.get("@odata.nextLink")
            params = None  # nextLink already contains query params
        return items

    def _post(self, path: str, body: dict) -> dict:
        r = requests.post(self._url(path), headers=self._headers(), json=body, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _patch(self, path: str, body: dict) -> dict:
        r = requests.patch(self._url(path), headers=self._headers(), json=body, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _delete(self, path: str):
        r = requests.delete(self._url(path), headers=self._headers(), timeout=self.timeout)
        r.raise_for_status()

    # ------------------------------------------------------------------
    # List operations
    # ------------------------------------------------------------------

    def get_lists(self, search_pattern: str = None) -> list[TodoTaskList]:
        """Return every list with its tasks attached.

        Tasks are fetched concurrently, one request per list. A list whose
        fetch fails gets an empty task set.
        """
        lists = self._get_all(LISTS_PATH)
        if not lists:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(lists))) as pool:
            task_sets = list(pool.map(
                lambda lst: self.get_list_tasks(lst["id"], search_pattern), lists
            ))
        log.debug("MS Todo: fetched %d lists", len(lists))
        return [TodoTaskList.from_graph(lst, tasks) for lst, tasks in zip(lists, task_sets)]

    def get_list_id_by_name(self, list_name: str) -> Optional[str]:
        """Return the id of the first list whose name contains ``list_name``."""
        if not list_name:
            return None
        params = {"$filter": f"contains(displayName,{odata_quote(list_name)})"}
        data = self._get(LISTS_PATH, params=params)
        found = data.get("value", [])
        if not found:
            log.info("MS Todo: no list matching '%s'", list_name)
            return None
        return found[0]["id"]

    def get_list(self, list_id: str) -> Optional[TodoTaskList]:
        if not list_id:
            return None
        return TodoTaskList.from_graph(self._get(f"{LISTS_PATH}/{list_id}"))

    def create_task_list(self, display_name: str) -> Optional[TodoTaskList]:
        if not display_name:
            return None
        log.info("MS Todo: creating list '%s'", display_name)
        return TodoTaskList.from_graph(self._post(LISTS_PATH, {"displayName": display_name}))

    # ------------------------------------------------------------------
    # Task operations
    # ------------------------------------------------------------------

    def get_list_tasks(self, list_id: str, search_text: str = None) -> Optional[list[dict]]:
        """Return the tasks of a list, optionally narrowed by an OData $filter expression.

        Failures are reported as a warning and yield an empty list; a missing
        login (``LoginRequired``) propagates.
        """
        if not list_id:
            return None
        params = {"$filter": search_text} if search_text else None
        try:
            return self._get_all(f"{LISTS_PATH}/{list_id}/tasks", params=params)
        except LoginRequired:
            raise
        except (requests.RequestException, AuthError) as e:
            log.warning("MS Todo: unable to acquire tasks from list %s (%s)", list_id, e)
            return []

    def get_task(self, list_id: str, task_id: str) -> dict:
        return self._get(f"{LISTS_PATH}/{list_id}/tasks/{task_id}")

    def create_task(self, list_id: str, task: dict) -> dict:
        log.info("MS Todo: adding '%s'", task.get("title"))
        return self._post(f"{LISTS_PATH}/{list_id}/tasks", task)

    def update_task(self, list_id: str, task_id: str, task: dict) -> dict:
        log.info("MS Todo: updating task %s (%s)", task_id, ", ".join(sorted(task)))
        return self._patch(f"{LISTS_PATH}/{list_id}/tasks/{task_id}", task)

    def complete_task(self, list_id: str, task_id: str) -> dict:
        """Mark a task as completed."""
        return self.update_task(list_id, task_id, {"status": "completed"})

    def delete_task(self, list_id: str, task_id: str):
        """Permanently delete a task."""
        log.info("MS Todo: deleting task %s", task_id)
        self._delete(f"{LISTS_PATH}/{list_id}/tasks/{task_id}")


def build_todo_api(config: dict, config_path: str, provider: TokenProvider = None,
                   interactive: bool = True) -> TodoApi:
    """Create a TodoApi wired to a TokenProvider built from ``config``.

    With ``interactive=False`` requests never start a login flow and fail
    with ``LoginRequired`` while no account is cached.
    """
    provider = provider or TokenProvider(config, config_path)
    if interactive:
        auth_provider = provider.get_access_token
    else:
        def auth_provider():
            return provider.get_access_token(interactive=False)
    return TodoApi(
        auth_provider,
        base_url=config.get("graph_base_url", GRAPH_BASE),
        timeout=int(config.get("http_timeout", 30)),
        max_workers=int(config.get("max_workers", 8)),
    )
