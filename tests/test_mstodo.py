"""
Module      : test_mstodo
Date        : 2026-10-19
Version     : 1.1.0
Author      : tompsg-git
Description : Unit-Tests für mstodo.py — Endpunkt-Abbildung, Pagination,
              Fan-out in get_lists und Fehlerbehandlung beim Task-Abruf.
"""

import threading

import pytest
import requests
from unittest.mock import MagicMock, patch

from ms_login import AuthError, LoginRequired
from mstodo import GRAPH_BASE, TodoApi, TodoTaskList, build_task, build_todo_api
from conftest import make_list, make_response, make_task


@pytest.fixture
def auth():
    return MagicMock(return_value="tok")


@pytest.fixture
def api(auth):
    return TodoApi(auth)


def _url(path):
    return f"{GRAPH_BASE}{path}"


# ---------------------------------------------------------------------------
# HTTP-Schicht
# ---------------------------------------------------------------------------

class TestHttp:

    def test_bearer_header_from_auth_callback(self, api, auth):
        with patch("mstodo.requests.get", return_value=make_response({"id": "t1"})) as get:
            api.get_task("L1", "t1")
        headers = get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer tok"
        auth.assert_called_once()

    def test_auth_callback_invoked_per_request(self, api, auth):
        with patch("mstodo.requests.get", return_value=make_response({"id": "x"})):
            api.get_task("L1", "t1")
            api.get_task("L1", "t2")
        assert auth.call_count == 2

    def test_http_error_propagates(self, api):
        with patch("mstodo.requests.get", return_value=make_response(status=404)):
            with pytest.raises(requests.HTTPError):
                api.get_task("L1", "missing")

    def test_auth_error_propagates(self):
        api = TodoApi(MagicMock(side_effect=AuthError("no token")))
        with patch("mstodo.requests.get") as get:
            with pytest.raises(AuthError):
                api.get_list("L1")
        get.assert_not_called()

    def test_follows_next_link(self, api):
        next_link = _url("/me/todo/lists?$skiptoken=abc")
        pages = [
            make_response({"value": [make_list("L1", "Einkauf")], "@odata.nextLink": next_link}),
            make_response({"value": [make_list("L2", "Arbeit")]}),
            make_response({"value": []}),
            make_response({"value": []}),
        ]
        with patch("mstodo.requests.get", side_effect=pages) as get:
            lists = api.get_lists()
        assert [lst.id for lst in lists] == ["L1", "L2"]
        second = get.call_args_list[1]
        assert second.args[0] == next_link
        assert second.kwargs["params"] is None

    def test_custom_base_url(self, auth):
        api = TodoApi(auth, base_url="http://graph.local/v1.0/")
        with patch("mstodo.requests.get", return_value=make_response({"id": "L1"})) as get:
            api.get_list("L1")
        assert get.call_args.args[0] == "http://graph.local/v1.0/me/todo/lists/L1"


# ---------------------------------------------------------------------------
# Listen
# ---------------------------------------------------------------------------

class TestLists:

    def test_get_lists_fetches_tasks_once_per_list(self, api):
        lists = [make_list("L1", "A"), make_list("L2", "B"), make_list("L3", "C")]
        tasks = {
            "L1": [make_task("t1", "Milch")],
            "L2": [make_task("t2", "Brot"), make_task("t3", "Eier")],
            "L3": [],
        }
        lock = threading.Lock()
        seen = []

        def fake_get(url, headers=None, params=None, timeout=None):
            if url == _url("/me/todo/lists"):
                return make_response({"value": lists})
            list_id = url.split("/")[-2]
            with lock:
                seen.append(list_id)
            return make_response({"value": tasks[list_id]})

        with patch("mstodo.requests.get", side_effect=fake_get):
            result = api.get_lists()

        assert sorted(seen) == ["L1", "L2", "L3"]
        assert [lst.id for lst in result] == ["L1", "L2", "L3"]
        assert [len(lst.tasks) for lst in result] == [1, 2, 0]
        assert result[1].tasks[0]["title"] == "Brot"

    def test_get_lists_failed_list_contributes_empty_tasks(self, api, caplog):
        lists = [make_list("L1", "A"), make_list("L2", "B")]

        def fake_get(url, headers=None, params=None, timeout=None):
            if url == _url("/me/todo/lists"):
                return make_response({"value": lists})
            if "/L2/" in url:
                return make_response(status=500)
            return make_response({"value": [make_task("t1", "Milch")]})

        with patch("mstodo.requests.get", side_effect=fake_get):
            result = api.get_lists()

        assert [lst.tasks for lst in result] == [[make_task("t1", "Milch")], []]
        assert any("L2" in r.message for r in caplog.records)

    def test_get_lists_passes_search_pattern(self, api):
        def fake_get(url, headers=None, params=None, timeout=None):
            if url == _url("/me/todo/lists"):
                return make_response({"value": [make_list("L1", "A")]})
            assert params == {"$filter": "status ne 'completed'"}
            return make_response({"value": []})

        with patch("mstodo.requests.get", side_effect=fake_get) as get:
            api.get_lists("status ne 'completed'")
        assert get.call_count == 2

    def test_get_lists_empty(self, api):
        with patch("mstodo.requests.get", return_value=make_response({"value": []})) as get:
            assert api.get_lists() == []
        get.assert_called_once()

    def test_get_lists_keeps_graph_fields(self, api):
        def fake_get(url, headers=None, params=None, timeout=None):
            if url == _url("/me/todo/lists"):
                return make_response({"value": [make_list("L1", "A")]})
            return make_response({"value": []})

        with patch("mstodo.requests.get", side_effect=fake_get):
            d = api.get_lists()[0].to_dict()
        assert d["wellknownListName"] == "none"
        assert d["displayName"] == "A"
        assert d["tasks"] == []

    def test_get_list_id_by_name(self, api):
        resp = make_response({"value": [make_list("L7", "Einkaufsliste")]})
        with patch("mstodo.requests.get", return_value=resp) as get:
            assert api.get_list_id_by_name("Einkauf") == "L7"
        assert get.call_args.kwargs["params"] == {"$filter": "contains(displayName,'Einkauf')"}

    def test_get_list_id_by_name_escapes_quotes(self, api):
        with patch("mstodo.requests.get", return_value=make_response({"value": []})) as get:
            assert api.get_list_id_by_name("Bob's") is None
        assert get.call_args.kwargs["params"] == {"$filter": "contains(displayName,'Bob''s')"}

    def test_get_list(self, api):
        with patch("mstodo.requests.get", return_value=make_response(make_list("L1", "A"))) as get:
            lst = api.get_list("L1")
        assert isinstance(lst, TodoTaskList)
        assert lst.display_name == "A"
        assert get.call_args.args[0] == _url("/me/todo/lists/L1")

    def test_create_task_list(self, api):
        with patch("mstodo.requests.post", return_value=make_response(make_list("N1", "Neu"))) as post:
            lst = api.create_task_list("Neu")
        assert lst.id == "N1"
        assert post.call_args.args[0] == _url("/me/todo/lists")
        assert post.call_args.kwargs["json"] == {"displayName": "Neu"}

    @pytest.mark.parametrize("method, arg", [
        ("get_list_id_by_name", ""),
        ("get_list", None),
        ("create_task_list", ""),
        ("get_list_tasks", ""),
    ])
    def test_empty_argument_returns_none_without_request(self, api, method, arg):
        with patch("mstodo.requests.get") as get, patch("mstodo.requests.post") as post:
            assert getattr(api, method)(arg) is None
        get.assert_not_called()
        post.assert_not_called()


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

class TestTasks:

    def test_get_list_tasks_without_filter(self, api):
        resp = make_response({"value": [make_task("t1", "Milch")]})
        with patch("mstodo.requests.get", return_value=resp) as get:
            tasks = api.get_list_tasks("L1")
        assert tasks == [make_task("t1", "Milch")]
        assert get.call_args.args[0] == _url("/me/todo/lists/L1/tasks")
        assert get.call_args.kwargs["params"] is None

    def test_get_list_tasks_with_filter(self, api):
        with patch("mstodo.requests.get", return_value=make_response({"value": []})) as get:
            api.get_list_tasks("L1", "importance eq 'high'")
        assert get.call_args.kwargs["params"] == {"$filter": "importance eq 'high'"}

    def test_get_list_tasks_failure_returns_empty(self, api, caplog):
        with patch("mstodo.requests.get", side_effect=requests.ConnectionError("down")):
            assert api.get_list_tasks("L1") == []
        assert any("unable to acquire tasks" in r.message for r in caplog.records)

    def test_get_list_tasks_auth_failure_returns_empty(self):
        api = TodoApi(MagicMock(side_effect=AuthError("no token")))
        assert api.get_list_tasks("L1") == []

    def test_get_list_tasks_missing_login_propagates(self):
        api = TodoApi(MagicMock(side_effect=LoginRequired("login first")))
        with pytest.raises(LoginRequired):
            api.get_list_tasks("L1")

    def test_create_task(self, api):
        task = {"title": "Milch", "importance": "high"}
        with patch("mstodo.requests.post", return_value=make_response({"id": "t9", **task})) as post:
            created = api.create_task("L1", task)
        assert created["id"] == "t9"
        assert post.call_args.args[0] == _url("/me/todo/lists/L1/tasks")
        assert post.call_args.kwargs["json"] is task

    def test_update_task(self, api):
        with patch("mstodo.requests.patch", return_value=make_response({"id": "t1"})) as p:
            api.update_task("L1", "t1", {"title": "Hafermilch"})
        assert p.call_args.args[0] == _url("/me/todo/lists/L1/tasks/t1")
        assert p.call_args.kwargs["json"] == {"title": "Hafermilch"}

    def test_complete_task(self, api):
        with patch("mstodo.requests.patch", return_value=make_response({"id": "t1"})) as p:
            api.complete_task("L1", "t1")
        assert p.call_args.kwargs["json"] == {"status": "completed"}

    def test_delete_task(self, api):
        with patch("mstodo.requests.delete", return_value=make_response(status=204)) as d:
            api.delete_task("L1", "t1")
        assert d.call_args.args[0] == _url("/me/todo/lists/L1/tasks/t1")

    def test_get_task(self, api):
        with patch("mstodo.requests.get", return_value=make_response(make_task("t1", "Milch"))) as get:
            assert api.get_task("L1", "t1")["title"] == "Milch"
        assert get.call_args.args[0] == _url("/me/todo/lists/L1/tasks/t1")


# ---------------------------------------------------------------------------
# build_task / build_todo_api
# ---------------------------------------------------------------------------

class TestBuildTask:

    def test_only_given_fields(self):
        assert build_task(title="Milch") == {"title": "Milch"}

    def test_all_fields(self):
        task = build_task(title="Steuer", status="inProgress", importance="high",
                          due="2026-10-31", body="Belege sammeln")
        assert task["dueDateTime"] == {"dateTime": "2026-10-31T00:00:00", "timeZone": "UTC"}
        assert task["body"] == {"content": "Belege sammeln", "contentType": "text"}
        assert task["status"] == "inProgress"

    def test_due_with_time_kept(self):
        task = build_task(due="2026-10-31T17:30:00")
        assert task["dueDateTime"]["dateTime"] == "2026-10-31T17:30:00"

    def test_empty(self):
        assert build_task() == {}


def test_build_todo_api_uses_provider_and_config():
    provider = MagicMock()
    config = {"graph_base_url": "http://graph.local", "http_timeout": "5", "max_workers": 2}
    api = build_todo_api(config, "config.json", provider=provider)
    assert api.auth_provider == provider.get_access_token
    assert api.base_url == "http://graph.local"
    assert api.timeout == 5
    assert api.max_workers == 2


@pytest.mark.parametrize("workers", [0, -3, "0"])
def test_max_workers_clamped(workers):
    api = build_todo_api({"max_workers": workers}, "config.json", provider=MagicMock())
    assert api.max_workers == 1
    lists = [make_list("L1", "A"), make_list("L2", "B")]

    def fake_get(url, headers=None, params=None, timeout=None):
        if url == _url("/me/todo/lists"):
            return make_response({"value": lists})
        return make_response({"value": []})

    with patch("mstodo.requests.get", side_effect=fake_get):
        assert [lst.id for lst in api.get_lists()] == ["L1", "L2"]


def test_build_todo_api_silent_only():
    provider = MagicMock()
    provider.get_access_token.return_value = "tok"
    api = build_todo_api({}, "config.json", provider=provider, interactive=False)
    assert api.auth_provider() == "tok"
    provider.get_access_token.assert_called_once_with(interactive=False)
