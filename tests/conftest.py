"""
Module      : conftest
Date        : 2026-10-19
Version     : 1.1.0
Author      : tompsg-git
Description : Gemeinsame Pytest-Fixtures für alle Test-Module.
"""

import pytest
import requests
from unittest.mock import MagicMock, patch


@pytest.fixture
def config_path(tmp_path):
    return str(tmp_path / "config.json")


@pytest.fixture
def base_config():
    return {
        "ms_client_id": "test-client-id",
        "ms_tenant_id": "consumers",
        "ms_token_cache_file": "ms_token_cache.json",
    }


@pytest.fixture
def mock_msal():
    """Replaces the msal module seen by ms_login; cache reports no change by default."""
    with patch("ms_login.msal") as m:
        cache = m.SerializableTokenCache.return_value
        cache.has_state_changed = False
        cache.serialize.return_value = '{"AccessToken": {}}'
        app = m.PublicClientApplication.return_value
        app.get_accounts.return_value = []
        yield m


def make_account(username: str = "user@example.com") -> dict:
    return {"home_account_id": "uid.utid", "username": username}


def make_response(payload=None, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload if payload is not None else {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    else:
        resp.raise_for_status.return_value = None
    return resp


def make_list(list_id: str, name: str) -> dict:
    return {"id": list_id, "displayName": name, "wellknownListName": "none", "isOwner": True}


def make_task(task_id: str, title: str, status: str = "notStarted") -> dict:
    return {"id": task_id, "title": title, "status": status, "importance": "normal"}
