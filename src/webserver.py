"""
Module      : webserver
Date        : 2026-10-19
Version     : 1.1.0
Author      : tompsg-git
Description : Flask-basiertes Webinterface mit REST API für Listen- und
              Task-CRUD sowie dem Microsoft-Login per Browser-Redirect
              (Authorization-Code-Flow).
"""

import logging
import os
import sys
import threading
import time

from flask import Flask, jsonify, redirect, request, url_for

sys.path.insert(0, os.path.dirname(__file__))

from ms_login import AuthError, LoginRequired, TokenProvider
from mstodo import TodoApi, build_todo_api
from utils import load_config as _load_config, setup_logging

log = logging.getLogger(__name__)

CONFIG_PATH = os.environ.get("CONFIG_PATH", "./config/config.json")
app = Flask(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def load_config() -> dict:
    return _load_config(CONFIG_PATH, optional=True)


_provider = None
_todo = None


def get_provider() -> TokenProvider:
    global _provider
    if _provider is None:
        _provider = TokenProvider(load_config(), config_path=CONFIG_PATH)
    return _provider


def get_todo() -> TodoApi:
    global _todo
    if _todo is None:
        _todo = build_todo_api(load_config(), CONFIG_PATH, provider=get_provider(),
                               interactive=False)
    return _todo


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _error(e: Exception):
    if isinstance(e, LoginRequired):
        return jsonify({"error": str(e), "login": url_for("login")}), 401
    return jsonify({"error": str(e)}), 500


# ---------------------------------------------------------------------------
# API — Microsoft Login (Redirect)
# ---------------------------------------------------------------------------

# state -> (started_at, MSAL auth code flow)
auth_flows = {}
auth_flows_lock = threading.Lock()
AUTH_FLOW_TTL = 600
MAX_PENDING_LOGINS = 100


def _prune_auth_flows(now: float):
    """Drop expired logins and keep at most MAX_PENDING_LOGINS - 1; caller holds the lock."""
    for state in [s for s, (started, _) in auth_flows.items() if now - started > AUTH_FLOW_TTL]:
        del auth_flows[state]
    while len(auth_flows) >= MAX_PENDING_LOGINS:
        del auth_flows[next(iter(auth_flows))]


@app.route("/login")
def login():
    redirect_uri = load_config().get("ms_redirect_uri") or url_for("auth_callback", _external=True)
    try:
        flow = get_provider().start_auth_code_flow(redirect_uri)
    except Exception as e:
        return jsonify({"error": str(e)}), 500
    now = time.time()
    with auth_flows_lock:
        _prune_auth_flows(now)
        auth_flows[flow["state"]] = (now, flow)
    return redirect(flow["auth_uri"])


@app.route("/callback")
def auth_callback():
    state = request.args.get("state")
    with auth_flows_lock:
        entry = auth_flows.pop(state, None)
    if entry is None or time.time() - entry[0] > AUTH_FLOW_TTL:
        return jsonify({"error": "unknown or expired login state"}), 400
    try:
        get_provider().finish_auth_code_flow(entry[1], request.args.to_dict())
    except (ValueError, AuthError) as e:
        log.warning("Microsoft-Login abgelehnt: %s", e)
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        return jsonify({"error": str(e)}), 500
    return jsonify({"ok": True})


@app.route("/api/login/microsoft/status", methods=["GET"])
def ms_login_status():
    try:
        accounts = get_provider().get_accounts()
        return jsonify({
            "connected": bool(accounts),
            "accounts": [a.get("username") for a in accounts],
        })
    except Exception as e:
        return jsonify({"error": str(e)}), 500


@app.route("/api/logout", methods=["POST"])
def logout():
    try:
        get_provider().logout()
        return jsonify({"ok": True})
    except Exception as e:
        return jsonify({"error": str(e)}), 500


# ---------------------------------------------------------------------------
# API — Listen
# ---------------------------------------------------------------------------

@app.route("/api/todo/lists", methods=["GET"])
def todo_lists():
    try:
        lists = get_todo().get_lists(request.args.get("search"))
        return jsonify([lst.to_dict() for lst in lists])
    except Exception as e:
        return _error(e)


@app.route("/api/todo/lists", methods=["POST"])
def todo_create_list():
    name = str(_json_body().get("displayName", "")).strip()
    if not name:
        return jsonify({"error": "displayName required"}), 400
    try:
        return jsonify(get_todo().create_task_list(name).to_dict()), 201
    except Exception as e:
        return _error(e)


@app.route("/api/todo/lists/<list_id>", methods=["GET"])
def todo_get_list(list_id):
    try:
        return jsonify(get_todo().get_list(list_id).to_dict())
    except Exception as e:
        return _error(e)


# ---------------------------------------------------------------------------
# API — Tasks
# ---------------------------------------------------------------------------

@app.route("/api/todo/lists/<list_id>/tasks", methods=["GET"])
def todo_list_tasks(list_id):
    try:
        return jsonify(get_todo().get_list_tasks(list_id, request.args.get("filter")))
    except Exception as e:
        return _error(e)


@app.route("/api/todo/lists/<list_id>/tasks", methods=["POST"])
def todo_create_task(list_id):
    task = _json_body()
    if not str(task.get("title", "")).strip():
        return jsonify({"error": "title required"}), 400
    try:
        return jsonify(get_todo().create_task(list_id, task)), 201
    except Exception as e:
        return _error(e)


@app.route("/api/todo/lists/<list_id>/tasks/<task_id>", methods=["GET"])
def todo_get_task(list_id, task_id):
    try:
        return jsonify(get_todo().get_task(list_id, task_id))
    except Exception as e:
        return _error(e)


@app.route("/api/todo/lists/<list_id>/tasks/<task_id>", methods=["PATCH"])
def todo_update_task(list_id, task_id):
    task = _json_body()
    if not task:
        return jsonify({"error": "empty update"}), 400
    try:
        return jsonify(get_todo().update_task(list_id, task_id, task))
    except Exception as e:
        return _error(e)


@app.route("/api/todo/lists/<list_id>/tasks/<task_id>", methods=["DELETE"])
def todo_delete_task(list_id, task_id):
    try:
        get_todo().delete_task(list_id, task_id)
        return jsonify({"ok": True})
    except Exception as e:
        return _error(e)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    global CONFIG_PATH
    import argparse
    parser = argparse.ArgumentParser(description="mstodo Web Interface")
    parser.add_argument("--config", default=os.environ.get("CONFIG_PATH", "./config/config.json"))
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--host", default="127.0.0.1")
    args = parser.parse_args()

    setup_logging()
    CONFIG_PATH = args.config
    os.environ["CONFIG_PATH"] = CONFIG_PATH
    port = args.port or int(load_config().get("webserver_port", 8080))

    log.info("Web Interface: http://%s:%d", args.host, port)
    app.run(host=args.host, port=port, debug=False)


if __name__ == "__main__":
    main()
