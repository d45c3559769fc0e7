"""
mstodo CLI — Microsoft To Do über Microsoft Graph

Usage:
    python3 cli.py login [--browser]
    python3 cli.py lists --search "status ne 'completed'"
    python3 cli.py tasks <LIST_ID> --filter "importance eq 'high'"
    python3 cli.py add-task <LIST_ID> "Milch kaufen" --due 2026-10-31
    python3 cli.py update-task <LIST_ID> <TASK_ID> --status inProgress
    python3 cli.py backup --file config/backup/todo.json
"""

import argparse
import json
import logging
import os
import sys

import requests

sys.path.insert(0, os.path.dirname(__file__))

from ms_login import FLOW_BROWSER, AuthError, TokenProvider
from mstodo import build_task, build_todo_api
from utils import load_config, setup_logging

log = logging.getLogger("cli")


def _print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def do_login(provider: TokenProvider):
    provider.get_access_token()
    for account in provider.get_accounts():
        print(f"Angemeldet als: {account.get('username')}")


def do_logout(provider: TokenProvider):
    provider.logout()
    print("Abgemeldet.")


def do_whoami(provider: TokenProvider):
    accounts = provider.get_accounts()
    if not accounts:
        print("Nicht angemeldet.")
        return
    for account in accounts:
        print(account.get("username"))


def do_backup(todo, backup_file: str, search: str = None):
    os.makedirs(os.path.dirname(os.path.abspath(backup_file)), exist_ok=True)
    print("Lese MS-Todo-Listen...")
    lists = todo.get_lists(search)
    with open(backup_file, "w") as f:
        json.dump([lst.to_dict() for lst in lists], f, indent=2, ensure_ascii=False)
    count = sum(len(lst.tasks) for lst in lists)
    print(f"Todo-Backup: {backup_file} ({len(lists)} Listen, {count} Tasks)")


def run_command(args, config: dict) -> int:
    provider = TokenProvider(config, config_path=args.config)

    if args.command == "login":
        do_login(provider)
        return 0
    if args.command == "logout":
        do_logout(provider)
        return 0
    if args.command == "whoami":
        do_whoami(provider)
        return 0

    todo = build_todo_api(config, args.config, provider=provider)

    if args.command == "lists":
        _print_json([lst.to_dict() for lst in todo.get_lists(args.search)])
    elif args.command == "list-id":
        list_id = todo.get_list_id_by_name(args.name)
        if not list_id:
            print(f"Keine Liste gefunden: {args.name}")
            return 1
        print(list_id)
    elif args.command == "show-list":
        _print_json(todo.get_list(args.list_id).to_dict())
    elif args.command == "create-list":
        _print_json(todo.create_task_list(args.name).to_dict())
    elif args.command == "tasks":
        _print_json(todo.get_list_tasks(args.list_id, args.filter))
    elif args.command == "show-task":
        _print_json(todo.get_task(args.list_id, args.task_id))
    elif args.command == "add-task":
        task = build_task(title=args.title, importance=args.importance, due=args.due, body=args.body)
        _print_json(todo.create_task(args.list_id, task))
    elif args.command == "update-task":
        task = build_task(title=args.title, status=args.status, importance=args.importance,
                          due=args.due, body=args.body)
        if not task:
            print("Nichts zu ändern.")
            return 1
        _print_json(todo.update_task(args.list_id, args.task_id, task))
    elif args.command == "complete":
        _print_json(todo.complete_task(args.list_id, args.task_id))
    elif args.command == "delete-task":
        todo.delete_task(args.list_id, args.task_id)
        print("Gelöscht.")
    elif args.command == "backup":
        do_backup(todo, args.file, args.search)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Microsoft To Do CLI")
    parser.add_argument("--config", default=os.environ.get("CONFIG_PATH", "config.json"))
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Anmelden und Token-Cache anlegen")
    login.add_argument("--browser", action="store_true", help="Browser- statt Device-Code-Flow")
    sub.add_parser("logout", help="Token-Cache löschen")
    sub.add_parser("whoami", help="Angemeldete Konten anzeigen")

    lists = sub.add_parser("lists", help="Alle Listen mit Tasks")
    lists.add_argument("--search", help="OData $filter für die Tasks")

    list_id = sub.add_parser("list-id", help="ID einer Liste per Namen")
    list_id.add_argument("name")
    show_list = sub.add_parser("show-list")
    show_list.add_argument("list_id")
    create_list = sub.add_parser("create-list")
    create_list.add_argument("name")

    tasks = sub.add_parser("tasks", help="Tasks einer Liste")
    tasks.add_argument("list_id")
    tasks.add_argument("--filter", help="OData $filter")

    for name in ("show-task", "complete", "delete-task"):
        p = sub.add_parser(name)
        p.add_argument("list_id")
        p.add_argument("task_id")

    add = sub.add_parser("add-task")
    add.add_argument("list_id")
    add.add_argument("title")
    add.add_argument("--importance", choices=["low", "normal", "high"])
    add.add_argument("--due", help="Fälligkeit, ISO-Datum")
    add.add_argument("--body")

    update = sub.add_parser("update-task")
    update.add_argument("list_id")
    update.add_argument("task_id")
    update.add_argument("--title")
    update.add_argument("--status",
                        choices=["notStarted", "inProgress", "completed", "waitingOnOthers", "deferred"])
    update.add_argument("--importance", choices=["low", "normal", "high"])
    update.add_argument("--due")
    update.add_argument("--body")

    backup = sub.add_parser("backup", help="Alle Listen mit Tasks als JSON sichern")
    backup.add_argument("--file", required=True, help="Backup-Datei")
    backup.add_argument("--search", help="OData $filter für die Tasks")
    return parser


def main(argv=None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)

    os.environ["CONFIG_PATH"] = args.config
    config = load_config(args.config, optional=True)
    if getattr(args, "browser", False):
        config["ms_auth_flow"] = FLOW_BROWSER

    try:
        return run_command(args, config)
    except AuthError as e:
        log.error("Anmeldung fehlgeschlagen: %s", e)
    except requests.HTTPError as e:
        log.error("Graph-Anfrage fehlgeschlagen: %s", e)
    except requests.RequestException as e:
        log.error("Verbindung fehlgeschlagen: %s", e)
    return 1


if __name__ == "__main__":
    sys.exit(main())
