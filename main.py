# tasksync/main.py
"""TaskSync command line: task API requests, bulk calendar sync, occurrence listing."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.settings import CONFIG_PATH, SyncConfig, ensure_data_dirs
from services.dispatcher import RequestDispatcher
from services.google_auth import GoogleAuth
from services.google_calendar import GoogleCalendar
from services.overlays import OverlayRepository
from services.reconciler import CalendarReconciler
from services.reminders import ReminderPolicy
from services.sync_meta import SyncMetaStore
from services.task_repository import TaskRepository
from storage.config import build_config, load_config
from storage.workbook import Workbook, open_workbook


logger = logging.getLogger("tasksync")


def build_dispatcher(config: SyncConfig, book: Workbook, calendar=None) -> RequestDispatcher:
    """Wire the repositories, reminder policy and reconciler around ``book``."""
    repo = TaskRepository(book.tasks, config)
    overlays = OverlayRepository(book)
    reconciler = None
    if calendar is not None:
        reconciler = CalendarReconciler(
            repo,
            calendar,
            reminders=ReminderPolicy.from_workbook(book, config.reminders),
            meta=SyncMetaStore(book.sync_meta),
            overlays=overlays,
            config=config,
        )
    return RequestDispatcher(repo, overlays, reconciler, config)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _open(args, *, with_calendar: bool = True) -> tuple[SyncConfig, Workbook, Optional[GoogleAuth]]:
    config = build_config(load_config(args.config), backend=args.backend)
    ensure_data_dirs()
    auth = None
    credentials = None
    if config.backend == "sheets" or (with_calendar and not args.offline):
        auth = GoogleAuth(scopes=config.calendar.scopes)
        auth.ensure_credentials()
        credentials = auth.get_credentials()
    return config, open_workbook(config, credentials=credentials), auth


def _dispatcher(args, *, with_calendar: bool = True) -> RequestDispatcher:
    config, book, auth = _open(args, with_calendar=with_calendar)
    calendar = None
    if with_calendar and not args.offline:
        calendar = GoogleCalendar.from_auth(auth, config.calendar)
    return build_dispatcher(config, book, calendar)


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def cmd_dispatch(args) -> int:
    body = sys.stdin.read() if args.request == "-" else args.request
    response = json.loads(_dispatcher(args).handle_json(body))
    _print(response)
    return 0 if response.get("status") == "success" else 1


def cmd_reconcile_all(args) -> int:
    response = _dispatcher(args).handle({"action": "reconcileAll"})
    _print(response)
    return 0 if response.get("status") == "success" else 1


def cmd_occurrences(args) -> int:
    response = _dispatcher(args, with_calendar=False).handle(
        {"action": "getOccurrences", "payload": {"from": args.date_from, "to": args.date_to}}
    )
    _print(response)
    return 0 if response.get("status") == "success" else 1


def cmd_init(args) -> int:
    config, book, _ = _open(args, with_calendar=False)
    headers = book.ensure_headers()
    for name, columns in headers.items():
        logger.info("%s: %d columns", name, len(columns))
    print(f"Initialised {len(headers)} tables ({config.backend} backend).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tasksync", description=__doc__ or "")
    parser.add_argument(
        "--backend",
        choices=("memory", "sqlite", "sheets"),
        help="Row store to use (default: from config, else sqlite)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help="Path to config.json (default: %(default)s)",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Skip Google Calendar; rows are written without calendar sync",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("dispatch", help="Handle one JSON request and print the response")
    p.add_argument("request", help='JSON request, e.g. \'{"action": "getTasks"}\', or - for stdin')
    p.set_defaults(func=cmd_dispatch)

    p = sub.add_parser("reconcile-all", help="Bring every task row in line with the calendar")
    p.set_defaults(func=cmd_reconcile_all)

    p = sub.add_parser("occurrences", help="List expanded occurrences in a date window")
    p.add_argument("--from", dest="date_from", required=True, help="First date (YYYY-MM-DD)")
    p.add_argument("--to", dest="date_to", required=True, help="Last date (YYYY-MM-DD), inclusive")
    p.set_defaults(func=cmd_occurrences)

    p = sub.add_parser("init", help="Create missing header rows in every table")
    p.set_defaults(func=cmd_init)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    try:
        return args.func(args)
    except Exception as exc:  # pragma: no cover - CLI entry point
        logger.exception("%s failed: %s", args.command, exc)
        return 2


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
