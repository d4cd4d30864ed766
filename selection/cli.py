"""
Terminal access to the favorites and compare sets.

    edudir-select add favorites course c-101
    edudir-select add compare institution i-7
    edudir-select remove favorites c-101
    edudir-select list compare --kind course
    edudir-select clear compare

Selections are kept in a JSON file (EDUDIR_SELECTION_PATH); entities are
looked up in the directory database (EDUDIR_DB_PATH) only when added.
"""

import argparse
import sys
from pathlib import Path

from directory.config import DB_PATH, SELECTION_PATH
from directory.detail import DetailAggregator
from directory.models import COURSE, INSTITUTION, KINDS
from directory.sqlite_repository import SQLiteRepository
from selection.manager import SelectionManager, snapshot_item
from selection.store import JsonFileStore, StoreError

SET_NAMES = ("favorites", "compare")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="edudir-select", description=__doc__.strip().split("\n\n")[0])
    parser.add_argument("--store", type=Path, default=SELECTION_PATH, help="selection JSON file")
    parser.add_argument("--db", type=Path, default=DB_PATH, help="directory SQLite database")
    sub = parser.add_subparsers(dest="command", required=True)

    p_add = sub.add_parser("add", help="snapshot an entity into a set")
    p_add.add_argument("set", choices=SET_NAMES)
    p_add.add_argument("kind", choices=KINDS)
    p_add.add_argument("id")

    p_remove = sub.add_parser("remove", help="remove an entry by id")
    p_remove.add_argument("set", choices=SET_NAMES)
    p_remove.add_argument("id")

    p_clear = sub.add_parser("clear", help="empty a set")
    p_clear.add_argument("set", choices=SET_NAMES)

    p_list = sub.add_parser("list", help="show a set, oldest first")
    p_list.add_argument("set", choices=SET_NAMES)
    p_list.add_argument("--kind", choices=KINDS)

    return parser


def _cmd_add(args: argparse.Namespace, manager: SelectionManager) -> int:
    details = DetailAggregator(SQLiteRepository(args.db))
    lookup = {INSTITUTION: details.get_institution, COURSE: details.get_course}[args.kind]
    result = lookup(args.id)
    if not result.found:
        print(result.error)
        return 1

    target = manager[args.set]
    if target.add(snapshot_item(args.kind, result.data)):
        print(f"Added {args.id} to {args.set} ({target.count()} items).")
    else:
        print(f"{args.id} is already in {args.set}.")
    return 0


def _cmd_remove(args: argparse.Namespace, manager: SelectionManager) -> int:
    if manager[args.set].remove(args.id):
        print(f"Removed {args.id} from {args.set}.")
    else:
        print(f"{args.id} is not in {args.set}.")
    return 0


def _cmd_clear(args: argparse.Namespace, manager: SelectionManager) -> int:
    manager[args.set].clear()
    print(f"Cleared {args.set}.")
    return 0


def _cmd_list(args: argparse.Namespace, manager: SelectionManager) -> int:
    target = manager[args.set]
    items = target.items_by_kind(args.kind) if args.kind else target.items()
    if not items:
        print("Nothing selected.")
        return 0
    for item in items:
        line = f"{item.id} | {item.kind} | {item.name}"
        if item.added_at:
            line += f" | added {item.added_at}"
        print(line)
    return 0


COMMANDS = {
    "add":    _cmd_add,
    "remove": _cmd_remove,
    "clear":  _cmd_clear,
    "list":   _cmd_list,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    manager = SelectionManager(JsonFileStore(args.store))
    try:
        return COMMANDS[args.command](args, manager)
    except StoreError as exc:
        print(f"Could not save selection: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
