"""One-off migration of the legacy ``kanban.json`` board into the task endpoint.

The legacy file groups tasks by column (``inProgress``, ``upNext``,
``blocked``, ``doneToday``). Each entry's ``task`` text may lead with a
``ABC-12:`` ticket prefix, which becomes the ``task_id``; entries without one
get a positional id per column.
"""

from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path
from typing import Any

from .cli_shared import ApiError, GlobalOpts, KanbanOpsError, UsageError, _eprint, _load_json_object, _print_json
from .commands import _endpoint_for, _kanban_request

DEFAULT_ASSIGNEE = "Nova"
DEFAULT_PRIORITY = "medium"

_TICKET_PREFIX_RE = re.compile(r"^([A-Z]+-\d+):")
_TICKET_STRIP_RE = re.compile(r"^[A-Z]+-\d+:\s*")


def _split_ticket(text: str, fallback_id: str) -> tuple[str, str]:
    m = _TICKET_PREFIX_RE.match(text)
    task_id = m.group(1) if m else fallback_id
    return task_id, _TICKET_STRIP_RE.sub("", text, count=1)


def _present(**values: Any) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _entries(doc: dict[str, Any], key: str) -> list[dict[str, Any]]:
    raw = doc.get(key)
    if not isinstance(raw, list):
        return []
    return [e for e in raw if isinstance(e, dict)]


def legacy_tasks(doc: dict[str, Any]) -> list[dict[str, Any]]:
    tasks: list[dict[str, Any]] = []

    for index, entry in enumerate(_entries(doc, "inProgress"), start=1):
        task_id, title = _split_ticket(str(entry.get("task") or ""), f"ACTIVE-{index}")
        tasks.append(
            {
                "task_id": task_id,
                "title": title,
                "description": entry.get("notes") or "",
                "assignee": entry.get("assignee") or DEFAULT_ASSIGNEE,
                "status": "in_progress",
                "priority": entry.get("priority") or DEFAULT_PRIORITY,
                "metadata": _present(url=entry.get("url")),
            }
        )

    for index, entry in enumerate(_entries(doc, "upNext"), start=1):
        task_id, title = _split_ticket(str(entry.get("task") or ""), f"BACKLOG-{index}")
        tasks.append(
            {
                "task_id": task_id,
                "title": title,
                "description": entry.get("notes") or "",
                "assignee": entry.get("assignee") or DEFAULT_ASSIGNEE,
                "status": "backlog",
                "priority": entry.get("priority") or DEFAULT_PRIORITY,
                "metadata": {},
            }
        )

    for index, entry in enumerate(_entries(doc, "blocked"), start=1):
        task_id, title = _split_ticket(str(entry.get("task") or ""), f"BLOCKED-{index}")
        tasks.append(
            {
                "task_id": task_id,
                "title": title,
                "description": entry.get("blocker") or "",
                "assignee": entry.get("assignee") or DEFAULT_ASSIGNEE,
                "status": "blocked",
                "priority": DEFAULT_PRIORITY,
                "metadata": {},
            }
        )

    for index, entry in enumerate(_entries(doc, "doneToday"), start=1):
        task_id, title = _split_ticket(str(entry.get("task") or ""), f"DONE-{index}")
        tasks.append(
            {
                "task_id": task_id,
                "title": title,
                "description": "",
                "assignee": DEFAULT_ASSIGNEE,
                "status": "done",
                "priority": DEFAULT_PRIORITY,
                "metadata": _present(outcome=entry.get("outcome"), time=entry.get("time")),
            }
        )

    return tasks


def _read_legacy_file(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise UsageError(f"cannot read legacy kanban file {path}: {e}") from e
    return _load_json_object(raw=raw, label=f"legacy kanban JSON at {path}")


def cmd_migrate(args: argparse.Namespace, g: GlobalOpts) -> int:
    tasks = legacy_tasks(_read_legacy_file(Path(args.path)))

    if args.dry_run:
        _print_json(tasks, pretty=g.pretty)
        return 0

    endpoint = _endpoint_for(g)
    if not g.quiet:
        _eprint(f"Migrating {len(tasks)} tasks to {endpoint}...")

    success_count = 0
    error_count = 0
    for task in tasks:
        try:
            _kanban_request(method="POST", endpoint=endpoint, body_obj=task)
        except ApiError as e:
            _eprint(f"✗ {task['task_id']}: {e.api_error or e}")
            error_count += 1
            continue
        except KanbanOpsError as e:
            _eprint(f"✗ {task['task_id']}: {e}")
            error_count += 1
            continue
        sys.stdout.write(f"✓ {task['task_id']}: {task['title'][:50]}...\n")
        success_count += 1

    sys.stdout.write("\nMigration complete:\n")
    sys.stdout.write(f"  Success: {success_count}\n")
    sys.stdout.write(f"  Errors: {error_count}\n")
    return 1 if error_count else 0
