from __future__ import annotations

import argparse
import json
import sys
from typing import Any
from urllib.parse import urlencode

from .cli_shared import (
    INVOKE_URL_OUTPUT_KEY,
    ApiError,
    GlobalOpts,
    UsageError,
    _account_session,
    _http_request,
    _load_json_object,
    _print_json,
    _require_stack_output,
)


def _endpoint_for(g: GlobalOpts) -> str:
    if g.endpoint:
        return g.endpoint
    # No explicit endpoint: fall back to the deployed stack's output.
    return _require_stack_output(_account_session(), stack=g.stack, key=INVOKE_URL_OUTPUT_KEY)


def _kanban_request(
    *,
    method: str,
    endpoint: str,
    query: dict[str, Any] | None = None,
    body_obj: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Call the kanban route and return its envelope, raising on failure."""
    query_clean = {
        k: str(v)
        for k, v in (query or {}).items()
        if v is not None and str(v).strip() != ""
    }
    url = endpoint.rstrip("/")
    if query_clean:
        url += f"?{urlencode(query_clean)}"

    body_bytes = None
    headers = {"accept": "application/json"}
    if body_obj is not None:
        body_bytes = json.dumps(body_obj, separators=(",", ":")).encode("utf-8")
        headers["content-type"] = "application/json"

    status, _hdrs, data = _http_request(
        method=method,
        url=url,
        headers=headers,
        body=body_bytes,
    )
    text = data.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(text) if text else {}
    except Exception:
        parsed = {"raw": text}
    if not isinstance(parsed, dict):
        parsed = {"result": parsed}

    if status < 200 or status >= 300 or parsed.get("success") is False:
        msg = str(parsed.get("error") or parsed.get("message") or parsed.get("raw") or text).strip()
        raise ApiError(
            f"kanban request failed: status={status} method={method} message={msg}",
            status=status,
            api_error=msg,
        )
    return parsed


def _cell(value: Any) -> str:
    text = str(value or "").strip()
    if not text:
        return "-"
    return text


def _task_line(task: dict[str, Any]) -> str:
    return (
        f"- {_cell(task.get('task_id'))} [{_cell(task.get('status'))}] "
        f"priority={_cell(task.get('priority'))} assignee={_cell(task.get('assignee'))} "
        f"title={_cell(task.get('title'))}"
    )


def _metadata_arg(raw: str | None) -> dict[str, Any] | None:
    if raw is None:
        return None
    return _load_json_object(raw=raw, label="--metadata JSON")


def cmd_tasks_list(args: argparse.Namespace, g: GlobalOpts) -> int:
    out = _kanban_request(method="GET", endpoint=_endpoint_for(g))
    if args.json_output:
        _print_json(out, pretty=g.pretty)
        return 0
    tasks = out.get("data")
    count = 0
    if isinstance(tasks, list):
        for task in tasks:
            if not isinstance(task, dict):
                continue
            count += 1
            sys.stdout.write(_task_line(task) + "\n")
    if count == 0:
        sys.stdout.write("No tasks.\n")
    sys.stdout.write(f"items: {count}\n")
    return 0


def cmd_tasks_put(args: argparse.Namespace, g: GlobalOpts) -> int:
    body: dict[str, Any] = {
        "task_id": args.task_id,
        "title": args.title,
        "assignee": args.assignee,
        "status": args.status,
        "priority": args.priority,
    }
    if args.description is not None:
        body["description"] = args.description
    metadata = _metadata_arg(args.metadata)
    if metadata is not None:
        body["metadata"] = metadata

    out = _kanban_request(method="POST", endpoint=_endpoint_for(g), body_obj=body)
    if args.json_output:
        _print_json(out, pretty=g.pretty)
        return 0
    task = out.get("data") if isinstance(out.get("data"), dict) else {}
    sys.stdout.write(f"saved task {_cell(task.get('task_id') or args.task_id)} status={_cell(task.get('status'))}\n")
    return 0


def cmd_tasks_update(args: argparse.Namespace, g: GlobalOpts) -> int:
    body: dict[str, Any] = {"task_id": args.task_id}
    for field in ("title", "description", "assignee", "status", "priority"):
        val = getattr(args, field, None)
        if val is not None:
            body[field] = val
    metadata = _metadata_arg(args.metadata)
    if metadata is not None:
        body["metadata"] = metadata
    if len(body) == 1:
        raise UsageError("nothing to update (pass at least one field option)")

    out = _kanban_request(method="PUT", endpoint=_endpoint_for(g), body_obj=body)
    if args.json_output:
        _print_json(out, pretty=g.pretty)
        return 0
    task = out.get("data") if isinstance(out.get("data"), dict) else {}
    sys.stdout.write(f"updated task {_cell(task.get('task_id') or args.task_id)} status={_cell(task.get('status'))}\n")
    return 0


def cmd_tasks_delete(args: argparse.Namespace, g: GlobalOpts) -> int:
    task_id = str(args.task_id or "").strip()
    if not task_id:
        raise UsageError("missing task id")
    out = _kanban_request(method="DELETE", endpoint=_endpoint_for(g), query={"task_id": task_id})
    if args.json_output:
        _print_json(out, pretty=g.pretty)
        return 0
    sys.stdout.write(f"deleted {int(out.get('deleted') or 0)} task(s) task_id={task_id}\n")
    return 0
