from __future__ import annotations

import base64
import json
import os
import time
from datetime import datetime, timezone
from typing import Any, Mapping

import supabase_rest
from supabase_rest import SupabaseConfig


VALID_STATUSES = ("icebox", "backlog", "in_progress", "done", "blocked")
VALID_PRIORITIES = ("high", "medium", "low")
REQUIRED_FIELDS = ("task_id", "title", "assignee", "status", "priority")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": int(status_code),
        "headers": {
            "Content-Type": "application/json",
            **CORS_HEADERS,
        },
        "body": json.dumps(body),
    }


def _error(status_code: int, message: str) -> dict[str, Any]:
    return _response(status_code, {"success": False, "error": message})


def _request_id(event: dict[str, Any]) -> str:
    rc = event.get("requestContext") or {}
    if isinstance(rc, dict):
        return str(rc.get("requestId") or "").strip()
    return ""


def _method(event: dict[str, Any]) -> str:
    method = str(event.get("httpMethod") or "").strip()
    if not method:
        # HTTP API (payload v2) events.
        rc = event.get("requestContext") or {}
        http = rc.get("http") if isinstance(rc, dict) else None
        if isinstance(http, dict):
            method = str(http.get("method") or "").strip()
    return method.upper()


def _parse_body(event: dict[str, Any]) -> dict[str, Any]:
    """Decode the request body.

    A missing, blank or malformed body and a JSON ``null`` raise ``ValueError``
    (reported as 500). Arrays and scalars parse but carry no fields, so they
    come back as ``{}`` and fail field validation instead.
    """
    raw = event.get("body")
    if raw is None:
        raise ValueError("request body must be valid JSON")
    if not isinstance(raw, str):
        raise ValueError("request body must be a JSON object")
    if bool(event.get("isBase64Encoded")):
        raw = base64.b64decode(raw.encode("utf-8")).decode("utf-8")
    if not raw.strip():
        raise ValueError("request body must be valid JSON")
    try:
        parsed = json.loads(raw)
    except ValueError as e:
        raise ValueError("request body must be valid JSON") from e
    if parsed is None:
        raise ValueError("request body must be a JSON object")
    if not isinstance(parsed, dict):
        return {}
    return parsed


def _supplied(value: Any) -> bool:
    # Objects and arrays count as supplied even when empty.
    return value not in (None, "", 0, False)


def _query_param(event: dict[str, Any], key: str) -> str:
    qs = event.get("queryStringParameters") or {}
    if not isinstance(qs, dict):
        return ""
    val = qs.get(key)
    return str(val) if val is not None else ""


def _handle_options() -> dict[str, Any]:
    return {
        "statusCode": 204,
        "headers": dict(CORS_HEADERS),
        "body": "",
    }


def _handle_get(config: SupabaseConfig, log: dict[str, Any]) -> dict[str, Any]:
    tasks = supabase_rest.select_tasks(config.require())
    log["outcome"] = "success"
    return _response(200, {"success": True, "data": tasks})


def _handle_post(event: dict[str, Any], config: SupabaseConfig, log: dict[str, Any]) -> dict[str, Any]:
    body = _parse_body(event)
    log["task_id"] = str(body.get("task_id") or "")

    if not all(_supplied(body.get(field)) for field in REQUIRED_FIELDS):
        log["outcome"] = "invalid_input"
        return _error(400, f"Missing required fields: {', '.join(REQUIRED_FIELDS)}")
    if body["status"] not in VALID_STATUSES:
        log["outcome"] = "invalid_input"
        return _error(
            400,
            f"Invalid status. Must be: {', '.join(VALID_STATUSES[:-1])}, or {VALID_STATUSES[-1]}",
        )
    if body["priority"] not in VALID_PRIORITIES:
        log["outcome"] = "invalid_input"
        return _error(
            400,
            f"Invalid priority. Must be: {', '.join(VALID_PRIORITIES[:-1])}, or {VALID_PRIORITIES[-1]}",
        )

    # Every column is written so an upsert replaces the stored row.
    row = {
        "task_id": body["task_id"],
        "title": body["title"],
        "description": body["description"] if _supplied(body.get("description")) else "",
        "assignee": body["assignee"],
        "status": body["status"],
        "priority": body["priority"],
        "metadata": body["metadata"] if _supplied(body.get("metadata")) else {},
        "updated_at": _now_iso(),
    }
    out = supabase_rest.upsert_task(config.require(), row)
    task = out[0] if isinstance(out, list) and out else out
    log["outcome"] = "success"
    return _response(200, {"success": True, "data": task})


def _handle_put(event: dict[str, Any], config: SupabaseConfig, log: dict[str, Any]) -> dict[str, Any]:
    body = _parse_body(event)
    task_id = body.get("task_id")
    if not _supplied(task_id):
        log["outcome"] = "invalid_input"
        return _error(400, "task_id is required for updates")
    log["task_id"] = str(task_id)

    if _supplied(body.get("status")) and body["status"] not in VALID_STATUSES:
        log["outcome"] = "invalid_input"
        return _error(400, "Invalid status")
    if _supplied(body.get("priority")) and body["priority"] not in VALID_PRIORITIES:
        log["outcome"] = "invalid_input"
        return _error(400, "Invalid priority")

    # Only supplied fields are sent; omitted columns stay untouched upstream.
    patch: dict[str, Any] = {"updated_at": _now_iso()}
    for field in ("title", "assignee", "status", "priority"):
        if _supplied(body.get(field)):
            patch[field] = body[field]
    if "description" in body:
        patch["description"] = body["description"]
    if _supplied(body.get("metadata")):
        patch["metadata"] = body["metadata"]

    rows = supabase_rest.update_tasks(config.require(), str(task_id), patch)
    if not rows:
        log["outcome"] = "not_found"
        return _error(404, "Task not found")
    log["outcome"] = "success"
    return _response(200, {"success": True, "data": rows[0]})


def _handle_delete(event: dict[str, Any], config: SupabaseConfig, log: dict[str, Any]) -> dict[str, Any]:
    task_id = _query_param(event, "task_id")
    # Whitespace-only ids are rejected, but a real id is forwarded as sent.
    if not task_id.strip():
        log["outcome"] = "invalid_input"
        return _error(400, "task_id query parameter is required")
    log["task_id"] = task_id

    deleted = supabase_rest.delete_tasks(config.require(), task_id)
    log["outcome"] = "success"
    return _response(200, {"success": True, "deleted": len(deleted)})


def handle(request: dict[str, Any], environment: Mapping[str, str]) -> dict[str, Any]:
    start = time.time()
    method = _method(request)
    wide_event: dict[str, Any] = {
        "event": "kanban_request",
        "ts": _now_iso(),
        "request_id": _request_id(request),
        "method": method,
    }
    out: dict[str, Any] = {}
    try:
        if method == "OPTIONS":
            wide_event["outcome"] = "preflight"
            out = _handle_options()
            return out

        if method not in {"GET", "POST", "PUT", "DELETE"}:
            wide_event["outcome"] = "method_not_allowed"
            out = _error(405, "Method not allowed")
            return out

        config = SupabaseConfig.from_env(environment)
        try:
            if method == "GET":
                out = _handle_get(config, wide_event)
            elif method == "POST":
                out = _handle_post(request, config, wide_event)
            elif method == "PUT":
                out = _handle_put(request, config, wide_event)
            else:
                out = _handle_delete(request, config, wide_event)
        except Exception as exc:
            wide_event["outcome"] = "error"
            wide_event["error"] = {"type": type(exc).__name__, "message": str(exc)}
            out = _error(500, str(exc) or "Unknown error")
        return out
    finally:
        wide_event["status_code"] = int(out.get("statusCode") or 0)
        wide_event["duration_ms"] = int((time.time() - start) * 1000)
        # Never log credentials or request bodies.
        print(json.dumps(wide_event, separators=(",", ":"), sort_keys=True))


def handler(event: dict[str, Any], _context: Any) -> dict[str, Any]:
    return handle(event, os.environ)
