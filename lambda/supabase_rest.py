from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen


DEFAULT_TABLE = "kanban_tasks"
ERROR_PREFIX = "Supabase error: "


class SupabaseError(Exception):
    pass


@dataclass(frozen=True)
class SupabaseConfig:
    url: str
    anon_key: str
    service_role_key: str = ""
    table: str = DEFAULT_TABLE

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "SupabaseConfig":
        return cls(
            url=str(env.get("SUPABASE_URL") or "").strip().rstrip("/"),
            anon_key=str(env.get("SUPABASE_ANON_KEY") or "").strip(),
            service_role_key=str(env.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip(),
            table=str(env.get("KANBAN_TABLE") or "").strip() or DEFAULT_TABLE,
        )

    def require(self) -> "SupabaseConfig":
        if not self.url or not self.anon_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY are required")
        return self

    def read_key(self) -> str:
        return self.anon_key

    def write_key(self) -> str:
        # Service role bypasses row-level security; anon key is the fallback.
        return self.service_role_key or self.anon_key

    def table_url(self, query: str) -> str:
        return f"{self.url}/rest/v1/{self.table}?{query}"


def _http_request(
    *,
    method: str,
    url: str,
    headers: dict[str, str],
    body: bytes | None = None,
    timeout_seconds: float | None = None,
) -> tuple[int, dict[str, str], bytes]:
    req = Request(url, data=body, method=str(method).upper())
    for k, v in headers.items():
        req.add_header(k, v)
    kwargs: dict[str, Any] = {}
    if timeout_seconds is not None:
        kwargs["timeout"] = timeout_seconds
    try:
        with urlopen(req, **kwargs) as resp:
            status = getattr(resp, "status", 200)
            hdrs = {k.lower(): v for k, v in dict(resp.headers).items()}
            data = resp.read()
            return int(status), hdrs, data
    except HTTPError as e:
        hdrs = {k.lower(): v for k, v in dict(e.headers or {}).items()}
        data = e.read() if hasattr(e, "read") else b""
        return int(getattr(e, "code", 0) or 0), hdrs, data
    except URLError as e:
        raise SupabaseError(f"{ERROR_PREFIX}{e.reason}") from e


def auth_headers(key: str) -> dict[str, str]:
    return {
        "apikey": key,
        "Authorization": f"Bearer {key}",
    }


def _eq_filter(task_id: str) -> str:
    return f"task_id=eq.{quote(str(task_id), safe='')}"


def _call(
    *,
    method: str,
    url: str,
    key: str,
    prefer: str = "",
    payload: dict[str, Any] | None = None,
) -> Any:
    headers = auth_headers(key)
    body = None
    if payload is not None:
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        headers["Content-Type"] = "application/json"
    if prefer:
        headers["Prefer"] = prefer

    status, _hdrs, data = _http_request(method=method, url=url, headers=headers, body=body)
    text = data.decode("utf-8", errors="replace")
    if status < 200 or status >= 300:
        raise SupabaseError(f"{ERROR_PREFIX}{text}")
    if not text.strip():
        return []
    return json.loads(text)


def select_tasks(config: SupabaseConfig) -> Any:
    """All tasks, newest first."""
    return _call(
        method="GET",
        url=config.table_url(urlencode({"order": "created_at.desc"})),
        key=config.read_key(),
    )


def upsert_task(config: SupabaseConfig, row: dict[str, Any]) -> Any:
    """Insert, or merge into the existing row with the same task_id."""
    return _call(
        method="POST",
        url=config.table_url(urlencode({"on_conflict": "task_id"})),
        key=config.write_key(),
        prefer="resolution=merge-duplicates,return=representation",
        payload=row,
    )


def update_tasks(config: SupabaseConfig, task_id: str, patch: dict[str, Any]) -> Any:
    return _call(
        method="PATCH",
        url=config.table_url(_eq_filter(task_id)),
        key=config.write_key(),
        prefer="return=representation",
        payload=patch,
    )


def delete_tasks(config: SupabaseConfig, task_id: str) -> Any:
    return _call(
        method="DELETE",
        url=config.table_url(_eq_filter(task_id)),
        key=config.write_key(),
        prefer="return=representation",
    )
