import importlib
import io
import sys
from pathlib import Path
from urllib.error import HTTPError, URLError

import pytest

LAMBDA_DIR = str(Path(__file__).resolve().parents[1] / "lambda")


def _load_client():
    if LAMBDA_DIR not in sys.path:
        sys.path.insert(0, LAMBDA_DIR)
    import supabase_rest as mod

    return importlib.reload(mod)


class _FakeResponse:
    def __init__(self, status: int, data: bytes):
        self.status = status
        self.headers = {"Content-Type": "application/json"}
        self._data = data

    def read(self) -> bytes:
        return self._data

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_config_from_env_normalizes_values():
    mod = _load_client()
    cfg = mod.SupabaseConfig.from_env(
        {
            "SUPABASE_URL": " https://x.supabase.co/ ",
            "SUPABASE_ANON_KEY": "anon",
        }
    )

    assert cfg.url == "https://x.supabase.co"
    assert cfg.table == "kanban_tasks"
    assert cfg.read_key() == "anon"
    assert cfg.write_key() == "anon"
    assert cfg.table_url("order=created_at.desc") == "https://x.supabase.co/rest/v1/kanban_tasks?order=created_at.desc"


def test_config_prefers_service_role_for_writes():
    mod = _load_client()
    cfg = mod.SupabaseConfig.from_env(
        {
            "SUPABASE_URL": "https://x.supabase.co",
            "SUPABASE_ANON_KEY": "anon",
            "SUPABASE_SERVICE_ROLE_KEY": "service",
        }
    )

    assert cfg.read_key() == "anon"
    assert cfg.write_key() == "service"


def test_config_require_rejects_missing_settings():
    mod = _load_client()

    with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_ANON_KEY are required"):
        mod.SupabaseConfig.from_env({"SUPABASE_URL": "https://x.supabase.co"}).require()


def test_http_request_sends_headers_and_body(monkeypatch):
    mod = _load_client()
    captured: dict = {}

    def fake_urlopen(req, **kwargs):
        captured["req"] = req
        captured["kwargs"] = kwargs
        return _FakeResponse(201, b'[{"task_id":"T-1"}]')

    monkeypatch.setattr(mod, "urlopen", fake_urlopen)

    status, _hdrs, data = mod._http_request(
        method="post",
        url="https://x.supabase.co/rest/v1/kanban_tasks?on_conflict=task_id",
        headers={"apikey": "k", "Content-Type": "application/json"},
        body=b"{}",
    )

    assert status == 201
    assert data == b'[{"task_id":"T-1"}]'
    req = captured["req"]
    assert req.get_method() == "POST"
    assert req.data == b"{}"
    assert req.get_header("Apikey") == "k"
    # No client-side timeout unless one is requested.
    assert captured["kwargs"] == {}


def test_http_request_returns_http_error_status(monkeypatch):
    mod = _load_client()

    def fake_urlopen(req, **_kwargs):
        raise HTTPError(req.full_url, 409, "Conflict", {}, io.BytesIO(b"duplicate key"))

    monkeypatch.setattr(mod, "urlopen", fake_urlopen)

    status, _hdrs, data = mod._http_request(method="GET", url="https://x.test/", headers={})

    assert status == 409
    assert data == b"duplicate key"


def test_transport_failure_raises_prefixed_error(monkeypatch):
    mod = _load_client()

    def fake_urlopen(_req, **_kwargs):
        raise URLError("connection refused")

    monkeypatch.setattr(mod, "urlopen", fake_urlopen)
    cfg = mod.SupabaseConfig(url="https://x.supabase.co", anon_key="anon")

    with pytest.raises(mod.SupabaseError, match="^Supabase error: connection refused$"):
        mod.select_tasks(cfg)


def test_non_2xx_raises_with_upstream_body(monkeypatch):
    mod = _load_client()
    monkeypatch.setattr(
        mod,
        "_http_request",
        lambda **_kwargs: (401, {}, b'{"message":"JWT expired"}'),
    )
    cfg = mod.SupabaseConfig(url="https://x.supabase.co", anon_key="anon")

    with pytest.raises(mod.SupabaseError) as excinfo:
        mod.delete_tasks(cfg, "T-1")

    assert str(excinfo.value) == 'Supabase error: {"message":"JWT expired"}'


def test_empty_success_body_decodes_to_empty_list(monkeypatch):
    mod = _load_client()
    monkeypatch.setattr(mod, "_http_request", lambda **_kwargs: (204, {}, b""))
    cfg = mod.SupabaseConfig(url="https://x.supabase.co", anon_key="anon")

    assert mod.update_tasks(cfg, "T-1", {"title": "x"}) == []


def test_auth_headers_use_same_key_twice():
    mod = _load_client()

    assert mod.auth_headers("abc") == {"apikey": "abc", "Authorization": "Bearer abc"}
