import argparse
import json

import pytest

from kanban_cli.cli_shared import ApiError, GlobalOpts, OpError, UsageError
from kanban_cli.migrate import cmd_migrate, legacy_tasks


def _g(**overrides) -> GlobalOpts:
    opts = {
        "stack": "KanbanStack",
        "pretty": False,
        "quiet": True,
        "endpoint": "https://example.invalid/api/kanban",
    }
    opts.update(overrides)
    return GlobalOpts(**opts)


LEGACY = {
    "inProgress": [
        {
            "task": "ENG-12: Wire up dashboard",
            "notes": "half done",
            "assignee": "Ari",
            "priority": "high",
            "url": "https://example.invalid/pr/1",
        },
        {"task": "Untracked active work"},
    ],
    "upNext": [
        {"task": "OPS-3: Rotate keys", "notes": "quarterly"},
        {"task": "Plan retro", "priority": "low"},
    ],
    "blocked": [
        {"task": "ENG-7: Ship release", "blocker": "waiting on review", "assignee": "Sam"},
    ],
    "doneToday": [
        {"task": "Fix flaky test", "outcome": "green", "time": "10:30"},
    ],
}


def test_legacy_tasks_maps_every_column():
    tasks = legacy_tasks(LEGACY)

    assert [t["task_id"] for t in tasks] == [
        "ENG-12",
        "ACTIVE-2",
        "OPS-3",
        "BACKLOG-2",
        "ENG-7",
        "DONE-1",
    ]
    assert [t["status"] for t in tasks] == [
        "in_progress",
        "in_progress",
        "backlog",
        "backlog",
        "blocked",
        "done",
    ]


def test_legacy_in_progress_fields_and_defaults():
    first, second = legacy_tasks(LEGACY)[:2]

    assert first == {
        "task_id": "ENG-12",
        "title": "Wire up dashboard",
        "description": "half done",
        "assignee": "Ari",
        "status": "in_progress",
        "priority": "high",
        "metadata": {"url": "https://example.invalid/pr/1"},
    }
    assert second["title"] == "Untracked active work"
    assert second["assignee"] == "Nova"
    assert second["priority"] == "medium"
    assert second["description"] == ""
    assert second["metadata"] == {}


def test_legacy_blocked_uses_blocker_and_fixed_priority():
    blocked = [t for t in legacy_tasks(LEGACY) if t["status"] == "blocked"][0]

    assert blocked["description"] == "waiting on review"
    assert blocked["assignee"] == "Sam"
    assert blocked["priority"] == "medium"


def test_legacy_done_keeps_outcome_metadata():
    done = legacy_tasks(LEGACY)[-1]

    assert done["assignee"] == "Nova"
    assert done["metadata"] == {"outcome": "green", "time": "10:30"}


def test_legacy_tasks_tolerates_missing_columns():
    assert legacy_tasks({}) == []
    assert legacy_tasks({"upNext": "not-a-list"}) == []


def test_lowercase_prefix_is_not_a_ticket_id():
    tasks = legacy_tasks({"upNext": [{"task": "eng-1: lower"}]})

    assert tasks[0]["task_id"] == "BACKLOG-1"
    assert tasks[0]["title"] == "eng-1: lower"


def test_cmd_migrate_dry_run_prints_tasks(tmp_path, monkeypatch, capsys):
    path = tmp_path / "kanban.json"
    path.write_text(json.dumps(LEGACY), encoding="utf-8")

    def fail(**_kwargs):
        raise AssertionError("dry run must not send")

    monkeypatch.setattr("kanban_cli.migrate._kanban_request", fail)

    args = argparse.Namespace(path=str(path), dry_run=True)
    assert cmd_migrate(args, _g()) == 0

    out = json.loads(capsys.readouterr().out)
    assert len(out) == 6


def test_cmd_migrate_posts_each_task_and_counts(tmp_path, monkeypatch, capsys):
    path = tmp_path / "kanban.json"
    path.write_text(json.dumps(LEGACY), encoding="utf-8")
    sent: list[dict] = []

    def fake_request(**kwargs):
        sent.append(kwargs)
        if kwargs["body_obj"]["task_id"] == "OPS-3":
            raise ApiError(
                "kanban request failed: status=400 method=POST message=Invalid priority",
                status=400,
                api_error="Invalid priority",
            )
        return {"success": True, "data": kwargs["body_obj"]}

    monkeypatch.setattr("kanban_cli.migrate._kanban_request", fake_request)

    args = argparse.Namespace(path=str(path), dry_run=False)
    assert cmd_migrate(args, _g()) == 1

    captured = capsys.readouterr()
    out = captured.out
    assert len(sent) == 6
    assert all(call["method"] == "POST" for call in sent)
    assert all(call["endpoint"] == "https://example.invalid/api/kanban" for call in sent)
    assert "✓ ENG-12: Wire up dashboard..." in out
    assert "✗ OPS-3: Invalid priority\n" in captured.err
    assert "✗" not in out
    assert "Success: 5" in out
    assert "Errors: 1" in out


def test_cmd_migrate_rejects_missing_file(tmp_path):
    args = argparse.Namespace(path=str(tmp_path / "missing.json"), dry_run=True)

    with pytest.raises(UsageError, match="cannot read legacy kanban file"):
        cmd_migrate(args, _g())


def test_cmd_migrate_rejects_non_object_json(tmp_path):
    path = tmp_path / "kanban.json"
    path.write_text("[]", encoding="utf-8")

    with pytest.raises(UsageError, match="expected JSON object"):
        cmd_migrate(argparse.Namespace(path=str(path), dry_run=True), _g())


def test_cmd_migrate_reports_transport_failure_on_stderr(tmp_path, monkeypatch, capsys):
    path = tmp_path / "kanban.json"
    path.write_text(json.dumps({"upNext": [{"task": "OPS-9: Audit"}]}), encoding="utf-8")

    def fake_request(**_kwargs):
        raise OpError("http request failed: connection refused")

    monkeypatch.setattr("kanban_cli.migrate._kanban_request", fake_request)

    assert cmd_migrate(argparse.Namespace(path=str(path), dry_run=False), _g()) == 1

    captured = capsys.readouterr()
    assert "✗ OPS-9: http request failed: connection refused" in captured.err
    assert "Errors: 1" in captured.out
