"""Tests for the run.py entrypoint helpers."""

from __future__ import annotations

from types import SimpleNamespace

from typer.testing import CliRunner

import run
from courseplayer.runtime import ExecutionState
from courseplayer.services.storage import ContentRepository
from courseplayer.ui.console import SessionSnapshot


runner = CliRunner()


def _use_config(monkeypatch, config) -> None:
    monkeypatch.setattr(run, "initialize_app", lambda: config)
    monkeypatch.setattr(run, "_prepare_logging", lambda storage_root: None)


def test_serve_builds_uvicorn_server(monkeypatch, tmp_path):
    captured = {}

    monkeypatch.setattr(
        run,
        "initialize_app",
        lambda: SimpleNamespace(storage_root=tmp_path),
    )
    monkeypatch.setattr(run, "_prepare_logging", lambda storage_root: None)
    monkeypatch.setattr(run, "ContentRepository", lambda config: object())

    dummy_app = SimpleNamespace(state=SimpleNamespace())

    def fake_create_app(repository, config, root_path):
        captured["root_path"] = root_path
        return dummy_app

    monkeypatch.setattr(run, "create_app", fake_create_app)

    class DummyConfig:
        def __init__(self, app, **kwargs):
            captured["app"] = app
            captured["config_kwargs"] = kwargs

    class DummyServer:
        def __init__(self, config):
            captured["server_instance"] = self

        def run(self):
            captured["server_run"] = True

    monkeypatch.setattr(run.uvicorn, "Config", DummyConfig)
    monkeypatch.setattr(run.uvicorn, "Server", DummyServer)

    run.serve(host="0.0.0.0", port=9000, root_path="api/")

    assert captured["root_path"] == "/api"
    assert captured["config_kwargs"]["port"] == 9000
    assert captured["config_kwargs"]["root_path"] == "/api"
    assert captured["server_run"] is True
    assert dummy_app.state.server is captured["server_instance"]


def test_normalize_root_path():
    assert run._normalize_root_path(None) == ""
    assert run._normalize_root_path("  ") == ""
    assert run._normalize_root_path("/proxy/") == "/proxy"


def test_publish_stores_lecture(monkeypatch, temp_config, tmp_path):
    _use_config(monkeypatch, temp_config)
    source = tmp_path / "db-intro.html"
    source.write_text("<h1>Databases</h1>", encoding="utf-8")

    result = runner.invoke(run.cli, ["publish", str(source)])

    assert result.exit_code == 0, result.output
    assert "Published db-intro.html (18 characters)" in result.output
    record = ContentRepository(temp_config).get_lecture("db-intro.html")
    assert record is not None
    assert record.title == "Db Intro"


def test_grant_prints_token_and_rejects_duplicates(monkeypatch, temp_config):
    _use_config(monkeypatch, temp_config)

    first = runner.invoke(run.cli, ["grant", "learner@example.com", "--token", "fixed-token"])
    second = runner.invoke(run.cli, ["grant", "other@example.com", "--token", "fixed-token"])

    assert first.exit_code == 0, first.output
    assert "Token for learner@example.com: fixed-token" in first.output
    subscriber = ContentRepository(temp_config).find_subscriber_by_token("fixed-token")
    assert subscriber is not None
    assert subscriber.has_active_subscription()
    assert second.exit_code == 1
    assert "Could not create subscriber" in second.output


def test_open_reports_loader_failure(monkeypatch, temp_config):
    _use_config(monkeypatch, temp_config)
    captured = {}

    async def fake_visit(content_id, **kwargs):
        captured.update(kwargs, content_id=content_id)
        return SessionSnapshot(
            content_id=content_id,
            title=content_id,
            state_before_teardown=ExecutionState.IDLE,
            state_after_teardown=ExecutionState.TORN_DOWN,
            error_kind="Forbidden",
            error_message="Subscription required to access this lecture. Please subscribe to continue.",
        )

    monkeypatch.setattr(run, "_visit_lecture", fake_visit)

    result = runner.invoke(run.cli, ["open", "premium.html", "--token", "abc", "--linger", "0"])

    assert result.exit_code == 1
    assert captured["content_id"] == "premium.html"
    assert captured["token"] == "abc"
    assert captured["base_url"] == "http://testserver"
    assert "Subscription required" in result.output
