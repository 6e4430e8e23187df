from __future__ import annotations

from rich.console import Console

from courseplayer.runtime import ExecutionState, TeardownReport
from courseplayer.ui.console import SessionReport, SessionSnapshot


def _render(snapshot: SessionSnapshot) -> str:
    console = Console(record=True, width=100)
    SessionReport(console=console).render(snapshot)
    return console.export_text()


def test_report_lists_resources_and_teardown() -> None:
    snapshot = SessionSnapshot(
        content_id="db-intro.html",
        title="Db Intro",
        state_before_teardown=ExecutionState.READY,
        state_after_teardown=ExecutionState.TORN_DOWN,
        characters=5000,
        blocks_processed=3,
        resources={"interval": 1, "listener": 1, "timer": 0, "animation_frame": 0},
        teardown=TeardownReport(item_id="db-intro.html", cancelled=2),
    )

    text = _render(snapshot)

    assert "Db Intro" in text
    assert "5000" in text
    assert "ready" in text
    assert "torn_down" in text
    assert "animation frame" in text
    assert "2 released" in text


def test_report_shows_loader_error() -> None:
    snapshot = SessionSnapshot(
        content_id="premium.html",
        title="premium.html",
        state_before_teardown=ExecutionState.IDLE,
        state_after_teardown=ExecutionState.TORN_DOWN,
        error_kind="Forbidden",
        error_message="Subscription required to access this lecture.",
    )

    text = _render(snapshot)

    assert "Forbidden" in text
    assert "Subscription required" in text
    assert "Tracked resources" not in text
