"""A Rich-powered report describing one headless lecture visit."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..runtime.context import ExecutionState
from ..runtime.teardown import TeardownReport
from ..runtime.view import LectureView


STATE_STYLES: Dict[ExecutionState, str] = {
    ExecutionState.IDLE: "dim",
    ExecutionState.LOADING: "yellow",
    ExecutionState.INJECTED: "yellow",
    ExecutionState.EXECUTING: "cyan",
    ExecutionState.READY: "bold green",
    ExecutionState.TORN_DOWN: "magenta",
}


@dataclass
class SessionSnapshot:
    """What the report shows, captured before and after teardown."""

    content_id: str
    title: str
    state_before_teardown: ExecutionState
    state_after_teardown: ExecutionState
    characters: int = 0
    blocks_processed: int = 0
    failed_blocks: int = 0
    resources: Dict[str, int] = field(default_factory=dict)
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    teardown: Optional[TeardownReport] = None

    @classmethod
    def capture(
        cls,
        view: LectureView,
        content_id: str,
        *,
        state_before: ExecutionState,
        resources: Dict[str, int],
        report: Optional[TeardownReport],
    ) -> "SessionSnapshot":
        completion = view.context.completion if view.context is not None else None
        item = view.item
        return cls(
            content_id=content_id,
            title=item.display_name if item is not None else content_id,
            state_before_teardown=state_before,
            state_after_teardown=view.state,
            characters=len(item) if item is not None else 0,
            blocks_processed=completion.blocks_processed if completion else 0,
            failed_blocks=completion.failed_blocks if completion else 0,
            resources=resources,
            error_kind=view.error_kind,
            error_message=view.error_message,
            teardown=report,
        )


class SessionReport:
    """Render a :class:`SessionSnapshot` with Rich widgets."""

    def __init__(self, *, console: Optional[Console] = None) -> None:
        self._console = console or Console()

    def render(self, snapshot: SessionSnapshot) -> None:
        console = self._console
        console.rule(f"[bold magenta]{snapshot.title}")

        if snapshot.error_kind:
            console.print(
                Panel(
                    Text(snapshot.error_message or snapshot.error_kind, style="bold red"),
                    title=snapshot.error_kind,
                    border_style="red",
                    box=box.ROUNDED,
                )
            )
            return

        console.print(self._build_summary(snapshot))
        console.print(self._build_resources(snapshot))
        if snapshot.teardown is not None and snapshot.teardown.failures:
            for failure in snapshot.teardown.failures:
                console.print(Text(f"• {failure}", style="yellow"))

    @staticmethod
    def _state_text(state: ExecutionState) -> Text:
        return Text(state.value, style=STATE_STYLES.get(state, ""))

    def _build_summary(self, snapshot: SessionSnapshot) -> Table:
        table = Table(box=box.SIMPLE_HEAVY, show_header=False, pad_edge=False)
        table.add_column("Field", style="bold cyan")
        table.add_column("Value")
        table.add_row("Lecture", snapshot.content_id)
        table.add_row("Characters", str(snapshot.characters))
        table.add_row("Code blocks", str(snapshot.blocks_processed))
        table.add_row("Failed blocks", str(snapshot.failed_blocks))
        table.add_row("State before leaving", self._state_text(snapshot.state_before_teardown))
        table.add_row("State after leaving", self._state_text(snapshot.state_after_teardown))
        return table

    @staticmethod
    def _build_resources(snapshot: SessionSnapshot) -> Table:
        table = Table(title="Tracked resources", box=box.ROUNDED)
        table.add_column("Kind")
        table.add_column("Registered", justify="right")
        rows: List[tuple] = sorted(snapshot.resources.items())
        for kind, count in rows:
            table.add_row(kind.replace("_", " "), str(count))
        report = snapshot.teardown
        if report is not None:
            table.caption = (
                f"{report.cancelled} released, {report.skipped} already released, "
                f"{len(report.failures)} failures"
            )
        return table


__all__ = ["SessionReport", "SessionSnapshot"]
