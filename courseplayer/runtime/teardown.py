"""Release every resource a lecture created when the learner leaves the view."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List

from ..errors import ResourceReleaseError
from ..services.events import emit_lifecycle_event
from .context import ExecutionContext, ExecutionState
from .tracker import ResourceHandle, ResourceKind


LOGGER = logging.getLogger(__name__)


@dataclass
class TeardownReport:
    """Summary of one teardown pass."""

    item_id: Any = None
    cancelled: int = 0
    skipped: int = 0
    cleanup_hook_called: bool = False
    already_torn_down: bool = False
    failures: List[ResourceReleaseError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class TeardownCoordinator:
    """Drain the tracker of a context; safe to call any number of times.

    Each step, and each handle within a step, is guarded on its own: a
    failing release is logged and the remaining releases still run.
    """

    def teardown(self, context: ExecutionContext) -> TeardownReport:
        report = TeardownReport(item_id=context.item_id)
        if context.torn_down and context.tracker.is_empty() and context.cleanup_hook is None:
            report.already_torn_down = True
            LOGGER.debug("Teardown for '%s' already complete", context.item_id)
            return report

        context.leaving = True
        self._release_tracked(context, report)
        self._guarded(report, "cleanup_hook", lambda: self._run_cleanup_hook(context, report))
        if not context.tracker.is_empty():
            LOGGER.warning(
                "Releasing %s resources registered while leaving '%s'",
                context.tracker.count(),
                context.item_id,
            )
            self._release_tracked(context, report)

        for kind in ResourceKind:
            context.tracker.drain(kind)
        context.clear_mirrors()
        context.animation_frame = None
        context.cleanup_hook = None
        context.transition(ExecutionState.TORN_DOWN)

        emit_lifecycle_event(
            context.item_id,
            "Torn down",
            payload={
                "cancelled": report.cancelled,
                "skipped": report.skipped,
                "failures": len(report.failures),
                "cleanup_hook": report.cleanup_hook_called,
            },
            level=logging.WARNING if report.failures else logging.INFO,
        )
        return report

    def _release_tracked(self, context: ExecutionContext, report: TeardownReport) -> None:
        host = context.host
        self._guarded(report, "animation_frames", lambda: self._cancel_frames(context, report))
        self._guarded(
            report,
            "timers",
            lambda: self._drain(context, ResourceKind.TIMER, host.clear_timeout, report),
        )
        self._guarded(
            report,
            "intervals",
            lambda: self._drain(context, ResourceKind.INTERVAL, host.clear_interval, report),
        )
        self._guarded(report, "listeners", lambda: self._drain_listeners(context, report))

    def _guarded(self, report: TeardownReport, step: str, action: Callable[[], None]) -> None:
        try:
            action()
        except Exception as exc:  # noqa: BLE001 - later steps must still run
            self._record_failure(report, step, exc)

    @staticmethod
    def _record_failure(
        report: TeardownReport, step: str, exc: BaseException, reference: Any = None
    ) -> None:
        failure = ResourceReleaseError(step, exc, reference=reference)
        report.failures.append(failure)
        LOGGER.warning("%s", failure)

    def _release(
        self,
        report: TeardownReport,
        step: str,
        handle: ResourceHandle,
        release: Callable[[], None],
    ) -> None:
        if handle.released:
            report.skipped += 1
            return
        try:
            release()
        except Exception as exc:  # noqa: BLE001 - one bad handle must not block the rest
            self._record_failure(report, step, exc, reference=handle.reference)
        else:
            report.cancelled += 1
        finally:
            handle.released = True

    def _cancel_frames(self, context: ExecutionContext, report: TeardownReport) -> None:
        host = context.host
        outstanding = context.animation_frame
        context.animation_frame = None
        handles = context.tracker.drain(ResourceKind.ANIMATION_FRAME)
        if outstanding is not None and not any(h.reference == outstanding for h in handles):
            try:
                host.cancel_animation_frame(outstanding)
            except Exception as exc:  # noqa: BLE001 - keep draining tracked frames
                self._record_failure(report, "animation_frames", exc, reference=outstanding)
            else:
                report.cancelled += 1
        for handle in handles:
            self._release(
                report,
                "animation_frames",
                handle,
                lambda handle=handle: host.cancel_animation_frame(handle.reference),
            )

    def _drain(
        self,
        context: ExecutionContext,
        kind: ResourceKind,
        cancel: Callable[[Any], None],
        report: TeardownReport,
    ) -> None:
        step = f"{kind.value}s"
        for handle in context.tracker.drain(kind):
            self._release(report, step, handle, lambda handle=handle: cancel(handle.reference))

    def _drain_listeners(self, context: ExecutionContext, report: TeardownReport) -> None:
        host = context.host
        for handle in context.tracker.drain(ResourceKind.LISTENER):
            source, event_name, handler = handle.listener_triple
            self._release(
                report,
                "listeners",
                handle,
                lambda source=source, event_name=event_name, handler=handler: host.remove_event_listener(
                    source, event_name, handler
                ),
            )

    def _run_cleanup_hook(self, context: ExecutionContext, report: TeardownReport) -> None:
        hook = context.cleanup_hook
        context.cleanup_hook = None
        if hook is None:
            return
        report.cleanup_hook_called = True
        hook()


__all__ = ["TeardownCoordinator", "TeardownReport"]
