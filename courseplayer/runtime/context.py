"""Per-lecture execution state shared by the executor and the teardown coordinator."""

from __future__ import annotations

import contextvars
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..services.events import emit_lifecycle_event, emit_resource_event
from .host import EventHandler, HostEnvironment
from .tracker import ResourceKind, ResourceTracker


LOGGER = logging.getLogger(__name__)
SCRIPT_LOGGER = logging.getLogger("courseplayer.lecture.script")

CURRENT_BLOCK: contextvars.ContextVar[Optional[int]] = contextvars.ContextVar(
    "courseplayer_current_block",
    default=None,
)

MIRROR_NAMES = ("timeouts_ref", "intervals_ref", "animation_frames_ref", "event_listeners_ref")
_MIRROR_BY_KIND = {
    ResourceKind.TIMER: "timeouts_ref",
    ResourceKind.INTERVAL: "intervals_ref",
    ResourceKind.ANIMATION_FRAME: "animation_frames_ref",
    ResourceKind.LISTENER: "event_listeners_ref",
}


class ExecutionState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    INJECTED = "injected"
    EXECUTING = "executing"
    READY = "ready"
    TORN_DOWN = "torn_down"


_TRANSITIONS: Dict[ExecutionState, frozenset] = {
    ExecutionState.IDLE: frozenset(
        {ExecutionState.LOADING, ExecutionState.INJECTED, ExecutionState.TORN_DOWN}
    ),
    ExecutionState.LOADING: frozenset(
        {ExecutionState.INJECTED, ExecutionState.IDLE, ExecutionState.TORN_DOWN}
    ),
    ExecutionState.INJECTED: frozenset({ExecutionState.EXECUTING, ExecutionState.TORN_DOWN}),
    ExecutionState.EXECUTING: frozenset({ExecutionState.READY, ExecutionState.TORN_DOWN}),
    ExecutionState.READY: frozenset({ExecutionState.TORN_DOWN}),
    ExecutionState.TORN_DOWN: frozenset(),
}


@dataclass(frozen=True)
class CompletionSignal:
    """Emitted once after the last code block of a lecture has been processed."""

    item_id: Optional[str]
    blocks_processed: int
    failed_blocks: int = 0
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ExecutionContext:
    """Everything one lecture visit owns.

    The executor and the teardown coordinator receive the same context, so the
    code that runs and the routine that cleans up always observe one live
    resource set without going through module globals.
    """

    def __init__(self, host: HostEnvironment, *, item_id: Optional[str] = None) -> None:
        self.host = host
        self.item_id = item_id
        self.item: Any = None
        self.tracker = ResourceTracker()
        self.state = ExecutionState.IDLE
        self.cleanup_hook: Optional[Callable[[], Any]] = None
        self.animation_frame: Any = None
        self.completion: Optional[CompletionSignal] = None
        self.namespace: Dict[str, Any] = {}
        self.mirrors: Dict[str, List[Any]] = {name: [] for name in MIRROR_NAMES}
        self.leaving = False
        self.scope = LectureScope(self)

    def __repr__(self) -> str:
        return f"<ExecutionContext item={self.item_id!r} state={self.state.value}>"

    @property
    def torn_down(self) -> bool:
        return self.state is ExecutionState.TORN_DOWN

    def transition(self, new_state: ExecutionState) -> bool:
        """Move to *new_state* when allowed; log and refuse otherwise."""

        if new_state is self.state:
            return True
        if new_state not in _TRANSITIONS[self.state]:
            LOGGER.warning(
                "Refusing state change %s -> %s for lecture '%s'",
                self.state.value,
                new_state.value,
                self.item_id,
            )
            return False
        previous = self.state
        self.state = new_state
        emit_lifecycle_event(
            self.item_id,
            f"{previous.value} -> {new_state.value}",
            payload={"resources": self.tracker.count()},
        )
        return True

    def build_namespace(self, container: Any = None) -> Dict[str, Any]:
        """Prepare the globals shared by every code block of this lecture."""

        scope = self.scope
        namespace: Dict[str, Any] = {
            "__name__": "__lecture__",
            "lecture": scope,
            "document": self.host.document,
            "window": self.host.window,
            "container": container,
            "set_timeout": scope.set_timeout,
            "clear_timeout": scope.clear_timeout,
            "set_interval": scope.set_interval,
            "clear_interval": scope.clear_interval,
            "request_animation_frame": scope.request_animation_frame,
            "cancel_animation_frame": scope.cancel_animation_frame,
            "add_event_listener": scope.add_event_listener,
            "remove_event_listener": scope.remove_event_listener,
            "register_cleanup": scope.register_cleanup,
            "log": scope.log,
        }
        namespace.update(self.mirrors)
        self.namespace = namespace
        return namespace

    def clear_mirrors(self) -> None:
        for entries in self.mirrors.values():
            entries.clear()

    def _record(self, kind: ResourceKind, reference: Any = None, **details: Any) -> None:
        origin = CURRENT_BLOCK.get()
        handle = self.tracker.register(kind, reference, origin=origin, **details)
        if handle is None:
            return
        mirror_value = handle.listener_triple if kind is ResourceKind.LISTENER else reference
        self.mirrors[_MIRROR_BY_KIND[kind]].append(mirror_value)
        emit_resource_event(
            self.item_id,
            "registered",
            payload={"kind": kind.value, "reference": reference, "origin": origin},
        )

    def _refuse(self, action: str) -> bool:
        """Reject registrations once teardown has started."""

        if self.torn_down:
            moment = "after"
        elif self.leaving:
            moment = "during"
        else:
            return False
        LOGGER.warning(
            "Ignoring %s from lecture '%s' %s teardown", action, self.item_id, moment
        )
        return True


class LectureScope:
    """API embedded code uses to schedule work and subscribe to events.

    Every creation goes through the context's tracker so teardown can release
    it. After teardown new registrations are ignored and return ``None``.
    """

    def __init__(self, context: ExecutionContext) -> None:
        self._context = context

    @property
    def item_id(self) -> Optional[str]:
        return self._context.item_id

    def set_timeout(self, callback: Callable[..., Any], delay_ms: Any = 0, *args: Any) -> Any:
        context = self._context
        if context._refuse("set_timeout"):
            return None
        reference = context.host.set_timeout(callback, delay_ms, *args)
        context._record(ResourceKind.TIMER, reference)
        return reference

    def clear_timeout(self, reference: Any) -> None:
        self._release(ResourceKind.TIMER, reference, self._context.host.clear_timeout)

    def set_interval(self, callback: Callable[..., Any], delay_ms: Any = 0, *args: Any) -> Any:
        context = self._context
        if context._refuse("set_interval"):
            return None
        reference = context.host.set_interval(callback, delay_ms, *args)
        context._record(ResourceKind.INTERVAL, reference)
        return reference

    def clear_interval(self, reference: Any) -> None:
        self._release(ResourceKind.INTERVAL, reference, self._context.host.clear_interval)

    def request_animation_frame(self, callback: Callable[[float], Any]) -> Any:
        context = self._context
        if context._refuse("request_animation_frame"):
            return None
        reference = context.host.request_animation_frame(callback)
        context._record(ResourceKind.ANIMATION_FRAME, reference)
        context.animation_frame = reference
        return reference

    def cancel_animation_frame(self, reference: Any) -> None:
        self._release(
            ResourceKind.ANIMATION_FRAME, reference, self._context.host.cancel_animation_frame
        )
        if self._context.animation_frame == reference:
            self._context.animation_frame = None

    def add_event_listener(self, source: Any, event_name: str, handler: EventHandler) -> None:
        context = self._context
        if context._refuse("add_event_listener"):
            return
        if source is None or not event_name or not callable(handler):
            LOGGER.debug("Ignoring invalid listener registration for '%s'", event_name)
            return
        if context.tracker.find_listener(source, event_name, handler) is not None:
            return
        context.host.add_event_listener(source, event_name, handler)
        context._record(
            ResourceKind.LISTENER, source=source, event_name=event_name, handler=handler
        )

    def remove_event_listener(self, source: Any, event_name: str, handler: EventHandler) -> None:
        context = self._context
        if source is None:
            return
        context.host.remove_event_listener(source, event_name, handler)
        handle = context.tracker.find_listener(source, event_name, handler)
        if handle is not None:
            handle.released = True

    def register_cleanup(self, hook: Callable[[], Any]) -> None:
        """Install the hook teardown calls once before forgetting it."""

        context = self._context
        if context._refuse("register_cleanup"):
            return
        if not callable(hook):
            LOGGER.debug("Ignoring non-callable cleanup hook for '%s'", context.item_id)
            return
        context.cleanup_hook = hook

    def log(self, *values: Any) -> None:
        SCRIPT_LOGGER.info(" ".join(str(value) for value in values))

    def _release(self, kind: ResourceKind, reference: Any, cancel: Callable[[Any], None]) -> None:
        if reference is None:
            return
        cancel(reference)
        handle = self._context.tracker.find(kind, reference)
        if handle is not None:
            handle.released = True


__all__ = [
    "CURRENT_BLOCK",
    "CompletionSignal",
    "ExecutionContext",
    "ExecutionState",
    "LectureScope",
    "MIRROR_NAMES",
]
