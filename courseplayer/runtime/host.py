"""Asyncio-backed host primitives available to embedded lecture code.

The host plays the part a browser window plays for web lectures: it owns the
scheduler (one-shot timers, repeating intervals and animation frames) and the
event targets scripts subscribe to. Identifiers are small integers shared by
timers and intervals, mirroring the browser convention. Cancelling an unknown
identifier is a no-op.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


LOGGER = logging.getLogger(__name__)

EventHandler = Callable[["Event"], Any]


@dataclass
class Event:
    """Payload handed to event listeners."""

    type: str
    target: "EventTarget"
    detail: Any = None


def _invoke_isolated(callback: Callable[..., Any], args: tuple, label: str) -> None:
    try:
        callback(*args)
    except Exception:  # noqa: BLE001 - lecture callbacks must not break the loop
        LOGGER.warning("Error in lecture %s callback", label, exc_info=True)


class EventTarget:
    """Minimal event target with browser-like listener semantics."""

    def __init__(self, name: str = "target") -> None:
        self.name = name
        self._listeners: Dict[str, List[EventHandler]] = {}

    def __repr__(self) -> str:
        return f"<EventTarget {self.name}>"

    def add_event_listener(self, event_name: str, handler: EventHandler) -> None:
        if not callable(handler):
            raise TypeError(f"Listener for '{event_name}' is not callable")
        handlers = self._listeners.setdefault(event_name, [])
        if handler not in handlers:
            handlers.append(handler)

    def remove_event_listener(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._listeners.get(event_name)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            self._listeners.pop(event_name, None)

    def listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is not None:
            return len(self._listeners.get(event_name, ()))
        return sum(len(handlers) for handlers in self._listeners.values())

    def dispatch_event(self, event_name: str, detail: Any = None) -> int:
        """Call every listener for *event_name* and return how many ran."""

        handlers = list(self._listeners.get(event_name, ()))
        event = Event(type=event_name, target=self, detail=detail)
        for handler in handlers:
            _invoke_isolated(handler, (event,), f"'{event_name}' listener")
        return len(handlers)


class HostEnvironment:
    """Scheduler and event targets shared by one lecture view."""

    def __init__(self, *, frame_interval_ms: float = 1000.0 / 60.0) -> None:
        self._ids = itertools.count(1)
        self._timers: Dict[int, asyncio.TimerHandle] = {}
        self._frames: Dict[int, asyncio.TimerHandle] = {}
        self._frame_delay = max(0.0, frame_interval_ms) / 1000.0
        self.document = EventTarget("document")
        self.window = EventTarget("window")

    @property
    def pending_timers(self) -> int:
        """Number of scheduled timers and intervals not yet fired or cancelled."""

        return len(self._timers)

    @property
    def pending_frames(self) -> int:
        return len(self._frames)

    @staticmethod
    def _loop() -> asyncio.AbstractEventLoop:
        return asyncio.get_running_loop()

    @staticmethod
    def _seconds(delay_ms: Any) -> float:
        try:
            delay = float(delay_ms or 0)
        except (TypeError, ValueError):
            delay = 0.0
        return max(0.0, delay) / 1000.0

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    def set_timeout(self, callback: Callable[..., Any], delay_ms: Any = 0, *args: Any) -> int:
        reference = next(self._ids)

        def _fire() -> None:
            self._timers.pop(reference, None)
            _invoke_isolated(callback, args, "timer")

        self._timers[reference] = self._loop().call_later(self._seconds(delay_ms), _fire)
        return reference

    def clear_timeout(self, reference: Any) -> None:
        if reference is None:
            return
        handle = self._timers.pop(reference, None)
        if handle is not None:
            handle.cancel()

    def set_interval(self, callback: Callable[..., Any], delay_ms: Any = 0, *args: Any) -> int:
        reference = next(self._ids)
        delay = self._seconds(delay_ms)
        loop = self._loop()

        def _fire() -> None:
            if reference not in self._timers:
                return
            self._timers[reference] = loop.call_later(delay, _fire)
            _invoke_isolated(callback, args, "interval")

        self._timers[reference] = loop.call_later(delay, _fire)
        return reference

    clear_interval = clear_timeout

    # ------------------------------------------------------------------
    # Animation frames
    # ------------------------------------------------------------------
    def request_animation_frame(self, callback: Callable[[float], Any]) -> int:
        reference = next(self._ids)
        loop = self._loop()

        def _fire() -> None:
            self._frames.pop(reference, None)
            _invoke_isolated(callback, (loop.time() * 1000.0,), "animation frame")

        self._frames[reference] = loop.call_later(self._frame_delay, _fire)
        return reference

    def cancel_animation_frame(self, reference: Any) -> None:
        if reference is None:
            return
        handle = self._frames.pop(reference, None)
        if handle is not None:
            handle.cancel()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    @staticmethod
    def add_event_listener(source: Any, event_name: str, handler: EventHandler) -> None:
        source.add_event_listener(event_name, handler)

    @staticmethod
    def remove_event_listener(source: Any, event_name: str, handler: EventHandler) -> None:
        source.remove_event_listener(event_name, handler)


__all__ = ["Event", "EventHandler", "EventTarget", "HostEnvironment"]
