from __future__ import annotations

import asyncio
import logging

import pytest

from courseplayer.runtime.host import EventTarget, HostEnvironment


def test_event_target_deduplicates_and_removes_listeners() -> None:
    target = EventTarget("document")
    seen = []

    def handler(event):
        seen.append((event.type, event.detail))

    target.add_event_listener("ready", handler)
    target.add_event_listener("ready", handler)
    assert target.listener_count("ready") == 1

    assert target.dispatch_event("ready", 3) == 1
    assert seen == [("ready", 3)]

    target.remove_event_listener("ready", handler)
    target.remove_event_listener("ready", handler)
    assert target.listener_count() == 0
    assert target.dispatch_event("ready") == 0


def test_failing_listener_does_not_stop_the_others(caplog: pytest.LogCaptureFixture) -> None:
    target = EventTarget("document")
    calls = []

    def broken(event):
        raise ValueError("broken listener")

    target.add_event_listener("ready", broken)
    target.add_event_listener("ready", lambda event: calls.append(event.type))

    with caplog.at_level(logging.WARNING):
        target.dispatch_event("ready")

    assert calls == ["ready"]
    assert "listener" in caplog.text


@pytest.mark.asyncio
async def test_timeout_fires_once_and_can_be_cleared() -> None:
    host = HostEnvironment()
    fired = []

    host.set_timeout(fired.append, 1, "first")
    cancelled = host.set_timeout(fired.append, 1, "second")
    host.clear_timeout(cancelled)
    host.clear_timeout(9999)

    await asyncio.sleep(0.05)

    assert fired == ["first"]
    assert host.pending_timers == 0


@pytest.mark.asyncio
async def test_interval_repeats_until_cleared() -> None:
    host = HostEnvironment()
    ticks = []

    reference = host.set_interval(lambda: ticks.append(1), 5)
    await asyncio.sleep(0.06)
    host.clear_interval(reference)
    count = len(ticks)
    await asyncio.sleep(0.03)

    assert count >= 2
    assert len(ticks) == count
    assert host.pending_timers == 0


@pytest.mark.asyncio
async def test_interval_can_clear_itself_from_its_callback() -> None:
    host = HostEnvironment()
    ticks = []
    holder = {}

    def tick():
        ticks.append(1)
        host.clear_interval(holder["id"])

    holder["id"] = host.set_interval(tick, 1)
    await asyncio.sleep(0.03)

    assert ticks == [1]


@pytest.mark.asyncio
async def test_animation_frame_receives_timestamp() -> None:
    host = HostEnvironment(frame_interval_ms=1)
    stamps = []

    host.request_animation_frame(stamps.append)
    dropped = host.request_animation_frame(stamps.append)
    host.cancel_animation_frame(dropped)
    await asyncio.sleep(0.02)

    assert len(stamps) == 1
    assert isinstance(stamps[0], float)
    assert host.pending_frames == 0
