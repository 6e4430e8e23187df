from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from conftest import RecordingHost, script
from courseplayer.errors import ContainerNotReady
from courseplayer.runtime import (
    CONTENT_PARSED_EVENT,
    CONTENT_READY_EVENT,
    CodeBlockExecutor,
    ContentContainer,
    ExecutionContext,
    ExecutionState,
    ResourceKind,
    TeardownCoordinator,
    escape_closing_tags,
    inject_markup,
)


def _count_ready_events(host: RecordingHost) -> list:
    received = []
    host.document.add_event_listener(CONTENT_READY_EVENT, lambda event: received.append(event.detail))
    return received


@pytest.mark.asyncio
async def test_blocks_run_in_document_order_even_when_external_is_slow(run_markup) -> None:
    async def slow_block(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.05)
        return httpx.Response(200, text="window.trace.append('A')")

    markup = (
        "<h1>Order</h1>"
        '<script src="/static/a.py"></script>'
        + script("window.trace.append('B')")
        + script("window.trace.append('C')")
    )
    host = RecordingHost(frame_interval_ms=1)

    context, _, signal = await run_markup(markup, host=host, scripts={"/static/a.py": slow_block})

    assert host.trace == ["A", "B", "C"]
    assert signal is not None
    assert signal.blocks_processed == 3
    assert signal.failed_blocks == 0
    assert context.state is ExecutionState.READY


@pytest.mark.asyncio
async def test_failing_block_is_isolated_and_completion_fires_once(run_markup, caplog) -> None:
    host = RecordingHost(frame_interval_ms=1)
    received = _count_ready_events(host)
    parsed = []
    host.document.add_event_listener(CONTENT_PARSED_EVENT, parsed.append)
    markup = (
        script("window.trace.append('A')")
        + script("raise ValueError('broken lecture code')")
        + script("window.trace.append('C')")
    )

    with caplog.at_level(logging.WARNING):
        context, _, signal = await run_markup(markup, host=host)

    assert host.trace == ["A", "C"]
    assert signal.failed_blocks == 1
    assert len(received) == 1
    assert len(parsed) == 1
    assert received[0] is signal
    assert "broken lecture code" in caplog.text
    assert context.state is ExecutionState.READY


@pytest.mark.asyncio
async def test_missing_external_block_does_not_stop_the_walk(run_markup) -> None:
    host = RecordingHost(frame_interval_ms=1)
    markup = '<script src="/static/missing.py"></script>' + script("window.trace.append('after')")

    _, _, signal = await run_markup(markup, host=host)

    assert host.trace == ["after"]
    assert signal.failed_blocks == 1
    assert signal.blocks_processed == 2


@pytest.mark.asyncio
async def test_slow_external_block_times_out_and_walk_continues(fast_settings, make_runner) -> None:
    async def never(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, text="window.trace.append('late')")

    host = RecordingHost(frame_interval_ms=1)
    context = ExecutionContext(host, item_id="slow.html")
    container = ContentContainer()
    inject_markup(
        container,
        context,
        '<script src="/static/slow.py"></script>' + script("window.trace.append('next')"),
    )
    executor = CodeBlockExecutor(make_runner({"/static/slow.py": never}, timeout_ms=30), fast_settings)

    signal = await executor.execute(container, context)

    assert host.trace == ["next"]
    assert signal.failed_blocks == 1


@pytest.mark.asyncio
async def test_empty_container_raises_after_polling(fast_settings, make_runner) -> None:
    context = ExecutionContext(RecordingHost(), item_id="blank.html")
    container = ContentContainer()
    inject_markup(container, context, "")
    executor = CodeBlockExecutor(make_runner(), fast_settings)

    with pytest.raises(ContainerNotReady):
        await executor.execute(container, context)

    assert context.completion is None


@pytest.mark.asyncio
async def test_non_python_scripts_are_left_alone(run_markup) -> None:
    host = RecordingHost(frame_interval_ms=1)
    markup = (
        '<script type="application/json">{"answer": 42}</script>'
        '<script type="text/javascript">window.alert("hi")</script>'
        + script("window.trace.append('py')", type="text/python")
    )

    _, container, signal = await run_markup(markup, host=host)

    assert host.trace == ["py"]
    assert signal.blocks_processed == 1
    rendered = container.render()
    assert '{"answer": 42}' in rendered
    assert rendered.count('data-executed="true"') == 1


@pytest.mark.asyncio
async def test_executed_nodes_replace_the_originals(run_markup) -> None:
    markup = '<div id="stage"></div>' + script("container.select('#stage').string = 'drawn'", id="draw")

    _, container, _ = await run_markup(markup)

    node = container.select("#draw")
    assert node is not None
    assert node.get("data-executed") == "true"
    assert container.select("#stage").string == "drawn"
    assert len(container.code_blocks()) == 1


@pytest.mark.asyncio
async def test_blocks_share_one_namespace(run_markup) -> None:
    host = RecordingHost(frame_interval_ms=1)
    markup = script("counter = 41") + script("window.trace.append(str(counter + 1))")

    await run_markup(markup, host=host)

    assert host.trace == ["42"]


@pytest.mark.asyncio
async def test_resources_record_the_block_that_created_them(run_markup) -> None:
    markup = (
        script("timer = set_timeout(lambda: None, 10000)")
        + script(
            "ticker = set_interval(lambda: None, 10000)\n"
            "def on_key(event):\n"
            "    pass\n"
            "add_event_listener(document, 'keydown', on_key)"
        )
    )

    context, _, _ = await run_markup(markup)

    namespace = context.namespace
    tracker = context.tracker
    assert tracker.find(ResourceKind.TIMER, namespace["timer"]).origin == 0
    assert tracker.find(ResourceKind.INTERVAL, namespace["ticker"]).origin == 1
    listener = tracker.find_listener(context.host.document, "keydown", namespace["on_key"])
    assert listener.origin == 1
    report = TeardownCoordinator().teardown(context)
    assert report.cancelled == 3


@pytest.mark.asyncio
async def test_legacy_mirror_lists_follow_registrations(run_markup) -> None:
    markup = script("handle = set_timeout(lambda: None, 10000)\nassert timeouts_ref == [handle]")

    context, _, signal = await run_markup(markup)

    assert signal.failed_blocks == 0
    assert context.mirrors["timeouts_ref"] == [context.namespace["handle"]]
    TeardownCoordinator().teardown(context)
    assert context.namespace["timeouts_ref"] == []


@pytest.mark.asyncio
async def test_second_execute_returns_existing_completion(fast_settings, make_runner) -> None:
    host = RecordingHost(frame_interval_ms=1)
    received = _count_ready_events(host)
    context = ExecutionContext(host, item_id="twice.html")
    container = ContentContainer()
    inject_markup(container, context, script("window.trace.append('once')"))
    executor = CodeBlockExecutor(make_runner(), fast_settings)

    first = await executor.execute(container, context)
    second = await executor.execute(container, context)

    assert first is second
    assert host.trace == ["once"]
    assert len(received) == 1


@pytest.mark.asyncio
async def test_execute_after_teardown_does_nothing(fast_settings, make_runner) -> None:
    host = RecordingHost(frame_interval_ms=1)
    context = ExecutionContext(host, item_id="gone.html")
    container = ContentContainer()
    inject_markup(container, context, script("window.trace.append('ran')"))
    TeardownCoordinator().teardown(context)

    signal = await CodeBlockExecutor(make_runner(), fast_settings).execute(container, context)

    assert signal is None
    assert host.trace == []
    assert inject_markup(container, context, "<p>late</p>") is False


def test_closing_tags_are_escaped_in_node_text(make_runner) -> None:
    code = "html = '</script><p>' + '</SCRIPT>'"

    guarded = make_runner().guard(0, code, item_id="escape.html")

    assert escape_closing_tags(code) == "html = '<\\/script><p>' + '<\\/SCRIPT>'"
    assert guarded.node_text == escape_closing_tags(code)
    assert guarded.code == code
    assert "escape.html" in guarded.filename
