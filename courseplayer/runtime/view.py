"""Lecture view: the mount and unmount entry points driving the runtime."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional

from ..errors import ContainerNotReady, LoaderError
from ..services.loader import ContentItem, ContentLoader
from ..services.settings import ViewerSettings
from .context import CompletionSignal, ExecutionContext, ExecutionState
from .executor import CodeBlockExecutor, inject_markup
from .host import HostEnvironment
from .markup import ContentContainer
from .sandbox import BlockRunner, PythonBlockRunner
from .teardown import TeardownCoordinator, TeardownReport


LOGGER = logging.getLogger(__name__)

ReadyCallback = Callable[[CompletionSignal], Any]


class LectureView:
    """One open lecture at a time: load, inject, execute, and tear down.

    ``mount`` replaces whatever lecture was open before; ``unmount`` may be
    called any number of times. Every mount gets a fresh context, container
    and tracker so nothing from a previous visit leaks into the next one.
    """

    def __init__(
        self,
        loader: ContentLoader,
        *,
        runner: Optional[BlockRunner] = None,
        settings: Optional[ViewerSettings] = None,
        host_factory: Optional[Callable[[], HostEnvironment]] = None,
        teardown: Optional[TeardownCoordinator] = None,
    ) -> None:
        self._settings = (settings or ViewerSettings()).normalized()
        self._loader = loader
        self._runner = runner or PythonBlockRunner(
            base_url=loader.base_url,
            timeout_ms=self._settings.external_load_timeout_ms,
        )
        self._executor = CodeBlockExecutor(self._runner, self._settings)
        self._teardown = teardown or TeardownCoordinator()
        self._host_factory = host_factory or (
            lambda: HostEnvironment(frame_interval_ms=self._settings.frame_interval_ms)
        )
        self._ready_callbacks: List[ReadyCallback] = []
        self.context: Optional[ExecutionContext] = None
        self.container: Optional[ContentContainer] = None
        self.item: Optional[ContentItem] = None
        self.error: Optional[LoaderError] = None
        self.ready = asyncio.Event()
        self.last_teardown: Optional[TeardownReport] = None

    @property
    def state(self) -> ExecutionState:
        if self.context is None:
            return ExecutionState.IDLE
        return self.context.state

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error is not None else None

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error is not None else None

    def on_ready(self, callback: ReadyCallback) -> None:
        self._ready_callbacks.append(callback)

    async def mount(self, content_id: str) -> ExecutionContext:
        """Open *content_id*, tearing down any lecture that was open before."""

        if self.context is not None:
            self.unmount()

        context = ExecutionContext(self._host_factory(), item_id=content_id)
        container = ContentContainer()
        self.context = context
        self.container = container
        self.item = None
        self.error = None
        self.ready = asyncio.Event()

        context.transition(ExecutionState.LOADING)
        try:
            item = await self._loader.load(content_id)
        except LoaderError as error:
            LOGGER.error("Error loading lecture '%s': %s", content_id, error.message)
            self.error = error
            context.transition(ExecutionState.IDLE)
            return context

        if context.torn_down:
            LOGGER.info("Discarding '%s'; view left while loading", content_id)
            return context

        self.item = item
        context.item = item
        inject_markup(container, context, item.raw_markup)
        try:
            signal = await self._executor.execute(container, context)
        except ContainerNotReady:
            LOGGER.error("Lecture '%s' could not be rendered", content_id)
            return context

        if signal is not None and context is self.context and not context.torn_down:
            self._notify_ready(signal)
        return context

    def unmount(self) -> TeardownReport:
        """Release everything the current lecture created."""

        context = self.context
        if context is None:
            report = TeardownReport(already_torn_down=True)
        else:
            report = self._teardown.teardown(context)
        self.last_teardown = report
        return report

    def _notify_ready(self, signal: CompletionSignal) -> None:
        self.ready.set()
        for callback in list(self._ready_callbacks):
            try:
                callback(signal)
            except Exception:  # noqa: BLE001 - observers must not affect the lecture
                LOGGER.warning("Ready callback failed for '%s'", signal.item_id, exc_info=True)


__all__ = ["LectureView", "ReadyCallback"]
