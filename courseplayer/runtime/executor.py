"""Sequential execution of the code blocks found in injected lecture markup."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from ..errors import BlockExecutionError, ContainerNotReady
from ..services.events import emit_block_event, emit_lifecycle_event
from ..services.settings import ViewerSettings
from .context import CompletionSignal, ExecutionContext, ExecutionState
from .markup import CodeBlock, ContentContainer
from .sandbox import BlockRunner


LOGGER = logging.getLogger(__name__)

CONTENT_PARSED_EVENT = "DOMContentLoaded"
CONTENT_READY_EVENT = "contentReady"


def inject_markup(container: ContentContainer, context: ExecutionContext, markup: str) -> bool:
    """Place *markup* in *container* and mark the context as injected."""

    if context.torn_down:
        LOGGER.warning("Not injecting content for '%s' after teardown", context.item_id)
        return False
    container.inject(markup)
    return context.transition(ExecutionState.INJECTED)


class CodeBlockExecutor:
    """Walk code blocks in document order with per-block error isolation.

    External blocks suspend the walk until their load or error continuation
    fires; inline blocks run synchronously. Once the end of the list is
    reached the content-parsed and content-ready notifications are
    dispatched on the host document, exactly once per context.
    """

    def __init__(self, runner: BlockRunner, settings: Optional[ViewerSettings] = None) -> None:
        self._runner = runner
        self._settings = (settings or ViewerSettings()).normalized()

    @property
    def settings(self) -> ViewerSettings:
        return self._settings

    async def wait_for_container(self, container: Optional[ContentContainer]) -> None:
        """Poll until *container* has child nodes or raise :class:`ContainerNotReady`."""

        settings = self._settings
        attempts = settings.poll_max_attempts
        if settings.poll_initial_delay_ms:
            await asyncio.sleep(settings.poll_initial_delay_ms / 1000.0)
        for attempt in range(1, attempts + 1):
            if container is not None and container.is_populated():
                if settings.settle_delay_ms:
                    await asyncio.sleep(settings.settle_delay_ms / 1000.0)
                return
            LOGGER.debug("Content container not ready (attempt %s/%s)", attempt, attempts)
            if attempt < attempts:
                await asyncio.sleep(settings.poll_interval_ms / 1000.0)
        message = f"Content container was not populated after {attempts} checks"
        LOGGER.error(message)
        raise ContainerNotReady(message)

    async def execute(
        self, container: ContentContainer, context: ExecutionContext
    ) -> Optional[CompletionSignal]:
        if context.torn_down:
            LOGGER.info("Skipping execution for '%s'; view already left", context.item_id)
            return None
        if context.state is not ExecutionState.INJECTED:
            LOGGER.warning(
                "Execution requested for '%s' in state %s; ignoring",
                context.item_id,
                context.state.value,
            )
            return context.completion

        await self.wait_for_container(container)
        if context.torn_down:
            LOGGER.info("View for '%s' left before execution started", context.item_id)
            return None

        context.transition(ExecutionState.EXECUTING)
        namespace = context.build_namespace(container)
        blocks = container.code_blocks()
        LOGGER.info("Executing %s code blocks for '%s'", len(blocks), context.item_id)
        started = time.perf_counter()
        failed = 0
        for block in blocks:
            if block.is_external:
                error = await self._run_external(block, container, context)
            else:
                error = self._run_inline(block, container, context)
            if error is not None:
                failed += 1

        return self._complete(context, len(blocks), failed, started)

    def _run_inline(
        self, block: CodeBlock, container: ContentContainer, context: ExecutionContext
    ) -> Optional[BlockExecutionError]:
        guarded = self._runner.guard(block.index, block.body, item_id=context.item_id)
        container.replace_block(block, text=guarded.node_text)
        error = guarded(context.namespace)
        if error is None:
            emit_block_event(context.item_id, block.index, "Inline block executed")
        return error

    async def _run_external(
        self, block: CodeBlock, container: ContentContainer, context: ExecutionContext
    ) -> Optional[BaseException]:
        loop = asyncio.get_running_loop()
        settled: asyncio.Future = loop.create_future()

        def _on_load(error: Optional[BlockExecutionError]) -> None:
            if not settled.done():
                settled.set_result(error)

        def _on_error(error: BaseException) -> None:
            if not settled.done():
                settled.set_result(error)

        container.replace_block(block)
        self._runner.load_external(
            block.index,
            block.source or "",
            context.namespace,
            item_id=context.item_id,
            on_load=_on_load,
            on_error=_on_error,
        )
        outcome = await settled
        emit_block_event(
            context.item_id,
            block.index,
            "External block settled",
            payload={"source": block.source, "error": outcome},
        )
        return outcome

    def _complete(
        self, context: ExecutionContext, processed: int, failed: int, started: float
    ) -> CompletionSignal:
        signal = CompletionSignal(
            item_id=context.item_id,
            blocks_processed=processed,
            failed_blocks=failed,
        )
        context.completion = signal
        document = context.host.document
        document.dispatch_event(CONTENT_PARSED_EVENT, signal)
        document.dispatch_event(CONTENT_READY_EVENT, signal)
        if not context.torn_down:
            context.transition(ExecutionState.READY)
        emit_lifecycle_event(
            context.item_id,
            "Content ready",
            payload={"blocks": processed, "failed": failed},
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return signal


__all__ = [
    "CONTENT_PARSED_EVENT",
    "CONTENT_READY_EVENT",
    "CodeBlockExecutor",
    "inject_markup",
]
