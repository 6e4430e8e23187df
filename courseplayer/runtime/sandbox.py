"""The Execute capability: run one lecture code block in the host.

Inline blocks are compiled and executed synchronously inside the lecture
namespace behind an error guard. External blocks are fetched over HTTP first;
their load and error continuations are reported through callbacks so the
executor can wait for exactly one of them.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Set
from urllib.parse import urljoin

import httpx

from ..errors import BlockExecutionError
from ..services.events import emit_block_event
from .context import CURRENT_BLOCK


LOGGER = logging.getLogger(__name__)

_CLOSING_TAG_PATTERN = re.compile(r"</(script)", re.IGNORECASE)


def escape_closing_tags(code: str) -> str:
    """Rewrite ``</script`` so the text cannot end its own script element."""

    return _CLOSING_TAG_PATTERN.sub(r"<\\/\1", code)


@dataclass
class GuardedBlock:
    """A code block wrapped so any exception is logged and swallowed."""

    index: int
    code: str
    node_text: str
    filename: str
    item_id: Optional[str] = None
    source: Optional[str] = None

    def __call__(self, namespace: Dict[str, Any]) -> Optional[BlockExecutionError]:
        token = CURRENT_BLOCK.set(self.index)
        try:
            compiled = compile(self.code, self.filename, "exec")
            exec(compiled, namespace)  # nosec - lecture content is trusted markup
        except Exception as exc:  # noqa: BLE001 - isolate lecture failures per block
            error = BlockExecutionError(self.index, exc, source=self.source)
            LOGGER.warning("Error executing lecture script: %s", error, exc_info=exc)
            emit_block_event(
                self.item_id,
                self.index,
                "Block failed",
                payload={"error": exc, "source": self.source},
                level=logging.WARNING,
            )
            return error
        finally:
            CURRENT_BLOCK.reset(token)
        return None


class BlockRunner(Protocol):
    def guard(
        self, index: int, code: str, *, item_id: Optional[str] = None, source: Optional[str] = None
    ) -> GuardedBlock:
        ...

    def load_external(
        self,
        index: int,
        source: str,
        namespace: Dict[str, Any],
        *,
        item_id: Optional[str],
        on_load: Callable[[Optional[BlockExecutionError]], None],
        on_error: Callable[[BaseException], None],
    ) -> Any:
        ...


class PythonBlockRunner:
    """Execute lecture blocks written in Python."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_ms: float = 10000.0,
    ) -> None:
        self._base_url = base_url.rstrip("/") + "/" if base_url else None
        self._client = client
        self._timeout = max(0.001, timeout_ms / 1000.0)
        self._tasks: Set[asyncio.Task] = set()

    def guard(
        self, index: int, code: str, *, item_id: Optional[str] = None, source: Optional[str] = None
    ) -> GuardedBlock:
        label = source or f"inline-{index}"
        return GuardedBlock(
            index=index,
            code=code,
            node_text=escape_closing_tags(code),
            filename=f"<lecture {item_id or 'content'}:{label}>",
            item_id=item_id,
            source=source,
        )

    def resolve(self, source: str) -> str:
        if self._base_url is None:
            return source
        return urljoin(self._base_url, source)

    async def fetch_source(self, source: str) -> str:
        url = self.resolve(source)
        if self._client is not None:
            response = await self._client.get(url, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(url)
        response.raise_for_status()
        return response.text

    def load_external(
        self,
        index: int,
        source: str,
        namespace: Dict[str, Any],
        *,
        item_id: Optional[str],
        on_load: Callable[[Optional[BlockExecutionError]], None],
        on_error: Callable[[BaseException], None],
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(
            self._load(index, source, namespace, item_id, on_load, on_error),
            name=f"lecture-block-{index}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _load(
        self,
        index: int,
        source: str,
        namespace: Dict[str, Any],
        item_id: Optional[str],
        on_load: Callable[[Optional[BlockExecutionError]], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        settled = False
        try:
            try:
                code = await asyncio.wait_for(self.fetch_source(source), self._timeout)
            except Exception as exc:  # noqa: BLE001 - any load failure continues the walk
                LOGGER.warning("Failed to load external lecture script %s: %s", source, exc)
                settled = True
                on_error(exc)
                return
            error = self.guard(index, code, item_id=item_id, source=source)(namespace)
            settled = True
            on_load(error)
        finally:
            if not settled:
                on_error(asyncio.CancelledError(f"Loading {source} was cancelled"))


__all__ = ["BlockRunner", "GuardedBlock", "PythonBlockRunner", "escape_closing_tags"]
