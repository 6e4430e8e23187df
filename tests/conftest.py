from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from courseplayer.bootstrap import Bootstrapper
from courseplayer.config import AppConfig
from courseplayer.errors import LoaderError
from courseplayer.runtime import (
    CodeBlockExecutor,
    ContentContainer,
    ExecutionContext,
    HostEnvironment,
    PythonBlockRunner,
    inject_markup,
)
from courseplayer.services.loader import ContentItem
from courseplayer.services.settings import ViewerSettings


SCRIPT_BASE_URL = "http://lectures.test"


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("COURSEPLAYER_API_URL", raising=False)

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/courseplayer.db",
            "api_base_url": "http://testserver",
        },
        base_path=tmp_path,
    )

    Bootstrapper(config).initialize()
    return config


@pytest.fixture()
def fast_settings() -> ViewerSettings:
    return ViewerSettings(
        poll_initial_delay_ms=0,
        poll_interval_ms=1,
        poll_max_attempts=3,
        settle_delay_ms=0,
        external_load_timeout_ms=2000,
        frame_interval_ms=1,
    )


class RecordingHost(HostEnvironment):
    """Host that counts every cancellation the runtime asks for."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.cancelled: List[tuple] = []
        self.trace: List[str] = []
        self.window.trace = self.trace  # type: ignore[attr-defined]

    def clear_timeout(self, reference: Any) -> None:
        self.cancelled.append(("timer", reference))
        super().clear_timeout(reference)

    def clear_interval(self, reference: Any) -> None:
        self.cancelled.append(("interval", reference))
        super().clear_interval(reference)

    def cancel_animation_frame(self, reference: Any) -> None:
        self.cancelled.append(("frame", reference))
        super().cancel_animation_frame(reference)

    def remove_event_listener(self, source: Any, event_name: str, handler: Any) -> None:  # type: ignore[override]
        self.cancelled.append(("listener", event_name))
        super().remove_event_listener(source, event_name, handler)


@pytest.fixture()
def recording_host() -> RecordingHost:
    return RecordingHost(frame_interval_ms=1)


def build_script_client(scripts: Dict[str, Any]) -> httpx.AsyncClient:
    """Return a client serving *scripts* by path; callables may sleep or raise."""

    async def handler(request: httpx.Request) -> httpx.Response:
        entry = scripts.get(request.url.path)
        if entry is None:
            return httpx.Response(404, text="missing")
        if callable(entry):
            return await entry(request)
        return httpx.Response(200, text=entry)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture()
def make_runner() -> Callable[..., PythonBlockRunner]:
    def _factory(scripts: Optional[Dict[str, Any]] = None, *, timeout_ms: float = 2000) -> PythonBlockRunner:
        return PythonBlockRunner(
            base_url=SCRIPT_BASE_URL,
            client=build_script_client(scripts or {}),
            timeout_ms=timeout_ms,
        )

    return _factory


@pytest.fixture()
def run_markup(fast_settings: ViewerSettings, make_runner):
    async def _run(
        markup: str,
        *,
        host: Optional[HostEnvironment] = None,
        scripts: Optional[Dict[str, Any]] = None,
        item_id: str = "lecture.html",
    ):
        host = host or RecordingHost(frame_interval_ms=1)
        context = ExecutionContext(host, item_id=item_id)
        container = ContentContainer()
        inject_markup(container, context, markup)
        executor = CodeBlockExecutor(make_runner(scripts), fast_settings)
        signal = await executor.execute(container, context)
        return context, container, signal

    return _run


class StaticLoader:
    """Loader double returning canned markup or raising canned errors."""

    base_url = SCRIPT_BASE_URL

    def __init__(
        self,
        pages: Optional[Dict[str, str]] = None,
        errors: Optional[Dict[str, LoaderError]] = None,
    ) -> None:
        self.pages = dict(pages or {})
        self.errors = dict(errors or {})
        self.requests: List[str] = []

    async def load(self, content_id: str) -> ContentItem:
        self.requests.append(content_id)
        if content_id in self.errors:
            raise self.errors[content_id]
        return ContentItem(id=content_id, raw_markup=self.pages[content_id])


def script(body: str, **attributes: str) -> str:
    """Return a ``<script>`` element with *body* kept flush-left."""

    attrs = "".join(f' {key}="{value}"' for key, value in attributes.items())
    return f"<script{attrs}>\n{body}\n</script>"
