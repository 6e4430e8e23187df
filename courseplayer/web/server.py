"""FastAPI application serving lecture content to subscribed learners."""

from __future__ import annotations

import contextvars
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi import status
from fastapi.responses import HTMLResponse
from pydantic import BaseModel
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..config import AppConfig
from ..services.events import emit_structured_event
from ..services.naming import display_name
from ..services.storage import ContentRepository, SubscriberRecord


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "courseplayer_request_id",
    default=None,
)
_REQUEST_ID_HEADER = b"x-request-id"


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the request id into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra or {})
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        request_id = _REQUEST_ID_VAR.get()
        if request_id:
            extra.setdefault("request_id", request_id)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("courseplayer.web.events"), {})


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and echo it back."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = _new_correlation_id()
        token = _REQUEST_ID_VAR.set(request_id)

        async def _send(message: Message) -> None:
            if message.get("type") == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((_REQUEST_ID_HEADER, request_id.encode("ascii")))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, _send)
        finally:
            _REQUEST_ID_VAR.reset(token)


class LectureSummary(BaseModel):
    filename: str
    title: str
    display_name: str
    content_length: int
    published_at: str


class LectureListResponse(BaseModel):
    lectures: List[LectureSummary]


def _extract_bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = credentials.strip()
    return token or None


def create_app(
    repository: ContentRepository,
    *,
    config: Optional[AppConfig] = None,
    root_path: str = "",
) -> FastAPI:
    """Return the content backend bound to *repository*."""

    app = FastAPI(title="Course Player content backend", root_path=root_path)
    app.add_middleware(RequestContextMiddleware)
    app.state.repository = repository
    app.state.config = config

    def _emit_db_event(event_type: str, action: str, **kwargs: Any) -> None:
        emit_structured_event(event_type, action, logger=EVENT_LOGGER, level=logging.DEBUG, **kwargs)

    repository.configure_event_emitter(_emit_db_event)

    def require_subscriber(request: Request) -> SubscriberRecord:
        token = _extract_bearer_token(request)
        if token is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required",
                headers={"WWW-Authenticate": "Bearer"},
            )
        subscriber = repository.find_subscriber_by_token(token)
        if subscriber is None:
            LOGGER.info("Rejected unknown bearer token")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token is not valid",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return subscriber

    def require_subscription(
        subscriber: SubscriberRecord = Depends(require_subscriber),
    ) -> SubscriberRecord:
        if subscriber.is_admin:
            return subscriber
        if subscriber.subscription_status != "completed":
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Subscription required to access this content",
            )
        if not subscriber.has_active_subscription():
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Subscription has expired",
            )
        return subscriber

    @app.get("/api/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/content/lectures", response_model=LectureListResponse)
    async def list_lectures(
        subscriber: SubscriberRecord = Depends(require_subscription),
    ) -> LectureListResponse:
        summaries = [
            LectureSummary(
                filename=record.filename,
                title=record.title or display_name(record.filename),
                display_name=display_name(record.filename),
                content_length=record.content_length,
                published_at=record.published_at,
            )
            for record in repository.iter_lectures()
        ]
        return LectureListResponse(lectures=summaries)

    @app.get("/api/content/lecture-content/{filename}", response_class=HTMLResponse)
    async def lecture_content(
        filename: str,
        subscriber: SubscriberRecord = Depends(require_subscription),
    ) -> HTMLResponse:
        start = time.perf_counter()
        record = repository.get_lecture(filename)
        if record is None:
            LOGGER.info("Lecture not found: %s", filename)
            raise HTTPException(status_code=404, detail="Lecture not found")
        if record.content is None:
            LOGGER.warning("Lecture '%s' has no stored content", filename)
            raise HTTPException(status_code=404, detail="Lecture content not available")

        emit_structured_event(
            "CONTENT_SERVED",
            "Lecture content served",
            payload={"filename": filename, "characters": record.content_length},
            context={"subscriber": subscriber.email},
            duration_ms=(time.perf_counter() - start) * 1000.0,
            logger=EVENT_LOGGER,
        )
        return HTMLResponse(
            content=record.content,
            headers={"X-File-Size": str(record.content_length)},
        )

    return app


__all__ = ["ContextualLoggerAdapter", "RequestContextMiddleware", "create_app"]
