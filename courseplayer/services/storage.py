"""Persistence helpers backed by SQLite."""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from ..config import AppConfig


@dataclass
class LectureRecord:
    id: int
    filename: str
    title: str
    content: Optional[str]
    published_at: str

    @property
    def content_length(self) -> int:
        return len(self.content or "")


@dataclass
class SubscriberRecord:
    id: int
    token: str
    email: str
    role: str
    subscription_status: str
    subscription_end: Optional[str]

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def has_active_subscription(self, *, now: Optional[datetime] = None) -> bool:
        """Return ``True`` when the subscription is completed and not expired."""

        if self.subscription_status != "completed":
            return False
        if not self.subscription_end:
            return True
        try:
            end = datetime.fromisoformat(self.subscription_end)
        except ValueError:
            return False
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        current = now or datetime.now(timezone.utc)
        return current <= end


LOGGER = logging.getLogger(__name__)


_LECTURE_COLUMNS = "id, filename, title, content, published_at"
_SUBSCRIBER_COLUMNS = "id, token, email, role, subscription_status, subscription_end"


class ContentRepository:
    """Repository exposing the lecture content and subscriber tables."""

    def __init__(
        self,
        config: AppConfig,
        *,
        event_emitter: Optional[Callable[..., None]] = None,
    ) -> None:
        self._db_path = config.database_file
        self._event_emitter: Optional[Callable[..., None]] = event_emitter

    def configure_event_emitter(self, emitter: Optional[Callable[..., None]]) -> None:
        """Register the callable responsible for emitting query events."""

        self._event_emitter = emitter

    @contextlib.contextmanager
    def _track_db_event(self, action: str, **payload: Any) -> Iterator[Dict[str, Any]]:
        """Emit a structured event capturing execution time for a DB action."""

        if self._event_emitter is None:
            yield payload
            return

        start = time.perf_counter()
        event_payload: Dict[str, Any] = dict(payload)
        try:
            yield event_payload
        except Exception as exc:
            event_payload.setdefault("status", "error")
            event_payload.setdefault("error", f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            event_payload.setdefault("status", "ok")
            filtered = {key: value for key, value in event_payload.items() if value is not None}
            self._event_emitter("DB_QUERY", action, payload=filtered, duration_ms=duration_ms)

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        LOGGER.debug("Opening SQLite connection to %s", self._db_path)
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    def _fetch(
        self,
        statement: str,
        parameters: Sequence[Any] | Tuple[Any, ...] = (),
        *,
        action: str,
    ) -> List[sqlite3.Row]:
        with self._track_db_event(action) as event:
            with self._connect() as connection:
                rows = connection.execute(statement, tuple(parameters)).fetchall()
            event["rowcount"] = len(rows)
            return rows

    # ---------------------------------------------------------------------
    # Lectures
    # ---------------------------------------------------------------------
    def publish_lecture(self, filename: str, content: str, *, title: str = "") -> LectureRecord:
        """Insert or replace the stored markup for *filename*."""

        published_at = datetime.now(timezone.utc).isoformat()
        LOGGER.debug("Publishing lecture '%s' (%s characters)", filename, len(content or ""))
        with self._track_db_event(
            "publish_lecture", filename=filename, content_length=len(content or "")
        ):
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO lectures(filename, title, content, published_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(filename) DO UPDATE SET
                        title = excluded.title,
                        content = excluded.content,
                        published_at = excluded.published_at
                    """,
                    (filename, title, content, published_at),
                )
        record = self.get_lecture(filename)
        assert record is not None  # nosec - inserted above
        return record

    def get_lecture(self, filename: str) -> Optional[LectureRecord]:
        rows = self._fetch(
            f"SELECT {_LECTURE_COLUMNS} FROM lectures WHERE filename = ?",
            (filename,),
            action="lectures.lookup",
        )
        return LectureRecord(**rows[0]) if rows else None

    def iter_lectures(self) -> List[LectureRecord]:
        rows = self._fetch(
            f"SELECT {_LECTURE_COLUMNS} FROM lectures ORDER BY filename",
            action="lectures.list",
        )
        return [LectureRecord(**row) for row in rows]

    def remove_lecture(self, filename: str) -> bool:
        with self._track_db_event("remove_lecture", filename=filename) as event:
            with self._connect() as connection:
                cursor = connection.execute("DELETE FROM lectures WHERE filename = ?", (filename,))
            event["rowcount"] = cursor.rowcount
            return cursor.rowcount > 0

    # ---------------------------------------------------------------------
    # Subscribers
    # ---------------------------------------------------------------------
    def add_subscriber(
        self,
        token: str,
        email: str,
        *,
        role: str = "learner",
        subscription_status: str = "none",
        subscription_end: Optional[str] = None,
    ) -> SubscriberRecord:
        with self._track_db_event("add_subscriber", email=email, role=role):
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO subscribers(token, email, role, subscription_status, subscription_end)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (token, email, role, subscription_status, subscription_end),
                )
        record = self.find_subscriber_by_token(token)
        assert record is not None  # nosec - inserted above
        return record

    def find_subscriber_by_token(self, token: str) -> Optional[SubscriberRecord]:
        if not token:
            return None
        rows = self._fetch(
            f"SELECT {_SUBSCRIBER_COLUMNS} FROM subscribers WHERE token = ?",
            (token,),
            action="subscribers.lookup_by_token",
        )
        return SubscriberRecord(**rows[0]) if rows else None


__all__ = ["ContentRepository", "LectureRecord", "SubscriberRecord"]
