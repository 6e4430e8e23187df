"""Entry-point for the Course Player application."""

from __future__ import annotations

import asyncio
import logging
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

import httpx
import typer
import uvicorn

from courseplayer.bootstrap import initialize_app
from courseplayer.logging_utils import build_file_handler, configure_logging
from courseplayer.runtime import LectureView, PythonBlockRunner
from courseplayer.services.loader import ContentLoader
from courseplayer.services.naming import display_name
from courseplayer.services.settings import SettingsStore, ViewerSettings
from courseplayer.services.storage import ContentRepository
from courseplayer.ui.console import SessionReport, SessionSnapshot
from courseplayer.web import create_app


LOGGER = logging.getLogger("courseplayer.cli")


cli = typer.Typer(add_completion=False, help="Course Player management commands")


def _prepare_logging(storage_root: Path) -> None:
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    stream_handler.setLevel(logging.WARNING)
    configure_logging(handlers=[build_file_handler(storage_root), stream_handler])


class SubscriberRole(str, Enum):
    LEARNER = "learner"
    ADMIN = "admin"


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the content backend when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None)


def _normalize_root_path(root_path: Optional[str]) -> str:
    if root_path is None:
        return ""
    normalized = root_path.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="COURSEPLAYER_ROOT_PATH",
    ),
) -> None:
    """Run the FastAPI content backend."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root)

    repository = ContentRepository(app_config)
    normalized_root = _normalize_root_path(root_path)
    app = create_app(repository, config=app_config, root_path=normalized_root)

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server
    server.run()


async def _visit_lecture(
    content_id: str,
    *,
    base_url: str,
    token: Optional[str],
    settings: ViewerSettings,
    linger: float,
    timeout: float,
) -> SessionSnapshot:
    async with httpx.AsyncClient(timeout=timeout) as client:
        loader = ContentLoader(base_url, lambda: token, client=client, timeout=timeout)
        runner = PythonBlockRunner(
            base_url=base_url,
            client=client,
            timeout_ms=settings.external_load_timeout_ms,
        )
        view = LectureView(loader, runner=runner, settings=settings)
        await view.mount(content_id)
        if view.error is None and linger > 0:
            await asyncio.sleep(linger)

        resources = view.context.tracker.snapshot() if view.context is not None else {}
        state_before = view.state
        report = view.unmount()
        return SessionSnapshot.capture(
            view,
            content_id,
            state_before=state_before,
            resources=resources,
            report=report,
        )


@cli.command("open")
def open_lecture(
    content_id: str = typer.Argument(..., help="Lecture filename, e.g. intro.html"),
    token: Optional[str] = typer.Option(
        None,
        help="Bearer token used to fetch the lecture",
        envvar="COURSEPLAYER_TOKEN",
    ),
    base_url: Optional[str] = typer.Option(None, help="Content backend URL"),
    linger: float = typer.Option(
        2.0,
        min=0.0,
        help="Seconds to keep the lecture open before leaving it",
    ),
) -> None:
    """Open a lecture headlessly, run its code, then leave and report."""

    config = initialize_app()
    _prepare_logging(config.storage_root)
    settings = SettingsStore(config).load()

    snapshot = asyncio.run(
        _visit_lecture(
            content_id,
            base_url=base_url or config.api_base_url,
            token=token,
            settings=settings,
            linger=linger,
            timeout=config.request_timeout,
        )
    )
    SessionReport().render(snapshot)
    if snapshot.error_kind:
        raise typer.Exit(code=1)


@cli.command()
def publish(
    path: Path = typer.Argument(
        ...,
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
        help="HTML file holding the lecture markup",
    ),
    filename: Optional[str] = typer.Option(None, help="Stored filename (defaults to the file name)"),
    title: Optional[str] = typer.Option(None, help="Lecture title"),
) -> None:
    """Store lecture markup so the backend can serve it."""

    config = initialize_app()
    _prepare_logging(config.storage_root)

    stored_name = (filename or path.name).strip()
    if not stored_name or "/" in stored_name:
        raise typer.BadParameter(
            f"'{stored_name}' is not a usable lecture filename.",
            param_hint="--filename",
        )
    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as error:
        typer.echo(f"Lecture file is not UTF-8 text: {error}")
        raise typer.Exit(code=1) from error

    repository = ContentRepository(config)
    record = repository.publish_lecture(
        stored_name,
        content,
        title=title or display_name(stored_name),
    )
    typer.echo(f"Published {record.filename} ({record.content_length} characters)")


@cli.command()
def grant(
    email: str = typer.Argument(..., help="Subscriber e-mail"),
    role: SubscriberRole = typer.Option(SubscriberRole.LEARNER, help="Subscriber role"),
    days: int = typer.Option(30, min=0, help="Subscription length in days; 0 never expires"),
    token: Optional[str] = typer.Option(None, help="Use this token instead of generating one"),
) -> None:
    """Create a subscriber with an active subscription and print its token."""

    config = initialize_app()
    _prepare_logging(config.storage_root)

    issued = token or secrets.token_urlsafe(24)
    subscription_end = None
    if days > 0:
        subscription_end = (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()

    repository = ContentRepository(config)
    try:
        repository.add_subscriber(
            issued,
            email,
            role=role.value,
            subscription_status="completed",
            subscription_end=subscription_end,
        )
    except sqlite3.IntegrityError as error:
        typer.echo(f"Could not create subscriber: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"Token for {email}: {issued}")


if __name__ == "__main__":
    cli()
