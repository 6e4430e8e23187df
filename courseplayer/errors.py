"""Error taxonomy for loading and running lecture content."""

from __future__ import annotations

from typing import Optional


class LoaderError(RuntimeError):
    """Base class for failures that stop a lecture from being displayed."""

    kind = "LoaderError"

    def __init__(self, message: str, *, content_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.content_id = content_id


class Unauthorized(LoaderError):
    kind = "Unauthorized"


class Forbidden(LoaderError):
    kind = "Forbidden"


class NotFound(LoaderError):
    kind = "NotFound"


class EmptyContent(LoaderError):
    kind = "EmptyContent"


class TransportError(LoaderError):
    kind = "TransportError"

    def __init__(
        self,
        message: str,
        *,
        content_id: Optional[str] = None,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message, content_id=content_id)
        self.status_code = status_code
        self.reason = reason


class RuntimeFailure(RuntimeError):
    """Base class for failures raised while running embedded content."""

    kind = "RuntimeFailure"


class BlockExecutionError(RuntimeFailure):
    """A single code block failed; the remaining blocks still run."""

    kind = "BlockExecutionError"

    def __init__(self, index: int, cause: BaseException, *, source: Optional[str] = None) -> None:
        label = f"external block {source!r}" if source else "inline block"
        super().__init__(f"Code block {index} ({label}) failed: {cause.__class__.__name__}: {cause}")
        self.index = index
        self.cause = cause
        self.source = source


class ResourceReleaseError(RuntimeFailure):
    """Releasing one tracked handle failed during teardown."""

    kind = "ResourceReleaseError"

    def __init__(self, step: str, cause: BaseException, *, reference: object = None) -> None:
        detail = f" (reference={reference!r})" if reference is not None else ""
        super().__init__(f"Teardown step '{step}' failed{detail}: {cause.__class__.__name__}: {cause}")
        self.step = step
        self.cause = cause
        self.reference = reference


class ContainerNotReady(RuntimeFailure):
    """The content container never received any nodes within the polling budget."""

    kind = "ContainerNotReady"


__all__ = [
    "BlockExecutionError",
    "ContainerNotReady",
    "EmptyContent",
    "Forbidden",
    "LoaderError",
    "NotFound",
    "ResourceReleaseError",
    "RuntimeFailure",
    "TransportError",
    "Unauthorized",
]
