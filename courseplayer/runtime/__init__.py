"""Execution runtime for embedded lecture content."""

from .context import CompletionSignal, ExecutionContext, ExecutionState, LectureScope
from .executor import CONTENT_PARSED_EVENT, CONTENT_READY_EVENT, CodeBlockExecutor, inject_markup
from .host import Event, EventTarget, HostEnvironment
from .markup import CodeBlock, ContentContainer
from .sandbox import GuardedBlock, PythonBlockRunner, escape_closing_tags
from .teardown import TeardownCoordinator, TeardownReport
from .tracker import ResourceHandle, ResourceKind, ResourceTracker
from .view import LectureView

__all__ = [
    "CONTENT_PARSED_EVENT",
    "CONTENT_READY_EVENT",
    "CodeBlock",
    "CodeBlockExecutor",
    "CompletionSignal",
    "ContentContainer",
    "Event",
    "EventTarget",
    "ExecutionContext",
    "ExecutionState",
    "GuardedBlock",
    "HostEnvironment",
    "LectureScope",
    "LectureView",
    "PythonBlockRunner",
    "ResourceHandle",
    "ResourceKind",
    "ResourceTracker",
    "TeardownCoordinator",
    "TeardownReport",
    "escape_closing_tags",
    "inject_markup",
]
