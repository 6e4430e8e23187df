"""Registry of every resource embedded lecture code creates."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


LOGGER = logging.getLogger(__name__)


class ResourceKind(str, enum.Enum):
    TIMER = "timer"
    INTERVAL = "interval"
    ANIMATION_FRAME = "animation_frame"
    LISTENER = "listener"


@dataclass(eq=False)
class ResourceHandle:
    """One scheduled callback or event subscription.

    Handles compare by identity. ``released`` is set once the handle has been
    cancelled, either by the code that created it or during teardown.
    """

    kind: ResourceKind
    reference: Any
    origin: Optional[int] = None
    source: Any = None
    event_name: Optional[str] = None
    handler: Any = None
    released: bool = False

    @property
    def listener_triple(self) -> tuple:
        return (self.source, self.event_name, self.handler)


def _is_valid_reference(kind: ResourceKind, reference: Any, source: Any, event_name: Any, handler: Any) -> bool:
    if kind is ResourceKind.LISTENER:
        return source is not None and bool(event_name) and callable(handler)
    if reference is None or isinstance(reference, bool):
        return False
    return True


class ResourceTracker:
    """Four append-only collections of :class:`ResourceHandle` entries."""

    def __init__(self) -> None:
        self._collections: Dict[ResourceKind, List[ResourceHandle]] = {
            kind: [] for kind in ResourceKind
        }

    def register(
        self,
        kind: ResourceKind,
        reference: Any = None,
        *,
        origin: Optional[int] = None,
        source: Any = None,
        event_name: Optional[str] = None,
        handler: Any = None,
    ) -> Optional[ResourceHandle]:
        """Record a new handle; invalid references are ignored."""

        if not _is_valid_reference(kind, reference, source, event_name, handler):
            LOGGER.debug("Ignoring invalid %s registration: %r", kind.value, reference)
            return None
        handle = ResourceHandle(
            kind=kind,
            reference=reference,
            origin=origin,
            source=source,
            event_name=event_name,
            handler=handler,
        )
        self._collections[kind].append(handle)
        return handle

    def find(self, kind: ResourceKind, reference: Any) -> Optional[ResourceHandle]:
        """Return the live handle for *reference*, if any."""

        for handle in self._collections[kind]:
            if not handle.released and handle.reference == reference:
                return handle
        return None

    def find_listener(self, source: Any, event_name: str, handler: Any) -> Optional[ResourceHandle]:
        for handle in self._collections[ResourceKind.LISTENER]:
            if handle.released:
                continue
            if handle.source is source and handle.event_name == event_name and handle.handler == handler:
                return handle
        return None

    def drain(self, kind: ResourceKind) -> List[ResourceHandle]:
        """Remove and return every entry of *kind* in registration order."""

        drained = self._collections[kind]
        self._collections[kind] = []
        return drained

    def count(self, kind: Optional[ResourceKind] = None) -> int:
        if kind is not None:
            return len(self._collections[kind])
        return sum(len(entries) for entries in self._collections.values())

    def live_count(self, kind: Optional[ResourceKind] = None) -> int:
        kinds = [kind] if kind is not None else list(ResourceKind)
        return sum(
            1 for item in kinds for handle in self._collections[item] if not handle.released
        )

    def snapshot(self) -> Dict[str, int]:
        return {kind.value: len(entries) for kind, entries in self._collections.items()}

    def is_empty(self) -> bool:
        return self.count() == 0

    def __len__(self) -> int:
        return self.count()


__all__ = ["ResourceHandle", "ResourceKind", "ResourceTracker"]
