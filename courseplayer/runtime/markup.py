"""Content container holding injected lecture markup."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from .host import EventTarget


LOGGER = logging.getLogger(__name__)

PYTHON_SCRIPT_TYPES = frozenset(
    {
        "",
        "python",
        "text/python",
        "text/x-python",
        "application/python",
        "application/x-python",
    }
)
EXECUTED_ATTRIBUTE = "data-executed"


def _script_type(node: Tag) -> str:
    raw = node.get("type") or ""
    if isinstance(raw, list):
        raw = " ".join(raw)
    return raw.split(";", 1)[0].strip().lower()


@dataclass
class CodeBlock:
    """A ``<script>`` element found in the injected markup."""

    index: int
    node: Tag
    source: Optional[str]
    body: str

    @property
    def is_external(self) -> bool:
        return bool(self.source)


class ContentContainer(EventTarget):
    """Live element that lecture markup is injected into.

    The container is also an event target so lecture code can listen for
    interactions on it the way web lectures listen on their root element.
    """

    def __init__(self, name: str = "lecture-content") -> None:
        super().__init__(name)
        self._soup = BeautifulSoup("", "html.parser")

    @property
    def soup(self) -> BeautifulSoup:
        return self._soup

    def inject(self, markup: str) -> None:
        self._soup = BeautifulSoup(markup, "html.parser")
        LOGGER.debug(
            "Injected %s characters into %s (%s top-level nodes)",
            len(markup),
            self.name,
            len(self._soup.contents),
        )

    def clear(self) -> None:
        self._soup = BeautifulSoup("", "html.parser")

    @property
    def child_count(self) -> int:
        return len(self._soup.contents)

    def is_populated(self) -> bool:
        return self.child_count > 0

    def code_blocks(self) -> List[CodeBlock]:
        """Return executable script blocks in document order."""

        blocks: List[CodeBlock] = []
        for node in self._soup.find_all("script"):
            if _script_type(node) not in PYTHON_SCRIPT_TYPES:
                continue
            source = node.get("src")
            if isinstance(source, list):
                source = " ".join(source)
            blocks.append(
                CodeBlock(
                    index=len(blocks),
                    node=node,
                    source=(source or "").strip() or None,
                    body=node.string or "",
                )
            )
        return blocks

    def replace_block(self, block: CodeBlock, *, text: Optional[str] = None) -> Tag:
        """Swap the placeholder node of *block* for a fresh execution node."""

        attributes = dict(block.node.attrs)
        attributes[EXECUTED_ATTRIBUTE] = "true"
        fresh = self._soup.new_tag("script", attrs=attributes)
        if text is not None:
            fresh.string = text
        if block.node.parent is not None:
            block.node.replace_with(fresh)
        block.node = fresh
        return fresh

    def select(self, selector: str) -> Optional[Tag]:
        return self._soup.select_one(selector)

    def text(self) -> str:
        return self._soup.get_text(" ", strip=True)

    def render(self) -> str:
        return str(self._soup)


__all__ = ["CodeBlock", "ContentContainer", "EXECUTED_ATTRIBUTE", "PYTHON_SCRIPT_TYPES"]
