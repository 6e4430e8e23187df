"""Helpers for lecture filenames and their display titles."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Optional

__all__ = [
    "build_lecture_filename",
    "display_name",
    "normalize_content_id",
    "slugify",
]


def slugify(value: str) -> str:
    """Return a URL-friendly representation of *value*."""

    value = value.strip().lower()
    value = re.sub(r"[^a-z0-9]+", "-", value)
    value = re.sub(r"-+", "-", value).strip("-")
    return value or "lecture"


def build_lecture_filename(title: str, *, extension: str = ".html") -> str:
    """Return the stored filename for a lecture called *title*."""

    suffix = extension if extension.startswith(".") else f".{extension}"
    return slugify(title) + suffix.lower()


def normalize_content_id(value: Optional[str]) -> str:
    """Return *value* stripped of whitespace, or an empty string."""

    if value is None:
        return ""
    return str(value).strip()


def display_name(filename: Optional[str]) -> str:
    """Return a human title such as ``Db Intro`` for ``db-intro.html``."""

    if not filename:
        return "Lecture"
    stem = filename
    if stem.lower().endswith(".html"):
        stem = str(PurePosixPath(stem).with_suffix(""))
    words = re.sub(r"[-_]+", " ", stem).split()
    if not words:
        return "Lecture"
    return " ".join(word[:1].upper() + word[1:] for word in words)
