"""Web backend for the Course Player."""

from .server import create_app

__all__ = ["create_app"]
