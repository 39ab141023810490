"""HTTP adapter for the navigation engine."""

from .app import create_app

__all__ = ["create_app"]
