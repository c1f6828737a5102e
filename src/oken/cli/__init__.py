"""Command-line interface for oken."""

from .app import app, run

__all__ = ["app", "run"]
