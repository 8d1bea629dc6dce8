"""HTTP entrypoints: scheduled jobs and catalog reads."""

from .app import create_app

__all__ = ["create_app"]
