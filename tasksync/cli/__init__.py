"""Command line interface for tasksync."""

from tasksync.cli.app import app

__all__ = ["app"]
