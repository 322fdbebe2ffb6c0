"""CLI command handlers."""

from .run import run_task, list_tasks

__all__ = ['run_task', 'list_tasks']
