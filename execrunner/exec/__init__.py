"""
Exec task module.
Handles command resolution, process execution, and stream capture.
"""

from .resolver import CommandSpec, resolve_command
from .streams import StreamCapture, StreamDirective, StreamDirectives, StreamName
from .engine import EngineConfig, ExecutionEngine, ExecutionResult
from .runner import ExecRunner, new_exec_runner

__all__ = [
    "CommandSpec",
    "resolve_command",
    "StreamCapture",
    "StreamDirective",
    "StreamDirectives",
    "StreamName",
    "EngineConfig",
    "ExecutionEngine",
    "ExecutionResult",
    "ExecRunner",
    "new_exec_runner",
]
