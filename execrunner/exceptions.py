"""Task runner exceptions."""

import json
from typing import Optional
from dataclasses import dataclass


@dataclass(frozen=True)
class Position:
    """Source position of a document node."""
    filename: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        name = self.filename or "<document>"
        if self.line:
            return f"{name}:{self.line}:{self.column}"
        return name


class TaskError(Exception):
    """Base class for every error raised while running a task.

    Carries the position of the offending document field when known, so
    the calling runtime can report it against the source.
    """

    kind = "task_error"
    exit_code = 2

    def __init__(self, message: str, pos: Optional[Position] = None):
        self.message = message
        self.pos = pos
        super().__init__(self._format())

    def _format(self) -> str:
        if self.pos is not None:
            return f"{self.pos}: {self.message}"
        return self.message


class DocumentLoadError(TaskError):
    """Raised when a document source cannot be parsed into a document."""
    kind = "document_load_error"


class KindMismatchError(TaskError):
    """Raised when a document value does not have the requested kind."""
    kind = "kind_mismatch"


class ResolutionError(TaskError):
    """Raised when the document does not describe a runnable command."""
    kind = "resolution_error"


class EmptyCommandError(ResolutionError):
    kind = "empty_command"


class EmptyCommandListError(ResolutionError):
    kind = "empty_command_list"


class InvalidElementError(ResolutionError):
    kind = "invalid_element"


class InvalidEnvValueError(ResolutionError):
    kind = "invalid_env_value"


class InvalidInputError(TaskError):
    """Raised when the stdin field cannot be materialized."""
    kind = "invalid_input"


class InvalidMustSucceedError(TaskError):
    kind = "invalid_must_succeed"


class ProcessError(TaskError):
    """The child process failed to start or exited unsuccessfully."""

    kind = "process_error"
    exit_code = 1

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        signal_name: Optional[str] = None,
        pos: Optional[Position] = None,
    ):
        self.returncode = returncode
        self.signal_name = signal_name
        super().__init__(message, pos)


class CancelledError(ProcessError):
    """The cancellation token fired before the process exited."""
    kind = "cancelled"


class CommandFailedError(TaskError):
    """Raised when a command with mustSucceed set did not succeed."""

    kind = "command_failed"
    exit_code = 1

    def __init__(self, command: str, cause: ProcessError, pos: Optional[Position] = None):
        self.command = command
        self.cause = cause
        super().__init__(f"command {json.dumps(command, ensure_ascii=False)} failed: {cause.message}", pos)


class RunnerNotFoundError(TaskError):
    """Raised when a registry lookup names an unknown runner."""
    kind = "runner_not_found"
