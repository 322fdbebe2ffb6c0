"""
Task context handed to runners by the calling runtime.

The context bundles the merged document, the ambient standard streams and
the cancellation token for a single task invocation.
"""

import threading
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, List, Optional

from .document import Value


class CancelToken:
    """
    Cancellation signal shared between a caller and a running task.

    A token starts active and can be cancelled once; cancellation is
    permanent. Callbacks registered with on_cancel run on the cancelling
    thread.
    """

    def __init__(self, parent: Optional["CancelToken"] = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self.reason: Optional[str] = None
        if parent is not None:
            parent.on_cancel(lambda: self.cancel(parent.reason))

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason or "cancelled"
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run callback on cancellation, immediately if already cancelled."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout; returns True if cancelled."""
        return self._event.wait(timeout)


@dataclass
class TaskContext:
    """
    Inputs for a single task run.

    Attributes:
        obj: Merged configuration document for the task
        stdin: Ambient binary input stream (None for no input)
        stdout: Ambient binary output stream (None to discard)
        stderr: Ambient binary error stream (None to discard)
        cancel: Cancellation token bound to this run
    """
    obj: Value
    stdin: Optional[BinaryIO] = None
    stdout: Optional[BinaryIO] = None
    stderr: Optional[BinaryIO] = None
    cancel: CancelToken = field(default_factory=CancelToken)

    def lookup(self, path: str) -> Optional[Value]:
        return self.obj.lookup(path)
