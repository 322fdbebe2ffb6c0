"""
Execution engine for resolved commands.

Spawns one child process per run, wires its standard streams to either
the ambient handles of the task context or in-memory capture buffers,
and waits for exit or cancellation.
"""

import io
import logging
import os
import shutil
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Union

from .resolver import CommandSpec
from .streams import StreamCapture, StreamDirective, StreamDirectives, StreamName
from ..context import TaskContext
from ..exceptions import CancelledError, InvalidInputError, KindMismatchError, ProcessError


logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """
    Tunables for process execution.

    Attributes:
        poll_interval_ms: How often the wait loop checks the cancel token
        kill_grace_ms: Time between terminate and kill on cancellation
        encoding: Encoding for string stdin content and string captures
        pump_chunk_bytes: Read size used when copying between streams
    """
    poll_interval_ms: int = 50
    kill_grace_ms: int = 2000
    encoding: str = "utf-8"
    pump_chunk_bytes: int = 64 * 1024

    def __post_init__(self):
        if self.poll_interval_ms <= 0:
            raise ValueError(f"poll_interval_ms must be positive, got {self.poll_interval_ms}")
        if self.kill_grace_ms < 0:
            raise ValueError(f"kill_grace_ms must not be negative, got {self.kill_grace_ms}")
        if self.pump_chunk_bytes <= 0:
            raise ValueError(f"pump_chunk_bytes must be positive, got {self.pump_chunk_bytes}")


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a single command run."""
    success: bool
    stdout: Optional[StreamCapture] = None
    stderr: Optional[StreamCapture] = None
    error: Optional[ProcessError] = None
    returncode: Optional[int] = None
    duration_ms: int = 0

    def to_update(self) -> Dict[str, Any]:
        """Convert to the update document handed back to the task runtime."""
        update: Dict[str, Any] = {"success": self.success}
        if self.stdout is not None:
            update["stdout"] = self.stdout.value
        if self.stderr is not None:
            update["stderr"] = self.stderr.value
        return update


def _fileno(handle: Optional[BinaryIO]) -> Optional[int]:
    """Return the OS-level descriptor of handle, or None if it has none."""
    if handle is None:
        return None
    try:
        return handle.fileno()
    except (AttributeError, OSError, ValueError):
        return None


def _pump(
    source: BinaryIO,
    sink: BinaryIO,
    chunk_bytes: int,
    close_sink: bool,
    errors: List[str],
    stop: Optional[threading.Event] = None,
):
    """Copy source into sink until EOF, or until stop is set."""
    read = getattr(source, 'read1', source.read)
    try:
        while stop is None or not stop.is_set():
            data = read(chunk_bytes)
            if not data or (stop is not None and stop.is_set()):
                break
            sink.write(data)
            if hasattr(sink, 'flush'):
                sink.flush()
    except BrokenPipeError:
        # Child stopped reading its input
        pass
    except (OSError, ValueError) as e:
        errors.append(str(e))
    finally:
        if close_sink:
            try:
                sink.close()
            except OSError:
                pass


def describe_exit(returncode: int) -> Tuple[str, Optional[str]]:
    """
    Describe an unsuccessful exit status.

    Returns:
        Tuple of (message, signal_name); signal_name is set when the child
        was killed by a signal
    """
    if returncode < 0:
        signum = -returncode
        try:
            signal_name = signal.Signals(signum).name
        except ValueError:
            signal_name = None
        description = signal.strsignal(signum) or f"signal {signum}"
        return f"signal: {description.lower()}", signal_name
    return f"exit status {returncode}", None


def build_env(entries: Tuple[str, ...]) -> Dict[str, str]:
    """Build the child environment from KEY=VALUE entries; later keys win."""
    env: Dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            logger.warning(f"Ignoring malformed environment entry: {entry!r}")
            continue
        env[key] = value
    return env


def lookup_binary(binary: str) -> str:
    """Resolve a bare program name on the runner's own PATH."""
    if os.sep in binary or (os.altsep and os.altsep in binary):
        return binary
    return shutil.which(binary) or binary


def _signal_group(proc: subprocess.Popen, signum: int) -> None:
    """Send signum to every process in the child's session group."""
    try:
        os.killpg(proc.pid, signum)
    except ProcessLookupError:
        pass


class ExecutionEngine:
    """
    Runs a CommandSpec as a child process.

    Each call to run owns its process, pump threads and capture buffers;
    nothing is shared between calls, so independent tasks can run
    concurrently on one engine.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def run(
        self,
        ctx: TaskContext,
        spec: CommandSpec,
        directives: Optional[StreamDirectives] = None,
    ) -> ExecutionResult:
        """
        Execute a command and wait for it to finish.

        Args:
            ctx: Task context providing ambient streams and the cancel token
            spec: Resolved command
            directives: Stream redirections requested by the document

        Returns:
            ExecutionResult; process failures and cancellation are reported
            in the result rather than raised

        Raises:
            InvalidInputError: If the stdin field has no readable content
        """
        directives = directives or StreamDirectives()
        start_time = time.time()

        stdin_source = self._open_stdin(directives.stdin)

        if ctx.cancel.cancelled:
            logger.warning(f"Not starting {spec.binary!r}: {ctx.cancel.reason}")
            error = CancelledError(f"process cancelled before start: {ctx.cancel.reason}")
            return self._finish(directives, {}, False, error, None, start_time)

        pumps: List[Tuple[threading.Thread, BinaryIO]] = []
        pump_errors: List[str] = []
        stdin_pump: Optional[threading.Thread] = None
        stdin_done = threading.Event()
        buffers: Dict[StreamName, io.BytesIO] = {}

        # stdin: document content, ambient descriptor, pumped ambient stream, or nothing
        stdin_arg: Union[int, None] = subprocess.DEVNULL
        if stdin_source is None and ctx.stdin is not None:
            fd = _fileno(ctx.stdin)
            if fd is not None:
                stdin_arg = fd
            else:
                stdin_source = ctx.stdin
        if stdin_source is not None:
            stdin_arg = subprocess.PIPE

        outputs: Dict[StreamName, Tuple[Union[int, None], Optional[BinaryIO]]] = {}
        for name, directive, ambient in (
            (StreamName.STDOUT, directives.stdout, ctx.stdout),
            (StreamName.STDERR, directives.stderr, ctx.stderr),
        ):
            outputs[name] = self._wire_output(name, directive, ambient, buffers)

        env = build_env(spec.env)
        executable = lookup_binary(spec.binary)
        logger.debug(f"Executing command: {spec.argv} (cwd={spec.work_dir}, env keys={list(env)})")

        try:
            proc = subprocess.Popen(
                spec.argv,
                executable=executable,
                cwd=spec.work_dir,
                env=env,
                stdin=stdin_arg,
                stdout=outputs[StreamName.STDOUT][0],
                stderr=outputs[StreamName.STDERR][0],
                start_new_session=True,
            )
        except OSError as e:
            logger.debug(f"Failed to start {spec.binary!r}: {e}")
            error = ProcessError(f'exec: "{spec.binary}": {e.strerror or e}')
            return self._finish(directives, buffers, False, error, None, start_time)

        if stdin_source is not None:
            stdin_pump = self._start_pump("stdin", stdin_source, proc.stdin, True, pump_errors, stdin_done)
        for name, pipe in ((StreamName.STDOUT, proc.stdout), (StreamName.STDERR, proc.stderr)):
            sink = outputs[name][1]
            if pipe is not None and sink is not None:
                pumps.append((self._start_pump(name.value, pipe, sink, False, pump_errors), pipe))

        returncode, cancelled = self._wait(proc, ctx)
        stdin_done.set()

        join_timeout = self.config.kill_grace_ms / 1000.0 if cancelled else None
        for thread, _ in pumps:
            thread.join(join_timeout)
        if cancelled and any(thread.is_alive() for thread, _ in pumps):
            # Leftover group members still hold the output pipes
            logger.warning(f"Killing remaining processes of group {proc.pid}")
            _signal_group(proc, signal.SIGKILL)
            for thread, _ in pumps:
                thread.join(self.config.poll_interval_ms / 1000.0)
        for thread, pipe in pumps:
            if thread.is_alive():
                # Still held by a reader blocked inside read1
                logger.warning(f"Leaving {thread.name} pipe of {spec.binary!r} to its reader")
            else:
                pipe.close()

        if stdin_pump is not None:
            stdin_pump.join(self.config.poll_interval_ms / 1000.0)
            if stdin_pump.is_alive():
                logger.debug(f"Input of {spec.binary!r} still blocked on its source, pump stops at next chunk")

        if pump_errors:
            logger.warning(f"Stream copy errors for {spec.binary!r}: {'; '.join(pump_errors)}")

        error: Optional[ProcessError] = None
        if cancelled:
            message, signal_name = describe_exit(returncode) if returncode else ("exited", None)
            error = CancelledError(
                f"process cancelled ({ctx.cancel.reason}): {message}",
                returncode=returncode,
                signal_name=signal_name,
            )
        elif returncode != 0:
            message, signal_name = describe_exit(returncode)
            error = ProcessError(message, returncode=returncode, signal_name=signal_name)

        return self._finish(directives, buffers, error is None, error, returncode, start_time)

    def _open_stdin(self, directive: Optional[StreamDirective]) -> Optional[BinaryIO]:
        if directive is None:
            return None
        field = directive.field.default()
        try:
            return field.reader(self.config.encoding)
        except (KindMismatchError, UnicodeError) as e:
            message = e.message if isinstance(e, KindMismatchError) else str(e)
            raise InvalidInputError(f"invalid input: {message}", field.pos) from e

    def _wire_output(
        self,
        name: StreamName,
        directive: Optional[StreamDirective],
        ambient: Optional[BinaryIO],
        buffers: Dict[StreamName, io.BytesIO],
    ) -> Tuple[Union[int, None], Optional[BinaryIO]]:
        """Pick the Popen argument and pump sink for one output stream."""
        if directive is not None:
            buffers[name] = io.BytesIO()
            return subprocess.PIPE, buffers[name]
        if ambient is None:
            return subprocess.DEVNULL, None
        fd = _fileno(ambient)
        if fd is not None:
            # Keep buffered output written so far ahead of the child's
            ambient.flush()
            return fd, None
        return subprocess.PIPE, ambient

    def _start_pump(
        self,
        name: str,
        source: BinaryIO,
        sink: BinaryIO,
        close_sink: bool,
        errors: List[str],
        stop: Optional[threading.Event] = None,
    ) -> threading.Thread:
        thread = threading.Thread(
            target=_pump,
            args=(source, sink, self.config.pump_chunk_bytes, close_sink, errors, stop),
            name=f"exec-{name}",
            daemon=True,
        )
        thread.start()
        return thread

    def _wait(self, proc: subprocess.Popen, ctx: TaskContext) -> Tuple[int, bool]:
        """Wait for exit, terminating the child if the token fires."""
        poll_sec = self.config.poll_interval_ms / 1000.0
        while True:
            try:
                return proc.wait(timeout=poll_sec), False
            except subprocess.TimeoutExpired:
                if ctx.cancel.cancelled:
                    return self._terminate(proc, ctx)

    def _terminate(self, proc: subprocess.Popen, ctx: TaskContext) -> Tuple[int, bool]:
        """
        Stop the child's process group after cancellation.

        Returns:
            Tuple of (returncode, cancelled); cancelled is False when the
            child had already exited on its own
        """
        returncode = proc.poll()
        if returncode is not None:
            return returncode, False

        logger.warning(f"Cancelling process {proc.pid}: {ctx.cancel.reason}")
        _signal_group(proc, signal.SIGTERM)
        try:
            return proc.wait(timeout=self.config.kill_grace_ms / 1000.0), True
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {proc.pid} ignored SIGTERM, killing")
            _signal_group(proc, signal.SIGKILL)
            return proc.wait(), True

    def _finish(
        self,
        directives: StreamDirectives,
        buffers: Dict[StreamName, io.BytesIO],
        success: bool,
        error: Optional[ProcessError],
        returncode: Optional[int],
        start_time: float,
    ) -> ExecutionResult:
        """Type the capture buffers and assemble the result."""
        captures: Dict[str, StreamCapture] = {}
        for directive in (directives.stdout, directives.stderr):
            if directive is None:
                continue
            buffer = buffers.get(directive.name) or io.BytesIO()
            if directive.name == StreamName.STDERR and error is not None and not buffer.getvalue():
                buffer.write(error.message.encode(self.config.encoding))
            captures[directive.name.value] = StreamCapture(
                name=directive.name,
                kind=directive.kind,
                data=buffer.getvalue(),
                encoding=self.config.encoding,
            )

        return ExecutionResult(
            success=success,
            stdout=captures.get("stdout"),
            stderr=captures.get("stderr"),
            error=error,
            returncode=returncode,
            duration_ms=int((time.time() - start_time) * 1000),
        )
