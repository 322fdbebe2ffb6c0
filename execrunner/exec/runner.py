"""
The exec task runner.

Resolves the command described by the task document, runs it, and turns
the outcome into the update document for the task runtime. A failing
command is an ordinary result unless the document sets mustSucceed.
"""

import logging
from typing import Any, Dict, Optional

from .engine import EngineConfig, ExecutionEngine
from .resolver import resolve_command
from .streams import StreamDirectives
from ..context import TaskContext
from ..document import Value
from ..exceptions import CommandFailedError, InvalidMustSucceedError, KindMismatchError


logger = logging.getLogger(__name__)


class ExecRunner:
    """
    Runs the command described by a task document.

    The runner is stateless apart from its schema and engine configuration;
    one instance can serve any number of runs.
    """

    def __init__(self, schema: Optional[Value] = None, config: Optional[EngineConfig] = None):
        """
        Initialize the runner.

        Args:
            schema: Struct whose fields fill in fields missing from each task
                document (for example a default for mustSucceed)
            config: Execution engine configuration
        """
        self.schema = schema
        self.engine = ExecutionEngine(config)

    def run(self, ctx: TaskContext) -> Dict[str, Any]:
        """
        Run the task.

        Returns:
            Update document with success and any captured streams

        Raises:
            ResolutionError: If the document does not describe a command
            InvalidInputError: If stdin content cannot be read
            InvalidMustSucceedError: If mustSucceed is not a bool
            CommandFailedError: If the command failed and mustSucceed is set
        """
        obj = ctx.obj.unify(self.schema)
        spec, display = resolve_command(obj)
        directives = StreamDirectives.from_document(obj)
        must_succeed = self._must_succeed(obj)

        logger.debug(f"Running {display!r} (mustSucceed={must_succeed})")
        result = self.engine.run(ctx, spec, directives)
        logger.debug(f"{display!r} finished: success={result.success} in {result.duration_ms}ms")

        if result.success or not must_succeed:
            return result.to_update()

        raise CommandFailedError(display, result.error) from result.error

    def _must_succeed(self, obj: Value) -> bool:
        field = obj.lookup("mustSucceed")
        if field is None:
            return False
        value = field.default()
        try:
            return value.as_bool()
        except KindMismatchError as e:
            raise InvalidMustSucceedError(f"invalid bool value: {e.message}", value.pos) from e


def new_exec_runner(schema: Optional[Value] = None, config: Optional[EngineConfig] = None) -> ExecRunner:
    """Runner factory used for registry entries."""
    return ExecRunner(schema, config)
