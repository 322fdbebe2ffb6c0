"""
Runner registry.

Maps the lookup identifiers used by task documents to runner factories.
A registry is an ordinary object owned by the caller; nothing is registered
at import time.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

from .context import TaskContext
from .document import Value
from .exceptions import RunnerNotFoundError
from .exec.engine import EngineConfig
from .exec.runner import new_exec_runner


logger = logging.getLogger(__name__)


EXEC_RUN = "tool/exec.Run"
# Older documents still name the runner by its short identifier
EXEC_ALIAS = "exec"


class Runner(Protocol):
    def run(self, ctx: TaskContext) -> Dict[str, Any]:
        ...


RunnerFactory = Callable[[Optional[Value], Optional[EngineConfig]], Runner]


class RunnerRegistry:
    """Registry of runner factories keyed by lookup identifier."""

    def __init__(self):
        self._factories: Dict[str, RunnerFactory] = {}

    def register(self, name: str, factory: RunnerFactory) -> None:
        """
        Register a runner factory.

        Raises:
            ValueError: If the name is empty or already registered
        """
        if not name:
            raise ValueError("Runner name cannot be empty")
        if name in self._factories:
            raise ValueError(f"Runner '{name}' is already registered")
        self._factories[name] = factory
        logger.debug(f"Registered runner: {name}")

    def exists(self, name: str) -> bool:
        return name in self._factories

    def list_runners(self) -> List[str]:
        return sorted(self._factories)

    def create(
        self,
        name: str,
        schema: Optional[Value] = None,
        config: Optional[EngineConfig] = None,
    ) -> Runner:
        """
        Build a runner for the given identifier.

        Raises:
            RunnerNotFoundError: If nothing is registered under name
        """
        factory = self._factories.get(name)
        if factory is None:
            raise RunnerNotFoundError(f"Runner '{name}' not found")
        return factory(schema, config)


def register_exec(registry: RunnerRegistry, factory: Optional[RunnerFactory] = None) -> None:
    """Register the exec runner under its identifier and its alias."""
    factory = factory or new_exec_runner
    registry.register(EXEC_RUN, factory)
    registry.register(EXEC_ALIAS, factory)


def default_registry() -> RunnerRegistry:
    """Return a fresh registry holding the built-in runners."""
    registry = RunnerRegistry()
    register_exec(registry)
    return registry
