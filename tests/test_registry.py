"""
Tests for the runner registry.
"""

import pytest

from execrunner.context import TaskContext
from execrunner.document import Kind, from_python
from execrunner.exceptions import RunnerNotFoundError
from execrunner.exec.engine import EngineConfig
from execrunner.exec.runner import ExecRunner
from execrunner.registry import (
    EXEC_ALIAS,
    EXEC_RUN,
    RunnerRegistry,
    default_registry,
    register_exec,
)


class TestRunnerRegistry:
    """Test registry lookup and registration."""

    def test_new_registry_is_empty(self):
        """Nothing is registered implicitly."""
        registry = RunnerRegistry()
        assert registry.list_runners() == []
        assert not registry.exists(EXEC_RUN)

    def test_default_registry_has_both_identifiers(self):
        registry = default_registry()

        assert registry.exists(EXEC_RUN)
        assert registry.exists(EXEC_ALIAS)
        assert registry.list_runners() == sorted([EXEC_RUN, EXEC_ALIAS])

    def test_default_registries_are_independent(self):
        first = default_registry()
        second = default_registry()
        first.register("custom", lambda schema, config: ExecRunner(schema, config))

        assert first.exists("custom")
        assert not second.exists("custom")

    def test_alias_behaves_identically(self):
        """Both identifiers build runners that produce the same update."""
        registry = default_registry()
        data = {"cmd": "echo same", "stdout": Kind.STRING}

        updates = []
        for name in (EXEC_RUN, EXEC_ALIAS):
            runner = registry.create(name)
            assert isinstance(runner, ExecRunner)
            updates.append(runner.run(TaskContext(obj=from_python(data))))

        assert updates[0] == updates[1] == {"success": True, "stdout": "same\n"}

    def test_create_passes_schema_and_config(self):
        registry = default_registry()
        schema = from_python({"mustSucceed": True})
        config = EngineConfig(kill_grace_ms=10)

        runner = registry.create(EXEC_RUN, schema=schema, config=config)

        assert runner.schema is schema
        assert runner.engine.config is config

    def test_unknown_runner(self):
        with pytest.raises(RunnerNotFoundError, match="Runner 'tool/http.Do' not found"):
            default_registry().create("tool/http.Do")

    def test_duplicate_registration_rejected(self):
        registry = RunnerRegistry()
        register_exec(registry)

        with pytest.raises(ValueError, match="already registered"):
            register_exec(registry)

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            RunnerRegistry().register("", lambda schema, config: ExecRunner())
