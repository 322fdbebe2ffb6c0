"""
Tests for the exec runner: resolution, execution and the mustSucceed policy
composed into a single task run.
"""

import io
from unittest.mock import patch

import pytest

from execrunner.context import TaskContext
from execrunner.document import Kind, declare, from_python
from execrunner.exceptions import (
    CommandFailedError,
    EmptyCommandListError,
    InvalidInputError,
    InvalidMustSucceedError,
    ProcessError,
)
from execrunner.exec.runner import ExecRunner
from execrunner.loader import DocumentLoader


def make_ctx(data, **kwargs):
    return TaskContext(obj=from_python(data), **kwargs)


class TestExecRunner:
    """Test complete task runs."""

    def test_echo_without_capture(self):
        """A plain successful command yields only the success flag."""
        stdout = io.BytesIO()
        update = ExecRunner().run(make_ctx({"cmd": "echo hello"}, stdout=stdout))

        assert update == {"success": True}
        assert stdout.getvalue() == b"hello\n"

    def test_capture_both_streams(self):
        update = ExecRunner().run(make_ctx({
            "cmd": ["sh", "-c", "echo out; echo err >&2"],
            "stdout": Kind.STRING,
            "stderr": Kind.STRING,
        }))

        assert update == {"success": True, "stdout": "out\n", "stderr": "err\n"}

    def test_failure_is_a_result_by_default(self):
        """Without mustSucceed a failing command is a normal result."""
        update = ExecRunner().run(make_ctx({"cmd": ["false"]}))
        assert update == {"success": False}

    def test_failure_with_must_succeed_false(self):
        update = ExecRunner().run(make_ctx({"cmd": ["false"], "mustSucceed": False}))
        assert update == {"success": False}

    def test_must_succeed_raises(self):
        """With mustSucceed a failing command fails the task."""
        with pytest.raises(CommandFailedError) as exc_info:
            ExecRunner().run(make_ctx({"cmd": ["false"], "mustSucceed": True}))

        error = exc_info.value
        assert '"false"' in str(error)
        assert error.command == "false"
        assert isinstance(error.cause, ProcessError)
        assert error.__cause__ is error.cause
        assert "exit status 1" in str(error)

    def test_must_succeed_display_uses_list_form(self):
        with pytest.raises(CommandFailedError, match='command "sh -c exit 2" failed'):
            ExecRunner().run(make_ctx({"cmd": ["sh", "-c", "exit 2"], "mustSucceed": True}))

    def test_must_succeed_message_escapes_command(self):
        """Quotes and newlines in the command are escaped in the failure message."""
        with pytest.raises(CommandFailedError) as exc_info:
            ExecRunner().run(make_ctx({"cmd": ["sh", "-c", 'echo "x"\nexit 4'], "mustSucceed": True}))

        assert 'command "sh -c echo \\"x\\"\\nexit 4" failed: exit status 4' in str(exc_info.value)

    def test_must_succeed_success_returns_update(self):
        update = ExecRunner().run(make_ctx({
            "cmd": "echo ok",
            "mustSucceed": True,
            "stdout": Kind.STRING,
        }))
        assert update == {"success": True, "stdout": "ok\n"}

    def test_must_succeed_default_applied(self):
        """A declared mustSucceed is read through its default."""
        with pytest.raises(CommandFailedError):
            ExecRunner().run(make_ctx({
                "cmd": ["false"],
                "mustSucceed": declare(Kind.BOOL, default=True),
            }))

    @pytest.mark.parametrize("value", ["yes", 1, None, Kind.BOOL])
    def test_invalid_must_succeed(self, value):
        """mustSucceed must resolve to a concrete bool."""
        with patch("execrunner.exec.engine.subprocess.Popen") as popen:
            with pytest.raises(InvalidMustSucceedError, match="invalid bool value"):
                ExecRunner().run(make_ctx({"cmd": "echo hi", "mustSucceed": value}))
            popen.assert_not_called()

    def test_empty_command_list_never_spawns(self):
        with patch("execrunner.exec.engine.subprocess.Popen") as popen:
            with pytest.raises(EmptyCommandListError):
                ExecRunner().run(make_ctx({"cmd": []}))
            popen.assert_not_called()

    def test_invalid_input_propagates(self):
        with pytest.raises(InvalidInputError):
            ExecRunner().run(make_ctx({"cmd": "cat", "stdin": Kind.BYTES}))


class TestRunnerSchema:
    """Test schema defaults unified under the task document."""

    def test_schema_supplies_must_succeed(self):
        runner = ExecRunner(schema=from_python({"mustSucceed": True}))

        with pytest.raises(CommandFailedError):
            runner.run(make_ctx({"cmd": ["false"]}))

    def test_document_overrides_schema(self):
        runner = ExecRunner(schema=from_python({"mustSucceed": True}))

        update = runner.run(make_ctx({"cmd": ["false"], "mustSucceed": False}))
        assert update == {"success": False}

    def test_schema_supplies_capture(self):
        runner = ExecRunner(schema=from_python({"stdout": Kind.STRING}))

        update = runner.run(make_ctx({"cmd": "echo from-schema"}))
        assert update == {"success": True, "stdout": "from-schema\n"}


class TestYamlDocuments:
    """Test runs of documents loaded from YAML."""

    def test_yaml_task(self, tmp_path):
        path = tmp_path / "task.yaml"
        path.write_text(
            "cmd: [sh, -c, 'printf \"%s:%s\" \"$GREETING\" \"$COUNT\"']\n"
            f"dir: {tmp_path}\n"
            "env:\n"
            "  GREETING: hello\n"
            "  COUNT: 2\n"
            "stdout: !string\n"
            "stderr: !bytes\n"
            "mustSucceed: !default true\n"
        )
        ctx = TaskContext(obj=DocumentLoader().load(path))

        update = ExecRunner().run(ctx)

        assert update == {"success": True, "stdout": "hello:2", "stderr": b""}

    def test_yaml_stdin_content(self):
        doc = DocumentLoader().loads("cmd: cat\nstdin: piped text\nstdout: !string\n")
        update = ExecRunner().run(TaskContext(obj=doc))
        assert update["stdout"] == "piped text"
