"""
Command resolution.

Turns the cmd, dir and env fields of a configuration document into a
concrete CommandSpec. Resolution is pure: it never touches the filesystem
or starts a process.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..document import NUMERIC_KINDS, Kind, Value, format_number
from ..exceptions import (
    EmptyCommandError,
    EmptyCommandListError,
    InvalidElementError,
    InvalidEnvValueError,
    KindMismatchError,
)


# Runs of ASCII whitespace separate the words of a string command
_FIELD_SEPARATORS = re.compile(r"[ \t\n\r\v\f]+")


@dataclass(frozen=True)
class CommandSpec:
    """
    Fully resolved command invocation.

    Attributes:
        binary: Program to run (never empty)
        args: Arguments after the program name
        work_dir: Working directory for the child, None for the caller's
        env: Environment entries in KEY=VALUE form, in document order
    """
    binary: str
    args: Tuple[str, ...] = ()
    work_dir: Optional[str] = None
    env: Tuple[str, ...] = ()

    @property
    def argv(self) -> List[str]:
        return [self.binary, *self.args]


def resolve_command(doc: Value) -> Tuple[CommandSpec, str]:
    """
    Resolve a document into a command specification.

    Args:
        doc: Configuration document (struct) holding cmd, dir and env

    Returns:
        Tuple of (spec, display) where display is the human readable form
        of the command used in error messages

    Raises:
        ResolutionError: If cmd does not name a program or env holds a
            value that cannot be used as an environment entry
    """
    binary, args, display = _resolve_cmd(doc)
    return CommandSpec(
        binary=binary,
        args=tuple(args),
        work_dir=_resolve_dir(doc),
        env=tuple(resolve_env(doc.lookup("env"))),
    ), display


def _resolve_cmd(doc: Value) -> Tuple[str, List[str], str]:
    cmd = doc.lookup("cmd")
    if cmd is not None:
        cmd = cmd.default()
    pos = cmd.pos if cmd is not None else doc.pos
    binary = ""
    args: List[str] = []
    display = ""

    if cmd is not None and cmd.kind == Kind.STRING and cmd.is_concrete:
        display = cmd.as_string()
        tokens = [token for token in _FIELD_SEPARATORS.split(display) if token]
        if tokens:
            binary, args = tokens[0], tokens[1:]

    elif cmd is not None and cmd.kind == Kind.LIST and cmd.is_concrete:
        elements = cmd.elements()
        if not elements:
            raise EmptyCommandListError("empty command list", pos)
        parts = []
        for element in elements:
            try:
                parts.append(element.default().as_string())
            except KindMismatchError as e:
                raise InvalidElementError(
                    f"invalid command element: {e.message}", element.pos
                ) from e
        binary, args = parts[0], parts[1:]
        display = " ".join(parts)

    if binary == "":
        raise EmptyCommandError("empty command", pos)
    return binary, args, display


def _resolve_dir(doc: Value) -> Optional[str]:
    work_dir = doc.lookup("dir")
    if work_dir is None:
        return None
    work_dir = work_dir.default()
    if work_dir.kind == Kind.STRING and work_dir.is_concrete:
        return work_dir.as_string()
    return None


def resolve_env(env: Optional[Value]) -> List[str]:
    """
    Resolve the env field into KEY=VALUE entries.

    A list must hold KEY=VALUE strings, which are used verbatim. A struct
    maps labels to string or numeric values. Any other shape contributes no
    entries.
    """
    if env is None:
        return []
    env = env.default()
    entries: List[str] = []

    if env.kind == Kind.LIST and env.is_concrete:
        for element in env.elements():
            value = element.default()
            try:
                entries.append(value.as_string())
            except KindMismatchError as e:
                raise InvalidEnvValueError(
                    f"invalid environment variable value {value}: {e.message}", value.pos
                ) from e

    for label, child in env.iter_fields():
        value = child.default()
        if value.kind == Kind.STRING and value.is_concrete:
            text = value.as_string()
        elif value.kind in NUMERIC_KINDS and value.is_concrete:
            text = format_number(value.as_number())
        else:
            raise InvalidEnvValueError(
                f"invalid environment variable value {value}", value.pos
            )
        entries.append(f"{label}={text}")

    return entries
