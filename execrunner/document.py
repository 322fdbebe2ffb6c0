"""
Kind-tagged configuration documents.

A document is an immutable tree of Value nodes. Every node carries a Kind;
a node either holds a concrete payload or is only a declaration of its kind
(for example a field declared as `string` that has no value yet). Values
are converted with the as_* helpers, which raise KindMismatchError with the
node position instead of relying on isinstance checks at the call sites.
"""

import io
from decimal import Decimal
from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO, Iterator, Optional, Tuple, Union

from .exceptions import KindMismatchError, Position


class Kind(str, Enum):
    """Declared kind of a document node."""
    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    NUMBER = "number"
    STRING = "string"
    BYTES = "bytes"
    LIST = "list"
    STRUCT = "struct"
    TOP = "_"


NUMERIC_KINDS = frozenset({Kind.INT, Kind.FLOAT, Kind.NUMBER})


class _Incomplete:
    """Payload marker for declarations."""

    def __repr__(self) -> str:
        return "<incomplete>"


INCOMPLETE = _Incomplete()

Field = Tuple[str, "Value"]


@dataclass(frozen=True)
class Value:
    """
    A single document node.

    Attributes:
        kind: Declared kind of the node
        data: Concrete payload, or INCOMPLETE for a declaration. Lists hold a
            tuple of Values, structs a tuple of (label, Value) pairs in field
            order.
        default_value: Value to use when the node is read with default()
        pos: Source position, when the node came from a file
    """
    kind: Kind
    data: Any = INCOMPLETE
    default_value: Optional["Value"] = None
    pos: Optional[Position] = None

    @property
    def is_concrete(self) -> bool:
        return self.data is not INCOMPLETE

    @property
    def is_null(self) -> bool:
        return self.kind == Kind.NULL

    def default(self) -> "Value":
        """Return the declared default, or the value itself."""
        if self.default_value is not None:
            return self.default_value
        return self

    def _expect(self, kind: Kind, what: str) -> Any:
        if self.kind != kind:
            raise KindMismatchError(
                f"cannot use value {self} (type {self.kind.value}) as {what}",
                self.pos,
            )
        if not self.is_concrete:
            raise KindMismatchError(f"incomplete value {self.kind.value}", self.pos)
        return self.data

    def as_string(self) -> str:
        return self._expect(Kind.STRING, "string")

    def as_bytes(self) -> bytes:
        return self._expect(Kind.BYTES, "bytes")

    def as_bool(self) -> bool:
        return self._expect(Kind.BOOL, "bool")

    def as_number(self) -> Union[int, float, Decimal]:
        if self.kind not in NUMERIC_KINDS:
            raise KindMismatchError(
                f"cannot use value {self} (type {self.kind.value}) as number",
                self.pos,
            )
        if not self.is_concrete:
            raise KindMismatchError(f"incomplete value {self.kind.value}", self.pos)
        return self.data

    def elements(self) -> Tuple["Value", ...]:
        return self._expect(Kind.LIST, "list")

    def fields(self) -> Tuple[Field, ...]:
        return self._expect(Kind.STRUCT, "struct")

    def iter_fields(self) -> Iterator[Field]:
        """Iterate struct fields in order; yields nothing for other kinds."""
        if self.kind == Kind.STRUCT and self.is_concrete:
            yield from self.data

    def lookup(self, path: str) -> Optional["Value"]:
        """
        Look up a dotted field path.

        Returns:
            The Value at path, or None when any step is absent
        """
        node: Optional[Value] = self
        for label in path.split("."):
            if node is None:
                return None
            found = None
            for name, child in node.iter_fields():
                if name == label:
                    found = child
                    break
            node = found
        return node

    def unify(self, schema: Optional["Value"]) -> "Value":
        """
        Fill fields missing from this struct with the schema's fields.

        Fields already present in the document win. Non-struct operands
        are returned unchanged.
        """
        if schema is None or self.kind != Kind.STRUCT or schema.kind != Kind.STRUCT:
            return self
        if not self.is_concrete:
            return schema
        labels = {name for name, _ in self.data}
        merged = list(self.data)
        for name, child in schema.iter_fields():
            if name not in labels:
                merged.append((name, child))
        return Value(Kind.STRUCT, tuple(merged), self.default_value, self.pos)

    def reader(self, encoding: str = "utf-8") -> BinaryIO:
        """Open a binary stream over a concrete string or bytes value."""
        if self.kind == Kind.STRING:
            return io.BytesIO(self.as_string().encode(encoding))
        if self.kind == Kind.BYTES:
            return io.BytesIO(self.as_bytes())
        raise KindMismatchError(
            f"cannot use value {self} (type {self.kind.value}) as string or bytes",
            self.pos,
        )

    def to_python(self) -> Any:
        """Convert a concrete tree back into plain Python data."""
        if not self.is_concrete:
            if self.default_value is not None:
                return self.default_value.to_python()
            return self.kind
        if self.kind == Kind.LIST:
            return [item.to_python() for item in self.data]
        if self.kind == Kind.STRUCT:
            return {name: child.to_python() for name, child in self.data}
        return self.data

    def __str__(self) -> str:
        if not self.is_concrete:
            return self.kind.value
        if self.kind == Kind.NULL:
            return "null"
        if self.kind == Kind.BOOL:
            return "true" if self.data else "false"
        if self.kind == Kind.STRING:
            return f'"{self.data}"'
        if self.kind in NUMERIC_KINDS:
            return format_number(self.data)
        if self.kind == Kind.LIST:
            return "[" + ", ".join(str(item) for item in self.data) + "]"
        if self.kind == Kind.STRUCT:
            return "{" + ", ".join(f"{name}: {child}" for name, child in self.data) + "}"
        return repr(self.data)


def format_number(number: Union[int, float, Decimal]) -> str:
    """Format a number as canonical decimal text (no exponent)."""
    if isinstance(number, bool):
        raise TypeError("bool is not a number")
    if isinstance(number, int):
        return str(number)
    if isinstance(number, float):
        text = repr(number)
        if ("e" in text or "E" in text) and number == number and abs(number) != float("inf"):
            text = format(Decimal(text), "f")
        return text
    return format(number, "f")


def declare(kind: Kind, default: Any = INCOMPLETE, pos: Optional[Position] = None) -> Value:
    """Build a declaration of kind, optionally with a default value."""
    default_value = None
    if default is not INCOMPLETE:
        default_value = from_python(default)
    return Value(kind, INCOMPLETE, default_value, pos)


def from_python(obj: Any, pos: Optional[Position] = None) -> Value:
    """
    Build a document from plain Python data.

    Mapping keys keep their insertion order. A Kind stands for a
    declaration of that kind; Values are passed through unchanged.
    """
    if isinstance(obj, Value):
        return obj
    if isinstance(obj, Kind):
        return Value(obj, INCOMPLETE, None, pos)
    if obj is None:
        return Value(Kind.NULL, None, None, pos)
    if isinstance(obj, bool):
        return Value(Kind.BOOL, obj, None, pos)
    if isinstance(obj, int):
        return Value(Kind.INT, obj, None, pos)
    if isinstance(obj, float):
        return Value(Kind.FLOAT, obj, None, pos)
    if isinstance(obj, Decimal):
        return Value(Kind.NUMBER, obj, None, pos)
    if isinstance(obj, str):
        return Value(Kind.STRING, obj, None, pos)
    if isinstance(obj, (bytes, bytearray)):
        return Value(Kind.BYTES, bytes(obj), None, pos)
    if isinstance(obj, (list, tuple)):
        return Value(Kind.LIST, tuple(from_python(item) for item in obj), None, pos)
    if isinstance(obj, dict):
        return Value(
            Kind.STRUCT,
            tuple((str(key), from_python(child)) for key, child in obj.items()),
            None,
            pos,
        )
    raise TypeError(f"Unsupported document value type: {type(obj).__name__}")
