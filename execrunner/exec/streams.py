"""
Stream directives and typed capture results.

A stream field (stdin, stdout, stderr) that is absent or concretely null
leaves the stream connected to the ambient handle. Any other value is a
directive: output streams are captured into a buffer typed by the field's
declared kind, and stdin is fed from the field's content.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from ..document import Kind, Value


class StreamName(str, Enum):
    """Standard streams a document can redirect."""
    STDIN = "stdin"
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class StreamDirective:
    """Request to redirect one stream, carrying the requesting field."""
    name: StreamName
    field: Value

    @property
    def kind(self) -> Kind:
        return self.field.kind


@dataclass(frozen=True)
class StreamDirectives:
    """Directives for the three standard streams; None means ambient."""
    stdin: Optional[StreamDirective] = None
    stdout: Optional[StreamDirective] = None
    stderr: Optional[StreamDirective] = None

    @classmethod
    def from_document(cls, doc: Value) -> "StreamDirectives":
        """Read the stream fields of a document."""
        found: Dict[str, StreamDirective] = {}
        for name in StreamName:
            field = doc.lookup(name.value)
            if field is None or field.default().is_null:
                continue
            found[name.value] = StreamDirective(name, field)
        return cls(**found)


@dataclass(frozen=True)
class StreamCapture:
    """
    Bytes captured from one output stream.

    Attributes:
        name: Stream the data came from
        kind: Declared kind of the requesting field
        data: Raw captured bytes
        encoding: Encoding used when the field asks for a string
    """
    name: StreamName
    kind: Kind
    data: bytes = b""
    encoding: str = "utf-8"

    @property
    def value(self) -> Union[str, bytes, None]:
        """
        Captured data typed by the requesting field.

        Strings for string fields, bytes for bytes fields; any other declared
        kind gets no value even though the stream was captured.
        """
        if self.kind == Kind.STRING:
            return self.data.decode(self.encoding, errors='replace')
        if self.kind == Kind.BYTES:
            return self.data
        return None
