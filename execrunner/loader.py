"""YAML front-end producing kind-tagged documents with source positions."""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Optional, Union
import yaml

from execrunner.document import INCOMPLETE, Kind, Value
from execrunner.exceptions import DocumentLoadError, Position


class PreservingLoader(yaml.SafeLoader):
    """YAML loader that keeps 'on', 'off', 'yes' and 'no' as strings."""
    pass


# Only true/false resolve to bool; the YAML 1.1 yes/no/on/off spellings stay strings
PreservingLoader.yaml_implicit_resolvers = dict(PreservingLoader.yaml_implicit_resolvers)
for _first in "yYnNoO":
    if _first in PreservingLoader.yaml_implicit_resolvers:
        PreservingLoader.yaml_implicit_resolvers[_first] = [
            (tag, regexp) for tag, regexp in PreservingLoader.yaml_implicit_resolvers[_first]
            if tag != 'tag:yaml.org,2002:bool'
        ]


_STANDARD_KINDS: Dict[str, Kind] = {
    'tag:yaml.org,2002:null': Kind.NULL,
    'tag:yaml.org,2002:bool': Kind.BOOL,
    'tag:yaml.org,2002:int': Kind.INT,
    'tag:yaml.org,2002:float': Kind.FLOAT,
    'tag:yaml.org,2002:str': Kind.STRING,
    'tag:yaml.org,2002:binary': Kind.BYTES,
    'tag:yaml.org,2002:timestamp': Kind.STRING,
}

# Local tags that declare a kind (empty scalar) or coerce a scalar to it
KIND_TAGS: Dict[str, Kind] = {
    '!string': Kind.STRING,
    '!bytes': Kind.BYTES,
    '!int': Kind.INT,
    '!float': Kind.FLOAT,
    '!number': Kind.NUMBER,
    '!bool': Kind.BOOL,
    '!list': Kind.LIST,
    '!struct': Kind.STRUCT,
    '!any': Kind.TOP,
}

DEFAULT_TAG = '!default'


class DocumentLoader:
    """
    Loads configuration documents from YAML.

    Every node of the resulting Value tree carries the position of the YAML
    node it was built from, so later resolution errors can point back at the
    source.
    """

    def load(self, document_path: Union[str, Path]) -> Value:
        """Load a document from a YAML file."""
        path = Path(document_path)
        try:
            text = path.read_text()
        except OSError as e:
            raise DocumentLoadError(f"Failed to read document: {e}", Position(str(path)))
        return self.loads(text, filename=str(path))

    def loads(self, text: str, filename: str = "") -> Value:
        """Load a document from YAML text."""
        loader = PreservingLoader(text)
        if filename:
            loader.name = filename
        try:
            try:
                node = loader.get_single_node()
            except yaml.YAMLError as e:
                raise DocumentLoadError(f"Failed to load document: {e}", Position(filename))

            if node is None or not isinstance(node, yaml.MappingNode):
                raise DocumentLoadError(
                    "Document must be a YAML object/dictionary",
                    self._position(node, filename) if node is not None else Position(filename),
                )
            return self._convert(loader, node, filename)
        finally:
            loader.dispose()

    def _position(self, node: yaml.Node, filename: str) -> Position:
        mark = node.start_mark
        return Position(filename, mark.line + 1, mark.column + 1)

    def _convert(self, loader: PreservingLoader, node: yaml.Node, filename: str) -> Value:
        pos = self._position(node, filename)

        if node.tag == DEFAULT_TAG:
            return self._convert_default(loader, node, filename)

        if isinstance(node, yaml.MappingNode):
            if node.tag not in ('tag:yaml.org,2002:map', '!struct'):
                raise DocumentLoadError(f"Unsupported tag {node.tag} on mapping", pos)
            fields = []
            seen = set()
            for key_node, value_node in node.value:
                if not isinstance(key_node, yaml.ScalarNode):
                    raise DocumentLoadError(
                        "Field labels must be scalars", self._position(key_node, filename)
                    )
                label = key_node.value
                if label in seen:
                    raise DocumentLoadError(
                        f"Duplicate field '{label}'", self._position(key_node, filename)
                    )
                seen.add(label)
                fields.append((label, self._convert(loader, value_node, filename)))
            return Value(Kind.STRUCT, tuple(fields), None, pos)

        if isinstance(node, yaml.SequenceNode):
            if node.tag not in ('tag:yaml.org,2002:seq', '!list'):
                raise DocumentLoadError(f"Unsupported tag {node.tag} on sequence", pos)
            items = tuple(self._convert(loader, item, filename) for item in node.value)
            return Value(Kind.LIST, items, None, pos)

        if node.tag in KIND_TAGS:
            return self._convert_tagged_scalar(node, KIND_TAGS[node.tag], pos)

        kind = _STANDARD_KINDS.get(node.tag)
        if kind is None:
            raise DocumentLoadError(f"Unsupported tag {node.tag}", pos)
        if node.tag == 'tag:yaml.org,2002:timestamp':
            return Value(Kind.STRING, node.value, None, pos)
        try:
            data = loader.construct_object(node, deep=True)
        except yaml.YAMLError as e:
            raise DocumentLoadError(f"Invalid {kind.value} value: {e}", pos)
        return Value(kind, data, None, pos)

    def _convert_tagged_scalar(self, node: yaml.ScalarNode, kind: Kind, pos: Position) -> Value:
        text = node.value
        if text == '' and node.style is None:
            return Value(kind, INCOMPLETE, None, pos)

        try:
            if kind == Kind.STRING:
                data = text
            elif kind == Kind.BYTES:
                data = text.encode('utf-8')
            elif kind == Kind.INT:
                data = int(text, 0)
            elif kind == Kind.FLOAT:
                data = float(text)
            elif kind == Kind.NUMBER:
                data = Decimal(text)
            elif kind == Kind.BOOL:
                if text.lower() not in ('true', 'false'):
                    raise ValueError(f"not a bool: {text}")
                data = text.lower() == 'true'
            else:
                raise DocumentLoadError(f"Tag {node.tag} does not take a scalar value", pos)
        except (ValueError, InvalidOperation) as e:
            raise DocumentLoadError(f"Invalid {kind.value} value {text!r}: {e}", pos)
        return Value(kind, data, None, pos)

    def _convert_default(self, loader: PreservingLoader, node: yaml.Node, filename: str) -> Value:
        """Build a declaration whose default is the tagged node's own value."""
        untagged: Optional[yaml.Node]
        if isinstance(node, yaml.ScalarNode):
            implicit = (True, False) if node.style is None else (False, True)
            tag = loader.resolve(yaml.ScalarNode, node.value, implicit)
            untagged = yaml.ScalarNode(tag, node.value, node.start_mark, node.end_mark, node.style)
        elif isinstance(node, yaml.SequenceNode):
            untagged = yaml.SequenceNode('tag:yaml.org,2002:seq', node.value, node.start_mark, node.end_mark)
        else:
            untagged = yaml.MappingNode('tag:yaml.org,2002:map', node.value, node.start_mark, node.end_mark)
        value = self._convert(loader, untagged, filename)
        return Value(value.kind, INCOMPLETE, value, value.pos)
