"""
Tests for the kind-tagged document model.
Covers kind inference, conversions, lookups, defaults and unification.
"""

from decimal import Decimal

import pytest

from execrunner.document import Kind, Value, declare, format_number, from_python
from execrunner.exceptions import KindMismatchError, Position


class TestFromPython:
    """Test building documents from plain Python data."""

    def test_scalar_kinds(self):
        """Each Python scalar maps to its document kind."""
        assert from_python("x").kind == Kind.STRING
        assert from_python(b"x").kind == Kind.BYTES
        assert from_python(3).kind == Kind.INT
        assert from_python(1.5).kind == Kind.FLOAT
        assert from_python(Decimal("2.5")).kind == Kind.NUMBER
        assert from_python(None).kind == Kind.NULL

    def test_bool_is_not_int(self):
        """Booleans keep the bool kind even though bool subclasses int."""
        value = from_python(True)
        assert value.kind == Kind.BOOL
        assert value.as_bool() is True

    def test_kind_becomes_declaration(self):
        """A Kind stands for a declared but valueless field."""
        value = from_python(Kind.STRING)
        assert value.kind == Kind.STRING
        assert not value.is_concrete

    def test_struct_keeps_field_order(self):
        """Struct fields stay in insertion order."""
        doc = from_python({"b": 1, "a": 2, "c": 3})
        assert [name for name, _ in doc.fields()] == ["b", "a", "c"]

    def test_unsupported_type(self):
        """Arbitrary objects are rejected."""
        with pytest.raises(TypeError):
            from_python(object())


class TestConversions:
    """Test the as_* conversion helpers."""

    def test_kind_mismatch_carries_position(self):
        """Conversions fail with the node position attached."""
        pos = Position("task.yaml", 3, 7)
        value = Value(Kind.INT, 42, None, pos)

        with pytest.raises(KindMismatchError) as exc_info:
            value.as_string()

        assert exc_info.value.pos == pos
        assert "task.yaml:3:7" in str(exc_info.value)
        assert "as string" in str(exc_info.value)

    def test_incomplete_value(self):
        """Declarations cannot be converted to concrete values."""
        with pytest.raises(KindMismatchError, match="incomplete value string"):
            declare(Kind.STRING).as_string()

    def test_as_number_accepts_numeric_kinds(self):
        """Int, float and number kinds all convert with as_number."""
        assert from_python(3).as_number() == 3
        assert from_python(1.5).as_number() == 1.5
        assert from_python(Decimal("7")).as_number() == Decimal("7")
        with pytest.raises(KindMismatchError):
            from_python("3").as_number()

    def test_reader_over_string_and_bytes(self):
        """reader() opens binary streams over string and bytes values."""
        assert from_python("héllo").reader().read() == "héllo".encode("utf-8")
        assert from_python(b"\x00\x01").reader().read() == b"\x00\x01"

    def test_reader_rejects_other_kinds(self):
        """reader() fails for non text values and declarations."""
        with pytest.raises(KindMismatchError):
            from_python(12).reader()
        with pytest.raises(KindMismatchError):
            declare(Kind.BYTES).reader()


class TestLookupAndDefaults:
    """Test path lookup, defaults and unification."""

    def test_lookup_nested_path(self):
        """Dotted paths walk nested structs."""
        doc = from_python({"a": {"b": {"c": "deep"}}})
        assert doc.lookup("a.b.c").as_string() == "deep"

    def test_lookup_missing_returns_none(self):
        """Absent fields and walks through non-structs yield None."""
        doc = from_python({"a": "text"})
        assert doc.lookup("missing") is None
        assert doc.lookup("a.b") is None

    def test_default_applies_to_declarations(self):
        """default() returns the declared default or the value itself."""
        declared = declare(Kind.STRING, default="fallback")
        assert declared.default().as_string() == "fallback"

        concrete = from_python("given")
        assert concrete.default() is concrete

    def test_unify_fills_missing_fields(self):
        """Schema fields appear only where the document has none."""
        doc = from_python({"cmd": "ls", "mustSucceed": False})
        schema = from_python({"mustSucceed": True, "dir": "/tmp"})

        unified = doc.unify(schema)

        assert unified.lookup("mustSucceed").as_bool() is False
        assert unified.lookup("dir").as_string() == "/tmp"
        assert [name for name, _ in unified.fields()] == ["cmd", "mustSucceed", "dir"]

    def test_unify_without_schema(self):
        """Unifying with no schema returns the document unchanged."""
        doc = from_python({"cmd": "ls"})
        assert doc.unify(None) is doc

    def test_to_python_round_trip(self):
        """Concrete trees convert back to plain data."""
        data = {"cmd": ["echo", "hi"], "env": {"A": 1}, "stdin": None}
        assert from_python(data).to_python() == data


class TestFormatNumber:
    """Test canonical decimal formatting for numbers."""

    def test_integers_and_floats(self):
        assert format_number(42) == "42"
        assert format_number(-7) == "-7"
        assert format_number(1.5) == "1.5"

    def test_no_exponent(self):
        """Large and small floats are written out without an exponent."""
        assert format_number(1e20) == "100000000000000000000"
        assert format_number(1e-7) == "0.0000001"

    def test_decimal(self):
        assert format_number(Decimal("2.50")) == "2.50"
