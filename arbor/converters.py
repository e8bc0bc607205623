"""
Leaf value converters.

Values whose type has a registered converter are written as node text
instead of being walked field by field. Each Mapper owns its own
ConverterRegistry, pre-populated with converters for the common scalar
types; more can be added with ConverterRegistry.register().

To add a converter for a new type:
    >>> class PointConverter(ValueConverter):
    ...     def to_text(self, value):
    ...         return f"{value.x},{value.y}"
    ...     def from_text(self, text, kind):
    ...         x, y = text.split(",")
    ...         return kind(int(x), int(y))
    >>> mapper.converters.register(Point, PointConverter())
"""

from __future__ import annotations

import base64
import datetime
import decimal
import enum
import pathlib
import uuid

from arbor.config import Freezable


class ValueConverter:
    """Converts one family of leaf values to and from node text."""

    def to_text(self, value) -> str:
        raise NotImplementedError

    def from_text(self, text: str | None, kind: type):
        raise NotImplementedError


# =============================================================================
# Built-in Converters
# =============================================================================


class StringConverter(ValueConverter):
    def to_text(self, value) -> str:
        return value

    def from_text(self, text, kind):
        text = text or ""
        return text if kind is str else kind(text)


class IntConverter(ValueConverter):
    def to_text(self, value) -> str:
        return str(int(value))

    def from_text(self, text, kind):
        return kind(int(text))


class FloatConverter(ValueConverter):
    def to_text(self, value) -> str:
        return repr(value)

    def from_text(self, text, kind):
        return kind(text)


class BoolConverter(ValueConverter):
    def to_text(self, value) -> str:
        return "true" if value else "false"

    def from_text(self, text, kind):
        token = (text or "").strip().lower()
        if token not in ("true", "false"):
            raise ValueError(f"'{text}' is not a boolean, expected 'true' or 'false'")
        return token == "true"


class IsoFormatConverter(ValueConverter):
    """datetime, date and time round-trip through ISO 8601."""

    def to_text(self, value) -> str:
        return value.isoformat()

    def from_text(self, text, kind):
        return kind.fromisoformat(text.strip())


class StrConstructorConverter(ValueConverter):
    """Types whose str() output is accepted by their constructor."""

    def to_text(self, value) -> str:
        return str(value)

    def from_text(self, text, kind):
        return kind(text.strip())


class BytesConverter(ValueConverter):
    def to_text(self, value) -> str:
        return base64.b64encode(bytes(value)).decode("ascii")

    def from_text(self, text, kind):
        return kind(base64.b64decode(text or ""))


class EnumConverter(ValueConverter):
    """Enum members are written by member name."""

    def to_text(self, value) -> str:
        return value.name

    def from_text(self, text, kind):
        return kind[text.strip()]


# =============================================================================
# Registry
# =============================================================================


class ConverterRegistry(Freezable):
    """
    Maps Python types to leaf converters.

    Lookup tries the exact type, then Enum for enum classes, then the rest
    of the MRO, so a subclass of a registered type uses its base's converter.
    """

    def __init__(self):
        self._table: dict[type, ValueConverter] = {}
        self.register(str, StringConverter())
        self.register(int, IntConverter())
        self.register(bool, BoolConverter())
        self.register(float, FloatConverter())
        self.register((complex, decimal.Decimal, uuid.UUID, pathlib.PurePath), StrConstructorConverter())
        self.register((datetime.datetime, datetime.date, datetime.time), IsoFormatConverter())
        self.register((bytes, bytearray), BytesConverter())
        self.register(enum.Enum, EnumConverter())

    def register(self, python_type: type | tuple[type, ...], converter: ValueConverter) -> None:
        """Register a converter for one or more types. Later registrations win."""
        self._check_mutable("register a converter")
        if isinstance(python_type, tuple):
            for t in python_type:
                self._table[t] = converter
        else:
            self._table[python_type] = converter

    def lookup(self, kind: type) -> ValueConverter | None:
        if not isinstance(kind, type):
            return None
        if kind in self._table:
            return self._table[kind]
        # IntEnum and friends list int before Enum in their MRO
        if issubclass(kind, enum.Enum) and enum.Enum in self._table:
            return self._table[enum.Enum]
        for base in kind.__mro__:
            if base in self._table:
                return self._table[base]
        return None

    def is_leaf(self, kind: type) -> bool:
        return self.lookup(kind) is not None
