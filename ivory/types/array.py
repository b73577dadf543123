"""Contains the array types.

PostgreSQL arrays are represented by (nested) Python lists. Arrays are 1-based by default. Arrays with different
subscripts are represented by `PgArray` objects which remember the lower bound of each dimension.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from ..exceptions import ParseError
from ..lang.sql import quote_literal
from ..value import PgArray
from .base import Type, TypeBase

_BoundsDecorationPattern = re.compile(r"\s*((?:\[\s*-?\d+\s*:\s*-?\d+\s*\])+)\s*=")
_SingleBoundPattern = re.compile(r"\[\s*(-?\d+)\s*:\s*(-?\d+)\s*\]")
_QuotedLiteralPattern = re.compile(r"^'((?:[^']|'')*)'$")
_PlainTokenPattern = re.compile(r"^[\w.+-]+$")


def _is_nested(value: Any) -> bool:
    return isinstance(value, list)


class ArrayType(TypeBase):
    """Array of values of a single element type.

    Parsing understands the full external representation of arrays: the optional subscript decoration (e.g.
    ``[0:2]={1,2,3}``), quoted elements with backslash escapes, unquoted *NULL* elements and any number of dimensions.
    Multi-dimensional arrays have to be rectangular.

    Values are serialized as array literals, e.g. ``'{1,NULL,3}'::pg_catalog.int4[]``. Elements which do not have a plain
    literal representation (such as composite values) are serialized using the *ARRAY[...]* constructor instead.

    Parameters
    ----------
    element_type : Type
        The type of the array elements
    delimiter : str, optional
        The character separating the elements in the external representation. This is a comma for all types but *box*.
    plain_mode : bool, optional
        Whether to always parse arrays into plain lists, dropping any non-standard subscripts. By default, arrays with
        lower bounds other than 1 are parsed into `PgArray` objects.
    """

    def __init__(self, element_type: Type, delimiter: str = ",", *, plain_mode: bool = False) -> None:
        super().__init__(element_type.schema_name, f"{element_type.name}[]", "[]")
        self._element_type = element_type
        self._delimiter = delimiter
        self._plain_mode = plain_mode

    @property
    def element_type(self) -> Type:
        return self._element_type

    @property
    def delimiter(self) -> str:
        return self._delimiter

    def parse_value(self, text: Optional[str]) -> Any:
        if text is None:
            return None

        bounds: list[tuple[int, int]] = []
        pos = 0
        decoration = _BoundsDecorationPattern.match(text)
        if decoration:
            bounds = [(int(lo), int(hi)) for lo, hi in _SingleBoundPattern.findall(decoration.group(1))]
            pos = decoration.end()

        items, pos = self._parse_level(text, pos)
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos < len(text):
            raise ParseError(f"Unexpected trailing characters in array value: '{text[pos:]}'", pos)

        dimensions = self._dimensions(items)
        if bounds:
            if len(bounds) != len(dimensions) and items:
                raise ParseError(f"Array bounds {bounds} do not match the {len(dimensions)}-dimensional value")
            for (lo, hi), length in zip(bounds, dimensions):
                if hi - lo + 1 != length:
                    raise ParseError(f"Array bounds [{lo}:{hi}] do not match the number of items ({length})")

        parsed = self._parse_items(items)
        if bounds and not self._plain_mode and any(lo != 1 for lo, _ in bounds):
            return PgArray(parsed, [lo for lo, _ in bounds])
        return parsed

    def _parse_level(self, text: str, pos: int) -> tuple[list, int]:
        """Parses a single (possibly nested) level of braces, starting at `pos`. Elements are kept as raw strings."""
        pos = self._skip_whitespace(text, pos)
        if pos >= len(text) or text[pos] != "{":
            raise ParseError("Expecting '{' to open an array", pos)
        pos = self._skip_whitespace(text, pos + 1)
        items: list = []
        if pos < len(text) and text[pos] == "}":
            return items, pos + 1

        while True:
            pos = self._skip_whitespace(text, pos)
            if pos >= len(text):
                raise ParseError("Unterminated array value", pos)
            if text[pos] == "{":
                sub_items, pos = self._parse_level(text, pos)
                items.append(sub_items)
            elif text[pos] == '"':
                element, pos = self._parse_quoted(text, pos)
                items.append(element)
            else:
                element, pos = self._parse_unquoted(text, pos)
                items.append(element)

            pos = self._skip_whitespace(text, pos)
            if pos >= len(text):
                raise ParseError("Unterminated array value", pos)
            if text[pos] == self._delimiter:
                pos += 1
            elif text[pos] == "}":
                return items, pos + 1
            else:
                raise ParseError(f"Expecting '{self._delimiter}' or '}}' instead of '{text[pos]}'", pos)

    @staticmethod
    def _skip_whitespace(text: str, pos: int) -> int:
        while pos < len(text) and text[pos].isspace():
            pos += 1
        return pos

    @staticmethod
    def _parse_quoted(text: str, pos: int) -> tuple[str, int]:
        chars: list[str] = []
        pos += 1
        while pos < len(text):
            c = text[pos]
            if c == "\\" and pos + 1 < len(text):
                chars.append(text[pos + 1])
                pos += 2
            elif c == '"':
                return "".join(chars), pos + 1
            else:
                chars.append(c)
                pos += 1
        raise ParseError("Unterminated quoted array element", pos)

    def _parse_unquoted(self, text: str, pos: int) -> tuple[Optional[str], int]:
        chars: list[str] = []
        start = pos
        while pos < len(text) and text[pos] not in (self._delimiter, "}"):
            if text[pos] == "{":
                raise ParseError("Unexpected '{' inside an array element", pos)
            if text[pos] == "\\" and pos + 1 < len(text):
                chars.append(text[pos + 1])
                pos += 2
            else:
                chars.append(text[pos])
                pos += 1
        element = "".join(chars).rstrip()
        if not element:
            raise ParseError("Empty unquoted array element", start)
        if text[start:pos].strip().upper() == "NULL":
            return None, pos
        return element, pos

    def _dimensions(self, items: list) -> list[int]:
        """Computes the length of each dimension, checking that the array is rectangular."""
        if not items:
            return [0]
        nested = [_is_nested(item) for item in items]
        if not any(nested):
            return [len(items)]
        if not all(nested):
            raise ParseError("Array elements are mixed with sub-arrays")
        sub_dimensions = [self._dimensions(item) for item in items]
        if any(dims != sub_dimensions[0] for dims in sub_dimensions):
            raise ParseError("Multidimensional arrays must have sub-arrays with matching dimensions")
        return [len(items)] + sub_dimensions[0]

    def _parse_items(self, items: list) -> list:
        return [self._parse_items(item) if _is_nested(item) else self._element_type.parse_value(item)
                for item in items]

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if not _is_nested(value):
            if isinstance(value, tuple):
                value = list(value)
            else:
                raise self.invalid_value_error(value)

        dimensions = self._serialization_dimensions(value)
        lower_bounds = getattr(value, "lower_bounds", None)
        decoration = ""
        if lower_bounds and any(lo != 1 for lo in lower_bounds) and value:
            if len(lower_bounds) != len(dimensions):
                raise ValueError(f"Array has {len(dimensions)} dimensions but {len(lower_bounds)} lower bounds")
            decoration = "".join(f"[{lo}:{lo + length - 1}]" for lo, length in zip(lower_bounds, dimensions)) + "="

        try:
            literal = decoration + self._literal_text(value)
            return self.type_cast_expr(strict_type, quote_literal(literal))
        except _NoLiteralRepresentation:
            if decoration:
                raise ValueError("Arrays with custom subscripts can only hold elements with a literal representation")
            return self.type_cast_expr(strict_type, self._constructor_expr(value))

    def _serialization_dimensions(self, value: list) -> list[int]:
        if not value:
            return [0]
        nested = [_is_nested(item) for item in value]
        if not any(nested):
            return [len(value)]
        if not all(nested):
            raise ValueError("Invalid array value: items are mixed with sub-arrays")
        sub_dimensions = [self._serialization_dimensions(item) for item in value]
        if any(dims != sub_dimensions[0] for dims in sub_dimensions):
            raise ValueError("Invalid array value: the array is not rectangular, sub-arrays differ in their dimensions")
        return [len(value)] + sub_dimensions[0]

    def _literal_text(self, value: list) -> str:
        parts: list[str] = []
        for item in value:
            if _is_nested(item):
                parts.append(self._literal_text(item))
            elif item is None:
                parts.append("NULL")
            else:
                parts.append(self._quote_element(self._element_text(item)))
        return "{" + self._delimiter.join(parts) + "}"

    def _element_text(self, item: Any) -> str:
        expr = self._element_type.serialize_value(item, False)
        quoted = _QuotedLiteralPattern.match(expr)
        if quoted:
            return quoted.group(1).replace("''", "'")
        if _PlainTokenPattern.match(expr):
            return expr
        raise _NoLiteralRepresentation(expr)

    def _quote_element(self, text: str) -> str:
        needs_quotes = (not text or text.upper() == "NULL"
                        or any(c in text for c in ('{', '}', '"', '\\', self._delimiter))
                        or any(c.isspace() for c in text))
        if not needs_quotes:
            return text
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'

    def _constructor_expr(self, value: list) -> str:
        items = [self._constructor_expr(item) if _is_nested(item) else self._element_type.serialize_value(item)
                 for item in value]
        return "ARRAY[" + ",".join(items) + "]"


class _NoLiteralRepresentation(Exception):
    """Signals that an array element cannot be written inside an array literal."""
