"""Contains the range types, such as *int4range*, *tstzrange* or user-defined ranges."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Optional

from ..exceptions import IncomparableError, ParseError
from ..lang.sql import quote_literal
from ..value import Range, RangeCanonicalFunc
from .base import TotallyOrderedType, Type, TypeBase


def _split_bound_text(text: str, pos: int, terminators: str) -> tuple[Optional[str], int]:
    chars: list[str] = []
    quoted = False
    while pos < len(text) and text[pos] not in terminators:
        c = text[pos]
        if c == '"':
            quoted = True
            pos += 1
            while True:
                if pos >= len(text):
                    raise ParseError("Unterminated quoted range bound", pos)
                c = text[pos]
                if c == '"' and pos + 1 < len(text) and text[pos + 1] == '"':
                    chars.append('"')
                    pos += 2
                elif c == '"':
                    pos += 1
                    break
                elif c == "\\" and pos + 1 < len(text):
                    chars.append(text[pos + 1])
                    pos += 2
                else:
                    chars.append(c)
                    pos += 1
        elif c == "\\" and pos + 1 < len(text):
            chars.append(text[pos + 1])
            pos += 2
        else:
            chars.append(c)
            pos += 1
    bound = "".join(chars)
    if not quoted:
        bound = bound.strip()
    return (bound if bound or quoted else None), pos


def parse_range_text(text: str) -> Optional[tuple[Optional[str], Optional[str], bool, bool]]:
    """Splits the external representation of a range into its bounds.

    Returns
    -------
    Optional[tuple[Optional[str], Optional[str], bool, bool]]
        The lower and upper bound texts (*None* for unbounded ends) and whether they are inclusive. *None* is returned for
        the empty range.
    """
    stripped = text.strip()
    if stripped.lower() == "empty":
        return None
    if not stripped or stripped[0] not in "[(":
        raise ParseError(f"Invalid range value: '{text}'", 0)
    lower_inc = stripped[0] == "["

    lower, pos = _split_bound_text(stripped, 1, ",")
    if pos >= len(stripped):
        raise ParseError(f"Expecting ',' in range value '{text}'", pos)
    upper, pos = _split_bound_text(stripped, pos + 1, ")]")
    if pos != len(stripped) - 1:
        raise ParseError(f"Invalid range value: '{text}'", pos)
    upper_inc = stripped[pos] == "]"
    return lower, upper, lower_inc, upper_inc


class RangeType(TypeBase, TotallyOrderedType):
    """A range over a totally ordered subtype.

    Values are parsed into `Range` objects. For serialization, `Range` objects are accepted, as well as sequences of two
    items which are taken as a range with both bounds inclusive. Ranges are serialized using the constructor function of
    the range type, e.g. ``pg_catalog.int4range(1,5)`` or ``pg_catalog.numrange(1.5,3,'(]')``.

    Parameters
    ----------
    schema_name : str
        The schema of the range type
    name : str
        The name of the range type
    subtype : Type
        The type of the range bounds
    canonical_func : Optional[RangeCanonicalFunc], optional
        The canonical function of discrete ranges
    """

    def __init__(self, schema_name: str, name: str, subtype: Type,
                 canonical_func: Optional[RangeCanonicalFunc] = None) -> None:
        super().__init__(schema_name, name)
        self._subtype = subtype
        self._canonical_func = canonical_func

    @property
    def subtype(self) -> Type:
        return self._subtype

    @property
    def canonical_func(self) -> Optional[RangeCanonicalFunc]:
        return self._canonical_func

    def _compare_bounds(self, a: Any, b: Any) -> int:
        cmp = self._subtype.compare_values(a, b)
        if cmp is None:
            raise IncomparableError(f"Cannot compare {a!r} and {b!r}")
        return cmp

    def create_range(self, lower: Any, upper: Any, bounds: str | bool = "[)",
                     upper_inc: Optional[bool] = None) -> Range:
        """Creates a range of this type, i.e. using the comparison and canonical function of this type."""
        return Range.from_bounds(lower, upper, bounds, upper_inc, canonical=self._canonical_func,
                                 comparator=self._compare_bounds)

    def parse_value(self, text: Optional[str]) -> Optional[Range]:
        if text is None:
            return None
        parts = parse_range_text(text)
        if parts is None:
            return Range.empty(canonical=self._canonical_func, comparator=self._compare_bounds)
        lower, upper, lower_inc, upper_inc = parts
        return self.create_range(self._subtype.parse_value(lower), self._subtype.parse_value(upper), lower_inc, upper_inc)

    def _to_range(self, value: Any) -> Range:
        if isinstance(value, Range):
            return value
        if isinstance(value, Sequence) and not isinstance(value, str) and len(value) == 2:
            return self.create_range(value[0], value[1], "[]")
        raise self.invalid_value_error(value)

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        range_ = self._to_range(value)
        if range_.is_empty:
            return self.type_cast_expr(strict_type, quote_literal("empty"))
        args = [self._subtype.serialize_value(range_.lower), self._subtype.serialize_value(range_.upper)]
        if range_.bounds_spec != "[)":
            args.append(quote_literal(range_.bounds_spec))
        return f"{self._sql_type_name()}({','.join(args)})"

    def compare_values(self, a: Any, b: Any) -> Optional[int]:
        if a is None or b is None:
            return None
        if a.is_empty or b.is_empty:
            return int(b.is_empty) - int(a.is_empty) if not (a.is_empty and b.is_empty) else 0

        if a.lower is None or b.lower is None:
            cmp = int(b.lower is None) - int(a.lower is None)
        else:
            cmp = self._compare_bounds(a.lower, b.lower)
        if cmp == 0 and a.lower is not None:
            cmp = int(b.lower_inc) - int(a.lower_inc)
        if cmp:
            return cmp

        if a.upper is None or b.upper is None:
            cmp = int(a.upper is None) - int(b.upper is None)
        else:
            cmp = self._compare_bounds(a.upper, b.upper)
        if cmp == 0 and a.upper is not None:
            cmp = int(a.upper_inc) - int(b.upper_inc)
        return cmp


class UnorderedRangeType(RangeType):
    """A range over a subtype that Ivory cannot compare.

    Values coming from the server are parsed as-is, without checking their bounds. Ranges cannot be constructed from
    sequences and cannot be compared.
    """

    def _compare_bounds(self, a: Any, b: Any) -> int:
        raise IncomparableError(f"Values of type {self._subtype.qualified_name} cannot be compared")

    def parse_value(self, text: Optional[str]) -> Optional[Range]:
        if text is None:
            return None
        parts = parse_range_text(text)
        if parts is None:
            return Range.empty(comparator=self._compare_bounds)
        lower, upper, lower_inc, upper_inc = parts
        return Range(False, self._subtype.parse_value(lower), self._subtype.parse_value(upper),
                     lower_inc and lower is not None, upper_inc and upper is not None, None, self._compare_bounds)

    def _to_range(self, value: Any) -> Range:
        if isinstance(value, Range):
            return value
        raise self.invalid_value_error(value)

    def compare_values(self, a: Any, b: Any) -> Optional[int]:
        raise IncomparableError(f"Ranges of type {self.qualified_name} cannot be compared")
