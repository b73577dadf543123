"""Contains the composite types, i.e. row types of tables and user-defined *CREATE TYPE ... AS (...)* types."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional

from ..exceptions import InvalidStateError, ParseError
from ..value import Composite
from .base import ConnectionDependentObject, TotallyOrderedType, Type, TypeBase, is_totally_ordered

if TYPE_CHECKING:
    from ..connection import Connection


def parse_row_text(text: str) -> list[Optional[str]]:
    """Splits the external representation of a row value into the texts of its attributes.

    Attributes are separated by commas and may be enclosed in double quotes. Within quotes, a doubled double quote and
    a backslash-escaped character stand for the character itself. An empty unquoted attribute is *NULL*.

    Parameters
    ----------
    text : str
        The row text, e.g. ``(1,"a b",)``

    Returns
    -------
    list[Optional[str]]
        The attribute texts, *None* for *NULL* attributes. The row ``()`` gives an empty list.

    Raises
    ------
    ParseError
        If the text is malformed
    """
    text = text.strip()
    if len(text) < 2 or text[0] != "(" or text[-1] != ")":
        raise ParseError(f"Invalid row value: '{text}'")
    if text == "()":
        return []

    attributes: list[Optional[str]] = []
    pos = 1
    end = len(text) - 1
    while True:
        chars: list[str] = []
        quoted = False
        while pos < end and text[pos] not in ",":
            c = text[pos]
            if c == '"':
                quoted = True
                pos += 1
                while True:
                    if pos >= end:
                        raise ParseError("Unterminated quoted attribute", pos)
                    c = text[pos]
                    if c == '"' and pos + 1 < end and text[pos + 1] == '"':
                        chars.append('"')
                        pos += 2
                    elif c == '"':
                        pos += 1
                        break
                    elif c == "\\" and pos + 1 < end:
                        chars.append(text[pos + 1])
                        pos += 2
                    else:
                        chars.append(c)
                        pos += 1
                if pos < end and text[pos] != ",":
                    raise ParseError(f"Expecting ',' instead of '{text[pos]}'", pos)
            elif c == "\\" and pos + 1 < end:
                chars.append(text[pos + 1])
                pos += 2
            else:
                chars.append(c)
                pos += 1

        attributes.append("".join(chars) if chars or quoted else None)
        if pos >= end:
            return attributes
        pos += 1  # the comma


class RowTypeBase(TypeBase, TotallyOrderedType):
    """Common parts of the composite and record types: serialization of row constructors and row comparison."""

    @staticmethod
    def _row_expr(items: Sequence[str]) -> str:
        # a parenthesized list with fewer than two items would not be a row constructor
        if len(items) < 2:
            return "ROW(" + ",".join(items) + ")"
        return "(" + ",".join(items) + ")"

    def _attribute_types_for(self, values: Sequence[Any]) -> Sequence[Optional[Type]]:
        raise NotImplementedError

    def compare_values(self, a: Any, b: Any) -> Optional[int]:
        if a is None or b is None:
            return None
        a_values = list(a.values()) if isinstance(a, Mapping) else list(a)
        b_values = list(b.values()) if isinstance(b, Mapping) else list(b)
        for attr_type, x, y in zip(self._attribute_types_for(a_values), a_values, b_values):
            if x is None or y is None:
                # NULLs sort after all other values
                cmp = (x is None) - (y is None)
            elif attr_type is not None and is_totally_ordered(attr_type):
                cmp = attr_type.compare_values(x, y)
            else:
                cmp = (x > y) - (x < y)
            if cmp:
                return cmp
        return len(a_values) - len(b_values)


class CompositeType(RowTypeBase):
    """A composite type with named and typed attributes.

    The attributes are added one by one using `add_attribute`. Values are parsed into `Composite` objects. For
    serialization, `Composite` objects, other mappings (keyed by attribute names) and sequences (attributes in the order
    of the type) are accepted.
    """

    def __init__(self, schema_name: str, name: str) -> None:
        super().__init__(schema_name, name)
        self._attributes: dict[str, Type] = {}

    def add_attribute(self, name: str, type_: Type) -> None:
        """Appends a new attribute to the type.

        Raises
        ------
        ValueError
            If the name is empty or an attribute of the same name already exists
        """
        if not name:
            raise ValueError("No attribute name given")
        if name in self._attributes:
            raise ValueError(f"Attribute '{name}' already defined on composite type {self.qualified_name}")
        self._attributes[name] = type_

    @property
    def attributes(self) -> dict[str, Type]:
        return dict(self._attributes)

    @property
    def attribute_names(self) -> list[str]:
        return list(self._attributes)

    def parse_value(self, text: Optional[str]) -> Optional[Composite]:
        if text is None:
            return None
        raw_values = parse_row_text(text)
        if not raw_values and len(self._attributes) == 1:
            raw_values = [None]
        if len(raw_values) != len(self._attributes):
            raise ParseError(f"Value '{text}' has {len(raw_values)} attributes, but composite type "
                             f"{self.qualified_name} defines {len(self._attributes)}")
        return Composite((name, attr_type.parse_value(raw))
                         for (name, attr_type), raw in zip(self._attributes.items(), raw_values))

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, Mapping):
            unknown = [key for key in value if key not in self._attributes]
            if unknown:
                raise ValueError(f"Composite type {self.qualified_name} has no attribute(s) {', '.join(unknown)}")
            values = [value.get(name) for name in self._attributes]
        elif isinstance(value, Sequence) and not isinstance(value, str):
            if len(value) != len(self._attributes):
                raise self.invalid_value_error(value)
            values = list(value)
        else:
            raise self.invalid_value_error(value)

        items = [attr_type.serialize_value(v) for attr_type, v in zip(self._attributes.values(), values)]
        return self.type_cast_expr(strict_type, self._row_expr(items))

    def _attribute_types_for(self, values: Sequence[Any]) -> Sequence[Optional[Type]]:
        return list(self._attributes.values())


class RecordType(RowTypeBase, ConnectionDependentObject):
    """The *record* pseudo-type of anonymous rows.

    Since the attribute types are not known, attribute values are parsed into strings and returned as a tuple. Values are
    serialized by inferring the type of each attribute value, which requires the type dictionary of the connection this
    type is attached to.
    """

    def __init__(self, schema_name: str, name: str) -> None:
        super().__init__(schema_name, name)
        self._connection: Optional[Connection] = None

    def attach_to_connection(self, connection: Connection) -> None:
        self._connection = connection

    def detach_from_connection(self) -> None:
        self._connection = None

    def parse_value(self, text: Optional[str]) -> Optional[tuple[Optional[str], ...]]:
        if text is None:
            return None
        return tuple(parse_row_text(text))

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, Mapping):
            values = list(value.values())
        elif isinstance(value, Sequence) and not isinstance(value, str):
            values = list(value)
        else:
            raise self.invalid_value_error(value)
        if self._connection is None:
            raise InvalidStateError("Record values can only be serialized by types attached to a connection")

        type_dictionary = self._connection.type_dictionary
        items = ["NULL" if v is None else type_dictionary.require_type_by_value(v).serialize_value(v) for v in values]
        return self._row_expr(items)

    def _attribute_types_for(self, values: Sequence[Any]) -> Sequence[Optional[Type]]:
        return [None] * len(values)
