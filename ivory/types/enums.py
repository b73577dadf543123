"""Contains the enumerated types."""

from __future__ import annotations

import enum
import warnings
from collections.abc import Sequence
from typing import Any, Optional

from ..exceptions import EnumLabelWarning, ParseError
from ..lang.sql import quote_literal
from ..value import EnumItem
from .base import TotallyOrderedType, TypeBase


class EnumType(TypeBase, TotallyOrderedType):
    """An enum type whose values are represented by `EnumItem` objects.

    Serializing a label which is not defined by the type (or an item of another enum type) only emits an
    `EnumLabelWarning`, leaving the final decision to the server. Plain strings are accepted as labels as well.

    Parameters
    ----------
    schema_name : str
        The schema of the enum type
    name : str
        The name of the enum type
    labels : Sequence[str]
        The labels in the order of their definition
    """

    def __init__(self, schema_name: str, name: str, labels: Sequence[str]) -> None:
        super().__init__(schema_name, name)
        self._labels = list(labels)
        self._ordinals = {label: i for i, label in enumerate(self._labels)}

    @property
    def labels(self) -> list[str]:
        return list(self._labels)

    def item(self, label: str) -> EnumItem:
        """Provides the item of the given label.

        Raises
        ------
        KeyError
            If there is no such label
        """
        if label not in self._ordinals:
            raise KeyError(f"Enum type {self.qualified_name} has no label '{label}'")
        return EnumItem(self.schema_name, self.name, label, self._ordinals[label])

    def parse_value(self, text: Optional[str]) -> Optional[EnumItem]:
        if text is None:
            return None
        if text not in self._ordinals:
            warnings.warn(f"Value '{text}' is not among the known labels of enum type {self.qualified_name}",
                          category=EnumLabelWarning)
        return EnumItem(self.schema_name, self.name, text, self._ordinals.get(text))

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, EnumItem):
            if value.schema_name != self.schema_name or value.type_name != self.name:
                warnings.warn(f"Serializing an item of enum type {value.schema_name}.{value.type_name} as a value of "
                              f"enum type {self.qualified_name}", category=EnumLabelWarning)
            label = value.label
        elif isinstance(value, enum.Enum):
            label = str(value.value)
        else:
            label = str(value)
        if label not in self._ordinals:
            warnings.warn(f"Value '{label}' is not among the known labels of enum type {self.qualified_name}",
                          category=EnumLabelWarning)
        return self.type_cast_expr(strict_type, quote_literal(label))

    def compare_values(self, a: Any, b: Any) -> Optional[int]:
        if a is None or b is None:
            return None
        return -1 if a < b else (1 if b < a else 0)


class StrictEnumType(TypeBase, TotallyOrderedType):
    """An enum type mapped onto a Python `enum.Enum` class.

    Labels of the PostgreSQL type correspond to the values of the enum members. The order of the members determines the
    order of values. Unknown labels are rejected in both directions.

    Parameters
    ----------
    schema_name : str
        The schema of the enum type
    name : str
        The name of the enum type
    enum_class : type[enum.Enum]
        The Python enum whose member values are the labels
    """

    def __init__(self, schema_name: str, name: str, enum_class: type[enum.Enum]) -> None:
        super().__init__(schema_name, name)
        self._enum_class = enum_class
        self._members = {str(member.value): member for member in enum_class}
        self._ordinals = {member: i for i, member in enumerate(enum_class)}

    @property
    def enum_class(self) -> type[enum.Enum]:
        return self._enum_class

    def parse_value(self, text: Optional[str]) -> Optional[enum.Enum]:
        if text is None:
            return None
        member = self._members.get(text)
        if member is None:
            raise ParseError(f"Value '{text}' is not a label of enum {self._enum_class.__name__}")
        return member

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, self._enum_class):
            label = str(value.value)
        elif isinstance(value, EnumItem) and value.label in self._members:
            label = value.label
        elif isinstance(value, str) and value in self._members:
            label = value
        else:
            raise self.invalid_value_error(value)
        return self.type_cast_expr(strict_type, quote_literal(label))

    def compare_values(self, a: Any, b: Any) -> Optional[int]:
        if a is None or b is None:
            return None
        return self._ordinals[a] - self._ordinals[b]
