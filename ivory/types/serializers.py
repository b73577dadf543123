"""Contains the value serializers provided by Ivory itself, which are used in SQL patterns, e.g. ``%ident`` or ``%like_``.

These serializers are no PostgreSQL types. They produce SQL code from Python values which is useful to compose
statements: identifiers, raw SQL snippets, *LIKE* patterns and nested statements.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Optional, Self

from ..lang.sql import quote_ident, quote_literal
from ..query import CommandRecipe, RelationRecipe
from .base import ValueSerializer

if TYPE_CHECKING:
    from .dictionary import TypeDictionary


class SqlSerializer(ValueSerializer):
    """Inserts the value as a raw piece of SQL code. Use with care, the value is not checked in any way."""

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        return str(value)


class IdentSerializer(ValueSerializer):
    """Serializes the value as an SQL identifier.

    Sequences of names are turned into qualified identifiers, e.g. ``("public", "Person")`` gives ``public."Person"``.

    Parameters
    ----------
    always_quote : bool, optional
        Whether to quote all identifiers, even if not necessary
    """

    def __init__(self, always_quote: bool = False) -> None:
        self._always_quote = always_quote

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            raise ValueError("Expecting an identifier, None encountered.")
        if isinstance(value, Sequence) and not isinstance(value, str):
            return ".".join(quote_ident(str(part), always=self._always_quote) for part in value)
        return quote_ident(str(value), always=self._always_quote)


class LikeMode(enum.Enum):
    """Where to put the wildcards of a *LIKE* pattern."""
    Exact = ""
    Prefix = "prefix"
    Suffix = "suffix"
    Infix = "infix"


class LikeSerializer(ValueSerializer):
    """Serializes the value as a string literal suitable for the *LIKE* operator.

    The special characters ``%`` and ``_`` as well as the escape character ``\\`` are escaped, such that they match
    literally. Depending on the mode, a ``%`` wildcard is added at the beginning and/or the end of the pattern, e.g. the
    prefix mode matches all strings starting with the value.
    """

    def __init__(self, mode: LikeMode = LikeMode.Exact) -> None:
        self._mode = mode

    @property
    def mode(self) -> LikeMode:
        return self._mode

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        escaped = str(value).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        prefix = "%" if self._mode in (LikeMode.Suffix, LikeMode.Infix) else ""
        suffix = "%" if self._mode in (LikeMode.Prefix, LikeMode.Infix) else ""
        return quote_literal(f"{prefix}{escaped}{suffix}")


class TypeDictionaryDependentSerializer(ValueSerializer):
    """Serializers which need a type dictionary to do their work.

    Each type dictionary gets its own copy of the serializer, bound to that dictionary by `bind`.
    """

    def __init__(self, type_dictionary: Optional[TypeDictionary] = None) -> None:
        self._type_dictionary = type_dictionary

    def bind(self, type_dictionary: TypeDictionary) -> Self:
        return type(self)(type_dictionary)

    def _require_dictionary(self) -> TypeDictionary:
        if self._type_dictionary is None:
            raise ValueError(f"{type(self).__name__} is not bound to a type dictionary")
        return self._type_dictionary


class RelationSerializer(TypeDictionaryDependentSerializer):
    """Inserts the SQL code of a relation recipe, e.g. to use it as a subquery."""

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if not isinstance(value, RelationRecipe):
            raise ValueError(f"Expecting a relation recipe, got {value!r}")
        return value.to_sql(self._require_dictionary())


class CommandSerializer(TypeDictionaryDependentSerializer):
    """Inserts the SQL code of a command recipe, e.g. for *EXPLAIN* or *PREPARE* statements."""

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if not isinstance(value, CommandRecipe):
            raise ValueError(f"Expecting a command recipe, got {value!r}")
        return value.to_sql(self._require_dictionary())


def ivory_value_serializers() -> dict[str, ValueSerializer]:
    """Provides all value serializers by the names they are available under in SQL patterns."""
    return {
        "sql": SqlSerializer(),
        "ident": IdentSerializer(),
        "qident": IdentSerializer(always_quote=True),
        "like": LikeSerializer(LikeMode.Exact),
        "like_": LikeSerializer(LikeMode.Prefix),
        "_like": LikeSerializer(LikeMode.Suffix),
        "_like_": LikeSerializer(LikeMode.Infix),
        "rel": RelationSerializer(),
        "cmd": CommandSerializer(),
    }


__all__ = [
    "SqlSerializer", "IdentSerializer", "LikeMode", "LikeSerializer", "TypeDictionaryDependentSerializer",
    "RelationSerializer", "CommandSerializer", "ivory_value_serializers",
]
