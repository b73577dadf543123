"""Contains the fundamental interfaces of Ivory's type system.

A *type* converts between the external (text) representation of PostgreSQL values and Python objects in both directions:
`Type.parse_value` turns the text sent by the server into a Python value, and `Type.serialize_value` produces an SQL
expression for a Python value that can be embedded into a statement. Objects that are only able to perform the latter are
*value serializers* (e.g. the serializer for SQL identifiers).

Types are collected in a `TypeDictionary` which is specific to a single connection, since each database might define its
own types.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any, Optional

from ..exceptions import UndefinedTypeError
from ..lang.sql import quote_ident

if TYPE_CHECKING:
    from ..connection import Connection


class ValueSerializer(abc.ABC):
    """A serializer converts Python values into SQL expressions."""

    @abc.abstractmethod
    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        """Serializes a value into an SQL expression.

        Parameters
        ----------
        value : Any
            The value to serialize. *None* is usually turned into *NULL*.
        strict_type : bool, optional
            Whether the expression should be explicitly typed, e.g. using a type cast. This is the default. Loosely typed
            expressions are used where the type is clear from the context, such as elements of an array.

        Returns
        -------
        str
            The SQL expression

        Raises
        ------
        ValueError
            If the value is not valid for this serializer
        """
        raise NotImplementedError


class Type(ValueSerializer, abc.ABC):
    """A type converts values in both directions, i.e. it parses and serializes values.

    Each type is identified by its schema and its name.
    """

    @property
    @abc.abstractmethod
    def schema_name(self) -> str:
        raise NotImplementedError

    @property
    @abc.abstractmethod
    def name(self) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def parse_value(self, text: Optional[str]) -> Any:
        """Parses the external representation of a value.

        Parameters
        ----------
        text : Optional[str]
            The text as sent by the database server. *None* represents the SQL *NULL* and is parsed into *None*.

        Returns
        -------
        Any
            The Python value

        Raises
        ------
        ParseError
            If the text is not a valid representation of a value of this type
        """
        raise NotImplementedError

    @property
    def qualified_name(self) -> str:
        """Gets the name of the type, prefixed by its schema."""
        return f"{self.schema_name}.{self.name}"


class TotallyOrderedType(abc.ABC):
    """Marks types whose values can be compared with each other, e.g. to check range bounds.

    The default implementation relies on the comparison operators of the Python values.
    """

    def compare_values(self, a: Any, b: Any) -> Optional[int]:
        """Compares two values of this type.

        Returns
        -------
        Optional[int]
            A negative number if `a` is less than `b`, zero if they are equal, a positive number if `a` is greater than `b`.
            If any of the values is *None*, *None* is returned.
        """
        if a is None or b is None:
            return None
        return (a > b) - (a < b)


class DiscreteType(TotallyOrderedType, abc.ABC):
    """Marks types whose values form a discrete sequence, such as integers or dates."""

    @abc.abstractmethod
    def step(self, delta: int, value: Any) -> Any:
        """Computes the value that is `delta` steps away from `value`. *None* is returned as-is."""
        raise NotImplementedError


class ConnectionDependentObject(abc.ABC):
    """Marks types and serializers which need information from the connection they are used with."""

    @abc.abstractmethod
    def attach_to_connection(self, connection: Connection) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def detach_from_connection(self) -> None:
        raise NotImplementedError


class TypeBase(Type):
    """Default implementation of the type identification and helpers to generate SQL expressions.

    Parameters
    ----------
    schema_name : str
        The schema of the type
    name : str
        The name of the type, including its modifier
    type_modifier : str, optional
        A suffix of the `name` which is not part of the type identifier, e.g. ``[]`` for array types.
    """

    def __init__(self, schema_name: str, name: str, type_modifier: str = "") -> None:
        self._schema_name = schema_name
        self._name = name
        self._type_modifier = type_modifier

    @property
    def schema_name(self) -> str:
        return self._schema_name

    @property
    def name(self) -> str:
        return self._name

    @property
    def type_modifier(self) -> str:
        return self._type_modifier

    def _sql_type_name(self) -> str:
        plain_name = self._name[:-len(self._type_modifier)] if self._type_modifier else self._name
        return f"{quote_ident(self._schema_name)}.{quote_ident(plain_name)}{self._type_modifier}"

    def type_cast_expr(self, use_type_cast: bool, sql_expr: str) -> str:
        """Appends a type cast to this type to an SQL expression, e.g. ``'1'::pg_catalog.int4``."""
        if not use_type_cast:
            return sql_expr
        return f"{sql_expr}::{self._sql_type_name()}"

    def indicate_type(self, use_type_indication: bool, sql_expr: str) -> str:
        """Prefixes an SQL expression with this type, e.g. ``pg_catalog.int4range 'empty'``."""
        if not use_type_indication:
            return sql_expr
        return f"{self._sql_type_name()} {sql_expr}"

    def invalid_value_error(self, value: Any) -> ValueError:
        """Creates an error to be raised when a value cannot be serialized by this type."""
        return ValueError(f"Value '{value}' is not valid for type {self._schema_name}.{self._name}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._schema_name}.{self._name})"

    def __str__(self) -> str:
        return self.qualified_name


class UndefinedType(TypeBase, ConnectionDependentObject):
    """Placeholder for types Ivory has no implementation for.

    Any attempt to parse or serialize a value raises an `UndefinedTypeError`. Columns of such types may still be part of a
    query result as long as their values are not accessed.
    """

    def __init__(self, schema_name: str, name: str) -> None:
        super().__init__(schema_name, name)
        self._connection_name: Optional[str] = None

    def attach_to_connection(self, connection: Connection) -> None:
        self._connection_name = connection.name

    def detach_from_connection(self) -> None:
        self._connection_name = None

    def _fail(self) -> UndefinedTypeError:
        conn_desc = f" on connection {self._connection_name}" if self._connection_name else ""
        return UndefinedTypeError(f"Type {self.schema_name}.{self.name} is not supported{conn_desc}")

    def parse_value(self, text: Optional[str]) -> Any:
        raise self._fail()

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        raise self._fail()


class DomainType(TypeBase):
    """A domain is a type based on another type, possibly with additional constraints.

    All values are processed by the base type. Comparisons and stepping are only available if the base type supports them.

    Parameters
    ----------
    schema_name : str
        The schema of the domain
    name : str
        The name of the domain
    base_type : Type
        The type the domain is defined over
    """

    def __init__(self, schema_name: str, name: str, base_type: Type) -> None:
        super().__init__(schema_name, name)
        self._base_type = base_type

    @property
    def base_type(self) -> Type:
        return self._base_type

    def parse_value(self, text: Optional[str]) -> Any:
        return self._base_type.parse_value(text)

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        # the base type is required to produce a valid expression, the domain cast is applied on top of it
        return self.type_cast_expr(strict_type, self._base_type.serialize_value(value, False))

    def compare_values(self, a: Any, b: Any) -> Optional[int]:
        if not isinstance(self._base_type, TotallyOrderedType):
            raise TypeError(f"The base type of domain {self.qualified_name} is not totally ordered")
        return self._base_type.compare_values(a, b)

    def step(self, delta: int, value: Any) -> Any:
        if not isinstance(self._base_type, DiscreteType):
            raise TypeError(f"The base type of domain {self.qualified_name} is not discrete")
        return self._base_type.step(delta, value)


def is_totally_ordered(type_: Type) -> bool:
    """Checks, whether values of a type can be compared. Domains are judged by their base types."""
    if isinstance(type_, DomainType):
        return is_totally_ordered(type_.base_type)
    return isinstance(type_, TotallyOrderedType)


def is_discrete(type_: Type) -> bool:
    """Checks, whether values of a type form a discrete sequence. Domains are judged by their base types."""
    if isinstance(type_, DomainType):
        return is_discrete(type_.base_type)
    return isinstance(type_, DiscreteType)
