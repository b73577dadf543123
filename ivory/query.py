"""Recipes are definitions of SQL statements which are turned into actual SQL strings only when they are executed.

The main recipes are based on SQL patterns: the statement is written as a pattern with typed placeholders, e.g.
``SELECT * FROM person WHERE id = %int``, and the values for the placeholders are supplied separately. Upon execution,
each value is serialized by the type named by its placeholder (or by a type inferred from the value itself), using the
type dictionary of the connection. This keeps values and SQL code apart and prevents SQL injection.

Recipes come in two flavors: `RelationRecipe` for queries producing a relation and `CommandRecipe` for all other
statements. Relation recipes may be refined further: `RelationRecipe.where`, `RelationRecipe.limit` and
`RelationRecipe.sort` wrap the original query into a new one.

Examples
--------
>>> recipe = SqlRelationRecipe.from_pattern("SELECT * FROM person WHERE name = %s:name", name="John")
>>> recipe.where("age > %i", 30).limit(10).to_sql(conn.type_dictionary)
"""

from __future__ import annotations

import abc
import dataclasses
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional, Self

from .exceptions import InvalidStateError
from .lang.sqlpattern import SqlPattern, SqlPatternPlaceholder
from .util import ordinal

if TYPE_CHECKING:
    from .types import TypeDictionary
    from .types.base import ValueSerializer


class SqlRecipe(abc.ABC):
    """Basic interface of all statement definitions."""

    @abc.abstractmethod
    def to_sql(self, type_dictionary: TypeDictionary) -> str:
        """Generates the SQL string.

        Parameters
        ----------
        type_dictionary : TypeDictionary
            The types to serialize the parameter values with

        Returns
        -------
        str
            The SQL statement

        Raises
        ------
        InvalidStateError
            If some parameters of the recipe have not been set
        UndefinedTypeError
            If a type requested by the recipe is not available
        """
        raise NotImplementedError


class RelationRecipe(SqlRecipe, abc.ABC):
    """Definition of a query producing a relation. Provides the refinements of the result."""

    def where(self, condition: str | SqlPattern | SqlRecipe, *args: Any) -> ConstrainedRelationRecipe:
        """Restricts the relation to rows satisfying a condition.

        Parameters
        ----------
        condition : str | SqlPattern | SqlRecipe
            The condition. Strings and patterns may be followed by their positional parameter values, similar to
            `SqlPatternRecipe.from_fragments`.
        *args : Any
            Further fragments and parameter values of the condition
        """
        return ConstrainedRelationRecipe(self, _as_recipe(condition, args))

    def limit(self, limit: Optional[int], offset: int = 0) -> LimitedRelationRecipe:
        """Restricts the number of rows, optionally skipping some rows first. A *None* limit means no limit."""
        return LimitedRelationRecipe(self, limit, offset)

    def sort(self, sort_expr: str | SqlPattern | SqlRecipe | Sequence[Any], *args: Any) -> SortedRelationRecipe:
        """Sorts the relation.

        Parameters
        ----------
        sort_expr : str | SqlPattern | SqlRecipe | Sequence[Any]
            The sort expression, e.g. ``"name DESC"``. A list of multiple expressions may be given as well, each being
            either an expression alone or a tuple of an SQL pattern followed by its parameter values.
        *args : Any
            Positional parameter values of a single sort expression
        """
        if isinstance(sort_expr, list):
            if args:
                raise ValueError("Parameter values must be part of the items if a list of sort expressions is given")
            items = []
            for item in sort_expr:
                if isinstance(item, tuple):
                    items.append(_as_recipe(item[0], item[1:]))
                else:
                    items.append(_as_recipe(item, ()))
        else:
            items = [_as_recipe(sort_expr, args)]
        return SortedRelationRecipe(self, items)


class CommandRecipe(SqlRecipe, abc.ABC):
    """Definition of a statement that does not produce a relation, e.g. *INSERT* or *CREATE TABLE*."""


def _shared_parser():
    from ._globals import sql_pattern_parser
    return sql_pattern_parser()


class SqlPatternRecipe(SqlRecipe):
    """A statement definition based on an SQL pattern and the values of its placeholders.

    Instances are usually created by the factory methods `from_sql`, `from_pattern` and `from_fragments`. Values of named
    placeholders may be set later on using `set_param`, but all of them have to be set before `to_sql` is called.

    Parameters
    ----------
    sql_pattern : SqlPattern
        The parsed pattern
    positional_params : Sequence[Any]
        Values of the positional placeholders. There has to be a value for each of them.
    named_params : Optional[Mapping[str, Any]], optional
        Values of the named placeholders
    """

    @classmethod
    def from_sql(cls, sql: str) -> Self:
        """Creates a recipe from a ready-made SQL string. Percent signs are not interpreted at all."""
        return cls(SqlPattern(sql, [], {}), [])

    @classmethod
    def from_pattern(cls, sql_pattern: str | SqlPattern, *positional_params: Any, **named_params: Any) -> Self:
        """Creates a recipe from an SQL pattern.

        Parameters
        ----------
        sql_pattern : str | SqlPattern
            The pattern, either as a string or already parsed
        *positional_params : Any
            Values of the positional placeholders
        **named_params : Any
            Values of (some of) the named placeholders

        Raises
        ------
        ValueError
            If the number of positional values does not match the pattern, or if a value is given for an unknown name
        """
        pattern = _shared_parser().parse(sql_pattern) if isinstance(sql_pattern, str) else sql_pattern
        expected = len(pattern.positional_placeholders)
        if len(positional_params) != expected:
            raise ValueError(f"The SQL pattern requires {expected} positional parameters, "
                             f"{len(positional_params)} given.")
        recipe = cls(pattern, positional_params)
        recipe.set_params(named_params)
        return recipe

    @classmethod
    def from_fragments(cls, fragment: str | SqlPattern, *fragments_and_params: Any) -> Self:
        """Creates a recipe by concatenating SQL pattern fragments.

        Each fragment is followed by the values of its positional placeholders. The fragments are joined by a single
        space, unless a fragment starts with whitespace on its own. Named placeholders of all fragments are merged, so
        the same name may be used in multiple fragments.

        Examples
        --------
        >>> SqlRelationRecipe.from_fragments("SELECT * FROM person WHERE id = %i", 42, "AND is_active")

        Raises
        ------
        TypeError
            If something other than a string or a pattern stands in a fragment position, which usually means that a
            fragment received more values than it has placeholders
        ValueError
            If there are too few values for the placeholders of a fragment
        """
        parser = _shared_parser()
        args = [fragment, *fragments_and_params]
        torso = ""
        positional: list[SqlPatternPlaceholder] = []
        named: dict[str, list[SqlPatternPlaceholder]] = {}
        params: list[Any] = []

        i = 0
        fragment_num = 1
        while i < len(args):
            current = args[i]
            if isinstance(current, str):
                pattern = parser.parse(current)
            elif isinstance(current, SqlPattern):
                pattern = current
            else:
                raise TypeError(f"Invalid type of the {ordinal(fragment_num)} fragment. "
                                "Isn't it a misplaced parameter value?")
            i += 1

            n_params = len(pattern.positional_placeholders)
            if i + n_params > len(args):
                raise ValueError(f"Not enough positional parameters for the {ordinal(fragment_num)} fragment")
            params.extend(args[i:i + n_params])
            i += n_params

            if torso and not pattern.sql_torso[:1].isspace():
                torso += " "
            shift = len(torso)
            for placeholder in pattern.positional_placeholders:
                positional.append(dataclasses.replace(placeholder, offset=placeholder.offset + shift,
                                                      name_or_position=len(positional)))
            for name, placeholders in pattern.named_placeholder_map.items():
                named.setdefault(name, []).extend(dataclasses.replace(placeholder, offset=placeholder.offset + shift)
                                                  for placeholder in placeholders)
            torso += pattern.sql_torso
            fragment_num += 1

        return cls(SqlPattern(torso, positional, named), params)

    def __init__(self, sql_pattern: SqlPattern, positional_params: Sequence[Any],
                 named_params: Optional[Mapping[str, Any]] = None) -> None:
        if len(positional_params) != len(sql_pattern.positional_placeholders):
            raise ValueError(f"The SQL pattern requires {len(sql_pattern.positional_placeholders)} positional "
                             f"parameters, {len(positional_params)} given.")
        self._sql_pattern = sql_pattern
        self._positional_params = list(positional_params)
        self._named_params: dict[str, Any] = {}
        self.set_params(named_params or {})

    @property
    def sql_pattern(self) -> SqlPattern:
        return self._sql_pattern

    @property
    def positional_params(self) -> list[Any]:
        return list(self._positional_params)

    @property
    def named_params(self) -> dict[str, Any]:
        return dict(self._named_params)

    def set_param(self, name: str, value: Any) -> Self:
        """Sets the value of a named placeholder.

        Raises
        ------
        ValueError
            If the pattern has no placeholder of this name
        """
        if name not in self._sql_pattern.named_placeholder_map:
            raise ValueError(f"The SQL pattern does not have parameter '{name}'")
        self._named_params[name] = value
        return self

    def set_params(self, params: Mapping[str, Any]) -> Self:
        for name, value in params.items():
            self.set_param(name, value)
        return self

    def to_sql(self, type_dictionary: TypeDictionary) -> str:
        unset = [name for name in self._sql_pattern.named_placeholder_map if name not in self._named_params]
        if unset:
            raise InvalidStateError("Parameter values must be set for all named placeholders, missing: "
                                    + ", ".join(unset))

        def _serialize(placeholder: SqlPatternPlaceholder) -> str:
            key = placeholder.name_or_position
            value = self._positional_params[key] if placeholder.is_positional else self._named_params[key]
            return _serialize_placeholder_value(placeholder, value, type_dictionary)

        return self._sql_pattern.generate_sql(_serialize)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._sql_pattern.sql_torso!r})"


def _serializer_for(placeholder: SqlPatternPlaceholder, value: Any,
                    type_dictionary: TypeDictionary) -> Optional[ValueSerializer]:
    if placeholder.type_name is None:
        return None if value is None else type_dictionary.require_type_by_value(value)

    type_name = placeholder.type_name if placeholder.type_name_quoted else placeholder.type_name.lower()
    if placeholder.schema_name is not None:
        schema_name = placeholder.schema_name if placeholder.schema_name_quoted else placeholder.schema_name.lower()
        return type_dictionary.require_type_by_name(type_name, schema_name)
    if placeholder.type_name_quoted:
        return type_dictionary.require_type_by_name(type_name, False)

    serializer = type_dictionary.find_value_serializer(type_name)
    if serializer is not None:
        return serializer
    return type_dictionary.require_type_by_name(type_name)


def _serialize_placeholder_value(placeholder: SqlPatternPlaceholder, value: Any,
                                 type_dictionary: TypeDictionary) -> str:
    serializer = _serializer_for(placeholder, value, type_dictionary)
    if serializer is None:
        return "NULL"
    return serializer.serialize_value(value, not placeholder.loose_type_mode)


def _as_recipe(fragment: str | SqlPattern | SqlRecipe, args: Iterable[Any]) -> SqlRecipe:
    if isinstance(fragment, SqlRecipe):
        if args:
            raise ValueError("Parameter values cannot be given for a recipe")
        return fragment
    return SqlPatternRecipe.from_fragments(fragment, *args)


class SqlRelationRecipe(SqlPatternRecipe, RelationRecipe):
    """A query given by an SQL pattern."""


class SqlCommandRecipe(SqlPatternRecipe, CommandRecipe):
    """A command given by an SQL pattern."""


class _WrappingRelationRecipe(RelationRecipe, abc.ABC):
    """Relation recipes which refine another relation recipe by wrapping it into a subquery."""

    def __init__(self, base: RelationRecipe) -> None:
        self._base = base

    @property
    def base(self) -> RelationRecipe:
        return self._base

    def _subquery(self, type_dictionary: TypeDictionary) -> str:
        return f"SELECT *\nFROM (\n{self._base.to_sql(type_dictionary)}\n) t"


class ConstrainedRelationRecipe(_WrappingRelationRecipe):
    """Relation recipe restricted by a condition."""

    def __init__(self, base: RelationRecipe, condition: SqlRecipe) -> None:
        super().__init__(base)
        self._condition = condition

    def to_sql(self, type_dictionary: TypeDictionary) -> str:
        return f"{self._subquery(type_dictionary)}\nWHERE {self._condition.to_sql(type_dictionary)}"


class LimitedRelationRecipe(_WrappingRelationRecipe):
    """Relation recipe restricted to a number of rows, optionally skipping some rows first.

    Raises
    ------
    ValueError
        If the offset is negative
    """

    def __init__(self, base: RelationRecipe, limit: Optional[int], offset: int = 0) -> None:
        if offset < 0:
            raise ValueError(f"Offset must be non-negative, got {offset}")
        super().__init__(base)
        self._limit = limit
        self._offset = offset

    def to_sql(self, type_dictionary: TypeDictionary) -> str:
        sql = self._subquery(type_dictionary)
        if self._limit is not None:
            sql += f"\nLIMIT {int(self._limit)}"
        if self._offset:
            sql += f"\nOFFSET {int(self._offset)}"
        return sql


class SortedRelationRecipe(_WrappingRelationRecipe):
    """Relation recipe sorted by one or more expressions."""

    def __init__(self, base: RelationRecipe, sort_exprs: Sequence[SqlRecipe]) -> None:
        super().__init__(base)
        self._sort_exprs = list(sort_exprs)

    def to_sql(self, type_dictionary: TypeDictionary) -> str:
        order_by = ", ".join(expr.to_sql(type_dictionary) for expr in self._sort_exprs)
        return f"{self._subquery(type_dictionary)}\nORDER BY {order_by}"
