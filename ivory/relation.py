"""Relations are sets of tuples with named columns, such as the result of a query.

All relations support the operations of (a simplified) relational algebra, which are performed on the Python side:

- `Relation.filter` keeps only the tuples satisfying a condition
- `Relation.project` selects or computes columns, and `Relation.extend` adds computed columns
- `Relation.rename` renames columns
- `Relation.sort` orders the tuples
- `Relation.uniq` removes duplicate tuples

Each operation produces a new relation which reads its data from the original one. Further, relations may be converted
to Python collections (`Relation.to_list`, `Relation.assoc`, `Relation.map`, ...) or to a pandas data frame
(`Relation.to_df`).

Columns may be referred to by their offset (0-based), by their name, or by a callable which computes the value from the
tuple. Some operations also accept *macros*: names containing ``*`` as a wildcard (e.g. ``"addr_*"``), with ``\\`` as the
escape character. Compiled regular expressions are accepted as well.
"""

from __future__ import annotations

import abc
import re
import warnings
from collections.abc import Callable, Hashable, Iterable, Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional

import pandas as pd

from .exceptions import AmbiguousError, DuplicateKeyWarning, UndefinedColumnError
from .util import as_df

if TYPE_CHECKING:
    from .connection import Connection
    from .query import RelationRecipe
    from .types import Type

ColumnSpec = int | str | Callable[["Tuple"], Any]
"""Refers to a column by its offset or name, or computes a value from a tuple."""


def _parse_macro(macro: str) -> tuple[Optional[re.Pattern], str]:
    """Parses a column name which may contain ``*`` wildcards.

    Returns
    -------
    tuple[Optional[re.Pattern], str]
        The pattern matching the names the macro stands for, or *None* if there are no wildcards. The second item is the
        name with all escapes removed.
    """
    regex_parts: list[str] = []
    plain_parts: list[str] = []
    has_wildcard = False
    i = 0
    while i < len(macro):
        c = macro[i]
        if c == "\\" and i + 1 < len(macro):
            regex_parts.append(re.escape(macro[i + 1]))
            plain_parts.append(macro[i + 1])
            i += 2
            continue
        if c == "*":
            regex_parts.append("(.*)")
            has_wildcard = True
        else:
            regex_parts.append(re.escape(c))
        plain_parts.append(c)
        i += 1
    pattern = re.compile("^" + "".join(regex_parts) + "$") if has_wildcard else None
    return pattern, "".join(plain_parts)


def _expand_macro(template: str, match: re.Match) -> str:
    """Replaces the ``*`` wildcards of a new column name by the parts matched by the macro, one group after another."""
    groups = match.groups()
    result: list[str] = []
    group_idx = 0
    i = 0
    while i < len(template):
        c = template[i]
        if c == "\\" and i + 1 < len(template):
            result.append(template[i + 1])
            i += 2
            continue
        if c == "*":
            result.append(groups[min(group_idx, len(groups) - 1)] if groups else "")
            group_idx += 1
        else:
            result.append(c)
        i += 1
    return "".join(result)


def _hashable(value: Any) -> Hashable:
    if isinstance(value, (list, tuple)):
        return tuple(_hashable(v) for v in value)
    if isinstance(value, Mapping):
        return tuple((k, _hashable(v)) for k, v in value.items())
    if isinstance(value, set):
        return frozenset(value)
    return value


class Tuple:
    """A single row of a relation. Tuples are immutable.

    Values are accessible by offset or name: ``row[0]``, ``row["name"]`` and, for names which are valid Python
    identifiers, ``row.name``. Iterating a tuple yields its values.

    Parameters
    ----------
    values : Sequence[Any]
        The values of the tuple
    column_names : Sequence[Optional[str]]
        The names of the columns, in the same order as the values. Multiple columns may share the same name.
    """

    __slots__ = ("_values", "_column_names")

    def __init__(self, values: Sequence[Any], column_names: Sequence[Optional[str]]) -> None:
        object.__setattr__(self, "_values", list(values))
        object.__setattr__(self, "_column_names", list(column_names))

    @property
    def column_names(self) -> list[Optional[str]]:
        return list(self._column_names)

    def value(self, col: ColumnSpec = 0) -> Any:
        """Provides a value of the tuple.

        Parameters
        ----------
        col : ColumnSpec, optional
            The column offset or name, or a callable computing the value from this tuple. Defaults to the first column.

        Raises
        ------
        UndefinedColumnError
            If there is no such column
        AmbiguousError
            If multiple columns have the requested name
        """
        if callable(col):
            return col(self)
        if isinstance(col, int):
            if not -len(self._values) <= col < len(self._values):
                raise UndefinedColumnError(f"No column at offset {col}")
            return self._values[col]
        offsets = [i for i, name in enumerate(self._column_names) if name == col]
        if not offsets:
            raise UndefinedColumnError(f"No column named {col}")
        if len(offsets) > 1:
            raise AmbiguousError(f"Multiple columns named {col}")
        return self._values[offsets[0]]

    def to_map(self) -> dict[str, Any]:
        """Provides the values keyed by column names.

        Raises
        ------
        AmbiguousError
            If multiple columns share the same name
        """
        result: dict[str, Any] = {}
        for name, value in zip(self._column_names, self._values):
            if name is None:
                continue
            if name in result:
                raise AmbiguousError(f"Multiple columns named {name}")
            result[name] = value
        return result

    def to_list(self) -> list[Any]:
        return list(self._values)

    def __getitem__(self, key: int | str) -> Any:
        return self.value(key)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        try:
            return self.value(name)
        except UndefinedColumnError:
            raise AttributeError(f"Tuple has no column '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Tuples are immutable")

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tuple):
            return NotImplemented
        return self._values == other._values

    def __hash__(self) -> int:
        return hash(_hashable(self._values))

    def __repr__(self) -> str:
        items = ", ".join(f"{name}={value!r}" for name, value in zip(self._column_names, self._values))
        return f"Tuple({items})"


class Column:
    """A column of a relation, providing access to the values of all tuples in this column.

    Parameters
    ----------
    relation : Relation
        The relation the column belongs to
    col_def : int | Callable[[Tuple], Any]
        The offset of the column within the relation, or a callable computing the values
    name : Optional[str]
        The column name
    type_ : Optional[Type]
        The PostgreSQL type of the column, if known
    """

    def __init__(self, relation: Relation, col_def: int | Callable[[Tuple], Any], name: Optional[str],
                 type_: Optional[Type] = None) -> None:
        self._relation = relation
        self._col_def = col_def
        self._name = name
        self._type = type_

    @property
    def name(self) -> Optional[str]:
        return self._name

    @property
    def type(self) -> Optional[Type]:
        return self._type

    def rename_to(self, new_name: str) -> Column:
        """Provides a copy of this column with a different name. The relation is not affected."""
        return Column(self._relation, self._col_def, new_name, self._type)

    def value(self, i: int = 0) -> Any:
        return self._relation.tuple(i).value(self._col_def)

    def values(self) -> list[Any]:
        return [tup.value(self._col_def) for tup in self._relation]

    def to_list(self) -> list[Any]:
        return self.values()

    def uniq(self) -> list[Any]:
        """Provides the distinct values in the order of their first occurrence."""
        seen: set = set()
        result = []
        for value in self.values():
            key = _hashable(value)
            if key not in seen:
                seen.add(key)
                result.append(value)
        return result

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values())

    def __len__(self) -> int:
        return len(self._relation)

    def __repr__(self) -> str:
        return f"Column({self._name}: {self._type})"


class Relation(abc.ABC):
    """Basic interface of all relations.

    Concrete relations only need to provide their columns, the number of tuples and access to a tuple by its position.
    All other operations are implemented on top of these.
    """

    @property
    @abc.abstractmethod
    def columns(self) -> list[Column]:
        raise NotImplementedError

    @abc.abstractmethod
    def tuple(self, i: int = 0) -> Tuple:
        """Provides the tuple at the given position.

        Raises
        ------
        IndexError
            If there is no such tuple
        """
        raise NotImplementedError

    @abc.abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError

    @property
    def column_names(self) -> list[Optional[str]]:
        return [column.name for column in self.columns]

    def count(self) -> int:
        return len(self)

    def __iter__(self) -> Iterator[Tuple]:
        for i in range(len(self)):
            yield self.tuple(i)

    def value(self, col: ColumnSpec = 0, i: int = 0) -> Any:
        """Provides a single value of the relation, by default the first value of the first tuple."""
        return self.tuple(i).value(col)

    def col(self, spec: ColumnSpec) -> Column:
        """Provides a single column.

        Raises
        ------
        UndefinedColumnError
            If there is no such column
        AmbiguousError
            If multiple columns have the requested name
        """
        columns = self.columns
        if callable(spec):
            return Column(self, spec, None)
        if isinstance(spec, int):
            if not -len(columns) <= spec < len(columns):
                raise UndefinedColumnError(f"No column at offset {spec}")
            return columns[spec]
        matches = [column for column in columns if column.name == spec]
        if not matches:
            raise UndefinedColumnError(f"No column named {spec}")
        if len(matches) > 1:
            raise AmbiguousError(f"Multiple columns named {spec}")
        return matches[0]

    def filter(self, decider: Callable[[Tuple], bool]) -> FilteredRelation:
        """Keeps only the tuples for which the `decider` returns a truthy value."""
        return FilteredRelation(self, decider)

    def project(self, spec: Sequence[Any] | Mapping[str, Any]) -> ProjectedRelation:
        """Selects or computes the columns of a new relation.

        Parameters
        ----------
        spec : Sequence[Any] | Mapping[str, Any]
            The columns of the new relation. Each item may be a column offset, a column name, a macro matching multiple
            columns (e.g. ``"a*"``), a compiled regular expression matching multiple columns, or a callable computing the
            value from the tuple. If a mapping is given, its keys are the names of the new columns. For macros, the key
            may contain ``*`` again which is replaced by the matched part, e.g. ``{"new_*": "old_*"}``. For regular
            expressions, the key is used as the replacement template, e.g. ``{r"\\1_x": re.compile("(.*)_y")}``.
            Callables require a key.

        Raises
        ------
        UndefinedColumnError
            If some item does not match any column
        AmbiguousError
            If a plain column name matches multiple columns
        """
        return ProjectedRelation(self, self._resolve_projection(spec))

    def extend(self, extra: Sequence[Any] | Mapping[str, Any]) -> ProjectedRelation:
        """Adds more columns, specified the same way as for `project`, after all existing columns."""
        projection = [(column.name, i) for i, column in enumerate(self.columns)]
        projection.extend(self._resolve_projection(extra))
        return ProjectedRelation(self, projection)

    def rename(self, renames: Mapping[int | str | re.Pattern, str]) -> RenamedRelation:
        """Renames some columns.

        Parameters
        ----------
        renames : Mapping[int | str | re.Pattern, str]
            The new names. Columns are given by offset, name, macro or regular expression, similar to `project`. If
            multiple entries apply to the same column, the first one wins.
        """
        new_names: list[Optional[str]] = []
        for i, column in enumerate(self.columns):
            new_names.append(self._renamed(i, column.name, renames))
        return RenamedRelation(self, new_names)

    def sort(self, key: Callable[[Tuple], Any], reverse: bool = False) -> SortedRelation:
        """Sorts the tuples by the value computed by `key`. The sort is stable."""
        return SortedRelation(self, key, reverse)

    def uniq(self, hasher: Optional[Callable[[Tuple], Hashable]] = None) -> CherryPickedRelation:
        """Removes duplicate tuples, keeping the first occurrence.

        Parameters
        ----------
        hasher : Optional[Callable[[Tuple], Hashable]], optional
            Computes the identity of a tuple. By default, tuples are considered duplicates if all their values are equal.
        """
        hasher = hasher or (lambda tup: _hashable(tup.to_list()))
        seen: set = set()
        kept: list[int] = []
        for i, tup in enumerate(self):
            identity = hasher(tup)
            if identity not in seen:
                seen.add(identity)
                kept.append(i)
        return CherryPickedRelation(self, kept)

    def to_list(self) -> list[dict[str, Any]]:
        """Provides all tuples as dictionaries of their values keyed by column names."""
        return [tup.to_map() for tup in self]

    def to_set(self, col: ColumnSpec = 0) -> set:
        """Provides the set of values of a single column."""
        return {_hashable(tup.value(col)) for tup in self}

    def to_df(self) -> pd.DataFrame:
        """Provides the relation as a pandas data frame."""
        return as_df([tup.to_list() for tup in self], column_names=self.column_names)

    def assoc(self, col1: ColumnSpec, col2: ColumnSpec, *more_cols: ColumnSpec) -> dict:
        """Builds a (nested) dictionary of values.

        All but the last column are used as keys of the nested levels, the last column provides the values. If multiple
        tuples have the same keys, only the first one is kept and a `DuplicateKeyWarning` is issued.

        Examples
        --------
        >>> rel.assoc("country", "city", "population")
        {"cz": {"Prague": 1300000, "Brno": 380000}, ...}
        """
        cols = [col1, col2, *more_cols]
        key_cols, value_col = cols[:-1], cols[-1]
        result: dict = {}
        for tup in self:
            self._insert_unique(result, [tup.value(c) for c in key_cols], tup.value(value_col))
        return result

    def map(self, col1: ColumnSpec, *more_cols: ColumnSpec) -> dict:
        """Builds a (nested) dictionary of tuples, keyed by the values of the given columns.

        If multiple tuples have the same keys, only the first one is kept and a `DuplicateKeyWarning` is issued. Use
        `multimap` to keep all of them.
        """
        key_cols = [col1, *more_cols]
        result: dict = {}
        for tup in self:
            self._insert_unique(result, [tup.value(c) for c in key_cols], tup)
        return result

    def multimap(self, col1: ColumnSpec, *more_cols: ColumnSpec) -> dict:
        """Builds a (nested) dictionary of relations, each containing the tuples with the same key values."""
        key_cols = [col1, *more_cols]
        positions: dict = {}
        for i, tup in enumerate(self):
            level = positions
            keys = [tup.value(c) for c in key_cols]
            for key in keys[:-1]:
                level = level.setdefault(key, {})
            level.setdefault(keys[-1], []).append(i)
        return self._to_cherry_picked(positions)

    def _to_cherry_picked(self, positions: dict) -> dict:
        return {key: CherryPickedRelation(self, value) if isinstance(value, list) else self._to_cherry_picked(value)
                for key, value in positions.items()}

    @staticmethod
    def _insert_unique(target: dict, keys: list[Any], value: Any) -> None:
        level = target
        for key in keys[:-1]:
            level = level.setdefault(key, {})
        if keys[-1] in level:
            key_desc = ", ".join(str(key) for key in keys)
            warnings.warn(f"Duplicate entry under key ({key_desc}). Skipping. Consider using multimap() instead.",
                          category=DuplicateKeyWarning)
            return
        level[keys[-1]] = value

    def _resolve_projection(self, spec: Sequence[Any] | Mapping[str, Any]) -> list[tuple[Optional[str], Any]]:
        columns = self.columns
        entries: Iterable[tuple[Optional[str], Any]]
        if isinstance(spec, Mapping):
            entries = spec.items()
        elif isinstance(spec, (str, int, re.Pattern)) or callable(spec):
            entries = [(None, spec)]
        else:
            entries = [(None, item) for item in spec]

        projection: list[tuple[Optional[str], Any]] = []
        for key, item in entries:
            if isinstance(item, re.Pattern):
                matched = False
                for i, column in enumerate(columns):
                    if column.name is not None and item.search(column.name):
                        projection.append((item.sub(key, column.name) if key is not None else column.name, i))
                        matched = True
                if not matched:
                    raise UndefinedColumnError(f"No column matches the pattern {item.pattern}")
            elif callable(item):
                if key is None:
                    raise ValueError("Computed columns require a name")
                projection.append((key, item))
            elif isinstance(item, int):
                if not -len(columns) <= item < len(columns):
                    raise UndefinedColumnError(f"No column at offset {item}")
                offset = item % len(columns)
                projection.append((key if key is not None else columns[offset].name, offset))
            else:
                pattern, plain_name = _parse_macro(item)
                if pattern is None:
                    offsets = [i for i, column in enumerate(columns) if column.name == plain_name]
                    if not offsets:
                        raise UndefinedColumnError(f"No column named {plain_name}")
                    if len(offsets) > 1:
                        raise AmbiguousError(f"Multiple columns named {plain_name}")
                    projection.append((key if key is not None else plain_name, offsets[0]))
                    continue
                matched = False
                for i, column in enumerate(columns):
                    match = pattern.match(column.name) if column.name is not None else None
                    if match:
                        projection.append((_expand_macro(key, match) if key is not None else column.name, i))
                        matched = True
                if not matched:
                    raise UndefinedColumnError(f"No column matches {item}")
        return projection

    @staticmethod
    def _renamed(offset: int, name: Optional[str], renames: Mapping[int | str | re.Pattern, str]) -> Optional[str]:
        for spec, new_name in renames.items():
            if isinstance(spec, int):
                if spec == offset:
                    return new_name
            elif name is None:
                continue
            elif isinstance(spec, re.Pattern):
                if spec.search(name):
                    return spec.sub(new_name, name)
            else:
                pattern, plain_name = _parse_macro(spec)
                if pattern is None:
                    if plain_name == name:
                        return new_name
                else:
                    match = pattern.match(name)
                    if match:
                        return _expand_macro(new_name, match)
        return name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(str(name) for name in self.column_names)}; {len(self)} tuples)"


class ArrayRelation(Relation):
    """A relation created from Python data.

    Parameters
    ----------
    rows : Sequence[Mapping[str, Any] | Sequence[Any]]
        The rows of the relation. Rows given as mappings are keyed by column names. Missing values are *None*.
    column_names : Optional[Sequence[str]], optional
        The column names. If omitted, the names are taken from the keys of the first mapping. Required for rows given as
        sequences.
    """

    def __init__(self, rows: Sequence[Mapping[str, Any] | Sequence[Any]],
                 column_names: Optional[Sequence[str]] = None) -> None:
        if column_names is None:
            column_names = []
            for row in rows:
                if not isinstance(row, Mapping):
                    raise ValueError("Column names are required for rows given as sequences")
                column_names.extend(name for name in row if name not in column_names)
        self._column_names = list(column_names)
        self._rows = [[row.get(name) for name in self._column_names] if isinstance(row, Mapping) else list(row)
                      for row in rows]
        self._columns = [Column(self, i, name) for i, name in enumerate(self._column_names)]

    @property
    def columns(self) -> list[Column]:
        return list(self._columns)

    def tuple(self, i: int = 0) -> Tuple:
        return Tuple(self._rows[i], self._column_names)

    def __len__(self) -> int:
        return len(self._rows)


class _DerivedRelation(Relation, abc.ABC):
    """Relations computed from a source relation."""

    def __init__(self, source: Relation) -> None:
        self._source = source

    @property
    def source(self) -> Relation:
        return self._source


class _PositionalRelation(_DerivedRelation):
    """Relations which consist of some of the tuples of the source, with the same columns."""

    @abc.abstractmethod
    def _positions(self) -> list[int]:
        raise NotImplementedError

    @property
    def columns(self) -> list[Column]:
        return [Column(self, i, column.name, column.type) for i, column in enumerate(self._source.columns)]

    def tuple(self, i: int = 0) -> Tuple:
        return self._source.tuple(self._positions()[i])

    def __len__(self) -> int:
        return len(self._positions())


class FilteredRelation(_PositionalRelation):
    """Relation keeping only those tuples of the source which satisfy a condition. Evaluated on first access."""

    def __init__(self, source: Relation, decider: Callable[[Tuple], bool]) -> None:
        super().__init__(source)
        self._decider = decider
        self._accepted: Optional[list[int]] = None

    def _positions(self) -> list[int]:
        if self._accepted is None:
            self._accepted = [i for i, tup in enumerate(self._source) if self._decider(tup)]
        return self._accepted


class SortedRelation(_PositionalRelation):
    """Relation with the tuples of the source in a different order. Evaluated on first access."""

    def __init__(self, source: Relation, key: Callable[[Tuple], Any], reverse: bool = False) -> None:
        super().__init__(source)
        self._key = key
        self._reverse = reverse
        self._order: Optional[list[int]] = None

    def _positions(self) -> list[int]:
        if self._order is None:
            tuples = list(self._source)
            self._order = sorted(range(len(tuples)), key=lambda i: self._key(tuples[i]), reverse=self._reverse)
        return self._order


class CherryPickedRelation(_PositionalRelation):
    """Relation consisting of the tuples of the source at the given positions."""

    def __init__(self, source: Relation, positions: Sequence[int]) -> None:
        super().__init__(source)
        self._picked = list(positions)

    def _positions(self) -> list[int]:
        return self._picked


class ProjectedRelation(_DerivedRelation):
    """Relation with columns selected or computed from the source columns.

    Parameters
    ----------
    source : Relation
        The source relation
    projection : Sequence[tuple[Optional[str], int | Callable[[Tuple], Any]]]
        The name and definition of each column, either the offset of a source column or a callable computing the value
        from the source tuple
    """

    def __init__(self, source: Relation, projection: Sequence[tuple[Optional[str], int | Callable[[Tuple], Any]]]) -> None:
        super().__init__(source)
        self._projection = list(projection)
        self._names = [name for name, _ in self._projection]

    @property
    def columns(self) -> list[Column]:
        source_columns = self._source.columns
        return [Column(self, i, name, source_columns[col_def].type if isinstance(col_def, int) else None)
                for i, (name, col_def) in enumerate(self._projection)]

    def tuple(self, i: int = 0) -> Tuple:
        source_tuple = self._source.tuple(i)
        return Tuple([source_tuple.value(col_def) for _, col_def in self._projection], self._names)

    def __len__(self) -> int:
        return len(self._source)


class RenamedRelation(_DerivedRelation):
    """Relation with the data of the source, but with different column names."""

    def __init__(self, source: Relation, column_names: Sequence[Optional[str]]) -> None:
        super().__init__(source)
        self._names = list(column_names)

    @property
    def columns(self) -> list[Column]:
        return [Column(self, i, name, column.type)
                for i, (name, column) in enumerate(zip(self._names, self._source.columns))]

    def tuple(self, i: int = 0) -> Tuple:
        return Tuple(self._source.tuple(i).to_list(), self._names)

    def __len__(self) -> int:
        return len(self._source)


class QueryRelation(_DerivedRelation):
    """Relation defined by a query which is executed on first access.

    Parameters
    ----------
    connection : Connection
        The connection to execute the query on
    recipe : RelationRecipe
        The query
    """

    def __init__(self, connection: Connection, recipe: RelationRecipe) -> None:
        self._connection = connection
        self._recipe = recipe
        self._result: Optional[Relation] = None

    @property
    def recipe(self) -> RelationRecipe:
        return self._recipe

    @property
    def source(self) -> Relation:
        if self._result is None:
            self._result = self._connection.query(self._recipe)
        return self._result

    @property
    def columns(self) -> list[Column]:
        return [Column(self, i, column.name, column.type) for i, column in enumerate(self.source.columns)]

    def tuple(self, i: int = 0) -> Tuple:
        return self.source.tuple(i)

    def __len__(self) -> int:
        return len(self.source)
