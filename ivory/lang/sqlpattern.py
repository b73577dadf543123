"""SQL patterns are SQL strings with placeholders for values that are supplied separately.

A placeholder starts with a percent sign and optionally specifies the type of the value and a parameter name, e.g.
``SELECT * FROM person WHERE id = %int:id``. Unnamed placeholders are positional. See `SqlPatternParser` for the full
syntax.

Parsing turns the pattern string into a `SqlPattern`: the SQL *torso* with all placeholders removed, plus the
placeholders themselves, each remembering its offset within the torso. Values are serialized and spliced into the torso
by `SqlPattern.fill_sql` or `SqlPattern.generate_sql`.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SqlPatternPlaceholder:
    """A placeholder for a value in an SQL pattern.

    Attributes
    ----------
    offset : int
        Position of the placeholder in the SQL torso, i.e. in the SQL string with all placeholders removed.
    name_or_position : str | int
        The parameter name for named placeholders, or the 0-based position among the positional placeholders.
    type_name : Optional[str]
        The type of the value as written in the pattern, if specified. Array types end with ``[]``.
    type_name_quoted : bool
        Whether the type name was written as a quoted identifier. Quoted names are case-sensitive.
    schema_name : Optional[str]
        The schema of the type, if specified.
    schema_name_quoted : bool
        Whether the schema name was written as a quoted identifier.
    loose_type_mode : bool
        Whether the value should be serialized without an explicit type cast (the ``?`` marker).
    """

    offset: int
    name_or_position: str | int
    type_name: Optional[str] = None
    type_name_quoted: bool = False
    schema_name: Optional[str] = None
    schema_name_quoted: bool = False
    loose_type_mode: bool = False

    @property
    def is_positional(self) -> bool:
        return isinstance(self.name_or_position, int)


class SqlPattern:
    """A parsed SQL pattern.

    Parameters
    ----------
    sql_torso : str
        The SQL string without any placeholders. Escaped percent signs are already unescaped.
    positional_placeholders : Iterable[SqlPatternPlaceholder]
        The positional placeholders in the order of their positions.
    named_placeholder_map : Mapping[str, Iterable[SqlPatternPlaceholder]]
        For each parameter name, all placeholders referring to it in the order of appearance.
    """

    def __init__(self, sql_torso: str, positional_placeholders: Iterable[SqlPatternPlaceholder],
                 named_placeholder_map: Mapping[str, Iterable[SqlPatternPlaceholder]]) -> None:
        self._sql_torso = sql_torso
        self._positional = tuple(positional_placeholders)
        self._named = {name: tuple(placeholders) for name, placeholders in named_placeholder_map.items()}

    @property
    def sql_torso(self) -> str:
        return self._sql_torso

    @property
    def positional_placeholders(self) -> tuple[SqlPatternPlaceholder, ...]:
        return self._positional

    @property
    def named_placeholder_map(self) -> dict[str, tuple[SqlPatternPlaceholder, ...]]:
        return dict(self._named)

    def placeholder_sequence(self) -> list[SqlPatternPlaceholder]:
        """Provides all placeholders, both positional and named ones, ordered by their offsets."""
        placeholders = list(self._positional)
        for named in self._named.values():
            placeholders.extend(named)
        return sorted(placeholders, key=lambda placeholder: placeholder.offset)

    def fill_sql(self, values: Mapping[str | int, str]) -> str:
        """Generates the final SQL string by inserting serialized values at the placeholders.

        Parameters
        ----------
        values : Mapping[str | int, str]
            The SQL representation of each parameter, keyed by parameter name for named placeholders and by position for
            positional placeholders. Values are inserted verbatim, i.e. they have to be serialized already.

        Returns
        -------
        str
            The SQL string

        Raises
        ------
        ValueError
            If some placeholder has no value, or if a value is given for which there is no placeholder.
        """
        sequence = self.placeholder_sequence()
        missing = [placeholder.name_or_position for placeholder in sequence if placeholder.name_or_position not in values]
        if missing:
            missing_desc = ", ".join(str(key) for key in dict.fromkeys(missing))
            raise ValueError(f"Insufficient values for placeholders: {missing_desc}")
        known_keys = {placeholder.name_or_position for placeholder in sequence}
        extra = [key for key in values if key not in known_keys]
        if extra:
            raise ValueError("Superfluous values given: " + ", ".join(str(key) for key in extra))

        return self.generate_sql(lambda placeholder: values[placeholder.name_or_position])

    def generate_sql(self, serializer: Callable[[SqlPatternPlaceholder], str]) -> str:
        """Generates the final SQL string by asking for the SQL text of each placeholder occurrence.

        Unlike `fill_sql`, each occurrence of a repeated named placeholder is serialized on its own, so that it may use its
        own type and loose type mode.

        Parameters
        ----------
        serializer : Callable[[SqlPatternPlaceholder], str]
            Provides the SQL text to insert for a placeholder. It is called once per occurrence, in the order of offsets.

        Returns
        -------
        str
            The SQL string
        """
        parts: list[str] = []
        current_offset = 0
        for placeholder in self.placeholder_sequence():
            parts.append(self._sql_torso[current_offset:placeholder.offset])
            parts.append(serializer(placeholder))
            current_offset = placeholder.offset
        parts.append(self._sql_torso[current_offset:])
        return "".join(parts)

    def __eq__(self, other: object) -> bool:
        return (isinstance(other, type(self))
                and self._sql_torso == other._sql_torso
                and self._positional == other._positional
                and self._named == other._named)

    def __hash__(self) -> int:
        return hash((self._sql_torso, self._positional))

    def __repr__(self) -> str:
        return f"SqlPattern(sql_torso={self._sql_torso!r}, placeholders={self.placeholder_sequence()!r})"

    def __str__(self) -> str:
        return self._sql_torso


_Ident = r"""[^\W\d]\w*"""
_QuotedIdent = r'''"(?:[^"]|"")*"'''

_PlaceholderPattern = re.compile(rf"""
    %                                       # the percent sign introducing the sequence
    (?: (?!%)                               # anything but another percent sign -> placeholder
        (?:                                 #   optional type specification
          (?:                               #
            (?: ({_Ident}|{_QuotedIdent})   #     optional schema name, either a token or a quoted string,
                \.                          #     separated from the type name with a dot
            )?                              #
            ({_Ident}|{_QuotedIdent})       #     type name, either a token or a quoted string
            |                               #
            \{{ ([^}}]+) \}}                #     or anything enclosed in curly braces, taken as is
          )                                 #
          ((?:\[\])*)                       #   optionally ended with pairs of brackets
        )?                                  #
        (\?)?                               #   optional loose type mode marker
        (?: : ({_Ident}) )?                 #   optional parameter name
      |                                     # or
        (%)                                 # another percent sign -> literal %
    )
    """, re.VERBOSE)


def _unquote(identifier: Optional[str]) -> tuple[Optional[str], bool]:
    if identifier and identifier.startswith('"'):
        return identifier[1:-1].replace('""', '"'), True
    return identifier, False


class SqlPatternParser:
    """Parser of SQL pattern strings into `SqlPattern` objects.

    The placeholder syntax is as follows:

    - ``%%`` denotes a literal percent sign
    - ``%`` not followed by another percent sign starts a placeholder. It may be followed by a type specification, the loose
      type mode marker ``?`` and a parameter name introduced by a colon, in this order.
    - The type specification is either a type name optionally qualified with a schema name (``%int``, ``%public.money``),
      where each part is a simple token or a quoted identifier (``%"My Type"``), or anything enclosed in curly braces taken
      as is (``%{double precision}``). Any number of trailing ``[]`` pairs turns the type into an array type.
    - Placeholders without a name are positional and numbered from 0 in the order of their appearance.

    Examples
    --------
    >>> pattern = SqlPatternParser().parse("SELECT * FROM %ident:tbl WHERE id = %int")
    >>> pattern.sql_torso
    'SELECT * FROM  WHERE id = '
    """

    def parse(self, sql_pattern: str) -> SqlPattern:
        """Parses an SQL pattern string.

        Parameters
        ----------
        sql_pattern : str
            The pattern string

        Returns
        -------
        SqlPattern
            The parsed pattern
        """
        positional: list[SqlPatternPlaceholder] = []
        named: dict[str, list[SqlPatternPlaceholder]] = {}
        offset_delta = 0

        def _replace(match: re.Match) -> str:
            nonlocal offset_delta
            schema_item, type_item, braced_type, brackets, loose_marker, param_name, percent = match.groups()
            if percent is not None:
                offset_delta -= 1  # one character instead of two
                return "%"

            offset = match.start() + offset_delta
            if braced_type:
                schema_name, schema_quoted = None, False
                type_name, type_quoted = braced_type, False
            else:
                schema_name, schema_quoted = _unquote(schema_item)
                type_name, type_quoted = _unquote(type_item)
            if brackets:
                type_name += "[]"  # regardless of the number of bracket pairs, just a single pair is taken

            loose = loose_marker is not None
            if param_name is not None:
                placeholder = SqlPatternPlaceholder(offset, param_name, type_name, type_quoted, schema_name, schema_quoted,
                                                    loose)
                named.setdefault(param_name, []).append(placeholder)
            else:
                placeholder = SqlPatternPlaceholder(offset, len(positional), type_name, type_quoted, schema_name,
                                                    schema_quoted, loose)
                positional.append(placeholder)

            offset_delta -= len(match.group(0))
            return ""

        sql_torso = _PlaceholderPattern.sub(_replace, sql_pattern)
        return SqlPattern(sql_torso, positional, named)


class CachingSqlPatternParser(SqlPatternParser):
    """SQL pattern parser which remembers the patterns it has already parsed.

    Parameters
    ----------
    max_entries : Optional[int], optional
        Maximum number of cached patterns. Once the limit is reached, the oldest entries are evicted first. *None* (the
        default) means no limit.
    """

    def __init__(self, max_entries: Optional[int] = None) -> None:
        if max_entries is not None and max_entries <= 0:
            raise ValueError(f"Cache size must be positive, but was {max_entries}")
        self._max_entries = max_entries
        self._cache: dict[str, SqlPattern] = {}

    def parse(self, sql_pattern: str) -> SqlPattern:
        cached = self._cache.get(sql_pattern)
        if cached is not None:
            return cached
        pattern = super().parse(sql_pattern)
        if self._max_entries is not None and len(self._cache) >= self._max_entries:
            del self._cache[next(iter(self._cache))]
        self._cache[sql_pattern] = pattern
        return pattern

    def clear(self) -> None:
        """Drops all cached patterns."""
        self._cache.clear()

    @property
    def max_entries(self) -> Optional[int]:
        """Get the maximum number of cached patterns. *None* means that the cache is unbounded."""
        return self._max_entries

    def __len__(self) -> int:
        return len(self._cache)
