"""Contains server-side cursors, which fetch the rows of a query step by step."""

from __future__ import annotations

import math
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..exceptions import ClosedCursorError
from ..query import RelationRecipe
from ..relation import Tuple
from ..result import QueryResult
from ..util import LogicError

if TYPE_CHECKING:
    from .connection import Connection

_MoveTagPattern = re.compile(r"^MOVE (\d+)$")

_CursorPropertiesQuery = """
SELECT is_holdable, is_scrollable, is_binary
FROM pg_catalog.pg_cursors
WHERE name = %s"""


@dataclass(frozen=True)
class CursorProperties:
    """Properties a cursor has been declared with."""
    holdable: bool
    scrollable: bool
    binary: bool


def _relative_direction(move_by: int) -> str:
    if move_by == 1:
        return "NEXT"
    if move_by == -1:
        return "PRIOR"
    return f"RELATIVE {move_by}"


def _counting_direction(count: int | float) -> str:
    if count == math.inf:
        return "FORWARD ALL"
    if count == -math.inf:
        return "BACKWARD ALL"
    if count >= 0:
        return f"FORWARD {int(count)}"
    return f"BACKWARD {int(-count)}"


class Cursor:
    """A cursor declared on the server.

    Positions are numbered as by the *FETCH* statement: the first row is at position 1, position 0 is before the
    first row.

    Parameters
    ----------
    connection : Connection
        The connection the cursor lives in
    name : str
        The name of the cursor
    properties : Optional[CursorProperties], optional
        The properties, if already known. They are fetched from the server upon first use otherwise.
    """

    def __init__(self, connection: Connection, name: str, properties: Optional[CursorProperties] = None) -> None:
        self._conn = connection
        self._name = name
        self._properties = properties
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def properties(self) -> CursorProperties:
        """Gets the properties of the cursor.

        Raises
        ------
        ClosedCursorError
            If the cursor does not exist (anymore)
        """
        if self._properties is None and self.is_closed():
            raise ClosedCursorError(self._name)
        return self._properties

    def fetch(self, move_by: int = 1) -> Optional[Tuple]:
        """Moves the cursor relative to its current position and fetches the row there.

        Returns
        -------
        Optional[Tuple]
            The row, or *None* if the cursor has moved beyond the rows
        """
        return self._fetch_single(_relative_direction(move_by))

    def fetch_at(self, position: int) -> Optional[Tuple]:
        """Moves the cursor to an absolute position and fetches the row there.

        Negative positions count from the end, -1 being the last row.
        """
        return self._fetch_single(f"ABSOLUTE {position}")

    def fetch_multi(self, count: int | float) -> QueryResult:
        """Fetches the next `count` rows (or the preceding ones if `count` is negative).

        Use ``math.inf`` (or ``-math.inf``) to fetch all remaining (or all foregoing) rows.
        """
        self._assert_open()
        return self._conn.query("FETCH %sql %ident", _counting_direction(count), self._name)

    def move_by(self, offset: int) -> int:
        """Moves the cursor relative to its current position, without fetching anything.

        Returns
        -------
        int
            1 if the cursor ended up on a row, 0 if it moved beyond the rows
        """
        return self._move(_relative_direction(offset))

    def move_to(self, position: int) -> int:
        return self._move(f"ABSOLUTE {position}")

    def move_and_count(self, offset: int | float) -> int:
        """Moves the cursor by `offset` rows, counting the rows it passed on its way."""
        return self._move(_counting_direction(offset))

    def close(self) -> None:
        self._assert_open()
        self._conn.command("CLOSE %ident", self._name)
        self._closed = True

    def is_closed(self) -> bool:
        """Checks, whether the cursor is closed, asking the server if unsure."""
        if self._closed:
            return True
        result = self._conn.query(_CursorPropertiesQuery, self._name)
        if not len(result):
            self._closed = True
            return True
        if self._properties is None:
            row = result.tuple()
            self._properties = CursorProperties(row.is_holdable, row.is_scrollable, row.is_binary)
        return False

    def iterate(self, buffer_size: int = 0) -> Iterator[Tuple]:
        """Iterates over all rows of the cursor, starting from the first one.

        Parameters
        ----------
        buffer_size : int, optional
            If positive, the rows are fetched in batches of this size. Otherwise, the rows are fetched one by one using
            absolute positions, which requires a scrollable cursor.
        """
        if buffer_size <= 0:
            position = 1
            while True:
                row = self.fetch_at(position)
                if row is None:
                    return
                yield row
                position += 1

        self.move_to(0)
        while True:
            batch = self.fetch_multi(buffer_size)
            yield from batch
            if len(batch) < buffer_size:
                return

    def __iter__(self) -> Iterator[Tuple]:
        return self.iterate()

    def _fetch_single(self, direction_sql: str) -> Optional[Tuple]:
        self._assert_open()
        result = self._conn.query("FETCH %sql %ident", direction_sql, self._name)
        return result.tuple() if len(result) else None

    def _move(self, direction_sql: str) -> int:
        self._assert_open()
        result = self._conn.command("MOVE %sql %ident", direction_sql, self._name)
        match = _MoveTagPattern.match(result.command_tag or "")
        if not match:
            raise LogicError(f"Unexpected command tag: {result.command_tag}")
        return int(match.group(1))

    def _assert_open(self) -> None:
        if self._closed:
            raise ClosedCursorError(self._name)

    def __repr__(self) -> str:
        return f"Cursor({self._name})"


class CursorControl:
    """Declares and manages server-side cursors."""

    def declare_cursor(self, name: str, recipe: RelationRecipe, *, binary: bool = False, holdable: bool = False,
                       scrollable: Optional[bool] = None) -> Cursor:
        """Declares a new cursor.

        Unless the cursor is holdable, it has to be declared within a transaction and ceases to exist at its end.

        Parameters
        ----------
        name : str
            The cursor name
        recipe : RelationRecipe
            The query to iterate over
        binary : bool, optional
            Whether to fetch the values in the binary format. Note that values in this format cannot be parsed by the
            type dictionary.
        holdable : bool, optional
            Whether the cursor outlives the transaction that created it
        scrollable : Optional[bool], optional
            Whether the cursor supports moving backwards. The server decides if left unspecified.
        """
        declaration = "DECLARE %ident"
        if binary:
            declaration += " BINARY"
        if scrollable is True:
            declaration += " SCROLL"
        elif scrollable is False:
            declaration += " NO SCROLL"
        declaration += " CURSOR"
        if holdable:
            declaration += " WITH HOLD"
        declaration += " FOR %rel"

        self.command(declaration, name, recipe)
        properties = CursorProperties(holdable, scrollable, binary) if scrollable is not None else None
        return Cursor(self, name, properties)

    def all_cursors(self) -> dict[str, Cursor]:
        """Provides all cursors currently declared on the connection, in the order of their creation."""
        result = self.raw_query("SELECT name, is_holdable, is_scrollable, is_binary "
                                "FROM pg_catalog.pg_cursors WHERE name <> '' ORDER BY creation_time")
        cursors = {}
        for row in result:
            cursors[row.name] = Cursor(self, row.name, CursorProperties(row.is_holdable, row.is_scrollable,
                                                                          row.is_binary))
        return cursors

    def close_all_cursors(self) -> None:
        self.raw_command("CLOSE ALL")
