"""Contains the results of statements executed on the database server.

Query results are relations, so all the relational operations of `Relation` are available on them. Values are parsed
lazily: the text sent by the server is converted into a Python value only when a tuple is accessed for the first time.
"""

from __future__ import annotations

import abc
import concurrent.futures
from collections.abc import Iterator, Sequence
from typing import Any, Optional

import psycopg.pq

from .exceptions import UsageError
from .relation import Column, Relation, Tuple
from .types import Type, TypeDictionary, UndefinedType


class Result(abc.ABC):
    """Common parts of all statement results.

    Parameters
    ----------
    command_tag : Optional[str]
        The command status string sent by the server, e.g. *INSERT 0 3* or *SELECT 10*
    last_notice : Optional[str]
        The last notice the server sent while processing the statement
    """

    def __init__(self, command_tag: Optional[str], last_notice: Optional[str] = None) -> None:
        self._command_tag = command_tag
        self._last_notice = last_notice

    @property
    def command_tag(self) -> Optional[str]:
        return self._command_tag

    @property
    def last_notice(self) -> Optional[str]:
        return self._last_notice


def _decoded_command_tag(pgresult: psycopg.pq.abc.PGresult, encoding: str) -> Optional[str]:
    raw = pgresult.command_status
    return raw.decode(encoding) if raw is not None else None


class QueryResult(Result, Relation):
    """Result of a query, i.e. a relation of the rows sent by the server.

    Parameters
    ----------
    pgresult : psycopg.pq.abc.PGresult
        The libpq result
    type_dictionary : TypeDictionary
        The types to parse the values with. Columns are typed by the OIDs reported by the server. Columns of unknown types
        fail only when their values are accessed.
    encoding : str, optional
        The Python name of the client encoding
    last_notice : Optional[str], optional
        The last notice sent by the server
    """

    def __init__(self, pgresult: psycopg.pq.abc.PGresult, type_dictionary: TypeDictionary, encoding: str = "utf-8",
                 last_notice: Optional[str] = None) -> None:
        super().__init__(_decoded_command_tag(pgresult, encoding), last_notice)
        self._pgresult = pgresult
        self._encoding = encoding
        self._num_rows = pgresult.ntuples
        self._column_names = [pgresult.fname(i).decode(encoding) for i in range(pgresult.nfields)]
        self._column_types: list[Type] = []
        for i in range(pgresult.nfields):
            oid = pgresult.ftype(i)
            type_ = type_dictionary.find_type_by_oid(oid)
            self._column_types.append(type_ if type_ is not None else UndefinedType("pg_catalog", f"oid {oid}"))
        self._columns = [Column(self, i, name, type_)
                         for i, (name, type_) in enumerate(zip(self._column_names, self._column_types))]
        self._tuples: list[Optional[Tuple]] = [None] * self._num_rows

    @property
    def columns(self) -> list[Column]:
        return list(self._columns)

    def raw_value(self, col: int, i: int) -> Optional[str]:
        """Provides the text of a value exactly as sent by the server, without parsing it."""
        raw = self._pgresult.get_value(i, col)
        return bytes(raw).decode(self._encoding) if raw is not None else None

    def tuple(self, i: int = 0) -> Tuple:
        if not -self._num_rows <= i < self._num_rows:
            raise IndexError(f"No tuple at position {i}, the result has {self._num_rows} tuples")
        i %= self._num_rows
        cached = self._tuples[i]
        if cached is not None:
            return cached
        values: list[Any] = [type_.parse_value(self.raw_value(col, i)) for col, type_ in enumerate(self._column_types)]
        tup = Tuple(values, self._column_names)
        self._tuples[i] = tup
        return tup

    def __len__(self) -> int:
        return self._num_rows


class CommandResult(Result):
    """Result of a command, i.e. of a statement not producing a relation.

    Parameters
    ----------
    command_tag : Optional[str]
        The command status string sent by the server
    affected_rows : Optional[int], optional
        The number of rows the command processed, if the command reports it
    last_notice : Optional[str], optional
        The last notice sent by the server
    """

    @classmethod
    def from_pgresult(cls, pgresult: psycopg.pq.abc.PGresult, encoding: str = "utf-8",
                      last_notice: Optional[str] = None) -> CommandResult:
        return cls(_decoded_command_tag(pgresult, encoding), pgresult.command_tuples, last_notice)

    def __init__(self, command_tag: Optional[str], affected_rows: Optional[int] = None,
                 last_notice: Optional[str] = None) -> None:
        super().__init__(command_tag, last_notice)
        self._affected_rows = affected_rows

    @property
    def affected_rows(self) -> Optional[int]:
        """Gets the number of rows affected by the command, or *None* if the command does not report it."""
        return self._affected_rows

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.command_tag})"


class CopyInResult(CommandResult):
    """Result of a *COPY FROM STDIN* command. The number of copied rows is available as `affected_rows`."""


class CopyOutResult(CommandResult):
    """Result of a *COPY TO STDOUT* command, carrying the copied lines (without line terminators)."""

    def __init__(self, command_tag: Optional[str], lines: Sequence[str], affected_rows: Optional[int] = None,
                 last_notice: Optional[str] = None) -> None:
        super().__init__(command_tag, affected_rows, last_notice)
        self._lines = list(lines)

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class AsyncResult:
    """Handle of a statement which has been sent to the server without waiting for it to finish.

    The statement runs in the background. `get_result` blocks until the server has finished and provides the actual
    result. Errors of the statement are raised by `get_result`, not upon sending it.

    Parameters
    ----------
    future : concurrent.futures.Future[Result]
        The pending execution of the statement
    """

    def __init__(self, future: concurrent.futures.Future[Result]) -> None:
        self._future = future

    def done(self) -> bool:
        """Checks whether the server has finished the statement, i.e. whether `get_result` would return immediately."""
        return self._future.done()

    def get_result(self, timeout: Optional[float] = None) -> Result:
        """Waits for the statement to finish and provides its result.

        Parameters
        ----------
        timeout : Optional[float], optional
            The number of seconds to wait at most. *None* (the default) waits until the statement is finished.

        Raises
        ------
        TimeoutError
            If the statement is still running after `timeout` seconds. The result may be requested again later.
        StatementError
            If the server reported an error for the statement
        """
        return self._future.result(timeout=timeout)

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        return f"{type(self).__name__}({state})"


class AsyncQueryResult(AsyncResult):
    """Handle of a query sent without waiting. It resolves into a `QueryResult`."""

    def get_result(self, timeout: Optional[float] = None) -> QueryResult:
        """Waits for the query to finish and provides its result.

        Raises
        ------
        UsageError
            If the statement turned out not to be a query
        """
        result = super().get_result(timeout)
        if not isinstance(result, QueryResult):
            raise UsageError("The supplied SQL statement was supposed to be a query, but it did not return a result set. "
                             "Did you mean to call command_async()?")
        return result


class AsyncCommandResult(AsyncResult):
    """Handle of a command sent without waiting. It resolves into a `CommandResult`."""

    def get_result(self, timeout: Optional[float] = None) -> CommandResult:
        """Waits for the command to finish and provides its result.

        Raises
        ------
        UsageError
            If the statement turned out to be a query
        """
        result = super().get_result(timeout)
        if not isinstance(result, CommandResult):
            raise UsageError("The supplied SQL statement was supposed to be a command, but it returned a result set. "
                             "Did you mean to call query_async()?")
        return result
