"""Contains the *COPY* facilities of connections, transferring data between tables and files, programs or the client."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Literal, Optional

import psycopg

from ..lang.sql import quote_ident, quote_literal
from ..query import RelationRecipe
from ..result import CommandResult, CopyInResult, CopyOutResult


@dataclass(frozen=True)
class CopyOptions:
    """The options of a *COPY* statement. Options left as *None* are not specified, so the server defaults apply.

    Attributes
    ----------
    format : Optional[Literal["text", "csv", "binary"]]
        The data format
    freeze : Optional[bool]
        Whether to copy the rows as already frozen (*COPY FROM* only)
    delimiter : Optional[str]
        The character separating columns
    null : Optional[str]
        The string representing a null value
    header : Optional[bool | Literal["match"]]
        Whether there is a header line with the column names
    quote : Optional[str]
        The quoting character (CSV only)
    escape : Optional[str]
        The escaping character (CSV only)
    force_quote : Optional[Sequence[str] | Literal["*"]]
        Columns to quote all non-null values of (*COPY TO* in CSV only)
    force_not_null : Optional[Sequence[str]]
        Columns not to match against the null string (*COPY FROM* in CSV only)
    force_null : Optional[Sequence[str]]
        Columns to match against the null string even if quoted (*COPY FROM* in CSV only)
    encoding : Optional[str]
        The encoding of the data
    """

    format: Optional[Literal["text", "csv", "binary"]] = None
    freeze: Optional[bool] = None
    delimiter: Optional[str] = None
    null: Optional[str] = None
    header: Optional[bool | Literal["match"]] = None
    quote: Optional[str] = None
    escape: Optional[str] = None
    force_quote: Optional[Sequence[str] | Literal["*"]] = None
    force_not_null: Optional[Sequence[str]] = None
    force_null: Optional[Sequence[str]] = None
    encoding: Optional[str] = None

    def to_sql(self) -> str:
        """Provides the *WITH* clause of the options, or an empty string if no option is specified."""
        options = []
        if self.format is not None:
            options.append(f"FORMAT {self.format}")
        if self.freeze is not None:
            options.append(f"FREEZE {'TRUE' if self.freeze else 'FALSE'}")
        if self.delimiter is not None:
            options.append(f"DELIMITER {quote_literal(self.delimiter)}")
        if self.null is not None:
            options.append(f"NULL {quote_literal(self.null)}")
        if self.header is not None:
            header = "MATCH" if self.header == "match" else ("TRUE" if self.header else "FALSE")
            options.append(f"HEADER {header}")
        if self.quote is not None:
            options.append(f"QUOTE {quote_literal(self.quote)}")
        if self.escape is not None:
            options.append(f"ESCAPE {quote_literal(self.escape)}")
        if self.force_quote is not None:
            columns = "*" if self.force_quote == "*" else _column_list(self.force_quote)
            options.append(f"FORCE_QUOTE {columns}")
        if self.force_not_null is not None:
            options.append(f"FORCE_NOT_NULL {_column_list(self.force_not_null)}")
        if self.force_null is not None:
            options.append(f"FORCE_NULL {_column_list(self.force_null)}")
        if self.encoding is not None:
            options.append(f"ENCODING {quote_literal(self.encoding)}")
        return f"WITH ({', '.join(options)})" if options else ""


def _column_list(columns: Iterable[str]) -> str:
    return "(" + ", ".join(quote_ident(column) for column in columns) + ")"


def _table_sql(table: str, columns: Optional[Sequence[str]]) -> str:
    sql = ".".join(quote_ident(part) for part in table.split("."))
    if columns:
        sql += " " + _column_list(columns)
    return sql


def _copy_statement(target: str, direction: str, endpoint: str, options: Optional[CopyOptions]) -> str:
    statement = f"COPY {target} {direction} {endpoint}"
    with_clause = options.to_sql() if options is not None else ""
    return f"{statement} {with_clause}" if with_clause else statement


class CopyControl:
    """Copies data between tables and files, programs or the client.

    Files and programs are accessed by the server process, so the corresponding methods require the privileges of the
    *pg_read_server_files*, *pg_write_server_files* or *pg_execute_server_program* roles. Data of the client are
    transferred through *COPY FROM STDIN* and *COPY TO STDOUT*.
    """

    def copy_from_file(self, file: str, table: str, columns: Optional[Sequence[str]] = None,
                       options: Optional[CopyOptions] = None) -> CommandResult:
        """Copies the contents of a file on the server into a table."""
        sql = _copy_statement(_table_sql(table, columns), "FROM", quote_literal(file), options)
        return self.raw_command(sql)

    def copy_from_program(self, program: str, table: str, columns: Optional[Sequence[str]] = None,
                          options: Optional[CopyOptions] = None) -> CommandResult:
        """Copies the output of a program run by the server into a table."""
        sql = _copy_statement(_table_sql(table, columns), "FROM", f"PROGRAM {quote_literal(program)}", options)
        return self.raw_command(sql)

    def copy_from_input(self, table: str, rows: Iterable[str | bytes], columns: Optional[Sequence[str]] = None,
                        options: Optional[CopyOptions] = None) -> CopyInResult:
        """Copies data sent by the client into a table.

        Parameters
        ----------
        table : str
            The target table, optionally qualified by the schema
        rows : Iterable[str | bytes]
            The data. Strings are lines in the text or CSV format and are terminated by a newline automatically. Bytes
            are sent unchanged, which allows for the binary format.
        columns : Optional[Sequence[str]], optional
            The columns the data are given for. All columns are expected by default.
        options : Optional[CopyOptions], optional
            The format of the data

        Returns
        -------
        CopyInResult
            The result, informing about the number of copied rows
        """
        sql = _copy_statement(_table_sql(table, columns), "FROM", "STDIN", options)
        conn = self.require_connection()
        self._log("Executing", sql)
        cursor = conn.cursor()
        try:
            with cursor.copy(sql) as copy:
                for row in rows:
                    copy.write(row if isinstance(row, bytes) else row + "\n")
        except psycopg.Error as e:
            raise self._translate_driver_error(e, sql) from e
        return CopyInResult(f"COPY {cursor.rowcount}", cursor.rowcount, self._take_last_notice())

    def copy_to_file(self, file: str, table_or_recipe: str | RelationRecipe, columns: Optional[Sequence[str]] = None,
                     options: Optional[CopyOptions] = None) -> CommandResult:
        """Copies the contents of a table or the result of a query into a file on the server."""
        sql = _copy_statement(self._copy_source(table_or_recipe, columns), "TO", quote_literal(file), options)
        return self.raw_command(sql)

    def copy_to_program(self, program: str, table_or_recipe: str | RelationRecipe,
                        columns: Optional[Sequence[str]] = None, options: Optional[CopyOptions] = None) -> CommandResult:
        """Feeds the contents of a table or the result of a query to a program run by the server."""
        sql = _copy_statement(self._copy_source(table_or_recipe, columns), "TO", f"PROGRAM {quote_literal(program)}",
                              options)
        return self.raw_command(sql)

    def copy_to_array(self, table_or_recipe: str | RelationRecipe, columns: Optional[Sequence[str]] = None,
                      options: Optional[CopyOptions] = None) -> CopyOutResult:
        """Copies the contents of a table or the result of a query to the client.

        Returns
        -------
        CopyOutResult
            The result holding the copied lines, without line terminators
        """
        sql = _copy_statement(self._copy_source(table_or_recipe, columns), "TO", "STDOUT", options)
        conn = self.require_connection()
        self._log("Executing", sql)
        cursor = conn.cursor()
        chunks: list[bytes] = []
        try:
            with cursor.copy(sql) as copy:
                for data in copy:
                    chunks.append(bytes(data))
        except psycopg.Error as e:
            raise self._translate_driver_error(e, sql) from e

        text = b"".join(chunks).decode(self._client_encoding())
        lines = text.split("\n")
        if lines and not lines[-1]:
            lines.pop()
        return CopyOutResult(f"COPY {cursor.rowcount}", lines, cursor.rowcount, self._take_last_notice())

    def _copy_source(self, table_or_recipe: str | RelationRecipe, columns: Optional[Sequence[str]]) -> str:
        if isinstance(table_or_recipe, RelationRecipe):
            if columns:
                raise ValueError("Columns cannot be specified when copying the result of a query")
            return f"({table_or_recipe.to_sql(self.type_dictionary)})"
        return _table_sql(table_or_recipe, columns)
