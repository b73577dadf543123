"""Contains the execution of statements and the conversion of their outcome into results."""

from __future__ import annotations

import concurrent.futures
import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional, TypeVar

import psycopg
import psycopg.pq

from ..exceptions import (
    InvalidStateError,
    IvoryConnectionError,
    ResultError,
    StatementErrorFactory,
    UsageError,
)
from ..query import CommandRecipe, RelationRecipe, SqlCommandRecipe, SqlPatternRecipe, SqlRecipe, SqlRelationRecipe
from ..relation import Tuple
from ..result import AsyncCommandResult, AsyncQueryResult, AsyncResult, CommandResult, QueryResult, Result
from ..util import timestamp

if TYPE_CHECKING:
    from ..lang.sqlpattern import SqlPattern

ExecStatus = psycopg.pq.ExecStatus

H = TypeVar("H", bound=AsyncResult)


def _error_message(sql: str, error: Exception) -> str:
    return "\n".join([f"At {timestamp()}", "For query:", sql, "Message:", str(error)])


class StatementExecution:
    """Executes statements on the server.

    There are two families of methods: `query` and its variants for statements producing a relation, and `command` for
    all the other statements. Both accept either a recipe or SQL pattern fragments with their values (see
    `SqlPatternRecipe.from_fragments`). The *raw* methods take a ready-made SQL string instead.

    The *async* methods send the statement and return right away with a handle of its result. The statement runs in a
    background thread on the same driver connection. Statements executed afterwards wait until it is finished.

    Errors reported by the server are raised as `StatementError`. The actual error class is decided by the
    `statement_error_factory` of the connection, which falls back to the global factory.
    """

    def _init_execution(self) -> None:
        self._statement_error_factory = StatementErrorFactory()
        self._async_executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._last_sent_statement: Optional[concurrent.futures.Future] = None
        self._sender_state = threading.local()

    @property
    def statement_error_factory(self) -> StatementErrorFactory:
        """Gets the factory deciding which errors to raise for failed statements on this connection.

        Rules registered on this factory take precedence over the rules of the global factory.
        """
        return self._statement_error_factory

    def query(self, fragment_or_recipe: str | SqlPattern | RelationRecipe, *fragments_and_params: Any) -> QueryResult:
        """Queries the database for a relation.

        Parameters
        ----------
        fragment_or_recipe : str | SqlPattern | RelationRecipe
            Either a recipe of the query or the first SQL pattern fragment
        *fragments_and_params : Any
            For fragments, the values of their placeholders and further fragments. For a recipe based on an SQL pattern, a
            single mapping may be given with values of named placeholders, which is used instead of the values set on the
            recipe.

        Raises
        ------
        ValueError
            If the parameters do not match the fragments or if some placeholders are left without a value
        StatementError
            If the server reports an error
        UsageError
            If the statement turns out not to be a query
        """
        recipe = self._relation_recipe(fragment_or_recipe, fragments_and_params)
        return self.raw_query(self._recipe_to_sql(recipe))

    def query_one_row(self, fragment_or_recipe: str | SqlPattern | RelationRecipe, *fragments_and_params: Any) -> Tuple:
        """Queries the database for a relation which must consist of exactly one row, and provides that row.

        Raises
        ------
        ResultError
            If the query results in no or multiple rows
        """
        relation = self.query(fragment_or_recipe, *fragments_and_params)
        if len(relation) != 1:
            raise ResultError(f"The query should have resulted in exactly one row, but has {len(relation)} rows.")
        return relation.tuple()

    def query_one_column(self, fragment_or_recipe: str | SqlPattern | RelationRecipe,
                         *fragments_and_params: Any) -> list[Any]:
        """Queries the database for a relation which must consist of exactly one column, and provides its values."""
        relation = self.query(fragment_or_recipe, *fragments_and_params)
        n_cols = len(relation.columns)
        if n_cols != 1:
            raise ResultError(f"The query should have resulted in exactly one column, but has {n_cols} columns.")
        return relation.col(0).to_list()

    def query_one_value(self, fragment_or_recipe: str | SqlPattern | RelationRecipe, *fragments_and_params: Any) -> Any:
        """Queries the database for a single value, i.e. a relation of exactly one row and one column."""
        relation = self.query(fragment_or_recipe, *fragments_and_params)
        if len(relation) != 1:
            raise ResultError(f"The query should have resulted in exactly one row, but has {len(relation)} rows.")
        n_cols = len(relation.columns)
        if n_cols != 1:
            raise ResultError(f"The query should have resulted in exactly one column, but has {n_cols} columns.")
        return relation.value()

    def command(self, fragment_or_recipe: str | SqlPattern | CommandRecipe,
                *fragments_and_params: Any) -> CommandResult:
        """Executes a command, i.e. a statement which does not produce a relation.

        Takes the same arguments as `query`.

        Raises
        ------
        UsageError
            If the statement turns out to be a query
        """
        recipe = self._command_recipe(fragment_or_recipe, fragments_and_params)
        return self.raw_command(self._recipe_to_sql(recipe))

    def raw_query(self, sql: str) -> QueryResult:
        result = self.execute_statement(sql)
        if not isinstance(result, QueryResult):
            raise UsageError("The supplied SQL statement was supposed to be a query, but it did not return a result set. "
                             "Did you mean to call command() or raw_command()?")
        return result

    def raw_command(self, sql: str) -> CommandResult:
        result = self.execute_statement(sql)
        if not isinstance(result, CommandResult):
            raise UsageError("The supplied SQL statement was supposed to be a command, but it returned a result set. "
                             "Did you mean to call query() or raw_query()?")
        return result

    def execute_statement(self, sql: str) -> Result:
        """Executes a single SQL statement and provides its result, whatever kind it is."""
        results = self._execute(sql)
        return self._process_result(results[-1], sql)

    def query_async(self, fragment_or_recipe: str | SqlPattern | RelationRecipe,
                    *fragments_and_params: Any) -> AsyncQueryResult:
        """Sends a query to the server and returns without waiting for its result.

        Takes the same arguments as `query`. The SQL is generated right away, so errors in the arguments are raised
        immediately. Errors reported by the server are raised once the result is requested.

        Examples
        --------
        >>> pending = conn.query_async("SELECT pg_sleep(1), %i", 42)
        >>> ...  # do some other work meanwhile
        >>> result = pending.get_result()  # waits for the query to finish
        """
        recipe = self._relation_recipe(fragment_or_recipe, fragments_and_params)
        return self._send_statement(self._recipe_to_sql(recipe), AsyncQueryResult)

    def command_async(self, fragment_or_recipe: str | SqlPattern | CommandRecipe,
                      *fragments_and_params: Any) -> AsyncCommandResult:
        """Sends a command to the server and returns without waiting for its result.

        Takes the same arguments as `command`. See `query_async` for details.
        """
        recipe = self._command_recipe(fragment_or_recipe, fragments_and_params)
        return self._send_statement(self._recipe_to_sql(recipe), AsyncCommandResult)

    def execute_statement_async(self, statement: str | SqlRecipe) -> AsyncResult:
        """Sends a single statement to the server and returns without waiting for its result, whatever kind it is.

        Parameters
        ----------
        statement : str | SqlRecipe
            Either a raw SQL string or a recipe, which is turned into SQL using the current type dictionary
        """
        sql = statement if isinstance(statement, str) else self._recipe_to_sql(statement)
        return self._send_statement(sql, AsyncResult)

    def raw_multi_statement(self, statements: Iterable[str] | Mapping[Any, str]) -> list[Result] | dict[Any, Result]:
        """Executes several statements one after another.

        Execution stops at the first failing statement, raising its error.

        Parameters
        ----------
        statements : Iterable[str] | Mapping[Any, str]
            The statements. If a mapping is given, the results are provided under the same keys.

        Returns
        -------
        list[Result] | dict[Any, Result]
            The results, in the order of the statements
        """
        if isinstance(statements, Mapping):
            return {key: self.execute_statement(sql) for key, sql in statements.items()}
        return [self.execute_statement(sql) for sql in statements]

    def run_script(self, sql_script: str) -> list[Result]:
        """Executes a script of several statements separated by semicolons, all sent to the server at once.

        The server stops processing the script at the first failing statement. In that case the error is raised and the
        results of the preceding statements are lost.
        """
        return [self._process_result(pgresult, sql_script) for pgresult in self._execute(sql_script)]

    def query_text_rows(self, sql: str) -> list[tuple[Optional[str], ...]]:
        """Runs a query and provides the rows exactly as sent by the server, without consulting the type dictionary.

        This is used to bootstrap the type dictionary itself.
        """
        pgresult = self._execute(sql)[-1]
        if pgresult.status != ExecStatus.TUPLES_OK:
            raise UsageError(f"The statement was supposed to be a query: {sql}")
        encoding = self._client_encoding()
        rows = []
        for i in range(pgresult.ntuples):
            raw_values = (pgresult.get_value(i, col) for col in range(pgresult.nfields))
            rows.append(tuple(bytes(raw).decode(encoding) if raw is not None else None for raw in raw_values))
        return rows

    def _relation_recipe(self, fragment_or_recipe: str | SqlPattern | RelationRecipe,
                         fragments_and_params: Sequence[Any]) -> SqlRecipe:
        if isinstance(fragment_or_recipe, SqlRecipe):
            return self._apply_recipe_params(fragment_or_recipe, fragments_and_params)
        return SqlRelationRecipe.from_fragments(fragment_or_recipe, *fragments_and_params)

    def _command_recipe(self, fragment_or_recipe: str | SqlPattern | CommandRecipe,
                        fragments_and_params: Sequence[Any]) -> SqlRecipe:
        if isinstance(fragment_or_recipe, SqlRecipe):
            return self._apply_recipe_params(fragment_or_recipe, fragments_and_params)
        return SqlCommandRecipe.from_fragments(fragment_or_recipe, *fragments_and_params)

    def _send_statement(self, sql: str, handle_type: type[H]) -> H:
        self.require_connection()
        if self._async_executor is None:
            self._async_executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="ivory-async")
        self._last_sent_statement = self._async_executor.submit(self._execute_sent_statement, sql)
        return handle_type(self._last_sent_statement)

    def _execute_sent_statement(self, sql: str) -> Result:
        self._sender_state.active = True
        try:
            return self._process_result(self._execute_now(sql)[-1], sql)
        finally:
            self._sender_state.active = False

    def _await_sent_statements(self) -> None:
        # sent statements run one after another, so the last one finishes after all the others
        if self._last_sent_statement is not None and not getattr(self._sender_state, "active", False):
            concurrent.futures.wait([self._last_sent_statement])

    def _finish_async_statements(self) -> None:
        """Waits for all statements sent without waiting and stops the background thread executing them."""
        if self._async_executor is None:
            return
        self._async_executor.shutdown(wait=True)
        self._async_executor = None
        self._last_sent_statement = None

    def _apply_recipe_params(self, recipe: SqlRecipe, args: Sequence[Any]) -> SqlRecipe:
        if not args:
            return recipe
        if isinstance(recipe, SqlPatternRecipe) and len(args) == 1 and isinstance(args[0], Mapping):
            return type(recipe)(recipe.sql_pattern, recipe.positional_params, recipe.named_params | dict(args[0]))
        raise ValueError("Too many arguments given.")

    def _recipe_to_sql(self, recipe: SqlRecipe) -> str:
        try:
            return recipe.to_sql(self.type_dictionary)
        except InvalidStateError as e:
            raise ValueError(str(e)) from e

    def _execute(self, sql: str) -> list[psycopg.pq.abc.PGresult]:
        self._await_sent_statements()
        return self._execute_now(sql)

    def _execute_now(self, sql: str) -> list[psycopg.pq.abc.PGresult]:
        conn = self.require_connection()
        self._log("Executing", sql)
        cursor = conn.cursor()
        try:
            cursor.execute(sql)
        except psycopg.Error as e:
            raise self._translate_driver_error(e, sql) from e

        results = [cursor.pgresult]
        while cursor.nextset():
            results.append(cursor.pgresult)
        return [result for result in results if result is not None]

    def _translate_driver_error(self, error: psycopg.Error, sql: str) -> Exception:
        if error.pgresult is not None and error.pgresult.status == ExecStatus.FATAL_ERROR:
            return self._statement_error_factory.create_error(error.pgresult, sql, _global_error_factory())
        if isinstance(error, psycopg.OperationalError):
            return IvoryConnectionError(_error_message(sql, error), error)
        return UsageError(_error_message(sql, error))

    def _process_result(self, pgresult: psycopg.pq.abc.PGresult, sql: str) -> Result:
        notice = self._take_last_notice()
        encoding = self._client_encoding()
        match pgresult.status:
            case ExecStatus.TUPLES_OK:
                return QueryResult(pgresult, self.type_dictionary, encoding, notice)
            case ExecStatus.COMMAND_OK:
                return CommandResult.from_pgresult(pgresult, encoding, notice)
            case ExecStatus.COPY_IN | ExecStatus.COPY_OUT | ExecStatus.COPY_BOTH:
                raise UsageError("COPY statements have to be executed through the copy methods of the connection")
            case _:
                raise self._statement_error_factory.create_error(pgresult, sql, _global_error_factory())


def _global_error_factory() -> StatementErrorFactory:
    from .._globals import default_statement_error_factory
    return default_statement_error_factory()
