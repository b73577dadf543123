"""Tests for the interaction with an actual PostgreSQL server.

The tests here mainly act as regression tests to ensure that statements are executed and their results are parsed
correctly. They require a database connection, as described by the *.psycopg_connection* file in the `pg_connect_dir`.
All tests work on temporary tables or roll back their changes, so any scratch database will do.
"""
from __future__ import annotations

import datetime
import decimal
import unittest

import ivory
from ivory import (
    AsyncCommandResult,
    AsyncQueryResult,
    Composite,
    EnumItem,
    InvalidStateError,
    IsolationLevel,
    QueryResult,
    Range,
    ResultError,
    SqlRelationRecipe,
    StatementError,
    TxConfig,
    UsageError,
)
from ivory.connection.config import Quantity
from ivory.connection.transactions import TransactionObserver
from tests import regression_suite

pg_connect_dir = "."
pg_config_file = f"{pg_connect_dir}/.psycopg_connection"


class DivisionByZeroError(StatementError):
    pass


class _RecordingObserver(TransactionObserver):
    def __init__(self) -> None:
        self.events: list[str] = []

    def handle_transaction_start(self) -> None:
        self.events.append("start")

    def handle_transaction_commit(self) -> None:
        self.events.append("commit")

    def handle_transaction_rollback(self) -> None:
        self.events.append("rollback")

    def handle_savepoint_saved(self, name: str) -> None:
        self.events.append(f"savepoint {name}")


class _DatabaseTestCase(regression_suite.RelationTestCase):
    def setUp(self) -> None:
        self.conn = ivory.connect(config_file=pg_config_file, private=True)

    def tearDown(self) -> None:
        self.conn.close()


@regression_suite.skip_if_no_db(pg_config_file)
class ConnectionTests(_DatabaseTestCase):
    def test_connection_state(self) -> None:
        self.assertTrue(self.conn.is_connected())
        self.assertFalse(self.conn.connect(), "Established connection should not be re-established")
        self.assertGreater(self.conn.backend_pid(), 0)

        self.assertTrue(self.conn.disconnect())
        self.assertFalse(self.conn.is_connected())
        self.assertTrue(self.conn.connect())
        self.assertEqual(self.conn.query_one_value("SELECT 1"), 1)

    def test_connect_hooks(self) -> None:
        calls = []
        self.conn.register_connect_hook(lambda conn: calls.append("connect"))
        self.conn.register_pre_disconnect_hook(lambda conn: calls.append("disconnect"))
        self.conn.disconnect()
        self.conn.connect()
        self.assertEqual(calls, ["disconnect", "connect"])

    def test_application_name(self) -> None:
        self.assertEqual(self.conn.config.get("application_name"), "Ivory")


@regression_suite.skip_if_no_db(pg_config_file)
class StatementExecutionTests(_DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.conn.command("CREATE TEMPORARY TABLE person (id int PRIMARY KEY, name text, age int)")
        self.conn.command("INSERT INTO person VALUES (1, 'Alice', 31), (2, 'Bob', 17), (3, 'Carol', NULL)")

    def test_query(self) -> None:
        result = self.conn.query("SELECT id, name FROM person WHERE age > %i ORDER BY id", 18)
        self.assertRelationRows(result, [(1, "Alice")])
        self.assertEqual(result.column_names, ["id", "name"])
        self.assertEqual(result.command_tag, "SELECT 1")

    def test_query_fragments(self) -> None:
        result = self.conn.query("SELECT name FROM person", "WHERE name LIKE %like_", "A", "OR age IS NULL ORDER BY id")
        self.assertEqual(result.col("name").values(), ["Alice", "Carol"])

    def test_query_recipe(self) -> None:
        recipe = SqlRelationRecipe.from_pattern("SELECT name FROM person WHERE id = %i:id")
        self.assertEqual(self.conn.query_one_value(recipe, {"id": 2}), "Bob")
        self.assertEqual(self.conn.query_one_value(recipe.limit(1), {"id": 3}), "Carol")
        with self.assertRaises(ValueError):
            self.conn.query(recipe)

    def test_query_shapes(self) -> None:
        row = self.conn.query_one_row("SELECT * FROM person WHERE id = %i", 1)
        self.assertEqual((row.name, row.age), ("Alice", 31))
        self.assertEqual(self.conn.query_one_column("SELECT id FROM person ORDER BY id"), [1, 2, 3])
        self.assertIsNone(self.conn.query_one_value("SELECT age FROM person WHERE id = 3"))

        with self.assertRaises(ResultError):
            self.conn.query_one_row("SELECT * FROM person")
        with self.assertRaises(ResultError):
            self.conn.query_one_column("SELECT id, name FROM person")
        with self.assertRaises(ResultError):
            self.conn.query_one_value("SELECT id FROM person WHERE id < 0")

    def test_command(self) -> None:
        result = self.conn.command("UPDATE person SET age = age + 1 WHERE age IS NOT NULL")
        self.assertEqual(result.affected_rows, 2)
        self.assertEqual(result.command_tag, "UPDATE 2")

    def test_wrong_statement_kind(self) -> None:
        with self.assertRaises(UsageError):
            self.conn.raw_command("SELECT 1")
        with self.assertRaises(UsageError):
            self.conn.raw_query("LISTEN ivory_unused")

    def test_multiple_statements(self) -> None:
        results = self.conn.raw_multi_statement({"count": "SELECT count(*) FROM person",
                                                 "delete": "DELETE FROM person WHERE id = 3"})
        self.assertEqual(results["count"].value(), 3)
        self.assertEqual(results["delete"].affected_rows, 1)

        script_results = self.conn.run_script("SELECT 1; SELECT 2")
        self.assertEqual([result.value() for result in script_results], [1, 2])

    def test_statement_errors(self) -> None:
        with self.assertRaises(StatementError) as context:
            self.conn.query("SELECT * FROM nonexistent_table")
        self.assertEqual(context.exception.sqlstate, "42P01")
        self.assertEqual(context.exception.sqlstate_class, "42")
        self.assertIsNotNone(context.exception.statement_position)

        self.conn.statement_error_factory.register_by_sqlstate_code("22012", DivisionByZeroError)
        with self.assertRaises(DivisionByZeroError):
            self.conn.query("SELECT 1 / 0")

        self.assertEqual(self.conn.query_one_value("SELECT 1"), 1, "Connection should be usable after an error")

    def test_async_query(self) -> None:
        pending = self.conn.query_async("SELECT name, pg_sleep(0.1) FROM person WHERE id = %i", 1)
        self.assertIsInstance(pending, AsyncQueryResult)
        result = pending.get_result()
        self.assertTrue(pending.done())
        self.assertEqual(result.value("name"), "Alice")
        self.assertIs(pending.get_result(), result, "Repeated requests should provide the same result")

        with self.assertRaises(ValueError):
            self.conn.query_async("SELECT %i, %i", 1)

    def test_async_command(self) -> None:
        pending = self.conn.command_async("DELETE FROM person WHERE age < %i", 18)
        self.assertIsInstance(pending, AsyncCommandResult)
        self.assertEqual(self.conn.query_one_value("SELECT count(*) FROM person"), 2,
                         "Statements sent afterwards should wait for the pending one")
        self.assertEqual(pending.get_result().affected_rows, 1)

    def test_async_statement(self) -> None:
        raw = self.conn.execute_statement_async("SELECT 42")
        from_recipe = self.conn.execute_statement_async(SqlRelationRecipe.from_pattern("SELECT %s", "x").limit(1))
        command = self.conn.execute_statement_async("DELETE FROM person")
        self.assertIsInstance(raw.get_result(), QueryResult)
        self.assertEqual(from_recipe.get_result().value(), "x")
        self.assertEqual(command.get_result().affected_rows, 3)

    def test_async_errors(self) -> None:
        pending = self.conn.query_async("SELECT * FROM nonexistent_table")
        with self.assertRaises(StatementError) as context:
            pending.get_result()
        self.assertEqual(context.exception.sqlstate, "42P01")

        with self.assertRaises(UsageError):
            self.conn.query_async("LISTEN ivory_unused").get_result()
        with self.assertRaises(UsageError):
            self.conn.command_async("SELECT 1").get_result()

        self.assertEqual(self.conn.query_one_value("SELECT 1"), 1, "Connection should be usable after an error")

    def test_async_slow_statement(self) -> None:
        pending = self.conn.query_async("SELECT pg_sleep(1)")
        with self.assertRaises(TimeoutError):
            pending.get_result(timeout=0.01)

        self.conn.disconnect()
        self.assertTrue(pending.done(), "Disconnecting should wait for pending statements")
        self.assertEqual(len(pending.get_result()), 1)


@regression_suite.skip_if_no_db(pg_config_file)
class TransactionTests(_DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.conn.command("CREATE TEMPORARY TABLE counter (n int)")

    def _count(self) -> int:
        return self.conn.query_one_value("SELECT count(*) FROM counter")

    def test_commit_and_rollback(self) -> None:
        with self.conn.start_transaction():
            self.conn.command("INSERT INTO counter VALUES (1)")
        self.assertEqual(self._count(), 1)

        with self.assertRaises(ZeroDivisionError):
            with self.conn.start_transaction():
                self.conn.command("INSERT INTO counter VALUES (2)")
                raise ZeroDivisionError()
        self.assertEqual(self._count(), 1)
        self.assertFalse(self.conn.in_transaction())

    def test_closed_handle(self) -> None:
        tx = self.conn.start_transaction()
        with self.assertRaises(InvalidStateError):
            self.conn.start_transaction()
        tx.commit()
        self.assertFalse(tx.is_open())
        with self.assertRaises(InvalidStateError):
            tx.commit()
        tx.rollback_if_open()

    def test_savepoints(self) -> None:
        tx = self.conn.start_transaction()
        self.conn.command("INSERT INTO counter VALUES (1)")
        tx.savepoint("sp")
        self.conn.command("INSERT INTO counter VALUES (2)")
        tx.rollback_to_savepoint("sp")
        tx.release_savepoint("sp")
        tx.commit()
        self.assertEqual(self._count(), 1)

    def test_tx_config(self) -> None:
        config = TxConfig(IsolationLevel.RepeatableRead, read_only=True)
        with self.conn.start_transaction(config) as tx:
            actual = tx.tx_config()
            self.assertEqual(actual.isolation_level, IsolationLevel.RepeatableRead)
            self.assertTrue(actual.read_only)
            with self.assertRaises(StatementError):
                self.conn.command("INSERT INTO counter VALUES (1)")
            tx.rollback()

    def test_observers(self) -> None:
        observer = _RecordingObserver()
        self.conn.add_transaction_observer(observer)
        with self.conn.start_transaction() as tx:
            tx.savepoint("sp")
        with self.conn.start_transaction() as tx:
            tx.rollback()
        self.assertEqual(observer.events, ["start", "savepoint sp", "commit", "start", "rollback"])


@regression_suite.skip_if_no_db(pg_config_file)
class ConfigTests(_DatabaseTestCase):
    def test_typed_values(self) -> None:
        self.assertIsInstance(self.conn.config.get("work_mem"), Quantity)
        self.assertIsInstance(self.conn.config.get("enable_seqscan"), bool)
        self.assertIsInstance(self.conn.config.get("server_version_num"), int)
        self.assertIsNone(self.conn.config.get("ivory.undefined_option"))
        self.assertFalse(self.conn.config.defined("ivory.undefined_option"))

    def test_session_settings(self) -> None:
        changes = []
        self.conn.config.add_observer(lambda name, value: changes.append(name), "work_mem")
        self.conn.config.set_for_session("work_mem", "8MB")
        self.assertEqual(self.conn.config.get("work_mem"), Quantity(8, "MB"))
        self.conn.config.reset_all()
        self.assertEqual(changes, ["work_mem", None])

    def test_transaction_settings(self) -> None:
        self.conn.config.set_for_transaction("ivory.tenant", "outside")
        self.assertIsNone(self.conn.config.get("ivory.tenant"), "Setting outside a transaction should be ignored")
        with self.conn.start_transaction():
            self.conn.config.set_for_transaction("ivory.tenant", "acme")
            self.assertEqual(self.conn.config.get("ivory.tenant"), "acme")

    def test_server_version(self) -> None:
        version = self.conn.config.server_version_number()
        self.assertGreaterEqual(self.conn.config.server_major_version_number(), 10)
        self.assertEqual(self.conn.config.server_major_version_number(), version // 10_000)

    def test_search_path(self) -> None:
        self.assertIn("pg_catalog", self.conn.config.effective_search_path())


@regression_suite.skip_if_no_db(pg_config_file)
class TypeTests(_DatabaseTestCase):
    def test_standard_types(self) -> None:
        row = self.conn.query_one_row(
            "SELECT true AS b, 1.5::numeric AS n, 'x'::text AS t, DATE '2020-01-02' AS d, "
            "ARRAY[1, NULL, 3] AS a, int4range(1, 5) AS r, ROW(1, 'a') AS rec")
        self.assertIs(row.b, True)
        self.assertEqual(row.n, decimal.Decimal("1.5"))
        self.assertEqual(row.t, "x")
        self.assertEqual(row.d, datetime.date(2020, 1, 2))
        self.assertEqual(row.a, [1, None, 3])
        self.assertEqual(row.r, Range.from_bounds(1, 5))
        self.assertEqual(row.rec, ("1", "a"))

    def test_round_trip_through_patterns(self) -> None:
        values = [42, "O'Neil", [1, 2], Range.from_bounds(2, 8), datetime.date(2021, 3, 4)]
        for value in values:
            with self.subTest("Value", value=value):
                recipe = SqlRelationRecipe.from_pattern("SELECT %:v")
                self.assertEqual(self.conn.query_one_value(recipe, {"v": value}), value)

    def test_user_defined_types(self) -> None:
        with self.conn.start_transaction() as tx:
            self.conn.command("CREATE TYPE pg_temp.mood AS ENUM ('sad', 'ok', 'happy')")
            self.conn.command("CREATE TYPE pg_temp.pair AS (id int, label text)")
            self.conn.flush_type_dictionary()

            mood = self.conn.query_one_value("SELECT 'happy'::pg_temp.mood")
            self.assertIsInstance(mood, EnumItem)
            self.assertEqual(mood.label, "happy")
            self.assertGreater(mood, self.conn.query_one_value("SELECT 'sad'::pg_temp.mood"))

            pair = self.conn.query_one_value("SELECT ROW(1, 'a')::pg_temp.pair")
            self.assertEqual(pair, Composite({"id": 1, "label": "a"}))
            tx.rollback()
        self.conn.flush_type_dictionary()


@regression_suite.skip_if_no_db(pg_config_file)
class CopyTests(_DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.conn.command("CREATE TEMPORARY TABLE item (id int, label text)")

    def test_copy_in_and_out(self) -> None:
        copied = self.conn.copy_from_input("item", ["1\tfirst", "2\tsecond"])
        self.assertEqual(copied.affected_rows, 2)

        out = self.conn.copy_to_array("item")
        self.assertEqual(out.lines, ["1\tfirst", "2\tsecond"])

        csv_out = self.conn.copy_to_array(SqlRelationRecipe.from_sql("SELECT label FROM item ORDER BY id"),
                                          options=ivory.CopyOptions(format="csv", header=True))
        self.assertEqual(list(csv_out), ["label", "first", "second"])

    def test_copy_columns(self) -> None:
        self.conn.copy_from_input("item", ["third"], columns=["label"])
        self.assertEqual(self.conn.copy_to_array("item", ["id", "label"]).lines, ["\\N\tthird"])


@regression_suite.skip_if_no_db(pg_config_file)
class CursorTests(_DatabaseTestCase):
    def test_cursor_navigation(self) -> None:
        with self.conn.start_transaction():
            recipe = SqlRelationRecipe.from_sql("SELECT n FROM generate_series(1, 5) AS n")
            cursor = self.conn.declare_cursor("numbers", recipe, scrollable=True)
            self.assertEqual(cursor.fetch().n, 1)
            self.assertEqual(cursor.fetch_at(4).n, 4)
            self.assertEqual(cursor.move_by(-2), 1)
            self.assertEqual([row.n for row in cursor.iterate(2)], [1, 2, 3, 4, 5])
            self.assertIn("numbers", self.conn.all_cursors())

            cursor.close()
            self.assertTrue(cursor.is_closed())
            with self.assertRaises(ivory.ClosedCursorError):
                cursor.fetch()


@regression_suite.skip_if_no_db(pg_config_file)
class NotificationTests(_DatabaseTestCase):
    def test_listen_and_notify(self) -> None:
        self.conn.listen("ivory_test")
        self.conn.notify("ivory_test", "hello")
        notification = self.conn.wait_for_notification(1000)
        self.assertIsNotNone(notification)
        self.assertEqual((notification.channel, notification.payload), ("ivory_test", "hello"))
        self.assertEqual(notification.pid, self.conn.backend_pid())

        self.conn.unlisten_all()
        self.conn.notify("ivory_test")
        self.assertIsNone(self.conn.wait_for_notification(100))


if __name__ == "__main__":
    unittest.main()
