"""Contains the transaction management of connections.

Transactions are started explicitly by `TransactionControl.start_transaction`, which provides a `TxHandle` to control
the transaction with. Without a started transaction, each statement is executed in its own transaction (autocommit).

Examples
--------
>>> with conn.start_transaction(TxConfig(IsolationLevel.Serializable, read_only=True)) as tx:
...     conn.command("INSERT INTO person (name) VALUES (%s)", "John")
...     tx.savepoint("after_john")
"""

from __future__ import annotations

import enum
import secrets
from dataclasses import dataclass
from typing import Any, Optional

import psycopg.pq

from ..exceptions import InvalidStateError
from ..lang.sql import quote_ident, quote_literal
from ..result import QueryResult


class IsolationLevel(enum.StrEnum):
    """The transaction isolation levels supported by PostgreSQL."""
    Serializable = "SERIALIZABLE"
    RepeatableRead = "REPEATABLE READ"
    ReadCommitted = "READ COMMITTED"
    ReadUncommitted = "READ UNCOMMITTED"


@dataclass(frozen=True)
class TxConfig:
    """The characteristics of a transaction.

    Each characteristic may be left unspecified (*None*), in which case the server default is used.

    Attributes
    ----------
    isolation_level : Optional[IsolationLevel]
        The isolation level
    read_only : Optional[bool]
        Whether the transaction is read-only (*True*) or read/write (*False*)
    deferrable : Optional[bool]
        Whether a serializable read-only transaction may wait for a safe snapshot
    """

    isolation_level: Optional[IsolationLevel] = None
    read_only: Optional[bool] = None
    deferrable: Optional[bool] = None

    @staticmethod
    def from_params(isolation_level: Optional[str], read_only: Optional[bool],
                    deferrable: Optional[bool]) -> TxConfig:
        """Creates the configuration from the values of the configuration parameters of the server.

        Parameters
        ----------
        isolation_level : Optional[str]
            The isolation level, as named by the *transaction_isolation* parameter (e.g. *repeatable read*)
        read_only : Optional[bool]
            Read-only mode
        deferrable : Optional[bool]
            Deferrable mode

        Raises
        ------
        ValueError
            If the isolation level is not recognized
        """
        level = None
        if isolation_level is not None:
            try:
                level = IsolationLevel(isolation_level.upper())
            except ValueError as e:
                raise ValueError(f"Unrecognized transaction isolation level: '{isolation_level}'") from e
        return TxConfig(level, read_only, deferrable)

    def to_sql(self) -> str:
        """Provides the transaction modes as used by *START TRANSACTION* or *SET TRANSACTION*."""
        clauses = []
        if self.isolation_level is not None:
            clauses.append(f"ISOLATION LEVEL {self.isolation_level}")
        if self.read_only is not None:
            clauses.append("READ ONLY" if self.read_only else "READ WRITE")
        if self.deferrable is not None:
            clauses.append("DEFERRABLE" if self.deferrable else "NOT DEFERRABLE")
        return " ".join(clauses)

    def __str__(self) -> str:
        return self.to_sql()


class TransactionObserver:
    """Gets informed about the transaction-related events on a connection.

    All handlers do nothing by default, subclasses override the ones they are interested in.
    """

    def handle_transaction_start(self) -> None:
        pass

    def handle_transaction_commit(self) -> None:
        pass

    def handle_transaction_rollback(self) -> None:
        pass

    def handle_savepoint_saved(self, name: str) -> None:
        pass

    def handle_savepoint_released(self, name: str) -> None:
        pass

    def handle_rollback_to_savepoint(self, name: str) -> None:
        pass

    def handle_transaction_prepared(self, name: str) -> None:
        pass

    def handle_prepared_transaction_commit(self, name: str) -> None:
        pass

    def handle_prepared_transaction_rollback(self, name: str) -> None:
        pass


_PreparedTxNamePrefix = "IvoryTx"
_PreparedTxNameLength = 16


class TxHandle:
    """Controls a transaction started by `TransactionControl.start_transaction`.

    A handle is open from its creation until the transaction is committed, rolled back or prepared. Afterwards, all
    operations fail with an `InvalidStateError`. When used as a context manager, the transaction is committed if the
    block finishes normally and rolled back if it raises.
    """

    def __init__(self, connection: TransactionControl) -> None:
        self._conn = connection
        self._open = True

    def is_open(self) -> bool:
        return self._open

    def tx_config(self) -> TxConfig:
        """Reads the characteristics of the transaction from the server."""
        self._assert_open()
        config = self._conn.config
        return TxConfig.from_params(config.get("transaction_isolation"), config.get("transaction_read_only"),
                                    config.get("transaction_deferrable"))

    def setup_transaction(self, tx_config: TxConfig) -> None:
        self._assert_open()
        self._conn.raw_command(f"SET TRANSACTION {tx_config.to_sql()}")

    def set_transaction_snapshot(self, snapshot_id: str) -> None:
        self._assert_open()
        self._conn.raw_command(f"SET TRANSACTION SNAPSHOT {quote_literal(snapshot_id)}")

    def export_transaction_snapshot(self) -> str:
        """Exports the snapshot of the transaction so that other transactions may use it."""
        self._assert_open()
        return self._conn.raw_query("SELECT pg_catalog.pg_export_snapshot()").value()

    def commit(self) -> None:
        self._assert_open()
        self._conn.raw_command("COMMIT")
        self._open = False
        self._conn._notify_observers("handle_transaction_commit")

    def rollback(self) -> None:
        self._assert_open()
        self._conn.raw_command("ROLLBACK")
        self._open = False
        self._conn._notify_observers("handle_transaction_rollback")

    def rollback_if_open(self) -> None:
        if self._open:
            self.rollback()

    def savepoint(self, name: str) -> None:
        self._assert_open()
        self._conn.raw_command(f"SAVEPOINT {quote_ident(name)}")
        self._conn._notify_observers("handle_savepoint_saved", name)

    def rollback_to_savepoint(self, name: str) -> None:
        self._assert_open()
        self._conn.raw_command(f"ROLLBACK TO SAVEPOINT {quote_ident(name)}")
        self._conn._notify_observers("handle_rollback_to_savepoint", name)

    def release_savepoint(self, name: str) -> None:
        self._assert_open()
        self._conn.raw_command(f"RELEASE SAVEPOINT {quote_ident(name)}")
        self._conn._notify_observers("handle_savepoint_released", name)

    def prepare_transaction(self, name: Optional[str] = None) -> str:
        """Prepares the transaction for a two-phase commit.

        Parameters
        ----------
        name : Optional[str], optional
            The transaction identifier. A random one is generated if omitted.

        Returns
        -------
        str
            The identifier of the prepared transaction. Use it for `TransactionControl.commit_prepared_transaction` or
            `TransactionControl.rollback_prepared_transaction`.
        """
        self._assert_open()
        if name is None:
            n_hex_chars = _PreparedTxNameLength - len(_PreparedTxNamePrefix)
            name = _PreparedTxNamePrefix + secrets.token_hex(n_hex_chars)[:n_hex_chars]
        self._conn.raw_command(f"PREPARE TRANSACTION {quote_literal(name)}")
        self._open = False
        self._conn._notify_observers("handle_transaction_prepared", name)
        return name

    def _assert_open(self) -> None:
        if self._open:
            return
        if self._conn.in_transaction():
            raise InvalidStateError("Controlling the transaction using a wrong handle, this one has already been closed")
        raise InvalidStateError("The transaction is not open anymore")

    def __enter__(self) -> TxHandle:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if not self._open:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    def __repr__(self) -> str:
        return f"TxHandle(open={self._open})"


class TransactionControl:
    """Starts transactions and manages prepared transactions."""

    def _init_transactions(self) -> None:
        self._tx_observers: list[TransactionObserver] = []

    def in_transaction(self) -> bool:
        """Checks, whether a transaction is active on the connection (including a failed one waiting for rollback)."""
        status = self.require_connection().info.transaction_status
        return status in (psycopg.pq.TransactionStatus.INTRANS, psycopg.pq.TransactionStatus.INERROR)

    def start_transaction(self, tx_config: Optional[TxConfig] = None) -> TxHandle:
        """Starts a new transaction.

        Parameters
        ----------
        tx_config : Optional[TxConfig], optional
            The characteristics of the transaction. The session defaults are used if omitted.

        Raises
        ------
        InvalidStateError
            If a transaction is already active
        """
        if self.in_transaction():
            raise InvalidStateError("A transaction is already active, cannot start a new one.")
        command = "START TRANSACTION"
        modes = tx_config.to_sql() if tx_config is not None else ""
        if modes:
            command += " " + modes
        self.raw_command(command)
        self._notify_observers("handle_transaction_start")
        return TxHandle(self)

    def default_tx_config(self) -> TxConfig:
        """Reads the characteristics the server uses for new transactions."""
        return TxConfig.from_params(self.config.get("default_transaction_isolation"),
                                    self.config.get("default_transaction_read_only"),
                                    self.config.get("default_transaction_deferrable"))

    def setup_subsequent_transactions(self, tx_config: TxConfig) -> None:
        self.raw_command(f"SET SESSION CHARACTERISTICS AS TRANSACTION {tx_config.to_sql()}")

    def commit_prepared_transaction(self, name: str) -> None:
        if self.in_transaction():
            raise InvalidStateError("Cannot commit a prepared transaction while inside another transaction.")
        self.raw_command(f"COMMIT PREPARED {quote_literal(name)}")
        self._notify_observers("handle_prepared_transaction_commit", name)

    def rollback_prepared_transaction(self, name: str) -> None:
        if self.in_transaction():
            raise InvalidStateError("Cannot rollback a prepared transaction while inside another transaction.")
        self.raw_command(f"ROLLBACK PREPARED {quote_literal(name)}")
        self._notify_observers("handle_prepared_transaction_rollback", name)

    def list_prepared_transactions(self) -> QueryResult:
        """Provides the transactions prepared for a two-phase commit in the current database."""
        return self.raw_query("SELECT * FROM pg_catalog.pg_prepared_xacts WHERE database = pg_catalog.current_database()")

    def add_transaction_observer(self, observer: TransactionObserver) -> None:
        if observer not in self._tx_observers:
            self._tx_observers.append(observer)

    def remove_transaction_observer(self, observer: TransactionObserver) -> None:
        if observer in self._tx_observers:
            self._tx_observers.remove(observer)

    def remove_all_transaction_observers(self) -> None:
        self._tx_observers.clear()

    def _notify_observers(self, event: str, *args: Any) -> None:
        for observer in list(self._tx_observers):
            getattr(observer, event)(*args)
