"""Contains the lifecycle management of a connection: connecting, disconnecting and the hooks around these events."""

from __future__ import annotations

import warnings
from collections.abc import Callable
from typing import TYPE_CHECKING, Optional, TypeAlias

import psycopg
import psycopg.errors
import psycopg.pq

from ..exceptions import IvoryConnectionError, ServerNoticeWarning
from ..util import make_logger, timestamp
from .parameters import ConnectionParameters

if TYPE_CHECKING:
    from .connection import Connection

ConnectHook: TypeAlias = "Callable[[Connection], None]"
"""Callback that is invoked right after a connection has been established."""

DisconnectHook: TypeAlias = "Callable[[Connection], None]"
"""Callback that is invoked right before or right after a connection is closed."""


class ConnectionControl:
    """Establishes and closes the connection to the database server.

    The actual connection is handled by a `psycopg.Connection` in autocommit mode. Transactions are controlled explicitly
    by the `TransactionControl` facility, which issues the transaction statements itself.

    Notices sent by the server (e.g. by ``RAISE NOTICE`` in PL/pgSQL) are recorded. The last one is attached to the next
    statement result. If `warn_notices` is enabled, notices are emitted as `ServerNoticeWarning` as well.
    """

    def _init_control(self, name: str, parameters: ConnectionParameters, *, debug: bool = False,
                      warn_notices: bool = False) -> None:
        self._name = name
        self._parameters = parameters
        self._debug = debug
        self._warn_notices = warn_notices
        self._log = make_logger(debug, prefix=lambda: f"{timestamp()} [{self._name}]")
        self._conn: Optional[psycopg.Connection] = None
        self._last_notice: Optional[str] = None
        self._connect_hooks: list[ConnectHook] = []
        self._pre_disconnect_hooks: list[DisconnectHook] = []
        self._post_disconnect_hooks: list[DisconnectHook] = []

    @property
    def name(self) -> str:
        """Gets the name the connection is registered under."""
        return self._name

    @property
    def parameters(self) -> ConnectionParameters:
        return self._parameters

    @property
    def debug(self) -> bool:
        return self._debug

    def is_connected(self) -> bool:
        """Checks, whether the connection to the server is established and healthy."""
        return self._conn is not None and not self._conn.closed and self._conn.info.status == psycopg.pq.ConnStatus.OK

    def connect(self, init_procedure: Optional[ConnectHook] = None) -> bool:
        """Establishes the connection to the server.

        Parameters
        ----------
        init_procedure : Optional[ConnectHook], optional
            A callback to run right after the connection has been established, before any registered connect hooks.

        Returns
        -------
        bool
            *True* if a new connection was established, *False* if the connection had already been established before.

        Raises
        ------
        IvoryConnectionError
            If the server could not be reached or refused the connection
        """
        if self.is_connected():
            return False

        self._log("Connecting to", repr(self._parameters))
        try:
            self._conn = psycopg.Connection.connect(self._parameters.build_connection_string(), autocommit=True,
                                                    prepare_threshold=None)
        except psycopg.OperationalError as e:
            self._conn = None
            msg = "\n".join([f"At {timestamp()}", "Connecting to:", repr(self._parameters), "Message:", str(e)])
            raise IvoryConnectionError(msg, e) from e

        self._conn.add_notice_handler(self._handle_notice)
        self._log("Connected, backend PID", self._conn.info.backend_pid)

        self._on_connected()
        if init_procedure is not None:
            init_procedure(self)
        for hook in self._connect_hooks:
            hook(self)
        return True

    def connect_wait(self) -> bool:
        """Establishes the connection to the server, blocking until it is ready.

        Connections are always established synchronously, so this is the same as `connect`.
        """
        return self.connect()

    def disconnect(self) -> bool:
        """Closes the connection to the server.

        Returns
        -------
        bool
            *True* if the connection was open, *False* if there was nothing to close.
        """
        if self._conn is None:
            return False

        for hook in self._pre_disconnect_hooks:
            hook(self)
        self._on_disconnecting()
        self._log("Disconnecting")
        self._conn.close()
        self._conn = None
        self._on_disconnected()
        for hook in self._post_disconnect_hooks:
            hook(self)
        return True

    def register_connect_hook(self, hook: ConnectHook) -> None:
        self._connect_hooks.append(hook)

    def register_pre_disconnect_hook(self, hook: DisconnectHook) -> None:
        self._pre_disconnect_hooks.append(hook)

    def register_post_disconnect_hook(self, hook: DisconnectHook) -> None:
        self._post_disconnect_hooks.append(hook)

    def require_connection(self) -> psycopg.Connection:
        """Provides the driver connection, failing if the connection is not established.

        Raises
        ------
        IvoryConnectionError
            If the connection has not been established yet or has been closed
        """
        if self._conn is None or self._conn.closed:
            raise IvoryConnectionError(f"Connection '{self._name}' is not established. Call connect() first.")
        return self._conn

    def driver_connection(self) -> Optional[psycopg.Connection]:
        """Provides the underlying psycopg connection, if one is established."""
        return self._conn

    def _client_encoding(self) -> str:
        return self.require_connection().info.encoding

    def _on_connected(self) -> None:
        """Extension point for the other connection facilities to reset their state after connecting."""

    def _on_disconnecting(self) -> None:
        """Extension point for the other connection facilities to finish their work before the connection is closed."""

    def _on_disconnected(self) -> None:
        """Extension point for the other connection facilities to drop their state after disconnecting."""

    def _take_last_notice(self) -> Optional[str]:
        notice, self._last_notice = self._last_notice, None
        return notice

    def _handle_notice(self, diagnostic: psycopg.errors.Diagnostic) -> None:
        message = diagnostic.message_primary or ""
        self._last_notice = message
        self._log(f"Server {diagnostic.severity or 'NOTICE'}:", message)
        if self._warn_notices:
            warnings.warn(f"{diagnostic.severity or 'NOTICE'}: {message}", ServerNoticeWarning)
