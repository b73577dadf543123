"""Contains the connection to a PostgreSQL database, composed of the individual connection facilities."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Optional

from .config import ConnConfig
from .control import ConnectionControl
from .copy import CopyControl
from .cursors import CursorControl
from .execution import StatementExecution
from .ipc import IPCControl
from .parameters import ConnectionParameters
from .transactions import TransactionControl
from .typecontrol import TypeControl


class Connection(ConnectionControl, StatementExecution, TransactionControl, IPCControl, CursorControl, CopyControl,
                 TypeControl):
    """A connection to a PostgreSQL database.

    The connection is not established upon creation. Call `connect` or use the connection as a context manager, which
    connects upon entering and closes the connection upon leaving.

    Parameters
    ----------
    name : str
        The name to identify the connection with, e.g. in the `ConnectionRegistry`
    parameters : str | Mapping[str, str | int] | ConnectionParameters
        The parameters to connect with, see `ConnectionParameters`
    debug : bool, optional
        Whether all statements sent to the server should be logged, by default *False*
    warn_notices : bool, optional
        Whether notices sent by the server should be emitted as warnings, by default *False*

    Examples
    --------
    >>> with Connection("main", "host=localhost dbname=test") as conn:
    ...     conn.query_one_value("SELECT %i + %i", 1, 2)
    3
    """

    def __init__(self, name: str, parameters: str | Mapping[str, str | int] | ConnectionParameters, *,
                 debug: bool = False, warn_notices: bool = False) -> None:
        self._init_control(name, ConnectionParameters.create(parameters), debug=debug, warn_notices=warn_notices)
        self._init_execution()
        self._init_transactions()
        self._init_ipc()
        self._init_types()
        self._config = ConnConfig(self)
        self._config.add_observer(self._handle_search_path_change, "search_path")

    @property
    def config(self) -> ConnConfig:
        """Gets the run-time configuration of the session."""
        return self._config

    def close(self) -> None:
        self.disconnect()

    def _on_connected(self) -> None:
        self.require_connection().add_notify_handler(self._buffer_notification)

    def _on_disconnecting(self) -> None:
        self._finish_async_statements()

    def _on_disconnected(self) -> None:
        self.flush_type_dictionary()
        self._config.flush_cache()
        self._notification_buffer.clear()

    def __enter__(self) -> Connection:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> Optional[bool]:
        self.close()
        return None

    def __repr__(self) -> str:
        return f"Connection({self._name!r}, {self._parameters!r})"

    def __str__(self) -> str:
        return f"Connection {self._name} to {self._parameters.dbname or '<default>'}"
