"""The `connection` package contains the connection to a PostgreSQL database and all its facilities.

The `Connection` is composed of several parts, each of which is responsible for a single concern: establishing the
connection (`ConnectionControl`), executing statements (`StatementExecution`), transactions (`TransactionControl`),
notifications (`IPCControl`), cursors (`CursorControl`), *COPY* (`CopyControl`) and types (`TypeControl`). The session
configuration is available through `Connection.config`.
"""

from __future__ import annotations

from .config import ConfigParamType, ConnConfig, KnownConfigParams, Quantity
from .connection import Connection
from .control import ConnectionControl
from .copy import CopyControl, CopyOptions
from .cursors import Cursor, CursorControl, CursorProperties
from .execution import StatementExecution
from .ipc import IPCControl, Notification
from .parameters import ConnectionParameters
from .transactions import IsolationLevel, TransactionControl, TransactionObserver, TxConfig, TxHandle
from .typecontrol import TypeControl

__all__ = [
    "ConfigParamType",
    "ConnConfig",
    "KnownConfigParams",
    "Quantity",
    "Connection",
    "ConnectionControl",
    "CopyControl",
    "CopyOptions",
    "Cursor",
    "CursorControl",
    "CursorProperties",
    "StatementExecution",
    "IPCControl",
    "Notification",
    "ConnectionParameters",
    "IsolationLevel",
    "TransactionControl",
    "TransactionObserver",
    "TxConfig",
    "TxHandle",
    "TypeControl",
]
