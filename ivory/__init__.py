"""Ivory - A PostgreSQL access layer built around SQL patterns, relations and the type system of the server.

On a high level, Ivory is designed for the following workflow: a `Connection` is established to a PostgreSQL database,
typically through the `connect` function which also registers the connection in the `ConnectionRegistry`. Statements are
written as SQL patterns, i.e. SQL code with typed placeholders such as ``%int`` or ``%ident``. The values for the
placeholders are serialized according to the types known to the database, so user data never mixes with SQL code. Query
results are provided as relations: ordered collections of tuples that can be filtered, projected, sorted, mapped or
converted into dictionaries and lists without issuing further statements. All values of the results are converted to their
natural Python counterparts by the type dictionary of the connection, including arrays, composites, ranges and enums.

On a high-level, the Ivory project is structured as follows:

- this module provides the most important classes and functions for direct access, e.g. `connect`, `Connection`, the
  recipes and the relations
- the `connection` package contains the connection and all its facilities: statement execution, transactions, cursors,
  notifications, *COPY* and the session configuration
- the `lang` package contains the lexical tools for SQL: quoting, keywords and the SQL pattern parser
- the `types` package contains the conversion of values between PostgreSQL and Python, as well as the type dictionary and
  the global type register
- the `value` module contains the value classes with no direct Python counterpart, such as ranges and composite values
- the `util` package contains utilities that do not belong to specific parts of Ivory

To get started, ``import ivory`` and call `connect`:

>>> conn = ivory.connect("host=localhost dbname=test")
>>> conn.query("SELECT * FROM person WHERE age > %i", 18).to_list("name")
"""
from . import (
    connection,
    lang,
    types,
    util
)
from ._core import ConnectionRegistry, connect, dispose_connection, get_connection
from ._globals import (
    default_statement_error_factory,
    global_type_register,
    reset_globals,
    set_sql_pattern_parser,
    sql_pattern_parser
)
from .connection import (
    Connection,
    ConnectionParameters,
    CopyOptions,
    Cursor,
    CursorProperties,
    IsolationLevel,
    Notification,
    TxConfig,
    TxHandle
)
from .exceptions import (
    AmbiguousError,
    ClosedCursorError,
    IncomparableError,
    InvalidStateError,
    IvoryConnectionError,
    ParseError,
    ResultError,
    StatementError,
    StatementErrorFactory,
    UndefinedColumnError,
    UndefinedTypeError,
    UsageError
)
from .lang import SqlPattern
from .query import (
    CommandRecipe,
    RelationRecipe,
    SqlCommandRecipe,
    SqlRecipe,
    SqlRelationRecipe
)
from .relation import ArrayRelation, Column, Relation, Tuple
from .result import (
    AsyncCommandResult,
    AsyncQueryResult,
    AsyncResult,
    CommandResult,
    CopyInResult,
    CopyOutResult,
    QueryResult,
    Result
)
from .value import Composite, EnumItem, PgArray, Range

__version__ = "0.1.0"

__all__ = [
    "connection", "lang", "types", "util",
    "ConnectionRegistry", "connect", "dispose_connection", "get_connection",
    "default_statement_error_factory", "global_type_register", "reset_globals", "set_sql_pattern_parser",
    "sql_pattern_parser",
    "Connection", "ConnectionParameters", "CopyOptions", "Cursor", "CursorProperties", "IsolationLevel", "Notification",
    "TxConfig", "TxHandle",
    "AmbiguousError", "ClosedCursorError", "IncomparableError", "InvalidStateError", "IvoryConnectionError", "ParseError",
    "ResultError", "StatementError", "StatementErrorFactory", "UndefinedColumnError", "UndefinedTypeError", "UsageError",
    "SqlPattern",
    "CommandRecipe", "RelationRecipe", "SqlCommandRecipe", "SqlRecipe", "SqlRelationRecipe",
    "ArrayRelation", "Column", "Relation", "Tuple",
    "AsyncCommandResult", "AsyncQueryResult", "AsyncResult", "CommandResult", "CopyInResult", "CopyOutResult",
    "QueryResult", "Result",
    "Composite", "EnumItem", "PgArray", "Range"
]
