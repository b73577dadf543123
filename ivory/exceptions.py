"""Contains the errors and warnings that are raised by Ivory.

Generic errors (`LogicError`, `StateError`, ...) are provided by the `util` package. This module adds the errors that are
specific to working with a PostgreSQL database: failing connections, failing statements, malformed results, and the
lookup errors of the type system and of relations.
"""
from __future__ import annotations

import re
from typing import Optional

import psycopg.pq

from .util import StateError, timestamp


class IvoryConnectionError(RuntimeError):
    """Indicates that a connection to the database server could not be established or is not available.

    Parameters
    ----------
    message : str, optional
        A textual description of the error. Can be left empty by default.
    context : Optional[object], optional
        Additional context information for when the error occurred, e.g. the original driver error. Mainly intended for
        debugging purposes.
    """

    def __init__(self, message: str = "", context: Optional[object] = None) -> None:
        super().__init__(message)
        self.ctx = context


_StatusMessages = {
    psycopg.pq.ExecStatus.EMPTY_QUERY: "Empty query",
    psycopg.pq.ExecStatus.BAD_RESPONSE: "The server's response was not understood",
    psycopg.pq.ExecStatus.NONFATAL_ERROR: "Non-fatal error",
    psycopg.pq.ExecStatus.FATAL_ERROR: "Fatal error",
}


def _decode_field(result: psycopg.pq.abc.PGresult, field: psycopg.pq.DiagnosticField) -> Optional[str]:
    raw = result.error_field(field)
    return raw.decode("utf-8", "replace") if raw is not None else None


class StatementError(RuntimeError):
    """Indicates that the database server reported an error for a statement.

    All diagnostic fields provided by the server are available as attributes. Subclasses can be registered on a
    `StatementErrorFactory` to get more specific errors for certain SQLSTATE codes or messages.

    Parameters
    ----------
    message : str
        The primary error message
    query : str
        The statement that caused the error
    sqlstate : Optional[str], optional
        The five-character SQLSTATE code of the error
    severity : Optional[str], optional
        The (possibly localized) severity, such as *ERROR* or *FATAL*
    detail : Optional[str], optional
        Secondary message with more details about the problem
    hint : Optional[str], optional
        Suggestion what to do about the problem
    statement_position : Optional[int], optional
        1-based character index into `query` where the error occurred
    internal_query : Optional[str], optional
        Text of an internally-generated command that failed, e.g. a query issued by a PL/pgSQL function
    internal_position : Optional[int], optional
        Position of the error within the `internal_query`
    context : Optional[str], optional
        Call stack traceback of the active procedural language functions or internally-generated queries
    ctx : Optional[object], optional
        Driver-level information about the error, mainly for debugging purposes
    """

    @classmethod
    def from_result(cls, result: psycopg.pq.abc.PGresult, query: str) -> StatementError:
        """Builds a new error from the diagnostic fields of a failed libpq result.

        Parameters
        ----------
        result : psycopg.pq.abc.PGresult
            The failed result
        query : str
            The statement that produced the result

        Returns
        -------
        StatementError
            The error. Its actual class is the class this method is called on.
        """
        fields = psycopg.pq.DiagnosticField
        message = _decode_field(result, fields.MESSAGE_PRIMARY)
        if not message:
            message = _StatusMessages.get(result.status, "Unknown error")
        stmt_pos = _decode_field(result, fields.STATEMENT_POSITION)
        internal_pos = _decode_field(result, fields.INTERNAL_POSITION)
        return cls(message, query,
                   sqlstate=_decode_field(result, fields.SQLSTATE),
                   severity=_decode_field(result, fields.SEVERITY),
                   severity_nonlocalized=_decode_field(result, fields.SEVERITY_NONLOCALIZED),
                   detail=_decode_field(result, fields.MESSAGE_DETAIL),
                   hint=_decode_field(result, fields.MESSAGE_HINT),
                   statement_position=int(stmt_pos) if stmt_pos else None,
                   internal_query=_decode_field(result, fields.INTERNAL_QUERY),
                   internal_position=int(internal_pos) if internal_pos else None,
                   context=_decode_field(result, fields.CONTEXT),
                   ctx=result.error_message.decode("utf-8", "replace"))

    def __init__(self, message: str, query: str, *, sqlstate: Optional[str] = None, severity: Optional[str] = None,
                 severity_nonlocalized: Optional[str] = None, detail: Optional[str] = None, hint: Optional[str] = None,
                 statement_position: Optional[int] = None, internal_query: Optional[str] = None,
                 internal_position: Optional[int] = None, context: Optional[str] = None,
                 ctx: Optional[object] = None) -> None:
        super().__init__("\n".join([f"At {timestamp()}", "For query:", query, "Message:", message]))
        self.message = message
        self.query = query
        self.sqlstate = sqlstate
        self.severity = severity
        self.severity_nonlocalized = severity_nonlocalized
        self.detail = detail
        self.hint = hint
        self.statement_position = statement_position
        self.internal_query = internal_query
        self.internal_position = internal_position
        self.context = context
        self.ctx = ctx

    @property
    def sqlstate_class(self) -> Optional[str]:
        """Gets the class of the SQLSTATE code, i.e. its first two characters."""
        return self.sqlstate[:2] if self.sqlstate else None


class StatementErrorFactory:
    """Decides which subclass of `StatementError` to raise for a failed statement.

    Error classes can be registered for an SQLSTATE code together with a message pattern, for an SQLSTATE code alone,
    for an SQLSTATE class, or for a message pattern alone. The rules are consulted in this order. If no rule matches, the
    fallback factory is asked. If there is no fallback either, a plain `StatementError` is used.
    """

    def __init__(self) -> None:
        self._by_code_and_message: dict[str, list[tuple[re.Pattern, type[StatementError]]]] = {}
        self._by_code: dict[str, type[StatementError]] = {}
        self._by_class: dict[str, type[StatementError]] = {}
        self._by_message: list[tuple[re.Pattern, type[StatementError]]] = []

    def register_by_sqlstate_code_and_message(self, sqlstate: str, pattern: str | re.Pattern,
                                              error_class: type[StatementError]) -> StatementErrorFactory:
        self._by_code_and_message.setdefault(sqlstate, []).append((re.compile(pattern), error_class))
        return self

    def register_by_sqlstate_code(self, sqlstate: str, error_class: type[StatementError]) -> StatementErrorFactory:
        self._by_code[sqlstate] = error_class
        return self

    def register_by_sqlstate_class(self, sqlstate_class: str,
                                   error_class: type[StatementError]) -> StatementErrorFactory:
        self._by_class[sqlstate_class] = error_class
        return self

    def register_by_message(self, pattern: str | re.Pattern, error_class: type[StatementError]) -> StatementErrorFactory:
        self._by_message.append((re.compile(pattern), error_class))
        return self

    def clear(self) -> None:
        self._by_code_and_message.clear()
        self._by_code.clear()
        self._by_class.clear()
        self._by_message.clear()

    def infer_error_class(self, sqlstate: Optional[str], message: str,
                          fallback: Optional[StatementErrorFactory] = None) -> type[StatementError]:
        """Determines the error class for a failure with the given SQLSTATE code and primary message."""
        if sqlstate:
            for pattern, error_class in self._by_code_and_message.get(sqlstate, []):
                if pattern.search(message):
                    return error_class
            if sqlstate in self._by_code:
                return self._by_code[sqlstate]
            if sqlstate[:2] in self._by_class:
                return self._by_class[sqlstate[:2]]
        for pattern, error_class in self._by_message:
            if pattern.search(message):
                return error_class
        if fallback is not None:
            return fallback.infer_error_class(sqlstate, message)
        return StatementError

    def create_error(self, result: psycopg.pq.abc.PGresult, query: str,
                     fallback: Optional[StatementErrorFactory] = None) -> StatementError:
        """Creates the error to raise for a failed libpq result."""
        sqlstate = _decode_field(result, psycopg.pq.DiagnosticField.SQLSTATE)
        message = _decode_field(result, psycopg.pq.DiagnosticField.MESSAGE_PRIMARY) or ""
        error_class = self.infer_error_class(sqlstate, message, fallback)
        return error_class.from_result(result, query)


class ResultError(RuntimeError):
    """Indicates that a statement result does not have the expected shape, e.g. too many rows."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class UsageError(RuntimeError):
    """Indicates that the API was used in a wrong way, e.g. executing a command through a query method."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class InvalidStateError(StateError):
    """Indicates that an object is not ready for the requested operation, e.g. a recipe with unset parameters."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class ClosedCursorError(StateError):
    """Indicates that an operation was requested on a cursor that is already closed.

    Parameters
    ----------
    cursor_name : str
        The name of the cursor
    """

    def __init__(self, cursor_name: str) -> None:
        super().__init__(f"Cursor '{cursor_name}' is closed")
        self.cursor_name = cursor_name


class ParseError(ValueError):
    """Indicates that a textual representation could not be parsed.

    Parameters
    ----------
    message : str
        Description of the problem
    offset : Optional[int], optional
        Position in the input where the problem was detected
    """

    def __init__(self, message: str, offset: Optional[int] = None) -> None:
        super().__init__(message if offset is None else f"{message} (at offset {offset})")
        self.offset = offset


class UndefinedTypeError(LookupError):
    """Indicates that no type is defined for a requested name, OID, or value."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class UndefinedColumnError(LookupError):
    """Indicates that a relation has no column matching a given specification."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class AmbiguousError(LookupError):
    """Indicates that a column specification matches multiple columns where only one was expected."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class IncomparableError(TypeError):
    """Indicates that two values cannot be compared with each other, e.g. items of different enum types."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class DuplicateKeyWarning(UserWarning):
    """Warning to indicate that a map built from a relation skipped a tuple because its key was already present."""

    def __init__(self, msg: str) -> None:
        super().__init__(msg)


class EnumLabelWarning(UserWarning):
    """Warning to indicate that an enum value was serialized although it does not belong to the target enum type."""

    def __init__(self, msg: str) -> None:
        super().__init__(msg)


class ServerNoticeWarning(UserWarning):
    """Warning to forward notices (e.g. *NOTICE* or *WARNING* messages) sent by the database server."""

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
