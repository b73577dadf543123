"""Lexical helpers to write SQL: quoting of identifiers and literals, keyword classification and SQLSTATE codes.

All literals are generated under the assumption that *standard_conforming_strings* is enabled, which is the default since
PostgreSQL 9.1. Backslashes therefore have no special meaning in ordinary string literals.
"""

from __future__ import annotations

import enum
import re

_ReservedKeywords = frozenset("""
all analyse analyze and any array as asc asymmetric both case cast check collate column constraint create current_catalog
current_date current_role current_time current_timestamp current_user default deferrable desc distinct do else end except
false fetch for foreign from grant group having in initially intersect into lateral leading limit localtime localtimestamp
not null offset on only or order placing primary references returning select session_user some symmetric table then to
trailing true union unique user using variadic when where window with
""".split())
"""Keywords that are not allowed as identifiers at all (except for column labels)."""

_ColNameKeywords = frozenset("""
between bigint bit boolean char character coalesce dec decimal exists extract float greatest grouping inout int integer
interval least national nchar none nullif numeric out overlay position precision real row setof smallint substring time
timestamp treat trim values varchar xmlattributes xmlconcat xmlelement xmlexists xmlforest xmlparse xmlpi xmlroot
xmlserialize
""".split())
"""Keywords that may be used as column names, but not as type or function names."""

_TypeFuncNameKeywords = frozenset("""
authorization binary collation concurrently cross current_schema freeze full ilike inner is isnull join left like natural
notnull outer overlaps right similar tablesample verbose
""".split())
"""Keywords that may be used as type or function names, but not as column names."""

RESERVED_TYPES: dict[str, tuple[str, str]] = {
    "bigint": ("pg_catalog", "int8"),
    "bit": ("pg_catalog", "bit"),
    "bit varying": ("pg_catalog", "varbit"),
    "boolean": ("pg_catalog", "bool"),
    "char": ("pg_catalog", "bpchar"),
    "character": ("pg_catalog", "bpchar"),
    "character varying": ("pg_catalog", "varchar"),
    "decimal": ("pg_catalog", "numeric"),
    "double precision": ("pg_catalog", "float8"),
    "int": ("pg_catalog", "int4"),
    "integer": ("pg_catalog", "int4"),
    "interval": ("pg_catalog", "interval"),
    "numeric": ("pg_catalog", "numeric"),
    "real": ("pg_catalog", "float4"),
    "smallint": ("pg_catalog", "int2"),
    "time": ("pg_catalog", "time"),
    "time with time zone": ("pg_catalog", "timetz"),
    "time without time zone": ("pg_catalog", "time"),
    "timestamp": ("pg_catalog", "timestamp"),
    "timestamp with time zone": ("pg_catalog", "timestamptz"),
    "timestamp without time zone": ("pg_catalog", "timestamp"),
    "varchar": ("pg_catalog", "varchar"),
}
"""Type names defined by the SQL standard which PostgreSQL always resolves to its own implementation type.

Whenever a user type has the same name, it has to be written with quotes. Keys are the lower-cased SQL names, values are
the *(schema, name)* pairs of the implementing PostgreSQL types. Note that *bool*, *date* and *xml* are not reserved.
"""

_SimpleIdentPattern = re.compile(r"^[a-z_][a-z0-9_$]*$")


def is_keyword_requiring_quotes(word: str) -> bool:
    """Checks, whether a word is a keyword that cannot be used as an unquoted identifier in all positions."""
    return word in _ReservedKeywords or word in _ColNameKeywords or word in _TypeFuncNameKeywords


def quote_ident(name: str, *, always: bool = False) -> str:
    """Transforms a name into an SQL identifier.

    Quotes are only added if necessary, i.e. if the name contains uppercase letters or special characters, or if it is a
    keyword. Embedded double quotes are doubled.

    Parameters
    ----------
    name : str
        The raw identifier
    always : bool, optional
        Whether to quote the identifier even if this is not necessary. Defaults to *False*.

    Returns
    -------
    str
        The identifier, ready to be used in an SQL statement

    Raises
    ------
    ValueError
        If `name` is *None*
    """
    if name is None:
        raise ValueError("Expecting an identifier, None encountered.")
    if not always and _SimpleIdentPattern.match(name) and not is_keyword_requiring_quotes(name):
        return name
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Transforms a string into an SQL string literal, doubling all single quotes."""
    return "'" + value.replace("'", "''") + "'"


class SqlStateClass(enum.StrEnum):
    """The classes of SQLSTATE codes, i.e. their first two characters."""

    SuccessfulCompletion = "00"
    Warning = "01"
    NoData = "02"
    SqlStatementNotYetComplete = "03"
    ConnectionException = "08"
    TriggeredActionException = "09"
    FeatureNotSupported = "0A"
    InvalidTransactionInitiation = "0B"
    LocatorException = "0F"
    InvalidGrantor = "0L"
    InvalidRoleSpecification = "0P"
    DiagnosticsException = "0Z"
    CaseNotFound = "20"
    CardinalityViolation = "21"
    DataException = "22"
    IntegrityConstraintViolation = "23"
    InvalidCursorState = "24"
    InvalidTransactionState = "25"
    InvalidSqlStatementName = "26"
    TriggeredDataChangeViolation = "27"
    InvalidAuthorizationSpecification = "28"
    DependentPrivilegeDescriptorsStillExist = "2B"
    InvalidTransactionTermination = "2D"
    SqlRoutineException = "2F"
    InvalidCursorName = "34"
    ExternalRoutineException = "38"
    ExternalRoutineInvocationException = "39"
    SavepointException = "3B"
    InvalidCatalogName = "3D"
    InvalidSchemaName = "3F"
    TransactionRollback = "40"
    SyntaxErrorOrAccessRuleViolation = "42"
    WithCheckOptionViolation = "44"
    InsufficientResources = "53"
    ProgramLimitExceeded = "54"
    ObjectNotInPrerequisiteState = "55"
    OperatorIntervention = "57"
    SystemError = "58"
    ConfigFileError = "F0"
    FdwError = "HV"
    PlpgsqlError = "P0"
    InternalError = "XX"


class SqlState(enum.StrEnum):
    """Frequently used SQLSTATE codes.

    The full list is available in appendix A of the PostgreSQL documentation. Use `class_of` to obtain the class of an
    arbitrary code.
    """

    SuccessfulCompletion = "00000"
    UniqueViolation = "23505"
    ForeignKeyViolation = "23503"
    NotNullViolation = "23502"
    CheckViolation = "23514"
    ExclusionViolation = "23P01"
    DivisionByZero = "22012"
    InvalidTextRepresentation = "22P02"
    NumericValueOutOfRange = "22003"
    ActiveSqlTransaction = "25001"
    NoActiveSqlTransaction = "25P01"
    InFailedSqlTransaction = "25P02"
    InvalidCursorName = "34000"
    DuplicateCursor = "42P03"
    UndefinedObject = "42704"
    UndefinedTable = "42P01"
    UndefinedColumn = "42703"
    UndefinedFunction = "42883"
    SyntaxError = "42601"
    InsufficientPrivilege = "42501"
    SerializationFailure = "40001"
    DeadlockDetected = "40P01"
    QueryCanceled = "57014"
    RaiseException = "P0001"

    @staticmethod
    def class_of(code: str) -> SqlStateClass:
        """Provides the class of an SQLSTATE code.

        Raises
        ------
        ValueError
            If the code does not belong to any known class
        """
        return SqlStateClass(code[:2])
