"""Contains the objects shared by all connections: the global type register, the SQL pattern parser and the default
statement error factory.

All of them are created lazily upon first access and then live for the rest of the process.
"""

from __future__ import annotations

import datetime
import decimal
import ipaddress
import uuid
from typing import Optional

from .exceptions import StatementErrorFactory
from .lang.sql import RESERVED_TYPES
from .lang.sqlpattern import CachingSqlPatternParser, SqlPatternParser
from .types import StdRangeCanonicalFuncProvider, StdTypeLoader, TypeRegister, ivory_value_serializers
from .value import Composite, Range

_TypeAbbreviations: dict[str, str] = {
    "s": "text",
    "i": "int4",
    "num": "numeric",
    "f": "float8",
    "b": "bool",
    "d": "date",
    "t": "time",
    "tz": "timetz",
    "ts": "timestamp",
    "tstz": "timestamptz",
    "bool": "bool",
    "float": "float8",
    "text": "text",
    "date": "date",
    "timetz": "timetz",
    "json": "json",
    "jsonb": "jsonb",
    "uuid": "uuid",
    "bytea": "bytea",
}
"""Short names of the most common types for use in SQL patterns, e.g. ``%i`` for *int4*."""

_TypeRecognitionRules: dict[type, str] = {
    bool: "bool",
    int: "int8",
    float: "float8",
    decimal.Decimal: "numeric",
    str: "text",
    bytes: "bytea",
    bytearray: "bytea",
    datetime.date: "date",
    datetime.time: "time",
    datetime.datetime: "timestamp",
    uuid.UUID: "uuid",
    dict: "jsonb",
    list: "text[]",
    tuple: "record",
    Composite: "record",
    Range: "int4range",
    ipaddress.IPv4Address: "inet",
    ipaddress.IPv6Address: "inet",
    ipaddress.IPv4Interface: "inet",
    ipaddress.IPv6Interface: "inet",
    ipaddress.IPv4Network: "cidr",
    ipaddress.IPv6Network: "cidr",
}
"""The types to use for values of Python classes if a placeholder does not specify the type explicitly."""

DefaultPatternCacheSize = 1000
"""The number of parsed SQL patterns the global parser keeps before it evicts the oldest ones."""

_GlobalTypeRegister: Optional[TypeRegister] = None
_SqlPatternParser: Optional[SqlPatternParser] = None
_DefaultStatementErrorFactory: Optional[StatementErrorFactory] = None


def _create_global_type_register() -> TypeRegister:
    register = TypeRegister()
    register.register_type_loader(StdTypeLoader())
    register.register_range_canonical_func_provider(StdRangeCanonicalFuncProvider())
    register.register_value_serializers(ivory_value_serializers())
    for abbreviation, (schema_name, type_name) in RESERVED_TYPES.items():
        register.register_type_abbreviation(abbreviation, schema_name, type_name)
    for abbreviation, type_name in _TypeAbbreviations.items():
        register.register_type_abbreviation(abbreviation, "pg_catalog", type_name)
    for python_class, type_name in _TypeRecognitionRules.items():
        register.add_type_recognition_rule(python_class, "pg_catalog", type_name)
    return register


def global_type_register() -> TypeRegister:
    """Provides the register of types, serializers and rules used by all connections.

    Types registered here are available to all connections compiling their type dictionary afterwards. Use the
    `type_register` of a connection to register types for that connection only.
    """
    global _GlobalTypeRegister
    if _GlobalTypeRegister is None:
        _GlobalTypeRegister = _create_global_type_register()
    return _GlobalTypeRegister


def sql_pattern_parser() -> SqlPatternParser:
    """Provides the parser used for all SQL patterns given as strings. It caches up to `DefaultPatternCacheSize` parsed
    patterns."""
    global _SqlPatternParser
    if _SqlPatternParser is None:
        _SqlPatternParser = CachingSqlPatternParser(max_entries=DefaultPatternCacheSize)
    return _SqlPatternParser


def set_sql_pattern_parser(parser: SqlPatternParser) -> None:
    global _SqlPatternParser
    _SqlPatternParser = parser


def default_statement_error_factory() -> StatementErrorFactory:
    """Provides the factory consulted for failed statements if the factory of the connection has no matching rule."""
    global _DefaultStatementErrorFactory
    if _DefaultStatementErrorFactory is None:
        _DefaultStatementErrorFactory = StatementErrorFactory()
    return _DefaultStatementErrorFactory


def reset_globals() -> None:
    """Drops all global objects, so they are created anew upon next access. Mainly intended for tests."""
    global _GlobalTypeRegister, _SqlPatternParser, _DefaultStatementErrorFactory
    _GlobalTypeRegister = None
    _SqlPatternParser = None
    _DefaultStatementErrorFactory = None
