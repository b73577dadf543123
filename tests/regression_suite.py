from __future__ import annotations

import abc
import unittest
from collections.abc import Iterable

import ivory
from ivory.types import IntrospectingTypeDictionaryCompiler, TypeCatalogEntry, TypeDictionary, TypeRegister


def _stringify_rows(rows: list) -> str:
    """Transforms a list of rows into a string representation.

    Since row lists can become quite large, this cuts the list to only contain the first 5 rows if necessary.
    """
    if len(rows) > 5:
        return f"rows ({len(rows)} total) :: first 5 = {rows[:5]}"
    return f"rows ({len(rows)}) :: contents = {rows}"


class RelationTestCase(unittest.TestCase, abc.ABC):
    """Abstract test case that provides assertions on the contents of relations."""

    def assertRelationRows(self, relation: ivory.Relation, expected: list[tuple], *, ordered: bool = True) -> None:
        """Assertion that fails if the relation does not consist of exactly the expected rows.

        Ordering can be accounted for by the `ordered` argument. By default, the order of the rows is significant.
        """
        actual = [tuple(row.to_list()) for row in relation]
        if len(actual) != len(expected):
            raise AssertionError(f"Relations have different length: {_stringify_rows(actual)} and "
                                 f"{_stringify_rows(expected)}")
        if ordered and actual != expected:
            raise AssertionError(f"Relations differ: {_stringify_rows(actual)} vs {_stringify_rows(expected)}")
        if not ordered and sorted(map(repr, actual)) != sorted(map(repr, expected)):
            raise AssertionError(f"Relations differ: {_stringify_rows(actual)} vs {_stringify_rows(expected)}")


class SqlTestCase(unittest.TestCase, abc.ABC):
    """Abstract test case that provides assertions on generated SQL."""

    def assertSqlEqual(self, first_sql: object, second_sql: object, message: str = "") -> None:
        """Assertion that fails if the two SQL strings differ in a _significant_ way.

        Leading and trailing whitespace as well as a trailing semicolon are ignored. Each other difference results in
        failure of the assertion.
        """
        first_sql = str(first_sql).strip().removesuffix(";")
        second_sql = str(second_sql).strip().removesuffix(";")
        return self.assertEqual(first_sql, second_sql, message)


def catalog_type(oid: int, name: str, kind: str = "b", *, schema: str = "pg_catalog", element_oid: int = 0,
                 base_oid: int = 0, range_subtype_oid: int = 0, canonical_func: tuple[str, str] | None = None,
                 enum_labels: Iterable[str] = (), attributes: Iterable[tuple[str, int]] = ()) -> TypeCatalogEntry:
    """Builds a catalog entry as it would be read from *pg_type*, for dictionaries compiled without a database."""
    return TypeCatalogEntry(oid=oid, schema_name=schema, name=name, kind=kind, element_oid=element_oid,
                            base_oid=base_oid, range_subtype_oid=range_subtype_oid, canonical_func=canonical_func,
                            enum_labels=tuple(enum_labels), attributes=tuple(attributes))


StdCatalog = [
    catalog_type(16, "bool"),
    catalog_type(17, "bytea"),
    catalog_type(20, "int8"),
    catalog_type(21, "int2"),
    catalog_type(23, "int4"),
    catalog_type(25, "text"),
    catalog_type(114, "json"),
    catalog_type(650, "cidr"),
    catalog_type(700, "float4"),
    catalog_type(701, "float8"),
    catalog_type(869, "inet"),
    catalog_type(1043, "varchar"),
    catalog_type(1082, "date"),
    catalog_type(1083, "time"),
    catalog_type(1114, "timestamp"),
    catalog_type(1184, "timestamptz"),
    catalog_type(1186, "interval"),
    catalog_type(1266, "timetz"),
    catalog_type(1700, "numeric"),
    catalog_type(2249, "record", "p"),
    catalog_type(2950, "uuid"),
    catalog_type(3802, "jsonb"),
    catalog_type(1000, "_bool", "A", element_oid=16),
    catalog_type(1007, "_int4", "A", element_oid=23),
    catalog_type(1016, "_int8", "A", element_oid=20),
    catalog_type(1009, "_text", "A", element_oid=25),
    catalog_type(1182, "_date", "A", element_oid=1082),
    catalog_type(1231, "_numeric", "A", element_oid=1700),
    catalog_type(2287, "_record", "A", element_oid=2249),
    catalog_type(3904, "int4range", "r", range_subtype_oid=23, canonical_func=("pg_catalog", "int4range_canonical")),
    catalog_type(3905, "_int4range", "A", element_oid=3904),
    catalog_type(3926, "int8range", "r", range_subtype_oid=20, canonical_func=("pg_catalog", "int8range_canonical")),
    catalog_type(3906, "numrange", "r", range_subtype_oid=1700),
    catalog_type(3912, "daterange", "r", range_subtype_oid=1082, canonical_func=("pg_catalog", "daterange_canonical")),
]
"""A small excerpt of the standard types of PostgreSQL, with their actual OIDs."""


def offline_type_dictionary(extra_entries: Iterable[TypeCatalogEntry] = (),
                            register: TypeRegister | None = None) -> TypeDictionary:
    """Compiles a type dictionary from the standard catalog excerpt plus some extra entries, without any database."""
    registers = [register, ivory.global_type_register()] if register else [ivory.global_type_register()]
    compiler = IntrospectingTypeDictionaryCompiler(None)
    dictionary = compiler.compile_entries([*StdCatalog, *extra_entries], registers)
    dictionary.set_type_search_path(["pg_catalog", "public"])
    return dictionary


def skip_if_no_db(config_file):
    """Decorator to conditionally skip a test if a database connection cannot be established.

    Parameters
    ----------
    config_file : str
        The config file that describes the connection to the database. Must be compatible with `ivory.connect()`
    """
    try:
        conn = ivory.connect(config_file=config_file, private=True)
        conn.close()
        return lambda f: f
    except (ivory.IvoryConnectionError, ValueError):
        return unittest.skip(f"Cannot connect to database with config file '{config_file}'")
