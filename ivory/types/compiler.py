"""Contains the compiler of type dictionaries, which reads the types defined in a database and matches them with the
implementations known to the type registers.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import networkx as nx

from .array import ArrayType
from .base import DomainType, Type, UndefinedType, is_totally_ordered
from .composite import CompositeType
from .dictionary import TypeDictionary
from .enums import EnumType
from .range import RangeType, UnorderedRangeType
from .register import TypeRegister

if TYPE_CHECKING:
    from ..connection import Connection

_TypeCatalogQuery = """
SELECT t.oid,
       nsp.nspname,
       t.typname,
       CASE WHEN EXISTS (SELECT 1 FROM pg_catalog.pg_type et WHERE et.typarray = t.oid) THEN 'A'
            ELSE t.typtype::text
       END AS typtype,
       t.typelem,
       t.typdelim,
       t.typbasetype,
       rng.rngsubtype,
       cfn_nsp.nspname AS canonical_schema,
       cfn.proname AS canonical_name,
       (SELECT pg_catalog.json_agg(e.enumlabel ORDER BY e.enumsortorder)
        FROM pg_catalog.pg_enum e
        WHERE e.enumtypid = t.oid) AS enum_labels,
       (SELECT pg_catalog.json_agg(pg_catalog.json_build_array(a.attname, a.atttypid) ORDER BY a.attnum)
        FROM pg_catalog.pg_attribute a
        WHERE a.attrelid = t.typrelid AND a.attnum > 0 AND NOT a.attisdropped) AS attributes
FROM pg_catalog.pg_type t
     JOIN pg_catalog.pg_namespace nsp ON nsp.oid = t.typnamespace
     LEFT JOIN pg_catalog.pg_range rng ON rng.rngtypid = t.oid
     LEFT JOIN pg_catalog.pg_proc cfn ON cfn.oid = rng.rngcanonical
     LEFT JOIN pg_catalog.pg_namespace cfn_nsp ON cfn_nsp.oid = cfn.pronamespace
"""


@dataclass(frozen=True)
class TypeCatalogEntry:
    """A single type as described by the system catalog.

    Attributes
    ----------
    oid : int
        The OID of the type
    schema_name : str
        The schema the type is defined in
    name : str
        The name of the type
    kind : str
        The kind of type: ``A`` for arrays, or the *typtype* of *pg_type* (``b`` base, ``c`` composite, ``d`` domain,
        ``e`` enum, ``m`` multirange, ``p`` pseudo-type, ``r`` range)
    element_oid : int
        The element type of arrays
    delimiter : str
        The element delimiter of arrays
    base_oid : int
        The base type of domains
    range_subtype_oid : int
        The subtype of ranges
    canonical_func : Optional[tuple[str, str]]
        Schema and name of the canonical function of ranges
    enum_labels : Sequence[str]
        The labels of enums in the order of definition
    attributes : Sequence[tuple[str, int]]
        The names and type OIDs of the attributes of composite types
    """

    oid: int
    schema_name: str
    name: str
    kind: str
    element_oid: int = 0
    delimiter: str = ","
    base_oid: int = 0
    range_subtype_oid: int = 0
    canonical_func: Optional[tuple[str, str]] = None
    enum_labels: Sequence[str] = ()
    attributes: Sequence[tuple[str, int]] = ()

    def dependencies(self) -> list[int]:
        """Provides the OIDs of the types which have to be known before this type can be created."""
        return [oid for oid in (self.element_oid if self.kind == "A" else 0, self.base_oid, self.range_subtype_oid)
                if oid]


def _parse_catalog_row(row: Sequence[Optional[str]]) -> TypeCatalogEntry:
    (oid, schema_name, name, kind, element_oid, delimiter, base_oid, subtype_oid, canonical_schema, canonical_name,
     enum_labels, attributes) = row
    return TypeCatalogEntry(
        oid=int(oid),
        schema_name=schema_name,
        name=name,
        kind=kind,
        element_oid=int(element_oid or 0),
        delimiter=delimiter or ",",
        base_oid=int(base_oid or 0),
        range_subtype_oid=int(subtype_oid or 0),
        canonical_func=(canonical_schema, canonical_name) if canonical_name else None,
        enum_labels=json.loads(enum_labels) if enum_labels else (),
        attributes=[(attname, int(atttypid)) for attname, atttypid in json.loads(attributes)] if attributes else (),
    )


class IntrospectingTypeDictionaryCompiler:
    """Compiles the type dictionary of a connection by reading the types defined in the database.

    Each type of the *pg_type* catalog is turned into a type object. Base types and pseudo-types are taken from the type
    registers (either explicitly registered types or the types provided by type loaders). Arrays, composites, domains,
    enums and ranges are built by Ivory itself, unless the registers provide a specific implementation. Types which cannot
    be handled become `UndefinedType` objects that fail upon use.

    Types are created in dependency order (e.g. the element type before the array type), which is computed as a
    topological sort of the type dependency graph. Attributes of composite types may refer to any other type, so they are
    bound only after all types have been created.

    Parameters
    ----------
    connection : Connection
        The connection to read the system catalog from
    """

    def __init__(self, connection: Connection) -> None:
        self._connection = connection

    def fetch_catalog(self) -> list[TypeCatalogEntry]:
        """Reads the description of all types from the system catalog."""
        return [_parse_catalog_row(row) for row in self._connection.query_text_rows(_TypeCatalogQuery)]

    def compile(self, registers: Sequence[TypeRegister]) -> TypeDictionary:
        """Compiles a new type dictionary.

        Parameters
        ----------
        registers : Sequence[TypeRegister]
            The registers to take types, serializers and rules from. Registers listed first take precedence, so the
            local register of the connection should be given before the global one.

        Returns
        -------
        TypeDictionary
            The dictionary. Its type search path is not set yet.
        """
        return self.compile_entries(self.fetch_catalog(), registers)

    def compile_entries(self, entries: Sequence[TypeCatalogEntry], registers: Sequence[TypeRegister]) -> TypeDictionary:
        """Compiles a new type dictionary from an already fetched catalog. See `compile` for details."""
        dictionary = TypeDictionary()
        entries_by_oid = {entry.oid: entry for entry in entries}

        dependency_graph = nx.DiGraph()
        dependency_graph.add_nodes_from(entries_by_oid)
        for entry in entries:
            dependency_graph.add_edges_from((dep, entry.oid) for dep in entry.dependencies() if dep in entries_by_oid)

        created: dict[int, Type] = {}
        composites: list[tuple[CompositeType, TypeCatalogEntry]] = []
        for oid in nx.topological_sort(dependency_graph):
            entry = entries_by_oid[oid]
            type_ = self._create_type(entry, created, registers)
            if isinstance(type_, CompositeType) and entry.kind == "c" and not type_.attributes:
                composites.append((type_, entry))
            created[oid] = type_
            dictionary.define_type(type_, oid)

        for composite, entry in composites:
            for attname, atttypid in entry.attributes:
                composite.add_attribute(attname, self._dependency(atttypid, created, entries_by_oid))

        for register in reversed(registers):
            for name, serializer in register.value_serializers.items():
                dictionary.define_value_serializer(name, serializer)
            for abbreviation, (schema_name, type_name) in register.type_abbreviations.items():
                dictionary.define_type_alias(abbreviation, schema_name, type_name)
                dictionary.define_type_alias(f"{abbreviation}[]", schema_name, f"{type_name}[]")
        for register in registers:
            dictionary.add_type_inference_rule_set(register.type_recognition_rules)

        return dictionary

    @staticmethod
    def _provide(registers: Sequence[TypeRegister], schema_name: str, type_name: str) -> Optional[Type]:
        for register in registers:
            type_ = register.provide_type(schema_name, type_name)
            if type_ is not None:
                return type_
        return None

    @staticmethod
    def _dependency(oid: int, created: dict[int, Type], entries_by_oid: dict[int, TypeCatalogEntry]) -> Type:
        if oid in created:
            return created[oid]
        entry = entries_by_oid.get(oid)
        return UndefinedType(entry.schema_name, entry.name) if entry else UndefinedType("pg_catalog", f"oid {oid}")

    def _create_type(self, entry: TypeCatalogEntry, created: dict[int, Type],
                     registers: Sequence[TypeRegister]) -> Type:
        provided = self._provide(registers, entry.schema_name, entry.name)
        match entry.kind:
            case "A":
                element_type = created.get(entry.element_oid) or UndefinedType(entry.schema_name, entry.name)
                return ArrayType(element_type, entry.delimiter)
            case "c":
                return provided or CompositeType(entry.schema_name, entry.name)
            case "d":
                if provided:
                    return provided
                base_type = created.get(entry.base_oid) or UndefinedType(entry.schema_name, entry.name)
                return DomainType(entry.schema_name, entry.name, base_type)
            case "e":
                return provided or EnumType(entry.schema_name, entry.name, entry.enum_labels)
            case "r":
                if provided:
                    return provided
                subtype = created.get(entry.range_subtype_oid) or UndefinedType(entry.schema_name, entry.name)
                if not is_totally_ordered(subtype):
                    return UnorderedRangeType(entry.schema_name, entry.name, subtype)
                canonical_func = None
                if entry.canonical_func is not None:
                    for register in registers:
                        canonical_func = register.provide_canonical_func(*entry.canonical_func, subtype)
                        if canonical_func is not None:
                            break
                return RangeType(entry.schema_name, entry.name, subtype, canonical_func)
            case "m":
                return provided or UndefinedType(entry.schema_name, entry.name)
            case _:
                return provided or UndefinedType(entry.schema_name, entry.name)
