"""The `types` package converts values between their PostgreSQL text representation and Python objects.

Each connection has its own `TypeDictionary`, which provides the type objects for the results sent by the server (looked
up by OID) and for the placeholders of SQL patterns (looked up by name or inferred from the value). The dictionary is
compiled from the database catalog by the `IntrospectingTypeDictionaryCompiler`, using the `TypeRegister` objects as the
source of type implementations. The global register is set up with the standard PostgreSQL types, the value serializers
of Ivory (``%ident``, ``%sql``, ``%like``, ...), common abbreviations (``%i``, ``%s``, ...) and recognition rules for the
usual Python classes.

Arrays, composites, domains, enums and ranges do not need to be registered: they are built from the catalog
automatically.
"""

from __future__ import annotations

from .array import ArrayType
from .base import (
    ConnectionDependentObject,
    DiscreteType,
    DomainType,
    TotallyOrderedType,
    Type,
    TypeBase,
    UndefinedType,
    ValueSerializer,
    is_discrete,
    is_totally_ordered,
)
from .compiler import IntrospectingTypeDictionaryCompiler, TypeCatalogEntry
from .composite import CompositeType, RecordType, RowTypeBase
from .dictionary import TypeDictionary
from .enums import EnumType, StrictEnumType
from .range import RangeType, UnorderedRangeType
from .register import TypeRegister
from .serializers import (
    CommandSerializer,
    IdentSerializer,
    LikeMode,
    LikeSerializer,
    RelationSerializer,
    SqlSerializer,
    ivory_value_serializers,
)
from .std import (
    BinaryType,
    BooleanType,
    DateType,
    DecimalType,
    FloatType,
    IntegerType,
    JsonType,
    NetAddressType,
    RangeCanonicalFuncProvider,
    StdRangeCanonicalFuncProvider,
    StdTypeLoader,
    StringType,
    TextRepresentedType,
    TimestampType,
    TimeType,
    TypeProvider,
    UuidType,
    VoidType,
)

__all__ = [
    "ArrayType",
    "ConnectionDependentObject",
    "DiscreteType",
    "DomainType",
    "TotallyOrderedType",
    "Type",
    "TypeBase",
    "UndefinedType",
    "ValueSerializer",
    "is_discrete",
    "is_totally_ordered",
    "IntrospectingTypeDictionaryCompiler",
    "TypeCatalogEntry",
    "CompositeType",
    "RecordType",
    "RowTypeBase",
    "TypeDictionary",
    "EnumType",
    "StrictEnumType",
    "RangeType",
    "UnorderedRangeType",
    "TypeRegister",
    "CommandSerializer",
    "IdentSerializer",
    "LikeMode",
    "LikeSerializer",
    "RelationSerializer",
    "SqlSerializer",
    "ivory_value_serializers",
    "BinaryType",
    "BooleanType",
    "DateType",
    "DecimalType",
    "FloatType",
    "IntegerType",
    "JsonType",
    "NetAddressType",
    "RangeCanonicalFuncProvider",
    "StdRangeCanonicalFuncProvider",
    "StdTypeLoader",
    "StringType",
    "TextRepresentedType",
    "TimestampType",
    "TimeType",
    "TypeProvider",
    "UuidType",
    "VoidType",
]
