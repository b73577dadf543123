"""Contains the types that are built into PostgreSQL (the *pg_catalog* schema).

The date and time types assume the ISO *DateStyle*, which is what psycopg sets up for new connections. The special values
*infinity* and *-infinity* are mapped to the `max` and `min` values of the corresponding Python classes.
"""

from __future__ import annotations

import abc
import datetime
import decimal
import ipaddress
import json
import math
import re
import uuid
from collections.abc import Callable
from typing import Any, Optional

from ..exceptions import ParseError
from ..lang.sql import quote_literal
from ..value import ConventionalRangeCanonicalFunc, RangeCanonicalFunc
from .base import DiscreteType, TotallyOrderedType, Type, TypeBase


class BooleanType(TypeBase, TotallyOrderedType):
    """The *bool* type, represented by Python booleans."""

    _TrueValues = frozenset(["t", "true", "y", "yes", "on", "1"])
    _FalseValues = frozenset(["f", "false", "n", "no", "off", "0"])

    def parse_value(self, text: Optional[str]) -> Optional[bool]:
        if text is None:
            return None
        normalized = text.strip().lower()
        if normalized in self._TrueValues:
            return True
        if normalized in self._FalseValues:
            return False
        raise ParseError(f"Invalid boolean value: '{text}'")

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, str):
            value = self.parse_value(value)
        return "TRUE" if value else "FALSE"


class IntegerType(TypeBase, DiscreteType):
    """The integer types *int2*, *int4*, *int8* and *oid*.

    Integer literals are typed by the server on its own, so no type cast is produced.
    """

    def parse_value(self, text: Optional[str]) -> Optional[int]:
        if text is None:
            return None
        try:
            return int(text)
        except ValueError as e:
            raise ParseError(f"Invalid integer value: '{text}'") from e

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, float) and not value.is_integer():
            raise self.invalid_value_error(value)
        try:
            return str(int(value))
        except (TypeError, ValueError) as e:
            raise self.invalid_value_error(value) from e

    def step(self, delta: int, value: Any) -> Any:
        return None if value is None else value + delta


class FloatType(TypeBase, TotallyOrderedType):
    """The floating-point types *float4* and *float8*, including the special values *NaN* and the infinities."""

    def parse_value(self, text: Optional[str]) -> Optional[float]:
        if text is None:
            return None
        try:
            return float(text)
        except ValueError as e:
            raise ParseError(f"Invalid floating-point value: '{text}'") from e

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        try:
            value = float(value)
        except (TypeError, ValueError) as e:
            raise self.invalid_value_error(value) from e
        if math.isnan(value):
            return self.type_cast_expr(strict_type, "'NaN'")
        if math.isinf(value):
            return self.type_cast_expr(strict_type, "'Infinity'" if value > 0 else "'-Infinity'")
        return repr(value)


class DecimalType(TypeBase, TotallyOrderedType):
    """The arbitrary-precision *numeric* type, represented by `decimal.Decimal`."""

    def parse_value(self, text: Optional[str]) -> Optional[decimal.Decimal]:
        if text is None:
            return None
        try:
            return decimal.Decimal(text)
        except decimal.InvalidOperation as e:
            raise ParseError(f"Invalid numeric value: '{text}'") from e

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, float):
            value = decimal.Decimal(repr(value))
        try:
            value = decimal.Decimal(value)
        except (TypeError, ValueError, decimal.InvalidOperation) as e:
            raise self.invalid_value_error(value) from e
        if value.is_nan():
            return self.type_cast_expr(strict_type, "'NaN'")
        if value.is_infinite():
            return self.type_cast_expr(strict_type, "'Infinity'" if value > 0 else "'-Infinity'")
        return str(value)

    def compare_values(self, a: Any, b: Any) -> Optional[int]:
        if a is None or b is None:
            return None
        # PostgreSQL sorts NaN above all other values
        if a.is_nan() or b.is_nan():
            return int(a.is_nan()) - int(b.is_nan())
        return super().compare_values(a, b)


class StringType(TypeBase, TotallyOrderedType):
    """The character types such as *text* or *varchar*.

    String literals are of an unknown type until the server resolves them in their context, which works fine for
    character types. Therefore, no type cast is produced.
    """

    def parse_value(self, text: Optional[str]) -> Optional[str]:
        return text

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            value = "t" if value else "f"
        return quote_literal(str(value))


class TextRepresentedType(StringType):
    """Types whose values are kept in their external text representation, e.g. *interval*, *money* or *tsvector*.

    In contrast to the character types, string literals have to be cast explicitly to get values of these types.
    """

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        return self.type_cast_expr(strict_type, quote_literal(str(value)))


class BinaryType(TypeBase):
    """The *bytea* type, represented by `bytes`.

    Both the *hex* and the *escape* output formats are understood. Values are always sent in the *hex* format.
    """

    _EscapedOctetPattern = re.compile(rb"\\(\\|[0-7]{3})")

    def parse_value(self, text: Optional[str]) -> Optional[bytes]:
        if text is None:
            return None
        if text.startswith("\\x"):
            try:
                return bytes.fromhex(text[2:])
            except ValueError as e:
                raise ParseError(f"Invalid hex-encoded binary value: '{text}'") from e

        def _unescape(match: re.Match) -> bytes:
            escaped = match.group(1)
            return b"\\" if escaped == b"\\" else bytes([int(escaped, 8)])

        return self._EscapedOctetPattern.sub(_unescape, text.encode("latin-1"))

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, str):
            value = value.encode("utf-8")
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise self.invalid_value_error(value)
        return self.type_cast_expr(strict_type, f"'\\x{bytes(value).hex()}'")


class _TemporalType(TypeBase, TotallyOrderedType, abc.ABC):
    """Common handling of the date and time types which share the *infinity* special values."""

    def __init__(self, schema_name: str, name: str, min_value: Any = None, max_value: Any = None) -> None:
        super().__init__(schema_name, name)
        self._min_value = min_value
        self._max_value = max_value

    @abc.abstractmethod
    def _parse_finite(self, text: str) -> Any:
        raise NotImplementedError

    @abc.abstractmethod
    def _format_finite(self, value: Any) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def _accepts(self, value: Any) -> bool:
        raise NotImplementedError

    def parse_value(self, text: Optional[str]) -> Any:
        if text is None:
            return None
        if self._max_value is not None and text == "infinity":
            return self._max_value
        if self._min_value is not None and text == "-infinity":
            return self._min_value
        if text.endswith(" BC"):
            raise ParseError(f"Dates before Christ are not supported: '{text}'")
        try:
            return self._parse_finite(text)
        except ValueError as e:
            raise ParseError(f"Invalid {self.name} value: '{text}'") from e

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, str):
            return self.type_cast_expr(strict_type, quote_literal(value))
        if not self._accepts(value):
            raise self.invalid_value_error(value)
        if self._max_value is not None and value == self._max_value:
            text = "infinity"
        elif self._min_value is not None and value == self._min_value:
            text = "-infinity"
        else:
            text = self._format_finite(value)
        return self.type_cast_expr(strict_type, quote_literal(text))


class DateType(_TemporalType, DiscreteType):
    """The *date* type, represented by `datetime.date`."""

    def __init__(self, schema_name: str, name: str) -> None:
        super().__init__(schema_name, name, datetime.date.min, datetime.date.max)

    def _parse_finite(self, text: str) -> datetime.date:
        return datetime.date.fromisoformat(text)

    def _format_finite(self, value: datetime.date) -> str:
        return value.isoformat()

    def _accepts(self, value: Any) -> bool:
        return isinstance(value, datetime.date) and not isinstance(value, datetime.datetime)

    def step(self, delta: int, value: Any) -> Any:
        if value is None or value in (datetime.date.min, datetime.date.max):
            return value
        return value + datetime.timedelta(days=delta)


class TimeType(_TemporalType):
    """The *time* and *timetz* types, represented by `datetime.time` (aware for *timetz*).

    Note that PostgreSQL accepts *24:00:00* as a valid time, which cannot be represented in Python.
    """

    def _parse_finite(self, text: str) -> datetime.time:
        return datetime.time.fromisoformat(text)

    def _format_finite(self, value: datetime.time) -> str:
        return value.isoformat()

    def _accepts(self, value: Any) -> bool:
        return isinstance(value, datetime.time)


class TimestampType(_TemporalType):
    """The *timestamp* and *timestamptz* types, represented by `datetime.datetime` (aware for *timestamptz*)."""

    def __init__(self, schema_name: str, name: str) -> None:
        super().__init__(schema_name, name, datetime.datetime.min, datetime.datetime.max)

    def _parse_finite(self, text: str) -> datetime.datetime:
        return datetime.datetime.fromisoformat(text)

    def _format_finite(self, value: datetime.datetime) -> str:
        return value.isoformat(sep=" ")

    def _accepts(self, value: Any) -> bool:
        return isinstance(value, datetime.datetime)


class JsonType(TypeBase):
    """The *json* and *jsonb* types. Values are decoded into dicts, lists, strings, numbers, booleans or *None*."""

    def parse_value(self, text: Optional[str]) -> Any:
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON value: {e.msg}", e.pos) from e

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        try:
            encoded = json.dumps(value)
        except TypeError as e:
            raise self.invalid_value_error(value) from e
        return self.type_cast_expr(strict_type, quote_literal(encoded))


class UuidType(TypeBase, TotallyOrderedType):
    """The *uuid* type, represented by `uuid.UUID`."""

    def parse_value(self, text: Optional[str]) -> Optional[uuid.UUID]:
        if text is None:
            return None
        try:
            return uuid.UUID(text)
        except ValueError as e:
            raise ParseError(f"Invalid UUID value: '{text}'") from e

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        try:
            value = value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        except ValueError as e:
            raise self.invalid_value_error(value) from e
        return self.type_cast_expr(strict_type, quote_literal(str(value)))


class NetAddressType(TypeBase):
    """The *inet* and *cidr* types, represented by the classes of the `ipaddress` module.

    *inet* values are parsed into interfaces (address plus netmask), *cidr* values into networks.
    """

    def __init__(self, schema_name: str, name: str, network: bool = False) -> None:
        super().__init__(schema_name, name)
        self._network = network

    def parse_value(self, text: Optional[str]) -> Any:
        if text is None:
            return None
        try:
            return ipaddress.ip_network(text) if self._network else ipaddress.ip_interface(text)
        except ValueError as e:
            raise ParseError(f"Invalid network address: '{text}'") from e

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        if value is None:
            return "NULL"
        return self.type_cast_expr(strict_type, quote_literal(str(value)))


class VoidType(TypeBase):
    """The *void* pseudo-type of functions returning nothing."""

    def parse_value(self, text: Optional[str]) -> None:
        return None

    def serialize_value(self, value: Any, strict_type: bool = True) -> str:
        return self.type_cast_expr(strict_type, "NULL")


_TextRepresentedTypeNames = frozenset("""
interval money xml tsvector tsquery macaddr macaddr8 bit varbit pg_lsn jsonpath refcursor tid xid xid8 cid
txid_snapshot pg_snapshot point line lseg box path polygon circle int2vector oidvector aclitem
regclass regtype regproc regprocedure regoper regoperator regconfig regdictionary regnamespace regrole regcollation
""".split())

_StdTypeFactories: dict[str, Callable[[str, str], Type]] = {
    "bool": BooleanType,
    "int2": IntegerType,
    "int4": IntegerType,
    "int8": IntegerType,
    "oid": IntegerType,
    "float4": FloatType,
    "float8": FloatType,
    "numeric": DecimalType,
    "text": StringType,
    "varchar": StringType,
    "bpchar": StringType,
    "char": StringType,
    "name": StringType,
    "unknown": StringType,
    "bytea": BinaryType,
    "date": DateType,
    "time": TimeType,
    "timetz": TimeType,
    "timestamp": TimestampType,
    "timestamptz": TimestampType,
    "json": JsonType,
    "jsonb": JsonType,
    "uuid": UuidType,
    "inet": NetAddressType,
    "cidr": lambda schema, name: NetAddressType(schema, name, network=True),
    "void": VoidType,
}


class TypeProvider(abc.ABC):
    """Provides type objects by their names, e.g. to be used by a type dictionary compiler."""

    @abc.abstractmethod
    def provide_type(self, schema_name: str, type_name: str) -> Optional[Type]:
        """Provides a type object for the given type. *None* if this provider does not know the type."""
        raise NotImplementedError


class RangeCanonicalFuncProvider(abc.ABC):
    """Provides canonical functions for range types."""

    @abc.abstractmethod
    def provide_canonical_func(self, schema_name: str, func_name: str, subtype: Type) -> Optional[RangeCanonicalFunc]:
        """Provides the canonical function of the given name for ranges of `subtype`. *None* if unknown."""
        raise NotImplementedError


class StdTypeLoader(TypeProvider):
    """Provides the standard PostgreSQL types of the *pg_catalog* schema."""

    def provide_type(self, schema_name: str, type_name: str) -> Optional[Type]:
        if schema_name != "pg_catalog":
            return None
        if type_name == "record":
            from .composite import RecordType
            return RecordType(schema_name, type_name)
        factory = _StdTypeFactories.get(type_name)
        if factory is not None:
            return factory(schema_name, type_name)
        if type_name in _TextRepresentedTypeNames:
            return TextRepresentedType(schema_name, type_name)
        return None


class StdRangeCanonicalFuncProvider(RangeCanonicalFuncProvider):
    """Provides the canonical functions of the built-in discrete ranges *int4range*, *int8range* and *daterange*."""

    _CanonicalFuncs = frozenset(["int4range_canonical", "int8range_canonical", "daterange_canonical"])

    def provide_canonical_func(self, schema_name: str, func_name: str, subtype: Type) -> Optional[RangeCanonicalFunc]:
        if schema_name != "pg_catalog" or func_name not in self._CanonicalFuncs:
            return None
        if not isinstance(subtype, DiscreteType):
            return None
        return ConventionalRangeCanonicalFunc(subtype.step)
