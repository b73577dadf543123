"""Contains the type dictionary, i.e. the set of types available on a single connection."""

from __future__ import annotations

import datetime
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Literal, Optional

from ..exceptions import UndefinedTypeError
from ..value import EnumItem, Range
from .base import ConnectionDependentObject, Type, ValueSerializer
from .range import RangeType
from .serializers import TypeDictionaryDependentSerializer

if TYPE_CHECKING:
    from ..connection import Connection

TypeKey = tuple[str, str]
"""Identifies a type by its schema and its name."""

UndefinedTypeHandler = Callable[[Optional[int], Optional[str], Optional[str | bool], Any], Optional[Type]]
"""Called when a type is not found. Receives the OID, the type name, the schema and the value that was looked up (all but
the actual lookup criterion being *None*). May provide a type, or *None* to raise an `UndefinedTypeError`."""

_BigintRange = range(-2 ** 63, 2 ** 63)


def _first_non_null_item(value: Sequence[Any]) -> Any:
    for item in value:
        if isinstance(item, list):
            nested = _first_non_null_item(item)
            if nested is not None:
                return nested
        elif item is not None:
            return item
    return None


class TypeDictionary:
    """The types, aliases and value serializers known to a connection.

    Types can be looked up in three ways:

    - by their OID, which is used to process results sent by the server
    - by their name, which is used for the placeholders of SQL patterns
    - by a value, which is used for placeholders without an explicit type

    Name lookups without a schema first consider the aliases (e.g. ``int`` for ``pg_catalog.int4``), then all schemas of
    the type search path in order. Value lookups consult the type inference rule sets: the type registered for the exact
    class of the value wins, otherwise the base classes are checked in method resolution order.

    The dictionary is usually compiled from the database catalog by an `IntrospectingTypeDictionaryCompiler`.
    """

    def __init__(self) -> None:
        self._types_by_oid: dict[int, Type] = {}
        self._types_by_name: dict[str, dict[str, Type]] = {}
        self._aliases: dict[str, TypeKey] = {}
        self._value_serializers: dict[str, ValueSerializer] = {}
        self._inference_rule_sets: list[dict[type, TypeKey]] = []
        self._type_search_path: list[str] = []
        self._undefined_type_handler: Optional[UndefinedTypeHandler] = None
        self._connection: Optional[Connection] = None
        self._range_types_by_subtype: Optional[dict[TypeKey, RangeType]] = None

    def define_type(self, type_: Type, oid: Optional[int] = None) -> None:
        """Adds a type to the dictionary. Types defined under an already known name replace the previous ones."""
        if oid is not None:
            self._types_by_oid[oid] = type_
        self._types_by_name.setdefault(type_.schema_name, {})[type_.name] = type_
        self._range_types_by_subtype = None
        if self._connection is not None and isinstance(type_, ConnectionDependentObject):
            type_.attach_to_connection(self._connection)

    def dispose_type(self, type_: Type) -> None:
        """Removes a type from the dictionary. Unknown types are ignored."""
        self._types_by_oid = {oid: t for oid, t in self._types_by_oid.items() if t is not type_}
        schema_types = self._types_by_name.get(type_.schema_name, {})
        if schema_types.get(type_.name) is type_:
            del schema_types[type_.name]
        self._range_types_by_subtype = None
        if isinstance(type_, ConnectionDependentObject):
            type_.detach_from_connection()

    def define_value_serializer(self, name: str, serializer: ValueSerializer) -> None:
        if isinstance(serializer, TypeDictionaryDependentSerializer):
            serializer = serializer.bind(self)
        self._value_serializers[name] = serializer

    def define_type_alias(self, alias: str, schema_name: str, type_name: str) -> None:
        """Makes a type available under an alternative name.

        The type does not need to be defined yet. The alias is resolved each time it is used.
        """
        self._aliases[alias] = (schema_name, type_name)

    def add_type_inference_rule_set(self, rules: Mapping[type, TypeKey]) -> None:
        """Adds rules mapping Python classes to the types their instances are serialized with.

        Rule sets are consulted in the order they were added.
        """
        self._inference_rule_sets.append(dict(rules))

    def set_type_search_path(self, schemas: Iterable[str]) -> None:
        self._type_search_path = list(schemas)

    @property
    def type_search_path(self) -> list[str]:
        return list(self._type_search_path)

    def set_undefined_type_handler(self, handler: Optional[UndefinedTypeHandler]) -> None:
        self._undefined_type_handler = handler

    def types(self) -> list[Type]:
        """Provides all types defined by name."""
        return [type_ for schema_types in self._types_by_name.values() for type_ in schema_types.values()]

    def find_type_by_oid(self, oid: int) -> Optional[Type]:
        return self._types_by_oid.get(oid)

    def require_type_by_oid(self, oid: int) -> Type:
        """Provides the type of the given OID.

        Raises
        ------
        UndefinedTypeError
            If there is no such type and the undefined type handler does not provide one either
        """
        type_ = self._types_by_oid.get(oid)
        if type_ is not None:
            return type_
        type_ = self._handle_undefined(oid, None, None, None)
        if type_ is None:
            raise UndefinedTypeError(f"There is no type defined for OID {oid}")
        return type_

    def find_type_by_name(self, type_name: str, schema_name: Optional[str | Literal[False]] = None) -> Optional[Type]:
        """Looks up a type by its name. See `require_type_by_name` for the meaning of `schema_name`."""
        if isinstance(schema_name, str):
            return self._types_by_name.get(schema_name, {}).get(type_name)
        if schema_name is None and type_name in self._aliases:
            alias_schema, alias_name = self._aliases[type_name]
            aliased = self._types_by_name.get(alias_schema, {}).get(alias_name)
            if aliased is not None:
                return aliased
        for schema in self._type_search_path:
            type_ = self._types_by_name.get(schema, {}).get(type_name)
            if type_ is not None:
                return type_
        return None

    def require_type_by_name(self, type_name: str, schema_name: Optional[str | Literal[False]] = None) -> Type:
        """Provides a type by its name.

        Parameters
        ----------
        type_name : str
            The name of the type, or an alias. Array types are named by their element type followed by ``[]``.
        schema_name : Optional[str | Literal[False]], optional
            The schema to look for the type in. *None* (the default) checks the aliases first and the schemas of the type
            search path afterwards. *False* checks the type search path only.

        Raises
        ------
        UndefinedTypeError
            If there is no such type and the undefined type handler does not provide one either
        """
        type_ = self.find_type_by_name(type_name, schema_name)
        if type_ is not None:
            return type_
        type_ = self._handle_undefined(None, type_name, schema_name, None)
        if type_ is not None:
            return type_
        if isinstance(schema_name, str):
            raise UndefinedTypeError(f'There is no type defined for name "{type_name}" in schema "{schema_name}"')
        raise UndefinedTypeError(f'There is no type defined for name "{type_name}" on the type search path '
                                 f'({", ".join(self._type_search_path)})')

    def require_type_by_value(self, value: Any) -> Type:
        """Infers the type to serialize a value with.

        Arrays (i.e. lists) are typed by their first item which is not *None*. Lists without any such item are typed by
        the rule registered for the `list` class. Enum items use their own enum type, ranges the range type of their bound
        values.

        Raises
        ------
        UndefinedTypeError
            If there is no rule for the value
        """
        type_ = self._infer_type(value)
        if type_ is not None:
            return type_
        type_ = self._handle_undefined(None, None, None, value)
        if type_ is None:
            raise UndefinedTypeError(f"There is no type defined for value of class {type(value).__name__}")
        return type_

    def find_value_serializer(self, name: str) -> Optional[ValueSerializer]:
        return self._value_serializers.get(name)

    def require_value_serializer(self, name: str) -> ValueSerializer:
        serializer = self._value_serializers.get(name)
        if serializer is None:
            raise UndefinedTypeError(f'There is no value serializer registered under name "{name}"')
        return serializer

    def attach_to_connection(self, connection: Connection) -> None:
        """Binds all connection-dependent types of this dictionary to a connection."""
        self._connection = connection
        for type_ in self._all_types():
            if isinstance(type_, ConnectionDependentObject):
                type_.attach_to_connection(connection)

    def detach_from_connection(self) -> None:
        for type_ in self._all_types():
            if isinstance(type_, ConnectionDependentObject):
                type_.detach_from_connection()
        self._connection = None

    def _all_types(self) -> list[Type]:
        unique: dict[int, Type] = {id(type_): type_ for type_ in self.types()}
        unique.update((id(type_), type_) for type_ in self._types_by_oid.values())
        return list(unique.values())

    def _handle_undefined(self, oid: Optional[int], type_name: Optional[str], schema_name: Optional[str | bool],
                          value: Any) -> Optional[Type]:
        if self._undefined_type_handler is None:
            return None
        return self._undefined_type_handler(oid, type_name, schema_name, value)

    def _lookup_rule(self, cls: type) -> Optional[TypeKey]:
        for rule_set in self._inference_rule_sets:
            if cls in rule_set:
                return rule_set[cls]
        for base in cls.__mro__[1:]:
            for rule_set in self._inference_rule_sets:
                if base in rule_set:
                    return rule_set[base]
        return None

    def _infer_key(self, value: Any) -> Optional[TypeKey]:
        if isinstance(value, EnumItem):
            return value.schema_name, value.type_name

        key = self._lookup_rule(type(value))
        if key is None:
            return None
        schema_name, type_name = key
        if isinstance(value, bool):
            return key
        if isinstance(value, int) and value not in _BigintRange:
            return "pg_catalog", "numeric"
        if isinstance(value, (datetime.datetime, datetime.time)) and value.tzinfo is not None \
                and type_name in ("timestamp", "time"):
            return schema_name, type_name + "tz"
        return key

    def _infer_type(self, value: Any) -> Optional[Type]:
        if isinstance(value, list):
            item = _first_non_null_item(value)
            if item is None:
                key = self._lookup_rule(list)
                return self.find_type_by_name(key[1], key[0]) if key else None
            item_key = self._infer_item_key(item)
            return self.find_type_by_name(f"{item_key[1]}[]", item_key[0]) if item_key else None

        if isinstance(value, Range):
            return self._infer_range_type(value)

        key = self._infer_key(value)
        return self.find_type_by_name(key[1], key[0]) if key else None

    def _infer_item_key(self, item: Any) -> Optional[TypeKey]:
        if isinstance(item, Range):
            range_type = self._infer_range_type(item)
            return (range_type.schema_name, range_type.name) if range_type else None
        return self._infer_key(item)

    def _infer_range_type(self, value: Range) -> Optional[Type]:
        bound = value.lower if value.lower is not None else value.upper
        if bound is None:
            # empty or fully unbounded ranges do not reveal their subtype
            key = self._lookup_rule(Range)
            return self.find_type_by_name(key[1], key[0]) if key else None

        subtype_key = self._infer_key(bound)
        if subtype_key is None:
            return None
        if self._range_types_by_subtype is None:
            ranges = sorted((t for t in self.types() if isinstance(t, RangeType)),
                            key=lambda t: t.schema_name != "pg_catalog")
            self._range_types_by_subtype = {}
            for range_type in ranges:
                subtype = range_type.subtype
                self._range_types_by_subtype.setdefault((subtype.schema_name, subtype.name), range_type)
        return self._range_types_by_subtype.get(subtype_key)

    def __repr__(self) -> str:
        return f"TypeDictionary({len(self.types())} types, search path: {self._type_search_path})"
