"""Contains the type register which collects everything a type dictionary is compiled from."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Optional

from ..value import RangeCanonicalFunc
from .base import Type, ValueSerializer
from .std import RangeCanonicalFuncProvider, TypeProvider


class TypeRegister(TypeProvider, RangeCanonicalFuncProvider):
    """Collection of types, type loaders, value serializers and related rules.

    There is a global register which applies to all connections (see `ivory.global_type_register`), and each connection
    has a local register which takes precedence over the global one. Registers are not used for type lookups directly.
    Instead, a `TypeDictionary` is compiled from them together with the types defined in the database.

    Explicitly registered types take precedence over the types provided by the type loaders. Loaders are asked in the
    order they were registered.
    """

    def __init__(self) -> None:
        self._types: dict[str, dict[str, Type]] = {}
        self._type_loaders: list[TypeProvider] = []
        self._canonical_funcs: dict[tuple[str, str], RangeCanonicalFunc] = {}
        self._canonical_func_providers: list[RangeCanonicalFuncProvider] = []
        self._value_serializers: dict[str, ValueSerializer] = {}
        self._abbreviations: dict[str, tuple[str, str]] = {}
        self._recognition_rules: dict[type, tuple[str, str]] = {}

    def register_type(self, type_: Type) -> None:
        """Registers a type, replacing any previously registered type of the same name."""
        self._types.setdefault(type_.schema_name, {})[type_.name] = type_

    def unregister_type(self, type_or_schema: Type | str, type_name: Optional[str] = None) -> bool:
        """Removes a registered type, given either as the type object or by its schema and name.

        Returns
        -------
        bool
            Whether the type was registered before
        """
        if isinstance(type_or_schema, Type):
            schema_name, type_name = type_or_schema.schema_name, type_or_schema.name
        else:
            schema_name = type_or_schema
        schema_types = self._types.get(schema_name, {})
        if type_name not in schema_types:
            return False
        del schema_types[type_name]
        return True

    def register_type_loader(self, loader: TypeProvider) -> None:
        self._type_loaders.append(loader)

    def unregister_type_loader(self, loader: TypeProvider) -> bool:
        if loader not in self._type_loaders:
            return False
        self._type_loaders.remove(loader)
        return True

    def register_range_canonical_func(self, schema_name: str, func_name: str, func: RangeCanonicalFunc) -> None:
        """Registers the implementation of a range canonical function, identified by the name of the SQL function."""
        self._canonical_funcs[(schema_name, func_name)] = func

    def register_range_canonical_func_provider(self, provider: RangeCanonicalFuncProvider) -> None:
        self._canonical_func_providers.append(provider)

    def register_value_serializer(self, name: str, serializer: ValueSerializer) -> None:
        self._value_serializers[name] = serializer

    def register_value_serializers(self, serializers: Mapping[str, ValueSerializer]) -> None:
        self._value_serializers.update(serializers)

    def unregister_value_serializer(self, name: str) -> bool:
        return self._value_serializers.pop(name, None) is not None

    def register_type_abbreviation(self, abbreviation: str, schema_name: str, type_name: str) -> None:
        """Makes a type available under a short name. The array type is made available as well, e.g. ``i[]``."""
        self._abbreviations[abbreviation] = (schema_name, type_name)

    def unregister_type_abbreviation(self, abbreviation: str) -> bool:
        return self._abbreviations.pop(abbreviation, None) is not None

    def add_type_recognition_rule(self, python_class: type, schema_name: str, type_name: str) -> None:
        """Declares the type used for serializing instances of a Python class when no type is given explicitly."""
        self._recognition_rules[python_class] = (schema_name, type_name)

    @property
    def types(self) -> list[Type]:
        return [type_ for schema_types in self._types.values() for type_ in schema_types.values()]

    @property
    def value_serializers(self) -> dict[str, ValueSerializer]:
        return dict(self._value_serializers)

    @property
    def type_abbreviations(self) -> dict[str, tuple[str, str]]:
        return dict(self._abbreviations)

    @property
    def type_recognition_rules(self) -> dict[type, tuple[str, str]]:
        return dict(self._recognition_rules)

    def provide_type(self, schema_name: str, type_name: str) -> Optional[Type]:
        registered = self._types.get(schema_name, {}).get(type_name)
        if registered is not None:
            return registered
        for loader in self._type_loaders:
            type_ = loader.provide_type(schema_name, type_name)
            if type_ is not None:
                return type_
        return None

    def provide_canonical_func(self, schema_name: str, func_name: str, subtype: Type) -> Optional[RangeCanonicalFunc]:
        func = self._canonical_funcs.get((schema_name, func_name))
        if func is not None:
            return func
        for provider in self._canonical_func_providers:
            func = provider.provide_canonical_func(schema_name, func_name, subtype)
            if func is not None:
                return func
        return None
