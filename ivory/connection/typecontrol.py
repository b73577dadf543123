"""Contains the type management of connections."""

from __future__ import annotations

from typing import Any, Optional

from ..types import IntrospectingTypeDictionaryCompiler, TypeDictionary, TypeRegister


class TypeControl:
    """Provides the type dictionary of the connection.

    The dictionary is compiled from the database catalog upon first use. Types registered on the local `type_register`
    of the connection take precedence over the global ones. After types have been created or altered in the database,
    or after registering new types, `flush_type_dictionary` has to be called for the changes to take effect.
    """

    def _init_types(self) -> None:
        self._type_register = TypeRegister()
        self._type_dictionary: Optional[TypeDictionary] = None

    @property
    def type_register(self) -> TypeRegister:
        """Gets the register of types, serializers and rules local to this connection."""
        return self._type_register

    @property
    def type_dictionary(self) -> TypeDictionary:
        """Gets the type dictionary of the connection, compiling it if necessary.

        Raises
        ------
        IvoryConnectionError
            If the dictionary has to be compiled but the connection is not established
        """
        if self._type_dictionary is None:
            from .._globals import global_type_register

            self._log("Compiling the type dictionary")
            compiler = IntrospectingTypeDictionaryCompiler(self)
            dictionary = compiler.compile([self._type_register, global_type_register()])
            dictionary.set_type_search_path(self.config.effective_search_path())
            dictionary.attach_to_connection(self)
            self._type_dictionary = dictionary
        return self._type_dictionary

    def flush_type_dictionary(self) -> None:
        """Drops the type dictionary, so that it is compiled anew upon next use."""
        if self._type_dictionary is not None:
            self._type_dictionary.detach_from_connection()
        self._type_dictionary = None

    def _handle_search_path_change(self, name: Optional[str], value: Any) -> None:
        if self._type_dictionary is not None:
            self._type_dictionary.set_type_search_path(self.config.effective_search_path())
