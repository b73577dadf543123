"""Contains the registry of named connections and the convenience functions to connect to a database."""

from __future__ import annotations

import os
import warnings
from collections.abc import Mapping
from pathlib import Path
from typing import Optional

from .connection import Connection, ConnectionParameters
from .exceptions import IvoryConnectionError

_ConnectionFile = ".psycopg_connection"

_EnvironmentVariables = {
    "PGDATABASE": "dbname",
    "PGHOST": "host",
    "PGPORT": "port",
    "PGUSER": "user",
    "PGPASSWORD": "password",
    "PGPASSFILE": "passfile",
}


class ConnectionRegistry:
    """The connection registry allows different parts of the code base to easily obtain access to a connection.

    This is achieved by maintaining one global registry of connections which is shared by the entire process.
    Connections are registered and retrieved via unique names. The first connection registered becomes the default
    one, which is provided if no name is given.

    The registry implementation follows the singleton pattern. Use the static `get_instance` method to retrieve the
    registry instance. Note that the registry does not pool connections, it merely keeps track of them.
    """

    @staticmethod
    def get_instance() -> ConnectionRegistry:
        """Provides access to the singleton registry, creating a new registry if necessary."""
        global _REGISTRY
        if _REGISTRY is None:
            _REGISTRY = ConnectionRegistry()
        return _REGISTRY

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._default_name: Optional[str] = None

    def register(self, connection: Connection, name: Optional[str] = None) -> str:
        """Stores a connection in the registry.

        Parameters
        ----------
        connection : Connection
            The connection to store
        name : Optional[str], optional
            The name to register the connection under. Defaults to the name of the connection itself.

        Returns
        -------
        str
            The name the connection was registered under

        Raises
        ------
        ValueError
            If another connection is already registered under the same name
        """
        name = name or connection.name
        if name in self._connections and self._connections[name] is not connection:
            raise ValueError(f"There is already a connection registered under name '{name}'")
        self._connections[name] = connection
        if self._default_name is None:
            self._default_name = name
        return name

    def retrieve(self, name: Optional[str] = None) -> Connection:
        """Provides the connection registered under a specific name, or the default connection if no name is given.

        Raises
        ------
        KeyError
            If no connection is registered under the given name, or if there is no connection at all
        """
        if name is None:
            if self._default_name is None:
                raise KeyError("No connection has been registered yet")
            name = self._default_name
        return self._connections[name]

    def remove(self, name: str) -> Optional[Connection]:
        """Removes a connection from the registry, without closing it.

        If the removed connection was the default one, the earliest registered remaining connection becomes the default.
        """
        connection = self._connections.pop(name, None)
        if name == self._default_name:
            self._default_name = next(iter(self._connections), None)
        return connection

    @property
    def default(self) -> Optional[str]:
        """Gets the name of the default connection."""
        return self._default_name

    def set_default(self, name: str) -> None:
        if name not in self._connections:
            raise KeyError(f"No connection registered under name '{name}'")
        self._default_name = name

    def names(self) -> list[str]:
        return list(self._connections)

    def empty(self) -> bool:
        return not self._connections

    def clear(self) -> None:
        """Removes all connections from the registry, without closing them."""
        self._connections.clear()
        self._default_name = None

    def __contains__(self, name: str) -> bool:
        return name in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return f"ConnectionRegistry {list(self._connections)} (default: {self._default_name})"


_REGISTRY: Optional[ConnectionRegistry] = None


def _read_connection_file(path: Path) -> str:
    with open(path, "r") as f:
        return f.readline().strip()


def _resolve_parameters(params: Optional[str | Mapping[str, str | int] | ConnectionParameters], connect_string: str,
                        config_file: str | Path) -> ConnectionParameters:
    if params is not None:
        return ConnectionParameters.create(params)
    if connect_string:
        return ConnectionParameters.create(connect_string.strip())

    if config_file:
        config_file = Path(config_file)
        if not config_file.is_file():
            wdir = os.getcwd()
            raise ValueError(
                f"Failed to obtain the connection parameters. Tried to read the config file '{config_file}' from "
                f"your current working directory, but the file was not found. Your working directory is {wdir}. "
                "Please either supply the connection parameters directly to the connect() function, or ensure that "
                "the config file exists."
            )
        return ConnectionParameters.create(_read_connection_file(config_file))

    if Path(_ConnectionFile).is_file():
        return ConnectionParameters.create(_read_connection_file(Path(_ConnectionFile)))

    if os.getenv("PGDATABASE"):
        warnings.warn("Using environment variables to construct the connection parameters.")
        env_params = {key: os.getenv(var) for var, key in _EnvironmentVariables.items() if os.getenv(var)}
        return ConnectionParameters(env_params)

    raise ValueError(
        "Failed to obtain the connection parameters. Please either supply them directly to the connect() function, "
        f"or put a {_ConnectionFile} file in your working directory. See the documentation of the connect() function "
        "for more details."
    )


def connect(params: Optional[str | Mapping[str, str | int] | ConnectionParameters] = None, *, name: str = "default",
            application_name: str = "Ivory", connect_string: str = "", config_file: str | Path = "",
            encoding: str = "UTF8", refresh: bool = False, private: bool = False, debug: bool = False,
            warn_notices: bool = False, connect_now: bool = True) -> Connection:
    """Convenience function to seamlessly connect to a PostgreSQL database.

    The connection parameters are obtained by trying the following methods in order:

    1. the parameters given directly, either via `params` (a dictionary, connection string or URI) or via the
       `connect_string`
    2. the connection string read from the `config_file` if this parameter is supplied. If the file does not exist, an
       error is raised.
    3. the connection string read from the default connection file *.psycopg_connection* in the current working directory
    4. the standard PostgreSQL environment variables (e.g. *PGDATABASE*, *PGHOST*, ...). This method is triggered by the
       presence of the *PGDATABASE* environment variable. As it is implicit and easily overlooked, a warning is emitted.

    If none of these methods worked, an error is raised.

    The new connection is registered on the `ConnectionRegistry` automatically, unless it is `private`.

    Parameters
    ----------
    params : Optional[str | Mapping[str, str | int] | ConnectionParameters], optional
        The connection parameters
    name : str, optional
        The name to register the connection under. If a connection of this name is already registered and `refresh` is
        not set, the registered connection is provided (and re-established if necessary) without reading any parameters.
    application_name : str, optional
        Identifier for the server logs and process lists, unless the parameters specify one already
    connect_string : str, optional
        A libpq connection string, as an alternative to `params`
    config_file : str | Path, optional
        A file whose first line is the libpq connection string
    encoding : str, optional
        The client encoding, unless the parameters specify one already. Defaults to *UTF8*.
    refresh : bool, optional
        Whether to always create a new connection. If the name is already taken, the new connection is registered under a
        suffixed name.
    private : bool, optional
        Whether to skip the registration of the new connection
    debug : bool, optional
        Whether the connection should log the statements it sends
    warn_notices : bool, optional
        Whether the notices of the server should be emitted as warnings
    connect_now : bool, optional
        Whether to establish the connection right away. Otherwise, `Connection.connect` has to be called later on.

    Returns
    -------
    Connection
        The connection

    Raises
    ------
    ValueError
        If no connection parameters could be obtained, or if the config file does not exist
    IvoryConnectionError
        If the connection could not be established
    """
    registry = ConnectionRegistry.get_instance()
    if name in registry and not refresh:
        connection = registry.retrieve(name)
        if connect_now and not connection.is_connected():
            connection.disconnect()
            connection.connect()
        return connection

    parameters = _resolve_parameters(params, connect_string, config_file)
    extra_params: dict[str, str | int] = {}
    if application_name and "application_name" not in parameters:
        extra_params["application_name"] = application_name
    if encoding and "client_encoding" not in parameters:
        extra_params["client_encoding"] = encoding
    if extra_params:
        parameters = parameters.with_params(**extra_params)

    if not private:
        orig_name = name
        instance_idx = 2
        while name in registry:
            name = f"{orig_name} - {instance_idx}"
            instance_idx += 1

    connection = Connection(name, parameters, debug=debug, warn_notices=warn_notices)
    if connect_now:
        connection.connect()
    if not private:
        registry.register(connection, name)
    return connection


def get_connection(name: Optional[str] = None) -> Connection:
    """Provides a registered connection, or the default one if no name is given.

    Raises
    ------
    IvoryConnectionError
        If there is no such connection
    """
    try:
        return ConnectionRegistry.get_instance().retrieve(name)
    except KeyError as e:
        target = f"named '{name}'" if name is not None else "registered"
        raise IvoryConnectionError(f"There is no connection {target}") from e


def dispose_connection(name: str) -> bool:
    """Closes a registered connection and removes it from the registry.

    Returns
    -------
    bool
        *True* if there was such a connection, *False* otherwise
    """
    connection = ConnectionRegistry.get_instance().remove(name)
    if connection is None:
        return False
    connection.close()
    return True
