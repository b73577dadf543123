"""Contains the introspection and modification of the run-time configuration of a database session.

Configuration parameters are read with their proper Python types: booleans, numbers, strings and quantities with units,
such as *4MB* for *work_mem*. Changes made through `ConnConfig` are tracked, so that interested parties (e.g. the type
dictionary, which follows the *search_path*) can be informed by observers. Changes rolled back together with a
transaction or savepoint are reported as well.
"""

from __future__ import annotations

import enum
import math
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, TypeAlias

from ..lang.sql import quote_literal
from .transactions import TransactionObserver

if TYPE_CHECKING:
    from .connection import Connection

ConfigObserver: TypeAlias = Callable[[Optional[str], Any], None]
"""Callback informed about a changed configuration parameter.

It receives the parameter name and its new value. When all parameters are reset at once, it receives *None* for both.
"""

_UnitConversions: dict[str, tuple[str, float]] = {
    "B": ("B", 1),
    "kB": ("B", 1024),
    "MB": ("B", 1024 ** 2),
    "GB": ("B", 1024 ** 3),
    "TB": ("B", 1024 ** 4),
    "us": ("s", 1 / 1_000_000),
    "ms": ("s", 1 / 1000),
    "s": ("s", 1),
    "min": ("s", 60),
    "h": ("s", 60 * 60),
    "d": ("s", 24 * 60 * 60),
}

_QuantityEpsilon = 1e-9


@dataclass(frozen=True, eq=False)
class Quantity:
    """A numeric value together with its unit, e.g. *8 MB* or *200 ms*.

    Quantities of convertible units are equal if they denote the same amount, e.g. *1 GB* equals *1024 MB*.
    """

    value: int | float
    unit: Optional[str] = None

    @staticmethod
    def parse(text: str, decimal_separator: str = ".") -> Quantity:
        """Parses a quantity written with the unit before or after the amount, such as *4MB*, *1 024 kB* or *$ 12.5*.

        Raises
        ------
        ValueError
            If the text is not a quantity
        """
        ds = re.escape(decimal_separator)
        pattern = (r"^\s*(?P<pre>\D+?)?\s*"
                   rf"(?P<int>\d(?:[^{ds}\d]*\d+)*)"
                   rf"(?:{ds}(?P<frac>\d+))?"
                   r"\s*(?(pre)|(?P<post>\D*?))\s*$")
        match = re.match(pattern, text)
        if not match:
            raise ValueError(f"Invalid quantity: '{text}'")
        digits = re.sub(r"\D+", "", match.group("int"))
        value = float(f"{digits}.{match.group('frac')}") if match.group("frac") else int(digits)
        unit = match.group("pre") or match.group("post") or None
        return Quantity(value, unit)

    @staticmethod
    def from_value(value: int | float | str, unit: Optional[str] = None) -> Quantity:
        if isinstance(value, str):
            number = float(value)
            value = int(number) if number.is_integer() and "." not in value else number
        return Quantity(value, unit or None)

    def to_unit(self, dest_unit: Optional[str]) -> Quantity:
        """Converts the quantity to another unit.

        Raises
        ------
        ValueError
            If the units are not convertible to each other
        """
        if dest_unit == self.unit:
            return self
        if not self.unit or not dest_unit:
            if self.value == 0:
                return Quantity(self.value, dest_unit)
            raise ValueError("Conversion from or to a dimensionless quantity is undefined.")
        if self.unit not in _UnitConversions or dest_unit not in _UnitConversions:
            raise ValueError(f"Conversion from '{self.unit}' to '{dest_unit}' is not supported.")

        src_base, src_mult = _UnitConversions[self.unit]
        dest_base, dest_mult = _UnitConversions[dest_unit]
        if src_base != dest_base:
            raise ValueError(f"Incompatible units '{self.unit}' and '{dest_unit}'.")
        converted = self.value * src_mult / dest_mult
        if isinstance(self.value, int) and float(converted).is_integer():
            converted = int(converted)
        return Quantity(converted, dest_unit)

    def _normalized(self) -> tuple[Optional[str], float]:
        if self.unit in _UnitConversions:
            base, mult = _UnitConversions[self.unit]
            return base, self.value * mult
        return self.unit, self.value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, str):
            other = Quantity.parse(other)
        if not isinstance(other, Quantity):
            return NotImplemented
        own_unit, own_value = self._normalized()
        other_unit, other_value = other._normalized()
        return own_unit == other_unit and math.isclose(own_value, other_value, abs_tol=_QuantityEpsilon)

    def __hash__(self) -> int:
        unit, value = self._normalized()
        return hash((unit, round(value, 6)))

    def __str__(self) -> str:
        return f"{self.value}{self.unit}" if self.unit else str(self.value)


_TrueValues = frozenset(["on", "true", "tru", "tr", "t", "yes", "ye", "y", "1"])
_FalseValues = frozenset(["off", "of", "false", "fals", "fal", "fa", "f", "no", "n", "0"])


class ConfigParamType(enum.Enum):
    """The types of values of configuration parameters."""
    Bool = "bool"
    String = "string"
    Integer = "integer"
    IntegerWithUnit = "integer with unit"
    Real = "real"
    Enum = "enum"

    @staticmethod
    def from_vartype(vartype: str, with_unit: bool = False) -> ConfigParamType:
        """Determines the type from the *vartype* column of *pg_settings*."""
        match vartype.lower():
            case "string":
                return ConfigParamType.String
            case "integer":
                return ConfigParamType.IntegerWithUnit if with_unit else ConfigParamType.Integer
            case "bool":
                return ConfigParamType.Bool
            case "enum":
                return ConfigParamType.Enum
            case "real":
                return ConfigParamType.Real
            case _:
                raise ValueError(f"Unsupported type of configuration parameter: '{vartype}'")

    def create_value(self, text: Optional[str], unit: Optional[str] = None) -> Any:
        """Converts the textual setting of a parameter of this type to a Python value."""
        if text is None:
            return None
        match self:
            case ConfigParamType.String | ConfigParamType.Enum:
                return text
            case ConfigParamType.Integer:
                return int(text)
            case ConfigParamType.Real:
                return float(text)
            case ConfigParamType.Bool:
                lowered = text.lower()
                if lowered in _TrueValues:
                    return True
                if lowered in _FalseValues:
                    return False
                raise ValueError(f"Invalid boolean parameter value: '{text}'")
            case ConfigParamType.IntegerWithUnit:
                return Quantity.from_value(text, unit) if unit else Quantity.parse(text)


_Bool, _Str, _Int, _Unit, _Real, _Enum = (ConfigParamType.Bool, ConfigParamType.String, ConfigParamType.Integer,
                                          ConfigParamType.IntegerWithUnit, ConfigParamType.Real, ConfigParamType.Enum)

KnownConfigParams: dict[str, ConfigParamType] = {
    "is_superuser": _Bool,
    "session_authorization": _Str,
    "application_name": _Str,
    "DateStyle": _Str,
    "IntervalStyle": _Enum,
    "TimeZone": _Str,
    "client_encoding": _Str,
    "server_encoding": _Str,
    "server_version": _Str,
    "server_version_num": _Int,
    "standard_conforming_strings": _Bool,
    "integer_datetimes": _Bool,
    "search_path": _Str,
    "default_transaction_isolation": _Enum,
    "default_transaction_read_only": _Bool,
    "default_transaction_deferrable": _Bool,
    "transaction_isolation": _Enum,
    "transaction_read_only": _Bool,
    "transaction_deferrable": _Bool,
    "statement_timeout": _Unit,
    "lock_timeout": _Unit,
    "idle_in_transaction_session_timeout": _Unit,
    "work_mem": _Unit,
    "maintenance_work_mem": _Unit,
    "shared_buffers": _Unit,
    "effective_cache_size": _Unit,
    "temp_buffers": _Unit,
    "max_connections": _Int,
    "port": _Int,
    "lc_messages": _Str,
    "lc_monetary": _Str,
    "lc_numeric": _Str,
    "lc_time": _Str,
    "bytea_output": _Enum,
    "extra_float_digits": _Int,
    "geqo": _Bool,
    "geqo_threshold": _Int,
    "jit": _Bool,
    "enable_seqscan": _Bool,
    "enable_indexscan": _Bool,
    "enable_hashjoin": _Bool,
    "enable_mergejoin": _Bool,
    "enable_nestloop": _Bool,
    "random_page_cost": _Real,
    "seq_page_cost": _Real,
    "cpu_tuple_cost": _Real,
    "max_parallel_workers_per_gather": _Int,
    "log_min_duration_statement": _Unit,
    "client_min_messages": _Enum,
}
"""Types of the commonly used configuration parameters. Other parameters are typed according to *pg_settings*."""

_ParameterStatusNames = frozenset(["is_superuser", "session_authorization", "application_name", "DateStyle",
                                   "IntervalStyle", "TimeZone", "client_encoding", "standard_conforming_strings",
                                   "integer_datetimes", "server_encoding", "server_version"])
"""Parameters reported by the server on each change, so libpq knows their values without asking."""

_KnownConfigParamsLower = {name.lower(): type_ for name, type_ in KnownConfigParams.items()}
_ParameterStatusNamesLower = {name.lower(): name for name in _ParameterStatusNames}


def _is_custom_option(name: str) -> bool:
    return "." in name


@dataclass
class _SavepointFrame:
    name: Optional[str] = None
    tx_scope: dict[str, str] = field(default_factory=dict)
    session_scope: dict[str, str] = field(default_factory=dict)
    reset_all: bool = False

    def absorb(self, other: _SavepointFrame) -> None:
        self.tx_scope.update(other.tx_scope)
        self.session_scope.update(other.session_scope)
        self.reset_all = self.reset_all or other.reset_all


class _ConfigTransactionWatcher(TransactionObserver):
    """Tracks the parameters changed within a transaction, to report the ones reverted by rollbacks."""

    def __init__(self, config: ConnConfig) -> None:
        self._config = config
        self._frames: Optional[list[_SavepointFrame]] = None

    def handle_set_for_transaction(self, name: str) -> None:
        if self._frames is not None:
            self._frames[-1].tx_scope[name.lower()] = name

    def handle_set_for_session(self, name: str) -> None:
        if self._frames is not None:
            self._frames[-1].session_scope[name.lower()] = name

    def handle_reset_all(self) -> None:
        if self._frames is not None:
            self._frames[-1].reset_all = True

    def handle_transaction_start(self) -> None:
        self._frames = [_SavepointFrame()]

    def handle_transaction_commit(self) -> None:
        if self._frames is None:
            return
        # settings local to the transaction end with it
        changed: dict[str, str] = {}
        for frame in self._frames:
            changed.update(frame.tx_scope)
        self._frames = None
        for name in changed.values():
            self._config.notify_property_change(name)

    def handle_transaction_rollback(self) -> None:
        if self._frames is None:
            return
        rolled_back = _SavepointFrame()
        for frame in self._frames:
            rolled_back.absorb(frame)
        self._frames = None
        self._report_rollback(rolled_back)

    def handle_savepoint_saved(self, name: str) -> None:
        if self._frames is None:
            return
        self._frames[-1].name = name
        self._frames.append(_SavepointFrame())

    def handle_savepoint_released(self, name: str) -> None:
        idx = self._find_savepoint(name)
        if idx is None:
            return
        merged = _SavepointFrame()
        for frame in self._frames[idx:]:
            merged.absorb(frame)
        self._frames[idx:] = [merged]

    def handle_rollback_to_savepoint(self, name: str) -> None:
        idx = self._find_savepoint(name)
        if idx is None:
            return
        rolled_back = _SavepointFrame()
        for frame in self._frames[idx + 1:]:
            rolled_back.absorb(frame)
        self._frames[idx + 1:] = [_SavepointFrame()]
        self._report_rollback(rolled_back)

    def handle_transaction_prepared(self, name: str) -> None:
        self.handle_transaction_commit()

    def _find_savepoint(self, name: str) -> Optional[int]:
        if self._frames is None:
            return None
        for idx in range(len(self._frames) - 2, -1, -1):
            if self._frames[idx].name == name:
                return idx
        return None

    def _report_rollback(self, rolled_back: _SavepointFrame) -> None:
        if rolled_back.reset_all:
            self._config.notify_properties_reset()
            return
        names = dict(rolled_back.tx_scope)
        names.update(rolled_back.session_scope)
        for name in names.values():
            self._config.notify_property_change(name)


_Unset = object()


class ConnConfig:
    """Reads and modifies the configuration of a database session.

    Parameters
    ----------
    connection : Connection
        The connection to work with
    """

    def __init__(self, connection: Connection) -> None:
        self._conn = connection
        self._observers: dict[Optional[str], list[ConfigObserver]] = {}
        self._type_cache: dict[str, ConfigParamType] = {}
        self._effective_search_path: Optional[list[str]] = None
        self._watcher = _ConfigTransactionWatcher(self)
        connection.add_transaction_observer(self._watcher)

    def get(self, name: str) -> Any:
        """Reads the current value of a configuration parameter.

        Parameters
        ----------
        name : str
            The parameter name. Custom options have to contain a dot (e.g. *myapp.tenant*).

        Returns
        -------
        Any
            The value, converted to the type of the parameter. Custom options are strings. *None* is provided if the
            parameter is not defined.
        """
        if _is_custom_option(name):
            return self._current_setting(name)

        status_name = _ParameterStatusNamesLower.get(name.lower())
        if status_name is not None:
            raw = self._conn.require_connection().pgconn.parameter_status(status_name.encode())
            if raw is not None:
                return KnownConfigParams[status_name].create_value(raw.decode(self._conn._client_encoding()))

        param_type = KnownConfigParams.get(name) or _KnownConfigParamsLower.get(name.lower())
        if param_type is None:
            param_type = self._type_cache.get(name.lower())
        if param_type is None:
            rows = self._conn.query_text_rows("SELECT setting, vartype, unit FROM pg_catalog.pg_settings "
                                              f"WHERE name = pg_catalog.lower({quote_literal(name)})")
            if rows:
                setting, vartype, unit = rows[0]
                with_unit = bool(unit) or not _is_numeric(setting)
                param_type = ConfigParamType.from_vartype(vartype, with_unit)
                self._type_cache[name.lower()] = param_type
                return param_type.create_value(setting, unit)
            param_type = ConfigParamType.String

        return param_type.create_value(self._current_setting(name))

    def defined(self, name: str) -> bool:
        return self.get(name) is not None

    def set_for_transaction(self, name: str, value: Any) -> None:
        """Sets a parameter for the rest of the current transaction.

        Outside of a transaction, this does nothing, as the setting would end with the implicit transaction right away.
        """
        if not self._conn.in_transaction():
            return
        self._set_config(name, value, local=True)
        self._watcher.handle_set_for_transaction(name)
        self.notify_property_change(name, value)

    def set_for_session(self, name: str, value: Any) -> None:
        self._set_config(name, value, local=False)
        self._watcher.handle_set_for_session(name)
        self.notify_property_change(name, value)

    def reset_all(self) -> None:
        """Resets all parameters to their defaults."""
        self._conn.raw_command("RESET ALL")
        self._watcher.handle_reset_all()
        self.notify_properties_reset()

    def effective_search_path(self) -> list[str]:
        """Provides the schemas actually searched for unqualified names, including the implicit ones like *pg_catalog*.

        The value is cached and refreshed whenever the *search_path* is changed through this object.
        """
        if self._effective_search_path is None:
            rows = self._conn.query_text_rows("SELECT pg_catalog.unnest(pg_catalog.current_schemas(TRUE))")
            self._effective_search_path = [schema for (schema,) in rows]
        return list(self._effective_search_path)

    def money_decimal_separator(self) -> Optional[str]:
        """Determines the decimal separator used by the *money* type under the current *lc_monetary* setting."""
        rows = self._conn.query_text_rows("SELECT 1.2::money::text")
        match = re.search(r"1(\D*)2", rows[0][0] or "")
        return match.group(1) if match else None

    def server_version_number(self) -> int:
        """Provides the server version as a number, e.g. *160002* for PostgreSQL 16.2."""
        return self._conn.require_connection().pgconn.server_version

    def server_major_version_number(self) -> int:
        """Provides the major version of the server, e.g. *16* for PostgreSQL 16.2, or *906* for PostgreSQL 9.6."""
        version = self.server_version_number()
        return version // 10_000 if version >= 100_000 else version // 100

    def add_observer(self, observer: ConfigObserver, names: Optional[str | Iterable[str]] = None) -> None:
        """Registers a callback to be informed about changes of configuration parameters.

        Parameters
        ----------
        observer : ConfigObserver
            The callback
        names : Optional[str | Iterable[str]], optional
            The parameters to watch. All parameters are watched by default.
        """
        if names is None or isinstance(names, str):
            names = [names]
        for name in names:
            self._observers.setdefault(name.lower() if name else None, []).append(observer)

    def remove_observer(self, observer: ConfigObserver) -> None:
        for observers in self._observers.values():
            while observer in observers:
                observers.remove(observer)

    def remove_all_observers(self) -> None:
        self._observers.clear()

    def notify_property_change(self, name: str, value: Any = _Unset) -> None:
        """Informs the observers about a changed parameter. The new value is read from the server if not given."""
        if name.lower() == "search_path":
            self._effective_search_path = None
        if value is _Unset:
            value = self.get(name)
        for key in (name.lower(), None):
            for observer in list(self._observers.get(key, [])):
                observer(name, value)

    def notify_properties_reset(self) -> None:
        self._effective_search_path = None
        notified: list[ConfigObserver] = []
        for observers in list(self._observers.values()):
            for observer in observers:
                if observer not in notified:
                    notified.append(observer)
                    observer(None, None)

    def flush_cache(self) -> None:
        self._type_cache.clear()
        self._effective_search_path = None

    def _current_setting(self, name: str) -> Optional[str]:
        rows = self._conn.query_text_rows(f"SELECT pg_catalog.current_setting({quote_literal(name)}, TRUE)")
        return rows[0][0] if rows else None

    def _set_config(self, name: str, value: Any, *, local: bool) -> None:
        if isinstance(value, bool):
            value = "on" if value else "off"
        self._conn.query_text_rows(f"SELECT pg_catalog.set_config({quote_literal(name)}, {quote_literal(str(value))}, "
                                   f"{'TRUE' if local else 'FALSE'})")

    def __repr__(self) -> str:
        return f"ConnConfig({self._conn.name})"


def _is_numeric(text: Optional[str]) -> bool:
    if text is None:
        return False
    try:
        float(text)
        return True
    except ValueError:
        return False
