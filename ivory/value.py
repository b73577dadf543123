"""Contains the value objects that represent PostgreSQL values which have no natural counterpart in Python.

Most PostgreSQL values are represented by standard Python objects (`int`, `str`, `datetime.date`, ...). Ranges, composite
values (rows), enum items, and arrays with non-standard subscripts require dedicated classes which are provided here.
"""

from __future__ import annotations

import abc
import functools
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from typing import Any, Optional

from .exceptions import IncomparableError


def _default_compare(a: Any, b: Any) -> int:
    try:
        return (a > b) - (a < b)
    except TypeError as e:
        raise IncomparableError(f"Cannot compare {a!r} and {b!r}") from e


def _parse_bounds_spec(bounds: str | bool, upper_inc: Optional[bool]) -> tuple[bool, bool]:
    if isinstance(bounds, str):
        if upper_inc is not None:
            raise ValueError("upper_inc must not be given together with a bounds specification string")
        if len(bounds) != 2 or bounds[0] not in "([" or bounds[1] not in ")]":
            raise ValueError(f"Invalid bounds inclusive/exclusive specification string: {bounds}")
        return bounds[0] == "[", bounds[1] == "]"
    return bool(bounds), bool(upper_inc)


class RangeCanonicalFunc(abc.ABC):
    """Canonical functions bring range bounds into a canonical form, such that equal ranges have equal bounds.

    They are used for ranges of discrete types, where e.g. ``(1,5)`` and ``[2,4]`` denote the same range.
    """

    @abc.abstractmethod
    def canonicalize(self, lower: Any, lower_inc: bool, upper: Any, upper_inc: bool) -> tuple[Any, bool, Any, bool]:
        """Computes the canonical bounds. Unbounded ends are represented by *None*."""
        raise NotImplementedError

    @abc.abstractmethod
    def step(self, delta: int, value: Any) -> Any:
        """Moves the `value` by `delta` steps of the discrete range subtype."""
        raise NotImplementedError


class ConventionalRangeCanonicalFunc(RangeCanonicalFunc):
    """Canonicalizes ranges into the ``[)`` form, the same way PostgreSQL does for its built-in discrete ranges.

    Parameters
    ----------
    step_func : Callable[[int, Any], Any]
        Computes the value which is a given number of steps away from another value, e.g. the *step* method of a
        discrete type.
    """

    def __init__(self, step_func: Callable[[int, Any], Any]) -> None:
        self._step = step_func

    def canonicalize(self, lower: Any, lower_inc: bool, upper: Any, upper_inc: bool) -> tuple[Any, bool, Any, bool]:
        if lower is not None and not lower_inc:
            lower = self._step(1, lower)
            lower_inc = True
        if upper is not None and upper_inc:
            upper = self._step(1, upper)
            upper_inc = False
        return lower, lower_inc, upper, upper_inc

    def step(self, delta: int, value: Any) -> Any:
        return self._step(delta, value)


class Range:
    """A range of values, i.e. a PostgreSQL value of a range type such as *int4range* or *tstzrange*.

    Ranges are immutable. Use `from_bounds` or `empty` to create them. Unbounded ends are represented by *None*. Bounds are
    compared with the comparison operators of the bound values, unless a different `comparator` is given.

    Ranges with a canonical function are brought into the canonical form upon creation. For the built-in discrete ranges,
    this is the ``[)`` form, so e.g. ``Range.from_bounds(1, 3, "[]", canonical=...)`` equals ``[1,4)``.
    """

    @staticmethod
    def from_bounds(lower: Any, upper: Any, bounds: str | bool = "[)", upper_inc: Optional[bool] = None, *,
                    canonical: Optional[RangeCanonicalFunc] = None,
                    comparator: Optional[Callable[[Any, Any], int]] = None) -> Range:
        """Creates a new range from its bounds.

        If the lower bound is greater than the upper bound, or if they are equal and any of them is exclusive, the
        resulting range is empty.

        Parameters
        ----------
        lower : Any
            The lower bound, *None* for an unbounded range
        upper : Any
            The upper bound, *None* for an unbounded range
        bounds : str | bool, optional
            Either a bounds specification string, i.e. ``[)``, ``[]``, ``()`` or ``(]``, or whether the lower bound is
            inclusive. Defaults to ``[)``, the canonical form of discrete ranges.
        upper_inc : Optional[bool], optional
            Whether the upper bound is inclusive. May only be given if `bounds` is a boolean.
        canonical : Optional[RangeCanonicalFunc], optional
            Function to bring the bounds into their canonical form
        comparator : Optional[Callable[[Any, Any], int]], optional
            Function comparing two bound values, returning a negative number, zero, or a positive number

        Returns
        -------
        Range
            The range

        Raises
        ------
        ValueError
            If the bounds specification is malformed
        IncomparableError
            If the bounds cannot be compared
        """
        lower_inc, upper_inc = _parse_bounds_spec(bounds, upper_inc)
        comparator = comparator or _default_compare
        if lower is None:
            lower_inc = False
        if upper is None:
            upper_inc = False
        if canonical is not None:
            lower, lower_inc, upper, upper_inc = canonical.canonicalize(lower, lower_inc, upper, upper_inc)

        if lower is not None and upper is not None:
            cmp = comparator(lower, upper)
            if cmp > 0 or (cmp == 0 and (not lower_inc or not upper_inc)):
                return Range.empty(canonical=canonical, comparator=comparator)

        return Range(False, lower, upper, lower_inc, upper_inc, canonical, comparator)

    @staticmethod
    def empty(*, canonical: Optional[RangeCanonicalFunc] = None,
              comparator: Optional[Callable[[Any, Any], int]] = None) -> Range:
        """Creates an empty range."""
        return Range(True, None, None, None, None, canonical, comparator or _default_compare)

    def __init__(self, is_empty: bool, lower: Any, upper: Any, lower_inc: Optional[bool], upper_inc: Optional[bool],
                 canonical: Optional[RangeCanonicalFunc], comparator: Callable[[Any, Any], int]) -> None:
        self._empty = is_empty
        self._lower = lower
        self._upper = upper
        self._lower_inc = lower_inc
        self._upper_inc = upper_inc
        self._canonical = canonical
        self._comparator = comparator

    __match_args__ = ("lower", "upper")

    @property
    def is_empty(self) -> bool:
        return self._empty

    @property
    def lower(self) -> Any:
        """Gets the lower bound. *None* for empty ranges and for ranges without a lower bound."""
        return self._lower

    @property
    def upper(self) -> Any:
        """Gets the upper bound. *None* for empty ranges and for ranges without an upper bound."""
        return self._upper

    @property
    def lower_inc(self) -> Optional[bool]:
        """Gets whether the lower bound is inclusive. *None* for empty ranges."""
        return self._lower_inc

    @property
    def upper_inc(self) -> Optional[bool]:
        """Gets whether the upper bound is inclusive. *None* for empty ranges."""
        return self._upper_inc

    @property
    def bounds_spec(self) -> Optional[str]:
        """Gets the bounds specification string, such as ``[)``. *None* for empty ranges."""
        if self._empty:
            return None
        return ("[" if self._lower_inc else "(") + ("]" if self._upper_inc else ")")

    def is_finite(self) -> bool:
        """Checks, whether the range is bounded on both ends. Empty ranges are finite."""
        return self._empty or (self._lower is not None and self._upper is not None)

    def is_single_point(self) -> bool:
        """Checks, whether the range contains exactly one value."""
        if self._empty or self._lower is None or self._upper is None:
            return False
        cmp = self._comparator(self._lower, self._upper)
        if cmp == 0:
            return bool(self._lower_inc and self._upper_inc)
        if self._lower_inc and self._upper_inc:
            return False
        if self._canonical is None:
            return False
        lo = self._lower if self._lower_inc else self._canonical.step(1, self._lower)
        up = self._upper if self._upper_inc else self._canonical.step(-1, self._upper)
        return self._comparator(lo, up) == 0

    def to_bounds(self, bounds: str | bool, upper_inc: Optional[bool] = None) -> Optional[tuple[Any, Any]]:
        """Computes the bounds of this range in a different bounds specification.

        For instance, the range ``[1,4)`` has the bounds ``(0, 3)`` in the ``[]`` specification. This is only possible for
        ranges of discrete types.

        Returns
        -------
        Optional[tuple[Any, Any]]
            The lower and upper bound, *None* for empty ranges

        Raises
        ------
        TypeError
            If the range has no canonical function, i.e. if its subtype is not known to be discrete
        """
        if self._empty:
            return None
        if self._canonical is None:
            raise TypeError("Range subtype is not discrete, cannot convert bounds")
        lower_inc, upper_inc = _parse_bounds_spec(bounds, upper_inc)

        lo = self._lower
        if lo is not None and lower_inc != self._lower_inc:
            lo = self._canonical.step(int(lower_inc) - int(self._lower_inc), lo)
        up = self._upper
        if up is not None and upper_inc != self._upper_inc:
            up = self._canonical.step(int(self._upper_inc) - int(upper_inc), up)
        return lo, up

    def contains_element(self, element: Any) -> Optional[bool]:
        """Checks, whether a value lies within this range. *None* is returned for a *None* element."""
        if element is None:
            return None
        if self._empty:
            return False
        if self._lower is not None:
            cmp = self._comparator(element, self._lower)
            if cmp < 0 or (cmp == 0 and not self._lower_inc):
                return False
        if self._upper is not None:
            cmp = self._comparator(element, self._upper)
            if cmp > 0 or (cmp == 0 and not self._upper_inc):
                return False
        return True

    def left_of_element(self, element: Any) -> Optional[bool]:
        """Checks, whether the whole range lies before a value."""
        if element is None:
            return None
        if self._empty or self._upper is None:
            return False
        cmp = self._comparator(element, self._upper)
        return cmp > 0 or (cmp == 0 and not self._upper_inc)

    def right_of_element(self, element: Any) -> Optional[bool]:
        """Checks, whether the whole range lies after a value."""
        if element is None:
            return None
        if self._empty or self._lower is None:
            return False
        cmp = self._comparator(element, self._lower)
        return cmp < 0 or (cmp == 0 and not self._lower_inc)

    def contains_range(self, other: Optional[Range]) -> Optional[bool]:
        """Checks, whether another range is a subset of this range. Empty ranges are contained in any range."""
        if other is None:
            return None
        if other._empty:
            return True
        if self._empty:
            return False
        if self._lower is not None:
            if other._lower is None:
                return False
            cmp = self._comparator(self._lower, other._lower)
            if cmp > 0 or (cmp == 0 and not self._lower_inc and other._lower_inc):
                return False
        if self._upper is not None:
            if other._upper is None:
                return False
            cmp = self._comparator(self._upper, other._upper)
            if cmp < 0 or (cmp == 0 and not self._upper_inc and other._upper_inc):
                return False
        return True

    def contained_in_range(self, other: Optional[Range]) -> Optional[bool]:
        """Checks, whether this range is a subset of another range."""
        if other is None:
            return None
        return other.contains_range(self)

    def overlaps(self, other: Optional[Range]) -> Optional[bool]:
        """Checks, whether the ranges have any value in common."""
        if other is None:
            return None
        if self._empty or other._empty:
            return False
        if self._lower is not None and other._upper is not None:
            cmp = self._comparator(self._lower, other._upper)
            if cmp > 0 or (cmp == 0 and (not self._lower_inc or not other._upper_inc)):
                return False
        if other._lower is not None and self._upper is not None:
            cmp = self._comparator(other._lower, self._upper)
            if cmp > 0 or (cmp == 0 and (not other._lower_inc or not self._upper_inc)):
                return False
        return True

    def intersect(self, other: Optional[Range]) -> Optional[Range]:
        """Computes the intersection of the two ranges."""
        if other is None:
            return None
        if self._empty:
            return self
        if other._empty:
            return other

        if self._lower is None:
            lo, lo_inc = other._lower, other._lower_inc
        elif other._lower is None:
            lo, lo_inc = self._lower, self._lower_inc
        else:
            cmp = self._comparator(self._lower, other._lower)
            if cmp < 0:
                lo, lo_inc = other._lower, other._lower_inc
            elif cmp > 0:
                lo, lo_inc = self._lower, self._lower_inc
            else:
                lo, lo_inc = self._lower, self._lower_inc and other._lower_inc

        if self._upper is None:
            up, up_inc = other._upper, other._upper_inc
        elif other._upper is None:
            up, up_inc = self._upper, self._upper_inc
        else:
            cmp = self._comparator(self._upper, other._upper)
            if cmp < 0:
                up, up_inc = self._upper, self._upper_inc
            elif cmp > 0:
                up, up_inc = other._upper, other._upper_inc
            else:
                up, up_inc = self._upper, self._upper_inc and other._upper_inc

        return Range.from_bounds(lo, up, bool(lo_inc), bool(up_inc), canonical=self._canonical,
                                 comparator=self._comparator)

    def strictly_left_of(self, other: Optional[Range]) -> Optional[bool]:
        """Checks, whether all values of this range are less than all values of the other range."""
        if other is None:
            return None
        if self._empty or other._empty:
            return False
        if self._upper is None or other._lower is None:
            return False
        cmp = self._comparator(self._upper, other._lower)
        return cmp < 0 or (cmp == 0 and (not self._upper_inc or not other._lower_inc))

    def strictly_right_of(self, other: Optional[Range]) -> Optional[bool]:
        """Checks, whether all values of this range are greater than all values of the other range."""
        if other is None:
            return None
        return other.strictly_left_of(self)

    def __contains__(self, element: Any) -> bool:
        return bool(self.contains_element(element))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Range):
            return NotImplemented
        if self._empty or other._empty:
            return self._empty and other._empty
        return (self._lower == other._lower and self._upper == other._upper
                and self._lower_inc == other._lower_inc and self._upper_inc == other._upper_inc)

    def __hash__(self) -> int:
        if self._empty:
            return hash("empty")
        return hash((self._lower, self._upper, self._lower_inc, self._upper_inc))

    def __repr__(self) -> str:
        return f"Range({str(self)})"

    def __str__(self) -> str:
        if self._empty:
            return "empty"
        bounds = self.bounds_spec
        lower = "-infinity" if self._lower is None else self._lower
        upper = "infinity" if self._upper is None else self._upper
        return f"{bounds[0]}{lower},{upper}{bounds[1]}"


class Composite(Mapping[str, Any]):
    """A composite value, i.e. a row of named attributes such as the value of a composite type.

    Composite values are immutable. Attributes can be accessed by name, either using the mapping syntax
    (``person["name"]``) or as attributes (``person.name``), and by position using `value_at`. Iteration yields the attribute
    names in their order.

    Parameters
    ----------
    values : Mapping[str, Any] | Iterable[tuple[str, Any]]
        The attributes and their values, in the order of the composite type.
    """

    def __init__(self, values: Mapping[str, Any] | Iterable[tuple[str, Any]] = ()) -> None:
        object.__setattr__(self, "_values", dict(values))

    @staticmethod
    def from_sequence(names: Sequence[str], values: Sequence[Any]) -> Composite:
        """Creates a composite value by pairing attribute names with the values at the same position."""
        if len(names) != len(values):
            raise ValueError(f"Got {len(values)} values for {len(names)} attributes")
        return Composite(zip(names, values))

    def to_map(self) -> dict[str, Any]:
        return dict(self._values)

    def value_at(self, position: int) -> Any:
        return list(self._values.values())[position]

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __getattr__(self, name: str) -> Any:
        # private and dunder lookups must not reach _values, which is unset while copy or pickle rebuild the object
        if name.startswith("_"):
            raise AttributeError(f"Composite value has no attribute '{name}'")
        try:
            return self._values[name]
        except KeyError:
            raise AttributeError(f"Composite value has no attribute '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Composite values are immutable")

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Composite):
            return NotImplemented
        return list(self._values.items()) == list(other._values.items())

    __hash__ = None

    def __repr__(self) -> str:
        return f"Composite({self._values!r})"

    def __str__(self) -> str:
        return "(" + ",".join("" if v is None else str(v) for v in self._values.values()) + ")"


@functools.total_ordering
class EnumItem:
    """An item of a PostgreSQL enum type.

    Items of the same enum type are ordered by their position within the type definition. Comparing items of different
    enum types raises an `IncomparableError`.

    Parameters
    ----------
    schema_name : str
        The schema of the enum type
    type_name : str
        The name of the enum type
    label : str
        The label of the item
    ordinal : Optional[int], optional
        The position of the item within the enum type. May be unknown for items that were created ad hoc.
    """

    def __init__(self, schema_name: str, type_name: str, label: str, ordinal: Optional[int] = None) -> None:
        self._schema_name = schema_name
        self._type_name = type_name
        self._label = label
        self._ordinal = ordinal

    __match_args__ = ("label",)

    @property
    def schema_name(self) -> str:
        return self._schema_name

    @property
    def type_name(self) -> str:
        return self._type_name

    @property
    def label(self) -> str:
        return self._label

    @property
    def ordinal(self) -> Optional[int]:
        return self._ordinal

    def same_type(self, other: EnumItem) -> bool:
        return self._schema_name == other._schema_name and self._type_name == other._type_name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EnumItem):
            return NotImplemented
        return self.same_type(other) and self._label == other._label

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, EnumItem):
            return NotImplemented
        if not self.same_type(other):
            raise IncomparableError(f"Cannot compare items of enums {self._schema_name}.{self._type_name} and "
                                    f"{other._schema_name}.{other._type_name}")
        if self._ordinal is None or other._ordinal is None:
            raise IncomparableError(f"Position of enum item '{self._label}' or '{other._label}' is unknown")
        return self._ordinal < other._ordinal

    def __hash__(self) -> int:
        return hash((self._schema_name, self._type_name, self._label))

    def __repr__(self) -> str:
        return f"EnumItem({self._schema_name}.{self._type_name}: {self._label!r})"

    def __str__(self) -> str:
        return self._label


class PgArray(list):
    """A PostgreSQL array whose subscripts do not start at 1.

    PostgreSQL arrays are 1-based by default. Plain Python lists are used for such arrays. Arrays with custom lower bounds
    (e.g. ``'[0:2]={1,2,3}'``) are represented by this list subclass which remembers the lower bound of each dimension.

    Parameters
    ----------
    items : Iterable[Any]
        The elements of the array. Multi-dimensional arrays contain nested lists.
    lower_bounds : Sequence[int]
        The lowest subscript of each dimension
    """

    def __init__(self, items: Iterable[Any] = (), lower_bounds: Sequence[int] = (1,)) -> None:
        super().__init__(items)
        self.lower_bounds = tuple(lower_bounds)

    def __repr__(self) -> str:
        return f"PgArray({list.__repr__(self)}, lower_bounds={self.lower_bounds})"
