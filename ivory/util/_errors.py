"""Contains various general errors that extend Python's base errors."""
from __future__ import annotations


class LogicError(RuntimeError):
    """Generic error to indicate that any kind of algorithmic problem occurred.

    This error is generally used when some assumption within Ivory is violated, but it's (probably) not the user's fault.
    As a rule of thumb, if the user supplies faulty input, a `ValueError` should be raised instead.
    Therefore, encountering a `LogicError` indicates a bug in Ivory itself.
    """
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class StateError(RuntimeError):
    """Indicates that an object is not in the right state to perform an operation."""
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
