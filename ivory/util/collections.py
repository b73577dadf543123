"""Provides utilities to work with arbitrary collections like lists, sets and tuples."""

from __future__ import annotations


def ordinal(n: int) -> str:
    """Provides the English ordinal of a number, e.g. *1st*, *2nd*, *11th* or *23rd*."""
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"
