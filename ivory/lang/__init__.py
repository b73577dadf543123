"""Lexical tools for the SQL language: identifier and literal quoting, keywords, and SQL patterns."""

from .sql import (
    RESERVED_TYPES,
    SqlState,
    SqlStateClass,
    is_keyword_requiring_quotes,
    quote_ident,
    quote_literal,
)
from .sqlpattern import (
    CachingSqlPatternParser,
    SqlPattern,
    SqlPatternParser,
    SqlPatternPlaceholder,
)

__all__ = [
    "RESERVED_TYPES",
    "SqlState",
    "SqlStateClass",
    "is_keyword_requiring_quotes",
    "quote_ident",
    "quote_literal",
    "CachingSqlPatternParser",
    "SqlPattern",
    "SqlPatternParser",
    "SqlPatternPlaceholder",
]
