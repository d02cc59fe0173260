"""Parsers for the request input.

These translate the query string and path parameters
into the structures that are passed to the data store.
"""

from .filters import FilterExpression, parse_filter_expression
from .projection import build_projection
from .sorting import SortOrder, SortProperty, parse_sort
from .values import parse_int, parse_json

__all__ = (
    "FilterExpression",
    "SortOrder",
    "SortProperty",
    "build_projection",
    "parse_filter_expression",
    "parse_int",
    "parse_json",
    "parse_sort",
)
