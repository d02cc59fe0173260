"""Compiling the per-route configuration.

The whitelists use a compact notation, for example::

    "id createdAt, title"
    "id:ObjectId(_id),slug category"

Groups are separated by whitespace. A group is either a field name,
a comma-separated list of field names, or ``name:alt1,alt2``
which lists the alternative keys for ``name``.
This happens once when the route is defined, not for every request.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterator
from dataclasses import dataclass

from queryhandler import conf
from queryhandler.exceptions import ParseError

RE_COMMA_SPACING = re.compile(r"\s*,\s*")

#: A logger that drops everything, used for ``logger=False``.
NULL_LOGGER = logging.Logger("queryhandler.null", level=logging.CRITICAL + 1)
NULL_LOGGER.addHandler(logging.NullHandler())


class FieldWhitelist:
    """The compiled whitelist: an ordered set of names,
    each optionally having a list of alternative keys.
    """

    def __init__(self, fields: dict[str, list[str]]):
        self.fields = fields

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __len__(self):
        return len(self.fields)

    def __bool__(self):
        return bool(self.fields)

    def __repr__(self):
        return f"<FieldWhitelist: {' '.join(self.fields)}>"

    def get_keys(self) -> list[str]:
        """Return the top-level names."""
        return list(self.fields)

    def get_alternatives(self, name: str) -> list[str]:
        """Return the alternative keys that were given for a name."""
        return self.fields[name]

    def as_alternatives(self) -> dict[str, list[str]]:
        """Expand each name into its alternative keys.
        Names without alternatives map to themselves.
        This is the form the path-parameter filter works with.
        """
        return {name: list(alternatives or [name]) for name, alternatives in self.fields.items()}


def parse_whitelist(value: str | None, required=False) -> FieldWhitelist | None:
    """Compile the compact whitelist notation.

    :param value: The whitelist definition.
    :param required: Whether an empty definition is an error,
        otherwise ``None`` is returned which means "no restrictions".
    """
    if not value or not value.strip():
        if required:
            raise ParseError("Expected a field list, got an empty value.")
        return None

    fields = {}
    for group in RE_COMMA_SPACING.sub(",", value.strip()).split():
        name, has_alternatives, alternatives = group.partition(":")
        if has_alternatives:
            if not name:
                raise ParseError(f"Missing field name before ':' in '{group}'.")
            fields[name] = [alt for alt in alternatives.split(",") if alt]
        else:
            for name in group.split(","):
                if name:
                    fields.setdefault(name, [])

    if required and not fields:
        raise ParseError(f"Expected a field list, got '{value}'.")
    return FieldWhitelist(fields) if fields else None


def get_logger(value) -> logging.Logger | logging.LoggerAdapter:
    """Resolve the logger option of a route."""
    if value is False:
        return NULL_LOGGER
    elif value is None:
        return logging.getLogger(conf.QUERYHANDLER_LOGGER)
    elif isinstance(value, str):
        return logging.getLogger(value)
    else:
        return value


@dataclass(frozen=True)
class RouteOptions:
    """The compiled options of a route. These are shared between all requests."""

    #: Maximum value for ?limit=...
    limit: int
    #: Maximum value for ?skip=..., may be ``math.inf``.
    skip: int | float
    #: The fields that ?select=...&include=... may reference.
    select: FieldWhitelist | None
    #: The fields that ?sort=... may reference.
    sort: FieldWhitelist | None
    #: Template name to render errors for HTML clients.
    error_view: str
    logger: logging.Logger | logging.LoggerAdapter


def compile_options(
    *,
    logger=None,
    limit: int | None = None,
    skip: int | float | None = None,
    select: str | None = None,
    sort: str | None = None,
    error_view: str | None = None,
) -> RouteOptions:
    """Compile the route configuration.

    :param logger: The logger to report errors to. ``False`` disables logging,
        a string is used as logger name.
    :param limit: The maximum page size clients may request.
    :param skip: The maximum offset clients may request.
    :param select: The whitelist of selectable fields.
    :param sort: The whitelist of sortable fields.
    :param error_view: The template to render errors with.
    """
    # Settings and view attributes may also be strings.
    max_skip = float(skip or conf.QUERYHANDLER_MAX_SKIP)
    return RouteOptions(
        limit=int(limit or conf.QUERYHANDLER_MAX_LIMIT),
        skip=max_skip if math.isinf(max_skip) else int(max_skip),
        select=parse_whitelist(select),
        sort=parse_whitelist(sort),
        error_view=error_view or conf.QUERYHANDLER_ERROR_VIEW,
        logger=get_logger(logger),
    )
