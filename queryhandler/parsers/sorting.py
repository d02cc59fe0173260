"""Parsing the ``sort`` parameter.

The notation is ``sort=+id,-createdAt``, which is translated into
``{"id": 1, "createdAt": -1}``. Fields without a prefix sort ascending.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from queryhandler.exceptions import ArgumentError
from queryhandler.options import FieldWhitelist


class SortOrder(Enum):
    #: Ascending order
    ASC = 1
    #: Descending order
    DESC = -1

    @classmethod
    def from_prefix(cls, prefix: str) -> SortOrder:
        return cls.DESC if prefix == "-" else cls.ASC


@dataclass(frozen=True)
class SortProperty:
    """A single field in the sort parameter."""

    name: str
    sort_order: SortOrder = SortOrder.ASC

    @classmethod
    def from_string(cls, value: str) -> SortProperty:
        """Parse a ``+name``, ``-name`` or ``name`` token."""
        if value[:1] in ("+", "-"):
            return cls(name=value[1:], sort_order=SortOrder.from_prefix(value[0]))
        return cls(name=value)


def parse_sort(value: str | None, whitelist: FieldWhitelist | None = None) -> dict[str, int]:
    """Translate the sort notation into a ``{field: 1/-1}`` mapping."""
    sort = {}
    if value:
        for token in value.split(","):
            if token:
                prop = SortProperty.from_string(token)
                sort[prop.name] = prop.sort_order.value

    if whitelist:
        for name in sort:
            if name not in whitelist:
                raise ArgumentError(f"Field {name} is not sortable.")

    return sort
