"""Building a filter from the path parameters of a route.

The filter definition lists which path parameter searches which fields::

    "id:ObjectId(_id),slug"

Here, the ``id`` parameter is matched against ``_id`` when it looks like an
ObjectId, and against ``slug`` always. When multiple fields remain,
an ``$or`` is generated. Multiple parameters that each have alternatives
are combined with ``$and``, so each parameter keeps its own ``$or`` group.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import lru_cache

from queryhandler.exceptions import ArgumentNullError, InvalidTypeError, ParseError
from queryhandler.options import parse_whitelist

from .values import is_object_id, is_valid_instant

logger = logging.getLogger(__name__)

RE_TYPED_FIELD = re.compile(r"\A(?P<type>[^(]+)\((?P<field>.+)\)\Z")

#: The type tags that can be used in the definition, and their syntax check.
TYPE_CHECKS: dict[str, Callable[[str], bool]] = {
    "ObjectId": is_object_id,
    "Date": is_valid_instant,
}


@dataclass(frozen=True)
class FieldAlternative:
    """One of the fields a parameter may search.
    For example ``ObjectId(_id)`` or ``slug``.
    """

    field: str
    type_name: str | None = None

    @classmethod
    def from_string(cls, value: str) -> FieldAlternative:
        match = RE_TYPED_FIELD.match(value)
        if match is None:
            return cls(field=value)
        return cls(field=match.group("field"), type_name=match.group("type"))

    def accepts(self, raw_value: str) -> bool:
        """Tell whether the value can be searched in this field."""
        if self.type_name is None:
            return True

        try:
            check = TYPE_CHECKS[self.type_name]
        except KeyError:
            logger.debug("Unsupported type %s() in filter, ignoring %s", self.type_name, self)
            return False
        return check(raw_value)

    def __str__(self):
        return f"{self.type_name}({self.field})" if self.type_name else self.field


@dataclass(frozen=True)
class FilterParameter:
    """A path parameter and the fields it searches."""

    name: str
    alternatives: tuple[FieldAlternative, ...]

    def get_fields(self, raw_value: str) -> list[str]:
        """Return the fields that the value can be searched in."""
        fields = [alt.field for alt in self.alternatives if alt.accepts(raw_value)]
        if not fields:
            raise InvalidTypeError(f"The value provided is not valid for {self.name}")
        return fields


@dataclass(frozen=True)
class FilterExpression:
    """The compiled filter definition of a route."""

    parameters: tuple[FilterParameter, ...]

    @classmethod
    def from_string(cls, value: str) -> FilterExpression:
        """Parse the compact ``name:alt1,alt2 name2`` notation."""
        whitelist = parse_whitelist(value, required=True)
        return cls.from_mapping(whitelist.as_alternatives())

    @classmethod
    def from_mapping(cls, value: Mapping[str, list[str]]) -> FilterExpression:
        """Construct the expression from ``{parameter: [field expressions]}``."""
        if not value:
            raise ParseError("Expected at least one filter parameter.")

        return cls(
            parameters=tuple(
                FilterParameter(
                    name=name,
                    alternatives=tuple(
                        FieldAlternative.from_string(alt) for alt in (alternatives or [name])
                    ),
                )
                for name, alternatives in value.items()
            )
        )

    def build_filter(self, params: Mapping[str, str]) -> dict:
        """Generate the filter for the given path parameters."""
        query = {}
        or_groups = []
        for parameter in self.parameters:
            raw_value = params.get(parameter.name)
            if raw_value is None or raw_value == "":
                raise ArgumentNullError(parameter.name)

            fields = parameter.get_fields(str(raw_value))
            if len(fields) == 1:
                query[fields[0]] = raw_value
            else:
                or_groups.append([{field: raw_value} for field in fields])

        if len(or_groups) == 1:
            query["$or"] = or_groups[0]
        elif or_groups:
            query["$and"] = [{"$or": group} for group in or_groups]

        return query


@lru_cache(maxsize=100)
def _parse_filter_string(value: str) -> FilterExpression:
    return FilterExpression.from_string(value)


def parse_filter_expression(value: str | Mapping[str, list[str]]) -> FilterExpression:
    """Compile a filter definition, either in string or mapping notation."""
    if isinstance(value, FilterExpression):
        return value
    elif isinstance(value, str):
        # Routes pass the same literal for each request.
        return _parse_filter_string(value)
    else:
        return FilterExpression.from_mapping(value)
