"""Reshaping the results before they are rendered.

The output spec tells which keys the output has, and where each value comes from.
It can be written in the whitelist notation, where the alternatives are
dotted paths that are tried in order::

    "title slug author:author.name,writer"

Or as mapping, where a value can also be a function that receives the item::

    {"title": "title", "author": ["author.name", "writer"], "year": lambda item: ...}

Keys that are missing in the item are left out of the output.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

from django.db import models

from queryhandler.exceptions import ParseError
from queryhandler.options import parse_whitelist

OutputSpec = Mapping[str, list[str] | Callable]

#: Marker for values that don't exist in the item.
MISSING = object()


def compile_output_spec(spec: str | Mapping) -> OutputSpec:
    """Translate the output spec into ``{key: [paths...] or function}``."""
    if isinstance(spec, str):
        return parse_whitelist(spec, required=True).as_alternatives()
    elif not isinstance(spec, Mapping) or not spec:
        raise ParseError(f"Expected a field list or mapping for the output, got {spec!r}.")

    compiled = {}
    for key, source in spec.items():
        if callable(source):
            compiled[key] = source
        elif isinstance(source, str):
            compiled[key] = [source]
        elif source:
            compiled[key] = list(source)
        else:
            compiled[key] = [key]
    return compiled


def get_path_value(item, path: str):
    """Resolve a dotted path in a mapping or object, or return :data:`MISSING`."""
    value = item
    for name in path.split("."):
        if isinstance(value, Mapping):
            value = value.get(name, MISSING)
        else:
            value = getattr(value, name, MISSING)

        if value is MISSING:
            break
    return value


def reshape_item(item, spec: OutputSpec) -> dict:
    """Build the output record of a single item."""
    record = {}
    for key, source in spec.items():
        if callable(source):
            record[key] = source(item)
            continue

        for path in source:
            value = get_path_value(item, path)
            if value is not MISSING:
                record[key] = value
                break
    return record


def reshape(data, spec: OutputSpec):
    """Reshape a single item, or every item of the results."""
    if isinstance(data, (str, bytes, Mapping, models.Model)) or not isinstance(data, Iterable):
        return reshape_item(data, spec)
    return [reshape_item(item, spec) for item in data]
