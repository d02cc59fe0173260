"""Building the projection from the ``select``, ``include`` and ``exclude`` parameters."""

from __future__ import annotations

from enum import Enum

from queryhandler.exceptions import ArgumentError
from queryhandler.options import FieldWhitelist


class ExcludeMode(Enum):
    """How ``?exclude=...`` fields are applied."""

    #: Remove the field from the explicit list of fields.
    ADDITIVE = "additive"
    #: Emit the field as ``-field``, as there is no explicit list to remove it from.
    SUBTRACTIVE = "subtractive"


def check_selectable(field: str, whitelist: FieldWhitelist | None):
    """Check whether the field may be selected."""
    if whitelist and field not in whitelist:
        raise ArgumentError(f"Using {field} in the select isn't supported")


def build_projection(
    default_fields: str | None,
    select: str | None = None,
    include: str | None = None,
    exclude: str | None = None,
    whitelist: FieldWhitelist | None = None,
) -> str:
    """Build the projection string.

    :param default_fields: Space separated fields, used when ``select`` is not given.
    :param select: Comma separated fields that replace the defaults.
    :param include: Comma separated fields to add.
    :param exclude: Comma separated fields to remove.
    :param whitelist: The fields that may be selected.
    :returns: The space separated projection, e.g. ``"title name"`` or ``"-body"``.
    """
    fields = default_fields.split() if default_fields else []

    if select:
        fields = select.split(",")
        for field in fields:
            check_selectable(field, whitelist)

    if include:
        for field in include.split(","):
            if field not in fields:
                check_selectable(field, whitelist)
                fields.append(field)

    if exclude:
        mode = ExcludeMode.ADDITIVE
        for field in exclude.split(","):
            mode = _exclude_field(fields, field, mode)

    return " ".join(fields)


def _exclude_field(fields: list[str], field: str, mode: ExcludeMode) -> ExcludeMode:
    """Apply a single exclusion, return the mode for the next one.
    Excluded fields are not checked against the whitelist.
    """
    if field in fields:
        fields.remove(field)
        return mode
    elif mode is ExcludeMode.SUBTRACTIVE or not fields:
        # Once there is nothing left to remove from, all remaining fields are
        # excluded with the dash notation.
        fields.append(f"-{field}")
        return ExcludeMode.SUBTRACTIVE
    else:
        # Not part of an explicit selection, so it's already excluded.
        return mode
