"""The output formats that responses can be rendered in.

Formats are referenced by a short token, such as ``html`` or ``json``.
A format selector combines these tokens with their options::

    "html:articles/list json csv:articles"

The registry is built once on startup, and not changed afterwards.
Additional formats can be registered with the
``QUERYHANDLER_EXTRA_OUTPUT_FORMATS`` setting.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from queryhandler import conf
from queryhandler.exceptions import NotSupportedError

from .base import FormatHandler
from .csv import CsvFormat
from .html import HtmlFormat, get_template_name
from .json import JsonFormat, to_json
from .xlsx import XlsxFormat

__all__ = (
    "FORMAT_HANDLERS",
    "FormatHandler",
    "CsvFormat",
    "HtmlFormat",
    "JsonFormat",
    "XlsxFormat",
    "build_format_registry",
    "get_format_handler",
    "get_template_name",
    "parse_format_selector",
    "to_json",
)

DEFAULT_FORMATS = {
    "html": HtmlFormat,
    "json": JsonFormat,
    "csv": CsvFormat,
    "xlsx": XlsxFormat,
}


def _get_handler_instance(token: str, value) -> FormatHandler:
    """Resolve the setting value into a handler instance."""
    if isinstance(value, str):
        value = import_string(value)
    if isinstance(value, type):
        if not issubclass(value, FormatHandler):
            raise ImproperlyConfigured(
                f"The output format {token!r} should be a subclass of FormatHandler."
            )
        value = value()
    elif not isinstance(value, FormatHandler):
        raise ImproperlyConfigured(
            f"The output format {token!r} should be a FormatHandler, not {value!r}."
        )
    return value


def build_format_registry(extra_formats: Mapping | None = None) -> Mapping[str, FormatHandler]:
    """Build the read-only mapping of all format tokens."""
    registry = {
        token: _get_handler_instance(token, value)
        for token, value in {**DEFAULT_FORMATS, **(extra_formats or {})}.items()
    }
    return MappingProxyType(registry)


#: All registered formats
FORMAT_HANDLERS = build_format_registry(conf.QUERYHANDLER_EXTRA_OUTPUT_FORMATS)


def get_format_handler(token: str, registry: Mapping[str, FormatHandler] | None = None):
    """Find the handler for a format token."""
    try:
        return (registry if registry is not None else FORMAT_HANDLERS)[token]
    except KeyError:
        raise NotSupportedError(f"Invalid Media Type {token}") from None


def parse_format_selector(
    value: str, registry: Mapping[str, FormatHandler] | None = None
) -> list[tuple[FormatHandler, str]]:
    """Translate ``"html:template json"`` into the handlers and their options."""
    selection = []
    for item in value.split():
        token, _, opts = item.partition(":")
        selection.append((get_format_handler(token, registry), opts))

    if not selection:
        raise NotSupportedError(f"No media types given in '{value}'")
    return selection
