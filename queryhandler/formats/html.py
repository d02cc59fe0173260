"""Output rendering for HTML, using Django templates."""

from __future__ import annotations

import re
import typing
from collections.abc import Mapping

from django.core.exceptions import ImproperlyConfigured
from django.db.models import QuerySet
from django.http import HttpRequest, HttpResponseRedirect
from django.http.response import HttpResponseBase
from django.shortcuts import render

from queryhandler import conf
from queryhandler.exceptions import URIError

from .base import FormatHandler

if typing.TYPE_CHECKING:
    from queryhandler.pipeline import ResponseState

RE_REDIRECT = re.compile(r"redirect\(([^)]+)\)")
RE_ABSOLUTE_URL = re.compile(r"\Ahttps?://")


def get_template_name(name: str) -> str:
    """Translate a view name such as ``errors/404`` into a template file name."""
    if "." not in name.rpartition("/")[2]:
        return f"{name}.html"
    return name


def get_context_data(data) -> dict:
    """Provide the template context for the results."""
    if isinstance(data, Mapping):
        return dict(data)
    elif isinstance(data, (list, tuple, QuerySet)):
        return {"items": data}
    else:
        return {"object": data}


class HtmlFormat(FormatHandler):
    """Render the results with a template.

    The options are either the template name (``html:articles/list``),
    or a redirect to an absolute URL (``html:redirect(https://example.com/)``).
    """

    media_type = "text/html"

    def render(
        self, request: HttpRequest, response: ResponseState, data, opts: str
    ) -> HttpResponseBase:
        match = RE_REDIRECT.search(opts)
        if match:
            url = match.group(1)
            if not RE_ABSOLUTE_URL.match(url):
                raise URIError(
                    "Redirection URL needs to include the protocol (http or https)."
                )
            return HttpResponseRedirect(url)

        if not opts:
            raise ImproperlyConfigured("The 'html' output format needs a template name.")

        return render(
            request,
            get_template_name(opts),
            get_context_data(data),
            status=response.status_code,
        )

    def render_not_found(
        self, request: HttpRequest, response: ResponseState, opts: str
    ) -> HttpResponseBase:
        return render(
            request,
            get_template_name(opts or conf.QUERYHANDLER_NOT_FOUND_VIEW),
            {},
            status=response.status_code,
        )
