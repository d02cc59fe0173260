from __future__ import annotations

import typing
from collections.abc import Iterable, Mapping
from functools import partial

from django.db import models
from django.forms.models import model_to_dict
from django.http import HttpRequest
from django.http.response import HttpResponseBase

from queryhandler.exceptions import ErrorRecord

if typing.TYPE_CHECKING:
    from queryhandler.pipeline import Renderer, ResponseState


class FormatHandler:
    """Base class for an output format.

    Each registered format provides a renderer for the results,
    and a renderer for the "no results" case. The renderers are closures
    that are only called when content negotiation selected this format.
    """

    #: The media type used in content negotiation.
    media_type = "application/octet-stream"

    def output(
        self, request: HttpRequest, response: ResponseState, data, opts: str = ""
    ) -> Renderer:
        """Create the renderer for the results."""
        return partial(self.render, request, response, data, opts)

    def not_found(self, request: HttpRequest, response: ResponseState, opts: str = "") -> Renderer:
        """Create the renderer for empty results."""
        return partial(self.render_not_found, request, response, opts)

    def render(
        self, request: HttpRequest, response: ResponseState, data, opts: str
    ) -> HttpResponseBase:
        """Implement this in subclasses to produce the response."""
        raise NotImplementedError()

    def render_not_found(
        self, request: HttpRequest, response: ResponseState, opts: str
    ) -> HttpResponseBase:
        """Implement this in subclasses to produce the 404 response."""
        raise NotImplementedError()

    def __repr__(self):
        return f"<{self.__class__.__name__}: {self.media_type}>"


def get_not_found_record(response: ResponseState) -> ErrorRecord:
    """The record that formats without templates show for empty results."""
    return ErrorRecord(name="NotFoundError", message="Data wasn't found", status=response.status_code)


def to_record(item) -> dict:
    """Translate a single result item to a dictionary."""
    if isinstance(item, Mapping):
        return dict(item)
    elif isinstance(item, models.Model):
        return model_to_dict(item)
    else:
        return {"value": item}


def to_records(data) -> list[dict]:
    """Translate the results into a list of dictionaries, for tabular output."""
    if isinstance(data, (str, bytes, Mapping, models.Model)) or not isinstance(data, Iterable):
        return [to_record(data)]
    return [to_record(item) for item in data]


def get_header(records: list[dict]) -> list[str]:
    """Collect all keys of the records, in order of appearance."""
    header = {}
    for record in records:
        header.update(dict.fromkeys(record))
    return list(header)
