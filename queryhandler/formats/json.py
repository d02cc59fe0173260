"""Output rendering for JSON."""

from __future__ import annotations

import typing
from decimal import Decimal

import orjson
from django.db import models
from django.forms.models import model_to_dict
from django.http import HttpRequest, HttpResponse
from django.utils.functional import Promise

from .base import FormatHandler, get_not_found_record

if typing.TYPE_CHECKING:
    from queryhandler.pipeline import ResponseState


def _json_default(value):
    """Serialize the types that orjson doesn't handle natively."""
    if isinstance(value, (Decimal, Promise)):
        return str(value)
    elif isinstance(value, models.Model):
        return model_to_dict(value)
    elif isinstance(value, (models.QuerySet, set, frozenset)):
        return list(value)
    raise TypeError(f"Object of type {value.__class__.__name__} is not JSON serializable")


def to_json(data) -> bytes:
    """Encode the data as JSON."""
    return orjson.dumps(data, default=_json_default, option=orjson.OPT_NON_STR_KEYS)


class JsonFormat(FormatHandler):
    """Render the results as JSON."""

    media_type = "application/json"
    content_type = "application/json"

    def render(self, request: HttpRequest, response: ResponseState, data, opts: str):
        return HttpResponse(
            to_json(data), content_type=self.content_type, status=response.status_code
        )

    def render_not_found(self, request: HttpRequest, response: ResponseState, opts: str):
        return HttpResponse(
            to_json(get_not_found_record(response).as_dict()),
            content_type=self.content_type,
            status=response.status_code,
        )
