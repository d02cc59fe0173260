"""The response pipeline: content negotiation and the single-response guarantee.

Each request produces exactly one response. The :class:`ResponseState`
tracks the pending status code and refuses a second write.
Steps are chained with :func:`chain` or :func:`achain`, which stop
once a step returns the :data:`HALT` sentinel.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable

from django.core.exceptions import ImproperlyConfigured
from django.http import HttpRequest, HttpResponse
from django.http.response import HttpResponseBase
from django.utils.cache import patch_vary_headers

from queryhandler.exceptions import ResponseAlreadyWritten

logger = logging.getLogger(__name__)

Renderer = Callable[[], HttpResponseBase]


class _Halt:
    """Chain-control value that tells the chain helpers to stop."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "HALT"


#: Returned by a step once it has written the response.
#: Any following step in the chain won't be called.
HALT = _Halt()


class ResponseState:
    """The response handle of a single request."""

    def __init__(self):
        #: The status code that renderers should use.
        self.status_code = 200
        self._response: HttpResponseBase | None = None

    @property
    def written(self) -> bool:
        """Tell whether the response is already produced."""
        return self._response is not None

    def set_status(self, status_code: int):
        """Define the status that the next renderer uses."""
        self.status_code = status_code

    def write(self, response: HttpResponseBase) -> HttpResponseBase:
        """Store the response. This can only happen once."""
        if self._response is not None:
            raise ResponseAlreadyWritten(
                f"A response was already written (HTTP {self._response.status_code})."
            )
        logger.debug("Writing HTTP %d response", response.status_code)
        self._response = response
        return response

    def get_response(self) -> HttpResponseBase | None:
        """Return the written response, if any."""
        return self._response

    def resolve(self, result=None) -> HttpResponseBase:
        """Determine the final response, given what the view function returned."""
        if self._response is not None:
            return self._response
        elif isinstance(result, HttpResponseBase):
            return self.write(result)
        else:
            raise ImproperlyConfigured(
                "The view did not write or return a response."
                " Use handle_output() or return an HttpResponse."
            )


def not_acceptable() -> HttpResponse:
    """The fallback when none of the media types is acceptable for the client."""
    return HttpResponse("Not Acceptable", status=406, content_type="text/plain; charset=utf-8")


def negotiate(
    request: HttpRequest, renderers: dict[str, Renderer], default: Renderer = not_acceptable
) -> HttpResponseBase:
    """Call the renderer that matches the ``Accept`` header best.

    The renderers are tried in order of declaration when the client has no preference.
    """
    media_type = request.get_preferred_type(list(renderers))
    if media_type is None:
        logger.debug(
            "None of %s is acceptable for %s", list(renderers), request.headers.get("Accept")
        )
        response = default()
    else:
        response = renderers[media_type]()

    patch_vary_headers(response, ["Accept"])
    return response


def chain(data, *steps: Callable):
    """Pass the data through each step, until a step returns :data:`HALT`."""
    for step in steps:
        if data is HALT:
            break
        data = step(data)
        if inspect.isawaitable(data):
            if inspect.iscoroutine(data):
                data.close()  # avoid "never awaited" warnings
            raise ImproperlyConfigured(
                f"Step {step!r} is asynchronous, use achain() / QueryHandler.apipe() instead."
            )
    return data


async def achain(data, *steps: Callable):
    """Pass the data through each step, awaiting asynchronous steps."""
    for step in steps:
        if data is HALT:
            break
        data = step(data)
        if inspect.isawaitable(data):
            data = await data
    return data
