"""The per-request query handler.

A :class:`QueryHandler` is created for every request. It translates the
query string and path parameters into the parts of a query description
(filter, projection, sort, limit and skip), and renders the query results
back into exactly one HTTP response.

Typical usage in a view::

    handler.pipe(
        fetch_articles(
            filter={**handler.find(), **handler.get_filter("slug")},
            projection=handler.select("title slug"),
            sort=handler.sort("-createdAt"),
            limit=handler.limit(20),
            skip=handler.skip(),
        ),
        handler.handle_404(),
        handler.handle_output("html:articles/list json"),
    )
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from functools import partial

from asgiref.sync import sync_to_async
from django.core.files.uploadedfile import UploadedFile
from django.http import Http404, HttpRequest, HttpResponse
from django.http.response import HttpResponseBase
from django.shortcuts import render

from queryhandler.exceptions import (
    InvalidTypeError,
    ParseError,
    QueryHandlerError,
    RangeError,
    UploadFileNotFoundError,
    classify_error,
)
from queryhandler.formats import (
    FORMAT_HANDLERS,
    FormatHandler,
    get_template_name,
    parse_format_selector,
    to_json,
)
from queryhandler.formats.reshape import compile_output_spec, reshape
from queryhandler.options import RouteOptions
from queryhandler.parsers import (
    build_projection,
    parse_filter_expression,
    parse_int,
    parse_json,
    parse_sort,
)
from queryhandler.pipeline import HALT, ResponseState, achain, chain, negotiate

FormatSelector = str | Callable

#: The uploaded file types that get_body() can read.
UPLOAD_PARSERS = {
    "application/json": parse_json,
}


def _raise_not_found():
    """The default continuation: let Django render its own 404 page."""
    raise Http404("No results found.")


def _takes_continuation(func: Callable) -> bool:
    """Tell whether the format selector has the ``(data, continuation)`` signature."""
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return False

    # Parameters with a default value are not part of the calling convention.
    positional = [
        param
        for param in signature.parameters.values()
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
        and param.default is param.empty
    ]
    return len(positional) == 2


def _read_upload(upload: UploadedFile) -> bytes:
    with upload.open("rb") as file:
        return file.read()


async def _resolved(value):
    return value


class QueryHandler:
    """Translate the request into a query description, and render the results.

    :param options: The compiled route options, see :func:`~queryhandler.options.compile_options`.
    :param request: The Django request.
    :param params: The path parameters of the route (the URL keyword arguments).
    :param next: The continuation for :meth:`handle_404_call_next`.
    :param formats: The format registry to use, defaults to all registered formats.
    """

    def __init__(
        self,
        options: RouteOptions,
        request: HttpRequest,
        params: Mapping | None = None,
        next: Callable[[], HttpResponseBase | None] | None = None,
        formats: Mapping[str, FormatHandler] | None = None,
    ):
        self.options = options
        self.logger = options.logger
        self.request = request
        self.params = dict(params or {})
        # A copy, so parse_param() can replace values.
        self.query = request.GET.dict()
        self.response = ResponseState()
        self.next = next or _raise_not_found
        self.formats = formats if formats is not None else FORMAT_HANDLERS

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "Parsing %s parameters: query=%r params=%r",
                request.method,
                self.query,
                self.params,
            )

    def __repr__(self):
        return f"<QueryHandler: {self.request.method} {self.request.path}>"

    # -- query description

    def _get_param(self, name: str) -> str | None:
        value = self.query.get(name)
        if isinstance(value, list):
            # Already processed by parse_param()
            return ",".join(value)
        return value

    def find(self) -> dict:
        """Parse the ``?find=...`` JSON filter.

        UTC timestamps (``2020-07-12T22:52:14.305Z``) become datetime objects.
        No whitelist is applied here, the view needs to add its own locked criteria.
        """
        raw_value = self._get_param("find")
        if not raw_value:
            return {}

        value = parse_json(raw_value, revive_dates=True)
        if not isinstance(value, dict):
            raise ParseError("The find argument should contain a JSON object.")
        return value

    def select(self, default_fields: str | None = None) -> str:
        """Build the projection from ``?select=...``, ``?include=...`` and ``?exclude=...``.

        :param default_fields: Space separated fields, used when ``?select=...`` is absent.
        """
        return build_projection(
            default_fields,
            select=self._get_param("select"),
            include=self._get_param("include"),
            exclude=self._get_param("exclude"),
            whitelist=self.options.select,
        )

    def sort(self, default_sort: str | None = None) -> dict[str, int]:
        """Build the sort order from ``?sort=-createdAt,+title``, or the default."""
        return parse_sort(self._get_param("sort") or default_sort, self.options.sort)

    def limit(self, default_limit: int | None = None) -> int:
        """Read ``?limit=...``, enforcing the maximum page size of the route."""
        max_limit = self.options.limit
        if default_limit is None:
            default_limit = max_limit

        raw_value = self._get_param("limit")
        limit = (parse_int(raw_value, "limit") if raw_value else 0) or default_limit
        if limit < 0:
            raise RangeError(f"limit ({limit}) can't be negative")
        if limit > max_limit or default_limit > max_limit:
            raise RangeError(f"limit ({limit}) is over the max ({max_limit})")
        return limit

    def skip(self) -> int:
        """Read ``?skip=...``, enforcing the maximum offset of the route."""
        max_skip = self.options.skip
        raw_value = self._get_param("skip")
        skip = parse_int(raw_value, "skip") if raw_value else 0

        if skip < 0:
            raise RangeError(f"Skip ({skip}) can't be negative")
        if max_skip and skip > max_skip:
            raise RangeError(f"Skip has a maximum limit of {max_skip}")
        return skip

    def parse_param(self, key: str):
        """Replace a comma-separated query parameter with its list form."""
        value = self.query.get(key)
        if value and isinstance(value, str):
            self.query[key] = value.split(",")

    def get_filter(self, definition: str | Mapping[str, list[str]]) -> dict:
        """Build a filter from the path parameters.

        :param definition: Which parameter searches which fields,
            e.g. ``"id:ObjectId(_id),slug"``.
        """
        return parse_filter_expression(definition).build_filter(self.params)

    def get_request_body(self):
        """Return the decoded request body."""
        if self.request.content_type == "application/json":
            return parse_json(self.request.body) if self.request.body else {}
        return self.request.POST.dict()

    def get_body(self) -> Awaitable:
        """Return the request body, merged with the contents of an uploaded file.

        The file is read asynchronously, and fields in the request body
        take precedence over the fields in the file. Invalid uploads
        (multiple files, unknown file types) are raised immediately.
        """
        body = self.get_request_body()
        uploads = [upload for _, files in self.request.FILES.lists() for upload in files]
        if not uploads:
            return _resolved(body)

        if len(uploads) > 1:
            raise QueryHandlerError("Only one file can be submitted at each time")

        upload = uploads[0]
        if upload.content_type not in UPLOAD_PARSERS:
            raise InvalidTypeError(f"Unrecognized file type {upload.content_type}")

        return self._merge_upload(upload, body)

    async def _merge_upload(self, upload: UploadedFile, body: dict) -> dict:
        try:
            content = await sync_to_async(_read_upload)(upload)
        except OSError as e:
            raise UploadFileNotFoundError(upload.name, errors=[str(e)]) from e

        data = UPLOAD_PARSERS[upload.content_type](content)
        if not isinstance(data, dict):
            raise ParseError(f"The uploaded file {upload.name} should contain a JSON object.")

        self.logger.debug("Merging uploaded file %s with request body", upload.name)
        return {**data, **body}

    # -- response pipeline

    def pipe(self, data, *steps: Callable):
        """Pass the data through the response steps."""
        return chain(data, *steps)

    async def apipe(self, data, *steps: Callable):
        """Pass the data through the response steps, awaiting asynchronous steps."""
        return await achain(data, *steps)

    def format_output(self, spec: str | Mapping) -> Callable:
        """Create the step that reshapes the results before they are rendered.

        :param spec: The output keys and their source paths,
            e.g. ``"title author:author.name,writer"``.
            See :mod:`queryhandler.formats.reshape`.
        """
        output_spec = compile_output_spec(spec)

        def _format_step(data):
            if not data or data is HALT:
                return data
            return reshape(data, output_spec)

        return _format_step

    def handle_output(self, formats: FormatSelector = "json") -> Callable:
        """Create the step that renders the results.

        :param formats: The format selector, e.g. ``"html:articles/list json"``.
            This can also be a function that receives the data and returns the selector,
            a coroutine function, or a function that receives ``(data, continuation)``
            and calls the continuation with the selector.
        """
        if isinstance(formats, str):
            # Validate early, before any data is fetched.
            formats = parse_format_selector(formats, self.formats)

        def _output_step(data):
            if not data:
                # Let handle_404() deal with this
                return data

            if self.request.method == "POST":
                self.response.set_status(201)

            if not callable(formats):
                self._write_output(formats, data)
                return data
            elif _takes_continuation(formats):
                return self._output_with_continuation(formats, data)

            selector = formats(data)
            if inspect.isawaitable(selector):
                return self._output_when_resolved(selector, data)

            self._write_output(selector, data)
            return data

        return _output_step

    def _write_output(self, selector: str | list[tuple[FormatHandler, str]], data):
        if isinstance(selector, str):
            selector = parse_format_selector(selector, self.formats)

        renderers = {
            handler.media_type: handler.output(self.request, self.response, data, opts)
            for handler, opts in selector
        }
        self.response.write(negotiate(self.request, renderers))

    async def _output_when_resolved(self, selector: Awaitable[str], data):
        self._write_output(await selector, data)
        return data

    async def _output_with_continuation(self, func: Callable, data):
        future = asyncio.get_running_loop().create_future()
        func(data, future.set_result)
        self._write_output(await future, data)
        return data

    def handle_404(self, formats: str | None = None) -> Callable:
        """Create the step that renders a 404 page for empty results.

        After writing the response, the step returns :data:`HALT`
        so no following step will write a response again.

        :param formats: The format selector, defaults to all registered formats.
        """
        if formats:
            selection = parse_format_selector(formats, self.formats)
        else:
            selection = [(handler, "") for handler in self.formats.values()]

        def _not_found_step(data):
            if data or data is HALT:
                return data

            self.response.set_status(404)
            renderers = {
                handler.media_type: handler.not_found(self.request, self.response, opts)
                for handler, opts in selection
            }
            self.response.write(negotiate(self.request, renderers))
            return HALT

        return _not_found_step

    def handle_404_call_next(self) -> Callable:
        """Create the step that lets the continuation handle empty results.

        By default, this raises :class:`~django.http.Http404` so
        Django renders its generic "not found" page.
        """

        def _call_next_step(data):
            if data or data is HALT:
                return data

            result = self.next()
            if isinstance(result, HttpResponseBase):
                self.response.write(result)
            return HALT

        return _call_next_step

    # -- errors

    def handle_error(self, exc: BaseException | None) -> HttpResponseBase | None:
        """Render the error as HTML or JSON, with the status code that fits the error."""
        if not exc:
            return None

        record = classify_error(exc)
        if record.status >= 500:
            self.logger.error("Error handled: %r", exc, exc_info=exc)
        else:
            self.logger.warning("Error handled, returning HTTP %d: %r", record.status, exc)

        if self.response.written:
            self.logger.error(
                "Unable to report %s, a response was already written.", record.name
            )
            return self.response.get_response()

        self.response.set_status(record.status)
        context = record.as_dict()
        renderers = {
            "text/html": partial(
                render,
                self.request,
                get_template_name(self.options.error_view),
                context,
                status=record.status,
            ),
            "application/json": partial(
                HttpResponse,
                to_json(context),
                content_type="application/json",
                status=record.status,
            ),
        }
        return self.response.write(negotiate(self.request, renderers))
