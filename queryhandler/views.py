"""The view layer creates the query handler, and routes all errors through it."""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps

from asgiref.sync import iscoroutinefunction
from django.http import Http404, HttpRequest
from django.http.response import HttpResponseBase
from django.views import View

from queryhandler.formats import parse_format_selector
from queryhandler.handler import QueryHandler
from queryhandler.options import RouteOptions, compile_options

#: The view attributes that are compiled into the route options.
OPTION_NAMES = ("limit", "skip", "select", "sort", "error_view", "logger")


def run_view(handler: QueryHandler, func: Callable, *args, **kwargs) -> HttpResponseBase:
    """Call the view function, and make sure exactly one response comes out."""
    try:
        return handler.response.resolve(func(*args, **kwargs))
    except Http404:
        # Django renders the generic "not found" page.
        raise
    except Exception as e:
        return handler.handle_error(e)


async def arun_view(handler: QueryHandler, func: Callable, *args, **kwargs) -> HttpResponseBase:
    """The async version of :func:`run_view`."""
    try:
        return handler.response.resolve(await func(*args, **kwargs))
    except Http404:
        raise
    except Exception as e:
        return handler.handle_error(e)


class QueryView(View):
    """Base class for views that translate the query string into a query.

    The options are class attributes, which are compiled once in :meth:`as_view`.
    The method handlers (``get()``, ``post()``, ...) can use :attr:`handler`::

        class ArticleListView(QueryView):
            select = "title slug createdAt"
            sort = "createdAt title"
            output_formats = "html:articles/list json csv:articles"

            def get(self, request, *args, **kwargs):
                return self.handler.pipe(
                    get_articles(**self.get_query()),
                    self.handler.handle_404(),
                    self.handler.handle_output(self.output_formats),
                )
    """

    #: Maximum value for ?limit=..., defaults to ``QUERYHANDLER_MAX_LIMIT``.
    limit: int | None = None

    #: Maximum value for ?skip=..., defaults to ``QUERYHANDLER_MAX_SKIP``.
    skip: int | float | None = None

    #: Fields that can be used in ?select=... and ?include=...
    select: str | None = None

    #: Fields that can be used in ?sort=...
    sort: str | None = None

    #: Template to render errors for HTML clients.
    error_view: str | None = None

    #: The logger (or logger name) to report errors to, ``False`` disables it.
    logger = None

    #: The format selector for the results.
    output_formats = "json"

    #: The format selector for empty results, defaults to all formats.
    not_found_formats: str | None = None

    #: The compiled options, assigned by :meth:`as_view`.
    route_options: RouteOptions = None

    handler_class = QueryHandler

    #: The handler of the current request.
    handler: QueryHandler = None

    @classmethod
    def as_view(cls, **initkwargs):
        """Compile the route options once, when the URLconf is loaded."""
        route_options = compile_options(
            **{name: initkwargs.pop(name, getattr(cls, name)) for name in OPTION_NAMES}
        )

        for name in ("output_formats", "not_found_formats"):
            value = initkwargs.get(name, getattr(cls, name))
            if isinstance(value, str) and value:
                # Raises NotSupportedError for unknown formats.
                parse_format_selector(value)

        view = super().as_view(route_options=route_options, **initkwargs)
        view.route_options = route_options
        return view

    def setup(self, request: HttpRequest, *args, **kwargs):
        super().setup(request, *args, **kwargs)
        self.handler = self.get_handler()

    def get_handler(self) -> QueryHandler:
        """Create the query handler for this request."""
        return self.handler_class(
            self.route_options, self.request, params=self.kwargs, next=self.call_next
        )

    def call_next(self) -> HttpResponseBase | None:
        """Handle empty results in :meth:`QueryHandler.handle_404_call_next`.
        By default, Django renders its own 404 page.
        """
        raise Http404("No results found.")

    def get_query(self, default_fields=None, default_sort=None, default_limit=None) -> dict:
        """Provide the complete query description of the request."""
        return {
            "filter": self.handler.find(),
            "projection": self.handler.select(default_fields),
            "sort": self.handler.sort(default_sort),
            "limit": self.handler.limit(default_limit),
            "skip": self.handler.skip(),
        }

    def dispatch(self, request, *args, **kwargs):
        """Render proper errors for exceptions on all request types."""
        if self.view_is_async:
            return arun_view(self.handler, super().dispatch, request, *args, **kwargs)
        else:
            return run_view(self.handler, super().dispatch, request, *args, **kwargs)


def query_view(**options) -> Callable:
    """Decorator for function-based views.

    The view is called as ``func(request, handler, *args, **kwargs)``,
    and can be a regular function or a coroutine function::

        @query_view(select="title slug", limit=50)
        def article_list(request, handler):
            ...
    """
    route_options = compile_options(**options)

    def decorator(func):
        if iscoroutinefunction(func):

            @wraps(func)
            async def _query_view(request, *args, **kwargs):
                handler = QueryHandler(route_options, request, params=kwargs)
                return await arun_view(handler, func, request, handler, *args, **kwargs)

        else:

            @wraps(func)
            def _query_view(request, *args, **kwargs):
                handler = QueryHandler(route_options, request, params=kwargs)
                return run_view(handler, func, request, handler, *args, **kwargs)

        _query_view.route_options = route_options
        return _query_view

    return decorator
