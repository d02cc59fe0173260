from __future__ import annotations

import django
import pytest

from queryhandler.handler import QueryHandler
from queryhandler.options import compile_options


def pytest_configure():
    print(f"Running with Django {django.__version__}")


@pytest.fixture()
def make_handler(rf):
    """Create a query handler for a request, like the views do."""

    def _make_handler(
        query=None,
        *,
        method="get",
        data=None,
        content_type=None,
        accept=None,
        params=None,
        next=None,
        **options,
    ) -> QueryHandler:
        headers = {"Accept": accept} if accept else {}
        if method == "get":
            request = rf.get("/v1/articles/", query, headers=headers)
        else:
            extra = {"content_type": content_type} if content_type else {}
            path = "/v1/articles/"
            if query:
                path += "?" + "&".join(f"{key}={value}" for key, value in query.items())
            request = getattr(rf, method)(path, data, headers=headers, **extra)

        return QueryHandler(compile_options(**options), request, params=params, next=next)

    return _make_handler
