import asyncio
import json
import logging
import math
from datetime import datetime, timezone

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.http import Http404, HttpResponse

from queryhandler import handler as handler_module
from queryhandler.exceptions import (
    ArgumentError,
    ArgumentNullError,
    InvalidTypeError,
    NotSupportedError,
    ParseError,
    QueryHandlerError,
    RangeError,
    UploadFileNotFoundError,
)
from queryhandler.pipeline import HALT

OBJECT_ID = "507f1f77bcf86cd799439011"


class TestFind:
    def test_absent(self, make_handler):
        assert make_handler().find() == {}

    def test_dates(self, make_handler):
        handler = make_handler({"find": '{"createdAt": {"$gte": "2020-07-12T22:52:14.305Z"}}'})
        assert handler.find() == {
            "createdAt": {"$gte": datetime(2020, 7, 12, 22, 52, 14, 305000, tzinfo=timezone.utc)}
        }

    def test_malformed(self, make_handler):
        with pytest.raises(ParseError):
            make_handler({"find": '{"title": '}).find()

    def test_not_an_object(self, make_handler):
        with pytest.raises(ParseError, match="JSON object"):
            make_handler({"find": "[1, 2]"}).find()


class TestSelect:
    def test_defaults(self, make_handler):
        assert make_handler().select("title name") == "title name"

    def test_select_include(self, make_handler):
        handler = make_handler({"select": "title,name", "include": "createdAt"})
        assert handler.select("title name createdAt") == "title name createdAt"

    def test_whitelist(self, make_handler):
        handler = make_handler({"select": "title,body"}, select="title name")
        with pytest.raises(ArgumentError, match="Using body in the select"):
            handler.select("title")

    def test_exclude(self, make_handler):
        assert make_handler({"exclude": "body"}).select() == "-body"
        assert make_handler({"exclude": "name"}).select("title name") == "title"

    def test_parse_param(self, make_handler):
        handler = make_handler({"select": "title,name"})
        handler.parse_param("select")
        handler.parse_param("include")  # absent, no-op
        assert handler.query == {"select": ["title", "name"]}
        assert handler.select() == "title name"


class TestSort:
    def test_query(self, make_handler):
        assert make_handler({"sort": "-_id,+title"}).sort("title") == {"_id": -1, "title": 1}

    def test_default(self, make_handler):
        assert make_handler().sort("-createdAt") == {"createdAt": -1}
        assert make_handler().sort() == {}

    def test_whitelist(self, make_handler):
        handler = make_handler({"sort": "-_id"}, sort="title createdAt")
        with pytest.raises(ArgumentError, match="Field _id is not sortable."):
            handler.sort()


class TestLimit:
    def test_default(self, make_handler):
        assert make_handler().limit(20) == 20
        assert make_handler({"limit": "0"}).limit(20) == 20

    def test_ceiling_is_default(self, make_handler):
        assert make_handler().limit() == 100
        assert make_handler(limit=10).limit() == 10

    def test_query(self, make_handler):
        assert make_handler({"limit": "50"}).limit(20) == 50

    def test_over_max(self, make_handler):
        with pytest.raises(RangeError, match=r"limit \(500\) is over the max \(100\)"):
            make_handler({"limit": "500"}).limit(20)

    def test_default_over_max(self, make_handler):
        with pytest.raises(RangeError):
            make_handler({"limit": "5"}, limit=10).limit(20)

    def test_negative(self, make_handler):
        with pytest.raises(RangeError):
            make_handler({"limit": "-5"}).limit()

    def test_invalid(self, make_handler):
        with pytest.raises(ArgumentError):
            make_handler({"limit": "ten"}).limit()


class TestSkip:
    def test_default(self, make_handler):
        assert make_handler().skip() == 0

    def test_query(self, make_handler):
        assert make_handler({"skip": "40"}).skip() == 40

    def test_over_max(self, make_handler):
        with pytest.raises(RangeError, match="Skip has a maximum limit of 100"):
            make_handler({"skip": "101"}).skip()

    def test_unlimited(self, make_handler):
        assert make_handler({"skip": "100000"}, skip=math.inf).skip() == 100000

    def test_negative(self, make_handler):
        with pytest.raises(RangeError):
            make_handler({"skip": "-1"}).skip()


class TestGetFilter:
    def test_object_id(self, make_handler):
        handler = make_handler(params={"id": OBJECT_ID})
        assert handler.get_filter("id:ObjectId(_id),slug") == {
            "$or": [{"_id": OBJECT_ID}, {"slug": OBJECT_ID}]
        }

    def test_slug(self, make_handler):
        handler = make_handler(params={"id": "first"})
        assert handler.get_filter("id:ObjectId(_id),slug") == {"slug": "first"}

    def test_invalid_type(self, make_handler):
        handler = make_handler(params={"id": "first"})
        with pytest.raises(InvalidTypeError):
            handler.get_filter("id:ObjectId(_id)")

    def test_missing(self, make_handler):
        with pytest.raises(ArgumentNullError):
            make_handler().get_filter("id:ObjectId(_id),slug")

    def test_invalid_date(self, make_handler):
        handler = make_handler(params={"day": "first"})
        assert handler.get_filter("day:Date(publishedAt),slug") == {"slug": "first"}

    def test_date(self, make_handler):
        handler = make_handler(params={"day": "2020-07-12"})
        assert handler.get_filter("day:Date(publishedAt),slug") == {
            "$or": [{"publishedAt": "2020-07-12"}, {"slug": "2020-07-12"}]
        }


class TestGetBody:
    def test_json_body(self, make_handler):
        handler = make_handler(
            method="post", data={"title": "New"}, content_type="application/json"
        )
        assert asyncio.run(handler.get_body()) == {"title": "New"}

    def test_form_body(self, make_handler):
        handler = make_handler(method="post", data={"title": "New"})
        assert asyncio.run(handler.get_body()) == {"title": "New"}

    def test_merge_upload(self, make_handler):
        upload = SimpleUploadedFile(
            "article.json", b'{"title": "From file", "body": "Lorem"}', "application/json"
        )
        handler = make_handler(method="post", data={"title": "From form", "file": upload})
        assert asyncio.run(handler.get_body()) == {"title": "From form", "body": "Lorem"}

    def test_multiple_files(self, make_handler):
        handler = make_handler(
            method="post",
            data={
                "file1": SimpleUploadedFile("a.json", b"{}", "application/json"),
                "file2": SimpleUploadedFile("b.json", b"{}", "application/json"),
            },
        )
        with pytest.raises(QueryHandlerError, match="Only one file"):
            handler.get_body()  # raised before awaiting

    def test_unknown_file_type(self, make_handler):
        upload = SimpleUploadedFile("article.csv", b"title\nNew", "text/csv")
        handler = make_handler(method="post", data={"file": upload})
        with pytest.raises(InvalidTypeError, match="Unrecognized file type text/csv"):
            handler.get_body()

    def test_invalid_upload(self, make_handler):
        upload = SimpleUploadedFile("article.json", b"[1, 2]", "application/json")
        handler = make_handler(method="post", data={"file": upload})
        with pytest.raises(ParseError):
            asyncio.run(handler.get_body())

    def test_read_error(self, make_handler, monkeypatch):
        def _read_upload(upload):
            raise FileNotFoundError(upload.name)

        monkeypatch.setattr(handler_module, "_read_upload", _read_upload)
        upload = SimpleUploadedFile("article.json", b"{}", "application/json")
        handler = make_handler(method="post", data={"file": upload})
        body = handler.get_body()  # no error yet

        with pytest.raises(UploadFileNotFoundError) as exc_info:
            asyncio.run(body)
        assert exc_info.value.name == "FileNotFoundError"


class TestHandleOutput:
    def test_json(self, make_handler):
        handler = make_handler()
        data = [{"title": "First"}]
        assert handler.pipe(data, handler.handle_output("html:articles/list json")) is data

        response = handler.response.get_response()
        assert response.status_code == 200
        assert response["Content-Type"] == "text/html; charset=utf-8"

    def test_accept(self, make_handler):
        handler = make_handler(accept="application/json")
        handler.pipe([{"title": "First"}], handler.handle_output("html:articles/list json"))
        response = handler.response.get_response()
        assert response["Content-Type"] == "application/json"
        assert json.loads(response.content) == [{"title": "First"}]

    def test_not_acceptable(self, make_handler):
        handler = make_handler(accept="application/xml")
        data = {"title": "First"}
        assert handler.pipe(data, handler.handle_output("json")) is data
        assert handler.response.get_response().status_code == 406

    def test_post_created(self, make_handler):
        handler = make_handler(method="post", data={})
        handler.pipe({"slug": "new"}, handler.handle_output("json"))
        assert handler.response.get_response().status_code == 201

    @pytest.mark.parametrize("data", [None, [], {}, ""])
    def test_empty_data(self, make_handler, data):
        handler = make_handler()
        assert handler.pipe(data, handler.handle_output("json")) == data
        assert not handler.response.written

    def test_unknown_format(self, make_handler):
        with pytest.raises(NotSupportedError, match="Invalid Media Type yaml"):
            make_handler().handle_output("json yaml")

    def test_selector_function(self, make_handler):
        handler = make_handler()
        handler.pipe({"title": "First"}, handler.handle_output(lambda data: "csv:export"))
        response = handler.response.get_response()
        assert response["Content-Type"] == "text/csv; charset=utf-8"
        assert response["Content-Disposition"].startswith('attachment; filename="export ')

    def test_async_selector(self, make_handler):
        async def get_formats(data):
            return "json"

        handler = make_handler()
        data = {"title": "First"}
        assert asyncio.run(handler.apipe(data, handler.handle_output(get_formats))) is data
        assert handler.response.get_response()["Content-Type"] == "application/json"

    def test_continuation_selector(self, make_handler):
        def get_formats(data, done):
            done("json")

        handler = make_handler()
        asyncio.run(handler.apipe({"title": "First"}, handler.handle_output(get_formats)))
        assert handler.response.get_response()["Content-Type"] == "application/json"

    def test_selector_default_argument(self, make_handler):
        def get_formats(data, fallback="csv:export"):
            return fallback

        handler = make_handler()
        data = {"title": "First"}
        assert handler.pipe(data, handler.handle_output(get_formats)) is data
        assert handler.response.get_response()["Content-Type"] == "text/csv; charset=utf-8"

    def test_format_output(self, make_handler):
        handler = make_handler(accept="application/json")
        data = [
            {"title": "First", "author": {"name": "Jane"}, "body": "Lorem"},
            {"title": "Second", "writer": "Joe"},
        ]
        handler.pipe(
            data,
            handler.handle_404(),
            handler.format_output("title author:author.name,writer"),
            handler.handle_output("json"),
        )
        assert json.loads(handler.response.get_response().content) == [
            {"title": "First", "author": "Jane"},
            {"title": "Second", "author": "Joe"},
        ]

    def test_format_output_mapping(self, make_handler):
        handler = make_handler()
        step = handler.format_output({"name": "title", "size": lambda item: len(item["body"])})
        assert step({"title": "First", "body": "Lorem"}) == {"name": "First", "size": 5}

    @pytest.mark.parametrize("data", [None, [], {}, "", HALT])
    def test_format_output_empty(self, make_handler, data):
        handler = make_handler()
        assert handler.pipe(data, handler.format_output("title")) is data

    def test_format_output_async(self, make_handler):
        async def add_body(data):
            return {**data, "body": "Lorem"}

        handler = make_handler(accept="application/json")
        result = asyncio.run(
            handler.apipe(
                {"title": "First"},
                add_body,
                handler.format_output("title"),
                handler.handle_output("json"),
            )
        )
        assert result == {"title": "First"}
        assert json.loads(handler.response.get_response().content) == {"title": "First"}


class TestHandle404:
    def test_not_found(self, make_handler):
        handler = make_handler(accept="application/json")
        next_step = []
        assert handler.pipe([], handler.handle_404(), next_step.append) is HALT
        assert next_step == []

        response = handler.response.get_response()
        assert response.status_code == 404
        assert json.loads(response.content) == {
            "name": "NotFoundError",
            "message": "Data wasn't found",
            "status": 404,
        }

    def test_html(self, make_handler):
        handler = make_handler()
        handler.pipe(None, handler.handle_404("html json"))
        response = handler.response.get_response()
        assert response.status_code == 404
        assert b"Not Found" in response.content

    def test_found(self, make_handler):
        handler = make_handler()
        data = [{"title": "First"}]
        assert handler.pipe(data, handler.handle_404()) is data
        assert not handler.response.written

    def test_call_next(self, make_handler):
        handler = make_handler()
        with pytest.raises(Http404):
            handler.pipe(None, handler.handle_404_call_next(), handler.handle_output())

    def test_call_next_response(self, make_handler):
        handler = make_handler(next=lambda: HttpResponse("elsewhere", status=404))
        assert handler.pipe(None, handler.handle_404_call_next(), handler.handle_output()) is HALT
        assert handler.response.get_response().content == b"elsewhere"

    def test_call_next_found(self, make_handler):
        handler = make_handler()
        assert handler.pipe({"title": "First"}, handler.handle_404_call_next()) == {
            "title": "First"
        }


class TestHandleError:
    def test_none(self, make_handler):
        handler = make_handler()
        assert handler.handle_error(None) is None
        assert not handler.response.written

    def test_json(self, make_handler, caplog):
        handler = make_handler(accept="application/json")
        with caplog.at_level(logging.WARNING, logger="queryhandler"):
            response = handler.handle_error(RangeError("limit (500) is over the max (100)"))

        assert response.status_code == 400
        assert json.loads(response.content) == {
            "name": "RangeError",
            "message": "limit (500) is over the max (100)",
            "status": 400,
        }
        assert caplog.records[0].levelno == logging.WARNING

    def test_html(self, make_handler):
        handler = make_handler(accept="text/html")
        response = handler.handle_error(ArgumentError("Field _id is not sortable."))
        assert response.status_code == 400
        assert response["Content-Type"] == "text/html; charset=utf-8"
        assert b"Field _id is not sortable." in response.content

    def test_server_error(self, make_handler, caplog):
        handler = make_handler(accept="application/json")
        with caplog.at_level(logging.ERROR, logger="queryhandler"):
            response = handler.handle_error(ValueError("boom"))

        assert response.status_code == 500
        assert caplog.records[0].levelno == logging.ERROR
        assert caplog.records[0].exc_info is not None

    def test_not_acceptable(self, make_handler):
        handler = make_handler(accept="text/csv")
        assert handler.handle_error(RangeError("Too much")).status_code == 406

    def test_already_written(self, make_handler, caplog):
        handler = make_handler()
        handler.response.write(HttpResponse("done"))
        with caplog.at_level(logging.ERROR, logger="queryhandler"):
            response = handler.handle_error(ValueError("late"))

        assert response.content == b"done"
        assert "already written" in caplog.text

    def test_logging_disabled(self, make_handler, caplog):
        handler = make_handler(accept="application/json", logger=False)
        with caplog.at_level(logging.DEBUG, logger="queryhandler"):
            handler.handle_error(ValueError("boom"))
        assert not [record for record in caplog.records if record.name == "queryhandler"]
