"""Output rendering for CSV."""

from __future__ import annotations

import csv
import typing
from datetime import datetime, timezone
from io import StringIO

from django.http import HttpRequest, HttpResponse

from .base import FormatHandler, get_header, get_not_found_record, to_records

if typing.TYPE_CHECKING:
    from queryhandler.pipeline import ResponseState


class CsvFormat(FormatHandler):
    """CSV export of the results.

    The complex encoding bits are handled by the "csv" library.
    The options can provide the download file name (``csv:articles``).
    """

    media_type = "text/csv"
    content_type = "text/csv; charset=utf-8"
    content_disposition = 'attachment; filename="{name} {date}.csv"'

    #: The outputted CSV dialect. This can be a csv.Dialect subclass
    #: or one of the registered names like: "unix", "excel", "excel-tab"
    dialect = "unix"

    def render(self, request: HttpRequest, response: ResponseState, data, opts: str):
        return self.get_response(to_records(data), response, opts)

    def render_not_found(self, request: HttpRequest, response: ResponseState, opts: str):
        return self.get_response([get_not_found_record(response).as_dict()], response, opts)

    def get_response(self, records: list[dict], response: ResponseState, opts: str):
        return HttpResponse(
            self.render_csv(records),
            content_type=self.content_type,
            status=response.status_code,
            headers=self.get_headers(opts),
        )

    def render_csv(self, records: list[dict]) -> str:
        output = StringIO()
        header = get_header(records)
        writer = csv.DictWriter(output, fieldnames=header, dialect=self.dialect)
        writer.writeheader()
        writer.writerows(records)
        return output.getvalue()

    def get_headers(self, opts: str) -> dict[str, str]:
        return {
            "Content-Disposition": self.content_disposition.format(
                name=opts or "results",
                date=datetime.now(timezone.utc).strftime("%Y-%m-%d %H.%M.%S%z"),
            )
        }
