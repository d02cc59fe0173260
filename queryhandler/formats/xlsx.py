"""Output rendering for Excel spreadsheets.

This writes a minimal Office Open XML workbook with a single sheet.
All text is written as inline strings, so no shared-strings table is needed.
"""

from __future__ import annotations

import re
import typing
import zipfile
from datetime import date, datetime, time
from decimal import Decimal
from io import BytesIO

from django.http import HttpRequest, HttpResponse

from .base import FormatHandler, get_header, get_not_found_record, to_records

if typing.TYPE_CHECKING:
    from queryhandler.pipeline import ResponseState

#: Characters that XML 1.0 doesn't allow, not even as entity.
RE_INVALID_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

CONTENT_TYPES_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/xl/workbook.xml"'
    ' ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml"/>'
    '<Override PartName="/xl/worksheets/sheet1.xml"'
    ' ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"/>'
    "</Types>"
)

ROOT_RELS_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1"'
    ' Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument"'
    ' Target="xl/workbook.xml"/>'
    "</Relationships>"
)

WORKBOOK_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<workbook xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main"'
    ' xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships">'
    '<sheets><sheet name="{sheet_name}" sheetId="1" r:id="rId1"/></sheets>'
    "</workbook>"
)

WORKBOOK_RELS_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1"'
    ' Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/worksheet"'
    ' Target="worksheets/sheet1.xml"/>'
    "</Relationships>"
)

SHEET_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<worksheet xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main">'
    "<sheetData>{rows}</sheetData>"
    "</worksheet>"
)


def tag_escape(s: str):
    """Escape a value for usage in XML text. Control characters are removed."""
    s = RE_INVALID_XML_CHARS.sub("", s)
    return s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def get_column_name(index: int) -> str:
    """Translate a zero-based column index into the A, B, ..., AA notation."""
    name = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        name = chr(ord("A") + remainder) + name
    return name


def render_cell(reference: str, value) -> str:
    """Render a single ``<c>`` element."""
    if value is None:
        return f'<c r="{reference}"/>'
    elif isinstance(value, bool):
        return f'<c r="{reference}" t="b"><v>{int(value)}</v></c>'
    elif isinstance(value, (int, float, Decimal)):
        return f'<c r="{reference}"><v>{value}</v></c>'
    elif isinstance(value, (datetime, date, time)):
        value = value.isoformat()
    return f'<c r="{reference}" t="inlineStr"><is><t>{tag_escape(str(value))}</t></is></c>'


def render_rows(header: list[str], records: list[dict]) -> str:
    rows = [[*header]] + [[record.get(name) for name in header] for record in records]
    return "".join(
        '<row r="{row}">{cells}</row>'.format(
            row=row_nr,
            cells="".join(
                render_cell(f"{get_column_name(col)}{row_nr}", value)
                for col, value in enumerate(values)
            ),
        )
        for row_nr, values in enumerate(rows, start=1)
    )


def render_workbook(records: list[dict], sheet_name="Results") -> bytes:
    """Write the records as an XLSX file."""
    header = get_header(records)
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as workbook:
        workbook.writestr("[Content_Types].xml", CONTENT_TYPES_XML)
        workbook.writestr("_rels/.rels", ROOT_RELS_XML)
        workbook.writestr("xl/workbook.xml", WORKBOOK_XML.format(sheet_name=sheet_name))
        workbook.writestr("xl/_rels/workbook.xml.rels", WORKBOOK_RELS_XML)
        workbook.writestr(
            "xl/worksheets/sheet1.xml", SHEET_XML.format(rows=render_rows(header, records))
        )
    return buffer.getvalue()


class XlsxFormat(FormatHandler):
    """Spreadsheet export of the results."""

    media_type = XLSX_CONTENT_TYPE

    def render(self, request: HttpRequest, response: ResponseState, data, opts: str):
        return HttpResponse(
            render_workbook(to_records(data)),
            content_type=XLSX_CONTENT_TYPE,
            status=response.status_code,
        )

    def render_not_found(self, request: HttpRequest, response: ResponseState, opts: str):
        return HttpResponse(
            render_workbook([get_not_found_record(response).as_dict()]),
            content_type=XLSX_CONTENT_TYPE,
            status=response.status_code,
        )
