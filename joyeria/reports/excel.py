"""
Shared xlsx helpers: bold frozen header rows, ``#,##0.00`` money cells and
column widths fitted to their content.
"""
import io
import json
from decimal import Decimal

from django.core.serializers.json import DjangoJSONEncoder
from django.http import HttpResponse
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter
from rest_framework.renderers import BaseRenderer

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
MONEY_FORMAT = '#,##0.00'
MIN_WIDTH = 10
MAX_WIDTH = 60


def new_workbook():
    """Workbook without the default empty sheet"""
    workbook = Workbook()
    workbook.remove(workbook.active)
    return workbook


def _cell_value(value):
    if isinstance(value, Decimal):
        return float(value)
    return value


def add_sheet(workbook, title, columns, rows, money_keys=()):
    """
    Append a sheet.

    ``columns`` is a list of ``(header, key)`` pairs and ``rows`` an iterable
    of dicts; cells under ``money_keys`` get the money number format.
    """
    sheet = workbook.create_sheet(title=title[:31])
    sheet.append([header for header, _ in columns])
    for cell in sheet[1]:
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal='center')
    sheet.freeze_panes = 'A2'

    widths = [len(str(header)) for header, _ in columns]
    money_columns = {index for index, (_, key) in enumerate(columns, start=1) if key in money_keys}
    for row in rows:
        values = [_cell_value(row.get(key)) for _, key in columns]
        sheet.append(values)
        for index, value in enumerate(values):
            if value is not None:
                widths[index] = max(widths[index], len(str(value)))

    for index in money_columns:
        for (cell,) in sheet.iter_rows(min_row=2, min_col=index, max_col=index):
            cell.number_format = MONEY_FORMAT
    for index, width in enumerate(widths, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = min(max(width + 2, MIN_WIDTH), MAX_WIDTH)
    return sheet


def workbook_bytes(workbook):
    stream = io.BytesIO()
    workbook.save(stream)
    return stream.getvalue()


def workbook_response(workbook, filename):
    """Attachment response with the serialized workbook"""
    response = HttpResponse(workbook_bytes(workbook), content_type=XLSX_CONTENT_TYPE)
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


class XlsxRenderer(BaseRenderer):
    """
    Accepts ``Accept: application/vnd...sheet`` during content negotiation.
    Workbook responses bypass it; only error envelopes are rendered, as JSON.
    """
    media_type = XLSX_CONTENT_TYPE
    format = 'xlsx'
    charset = None
    render_style = 'binary'

    def render(self, data, accepted_media_type=None, renderer_context=None):
        if data is None:
            return b''
        if isinstance(data, bytes):
            return data
        return json.dumps(data, cls=DjangoJSONEncoder).encode('utf-8')
