"""
CSV / XLSX / PDF renderings of the rows currently shown on the analytics chart.

Each rendering ends with the same aggregate: total apples and total trees over
exactly the exported rows, so the files always agree with the on-screen
"Current Chart Totals".
"""
import csv
import io
import logging
from typing import Any, Dict, List, Sequence, Tuple

from openpyxl import Workbook
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.platypus import SimpleDocTemplate, Spacer, Table, TableStyle

from errors import ExportError
from pipeline import ChartRow

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
}

_GRID_STYLE = TableStyle([
    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2980ba")),
    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
    ("FONTSIZE", (0, 0), (-1, -1), 8),
])


def prepare_export_data(rows: Sequence[ChartRow], compare: bool) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
    if not rows:
        raise ExportError("Nothing to export for the selected time frame.")
    records = [row.as_dict(compare) for row in rows]
    totals = {
        "totalApples": sum(row.apples for row in rows),
        "totalTrees": sum(row.trees for row in rows),
    }
    return records, totals


def to_csv(rows: Sequence[ChartRow], compare: bool = False) -> bytes:
    records, totals = prepare_export_data(rows, compare)
    headers = list(records[0].keys())

    buffer = io.StringIO()
    writer = csv.writer(
        buffer, quoting=csv.QUOTE_ALL, escapechar="\\", doublequote=False, lineterminator="\n"
    )
    writer.writerow(headers)
    for record in records:
        writer.writerow([record[header] for header in headers])
    writer.writerow(["Total Apples", totals["totalApples"]])
    writer.writerow(["Total Trees", totals["totalTrees"]])
    return buffer.getvalue().encode("utf-8")


def to_xlsx(rows: Sequence[ChartRow], compare: bool = False) -> bytes:
    records, totals = prepare_export_data(rows, compare)
    headers = list(records[0].keys())

    workbook = Workbook()
    data_sheet = workbook.active
    data_sheet.title = "Data"
    data_sheet.append(headers)
    for record in records:
        data_sheet.append([record[header] for header in headers])

    totals_sheet = workbook.create_sheet("Totals")
    totals_sheet.append(list(totals.keys()))
    totals_sheet.append(list(totals.values()))

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def to_pdf(rows: Sequence[ChartRow], compare: bool = False) -> bytes:
    records, totals = prepare_export_data(rows, compare)
    headers = list(records[0].keys())

    buffer = io.BytesIO()
    document = SimpleDocTemplate(buffer, pagesize=A4, title="Detection analytics")
    data_table = Table(
        [headers] + [[str(record[header]) for header in headers] for record in records],
        repeatRows=1,
    )
    data_table.setStyle(_GRID_STYLE)
    totals_table = Table(
        [["Total Apples", "Total Trees"], [str(totals["totalApples"]), str(totals["totalTrees"])]]
    )
    totals_table.setStyle(_GRID_STYLE)
    document.build([data_table, Spacer(1, 10), totals_table])
    return buffer.getvalue()


_RENDERERS = {"csv": to_csv, "xlsx": to_xlsx, "pdf": to_pdf}


def export_rows(fmt: str, rows: Sequence[ChartRow], compare: bool, filename: str) -> Tuple[bytes, str, str]:
    """Render ``rows`` as ``fmt``; returns (payload, media type, file name)."""
    renderer = _RENDERERS.get(fmt)
    if renderer is None:
        raise ExportError(f"Unsupported export format: {fmt}", {"format": fmt})
    payload = renderer(rows, compare)
    logger.info(f"Exported {len(rows)} rows as {fmt} ({len(payload)} bytes)")
    return payload, MEDIA_TYPES[fmt], f"{filename}.{fmt}"
