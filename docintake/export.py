"""Excel export of the consolidated report."""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List

import openpyxl
from openpyxl.styles import Font, PatternFill

from docintake.core.models import AggregatedReport

logger = logging.getLogger(__name__)

SUMMARY_SHEET = "Resumen"
MAX_SHEET_NAME_LENGTH = 31
_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")


def _cell_value(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return value


def _sheet_name(name: str, taken: List[str]) -> str:
    """A valid sheet name for `name` that does not clash with any in `taken` (case-insensitive)."""
    base = _INVALID_SHEET_CHARS.sub("_", name).strip("'") or "hoja"
    existing = {t.lower() for t in taken}
    candidate = base[:MAX_SHEET_NAME_LENGTH]
    counter = 2
    while candidate.lower() in existing:
        suffix = f"~{counter}"
        candidate = base[:MAX_SHEET_NAME_LENGTH - len(suffix)] + suffix
        counter += 1
    return candidate


def create_worksheet(workbook, sheet_name: str, headers: List[str], data_rows: List[List], header_color: str = "366092"):
    """
    Helper function to create a worksheet with headers and data.

    Args:
        workbook: openpyxl workbook object
        sheet_name: Name of the worksheet
        headers: List of header strings
        data_rows: List of lists, each containing row data
        header_color: Hex color for header background (default: blue)
    """
    ws = workbook.create_sheet(_sheet_name(sheet_name, workbook.sheetnames))

    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = Font(bold=True)
        cell.fill = PatternFill(start_color=header_color, end_color=header_color, fill_type="solid")

    for row_idx, row_data in enumerate(data_rows, 2):
        for col, value in enumerate(row_data, 1):
            ws.cell(row=row_idx, column=col, value=_cell_value(value))

    return ws


def summary_rows(report: AggregatedReport) -> List[List[Any]]:
    """(section, key, value) rows for the summary sheet."""
    meta = report.meta
    rows: List[List[Any]] = [
        ["identidad", "mainId", meta.main_id],
        ["identidad", "mainName", meta.main_name],
        ["identidad", "allIds", ", ".join(meta.all_ids)],
        ["identidad", "allNames", ", ".join(meta.all_names)],
        ["reporte", "generatedAt", meta.generated_at.isoformat()],
        ["reporte", "populatedDocs", ", ".join(meta.populated_docs)],
        ["reporte", "providedDocs", ", ".join(meta.provided_docs)],
    ]
    for key, block in meta.aggregations.items():
        for name, value in block.model_dump(by_alias=True).items():
            rows.append([key, name, value])
    return rows


def _records_table(records: List[Dict[str, Any]]) -> tuple[List[str], List[List[Any]]]:
    headers: Dict[str, None] = {}
    for record in records:
        for key in record:
            headers.setdefault(key, None)
    columns = list(headers)
    return columns, [[record.get(column) for column in columns] for record in records]


def write_report_workbook(report: AggregatedReport, path: Path | str) -> Path:
    """Write the report as a workbook: one summary sheet and one sheet per document type."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()
    # Remove default sheet
    workbook.remove(workbook.active)

    create_worksheet(workbook, SUMMARY_SHEET, ["Sección", "Campo", "Valor"], summary_rows(report), "366092")

    for doc_type_id, merged in report.documents.items():
        records = merged if isinstance(merged, list) else [merged]
        headers, data_rows = _records_table(records)
        create_worksheet(workbook, doc_type_id, headers, data_rows, "70AD47")

    workbook.save(path)
    logger.info(f"[EXPORT] Workbook written to {path} ({len(report.documents)} document sheet(s))")
    return path
