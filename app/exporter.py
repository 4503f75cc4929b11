"""Export the visible grade grid as CSV, XLSX or a tabular PDF.

Exports serialize a snapshot of the rows the user is looking at (already
filtered and sorted) plus a fixed rubric header; they never look at dirty or
validation state.
"""
import csv
import datetime
import logging
from typing import List, Optional, Sequence, Tuple

import fitz
import openpyxl
from openpyxl.utils import get_column_letter

from models import StudentRow

logger = logging.getLogger(__name__)

NAME_HEADER = "Estudiante"
AVERAGE_HEADER = "Promedio"

_XLSX_NAME_WIDTH = 30
_XLSX_GRADE_WIDTH = 15
_XLSX_MAX_TITLE = 31   # Excel limit on sheet names
_XLSX_BAD_TITLE_CHARS = '[]:*?/\\'

# ── PDF layout (A4 portrait, points) ──────────────────────────────────────────
_PAGE_W, _PAGE_H = 595, 842
_MARGIN = 40
_ROW_H = 20
_NAME_COL_W = 170
_CELL_PAD = 3
_MIN_FONTSIZE = 6
_HEADER_FILL = (41 / 255, 128 / 255, 185 / 255)
_GRID_COLOR = (0.6, 0.6, 0.6)


def build_rows(rows: Sequence[StudentRow], subject_id: int,
               rubrics: Sequence[str]) -> Tuple[List[str], List[list]]:
    """Return *(header, body)* for *rows*; ungraded cells are None."""
    header = [NAME_HEADER] + list(rubrics) + [AVERAGE_HEADER]
    body = []
    for row in rows:
        block = row.subjects.get(subject_id)
        values = []
        for rubric in rubrics:
            cell = block.cells.get(rubric) if block else None
            values.append(cell.value if cell is not None else None)
        average = block.average if block else None
        body.append([row.student.nombre_completo] + values + [average])
    return header, body


def export_filename(group_name: str, subject_name: str, period: str, ext: str) -> str:
    parts = [group_name, subject_name, period]
    stem = "_".join(p.replace(" ", "_") for p in parts)
    return f"Calificaciones_{stem}.{ext}"


def export_csv(path: str, rows: Sequence[StudentRow], subject_id: int,
               rubrics: Sequence[str]) -> str:
    header, body = build_rows(rows, subject_id, rubrics)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for values in body:
            writer.writerow(["" if v is None else v for v in values])
    logger.info("Exported %d row(s) to %s", len(body), path)
    return path


def _sheet_title(period: str) -> str:
    title = "".join("_" if ch in _XLSX_BAD_TITLE_CHARS else ch for ch in period)
    return title[:_XLSX_MAX_TITLE] or "Calificaciones"


def export_xlsx(path: str, rows: Sequence[StudentRow], subject_id: int,
                rubrics: Sequence[str], period: str) -> str:
    header, body = build_rows(rows, subject_id, rubrics)
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = _sheet_title(period)
    ws.append(header)
    for values in body:
        ws.append(values)
    for idx in range(1, len(header) + 1):
        letter = get_column_letter(idx)
        ws.column_dimensions[letter].width = _XLSX_NAME_WIDTH if idx == 1 else _XLSX_GRADE_WIDTH
    wb.save(path)
    logger.info("Exported %d row(s) to %s", len(body), path)
    return path


def _pdf_cell_text(value) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def _column_widths(n_cols: int) -> List[float]:
    usable = _PAGE_W - 2 * _MARGIN
    other = (usable - _NAME_COL_W) / max(1, n_cols - 1)
    return [_NAME_COL_W] + [other] * (n_cols - 1)


def _fit_fontsize(text: str, max_w: float, fontsize: float) -> float:
    # insert_textbox drops text that does not fit, so shrink instead
    while fontsize > _MIN_FONTSIZE and fitz.get_text_length(
            text, fontname="helv", fontsize=fontsize) > max_w:
        fontsize -= 0.5
    return fontsize


def _draw_row(page, y: float, values: Sequence[str], widths: Sequence[float],
              header: bool = False) -> None:
    x = _MARGIN
    for i, (text, w) in enumerate(zip(values, widths)):
        rect = fitz.Rect(x, y, x + w, y + _ROW_H)
        shape = page.new_shape()
        shape.draw_rect(rect)
        if header:
            shape.finish(color=_GRID_COLOR, fill=_HEADER_FILL, width=0.5)
        else:
            shape.finish(color=_GRID_COLOR, width=0.5)
        shape.commit()

        inner_w = w - 2 * _CELL_PAD
        fontsize = _fit_fontsize(text, inner_w, 9 if header else 10)
        text_w = fitz.get_text_length(text, fontname="helv", fontsize=fontsize)
        if i == 0:
            tx = x + _CELL_PAD
        else:
            tx = x + max(_CELL_PAD, (w - text_w) / 2)
        page.insert_text(
            (tx, y + _ROW_H - 6), text, fontsize=fontsize, fontname="helv",
            color=(1, 1, 1) if header else (0, 0, 0),
        )
        x += w


def _new_page(doc, widths, header, title: Optional[str] = None,
              period_line: Optional[str] = None):
    page = doc.new_page(width=_PAGE_W, height=_PAGE_H)
    y = _MARGIN
    if title:
        page.insert_text((_MARGIN, y), title, fontsize=16, fontname="helv")
        y += 20
    if period_line:
        page.insert_text((_MARGIN, y), period_line, fontsize=12, fontname="helv")
        y += 14
    _draw_row(page, y, header, widths, header=True)
    return page, y + _ROW_H


def export_pdf(path: str, rows: Sequence[StudentRow], subject_id: int,
               rubrics: Sequence[str], period: str, group_name: str,
               subject_name: str, generated: Optional[datetime.date] = None) -> str:
    """Write a one-table PDF report of the grid; long classes continue on new pages."""
    header, body = build_rows(rows, subject_id, rubrics)
    widths = _column_widths(len(header))
    generated = generated or datetime.date.today()
    footer = f"Generado el: {generated.strftime('%d/%m/%Y')}"

    doc = fitz.open()
    try:
        page, y = _new_page(doc, widths, header,
                            title=f"Calificaciones: {subject_name} - {group_name}",
                            period_line=f"Periodo: {period}")
        for values in body:
            if y + _ROW_H > _PAGE_H - _MARGIN:
                page.insert_text((_MARGIN, _PAGE_H - 20), footer, fontsize=8, fontname="helv")
                page, y = _new_page(doc, widths, header)
            _draw_row(page, y, [_pdf_cell_text(v) for v in values], widths)
            y += _ROW_H
        page.insert_text((_MARGIN, _PAGE_H - 20), footer, fontsize=8, fontname="helv")
        n_pages = doc.page_count
        doc.save(path, garbage=0, deflate=True)
    finally:
        doc.close()
    logger.info("Exported %d row(s) to %s (%d page(s))", len(body), path, n_pages)
    return path
