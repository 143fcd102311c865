"""Turn raw workbook bytes into display-ready sheets.

Each sheet becomes a :class:`SheetData` whose first row is the header and
whose every cell is text.  ``.xlsx`` files go through openpyxl, legacy
``.xls`` files through xlrd; the container is sniffed from the leading bytes
rather than trusted from the filename.
"""
import datetime as dt
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import openpyxl
import xlrd

from .errors import WorkbookError

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"
OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")


@dataclass
class SheetData:
    name: str
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.headers and not self.rows

    @property
    def width(self) -> int:
        return len(self.headers)


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, dt.datetime):
        if value.time() == dt.time(0, 0):
            return value.date().isoformat()
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, (dt.date, dt.time)):
        return value.isoformat()
    return str(value)


def _build_sheet(name: str, raw_rows: list[list[Any]]) -> SheetData:
    if not raw_rows:
        return SheetData(name=name)

    width = max(len(r) for r in raw_rows)
    text_rows = [[cell_text(v) for v in r] + [""] * (width - len(r)) for r in raw_rows]
    return SheetData(name=name, headers=text_rows[0], rows=text_rows[1:])


def _read_xlsx(data: bytes) -> list[SheetData]:
    workbook = openpyxl.load_workbook(io.BytesIO(data), data_only=True)
    try:
        sheets = []
        for name in workbook.sheetnames:
            ws = workbook[name]
            if not hasattr(ws, "iter_rows"):
                # chartsheets carry no cells
                sheets.append(SheetData(name=name))
                continue
            # start at the used range, not A1; a sheet without cells yields no rows
            raw_rows = [
                list(r)[ws.min_column - 1:]
                for r in ws.iter_rows(values_only=True)
            ][ws.min_row - 1:]
            sheets.append(_build_sheet(name, raw_rows))
        return sheets
    finally:
        workbook.close()


def _xls_value(book: "xlrd.book.Book", cell: "xlrd.sheet.Cell") -> Any:
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return None
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if cell.ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate_as_datetime(cell.value, book.datemode)
    if cell.ctype == xlrd.XL_CELL_ERROR:
        return xlrd.error_text_from_code.get(cell.value, "#ERR")
    return cell.value


def _trim_leading_blanks(raw_rows: list[list[Any]]) -> list[list[Any]]:
    """Drop fully empty leading rows and columns so the table starts at its used range."""
    while raw_rows and all(v is None for v in raw_rows[0]):
        raw_rows = raw_rows[1:]
    if not raw_rows:
        return []
    skip = min(
        next((i for i, v in enumerate(r) if v is not None), len(r))
        for r in raw_rows
    )
    return [r[skip:] for r in raw_rows]


def _read_xls(data: bytes) -> list[SheetData]:
    book = xlrd.open_workbook(file_contents=data)
    try:
        sheets = []
        for sheet in book.sheets():
            raw_rows = [
                [_xls_value(book, sheet.cell(r, c)) for c in range(sheet.ncols)]
                for r in range(sheet.nrows)
            ]
            sheets.append(_build_sheet(sheet.name, _trim_leading_blanks(raw_rows)))
        return sheets
    finally:
        book.release_resources()


def materialize(data: bytes) -> list[SheetData]:
    """Parse a workbook into sheets, in source order.

    Raises :class:`WorkbookError` with a single message for anything that is
    not a readable workbook; no partial result is returned.
    """
    if data.startswith(ZIP_MAGIC):
        reader = _read_xlsx
    elif data.startswith(OLE2_MAGIC):
        reader = _read_xls
    else:
        raise WorkbookError("File is not a valid Excel workbook")

    try:
        return reader(data)
    except Exception as e:
        logger.warning("Workbook parse failed: %s", e)
        raise WorkbookError("Failed to parse workbook") from e


def select_sheet(sheets: list[SheetData], selector: str | None) -> int:
    """Pick the initially displayed sheet.

    An in-range zero-based index wins, then a case-insensitive exact name
    match; anything else silently falls back to the first sheet.
    """
    if selector is None:
        return 0

    # leading integer prefix, so "1st" and "1.5" both mean index 1
    match = LEADING_INT.match(selector)
    index = int(match.group(1)) if match else None
    if index is not None and 0 <= index < len(sheets):
        return index

    wanted = selector.lower()
    for i, sheet in enumerate(sheets):
        if sheet.name.lower() == wanted:
            return i
    return 0
