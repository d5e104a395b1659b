"""SourceWorkbook: loads the workbook to patch, provides metadata and fingerprint."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator

import openpyxl
from openpyxl.cell.cell import Cell
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from xlpatch.contracts.common import (
    SheetNotFoundError,
    SourceNotFoundError,
    SourceOpenError,
    SourceReadError,
)
from xlpatch.contracts.responses import SheetMeta, WorkbookMeta
from xlpatch.io.fileops import fingerprint


class SourceWorkbook:
    """Wraps a read-only view of an openpyxl workbook.

    Values are loaded with ``data_only=True``: formula cells yield their cached
    result, never the formula text.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).resolve()
        if not self.path.is_file():
            raise SourceNotFoundError(f"Workbook not found: {self.path}", path=str(self.path))
        try:
            self.fp = fingerprint(self.path)
            self.wb: Workbook = openpyxl.load_workbook(str(self.path), data_only=True)
        except Exception as e:
            raise SourceOpenError(f"Cannot open workbook {self.path}: {e}", path=str(self.path)) from e

    def __enter__(self) -> "SourceWorkbook":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def sheet_names(self) -> list[str]:
        return list(self.wb.sheetnames)

    def get_sheet(self, name: str) -> Worksheet:
        if name not in self.wb.sheetnames:
            raise SheetNotFoundError(f"Sheet not found: {name}", path=str(self.path), sheet=name)
        ws = self.wb[name]
        if not isinstance(ws, Worksheet):
            raise SourceReadError(
                f"Sheet '{name}' is a {type(ws).__name__}, not a worksheet; it cannot be copied",
                path=str(self.path), sheet=name,
            )
        return ws

    def extent(self, name: str) -> tuple[int, int]:
        """Number of (rows, columns) in the sheet's used rectangle from A1."""
        ws = self.get_sheet(name)
        max_row, max_col = ws.max_row, ws.max_column
        # openpyxl reports A1:A1 for a sheet without any cell record
        if max_row == 1 and max_col == 1 and ws.cell(row=1, column=1).value is None:
            return 0, 0
        return max_row, max_col

    def iter_cells(self, name: str) -> Iterator[tuple[int, int, Cell]]:
        """Yield ``(row, col, cell)`` over the full rectangle, zero-based, row-major."""
        ws = self.get_sheet(name)
        max_row, max_col = self.extent(name)
        if max_row == 0:
            return
        try:
            rows = ws.iter_rows(min_row=1, min_col=1, max_row=max_row, max_col=max_col)
            for r_idx, row in enumerate(rows):
                for c_idx, cell in enumerate(row):
                    yield r_idx, c_idx, cell
        except SourceReadError:
            raise
        except Exception as e:
            raise SourceReadError(f"Failed to read sheet: {name}: {e}", path=str(self.path), sheet=name) from e

    def get_workbook_meta(self) -> WorkbookMeta:
        sheets: list[SheetMeta] = []
        for idx, name in enumerate(self.wb.sheetnames):
            ws = self.wb[name]
            if not isinstance(ws, Worksheet):
                sheets.append(SheetMeta(name=name, index=idx, kind="chartsheet"))
                continue
            max_row, max_col = self.extent(name)
            sheets.append(SheetMeta(
                name=name, index=idx,
                used_range=ws.dimensions if max_row else None,
                max_row=max_row, max_column=max_col,
            ))
        return WorkbookMeta(path=str(self.path), fingerprint=self.fp, sheets=sheets)

    def close(self) -> None:
        self.wb.close()
