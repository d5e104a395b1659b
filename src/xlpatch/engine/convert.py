"""Value conversion: edit values and source cells funnel into one OutputValue.

``to_output`` is the single mapping table; ``classify_edit_value`` and
``classify_source_cell`` only name the logical kind of their input.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Literal, NamedTuple

from openpyxl.cell.cell import Cell
from openpyxl.utils.datetime import to_excel
from openpyxl.worksheet.worksheet import Worksheet

from xlpatch.contracts.cells import CellValue

SourceKind = Literal[
    "empty", "string", "int", "float", "bool", "error", "datetime", "iso_date", "iso_duration",
]

DEFAULT_DATETIME_FORMAT = "yyyy-mm-dd hh:mm:ss"


class OutputValue(NamedTuple):
    kind: Literal["text", "number", "bool", "datetime"]
    value: str | float | bool


def to_output(kind: str, value: Any, *, from_edit: bool) -> OutputValue | None:
    """Map a logical cell kind onto what gets written. ``None`` means write nothing."""
    if kind == "empty":
        # an edit blanks the cell explicitly; an empty source cell stays absent
        return OutputValue("text", "") if from_edit else None
    if kind in ("string", "error", "iso_date", "iso_duration"):
        return OutputValue("text", str(value))
    if kind in ("int", "float"):
        return OutputValue("number", float(value))
    if kind == "bool":
        return OutputValue("bool", bool(value))
    if kind == "datetime":
        return OutputValue("datetime", float(value))
    raise ValueError(f"Unknown cell kind: {kind}")


def classify_edit_value(value: CellValue) -> OutputValue | None:
    return to_output(value.kind, value.value, from_edit=True)


def source_kind(cell: Cell) -> tuple[SourceKind, Any]:
    """Name the logical kind of an openpyxl cell and return its payload."""
    value = cell.value
    if value is None:
        return "empty", None
    if cell.data_type == "e":
        return "error", str(value)
    if isinstance(value, bool):
        return "bool", value
    if isinstance(value, int):
        return "int", value
    if isinstance(value, float):
        return "float", value
    if isinstance(value, (dt.datetime, dt.date, dt.time, dt.timedelta)):
        return "datetime", to_excel(value)
    if isinstance(value, str):
        if cell.data_type == "d":
            # ISO text openpyxl could not turn into a date/duration object
            return ("iso_duration" if value.lstrip("-").startswith("P") else "iso_date"), value
        return "string", value
    return "string", str(value)


def classify_source_cell(cell: Cell) -> OutputValue | None:
    kind, value = source_kind(cell)
    return to_output(kind, value, from_edit=False)


def write_output_value(
    ws: Worksheet,
    row: int,
    col: int,
    out: OutputValue,
    *,
    datetime_format: str = DEFAULT_DATETIME_FORMAT,
) -> Cell:
    """Write ``out`` at zero-based ``(row, col)``. The only place output cells are set."""
    cell = ws.cell(row=row + 1, column=col + 1)
    if out.kind == "text":
        cell.value = out.value
        # text that starts with "=" must not turn into a formula
        cell.data_type = "s"
    elif out.kind == "datetime":
        cell.value = out.value
        cell.number_format = datetime_format
    else:
        cell.value = out.value
    return cell
