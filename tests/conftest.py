"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest
from openpyxl import Workbook


@pytest.fixture()
def people_workbook(tmp_path: Path) -> Path:
    """Two sheets: a small people table and a notes sheet."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Sheet1"
    ws.append(["Alice", 30, "Engineer"])
    ws.append(["Bob", 41, "Designer"])
    ws.append(["Carol", 27, "Analyst"])

    notes = wb.create_sheet("Notes")
    notes["A1"] = "reviewed"
    notes["B2"] = True

    path = tmp_path / "people.xlsx"
    wb.save(str(path))
    wb.close()
    return path


@pytest.fixture()
def grid_workbook(tmp_path: Path) -> Path:
    """A single 3x3 sheet filled with r<row>c<col> labels."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Sheet1"
    for r in range(3):
        ws.append([f"r{r}c{c}" for c in range(3)])
    path = tmp_path / "grid.xlsx"
    wb.save(str(path))
    wb.close()
    return path


@pytest.fixture()
def typed_workbook(tmp_path: Path) -> Path:
    """One cell of each source kind, with a gap at B2."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Types"
    ws["A1"] = "text"
    ws["B1"] = 42
    ws["C1"] = 2.5
    ws["D1"] = True
    ws["E1"] = datetime(2024, 1, 15, 10, 30, 0)
    ws["F1"] = "#DIV/0!"
    ws["A2"] = "=1+1"
    ws["A2"].data_type = "s"  # literal text, not a formula
    ws["C2"] = "after gap"
    path = tmp_path / "typed.xlsx"
    wb.save(str(path))
    wb.close()
    return path


@pytest.fixture()
def ordered_workbook(tmp_path: Path) -> Path:
    """Sheets deliberately not in alphabetical order, one of them empty."""
    wb = Workbook()
    wb.active.title = "Zeta"
    wb["Zeta"]["A1"] = "z"
    wb.create_sheet("Alpha")["A1"] = "a"
    wb.create_sheet("Empty")
    wb.create_sheet("Mid")["B3"] = 3
    path = tmp_path / "ordered.xlsx"
    wb.save(str(path))
    wb.close()
    return path
