"""Tests for merging a changeset over a workbook and the durable commit protocol."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import openpyxl
import pytest

from xlpatch.contracts.cells import CellCoordinate, CellValue
from xlpatch.contracts.changeset import Changeset, SaveOptions
from xlpatch.contracts.common import (
    BackupError,
    CommitError,
    FingerprintConflictError,
    OutputConstructionError,
    SourceNotFoundError,
    SourceOpenError,
    TempWriteError,
)
from xlpatch.engine.context import SourceWorkbook
from xlpatch.engine.merge import build_output, save_with_changes
from xlpatch.io.fileops import fingerprint
from xlpatch.observe.events import EventEmitter


def _values(path: Path, sheet: str) -> list[list]:
    wb = openpyxl.load_workbook(str(path))
    try:
        return [list(row) for row in wb[sheet].iter_rows(values_only=True)]
    finally:
        wb.close()


def _sheetnames(path: Path) -> list[str]:
    wb = openpyxl.load_workbook(str(path))
    try:
        return wb.sheetnames
    finally:
        wb.close()


# ---------------------------------------------------------------------------
# overlay and pass-through
# ---------------------------------------------------------------------------
def test_single_edit_overlays_and_everything_else_passes_through(people_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Sheet1", 0, 1, CellValue.integer(31))

    result = save_with_changes(people_workbook, changeset)

    assert result.edits_applied == 1
    assert result.edits_unmatched == []
    rows = _values(people_workbook, "Sheet1")
    assert rows[0] == ["Alice", 31, "Engineer"]
    assert rows[1] == ["Bob", 41, "Designer"]
    assert rows[2] == ["Carol", 27, "Analyst"]
    assert _sheetnames(people_workbook) == ["Sheet1", "Notes"]
    notes = _values(people_workbook, "Notes")
    assert notes[0][0] == "reviewed"
    assert notes[1][1] is True


def test_edit_wins_regardless_of_source_kind(people_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Sheet1", 0, 0, CellValue.boolean(False))
    changeset.set_cell("Sheet1", 1, 1, CellValue.text("forty-one"))
    changeset.set_cell("Notes", 1, 1, CellValue.number(0.25))

    save_with_changes(people_workbook, changeset)

    rows = _values(people_workbook, "Sheet1")
    assert rows[0][0] is False
    assert rows[1][1] == "forty-one"
    assert _values(people_workbook, "Notes")[1][1] == 0.25


def test_change_records_capture_before_and_after(people_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Sheet1", 0, 1, CellValue.integer(31))

    result = save_with_changes(people_workbook, changeset, dry_run=True)

    assert len(result.changes) == 1
    change = result.changes[0]
    assert change.target == "Sheet1!B1"
    assert change.before == 30
    assert change.after == {"kind": "int", "value": 31}


def test_sheet_order_is_preserved(ordered_workbook: Path):
    result = save_with_changes(ordered_workbook, Changeset())

    assert result.sheets == ["Zeta", "Alpha", "Empty", "Mid"]
    assert _sheetnames(ordered_workbook) == ["Zeta", "Alpha", "Empty", "Mid"]
    assert _values(ordered_workbook, "Mid")[2][1] == 3


def test_empty_changeset_round_trips_values(typed_workbook: Path):
    save_with_changes(typed_workbook, Changeset())

    wb = openpyxl.load_workbook(str(typed_workbook))
    ws = wb["Types"]
    assert ws["A1"].value == "text"
    assert ws["B1"].value == 42
    assert ws["C1"].value == 2.5
    assert ws["D1"].value is True
    assert ws["E1"].value == datetime(2024, 1, 15, 10, 30, 0)
    assert ws["E1"].number_format == "yyyy-mm-dd hh:mm:ss"
    assert ws["F1"].value == "#DIV/0!"
    assert ws["A2"].value == "=1+1"
    assert ws["A2"].data_type == "s"
    assert ws["B2"].value is None
    assert ws["C2"].value == "after gap"
    wb.close()


# ---------------------------------------------------------------------------
# in-memory merge
# ---------------------------------------------------------------------------
def test_empty_edit_writes_explicit_blank_text(typed_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Types", 0, 1, CellValue.empty())

    with SourceWorkbook(typed_workbook) as source:
        merged = build_output(source, changeset)

    ws = merged.wb["Types"]
    assert (1, 2) in ws._cells
    assert ws.cell(row=1, column=2).value == ""
    assert ws.cell(row=1, column=2).data_type == "s"
    # the source gap at B2 stays absent rather than becoming ""
    assert (2, 2) not in ws._cells


def test_error_cells_become_text(typed_workbook: Path):
    with SourceWorkbook(typed_workbook) as source:
        merged = build_output(source, Changeset())

    cell = merged.wb["Types"]["F1"]
    assert cell.value == "#DIV/0!"
    assert cell.data_type == "s"


def test_text_edit_starting_with_equals_is_not_a_formula(people_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Sheet1", 0, 0, CellValue.text("=SUM(B1:B3)"))

    with SourceWorkbook(people_workbook) as source:
        merged = build_output(source, changeset)

    cell = merged.wb["Sheet1"]["A1"]
    assert cell.value == "=SUM(B1:B3)"
    assert cell.data_type == "s"


def test_datetime_edit_writes_serial_with_format(people_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Sheet1", 0, 1, CellValue.datetime_serial(45306.4375))

    with SourceWorkbook(people_workbook) as source:
        merged = build_output(source, changeset)

    cell = merged.wb["Sheet1"]["B1"]
    assert cell.value == 45306.4375
    assert cell.number_format == "yyyy-mm-dd hh:mm:ss"


def test_datetime_format_option(people_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Sheet1", 0, 1, CellValue.datetime_serial(45306.0))

    with SourceWorkbook(people_workbook) as source:
        merged = build_output(source, changeset, options=SaveOptions(datetime_format="dd/mm/yyyy"))

    assert merged.wb["Sheet1"]["B1"].number_format == "dd/mm/yyyy"


def test_integer_edit_is_widened_to_float(people_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Sheet1", 0, 1, CellValue.integer(31))

    with SourceWorkbook(people_workbook) as source:
        merged = build_output(source, changeset)

    value = merged.wb["Sheet1"]["B1"].value
    assert isinstance(value, float)
    assert value == 31.0


def test_sheet_events_are_emitted(ordered_workbook: Path):
    events = EventEmitter()
    with SourceWorkbook(ordered_workbook) as source:
        build_output(source, Changeset(), events=events)

    merged = [e["data"]["sheet"] for e in events.history if e["event"] == "sheet.merged"]
    assert merged == ["Zeta", "Alpha", "Empty", "Mid"]


class _DuplicateSheets:
    path = Path("dup.xlsx")
    sheet_names = ["Data", "data"]

    def iter_cells(self, name):
        return iter(())


def test_duplicate_sheet_name_is_fatal():
    with pytest.raises(OutputConstructionError) as excinfo:
        build_output(_DuplicateSheets(), Changeset())
    assert excinfo.value.details["sheet"] == "data"


def test_rejected_cell_write_reports_sheet_and_cell(people_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Sheet1", 1, 2, CellValue.text("bad\x01text"))

    with pytest.raises(OutputConstructionError) as excinfo:
        save_with_changes(people_workbook, changeset)

    assert excinfo.value.details["sheet"] == "Sheet1"
    assert excinfo.value.details["cell"] == "C2"


# ---------------------------------------------------------------------------
# out-of-range edits
# ---------------------------------------------------------------------------
def test_edit_beyond_range_is_a_no_op(grid_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Sheet1", 5, 5, CellValue.text("far away"))

    result = save_with_changes(grid_workbook, changeset)

    assert result.edits_applied == 0
    assert result.edits_unmatched == ["Sheet1!F6"]
    rows = _values(grid_workbook, "Sheet1")
    assert rows == [[f"r{r}c{c}" for c in range(3)] for r in range(3)]
    wb = openpyxl.load_workbook(str(grid_workbook))
    assert wb["Sheet1"].max_row == 3
    assert wb["Sheet1"].max_column == 3
    wb.close()


def test_edit_on_missing_sheet_is_a_no_op(grid_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Nope", 0, 0, CellValue.text("x"))

    result = save_with_changes(grid_workbook, changeset)

    assert result.edits_unmatched == ["Nope!A1"]
    assert _sheetnames(grid_workbook) == ["Sheet1"]
    assert _values(grid_workbook, "Sheet1")[0][0] == "r0c0"


def test_edit_on_empty_sheet_is_a_no_op(ordered_workbook: Path):
    changeset = Changeset()
    changeset.set_cell("Empty", 0, 0, CellValue.text("x"))

    result = save_with_changes(ordered_workbook, changeset)

    assert result.edits_applied == 0
    assert result.edits_unmatched == ["Empty!A1"]
    assert _values(ordered_workbook, "Empty") == []


# ---------------------------------------------------------------------------
# source errors
# ---------------------------------------------------------------------------
def test_missing_source_reports_path(tmp_path: Path):
    missing = tmp_path / "missing.xlsx"
    with pytest.raises(SourceNotFoundError) as excinfo:
        save_with_changes(missing, Changeset())
    assert excinfo.value.code == "ERR_WORKBOOK_NOT_FOUND"
    assert excinfo.value.details["path"] == str(missing.resolve())


def test_corrupt_source_reports_path(tmp_path: Path):
    corrupt = tmp_path / "corrupt.xlsx"
    corrupt.write_bytes(b"this is not a zip archive")
    with pytest.raises(SourceOpenError) as excinfo:
        save_with_changes(corrupt, Changeset())
    assert excinfo.value.code == "ERR_WORKBOOK_CORRUPT"
    assert str(corrupt.resolve()) in str(excinfo.value)
    assert corrupt.read_bytes() == b"this is not a zip archive"


def test_unsupported_extension_is_an_open_error(tmp_path: Path):
    text = tmp_path / "notes.txt"
    text.write_text("hello")
    with pytest.raises(SourceOpenError):
        save_with_changes(text, Changeset())


def test_fingerprint_conflict(people_workbook: Path):
    before = people_workbook.read_bytes()
    with pytest.raises(FingerprintConflictError) as excinfo:
        save_with_changes(people_workbook, Changeset(), expected_fingerprint="sha256:stale")
    assert excinfo.value.details["expected"] == "sha256:stale"
    assert people_workbook.read_bytes() == before


def test_fingerprint_match_proceeds(people_workbook: Path):
    fp = fingerprint(people_workbook)
    result = save_with_changes(people_workbook, Changeset(), expected_fingerprint=fp)
    assert result.fingerprint_before == fp
    assert result.fingerprint_after is not None


# ---------------------------------------------------------------------------
# commit protocol
# ---------------------------------------------------------------------------
def test_successful_save_leaves_no_artifacts(people_workbook: Path):
    events = EventEmitter()
    result = save_with_changes(people_workbook, Changeset(), events=events)

    assert result.backup_path is None
    assert result.warnings == []
    assert not Path(str(people_workbook) + ".bak").exists()
    assert not Path(str(people_workbook) + ".tmp").exists()
    assert events.names() == [
        "save.start", "sheet.merged", "sheet.merged",
        "backup.created", "temp.written", "commit.done", "backup.removed",
    ]


def test_temp_write_failure_leaves_destination_and_backup(people_workbook: Path, monkeypatch):
    original = people_workbook.read_bytes()

    def _boom(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr("xlpatch.engine.merge.write_temp", _boom)
    changeset = Changeset()
    changeset.set_cell("Sheet1", 0, 1, CellValue.integer(31))

    with pytest.raises(TempWriteError) as excinfo:
        save_with_changes(people_workbook, changeset)

    assert people_workbook.read_bytes() == original
    backup_path = Path(str(people_workbook.resolve()) + ".bak")
    assert backup_path.exists()
    assert backup_path.read_bytes() == original
    assert excinfo.value.details["backup_path"] == str(backup_path)
    assert not Path(str(people_workbook) + ".tmp").exists()


def test_serialization_failure_leaves_destination(people_workbook: Path, monkeypatch):
    original = people_workbook.read_bytes()

    def _boom(self, filename):
        raise ValueError("cannot serialize")

    monkeypatch.setattr("openpyxl.workbook.workbook.Workbook.save", _boom)

    with pytest.raises(TempWriteError):
        save_with_changes(people_workbook, Changeset())

    assert people_workbook.read_bytes() == original
    assert not Path(str(people_workbook) + ".tmp").exists()


def test_rename_failure_keeps_backup_and_temp(people_workbook: Path, monkeypatch):
    original = people_workbook.read_bytes()

    def _boom(*args, **kwargs):
        raise OSError("rename refused")

    monkeypatch.setattr("xlpatch.engine.merge.replace", _boom)

    with pytest.raises(CommitError) as excinfo:
        save_with_changes(people_workbook, Changeset())

    assert people_workbook.read_bytes() == original
    assert Path(str(people_workbook) + ".bak").read_bytes() == original
    temp_path = Path(excinfo.value.details["temp_path"])
    assert temp_path.exists()


def test_backup_failure_aborts_before_writing(people_workbook: Path, monkeypatch):
    original = people_workbook.read_bytes()

    def _boom(*args, **kwargs):
        raise PermissionError("read-only directory")

    monkeypatch.setattr("xlpatch.engine.merge.backup", _boom)

    with pytest.raises(BackupError) as excinfo:
        save_with_changes(people_workbook, Changeset())

    assert excinfo.value.code == "ERR_IO_BACKUP"
    assert people_workbook.read_bytes() == original
    assert not Path(str(people_workbook) + ".tmp").exists()


def test_backup_disabled_skips_backup(people_workbook: Path, monkeypatch):
    def _boom(*args, **kwargs):
        raise AssertionError("backup should not be attempted")

    monkeypatch.setattr("xlpatch.engine.merge.backup", _boom)
    result = save_with_changes(people_workbook, Changeset(), options=SaveOptions(backup=False))
    assert result.backup_path is None


def test_backup_cleanup_failure_is_a_warning(people_workbook: Path, monkeypatch):
    def _boom(path):
        raise PermissionError("locked")

    monkeypatch.setattr("xlpatch.engine.merge.discard", _boom)
    events = EventEmitter()
    changeset = Changeset()
    changeset.set_cell("Sheet1", 0, 1, CellValue.integer(31))

    result = save_with_changes(people_workbook, changeset, events=events)

    assert result.edits_applied == 1
    assert _values(people_workbook, "Sheet1")[0][1] == 31
    assert [w.code for w in result.warnings] == ["WARN_BACKUP_CLEANUP_FAILED"]
    assert result.backup_path == str(people_workbook.resolve()) + ".bak"
    assert Path(result.backup_path).exists()
    assert "backup.cleanup_failed" in events.names()


def test_custom_suffixes(people_workbook: Path, monkeypatch):
    def _boom(*args, **kwargs):
        raise OSError("rename refused")

    monkeypatch.setattr("xlpatch.engine.merge.replace", _boom)
    options = SaveOptions(backup_suffix=".orig", temp_suffix=".partial")

    with pytest.raises(CommitError):
        save_with_changes(people_workbook, Changeset(), options=options)

    assert Path(str(people_workbook) + ".orig").exists()
    assert Path(str(people_workbook) + ".partial").exists()


def test_output_path_leaves_source_untouched(people_workbook: Path, tmp_path: Path):
    original = people_workbook.read_bytes()
    out = tmp_path / "patched.xlsx"
    changeset = Changeset()
    changeset.set_cell("Sheet1", 2, 0, CellValue.text("Caroline"))

    result = save_with_changes(people_workbook, changeset, output_path=out)

    assert people_workbook.read_bytes() == original
    assert result.output_path == str(out.resolve())
    assert _values(out, "Sheet1")[2][0] == "Caroline"
    assert not Path(str(out) + ".bak").exists()


def test_dry_run_writes_nothing(people_workbook: Path):
    original = people_workbook.read_bytes()
    changeset = Changeset()
    changeset.set_cell("Sheet1", 0, 1, CellValue.integer(31))
    changeset.set_cell("Sheet1", 9, 9, CellValue.integer(0))

    result = save_with_changes(people_workbook, changeset, dry_run=True)

    assert result.dry_run is True
    assert result.edits_applied == 1
    assert result.edits_unmatched == ["Sheet1!J10"]
    assert result.fingerprint_after is None
    assert people_workbook.read_bytes() == original


def test_coordinate_string_in_unmatched():
    assert str(CellCoordinate(sheet_name="Data", row=9, col=27)) == "Data!AB10"
