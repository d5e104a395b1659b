"""Changeset: pending cell edits, plus the JSON changeset-file models."""

from __future__ import annotations

from typing import Any, Iterator

from openpyxl.utils.cell import column_index_from_string, coordinate_from_string
from openpyxl.utils.exceptions import CellCoordinatesException
from pydantic import BaseModel, ConfigDict, Field, model_validator

from xlpatch.contracts.cells import CellCoordinate, CellValue


class Edit(BaseModel):
    """A pending write of ``new_value`` into one cell."""

    model_config = ConfigDict(frozen=True)

    new_value: CellValue
    op_id: str | None = None
    note: str | None = None


class Changeset:
    """Mapping of CellCoordinate to Edit, indexed by sheet name.

    At most one edit lives per coordinate; setting a coordinate again replaces
    the previous edit in place (its position in iteration order is kept).
    """

    def __init__(self, edits: dict[CellCoordinate, Edit] | None = None) -> None:
        self._by_sheet: dict[str, dict[tuple[int, int], tuple[CellCoordinate, Edit]]] = {}
        self._count = 0
        for coord, edit in (edits or {}).items():
            self.set(coord, edit)

    def set(self, coord: CellCoordinate, edit: Edit | CellValue) -> None:
        if isinstance(edit, CellValue):
            edit = Edit(new_value=edit)
        sheet = self._by_sheet.setdefault(coord.sheet_name, {})
        key = (coord.row, coord.col)
        if key not in sheet:
            self._count += 1
        sheet[key] = (coord, edit)

    def set_cell(self, sheet_name: str, row: int, col: int, value: Any) -> CellCoordinate:
        """Convenience wrapper: ``value`` may be a CellValue, an Edit or a scalar."""
        coord = CellCoordinate(sheet_name=sheet_name, row=row, col=col)
        if not isinstance(value, Edit):
            value = CellValue.from_python(value)
        self.set(coord, value)
        return coord

    def get(self, coord: CellCoordinate) -> Edit | None:
        entry = self._by_sheet.get(coord.sheet_name, {}).get((coord.row, coord.col))
        return entry[1] if entry else None

    def edits_for_sheet(self, sheet_name: str) -> list[tuple[CellCoordinate, Edit]]:
        """All (coordinate, edit) pairs on ``sheet_name``, in insertion order."""
        return list(self._by_sheet.get(sheet_name, {}).values())

    def sheet_index(self, sheet_name: str) -> dict[tuple[int, int], Edit]:
        """Per-sheet lookup keyed by ``(row, col)``."""
        return {key: edit for key, (_, edit) in self._by_sheet.get(sheet_name, {}).items()}

    def sheet_names(self) -> list[str]:
        return [name for name, entries in self._by_sheet.items() if entries]

    def __contains__(self, coord: object) -> bool:
        return isinstance(coord, CellCoordinate) and self.get(coord) is not None

    def __len__(self) -> int:
        return self._count

    def __iter__(self) -> Iterator[tuple[CellCoordinate, Edit]]:
        for entries in self._by_sheet.values():
            yield from entries.values()

    def __repr__(self) -> str:
        return f"Changeset(edits={self._count}, sheets={self.sheet_names()!r})"


# ---------------------------------------------------------------------------
# changeset files
# ---------------------------------------------------------------------------
class SaveOptions(BaseModel):
    """Options controlling how a changeset is committed."""

    backup: bool = True
    backup_suffix: str = ".bak"
    temp_suffix: str = ".tmp"
    fsync: bool = True
    datetime_format: str = "yyyy-mm-dd hh:mm:ss"
    fail_on_external_change: bool = True

    @model_validator(mode="after")
    def _check_suffixes(self) -> "SaveOptions":
        for name in ("backup_suffix", "temp_suffix"):
            suffix = getattr(self, name)
            if not suffix or "/" in suffix or "\\" in suffix:
                raise ValueError(f"{name} must be a non-empty file-name suffix, got {suffix!r}")
        if self.backup_suffix == self.temp_suffix:
            raise ValueError("backup_suffix and temp_suffix must differ")
        return self


class EditSpec(BaseModel):
    """One edit as written in a changeset file.

    The cell is named either by zero-based ``row``/``col`` or by an A1 ``ref``.
    ``value`` is a tagged CellValue (``{"kind": ..., "value": ...}``) or a bare
    JSON scalar.
    """

    sheet: str
    row: int | None = Field(default=None, ge=0)
    col: int | None = Field(default=None, ge=0)
    ref: str | None = None
    value: Any = None
    op_id: str | None = None
    note: str | None = None

    @model_validator(mode="after")
    def _check_position(self) -> "EditSpec":
        has_rc = self.row is not None or self.col is not None
        if self.ref is not None and has_rc:
            raise ValueError("Give either 'ref' or 'row'/'col', not both")
        if self.ref is None and (self.row is None or self.col is None):
            raise ValueError("Edit needs 'ref' or both 'row' and 'col'")
        if self.ref is not None:
            parse_a1(self.ref)
        try:
            self.cell_value()
        except TypeError as e:
            raise ValueError(str(e)) from e
        return self

    def coordinate(self) -> CellCoordinate:
        if self.ref is not None:
            row, col = parse_a1(self.ref)
        else:
            row, col = self.row, self.col
        return CellCoordinate(sheet_name=self.sheet, row=row, col=col)

    def cell_value(self) -> CellValue:
        if isinstance(self.value, dict):
            return CellValue.model_validate(self.value)
        return CellValue.from_python(self.value)

    def to_edit(self) -> Edit:
        return Edit(new_value=self.cell_value(), op_id=self.op_id, note=self.note)


class ChangesetTarget(BaseModel):
    """Workbook a changeset file was prepared against."""

    file: str | None = None
    fingerprint: str | None = None


class ChangesetFile(BaseModel):
    """Serialized changeset: target, options and an ordered list of edits."""

    schema_version: str = "1.0"
    target: ChangesetTarget = Field(default_factory=ChangesetTarget)
    options: SaveOptions = Field(default_factory=SaveOptions)
    edits: list[EditSpec] = Field(default_factory=list)

    def to_changeset(self) -> Changeset:
        changeset = Changeset()
        for spec in self.edits:
            changeset.set(spec.coordinate(), spec.to_edit())
        return changeset


def parse_a1(ref: str) -> tuple[int, int]:
    """Parse an A1 cell reference into zero-based ``(row, col)``."""
    try:
        letters, row = coordinate_from_string(ref.replace("$", "").upper())
        col = column_index_from_string(letters)
    except (CellCoordinatesException, ValueError) as e:
        raise ValueError(f"Invalid cell ref: {ref}") from e
    return row - 1, col - 1
