"""Merge a changeset over a source workbook and persist the result durably."""

from __future__ import annotations

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path

from openpyxl import Workbook

from xlpatch.contracts.cells import CellCoordinate
from xlpatch.contracts.changeset import Changeset, SaveOptions
from xlpatch.contracts.common import (
    BackupError,
    ChangeRecord,
    CommitError,
    FingerprintConflictError,
    OutputConstructionError,
    SaveError,
    SourceReadError,
    TempWriteError,
    WarningDetail,
)
from xlpatch.contracts.responses import SaveResult
from xlpatch.engine.context import SourceWorkbook
from xlpatch.engine.convert import (
    classify_edit_value,
    classify_source_cell,
    write_output_value,
)
from xlpatch.io.fileops import backup, discard, fingerprint, replace, sibling_path, write_temp
from xlpatch.observe.events import EventEmitter


@dataclass
class MergedWorkbook:
    """An output workbook built in memory, plus what went into it."""

    wb: Workbook
    sheets: list[str] = field(default_factory=list)
    cells_written: int = 0
    changes: list[ChangeRecord] = field(default_factory=list)
    unmatched: list[CellCoordinate] = field(default_factory=list)

    @property
    def edits_applied(self) -> int:
        return len(self.changes)


def build_output(
    source: SourceWorkbook,
    changeset: Changeset,
    *,
    options: SaveOptions | None = None,
    events: EventEmitter | None = None,
) -> MergedWorkbook:
    """Copy every sheet of ``source`` into a new workbook, overlaying edits.

    Sheets keep their source order.  An edit replaces the source value of its
    cell unconditionally; an edit whose cell is outside a sheet's rectangle
    (or whose sheet does not exist) is never visited and lands in
    ``unmatched``.
    """
    options = options or SaveOptions()
    events = events or EventEmitter()

    out = Workbook()
    out.remove(out.active)
    merged = MergedWorkbook(wb=out)
    applied: set[CellCoordinate] = set()

    for sheet_name in source.sheet_names:
        ws = _create_sheet(out, sheet_name)
        edits = changeset.sheet_index(sheet_name)
        written = 0

        for row, col, cell in source.iter_cells(sheet_name):
            edit = edits.get((row, col))
            if edit is not None:
                value = classify_edit_value(edit.new_value)
            else:
                value = classify_source_cell(cell)
            if value is None:
                continue
            try:
                write_output_value(ws, row, col, value, datetime_format=options.datetime_format)
            except Exception as e:
                coord = CellCoordinate(sheet_name=sheet_name, row=row, col=col)
                raise OutputConstructionError(
                    f"Failed to write cell {coord}: {e}",
                    path=str(source.path), sheet=sheet_name, cell=coord.a1,
                ) from e
            written += 1
            if edit is not None:
                coord = CellCoordinate(sheet_name=sheet_name, row=row, col=col)
                applied.add(coord)
                merged.changes.append(ChangeRecord(
                    op_id=edit.op_id,
                    target=str(coord),
                    before=cell.value,
                    after=edit.new_value.model_dump(),
                ))

        merged.sheets.append(sheet_name)
        merged.cells_written += written
        events.emit("sheet.merged", {"sheet": sheet_name, "cells_written": written, "edits": len(edits)})

    merged.unmatched = [coord for coord, _ in changeset if coord not in applied]
    return merged


def _create_sheet(out: Workbook, name: str):
    if any(existing.casefold() == name.casefold() for existing in out.sheetnames):
        raise OutputConstructionError(f"Duplicate worksheet name: {name}", sheet=name)
    try:
        ws = out.create_sheet(title=name)
    except Exception as e:
        raise OutputConstructionError(f"Failed to set worksheet name: {name}: {e}", sheet=name) from e
    if ws.title != name:
        raise OutputConstructionError(f"Worksheet name was rewritten to '{ws.title}': {name}", sheet=name)
    return ws


def commit(
    wb: Workbook,
    destination: str | Path,
    *,
    options: SaveOptions | None = None,
    events: EventEmitter | None = None,
) -> tuple[str | None, list[WarningDetail]]:
    """Persist ``wb`` at ``destination``: backup, temp write, atomic rename, cleanup.

    Returns ``(backup_left_behind, warnings)``.  Every fatal step raises a
    SaveError subclass; in all of them the destination is untouched.
    """
    options = options or SaveOptions()
    events = events or EventEmitter()
    dest = Path(destination)
    warnings: list[WarningDetail] = []

    backup_path: str | None = None
    if options.backup and dest.exists():
        try:
            backup_path = backup(dest, suffix=options.backup_suffix)
        except OSError as e:
            raise BackupError(
                f"Failed to create backup at {sibling_path(dest, options.backup_suffix)}: {e}",
                path=str(dest), backup_path=str(sibling_path(dest, options.backup_suffix)),
            ) from e
        events.emit("backup.created", {"path": str(dest), "backup_path": backup_path})

    temp_path = sibling_path(dest, options.temp_suffix)
    try:
        buf = BytesIO()
        wb.save(buf)
        write_temp(dest, buf.getvalue(), suffix=options.temp_suffix, fsync=options.fsync)
    except Exception as e:
        raise TempWriteError(
            f"Failed to save workbook to temp file {temp_path}: {e}",
            path=str(dest), temp_path=str(temp_path), backup_path=backup_path,
        ) from e
    events.emit("temp.written", {"temp_path": str(temp_path)})

    try:
        replace(temp_path, dest, fsync=options.fsync)
    except OSError as e:
        raise CommitError(
            f"Failed to rename temp file {temp_path} to {dest}: {e}",
            path=str(dest), temp_path=str(temp_path), backup_path=backup_path,
        ) from e
    events.emit("commit.done", {"path": str(dest)})

    if backup_path is not None:
        try:
            discard(backup_path)
        except OSError as e:
            warnings.append(WarningDetail(
                code="WARN_BACKUP_CLEANUP_FAILED",
                message=f"Saved successfully but could not remove backup {backup_path}: {e}",
                path=backup_path,
            ))
            events.emit("backup.cleanup_failed", {"backup_path": backup_path, "error": str(e)})
        else:
            events.emit("backup.removed", {"backup_path": backup_path})
            backup_path = None

    return backup_path, warnings


def save_with_changes(
    source_path: str | Path,
    changeset: Changeset,
    *,
    output_path: str | Path | None = None,
    options: SaveOptions | None = None,
    expected_fingerprint: str | None = None,
    dry_run: bool = False,
    events: EventEmitter | None = None,
) -> SaveResult:
    """Apply ``changeset`` to the workbook at ``source_path`` and save it.

    The result overwrites ``source_path`` unless ``output_path`` is given.
    With ``dry_run`` the merge runs fully in memory and nothing is written.
    Raises a SaveError subclass on any fatal failure.
    """
    options = options or SaveOptions()
    events = events or EventEmitter()

    with SourceWorkbook(source_path) as source:
        events.emit("save.start", {"path": str(source.path), "edits": len(changeset)})
        if expected_fingerprint and options.fail_on_external_change and expected_fingerprint != source.fp:
            raise FingerprintConflictError(
                "Workbook fingerprint changed since the changeset was created",
                path=str(source.path), expected=expected_fingerprint, actual=source.fp,
            )
        try:
            merged = build_output(source, changeset, options=options, events=events)
        except SaveError:
            raise
        except Exception as e:
            raise SourceReadError(f"Failed to merge workbook {source.path}: {e}", path=str(source.path)) from e
        source_fp = source.fp
        resolved_source = source.path

    dest = Path(output_path).resolve() if output_path else resolved_source
    result = SaveResult(
        path=str(resolved_source),
        output_path=str(dest),
        sheets=merged.sheets,
        cells_written=merged.cells_written,
        edits_applied=merged.edits_applied,
        edits_unmatched=[str(c) for c in merged.unmatched],
        dry_run=dry_run,
        fingerprint_before=source_fp,
        changes=merged.changes,
    )
    if dry_run:
        return result

    backup_left, warnings = commit(merged.wb, dest, options=options, events=events)
    result.backup_path = backup_left
    result.warnings = warnings
    result.fingerprint_after = fingerprint(dest)
    return result
