"""Typer CLI application: apply changesets to workbooks and inspect the result."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from pydantic import ValidationError

import xlpatch
from xlpatch.contracts.cells import CellValue
from xlpatch.contracts.changeset import Changeset, ChangesetFile, SaveOptions, parse_a1
from xlpatch.contracts.common import SaveError, Target
from xlpatch.engine.dispatcher import (
    error_envelope,
    exit_code_for,
    print_response,
    save_error_envelope,
    success_envelope,
)
from xlpatch.io.fileops import read_text_safe
from xlpatch.observe.events import EventEmitter, Timer

_MAIN_HELP = """\
Apply sparse cell edits to Excel workbooks (.xlsx/.xlsm) without risking the original.

**Workflow:**  inspect → set / apply --dry-run → apply

1. `xlpatch inspect -f data.xlsx`  — sheets in order, used ranges, fingerprint
2. `xlpatch set -f data.xlsx --ref "Sheet1!B2" --value 31 --type number`
3. `xlpatch apply -f data.xlsx --changes edits.json --dry-run`  — preview
4. `xlpatch apply -f data.xlsx --changes edits.json`  — write

**Every save** backs the file up to `<file>.bak`, writes `<file>.tmp`, renames it over
the original and only then removes the backup.  A failure leaves the original intact.

**Every command** returns a JSON `ResponseEnvelope`:
`{"ok": bool, "command": "...", "result": {...}, "errors": [...], "warnings": [...], "metrics": {"duration_ms": N}}`

**Exit codes:** 0=success, 10=validation, 40=conflict, 50=io, 90=internal
"""

_CHANGES_HELP = """\
Path to a changeset JSON file:
`{"target": {"file": "...", "fingerprint": "sha256:..."}, "options": {"backup": true},
"edits": [{"sheet": "Sheet1", "ref": "B2", "value": 31}]}`
"""

app = typer.Typer(
    name="xlpatch",
    help=_MAIN_HELP,
    no_args_is_help=True,
    rich_markup_mode="markdown",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(xlpatch.__version__)
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    version: Annotated[
        bool, typer.Option("--version", "-V", help="Print version and exit.", is_eager=True)
    ] = False,
) -> None:
    if version:
        _version_callback(True)


# Type aliases for common options
FilePath = Annotated[str, typer.Option("--file", "-f", help="Path to .xlsx/.xlsm workbook file")]
OutPath = Annotated[Optional[str], typer.Option("--out", "-o", help="Write the result here instead of overwriting --file")]
BackupFlag = Annotated[Optional[bool], typer.Option("--backup/--no-backup", help="Keep a .bak copy until the new file is in place (default: on)")]
DryRunFlag = Annotated[bool, typer.Option("--dry-run", help="Merge in memory and report, without writing to disk")]
EventsFlag = Annotated[bool, typer.Option("--events", help="Emit NDJSON lifecycle events on stderr")]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _emit(envelope, code=None):
    print_response(envelope)
    raise typer.Exit(code if code is not None else exit_code_for(envelope))


def _split_ref(ref: str, command: str, file: str) -> tuple[str, int, int]:
    """Parse ``Sheet!B2`` into (sheet, row, col), or emit an error envelope."""
    if "!" not in ref:
        _emit(error_envelope(command, "ERR_RANGE_INVALID", "Ref must include sheet name (e.g. Sheet1!B2)", target=Target(file=file, ref=ref)))
    sheet_name, cell_ref = ref.rsplit("!", 1)
    sheet_name = sheet_name.strip("'")
    try:
        row, col = parse_a1(cell_ref)
    except ValueError as e:
        _emit(error_envelope(command, "ERR_RANGE_INVALID", str(e), target=Target(file=file, ref=ref)))
    return sheet_name, row, col


def _load_changeset_file(path: str) -> ChangesetFile:
    """Load and validate a changeset JSON file."""
    try:
        data = json.loads(read_text_safe(path))
    except (OSError, ValueError) as e:
        raise ValueError(f"Cannot parse changeset: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("Changeset file must contain a JSON object.")
    if "edits" not in data:
        raise ValueError("Changeset file missing required key: edits")

    try:
        return ChangesetFile(**data)
    except ValidationError as e:
        raise ValueError(f"Cannot parse changeset: {e}") from e


def _coerce_value(value: str | None, cell_type: str | None) -> CellValue:
    if cell_type == "empty":
        return CellValue.empty()
    if value is None:
        raise ValueError("--value is required unless --type empty")
    if cell_type == "number":
        number = float(value)
        if number.is_integer() and "." not in value and "e" not in value.lower():
            return CellValue.integer(int(number))
        return CellValue.number(number)
    if cell_type == "bool":
        return CellValue.boolean(value.lower() in ("true", "1", "yes"))
    if cell_type == "datetime":
        return CellValue.from_python(datetime.fromisoformat(value))
    if cell_type in (None, "text"):
        return CellValue.text(value)
    raise ValueError(f"Unknown --type '{cell_type}'. Valid: text, number, bool, empty, datetime")


def _run_save(
    command: str,
    file: str,
    changeset: Changeset,
    *,
    options: SaveOptions,
    out: str | None,
    dry_run: bool,
    events: bool,
    expected_fingerprint: str | None = None,
    ref: str | None = None,
) -> None:
    from xlpatch.engine.merge import save_with_changes

    target = Target(file=file, ref=ref)
    with Timer() as t:
        try:
            result = save_with_changes(
                file,
                changeset,
                output_path=out,
                options=options,
                expected_fingerprint=expected_fingerprint,
                dry_run=dry_run,
                events=EventEmitter(enabled=events),
            )
        except SaveError as e:
            env = save_error_envelope(command, e, target=target)
            _emit(env)
            return

    env = success_envelope(
        command,
        result.model_dump(mode="json", exclude={"changes", "warnings"}),
        target=target,
        changes=result.changes,
        warnings=result.warnings,
        duration_ms=t.elapsed_ms,
    )
    _emit(env)


# ---------------------------------------------------------------------------
# xlpatch version
# ---------------------------------------------------------------------------
@app.command()
def version():
    """Print version information as a JSON envelope."""
    env = success_envelope("version", {"version": xlpatch.__version__})
    _emit(env)


# ---------------------------------------------------------------------------
# xlpatch inspect
# ---------------------------------------------------------------------------
@app.command("inspect")
def inspect_cmd(file: FilePath):
    """Inspect a workbook: sheet names in tab order, used ranges, fingerprint.

    Example: `xlpatch inspect -f data.xlsx`
    """
    from xlpatch.engine.context import SourceWorkbook

    with Timer() as t:
        try:
            with SourceWorkbook(file) as ctx:
                meta = ctx.get_workbook_meta()
        except SaveError as e:
            _emit(save_error_envelope("inspect", e, target=Target(file=file)))
            return

    env = success_envelope("inspect", meta.model_dump(), target=Target(file=file), duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# xlpatch get
# ---------------------------------------------------------------------------
@app.command("get")
def get_cmd(
    file: FilePath,
    ref: Annotated[str, typer.Option("--ref", help="Cell reference as SheetName!Cell (e.g. Sheet1!B2)")],
):
    """Read a cell value, its kind and number format.

    Example: `xlpatch get -f data.xlsx --ref "Sheet1!B2"`
    """
    from xlpatch.engine.context import SourceWorkbook
    from xlpatch.engine.convert import source_kind

    sheet_name, row, col = _split_ref(ref, "get", file)
    with Timer() as t:
        try:
            with SourceWorkbook(file) as ctx:
                ws = ctx.get_sheet(sheet_name)
                cell = ws.cell(row=row + 1, column=col + 1)
                kind, _ = source_kind(cell)
                result: dict[str, Any] = {
                    "ref": ref,
                    "value": cell.value,
                    "type": kind,
                    "number_format": cell.number_format,
                }
        except SaveError as e:
            _emit(save_error_envelope("get", e, target=Target(file=file, ref=ref)))
            return

    env = success_envelope("get", result, target=Target(file=file, ref=ref), duration_ms=t.elapsed_ms)
    _emit(env)


# ---------------------------------------------------------------------------
# xlpatch set
# ---------------------------------------------------------------------------
@app.command("set")
def set_cmd(
    file: FilePath,
    ref: Annotated[str, typer.Option("--ref", help="Cell reference as SheetName!Cell (e.g. Sheet1!B2)")],
    value: Annotated[Optional[str], typer.Option("--value", help="Value to write (coerced according to --type)")] = None,
    cell_type: Annotated[Optional[str], typer.Option("--type", help="Value type: text, number, bool, empty or datetime (ISO 8601)")] = None,
    out: OutPath = None,
    backup: BackupFlag = None,
    dry_run: DryRunFlag = False,
    events: EventsFlag = False,
):
    """Set one cell and save. Mutating.

    The cell must lie inside the sheet's used range; an edit outside it is
    reported under `edits_unmatched` and changes nothing.

    Example: `xlpatch set -f data.xlsx --ref "Sheet1!B2" --value 31 --type number`

    Example: `xlpatch set -f data.xlsx --ref "Sheet1!C3" --type empty`  — blank a cell
    """
    sheet_name, row, col = _split_ref(ref, "set", file)
    try:
        cell_value = _coerce_value(value, cell_type)
    except ValueError as e:
        _emit(error_envelope("set", "ERR_INVALID_ARGUMENT", str(e), target=Target(file=file, ref=ref)))
        return

    changeset = Changeset()
    changeset.set_cell(sheet_name, row, col, cell_value)
    options = SaveOptions() if backup is None else SaveOptions(backup=backup)
    _run_save("set", file, changeset, options=options, out=out, dry_run=dry_run, events=events, ref=ref)


# ---------------------------------------------------------------------------
# xlpatch apply
# ---------------------------------------------------------------------------
@app.command("apply")
def apply_cmd(
    changes: Annotated[str, typer.Option("--changes", "-c", help=_CHANGES_HELP)],
    file: Annotated[Optional[str], typer.Option("--file", "-f", help="Workbook to patch (default: the changeset's target.file)")] = None,
    out: OutPath = None,
    backup: BackupFlag = None,
    dry_run: DryRunFlag = False,
    events: EventsFlag = False,
):
    """Apply a changeset file to a workbook. Mutating.

    Every edit overwrites its cell unconditionally.  If the changeset carries a
    `target.fingerprint`, the workbook must still match it.

    Example (preview): `xlpatch apply -f data.xlsx --changes edits.json --dry-run`

    Example (write elsewhere): `xlpatch apply -f data.xlsx --changes edits.json --out patched.xlsx`
    """
    try:
        spec = _load_changeset_file(changes)
    except ValueError as e:
        _emit(error_envelope("apply", "ERR_CHANGESET_INVALID", str(e), target=Target(file=file)))
        return

    file = file or spec.target.file
    if not file:
        _emit(error_envelope("apply", "ERR_MISSING_PARAM", "No workbook given: pass --file or set target.file in the changeset"))
        return

    options = spec.options
    if backup is not None:
        options = options.model_copy(update={"backup": backup})
    _run_save(
        "apply", file, spec.to_changeset(),
        options=options, out=out, dry_run=dry_run, events=events,
        expected_fingerprint=spec.target.fingerprint,
    )
