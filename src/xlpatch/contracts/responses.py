"""Command-specific result models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from xlpatch.contracts.common import ChangeRecord, WarningDetail


class SheetMeta(BaseModel):
    """Metadata for a single worksheet."""

    name: str
    index: int
    kind: str = "worksheet"  # worksheet / chartsheet
    used_range: str | None = None
    max_row: int = 0
    max_column: int = 0


class WorkbookMeta(BaseModel):
    """Metadata returned by ``inspect``."""

    path: str
    fingerprint: str
    sheets: list[SheetMeta] = Field(default_factory=list)


class SaveResult(BaseModel):
    """Outcome of a save (or dry-run merge)."""

    path: str
    output_path: str
    sheets: list[str] = Field(default_factory=list)
    cells_written: int = 0
    edits_applied: int = 0
    edits_unmatched: list[str] = Field(default_factory=list)
    dry_run: bool = False
    backup_path: str | None = None  # only set when a backup was left on disk
    fingerprint_before: str = ""
    fingerprint_after: str | None = None
    warnings: list[WarningDetail] = Field(default_factory=list)
    changes: list[ChangeRecord] = Field(default_factory=list)
