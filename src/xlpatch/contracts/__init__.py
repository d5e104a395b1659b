"""Pydantic models for cells, changesets, responses and errors."""

from xlpatch.contracts.cells import CellCoordinate, CellValue
from xlpatch.contracts.changeset import (
    Changeset,
    ChangesetFile,
    ChangesetTarget,
    Edit,
    EditSpec,
    SaveOptions,
)
from xlpatch.contracts.common import (
    BackupError,
    ChangeRecord,
    CommitError,
    ErrorDetail,
    FingerprintConflictError,
    Metrics,
    OutputConstructionError,
    ResponseEnvelope,
    SaveError,
    SourceNotFoundError,
    SourceOpenError,
    SheetNotFoundError,
    SourceReadError,
    Target,
    TempWriteError,
    WarningDetail,
)
from xlpatch.contracts.responses import SaveResult, SheetMeta, WorkbookMeta

__all__ = [
    "BackupError",
    "CellCoordinate",
    "CellValue",
    "ChangeRecord",
    "Changeset",
    "ChangesetFile",
    "ChangesetTarget",
    "CommitError",
    "Edit",
    "EditSpec",
    "ErrorDetail",
    "FingerprintConflictError",
    "Metrics",
    "OutputConstructionError",
    "ResponseEnvelope",
    "SaveError",
    "SaveOptions",
    "SaveResult",
    "SheetMeta",
    "SheetNotFoundError",
    "SourceNotFoundError",
    "SourceOpenError",
    "SourceReadError",
    "Target",
    "TempWriteError",
    "WarningDetail",
    "WorkbookMeta",
]
