"""Common Pydantic models: response envelope, errors, warnings, metrics."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SaveError(Exception):
    """Base class for every fatal failure of a save.

    ``code`` is the machine-readable error code surfaced in the response
    envelope; ``details`` carries the path/sheet/cell context.
    """

    code = "ERR_SAVE_FAILED"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}


class SourceOpenError(SaveError):
    """Raised when the source workbook cannot be opened or parsed."""

    code = "ERR_WORKBOOK_CORRUPT"


class SourceNotFoundError(SourceOpenError):
    code = "ERR_WORKBOOK_NOT_FOUND"


class FingerprintConflictError(SaveError):
    """Raised when the source changed since the changeset was prepared."""

    code = "ERR_PLAN_FINGERPRINT_CONFLICT"


class SourceReadError(SaveError):
    """Raised when a sheet of the source cannot be enumerated."""

    code = "ERR_SHEET_READ"


class SheetNotFoundError(SourceReadError):
    code = "ERR_SHEET_NOT_FOUND"


class OutputConstructionError(SaveError):
    """Raised when the output workbook rejects a sheet or a cell write."""

    code = "ERR_OUTPUT_INVALID"


class BackupError(SaveError):
    code = "ERR_IO_BACKUP"


class TempWriteError(SaveError):
    code = "ERR_IO_TEMP_WRITE"


class CommitError(SaveError):
    code = "ERR_IO_COMMIT"


class Target(BaseModel):
    """Identifies the target workbook/sheet/cell for a command."""

    file: str | None = None
    sheet: str | None = None
    ref: str | None = None


class WarningDetail(BaseModel):
    """Structured warning."""

    code: str
    message: str
    path: str | None = None


class ErrorDetail(BaseModel):
    """Structured error."""

    code: str
    message: str
    details: dict[str, Any] | None = None


class Metrics(BaseModel):
    """Execution metrics."""

    duration_ms: int = 0


class ChangeRecord(BaseModel):
    """Describes a single cell change made (or projected) by a save."""

    op_id: str | None = None
    type: str = "cell.set"
    target: str
    before: Any | None = None
    after: Any | None = None


class ResponseEnvelope(BaseModel):
    """Standard response envelope returned by every command."""

    ok: bool = True
    command: str = ""
    target: Target = Field(default_factory=Target)
    result: Any = None
    changes: list[ChangeRecord] = Field(default_factory=list)
    warnings: list[WarningDetail] = Field(default_factory=list)
    errors: list[ErrorDetail] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)
