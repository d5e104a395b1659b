"""xlpatch: apply cell-level changesets to Excel workbooks with durable saves."""

from xlpatch.contracts.cells import CellCoordinate, CellValue
from xlpatch.contracts.changeset import Changeset, Edit, SaveOptions
from xlpatch.contracts.common import SaveError
from xlpatch.contracts.responses import SaveResult
from xlpatch.engine.merge import build_output, save_with_changes

__version__ = "0.1.0"

__all__ = [
    "CellCoordinate",
    "CellValue",
    "Changeset",
    "Edit",
    "SaveError",
    "SaveOptions",
    "SaveResult",
    "build_output",
    "save_with_changes",
]
