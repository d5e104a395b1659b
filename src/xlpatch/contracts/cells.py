"""Cell coordinates and the canonical cell value variant."""

from __future__ import annotations

import datetime as dt
import math
from typing import Any, Literal

from openpyxl.utils import get_column_letter
from openpyxl.utils.datetime import to_excel
from pydantic import BaseModel, ConfigDict, Field, model_validator

CellKind = Literal["empty", "string", "int", "float", "bool", "error", "datetime"]

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class CellCoordinate(BaseModel):
    """One grid position: sheet name plus zero-based row and column.

    ``A1`` is ``(0, 0)``.
    """

    model_config = ConfigDict(frozen=True)

    sheet_name: str
    row: int = Field(ge=0)
    col: int = Field(ge=0)

    @property
    def a1(self) -> str:
        return f"{get_column_letter(self.col + 1)}{self.row + 1}"

    def __str__(self) -> str:
        return f"{self.sheet_name}!{self.a1}"


class CellValue(BaseModel):
    """What the user wants written into a cell.

    ``kind`` selects the variant; ``value`` holds its payload (``None`` for
    ``empty``, text for ``string``/``error``, a number for ``int``/``float``,
    a bool for ``bool`` and a serial day number for ``datetime``).
    """

    model_config = ConfigDict(frozen=True)

    kind: CellKind
    value: bool | int | float | str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        kind = data.get("kind")
        value = data.get("value")
        if kind == "empty":
            if value is not None:
                raise ValueError("empty cell value takes no payload")
        elif kind in ("string", "error"):
            if not isinstance(value, str):
                raise ValueError(f"{kind} cell value requires text, got {value!r}")
        elif kind == "int":
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"int cell value requires an integer, got {value!r}")
            if not INT64_MIN <= value <= INT64_MAX:
                raise ValueError(f"int cell value out of 64-bit range: {value}")
        elif kind in ("float", "datetime"):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{kind} cell value requires a number, got {value!r}")
            if not math.isfinite(value):
                raise ValueError(f"{kind} cell value must be finite, got {value!r}")
            data = {**data, "value": float(value)}
        elif kind == "bool":
            if not isinstance(value, bool):
                raise ValueError(f"bool cell value requires true/false, got {value!r}")
        return data

    @classmethod
    def empty(cls) -> "CellValue":
        return cls(kind="empty")

    @classmethod
    def text(cls, value: str) -> "CellValue":
        return cls(kind="string", value=value)

    @classmethod
    def integer(cls, value: int) -> "CellValue":
        return cls(kind="int", value=value)

    @classmethod
    def number(cls, value: float) -> "CellValue":
        return cls(kind="float", value=value)

    @classmethod
    def boolean(cls, value: bool) -> "CellValue":
        return cls(kind="bool", value=value)

    @classmethod
    def error(cls, value: str) -> "CellValue":
        return cls(kind="error", value=value)

    @classmethod
    def datetime_serial(cls, serial: float) -> "CellValue":
        return cls(kind="datetime", value=serial)

    @classmethod
    def from_python(cls, obj: Any) -> "CellValue":
        """Build a CellValue from a plain Python/JSON scalar."""
        if obj is None:
            return cls.empty()
        if isinstance(obj, CellValue):
            return obj
        if isinstance(obj, bool):
            return cls.boolean(obj)
        if isinstance(obj, int):
            return cls.integer(obj)
        if isinstance(obj, float):
            return cls.number(obj)
        if isinstance(obj, str):
            return cls.text(obj)
        if isinstance(obj, dt.datetime) and obj.tzinfo is not None:
            # serials carry no offset; store the UTC wall-clock time
            obj = obj.astimezone(dt.timezone.utc).replace(tzinfo=None)
        if isinstance(obj, (dt.datetime, dt.date, dt.time, dt.timedelta)):
            return cls.datetime_serial(to_excel(obj))
        raise TypeError(f"Unsupported cell value type: {type(obj).__name__}")
