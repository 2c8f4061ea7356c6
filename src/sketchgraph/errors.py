"""Error types raised by the sketchgraph pipeline."""
from __future__ import annotations

from typing import Optional


class SketchgraphError(Exception):
    """Structured error with stable code for CLI mapping."""

    code = "E_INTERNAL"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return self.message


class ParseError(SketchgraphError, ValueError):
    """Raised when a graph description is malformed."""

    code = "E_PARSE"

    def __init__(
        self,
        message: str,
        *,
        fragment: str = "",
        line: Optional[int] = None,
        column: Optional[int] = None,
    ) -> None:
        location = f" at line {line}, column {column}" if line is not None and column is not None else ""
        shown = f" near {fragment!r}" if fragment else ""
        super().__init__(f"{message}{shown}{location}")
        self.fragment = fragment
        self.line = line
        self.column = column


class MeasurementError(SketchgraphError):
    """Raised when label text cannot be measured (no scratch surface or font)."""

    code = "E_MEASURE"


class LayoutError(SketchgraphError):
    """Raised when the external layout engine fails."""

    code = "E_LAYOUT"


class LayoutPreconditionError(SketchgraphError, RuntimeError):
    """Raised when a stage receives a graph missing geometry it depends on."""

    code = "E_GEOMETRY"


# Errors that abort a single pipeline run without affecting mounted output.
PIPELINE_ERRORS = (ParseError, MeasurementError, LayoutError, LayoutPreconditionError)
