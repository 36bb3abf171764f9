"""Exceptions raised by the export pipeline.

Content anomalies (unsupported tags, missing image data) never surface here;
they are absorbed by the visitor.  These types cover the failures that end
an export and the caller mistakes that are rejected up front.
"""

from __future__ import annotations

from enum import Enum


class ExportFailureCause(Enum):
    RENDER = "render"
    ASSEMBLY = "assembly"
    SAVE = "save"


_CAUSE_HINTS: dict[ExportFailureCause, str] = {
    ExportFailureCause.RENDER: "content failed to render",
    ExportFailureCause.ASSEMBLY: "the output document could not be assembled",
    ExportFailureCause.SAVE: "the output file could not be written; check write permissions",
}


class ExportError(Exception):
    """A pipeline-terminal failure with a human-readable cause."""

    def __init__(
        self,
        message: str,
        cause: ExportFailureCause,
        *,
        target: str | None = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.target = target

    @property
    def hint(self) -> str:
        return _CAUSE_HINTS[self.cause]

    def __str__(self) -> str:
        prefix = f"{self.target} export failed" if self.target else "Export failed"
        return f"{prefix} ({self.cause.value}): {self.args[0]}"


class RenderError(ExportError):
    def __init__(self, message: str, *, target: str | None = None) -> None:
        super().__init__(message, ExportFailureCause.RENDER, target=target)


class AssemblyError(ExportError):
    def __init__(self, message: str, *, target: str | None = None) -> None:
        super().__init__(message, ExportFailureCause.ASSEMBLY, target=target)


class SaveError(ExportError):
    def __init__(self, message: str, *, target: str | None = None) -> None:
        super().__init__(message, ExportFailureCause.SAVE, target=target)


class WrongExportMethodError(RuntimeError):
    """Raised when an adapter is asked to produce the other target."""

    def __init__(self, expected_method: str, target_label: str) -> None:
        super().__init__(f"Use {expected_method} method for {target_label} export")
        self.expected_method = expected_method
