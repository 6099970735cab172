"""Exceptions raised by the export pipeline."""


class ExportError(Exception):
    """Base exception for pagepdf errors."""


class ExportOptionsError(ExportError, ValueError):
    """Raised when export options or inputs are invalid."""


class PipelineError(ExportError):
    """Raised when processing of a chunk of page images fails."""


class DecodeError(PipelineError):
    """Raised when a page image cannot be loaded, decoded or rendered."""


class ExportTimeoutError(PipelineError):
    """Raised when a decode or a chunk join exceeds its timeout."""


class ExportCancelledError(PipelineError):
    """Raised when the export was cancelled through its token."""


class AssemblyError(ExportError):
    """Raised when the PDF could not be serialized."""
