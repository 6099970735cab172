"""Deliver serialized PDF bytes as a named file or as a preview resource."""

from __future__ import annotations

import logging
import tempfile
import webbrowser
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


@dataclass(frozen=True)
class ExportFile:
    """A named PDF artifact.  An empty ``name`` marks the zero-length sentinel."""

    name: str
    data: bytes
    mime_type: str = PDF_MIME_TYPE

    @property
    def size(self) -> int:
        return len(self.data)

    def write_to(self, directory: Path | str) -> Path:
        """Write the file into *directory* and return its path."""
        if not self.name:
            raise ValueError("Cannot write an unnamed export file")

        if Path(self.name).name != self.name or self.name in (".", ".."):
            raise ValueError(f"Export file name must not contain a path: {self.name!r}")

        output_path = (Path(directory) / self.name).resolve()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(self.data)
        return output_path


@dataclass
class PreviewResource:
    """A temporary PDF opened for viewing.  The caller revokes it when done."""

    path: Path
    url: str

    def revoke(self) -> None:
        self.path.unlink(missing_ok=True)

    def __enter__(self) -> PreviewResource:
        return self

    def __exit__(self, *exc_info) -> None:
        self.revoke()


def normalize_file_name(file_name: str) -> str:
    """Append ``.pdf`` unless *file_name* is empty or already has it.

    Rules:
        - ``""`` → ``""``
        - Ends in ``.pdf`` (any case) → unchanged
        - Otherwise → ``{file_name}.pdf``
    """
    if not file_name or file_name.lower().endswith(".pdf"):
        return file_name
    return f"{file_name}.pdf"


def deliver_file(pdf_bytes: bytes, file_name: str) -> ExportFile:
    name = normalize_file_name(file_name)
    if not name:
        return ExportFile(name="", data=b"")
    return ExportFile(name=name, data=pdf_bytes)


def open_preview(
    pdf_bytes: bytes,
    *,
    opener: Callable[[str], object] | None = None,
) -> PreviewResource:
    """Write *pdf_bytes* to a temporary file and hand its URL to *opener*.

    *opener* defaults to :func:`webbrowser.open`.
    """
    with tempfile.NamedTemporaryFile(
        prefix="pagepdf_", suffix=".pdf", delete=False
    ) as handle:
        handle.write(pdf_bytes)
        path = Path(handle.name)

    resource = PreviewResource(path=path, url=path.as_uri())
    try:
        opened = (opener or webbrowser.open)(resource.url)
    except BaseException:
        resource.revoke()
        raise
    if opened is False:
        logger.warning("No viewer accepted the preview %s", resource.url)
    return resource
