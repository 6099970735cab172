"""pagepdf: Export rendered document page images as a paginated PDF."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from .assembler import Orientation, PdfDocument, PdfPage, build_document, serialize_document
from .chunked import (
    DEFAULT_CHUNK_SIZE,
    CancellationToken,
    gather_in_order,
    run_in_chunks,
)
from .delivery import (
    PDF_MIME_TYPE,
    ExportFile,
    PreviewResource,
    deliver_file,
    normalize_file_name,
    open_preview,
)
from .errors import (
    AssemblyError,
    DecodeError,
    ExportCancelledError,
    ExportError,
    ExportOptionsError,
    ExportTimeoutError,
    PipelineError,
)
from .log import configure_logging
from .papersize import PX_TO_MM, PaperName, PaperSize, resolve_paper_size
from .transcoder import (
    DEFAULT_QUALITY,
    PageImage,
    PillowCodec,
    RasterCodec,
    TranscodedImage,
    transcode_image,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_QUALITY",
    "PDF_MIME_TYPE",
    "PX_TO_MM",
    "AssemblyError",
    "CancellationToken",
    "DecodeError",
    "ExportCancelledError",
    "ExportError",
    "ExportFile",
    "ExportOptions",
    "ExportOptionsError",
    "ExportTimeoutError",
    "Orientation",
    "PageImage",
    "PaperName",
    "PaperSize",
    "PdfDocument",
    "PdfPage",
    "PillowCodec",
    "PipelineError",
    "PreviewResource",
    "RasterCodec",
    "TranscodedImage",
    "build_document",
    "configure_logging",
    "export_pdf_bytes",
    "export_to_file",
    "export_to_preview",
    "gather_in_order",
    "normalize_file_name",
    "resolve_paper_size",
    "run_in_chunks",
    "serialize_document",
    "transcode_image",
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class ExportOptions:
    """Page pixel size and paper direction chosen for an export."""

    width: int
    height: int
    direction: Orientation = Orientation.VERTICAL


def _coerce_options(options: ExportOptions | Mapping[str, Any]) -> ExportOptions:
    """Validate *options* and return them as :class:`ExportOptions`.

    Raises:
        ExportOptionsError: If width/height are not positive integers or the
            direction is unknown.
    """
    if isinstance(options, ExportOptions):
        width, height, direction = options.width, options.height, options.direction
    elif isinstance(options, Mapping):
        try:
            width, height = options["width"], options["height"]
        except KeyError as exc:
            raise ExportOptionsError(f"Missing export option: {exc.args[0]}") from None
        direction = options.get("direction") or Orientation.VERTICAL
    else:
        raise ExportOptionsError(
            f"options must be ExportOptions or a mapping, got {type(options).__name__}"
        )

    for label, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ExportOptionsError(f"{label} must be a positive integer, got {value!r}")

    try:
        orientation = Orientation(
            direction.value if isinstance(direction, Orientation) else str(direction).lower()
        )
    except ValueError:
        raise ExportOptionsError(f"Unknown paper direction: {direction!r}") from None

    return ExportOptions(width=width, height=height, direction=orientation)


async def export_pdf_bytes(
    page_images: Iterable[PageImage],
    options: ExportOptions | Mapping[str, Any],
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    quality: int = DEFAULT_QUALITY,
    codec: RasterCodec | None = None,
    decode_timeout: float | None = None,
    chunk_timeout: float | None = None,
    cancel_token: CancellationToken | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> bytes:
    """Run the export pipeline and return the serialized PDF.

    This is the pipeline shared by :func:`export_to_file` and
    :func:`export_to_preview`: resolve the paper size, transcode the pages
    *chunk_size* at a time, lay out one page per image and serialize.

    Args:
        page_images: Encoded page images in document order.
        options: Page pixel size and direction.
        chunk_size: Maximum number of pages transcoded at once.
        quality: JPEG quality used when re-encoding pages.
        codec: Pixel backend; defaults to :class:`PillowCodec`.
        decode_timeout: Optional per-page limit in seconds.
        chunk_timeout: Optional per-chunk limit in seconds.
        cancel_token: Optional token that aborts the export.
        http_client: Client used for ``http(s)`` page sources.

    Returns:
        The PDF bytes.

    Raises:
        ExportOptionsError: If *options* are invalid or there are no pages.
        DecodeError: If any page image cannot be decoded.
        PipelineError: If transcoding fails otherwise, times out or is
            cancelled.
        AssemblyError: If serialization fails.
    """
    opts = _coerce_options(options)
    sources = list(page_images)
    if not sources:
        raise ExportOptionsError("page_images must not be empty")

    paper_size = resolve_paper_size(opts.width, opts.height)
    logger.info(
        "Exporting %d pages at %dx%d px (%s, %.2f x %.2f mm, %s)",
        len(sources), opts.width, opts.height,
        paper_size.name.value if paper_size.name else "custom",
        paper_size.width_mm, paper_size.height_mm, opts.direction.value,
    )

    codec = codec or PillowCodec()
    client_context = (
        contextlib.nullcontext(http_client) if http_client is not None else httpx.AsyncClient()
    )
    async with client_context as client:
        transcoded = await run_in_chunks(
            enumerate(sources),
            chunk_size,
            gather_in_order(
                lambda item: transcode_image(
                    item[1],
                    index=item[0],
                    codec=codec,
                    quality=quality,
                    timeout=decode_timeout,
                    cancel_token=cancel_token,
                    client=client,
                )
            ),
            chunk_timeout=chunk_timeout,
            cancel_token=cancel_token,
        )

    for image in transcoded:
        if (image.width, image.height) != (opts.width, opts.height):
            logger.debug(
                "Page %d is %dx%d px but the export declares %dx%d; it will be stretched",
                image.index + 1, image.width, image.height, opts.width, opts.height,
            )

    document = build_document(transcoded, paper_size, opts.direction)
    pdf_bytes = serialize_document(document)
    logger.info("Built %d-page PDF (%d bytes)", document.page_count, len(pdf_bytes))
    return pdf_bytes


async def export_to_file(
    page_images: Iterable[PageImage],
    options: ExportOptions | Mapping[str, Any],
    file_name: str,
    **pipeline_kwargs: Any,
) -> ExportFile:
    """Export *page_images* as a named PDF file artifact.

    ``.pdf`` is appended to *file_name* when missing.  An empty *file_name*
    returns a zero-length :class:`ExportFile` without running the pipeline.

    Example::

        import asyncio
        from pagepdf import ExportOptions, export_to_file

        pdf = asyncio.run(export_to_file(
            page_images=pages,
            options=ExportOptions(width=794, height=1123),
            file_name="report",
        ))
        pdf.write_to("out")
    """
    if not normalize_file_name(file_name):
        logger.info("Empty file name, returning an empty export file")
        return deliver_file(b"", file_name)

    pdf_bytes = await export_pdf_bytes(page_images, options, **pipeline_kwargs)
    return deliver_file(pdf_bytes, file_name)


async def export_to_preview(
    page_images: Iterable[PageImage],
    options: ExportOptions | Mapping[str, Any],
    *,
    opener: Callable[[str], object] | None = None,
    **pipeline_kwargs: Any,
) -> PreviewResource:
    """Export *page_images* and open the PDF for viewing.

    The PDF is written to a temporary file whose URL is passed to *opener*
    (the default web browser when omitted).  Call
    :meth:`PreviewResource.revoke` once the viewer no longer needs it.
    """
    pdf_bytes = await export_pdf_bytes(page_images, options, **pipeline_kwargs)
    return open_preview(pdf_bytes, opener=opener)
