"""Assemble transcoded page images into a single PDF document."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

import img2pdf

from .errors import AssemblyError
from .papersize import PaperSize
from .transcoder import TranscodedImage

logger = logging.getLogger(__name__)


class Orientation(str, Enum):
    """Paper direction chosen by the user."""

    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"


@dataclass(frozen=True)
class PdfPage:
    """One page and where its image is placed, in millimetres."""

    image: TranscodedImage
    inserted: bool
    x_mm: float
    y_mm: float
    width_mm: float
    height_mm: float


@dataclass
class PdfDocument:
    """A document ready for serialization.

    ``width_mm``/``height_mm`` are the declared paper dimensions and are never
    swapped; landscape only affects the placement of each page.
    """

    orientation: str
    width_mm: float
    height_mm: float
    pages: list[PdfPage] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)


def build_document(
    images: Sequence[TranscodedImage],
    paper_size: PaperSize,
    orientation: Orientation,
) -> PdfDocument:
    """Lay out one page per image, in index order.

    Args:
        images: Transcoded page images.
        paper_size: Resolved paper size of every page.
        orientation: :attr:`Orientation.HORIZONTAL` gives a landscape document.

    Returns:
        A :class:`PdfDocument` whose first page is the initial page and whose
        later pages are inserted.

    Raises:
        ValueError: If *images* is empty.
    """
    if not images:
        raise ValueError("images must not be empty")

    landscape = orientation == Orientation.HORIZONTAL
    document = PdfDocument(
        orientation="landscape" if landscape else "portrait",
        width_mm=paper_size.width_mm,
        height_mm=paper_size.height_mm,
    )

    if landscape:
        place_width, place_height = paper_size.height_mm, paper_size.width_mm
    else:
        place_width, place_height = paper_size.width_mm, paper_size.height_mm

    for i, image in enumerate(sorted(images, key=lambda img: img.index)):
        document.pages.append(
            PdfPage(
                image=image,
                inserted=i > 0,
                x_mm=0.0,
                y_mm=0.0,
                width_mm=place_width,
                height_mm=place_height,
            )
        )

    return document


def serialize_document(document: PdfDocument) -> bytes:
    """Render *document* to PDF bytes.

    Pages are written in document order, so the initial page comes first and
    every inserted page follows it.  Each page gets its own media box, sized
    from its placement box, and the image fills the box exactly.  Landscape
    documents therefore come out with pages wider than tall.  The JPEG streams
    are embedded as-is.

    Raises:
        AssemblyError: If the document is empty or the PDF backend fails.
    """
    if not document.pages:
        raise AssemblyError("Cannot serialize a document without pages")

    first = document.pages[0]
    try:
        pdf_bytes = img2pdf.convert(
            [page.image.data for page in document.pages],
            layout_fun=_page_layout(document.pages),
        )
    except Exception as exc:
        raise AssemblyError(f"PDF serialization failed: {exc}") from exc

    logger.debug(
        "Serialized %d %s pages (%.2f x %.2f mm) into %d bytes",
        document.page_count, document.orientation,
        first.width_mm, first.height_mm, len(pdf_bytes),
    )
    return pdf_bytes


def _page_layout(pages: Sequence[PdfPage]):
    """Build an img2pdf layout function that walks *pages* in order.

    img2pdf calls the layout function once per image.  Each call returns the
    next page's media box and image size in points, both equal to the
    placement.  img2pdf centres the image on the media box, so only
    placements at the page origin are supported.
    """
    remaining = iter(pages)

    def layout_fun(imgwidthpx, imgheightpx, ndpi):
        page = next(remaining, None)
        if page is None:
            raise AssemblyError("img2pdf requested more pages than the document has")
        if page.x_mm or page.y_mm:
            raise AssemblyError(
                f"Page image must be placed at the origin, got ({page.x_mm}, {page.y_mm}) mm"
            )
        return (
            img2pdf.mm_to_pt(page.width_mm),
            img2pdf.mm_to_pt(page.height_mm),
            img2pdf.mm_to_pt(page.width_mm),
            img2pdf.mm_to_pt(page.height_mm),
        )

    return layout_fun
