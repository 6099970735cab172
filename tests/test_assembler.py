"""Unit tests for PDF assembly."""

from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image
from PyPDF2 import PdfReader

from pagepdf.assembler import (
    Orientation,
    PdfDocument,
    PdfPage,
    build_document,
    serialize_document,
)
from pagepdf.errors import AssemblyError
from pagepdf.papersize import PaperSize, resolve_paper_size
from pagepdf.transcoder import TranscodedImage

A4 = resolve_paper_size(794, 1123)
MM_TO_PT = 72.0 / 25.4


def _jpeg_page(index: int, *, width: int = 60, height: int = 80) -> TranscodedImage:
    buffer = BytesIO()
    Image.new("RGB", (width, height), (index * 20 % 256, 100, 100)).save(
        buffer, format="JPEG", quality=50
    )
    return TranscodedImage(index=index, data=buffer.getvalue(), width=width, height=height)


class TestBuildDocument:
    def test_one_page_per_image(self):
        document = build_document([_jpeg_page(i) for i in range(4)], A4, Orientation.VERTICAL)

        assert document.page_count == 4
        assert [page.inserted for page in document.pages] == [False, True, True, True]
        assert [page.image.index for page in document.pages] == [0, 1, 2, 3]

    def test_portrait_placement(self):
        document = build_document([_jpeg_page(0)], A4, Orientation.VERTICAL)
        page = document.pages[0]

        assert document.orientation == "portrait"
        assert (page.x_mm, page.y_mm) == (0.0, 0.0)
        assert (page.width_mm, page.height_mm) == (210.0, 297.0)

    def test_landscape_swaps_placement_not_declared_size(self):
        document = build_document([_jpeg_page(0)], A4, Orientation.HORIZONTAL)
        page = document.pages[0]

        assert document.orientation == "landscape"
        assert (document.width_mm, document.height_mm) == (210.0, 297.0)
        assert (page.width_mm, page.height_mm) == (297.0, 210.0)

    def test_pages_follow_image_index(self):
        images = [_jpeg_page(2), _jpeg_page(0), _jpeg_page(1)]
        document = build_document(images, A4, Orientation.VERTICAL)
        assert [page.image.index for page in document.pages] == [0, 1, 2]

    def test_custom_paper_size(self):
        size = resolve_paper_size(1000, 500)
        document = build_document([_jpeg_page(0)], size, Orientation.VERTICAL)
        assert document.pages[0].width_mm == pytest.approx(264.583)
        assert document.pages[0].height_mm == pytest.approx(132.2915)

    def test_empty_image_list_raises(self):
        with pytest.raises(ValueError, match="must not be empty"):
            build_document([], A4, Orientation.VERTICAL)


class TestSerializeDocument:
    def test_multiple_pages(self):
        document = build_document([_jpeg_page(i) for i in range(3)], A4, Orientation.VERTICAL)

        pdf_bytes = serialize_document(document)

        assert pdf_bytes[:5] == b"%PDF-"
        reader = PdfReader(BytesIO(pdf_bytes))
        assert len(reader.pages) == 3
        for page in reader.pages:
            assert float(page.mediabox.width) == pytest.approx(210 * MM_TO_PT, abs=0.01)
            assert float(page.mediabox.height) == pytest.approx(297 * MM_TO_PT, abs=0.01)

    def test_landscape_pages_are_rotated(self):
        document = build_document([_jpeg_page(0)], A4, Orientation.HORIZONTAL)

        reader = PdfReader(BytesIO(serialize_document(document)))

        page = reader.pages[0]
        assert float(page.mediabox.width) == pytest.approx(297 * MM_TO_PT, abs=0.01)
        assert float(page.mediabox.height) == pytest.approx(210 * MM_TO_PT, abs=0.01)

    def test_jpeg_is_embedded_without_recompression(self):
        image = _jpeg_page(0)
        document = build_document([image], A4, Orientation.VERTICAL)

        assert image.data in serialize_document(document)

    def test_empty_document_raises(self):
        with pytest.raises(AssemblyError, match="without pages"):
            serialize_document(PdfDocument(orientation="portrait", width_mm=210, height_mm=297))

    def test_backend_failure_raises(self):
        bogus = TranscodedImage(index=0, data=b"not a jpeg", width=1, height=1)
        document = build_document([bogus], PaperSize(None, 100.0, 100.0), Orientation.VERTICAL)

        with pytest.raises(AssemblyError, match="serialization failed"):
            serialize_document(document)

    def test_each_page_uses_its_own_box(self):
        document = PdfDocument(
            orientation="portrait",
            width_mm=100.0,
            height_mm=200.0,
            pages=[
                PdfPage(_jpeg_page(0), inserted=False, x_mm=0.0, y_mm=0.0,
                        width_mm=100.0, height_mm=200.0),
                PdfPage(_jpeg_page(1), inserted=True, x_mm=0.0, y_mm=0.0,
                        width_mm=150.0, height_mm=90.0),
            ],
        )

        reader = PdfReader(BytesIO(serialize_document(document)))

        sizes = [
            (float(page.mediabox.width), float(page.mediabox.height))
            for page in reader.pages
        ]
        assert sizes[0] == pytest.approx((100 * MM_TO_PT, 200 * MM_TO_PT), abs=0.01)
        assert sizes[1] == pytest.approx((150 * MM_TO_PT, 90 * MM_TO_PT), abs=0.01)

    def test_offset_placement_raises(self):
        document = PdfDocument(
            orientation="portrait",
            width_mm=210.0,
            height_mm=297.0,
            pages=[
                PdfPage(_jpeg_page(0), inserted=False, x_mm=5.0, y_mm=0.0,
                        width_mm=200.0, height_mm=297.0),
            ],
        )

        with pytest.raises(AssemblyError, match="origin"):
            serialize_document(document)
