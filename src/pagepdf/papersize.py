"""Map rendered page pixel dimensions to a physical paper size."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

# Millimetres per CSS pixel at 96 DPI.
PX_TO_MM = 0.264583


class PaperName(str, Enum):
    """Canonical paper formats recognised by exact pixel dimensions."""

    A3 = "A3"
    A4 = "A4"
    A5 = "A5"


@dataclass(frozen=True)
class PaperSize:
    """Physical page size in millimetres.

    ``name`` is ``None`` when the pixel dimensions did not match a canonical
    format and the size was derived from :data:`PX_TO_MM`.
    """

    name: PaperName | None
    width_mm: float
    height_mm: float


_CANONICAL_SIZES: dict[tuple[int, int], PaperSize] = {
    (1125, 1593): PaperSize(name=PaperName.A3, width_mm=297.0, height_mm=420.0),
    (794, 1123): PaperSize(name=PaperName.A4, width_mm=210.0, height_mm=297.0),
    (565, 796): PaperSize(name=PaperName.A5, width_mm=148.0, height_mm=210.0),
}


@lru_cache(maxsize=128)
def resolve_paper_size(width_px: int, height_px: int) -> PaperSize:
    """Resolve the paper size for a page rendered at ``width_px`` x ``height_px``.

    Exact matches against the A3/A4/A5 editor page sizes return the canonical
    millimetre dimensions.  Anything else is converted at ~96 DPI.

    Example::

        >>> resolve_paper_size(794, 1123)
        PaperSize(name=<PaperName.A4: 'A4'>, width_mm=210.0, height_mm=297.0)
    """
    canonical = _CANONICAL_SIZES.get((width_px, height_px))
    if canonical is not None:
        return canonical

    return PaperSize(
        name=None,
        width_mm=width_px * PX_TO_MM,
        height_mm=height_px * PX_TO_MM,
    )
