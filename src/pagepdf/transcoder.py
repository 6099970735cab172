"""Decode page images and re-encode them as JPEG at their native size."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from io import BytesIO
from typing import Protocol

import httpx
from PIL import Image

from .chunked import CancellationToken, guarded
from .errors import DecodeError

logger = logging.getLogger(__name__)

# Pillow JPEG quality matching the editor's canvas.toDataURL factor of 0.5.
DEFAULT_QUALITY = 50

_DEFAULT_FETCH_TIMEOUT = 30.0

_DATA_URL_PATTERN = re.compile(r"^data:[^,]*?;base64,(.*)$", re.DOTALL)
_REMOTE_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

PageImage = str | bytes


class Raster(Protocol):
    """A decoded image held by a :class:`RasterCodec`."""

    width: int
    height: int

    def close(self) -> None: ...


class RasterCodec(Protocol):
    """Decode/encode capability the transcoder delegates pixel work to."""

    async def decode(self, payload: bytes) -> Raster: ...

    def encode(self, raster: Raster, *, quality: int) -> bytes: ...


class PillowCodec:
    """:class:`RasterCodec` backed by Pillow.

    Decoding runs in a worker thread so a chunk of pages decodes concurrently.
    """

    async def decode(self, payload: bytes) -> Image.Image:
        decoding = asyncio.ensure_future(asyncio.to_thread(self._decode_sync, payload))
        try:
            return await asyncio.shield(decoding)
        except asyncio.CancelledError:
            decoding.add_done_callback(_close_abandoned)
            raise

    @staticmethod
    def _decode_sync(payload: bytes) -> Image.Image:
        try:
            image = Image.open(BytesIO(payload))
            image.load()
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
            raise DecodeError(f"Cannot decode page image: {exc}") from exc
        return image

    def encode(self, raster: Image.Image, *, quality: int) -> bytes:
        try:
            surface = Image.new("RGB", raster.size, "white")
        except (MemoryError, ValueError) as exc:
            raise DecodeError(
                f"Cannot acquire a {raster.width}x{raster.height} rendering surface"
            ) from exc

        try:
            rgba = raster.convert("RGBA")
        except (MemoryError, ValueError) as exc:
            surface.close()
            raise DecodeError(f"Cannot render page image: {exc}") from exc

        try:
            surface.paste(rgba, (0, 0), rgba)
            buffer = BytesIO()
            surface.save(buffer, format="JPEG", quality=quality)
            return buffer.getvalue()
        finally:
            rgba.close()
            surface.close()


def _close_abandoned(future: asyncio.Future) -> None:
    if not future.cancelled() and future.exception() is None:
        future.result().close()


@dataclass(frozen=True)
class TranscodedImage:
    """A re-encoded JPEG page tagged with its position in the document."""

    index: int
    data: bytes
    width: int
    height: int

    @property
    def data_url(self) -> str:
        return "data:image/jpeg;base64," + base64.b64encode(self.data).decode("ascii")


def is_remote(source: PageImage) -> bool:
    return isinstance(source, str) and bool(_REMOTE_URL_PATTERN.match(source.strip()))


async def load_page_image(
    source: PageImage,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = _DEFAULT_FETCH_TIMEOUT,
) -> bytes:
    """Return the encoded image bytes behind *source*.

    *source* may be raw bytes, a ``data:`` URL, a bare base64 string or an
    ``http(s)`` URL.  URLs are fetched once, without retries.

    Raises:
        DecodeError: If the payload is not valid base64 or the URL cannot
            be fetched.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    if not isinstance(source, str):
        raise DecodeError(f"Unsupported page image type: {type(source).__name__}")

    text = source.strip()
    if is_remote(text):
        if client is None:
            async with httpx.AsyncClient() as own_client:
                return await _fetch(own_client, text, timeout=timeout)
        return await _fetch(client, text, timeout=timeout)

    match = _DATA_URL_PATTERN.match(text)
    encoded = match.group(1) if match else text
    try:
        return base64.b64decode("".join(encoded.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Page image is not valid base64: {exc}") from exc


async def _fetch(client: httpx.AsyncClient, url: str, *, timeout: float) -> bytes:
    try:
        response = await client.get(url, timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise DecodeError(f"Cannot fetch page image {url}: {exc}") from exc
    return response.content


async def transcode_image(
    source: PageImage,
    *,
    index: int = 0,
    codec: RasterCodec | None = None,
    quality: int = DEFAULT_QUALITY,
    timeout: float | None = None,
    cancel_token: CancellationToken | None = None,
    client: httpx.AsyncClient | None = None,
) -> TranscodedImage:
    """Decode one page image and re-encode it as JPEG without resizing.

    Args:
        source: The encoded page image (see :func:`load_page_image`).
        index: Position of the page in the document.
        codec: Pixel backend; defaults to :class:`PillowCodec`.
        quality: JPEG quality, 1-100.
        timeout: Optional limit in seconds for this page.
        cancel_token: Optional token that aborts the wait.
        client: HTTP client for remote sources.

    Returns:
        The :class:`TranscodedImage` for page *index*.

    Raises:
        ValueError: If *quality* is out of range.
        DecodeError: If the image cannot be loaded, decoded or rendered.
        ExportTimeoutError: If *timeout* passes first.
        ExportCancelledError: If *cancel_token* fires first.
    """
    if not 1 <= quality <= 100:
        raise ValueError(f"quality must be between 1 and 100, got {quality}")

    return await guarded(
        _transcode(source, index=index, codec=codec or PillowCodec(), quality=quality, client=client),
        timeout=timeout,
        cancel_token=cancel_token,
        description=f"Transcoding page {index + 1}",
    )


async def _transcode(
    source: PageImage,
    *,
    index: int,
    codec: RasterCodec,
    quality: int,
    client: httpx.AsyncClient | None,
) -> TranscodedImage:
    payload = await load_page_image(source, client=client)
    raster = await codec.decode(payload)
    width, height = raster.width, raster.height
    encoding = asyncio.ensure_future(
        asyncio.to_thread(codec.encode, raster, quality=quality)
    )
    try:
        data = await asyncio.shield(encoding)
    except asyncio.CancelledError:
        # The worker thread may still hold the raster.
        encoding.add_done_callback(lambda future: _release(future, raster))
        raise
    except BaseException:
        raster.close()
        raise
    raster.close()

    logger.debug(
        "Transcoded page %d: %dx%d, %d -> %d bytes",
        index + 1, width, height, len(payload), len(data),
    )
    return TranscodedImage(index=index, data=data, width=width, height=height)


def _release(future: asyncio.Future, raster: Raster) -> None:
    if not future.cancelled():
        future.exception()
    raster.close()
