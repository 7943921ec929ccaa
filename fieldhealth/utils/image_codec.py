"""
Image decoding and encoding utilities.

Decoding turns uploaded bytes into an immutable RasterBuffer; encoding
turns rendered composites back into PNG data URLs for clients.
"""
import asyncio
import base64
import io
import logging

import numpy as np
from PIL import Image, UnidentifiedImageError

from fieldhealth.domain.errors import ImageDecodeError
from fieldhealth.domain.models import CompositeRaster, RasterBuffer

logger = logging.getLogger(__name__)


def decode_image(data: bytes) -> RasterBuffer:
    """
    Decode image bytes into an RGBA raster.

    Multi-frame formats (GIF, multi-page TIFF) contribute their first frame.

    Args:
        data: Encoded image bytes

    Returns:
        RasterBuffer with the decoded pixels

    Raises:
        ImageDecodeError: If the bytes are empty, unreadable or corrupt
    """
    if not data:
        raise ImageDecodeError("Image is empty")

    try:
        with Image.open(io.BytesIO(data)) as image:
            # Force full decode so truncated files fail here
            image.load()
            source_format = image.format
            rgba = image.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Unsupported or unreadable image: {e}")
    except (OSError, ValueError) as e:
        raise ImageDecodeError(f"Corrupt image data: {e}")

    pixels = np.asarray(rgba, dtype=np.uint8)
    height, width = pixels.shape[:2]

    try:
        raster = RasterBuffer(width=width, height=height, pixels=pixels)
    except ValueError as e:
        raise ImageDecodeError(str(e))

    logger.debug(f"Decoded {source_format} image: {width}x{height}")
    return raster


async def decode_image_async(data: bytes) -> RasterBuffer:
    """Decode image bytes in a worker thread, off the event loop."""
    return await asyncio.to_thread(decode_image, data)


def encode_png(pixels: np.ndarray) -> bytes:
    """
    Encode an RGB or RGBA pixel array as PNG.

    Args:
        pixels: uint8 array of shape (height, width, 3 or 4)

    Returns:
        PNG bytes
    """
    buffer = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8)).save(
        buffer, format="PNG"
    )
    return buffer.getvalue()


def to_data_url(composite: CompositeRaster) -> str:
    """Encode a composite as a ``data:image/png;base64`` URL."""
    encoded = base64.b64encode(encode_png(composite.pixels)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
