# chart_decision/loaders.py
from pathlib import Path

import cv2
import numpy as np

from .types import RasterImage


def decode_image(data: bytes) -> RasterImage:
    """Decode encoded image bytes (PNG/JPEG); undecodable data gives an empty image."""
    if not data:
        return RasterImage.empty()
    im = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if im is None:
        return RasterImage.empty()
    return RasterImage.from_array(cv2.cvtColor(im, cv2.COLOR_BGR2RGB))


def load_image(img: str | Path | bytes | np.ndarray | RasterImage) -> RasterImage:
    """Read a chart screenshot into an RGB ``RasterImage``.

    Arrays are taken as RGB (RGBA and gray are normalized). Paths and encoded
    bytes are decoded with OpenCV, which yields BGR, and converted.

    Raises
    ------
    FileNotFoundError
        The path does not exist.
    ValueError
        The file or bytes could not be decoded as an image.
    """
    if isinstance(img, RasterImage):
        return img
    if isinstance(img, np.ndarray):
        return RasterImage.from_array(img)
    if isinstance(img, (bytes, bytearray)):
        image = decode_image(bytes(img))
        if image.is_empty:
            raise ValueError("Failed to decode image bytes")
        return image
    p = Path(img)
    if not p.exists():
        raise FileNotFoundError(p)
    im = cv2.imread(str(p), cv2.IMREAD_COLOR)
    if im is None:
        raise ValueError(f"Failed to read image: {p}")
    return RasterImage.from_array(cv2.cvtColor(im, cv2.COLOR_BGR2RGB))


def encode_png(image: RasterImage) -> bytes:
    """PNG bytes of the image, used for remote analysis payloads."""
    if image.is_empty:
        return b""
    ok, buf = cv2.imencode(".png", cv2.cvtColor(image.pixels, cv2.COLOR_RGB2BGR))
    if not ok:
        raise ValueError("Failed to encode image as PNG")
    return buf.tobytes()
