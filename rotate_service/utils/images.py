from io import BytesIO

import httpx
from PIL import Image, UnidentifiedImageError

# Clockwise quarter turns expressed as Pillow transposes (Pillow rotates counter-clockwise)
_QUARTER_TURNS = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}

_PNG_MODES = {"1", "L", "LA", "I", "P", "RGB", "RGBA"}


class ImageFetchError(RuntimeError):
    """Download or decode of the source image failed."""


def fetch_image(url: str, timeout: float = 60) -> bytes:
    try:
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            r = client.get(url)
    except httpx.HTTPError as e:
        raise ImageFetchError(f"Image fetch failed: {e}") from e
    if not r.is_success:
        raise ImageFetchError(f"Image fetch failed with status {r.status_code}")
    return r.content


def rotate_image(image_bytes: bytes, degrees: int = 90) -> bytes:
    """Rotate an encoded image clockwise by `degrees` and return PNG bytes.

    Multiples of 90 are lossless transposes. Other angles expand the canvas
    and fill the corners with transparency.
    """
    try:
        img = Image.open(BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageFetchError(f"Could not decode image: {e}") from e

    if img.mode not in _PNG_MODES:
        img = img.convert("RGBA" if "A" in img.mode else "RGB")

    angle = degrees % 360
    if angle == 0:
        rotated = img
    elif angle in _QUARTER_TURNS:
        rotated = img.transpose(_QUARTER_TURNS[angle])
    else:
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        rotated = img.rotate(-angle, resample=Image.Resampling.BICUBIC, expand=True, fillcolor=(0, 0, 0, 0))

    buf = BytesIO()
    rotated.save(buf, format="PNG")
    return buf.getvalue()
