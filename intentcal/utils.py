from __future__ import annotations

import base64
import io
from typing import Optional, Union

from PIL import Image

from .config import (
    LLM_DEBUG,
    MAX_IMAGE_DATA_URL_CHARS,
    IMAGE_JPEG_QUALITY,
    IMAGE_TOO_LARGE_MESSAGE,
)

_JPEG_PREFIX = "data:image/jpeg;base64,"
_ALLOWED_IMAGE_PREFIXES = (
    "data:image/png;base64,",
    "data:image/jpeg;base64,",
    "data:image/webp;base64,",
)

ImageInput = Union[bytes, str, Image.Image]


def _log_debug(message: str) -> None:
    if LLM_DEBUG:
        print(message, flush=True)


def _clean_optional_str(value: object) -> Optional[str]:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def _validate_image_data_url(data_url: str) -> str:
    data = data_url.strip()
    if not any(data.startswith(prefix) for prefix in _ALLOWED_IMAGE_PREFIXES):
        raise ValueError("Images must be in data:image/...;base64 form.")
    if len(data) > MAX_IMAGE_DATA_URL_CHARS:
        raise ValueError(IMAGE_TOO_LARGE_MESSAGE)
    return data


def encode_image_data_url(image: ImageInput) -> str:
    """Return ``image`` as an inline ``data:image/jpeg;base64,...`` URL.

    Raw bytes and PIL images are re-encoded to JPEG so the declared media type
    always matches the payload. Strings must already be data URLs; JPEG ones are only
    validated and PNG or WebP ones are re-encoded as well.
    """
    if isinstance(image, str):
        data_url = _validate_image_data_url(image)
        if data_url.startswith(_JPEG_PREFIX):
            return data_url
        try:
            image = base64.b64decode(data_url.split(",", 1)[1], validate=True)
        except ValueError as exc:
            raise ValueError(f"Unreadable image payload: {exc}") from exc

    if isinstance(image, (bytes, bytearray)):
        try:
            pil_image = Image.open(io.BytesIO(bytes(image)))
            pil_image.load()
        except Exception as exc:
            raise ValueError(f"Unreadable image payload: {exc}") from exc
    else:
        pil_image = image

    if pil_image.mode not in ("RGB", "L"):
        pil_image = pil_image.convert("RGB")
    buffer = io.BytesIO()
    pil_image.save(buffer, format="JPEG", quality=IMAGE_JPEG_QUALITY)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return _validate_image_data_url(f"data:image/jpeg;base64,{encoded}")
