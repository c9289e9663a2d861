"""
Image processing utility functions.
"""
import base64
import binascii

import cv2
import numpy as np

from faceguard.core.exceptions import InvalidImageError


def decode_data_url(payload: str) -> bytes:
    """Decode a ``data:image/...;base64,`` URL or a bare base64 string.

    Args:
        payload: Encoded image as sent by a browser capture or stored on a profile

    Returns:
        bytes: Raw image bytes

    Raises:
        InvalidImageError: If the payload is not valid base64
    """
    if not payload:
        raise InvalidImageError("Empty image payload")
    if payload.startswith("data:"):
        header, _, payload = payload.partition(",")
        if ";base64" not in header:
            raise InvalidImageError("Only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"Invalid base64 image payload: {e}") from e


def encode_data_url(image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
    """Encode raw image bytes as a base64 data URL."""
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"


def bytes_to_numpy_array(image_bytes: bytes, flags: int = cv2.IMREAD_COLOR) -> np.ndarray:
    """Convert image bytes to a BGR numpy array.

    Args:
        image_bytes: Raw image bytes
        flags: OpenCV imread flags (default: COLOR)

    Returns:
        numpy.ndarray: Image as a numpy array

    Raises:
        InvalidImageError: If the image cannot be decoded
    """
    np_array = np.frombuffer(image_bytes, np.uint8)
    img = cv2.imdecode(np_array, flags) if np_array.size else None
    if img is None:
        raise InvalidImageError("Failed to decode image bytes")
    return img


def data_url_to_numpy_array(payload: str) -> np.ndarray:
    """Decode an encoded image payload straight to a numpy array."""
    return bytes_to_numpy_array(decode_data_url(payload))
